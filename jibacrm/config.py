"""
Jiba CRM Configuration
Loads settings from environment variables with sensible defaults.
"""

import logging
import os
from pathlib import Path
from dotenv import load_dotenv

_logger = logging.getLogger(__name__)

# Load .env file
env_path = Path(__file__).parent.parent / '.env'
load_dotenv(env_path)


def _int_env(name: str, default: int) -> int:
    raw = os.getenv(name, '')
    if not raw:
        return default
    try:
        return int(raw)
    except ValueError:
        _logger.warning(f"{name}={raw!r} is not an integer, using default {default}")
        return default


def _float_env(name: str, default: float) -> float:
    raw = os.getenv(name, '')
    if not raw:
        return default
    try:
        return float(raw)
    except ValueError:
        _logger.warning(f"{name}={raw!r} is not a number, using default {default}")
        return default


def _bool_env(name: str, default: bool) -> bool:
    raw = os.getenv(name, '')
    if not raw:
        return default
    return raw.strip().lower() in ('1', 'true', 'yes', 'on')


class Config:
    """Application configuration."""

    # Storage: JSON files under DATA_DIR unless DATABASE_URL points at PostgreSQL
    DATA_DIR = Path(os.getenv('JIBACRM_DATA_DIR', str(Path(__file__).parent.parent / 'data')))
    DATABASE_URL = os.getenv('DATABASE_URL', '')

    # Timezone for "local midnight" and "same calendar day" (empty = system local time)
    TIMEZONE = os.getenv('TIMEZONE', '')

    # Contact list page size for the CLI
    DEFAULT_PAGE_SIZE = _int_env('DEFAULT_PAGE_SIZE', 25)

    # Advisory deal-stage suggestion
    AUTOTAG_ENABLED = _bool_env('AUTOTAG_ENABLED', True)
    AUTOTAG_MODEL = os.getenv('AUTOTAG_MODEL', 'deepseek-chat')
    AUTOTAG_AUTO_APPLY = _bool_env('AUTOTAG_AUTO_APPLY', False)
    AUTOTAG_WAIT_SECONDS = _float_env('AUTOTAG_WAIT_SECONDS', 8.0)

    # AI credentials
    # DeepSeek (default for the short classification prompt)
    DEEPSEEK_API_KEY = os.getenv('DEEPSEEK_API_KEY', '')
    DEEPSEEK_BASE_URL = os.getenv('DEEPSEEK_BASE_URL', 'https://api.deepseek.com')
    # Claude
    ANTHROPIC_API_KEY = os.getenv('ANTHROPIC_API_KEY', '')
    CLAUDE_MODEL = os.getenv('CLAUDE_MODEL', 'claude-3-5-haiku-latest')


# Singleton instance
config = Config()
