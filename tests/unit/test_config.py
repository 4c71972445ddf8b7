"""
Unit tests for application configuration (jibacrm/config.py).

Config is a class with attributes set at class-body parse time, and a module-level
singleton created immediately after. Testing different env var states requires
re-importing the module, with load_dotenv mocked to a no-op so the .env file on
disk doesn't override what we set in the test environment.
"""

import importlib
import logging
import sys
from pathlib import Path
from unittest.mock import patch


# ---------------------------------------------------------------------------
# Helper: reload jibacrm.config with a controlled environment
# ---------------------------------------------------------------------------

def _reload_config(env_overrides: dict):
    """
    Import a fresh copy of jibacrm.config under the given environment.
    Always restores the original module in sys.modules afterward.
    """
    original = sys.modules.get('jibacrm.config')
    try:
        with patch.dict('os.environ', env_overrides, clear=True), \
             patch('dotenv.load_dotenv'):
            sys.modules.pop('jibacrm.config', None)
            return importlib.import_module('jibacrm.config')
    finally:
        if original is not None:
            sys.modules['jibacrm.config'] = original
        elif 'jibacrm.config' in sys.modules:
            del sys.modules['jibacrm.config']


# ---------------------------------------------------------------------------
# Defaults
# ---------------------------------------------------------------------------

def test_starts_without_any_environment():
    mod = _reload_config({})
    assert mod.config is not None


def test_database_url_defaults_to_empty():
    assert _reload_config({}).Config.DATABASE_URL == ''


def test_data_dir_defaults_to_repo_data_folder():
    mod = _reload_config({})
    assert mod.Config.DATA_DIR.name == 'data'
    assert isinstance(mod.Config.DATA_DIR, Path)


def test_timezone_defaults_to_system_local():
    assert _reload_config({}).Config.TIMEZONE == ''


def test_page_size_default():
    assert _reload_config({}).Config.DEFAULT_PAGE_SIZE == 25


def test_autotag_defaults():
    mod = _reload_config({})
    assert mod.Config.AUTOTAG_ENABLED is True
    assert mod.Config.AUTOTAG_MODEL == 'deepseek-chat'
    assert mod.Config.AUTOTAG_AUTO_APPLY is False
    assert mod.Config.AUTOTAG_WAIT_SECONDS == 8.0


def test_deepseek_base_url_default():
    assert _reload_config({}).Config.DEEPSEEK_BASE_URL == 'https://api.deepseek.com'


def test_api_keys_default_to_empty():
    mod = _reload_config({})
    assert mod.Config.DEEPSEEK_API_KEY == ''
    assert mod.Config.ANTHROPIC_API_KEY == ''


# ---------------------------------------------------------------------------
# Custom env var values are picked up
# ---------------------------------------------------------------------------

def test_custom_data_dir(tmp_path):
    mod = _reload_config({'JIBACRM_DATA_DIR': str(tmp_path)})
    assert mod.Config.DATA_DIR == tmp_path


def test_custom_database_url():
    mod = _reload_config({'DATABASE_URL': 'postgresql://u:p@localhost/crm'})
    assert mod.Config.DATABASE_URL == 'postgresql://u:p@localhost/crm'


def test_custom_timezone():
    assert _reload_config({'TIMEZONE': 'America/New_York'}).Config.TIMEZONE == 'America/New_York'


def test_custom_page_size():
    assert _reload_config({'DEFAULT_PAGE_SIZE': '50'}).Config.DEFAULT_PAGE_SIZE == 50


def test_autotag_can_be_disabled():
    assert _reload_config({'AUTOTAG_ENABLED': 'false'}).Config.AUTOTAG_ENABLED is False


def test_autotag_auto_apply_truthy_values():
    for raw in ('1', 'true', 'YES', 'on'):
        assert _reload_config({'AUTOTAG_AUTO_APPLY': raw}).Config.AUTOTAG_AUTO_APPLY is True


def test_custom_wait_seconds():
    assert _reload_config({'AUTOTAG_WAIT_SECONDS': '2.5'}).Config.AUTOTAG_WAIT_SECONDS == 2.5


# ---------------------------------------------------------------------------
# Malformed numbers fall back with a warning
# ---------------------------------------------------------------------------

def test_bad_page_size_falls_back_to_default(caplog):
    with caplog.at_level(logging.WARNING, logger='jibacrm.config'):
        mod = _reload_config({'DEFAULT_PAGE_SIZE': 'lots'})
    assert mod.Config.DEFAULT_PAGE_SIZE == 25
    assert any('DEFAULT_PAGE_SIZE' in r.message for r in caplog.records)


def test_bad_wait_seconds_falls_back_to_default(caplog):
    with caplog.at_level(logging.WARNING, logger='jibacrm.config'):
        mod = _reload_config({'AUTOTAG_WAIT_SECONDS': 'soon'})
    assert mod.Config.AUTOTAG_WAIT_SECONDS == 8.0
    assert any('AUTOTAG_WAIT_SECONDS' in r.message for r in caplog.records)
