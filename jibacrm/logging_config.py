"""
Logging for Jiba CRM.

Modules log through ``logging.getLogger(__name__)``, so everything lands
under the 'jibacrm' logger tree. configure_logging() attaches one rotating
file handler to that tree's root; until it is called (library use, tests)
records just propagate to whatever the host has configured.

  Log file : logs/jibacrm.log next to the package (5 MB x 3 backups)
  Level    : LOG_LEVEL env var, INFO when unset or unknown

CLI commands and file imports are wrapped in @log_call:

    2026-10-19 09:12:44 | DEBUG    | jibacrm | CALL contacts_list | args=(page=1)
    2026-10-19 09:12:44 | INFO     | jibacrm | OK   contacts_list | 3ms
    2026-10-19 09:12:44 | ERROR    | jibacrm | FAIL import_file | DecodeError: Error parsing JSON file | 1ms
"""

import functools
import logging
import logging.handlers
import os
import time
from pathlib import Path

_LOG_DIR = Path(__file__).parent.parent / "logs"
_LOG_FILE = _LOG_DIR / "jibacrm.log"
_FORMAT = "%(asctime)s | %(levelname)-8s | %(name)s | %(message)s"
_DATE_FORMAT = "%Y-%m-%d %H:%M:%S"
_MAX_BYTES = 5 * 1024 * 1024
_BACKUP_COUNT = 3

# Import batches and note texts can be long
_MAX_ARG_CHARS = 120


def configure_logging() -> logging.Logger:
    """Attach the rotating file handler to the 'jibacrm' logger once. Returns that logger."""
    logger = logging.getLogger("jibacrm")
    if logger.handlers:
        return logger

    _LOG_DIR.mkdir(exist_ok=True)
    level_name = os.environ.get("LOG_LEVEL", "INFO").upper()
    logger.setLevel(getattr(logging, level_name, logging.INFO))

    handler = logging.handlers.RotatingFileHandler(
        _LOG_FILE,
        maxBytes=_MAX_BYTES,
        backupCount=_BACKUP_COUNT,
        encoding="utf-8",
    )
    handler.setFormatter(logging.Formatter(_FORMAT, datefmt=_DATE_FORMAT))
    logger.addHandler(handler)
    return logger


def _short_repr(value) -> str:
    text = repr(value)
    if len(text) > _MAX_ARG_CHARS:
        return text[:_MAX_ARG_CHARS - 3] + "..."
    return text


def log_call(func):
    """
    Trace a call on the 'jibacrm' logger: CALL with its arguments at DEBUG,
    OK with elapsed ms at INFO, FAIL with the exception at ERROR (re-raised).
    """
    @functools.wraps(func)
    def wrapper(*args, **kwargs):
        logger = logging.getLogger("jibacrm")
        name = func.__name__
        start = time.perf_counter()

        parts = [_short_repr(a) for a in args] + [f"{k}={_short_repr(v)}" for k, v in kwargs.items()]
        logger.debug(f"CALL {name} | args=({', '.join(parts) if parts else '-'})")

        try:
            result = func(*args, **kwargs)
        except Exception as exc:
            ms = int((time.perf_counter() - start) * 1000)
            logger.error(f"FAIL {name} | {type(exc).__name__}: {exc} | {ms}ms")
            raise
        ms = int((time.perf_counter() - start) * 1000)
        logger.info(f"OK   {name} | {ms}ms")
        return result

    return wrapper
