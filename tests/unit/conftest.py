"""
Shared fixtures for unit tests.

Every test gets a fresh Store over a MemoryRepository, a clean event bus,
UTC as the local zone and the advisory AI call switched off, so nothing
touches the real data directory or the network.
"""

from datetime import datetime, timezone
from unittest.mock import patch

import pytest

from jibacrm.bus.events import bus
from jibacrm.config import config
from jibacrm.db.repository import MemoryRepository
from jibacrm.db.store import Store, set_store
from jibacrm.engine import autotag

DAY_MS = 24 * 60 * 60 * 1000
# 2026-03-10 12:00 UTC
NOW = int(datetime(2026, 3, 10, 12, 0, tzinfo=timezone.utc).timestamp() * 1000)


@pytest.fixture
def repository():
    return MemoryRepository()


@pytest.fixture(autouse=True)
def store(repository):
    fresh = Store(repository)
    previous = set_store(fresh)
    yield fresh
    set_store(previous)


@pytest.fixture(autouse=True)
def clean_bus():
    autotag.uninstall()
    bus.clear()
    yield
    autotag.uninstall()
    bus.clear()


@pytest.fixture(autouse=True)
def local_zone():
    with patch.object(config, 'TIMEZONE', 'UTC'), \
         patch.object(config, 'AUTOTAG_ENABLED', False):
        yield


@pytest.fixture
def now():
    return NOW
