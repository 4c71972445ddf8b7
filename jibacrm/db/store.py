"""
Store - the single source of truth for contacts, follow-ups and settings.

Every engine goes through ``get_store()``:

    with get_store().read() as state:        # consistent snapshot, no flush
        ...
    with get_store().transaction() as state: # mutate, then full flush
        ...

One re-entrant lock serialises all reads and writes, and the flush runs while
the lock is held, so writes reach the medium in the order they were issued.
An exception inside ``transaction()`` restores the pre-transaction state and
nothing is written.
"""

import copy
import logging
import threading
from contextlib import contextmanager
from dataclasses import dataclass, field
from typing import Iterator, List, Optional, Tuple

from jibacrm.config import config
from jibacrm.db.repository import (
    KEY_CONTACTS, KEY_FOLLOW_UPS, KEY_SETTINGS,
    JsonFileRepository, PostgresRepository, Repository,
)
from jibacrm.errors import StorageUnavailableError
from jibacrm.models import AppSettings, Contact, FollowUp, default_settings

logger = logging.getLogger(__name__)


@dataclass
class CrmState:
    contacts: List[Contact] = field(default_factory=list)
    follow_ups: List[FollowUp] = field(default_factory=list)
    settings: AppSettings = field(default_factory=default_settings)

    def find_contact(self, contact_id: str) -> Optional[Contact]:
        for contact in self.contacts:
            if contact.id == contact_id:
                return contact
        return None

    def to_records(self) -> dict:
        return {
            KEY_CONTACTS: [c.to_dict() for c in self.contacts],
            KEY_FOLLOW_UPS: [f.to_dict() for f in self.follow_ups],
            KEY_SETTINGS: self.settings.to_dict(),
        }


def _check_shape(key: str, value, expected: type) -> bool:
    """True when the record is missing (seed it). A present value of the wrong shape is corrupt."""
    if value is None:
        return True
    if not isinstance(value, expected):
        raise StorageUnavailableError(
            f"Record '{key}' holds {type(value).__name__}, expected {expected.__name__}")
    return False


def _state_from_records(records: dict) -> Tuple[CrmState, bool]:
    """
    Build state from raw records. Returns (state, seeded) where seeded means
    defaults were filled in for missing records.
    Raises StorageUnavailableError when a record is present but malformed.
    """
    raw_contacts = records.get(KEY_CONTACTS)
    raw_follow_ups = records.get(KEY_FOLLOW_UPS)
    raw_settings = records.get(KEY_SETTINGS)

    seeded = _check_shape(KEY_CONTACTS, raw_contacts, list)
    seeded = _check_shape(KEY_FOLLOW_UPS, raw_follow_ups, list) or seeded
    seeded = _check_shape(KEY_SETTINGS, raw_settings, dict) or seeded

    if raw_settings is not None and not isinstance(raw_settings.get('callOutcomes'), list):
        logger.info("Settings record has no callOutcomes, backfilling defaults")
        seeded = True

    try:
        state = CrmState(
            contacts=[Contact.from_dict(c) for c in raw_contacts or [] if isinstance(c, dict)],
            follow_ups=[FollowUp.from_dict(f) for f in raw_follow_ups or [] if isinstance(f, dict)],
            settings=AppSettings.from_dict(raw_settings) if raw_settings is not None else default_settings(),
        )
    except (TypeError, ValueError, AttributeError) as e:
        raise StorageUnavailableError(f"Stored records are malformed: {e}") from e
    return state, seeded


class Store:
    """Transactional facade over one Repository."""

    def __init__(self, repository: Repository):
        self.repository = repository
        self.degraded = False
        self._lock = threading.RLock()
        self._state: Optional[CrmState] = None
        self._depth = 0

    # ------------------------------------------------------------------
    # Loading / flushing
    # ------------------------------------------------------------------

    def load(self) -> CrmState:
        """(Re)load from the repository, seeding defaults on first run."""
        with self._lock:
            try:
                records = self.repository.load()
                state, seeded = _state_from_records(records)
            except StorageUnavailableError as e:
                logger.critical(f"Storage unavailable ({self.repository.name}): {e}; "
                                f"continuing with empty in-memory data, changes will NOT be saved")
                self.degraded = True
                self._state = CrmState()
                return self._state

            self._state = state
            logger.info(f"Loaded {len(self._state.contacts)} contacts and "
                        f"{len(self._state.follow_ups)} follow-ups from {self.repository.name} store")
            if seeded:
                self._flush()
            return self._state

    def _ensure_loaded(self) -> CrmState:
        if self._state is None:
            self.load()
        return self._state

    def _flush(self) -> None:
        if self.degraded:
            logger.warning("Store is in degraded mode, change kept in memory only")
            return
        try:
            self.repository.save_all(self._state.to_records())
        except StorageUnavailableError as e:
            logger.error(f"Flush to {self.repository.name} store failed: {e}; switching to degraded mode")
            self.degraded = True

    # ------------------------------------------------------------------
    # Access
    # ------------------------------------------------------------------

    @contextmanager
    def read(self) -> Iterator[CrmState]:
        """Yield the live state under the lock. Callers must copy anything they hand out."""
        with self._lock:
            yield self._ensure_loaded()

    @contextmanager
    def transaction(self) -> Iterator[CrmState]:
        """
        Yield the live state for mutation. On success the whole state is flushed
        once, at the outermost transaction, if anything changed; on error it is
        rolled back.
        """
        with self._lock:
            state = self._ensure_loaded()
            snapshot = copy.deepcopy(state)
            self._depth += 1
            try:
                yield state
            except BaseException:
                state.contacts, state.follow_ups, state.settings = (
                    snapshot.contacts, snapshot.follow_ups, snapshot.settings)
                logger.debug("Transaction rolled back")
                raise
            finally:
                self._depth -= 1
            if self._depth == 0 and state != snapshot:
                self._flush()


# =============================================================================
# SINGLETON
# =============================================================================

_store: Optional[Store] = None
_store_lock = threading.Lock()


def build_default_store() -> Store:
    """PostgreSQL when DATABASE_URL is set, JSON files under DATA_DIR otherwise."""
    if config.DATABASE_URL:
        return Store(PostgresRepository(config.DATABASE_URL))
    return Store(JsonFileRepository(config.DATA_DIR))


def get_store() -> Store:
    global _store
    with _store_lock:
        if _store is None:
            _store = build_default_store()
        return _store


def set_store(store: Optional[Store]) -> Optional[Store]:
    """Install a store (tests, embedding hosts). Returns the previous one."""
    global _store
    with _store_lock:
        previous = _store
        _store = store
        return previous
