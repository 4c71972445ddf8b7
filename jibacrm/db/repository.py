"""
Persistent Store backends.

Each backend persists three independently keyed records: the contact list,
the follow-up list and the settings record. ``load()`` returns raw JSON-shaped
values (``None`` for a record that was never written); ``save_all()`` always
overwrites all three. Both raise StorageUnavailableError on any failure so the
Store can fall back to degraded mode.
"""

import json
import logging
import os
import tempfile
from pathlib import Path
from typing import Any, Dict, Optional

from psycopg2.extras import Json

from jibacrm.db.connection import get_db_cursor
from jibacrm.errors import StorageUnavailableError

logger = logging.getLogger(__name__)

KEY_CONTACTS = 'contacts'
KEY_FOLLOW_UPS = 'followUps'
KEY_SETTINGS = 'settings'
RECORD_KEYS = (KEY_CONTACTS, KEY_FOLLOW_UPS, KEY_SETTINGS)


class Repository:
    """Interface every backend implements."""

    name = 'abstract'

    def load(self) -> Dict[str, Optional[Any]]:
        raise NotImplementedError

    def save_all(self, records: Dict[str, Any]) -> None:
        raise NotImplementedError


class MemoryRepository(Repository):
    """Keeps records in a dict. Used for tests and as the degraded fallback."""

    name = 'memory'

    def __init__(self, records: Optional[Dict[str, Any]] = None):
        self.records: Dict[str, Any] = dict(records or {})
        self.save_count = 0

    def load(self) -> Dict[str, Optional[Any]]:
        # Round-trip through JSON so callers never share objects with us
        return {key: json.loads(json.dumps(self.records[key])) if key in self.records else None
                for key in RECORD_KEYS}

    def save_all(self, records: Dict[str, Any]) -> None:
        self.records = json.loads(json.dumps(records))
        self.save_count += 1


class JsonFileRepository(Repository):
    """
    One JSON file per record inside ``data_dir``:
    contacts.json, followUps.json, settings.json.
    Files are replaced atomically so a crash mid-write leaves the previous version.
    """

    name = 'json'

    def __init__(self, data_dir: Path):
        self.data_dir = Path(data_dir)

    def _path(self, key: str) -> Path:
        return self.data_dir / f"{key}.json"

    def load(self) -> Dict[str, Optional[Any]]:
        records: Dict[str, Optional[Any]] = {}
        for key in RECORD_KEYS:
            path = self._path(key)
            if not path.exists():
                records[key] = None
                continue
            try:
                with open(path, encoding='utf-8') as f:
                    records[key] = json.load(f)
            except (OSError, ValueError) as e:
                raise StorageUnavailableError(f"Cannot read {path}: {e}") from e
        logger.debug(f"Loaded records from {self.data_dir}")
        return records

    def save_all(self, records: Dict[str, Any]) -> None:
        try:
            self.data_dir.mkdir(parents=True, exist_ok=True)
            for key in RECORD_KEYS:
                self._write_atomic(self._path(key), records[key])
        except OSError as e:
            raise StorageUnavailableError(f"Cannot write to {self.data_dir}: {e}") from e

    def _write_atomic(self, path: Path, value: Any) -> None:
        fd, tmp_name = tempfile.mkstemp(dir=self.data_dir, prefix=f".{path.stem}-", suffix='.tmp')
        try:
            with os.fdopen(fd, 'w', encoding='utf-8') as f:
                json.dump(value, f, ensure_ascii=False)
            os.replace(tmp_name, path)
        except BaseException:
            if os.path.exists(tmp_name):
                os.unlink(tmp_name)
            raise


class PostgresRepository(Repository):
    """
    Stores the three records as JSONB rows in a key/value table:

        crm_records(key TEXT PRIMARY KEY, value JSONB NOT NULL, updated_at TIMESTAMPTZ)
    """

    name = 'postgres'

    def __init__(self, database_url: str):
        self.database_url = database_url
        self._table_ready = False

    def _ensure_table(self, cur) -> None:
        if self._table_ready:
            return
        cur.execute("""
            CREATE TABLE IF NOT EXISTS crm_records (
                key TEXT PRIMARY KEY,
                value JSONB NOT NULL,
                updated_at TIMESTAMPTZ NOT NULL DEFAULT NOW()
            )
        """)
        self._table_ready = True

    def load(self) -> Dict[str, Optional[Any]]:
        try:
            with get_db_cursor(self.database_url) as cur:
                self._ensure_table(cur)
                cur.execute("SELECT key, value FROM crm_records WHERE key = ANY(%s)", (list(RECORD_KEYS),))
                rows = cur.fetchall()
        except Exception as e:
            raise StorageUnavailableError(f"Cannot read crm_records: {e}") from e

        found = {row['key']: row['value'] for row in rows}
        logger.debug(f"Loaded {len(found)} records from PostgreSQL")
        return {key: found.get(key) for key in RECORD_KEYS}

    def save_all(self, records: Dict[str, Any]) -> None:
        try:
            with get_db_cursor(self.database_url) as cur:
                self._ensure_table(cur)
                for key in RECORD_KEYS:
                    cur.execute("""
                        INSERT INTO crm_records (key, value, updated_at)
                        VALUES (%s, %s, NOW())
                        ON CONFLICT (key) DO UPDATE
                        SET value = EXCLUDED.value, updated_at = NOW()
                    """, (key, Json(records[key])))
        except Exception as e:
            raise StorageUnavailableError(f"Cannot write crm_records: {e}") from e
