"""
PostgreSQL plumbing for PostgresRepository.

Every load or save of the crm_records table opens its own short-lived
connection: the store flushes whole records at the end of a transaction,
so there is no pool to manage.

    with get_db_cursor(url) as cur:
        cur.execute("INSERT INTO crm_records (key, value) VALUES (%s, %s) "
                    "ON CONFLICT (key) DO UPDATE SET value = EXCLUDED.value",
                    ("settings", Json(settings)))
"""

import psycopg2
from psycopg2.extras import RealDictCursor
from contextlib import contextmanager
import logging

logger = logging.getLogger(__name__)

# An unreachable server should put the store into degraded mode quickly
CONNECT_TIMEOUT_SECONDS = 5


@contextmanager
def get_db_connection(database_url: str):
    """Connection that commits when the block exits cleanly and rolls back when it raises."""
    conn = None
    try:
        conn = psycopg2.connect(database_url, connect_timeout=CONNECT_TIMEOUT_SECONDS)
        yield conn
        conn.commit()
        logger.debug("crm_records write committed")
    except Exception as e:
        if conn:
            conn.rollback()
            logger.error(f"crm_records transaction rolled back: {e}")
        raise
    finally:
        if conn:
            conn.close()


@contextmanager
def get_db_cursor(database_url: str, dict_cursor: bool = True):
    """Cursor over a fresh connection. Rows come back as dicts unless dict_cursor=False."""
    with get_db_connection(database_url) as conn:
        cur = conn.cursor(cursor_factory=RealDictCursor if dict_cursor else None)
        try:
            yield cur
        finally:
            cur.close()
