"""
Time helpers. All stored timestamps are epoch milliseconds; "local" means
Config.TIMEZONE when set, otherwise the machine's local zone.
"""

import time
from datetime import date, datetime, timedelta, tzinfo
from typing import Optional
from zoneinfo import ZoneInfo

from jibacrm.config import config


def _zone() -> Optional[tzinfo]:
    return ZoneInfo(config.TIMEZONE) if config.TIMEZONE else None


def now_ms() -> int:
    return int(time.time() * 1000)


def to_local(ms: int) -> datetime:
    """Aware datetime for an epoch-ms timestamp in the configured zone."""
    return datetime.fromtimestamp(ms / 1000, tz=_zone()).astimezone(_zone())


def local_date(ms: int) -> date:
    return to_local(ms).date()


def local_midnight(day: date) -> int:
    """Epoch ms of 00:00 local time on the given calendar day."""
    midnight = datetime(day.year, day.month, day.day)
    zone = _zone()
    if zone is not None:
        midnight = midnight.replace(tzinfo=zone)
    return int(midnight.timestamp() * 1000)


def midnight_in_days(days: int, now: Optional[int] = None) -> int:
    """Local midnight today plus ``days`` calendar days."""
    today = local_date(now if now is not None else now_ms())
    return local_midnight(today + timedelta(days=days))


def same_local_day(a: int, b: int) -> bool:
    return local_date(a) == local_date(b)


def format_timestamp(ms: int) -> str:
    return to_local(ms).strftime('%Y-%m-%d %H:%M:%S')
