"""
Unit tests for the time helpers (jibacrm/engine/clock.py).
conftest pins the local zone to UTC; a few tests switch to another zone.
"""

from datetime import date, datetime, timezone
from unittest.mock import patch

from jibacrm.config import config
from jibacrm.engine.clock import (
    format_timestamp, local_date, local_midnight, midnight_in_days, now_ms, same_local_day,
)

DAY = 24 * 60 * 60 * 1000


def _utc_ms(*args):
    return int(datetime(*args, tzinfo=timezone.utc).timestamp() * 1000)


def test_now_ms_is_epoch_milliseconds():
    assert now_ms() > _utc_ms(2020, 1, 1)


def test_local_midnight_utc():
    assert local_midnight(date(2026, 3, 10)) == _utc_ms(2026, 3, 10)


def test_midnight_in_days(now):
    assert midnight_in_days(0, now) == _utc_ms(2026, 3, 10)
    assert midnight_in_days(7, now) == _utc_ms(2026, 3, 17)


def test_same_local_day(now):
    assert same_local_day(now, _utc_ms(2026, 3, 10, 23, 59))
    assert not same_local_day(now, _utc_ms(2026, 3, 11, 0, 0))


def test_day_boundary_follows_configured_zone():
    late_evening_ny = _utc_ms(2026, 3, 11, 2, 0)  # 22:00 on the 10th in New York
    with patch.object(config, 'TIMEZONE', 'America/New_York'):
        assert local_date(late_evening_ny) == date(2026, 3, 10)
        assert local_midnight(date(2026, 3, 10)) == _utc_ms(2026, 3, 10, 4, 0)
    assert local_date(late_evening_ny) == date(2026, 3, 11)


def test_midnight_across_daylight_saving_change():
    with patch.object(config, 'TIMEZONE', 'America/New_York'):
        before = local_midnight(date(2026, 3, 7))
        after = local_midnight(date(2026, 3, 9))
    assert after - before == 2 * DAY - 60 * 60 * 1000


def test_format_timestamp(now):
    assert format_timestamp(now) == '2026-03-10 12:00:00'
