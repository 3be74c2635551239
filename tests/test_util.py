from datetime import date, datetime, timezone

import pytest

from limitless_sync.errors import ConfigError
from limitless_sync.util import format_timestamp, iter_days, parse_date, parse_timestamp


@pytest.mark.parametrize("raw,expected", [
    ("2024-06-01T15:30:00Z", datetime(2024, 6, 1, 15, 30, tzinfo=timezone.utc)),
    ("2024-06-01T15:30:00", datetime(2024, 6, 1, 15, 30, tzinfo=timezone.utc)),
    ("2024-06-01T15:30:00.5Z", datetime(2024, 6, 1, 15, 30, 0, 500000, tzinfo=timezone.utc)),
    ("2024-06-01T15:30:00.12345Z", datetime(2024, 6, 1, 15, 30, 0, 123450, tzinfo=timezone.utc)),
    ("2024-06-01T15:30:00.123456789Z", datetime(2024, 6, 1, 15, 30, 0, 123456, tzinfo=timezone.utc)),
    ("2024-06-01T10:30:00.1-05:00", datetime(2024, 6, 1, 15, 30, 0, 100000, tzinfo=timezone.utc)),
])
def test_parse_timestamp(raw, expected):
    assert parse_timestamp(raw) == expected


@pytest.mark.parametrize("raw", [None, "", "yesterday", "2024-13-01T00:00:00Z"])
def test_parse_timestamp_unparseable(raw):
    assert parse_timestamp(raw) is None


def test_format_timestamp_is_utc_z():
    dt = datetime(2024, 6, 1, 10, 30, tzinfo=timezone.utc)
    assert format_timestamp(dt) == "2024-06-01T10:30:00Z"


def test_parse_date():
    assert parse_date(" 2024-06-01 ") == date(2024, 6, 1)
    with pytest.raises(ConfigError):
        parse_date("06/01/2024")


def test_iter_days_inclusive():
    assert list(iter_days(date(2024, 2, 28), date(2024, 3, 1))) == [
        date(2024, 2, 28), date(2024, 2, 29), date(2024, 3, 1)]
    assert list(iter_days(date(2024, 3, 2), date(2024, 3, 1))) == []
