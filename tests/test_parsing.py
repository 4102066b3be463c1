from datetime import datetime, timezone

import pytest

from nfc_ips.core.errors import ParseError
from nfc_ips.utils.parsing import (
    epoch_minutes,
    format_date_key,
    format_datetime_with_bullet,
    format_dob_value,
    format_number,
    format_time_only,
    from_epoch_minutes,
    parse_datetime,
    parse_dose,
    parse_float,
    sort_key,
    trim_text,
)


def test_trim_text():
    assert trim_text("  abc ") == "abc"
    assert trim_text("   ") is None
    assert trim_text(None) is None


def test_parse_float_valid():
    assert parse_float("36.5", "BT") == 36.5


def test_parse_float_invalid():
    with pytest.raises(ParseError):
        parse_float("abc", "BT")


def test_parse_dose_numeric_and_text():
    assert parse_dose("10") == 10.0
    assert parse_dose(2.5) == 2.5
    assert parse_dose("two tablets") == "two tablets"
    assert parse_dose("") is None
    assert parse_dose(None) is None


def test_parse_datetime_zulu():
    result = parse_datetime("2024-01-15T14:30:00Z")
    assert result == datetime(2024, 1, 15, 14, 30, tzinfo=timezone.utc)


def test_parse_datetime_invalid():
    assert parse_datetime("yesterday") is None


def test_sort_key_treats_naive_as_utc():
    naive = datetime(2024, 1, 15, 10, 0)
    aware = datetime(2024, 1, 15, 10, 0, tzinfo=timezone.utc)
    assert sort_key(naive) == sort_key(aware)


def test_format_dob_value():
    assert format_dob_value(19900101) == "1990-01-01"
    assert format_dob_value(None) is None


def test_format_dates():
    value = datetime(2024, 1, 5, 9, 7)
    assert format_date_key(value) == "5 Jan 24"
    assert format_time_only(value) == "09:07"
    assert format_datetime_with_bullet(value) == "5 Jan 24 • 09:07"


def test_format_number():
    assert format_number(120.0) == "120"
    assert format_number(36.6) == "36.6"
    assert format_number(7) == "7"


def test_epoch_minutes_round_trip():
    value = datetime(2024, 1, 15, 10, 0, tzinfo=timezone.utc)
    assert from_epoch_minutes(epoch_minutes(value)) == value
