from datetime import date, datetime

import pytest

from rsge_bridge.waybills.dates import (
    format_end_date,
    is_after_cutoff,
    normalize_date,
    parse_excel_date,
    to_date,
    validate_date_range,
)


@pytest.mark.parametrize(
    "value, expected",
    [
        (45778, "2025-05-01"),
        (45778.75, "2025-05-01"),
        ("5/1/2025", "2025-05-01"),
        ("2025-5-1", "2025-05-01"),
        ("2025/05/01", "2025-05-01"),
        ("2025-05-01T10:00:00", "2025-05-01"),
        ("2025-05-01T23:30:00+04:00", "2025-05-01"),
        ("2025-05-01 08:15", "2025-05-01"),
        (datetime(2025, 5, 1, 12, 30), "2025-05-01"),
        (date(2025, 5, 1), "2025-05-01"),
    ],
)
def test_parse_excel_date_accepts_known_shapes(value, expected):
    assert parse_excel_date(value) == expected


@pytest.mark.parametrize("value", [None, "", "   ", "garbage", "13/45/2025", True])
def test_parse_excel_date_rejects_unreadable_values(value):
    assert parse_excel_date(value) is None


def test_normalize_date_keeps_iso_dates():
    assert normalize_date("2025-05-01") == "2025-05-01"
    assert normalize_date("5/1/2025") == "2025-05-01"


def test_is_after_cutoff_is_strict():
    assert not is_after_cutoff("2025-04-29", "2025-04-29")
    assert is_after_cutoff("2025-04-30T00:00:00", "2025-04-29")
    assert not is_after_cutoff("2025-04-28", "2025-04-29")
    assert not is_after_cutoff(None, "2025-04-29")


def test_offset_datetimes_keep_their_written_date():
    assert parse_excel_date("2024-04-30T01:00:00+04:00") == "2024-04-30"
    assert is_after_cutoff("2024-04-30T01:00:00+04:00", "2024-04-29")


def test_format_end_date_is_next_day():
    assert format_end_date("2025-05-31") == "2025-06-01"
    assert format_end_date("2024-12-31") == "2025-01-01"
    assert format_end_date("") == ""


def test_to_date_rejects_garbage():
    assert to_date("2025-05-01") == date(2025, 5, 1)
    with pytest.raises(ValueError):
        to_date("yesterday")


def test_validate_date_range():
    today = date(2025, 12, 31)
    assert validate_date_range("2025-01-01", "2025-12-31", today=today)

    with pytest.raises(ValueError, match="on or before"):
        validate_date_range("2025-05-02", "2025-05-01", today=today)
    with pytest.raises(ValueError, match="future"):
        validate_date_range("2025-05-01", "2026-01-01", today=today)
    with pytest.raises(ValueError, match="12 months"):
        validate_date_range("2024-01-01", "2025-02-01", today=today)
