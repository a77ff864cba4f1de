"""
Date helpers shared by waybill, payment and inventory processing.

Dates are compared as zero-padded YYYY-MM-DD strings, so every parser here
normalises into that shape.
"""

from __future__ import annotations

import re
from datetime import date, datetime, timedelta
from typing import Any, Optional

# Serial 25569 is 1970-01-01 in the spreadsheet 1900 date system
EXCEL_EPOCH_SERIAL = 25569

_MDY_RE = re.compile(r"^(\d{1,2})/(\d{1,2})/(\d{4})$")
_YMD_RE = re.compile(r"^(\d{4})[-/](\d{1,2})[-/](\d{1,2})$")
_ISO_DATE_RE = re.compile(r"^\d{4}-\d{2}-\d{2}$")


def _fmt(y: int, m: int, d: int) -> Optional[str]:
    try:
        return date(y, m, d).isoformat()
    except ValueError:
        return None


def _from_datetime(value: datetime) -> str:
    # calendar date as written, offset ignored
    return value.date().isoformat()


def parse_excel_date(value: Any) -> Optional[str]:
    """
    Normalise a spreadsheet or API date value to YYYY-MM-DD.

    Accepts serial numbers, M/D/YYYY and YYYY-M-D strings, ISO datetimes
    and date objects. Returns None for blanks and anything unparseable.
    """
    if value is None or isinstance(value, bool):
        return None

    if isinstance(value, datetime):
        return _from_datetime(value)
    if isinstance(value, date):
        return value.isoformat()

    if isinstance(value, (int, float)):
        try:
            parsed = datetime(1970, 1, 1) + timedelta(days=float(value) - EXCEL_EPOCH_SERIAL)
        except (OverflowError, ValueError):
            return None
        return parsed.date().isoformat()

    text = str(value).strip()
    if not text:
        return None

    mdy = _MDY_RE.match(text)
    if mdy:
        mm, dd, yy = mdy.groups()
        return _fmt(int(yy), int(mm), int(dd))

    ymd = _YMD_RE.match(text)
    if ymd:
        yy, mm, dd = ymd.groups()
        return _fmt(int(yy), int(mm), int(dd))

    try:
        return _from_datetime(datetime.fromisoformat(text.replace("Z", "+00:00")))
    except ValueError:
        pass

    # "2025-5-1 10:00" or "5/1/2025T10:00": retry on the date part alone
    for sep in ("T", " "):
        if sep in text:
            return parse_excel_date(text.split(sep, 1)[0])
    return None


def normalize_date(value: Any) -> Optional[str]:
    if isinstance(value, str) and _ISO_DATE_RE.match(value):
        return value
    return parse_excel_date(value)


def is_after_cutoff(value: Any, cutoff: str) -> bool:
    """True when the value's calendar date is strictly after `cutoff`."""
    normalized = normalize_date(value)
    if not normalized:
        return False
    return normalized > cutoff


def to_date(value: Any) -> date:
    """Parse a request date, raising ValueError when it cannot be read."""
    normalized = normalize_date(value)
    if not normalized:
        raise ValueError(f"Invalid date: {value!r}")
    return date.fromisoformat(normalized)


def format_end_date(value: Any) -> str:
    """Exclusive end bound for an inclusive end date (next calendar day)."""
    if value is None or value == "":
        return ""
    return (to_date(value) + timedelta(days=1)).isoformat()


def validate_date_range(start: Any, end: Any, max_months: int = 12, today: Optional[date] = None) -> bool:
    """
    Raise ValueError unless start <= end, end is not in the future and the
    range spans at most `max_months` calendar months.
    """
    start_date = to_date(start)
    end_date = to_date(end)
    today = today or get_today()

    if start_date > end_date:
        raise ValueError("Start date must be on or before the end date")
    if end_date > today:
        raise ValueError("End date cannot be in the future")

    months = (end_date.year - start_date.year) * 12 + (end_date.month - start_date.month)
    if months > max_months:
        raise ValueError(f"Date range must not exceed {max_months} months")
    return True


def get_today() -> date:
    return date.today()


def get_tomorrow() -> date:
    return get_today() + timedelta(days=1)


def normalize_name(name: Any) -> str:
    if name is None:
        return ""
    return str(name).strip().lower()
