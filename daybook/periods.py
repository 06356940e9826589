"""
Calendar bucket arithmetic for summary period keys.

- daily:   YYYY-MM-DD
- weekly:  YYYY-Www (ISO-8601 week, Monday start; week 1 contains Jan 4th)
- monthly: YYYY-MM
"""

import re
from datetime import date, datetime, timedelta

DAILY = "daily"
WEEKLY = "weekly"
MONTHLY = "monthly"
SUMMARY_TYPES = (DAILY, WEEKLY, MONTHLY)

_DATE_RE = re.compile(r"^\d{4}-\d{2}-\d{2}$")
_WEEK_RE = re.compile(r"^(\d{4})-W(\d{2})$")
_MONTH_RE = re.compile(r"^(\d{4})-(\d{2})$")


def _as_date(d) -> date:
    if isinstance(d, datetime):
        return d.date()
    return d


def daily_key(d) -> str:
    """Period key of the day containing d."""
    return _as_date(d).isoformat()


def week_key(d) -> str:
    """ISO week key (YYYY-Www) of the week containing d."""
    year, week, _ = _as_date(d).isocalendar()
    return f"{year:04d}-W{week:02d}"


def month_key(d) -> str:
    """Calendar month key (YYYY-MM) of the month containing d."""
    d = _as_date(d)
    return f"{d.year:04d}-{d.month:02d}"


def parse_date(key: str) -> date:
    """Parse a YYYY-MM-DD key."""
    if not _DATE_RE.match(key or ""):
        raise ValueError(f"Invalid date key: {key!r} (expected YYYY-MM-DD)")
    return date.fromisoformat(key)


def parse_week_key(key: str) -> tuple[int, int]:
    """Parse YYYY-Www into (iso_year, iso_week)."""
    m = _WEEK_RE.match(key or "")
    if not m:
        raise ValueError(f"Invalid week key: {key!r} (expected YYYY-Www)")
    return int(m.group(1)), int(m.group(2))


def week_range(key: str) -> tuple[date, date]:
    """Monday and Sunday of an ISO week key."""
    year, week = parse_week_key(key)
    try:
        monday = date.fromisocalendar(year, week, 1)
    except ValueError as e:
        raise ValueError(f"Invalid week key: {key!r} ({e})") from e
    return monday, monday + timedelta(days=6)


def parse_month_key(key: str) -> tuple[int, int]:
    """Parse YYYY-MM into (year, month)."""
    m = _MONTH_RE.match(key or "")
    if not m or not 1 <= int(m.group(2)) <= 12:
        raise ValueError(f"Invalid month key: {key!r} (expected YYYY-MM)")
    return int(m.group(1)), int(m.group(2))


def month_range(key: str) -> tuple[date, date]:
    """First and last day of a month key."""
    year, month = parse_month_key(key)
    first = date(year, month, 1)
    if month == 12:
        next_first = date(year + 1, 1, 1)
    else:
        next_first = date(year, month + 1, 1)
    return first, next_first - timedelta(days=1)


def period_range(summary_type: str, key: str) -> tuple[date, date]:
    """Inclusive (start, end) dates covered by a period key."""
    if summary_type == DAILY:
        d = parse_date(key)
        return d, d
    if summary_type == WEEKLY:
        return week_range(key)
    if summary_type == MONTHLY:
        return month_range(key)
    raise ValueError(f"Unknown summary type: {summary_type!r}")


def period_key(summary_type: str, d) -> str:
    """Period key of the given type that contains d."""
    if summary_type == DAILY:
        return daily_key(d)
    if summary_type == WEEKLY:
        return week_key(d)
    if summary_type == MONTHLY:
        return month_key(d)
    raise ValueError(f"Unknown summary type: {summary_type!r}")


def weeks_overlapping_month(key: str) -> list[str]:
    """ISO week keys with at least one day inside the month, in order."""
    first, last = month_range(key)
    weeks: list[str] = []
    d = first
    while d <= last:
        wk = week_key(d)
        if wk not in weeks:
            weeks.append(wk)
        d += timedelta(days=1)
    return weeks
