"""
Calendar date parsing and arithmetic.

Legs are whole-day ranges with inclusive bounds and no time-of-day, so everything here
works on `datetime.date` and never on timestamps (no timezone drift, no NaN comparisons).
"""

from __future__ import annotations

from datetime import date, datetime, timedelta


def parse_date(value: str | date | datetime) -> date:
    """Parse an ISO-8601 calendar date.

    Notes:
    - Accepts `date` objects as-is and truncates `datetime` values to their date.
    - Accepts full ISO datetimes (e.g. `2025-03-01T00:00:00Z`) and keeps the date part.
    """
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    text = str(value).strip()
    if not text:
        raise ValueError("empty date")
    if "T" in text:
        text = text.split("T", 1)[0]
    return date.fromisoformat(text)


def inclusive_days(start: date, end: date) -> int:
    """Length of an inclusive `[start, end]` range in days."""
    return (end - start).days + 1


def centered_window(center: date, days: int) -> tuple[date, date]:
    """Return an inclusive window of `days` days centered on `center`."""
    n = max(1, int(days))
    before = (n - 1) // 2
    start = center - timedelta(days=before)
    return start, start + timedelta(days=n - 1)
