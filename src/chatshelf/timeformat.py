"""Clock-time and calendar-day helpers for message display.

All calendar arithmetic happens in local time so that day boundaries follow
the user's wall clock. Timezone-aware inputs are converted to local time;
naive datetimes and naive ISO strings are taken to already be local. Numbers
are POSIX timestamps in seconds.
"""

from __future__ import annotations

from datetime import date, datetime, timedelta
from typing import Any

MONTH_ABBREVIATIONS = (
    "Jan", "Feb", "Mar", "Apr", "May", "Jun",
    "Jul", "Aug", "Sep", "Oct", "Nov", "Dec",
)


def _to_local(point: Any) -> datetime | None:
    """Coerce a datetime, ISO string or POSIX timestamp to local time."""
    if point is None or isinstance(point, bool):
        return None
    if isinstance(point, datetime):
        dt = point
    elif isinstance(point, (int, float)):
        try:
            return datetime.fromtimestamp(point)
        except (OverflowError, OSError, ValueError):
            return None
    elif isinstance(point, str):
        text = point.strip()
        if not text:
            return None
        if text.endswith(("Z", "z")):
            text = text[:-1] + "+00:00"
        try:
            dt = datetime.fromisoformat(text)
        except ValueError:
            return None
    else:
        return None

    if dt.tzinfo is not None:
        dt = dt.astimezone().replace(tzinfo=None)
    return dt


def format_clock_time(point: Any) -> str:
    """Format as ``h:mm AM/PM``; empty string when missing or unparsable."""
    dt = _to_local(point)
    if dt is None:
        return ""
    suffix = "PM" if dt.hour >= 12 else "AM"
    return f"{dt.hour % 12 or 12}:{dt.minute:02d} {suffix}"


def day_bucket_key(point: Any) -> str:
    """Local calendar day as ``YYYY-MM-DD``; empty string when missing or unparsable."""
    dt = _to_local(point)
    if dt is None:
        return ""
    return f"{dt.year:04d}-{dt.month:02d}-{dt.day:02d}"


def divider_label(bucket_key: str, today: date | None = None) -> str:
    """Human label for a day bucket: Today, Yesterday, or ``Mon D, YYYY``."""
    if not bucket_key:
        return ""
    try:
        day = date.fromisoformat(bucket_key)
    except ValueError:
        return ""

    today = today or date.today()
    if day == today:
        return "Today"
    if day == today - timedelta(days=1):
        return "Yesterday"
    return f"{MONTH_ABBREVIATIONS[day.month - 1]} {day.day}, {day.year}"
