"""
Date and time-of-day helpers.

Pure functions, no I/O. Dates on disk are strict ISO ``YYYY-MM-DD``; the
daily notification time is ``HH:MM`` in local time.
"""

import re
from datetime import date, datetime, time
from typing import Optional, Tuple

_ISO_DATE = re.compile(r"^[0-9]{4}-[0-9]{2}-[0-9]{2}$")
_HHMM = re.compile(r"^([0-9]{2}):([0-9]{2})$")


def parse_iso_date(value: str) -> Optional[date]:
    """
    Parse a strict ``YYYY-MM-DD`` string.

    Returns None for anything else, including well-shaped strings that are
    not real calendar dates ("2025-02-30").
    """
    if not _ISO_DATE.match(value):
        return None
    try:
        return datetime.strptime(value, "%Y-%m-%d").date()
    except ValueError:
        return None


def parse_hhmm(value: str) -> Tuple[int, int]:
    """
    Parse ``HH:MM`` into (hour, minute).

    Malformed input means midnight; out-of-range parts are clamped.
    """
    m = _HHMM.match(value or "")
    if not m:
        return 0, 0
    hour = min(23, max(0, int(m.group(1))))
    minute = min(59, max(0, int(m.group(2))))
    return hour, minute


def is_hhmm(value: str) -> bool:
    """True if *value* has the ``HH:MM`` shape (range is not checked)."""
    return bool(_HHMM.match(value or ""))


def fire_time_on(day: date, hhmm: str) -> datetime:
    """Return the naive local datetime for *day* at *hhmm*."""
    hour, minute = parse_hhmm(hhmm)
    return datetime.combine(day, time(hour, minute))


def describe_recur_state(
    due: Optional[date], last_done: Optional[date], today: date
) -> str:
    """
    Short status for a recurring task, e.g. "done today", "3d overdue", "Jun 21".
    """
    if last_done == today:
        return "done today"
    if due is not None:
        diff = (due - today).days
        if diff < 0:
            return f"{-diff}d overdue"
        if diff == 0:
            return "due today"
        if diff == 1:
            return "tomorrow"
        return f"{due:%b} {due.day}"
    if last_done is not None:
        return f"done {last_done:%b} {last_done.day}"
    return ""
