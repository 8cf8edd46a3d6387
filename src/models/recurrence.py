"""
Recurrence patterns and due-date advancement.

A pattern is one of ``daily``, ``weekdays``, ``weekly``, ``monthly`` or
``every N days``. ``next_due`` computes the due date that follows an anchor
date when a recurring task is completed.
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from datetime import date, timedelta
from typing import Optional

from dateutil.relativedelta import relativedelta

_EVERY_N_DAYS = re.compile(r"^every ([0-9]+) days$")
_SIMPLE_KINDS = ("daily", "weekdays", "weekly", "monthly")


@dataclass(frozen=True)
class RecurPattern:
    """A parsed recurrence rule. ``interval`` is only meaningful for ``every``."""

    kind: str
    interval: int = 1

    @classmethod
    def parse(cls, text: str) -> Optional[RecurPattern]:
        """Return a pattern for *text*, or None if it is not a valid rule."""
        if text in _SIMPLE_KINDS:
            return cls(kind=text)
        m = _EVERY_N_DAYS.match(text)
        if m:
            n = int(m.group(1))
            if n > 0:
                return cls(kind="every", interval=n)
        return None

    def __str__(self) -> str:
        if self.kind == "every":
            return f"every {self.interval} days"
        return self.kind

    def next_due(self, anchor: date) -> date:
        """Advance *anchor* by one period of this pattern."""
        if self.kind == "daily":
            return anchor + timedelta(days=1)
        if self.kind == "weekdays":
            nxt = anchor + timedelta(days=1)
            while nxt.weekday() >= 5:  # Sat=5, Sun=6
                nxt += timedelta(days=1)
            return nxt
        if self.kind == "weekly":
            return anchor + timedelta(days=7)
        if self.kind == "monthly":
            # relativedelta clamps Jan 31 -> Feb 28/29
            return anchor + relativedelta(months=1)
        return anchor + timedelta(days=self.interval)
