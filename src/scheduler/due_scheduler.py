"""
Due-date notification scheduler.

One DueScheduler owns the set of armed timers. reschedule_all() always
starts from a clean slate: it cancels every armed timer, then arms one
one-shot timer per open task whose due date at the configured daily time
lies in the future. Past-due tasks are skipped; there is no backlog firing.
Due times further out than threading.TIMEOUT_MAX are skipped too.

Timers run on their own threads. A timer that was cancelled while its
callback was already starting is recognised by its generation number and
does nothing.
"""

import logging
import threading
from dataclasses import dataclass
from datetime import date, datetime
from typing import Callable, Dict, List, Optional, Tuple

from models.task import Document
from utils.dates import fire_time_on

log = logging.getLogger(__name__)

# (section, title, due, fire_time)
TimerKey = Tuple[str, str, date, str]


@dataclass(frozen=True)
class DueNotification:
    """Emitted when a task's due time arrives."""

    title: str
    section: str


DueListener = Callable[[DueNotification], None]


class DueScheduler:
    """
    Owns the armed due-date timers for one task store.

    Usage:
        scheduler = DueScheduler()
        scheduler.on_due(lambda n: print(n.title))
        scheduler.reschedule_all(document, enabled=True, fire_time="09:00")
        ...
        scheduler.cancel_all()
    """

    def __init__(
        self,
        timer_factory: Callable[..., threading.Timer] = threading.Timer,
        clock: Callable[[], datetime] = datetime.now,
    ) -> None:
        self._timer_factory = timer_factory
        self._clock = clock
        self._lock = threading.RLock()
        self._timers: Dict[TimerKey, threading.Timer] = {}
        self._listeners: List[DueListener] = []
        self._generation = 0

    def on_due(self, listener: DueListener) -> None:
        """Register a callback for due notifications."""
        with self._lock:
            self._listeners.append(listener)

    def armed(self) -> List[TimerKey]:
        """Keys of all currently armed timers, sorted."""
        with self._lock:
            return sorted(self._timers)

    def cancel_all(self) -> None:
        """Cancel every armed timer."""
        with self._lock:
            self._cancel_locked()

    def reschedule_all(
        self,
        document: Document,
        enabled: bool,
        fire_time: str,
        now: Optional[datetime] = None,
    ) -> int:
        """
        Replace all armed timers with ones derived from *document*.

        Returns the number of timers armed.
        """
        with self._lock:
            self._cancel_locked()
            if not enabled:
                log.debug("Notifications disabled; no timers armed")
                return 0

            now = now or self._clock()
            generation = self._generation
            for section, task in document.all_tasks():
                if task.done or task.due is None:
                    continue
                delay = (fire_time_on(task.due, fire_time) - now).total_seconds()
                if delay <= 0:
                    continue
                if delay > threading.TIMEOUT_MAX:
                    log.debug("Due date for %r too far out to arm", task.title)
                    continue
                key: TimerKey = (section.name, task.title, task.due, fire_time)
                if key in self._timers:
                    continue
                timer = self._timer_factory(delay, self._fire, args=(key, generation))
                timer.daemon = True
                timer.start()
                self._timers[key] = timer
                log.debug("Armed due timer for %r in %.0fs", task.title, delay)

            return len(self._timers)

    # ------------------------------------------------------------------
    # Internal
    # ------------------------------------------------------------------

    def _cancel_locked(self) -> None:
        for timer in self._timers.values():
            timer.cancel()
        self._timers.clear()
        self._generation += 1

    def _fire(self, key: TimerKey, generation: int) -> None:
        with self._lock:
            if generation != self._generation or key not in self._timers:
                return
            del self._timers[key]
            listeners = list(self._listeners)

        section, title = key[0], key[1]
        notification = DueNotification(title=title, section=section)
        log.info("Task due: %s (%s)", title, section)
        for listener in listeners:
            try:
                listener(notification)
            except Exception:
                log.exception("Due listener failed for %r", title)
