"""
Task store: the read / mutate / write / watch loop around one markdown file.

Design:
    The file on disk is the only persistent state. Every operation parses a
    fresh Document, applies one mutation from ops.mutations, writes the whole
    file back, then notifies "changed" listeners and re-arms the due-date
    scheduler. The write always lands before listeners run.

    A MarkdownWatcher calls reload_external() when another program edits the
    file; that path emits "changed" and re-arms timers without writing.

All operations acquire _lock (threading.RLock) and keep it through the
"changed" listeners and the reschedule, so the last document written is the
one the timers are armed from. Watcher and timer callbacks run on their own
threads. Change listeners run with _lock held and must not block on another
thread that needs the store.
"""

import logging
import threading
from datetime import date, datetime
from pathlib import Path
from typing import Any, Callable, Dict, List, Mapping, Optional, Tuple

from models.task import DEFAULT_SECTION, Document, Section
from ops.mutations import (
    MutationResult,
    RolloverRecord,
    add_section,
    add_task,
    reorder_task,
    toggle_complete,
    update_task,
)
from parsers.markdown import parse_file, write_file
from scheduler.due_scheduler import DueScheduler
from watcher.file_watcher import MarkdownWatcher

log = logging.getLogger(__name__)

ChangeListener = Callable[[], None]


class StoreNotConfigured(RuntimeError):
    """Raised when a write is attempted with no markdown path set."""


class TaskStore:
    """
    Owns one task file, its watcher, and the due-date scheduler.

    Usage:
        store = TaskStore(path, DueScheduler())
        store.on_changed(lambda: print("re-read"))
        store.start()
        store.add_task("Inbox", "Buy milk")
        ...
        store.stop()
    """

    def __init__(
        self,
        file_path: Optional[Path],
        scheduler: Optional[DueScheduler] = None,
        *,
        notifications_enabled: bool = True,
        notification_time: str = "00:00",
        poll_interval: Optional[float] = None,
        debounce: Optional[float] = None,
        watch: bool = True,
        today: Callable[[], date] = date.today,
    ) -> None:
        self._lock = threading.RLock()
        self._file_path = Path(file_path) if file_path else None
        self._scheduler = scheduler or DueScheduler()
        self._notifications_enabled = notifications_enabled
        self._notification_time = notification_time
        self._poll_interval = poll_interval
        self._debounce = debounce
        self._watch = watch
        self._today = today
        self._listeners: List[ChangeListener] = []
        self._watcher: Optional[MarkdownWatcher] = None
        self._running = False
        self._last_change: Optional[datetime] = None
        # Same-day rollover undo info, keyed by (section, title). Never persisted.
        self._rollovers: Dict[Tuple[str, str], RolloverRecord] = {}

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    @property
    def file_path(self) -> Optional[Path]:
        return self._file_path

    @property
    def scheduler(self) -> DueScheduler:
        return self._scheduler

    @property
    def notifications_enabled(self) -> bool:
        return self._notifications_enabled

    @property
    def notification_time(self) -> str:
        return self._notification_time

    def today(self) -> date:
        return self._today()

    def start(self) -> None:
        """Start watching the file and arm timers for the current content."""
        with self._lock:
            self._running = True
            if self._watcher is None:
                self._start_watcher()
            document = self.read()
            self._reschedule(document)

    def stop(self) -> None:
        """Stop watching and cancel every armed timer."""
        with self._lock:
            self._running = False
        self._stop_watcher()
        self._scheduler.cancel_all()

    def set_path(self, file_path: Optional[Path]) -> None:
        """
        Point the store at a different file.

        The old watcher is fully stopped before the new one starts.
        """
        self._stop_watcher()
        with self._lock:
            self._file_path = Path(file_path) if file_path else None
            self._rollovers.clear()
            log.info("Task file set to %s", self._file_path)
            if self._running:
                self._start_watcher()
            document = self.read()
            self._emit_changed()
            self._reschedule(document)

    def configure_notifications(self, enabled: bool, notification_time: str) -> None:
        """Change notification settings and re-arm timers."""
        with self._lock:
            self._notifications_enabled = enabled
            self._notification_time = notification_time
            document = self.read()
            self._reschedule(document)

    def on_changed(self, listener: ChangeListener) -> None:
        """Register a payload-free "document changed" callback."""
        with self._lock:
            self._listeners.append(listener)

    # ------------------------------------------------------------------
    # Read
    # ------------------------------------------------------------------

    def read(self) -> Document:
        """
        Parse the task file.

        A missing file, or no configured path, reads as an empty Document.
        """
        with self._lock:
            if self._file_path is None:
                return Document()
            try:
                return parse_file(self._file_path)
            except FileNotFoundError:
                return Document()

    def ensure_file(self) -> None:
        """Create the task file with one empty Inbox section if it is missing."""
        with self._lock:
            path = self._require_path()
            if path.exists():
                return
            log.info("Creating task file %s", path)
            write_file(path, Document(sections=[Section(name=DEFAULT_SECTION)]))
            if self._watcher is not None:
                self._watcher.mark_synced()

    # ------------------------------------------------------------------
    # Mutations (write-through to disk)
    # ------------------------------------------------------------------

    def add_section(self, name: str) -> Document:
        return self._mutate(lambda doc: add_section(doc, name))

    def add_task(self, section: str, title: str) -> Document:
        return self._mutate(lambda doc: add_task(doc, section, title))

    def toggle_task(self, section: str, task_id: str) -> Document:
        """
        Toggle a task's user-facing completion state.

        Completing a recurring task rolls its due date forward; toggling it
        back the same day restores the previous due date.
        """
        return self._mutate(lambda doc: self._toggle(doc, section, task_id))

    def update_task(self, section: str, task_id: str, patch: Mapping[str, Any]) -> Document:
        return self._mutate(lambda doc: update_task(doc, section, task_id, patch))

    def reorder_task(self, section: str, from_index: int, to_index: int) -> Document:
        return self._mutate(lambda doc: reorder_task(doc, section, from_index, to_index))

    def _toggle(self, document: Document, section: str, task_id: str) -> MutationResult:
        task = document.find_task(section, task_id)
        if task is None:
            return MutationResult(document)
        key = (section, task.title)
        result = toggle_complete(
            document, section, task_id, self._today(), undo=self._rollovers.get(key)
        )
        if result.rollover is not None:
            self._rollovers[result.rollover.key] = result.rollover
        elif result.changed:
            self._rollovers.pop(key, None)
        return result

    def _mutate(self, operation: Callable[[Document], MutationResult]) -> Document:
        """
        Run one read → mutate → write cycle.

        OSError from the write propagates; nothing is emitted in that case.
        """
        with self._lock:
            path = self._require_path()
            self.ensure_file()
            result = operation(parse_file(path))
            if result.changed:
                write_file(path, result.document)
                self._last_change = datetime.now()
                if self._watcher is not None:
                    self._watcher.mark_synced()
                self._emit_changed()
                self._reschedule(result.document)
        return result.document

    # ------------------------------------------------------------------
    # External changes
    # ------------------------------------------------------------------

    def reload_external(self) -> None:
        """Called by the watcher after another program changed the file."""
        log.info("Task file changed externally: %s", self._file_path)
        with self._lock:
            self._last_change = datetime.now()
            document = self.read()
            self._emit_changed()
            self._reschedule(document)

    # ------------------------------------------------------------------
    # Status / diagnostics
    # ------------------------------------------------------------------

    def status(self) -> dict:
        with self._lock:
            document = self.read()
            return {
                "markdown_path": str(self._file_path) if self._file_path else None,
                "file_exists": bool(self._file_path and self._file_path.exists()),
                "sections": len(document.sections),
                "tasks": len(document.all_tasks()),
                "armed_timers": len(self._scheduler.armed()),
                "notifications_enabled": self._notifications_enabled,
                "notification_time": self._notification_time,
                "watch_mechanisms": list(self._watcher.mechanisms) if self._watcher else [],
                "last_change": self._last_change.isoformat() if self._last_change else None,
            }

    # ------------------------------------------------------------------
    # Internal
    # ------------------------------------------------------------------

    def _require_path(self) -> Path:
        if self._file_path is None:
            raise StoreNotConfigured("No markdown file configured")
        return self._file_path

    def _start_watcher(self) -> None:
        """Caller must hold _lock."""
        if not self._watch or self._file_path is None:
            return
        watcher = MarkdownWatcher(
            self._file_path,
            on_change=lambda: self._on_watcher_change(watcher),
            poll_interval=self._poll_interval,
            debounce=self._debounce,
        )
        self._watcher = watcher
        watcher.start()

    def _stop_watcher(self) -> None:
        """
        Detach and stop the current watcher.

        Must be called without _lock held: stop() joins the watcher's
        threads, which may be waiting on _lock inside a reload.
        """
        with self._lock:
            watcher, self._watcher = self._watcher, None
        if watcher is not None:
            watcher.stop()

    def _on_watcher_change(self, watcher: MarkdownWatcher) -> None:
        with self._lock:
            if watcher is not self._watcher:
                return  # detached by stop() or set_path()
        self.reload_external()

    def _emit_changed(self) -> None:
        with self._lock:
            listeners = list(self._listeners)
        for listener in listeners:
            try:
                listener()
            except Exception:
                log.exception("Change listener failed")

    def _reschedule(self, document: Document) -> None:
        armed = self._scheduler.reschedule_all(
            document, self._notifications_enabled, self._notification_time
        )
        log.debug("Rescheduled due notifications: %d armed", armed)
