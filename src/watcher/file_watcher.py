"""
Task file watcher: events plus polling, fanned into one debounced reload.

Editors and sync tools save in different ways (in-place writes, atomic
rename-over-target, several writes per save), and some mounts never deliver
filesystem events at all. Three producers therefore feed one queue:

1. a watchdog observer on the containing directory, filtered to the file's
   name (catches rename-over saves that a file watch misses),
2. a watchdog watch on the file itself, where the backend supports it,
3. a polling thread comparing the file's (mtime, size, inode) every
   POLL_INTERVAL seconds.

A single worker drains the queue, waits for DEBOUNCE seconds of quiet, and
calls on_change once if the file's signature actually moved. Each producer
fails on its own; losing all of them only loses live reload.
"""

import logging
import os
import queue
import threading
from pathlib import Path
from typing import Callable, Optional, Tuple

from watchdog.events import FileSystemEvent, FileSystemEventHandler
from watchdog.observers import Observer

log = logging.getLogger(__name__)

_DEFAULT_POLL_INTERVAL = 0.75
_DEFAULT_DEBOUNCE = 0.12

# (mtime_ns, size, inode) or None when the file is missing
Signature = Optional[Tuple[int, int, int]]

_IGNORED_EVENT_TYPES = frozenset({"opened", "closed_no_write"})


def file_signature(path: Path) -> Signature:
    try:
        st = os.stat(path)
    except OSError:
        return None
    return (st.st_mtime_ns, st.st_size, st.st_ino)


class _TargetFileHandler(FileSystemEventHandler):
    """Forwards events that touch the watched file's name."""

    def __init__(self, file_path: Path, notify: Callable[[str], None]) -> None:
        super().__init__()
        self._name = file_path.name
        self._notify = notify

    def on_any_event(self, event: FileSystemEvent) -> None:
        if event.is_directory or event.event_type in _IGNORED_EVENT_TYPES:
            return
        paths = [event.src_path, getattr(event, "dest_path", "")]
        if any(p and os.path.basename(os.fsdecode(p)) == self._name for p in paths):
            self._notify(event.event_type)


class MarkdownWatcher:
    """
    Watches one task file and calls *on_change* once per logical change.

    Usage:
        watcher = MarkdownWatcher(path, on_change=store.reload_external)
        watcher.start()
        ...
        watcher.stop()   # no callback fires after this returns
    """

    def __init__(
        self,
        file_path: Path,
        on_change: Callable[[], None],
        poll_interval: Optional[float] = None,
        debounce: Optional[float] = None,
    ) -> None:
        self._file_path = file_path
        self._on_change = on_change
        self._poll_interval = poll_interval or float(
            os.environ.get("POLL_INTERVAL", _DEFAULT_POLL_INTERVAL)
        )
        self._debounce = debounce or float(
            os.environ.get("DEBOUNCE_SECONDS", _DEFAULT_DEBOUNCE)
        )
        self._events: "queue.Queue[Optional[str]]" = queue.Queue()
        self._stop_event = threading.Event()
        self._sig_lock = threading.Lock()
        self._last_signature: Signature = None
        self._observer: Optional[Observer] = None
        self._poll_thread: Optional[threading.Thread] = None
        self._worker_thread: Optional[threading.Thread] = None
        self.mechanisms: list = []

    @property
    def file_path(self) -> Path:
        return self._file_path

    def start(self) -> None:
        """Start the debounce worker and every watch mechanism that works."""
        log.info("Watching %s", self._file_path)
        self.mark_synced()

        self._worker_thread = threading.Thread(
            target=self._debounce_loop, daemon=True, name="md-watch-debounce"
        )
        self._worker_thread.start()

        self._poll_thread = threading.Thread(
            target=self._poll_loop, daemon=True, name="md-watch-poll"
        )
        self._poll_thread.start()
        self.mechanisms.append("poll")

        self._start_observer()

    def stop(self) -> None:
        """Release every mechanism and wait for the threads to finish."""
        log.info("Stopping watcher for %s", self._file_path)
        self._stop_event.set()

        if self._observer is not None:
            try:
                self._observer.stop()
                self._observer.join(timeout=5)
            except Exception:
                log.exception("Error stopping filesystem observer")
            self._observer = None

        if self._poll_thread:
            self._poll_thread.join(timeout=self._poll_interval + 2)
        self._events.put(None)  # sentinel
        if self._worker_thread:
            self._worker_thread.join(timeout=self._debounce + 2)
        self.mechanisms = []

    def mark_synced(self) -> None:
        """Record the file's current state as already seen (after a local write)."""
        with self._sig_lock:
            self._last_signature = file_signature(self._file_path)

    # ------------------------------------------------------------------
    # Producers
    # ------------------------------------------------------------------

    def _enqueue(self, source: str) -> None:
        if not self._stop_event.is_set():
            self._events.put(source)

    def _start_observer(self) -> None:
        try:
            observer = Observer()
            observer.daemon = True
            observer.start()
        except Exception as e:
            log.warning("Filesystem events unavailable, polling only: %s", e)
            return
        self._observer = observer

        handler = _TargetFileHandler(self._file_path, self._enqueue)
        watches = (
            ("directory", self._file_path.parent),
            ("file", self._file_path),
        )
        for name, target in watches:
            try:
                observer.schedule(handler, str(target), recursive=False)
                self.mechanisms.append(name)
            except Exception as e:
                log.warning("Could not watch %s %s: %s", name, target, e)

    def _poll_loop(self) -> None:
        """Compare the file signature every poll interval until stopped."""
        seen = file_signature(self._file_path)
        while not self._stop_event.is_set():
            self._stop_event.wait(self._poll_interval)
            if self._stop_event.is_set():
                break
            try:
                current = file_signature(self._file_path)
                if current != seen:
                    seen = current
                    self._enqueue("poll")
            except Exception:
                log.exception("Error during poll cycle")

    # ------------------------------------------------------------------
    # Consumer
    # ------------------------------------------------------------------

    def _debounce_loop(self) -> None:
        """Coalesce bursts of events into one on_change call."""
        while True:
            item = self._events.get()
            if item is None:
                return
            # Wait for a quiet period; every new event restarts the window
            while True:
                try:
                    item = self._events.get(timeout=self._debounce)
                except queue.Empty:
                    break
                if item is None:
                    return
            if self._stop_event.is_set():
                return
            self._dispatch()

    def _dispatch(self) -> None:
        with self._sig_lock:
            current = file_signature(self._file_path)
            if current == self._last_signature:
                log.debug("Change event for %s with no new content", self._file_path)
                return
            self._last_signature = current
        log.debug("External change detected: %s", self._file_path)
        try:
            self._on_change()
        except Exception:
            log.exception("Reload after external change failed")
