"""
Tests for watcher/file_watcher.py.

These start real threads with short intervals and wait with a bounded loop.

Covers:
- file_signature for present / missing files
- an external write produces exactly one on_change
- a burst of events coalesces into one on_change
- events with no new content (after mark_synced) are dropped
- nothing fires after stop()
"""

import sys
import time
from pathlib import Path

sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

import pytest

from watcher.file_watcher import MarkdownWatcher, file_signature


def _wait_for(predicate, timeout: float = 5.0) -> bool:
    deadline = time.monotonic() + timeout
    while time.monotonic() < deadline:
        if predicate():
            return True
        time.sleep(0.02)
    return predicate()


@pytest.fixture
def md_file(tmp_path) -> Path:
    path = tmp_path / "tasks.md"
    path.write_text("## Inbox\n", encoding="utf-8")
    return path


@pytest.fixture
def watcher_factory():
    started = []

    def make(path, calls, **kwargs):
        kwargs.setdefault("poll_interval", 0.05)
        kwargs.setdefault("debounce", 0.15)
        watcher = MarkdownWatcher(path, on_change=lambda: calls.append(1), **kwargs)
        started.append(watcher)
        return watcher

    yield make
    for watcher in started:
        watcher.stop()


class TestFileSignature:
    def test_missing_file(self, tmp_path):
        assert file_signature(tmp_path / "nope.md") is None

    def test_signature_changes_with_content(self, md_file):
        before = file_signature(md_file)
        md_file.write_text("## Inbox\n- [ ] New task\n", encoding="utf-8")
        assert file_signature(md_file) != before


class TestMarkdownWatcher:
    def test_poll_is_always_a_mechanism(self, md_file, watcher_factory):
        watcher = watcher_factory(md_file, [])
        watcher.start()
        assert "poll" in watcher.mechanisms
        assert watcher.file_path == md_file

    def test_external_write_fires_once(self, md_file, watcher_factory):
        calls = []
        watcher = watcher_factory(md_file, calls)
        watcher.start()

        md_file.write_text("## Inbox\n- [ ] Edited elsewhere\n", encoding="utf-8")
        assert _wait_for(lambda: calls)
        time.sleep(0.5)
        assert calls == [1]

    def test_rename_over_target_fires(self, md_file, watcher_factory, tmp_path):
        calls = []
        watcher = watcher_factory(md_file, calls)
        watcher.start()

        staging = tmp_path / "tasks.md.tmp"
        staging.write_text("## Renamed in\n", encoding="utf-8")
        staging.replace(md_file)
        assert _wait_for(lambda: calls)

    def test_burst_coalesces(self, md_file, watcher_factory):
        calls = []
        watcher = watcher_factory(md_file, calls, debounce=0.3)
        watcher.start()

        for i in range(5):
            md_file.write_text(f"## Inbox\n- [ ] Save {i}\n", encoding="utf-8")
            time.sleep(0.02)
        assert _wait_for(lambda: calls)
        time.sleep(0.6)
        assert calls == [1]

    def test_synced_change_is_dropped(self, md_file, watcher_factory):
        calls = []
        watcher = watcher_factory(md_file, calls)
        watcher.start()

        md_file.write_text("## Inbox\n- [ ] Written locally\n", encoding="utf-8")
        watcher.mark_synced()
        time.sleep(0.6)
        assert calls == []

    def test_spurious_event_without_change_is_dropped(self, md_file, watcher_factory):
        calls = []
        watcher = watcher_factory(md_file, calls)
        watcher.start()

        watcher._enqueue("test")
        watcher._enqueue("test")
        time.sleep(0.5)
        assert calls == []

    def test_delete_fires(self, md_file, watcher_factory):
        calls = []
        watcher = watcher_factory(md_file, calls)
        watcher.start()

        md_file.unlink()
        assert _wait_for(lambda: calls)

    def test_no_callback_after_stop(self, md_file, watcher_factory):
        calls = []
        watcher = watcher_factory(md_file, calls)
        watcher.start()
        watcher.stop()

        md_file.write_text("## Inbox\n- [ ] After stop\n", encoding="utf-8")
        time.sleep(0.5)
        assert calls == []
        assert watcher.mechanisms == []

    def test_on_change_error_keeps_watching(self, md_file, watcher_factory):
        calls = []

        def flaky():
            calls.append(1)
            if len(calls) == 1:
                raise RuntimeError("reload failed")

        watcher = MarkdownWatcher(md_file, on_change=flaky, poll_interval=0.05, debounce=0.1)
        watcher.start()
        try:
            md_file.write_text("## One\n", encoding="utf-8")
            assert _wait_for(lambda: len(calls) == 1)
            time.sleep(0.3)
            md_file.write_text("## Two, longer\n", encoding="utf-8")
            assert _wait_for(lambda: len(calls) == 2)
        finally:
            watcher.stop()
