"""Tests for watch mode."""

import threading
import time

import pytest
from watchdog.events import DirModifiedEvent, FileCreatedEvent, FileModifiedEvent, FileMovedEvent

from aucomp.watcher import ChangeHandler, FolderWatcher, _QuietPeriodTracker


class _Recorder:
    def __init__(self):
        self.touched = 0

    def touch(self):
        self.touched += 1


class TestChangeHandler:

    def test_file_events_touch(self, tmp_path):
        rec = _Recorder()
        handler = ChangeHandler(rec)
        handler.dispatch(FileCreatedEvent(str(tmp_path / "a.mp3")))
        handler.dispatch(FileModifiedEvent(str(tmp_path / "a.mp3")))
        assert rec.touched == 2

    def test_directory_events_ignored(self, tmp_path):
        rec = _Recorder()
        ChangeHandler(rec).dispatch(DirModifiedEvent(str(tmp_path)))
        assert rec.touched == 0

    def test_excluded_tree_ignored(self, tmp_path):
        rec = _Recorder()
        out = tmp_path / "out"
        handler = ChangeHandler(rec, exclude=[str(out)])
        handler.dispatch(FileModifiedEvent(str(out / "a.mp3")))
        assert rec.touched == 0
        # Moving a file out of the excluded tree still counts
        handler.dispatch(FileMovedEvent(str(out / "a.mp3"), str(tmp_path / "a.mp3")))
        assert rec.touched == 1


class TestQuietPeriodTracker:

    def test_fires_once_after_quiet(self):
        fired = threading.Event()
        count = []

        def on_quiet():
            count.append(1)
            fired.set()

        tracker = _QuietPeriodTracker(0, on_quiet, poll_interval=0.01)
        tracker.touch()
        tracker.touch()
        tracker.start()
        try:
            assert fired.wait(5)
        finally:
            tracker.stop()
            tracker.join(5)
        assert count == [1]
        assert not tracker.pending

    def test_callback_error_does_not_kill_thread(self):
        first = threading.Event()
        second = threading.Event()

        def on_quiet():
            if not first.is_set():
                first.set()
                raise RuntimeError("sync failed")
            second.set()

        tracker = _QuietPeriodTracker(0, on_quiet, poll_interval=0.01)
        tracker.start()
        try:
            tracker.touch()
            assert first.wait(5)
            tracker.touch()
            assert second.wait(5)
        finally:
            tracker.stop()
            tracker.join(5)


class TestFolderWatcher:

    def test_missing_folder(self, tmp_path):
        watcher = FolderWatcher(str(tmp_path / "nope"), on_change=lambda: None)
        with pytest.raises(FileNotFoundError):
            watcher.start()

    def test_stop_waits_for_running_sync(self, tmp_path):
        started = threading.Event()
        done = threading.Event()

        def on_change():
            started.set()
            time.sleep(0.2)
            done.set()

        watcher = FolderWatcher(str(tmp_path), on_change, stable_seconds=0, poll_interval=0.01)
        watcher.start()
        watcher._tracker.touch()
        assert started.wait(5)
        watcher.stop()
        assert done.is_set()

    def test_stop_without_start(self, tmp_path):
        FolderWatcher(str(tmp_path), on_change=lambda: None).stop()
