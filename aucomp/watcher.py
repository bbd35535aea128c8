"""File system watcher for aucomp.

Uses the watchdog library to monitor the input folder.  Any change
marks the tree dirty; once no further events have arrived for the
configured quiet period, the sync callback runs.  Syncs run on the
tracker thread one at a time, so they never overlap.
"""

from __future__ import annotations

import logging
import os
import threading
import time
from collections.abc import Callable, Iterable
from typing import Any

from watchdog.events import FileSystemEvent, FileSystemEventHandler
from watchdog.observers import Observer

logger = logging.getLogger(__name__)


class _QuietPeriodTracker:
    """Fires a callback once the tree has been quiet for a given duration."""

    def __init__(
        self,
        stable_seconds: float,
        on_quiet: Callable[[], None],
        poll_interval: float = 1.0,
    ):
        self._stable_seconds = stable_seconds
        self._on_quiet = on_quiet
        self._poll_interval = poll_interval
        self._last_event: float | None = None
        self._lock = threading.Lock()
        self._stop = threading.Event()
        self._thread = threading.Thread(
            target=self._poll, daemon=True, name="QuietPeriodTracker"
        )

    @property
    def stable_seconds(self) -> float:
        return self._stable_seconds

    @stable_seconds.setter
    def stable_seconds(self, value: float) -> None:
        self._stable_seconds = max(0, value)

    @property
    def pending(self) -> bool:
        with self._lock:
            return self._last_event is not None

    def start(self) -> None:
        self._stop.clear()
        self._thread = threading.Thread(
            target=self._poll, daemon=True, name="QuietPeriodTracker"
        )
        self._thread.start()

    def stop(self) -> None:
        self._stop.set()

    def join(self, timeout: float | None = None) -> None:
        if self._thread.is_alive() and self._thread is not threading.current_thread():
            self._thread.join(timeout)

    def touch(self) -> None:
        """Record that something changed just now."""
        with self._lock:
            self._last_event = time.monotonic()

    def _poll(self) -> None:
        while not self._stop.is_set():
            fire = False
            with self._lock:
                if (
                    self._last_event is not None
                    and time.monotonic() - self._last_event >= self._stable_seconds
                ):
                    self._last_event = None
                    fire = True

            if fire:
                logger.info("Input folder settled; starting sync.")
                try:
                    self._on_quiet()
                except Exception:
                    logger.exception("Sync triggered by watcher failed")

            self._stop.wait(timeout=self._poll_interval)


class ChangeHandler(FileSystemEventHandler):
    """Watchdog handler that reports every file change to the tracker."""

    def __init__(self, tracker: _QuietPeriodTracker, exclude: Iterable[str] = ()):
        super().__init__()
        self._tracker = tracker
        self._exclude = [os.path.normcase(os.path.abspath(p)) for p in exclude]

    def _is_excluded(self, path: str) -> bool:
        path = os.path.normcase(os.path.abspath(path))
        return any(path == ex or path.startswith(ex + os.sep) for ex in self._exclude)

    def on_any_event(self, event: FileSystemEvent) -> None:
        if event.is_directory or event.event_type in ("opened", "closed", "closed_no_write"):
            return
        paths = [os.fsdecode(event.src_path)]
        dest = getattr(event, "dest_path", "")
        if dest:
            paths.append(os.fsdecode(dest))
        if all(self._is_excluded(p) for p in paths):
            return
        logger.debug("Change detected: %s %s", event.event_type, paths[0])
        self._tracker.touch()


class FolderWatcher:
    """High-level watcher that combines watchdog + quiet-period tracking.

    Usage:
        watcher = FolderWatcher(source, on_change, stable_seconds=10)
        watcher.start()
        ...
        watcher.stop()
    """

    def __init__(
        self,
        source_folder: str,
        on_change: Callable[[], None],
        stable_seconds: float = 10,
        exclude: Iterable[str] = (),
        poll_interval: float = 1.0,
    ):
        """Create a new folder watcher."""
        self.source_folder = source_folder
        self._tracker = _QuietPeriodTracker(stable_seconds, on_change, poll_interval)
        self._handler = ChangeHandler(self._tracker, exclude)
        self._observer: Any | None = None

    # ---- lifecycle ----

    def start(self) -> None:
        """Start watching the source folder."""
        if not os.path.isdir(self.source_folder):
            logger.error("Source folder does not exist: %s", self.source_folder)
            raise FileNotFoundError(
                f"Source folder does not exist: {self.source_folder}"
            )

        observer = Observer()
        self._observer = observer
        observer.schedule(self._handler, self.source_folder, recursive=True)
        observer.start()
        self._tracker.start()
        logger.info(
            "Watching '%s' (quiet period %ss)",
            self.source_folder,
            self._tracker.stable_seconds,
        )

    def stop(self) -> None:
        """Stop watching and wait for a sync in progress to finish."""
        if self._observer:
            self._observer.stop()
            self._observer.join(timeout=5)
            self._observer = None
        self._tracker.stop()
        self._tracker.join()
        logger.info("Watcher stopped.")
