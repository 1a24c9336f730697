"""File system watcher for Relay Watcher.

Runs a backlog pass over the source folder, then uses the watchdog
library to pick up every newly created (or moved-in) file.  Live files
are held in a stability tracker until they stop growing, and only then
handed to the transfer worker.
"""

from __future__ import annotations

import enum
import logging
import stat
import threading
import time
from collections.abc import Callable
from pathlib import Path
from typing import Any

from watchdog.events import (
    DirCreatedEvent,
    DirModifiedEvent,
    DirMovedEvent,
    FileCreatedEvent,
    FileModifiedEvent,
    FileMovedEvent,
    FileSystemEventHandler,
)
from watchdog.observers import Observer

from relay_sync.config import Config
from relay_sync.copier import TransferWorker
from relay_sync.ledger import TransferLedger
from relay_sync.logs import LoggerLike
from relay_sync.scanner import iter_files, list_top_level

logger = logging.getLogger(__name__)


class WatchState(enum.Enum):
    STARTING = "starting"
    BACKFILL_IN_PROGRESS = "backfill"
    WATCHING = "watching"
    STOPPED = "stopped"


class _StabilityTracker:
    """Holds new files back until their size and mtime stop changing."""

    def __init__(
        self,
        stable_seconds: float,
        on_stable: Callable[[Path], Any],
        poll_interval: float = 1.0,
        log: LoggerLike | None = None,
    ):
        self._stable_seconds = max(0.0, stable_seconds)
        self._on_stable = on_stable
        self._poll_interval = poll_interval
        self._log = log or logger
        # path -> (last_change_time, size, mtime_ns)
        self._pending: dict[Path, tuple[float, int, int]] = {}
        self._lock = threading.Lock()
        self._stop = threading.Event()
        self._thread: threading.Thread | None = None

    @property
    def stable_seconds(self) -> float:
        return self._stable_seconds

    def start(self) -> None:
        self._stop.clear()
        self._thread = threading.Thread(
            target=self._poll, daemon=True, name="StabilityTracker"
        )
        self._thread.start()

    def stop(self) -> None:
        self._stop.set()
        if self._thread is not None:
            self._thread.join(timeout=5)
            self._thread = None

    def track(self, path: Path) -> None:
        """Register or refresh a file; folders are expanded to their files."""
        try:
            if path.is_dir():
                for child in iter_files(path):
                    self.track(child)
                return
            st = path.stat()
        except OSError:
            return
        if not stat.S_ISREG(st.st_mode):
            return
        with self._lock:
            self._pending[path] = (time.monotonic(), st.st_size, st.st_mtime_ns)
        self._log.debug("Tracking %s (size=%d)", path, st.st_size)

    def refresh(self, path: Path) -> None:
        """Push back the hand-over of a file that is already being tracked."""
        with self._lock:
            if path not in self._pending:
                return
        self.track(path)

    @property
    def pending_count(self) -> int:
        with self._lock:
            return len(self._pending)

    def _poll(self) -> None:
        """Periodically hand over files that have stopped changing."""
        while not self._stop.is_set():
            stable: list[Path] = []
            now = time.monotonic()
            with self._lock:
                for path, (last_change, last_size, last_mtime) in list(self._pending.items()):
                    try:
                        st = path.stat()
                    except OSError:
                        # File vanished, drop it
                        del self._pending[path]
                        continue
                    if st.st_size != last_size or st.st_mtime_ns != last_mtime:
                        self._pending[path] = (now, st.st_size, st.st_mtime_ns)
                    elif now - last_change >= self._stable_seconds:
                        stable.append(path)
                for p in stable:
                    del self._pending[p]

            for p in stable:
                self._log.debug("File stable: %s", p)
                try:
                    self._on_stable(p)
                except Exception:
                    self._log.exception("Error in on_stable callback for %s", p)

            self._stop.wait(timeout=self._poll_interval)


class NewPathHandler(FileSystemEventHandler):
    """Watchdog handler that feeds new, written-to and moved-in paths to the tracker."""

    def __init__(self, tracker: _StabilityTracker, log: LoggerLike | None = None):
        super().__init__()
        self._tracker = tracker
        self._log = log or logger

    def _track_path(self, path: str | bytes, refresh_only: bool = False) -> None:
        if isinstance(path, bytes):
            path = path.decode()
        try:
            if refresh_only:
                self._tracker.refresh(Path(path))
            else:
                self._tracker.track(Path(path))
        except Exception:
            # Never let one bad event take down the observer thread.
            self._log.exception("Error tracking %s", path)

    def on_created(self, event: FileCreatedEvent | DirCreatedEvent) -> None:  # type: ignore[override]
        """Handle a new file or folder."""
        self._track_path(event.src_path)

    def on_modified(self, event: FileModifiedEvent | DirModifiedEvent) -> None:  # type: ignore[override]
        """A write to a file still being tracked pushes its hand-over back."""
        if not event.is_directory:
            self._track_path(event.src_path, refresh_only=True)

    def on_moved(self, event: FileMovedEvent | DirMovedEvent) -> None:  # type: ignore[override]
        """A rename inside the tree shows up under its new name."""
        self._track_path(event.dest_path)


class WatchCoordinator:
    """Backlog pass + live watchdog subscription over one source folder.

    Usage:
        coordinator = WatchCoordinator(config)
        coordinator.start()
        ...
        coordinator.stop()
    """

    def __init__(
        self,
        config: Config,
        ledger: TransferLedger | None = None,
        worker: TransferWorker | None = None,
        log: LoggerLike | None = None,
    ):
        self.config = config
        self._log = log or logger
        self.ledger = ledger or TransferLedger(config.record_file, log=log)
        self.worker = worker or TransferWorker(
            config.target_dir,
            self.ledger,
            retry_count=config.retry_count,
            retry_delay=config.retry_delay,
            log=log,
        )
        self._tracker = _StabilityTracker(
            config.stable_seconds,
            self.worker.dispatch,
            poll_interval=min(1.0, max(0.05, config.stable_seconds / 4)),
            log=log,
        )
        self._handler = NewPathHandler(self._tracker, log=log)
        self._observer: Any | None = None
        self._backfill: list[threading.Thread] = []
        self._state = WatchState.STARTING

    # ---- lifecycle ----

    @property
    def state(self) -> WatchState:
        return self._state

    def start(self) -> None:
        """
        Load the ledger, dispatch the backlog and start watching.

        Backlog transfers run in the background; this returns as soon as
        the observer is live.  Files that appear afterwards are copied once
        they have been unchanged for ``config.stable_seconds``.  Raises
        OSError if the source folder cannot be listed.
        """
        source = self.config.source_dir
        self.ledger.load()
        entries = list_top_level(source)
        self.config.target_dir.mkdir(parents=True, exist_ok=True)

        self._state = WatchState.BACKFILL_IN_PROGRESS
        self._log.info("Backlog pass over %s: %d entries", source, len(entries))
        for entry in entries:
            self._backfill.append(self.worker.dispatch(entry))

        self._tracker.start()
        observer = Observer()
        observer.schedule(self._handler, str(source), recursive=True)
        observer.start()
        self._observer = observer

        # Entries created between the first listing and the observer going
        # live would otherwise be seen by neither pass.
        try:
            known = set(entries)
            late = [p for p in list_top_level(source) if p not in known]
        except OSError as exc:
            self._log.warning("Catch-up listing of %s failed: %s", source, exc)
            late = []
        for entry in late:
            self._log.debug("Catch-up: %s", entry)
            self._tracker.track(entry)

        self._state = WatchState.WATCHING
        self._log.info("Watching %s for new files...", source)

    def stop(self) -> None:
        """Stop watching and release resources."""
        if self._observer:
            self._observer.stop()
            self._observer.join(timeout=5)
            self._observer = None
        self._tracker.stop()
        self._state = WatchState.STOPPED
        self._log.info("Watcher stopped. %s", self.worker.stats.summary())

    def wait_for_backfill(self, timeout: float | None = None) -> bool:
        """Block until backlog transfers finish; False if *timeout* elapsed first."""
        deadline = None if timeout is None else time.monotonic() + timeout
        for thread in list(self._backfill):
            remaining = None if deadline is None else max(0.0, deadline - time.monotonic())
            thread.join(remaining)
            if thread.is_alive():
                return False
        return True

    @property
    def is_running(self) -> bool:
        """Return whether the observer is currently active."""
        return self._observer is not None and self._observer.is_alive()

    @property
    def pending_count(self) -> int:
        """Return the number of live files waiting to settle."""
        return self._tracker.pending_count
