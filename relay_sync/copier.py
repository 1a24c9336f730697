"""
Transfer engine for Relay Watcher.

Resolves a source path (file or folder) to concrete files and copies
each one into the flat target folder, unless its base name is already
in the transfer ledger.  Copies for the same base name are serialised;
everything else runs concurrently on background threads.
"""

import logging
import shutil
import stat
import threading
import time
from collections.abc import Callable
from dataclasses import dataclass, field
from pathlib import Path

from relay_sync.ledger import TransferLedger
from relay_sync.logs import LoggerLike
from relay_sync.scanner import list_top_level

logger = logging.getLogger(__name__)


class TransferError(OSError):
    """One or more entries of a folder could not be transferred."""

    def __init__(self, path: Path, failures: list[tuple[Path, BaseException]]):
        self.path = path
        self.failures = failures
        super().__init__(f"{len(failures)} transfer(s) failed under {path}")


class TargetFolderMissing(OSError):
    """The target folder disappeared while the source file was still there."""

    def __init__(self, folder: Path):
        self.folder = folder
        super().__init__(f"target folder does not exist: {folder}")


@dataclass
class TransferRecord:
    """Outcome of a single file transfer attempt."""
    source: str
    destination: str = ""
    size_bytes: int = 0
    started: float = 0.0
    finished: float = 0.0
    success: bool = False
    skipped: bool = False
    error: str = ""

    @property
    def duration(self) -> float:
        if self.finished and self.started:
            return self.finished - self.started
        return 0.0


@dataclass
class TransferStats:
    """Aggregated transfer statistics."""
    total_copied: int = 0
    total_failed: int = 0
    total_skipped: int = 0
    total_bytes: int = 0
    _lock: threading.Lock = field(default_factory=threading.Lock, repr=False)

    def record(self, rec: TransferRecord) -> None:
        with self._lock:
            if rec.skipped:
                self.total_skipped += 1
            elif rec.success:
                self.total_copied += 1
                self.total_bytes += rec.size_bytes
            else:
                self.total_failed += 1

    def summary(self) -> str:
        with self._lock:
            return (
                f"{self.total_copied} copied ({self.total_bytes:,} bytes), "
                f"{self.total_skipped} skipped, {self.total_failed} failed"
            )


class TransferWorker:
    """
    Copies new files into the target folder exactly once per base name.

    Parameters
    ----------
    target_dir : Path
        Flat destination folder; every file lands at ``target_dir / name``.
    ledger : TransferLedger
        Record of names already transferred.  Shared between all callers.
    retry_count : int
        Number of retries on a failed copy (0 = no retries).
    retry_delay : int
        Seconds to wait between retry attempts.
    on_transfer : callable, optional
        Callback invoked after each file outcome with the TransferRecord.
    log : LoggerLike, optional
        Logger to report through; defaults to this module's logger.
    """

    def __init__(
        self,
        target_dir: Path | str,
        ledger: TransferLedger,
        retry_count: int = 0,
        retry_delay: int = 5,
        on_transfer: Callable[[TransferRecord], None] | None = None,
        log: LoggerLike | None = None,
    ):
        self.target_dir = Path(target_dir)
        self.ledger = ledger
        self._retry_count = max(0, retry_count)
        self._retry_delay = retry_delay
        self._on_transfer = on_transfer
        self._log = log or logger
        self.stats = TransferStats()
        self._name_locks: dict[str, threading.Lock] = {}
        self._locks_guard = threading.Lock()
        self._active: int = 0
        self._active_lock = threading.Lock()

    @property
    def active_transfers(self) -> int:
        with self._active_lock:
            return self._active

    # ---- dispatch ----

    def dispatch(self, path: Path | str) -> threading.Thread:
        """Handle *path* on a background thread without waiting for it."""
        source = Path(path)
        thread = threading.Thread(
            target=self._run_logged,
            args=(source,),
            daemon=True,
            name=f"Transfer-{source.name}",
        )
        thread.start()
        return thread

    def _run_logged(self, path: Path) -> None:
        with self._active_lock:
            self._active += 1
        try:
            self.handle_path(path)
        except TargetFolderMissing as exc:
            self._log.error("Could not copy %s: %s", path, exc)
        except FileNotFoundError:
            self._log.warning("Path vanished before it could be handled: %s", path)
        except TransferError as exc:
            self._log.error("Error copying folder %s: %s", path, exc)
        except Exception:
            self._log.exception("Error copying %s", path)
        finally:
            with self._active_lock:
                self._active -= 1

    # ---- transfer ----

    def handle_path(self, path: Path | str) -> None:
        """
        Transfer *path*, recursing into folders.

        Raises FileNotFoundError if the path no longer exists,
        TargetFolderMissing if the target folder is gone, OSError if
        a copy or ledger save fails, and TransferError if any entry of a
        folder failed (after every sibling has been tried).
        """
        source = Path(path)
        st_mode = source.stat().st_mode
        self._log.debug("Detected new path: %s", source)

        if stat.S_ISDIR(st_mode):
            self._handle_dir(source)
        else:
            self._handle_file(source)

    def _handle_dir(self, directory: Path) -> None:
        self._log.debug("Directory added: %s, scanning contents...", directory)
        failures: list[tuple[Path, BaseException]] = []
        for child in list_top_level(directory):
            try:
                self.handle_path(child)
            except TransferError as exc:
                failures.extend(exc.failures)
            except FileNotFoundError:
                self._log.warning("Path vanished before it could be handled: %s", child)
            except OSError as exc:
                self._log.error("Could not transfer %s: %s", child, exc)
                failures.append((child, exc))
        if failures:
            raise TransferError(directory, failures)

    def _name_lock(self, name: str) -> threading.Lock:
        with self._locks_guard:
            lock = self._name_locks.get(name)
            if lock is None:
                lock = self._name_locks[name] = threading.Lock()
            return lock

    def _handle_file(self, source: Path) -> None:
        name = source.name
        try:
            with self._name_lock(name):
                if name in self.ledger:
                    self._log.debug("Already transferred: %s", name)
                    self._finish(TransferRecord(source=str(source), skipped=True))
                    return
                self._copy(source, self.target_dir / name)
        finally:
            # Once recorded, the ledger check alone keeps the name from being copied again.
            if name in self.ledger:
                with self._locks_guard:
                    self._name_locks.pop(name, None)

    def _finish(self, rec: TransferRecord) -> None:
        self.stats.record(rec)
        if self._on_transfer:
            try:
                self._on_transfer(rec)
            except Exception:
                self._log.exception("Error in on_transfer callback")

    def _copy(self, source: Path, dest: Path) -> None:
        rec = TransferRecord(source=str(source), destination=str(dest))
        try:
            rec.size_bytes = source.stat().st_size
            max_attempts = 1 + self._retry_count
            for attempt in range(1, max_attempts + 1):
                rec.started = time.time()
                try:
                    self._log.debug(
                        "Copying %s -> %s (%d bytes, attempt %d/%d)",
                        source, dest, rec.size_bytes, attempt, max_attempts,
                    )
                    shutil.copy2(str(source), str(dest))
                    break
                except FileNotFoundError as exc:
                    if source.exists() and not dest.parent.is_dir():
                        raise TargetFolderMissing(dest.parent) from exc
                    raise
                except OSError as exc:
                    rec.finished = time.time()
                    if attempt >= max_attempts:
                        raise
                    self._log.warning(
                        "Copy of %s failed (%s); retrying in %ds (attempt %d/%d)",
                        source, exc, self._retry_delay, attempt, max_attempts,
                    )
                    time.sleep(self._retry_delay)

            rec.finished = time.time()
            self.ledger.record(source.name)
            rec.success = True
            self._log.info("Copied: %s (%.1fs)", source.name, rec.duration)
        except OSError as exc:
            rec.error = str(exc)
            rec.finished = time.time()
            raise
        finally:
            self._finish(rec)
