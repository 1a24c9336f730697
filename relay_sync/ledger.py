"""Persistent record of transferred file names.

The ledger is a JSON array of base names.  It is rewritten in full after
every successful copy, via a temp file and ``os.replace`` so a reader
never sees a half-written record.
"""

import json
import logging
import os
import tempfile
import threading
from pathlib import Path

from relay_sync.logs import LoggerLike

logger = logging.getLogger(__name__)


class TransferLedger:
    """Thread-safe set of already-transferred file names backed by a JSON file."""

    def __init__(self, path: Path | str, log: LoggerLike | None = None):
        self._path = Path(path)
        self._log = log or logger
        self._names: set[str] = set()
        self._lock = threading.Lock()

    @property
    def path(self) -> Path:
        return self._path

    @property
    def names(self) -> set[str]:
        """Snapshot of the recorded names."""
        with self._lock:
            return set(self._names)

    def __contains__(self, name: object) -> bool:
        with self._lock:
            return name in self._names

    def __len__(self) -> int:
        with self._lock:
            return len(self._names)

    # ---- persistence ----

    def load(self) -> set[str]:
        """
        Read the record file into memory and return the loaded names.

        A missing, unreadable or malformed file means "no history" and
        yields an empty set; it is never an error.
        """
        names: set[str] = set()
        try:
            with open(self._path, encoding="utf-8") as fh:
                stored = json.load(fh)
            if not isinstance(stored, list):
                raise ValueError(f"expected a JSON array, got {type(stored).__name__}")
            names = {str(item) for item in stored}
            self._log.info("Loaded %d transferred name(s) from %s", len(names), self._path)
        except FileNotFoundError:
            self._log.debug("No transfer record at %s; starting fresh.", self._path)
        except (OSError, ValueError) as exc:
            self._log.warning("Could not read transfer record (%s); starting fresh.", exc)

        with self._lock:
            self._names = names
        return set(names)

    def save(self, names: set[str] | None = None) -> None:
        """
        Atomically overwrite the record file with *names*.

        Defaults to the in-memory set.  Raises OSError on failure.
        """
        if names is None:
            names = self.names
        payload = json.dumps(sorted(names))

        parent = self._path.parent
        parent.mkdir(parents=True, exist_ok=True)
        fd, tmp_name = tempfile.mkstemp(
            prefix=f".{self._path.name}.", suffix=".tmp", dir=str(parent)
        )
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as fh:
                fh.write(payload)
                fh.flush()
                os.fsync(fh.fileno())
            os.replace(tmp_name, self._path)
        except BaseException:
            try:
                os.unlink(tmp_name)
            except OSError:
                pass
            raise

    def record(self, name: str) -> None:
        """
        Add *name* and persist the ledger.

        The name stays recorded in memory even when the save fails, since
        the copy itself did happen; the OSError is left to the caller.
        """
        with self._lock:
            self._names.add(name)
            snapshot = set(self._names)
            self.save(snapshot)
        self._log.debug("Recorded %s (%d total)", name, len(snapshot))
