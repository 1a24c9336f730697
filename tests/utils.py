"""Shared test helpers"""
import json
import shutil
import threading
import time
from pathlib import Path
from typing import Callable


def wait_until(predicate: Callable[[], bool], timeout: float = 10.0, interval: float = 0.05) -> bool:
    """Poll *predicate* until it is true or *timeout* elapses"""
    deadline = time.monotonic() + timeout
    while time.monotonic() < deadline:
        if predicate():
            return True
        time.sleep(interval)
    return predicate()


def read_record(path: Path) -> list:
    """Return the raw JSON array stored in a transfer record"""
    return json.loads(path.read_text(encoding="utf-8"))


class CountingCopy:
    """Wraps shutil.copy2, counting calls and optionally failing some"""

    def __init__(self, fail_names=(), failures=0):
        self.calls: list[str] = []
        self._fail_names = set(fail_names)
        self._failures = failures
        self._real = shutil.copy2
        self._lock = threading.Lock()

    def __call__(self, src, dst, *args, **kwargs):
        with self._lock:
            self.calls.append(Path(src).name)
            if Path(src).name in self._fail_names:
                raise PermissionError(f"denied: {src}")
            if self._failures > 0:
                self._failures -= 1
                raise OSError("transient failure")
        return self._real(src, dst, *args, **kwargs)
