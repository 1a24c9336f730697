"""
Headless runner for Relay Watcher.

Starts the watch coordinator in the foreground and blocks until the
process receives SIGINT or SIGTERM.
"""

import logging
import signal
import threading

from relay_sync.config import Config
from relay_sync.watcher import WatchCoordinator

logger = logging.getLogger(__name__)


def run_foreground(config: Config, stop_event: threading.Event | None = None) -> None:
    """
    Run the sync engine until SIGINT/SIGTERM (or *stop_event* is set).

    Start-up errors, such as an unreadable source folder, propagate.
    """
    coordinator = WatchCoordinator(config)
    coordinator.start()

    stop = stop_event or threading.Event()

    def _handler(sig, frame):
        logger.info("Received signal %d, shutting down…", sig)
        stop.set()

    if threading.current_thread() is threading.main_thread():
        signal.signal(signal.SIGINT, _handler)
        signal.signal(signal.SIGTERM, _handler)

    try:
        while not stop.wait(timeout=1):
            if not coordinator.is_running:
                logger.error("Observer thread died; exiting.")
                raise RuntimeError("Relay Watcher observer stopped unexpectedly.")
    finally:
        coordinator.stop()
