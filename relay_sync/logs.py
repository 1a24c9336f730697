"""Logging setup for Relay Watcher.

The core modules only need something that looks like a
:class:`logging.Logger`; :class:`LoggerLike` spells out that surface so
callers can inject their own.
"""

import logging
import logging.handlers
import sys
from typing import Any, Protocol

from relay_sync.config import Config

LOG_FORMAT = "%(asctime)s [%(levelname)s] %(name)s: %(message)s"


class LoggerLike(Protocol):
    """Severity-levelled logging surface used by the sync engine."""

    def debug(self, msg: str, *args: Any, **kwargs: Any) -> None:
        ...

    def info(self, msg: str, *args: Any, **kwargs: Any) -> None:
        ...

    def warning(self, msg: str, *args: Any, **kwargs: Any) -> None:
        ...

    def error(self, msg: str, *args: Any, **kwargs: Any) -> None:
        ...

    def exception(self, msg: str, *args: Any, **kwargs: Any) -> None:
        ...


def setup_logging(config: Config) -> logging.Handler:
    """
    Attach a single handler to the root logger.

    With ``config.log_file`` set, lines are appended to a rotating log
    file; otherwise they go to stderr.  A failed write is reported on
    stderr by :meth:`logging.Handler.handleError` and never raised.

    Returns the installed handler so callers can remove it again.
    """
    level = getattr(logging, config.log_level.upper(), logging.INFO)
    root_logger = logging.getLogger()
    root_logger.setLevel(level)

    handler: logging.Handler
    if config.log_file is not None:
        config.log_file.parent.mkdir(parents=True, exist_ok=True)
        handler = logging.handlers.RotatingFileHandler(
            str(config.log_file),
            maxBytes=config.max_log_size_mb * 1024 * 1024,
            backupCount=config.log_backup_count,
            encoding="utf-8",
        )
    else:
        handler = logging.StreamHandler(sys.stderr)

    handler.setLevel(level)
    handler.setFormatter(logging.Formatter(LOG_FORMAT))
    root_logger.addHandler(handler)
    return handler
