"""Configuration for Relay Watcher.

Settings are read once, from environment variables, into an immutable
:class:`Config` that is handed to the watch coordinator.
"""

import logging
import os
from collections.abc import Mapping
from dataclasses import dataclass
from pathlib import Path

logger = logging.getLogger(__name__)

DEFAULT_RECORD_FILE = "transfers.json"
DEFAULT_LOG_LEVEL = "INFO"
DEFAULT_MAX_LOG_SIZE_MB = 10
DEFAULT_LOG_BACKUP_COUNT = 3
DEFAULT_RETRY_COUNT = 0
DEFAULT_RETRY_DELAY_SECONDS = 5
DEFAULT_STABLE_SECONDS = 2.0

# Environment variable names
ENV_SOURCE_DIR = "SOURCE_DIR"
ENV_TARGET_DIR = "TARGET_DIR"
ENV_RECORD_FILE = "RECORD_FILE"
ENV_LOG_FILE = "LOG_FILE"
ENV_LOG_LEVEL = "LOG_LEVEL"
ENV_MAX_LOG_SIZE_MB = "LOG_MAX_SIZE_MB"
ENV_LOG_BACKUP_COUNT = "LOG_BACKUP_COUNT"
ENV_RETRY_COUNT = "RETRY_COUNT"
ENV_RETRY_DELAY = "RETRY_DELAY_SECONDS"
ENV_STABLE_SECONDS = "STABLE_SECONDS"


class ConfigError(ValueError):
    """Raised when required settings are missing or malformed."""


def _required(environ: Mapping[str, str], key: str) -> str:
    value = environ.get(key, "").strip()
    if not value:
        raise ConfigError(f"{key} environment variable must be set.")
    return value


def _int(environ: Mapping[str, str], key: str, default: int, minimum: int = 0) -> int:
    """Parse an integer setting, clamped to *minimum*."""
    raw = environ.get(key, "").strip()
    if not raw:
        return default
    try:
        value = int(raw)
    except ValueError:
        raise ConfigError(f"{key} must be an integer, got {raw!r}.") from None
    return max(minimum, value)


def _float(environ: Mapping[str, str], key: str, default: float, minimum: float = 0.0) -> float:
    raw = environ.get(key, "").strip()
    if not raw:
        return default
    try:
        value = float(raw)
    except ValueError:
        raise ConfigError(f"{key} must be a number, got {raw!r}.") from None
    return max(minimum, value)


@dataclass(frozen=True)
class Config:
    """Immutable runtime settings."""
    source_dir: Path
    target_dir: Path
    record_file: Path = Path(DEFAULT_RECORD_FILE)
    log_file: Path | None = None
    log_level: str = DEFAULT_LOG_LEVEL
    max_log_size_mb: int = DEFAULT_MAX_LOG_SIZE_MB
    log_backup_count: int = DEFAULT_LOG_BACKUP_COUNT
    retry_count: int = DEFAULT_RETRY_COUNT
    retry_delay: int = DEFAULT_RETRY_DELAY_SECONDS
    stable_seconds: float = DEFAULT_STABLE_SECONDS

    @classmethod
    def from_env(cls, environ: Mapping[str, str] | None = None) -> "Config":
        """
        Build a Config from environment variables.

        Raises ConfigError when SOURCE_DIR or TARGET_DIR is missing, or
        when a numeric setting cannot be parsed.
        """
        env = os.environ if environ is None else environ
        source = _required(env, ENV_SOURCE_DIR)
        target = _required(env, ENV_TARGET_DIR)
        log_file = env.get(ENV_LOG_FILE, "").strip()
        level = env.get(ENV_LOG_LEVEL, "").strip().upper() or DEFAULT_LOG_LEVEL
        if not isinstance(logging.getLevelName(level), int):
            raise ConfigError(f"{ENV_LOG_LEVEL} is not a logging level: {level!r}.")

        return cls(
            source_dir=Path(source),
            target_dir=Path(target),
            record_file=Path(env.get(ENV_RECORD_FILE, "").strip() or DEFAULT_RECORD_FILE),
            log_file=Path(log_file) if log_file else None,
            log_level=level,
            max_log_size_mb=_int(env, ENV_MAX_LOG_SIZE_MB, DEFAULT_MAX_LOG_SIZE_MB, minimum=1),
            log_backup_count=_int(env, ENV_LOG_BACKUP_COUNT, DEFAULT_LOG_BACKUP_COUNT),
            retry_count=_int(env, ENV_RETRY_COUNT, DEFAULT_RETRY_COUNT),
            retry_delay=_int(env, ENV_RETRY_DELAY, DEFAULT_RETRY_DELAY_SECONDS),
            stable_seconds=_float(env, ENV_STABLE_SECONDS, DEFAULT_STABLE_SECONDS),
        )
