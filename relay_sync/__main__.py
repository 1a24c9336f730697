"""Entry point for Relay Watcher.

Usage:
    SOURCE_DIR=... TARGET_DIR=... python -m relay_sync

Optional: RECORD_FILE (default transfers.json), LOG_FILE, LOG_LEVEL,
LOG_MAX_SIZE_MB, LOG_BACKUP_COUNT, RETRY_COUNT, RETRY_DELAY_SECONDS.
"""

import logging
import sys

logger = logging.getLogger("relay_sync")


def main() -> None:
    """Read the environment, set up logging and run until stopped."""
    from relay_sync import __app_name__, __version__
    from relay_sync.config import Config, ConfigError
    from relay_sync.logs import setup_logging
    from relay_sync.service import run_foreground

    try:
        config = Config.from_env()
    except ConfigError as exc:
        print(f"ERROR: {exc}", file=sys.stderr)
        sys.exit(1)

    setup_logging(config)
    logger.info("%s %s starting.", __app_name__, __version__)

    try:
        run_foreground(config)
    except Exception as exc:
        logger.exception("Fatal error: %s", exc)
        sys.exit(1)
    sys.exit(0)


if __name__ == "__main__":
    main()
