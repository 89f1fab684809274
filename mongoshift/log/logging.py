"""
Loguru logger setup.

Modules log through the shared `logger` and pass structured context as
keyword arguments, which loguru stores in the record's `extra`:

    logger.info("Migration lock acquired", event_type="migration_lock_acquired")
"""

import sys

from loguru import logger

DEFAULT_FORMAT = (
    "<green>{time:YYYY-MM-DD HH:mm:ss.SSS}</green> | "
    "<level>{level: <8}</level> | "
    "<cyan>{name}</cyan> - <level>{message}</level>"
)


def configure_logging(level: str = "INFO", json_logs: bool = False) -> None:
    """
    Replace loguru's default sink with one writing to stderr.

    Args:
        level: Minimum level to emit.
        json_logs: Serialize every record (including extras) as JSON.
    """
    logger.remove()
    if json_logs:
        logger.add(sys.stderr, level=level.upper(), serialize=True)
    else:
        logger.add(sys.stderr, level=level.upper(), format=DEFAULT_FORMAT)


__all__ = ["logger", "configure_logging"]
