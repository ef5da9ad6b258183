"""
Logging setup for the telemetry store (loguru)
"""
import sys
from typing import Optional

from loguru import logger

from jobtrace.core.config import settings

_configured = False


def configure_logging(level: Optional[str] = None, force: bool = False) -> None:
    """Install a single stderr sink at the configured level.

    Safe to call repeatedly; only the first call (or a forced one) replaces
    loguru's default handler.
    """
    global _configured
    if _configured and not force:
        return

    logger.remove()
    logger.add(
        sys.stderr,
        level=(level or settings.log_level).upper(),
        format="{time:YYYY-MM-DD HH:mm:ss} | {level: <8} | {name}:{line} - {message}",
    )
    _configured = True
