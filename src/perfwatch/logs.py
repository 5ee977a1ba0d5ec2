from __future__ import annotations

import sys
from pathlib import Path

from loguru import logger


def configure_logging(verbose: bool = False, log_file: str | Path | None = None) -> None:
    """Replace loguru's default sink with the console format used by the CLI.

    Args:
        verbose: If True, log at DEBUG instead of INFO
        log_file: Optional path for an additional rotating DEBUG log
    """
    logger.remove()
    logger.add(
        sys.stderr,
        level="DEBUG" if verbose else "INFO",
        format="<green>{time:HH:mm:ss}</green> | <level>{level: <8}</level> | {message}",
    )
    if log_file:
        logger.add(
            log_file,
            level="DEBUG",
            format="{time:YYYY-MM-DD HH:mm:ss} | {level: <8} | {message}",
            rotation="10 MB",
        )
