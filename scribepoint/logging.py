"""
scribepoint.logging - Centralized logging configuration.

Provides a simple logging setup with optional verbose mode for debugging
and an optional rotating log file.
"""

from __future__ import annotations

import logging
from logging.handlers import RotatingFileHandler
from pathlib import Path

logger = logging.getLogger("scribepoint")


def configure_logging(verbose: bool = False, log_file: Path | None = None) -> None:
    """Configure logging for the scribepoint package.

    Args:
        verbose: If True, enable DEBUG level logging; otherwise WARNING level
        log_file: Optional file receiving DEBUG output. Without verbose mode
            the package logger then writes to the file only.
    """
    level = logging.DEBUG if verbose else logging.WARNING
    logging.basicConfig(
        level=level,
        format="%(levelname)s: %(message)s",
    )
    if not log_file:
        return

    if not any(isinstance(h, RotatingFileHandler) for h in logger.handlers):
        log_file.parent.mkdir(parents=True, exist_ok=True)
        handler = RotatingFileHandler(log_file, maxBytes=1_000_000, backupCount=3, encoding="utf-8")
        handler.setFormatter(
            logging.Formatter("%(asctime)s [%(levelname)s] %(message)s", "%H:%M:%S")
        )
        logger.addHandler(handler)
    logger.setLevel(logging.DEBUG)
    logger.propagate = verbose
