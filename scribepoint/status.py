"""
scribepoint.status - User-facing status messages.

Fire-and-forget notifications printed to a rich console and mirrored to
the package logger. A session id passed as `tag` prefixes the log line.
"""

from __future__ import annotations

import logging

from rich.console import Console
from rich.markup import escape

from scribepoint.logging import logger


class StatusReporter:
    """Prints transient status messages for a dictation session."""

    def __init__(self, console: Console | None = None) -> None:
        self.console = console or Console(stderr=True)

    def _emit(self, level: int, style: str, message: str, tag: str | None) -> None:
        logger.log(level, f"[{tag}] {message}" if tag else message)
        self.console.print(f"[{style}]{escape(message)}[/{style}]")

    def info(self, message: str, tag: str | None = None) -> None:
        self._emit(logging.INFO, "cyan", message, tag)

    def success(self, message: str, tag: str | None = None) -> None:
        self._emit(logging.INFO, "green", message, tag)

    def warning(self, message: str, tag: str | None = None) -> None:
        self._emit(logging.WARNING, "yellow", message, tag)

    def error(self, message: str, tag: str | None = None) -> None:
        self._emit(logging.ERROR, "red", message, tag)

    def detail(self, message: str) -> None:
        self.console.print(f"[dim]  {escape(message)}[/dim]")
