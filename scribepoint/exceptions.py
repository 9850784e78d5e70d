"""
scribepoint.exceptions - Custom exception classes.

All Scribepoint-specific exceptions inherit from ScribepointError.
"""


class ScribepointError(Exception):
    """Base exception for all Scribepoint errors."""

    pass


class ConfigError(ScribepointError):
    """Configuration loading or validation error."""

    pass


class DocumentError(ScribepointError):
    """Destination document or position error."""

    pass


class ValidationError(ScribepointError):
    """Data validation error."""

    pass


class ProcessStartError(ScribepointError):
    """An external process could not be launched."""

    def __init__(self, name: str, command: list[str], reason: str):
        self.name = name
        self.command = command
        self.reason = reason
        super().__init__(f"{name}: could not start {command[0] if command else '?'}: {reason}")


class DependencyError(ScribepointError):
    """Required dependency missing or misconfigured."""

    def __init__(self, dependency: str, message: str, install_hint: str | None = None):
        self.dependency = dependency
        self.message = message
        self.install_hint = install_hint
        super().__init__(f"{dependency}: {message}")
