"""Typed error taxonomy.

Callers of the writer only ever see `ConfigError`, `WriteTooLargeError` and
`RotationError`. The `BackupNameError` family is raised by the name codec and
handled inside the mill; it is public so the codec can be used on its own.
"""
from __future__ import annotations

__all__ = [
    "RollfileError",
    "ConfigError",
    "WriteTooLargeError",
    "RotationError",
    "BackupNameError",
    "MismatchedPrefixError",
    "MismatchedExtensionError",
    "MalformedNameError",
    "UnparsableTimestampError",
    "format_error",
]


class RollfileError(Exception):
    """Base class for all typed errors raised by rollfile."""
    pass


class ConfigError(RollfileError, ValueError):
    """Configuration invalid: bad timestamp layout, negative caps, unknown keys."""
    pass


class WriteTooLargeError(RollfileError, ValueError):
    """A single write is larger than the maximum file size."""

    def __init__(self, length: int, limit: int):
        self.length = int(length)
        self.limit = int(limit)
        super().__init__(f"write length {self.length} exceeds maximum file size {self.limit}")


class RotationError(RollfileError, OSError):
    """Sealing the live file or opening its replacement failed."""
    pass


class BackupNameError(RollfileError, ValueError):
    """A filename is not a backup of the configured log file."""
    pass


class MismatchedPrefixError(BackupNameError):
    pass


class MismatchedExtensionError(BackupNameError):
    pass


class MalformedNameError(BackupNameError):
    """No `-<reason>` separator between the timestamp and the extension."""
    pass


class UnparsableTimestampError(BackupNameError):
    pass


def format_error(e: BaseException) -> str:
    """Return a short, uniform operator-facing message like 'ConfigError: detail'."""
    name = e.__class__.__name__
    msg = str(e).strip()
    return f"{name}: {msg}" if msg else name


__all__ = sorted(__all__)
