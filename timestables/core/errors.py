"""
Error taxonomy for the drill.

- ConfigurationError: backing configuration is unusable; retrying will not help.
- PersistenceError: a durable read/write failed; re-run the originating operation.
- ValidationError: malformed user input, rejected before engine logic runs.
- CompetitionError: a room operation was refused or failed.
"""

from __future__ import annotations


class DrillError(Exception):
    """Base class for every error raised by timestables."""

    retryable: bool = False

    def __init__(self, message: str, original_error: BaseException | None = None):
        super().__init__(message)
        self.message = message
        self.original_error = original_error


class ConfigurationError(DrillError):
    """Raised when the store or settings cannot be used as configured."""


class PersistenceError(DrillError):
    """Raised when a durable write or read fails transiently."""

    retryable = True


class ValidationError(DrillError):
    """Raised when user input is malformed."""


class CompetitionError(DrillError):
    """Raised when a competition room operation cannot be performed."""
