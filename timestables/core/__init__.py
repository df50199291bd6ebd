"""
Core Module - Errors, logging and persisted preferences.

Components:
- errors: Error taxonomy shared by storage, engine and competition
- logging: Loguru sink configuration
- preferences: Time limit and table selection accessors
"""

from timestables.core.errors import (
    CompetitionError,
    ConfigurationError,
    DrillError,
    PersistenceError,
    ValidationError,
)

__all__ = [
    "DrillError",
    "ConfigurationError",
    "PersistenceError",
    "ValidationError",
    "CompetitionError",
]
