"""
User preferences persisted alongside drill state.

The time limit is read each time an exercise is scheduled or scored, so a
change applies from the next exercise on. Missing or invalid stored values
fall back to the configured defaults.
"""

from __future__ import annotations

from collections.abc import Iterable

from loguru import logger

from config import Settings, get_settings
from timestables.core.errors import PersistenceError, ValidationError
from timestables.exercises.catalog import normalize_tables
from timestables.storage.kv import KeyValueStore

TIME_LIMIT_KEY = "drill.settings.time_limit"
TABLES_KEY = "drill.settings.tables"


class Preferences:
    """Get/set accessors for the time limit and table selection."""

    def __init__(self, store: KeyValueStore, settings: Settings | None = None):
        self.store = store
        self.settings = settings or get_settings()

    def _read(self, key: str):
        try:
            return self.store.get(key)
        except PersistenceError as exc:
            logger.warning("Could not read preference {}: {}", key, exc)
            return None

    # ========================================
    # Time limit
    # ========================================

    def time_limit(self) -> int:
        stored = self._read(TIME_LIMIT_KEY)
        if isinstance(stored, int) and not isinstance(stored, bool) and self._in_range(stored):
            return stored
        return self.settings.default_time_limit_seconds

    def set_time_limit(self, seconds: int) -> None:
        if isinstance(seconds, bool) or not isinstance(seconds, int) or not self._in_range(seconds):
            raise ValidationError(
                f"Time limit must be between {self.settings.min_time_limit_seconds} "
                f"and {self.settings.max_time_limit_seconds} seconds"
            )
        self.store.put(TIME_LIMIT_KEY, seconds)
        logger.info("Time limit set to {}s", seconds)

    def _in_range(self, seconds: int) -> bool:
        return self.settings.min_time_limit_seconds <= seconds <= self.settings.max_time_limit_seconds

    # ========================================
    # Tables
    # ========================================

    def selected_tables(self) -> list[int]:
        stored = self._read(TABLES_KEY)
        if isinstance(stored, list) and stored:
            try:
                return normalize_tables(stored)
            except ValidationError:
                logger.warning("Ignoring invalid stored tables {}", stored)
        return self.settings.get_default_tables()

    def set_selected_tables(self, tables: Iterable[int]) -> list[int]:
        normalized = normalize_tables(tables)
        if not normalized:
            raise ValidationError("Select at least one table")
        self.store.put(TABLES_KEY, normalized)
        logger.info("Selected tables set to {}", normalized)
        return normalized
