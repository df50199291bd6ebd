"""
Attempt history across all sessions.

The log is append-only and keyed by exercise id:

    {"7x8": [HistoryEntry, HistoryEntry, ...], "3x4": [...]}

Entries for one exercise are kept in append order, which is treated as
chronological. Every "previous" query takes the session to exclude so a
session can be compared against everything except itself.
"""

from __future__ import annotations

from collections.abc import Iterable

from timestables.storage.kv import KeyValueStore
from timestables.storage.schemas import ExerciseAttempt, HistoryEntry, load_records, utc_now_iso

HISTORY_KEY = "drill.history"


def best_time_of(entries: Iterable[HistoryEntry]) -> float | None:
    """Fastest correct time among entries, or None if none were correct."""
    times = [e.time_taken_sec for e in entries if e.correct]
    return min(times) if times else None


class AttemptHistoryStore:
    """Append-only per-exercise attempt log on top of a key-value store."""

    def __init__(self, store: KeyValueStore):
        self.store = store

    def _load_raw(self) -> dict[str, list]:
        raw = self.store.get(HISTORY_KEY)
        return raw if isinstance(raw, dict) else {}

    def append(
        self, session_id: str, attempt: ExerciseAttempt, attempted_at: str | None = None
    ) -> HistoryEntry:
        """Record one attempt for session_id. Raises PersistenceError if the write fails."""
        entry = HistoryEntry(
            exercise_id=attempt.exercise_id,
            session_id=session_id,
            correct=attempt.correct,
            time_taken_sec=attempt.time_taken_sec,
            attempted_at=attempted_at or utc_now_iso(),
        )
        history = self._load_raw()
        history.setdefault(attempt.exercise_id, []).append(entry.to_json())
        self.store.put(HISTORY_KEY, history)
        return entry

    def all_history(self) -> dict[str, list[HistoryEntry]]:
        return {
            exercise_id: load_records(HistoryEntry, entries)
            for exercise_id, entries in self._load_raw().items()
        }

    def attempts(self, exercise_id: str) -> list[HistoryEntry]:
        return load_records(HistoryEntry, self._load_raw().get(exercise_id))

    def previous_attempts(self, exercise_id: str, exclude_session_id: str) -> list[HistoryEntry]:
        return [a for a in self.attempts(exercise_id) if a.session_id != exclude_session_id]

    def last_attempt(self, exercise_id: str, exclude_session_id: str | None = None) -> HistoryEntry | None:
        if exclude_session_id is None:
            entries = self.attempts(exercise_id)
        else:
            entries = self.previous_attempts(exercise_id, exclude_session_id)
        return entries[-1] if entries else None

    def best_time(self, exercise_id: str) -> float | None:
        return best_time_of(self.attempts(exercise_id))
