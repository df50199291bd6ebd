"""
Storage Module - Durable records for sessions, rounds, history and summaries.

Components:
- kv: Key-value backends (memory, JSON files, SQLAlchemy)
- schemas: Versioned pydantic records
- sessions: Current session record and its closed rounds
- history: Append-only per-exercise attempt log
- summaries: One aggregate row per finished session
"""

from timestables.storage.history import AttemptHistoryStore, best_time_of
from timestables.storage.kv import (
    JsonFileKeyValueStore,
    KeyValueStore,
    MemoryKeyValueStore,
    SqlKeyValueStore,
    create_store,
)
from timestables.storage.schemas import (
    ExerciseAttempt,
    HistoryEntry,
    PracticeSession,
    Round,
    SessionSummary,
)
from timestables.storage.sessions import SessionRepository
from timestables.storage.summaries import SessionSummaryStore, summarize_rounds

__all__ = [
    "AttemptHistoryStore",
    "best_time_of",
    "JsonFileKeyValueStore",
    "KeyValueStore",
    "MemoryKeyValueStore",
    "SqlKeyValueStore",
    "create_store",
    "ExerciseAttempt",
    "HistoryEntry",
    "PracticeSession",
    "Round",
    "SessionSummary",
    "SessionRepository",
    "SessionSummaryStore",
    "summarize_rounds",
]
