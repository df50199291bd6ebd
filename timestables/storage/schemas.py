"""
Typed records for everything the drill persists.

Each record carries a schema_version. Loading goes through load_record /
load_records, which upgrade unversioned (pre-1) payloads and reject payloads
that fail validation or come from a newer, unknown version.
"""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Any, Literal, TypeVar

from loguru import logger
from pydantic import BaseModel, ConfigDict, Field, ValidationError, model_validator

SCHEMA_VERSION = 1

SessionStatus = Literal["in_progress", "completed", "stopped"]
ExerciseResult = Literal["first", "improved", "same", "deteriorated"]


def utc_now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


class VersionedRecord(BaseModel):
    """Base for persisted records."""

    model_config = ConfigDict(frozen=True, extra="ignore")

    schema_version: int = SCHEMA_VERSION

    @model_validator(mode="before")
    @classmethod
    def _upgrade(cls, data: Any) -> Any:
        if not isinstance(data, dict):
            return data
        version = data.get("schema_version", 0)
        if not isinstance(version, int) or version > SCHEMA_VERSION:
            raise ValueError(f"Unsupported schema_version {version!r}")
        if version < SCHEMA_VERSION:
            # Version 0 is the unversioned shape; every later field has a default.
            data = {**data, "schema_version": SCHEMA_VERSION}
        return data

    def to_json(self) -> dict[str, Any]:
        return self.model_dump(mode="json")


class ExerciseAttempt(VersionedRecord):
    """One answer or timeout for one exercise within a round."""

    exercise_id: str
    factors: tuple[int, int]
    user_answer: int | None = None
    correct: bool
    time_taken_sec: float = Field(ge=0)
    result: ExerciseResult = "first"


class Round(VersionedRecord):
    """One pass through a working set; attempts are kept in answer order."""

    round_number: int = Field(ge=1)
    total_time_sec: float = 0.0
    exercises: list[ExerciseAttempt] = Field(default_factory=list)
    id: str | None = None
    created_at: str | None = None

    def with_attempt(self, attempt: ExerciseAttempt) -> "Round":
        return self.model_copy(
            update={
                "exercises": [*self.exercises, attempt],
                "total_time_sec": self.total_time_sec + attempt.time_taken_sec,
            }
        )

    def failed_exercise_ids(self) -> list[str]:
        return [a.exercise_id for a in self.exercises if not a.correct]

    def find_attempt(self, exercise_id: str) -> ExerciseAttempt | None:
        for attempt in self.exercises:
            if attempt.exercise_id == exercise_id:
                return attempt
        return None


class PracticeSession(VersionedRecord):
    """The durable record of one practice run."""

    id: str
    user_id: str | None = None
    start_time: str
    end_time: str | None = None
    status: SessionStatus = "in_progress"
    current_round: int = Field(default=1, ge=1)
    pending_exercises: list[str] = Field(default_factory=list)
    active_exercise: str | None = None
    selected_tables: list[int] = Field(default_factory=list)
    updated_at: str | None = None

    @property
    def is_active(self) -> bool:
        return self.status == "in_progress"


class HistoryEntry(VersionedRecord):
    """One attempt in the cross-session history log."""

    exercise_id: str
    session_id: str
    correct: bool
    time_taken_sec: float
    attempted_at: str


class SessionSummary(VersionedRecord):
    """Aggregate results of one finished session."""

    session_id: str
    start_time: str
    end_time: str | None = None
    total_exercises: int = 0
    correct_exercises: int = 0
    total_rounds: int = 0
    average_time_sec: float = 0.0
    success_rate: float = 0.0


R = TypeVar("R", bound=VersionedRecord)


def load_record(model: type[R], data: Any) -> R | None:
    """Validate one stored payload, returning None when it is absent or rejected."""
    if data is None:
        return None
    try:
        return model.model_validate(data)
    except ValidationError as exc:
        logger.warning("Rejected stored {} record: {}", model.__name__, exc.errors()[0].get("msg"))
        return None


def load_records(model: type[R], items: Any) -> list[R]:
    """Validate a stored list, dropping members that are rejected."""
    if not isinstance(items, list):
        if items is not None:
            logger.warning("Expected a list of {} records, got {}", model.__name__, type(items).__name__)
        return []
    records = []
    for item in items:
        record = load_record(model, item)
        if record is not None:
            records.append(record)
    return records
