"""
Cross-session comparison.

Given the rounds of a finished session, classify each exercise against the
history of every other session and compute deltas versus the previous
session summary.

Status rules (current = final attempt in this session, last = most recent
attempt from other sessions, best = fastest correct time from other sessions):

    no last                            -> mastered if correct, else new
    last wrong, current right          -> improved
    last right, current wrong          -> deteriorated
    both right:
        current < best - 0.1s          -> new_record
        current < last - 0.5s          -> improved
        current > last + 0.5s          -> deteriorated
        otherwise                      -> same
    both wrong                         -> same

The comparison only reads from the stores.
"""

from __future__ import annotations

from collections.abc import Sequence
from dataclasses import dataclass, field
from enum import Enum

from timestables.storage.history import AttemptHistoryStore, best_time_of
from timestables.storage.schemas import ExerciseAttempt, HistoryEntry, Round, SessionSummary
from timestables.storage.summaries import SessionSummaryStore, summarize_rounds

NEW_RECORD_MARGIN_SEC = 0.1
TREND_MARGIN_SEC = 0.5


class ExerciseStatus(str, Enum):
    """Cross-session status of one exercise."""

    NEW_RECORD = "new_record"
    IMPROVED = "improved"
    MASTERED = "mastered"
    SAME = "same"
    DETERIORATED = "deteriorated"
    NEW = "new"


STATUS_PRIORITY: dict[ExerciseStatus, int] = {
    ExerciseStatus.NEW_RECORD: 0,
    ExerciseStatus.IMPROVED: 1,
    ExerciseStatus.MASTERED: 2,
    ExerciseStatus.SAME: 3,
    ExerciseStatus.DETERIORATED: 4,
    ExerciseStatus.NEW: 5,
}


@dataclass(frozen=True)
class ExerciseImprovement:
    exercise_id: str
    factors: tuple[int, int]
    current_correct: bool
    current_time: float
    previous_correct: bool | None
    previous_time: float | None
    best_time: float | None
    status: ExerciseStatus


@dataclass(frozen=True)
class ImprovementDeltas:
    """Current minus previous; zero when there is no previous session."""

    success_rate: float = 0.0  # positive = better
    average_time: float = 0.0  # negative = faster
    total_rounds: int = 0  # negative = fewer rounds needed


@dataclass(frozen=True)
class ComparisonStats:
    new_records: int = 0
    improved: int = 0
    mastered: int = 0
    same: int = 0
    deteriorated: int = 0
    new: int = 0

    @property
    def improved_or_mastered(self) -> int:
        return self.improved + self.mastered

    def count(self, status: ExerciseStatus) -> int:
        return getattr(self, _STAT_FIELDS[status])


_STAT_FIELDS = {
    ExerciseStatus.NEW_RECORD: "new_records",
    ExerciseStatus.IMPROVED: "improved",
    ExerciseStatus.MASTERED: "mastered",
    ExerciseStatus.SAME: "same",
    ExerciseStatus.DETERIORATED: "deteriorated",
    ExerciseStatus.NEW: "new",
}


@dataclass(frozen=True)
class SessionComparison:
    current_session: SessionSummary
    previous_session: SessionSummary | None
    improvement: ImprovementDeltas
    exercise_improvements: tuple[ExerciseImprovement, ...] = field(default_factory=tuple)
    stats: ComparisonStats = field(default_factory=ComparisonStats)

    @property
    def is_first_session(self) -> bool:
        return self.previous_session is None


def final_attempts(rounds: Sequence[Round]) -> dict[str, ExerciseAttempt]:
    """Last attempt per exercise across rounds, in first-seen order."""
    finals: dict[str, ExerciseAttempt] = {}
    for round_ in rounds:
        for attempt in round_.exercises:
            finals[attempt.exercise_id] = attempt
    return finals


def classify_exercise(
    current: ExerciseAttempt, last_previous: HistoryEntry | None, best_time: float | None
) -> ExerciseStatus:
    if last_previous is None:
        return ExerciseStatus.MASTERED if current.correct else ExerciseStatus.NEW
    if current.correct and not last_previous.correct:
        return ExerciseStatus.IMPROVED
    if not current.correct and last_previous.correct:
        return ExerciseStatus.DETERIORATED
    if current.correct and last_previous.correct:
        now = current.time_taken_sec
        if best_time is not None and now < best_time - NEW_RECORD_MARGIN_SEC:
            return ExerciseStatus.NEW_RECORD
        if now < last_previous.time_taken_sec - TREND_MARGIN_SEC:
            return ExerciseStatus.IMPROVED
        if now > last_previous.time_taken_sec + TREND_MARGIN_SEC:
            return ExerciseStatus.DETERIORATED
        return ExerciseStatus.SAME
    return ExerciseStatus.SAME


def compare_sessions(
    current_session_id: str,
    current_rounds: Sequence[Round],
    session_start_time: str,
    history_store: AttemptHistoryStore,
    summary_store: SessionSummaryStore,
    end_time: str | None = None,
) -> SessionComparison:
    """
    Compare a session's rounds with every other session.

    Args:
        current_session_id: Session whose own history entries are excluded
        current_rounds: Closed rounds of the session, in order
        session_start_time: ISO start time of the session
        history_store: Cross-session attempt log (read only)
        summary_store: Finished-session summaries (read only)
        end_time: ISO end time recorded on the current summary

    Returns:
        SessionComparison with exercises sorted by status priority
    """
    current = summarize_rounds(current_session_id, current_rounds, session_start_time, end_time)
    previous = summary_store.previous(current_session_id)
    history = history_store.all_history()

    improvements: list[ExerciseImprovement] = []
    counts = {name: 0 for name in _STAT_FIELDS.values()}

    for exercise_id, attempt in final_attempts(current_rounds).items():
        previous_entries = [e for e in history.get(exercise_id, []) if e.session_id != current_session_id]
        last_previous = previous_entries[-1] if previous_entries else None
        best_time = best_time_of(previous_entries)
        status = classify_exercise(attempt, last_previous, best_time)
        counts[_STAT_FIELDS[status]] += 1

        improvements.append(
            ExerciseImprovement(
                exercise_id=exercise_id,
                factors=attempt.factors,
                current_correct=attempt.correct,
                current_time=attempt.time_taken_sec,
                previous_correct=last_previous.correct if last_previous else None,
                previous_time=last_previous.time_taken_sec if last_previous else None,
                best_time=best_time,
                status=status,
            )
        )

    # sorted() is stable, so ties keep insertion order
    improvements = sorted(improvements, key=lambda item: STATUS_PRIORITY[item.status])

    if previous is not None:
        deltas = ImprovementDeltas(
            success_rate=current.success_rate - previous.success_rate,
            average_time=current.average_time_sec - previous.average_time_sec,
            total_rounds=current.total_rounds - previous.total_rounds,
        )
    else:
        deltas = ImprovementDeltas()

    return SessionComparison(
        current_session=current,
        previous_session=previous,
        improvement=deltas,
        exercise_improvements=tuple(improvements),
        stats=ComparisonStats(**counts),
    )
