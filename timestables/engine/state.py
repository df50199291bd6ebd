"""
Drill state machine.

The progression engine is split in two:
- this module: immutable DrillState plus reduce(state, action) -> state,
  with no I/O, timers or randomness
- drill.DrillEngine: performs storage writes and scheduling, then feeds
  the outcome back in as actions

Phases:

    idle -> exercise -> summary -> exercise -> ... -> complete
    exercise | summary -> idle   (stop)

Within the exercise phase a failed answer or a timeout is held as
`feedback` on the current exercise. It is added to the round only when
the front end acknowledges it, and nothing new is accepted meanwhile.

An action that does not apply to the current phase leaves the state unchanged.
"""

from __future__ import annotations

from dataclasses import dataclass, replace
from enum import Enum

from timestables.engine.comparison import SessionComparison
from timestables.exercises.catalog import Exercise
from timestables.storage.schemas import ExerciseAttempt, PracticeSession, Round


class Phase(str, Enum):
    IDLE = "idle"
    EXERCISE = "exercise"
    SUMMARY = "summary"
    COMPLETE = "complete"


@dataclass(frozen=True)
class DrillErrorState:
    """A failed boundary operation awaiting retry."""

    message: str
    operation: str
    retryable: bool = True


@dataclass(frozen=True)
class DrillState:
    phase: Phase = Phase.IDLE
    session: PracticeSession | None = None
    current_round: Round | None = None
    completed_rounds: tuple[Round, ...] = ()
    all_exercises: tuple[Exercise, ...] = ()
    pending_exercises: tuple[Exercise, ...] = ()
    current_exercise_index: int = 0
    feedback: ExerciseAttempt | None = None
    comparison: SessionComparison | None = None
    error: DrillErrorState | None = None

    @property
    def awaiting_acknowledgement(self) -> bool:
        return self.feedback is not None

    @property
    def current_exercise(self) -> Exercise | None:
        if self.phase != Phase.EXERCISE:
            return None
        if self.current_exercise_index >= len(self.pending_exercises):
            return None
        return self.pending_exercises[self.current_exercise_index]

    @property
    def is_last_exercise(self) -> bool:
        return self.current_exercise_index >= len(self.pending_exercises) - 1

    @property
    def remaining_exercise_ids(self) -> list[str]:
        """Ids still to be answered in the current round, current exercise first."""
        return [ex.exercise_id for ex in self.pending_exercises[self.current_exercise_index:]]

    @property
    def last_completed_round(self) -> Round | None:
        return self.completed_rounds[-1] if self.completed_rounds else None

    def previous_attempt(self, exercise_id: str) -> ExerciseAttempt | None:
        """Latest attempt at exercise_id in this session's closed rounds."""
        for round_ in reversed(self.completed_rounds):
            attempt = round_.find_attempt(exercise_id)
            if attempt is not None:
                return attempt
        return None


# =============================================================================
# Actions
# =============================================================================


@dataclass(frozen=True)
class SessionStarted:
    session: PracticeSession
    all_exercises: tuple[Exercise, ...]
    pending_exercises: tuple[Exercise, ...]


@dataclass(frozen=True)
class SessionResumed:
    session: PracticeSession
    rounds: tuple[Round, ...]
    all_exercises: tuple[Exercise, ...]
    pending_exercises: tuple[Exercise, ...]
    in_summary: bool = False


@dataclass(frozen=True)
class SessionUpdated:
    session: PracticeSession


@dataclass(frozen=True)
class AttemptScored:
    """A failure shown to the user, not yet part of the round."""

    attempt: ExerciseAttempt


@dataclass(frozen=True)
class AttemptRecorded:
    attempt: ExerciseAttempt


@dataclass(frozen=True)
class ExerciseAdvanced:
    pass


@dataclass(frozen=True)
class RoundClosed:
    round: Round


@dataclass(frozen=True)
class NextRoundStarted:
    session: PracticeSession
    pending_exercises: tuple[Exercise, ...]


@dataclass(frozen=True)
class SessionCompleted:
    session: PracticeSession
    comparison: SessionComparison


@dataclass(frozen=True)
class SessionStopped:
    pass


@dataclass(frozen=True)
class ErrorRaised:
    error: DrillErrorState


@dataclass(frozen=True)
class ErrorCleared:
    pass


@dataclass(frozen=True)
class Reset:
    pass


Action = (
    SessionStarted
    | SessionResumed
    | SessionUpdated
    | AttemptScored
    | AttemptRecorded
    | ExerciseAdvanced
    | RoundClosed
    | NextRoundStarted
    | SessionCompleted
    | SessionStopped
    | ErrorRaised
    | ErrorCleared
    | Reset
)


# =============================================================================
# Reducer
# =============================================================================


def reduce(state: DrillState, action: Action) -> DrillState:
    """Return the state that results from applying action to state."""
    if isinstance(action, SessionStarted):
        return DrillState(
            phase=Phase.EXERCISE,
            session=action.session,
            current_round=Round(round_number=action.session.current_round),
            all_exercises=action.all_exercises,
            pending_exercises=action.pending_exercises,
        )

    if isinstance(action, SessionResumed):
        if action.in_summary:
            return DrillState(
                phase=Phase.SUMMARY,
                session=action.session,
                completed_rounds=action.rounds,
                all_exercises=action.all_exercises,
            )
        return DrillState(
            phase=Phase.EXERCISE,
            session=action.session,
            current_round=Round(round_number=action.session.current_round),
            completed_rounds=action.rounds,
            all_exercises=action.all_exercises,
            pending_exercises=action.pending_exercises,
        )

    if isinstance(action, SessionUpdated):
        if state.session is None or state.session.id != action.session.id:
            return state
        return replace(state, session=action.session)

    if isinstance(action, AttemptScored):
        exercise = state.current_exercise
        if exercise is None or exercise.exercise_id != action.attempt.exercise_id:
            return state
        return replace(state, feedback=action.attempt)

    if isinstance(action, AttemptRecorded):
        if state.phase != Phase.EXERCISE or state.current_round is None:
            return state
        return replace(state, current_round=state.current_round.with_attempt(action.attempt), feedback=None)

    if isinstance(action, ExerciseAdvanced):
        if state.phase != Phase.EXERCISE:
            return state
        return replace(state, current_exercise_index=state.current_exercise_index + 1, feedback=None)

    if isinstance(action, RoundClosed):
        if state.phase != Phase.EXERCISE:
            return state
        return replace(
            state,
            phase=Phase.SUMMARY,
            current_round=None,
            completed_rounds=(*state.completed_rounds, action.round),
            pending_exercises=(),
            current_exercise_index=0,
        )

    if isinstance(action, NextRoundStarted):
        if state.phase != Phase.SUMMARY:
            return state
        return replace(
            state,
            phase=Phase.EXERCISE,
            session=action.session,
            current_round=Round(round_number=action.session.current_round),
            pending_exercises=action.pending_exercises,
            current_exercise_index=0,
        )

    if isinstance(action, SessionCompleted):
        if state.phase != Phase.SUMMARY:
            return state
        return replace(state, phase=Phase.COMPLETE, session=action.session, comparison=action.comparison)

    if isinstance(action, (SessionStopped, Reset)):
        return DrillState()

    if isinstance(action, ErrorRaised):
        return replace(state, error=action.error)

    if isinstance(action, ErrorCleared):
        return replace(state, error=None)

    raise TypeError(f"Unknown action: {action!r}")
