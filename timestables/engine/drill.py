"""
Drill Engine: effect layer around the state machine.

Responsibilities:
- Storage writes for sessions, rounds, history and summaries
- Scoring answers against the time limit
- One cancelable timeout per exercise, armed when the exercise is shown
- A single retry slot for failed boundary operations

A correct, in-time answer is recorded and the drill moves on at once. A
wrong answer, a late one or a timeout stays on screen as feedback until
acknowledge() is called; only then is it recorded and the next exercise
shown (and timed).

Every public operation runs under one re-entrant lock, so a timeout firing
from the timer thread and a submission from the user never interleave.

Persistence policy:
- Mandatory (failure -> error state + retry): session start, round close,
  next round, session completion, session stop
- Best-effort (failure logged): history append, intra-round progress
"""

from __future__ import annotations

import random
import threading
from collections.abc import Callable, Iterable

from loguru import logger

from timestables.core.errors import DrillError, PersistenceError
from timestables.core.preferences import Preferences
from timestables.engine.comparison import compare_sessions
from timestables.engine.state import (
    Action,
    AttemptRecorded,
    AttemptScored,
    DrillErrorState,
    DrillState,
    ErrorCleared,
    ErrorRaised,
    ExerciseAdvanced,
    NextRoundStarted,
    Phase,
    Reset,
    RoundClosed,
    SessionCompleted,
    SessionResumed,
    SessionStarted,
    SessionStopped,
    SessionUpdated,
    reduce,
)
from timestables.engine.timer import ExerciseTimer, ScheduledTask, ThreadingTimeoutScheduler, TimeoutScheduler
from timestables.engine.trend import classify_attempt
from timestables.exercises.catalog import (
    Exercise,
    filter_exercises_by_ids,
    generate_exercises_for_tables,
    is_answer_correct,
    normalize_tables,
)
from timestables.exercises.shuffler import shuffle
from timestables.storage.history import AttemptHistoryStore
from timestables.storage.kv import KeyValueStore
from timestables.storage.schemas import ExerciseAttempt, utc_now_iso
from timestables.storage.sessions import SessionRepository
from timestables.storage.summaries import SessionSummaryStore, summarize_rounds

StateListener = Callable[[DrillState], None]


class DrillEngine:
    """
    Runs practice sessions.

    Usage:
        engine = DrillEngine(store)
        engine.start_session([3, 4])
        engine.submit_answer(12, engine.elapsed_seconds())
        if engine.state.awaiting_acknowledgement:
            engine.acknowledge()
        ...
        engine.continue_to_next_round()
    """

    def __init__(
        self,
        store: KeyValueStore,
        preferences: Preferences | None = None,
        scheduler: TimeoutScheduler | None = None,
        rng: random.Random | None = None,
        timer: ExerciseTimer | None = None,
    ):
        self.sessions = SessionRepository(store)
        self.history = AttemptHistoryStore(store)
        self.summaries = SessionSummaryStore(store)
        self.preferences = preferences or Preferences(store)
        self.scheduler = scheduler or ThreadingTimeoutScheduler()
        self.timer = timer or ExerciseTimer()
        self._rng = rng

        self._state = DrillState()
        self._lock = threading.RLock()
        self._listeners: list[StateListener] = []
        self._timeout_task: ScheduledTask | None = None

        # Retries are bound to the generation they failed in; starting or
        # stopping a session moves to a new generation.
        self._generation = 0
        self._retry: tuple[int, str, Callable[[], None]] | None = None

    # =========================================================================
    # State
    # =========================================================================

    @property
    def state(self) -> DrillState:
        return self._state

    @property
    def phase(self) -> Phase:
        return self._state.phase

    def current_exercise(self) -> Exercise | None:
        return self._state.current_exercise

    def previous_attempt(self, exercise_id: str) -> ExerciseAttempt | None:
        return self._state.previous_attempt(exercise_id)

    def elapsed_seconds(self) -> float:
        """Seconds since the current exercise was shown."""
        return self.timer.elapsed()

    def subscribe(self, listener: StateListener) -> Callable[[], None]:
        """Call listener with the new state after every transition."""
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def _dispatch(self, action: Action) -> DrillState:
        self._state = reduce(self._state, action)
        for listener in list(self._listeners):
            listener(self._state)
        return self._state

    # =========================================================================
    # Boundary operations
    # =========================================================================

    def _run(self, operation: str, action: Callable[[], None]) -> bool:
        """Run a mandatory operation; on failure enter the error state with a retry."""
        generation = self._generation
        try:
            action()
            return True
        except DrillError as exc:
            logger.error("{} failed: {}", operation, exc)
            self._retry = (generation, operation, action)
            self._dispatch(
                ErrorRaised(
                    DrillErrorState(
                        message=exc.message or f"Failed to {operation.replace('_', ' ')}. Please try again.",
                        operation=operation,
                        retryable=exc.retryable,
                    )
                )
            )
            return False

    def retry_after_error(self) -> bool:
        """
        Clear the error and re-run the failed operation from the top.

        Returns False when there was nothing (still valid) to retry.
        """
        with self._lock:
            retry = self._retry
            self._retry = None
            self._dispatch(ErrorCleared())
            if retry is None:
                return False
            generation, operation, action = retry
            if generation != self._generation:
                logger.debug("Discarding stale retry of {}", operation)
                return False
            logger.info("Retrying {}", operation)
            return self._run(operation, action)

    def start_session(self, selected_tables: Iterable[int] | None = None) -> bool:
        """Create a session over the selected tables (stored preference when omitted)."""
        with self._lock:
            tables = normalize_tables(selected_tables) if selected_tables else []
            if not tables:
                tables = self.preferences.selected_tables()

            self._cancel_timeout()
            self._generation += 1
            self._retry = None

            def action() -> None:
                session = self.sessions.create_session(tables)
                catalog = generate_exercises_for_tables(tables)
                shuffled = shuffle(catalog, self._rng)
                pending_ids = [ex.exercise_id for ex in shuffled]
                session = self.sessions.update_session(
                    session.id,
                    pending_exercises=pending_ids,
                    active_exercise=pending_ids[0] if pending_ids else None,
                    current_round=1,
                ) or session
                self._dispatch(SessionStarted(session, tuple(catalog), tuple(shuffled)))
                logger.info("Started session {} with tables {} ({} exercises)", session.id, tables, len(catalog))
                self._arm_timeout()

            return self._run("start_session", action)

    def resume_session(self) -> bool:
        """
        Continue the in-progress session, if any.

        Pending work is rebuilt from the stored ids (or the whole catalog when
        none are stored) and reshuffled. A session whose latest round was
        already closed resumes in the summary phase.
        """
        with self._lock:
            if self._state.phase != Phase.IDLE:
                logger.warning("Cannot resume while a session is {}", self._state.phase.value)
                return False

            def action() -> None:
                session = self.sessions.get_active_session()
                if session is None:
                    logger.info("No session to resume")
                    return

                rounds = tuple(self.sessions.get_rounds(session.id))
                tables = session.selected_tables or self.preferences.selected_tables()
                catalog = generate_exercises_for_tables(tables)

                if rounds and rounds[-1].round_number >= session.current_round:
                    self._dispatch(SessionResumed(session, rounds, tuple(catalog), (), in_summary=True))
                    logger.info("Resumed session {} at round {} summary", session.id, session.current_round)
                    return

                source = catalog
                if session.pending_exercises:
                    source = filter_exercises_by_ids(catalog, session.pending_exercises)
                    if not source:
                        logger.warning("Stored pending exercises not in catalog; using full catalog")
                        source = catalog
                pending = shuffle(source, self._rng)

                self._dispatch(SessionResumed(session, rounds, tuple(catalog), tuple(pending)))
                logger.info(
                    "Resumed session {} at round {} ({} pending)", session.id, session.current_round, len(pending)
                )
                self._save_progress()
                self._arm_timeout()

            self._generation += 1
            self._retry = None
            return self._run("resume_session", action)

    def submit_answer(
        self, answer: int, elapsed_seconds: float, exercise_id: str | None = None
    ) -> ExerciseAttempt | None:
        """
        Score an answer for the current exercise.

        Correct requires the right product AND elapsed < time limit. Time
        charged is elapsed when correct, otherwise the time limit. A correct
        answer is recorded immediately; anything else waits for acknowledge().

        Args:
            answer: The user's answer
            elapsed_seconds: Time since the exercise was shown
            exercise_id: Exercise the answer was typed for; ignored if no longer current

        Returns:
            The scored attempt, or None when the submission was not accepted
        """
        with self._lock:
            exercise = self._accepting(exercise_id)
            if exercise is None:
                return None
            self._cancel_timeout()
            self.timer.stop()

            time_limit = self.preferences.time_limit()
            elapsed = max(0.0, float(elapsed_seconds))
            correct = is_answer_correct(exercise, answer) and elapsed < time_limit
            time_taken = elapsed if correct else float(time_limit)
            attempt = self._score(exercise, answer, correct, time_taken)
            if correct:
                self._record(attempt)
            else:
                self._dispatch(AttemptScored(attempt))
            return attempt

    def handle_timeout(
        self, elapsed_seconds: float | None = None, exercise_id: str | None = None
    ) -> ExerciseAttempt | None:
        """
        Mark the current exercise as timed out (no answer, time = limit).

        The exercise stays current until acknowledge(); no further timeout
        is armed before then.
        """
        with self._lock:
            exercise = self._accepting(exercise_id)
            if exercise is None:
                return None
            self._cancel_timeout()
            time_limit = self.preferences.time_limit()
            stopped_at = self.timer.stop(limit=time_limit)
            logger.debug(
                "Timeout on {} after {}s",
                exercise.exercise_id,
                stopped_at if elapsed_seconds is None else elapsed_seconds,
            )
            attempt = self._score(exercise, None, False, float(time_limit))
            self._dispatch(AttemptScored(attempt))
            return attempt

    def acknowledge(self) -> ExerciseAttempt | None:
        """
        Record the failed attempt on screen and move to the next exercise.

        Called by the front end once the user has seen (and corrected) the
        feedback. Returns the recorded attempt, or None when nothing was waiting.
        """
        with self._lock:
            state = self._state
            attempt = state.feedback
            if attempt is None or state.phase != Phase.EXERCISE or state.error is not None:
                return None
            return self._record(attempt)

    def continue_to_next_round(self) -> bool:
        """From the summary: complete the session on mastery, else replay the failures."""
        with self._lock:
            state = self._state
            if state.phase != Phase.SUMMARY or state.error is not None or state.session is None:
                return False
            last_round = state.last_completed_round
            if last_round is None:
                return False

            failed_ids = last_round.failed_exercise_ids()
            if not failed_ids:
                return self._run("complete_session", self._complete_session)

            failed = filter_exercises_by_ids(state.all_exercises, failed_ids)

            def action() -> None:
                session = self._state.session
                shuffled = shuffle(failed, self._rng)
                pending_ids = [ex.exercise_id for ex in shuffled]
                next_round = session.current_round + 1
                updated = self.sessions.update_session(
                    session.id,
                    current_round=next_round,
                    pending_exercises=pending_ids,
                    active_exercise=pending_ids[0] if pending_ids else None,
                )
                if updated is None:
                    updated = session.model_copy(
                        update={"current_round": next_round, "pending_exercises": pending_ids}
                    )
                self._dispatch(NextRoundStarted(updated, tuple(shuffled)))
                logger.info("Round {} started with {} exercises to retry", next_round, len(shuffled))
                self._arm_timeout()

            return self._run("start_next_round", action)

    def stop_session(self) -> bool:
        """
        Stop immediately and mark the session stopped.

        The in-memory transition to idle happens first; if the write fails,
        its retry only repeats the write.
        """
        with self._lock:
            state = self._state
            if state.phase not in (Phase.EXERCISE, Phase.SUMMARY):
                return False

            session = state.session
            self._cancel_timeout()
            self._generation += 1
            self._retry = None
            self._dispatch(SessionStopped())
            if session is None:
                return True

            def action() -> None:
                self.sessions.update_session(session.id, status="stopped", end_time=utc_now_iso())
                logger.info("Stopped session {}", session.id)

            return self._run("stop_session", action)

    def restart_session(self) -> bool:
        """Discard the current session state and start over with the same tables."""
        with self._lock:
            tables = self._state.session.selected_tables if self._state.session else None
            if self._state.phase in (Phase.EXERCISE, Phase.SUMMARY):
                self.stop_session()
            self.reset()
            return self.start_session(tables)

    def reset(self) -> None:
        with self._lock:
            self._cancel_timeout()
            self._generation += 1
            self._retry = None
            self._dispatch(Reset())

    def close(self) -> None:
        """Cancel any pending timeout (call before exiting)."""
        with self._lock:
            self._cancel_timeout()

    # =========================================================================
    # Internals
    # =========================================================================

    def _accepting(self, exercise_id: str | None) -> Exercise | None:
        state = self._state
        if state.phase != Phase.EXERCISE or state.error is not None or state.session is None:
            return None
        exercise = state.current_exercise
        if exercise is None or state.awaiting_acknowledgement:
            return None
        if exercise_id is not None and exercise_id != exercise.exercise_id:
            logger.debug("Ignoring stale submission for {} (current {})", exercise_id, exercise.exercise_id)
            return None
        return exercise

    def _score(
        self, exercise: Exercise, answer: int | None, correct: bool, time_taken: float
    ) -> ExerciseAttempt:
        time_taken = round(time_taken, 2)
        return ExerciseAttempt(
            exercise_id=exercise.exercise_id,
            factors=exercise.factors,
            user_answer=answer,
            correct=correct,
            time_taken_sec=time_taken,
            result=classify_attempt(self._state.previous_attempt(exercise.exercise_id), correct, time_taken),
        )

    def _record(self, attempt: ExerciseAttempt) -> ExerciseAttempt:
        self._append_history(attempt)

        is_last = self._state.is_last_exercise
        self._dispatch(AttemptRecorded(attempt))

        if is_last:
            self._run("close_round", self._close_round)
        else:
            self._dispatch(ExerciseAdvanced())
            self._save_progress()
            self._arm_timeout()
        return attempt

    def _append_history(self, attempt: ExerciseAttempt) -> None:
        try:
            self.history.append(self._state.session.id, attempt)
        except PersistenceError as exc:
            logger.warning("Could not save {} to history: {}", attempt.exercise_id, exc)

    def _save_progress(self) -> None:
        state = self._state
        remaining = state.remaining_exercise_ids
        try:
            updated = self.sessions.update_session(
                state.session.id,
                pending_exercises=remaining,
                active_exercise=remaining[0] if remaining else None,
            )
        except PersistenceError as exc:
            logger.warning("Could not save progress: {}", exc)
            return
        if updated is not None:
            self._dispatch(SessionUpdated(updated))

    def _close_round(self) -> None:
        state = self._state
        if state.phase != Phase.EXERCISE or state.current_round is None:
            return
        session_id = state.session.id
        stored = self.sessions.save_round(session_id, state.current_round)
        updated = self.sessions.update_session(session_id, pending_exercises=[], active_exercise=None)
        self._dispatch(RoundClosed(stored))
        if updated is not None:
            self._dispatch(SessionUpdated(updated))
        logger.info(
            "Round {} closed: {}/{} correct",
            stored.round_number,
            len(stored.exercises) - len(stored.failed_exercise_ids()),
            len(stored.exercises),
        )

    def _complete_session(self) -> None:
        state = self._state
        session = state.session
        rounds = list(state.completed_rounds)
        end_time = utc_now_iso()

        self.summaries.upsert(summarize_rounds(session.id, rounds, session.start_time, end_time))
        comparison = compare_sessions(
            session.id, rounds, session.start_time, self.history, self.summaries, end_time=end_time
        )
        updated = self.sessions.update_session(session.id, status="completed", end_time=end_time)
        if updated is None:
            updated = session.model_copy(update={"status": "completed", "end_time": end_time})
        self._dispatch(SessionCompleted(updated, comparison))
        logger.info("Session {} completed in {} rounds", session.id, len(rounds))

    def _arm_timeout(self) -> None:
        """Cancel the previous timeout and schedule one for the current exercise."""
        self._cancel_timeout()
        exercise = self._state.current_exercise
        if exercise is None:
            return
        time_limit = self.preferences.time_limit()
        self.timer.start()
        self._timeout_task = self.scheduler.schedule(
            time_limit, self._on_timeout, label=exercise.exercise_id
        )

    def _cancel_timeout(self) -> None:
        task = self._timeout_task
        self._timeout_task = None
        if task is not None:
            task.cancel()
        self.scheduler.cancel()

    def _on_timeout(self, task: ScheduledTask) -> None:
        with self._lock:
            if task is not self._timeout_task:
                return
            self._timeout_task = None
            self.handle_timeout(exercise_id=task.label)
