"""
Integration tests: complete drill sessions against the durable backends.

Run: pytest tests/integration/test_drill_flow.py -v
"""

import random

import pytest

from timestables.core.preferences import Preferences
from timestables.engine import DrillEngine, ExerciseStatus, ExerciseTimer, ManualTimeoutScheduler, Phase
from timestables.storage import (
    AttemptHistoryStore,
    JsonFileKeyValueStore,
    SessionRepository,
    SessionSummaryStore,
    SqlKeyValueStore,
)


@pytest.fixture(params=["json", "sqlite"])
def open_store(request, tmp_path):
    """Factory returning a fresh handle on the same durable store."""
    if request.param == "json":
        return lambda: JsonFileKeyValueStore(tmp_path / "store")
    url = f"sqlite:///{tmp_path / 'drill.db'}"
    return lambda: SqlKeyValueStore(url)


def build_engine(store, settings, seed=0):
    scheduler = ManualTimeoutScheduler()
    return DrillEngine(
        store,
        Preferences(store, settings),
        scheduler=scheduler,
        rng=random.Random(seed),
        timer=ExerciseTimer(clock=lambda: scheduler.now),
    )


def play_round(engine, wrong=(), elapsed=2.0):
    while engine.phase == Phase.EXERCISE:
        exercise = engine.current_exercise()
        a, b = exercise.factors
        engine.submit_answer(a * b + (1 if exercise.exercise_id in wrong else 0), elapsed)
        if engine.state.awaiting_acknowledgement:
            engine.acknowledge()


class TestDurableSessions:
    """Sessions survive process restarts."""

    def test_full_session(self, open_store, settings):
        engine = build_engine(open_store(), settings)
        engine.start_session([3, 4])
        play_round(engine, wrong={"3x4", "4x3"})
        assert engine.continue_to_next_round()
        assert {ex.exercise_id for ex in engine.state.pending_exercises} == {"3x4", "4x3"}
        play_round(engine)
        engine.continue_to_next_round()
        assert engine.phase == Phase.COMPLETE
        engine.close()

        store = open_store()
        session = SessionRepository(store).get_session()
        assert session.status == "completed"
        assert len(SessionRepository(store).get_rounds(session.id)) == 2
        assert [e.correct for e in AttemptHistoryStore(store).attempts("3x4")] == [False, True]
        summary = SessionSummaryStore(store).all_summaries()[-1]
        assert summary.total_exercises == 6
        assert summary.total_rounds == 2

    def test_resume_after_restart(self, open_store, settings):
        engine = build_engine(open_store(), settings)
        engine.start_session([3, 4])
        engine.submit_answer(0, 1.0)
        engine.acknowledge()
        remaining = set(engine.state.remaining_exercise_ids)
        engine.close()

        resumed = build_engine(open_store(), settings, seed=3)
        resumed.resume_session()
        assert resumed.phase == Phase.EXERCISE
        assert {ex.exercise_id for ex in resumed.state.pending_exercises} == remaining
        play_round(resumed)
        assert resumed.phase == Phase.SUMMARY
        resumed.close()

    def test_second_session_sees_new_records(self, open_store, settings):
        first = build_engine(open_store(), settings)
        first.start_session([3, 4])
        play_round(first, elapsed=4.0)
        first.continue_to_next_round()
        first.close()

        second = build_engine(open_store(), settings)
        second.start_session([3, 4])
        play_round(second, elapsed=3.0)
        second.continue_to_next_round()

        comparison = second.state.comparison
        assert comparison.stats.new_records == 4
        assert all(item.status == ExerciseStatus.NEW_RECORD for item in comparison.exercise_improvements)
        assert comparison.improvement.average_time == pytest.approx(-1.0)
        second.close()

    def test_time_limit_preference_persists(self, open_store, settings):
        Preferences(open_store(), settings).set_time_limit(25)
        assert Preferences(open_store(), settings).time_limit() == 25
