"""
Unit tests for the session repository, attempt history and summaries.

Run: pytest tests/unit/test_storage_stores.py -v
"""

import pytest

from timestables.storage import (
    AttemptHistoryStore,
    ExerciseAttempt,
    MemoryKeyValueStore,
    Round,
    SessionRepository,
    SessionSummaryStore,
    summarize_rounds,
)
from timestables.storage.history import HISTORY_KEY
from timestables.storage.sessions import ROUNDS_KEY


def attempt(exercise_id="3x4", correct=True, time_taken=2.0):
    a, b = (int(part) for part in exercise_id.split("x"))
    return ExerciseAttempt(
        exercise_id=exercise_id,
        factors=(a, b),
        user_answer=a * b if correct else a * b + 1,
        correct=correct,
        time_taken_sec=time_taken,
    )


@pytest.fixture
def repo():
    return SessionRepository(MemoryKeyValueStore())


# ========================================
# Sessions
# ========================================


class TestSessionRepository:
    """Test the current-session record."""

    def test_create_session(self, repo):
        session = repo.create_session([3, 4])
        assert session.status == "in_progress"
        assert session.current_round == 1
        assert session.selected_tables == [3, 4]
        assert repo.get_session() == session
        assert repo.get_rounds(session.id) == []

    def test_new_session_replaces_previous(self, repo):
        first = repo.create_session([3])
        second = repo.create_session([4])
        assert first.id != second.id
        assert repo.get_session().id == second.id

    def test_update_progress(self, repo):
        session = repo.create_session([3, 4])
        updated = repo.update_session(session.id, pending_exercises=["3x4"], active_exercise="3x4")
        assert updated.pending_exercises == ["3x4"]
        assert updated.updated_at is not None
        assert repo.get_session().active_exercise == "3x4"

    def test_update_wrong_session_is_ignored(self, repo):
        repo.create_session([3])
        assert repo.update_session("other", current_round=2) is None
        assert repo.get_session().current_round == 1

    def test_current_round_cannot_decrease(self, repo):
        session = repo.create_session([3])
        repo.update_session(session.id, current_round=2)
        with pytest.raises(ValueError):
            repo.update_session(session.id, current_round=1)

    def test_only_progress_fields_updatable(self, repo):
        session = repo.create_session([3])
        with pytest.raises(ValueError):
            repo.update_session(session.id, selected_tables=[9])

    def test_final_session_is_not_updated(self, repo):
        session = repo.create_session([3])
        repo.update_session(session.id, status="stopped")
        assert repo.update_session(session.id, status="in_progress") is None
        assert repo.get_session().status == "stopped"
        assert repo.get_active_session() is None

    def test_save_round_is_idempotent(self, repo):
        session = repo.create_session([3, 4])
        round_ = Round(round_number=1).with_attempt(attempt())
        first = repo.save_round(session.id, round_)
        repo.save_round(session.id, round_)
        rounds = repo.get_rounds(session.id)
        assert len(rounds) == 1
        assert first.id is not None
        assert first.created_at is not None

    def test_rounds_sorted_by_number(self, repo):
        session = repo.create_session([3])
        repo.save_round(session.id, Round(round_number=2))
        repo.save_round(session.id, Round(round_number=1))
        assert [r.round_number for r in repo.get_rounds(session.id)] == [1, 2]

    def test_rounds_of_other_session_hidden(self, repo):
        session = repo.create_session([3])
        repo.save_round(session.id, Round(round_number=1))
        assert repo.get_rounds("other") == []

    def test_clear(self, repo):
        session = repo.create_session([3])
        repo.clear()
        assert repo.get_session() is None
        assert repo.get_rounds(session.id) == []

    def test_stale_rounds_payload(self):
        store = MemoryKeyValueStore()
        store.put(ROUNDS_KEY, ["legacy", "list"])
        assert SessionRepository(store).get_rounds("s1") == []


# ========================================
# History
# ========================================


class TestAttemptHistoryStore:
    """Test the cross-session attempt log."""

    @pytest.fixture
    def history(self):
        return AttemptHistoryStore(MemoryKeyValueStore())

    def test_append_and_read_in_order(self, history):
        history.append("s1", attempt(time_taken=4.0))
        history.append("s2", attempt(time_taken=3.0))
        times = [e.time_taken_sec for e in history.attempts("3x4")]
        assert times == [4.0, 3.0]

    def test_previous_attempts_excludes_session(self, history):
        history.append("s1", attempt(time_taken=4.0))
        history.append("s2", attempt(time_taken=3.0))
        assert [e.session_id for e in history.previous_attempts("3x4", "s2")] == ["s1"]

    def test_last_attempt(self, history):
        history.append("s1", attempt(time_taken=4.0))
        history.append("s2", attempt(correct=False, time_taken=10.0))
        assert history.last_attempt("3x4").session_id == "s2"
        assert history.last_attempt("3x4", exclude_session_id="s2").session_id == "s1"
        assert history.last_attempt("9x9") is None

    def test_best_time_ignores_wrong_answers(self, history):
        history.append("s1", attempt(time_taken=4.0))
        history.append("s1", attempt(correct=False, time_taken=1.0))
        history.append("s2", attempt(time_taken=3.5))
        assert history.best_time("3x4") == 3.5

    def test_best_time_without_correct_attempts(self, history):
        history.append("s1", attempt(correct=False, time_taken=10.0))
        assert history.best_time("3x4") is None

    def test_all_history_keyed_by_exercise(self, history):
        history.append("s1", attempt("3x4"))
        history.append("s1", attempt("4x3"))
        assert set(history.all_history()) == {"3x4", "4x3"}

    def test_corrupted_log_reads_as_empty(self):
        store = MemoryKeyValueStore()
        store.put(HISTORY_KEY, ["not", "a", "mapping"])
        assert AttemptHistoryStore(store).attempts("3x4") == []


# ========================================
# Summaries
# ========================================


class TestSummaries:
    """Test session summaries."""

    def test_summarize_rounds(self):
        round_1 = (
            Round(round_number=1)
            .with_attempt(attempt("3x3", time_taken=1.0))
            .with_attempt(attempt("3x4", correct=False, time_taken=10.0))
        )
        round_2 = Round(round_number=2).with_attempt(attempt("3x4", time_taken=4.0))
        summary = summarize_rounds("s1", [round_1, round_2], "start", "end")
        assert summary.total_exercises == 3
        assert summary.correct_exercises == 2
        assert summary.total_rounds == 2
        assert summary.average_time_sec == pytest.approx(5.0)
        assert summary.success_rate == pytest.approx(200 / 3)

    def test_summarize_no_attempts(self):
        summary = summarize_rounds("s1", [], "start", None)
        assert summary.average_time_sec == 0.0
        assert summary.success_rate == 0.0

    def test_upsert_replaces_same_session(self):
        store = SessionSummaryStore(MemoryKeyValueStore())
        store.upsert(summarize_rounds("s1", [], "a", None))
        store.upsert(summarize_rounds("s2", [], "b", None))
        store.upsert(summarize_rounds("s1", [], "c", None))
        summaries = store.all_summaries()
        assert [s.session_id for s in summaries] == ["s2", "s1"]
        assert summaries[-1].start_time == "c"

    def test_previous_skips_current(self):
        store = SessionSummaryStore(MemoryKeyValueStore())
        assert store.previous("s1") is None
        store.upsert(summarize_rounds("s0", [], "a", None))
        store.upsert(summarize_rounds("s1", [], "b", None))
        assert store.previous("s1").session_id == "s0"
