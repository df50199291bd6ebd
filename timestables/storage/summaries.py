"""Session summaries: one aggregate row per finished session."""

from __future__ import annotations

from collections.abc import Sequence

from timestables.storage.kv import KeyValueStore
from timestables.storage.schemas import Round, SessionSummary, load_records

SUMMARIES_KEY = "drill.summaries"


def summarize_rounds(
    session_id: str,
    rounds: Sequence[Round],
    start_time: str,
    end_time: str | None,
) -> SessionSummary:
    """
    Aggregate every attempt of every round.

    Average time and success rate are 0 when there were no attempts.
    """
    total = 0
    correct = 0
    total_time = 0.0
    for round_ in rounds:
        for attempt in round_.exercises:
            total += 1
            if attempt.correct:
                correct += 1
            total_time += attempt.time_taken_sec

    return SessionSummary(
        session_id=session_id,
        start_time=start_time,
        end_time=end_time,
        total_exercises=total,
        correct_exercises=correct,
        total_rounds=len(rounds),
        average_time_sec=total_time / total if total else 0.0,
        success_rate=correct / total * 100 if total else 0.0,
    )


class SessionSummaryStore:
    """Ordered list of summaries; the last element is the most recent."""

    def __init__(self, store: KeyValueStore):
        self.store = store

    def all_summaries(self) -> list[SessionSummary]:
        return load_records(SessionSummary, self.store.get(SUMMARIES_KEY))

    def upsert(self, summary: SessionSummary) -> None:
        """Replace any summary for the same session and append this one last."""
        kept = [s for s in self.all_summaries() if s.session_id != summary.session_id]
        kept.append(summary)
        self.store.put(SUMMARIES_KEY, [s.to_json() for s in kept])

    def previous(self, exclude_session_id: str) -> SessionSummary | None:
        """Most recent summary belonging to any other session."""
        others = [s for s in self.all_summaries() if s.session_id != exclude_session_id]
        return others[-1] if others else None
