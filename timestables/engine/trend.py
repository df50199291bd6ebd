"""
In-session trend tagging.

Each attempt is compared with the latest earlier attempt at the same exercise
within the same session (earlier rounds only, never other sessions):

    no earlier attempt           -> first
    wrong before, right now      -> improved
    right before, wrong now      -> deteriorated
    right both times             -> by time: faster improved, slower deteriorated
    wrong both times             -> same
"""

from __future__ import annotations

from timestables.storage.schemas import ExerciseAttempt, ExerciseResult


def classify_attempt(
    previous: ExerciseAttempt | None, correct: bool, time_taken_sec: float
) -> ExerciseResult:
    if previous is None:
        return "first"
    if correct and not previous.correct:
        return "improved"
    if not correct and previous.correct:
        return "deteriorated"
    if correct and previous.correct:
        if time_taken_sec < previous.time_taken_sec:
            return "improved"
        if time_taken_sec > previous.time_taken_sec:
            return "deteriorated"
    return "same"
