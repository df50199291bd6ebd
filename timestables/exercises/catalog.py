"""
Exercise catalog for multiplication tables.

A catalog is the full cross product of the selected tables with themselves:
tables {3, 4} yield 3x3, 3x4, 4x3 and 4x4. The order is deterministic
(ascending nested iteration) and is expected to be shuffled downstream.
"""

from __future__ import annotations

import re
from collections.abc import Iterable, Sequence
from dataclasses import dataclass

from timestables.core.errors import ValidationError

DEFAULT_TABLES: tuple[int, ...] = (3, 4, 5, 6, 7, 8, 9)
MIN_TABLE = 1
MAX_TABLE = 10

DEFAULT_TIME_LIMIT_SECONDS = 10
MIN_TIME_LIMIT_SECONDS = 3
MAX_TIME_LIMIT_SECONDS = 60

_EXERCISE_ID_RE = re.compile(r"^(\d+)x(\d+)$")


@dataclass(frozen=True)
class Exercise:
    """One multiplication fact."""

    exercise_id: str
    factors: tuple[int, int]

    @classmethod
    def from_factors(cls, a: int, b: int) -> "Exercise":
        return cls(exercise_id=make_exercise_id(a, b), factors=(a, b))

    @property
    def prompt(self) -> str:
        return f"{self.factors[0]} × {self.factors[1]}"


def make_exercise_id(a: int, b: int) -> str:
    return f"{a}x{b}"


def parse_exercise_id(exercise_id: str) -> tuple[int, int]:
    """Decode "AxB" back into its factor pair."""
    match = _EXERCISE_ID_RE.match(exercise_id.strip())
    if not match:
        raise ValidationError(f"Malformed exercise id: {exercise_id!r}")
    return int(match.group(1)), int(match.group(2))


def normalize_tables(tables: Iterable[int]) -> list[int]:
    """Deduplicate and sort a table selection, rejecting tables outside 1-10."""
    selected = list(tables)
    for table in selected:
        if isinstance(table, bool) or not isinstance(table, int) or not MIN_TABLE <= table <= MAX_TABLE:
            raise ValidationError(f"Tables must be integers between {MIN_TABLE} and {MAX_TABLE}, got {table!r}")
    return sorted(set(selected))


def generate_exercises_for_tables(tables: Iterable[int]) -> list[Exercise]:
    """
    Generate every exercise whose two factors are both in the selected tables.

    Args:
        tables: Selected tables; duplicates collapse

    Returns:
        len(tables) ** 2 exercises in ascending nested order
    """
    selected = sorted(set(tables))
    return [Exercise.from_factors(a, b) for a in selected for b in selected]


def generate_all_exercises() -> list[Exercise]:
    """The default 3..9 catalog (49 exercises)."""
    return generate_exercises_for_tables(DEFAULT_TABLES)


def get_correct_answer(exercise: Exercise) -> int:
    return exercise.factors[0] * exercise.factors[1]


def is_answer_correct(exercise: Exercise, answer: int | None) -> bool:
    return answer is not None and answer == get_correct_answer(exercise)


def filter_exercises_by_ids(exercises: Sequence[Exercise], exercise_ids: Iterable[str]) -> list[Exercise]:
    """Keep the exercises whose id is listed, preserving the order of exercises."""
    wanted = set(exercise_ids)
    return [ex for ex in exercises if ex.exercise_id in wanted]


def parse_answer(raw: str | None) -> int:
    """
    Validate a typed answer.

    Raises:
        ValidationError: Empty or non-integer input
    """
    text = (raw or "").strip()
    if not text:
        raise ValidationError("Answer is empty")
    try:
        return int(text)
    except ValueError:
        raise ValidationError(f"Answer must be a whole number, got {text!r}") from None
