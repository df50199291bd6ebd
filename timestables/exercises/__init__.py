"""
Exercises Module - Catalog generation and shuffling.
"""

from timestables.exercises.catalog import (
    DEFAULT_TABLES,
    DEFAULT_TIME_LIMIT_SECONDS,
    Exercise,
    filter_exercises_by_ids,
    generate_all_exercises,
    generate_exercises_for_tables,
    get_correct_answer,
    is_answer_correct,
    make_exercise_id,
    normalize_tables,
    parse_answer,
    parse_exercise_id,
)
from timestables.exercises.shuffler import shuffle

__all__ = [
    "DEFAULT_TABLES",
    "DEFAULT_TIME_LIMIT_SECONDS",
    "Exercise",
    "filter_exercises_by_ids",
    "generate_all_exercises",
    "generate_exercises_for_tables",
    "get_correct_answer",
    "is_answer_correct",
    "make_exercise_id",
    "normalize_tables",
    "parse_answer",
    "parse_exercise_id",
    "shuffle",
]
