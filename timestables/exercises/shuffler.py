"""Unbiased shuffling for exercise order."""

from __future__ import annotations

import random
from collections.abc import Sequence
from typing import TypeVar

T = TypeVar("T")


def shuffle(items: Sequence[T], rng: random.Random | None = None) -> list[T]:
    """
    Fisher-Yates shuffle on a copy of items.

    The input is never mutated and every call draws a fresh permutation.

    Args:
        items: Sequence to permute
        rng: Optional random source (module-level random when omitted)
    """
    source = rng or random
    shuffled = list(items)
    for i in range(len(shuffled) - 1, 0, -1):
        j = source.randint(0, i)
        shuffled[i], shuffled[j] = shuffled[j], shuffled[i]
    return shuffled
