"""Solution validation and time-decayed scoring.

Deterministic, no I/O:
    score = 100 + floor(50 * max(0, (max_time - elapsed) / max_time))
for an exact match, 0 otherwise. No partial credit.
"""

from __future__ import annotations

import math
from collections.abc import Sequence
from dataclasses import dataclass

from taskloot.errors import ValidationError

BASE_SCORE = 100
MAX_TIME_BONUS = 50
DEFAULT_MAX_TIME_SECONDS = 300


@dataclass(frozen=True)
class SolutionResult:
    is_correct: bool
    score: int
    base_score: int
    time_bonus: int
    time_taken_seconds: float


def calculate_time_bonus(elapsed_seconds: float, max_time_seconds: float = DEFAULT_MAX_TIME_SECONDS) -> int:
    """Linear bonus from 50 at 0s down to 0 at ``max_time_seconds``; never negative."""
    if max_time_seconds <= 0:
        return 0
    ratio = max(0.0, (max_time_seconds - elapsed_seconds) / max_time_seconds)
    return math.floor(ratio * MAX_TIME_BONUS)


def validate_solution(
    submitted: Sequence[int],
    correct: Sequence[int],
    elapsed_ms: float,
    max_time_seconds: float = DEFAULT_MAX_TIME_SECONDS,
) -> SolutionResult:
    """Compare a submitted ordering with the stored solution and score it.

    Raises:
        ValidationError: wrong shape, foreign indices, or negative elapsed time.
    """
    if not isinstance(submitted, (list, tuple)) or not isinstance(correct, (list, tuple)):
        raise ValidationError("Solution must be a list of piece indices", field="solution")
    if any(isinstance(i, bool) or not isinstance(i, int) for i in submitted):
        raise ValidationError("Solution must contain integer piece indices", field="solution")
    if len(submitted) != len(correct):
        raise ValidationError(
            f"Solution must contain exactly {len(correct)} pieces", field="solution"
        )
    if sorted(submitted) != sorted(correct):
        raise ValidationError("Solution must use each puzzle piece exactly once", field="solution")
    if elapsed_ms < 0:
        raise ValidationError("Elapsed time cannot be negative", field="time_taken_ms")

    elapsed_seconds = elapsed_ms / 1000
    if list(submitted) != list(correct):
        return SolutionResult(
            is_correct=False,
            score=0,
            base_score=0,
            time_bonus=0,
            time_taken_seconds=elapsed_seconds,
        )

    time_bonus = calculate_time_bonus(elapsed_seconds, max_time_seconds)
    return SolutionResult(
        is_correct=True,
        score=BASE_SCORE + time_bonus,
        base_score=BASE_SCORE,
        time_bonus=time_bonus,
        time_taken_seconds=elapsed_seconds,
    )
