"""Tests for solution validation and time-decayed scoring."""

import pytest

from taskloot.errors import ValidationError
from taskloot.puzzles.scoring import calculate_time_bonus, validate_solution

CORRECT = list(range(9))


def test_correct_solution_at_45_seconds():
    result = validate_solution(CORRECT, CORRECT, 45_000)

    assert result.is_correct is True
    assert result.base_score == 100
    assert result.time_bonus == 42
    assert result.score == 142
    assert result.time_taken_seconds == 45.0


def test_instant_solution_gets_full_bonus():
    result = validate_solution(CORRECT, CORRECT, 0)

    assert result.score == 150


@pytest.mark.parametrize("elapsed_ms", [300_000, 301_000, 3_600_000])
def test_bonus_floors_at_zero(elapsed_ms):
    result = validate_solution(CORRECT, CORRECT, elapsed_ms)

    assert result.time_bonus == 0
    assert result.score == 100


def test_wrong_order_scores_zero():
    submitted = [1, 0, *range(2, 9)]

    result = validate_solution(submitted, CORRECT, 10_000)

    assert result.is_correct is False
    assert result.score == 0
    assert result.time_bonus == 0


def test_custom_time_limit():
    assert calculate_time_bonus(30, max_time_seconds=60) == 25
    assert calculate_time_bonus(10, max_time_seconds=0) == 0


@pytest.mark.parametrize(
    "submitted",
    [
        list(range(8)),
        list(range(10)),
        [0, 0, 1, 2, 3, 4, 5, 6, 7],
        [0, 1, 2, 3, 4, 5, 6, 7, 99],
        [0, 1, 2, 3, 4, 5, 6, 7, "8"],
        [True, 1, 2, 3, 4, 5, 6, 7, 8],
    ],
)
def test_malformed_solution_rejected(submitted):
    with pytest.raises(ValidationError) as exc_info:
        validate_solution(submitted, CORRECT, 1_000)
    assert exc_info.value.field == "solution"


def test_negative_time_rejected():
    with pytest.raises(ValidationError) as exc_info:
        validate_solution(CORRECT, CORRECT, -1)
    assert exc_info.value.field == "time_taken_ms"
