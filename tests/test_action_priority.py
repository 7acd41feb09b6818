"""
Tests: Action Priority calculator.

Covers:
    - Known S/O/D combinations per severity band
    - Totality over 1..10 for every rating
    - Monotonicity in S, O and D
    - RPN product and rating clamping
"""

import itertools

import pytest

from app.services.action_priority import (
    action_priority,
    calculate_rpn,
    clamp_rating,
    priority_rank,
)

RATINGS = range(1, 11)


class TestKnownCombinations:
    @pytest.mark.parametrize("s,o,d,expected", [
        (10, 1, 1, "M"),
        (10, 1, 5, "H"),
        (9, 2, 1, "H"),
        (9, 5, 5, "H"),
        (8, 1, 4, "L"),
        (8, 1, 5, "M"),
        (8, 1, 9, "H"),
        (7, 2, 2, "L"),
        (7, 2, 3, "M"),
        (7, 4, 2, "M"),
        (7, 4, 5, "H"),
        (7, 7, 1, "H"),
        (5, 1, 8, "L"),
        (5, 1, 9, "M"),
        (4, 4, 7, "H"),
        (4, 4, 6, "M"),
        (6, 7, 2, "M"),
        (6, 7, 3, "H"),
        (3, 7, 9, "H"),
        (3, 4, 6, "L"),
        (2, 2, 9, "M"),
        (1, 1, 10, "L"),
    ])
    def test_table(self, s, o, d, expected):
        assert action_priority(s, o, d) == expected


class TestTotality:
    def test_every_combination_has_a_priority(self):
        for s, o, d in itertools.product(RATINGS, RATINGS, RATINGS):
            assert action_priority(s, o, d) in ("H", "M", "L")


class TestMonotonicity:
    @pytest.mark.parametrize("axis", [0, 1, 2])
    def test_raising_one_rating_never_lowers_priority(self, axis):
        for s, o, d in itertools.product(RATINGS, RATINGS, RATINGS):
            ratings = [s, o, d]
            if ratings[axis] == 10:
                continue
            higher = list(ratings)
            higher[axis] += 1
            assert priority_rank(action_priority(*higher)) >= priority_rank(action_priority(*ratings)), (
                f"{ratings} -> {higher}"
            )


class TestRpn:
    def test_product(self):
        assert calculate_rpn(9, 5, 5) == 225
        assert calculate_rpn(4, 4, 7) == 112

    def test_range(self):
        assert calculate_rpn(1, 1, 1) == 1
        assert calculate_rpn(10, 10, 10) == 1000

    def test_out_of_range_ratings_are_clamped(self):
        assert calculate_rpn(0, 11, 5) == 1 * 10 * 5

    @pytest.mark.parametrize("raw,expected", [
        (None, 1), ("", 1), ("abc", 1), (0, 1), (-3, 1), (11, 10), ("7", 7), (6.9, 6),
        (float("inf"), 10), (float("-inf"), 1), (float("nan"), 1), ("inf", 10), (1e400, 10),
    ])
    def test_clamp_rating(self, raw, expected):
        assert clamp_rating(raw) == expected
