"""Tests for the optimal slide matcher and its greedy fallback."""

from __future__ import annotations

import itertools
from unittest.mock import patch

import pytest

from decksync.diff.hungarian import (
    build_similarity_matrix,
    greedy_assignment,
    match,
    solve_assignment,
    to_cost_matrix,
)
from decksync.diff.similarity import MAX_SCORE
from decksync.errors import DeckSyncInvariantError, ErrorCode
from decksync.models import Slide


def _cost(assignment: list[int], cost: list[list[int]]) -> int:
    return sum(cost[i][j] for i, j in enumerate(assignment))


def _brute_force_min(cost: list[list[int]]) -> int:
    n = len(cost)
    return min(_cost(list(p), cost) for p in itertools.permutations(range(n)))


# =========================================================================
# Matrix helpers
# =========================================================================


class TestMatrices:
    def test_similarity_matrix_includes_position_bonus(self):
        before = [Slide(layout="a", titles=["x"])]
        after = [Slide(layout="a", titles=["x"])]
        assert build_similarity_matrix(before, after) == [[MAX_SCORE + 8]]

    def test_cost_matrix_is_max_minus_value(self):
        assert to_cost_matrix([[5, 1], [0, 3]]) == [[0, 4], [5, 2]]

    def test_cost_matrix_empty(self):
        assert to_cost_matrix([]) == []


# =========================================================================
# Solver
# =========================================================================


class TestSolveAssignment:
    def test_empty(self):
        assert solve_assignment([]) == []

    def test_single(self):
        assert solve_assignment([[7]]) == [0]

    def test_augmenting_path_beats_greedy(self):
        cost = [[1, 2], [1, 100]]
        assert greedy_assignment(cost) == [0, 1]
        assert solve_assignment(cost) == [1, 0]

    def test_requires_cover_and_shift(self):
        cost = [[1, 2, 3], [2, 4, 6], [3, 6, 9]]
        assignment = solve_assignment(cost)
        assert assignment == [2, 1, 0]
        assert _cost(assignment, cost) == 10

    def test_cap_reached_returns_none(self):
        cost = [[1, 2, 3], [2, 4, 6], [3, 6, 9]]
        assert solve_assignment(cost, max_iterations=0) is None

    def test_input_not_modified(self):
        cost = [[3, 1], [2, 2]]
        snapshot = [row[:] for row in cost]
        solve_assignment(cost)
        assert cost == snapshot

    @pytest.mark.parametrize(
        "cost",
        [
            [[4, 1, 3], [2, 0, 5], [3, 2, 2]],
            [[9, 2, 7, 8], [6, 4, 3, 7], [5, 8, 1, 8], [7, 6, 9, 4]],
            [[0, 0, 0], [0, 0, 0], [0, 0, 0]],
            [[10, 10, 1, 10], [10, 1, 10, 10], [1, 10, 10, 10], [10, 10, 10, 1]],
        ],
    )
    def test_matches_brute_force(self, cost):
        assignment = solve_assignment(cost)
        assert sorted(assignment) == list(range(len(cost)))
        assert _cost(assignment, cost) == _brute_force_min(cost)


class TestGreedy:
    def test_takes_cheapest_free_column_in_row_order(self):
        cost = [[5, 1, 9], [0, 1, 9], [9, 9, 9]]
        assert greedy_assignment(cost) == [1, 0, 2]

    def test_ties_go_to_lowest_column(self):
        assert greedy_assignment([[1, 1], [1, 1]]) == [0, 1]


# =========================================================================
# match()
# =========================================================================


class TestMatch:
    def test_unequal_lengths_raise(self):
        with pytest.raises(DeckSyncInvariantError) as exc_info:
            match([Slide()], [])
        assert exc_info.value.code == ErrorCode.INVARIANT_VIOLATION
        assert exc_info.value.context["before_len"] == 1
        assert exc_info.value.context["after_len"] == 0

    def test_empty(self):
        assert match([], []) == {}

    def test_swapped_slides_pair_by_content(self):
        a = Slide(layout="title", titles=["Intro"])
        b = Slide(layout="content", titles=["Body"])
        assert match([a, b], [b.clone(), a.clone()]) == {0: 1, 1: 0}

    def test_mapping_is_injective(self):
        before = [Slide(layout="content", titles=[str(i)]) for i in range(5)]
        after = [Slide(layout="content", titles=[str(i)]) for i in (4, 2, 0, 9, 8)]
        mapping = match(before, after)
        assert sorted(mapping) == list(range(5))
        assert sorted(mapping.values()) == list(range(5))

    def test_fallback_to_greedy_when_not_converged(self, metrics):
        a = Slide(layout="title", titles=["Intro"])
        b = Slide(layout="content", titles=["Body"])
        with patch("decksync.diff.hungarian.solve_assignment", return_value=None):
            mapping = match([a, b], [b.clone(), a.clone()], metrics=metrics)

        # Row 0 takes its cheapest column, which is the exact copy of itself.
        assert mapping == {0: 1, 1: 0}
        assert metrics.increments == [
            {"name": "decksync.matcher_fallback_total", "value": 1, "tags": None},
        ]

    def test_iteration_cap_is_forwarded(self):
        with patch("decksync.diff.hungarian.solve_assignment", return_value=[0]) as solver:
            match([Slide()], [Slide()], max_iterations=3)
        assert solver.call_args.args[1] == 3
