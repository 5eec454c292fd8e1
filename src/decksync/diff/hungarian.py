"""Optimal one-to-one pairing of ``before`` and ``after`` slides.

The pairing maximizes total :func:`~decksync.diff.similarity.score_for_mapping`
using the Hungarian method on the cost matrix ``max - similarity``:

1. subtract each row's minimum, then each column's minimum;
2. find a maximum matching on the zero entries (augmenting paths);
3. if it is perfect, it is the optimal assignment;
4. otherwise build a minimum line cover of the zeros from the matching
   (König's theorem), subtract the smallest uncovered value from every
   uncovered entry, add it to every doubly covered entry and go to 2.

The loop in step 2-4 is capped. If the cap is reached the greedy
assignment (each row, in order, takes its cheapest free column) is used
and a warning is logged.
"""

from __future__ import annotations

from collections import deque
from typing import Any

from decksync.diff.similarity import score_for_mapping
from decksync.errors import DeckSyncInvariantError
from decksync.models import Slide
from decksync.observability import get_logger, resolve_metrics

_log = get_logger(__name__)

Matrix = list[list[int]]


def build_similarity_matrix(before: list[Slide], after: list[Slide]) -> Matrix:
    """``matrix[i][j]`` is the mapping score of ``before[i]`` against ``after[j]``."""
    return [
        [score_for_mapping(b, a, i, j) for j, a in enumerate(after)]
        for i, b in enumerate(before)
    ]


def to_cost_matrix(similarity: Matrix) -> Matrix:
    """Turn a maximization matrix into a non-negative minimization one."""
    peak = max((value for row in similarity for value in row), default=0)
    peak = max(peak, 0)
    return [[peak - value for value in row] for row in similarity]


def greedy_assignment(cost: Matrix) -> list[int]:
    """Each row in order takes its cheapest unused column (lowest index on ties)."""
    n = len(cost)
    used = [False] * n
    assignment: list[int] = []
    for row in cost:
        best = -1
        for j in range(n):
            if not used[j] and (best == -1 or row[j] < row[best]):
                best = j
        used[best] = True
        assignment.append(best)
    return assignment


# ---------------------------------------------------------------------------
# Hungarian steps
# ---------------------------------------------------------------------------

def _reduce(matrix: Matrix) -> None:
    n = len(matrix)
    for row in matrix:
        low = min(row)
        for j in range(n):
            row[j] -= low
    for j in range(n):
        low = min(matrix[i][j] for i in range(n))
        for i in range(n):
            matrix[i][j] -= low


def _augment(matrix: Matrix, root: int, row_match: list[int], col_match: list[int]) -> bool:
    """Search an augmenting path of zero entries from the free row *root*.

    Breadth-first, so deep problems never hit the recursion limit.
    """
    n = len(matrix)
    reached_from: dict[int, int] = {}
    seen_rows = {root}
    queue = deque([root])
    while queue:
        row = queue.popleft()
        for col in range(n):
            if matrix[row][col] != 0 or col in reached_from:
                continue
            reached_from[col] = row
            if col_match[col] == -1:
                # Flip the matched/unmatched edges along the path.
                while col != -1:
                    owner = reached_from[col]
                    previous = row_match[owner]
                    row_match[owner] = col
                    col_match[col] = owner
                    col = previous
                return True
            next_row = col_match[col]
            if next_row not in seen_rows:
                seen_rows.add(next_row)
                queue.append(next_row)
    return False


def _max_zero_matching(matrix: Matrix) -> tuple[list[int], list[int]]:
    n = len(matrix)
    row_match = [-1] * n
    col_match = [-1] * n
    for row in range(n):
        _augment(matrix, row, row_match, col_match)
    return row_match, col_match


def _min_cover(
    matrix: Matrix, row_match: list[int], col_match: list[int],
) -> tuple[list[bool], list[bool]]:
    """Minimum set of rows and columns covering every zero.

    Alternating search from the unmatched rows; the cover is the rows
    not reached plus the columns reached.
    """
    n = len(matrix)
    visited_rows = {i for i in range(n) if row_match[i] == -1}
    visited_cols: set[int] = set()
    queue = deque(visited_rows)
    while queue:
        row = queue.popleft()
        for col in range(n):
            if matrix[row][col] != 0 or col in visited_cols:
                continue
            visited_cols.add(col)
            owner = col_match[col]
            if owner != -1 and owner not in visited_rows:
                visited_rows.add(owner)
                queue.append(owner)
    rows_covered = [i not in visited_rows for i in range(n)]
    cols_covered = [j in visited_cols for j in range(n)]
    return rows_covered, cols_covered


def _shift(matrix: Matrix, rows_covered: list[bool], cols_covered: list[bool]) -> None:
    n = len(matrix)
    low = min(
        matrix[i][j]
        for i in range(n)
        if not rows_covered[i]
        for j in range(n)
        if not cols_covered[j]
    )
    for i in range(n):
        for j in range(n):
            if not rows_covered[i] and not cols_covered[j]:
                matrix[i][j] -= low
            elif rows_covered[i] and cols_covered[j]:
                matrix[i][j] += low


def solve_assignment(cost: Matrix, max_iterations: int | None = None) -> list[int] | None:
    """Minimum-cost perfect assignment, or ``None`` if the cap was reached.

    Parameters
    ----------
    cost:
        Square matrix of non-negative costs. Not modified.
    max_iterations:
        Maximum number of cover/shift rounds. Defaults to ``n * n``.

    Returns
    -------
    list[int] | None
        ``assignment[i]`` is the column paired with row ``i``.
    """
    n = len(cost)
    if n == 0:
        return []
    limit = max_iterations if max_iterations is not None else n * n
    matrix = [list(row) for row in cost]
    _reduce(matrix)

    rounds = 0
    while True:
        row_match, col_match = _max_zero_matching(matrix)
        if -1 not in row_match:
            return row_match
        if rounds >= limit:
            return None
        rows_covered, cols_covered = _min_cover(matrix, row_match, col_match)
        _shift(matrix, rows_covered, cols_covered)
        rounds += 1


def match(
    before: list[Slide],
    after: list[Slide],
    *,
    max_iterations: int | None = None,
    metrics: Any | None = None,
) -> dict[int, int]:
    """Pair every ``before`` index with a distinct ``after`` index.

    Raises
    ------
    DeckSyncInvariantError
        If the lists have different lengths.
    """
    if len(before) != len(after):
        raise DeckSyncInvariantError(
            message=(
                "before and after must have the same length: "
                f"before={len(before)}, after={len(after)}"
            ),
            context={"stage": "match", "before_len": len(before), "after_len": len(after)},
        )
    if not before:
        return {}

    cost = to_cost_matrix(build_similarity_matrix(before, after))
    assignment = solve_assignment(cost, max_iterations)
    if assignment is None:
        _log.warning(
            "matcher did not converge, using greedy assignment",
            extra={"extra_fields": {
                "op": "match",
                "slides": len(before),
                "max_iterations": max_iterations if max_iterations is not None else len(before) ** 2,
            }},
        )
        resolve_metrics(metrics).increment("decksync.matcher_fallback_total")
        assignment = greedy_assignment(cost)

    return dict(enumerate(assignment))
