"""Property-based tests for the reconciliation engine using Hypothesis.

Whatever the two slide lists, the plan must be in phase order, must turn
``before`` into ``after`` when replayed, and must not touch its inputs.
"""

from __future__ import annotations

import itertools

from hypothesis import given, settings
from hypothesis import strategies as st

from decksync.diff.hungarian import match, solve_assignment
from decksync.diff.planner import check_phase_order, reconcile, simulate
from decksync.models import ActionType, Body, Fragment, Paragraph, Slide

# ---------------------------------------------------------------------------
# Reusable strategies
# ---------------------------------------------------------------------------

# Small alphabets so that equal and near-equal slides are common.
_layout_st = st.sampled_from(["title", "content", "section"])
_text_st = st.sampled_from(["A", "B", "C", "D"])

_body_st = st.builds(
    lambda words: Body(paragraphs=[Paragraph(fragments=[Fragment(w)]) for w in words]),
    st.lists(_text_st, min_size=1, max_size=2),
)

_slide_st = st.builds(
    Slide,
    layout=_layout_st,
    titles=st.lists(_text_st, max_size=1),
    subtitles=st.lists(_text_st, max_size=1),
    bodies=st.lists(_body_st, max_size=1),
    speaker_note=st.sampled_from(["", "note"]),
)

_slides_st = st.lists(_slide_st, max_size=7)


def _square_matrix_st(max_n: int = 5):
    return st.integers(min_value=1, max_value=max_n).flatmap(
        lambda n: st.lists(
            st.lists(st.integers(min_value=0, max_value=20), min_size=n, max_size=n),
            min_size=n,
            max_size=n,
        )
    )


# =========================================================================
# Plans
# =========================================================================


class TestPlanProperties:
    @given(before=_slides_st, after=_slides_st)
    @settings(max_examples=150)
    def test_replay_reaches_after(self, before, after):
        actions = reconcile(before, after)
        check_phase_order(actions)
        assert simulate(before, actions) == after

    @given(slides=_slides_st)
    def test_equal_lists_need_no_actions(self, slides):
        assert reconcile(slides, [s.clone() for s in slides]) == []

    @given(before=_slides_st, after=_slides_st)
    def test_append_and_delete_counts_follow_lengths(self, before, after):
        actions = reconcile(before, after)
        appends = sum(1 for a in actions if a.action_type is ActionType.APPEND)
        deletes = sum(1 for a in actions if a.action_type is ActionType.DELETE)
        assert appends == max(0, len(after) - len(before))
        assert deletes == max(0, len(before) - len(after))

    @given(before=_slides_st, after=_slides_st)
    def test_inputs_untouched(self, before, after):
        before_copy = [s.clone() for s in before]
        after_copy = [s.clone() for s in after]
        reconcile(before, after)
        assert before == before_copy
        assert after == after_copy


# =========================================================================
# Matching
# =========================================================================


class TestMatchingProperties:
    @given(slides=st.lists(_slide_st, min_size=1, max_size=7).flatmap(
        lambda before: st.tuples(
            st.just(before),
            st.lists(_slide_st, min_size=len(before), max_size=len(before)),
        )
    ))
    def test_mapping_is_a_bijection(self, slides):
        before, after = slides
        mapping = match(before, after)
        assert sorted(mapping) == list(range(len(before)))
        assert sorted(mapping.values()) == list(range(len(after)))

    @given(cost=_square_matrix_st())
    @settings(max_examples=200)
    def test_solver_is_optimal(self, cost):
        n = len(cost)
        assignment = solve_assignment(cost)
        assert sorted(assignment) == list(range(n))
        best = min(
            sum(cost[i][j] for i, j in enumerate(p))
            for p in itertools.permutations(range(n))
        )
        assert sum(cost[i][j] for i, j in enumerate(assignment)) == best
