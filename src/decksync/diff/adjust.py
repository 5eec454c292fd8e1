"""Count adjustment: pad the shorter slide list so both have equal length.

The optimal matcher needs a square problem. Padding entries are clones of
real slides, marked so the planner knows what to do with them:

* ``after`` shorter: the least similar ``before`` slides are cloned into
  ``after`` as :attr:`~decksync.models.SlideMark.REMOVED`. Whatever
  ``before`` slide the matcher pairs with them gets deleted.
* ``before`` shorter: the least similar ``after`` slides are cloned into
  ``before`` as :attr:`~decksync.models.SlideMark.NEW`. They become
  Appends.
"""

from __future__ import annotations

from decksync.diff.similarity import aggregate_score
from decksync.models import Slide, SlideMark, TrackedSlide


def least_similar(candidates: list[Slide], others: list[Slide], count: int) -> list[int]:
    """Indices of the *count* candidates with the lowest aggregate score.

    Ranked ascending by :func:`~decksync.diff.similarity.aggregate_score`
    against *others*; the sort is stable so ties go to the lower index.
    """
    scores = [aggregate_score(slide, others) for slide in candidates]
    ranked = sorted(range(len(candidates)), key=lambda i: scores[i])
    return ranked[:count]


def adjust_counts(
    before: list[Slide],
    after: list[Slide],
) -> tuple[list[TrackedSlide], list[TrackedSlide]]:
    """Return tracked clones of *before* and *after*, padded to equal length.

    The input lists and slides are never modified.
    """
    tracked_before = [TrackedSlide(slide.clone()) for slide in before]
    tracked_after = [TrackedSlide(slide.clone()) for slide in after]

    if len(after) < len(before):
        needed = len(before) - len(after)
        # Padding goes in ranking order.
        for i in least_similar(before, after, needed):
            tracked_after.append(TrackedSlide(before[i].clone(), SlideMark.REMOVED))
    elif len(before) < len(after):
        needed = len(after) - len(before)
        # New slides are appended in their original order.
        for i in sorted(least_similar(after, before, needed)):
            tracked_before.append(TrackedSlide(after[i].clone(), SlideMark.NEW))

    return tracked_before, tracked_after
