"""Similarity scoring between two slides.

Scores are integers. :data:`MAX_SCORE` means the slides are content
equal; anything lower means an Update is needed if they are paired.
Below the maximum, points are only awarded when both slides share the
same non-empty layout, and then per component that is non-empty on both
sides and equal:

==============  ======
component       weight
==============  ======
layout (base)   50
titles          80
subtitles       20
bodies          160
images          40
block quotes    30
==============  ======

:func:`score_for_mapping` adds a small position bonus on top. The largest
bonus (8) is below the smallest gap between weight tiers (10), so it can
only break ties between otherwise equally similar candidates.
"""

from __future__ import annotations

from decksync.models import (
    Slide,
    block_quotes_equal,
    bodies_equal,
    images_equivalent,
)

MAX_SCORE = 500

LAYOUT_WEIGHT = 50
TITLE_WEIGHT = 80
SUBTITLE_WEIGHT = 20
BODY_WEIGHT = 160
IMAGE_WEIGHT = 40
BLOCK_QUOTE_WEIGHT = 30


def score(before: Slide, after: Slide) -> int:
    """Return the similarity of *before* and *after*.

    Examples
    --------
    >>> score(Slide(layout="title"), Slide(layout="title"))
    500
    >>> score(Slide(layout="a", titles=["x"]), Slide(layout="a", titles=["y"]))
    50
    """
    if before.equals(after):
        return MAX_SCORE

    if not before.layout or before.layout != after.layout:
        return 0

    total = LAYOUT_WEIGHT
    if before.titles and after.titles and before.titles == after.titles:
        total += TITLE_WEIGHT
    if before.subtitles and after.subtitles and before.subtitles == after.subtitles:
        total += SUBTITLE_WEIGHT
    if before.bodies and after.bodies and bodies_equal(before.bodies, after.bodies):
        total += BODY_WEIGHT
    if before.images and after.images and images_equivalent(before.images, after.images):
        total += IMAGE_WEIGHT
    if (
        before.block_quotes
        and after.block_quotes
        and block_quotes_equal(before.block_quotes, after.block_quotes)
    ):
        total += BLOCK_QUOTE_WEIGHT
    return total


def position_bonus(before: Slide, after: Slide, before_index: int, after_index: int) -> int:
    """Tie-breaking bonus favouring pairs that need no or little movement."""
    if before.layout and before.layout == after.layout:
        if before_index == after_index:
            return 8
        if after_index < before_index:
            return 6
        return 4
    if before_index == after_index:
        return 4
    if before_index < after_index:
        return 2
    return 0


def score_for_mapping(before: Slide, after: Slide, before_index: int, after_index: int) -> int:
    """:func:`score` plus :func:`position_bonus`, used to build the assignment matrix."""
    return score(before, after) + position_bonus(before, after, before_index, after_index)


def aggregate_score(slide: Slide, others: list[Slide]) -> int:
    """Sum of :func:`score` of *slide* against every slide in *others*."""
    return sum(score(slide, other) for other in others)
