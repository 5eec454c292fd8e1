"""Reconciliation planner: compute the action plan turning ``before`` into ``after``.

The plan is built in five steps:

1. pad the shorter list (:mod:`decksync.diff.adjust`);
2. pair slides optimally (:mod:`decksync.diff.hungarian`);
3. mark every ``before`` slide paired with removal padding as removed;
4. synthesize Appends, Updates and Deletes;
5. sequence the Moves on the list as it is after the deletions
   (:mod:`decksync.diff.moves`).

The returned actions are always in phase order: every Append, then every
Update, then every Delete (highest index first), then every Move. Applying
them in that order to ``before`` yields a list content-equal to ``after``;
:func:`simulate` does exactly that in memory.
"""

from __future__ import annotations

from collections import Counter
from dataclasses import replace

from decksync.config import DeckSyncConfig
from decksync.diff.adjust import adjust_counts
from decksync.diff.hungarian import match
from decksync.diff.moves import sequence_moves
from decksync.diff.similarity import MAX_SCORE, score
from decksync.errors import DeckSyncInvariantError
from decksync.models import Action, ActionType, Slide, SlideMark, TrackedSlide
from decksync.observability import get_logger

_log = get_logger(__name__)

PHASE_ORDER: dict[ActionType, int] = {
    ActionType.APPEND: 0,
    ActionType.UPDATE: 1,
    ActionType.DELETE: 2,
    ActionType.MOVE: 3,
}


class ReconcilePlanner:
    """Compute action plans.

    Parameters
    ----------
    config:
        Supplies the matcher iteration cap and the metrics backend.
    """

    def __init__(self, config: DeckSyncConfig | None = None) -> None:
        self._config = config if config is not None else DeckSyncConfig()

    def plan(self, before: list[Slide], after: list[Slide]) -> list[Action]:
        """Return the ordered actions that turn *before* into *after*.

        Neither list, nor any slide in them, is modified.
        """
        tracked_before, tracked_after = adjust_counts(before, after)
        mapping = match(
            [t.slide for t in tracked_before],
            [t.slide for t in tracked_after],
            max_iterations=self._config.matcher_max_iterations,
            metrics=self._config.metrics,
        )
        tracked_before = _propagate_removals(tracked_before, tracked_after, mapping)

        appends = [
            Action(action_type=ActionType.APPEND, index=i, slide=t.slide)
            for i, t in enumerate(tracked_before)
            if t.is_new
        ]
        updates = _synthesize_updates(tracked_before, tracked_after, mapping)
        deletes, remaining, mapping = _synthesize_deletes(tracked_before, mapping)
        kept_after = sum(1 for t in tracked_after if not t.is_removed)
        moves = sequence_moves(remaining, kept_after, mapping)

        actions = appends + updates + deletes + moves
        counts = Counter(a.action_type.value for a in actions)
        _log.debug(
            "plan computed",
            extra={"extra_fields": {
                "op": "plan",
                "before": len(before),
                "after": len(after),
                **{f"{kind}s": counts.get(kind, 0) for kind in ("append", "update", "delete", "move")},
            }},
        )
        return actions


def reconcile(
    before: list[Slide],
    after: list[Slide],
    config: DeckSyncConfig | None = None,
) -> list[Action]:
    """Shortcut for ``ReconcilePlanner(config).plan(before, after)``."""
    return ReconcilePlanner(config).plan(before, after)


# ---------------------------------------------------------------------------
# Synthesis steps
# ---------------------------------------------------------------------------

def _propagate_removals(
    before: list[TrackedSlide],
    after: list[TrackedSlide],
    mapping: dict[int, int],
) -> list[TrackedSlide]:
    marked = list(before)
    for b, a in mapping.items():
        if after[a].is_removed:
            marked[b] = replace(marked[b], mark=SlideMark.REMOVED)
    return marked


def _synthesize_updates(
    before: list[TrackedSlide],
    after: list[TrackedSlide],
    mapping: dict[int, int],
) -> list[Action]:
    updates: list[Action] = []
    for b in sorted(mapping):
        current = before[b]
        if current.is_removed:
            continue
        desired = after[mapping[b]].slide
        if score(current.slide, desired) < MAX_SCORE:
            updates.append(Action(action_type=ActionType.UPDATE, index=b, slide=desired))
    return updates


def _synthesize_deletes(
    before: list[TrackedSlide],
    mapping: dict[int, int],
) -> tuple[list[Action], list[Slide], dict[int, int]]:
    """Delete removed slides from the highest index down.

    Returns the Delete actions, the surviving slides and the mapping
    re-indexed to the surviving positions.
    """
    survivors = list(before)
    deletes: list[Action] = []
    for i in range(len(survivors) - 1, -1, -1):
        if not survivors[i].is_removed:
            continue
        deletes.append(Action(action_type=ActionType.DELETE, index=i, slide=survivors[i].slide))
        del survivors[i]
        mapping = {(b if b < i else b - 1): a for b, a in mapping.items() if b != i}
    return deletes, [t.slide for t in survivors], mapping


# ---------------------------------------------------------------------------
# Plan checks and simulation
# ---------------------------------------------------------------------------

def check_phase_order(actions: list[Action]) -> None:
    """Raise :class:`DeckSyncInvariantError` unless *actions* are in phase order.

    Phase order is Append, Update, Delete, Move, with Deletes strictly
    descending by index.
    """
    previous: Action | None = None
    for position, action in enumerate(actions):
        if previous is not None:
            out_of_phase = PHASE_ORDER[action.action_type] < PHASE_ORDER[previous.action_type]
            delete_ascending = (
                action.action_type is ActionType.DELETE
                and previous.action_type is ActionType.DELETE
                and action.index >= previous.index
            )
            if out_of_phase or delete_ascending:
                raise DeckSyncInvariantError(
                    message=(
                        f"{action.action_type.value} at position {position} "
                        f"follows {previous.action_type.value}"
                    ),
                    context={"stage": "execute", "position": position},
                )
        previous = action


def simulate(before: list[Slide], actions: list[Action]) -> list[Slide]:
    """Apply *actions* to a copy of *before* and return the result.

    Appends add at the end, Updates replace by index, Deletes remove by
    index and Moves pop the slide at ``index`` and insert it at
    ``move_to_index``.
    """
    slides = [s.clone() for s in before]
    for action in actions:
        if action.action_type is ActionType.APPEND:
            slides.append(action.slide.clone())
        elif action.action_type is ActionType.UPDATE:
            slides[action.index] = action.slide.clone()
        elif action.action_type is ActionType.DELETE:
            del slides[action.index]
        elif action.action_type is ActionType.MOVE:
            slides.insert(action.move_to_index, slides.pop(action.index))
    return slides
