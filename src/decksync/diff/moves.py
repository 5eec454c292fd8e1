"""Move sequencing.

Given the ``before`` list after deletions and the final ``after`` list,
produce the Move actions that reorder ``before`` into ``after``. Each
emitted index refers to the list as it is *at that moment*, i.e. after
every earlier Move has been applied, so the actions can be issued to the
remote presentation in order without any index drift.
"""

from __future__ import annotations

from decksync.errors import DeckSyncInvariantError
from decksync.models import Action, ActionType, Slide


def sequence_moves(
    before: list[Slide],
    after_length: int,
    mapping: dict[int, int],
) -> list[Action]:
    """Return the Move actions that put every ``before`` slide in its mapped position.

    Parameters
    ----------
    before:
        Slides currently on the remote, after deletions.
    after_length:
        Length of the desired list. Must equal ``len(before)``.
    mapping:
        ``before`` index to ``after`` index, defined for every ``before``
        index.
    """
    if len(before) != after_length:
        raise DeckSyncInvariantError(
            message=(
                "move sequencing needs lists of equal length: "
                f"before={len(before)}, after={after_length}"
            ),
            context={"stage": "moves", "before_len": len(before), "after_len": after_length},
        )

    target = {after_index: before_index for before_index, after_index in mapping.items()}
    working = list(range(len(before)))
    actions: list[Action] = []

    for position in range(after_length):
        wanted = target.get(position)
        if wanted is None or working[position] == wanted:
            continue
        found = working.index(wanted)
        actions.append(Action(
            action_type=ActionType.MOVE,
            index=found,
            move_to_index=position,
            slide=before[wanted].clone(),
        ))
        working.insert(position, working.pop(found))

    return actions
