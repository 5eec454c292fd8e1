"""Reconciliation engine.

Exports
-------
ReconcilePlanner / reconcile
    Compute the ordered action plan turning one slide list into another.
AsyncPlanExecutor
    Apply a plan through a DocumentAPI, uploading images on the way.
simulate
    Apply a plan to an in-memory slide list.
score / score_for_mapping / MAX_SCORE
    Slide similarity.
match
    Optimal one-to-one pairing of two equally long slide lists.
"""

from .executor import AsyncPlanExecutor, describe_plan
from .hungarian import match
from .planner import ReconcilePlanner, check_phase_order, reconcile, simulate
from .similarity import MAX_SCORE, score, score_for_mapping

__all__ = [
    "MAX_SCORE",
    "AsyncPlanExecutor",
    "ReconcilePlanner",
    "check_phase_order",
    "describe_plan",
    "match",
    "reconcile",
    "score",
    "score_for_mapping",
    "simulate",
]
