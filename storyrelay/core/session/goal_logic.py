"""Goal / prerequisite bookkeeping

Two monotonic rules:
- a met prerequisite is never un-met (the met set only grows by union)
- the goal flag never reverts once set, and it can only be set when every
  prerequisite was already met *before* the completing action
"""

import logging
from typing import Iterable

from .models import GoalState

logger = logging.getLogger(__name__)


def merge_met_prerequisites(
    prerequisites: list[str],
    already_met: Iterable[str],
    reported: Iterable[str],
) -> list[str]:
    """Union of the stored and newly reported met sets.

    Only entries that are real prerequisites survive; the result keeps the
    prerequisite list order so the stored value is stable.
    """
    known = set(prerequisites)
    combined = set(already_met) | set(reported)

    unknown = combined - known
    if unknown:
        logger.debug("Ignoring unknown prerequisites reported: %s", sorted(unknown))

    return [p for p in prerequisites if p in combined]


def all_prerequisites_met(prerequisites: list[str], met: Iterable[str]) -> bool:
    return set(prerequisites) <= set(met)


def apply_turn_result(
    goal: GoalState,
    reported_met: Iterable[str],
    goal_met_this_turn: bool,
) -> GoalState:
    """Goal state after one turn. ``goal`` (the pre-turn state) is not mutated."""
    pre_turn_met = list(goal.met)
    merged = merge_met_prerequisites(goal.prerequisites, pre_turn_met, reported_met)

    achieved = goal.is_goal_met
    if not achieved and goal_met_this_turn:
        # prerequisites met by this same action do not count
        if all_prerequisites_met(goal.prerequisites, pre_turn_met):
            achieved = True
        else:
            logger.info(
                "Goal completion claimed before prerequisites were met; ignoring"
            )

    return GoalState(
        goal=goal.goal,
        prerequisites=list(goal.prerequisites),
        met=merged,
        is_goal_met=achieved,
    )
