"""Session domain: models, turn order, goal bookkeeping, prompt context."""

from .goal_logic import all_prerequisites_met, apply_turn_result, merge_met_prerequisites
from .models import (
    GameStart,
    GoalState,
    InviteInfo,
    JoinResult,
    NpcCharacter,
    PlayerEntry,
    SessionState,
    SessionSummary,
    TurnOutcome,
    TurnRecord,
    TurnStatus,
)
from .turn_order import advance_round_robin, next_connected_player, next_eligible_player

__all__ = [
    "GameStart",
    "GoalState",
    "InviteInfo",
    "JoinResult",
    "NpcCharacter",
    "PlayerEntry",
    "SessionState",
    "SessionSummary",
    "TurnOutcome",
    "TurnRecord",
    "TurnStatus",
    "advance_round_robin",
    "all_prerequisites_met",
    "apply_turn_result",
    "merge_met_prerequisites",
    "next_connected_player",
    "next_eligible_player",
]
