"""Prompt context for the narrative generator: roster list and history transcript."""

from typing import Optional, Sequence

from .models import GoalState, PlayerEntry, TurnRecord

ACTING_PLAYER_MARK = " [Acting Player]"


def build_player_list(
    players: Sequence[PlayerEntry],
    acting_user_id: Optional[str],
) -> str:
    """One line per roster member, the acting one marked."""
    lines = []
    for p in sorted(players, key=lambda p: p.player_index):
        mark = ACTING_PLAYER_MARK if p.user_id == acting_user_id else ""
        lines.append(
            f"- {p.character_name} ({p.character_gender}, Index: {p.player_index}){mark}"
        )
    return "\n".join(lines)


def build_history_transcript(
    turns: Sequence[TurnRecord],
    players: Sequence[PlayerEntry],
) -> str:
    """Compact transcript of the ledger, oldest turn first."""
    names = {p.player_index: p.character_name for p in players}
    blocks = []
    for turn in sorted(turns, key=lambda t: t.turn_index):
        lines = [f"Turn {turn.turn_index}:"]
        if turn.turn_index == 0:
            lines.append("Action Taken: (Game Start)")
        else:
            actor = names.get(turn.acting_player_index, "System")
            lines.append(
                f"Action Taken (by {actor}): {turn.action_taken or '(Unknown Action)'}"
            )
        lines.append(f"Scenario: {turn.narrative}")
        blocks.append("\n".join(lines))
    return "\n\n".join(blocks)


def build_goal_context(goal: GoalState) -> dict[str, object]:
    """Goal values injected into the system prompt."""
    return {
        "game_goal": goal.goal,
        "goal_prerequisites": list(goal.prerequisites),
        "met_prerequisites": list(goal.met),
    }
