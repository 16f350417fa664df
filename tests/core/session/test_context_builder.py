"""Prompt context builder tests"""

from storyrelay.core.session.context_builder import (
    build_goal_context,
    build_history_transcript,
    build_player_list,
)
from storyrelay.core.session.models import GoalState, PlayerEntry, TurnRecord

PLAYERS = [
    PlayerEntry(user_id="bob", player_index=1, character_name="Bob", character_gender="male"),
    PlayerEntry(user_id="ann", player_index=0, character_name="Ann", character_gender="female"),
]


def test_player_list_sorted_and_marks_actor() -> None:
    text = build_player_list(PLAYERS, "bob")
    assert text.splitlines() == [
        "- Ann (female, Index: 0)",
        "- Bob (male, Index: 1) [Acting Player]",
    ]


def test_history_transcript() -> None:
    turns = [
        TurnRecord(turn_index=1, narrative="A door creaks.", image_url="", image_prompt="",
                   action_taken="Open the door", acting_player_index=1),
        TurnRecord(turn_index=0, narrative="You arrive.", image_url="", image_prompt=""),
    ]
    text = build_history_transcript(turns, PLAYERS)

    assert text.index("Turn 0:") < text.index("Turn 1:")
    assert "Action Taken: (Game Start)" in text
    assert "Action Taken (by Bob): Open the door" in text
    assert "Scenario: A door creaks." in text


def test_history_unknown_actor() -> None:
    turns = [
        TurnRecord(turn_index=1, narrative="...", image_url="", image_prompt="",
                   action_taken=None, acting_player_index=9),
    ]
    assert "Action Taken (by System): (Unknown Action)" in build_history_transcript(turns, PLAYERS)


def test_goal_context_copies_lists() -> None:
    goal = GoalState(goal="Escape", prerequisites=["a", "b"], met=["a"])
    ctx = build_goal_context(goal)
    assert ctx == {"game_goal": "Escape", "goal_prerequisites": ["a", "b"], "met_prerequisites": ["a"]}
    ctx["met_prerequisites"].append("b")
    assert goal.met == ["a"]
