"""NarrativeService type definitions

Payload models validate the generator's JSON strictly: a wrong type or a
missing field is malformed output and triggers a retry.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum

from pydantic import BaseModel, ConfigDict, Field, StrictBool, StrictStr, field_validator

from storyrelay.core.session.models import GoalState, NpcCharacter, PlayerEntry, TurnRecord


class NarrativeRequestType(str, Enum):
    """LLM call kind"""

    OPENING = "opening"
    TURN = "turn"


@dataclass
class NarrativeConfig:
    """NarrativeService settings"""

    timeout_seconds: float = 45.0
    max_attempts: int = 3
    backoff_seconds: float = 0.5
    max_tokens: int = 4096


@dataclass
class BuiltPrompt:
    """Assembled prompt pair"""

    system_prompt: str
    user_prompt: str
    max_tokens: int
    request_type: NarrativeRequestType


@dataclass
class OpeningPromptContext:
    """Input for the turn-0 scene."""

    theme: str
    creator: PlayerEntry
    is_multiplayer: bool


@dataclass
class TurnPromptContext:
    """Input for a subsequent turn, assembled by the coordinator."""

    theme: str
    players: list[PlayerEntry]
    acting_user_id: str
    history: list[TurnRecord]
    goal: GoalState
    action: str


# === LLM output schema ===


class CharacterPayload(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    name: StrictStr
    description: StrictStr
    appearance: StrictStr
    opinion_of_player: StrictStr = Field(alias="opinionOfPlayer")

    def to_domain(self) -> NpcCharacter:
        return NpcCharacter(
            name=self.name,
            description=self.description,
            appearance=self.appearance,
            opinion_of_player=self.opinion_of_player,
        )


class ScenePayload(BaseModel):
    """Fields common to every generated turn."""

    model_config = ConfigDict(populate_by_name=True)

    narrative: StrictStr
    image_prompt: StrictStr
    suggested_actions: list[StrictStr]
    time_of_day: StrictStr = Field(alias="timeOfDay")
    is_same_location: StrictBool = Field(alias="isSameLocation")
    characters: list[CharacterPayload]

    def npc_list(self) -> list[NpcCharacter]:
        return [c.to_domain() for c in self.characters]


class OpeningPayload(ScenePayload):
    """Turn 0 additionally fixes the goal and its prerequisites."""

    game_goal: StrictStr
    goal_prerequisites: list[StrictStr]

    @field_validator("game_goal")
    @classmethod
    def _goal_not_blank(cls, value: str) -> str:
        if not value.strip():
            raise ValueError("game_goal must not be blank")
        return value.strip()


class TurnPayload(ScenePayload):
    """Turn N reports goal progress."""

    updated_met_prerequisites: list[StrictStr]
    is_goal_met_this_turn: StrictBool

