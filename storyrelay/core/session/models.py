"""Session domain models (DB independent)

The coordinator, the store and the wire layer all exchange these objects.
List-valued fields are always real Python lists here; serialization to
storage columns happens only inside the Session Store.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Optional


@dataclass
class NpcCharacter:
    """A non-player character present in a scene."""

    name: str
    description: str = ""
    appearance: str = ""
    opinion_of_player: str = ""

    def to_dict(self) -> dict[str, str]:
        return {
            "name": self.name,
            "description": self.description,
            "appearance": self.appearance,
            "opinionOfPlayer": self.opinion_of_player,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> NpcCharacter:
        return cls(
            name=str(data.get("name", "")),
            description=str(data.get("description", "")),
            appearance=str(data.get("appearance", "")),
            opinion_of_player=str(data.get("opinionOfPlayer", "")),
        )


@dataclass
class PlayerEntry:
    """Roster entry. ``player_index`` is fixed at join time."""

    user_id: str
    player_index: int
    character_name: str
    character_gender: str
    character_image_url: Optional[str] = None
    is_active: bool = True

    def to_document(self) -> dict[str, Any]:
        return {
            "userId": self.user_id,
            "playerIndex": self.player_index,
            "characterName": self.character_name,
            "characterGender": self.character_gender,
            "characterImageUrl": self.character_image_url,
        }


@dataclass
class TurnRecord:
    """One generated narrative step. Turn 0 has no action and no actor."""

    turn_index: int
    narrative: str
    image_url: str
    image_prompt: str
    suggested_actions: list[str] = field(default_factory=list)
    action_taken: Optional[str] = None
    time_of_day: str = ""
    is_same_location: bool = True
    characters: list[NpcCharacter] = field(default_factory=list)
    acting_player_user_id: Optional[str] = None
    acting_player_index: Optional[int] = None

    def to_document(self) -> dict[str, Any]:
        return {
            "turnIndex": self.turn_index,
            "scenarioText": self.narrative,
            "imageUrl": self.image_url,
            "imagePrompt": self.image_prompt,
            "suggestedActions": list(self.suggested_actions),
            "actionTaken": self.action_taken,
            "timeOfDay": self.time_of_day,
            "isSameLocation": self.is_same_location,
            "characters": [c.to_dict() for c in self.characters],
            "actingPlayerUserId": self.acting_player_user_id,
            "actingPlayerIndex": self.acting_player_index,
        }


@dataclass
class GoalState:
    """Goal text and prerequisites are fixed at turn 0; ``met`` only grows."""

    goal: str = ""
    prerequisites: list[str] = field(default_factory=list)
    met: list[str] = field(default_factory=list)
    is_goal_met: bool = False


@dataclass
class SessionState:
    """Authoritative snapshot of one session."""

    session_id: str
    theme: str
    is_multiplayer: bool
    creator_user_id: str
    max_players: Optional[int] = None
    current_player_index: Optional[int] = None
    invite_code: Optional[str] = None
    goal: GoalState = field(default_factory=GoalState)
    players: list[PlayerEntry] = field(default_factory=list)
    history: list[TurnRecord] = field(default_factory=list)
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    @property
    def latest_turn_index(self) -> int:
        """Highest persisted turn index, -1 when the ledger is empty."""
        if not self.history:
            return -1
        return self.history[-1].turn_index

    @property
    def player_count(self) -> int:
        return len(self.players)

    def player_for_user(self, user_id: str) -> Optional[PlayerEntry]:
        for player in self.players:
            if player.user_id == user_id:
                return player
        return None

    def player_at(self, player_index: Optional[int]) -> Optional[PlayerEntry]:
        if player_index is None:
            return None
        for player in self.players:
            if player.player_index == player_index:
                return player
        return None

    def to_document(self) -> dict[str, Any]:
        """Full-session-state document pushed to clients."""
        return {
            "sessionId": self.session_id,
            "theme": self.theme,
            "isMultiplayer": self.is_multiplayer,
            "currentPlayerIndex": self.current_player_index,
            "players": [p.to_document() for p in self.players],
            "history": [t.to_document() for t in self.history],
            "gameGoal": self.goal.goal,
            "goalPrerequisites": list(self.goal.prerequisites),
            "metPrerequisites": list(self.goal.met),
            "isGoalMet": self.goal.is_goal_met,
        }


class TurnStatus(str, Enum):
    """Result kind of a submitted action"""

    ADVANCED = "advanced"
    SKIPPED = "skipped"
    PAUSED = "paused"


@dataclass
class TurnOutcome:
    """What ``submit_action`` did.

    ADVANCED: a new turn was persisted (``turn`` is set).
    SKIPPED: the disconnected current player was passed over, no new turn.
    PAUSED: nobody on the roster is connected, nothing changed.
    """

    status: TurnStatus
    state: SessionState
    turn: Optional[TurnRecord] = None

    @property
    def skipped(self) -> bool:
        return self.status == TurnStatus.SKIPPED

    @property
    def paused(self) -> bool:
        return self.status == TurnStatus.PAUSED


@dataclass
class SessionSummary:
    """Row of a user's game history list."""

    session_id: str
    theme: str
    is_multiplayer: bool
    player_count: int
    initial_scenario_snippet: str
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    def to_document(self) -> dict[str, Any]:
        return {
            "sessionId": self.session_id,
            "theme": self.theme,
            "isMultiplayer": self.is_multiplayer,
            "playerCount": self.player_count,
            "initialScenarioSnippet": self.initial_scenario_snippet,
            "createdAt": self.created_at.isoformat() if self.created_at else None,
            "lastUpdatedAt": self.updated_at.isoformat() if self.updated_at else None,
        }


@dataclass
class InviteInfo:
    """Public join-screen info for an invite code."""

    session_id: str
    theme: str
    player_count: int
    max_players: int

    @property
    def is_full(self) -> bool:
        return self.player_count >= self.max_players

    def to_document(self) -> dict[str, Any]:
        return {
            "sessionId": self.session_id,
            "theme": self.theme,
            "isFull": self.is_full,
            "playerCount": self.player_count,
            "maxPlayers": self.max_players,
        }


@dataclass
class GameStart:
    """Result of starting a game. The goal stays hidden from the response."""

    session_id: str
    current_turn: TurnRecord
    invite_code: Optional[str] = None

    def to_document(self) -> dict[str, Any]:
        doc: dict[str, Any] = {
            "sessionId": self.session_id,
            "currentTurn": self.current_turn.to_document(),
        }
        if self.invite_code:
            doc["inviteCode"] = self.invite_code
        return doc


@dataclass
class JoinResult:
    session_id: str
    player: PlayerEntry
    already_joined: bool
    state: SessionState

    @property
    def message(self) -> str:
        if self.already_joined:
            return "Already joined."
        return "Joined session successfully."

    def to_document(self) -> dict[str, Any]:
        return {
            "message": self.message,
            "sessionId": self.session_id,
            "playerIndex": self.player.player_index,
            "alreadyJoined": self.already_joined,
        }
