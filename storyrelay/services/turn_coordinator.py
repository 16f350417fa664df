"""Turn Coordinator

Owns who acts next. Every mutation of a session runs under that session's
lock, so actions, skips, joins and deletions for one session are strictly
serialized while different sessions proceed independently.

Flow of ``submit_action``:
1. roster membership check
2. connectivity of the player who owns the turn
3. disconnected owner: skip to the next connected player (no new turn),
   or report the session as paused when nobody is connected
4. connected owner: version check on ``from_turn_index``, ownership check,
   generation, one atomic commit, broadcast

Generation runs outside any database transaction; the commit re-checks the
latest turn index, so nothing partial is ever written.
"""

import uuid
from dataclasses import dataclass
from enum import Enum
from typing import Callable, Optional

from storyrelay.config import settings
from storyrelay.core.errors import (
    InvalidRequestError,
    NotAPlayerError,
    TurnConflictError,
    TurnOwnershipError,
)
from storyrelay.core.logging import get_logger
from storyrelay.core.session.goal_logic import apply_turn_result
from storyrelay.core.session.models import (
    GameStart,
    GoalState,
    InviteInfo,
    JoinResult,
    PlayerEntry,
    SessionState,
    SessionSummary,
    TurnOutcome,
    TurnRecord,
    TurnStatus,
)
from storyrelay.core.session.turn_order import advance_round_robin, next_connected_player
from storyrelay.core.session_locks import SessionLocks
from storyrelay.services.broadcast import BroadcastChannel
from storyrelay.services.image_service import ImageService
from storyrelay.services.narrative_prompts import build_portrait_prompt
from storyrelay.services.narrative_service import NarrativeService
from storyrelay.services.narrative_types import OpeningPromptContext, TurnPromptContext
from storyrelay.services.presence import PresenceRegistry
from storyrelay.services.session_store import SessionStore

logger = get_logger(__name__)

PORTRAIT_ASPECT_RATIO = "1:1"


class StaleTurnPolicy(str, Enum):
    """What to do with an action submitted against an earlier turn"""

    REJECT = "reject"
    # destructive: every turn after from_turn_index is deleted
    TRUNCATE = "truncate"


@dataclass
class CoordinatorConfig:
    stale_turn_policy: StaleTurnPolicy = StaleTurnPolicy.REJECT
    default_max_players: int = 4
    min_players: int = 2
    max_players: int = 8

    @classmethod
    def from_settings(cls) -> "CoordinatorConfig":
        return cls(
            stale_turn_policy=StaleTurnPolicy(settings.STALE_TURN_POLICY.lower()),
            default_max_players=settings.DEFAULT_MAX_PLAYERS,
            min_players=settings.MIN_MULTIPLAYER_PLAYERS,
            max_players=settings.MAX_MULTIPLAYER_PLAYERS,
        )


def new_invite_code() -> str:
    return f"INV-{uuid.uuid4().hex[:8].upper()}"


def _require_text(value: Optional[str], message: str) -> str:
    if not isinstance(value, str) or not value.strip():
        raise InvalidRequestError(message)
    return value.strip()


class TurnCoordinator:
    """Session lifecycle and turn processing."""

    def __init__(
        self,
        store: SessionStore,
        narrative: NarrativeService,
        images: ImageService,
        presence: PresenceRegistry,
        broadcast: BroadcastChannel,
        locks: Optional[SessionLocks] = None,
        config: Optional[CoordinatorConfig] = None,
        invite_code_factory: Callable[[], str] = new_invite_code,
    ) -> None:
        self._store = store
        self._narrative = narrative
        self._images = images
        self._presence = presence
        self._broadcast = broadcast
        self._locks = locks or SessionLocks()
        self._config = config or CoordinatorConfig()
        self._new_invite_code = invite_code_factory

    @property
    def config(self) -> CoordinatorConfig:
        return self._config

    # === 게임 시작 / 참가 ===

    async def start_game(
        self,
        user_id: str,
        theme: str,
        character_name: str,
        character_gender: str,
        character_image_url: Optional[str] = None,
        is_multiplayer: bool = False,
        max_players: Optional[int] = None,
    ) -> GameStart:
        """Create a session with its creator (index 0) and the opening turn."""
        required = "Theme, character name, and gender are required."
        theme = _require_text(theme, required)
        character_name = _require_text(character_name, required)
        character_gender = _require_text(character_gender, required)

        player_limit = None
        if is_multiplayer:
            player_limit = self._validate_player_limit(max_players)

        session_id = str(uuid.uuid4())
        creator = PlayerEntry(
            user_id=user_id,
            player_index=0,
            character_name=character_name,
            character_gender=character_gender,
            character_image_url=character_image_url,
        )

        opening = await self._narrative.generate_opening(
            OpeningPromptContext(theme=theme, creator=creator, is_multiplayer=is_multiplayer)
        )
        image_url = await self._scene_image(opening.image_prompt)

        prerequisites = list(
            dict.fromkeys(p.strip() for p in opening.goal_prerequisites if p.strip())
        )
        goal = GoalState(goal=opening.game_goal, prerequisites=prerequisites)
        opening_turn = TurnRecord(
            turn_index=0,
            narrative=opening.narrative,
            image_url=image_url,
            image_prompt=opening.image_prompt,
            suggested_actions=list(opening.suggested_actions),
            time_of_day=opening.time_of_day,
            is_same_location=opening.is_same_location,
            characters=opening.npc_list(),
        )
        invite_code = self._new_invite_code() if is_multiplayer else None

        state = self._store.create_session(
            session_id=session_id,
            creator=creator,
            theme=theme,
            is_multiplayer=is_multiplayer,
            max_players=player_limit,
            invite_code=invite_code,
            goal=goal,
            opening_turn=opening_turn,
        )
        logger.info(
            "Game started: session=%s creator=%s theme=%r multiplayer=%s",
            session_id,
            user_id,
            theme,
            is_multiplayer,
        )
        return GameStart(
            session_id=state.session_id,
            current_turn=state.history[0],
            invite_code=state.invite_code,
        )

    async def join_game(
        self,
        user_id: str,
        invite_code: str,
        character_name: str,
        character_gender: str,
        character_image_url: Optional[str] = None,
    ) -> JoinResult:
        """Append the user to the roster of the invite code's session.

        Joining twice is harmless: the existing roster entry is returned.
        """
        invite_code = _require_text(invite_code, "Invite code is required.")
        required = "Character name and gender are required."
        character_name = _require_text(character_name, required)
        character_gender = _require_text(character_gender, required)

        session_id = self._store.find_session_by_invite(invite_code)

        async with self._locks.hold(session_id):
            player, already_joined = self._store.add_player(
                session_id,
                user_id,
                character_name,
                character_gender,
                character_image_url,
            )
            state = self._store.require_state(session_id)
            if not already_joined:
                await self._broadcast.publish(session_id, state)

        return JoinResult(
            session_id=session_id,
            player=player,
            already_joined=already_joined,
            state=state,
        )

    # === 턴 처리 ===

    async def submit_action(
        self,
        session_id: str,
        user_id: str,
        action: str,
        from_turn_index: int,
    ) -> TurnOutcome:
        """Process one action. See the module docstring for the order of checks.

        Raises:
            NotAPlayerError: the user is not an active roster member.
            TurnConflictError: ``from_turn_index`` is not acceptable.
            TurnOwnershipError: another player owns the turn.
            GenerationFailedError: generation retries exhausted; nothing written.
        """
        action = _require_text(action, "Action must not be empty.")

        async with self._locks.hold(session_id):
            state = self._store.require_state(session_id)

            actor = state.player_for_user(user_id)
            if actor is None or not actor.is_active:
                raise NotAPlayerError("You are not a player in this session.")

            if state.is_multiplayer and not self._owner_connected(state):
                return await self._skip_disconnected(state)

            truncate_after = self._check_turn_version(state, from_turn_index)

            if state.is_multiplayer and actor.player_index != state.current_player_index:
                logger.info(
                    "Session %s: %s acted out of turn (owner index %s)",
                    session_id,
                    user_id,
                    state.current_player_index,
                )
                raise TurnOwnershipError(
                    "It's not your turn.",
                    {"currentPlayerIndex": state.current_player_index},
                )

            return await self._advance(state, actor, action, truncate_after)

    def _owner_connected(self, state: SessionState) -> bool:
        owner = state.player_at(state.current_player_index)
        if owner is None:
            logger.error(
                "Session %s: current index %s has no roster entry",
                state.session_id,
                state.current_player_index,
            )
            return False
        return owner.is_active and self._presence.is_connected(
            state.session_id, owner.user_id
        )

    def _check_turn_version(self, state: SessionState, from_turn_index: int) -> Optional[int]:
        """Validate ``from_turn_index``. Returns the truncation point, if any."""
        latest = state.latest_turn_index
        if from_turn_index == latest:
            return None

        if (
            self._config.stale_turn_policy == StaleTurnPolicy.TRUNCATE
            and 0 <= from_turn_index < latest
        ):
            logger.warning(
                "Session %s: action against turn %d will discard turns %d..%d",
                state.session_id,
                from_turn_index,
                from_turn_index + 1,
                latest,
            )
            return from_turn_index

        logger.info(
            "Session %s: stale submission (from=%d, latest=%d)",
            state.session_id,
            from_turn_index,
            latest,
        )
        raise TurnConflictError(
            f"Turn {from_turn_index} is not the latest turn. "
            "Refresh the session state and try again.",
            {"fromTurnIndex": from_turn_index, "latestTurnIndex": latest},
        )

    async def _advance(
        self,
        state: SessionState,
        actor: PlayerEntry,
        action: str,
        truncate_after: Optional[int],
    ) -> TurnOutcome:
        session_id = state.session_id
        expected_latest = state.latest_turn_index
        base_index = expected_latest if truncate_after is None else truncate_after
        history = [t for t in state.history if t.turn_index <= base_index]

        payload = await self._narrative.generate_turn(
            TurnPromptContext(
                theme=state.theme,
                players=state.players,
                acting_user_id=actor.user_id,
                history=history,
                goal=state.goal,
                action=action,
            )
        )
        reference = None
        base_image = history[-1].image_url if history else None
        if payload.is_same_location and base_image and base_image.startswith("data:"):
            reference = base_image
        image_url = await self._scene_image(payload.image_prompt, reference_image=reference)

        goal = apply_turn_result(
            state.goal,
            payload.updated_met_prerequisites,
            payload.is_goal_met_this_turn,
        )
        turn = TurnRecord(
            turn_index=base_index + 1,
            narrative=payload.narrative,
            image_url=image_url,
            image_prompt=payload.image_prompt,
            suggested_actions=list(payload.suggested_actions),
            action_taken=action,
            time_of_day=payload.time_of_day,
            is_same_location=payload.is_same_location,
            characters=payload.npc_list(),
            acting_player_user_id=actor.user_id,
            acting_player_index=actor.player_index,
        )

        next_index = None
        if state.is_multiplayer and state.current_player_index is not None:
            next_index = advance_round_robin(state.players, state.current_player_index)

        self._store.commit_turn(
            session_id,
            expected_latest=expected_latest,
            turn=turn,
            next_player_index=next_index,
            goal=goal,
            truncate_after=truncate_after,
        )
        logger.info(
            "Session %s: turn %d accepted from %s (next index %s, met %d/%d%s)",
            session_id,
            turn.turn_index,
            actor.user_id,
            next_index,
            len(goal.met),
            len(goal.prerequisites),
            ", goal met" if goal.is_goal_met else "",
        )

        new_state = self._store.require_state(session_id)
        await self._broadcast.publish(session_id, new_state)
        return TurnOutcome(status=TurnStatus.ADVANCED, state=new_state, turn=turn)

    async def _skip_disconnected(self, state: SessionState) -> TurnOutcome:
        session_id = state.session_id
        current = state.current_player_index
        start = current if current is not None else -1

        nxt = next_connected_player(
            state.players,
            start,
            lambda uid: self._presence.is_connected(session_id, uid),
        )
        if nxt is None:
            logger.info("Session %s paused: no connected players", session_id)
            return TurnOutcome(status=TurnStatus.PAUSED, state=state)

        self._store.set_current_player(session_id, current, nxt)
        logger.info(
            "Session %s: player %s disconnected, turn skipped to %d",
            session_id,
            current,
            nxt,
        )
        new_state = self._store.require_state(session_id)
        await self._broadcast.publish(session_id, new_state)
        return TurnOutcome(status=TurnStatus.SKIPPED, state=new_state)

    async def _scene_image(
        self,
        prompt: str,
        aspect_ratio: Optional[str] = None,
        reference_image: Optional[str] = None,
    ) -> str:
        try:
            return await self._images.generate(
                prompt, aspect_ratio=aspect_ratio, reference_image=reference_image
            )
        except Exception:
            logger.exception("Image service %s failed, using placeholder", self._images.name)
            return self._images.placeholder_url

    # === 조회 ===

    def get_state_for_member(self, session_id: str, user_id: str) -> SessionState:
        """Full state; only roster members may read it."""
        state = self._store.require_state(session_id)
        if state.player_for_user(user_id) is None:
            raise NotAPlayerError("Access denied. You are not a player in this session.")
        return state

    def check_member(self, session_id: str, user_id: str) -> None:
        """Roster membership without loading the session."""
        if not self._store.is_member(session_id, user_id):
            raise NotAPlayerError("Access denied. You are not a player in this session.")

    def list_history(self, user_id: str) -> list[SessionSummary]:
        return self._store.list_sessions_for_user(user_id)

    def invite_info(self, invite_code: str) -> InviteInfo:
        return self._store.invite_info(invite_code)

    # === 삭제 / 기타 ===

    async def delete_game(self, user_id: str, session_id: str) -> None:
        async with self._locks.hold(session_id):
            self._store.delete_session(session_id, user_id)

    async def generate_character_portrait(
        self,
        theme: str,
        character_name: str,
        character_gender: str,
        description: Optional[str] = None,
    ) -> str:
        required = "Character name, gender, and theme are required."
        prompt = build_portrait_prompt(
            _require_text(theme, required),
            _require_text(character_name, required),
            _require_text(character_gender, required),
            description,
        )
        return await self._scene_image(prompt, PORTRAIT_ASPECT_RATIO)

    def _validate_player_limit(self, max_players: Optional[int]) -> int:
        if max_players is None:
            return self._config.default_max_players
        low, high = self._config.min_players, self._config.max_players
        if (
            isinstance(max_players, bool)
            or not isinstance(max_players, int)
            or not low <= max_players <= high
        ):
            raise InvalidRequestError(
                f"Player count must be between {low} and {high}.",
                {"maxPlayers": max_players},
            )
        return max_players
