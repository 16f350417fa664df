"""Session Store: durable sessions, rosters and turn ledgers

Pure data access. Every public method runs in its own transaction and either
commits all of its writes or none. JSON-encoded list columns are decoded
here and never leave this module as strings.
"""

import json
import logging
import uuid
from typing import Any, Callable, Optional

from sqlalchemy import delete, func, select, text
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session, selectinload

from storyrelay.core.errors import (
    InvalidRequestError,
    SessionFullError,
    SessionNotFoundError,
    TurnConflictError,
)
from storyrelay.core.session.models import (
    GoalState,
    InviteInfo,
    NpcCharacter,
    PlayerEntry,
    SessionState,
    SessionSummary,
    TurnRecord,
)
from storyrelay.db.models import (
    Base,
    SessionModel,
    SessionPlayerModel,
    TurnModel,
    utcnow,
)

logger = logging.getLogger(__name__)

SNIPPET_LENGTH = 100
MISSING_SNIPPET = "[No scenario recorded for first turn]"


# === 직렬화 경계 ===


def _new_uuid() -> str:
    return str(uuid.uuid4())


def _encode_list(values: list[Any]) -> str:
    return json.dumps(values, ensure_ascii=False)


def _decode_list(raw: Optional[str], column: str) -> list[Any]:
    if not raw:
        return []
    try:
        value = json.loads(raw)
    except (json.JSONDecodeError, TypeError):
        logger.warning("Corrupt JSON in column %s, treating as empty", column)
        return []
    if not isinstance(value, list):
        logger.warning("Column %s does not hold a list, treating as empty", column)
        return []
    return value


def _model_to_player(orm: SessionPlayerModel) -> PlayerEntry:
    return PlayerEntry(
        user_id=orm.user_id,
        player_index=orm.player_index,
        character_name=orm.character_name,
        character_gender=orm.character_gender,
        character_image_url=orm.character_image_url,
        is_active=bool(orm.is_active),
    )


def _model_to_turn(orm: TurnModel) -> TurnRecord:
    return TurnRecord(
        turn_index=orm.turn_index,
        narrative=orm.scenario_text,
        image_url=orm.image_url,
        image_prompt=orm.image_prompt,
        suggested_actions=[
            str(a) for a in _decode_list(orm.suggested_actions, "suggested_actions")
        ],
        action_taken=orm.action_taken,
        time_of_day=orm.time_of_day,
        is_same_location=bool(orm.is_same_location),
        characters=[
            NpcCharacter.from_dict(c)
            for c in _decode_list(orm.characters, "characters")
            if isinstance(c, dict)
        ],
        acting_player_user_id=orm.acting_player_user_id,
        acting_player_index=orm.acting_player_index,
    )


def _turn_to_model(session_id: str, turn_id: str, turn: TurnRecord) -> TurnModel:
    return TurnModel(
        turn_id=turn_id,
        session_id=session_id,
        turn_index=turn.turn_index,
        scenario_text=turn.narrative,
        image_url=turn.image_url,
        image_prompt=turn.image_prompt,
        suggested_actions=_encode_list(list(turn.suggested_actions)),
        action_taken=turn.action_taken,
        time_of_day=turn.time_of_day,
        is_same_location=turn.is_same_location,
        characters=_encode_list([c.to_dict() for c in turn.characters]),
        acting_player_user_id=turn.acting_player_user_id,
        acting_player_index=turn.acting_player_index,
    )


def _model_to_goal(orm: SessionModel) -> GoalState:
    return GoalState(
        goal=orm.game_goal or "",
        prerequisites=[
            str(p) for p in _decode_list(orm.goal_prerequisites, "goal_prerequisites")
        ],
        met=[str(p) for p in _decode_list(orm.met_prerequisites, "met_prerequisites")],
        is_goal_met=bool(orm.is_goal_met),
    )


def _model_to_state(orm: SessionModel) -> SessionState:
    return SessionState(
        session_id=orm.session_id,
        theme=orm.theme,
        is_multiplayer=bool(orm.is_multiplayer),
        creator_user_id=orm.creator_user_id,
        max_players=orm.max_players,
        current_player_index=orm.current_player_index,
        invite_code=orm.invite_code,
        goal=_model_to_goal(orm),
        players=[_model_to_player(p) for p in orm.players],
        history=[_model_to_turn(t) for t in orm.turns],
        created_at=orm.created_at,
        updated_at=orm.updated_at,
    )


class SessionStore:
    """Transactional access to sessions, players and turns."""

    def __init__(
        self,
        session_factory: Callable[[], Session],
        id_factory: Optional[Callable[[], str]] = None,
    ) -> None:
        self._session_factory = session_factory
        self._new_id = id_factory or _new_uuid

    # === 스키마 / 상태 ===

    def create_schema(self) -> None:
        with self._session_factory() as db:
            Base.metadata.create_all(bind=db.get_bind())

    def ping(self) -> bool:
        with self._session_factory() as db:
            db.execute(text("SELECT 1"))
        return True

    # === 생성 / 참가 ===

    def create_session(
        self,
        session_id: str,
        creator: PlayerEntry,
        theme: str,
        is_multiplayer: bool,
        max_players: Optional[int],
        invite_code: Optional[str],
        goal: GoalState,
        opening_turn: TurnRecord,
    ) -> SessionState:
        """Insert session, creator (index 0) and turn 0 in one transaction."""
        now = utcnow()
        with self._session_factory() as db, db.begin():
            orm = SessionModel(
                session_id=session_id,
                creator_user_id=creator.user_id,
                theme=theme,
                is_multiplayer=is_multiplayer,
                max_players=max_players if is_multiplayer else None,
                current_player_index=0 if is_multiplayer else None,
                invite_code=invite_code if is_multiplayer else None,
                game_goal=goal.goal,
                goal_prerequisites=_encode_list(list(goal.prerequisites)),
                met_prerequisites=_encode_list([]),
                is_goal_met=False,
                created_at=now,
                updated_at=now,
            )
            db.add(orm)
            db.add(
                SessionPlayerModel(
                    session_id=session_id,
                    user_id=creator.user_id,
                    player_index=0,
                    character_name=creator.character_name,
                    character_gender=creator.character_gender,
                    character_image_url=creator.character_image_url,
                    is_active=True,
                    joined_at=now,
                )
            )
            db.add(_turn_to_model(session_id, self._new_id(), opening_turn))

        logger.info(
            "Created session %s (multiplayer=%s, goal=%r)",
            session_id,
            is_multiplayer,
            goal.goal,
        )
        state = self.get_state(session_id)
        assert state is not None
        return state

    def find_session_by_invite(self, invite_code: str) -> str:
        """Session id for an invite code, or SessionNotFoundError."""
        with self._session_factory() as db:
            session_id = db.scalar(
                select(SessionModel.session_id).where(
                    SessionModel.invite_code == invite_code
                )
            )
        if session_id is None:
            raise SessionNotFoundError("Invite code not found.")
        return session_id

    def add_player(
        self,
        session_id: str,
        user_id: str,
        character_name: str,
        character_gender: str,
        character_image_url: Optional[str] = None,
    ) -> tuple[PlayerEntry, bool]:
        """Append a roster entry with the next sequential index.

        Returns ``(entry, already_joined)``. Re-joining returns the existing
        entry unchanged.
        """
        try:
            with self._session_factory() as db, db.begin():
                session = db.get(SessionModel, session_id)
                if session is None:
                    raise SessionNotFoundError("Session not found.")
                if not session.is_multiplayer:
                    raise InvalidRequestError("This session is not a multiplayer game.")

                existing = db.scalar(
                    select(SessionPlayerModel).where(
                        SessionPlayerModel.session_id == session_id,
                        SessionPlayerModel.user_id == user_id,
                    )
                )
                if existing is not None:
                    logger.info("User %s already in session %s", user_id, session_id)
                    return _model_to_player(existing), True

                player_count = db.scalar(
                    select(func.count())
                    .select_from(SessionPlayerModel)
                    .where(SessionPlayerModel.session_id == session_id)
                ) or 0
                if session.max_players is not None and player_count >= session.max_players:
                    raise SessionFullError(
                        "Session is full.",
                        {"maxPlayers": session.max_players},
                    )

                orm = SessionPlayerModel(
                    session_id=session_id,
                    user_id=user_id,
                    player_index=player_count,
                    character_name=character_name,
                    character_gender=character_gender,
                    character_image_url=character_image_url,
                    is_active=True,
                    joined_at=utcnow(),
                )
                db.add(orm)
                session.updated_at = utcnow()
                db.flush()
                entry = _model_to_player(orm)
        except IntegrityError as e:
            logger.warning("Join race for session %s: %s", session_id, e)
            raise InvalidRequestError(
                "You might already be in this session."
            ) from e

        logger.info(
            "User %s joined session %s as player %d",
            user_id,
            session_id,
            entry.player_index,
        )
        return entry, False

    # === 조회 ===

    def get_state(self, session_id: str) -> Optional[SessionState]:
        with self._session_factory() as db:
            orm = db.scalar(
                select(SessionModel)
                .where(SessionModel.session_id == session_id)
                .options(
                    selectinload(SessionModel.players),
                    selectinload(SessionModel.turns),
                )
            )
            if orm is None:
                return None
            return _model_to_state(orm)

    def require_state(self, session_id: str) -> SessionState:
        state = self.get_state(session_id)
        if state is None:
            raise SessionNotFoundError("Session not found.")
        return state

    def is_member(self, session_id: str, user_id: str) -> bool:
        with self._session_factory() as db:
            found = db.scalar(
                select(SessionPlayerModel.id).where(
                    SessionPlayerModel.session_id == session_id,
                    SessionPlayerModel.user_id == user_id,
                )
            )
        return found is not None

    def list_sessions_for_user(self, user_id: str) -> list[SessionSummary]:
        """Sessions the user plays in, most recently updated first."""
        with self._session_factory() as db:
            member_of = select(SessionPlayerModel.session_id).where(
                SessionPlayerModel.user_id == user_id
            )
            sessions = db.scalars(
                select(SessionModel)
                .where(SessionModel.session_id.in_(member_of))
                .order_by(SessionModel.updated_at.desc())
            ).all()

            summaries = []
            for s in sessions:
                player_count = db.scalar(
                    select(func.count())
                    .select_from(SessionPlayerModel)
                    .where(SessionPlayerModel.session_id == s.session_id)
                ) or 0
                opening = db.scalar(
                    select(TurnModel.scenario_text).where(
                        TurnModel.session_id == s.session_id,
                        TurnModel.turn_index == 0,
                    )
                )
                if opening:
                    snippet = opening[:SNIPPET_LENGTH]
                    if len(opening) > SNIPPET_LENGTH:
                        snippet += "..."
                else:
                    snippet = MISSING_SNIPPET
                summaries.append(
                    SessionSummary(
                        session_id=s.session_id,
                        theme=s.theme,
                        is_multiplayer=bool(s.is_multiplayer),
                        player_count=player_count,
                        initial_scenario_snippet=snippet,
                        created_at=s.created_at,
                        updated_at=s.updated_at,
                    )
                )
        return summaries

    def invite_info(self, invite_code: str) -> InviteInfo:
        with self._session_factory() as db:
            session = db.scalar(
                select(SessionModel).where(SessionModel.invite_code == invite_code)
            )
            if session is None:
                raise SessionNotFoundError("Invite code not found or session expired.")
            if not session.is_multiplayer or session.max_players is None:
                raise InvalidRequestError("Session is not a multiplayer game.")
            player_count = db.scalar(
                select(func.count())
                .select_from(SessionPlayerModel)
                .where(SessionPlayerModel.session_id == session.session_id)
            ) or 0
            return InviteInfo(
                session_id=session.session_id,
                theme=session.theme,
                player_count=player_count,
                max_players=session.max_players,
            )

    # === 턴 기록 ===

    def commit_turn(
        self,
        session_id: str,
        expected_latest: int,
        turn: TurnRecord,
        next_player_index: Optional[int],
        goal: GoalState,
        truncate_after: Optional[int] = None,
    ) -> None:
        """Append ``turn`` and update goal state / turn owner atomically.

        The latest turn index is re-read inside the transaction. Unless
        ``truncate_after`` is given it must equal ``expected_latest``;
        with ``truncate_after`` every turn after that index is deleted first.
        """
        with self._session_factory() as db, db.begin():
            session = db.get(SessionModel, session_id)
            if session is None:
                raise SessionNotFoundError("Session not found.")

            latest = db.scalar(
                select(func.max(TurnModel.turn_index)).where(
                    TurnModel.session_id == session_id
                )
            )
            latest = -1 if latest is None else latest

            if truncate_after is not None:
                if truncate_after < 0 or truncate_after > latest:
                    raise TurnConflictError(
                        f"Cannot branch from turn {truncate_after}; latest is {latest}.",
                        {"latestTurnIndex": latest},
                    )
                if truncate_after < latest:
                    removed = db.execute(
                        delete(TurnModel).where(
                            TurnModel.session_id == session_id,
                            TurnModel.turn_index > truncate_after,
                        )
                    ).rowcount
                    logger.warning(
                        "Session %s: discarded %d turn(s) after turn %d",
                        session_id,
                        removed,
                        truncate_after,
                    )
                latest = truncate_after
            elif latest != expected_latest:
                raise TurnConflictError(
                    f"Turn {expected_latest} is no longer the latest turn.",
                    {"latestTurnIndex": latest},
                )

            if turn.turn_index != latest + 1:
                raise TurnConflictError(
                    f"Turn index {turn.turn_index} does not follow turn {latest}.",
                    {"latestTurnIndex": latest},
                )

            stored_met = set(_decode_list(session.met_prerequisites, "met_prerequisites"))
            if not stored_met <= set(goal.met):
                raise ValueError("met prerequisites may only grow")

            db.add(_turn_to_model(session_id, self._new_id(), turn))
            session.met_prerequisites = _encode_list(list(goal.met))
            session.is_goal_met = bool(session.is_goal_met) or goal.is_goal_met
            if session.is_multiplayer:
                session.current_player_index = next_player_index
            session.updated_at = utcnow()

    def set_current_player(
        self,
        session_id: str,
        expected_current: Optional[int],
        new_index: int,
    ) -> None:
        """Move turn ownership without creating a turn."""
        with self._session_factory() as db, db.begin():
            session = db.get(SessionModel, session_id)
            if session is None:
                raise SessionNotFoundError("Session not found.")
            if session.current_player_index != expected_current:
                raise TurnConflictError(
                    "Turn ownership changed concurrently.",
                    {"currentPlayerIndex": session.current_player_index},
                )
            session.current_player_index = new_index
            session.updated_at = utcnow()

    # === 삭제 ===

    def delete_session(self, session_id: str, user_id: str) -> None:
        """Delete a session and its roster/turns. Only the creator may do this."""
        with self._session_factory() as db, db.begin():
            session = db.get(SessionModel, session_id)
            if session is None or session.creator_user_id != user_id:
                raise SessionNotFoundError("Session not found or access denied.")
            db.delete(session)
        logger.info("Session %s deleted by %s", session_id, user_id)
