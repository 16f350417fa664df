"""SessionStore tests (in-memory SQLite)"""

import pytest
from sqlalchemy import select

from storyrelay.core.errors import (
    InvalidRequestError,
    SessionFullError,
    SessionNotFoundError,
    TurnConflictError,
)
from storyrelay.core.session.models import GoalState, NpcCharacter, PlayerEntry, TurnRecord
from storyrelay.db.models import SessionModel, SessionPlayerModel, TurnModel
from storyrelay.services.session_store import SessionStore


def _turn(index: int, action: str | None = None, actor: str | None = None) -> TurnRecord:
    return TurnRecord(
        turn_index=index,
        narrative=f"Scene {index}",
        image_url="img",
        image_prompt="prompt",
        suggested_actions=["a", "b"],
        action_taken=action,
        characters=[NpcCharacter(name="Mags")],
        acting_player_user_id=actor,
        acting_player_index=0 if actor else None,
    )


def _create(store: SessionStore, session_id: str = "s1", multiplayer: bool = True,
            max_players: int | None = 3, invite: str | None = "INV-TEST0001") -> None:
    store.create_session(
        session_id=session_id,
        creator=PlayerEntry(user_id="ann", player_index=0, character_name="Ann", character_gender="f"),
        theme="Fantasy",
        is_multiplayer=multiplayer,
        max_players=max_players,
        invite_code=invite,
        goal=GoalState(goal="Escape", prerequisites=["key", "name"]),
        opening_turn=_turn(0),
    )


class TestCreateSession:
    def test_creates_session_player_and_turn_zero(self, store: SessionStore) -> None:
        _create(store)
        state = store.require_state("s1")

        assert state.current_player_index == 0
        assert state.invite_code == "INV-TEST0001"
        assert [p.user_id for p in state.players] == ["ann"]
        assert state.latest_turn_index == 0
        assert state.history[0].action_taken is None
        assert state.goal.prerequisites == ["key", "name"]
        assert state.goal.met == []

    def test_single_player_has_no_index_or_invite(self, store: SessionStore) -> None:
        _create(store, multiplayer=False, max_players=4, invite="INV-IGNORED")
        state = store.require_state("s1")
        assert state.current_player_index is None
        assert state.max_players is None
        assert state.invite_code is None

    def test_list_columns_decoded(self, store: SessionStore, db_session) -> None:
        _create(store)
        raw = db_session.scalar(select(TurnModel.suggested_actions))
        assert isinstance(raw, str)
        turn = store.require_state("s1").history[0]
        assert turn.suggested_actions == ["a", "b"]
        assert turn.characters[0].name == "Mags"


class TestAddPlayer:
    def test_sequential_indices(self, store: SessionStore) -> None:
        _create(store)
        bob, already = store.add_player("s1", "bob", "Bob", "m")
        cat, _ = store.add_player("s1", "cat", "Cat", "f")
        assert already is False
        assert (bob.player_index, cat.player_index) == (1, 2)

    def test_rejoin_is_idempotent(self, store: SessionStore) -> None:
        _create(store)
        store.add_player("s1", "bob", "Bob", "m")
        entry, already = store.add_player("s1", "bob", "Robert", "m")
        assert already is True
        assert entry.character_name == "Bob"
        assert store.require_state("s1").player_count == 2

    def test_full_session_rejected_without_mutation(self, store: SessionStore) -> None:
        _create(store, max_players=2)
        store.add_player("s1", "bob", "Bob", "m")
        with pytest.raises(SessionFullError):
            store.add_player("s1", "cat", "Cat", "f")
        assert store.require_state("s1").player_count == 2

    def test_single_player_session_rejected(self, store: SessionStore) -> None:
        _create(store, multiplayer=False)
        with pytest.raises(InvalidRequestError):
            store.add_player("s1", "bob", "Bob", "m")

    def test_unknown_session(self, store: SessionStore) -> None:
        with pytest.raises(SessionNotFoundError):
            store.add_player("nope", "bob", "Bob", "m")


class TestCommitTurn:
    def test_appends_and_advances(self, store: SessionStore) -> None:
        _create(store)
        goal = GoalState(goal="Escape", prerequisites=["key", "name"], met=["key"])
        store.commit_turn("s1", 0, _turn(1, "look", "ann"), 1, goal)

        state = store.require_state("s1")
        assert state.latest_turn_index == 1
        assert state.current_player_index == 1
        assert state.goal.met == ["key"]
        assert state.history[1].action_taken == "look"

    def test_stale_expected_latest_conflicts(self, store: SessionStore) -> None:
        _create(store)
        goal = GoalState(goal="Escape", prerequisites=["key", "name"])
        store.commit_turn("s1", 0, _turn(1, "look", "ann"), 0, goal)
        with pytest.raises(TurnConflictError):
            store.commit_turn("s1", 0, _turn(1, "look again", "ann"), 0, goal)
        assert store.require_state("s1").latest_turn_index == 1

    def test_met_set_cannot_shrink(self, store: SessionStore) -> None:
        _create(store)
        with_key = GoalState(goal="Escape", prerequisites=["key", "name"], met=["key"])
        store.commit_turn("s1", 0, _turn(1, "a", "ann"), 0, with_key)
        without = GoalState(goal="Escape", prerequisites=["key", "name"], met=[])
        with pytest.raises(ValueError):
            store.commit_turn("s1", 1, _turn(2, "b", "ann"), 0, without)
        assert store.require_state("s1").latest_turn_index == 1

    def test_goal_flag_never_reverts(self, store: SessionStore) -> None:
        _create(store)
        done = GoalState(goal="Escape", prerequisites=[], met=[], is_goal_met=True)
        store.commit_turn("s1", 0, _turn(1, "a", "ann"), 0, done)
        not_done = GoalState(goal="Escape", prerequisites=[], met=[], is_goal_met=False)
        store.commit_turn("s1", 1, _turn(2, "b", "ann"), 0, not_done)
        assert store.require_state("s1").goal.is_goal_met is True

    def test_truncate_discards_later_turns(self, store: SessionStore) -> None:
        _create(store)
        goal = GoalState(goal="Escape", prerequisites=["key", "name"])
        store.commit_turn("s1", 0, _turn(1, "a", "ann"), 0, goal)
        store.commit_turn("s1", 1, _turn(2, "b", "ann"), 0, goal)

        store.commit_turn("s1", 2, _turn(1, "branch", "ann"), 0, goal, truncate_after=0)

        history = store.require_state("s1").history
        assert [t.turn_index for t in history] == [0, 1]
        assert history[1].action_taken == "branch"

    def test_truncate_out_of_range(self, store: SessionStore) -> None:
        _create(store)
        goal = GoalState(goal="Escape", prerequisites=[])
        with pytest.raises(TurnConflictError):
            store.commit_turn("s1", 0, _turn(6, "a", "ann"), 0, goal, truncate_after=5)

    def test_single_player_index_stays_null(self, store: SessionStore) -> None:
        _create(store, multiplayer=False)
        goal = GoalState(goal="Escape", prerequisites=[])
        store.commit_turn("s1", 0, _turn(1, "a", "ann"), 3, goal)
        assert store.require_state("s1").current_player_index is None


class TestSetCurrentPlayer:
    def test_moves_index(self, store: SessionStore) -> None:
        _create(store)
        store.set_current_player("s1", 0, 2)
        assert store.require_state("s1").current_player_index == 2

    def test_conflict_when_changed(self, store: SessionStore) -> None:
        _create(store)
        with pytest.raises(TurnConflictError):
            store.set_current_player("s1", 1, 2)


class TestQueries:
    def test_find_by_invite(self, store: SessionStore) -> None:
        _create(store)
        assert store.find_session_by_invite("INV-TEST0001") == "s1"
        with pytest.raises(SessionNotFoundError):
            store.find_session_by_invite("INV-NOPE")

    def test_invite_info(self, store: SessionStore) -> None:
        _create(store, max_players=2)
        info = store.invite_info("INV-TEST0001")
        assert (info.player_count, info.max_players, info.is_full) == (1, 2, False)
        store.add_player("s1", "bob", "Bob", "m")
        assert store.invite_info("INV-TEST0001").is_full is True

    def test_history_snippet(self, store: SessionStore) -> None:
        store.create_session(
            session_id="long",
            creator=PlayerEntry(user_id="ann", player_index=0, character_name="Ann", character_gender="f"),
            theme="Horror",
            is_multiplayer=False,
            max_players=None,
            invite_code=None,
            goal=GoalState(goal="Survive"),
            opening_turn=TurnRecord(turn_index=0, narrative="x" * 150, image_url="", image_prompt=""),
        )
        [summary] = store.list_sessions_for_user("ann")
        assert summary.initial_scenario_snippet == "x" * 100 + "..."
        assert summary.player_count == 1
        assert store.list_sessions_for_user("bob") == []

    def test_is_member(self, store: SessionStore) -> None:
        _create(store)
        assert store.is_member("s1", "ann") is True
        assert store.is_member("s1", "bob") is False

    def test_ping(self, store: SessionStore) -> None:
        assert store.ping() is True


class TestDeleteSession:
    def test_creator_deletes_with_cascade(self, store: SessionStore, db_session) -> None:
        _create(store)
        store.add_player("s1", "bob", "Bob", "m")
        store.delete_session("s1", "ann")

        assert store.get_state("s1") is None
        assert db_session.scalars(select(SessionPlayerModel)).all() == []
        assert db_session.scalars(select(TurnModel)).all() == []

    def test_non_creator_cannot_delete(self, store: SessionStore, db_session) -> None:
        _create(store)
        store.add_player("s1", "bob", "Bob", "m")
        with pytest.raises(SessionNotFoundError):
            store.delete_session("s1", "bob")
        assert db_session.get(SessionModel, "s1") is not None
