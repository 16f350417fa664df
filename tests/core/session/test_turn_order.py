"""턴 순서 로직 테스트"""

from storyrelay.core.session.models import PlayerEntry
from storyrelay.core.session.turn_order import (
    advance_round_robin,
    next_connected_player,
    next_eligible_player,
)


def _roster(n: int) -> list[PlayerEntry]:
    return [
        PlayerEntry(user_id=f"u{i}", player_index=i, character_name=f"C{i}", character_gender="x")
        for i in range(n)
    ]


class TestAdvanceRoundRobin:
    def test_advances_by_one(self) -> None:
        assert advance_round_robin(_roster(4), 0) == 1
        assert advance_round_robin(_roster(4), 2) == 3

    def test_wraps_to_zero(self) -> None:
        assert advance_round_robin(_roster(4), 3) == 0

    def test_single_player_stays(self) -> None:
        assert advance_round_robin(_roster(1), 0) == 0

    def test_ignores_connectivity(self) -> None:
        """다음 호출의 접속 체크가 스킵을 담당"""
        roster = _roster(3)
        roster[1].is_active = False
        assert advance_round_robin(roster, 0) == 1


class TestNextConnectedPlayer:
    def test_skips_to_nearest_connected(self) -> None:
        """4명 중 1, 3번만 접속 → 0번 다음은 1번"""
        connected = {"u1", "u3"}
        assert next_connected_player(_roster(4), 0, connected.__contains__) == 1

    def test_wraps_around(self) -> None:
        connected = {"u1"}
        assert next_connected_player(_roster(4), 2, connected.__contains__) == 1

    def test_current_slot_checked_last(self) -> None:
        connected = {"u2"}
        assert next_connected_player(_roster(4), 2, connected.__contains__) == 2

    def test_nobody_connected(self) -> None:
        assert next_connected_player(_roster(4), 0, lambda uid: False) is None

    def test_inactive_players_are_skipped(self) -> None:
        roster = _roster(3)
        roster[1].is_active = False
        assert next_connected_player(roster, 0, lambda uid: True) == 2

    def test_start_before_first_slot(self) -> None:
        assert next_connected_player(_roster(3), -1, lambda uid: True) == 0


class TestNextEligiblePlayer:
    def test_empty_roster(self) -> None:
        assert next_eligible_player([], 0, lambda p: True) is None

    def test_visits_each_slot_once(self) -> None:
        visited = []

        def record(player: PlayerEntry) -> bool:
            visited.append(player.player_index)
            return False

        assert next_eligible_player(_roster(4), 1, record) is None
        assert visited == [2, 3, 0, 1]
