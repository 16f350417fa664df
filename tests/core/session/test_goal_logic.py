"""Goal / prerequisite bookkeeping tests"""

from storyrelay.core.session.goal_logic import (
    all_prerequisites_met,
    apply_turn_result,
    merge_met_prerequisites,
)
from storyrelay.core.session.models import GoalState

PREREQS = ["Find the ledger", "Bribe the dock clerk", "Steal a boat"]


def _goal(met: list[str], is_goal_met: bool = False) -> GoalState:
    return GoalState(
        goal="Unmask the smuggler",
        prerequisites=list(PREREQS),
        met=list(met),
        is_goal_met=is_goal_met,
    )


class TestMergeMetPrerequisites:
    def test_union_keeps_prerequisite_order(self) -> None:
        merged = merge_met_prerequisites(PREREQS, ["Steal a boat"], ["Find the ledger"])
        assert merged == ["Find the ledger", "Steal a boat"]

    def test_never_shrinks(self) -> None:
        """생성기가 기존 항목을 빠뜨려도 유지"""
        merged = merge_met_prerequisites(PREREQS, ["Find the ledger"], [])
        assert merged == ["Find the ledger"]

    def test_unknown_entries_dropped(self) -> None:
        merged = merge_met_prerequisites(PREREQS, [], ["Win the lottery"])
        assert merged == []

    def test_duplicates_collapse(self) -> None:
        merged = merge_met_prerequisites(PREREQS, ["Find the ledger"], ["Find the ledger"])
        assert merged == ["Find the ledger"]


class TestApplyTurnResult:
    def test_new_prerequisite_recorded(self) -> None:
        result = apply_turn_result(_goal([]), ["Bribe the dock clerk"], False)
        assert result.met == ["Bribe the dock clerk"]
        assert result.is_goal_met is False

    def test_goal_requires_prerequisites_met_before_action(self) -> None:
        """같은 액션으로 충족된 전제조건은 목표 달성에 포함되지 않는다"""
        pre = _goal(["Find the ledger", "Bribe the dock clerk"])
        result = apply_turn_result(pre, PREREQS, True)
        assert result.met == PREREQS
        assert result.is_goal_met is False

    def test_goal_met_when_all_already_met(self) -> None:
        result = apply_turn_result(_goal(PREREQS), PREREQS, True)
        assert result.is_goal_met is True

    def test_goal_never_reverts(self) -> None:
        result = apply_turn_result(_goal(PREREQS, is_goal_met=True), [], False)
        assert result.is_goal_met is True
        assert result.met == PREREQS

    def test_input_not_mutated(self) -> None:
        pre = _goal([])
        apply_turn_result(pre, ["Steal a boat"], False)
        assert pre.met == []

    def test_goal_without_prerequisites(self) -> None:
        pre = GoalState(goal="Survive", prerequisites=[], met=[])
        assert apply_turn_result(pre, [], True).is_goal_met is True


def test_all_prerequisites_met() -> None:
    assert all_prerequisites_met(PREREQS, PREREQS) is True
    assert all_prerequisites_met(PREREQS, PREREQS[:2]) is False
