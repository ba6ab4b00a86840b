"""Tests for plan status rules, subtree invariants and deterministic fallbacks."""

import pytest

from conftest import make_snapshot, poi, region

from mazemind.cognition.cadence import PlannerConfig
from mazemind.cognition.fallback import (
    determine_priority,
    fallback_action,
    fallback_daily_plan,
    fallback_hourly_objective,
    step_toward,
)
from mazemind.cognition.plans import (
    iter_subtree,
    transition,
    validate_children,
    validate_tree,
)
from mazemind.errors import InvalidStatusTransition, PlanInvariantError
from mazemind.schemas import (
    ActionPlan,
    ActionType,
    DailyPlan,
    HourlyPlan,
    PlanPriority,
    PlanStatus,
    Position,
)


def _daily(**overrides):
    values = dict(goal="Explore", reasoning="Calm", priority=PlanPriority.MEDIUM,
                  created_at=0.0, start_time=0.0, duration=3 * 3600.0)
    values.update(overrides)
    return DailyPlan(**values)


def _hours(plan, count=3, duration=3600.0):
    return [
        HourlyPlan(parent_id=plan.id, start_time=plan.start_time + i * duration,
                   duration=duration, objective=f"Hour {i}")
        for i in range(count)
    ]


def _actions(hourly, count=12, duration=300.0):
    return [
        ActionPlan(parent_id=hourly.id, start_time=hourly.start_time + i * duration,
                   duration=duration, action=f"Step {i}", action_type=ActionType.MOVE)
        for i in range(count)
    ]


@pytest.mark.parametrize(
    "current, target, allowed",
    [
        (PlanStatus.PENDING, PlanStatus.IN_PROGRESS, True),
        (PlanStatus.PENDING, PlanStatus.ABANDONED, True),
        (PlanStatus.IN_PROGRESS, PlanStatus.COMPLETED, True),
        (PlanStatus.IN_PROGRESS, PlanStatus.PENDING, False),
        (PlanStatus.COMPLETED, PlanStatus.PENDING, False),
        (PlanStatus.COMPLETED, PlanStatus.IN_PROGRESS, False),
        (PlanStatus.ABANDONED, PlanStatus.COMPLETED, False),
        (PlanStatus.FAILED, PlanStatus.ABANDONED, False),
    ],
)
def test_status_transitions_only_move_forward(current, target, allowed):
    assert current.can_transition_to(target) is allowed


def test_transition_stamps_completion_and_rejects_backward_moves():
    plan = _daily()

    assert transition(plan, PlanStatus.IN_PROGRESS, at=5.0)
    assert plan.completed_at is None
    assert not transition(plan, PlanStatus.IN_PROGRESS)
    assert transition(plan, PlanStatus.COMPLETED, at=9.0)
    assert plan.completed_at == 9.0

    with pytest.raises(InvalidStatusTransition):
        transition(plan, PlanStatus.PENDING)


def test_valid_children_pass():
    plan = _daily()
    hours = _hours(plan)
    validate_children(plan, hours, expected_count=3)
    validate_children(hours[0], _actions(hours[0]), expected_count=12)


def test_wrong_fan_out_is_rejected():
    plan = _daily()
    with pytest.raises(PlanInvariantError):
        validate_children(plan, _hours(plan, count=2), expected_count=3)


def test_orphaned_child_is_rejected():
    plan = _daily()
    hours = _hours(plan)
    hours[1] = HourlyPlan(parent_id="someone-else", start_time=3600.0, duration=3600.0, objective="x")
    with pytest.raises(PlanInvariantError):
        validate_children(plan, hours, expected_count=3)


def test_gaps_and_duration_mismatch_are_rejected():
    plan = _daily()
    gapped = _hours(plan)
    gapped[2] = HourlyPlan(parent_id=plan.id, start_time=7300.0, duration=3600.0, objective="late")
    with pytest.raises(PlanInvariantError):
        validate_children(plan, gapped, expected_count=3)

    short = _hours(plan, duration=3000.0)
    with pytest.raises(PlanInvariantError):
        validate_children(plan, short, expected_count=3)


def test_validate_tree_reports_cascade_and_in_progress_problems():
    plan = _daily()
    plan.hourly_plans = _hours(plan)
    first = plan.hourly_plans[0]
    first.actions = _actions(first)
    for action in first.actions:
        action.status = PlanStatus.COMPLETED
    plan.hourly_plans[1].actions = _actions(plan.hourly_plans[1])
    plan.hourly_plans[1].actions[0].status = PlanStatus.IN_PROGRESS
    plan.hourly_plans[1].actions[1].status = PlanStatus.IN_PROGRESS

    problems = validate_tree(plan)

    assert any("all actions completed" in p for p in problems)
    assert any("IN_PROGRESS" in p for p in problems)
    assert len(list(iter_subtree(plan))) == 1 + 3 + 24


def test_planner_config_checks_durations():
    with pytest.raises(ValueError):
        PlannerConfig(actions_per_hour=10)
    with pytest.raises(ValueError):
        PlannerConfig(divergence_multiplier=1.0)
    assert PlannerConfig().day_duration == 3 * 3600.0


def test_priority_follows_survival_stats():
    config = PlannerConfig()
    assert determine_priority(make_snapshot(thirst=10), config) is PlanPriority.CRITICAL
    assert determine_priority(make_snapshot(hunger=35), config) is PlanPriority.HIGH
    assert determine_priority(make_snapshot(exploration=0.1), config) is PlanPriority.MEDIUM
    assert determine_priority(make_snapshot(exploration=0.8), config) is PlanPriority.HIGH


def test_fallback_daily_plan_seeks_nearest_resource_when_needed():
    snapshot = make_snapshot(
        thirst=12,
        pois=[poi("w-far", "water", 20, 0), poi("w-near", "water", 3, 0), poi("w-blocked", "water", 1, 0, reachable=False)],
    )

    plan = fallback_daily_plan(snapshot, PlannerConfig())

    assert plan.priority is PlanPriority.CRITICAL
    assert "water" in plan.goal and "(3, 0)" in plan.goal


def test_fallback_daily_plan_explores_least_visited_region():
    snapshot = make_snapshot(regions=[region("north", 0, 10, visits=4), region("east", 10, 0, visits=1)])

    plan = fallback_daily_plan(snapshot, PlannerConfig())

    assert "east" in plan.goal
    assert plan.priority is PlanPriority.MEDIUM


def test_fallback_hourly_objectives_track_the_goal():
    assert "water" in fallback_hourly_objective("Reach the water at (3, 0)", 0).objective
    assert "hour 2" in fallback_hourly_objective("Explore the east region", 1).objective


def test_step_toward_moves_along_x_first():
    origin = Position(x=0, y=0)
    assert step_toward(origin, Position(x=3, y=4), 5) == Position(x=3, y=2)
    assert step_toward(origin, Position(x=-2, y=0), 5) == Position(x=-2, y=0)
    assert step_toward(origin, Position(x=0, y=-7), 5) == Position(x=0, y=-5)


def test_fallback_actions_walk_then_consume():
    config = PlannerConfig()
    snapshot = make_snapshot(pois=[poi("f1", "food", 8, 0)])
    goal = "Reach the food at (8, 0) to restore hunger"
    objective = "Search corridors for food items (hour 1)"

    steps = [fallback_action(goal, objective, i, snapshot, config) for i in range(3)]

    assert steps[0].action_type is ActionType.SEEK_ITEM
    assert steps[0].target_position == Position(x=5, y=0)
    assert steps[1].target_position == Position(x=8, y=0)
    assert steps[2].action_type is ActionType.CONSUME_ITEM
    assert steps[2].target_item == "food"


def test_fallback_action_rests_without_any_target():
    action = fallback_action("Explore", "Map corridors", 0, make_snapshot(), PlannerConfig())
    assert action.action_type is ActionType.REST
    assert action.target_position is None
