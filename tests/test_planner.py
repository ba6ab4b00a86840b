"""Tests for hierarchical plan generation, execution tracking and re-planning."""

import pytest

from conftest import make_snapshot, poi

from mazemind.cognition.cadence import PlannerConfig
from mazemind.cognition.context import PlanningContext
from mazemind.cognition.planner import HierarchicalPlanner
from mazemind.errors import InvalidStatusTransition
from mazemind.schemas import (
    ActionOutcome,
    ActionPlanResponse,
    ActionType,
    DailyPlan,
    DailyPlanResponse,
    HourlyPlan,
    HourlyPlanResponse,
    MemoryKind,
    PlanPriority,
    PlanStatus,
)


def _context(game_time=0.0, **kwargs):
    return PlanningContext(snapshot=make_snapshot(game_time, **kwargs))


async def _full_plan(planner, context):
    plan = await planner.replan("Initial plan", context)
    for hourly in plan.hourly_plans:
        if not hourly.is_decomposed:
            await planner.decompose(hourly, context)
    return plan


def _complete_hour(planner, hourly):
    for action in hourly.actions:
        planner.complete_action(action.id, ActionOutcome(summary="done"), now=action.end_time)


@pytest.mark.asyncio
async def test_generate_daily_plan_uses_reasoning_result(store, reasoning):
    reasoning.queue(
        DailyPlanResponse,
        DailyPlanResponse(goal="Map the northern wing", reasoning="Stats are fine", priority="low"),
    )
    planner = HierarchicalPlanner(store, reasoning)

    plan = await planner.generate_daily_plan(_context(10.0))

    assert planner.active_plan is plan
    assert plan.goal == "Map the northern wing"
    assert plan.priority is PlanPriority.LOW
    assert plan.source == "reasoning"
    assert plan.status is PlanStatus.PENDING
    assert plan.start_time == 10.0
    assert plan.duration == 3 * 3600.0
    item = store.get(plan.memory_id)
    assert item.kind is MemoryKind.PLAN and item.plan_ref == plan.id


@pytest.mark.asyncio
async def test_generate_falls_back_when_service_fails(store, reasoning):
    reasoning.queue(DailyPlanResponse, TimeoutError("slow"))
    planner = HierarchicalPlanner(store, reasoning)

    plan = await planner.generate_daily_plan(_context(thirst=5, pois=[poi("w", "water", 2, 0)]))

    assert plan.source == "fallback"
    assert plan.priority is PlanPriority.CRITICAL
    assert store.get(plan.memory_id).importance == 8


@pytest.mark.asyncio
async def test_schema_violation_is_treated_like_unavailability(store, reasoning):
    reasoning.queue(DailyPlanResponse, {"goal": "No reasoning or priority"})
    planner = HierarchicalPlanner(store, reasoning)

    plan = await planner.generate_daily_plan(_context())

    assert plan.source == "fallback"


@pytest.mark.asyncio
async def test_decomposition_fan_out_and_windows(store, reasoning):
    reasoning.handle(HourlyPlanResponse, lambda prompt: HourlyPlanResponse(objective="Search the west"))
    reasoning.handle(
        ActionPlanResponse,
        lambda prompt: ActionPlanResponse(action="Walk west", action_type="move", target_x=-1, target_y=0),
    )
    planner = HierarchicalPlanner(store, reasoning)
    context = _context(100.0)
    plan = await planner.generate_daily_plan(context)

    assert await planner.decompose(plan, context)

    assert len(plan.hourly_plans) == 3
    assert [h.start_time for h in plan.hourly_plans] == [100.0, 3700.0, 7300.0]
    assert sum(h.duration for h in plan.hourly_plans) == plan.duration
    first = plan.hourly_plans[0]
    assert len(first.actions) == 12
    assert sum(a.duration for a in first.actions) == first.duration
    for earlier, later in zip(first.actions, first.actions[1:]):
        assert later.start_time == earlier.end_time
    # Later hours stay undecomposed until needed
    assert not plan.hourly_plans[1].is_decomposed
    assert first.actions[0].action_type is ActionType.MOVE
    assert len(reasoning.calls_for(HourlyPlanResponse)) == 3
    assert len(reasoning.calls_for(ActionPlanResponse)) == 12


@pytest.mark.asyncio
async def test_each_child_falls_back_independently(store, reasoning):
    reasoning.queue(HourlyPlanResponse, HourlyPlanResponse(objective="Reasoned objective"))
    planner = HierarchicalPlanner(store, reasoning)
    context = _context()
    plan = await planner.generate_daily_plan(context)

    await planner.decompose(plan, context)

    objectives = [h.objective for h in plan.hourly_plans]
    assert objectives[0] == "Reasoned objective"
    assert all("hour" in text for text in objectives[1:])


@pytest.mark.asyncio
async def test_current_action_inside_second_window(store):
    planner = HierarchicalPlanner(store)
    plan = await _full_plan(planner, _context())
    second = plan.hourly_plans[0].actions[1]

    action = planner.get_current_action(second.start_time + 10)

    assert action is second
    assert action.status is PlanStatus.IN_PROGRESS
    assert plan.status is PlanStatus.IN_PROGRESS
    assert plan.hourly_plans[0].status is PlanStatus.IN_PROGRESS
    assert store.get_plan_item(second.id).status is PlanStatus.IN_PROGRESS


@pytest.mark.asyncio
async def test_expired_action_fails_when_next_becomes_current(store):
    planner = HierarchicalPlanner(store)
    plan = await _full_plan(planner, _context())
    first, second = plan.hourly_plans[0].actions[:2]

    assert planner.get_current_action(0.0) is first
    assert planner.get_current_action(second.start_time) is second

    assert first.status is PlanStatus.FAILED
    in_progress = [a for a in plan.iter_actions() if a.status is PlanStatus.IN_PROGRESS]
    assert in_progress == [second]


@pytest.mark.asyncio
async def test_no_action_without_plan_or_decomposition(store):
    planner = HierarchicalPlanner(store)
    assert planner.get_current_action(0.0) is None

    context = _context()
    plan = await planner.generate_daily_plan(context)
    assert planner.get_current_action(0.0) is None
    assert plan.status is PlanStatus.PENDING


@pytest.mark.asyncio
async def test_completion_cascades_to_hour_and_day(store):
    planner = HierarchicalPlanner(store)
    plan = await _full_plan(planner, _context())

    _complete_hour(planner, plan.hourly_plans[0])
    assert plan.hourly_plans[0].status is PlanStatus.COMPLETED
    assert plan.status is not PlanStatus.COMPLETED
    assert store.get_plan_item(plan.hourly_plans[0].id).status is PlanStatus.COMPLETED

    for hourly in plan.hourly_plans[1:]:
        _complete_hour(planner, hourly)

    assert plan.status is PlanStatus.COMPLETED
    assert plan.completed_at == plan.hourly_plans[-1].actions[-1].end_time
    assert planner.monitor(make_snapshot(plan.end_time - 1)) == "Daily plan completed"


@pytest.mark.asyncio
async def test_completed_action_cannot_move_backward(store):
    planner = HierarchicalPlanner(store)
    plan = await _full_plan(planner, _context())
    action = plan.hourly_plans[0].actions[0]

    planner.complete_action(action.id, now=10.0)

    with pytest.raises(InvalidStatusTransition):
        planner.complete_action(action.id, ActionOutcome(status="FAILED"), now=20.0)
    with pytest.raises(KeyError):
        planner.complete_action("no-such-action")


@pytest.mark.asyncio
async def test_completing_a_finished_action_twice_leaves_it_untouched(store):
    planner = HierarchicalPlanner(store)
    plan = await _full_plan(planner, _context())
    action = plan.hourly_plans[0].actions[0]

    planner.complete_action(action.id, ActionOutcome(summary="ate"), now=10.0)
    recorded = len(store)

    with pytest.raises(InvalidStatusTransition):
        planner.complete_action(action.id, now=20.0)

    assert len(store) == recorded
    assert action.outcome == "ate"
    assert action.completed_at == 10.0
    assert len(store.get_by_tag("plan_outcome")) == 1


@pytest.mark.asyncio
async def test_outcomes_are_recorded_as_observations(store):
    planner = HierarchicalPlanner(store)
    plan = await _full_plan(planner, _context())
    action = plan.hourly_plans[0].actions[0]

    planner.complete_action(
        action.id, ActionOutcome(status="FAILED", summary="corridor collapsed"), now=50.0
    )

    (outcome,) = store.get_by_tag("plan_outcome")
    assert outcome.kind is MemoryKind.OBSERVATION
    assert "corridor collapsed" in outcome.description
    assert "failed" in outcome.tags
    assert action.outcome == "corridor collapsed"


@pytest.mark.asyncio
async def test_replan_abandons_old_tree_and_keeps_it_queryable(store):
    planner = HierarchicalPlanner(store)
    old = await _full_plan(planner, _context())
    planner.get_current_action(0.0)

    new = await planner.replan("Found the exit", _context(600.0))

    assert old.status is PlanStatus.ABANDONED
    assert old.abandoned_reason == "Found the exit"
    assert all(node.status.is_terminal for node in old.iter_actions())
    assert store.get_plan_item(old.id).status is PlanStatus.ABANDONED
    assert planner.find_node(old.id) is old
    assert planner.history == [old, new]

    assert planner.active_plan is new
    assert new.status is PlanStatus.PENDING
    assert new.hourly_plans[0].is_decomposed
    assert new.start_time == 600.0


@pytest.mark.asyncio
async def test_hours_needing_actions_looks_ahead(store):
    planner = HierarchicalPlanner(store, config=PlannerConfig(decomposition_lookahead=600.0))
    plan = await planner.replan("start", _context())
    second = plan.hourly_plans[1]

    assert planner.hours_needing_actions(1000.0) == []
    assert planner.hours_needing_actions(second.start_time - 300.0) == [second]


@pytest.mark.asyncio
async def test_export_and_restore_state(store):
    planner = HierarchicalPlanner(store)
    plan = await _full_plan(planner, _context())
    planner.get_current_action(0.0)

    clone = HierarchicalPlanner(store)
    clone.restore_state(planner.export_state())

    assert clone.active_plan.id == plan.id
    assert clone.current_action.id == plan.hourly_plans[0].actions[0].id
    assert isinstance(clone.find_node(plan.hourly_plans[2].id), HourlyPlan)
    assert isinstance(clone.active_plan, DailyPlan)
