"""Tests for stale-result rejection and background plan scheduling."""

import asyncio

import pytest

from conftest import make_snapshot

from mazemind.cognition.context import PlanningContext
from mazemind.cognition.planner import HierarchicalPlanner
from mazemind.cognition.scheduling import PlanScheduler
from mazemind.errors import PlanInvariantError
from mazemind.schemas import MemoryKind, PlanStatus


class GatedReasoning:
    """Blocks every call until the gate opens, then fails like an offline service."""

    def __init__(self) -> None:
        self.gate = asyncio.Event()
        self.calls = 0

    async def complete(self, prompt, response_model):
        self.calls += 1
        await self.gate.wait()
        raise ConnectionError("offline")


def _context(game_time=0.0, **kwargs):
    return PlanningContext(snapshot=make_snapshot(game_time, **kwargs))


@pytest.mark.asyncio
async def test_stale_daily_plan_is_discarded(store):
    planner = HierarchicalPlanner(store)
    stamp = planner.begin_generation()
    plan = await planner.build_plan_tree(_context())

    planner.mark_stale()

    assert not planner.adopt_plan(plan, stamp, 0.0)
    assert planner.active_plan is None
    assert store.count_by_kind(MemoryKind.PLAN) == 0


@pytest.mark.asyncio
async def test_decomposition_from_previous_generation_is_discarded(store):
    planner = HierarchicalPlanner(store)
    plan = await planner.replan("start", _context())
    hourly = plan.hourly_plans[1]
    stamp = planner.decomposition_stamp(hourly.id)
    actions = await planner.build_actions(plan.goal, hourly, _context())

    await planner.replan("Critical thirst: 9 is below 15", _context(60.0, thirst=9))

    assert not planner.attach_children(hourly.id, actions, stamp, 60.0)
    assert not hourly.is_decomposed
    assert hourly.status is PlanStatus.ABANDONED


@pytest.mark.asyncio
async def test_duplicate_decomposition_is_discarded(store):
    planner = HierarchicalPlanner(store)
    plan = await planner.replan("start", _context())
    hourly = plan.hourly_plans[1]
    first_stamp = planner.decomposition_stamp(hourly.id)
    second_stamp = planner.decomposition_stamp(hourly.id)
    first = await planner.build_actions(plan.goal, hourly, _context())
    second = await planner.build_actions(plan.goal, hourly, _context())

    assert planner.attach_children(hourly.id, first, first_stamp, 0.0)
    assert not planner.attach_children(hourly.id, second, second_stamp, 0.0)
    assert hourly.actions == first


@pytest.mark.asyncio
async def test_malformed_children_strict_and_lenient(store):
    lenient = HierarchicalPlanner(store, strict=False)
    plan = await lenient.replan("start", _context())
    hourly = plan.hourly_plans[1]
    actions = await lenient.build_actions(plan.goal, hourly, _context())

    assert not lenient.attach_children(hourly.id, actions[:5], lenient.decomposition_stamp(hourly.id), 0.0)
    assert not hourly.is_decomposed

    strict = HierarchicalPlanner(store, strict=True)
    plan = await strict.replan("start", _context())
    hourly = plan.hourly_plans[1]
    actions = await strict.build_actions(plan.goal, hourly, _context())
    with pytest.raises(PlanInvariantError):
        strict.attach_children(hourly.id, actions[:5], strict.decomposition_stamp(hourly.id), 0.0)


@pytest.mark.asyncio
async def test_critical_replan_supersedes_running_generation(store):
    reasoning = GatedReasoning()
    planner = HierarchicalPlanner(store, reasoning)
    scheduler = PlanScheduler(planner)

    assert scheduler.request_replan("No active plan", _context())
    await asyncio.sleep(0)
    assert scheduler.request_replan("Critical hunger: 12 is below 20", _context(5.0, hunger=12), critical=True)

    reasoning.gate.set()
    events = await scheduler.drain(10.0)

    assert scheduler.is_idle()
    assert scheduler.discarded_results == 1
    assert scheduler.applied_results == 1
    assert len(planner.history) == 1
    assert planner.active_plan.priority.value == "CRITICAL"
    assert any(event.startswith("adopted plan") for event in events)
    # Only the adopted tree was mirrored into memory
    assert store.count_by_kind(MemoryKind.PLAN) == 1 + 3 + 12


@pytest.mark.asyncio
async def test_ordinary_replan_is_deferred_then_dropped(store):
    reasoning = GatedReasoning()
    planner = HierarchicalPlanner(store, reasoning)
    scheduler = PlanScheduler(planner)

    assert scheduler.request_replan("No active plan", _context())
    assert not scheduler.request_replan("Plan horizon elapsed", _context(1.0))
    assert scheduler.generation_in_flight

    reasoning.gate.set()
    await scheduler.drain(2.0)

    assert scheduler.is_idle()
    assert len(planner.history) == 1
    assert planner.active_plan.status is PlanStatus.PENDING


@pytest.mark.asyncio
async def test_decompositions_run_one_at_a_time(store):
    planner = HierarchicalPlanner(store)
    plan = await planner.replan("start", _context())
    scheduler = PlanScheduler(planner)
    second, third = plan.hourly_plans[1:]

    assert scheduler.request_decomposition(second, _context())
    assert not scheduler.request_decomposition(third, _context())
    assert not scheduler.request_decomposition(second, _context())
    assert scheduler.pending_decompositions == [second.id, third.id]

    await scheduler.drain(0.0)

    assert second.is_decomposed and third.is_decomposed
    assert scheduler.applied_results == 2


@pytest.mark.asyncio
async def test_critical_replan_discards_running_decomposition(store):
    reasoning = GatedReasoning()
    planner = HierarchicalPlanner(store)
    old = await planner.replan("start", _context())
    planner.reasoning = reasoning
    scheduler = PlanScheduler(planner)

    assert scheduler.request_decomposition(old.hourly_plans[1], _context())
    await asyncio.sleep(0)
    scheduler.request_replan("Critical thirst: 9 is below 15", _context(30.0, thirst=9), critical=True)

    reasoning.gate.set()
    await scheduler.drain(40.0)

    assert not old.hourly_plans[1].is_decomposed
    assert old.status is PlanStatus.ABANDONED
    assert planner.active_plan is not old
    assert scheduler.discarded_results == 1


@pytest.mark.asyncio
async def test_cancel_all_leaves_scheduler_idle(store):
    planner = HierarchicalPlanner(store, GatedReasoning())
    scheduler = PlanScheduler(planner)
    scheduler.request_replan("No active plan", _context())
    await asyncio.sleep(0)

    await scheduler.cancel_all()

    assert scheduler.is_idle()
    assert planner.active_plan is None
