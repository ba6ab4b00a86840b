"""Hierarchical planner: daily goal -> hourly objectives -> five-minute actions.

One planner instance owns one agent's plan state; nothing is global. The
planner is split into two layers:

- Builders (``build_*``) talk to the reasoning service and return detached
  plan nodes. They never touch live state, so they are safe to run as
  background tasks.
- Appliers (``adopt_plan``, ``attach_children``) splice built nodes into the
  live tree, but only if the ``PlanStamp`` captured when the work started
  is still current. A stale stamp means a newer re-plan or decomposition won
  the race, and the result is dropped.

The awaitable operations ``generate_daily_plan``, ``decompose`` and
``replan`` combine both layers for callers that can simply await.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Sequence, Set, Union

from mazemind.config import Config
from mazemind.errors import InvalidStatusTransition, PlanInvariantError, SnapshotError
from mazemind.logging_utils import (
    log_debug,
    log_deterministic,
    log_error,
    log_info,
    log_success,
)
from mazemind.memory import MemoryStore
from mazemind.reasoning import ReasoningFailure, ReasoningService, request_structured
from mazemind.schemas import (
    ActionOutcome,
    ActionPlan,
    ActionPlanResponse,
    ActionType,
    DailyPlan,
    DailyPlanResponse,
    HourlyPlan,
    HourlyPlanResponse,
    MemoryKind,
    PlanLevel,
    PlanNode,
    PlanPriority,
    PlanStatus,
    WorldSnapshot,
)

from .cadence import PlannerConfig
from .context import PlanningContext
from .fallback import (
    critical_stats,
    fallback_action,
    fallback_daily_plan,
    fallback_hourly_objective,
)
from .plans import iter_subtree, plan_level, transition, validate_children, validate_tree
from .prompts import DEFAULT_PROMPTS, PromptLibrary
from .renderers import render_prompt


PLAN_IMPORTANCE = {PlanLevel.DAILY: 6, PlanLevel.HOURLY: 4, PlanLevel.ACTION: 2}
CRITICAL_PLAN_IMPORTANCE = 8


@dataclass(frozen=True)
class PlanStamp:
    """Identifies the live state an async planning call was issued against."""

    generation: int
    node_id: Optional[str] = None
    node_version: int = 0


def _format_window(start: float, duration: float) -> str:
    return f"t={start:.0f}s to t={start + duration:.0f}s"


class HierarchicalPlanner:
    """Generates, tracks, monitors and revises one agent's plan hierarchy."""

    def __init__(
        self,
        store: MemoryStore,
        reasoning: Optional[ReasoningService] = None,
        *,
        config: Optional[PlannerConfig] = None,
        prompt_library: Optional[PromptLibrary] = None,
        timeout: Optional[float] = None,
        strict: Optional[bool] = None,
    ) -> None:
        self.store = store
        self.reasoning = reasoning
        self.config = config or PlannerConfig()
        self.prompt_library = prompt_library or DEFAULT_PROMPTS
        self.timeout = timeout
        self.strict = Config.STRICT_INVARIANTS if strict is None else strict

        self.generation = 0
        self.active_plan: Optional[DailyPlan] = None
        self.history: List[DailyPlan] = []
        self._current_action_id: Optional[str] = None
        self._last_now: Optional[float] = None

        # Monitor bookkeeping
        self._latched_stats: Set[str] = set()
        self._best_distance: Optional[int] = None
        self._distance_action_id: Optional[str] = None
        self._target_action_id: Optional[str] = None
        self._target_seen = False
        self._known_poi_ids: Optional[Set[str]] = None
        self._nearby_count = 0

    # ------------------------------------------------------------------
    # Accessors
    # ------------------------------------------------------------------

    @property
    def current_action(self) -> Optional[ActionPlan]:
        if self._current_action_id is None:
            return None
        node = self.find_node(self._current_action_id)
        return node if isinstance(node, ActionPlan) else None

    @property
    def current_hourly(self) -> Optional[HourlyPlan]:
        if self.active_plan is None or self._last_now is None:
            return None
        return self._hourly_at(self.active_plan, self._last_now)

    def find_node(self, node_id: str) -> Optional[PlanNode]:
        for plan in reversed(self.history):
            for node in iter_subtree(plan):
                if node.id == node_id:
                    return node
        return None

    def has_live_plan(self) -> bool:
        return self.active_plan is not None and not self.active_plan.status.is_terminal

    def plan_end_time(self) -> Optional[float]:
        if self.active_plan is None or not self.active_plan.hourly_plans:
            return None
        return self.active_plan.hourly_plans[-1].end_time

    def hours_needing_actions(self, now: float) -> List[HourlyPlan]:
        """Undecomposed hourly plans that are current or start soon."""
        if not self.has_live_plan():
            return []
        horizon = now + self.config.decomposition_lookahead
        return [
            hourly
            for hourly in self.active_plan.hourly_plans
            if not hourly.is_decomposed
            and not hourly.status.is_terminal
            and hourly.end_time > now
            and hourly.start_time <= horizon
        ]

    # ------------------------------------------------------------------
    # Stamps
    # ------------------------------------------------------------------

    def begin_generation(self) -> PlanStamp:
        return PlanStamp(generation=self.generation)

    def decomposition_stamp(self, node_id: str) -> PlanStamp:
        node = self._live_node(node_id)
        if node is None:
            raise KeyError(node_id)
        return PlanStamp(generation=self.generation, node_id=node.id, node_version=node.version)

    def mark_stale(self) -> None:
        """Invalidate every outstanding async result."""
        self.generation += 1
        log_debug(f"Planner generation advanced to {self.generation}")

    def is_live(self, stamp: PlanStamp) -> bool:
        if stamp.generation != self.generation:
            return False
        if stamp.node_id is None:
            return True
        node = self._live_node(stamp.node_id)
        return (
            node is not None
            and node.version == stamp.node_version
            and not node.status.is_terminal
        )

    # ------------------------------------------------------------------
    # Builders (no live-state mutation)
    # ------------------------------------------------------------------

    async def build_daily_plan(self, context: PlanningContext) -> DailyPlan:
        prompt = render_prompt(self.prompt_library.get("plan_daily"), context)
        result = await request_structured(
            self.reasoning, prompt, DailyPlanResponse, timeout=self.timeout
        )
        source = "reasoning"
        if isinstance(result, ReasoningFailure):
            log_deterministic(f"Daily plan fallback ({result.kind.value})")
            response = fallback_daily_plan(context.snapshot, self.config)
            source = "fallback"
        else:
            response = result.value

        now = context.now
        return DailyPlan(
            goal=response.goal,
            reasoning=response.reasoning,
            priority=response.priority,
            created_at=now,
            start_time=now,
            duration=self.config.day_duration,
            source=source,
        )

    async def build_hourly_plans(
        self, plan: DailyPlan, context: PlanningContext
    ) -> List[HourlyPlan]:
        template = self.prompt_library.get("plan_hourly")
        count = self.config.hourly_plans_per_day
        hourly_plans: List[HourlyPlan] = []

        for index in range(count):
            start = plan.start_time + index * self.config.hour_duration
            previous = "\n".join(f"- {h.objective}" for h in hourly_plans) or "- (none)"
            prompt = render_prompt(
                template,
                context,
                goal=plan.goal,
                reasoning=plan.reasoning,
                priority=plan.priority.value,
                previous_steps=previous,
                step_index=index + 1,
                step_count=count,
                window=_format_window(start, self.config.hour_duration),
            )
            result = await request_structured(
                self.reasoning, prompt, HourlyPlanResponse, timeout=self.timeout
            )
            if isinstance(result, ReasoningFailure):
                log_deterministic(f"Hourly objective {index + 1} fallback ({result.kind.value})")
                response = fallback_hourly_objective(plan.goal, index)
            else:
                response = result.value

            hourly_plans.append(
                HourlyPlan(
                    parent_id=plan.id,
                    start_time=start,
                    duration=self.config.hour_duration,
                    objective=response.objective,
                )
            )
        return hourly_plans

    async def build_actions(
        self, goal: str, hourly: HourlyPlan, context: PlanningContext
    ) -> List[ActionPlan]:
        template = self.prompt_library.get("plan_action")
        count = self.config.actions_per_hour
        actions: List[ActionPlan] = []
        fallbacks = 0

        for index in range(count):
            start = hourly.start_time + index * self.config.action_duration
            previous = "\n".join(f"- {a.action}" for a in actions) or "- (none)"
            prompt = render_prompt(
                template,
                context,
                goal=goal,
                objective=hourly.objective,
                previous_steps=previous,
                step_index=index + 1,
                step_count=count,
                window=_format_window(start, self.config.action_duration),
            )
            result = await request_structured(
                self.reasoning, prompt, ActionPlanResponse, timeout=self.timeout
            )
            if isinstance(result, ReasoningFailure):
                fallbacks += 1
                response = fallback_action(
                    goal, hourly.objective, index, context.snapshot, self.config
                )
            else:
                response = result.value

            actions.append(
                ActionPlan(
                    parent_id=hourly.id,
                    start_time=start,
                    duration=self.config.action_duration,
                    action=response.action,
                    action_type=response.action_type,
                    target_position=response.target_position,
                    target_item=response.target_item,
                )
            )

        if fallbacks:
            log_deterministic(f"{fallbacks}/{count} actions for '{hourly.objective}' used fallback")
        return actions

    async def build_plan_tree(self, context: PlanningContext) -> DailyPlan:
        """Daily plan with its hourly plans and the first hour's actions."""
        plan = await self.build_daily_plan(context)
        plan.hourly_plans = await self.build_hourly_plans(plan, context)
        if plan.hourly_plans:
            first = plan.hourly_plans[0]
            first.actions = await self.build_actions(plan.goal, first, context)
        return plan

    # ------------------------------------------------------------------
    # Appliers (stamp-checked)
    # ------------------------------------------------------------------

    def adopt_plan(self, plan: DailyPlan, stamp: PlanStamp, now: float) -> bool:
        """Make ``plan`` the active plan if ``stamp`` is still current."""
        if not self.is_live(stamp):
            log_debug(f"Discarding stale daily plan '{plan.goal}' (generation {stamp.generation})")
            return False

        try:
            if plan.hourly_plans:
                validate_children(
                    plan, plan.hourly_plans, expected_count=self.config.hourly_plans_per_day
                )
            for hourly in plan.hourly_plans:
                if hourly.actions:
                    validate_children(
                        hourly, hourly.actions, expected_count=self.config.actions_per_hour
                    )
        except PlanInvariantError as exc:
            if self.strict:
                raise
            log_error(f"Rejected malformed plan: {exc}")
            return False

        if self.has_live_plan():
            self._abandon(self.active_plan, "Superseded by a new plan", now)

        self.generation += 1
        for node in iter_subtree(plan):
            node.version = self.generation
        self.active_plan = plan
        self.history.append(plan)
        self._current_action_id = None
        self._reset_progress_tracking()

        for node in iter_subtree(plan):
            self._record_plan_memory(node, now, plan.priority)

        log_success(f"New plan ({plan.priority.value}, {plan.source}): {plan.goal}")
        return True

    def attach_children(
        self,
        parent_id: str,
        children: Sequence[Union[HourlyPlan, ActionPlan]],
        stamp: PlanStamp,
        now: float,
    ) -> bool:
        """Attach decomposition results to a live, still-undecomposed node."""
        if stamp.node_id != parent_id or not self.is_live(stamp):
            log_debug(f"Discarding stale decomposition of {parent_id}")
            return False

        parent = self._live_node(parent_id)
        if isinstance(parent, DailyPlan):
            expected = self.config.hourly_plans_per_day
            already = bool(parent.hourly_plans)
        elif isinstance(parent, HourlyPlan):
            expected = self.config.actions_per_hour
            already = parent.is_decomposed
        else:
            raise TypeError(f"Plan node {parent_id} cannot have children")

        if already:
            log_debug(f"Discarding duplicate decomposition of {parent_id}")
            return False

        try:
            validate_children(parent, children, expected_count=expected)
        except PlanInvariantError as exc:
            if self.strict:
                raise
            log_error(f"Rejected malformed decomposition: {exc}")
            return False

        for child in children:
            child.version = self.generation
        if isinstance(parent, DailyPlan):
            parent.hourly_plans = list(children)
        else:
            parent.actions = list(children)
        parent.version += 1

        priority = self.active_plan.priority if self.active_plan else PlanPriority.MEDIUM
        for child in children:
            for node in iter_subtree(child):
                self._record_plan_memory(node, now, priority)
        return True

    # ------------------------------------------------------------------
    # Awaitable operations
    # ------------------------------------------------------------------

    async def generate_daily_plan(self, context: PlanningContext) -> DailyPlan:
        stamp = self.begin_generation()
        plan = await self.build_daily_plan(context)
        self.adopt_plan(plan, stamp, context.now)
        return plan

    async def decompose(self, node: Union[DailyPlan, HourlyPlan], context: PlanningContext) -> bool:
        """Decompose ``node`` one level (a daily plan also gets its first hour)."""
        stamp = self.decomposition_stamp(node.id)
        if isinstance(node, DailyPlan):
            attached = True
            if not node.hourly_plans:
                children = await self.build_hourly_plans(node, context)
                attached = self.attach_children(node.id, children, stamp, context.now)
            if attached and node.hourly_plans and not node.hourly_plans[0].is_decomposed:
                return await self.decompose(node.hourly_plans[0], context)
            return attached

        goal = self.active_plan.goal if self.active_plan else ""
        actions = await self.build_actions(goal, node, context)
        return self.attach_children(node.id, actions, stamp, context.now)

    async def replan(self, reason: str, context: PlanningContext) -> Optional[DailyPlan]:
        """Abandon the active plan, then generate and decompose a replacement."""
        self.abandon_active(reason, context.now)
        stamp = self.begin_generation()
        plan = await self.build_plan_tree(context)
        if not self.adopt_plan(plan, stamp, context.now):
            return None
        return plan

    def abandon_active(self, reason: str, now: float) -> Optional[DailyPlan]:
        """Mark the active plan and its unfinished descendants ABANDONED."""
        plan = self.active_plan
        if plan is not None and not plan.status.is_terminal:
            log_info(f"Re-planning: {reason}")
            self._abandon(plan, reason, now)
        self.active_plan = None
        self._current_action_id = None
        self._reset_progress_tracking()
        self.mark_stale()
        return plan

    # ------------------------------------------------------------------
    # Execution tracking
    # ------------------------------------------------------------------

    def get_current_action(self, now: float) -> Optional[ActionPlan]:
        """The action whose window contains ``now``, marked IN_PROGRESS.

        Returns None when there is no live plan, the hour containing ``now``
        has not been decomposed yet, or the located action already ended.
        """
        self._last_now = now
        self._expire_current(now)

        plan = self.active_plan
        if plan is None or plan.status.is_terminal:
            return None
        hourly = self._hourly_at(plan, now)
        if hourly is None or not hourly.is_decomposed:
            return None
        action = next((a for a in hourly.actions if a.contains(now)), None)
        if action is None or action.status.is_terminal:
            return None

        if action.status is PlanStatus.PENDING:
            self._set_status(action, PlanStatus.IN_PROGRESS, now)
            for ancestor in (hourly, plan):
                if ancestor.status is PlanStatus.PENDING:
                    self._set_status(ancestor, PlanStatus.IN_PROGRESS, now)
        if self._current_action_id != action.id:
            self._current_action_id = action.id
            self._reset_progress_tracking()
        return action

    def complete_action(
        self,
        action_id: str,
        outcome: Optional[ActionOutcome] = None,
        *,
        now: Optional[float] = None,
    ) -> ActionPlan:
        """Finish an action and cascade completion upward.

        Raises:
            KeyError: If the action is not part of any known plan
            InvalidStatusTransition: If the action already terminated
        """
        node = self.find_node(action_id)
        if not isinstance(node, ActionPlan):
            raise KeyError(action_id)
        outcome = outcome or ActionOutcome()
        if node.status.is_terminal:
            raise InvalidStatusTransition(node.id, node.status.value, outcome.status.value)
        at = outcome.completed_at
        if at is None:
            at = now if now is not None else max(self.store.latest_timestamp, node.start_time)

        self._set_status(node, outcome.status, at)
        node.outcome = outcome.summary or None
        if self._current_action_id == action_id:
            self._current_action_id = None

        self._cascade_completion(node, at)
        self._record_outcome(node, outcome, at)
        return node

    # ------------------------------------------------------------------
    # Monitoring
    # ------------------------------------------------------------------

    def monitor(
        self,
        context: Union[PlanningContext, WorldSnapshot],
        *,
        generation_pending: bool = False,
    ) -> Optional[str]:
        """Return a re-plan reason, or None when the current plan still fits.

        A critical survival stat is reported once when it crosses its
        threshold. Later calls stay quiet about that stat until it has
        recovered by ``critical_hysteresis``, so a single shortage asks for
        one re-plan rather than one per tick.
        """
        snapshot = context.snapshot if isinstance(context, PlanningContext) else context
        now = snapshot.game_time
        self._last_now = now
        discoveries = self._new_discoveries(snapshot)

        reason = self._critical_reason(snapshot)
        if reason:
            return reason

        plan = self.active_plan
        if plan is not None and plan.status is PlanStatus.COMPLETED:
            return "Daily plan completed"
        if plan is None or plan.status.is_terminal:
            return None if generation_pending else "No active plan"

        end = self.plan_end_time()
        if end is not None and now >= end:
            return "Plan horizon elapsed"

        action = self.current_action
        if action is not None and action.status is PlanStatus.IN_PROGRESS:
            reason = self._divergence_reason(action, snapshot) or self._target_reason(action, snapshot)
            if reason:
                return reason

        return self._discovery_reason(plan, snapshot, discoveries)

    def _critical_reason(self, snapshot: WorldSnapshot) -> Optional[str]:
        stats = snapshot.survival
        thresholds = {
            "hunger": self.config.critical_hunger,
            "thirst": self.config.critical_thirst,
            "energy": self.config.critical_energy,
        }
        for name, threshold in thresholds.items():
            if getattr(stats, name) >= threshold + self.config.critical_hysteresis:
                self._latched_stats.discard(name)

        for name in critical_stats(snapshot, self.config):
            if name not in self._latched_stats:
                self._latched_stats.add(name)
                return f"Critical {name}: {getattr(stats, name):.0f} is below {thresholds[name]:.0f}"
        return None

    def _divergence_reason(self, action: ActionPlan, snapshot: WorldSnapshot) -> Optional[str]:
        if action.target_position is None:
            return None
        if self._distance_action_id != action.id:
            self._distance_action_id = action.id
            self._best_distance = None

        distance = snapshot.position.manhattan(action.target_position)
        best = self._best_distance
        if (
            best is not None
            and distance >= self.config.divergence_min_distance
            and distance > max(best, 1) * self.config.divergence_multiplier
        ):
            return (
                f"Diverging from target {action.target_position}: "
                f"{distance} tiles away, best was {best}"
            )
        self._best_distance = distance if best is None else min(best, distance)
        return None

    def _target_reason(self, action: ActionPlan, snapshot: WorldSnapshot) -> Optional[str]:
        target = action.target_position
        if action.target_item and action.action_type in (ActionType.SEEK_ITEM, ActionType.CONSUME_ITEM):
            matches = [poi for poi in snapshot.points_of_interest if poi.kind == action.target_item]
            if action.action_type is ActionType.CONSUME_ITEM:
                anchor = target or snapshot.position
                matches = [
                    poi for poi in matches
                    if poi.position.manhattan(anchor) <= self.config.consume_reach
                ]
            if self._target_action_id != action.id:
                self._target_action_id = action.id
                self._target_seen = False

            # Only a target that was seen while this action ran can disappear
            if not matches:
                if self._target_seen:
                    return f"Target {action.target_item} is no longer there"
                return None
            self._target_seen = True
            if not any(poi.reachable for poi in matches):
                return f"Target {action.target_item} has become unreachable"
            return None

        if target is not None:
            blocked = [
                poi for poi in snapshot.points_of_interest
                if poi.position == target and not poi.reachable
            ]
            if blocked:
                return f"Target location {target} has become unreachable"
        return None

    def _new_discoveries(self, snapshot: WorldSnapshot) -> List[Any]:
        ids = {poi.id for poi in snapshot.points_of_interest}
        if self._known_poi_ids is None:
            self._known_poi_ids = ids
            return []
        fresh = [poi for poi in snapshot.points_of_interest if poi.id not in self._known_poi_ids]
        self._known_poi_ids |= ids
        return fresh

    def _discovery_reason(
        self, plan: DailyPlan, snapshot: WorldSnapshot, discoveries: List[Any]
    ) -> Optional[str]:
        here = snapshot.position
        radius = self.config.discovery_radius
        nearby = [
            poi
            for poi in snapshot.points_of_interest
            if poi.reachable and poi.position.manhattan(here) <= radius
        ]
        previous_count, self._nearby_count = self._nearby_count, len(nearby)

        if plan.priority is PlanPriority.CRITICAL:
            return None
        exploring = "explor" in plan.goal.lower()
        action = self.current_action
        if action is not None and action.action_type in (ActionType.EXPLORE, ActionType.MOVE):
            exploring = True
        if not exploring:
            return None

        for poi in discoveries:
            if poi.reachable and poi.value >= self.config.discovery_value and poi.position.manhattan(here) <= radius:
                return f"High-value {poi.kind} discovered at {poi.position}"
        if (
            "explor" in plan.goal.lower()
            and len(nearby) > self.config.discovery_item_count
            and previous_count <= self.config.discovery_item_count
        ):
            return f"{len(nearby)} items discovered nearby"
        return None

    # ------------------------------------------------------------------
    # Persistence
    # ------------------------------------------------------------------

    def export_state(self) -> Dict[str, Any]:
        return {
            "generation": self.generation,
            "active_plan_id": self.active_plan.id if self.active_plan else None,
            "current_action_id": self._current_action_id,
            "plans": [plan.model_dump(mode="json") for plan in self.history],
        }

    def restore_state(self, state: Dict[str, Any]) -> None:
        """Load plans exported by ``export_state``.

        Raises:
            SnapshotError: If the plans are inconsistent with each other or
                with the memory store
        """
        try:
            plans = [DailyPlan.model_validate(raw) for raw in state.get("plans", [])]
        except ValueError as exc:
            raise SnapshotError(f"Malformed plan record: {exc}") from exc

        seen: Set[str] = set()
        in_progress: List[str] = []
        for plan in plans:
            problems = validate_tree(plan)
            if problems:
                raise SnapshotError("; ".join(problems))
            for node in iter_subtree(plan):
                if node.id in seen:
                    raise SnapshotError(f"Plan node id {node.id} appears twice")
                seen.add(node.id)
                if isinstance(node, ActionPlan) and node.status is PlanStatus.IN_PROGRESS:
                    in_progress.append(node.id)
                self._check_memory_mirror(node)
        if len(in_progress) > 1:
            raise SnapshotError(f"{len(in_progress)} actions are IN_PROGRESS")

        active_id = state.get("active_plan_id")
        active = next((plan for plan in plans if plan.id == active_id), None)
        if active_id is not None and active is None:
            raise SnapshotError(f"Active plan {active_id} is not among the stored plans")
        current_id = state.get("current_action_id")
        if current_id is not None and current_id not in in_progress:
            raise SnapshotError(f"Current action {current_id} is not IN_PROGRESS")

        self.history = plans
        self.active_plan = active
        self.generation = int(state.get("generation", 0))
        self._current_action_id = current_id
        self._reset_progress_tracking()

    def _check_memory_mirror(self, node: PlanNode) -> None:
        if node.memory_id is None:
            return
        item = self.store.get(node.memory_id)
        if item is None or item.kind is not MemoryKind.PLAN or item.plan_ref != node.id:
            raise SnapshotError(f"Plan node {node.id} points at missing memory {node.memory_id}")
        if item.status is not node.status:
            raise SnapshotError(
                f"Plan node {node.id} is {node.status.value} but memory says {item.status}"
            )

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _live_node(self, node_id: str) -> Optional[PlanNode]:
        if self.active_plan is None:
            return None
        for node in iter_subtree(self.active_plan):
            if node.id == node_id:
                return node
        return None

    @staticmethod
    def _hourly_at(plan: DailyPlan, now: float) -> Optional[HourlyPlan]:
        return next((h for h in plan.hourly_plans if h.contains(now)), None)

    def _reset_progress_tracking(self) -> None:
        self._best_distance = None
        self._distance_action_id = None
        self._target_action_id = None
        self._target_seen = False

    def _set_status(self, node: PlanNode, status: PlanStatus, at: float) -> None:
        if transition(node, status, at=at) and node.memory_id is not None:
            self.store.update_plan_status(node.id, status)

    def _abandon(self, plan: DailyPlan, reason: str, now: float) -> None:
        for node in iter_subtree(plan):
            if not node.status.is_terminal:
                self._set_status(node, PlanStatus.ABANDONED, now)
        plan.abandoned_reason = reason

    def _expire_current(self, now: float) -> None:
        action = self.current_action
        if action is None:
            return
        if action.status is PlanStatus.IN_PROGRESS and now >= action.end_time:
            self._set_status(action, PlanStatus.FAILED, now)
            action.outcome = "Window expired before completion"
            log_debug(f"Action '{action.action}' expired")
        if action.status.is_terminal:
            self._current_action_id = None

    def _cascade_completion(self, action: ActionPlan, at: float) -> None:
        hourly = self.find_node(action.parent_id)
        if not isinstance(hourly, HourlyPlan) or hourly.status.is_terminal:
            return
        if len(hourly.actions) == self.config.actions_per_hour and all(
            a.status is PlanStatus.COMPLETED for a in hourly.actions
        ):
            self._set_status(hourly, PlanStatus.COMPLETED, at)
            log_success(f"Hourly objective completed: {hourly.objective}")

        daily = self.find_node(hourly.parent_id)
        if not isinstance(daily, DailyPlan) or daily.status.is_terminal:
            return
        if len(daily.hourly_plans) == self.config.hourly_plans_per_day and all(
            h.status is PlanStatus.COMPLETED for h in daily.hourly_plans
        ):
            self._set_status(daily, PlanStatus.COMPLETED, at)
            log_success(f"Daily plan completed: {daily.goal}")

    def _record_plan_memory(self, node: PlanNode, now: float, priority: PlanPriority) -> None:
        if node.memory_id is not None:
            return
        level = plan_level(node)
        if isinstance(node, DailyPlan):
            description = f"Plan ({node.priority.value}): {node.goal}"
        elif isinstance(node, HourlyPlan):
            description = f"Hourly objective: {node.objective}"
        else:
            description = f"Planned action: {node.action}"

        importance = PLAN_IMPORTANCE[level]
        if level is PlanLevel.DAILY and priority is PlanPriority.CRITICAL:
            importance = CRITICAL_PLAN_IMPORTANCE

        item = self.store.add_plan(
            description,
            max(now, self.store.latest_timestamp),
            importance,
            plan_ref=node.id,
            plan_level=level,
            location=getattr(node, "target_position", None),
        )
        node.memory_id = item.id
        if node.status is not PlanStatus.PENDING:
            self.store.update_plan_status(node.id, node.status)

    def _record_outcome(self, action: ActionPlan, outcome: ActionOutcome, at: float) -> None:
        verb = {
            PlanStatus.COMPLETED: "Completed",
            PlanStatus.FAILED: "Failed",
            PlanStatus.ABANDONED: "Abandoned",
        }[outcome.status]
        description = f"{verb} action: {action.action}"
        if outcome.summary:
            description += f" ({outcome.summary})"
        importance = outcome.importance or (3 if outcome.status is PlanStatus.COMPLETED else 5)
        self.store.add_observation(
            description,
            max(at, self.store.latest_timestamp),
            importance,
            location=action.target_position,
            tags=["plan_outcome", outcome.status.value.lower()],
        )


__all__ = ["HierarchicalPlanner", "PlanStamp", "PLAN_IMPORTANCE"]
