"""Non-blocking plan scheduling on top of asyncio tasks.

The tick loop never awaits the reasoning service directly. Requests start
background tasks that only *build* plan nodes; ``poll`` runs on a later tick,
collects finished tasks and hands the results to the planner's stamp-checked
appliers. At most one daily generation and one decomposition run at a time.
"""

from __future__ import annotations

import asyncio
from collections import deque
from typing import Deque, List, Optional, Tuple

from mazemind.logging_utils import log_debug, log_error
from mazemind.schemas import ActionPlan, DailyPlan, HourlyPlan

from .context import PlanningContext
from .planner import HierarchicalPlanner, PlanStamp


class PlanScheduler:
    """Issues planner work as background tasks and applies finished results."""

    def __init__(self, planner: HierarchicalPlanner) -> None:
        self.planner = planner
        self._generation: Optional[Tuple[PlanStamp, "asyncio.Task[DailyPlan]"]] = None
        self._decomposition: Optional[
            Tuple[PlanStamp, str, "asyncio.Task[List[ActionPlan]]"]
        ] = None
        self._deferred_replan: Optional[Tuple[str, PlanningContext]] = None
        self._deferred_decompositions: Deque[Tuple[str, PlanningContext]] = deque()
        # Generations overridden by a critical re-plan; results are discarded
        self._superseded: List["asyncio.Task[DailyPlan]"] = []

        self.applied_results = 0
        self.discarded_results = 0

    @property
    def generation_in_flight(self) -> bool:
        return self._generation is not None

    @property
    def decomposition_in_flight(self) -> bool:
        return self._decomposition is not None

    @property
    def pending_decompositions(self) -> List[str]:
        ids = [hourly_id for hourly_id, _ in self._deferred_decompositions]
        if self._decomposition is not None:
            ids.insert(0, self._decomposition[1])
        return ids

    def is_idle(self) -> bool:
        return (
            self._generation is None
            and self._decomposition is None
            and self._deferred_replan is None
            and not self._deferred_decompositions
            and not self._superseded
        )

    # ------------------------------------------------------------------
    # Requests
    # ------------------------------------------------------------------

    def request_replan(
        self, reason: str, context: PlanningContext, *, critical: bool = False
    ) -> bool:
        """Abandon the active plan and start generating a replacement.

        While a generation is already running, ordinary requests are
        deferred until it finishes. A critical request starts immediately;
        the running generation's result will be discarded as stale.
        """
        if self._generation is not None:
            if not critical:
                log_debug(f"Deferring re-plan while a generation is running: {reason}")
                self._deferred_replan = (reason, context)
                return False
            _, running = self._generation
            self._superseded.append(running)
            self._generation = None

        # Abandoning advances the planner generation, which pre-marks every
        # outstanding result (including a superseded generation) as stale.
        self.planner.abandon_active(reason, context.now)
        self._deferred_replan = None
        self._deferred_decompositions.clear()

        stamp = self.planner.begin_generation()
        task = asyncio.create_task(self.planner.build_plan_tree(context))
        self._generation = (stamp, task)
        return True

    def request_decomposition(self, hourly: HourlyPlan, context: PlanningContext) -> bool:
        """Start decomposing ``hourly`` into actions (or queue it)."""
        if hourly.is_decomposed or hourly.id in self.pending_decompositions:
            return False
        if self._decomposition is not None:
            self._deferred_decompositions.append((hourly.id, context))
            return False
        return self._start_decomposition(hourly, context)

    def _start_decomposition(self, hourly: HourlyPlan, context: PlanningContext) -> bool:
        try:
            stamp = self.planner.decomposition_stamp(hourly.id)
        except KeyError:
            log_debug(f"Skipping decomposition of {hourly.id}: no longer part of the active plan")
            return False
        goal = self.planner.active_plan.goal if self.planner.active_plan else ""
        task = asyncio.create_task(self.planner.build_actions(goal, hourly, context))
        self._decomposition = (stamp, hourly.id, task)
        return True

    # ------------------------------------------------------------------
    # Harvesting
    # ------------------------------------------------------------------

    async def poll(self, now: float) -> List[str]:
        """Apply every finished result; returns short event descriptions."""
        await asyncio.sleep(0)
        events: List[str] = []

        self._harvest_superseded()

        if self._generation is not None and self._generation[1].done():
            stamp, task = self._generation
            self._generation = None
            plan = self._task_result(task, "plan generation")
            if plan is not None and self.planner.adopt_plan(plan, stamp, now):
                self.applied_results += 1
                events.append(f"adopted plan: {plan.goal}")
                if self._deferred_replan is not None:
                    log_debug(f"Dropping deferred re-plan answered by the new plan: {self._deferred_replan[0]}")
                    self._deferred_replan = None
            elif plan is not None:
                self.discarded_results += 1

            if self._deferred_replan is not None:
                reason, context = self._deferred_replan
                self._deferred_replan = None
                self.request_replan(reason, context)

        if self._decomposition is not None and self._decomposition[2].done():
            stamp, hourly_id, task = self._decomposition
            self._decomposition = None
            actions = self._task_result(task, "decomposition")
            if actions is not None and self.planner.attach_children(hourly_id, actions, stamp, now):
                self.applied_results += 1
                events.append(f"decomposed hour {hourly_id}")
            elif actions is not None:
                self.discarded_results += 1

        while self._decomposition is None and self._deferred_decompositions:
            hourly_id, context = self._deferred_decompositions.popleft()
            hourly = self.planner.find_node(hourly_id)
            if isinstance(hourly, HourlyPlan) and not hourly.is_decomposed:
                self._start_decomposition(hourly, context)

        return events

    async def drain(self, now: float) -> List[str]:
        """Wait for all outstanding work and apply it (tests and scripts)."""
        events: List[str] = []
        while not self.is_idle():
            tasks = [task for task in self._superseded]
            if self._generation is not None:
                tasks.append(self._generation[1])
            if self._decomposition is not None:
                tasks.append(self._decomposition[2])
            if tasks:
                await asyncio.wait(tasks)
            events.extend(await self.poll(now))
        return events

    async def cancel_all(self) -> None:
        tasks = list(self._superseded)
        if self._generation is not None:
            tasks.append(self._generation[1])
        if self._decomposition is not None:
            tasks.append(self._decomposition[2])
        for task in tasks:
            task.cancel()
        await asyncio.gather(*tasks, return_exceptions=True)
        self._generation = None
        self._decomposition = None
        self._superseded.clear()
        self._deferred_replan = None
        self._deferred_decompositions.clear()

    def _harvest_superseded(self) -> None:
        for task in [t for t in self._superseded if t.done()]:
            self._superseded.remove(task)
            if self._task_result(task, "superseded generation") is not None:
                self.discarded_results += 1
                log_debug("Discarded result of a superseded plan generation")

    @staticmethod
    def _task_result(task: "asyncio.Task", label: str):
        if task.cancelled():
            return None
        exc = task.exception()
        if exc is not None:
            log_error(f"Background {label} failed: {exc}")
            return None
        return task.result()


__all__ = ["PlanScheduler"]
