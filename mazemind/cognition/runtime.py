"""Agent cognition runtime.

``AgentCognition`` bundles one agent's memory store, retrieval, reflection
engine, planner and scheduler behind a cooperative ``tick``. Each agent gets
its own instance; nothing is shared between agents.
"""

from __future__ import annotations

import asyncio
from dataclasses import dataclass, field
from typing import Iterable, List, Optional, Union

from mazemind.config import Config
from mazemind.embeddings import EmbeddingCache, EmbeddingService, build_embedding_service
from mazemind.errors import InvalidStatusTransition, SnapshotError
from mazemind.logging_utils import log_debug, log_error, log_info
from mazemind.memory import MemoryStore
from mazemind.persistence import CognitionSnapshot
from mazemind.reasoning import LLMReasoningService, ReasoningService
from mazemind.retrieval import MemoryRetrieval, RetrievalConfig, RetrievalResult
from mazemind.schemas import (
    ActionOutcome,
    ActionPlan,
    MemoryItem,
    Observation,
    Position,
    WorldSnapshot,
)

from .cadence import PlannerConfig, ReflectionConfig
from .context import PlanningContext, build_planning_context
from .planner import HierarchicalPlanner
from .prompts import DEFAULT_PROMPTS, PromptLibrary
from .reflection import ReflectionEngine
from .scheduling import PlanScheduler


@dataclass
class TickResult:
    """What one tick produced for the caller's action-execution layer."""

    game_time: float
    action: Optional[ActionPlan] = None
    replan_reason: Optional[str] = None
    events: List[str] = field(default_factory=list)
    reflections: List[MemoryItem] = field(default_factory=list)
    plan_pending: bool = False


class AgentCognition:
    """One agent's complete cognitive core.

    Examples:
        Fully offline agent (deterministic fallbacks only):
            AgentCognition("runner-1")

        Provider-backed agent configured from the environment:
            AgentCognition.from_config("runner-1")
    """

    def __init__(
        self,
        agent_id: str,
        *,
        reasoning: Optional[ReasoningService] = None,
        embeddings: Union[EmbeddingCache, EmbeddingService, None] = None,
        retrieval_config: Optional[RetrievalConfig] = None,
        reflection_config: Optional[ReflectionConfig] = None,
        planner_config: Optional[PlannerConfig] = None,
        prompt_library: PromptLibrary = DEFAULT_PROMPTS,
        timeout: Optional[float] = None,
        strict: Optional[bool] = None,
        store: Optional[MemoryStore] = None,
    ) -> None:
        self.agent_id = agent_id
        self.reasoning = reasoning
        self.embeddings = embeddings if isinstance(embeddings, EmbeddingCache) else EmbeddingCache(embeddings)
        self.retrieval_config = retrieval_config
        self.reflection_config = reflection_config
        self.planner_config = planner_config
        self.prompt_library = prompt_library
        self.timeout = timeout
        self.strict = strict

        self._reflection_task: Optional["asyncio.Task[List[MemoryItem]]"] = None
        self._bind(store or MemoryStore())

    @classmethod
    def from_config(cls, agent_id: str, config: type[Config] = Config, **kwargs) -> "AgentCognition":
        """Build an agent whose services come from ``Config``."""
        config.validate()
        return cls(
            agent_id,
            reasoning=LLMReasoningService(provider=config.LLM_PROVIDER, model=config.LLM_MODEL),
            embeddings=build_embedding_service(config),
            timeout=config.REASONING_TIMEOUT_SECONDS,
            **kwargs,
        )

    def _bind(self, store: MemoryStore) -> None:
        self.store = store
        self.retrieval = MemoryRetrieval(store, self.embeddings, self.retrieval_config)
        self.reflection = ReflectionEngine(
            store,
            self.reasoning,
            retrieval=self.retrieval,
            config=self.reflection_config,
            prompt_library=self.prompt_library,
            timeout=self.timeout,
        )
        self.planner = HierarchicalPlanner(
            store,
            self.reasoning,
            config=self.planner_config,
            prompt_library=self.prompt_library,
            timeout=self.timeout,
            strict=self.strict,
        )
        self.scheduler = PlanScheduler(self.planner)

    # ------------------------------------------------------------------
    # Tick loop
    # ------------------------------------------------------------------

    async def tick(
        self,
        snapshot: WorldSnapshot,
        observations: Iterable[Union[str, Observation]] = (),
    ) -> TickResult:
        """Advance cognition by one tick without waiting on the reasoning service."""
        now = snapshot.game_time
        result = TickResult(game_time=now)

        for observation in observations:
            self.observe(observation, now)

        result.reflections = self._harvest_reflection()
        result.events = await self.scheduler.poll(now)

        context = await build_planning_context(snapshot, self.store)
        reason = self.planner.monitor(
            context, generation_pending=self.scheduler.generation_in_flight
        )
        if reason:
            result.replan_reason = reason
            self.scheduler.request_replan(reason, context, critical=reason.startswith("Critical"))

        for hourly in self.planner.hours_needing_actions(now):
            self.scheduler.request_decomposition(hourly, context)

        result.action = self.planner.get_current_action(now)
        result.plan_pending = self.scheduler.generation_in_flight

        if self._reflection_task is None and self.reflection.is_due(now):
            self._reflection_task = asyncio.create_task(self.reflection.maybe_reflect(now))
        return result

    async def settle(self, now: float) -> List[str]:
        """Wait for every background task and apply its result."""
        events = await self.scheduler.drain(now)
        if self._reflection_task is not None:
            await asyncio.wait([self._reflection_task])
            self._harvest_reflection()
        return events

    async def close(self) -> None:
        await self.scheduler.cancel_all()
        if self._reflection_task is not None:
            self._reflection_task.cancel()
            await asyncio.gather(self._reflection_task, return_exceptions=True)
            self._reflection_task = None

    def _harvest_reflection(self) -> List[MemoryItem]:
        task = self._reflection_task
        if task is None or not task.done():
            return []
        self._reflection_task = None
        if task.cancelled():
            return []
        exc = task.exception()
        if exc is not None:
            log_error(f"Reflection failed: {exc}")
            return []
        return task.result()

    # ------------------------------------------------------------------
    # Memory access
    # ------------------------------------------------------------------

    def observe(
        self,
        observation: Union[str, Observation],
        now: float,
        *,
        importance: int = 5,
        location: Optional[Position] = None,
        tags: Optional[List[str]] = None,
    ) -> MemoryItem:
        if isinstance(observation, str):
            observation = Observation(
                description=observation,
                importance=importance,
                location=location,
                tags=list(tags or []),
            )
        return self.store.add_observation(
            observation.description,
            max(now, self.store.latest_timestamp),
            observation.importance,
            location=observation.location,
            tags=observation.tags,
        )

    async def retrieve(self, query: str, now: float, k: Optional[int] = None) -> List[RetrievalResult]:
        return await self.retrieval.retrieve(query, now, k)

    async def planning_context(self, snapshot: WorldSnapshot) -> PlanningContext:
        """Context with retrieval-ranked reflections, for callers that want it."""
        return await build_planning_context(snapshot, self.store, retrieval=self.retrieval)

    def complete_action(
        self,
        action_id: str,
        outcome: Optional[ActionOutcome] = None,
        *,
        now: Optional[float] = None,
    ) -> Optional[ActionPlan]:
        """Report an action's result; stale or unknown ids are logged, not raised."""
        try:
            return self.planner.complete_action(action_id, outcome, now=now)
        except KeyError:
            log_error(f"Unknown action {action_id}")
        except InvalidStatusTransition as exc:
            log_debug(f"Ignoring outcome for finished action: {exc}")
        return None

    # ------------------------------------------------------------------
    # Persistence
    # ------------------------------------------------------------------

    def export_snapshot(self) -> CognitionSnapshot:
        """Serializable state; work still in flight is not included."""
        return CognitionSnapshot(
            agent_id=self.agent_id,
            game_time=self.store.latest_timestamp,
            id_prefix=self.store.id_prefix,
            memories=self.store.export_records(),
            planner=self.planner.export_state(),
            reflection=self.reflection.export_state(),
        )

    async def restore(self, snapshot: CognitionSnapshot) -> None:
        """Replace this agent's state with ``snapshot``.

        Validation happens before anything is swapped, so a rejected
        snapshot leaves the current state untouched.

        Raises:
            SnapshotError: If the snapshot belongs to another agent or is
                inconsistent
        """
        if snapshot.agent_id != self.agent_id:
            raise SnapshotError(
                f"Snapshot belongs to {snapshot.agent_id}, not {self.agent_id}"
            )

        store = MemoryStore.from_records(snapshot.memories, id_prefix=snapshot.id_prefix)
        staged = AgentCognition(
            self.agent_id,
            reasoning=self.reasoning,
            embeddings=self.embeddings,
            retrieval_config=self.retrieval_config,
            reflection_config=self.reflection_config,
            planner_config=self.planner_config,
            prompt_library=self.prompt_library,
            timeout=self.timeout,
            strict=self.strict,
            store=store,
        )
        staged.planner.restore_state(snapshot.planner)
        staged.reflection.restore_state(snapshot.reflection)

        await self.close()
        self.store = staged.store
        self.retrieval = staged.retrieval
        self.reflection = staged.reflection
        self.planner = staged.planner
        self.scheduler = staged.scheduler
        log_info(f"Restored {self.agent_id}: {len(self.store)} memories, {len(self.planner.history)} plan(s)")


__all__ = ["AgentCognition", "TickResult"]
