"""Reflection engine.

Reflection re-reads the agent's most important recent memories and asks the
reasoning service for higher-order insights. Each accepted insight becomes a
REFLECTION memory citing the items that justify it. Reflection is additive
enrichment: malformed responses are logged and dropped, and nothing else in
the core depends on a reflection having happened.
"""

from __future__ import annotations

import re
from typing import Any, Dict, Iterable, List, Optional

from mazemind.logging_utils import log_deterministic, log_error, log_info, log_success
from mazemind.memory import MemoryStore, clamp_importance
from mazemind.reasoning import (
    FailureKind,
    ReasoningFailure,
    ReasoningService,
    request_structured,
)
from mazemind.retrieval import MemoryRetrieval
from mazemind.schemas import (
    MemoryItem,
    MemoryKind,
    ReflectionCategory,
    ReflectionInsight,
    ReflectionResponse,
)

from .cadence import ReflectionConfig
from .prompts import DEFAULT_PROMPTS, PromptLibrary
from .renderers import render_prompt


_DEFAULT_TOPIC = "What have I learned about surviving and navigating this maze?"


def _mentions(item: MemoryItem, *words: str) -> bool:
    text = item.description.lower()
    return any(re.search(rf"\b{re.escape(word)}\b", text) for word in words)


def heuristic_insights(memories: Iterable[MemoryItem]) -> List[ReflectionInsight]:
    """Rule-based insights used when the reasoning service is unreachable.

    Each rule cites exactly the inputs that matched it, so the resulting
    reflections stay grounded like service-generated ones.
    """

    memories = list(memories)
    insights: List[ReflectionInsight] = []

    dead_ends = [m for m in memories if _mentions(m, "dead end", "dead-end")]
    if len(dead_ends) >= 3:
        insights.append(
            ReflectionInsight(
                statement=(
                    f"I've hit {len(dead_ends)} dead ends recently. I should remember "
                    "these areas and try different paths."
                ),
                citations=[m.id for m in dead_ends],
                category=ReflectionCategory.PATTERN,
            )
        )

    junctions = [m for m in memories if _mentions(m, "junction", "junctions")]
    if len(junctions) >= 2:
        insights.append(
            ReflectionInsight(
                statement=(
                    "The maze has many junctions. I need a systematic exploration "
                    "strategy to avoid going in circles."
                ),
                citations=[m.id for m in junctions],
                category=ReflectionCategory.STRATEGY,
            )
        )

    strained = [m for m in memories if _mentions(m, "low", "critical", "starving", "exhausted")]
    if strained:
        insights.append(
            ReflectionInsight(
                statement=(
                    "My physical state is deteriorating. I need to balance exploration "
                    "with rest and resource management."
                ),
                citations=[m.id for m in strained],
                category=ReflectionCategory.EMOTIONAL,
            )
        )

    movement = [m for m in memories if _mentions(m, "moved", "heading", "walked")]
    if movement:
        located = next((m.location for m in movement if m.location is not None), None)
        where = f" Last known spot: {located}." if located is not None else ""
        insights.append(
            ReflectionInsight(
                statement=(
                    "I should keep track of where I've been to avoid exploring the "
                    f"same corridors twice.{where}"
                ),
                citations=[m.id for m in movement[:5]],
                category=ReflectionCategory.LEARNING,
            )
        )

    return insights[:5]


class ReflectionEngine:
    """Periodically synthesizes REFLECTION memories from one agent's store."""

    def __init__(
        self,
        store: MemoryStore,
        reasoning: Optional[ReasoningService] = None,
        *,
        retrieval: Optional[MemoryRetrieval] = None,
        config: Optional[ReflectionConfig] = None,
        prompt_library: Optional[PromptLibrary] = None,
        timeout: Optional[float] = None,
    ) -> None:
        self.store = store
        self.reasoning = reasoning
        self.retrieval = retrieval
        self.config = config or ReflectionConfig()
        self.prompt_library = prompt_library or DEFAULT_PROMPTS
        self.timeout = timeout

        self.last_reflection_time: Optional[float] = None
        self.last_reflection_sequence = 0
        self.total_runs = 0
        self.total_reflections = 0
        self.discarded_insights = 0
        self.fallback_runs = 0

    # ------------------------------------------------------------------
    # Triggering
    # ------------------------------------------------------------------

    def new_observation_count(self) -> int:
        return self.store.count_since(MemoryKind.OBSERVATION, self.last_reflection_sequence)

    def is_due(self, now: float) -> bool:
        return self.config.cadence.should_reflect(
            now=now,
            last_reflection_time=self.last_reflection_time,
            new_observations=self.new_observation_count(),
            candidate_count=len(self.select_inputs()),
        )

    def select_inputs(self) -> List[MemoryItem]:
        """The N most important recent observations and reflections.

        "Recent" is the last few multiples of N items of those kinds; within
        that window items are ordered by importance, then recency.
        """
        window = self.config.max_inputs * 4
        recent = [
            item
            for item in self.store.get_recent(len(self.store))
            if item.kind in (MemoryKind.OBSERVATION, MemoryKind.REFLECTION)
        ][:window]
        eligible = [item for item in recent if item.importance >= self.config.min_importance]
        eligible.sort(key=lambda item: (-item.importance, -item.timestamp, -item.sequence))
        return eligible[: self.config.max_inputs]

    # ------------------------------------------------------------------
    # Entry points
    # ------------------------------------------------------------------

    async def maybe_reflect(self, now: float) -> List[MemoryItem]:
        """Reflect if the cadence says so; returns the new REFLECTION items."""
        if not self.is_due(now):
            return []
        return await self._reflect(self.select_inputs(), now, _DEFAULT_TOPIC)

    async def force_reflection(self, now: float) -> List[MemoryItem]:
        return await self._reflect(self.select_inputs(), now, _DEFAULT_TOPIC)

    async def reflect_on(self, topic: str, now: float, k: int = 10) -> List[MemoryItem]:
        """Reflect on the memories most relevant to ``topic``."""
        if self.retrieval is not None:
            ranked = await self.retrieval.retrieve(
                topic,
                now,
                k,
                where=lambda item: item.kind in (MemoryKind.OBSERVATION, MemoryKind.REFLECTION),
            )
            inputs = [result.item for result in ranked]
        else:
            inputs = self.select_inputs()[:k]
        return await self._reflect(inputs, now, topic)

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    async def _reflect(
        self, inputs: List[MemoryItem], now: float, topic: str
    ) -> List[MemoryItem]:
        self.total_runs += 1
        self.last_reflection_time = now
        self.last_reflection_sequence = self.store.latest_sequence
        if not inputs:
            return []

        insights = await self._generate_insights(inputs, topic)
        written = self._store_insights(insights, inputs, now)

        self.total_reflections += len(written)
        if written:
            log_success(f"Stored {len(written)} reflection(s)")
            for item in written:
                log_info(f"  {item.tags[1] if len(item.tags) > 1 else 'insight'}: {item.description}")
        return written

    async def _generate_insights(
        self, inputs: List[MemoryItem], topic: str
    ) -> List[ReflectionInsight]:
        lines = [f"- [{item.id}] (importance {item.importance}) {item.description}" for item in inputs]
        prompt = render_prompt(
            self.prompt_library.get("reflect_insights"),
            topic=topic,
            reflection_inputs="\n".join(lines),
            max_insights=self.config.max_insights,
        )
        result = await request_structured(
            self.reasoning, prompt, ReflectionResponse, timeout=self.timeout
        )

        if isinstance(result, ReasoningFailure):
            if result.kind is FailureKind.SCHEMA:
                log_error("Discarding malformed reflection response")
                return []
            if not self.config.use_heuristic_fallback:
                return []
            self.fallback_runs += 1
            log_deterministic(f"Reasoning unavailable ({result.kind.value}); using heuristic reflection")
            return heuristic_insights(inputs)[: self.config.max_insights]

        return result.value.insights[: self.config.max_insights]

    def _store_insights(
        self,
        insights: List[ReflectionInsight],
        inputs: List[MemoryItem],
        now: float,
    ) -> List[MemoryItem]:
        by_id = {item.id: item for item in inputs}
        timestamp = max(now, self.store.latest_timestamp)
        written: List[MemoryItem] = []

        for insight in insights:
            citations = list(dict.fromkeys(c for c in insight.citations if c in by_id))
            if not citations:
                self.discarded_insights += 1
                log_error(f"Dropping uncited insight: {insight.statement[:60]!r}")
                continue
            cited_max = max(by_id[c].importance for c in citations)
            importance = clamp_importance(max(self.config.importance_floor, cited_max))
            written.append(
                self.store.add_reflection(
                    insight.statement,
                    timestamp,
                    importance,
                    citations,
                    tags=[insight.category.value, "insight"],
                )
            )
        return written

    # ------------------------------------------------------------------
    # Bookkeeping
    # ------------------------------------------------------------------

    def statistics(self) -> Dict[str, Any]:
        return {
            "total_runs": self.total_runs,
            "total_reflections": self.total_reflections,
            "discarded_insights": self.discarded_insights,
            "fallback_runs": self.fallback_runs,
            "last_reflection_time": self.last_reflection_time,
            "pending_observations": self.new_observation_count(),
        }

    def export_state(self) -> Dict[str, Any]:
        return {
            "last_reflection_time": self.last_reflection_time,
            "last_reflection_sequence": self.last_reflection_sequence,
            "total_runs": self.total_runs,
            "total_reflections": self.total_reflections,
        }

    def restore_state(self, state: Dict[str, Any]) -> None:
        self.last_reflection_time = state.get("last_reflection_time")
        self.last_reflection_sequence = int(state.get("last_reflection_sequence", 0))
        self.total_runs = int(state.get("total_runs", 0))
        self.total_reflections = int(state.get("total_reflections", 0))


__all__ = ["ReflectionEngine", "heuristic_insights"]
