"""Context assembly for planning prompts.

Collects the world snapshot plus the memories and reflections worth showing
the reasoning service, and renders them as compact text or JSON.
"""

from __future__ import annotations

import json
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

from mazemind.memory import MemoryStore
from mazemind.retrieval import MemoryRetrieval
from mazemind.schemas import MemoryItem, MemoryKind, WorldSnapshot


@dataclass
class PlanningContext:
    """Structured context passed to planning prompts and fallbacks."""

    snapshot: WorldSnapshot
    memories: List[MemoryItem] = field(default_factory=list)
    reflections: List[MemoryItem] = field(default_factory=list)
    extra: Dict[str, Any] = field(default_factory=dict)

    @property
    def now(self) -> float:
        return self.snapshot.game_time

    def to_payload(self) -> Dict[str, Any]:
        return {
            "snapshot": self.snapshot.model_dump(mode="json"),
            "memories": [memory.description for memory in self.memories],
            "reflections": [memory.description for memory in self.reflections],
            "extra": self.extra,
        }

    def to_json(self) -> str:
        return json.dumps(self.to_payload(), indent=2, default=str)

    def survival_text(self) -> str:
        stats = self.snapshot.survival
        return (
            f"- hunger {stats.hunger:.0f}/100\n"
            f"- thirst {stats.thirst:.0f}/100\n"
            f"- energy {stats.energy:.0f}/100\n"
            f"- stress {stats.stress:.0f}/100"
        )

    def known_items_text(self, limit: int = 10) -> str:
        here = self.snapshot.position
        pois = sorted(
            self.snapshot.points_of_interest,
            key=lambda poi: (poi.position.manhattan(here), poi.id),
        )
        lines = []
        for poi in pois[:limit]:
            reach = "" if poi.reachable else " (unreachable)"
            lines.append(
                f"- {poi.kind} '{poi.id}' at {poi.position}, "
                f"{poi.position.manhattan(here)} tiles away{reach}"
            )
        return "\n".join(lines) if lines else "- (none)"

    def memories_text(self, limit: int = 8) -> str:
        lines = [f"- {memory.description}" for memory in self.memories[:limit]]
        return "\n".join(lines) if lines else "- (none)"

    def reflections_text(self, limit: int = 3) -> str:
        lines = [f"- {memory.description}" for memory in self.reflections[:limit]]
        return "\n".join(lines) if lines else "- (none)"

    def summary(self) -> str:
        snap = self.snapshot
        lines = [
            f"Time: {snap.game_time:.0f}s" + (f" ({snap.time_of_day})" if snap.time_of_day else ""),
            f"Position: {snap.position}",
            f"Exploration: {snap.exploration_progress * 100:.0f}%",
        ]
        if snap.regions:
            visited = ", ".join(f"{region.name} x{region.visits}" for region in snap.regions[:5])
            lines.append(f"Regions: {visited}")
        return "\n".join(lines)


_CONTEXT_QUERY = "survival food water energy danger exploration"


async def build_planning_context(
    snapshot: WorldSnapshot,
    store: MemoryStore,
    *,
    retrieval: Optional[MemoryRetrieval] = None,
    memory_limit: int = 8,
    reflection_limit: int = 3,
    query: str = _CONTEXT_QUERY,
) -> PlanningContext:
    """Assemble a PlanningContext from the snapshot and the agent's memory.

    Recent observations are taken straight from the store; reflections are
    ranked by retrieval when one is supplied.
    """

    memories = [
        item for item in store.get_recent(memory_limit * 3) if item.kind is MemoryKind.OBSERVATION
    ][:memory_limit]

    if retrieval is not None:
        ranked = await retrieval.retrieve_by_kind(
            MemoryKind.REFLECTION, query, snapshot.game_time, reflection_limit
        )
        reflections = [result.item for result in ranked]
    else:
        reflections = list(reversed(store.get_by_kind(MemoryKind.REFLECTION)))[:reflection_limit]

    return PlanningContext(snapshot=snapshot, memories=memories, reflections=reflections)


__all__ = ["PlanningContext", "build_planning_context"]
