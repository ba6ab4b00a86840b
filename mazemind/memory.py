"""
Append-only memory store for one agent.

The store is the agent's experience stream: every observation, reflection
and plan reference lands here in chronological order and is never removed.
Retrieval and reflection read from it directly; only the agent's own tick
writes to it, so no locking is needed.

Key responsibilities:
- Assign stable ids and insertion sequence numbers
- Reject malformed appends (out-of-order timestamps, dangling citations)
- Mirror plan-node status onto PLAN items (the only in-place mutation)
- Export/re-ingest serializable records for an external persistence layer
"""

from collections import Counter
from typing import Any, Dict, Iterable, List, Optional

from pydantic import ValidationError

from mazemind.errors import InvalidStatusTransition, MemoryAppendError, SnapshotError
from mazemind.schemas import MemoryItem, MemoryKind, PlanLevel, PlanStatus, Position


MIN_IMPORTANCE = 1
MAX_IMPORTANCE = 10


def clamp_importance(value: float) -> int:
    """Round and clamp an importance score into the 1-10 range."""
    return max(MIN_IMPORTANCE, min(MAX_IMPORTANCE, int(round(value))))


class MemoryStore:
    """
    Time-ordered ledger of MemoryItems.

    Insertion order is chronological order: an append whose timestamp is
    earlier than the newest stored item is rejected. Reflections may only
    cite items that are already in the store, which keeps the citation
    graph acyclic without any runtime cycle detection.
    """

    def __init__(self, *, id_prefix: str = "mem") -> None:
        self.id_prefix = id_prefix
        self._items: List[MemoryItem] = []
        self._by_id: Dict[str, MemoryItem] = {}
        self._by_plan_ref: Dict[str, MemoryItem] = {}
        self._next_sequence = 1

    def __len__(self) -> int:
        return len(self._items)

    def __iter__(self):
        return iter(list(self._items))

    def __contains__(self, memory_id: object) -> bool:
        return memory_id in self._by_id

    # ------------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------------

    def append(
        self,
        kind: MemoryKind,
        description: str,
        timestamp: float,
        importance: int,
        *,
        location: Optional[Position] = None,
        tags: Optional[Iterable[str]] = None,
        citations: Optional[Iterable[str]] = None,
        plan_ref: Optional[str] = None,
        plan_level: Optional[PlanLevel] = None,
        status: Optional[PlanStatus] = None,
        embedding: Optional[List[float]] = None,
    ) -> str:
        """
        Append a new item and return its store-assigned id.

        Raises:
            MemoryAppendError: If the item is malformed or out of order
        """
        if kind is MemoryKind.PLAN and status is None:
            status = PlanStatus.PENDING

        memory_id = f"{self.id_prefix}-{self._next_sequence:06d}"
        try:
            item = MemoryItem(
                id=memory_id,
                kind=kind,
                description=description.strip() if isinstance(description, str) else description,
                timestamp=timestamp,
                importance=importance,
                embedding=embedding,
                location=location,
                tags=list(tags or []),
                citations=list(citations or []),
                plan_ref=plan_ref,
                plan_level=plan_level,
                status=status,
                sequence=self._next_sequence,
            )
        except ValidationError as exc:
            raise MemoryAppendError(f"Malformed memory item: {exc}") from exc

        self._check_appendable(item)
        self._store(item)
        return memory_id

    def add_observation(
        self,
        description: str,
        timestamp: float,
        importance: float = 5,
        *,
        location: Optional[Position] = None,
        tags: Optional[Iterable[str]] = None,
    ) -> MemoryItem:
        memory_id = self.append(
            MemoryKind.OBSERVATION,
            description,
            timestamp,
            clamp_importance(importance),
            location=location,
            tags=tags,
        )
        return self._by_id[memory_id]

    def add_reflection(
        self,
        description: str,
        timestamp: float,
        importance: float,
        citations: Iterable[str],
        *,
        tags: Optional[Iterable[str]] = None,
    ) -> MemoryItem:
        memory_id = self.append(
            MemoryKind.REFLECTION,
            description,
            timestamp,
            clamp_importance(importance),
            citations=citations,
            tags=["reflection", *(tags or [])],
        )
        return self._by_id[memory_id]

    def add_plan(
        self,
        description: str,
        timestamp: float,
        importance: float,
        *,
        plan_ref: str,
        plan_level: PlanLevel,
        location: Optional[Position] = None,
        tags: Optional[Iterable[str]] = None,
    ) -> MemoryItem:
        memory_id = self.append(
            MemoryKind.PLAN,
            description,
            timestamp,
            clamp_importance(importance),
            location=location,
            plan_ref=plan_ref,
            plan_level=plan_level,
            tags=["plan", plan_level.value.lower(), *(tags or [])],
        )
        return self._by_id[memory_id]

    def update_plan_status(self, plan_ref: str, status: PlanStatus) -> MemoryItem:
        """Overwrite the mirrored status of the PLAN item for ``plan_ref``.

        Re-applying the current status is a no-op.

        Raises:
            KeyError: If no PLAN item references the node
            InvalidStatusTransition: If the change would move backward
        """
        item = self._by_plan_ref[plan_ref]
        current = item.status or PlanStatus.PENDING
        if current is status:
            return item
        if not current.can_transition_to(status):
            raise InvalidStatusTransition(plan_ref, current.value, status.value)
        item.status = status
        return item

    def attach_embedding(self, memory_id: str, embedding: List[float]) -> MemoryItem:
        """Cache an embedding on an item that has none yet.

        Attaching the identical vector twice is tolerated; a different
        vector raises ImmutableFieldError.
        """
        item = self._by_id[memory_id]
        if item.embedding is not None and list(item.embedding) == list(embedding):
            return item
        item.embedding = list(embedding)
        return item

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    def get(self, memory_id: str) -> Optional[MemoryItem]:
        return self._by_id.get(memory_id)

    def get_all(self) -> List[MemoryItem]:
        return list(self._items)

    def get_by_kind(self, kind: MemoryKind) -> List[MemoryItem]:
        return [item for item in self._items if item.kind is kind]

    def get_recent(self, count: int = 10) -> List[MemoryItem]:
        """Most recent items, newest first."""
        if count <= 0:
            return []
        return list(reversed(self._items[-count:]))

    def get_by_tag(self, tag: str) -> List[MemoryItem]:
        return [item for item in self._items if tag in item.tags]

    def get_in_time_range(self, start: float, end: float) -> List[MemoryItem]:
        return [item for item in self._items if start <= item.timestamp <= end]

    def get_near(self, position: Position, radius: float) -> List[MemoryItem]:
        return [
            item
            for item in self._items
            if item.location is not None and item.location.euclidean(position) <= radius
        ]

    def get_plan_item(self, plan_ref: str) -> Optional[MemoryItem]:
        return self._by_plan_ref.get(plan_ref)

    def count_by_kind(self, kind: MemoryKind) -> int:
        return sum(1 for item in self._items if item.kind is kind)

    def count_since(self, kind: MemoryKind, sequence: int) -> int:
        """Number of items of ``kind`` appended after insertion ``sequence``."""
        return sum(1 for item in self._items if item.kind is kind and item.sequence > sequence)

    @property
    def latest_timestamp(self) -> float:
        return self._items[-1].timestamp if self._items else 0.0

    @property
    def latest_sequence(self) -> int:
        return self._items[-1].sequence if self._items else 0

    def statistics(self) -> Dict[str, Any]:
        kinds = Counter(item.kind.value for item in self._items)
        total = len(self._items)
        mean_importance = (
            sum(item.importance for item in self._items) / total if total else 0.0
        )
        return {
            "total": total,
            "by_kind": {kind.value: kinds.get(kind.value, 0) for kind in MemoryKind},
            "with_embedding": sum(1 for item in self._items if item.has_embedding),
            "mean_importance": round(mean_importance, 2),
            "latest_timestamp": self.latest_timestamp,
        }

    # ------------------------------------------------------------------
    # Serialization
    # ------------------------------------------------------------------

    def export_records(self) -> List[Dict[str, Any]]:
        return [item.model_dump(mode="json") for item in self._items]

    @classmethod
    def from_records(
        cls, records: Iterable[Dict[str, Any]], *, id_prefix: str = "mem"
    ) -> "MemoryStore":
        """Rebuild a store from exported records, preserving ids.

        Raises:
            SnapshotError: If records are malformed, reordered or duplicated
        """
        store = cls(id_prefix=id_prefix)
        for index, record in enumerate(records):
            try:
                item = MemoryItem.model_validate(record)
            except ValidationError as exc:
                raise SnapshotError(f"Memory record {index} is malformed: {exc}") from exc
            if item.sequence < store._next_sequence:
                raise SnapshotError(
                    f"Memory record {item.id} has sequence {item.sequence}, "
                    f"expected at least {store._next_sequence}"
                )
            try:
                store._check_appendable(item)
            except MemoryAppendError as exc:
                raise SnapshotError(str(exc)) from exc
            store._store(item)
        return store

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _check_appendable(self, item: MemoryItem) -> None:
        if item.id in self._by_id:
            raise MemoryAppendError(f"Duplicate memory id {item.id}")
        if item.timestamp < self.latest_timestamp:
            raise MemoryAppendError(
                f"Timestamp {item.timestamp} is earlier than the newest item "
                f"({self.latest_timestamp})"
            )

        if item.kind is MemoryKind.REFLECTION and not item.citations:
            raise MemoryAppendError("Reflections must cite at least one earlier item")
        for cited in item.citations:
            if cited not in self._by_id:
                raise MemoryAppendError(
                    f"Memory {item.id} cites {cited}, which is not an earlier item"
                )

        if item.kind is MemoryKind.PLAN:
            if not item.plan_ref or item.plan_level is None:
                raise MemoryAppendError("PLAN items need a plan reference and level")
            if item.plan_ref in self._by_plan_ref:
                raise MemoryAppendError(f"Plan node {item.plan_ref} is already recorded")
        elif item.status is not None or item.plan_ref is not None:
            raise MemoryAppendError("Only PLAN items may carry a plan reference or status")

    def _store(self, item: MemoryItem) -> None:
        self._items.append(item)
        self._by_id[item.id] = item
        if item.plan_ref:
            self._by_plan_ref[item.plan_ref] = item
        self._next_sequence = item.sequence + 1


__all__ = ["MemoryStore", "clamp_importance", "MIN_IMPORTANCE", "MAX_IMPORTANCE"]
