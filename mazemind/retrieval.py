"""
Memory retrieval: recency + importance + relevance ranking.

Scoring per candidate item:
- Recency: exp(-decay_rate * age), age in simulated seconds (clamped at 0)
- Importance: importance / 10
- Relevance: cosine(query, item) clamped to [0, 1]; only when both vectors
  exist, otherwise the axis is dropped and the remaining weights are
  re-normalized

Ranking is deterministic: score descending, then newer timestamp, then later
insertion. Embedding failures never reach the caller; retrieval simply runs
on recency and importance.
"""

import math
from dataclasses import dataclass, replace
from typing import Callable, Iterator, List, Optional, Sequence, Tuple, Union

from mazemind.embeddings import EmbeddingCache, EmbeddingService
from mazemind.errors import ImmutableFieldError
from mazemind.logging_utils import log_debug
from mazemind.memory import MemoryStore
from mazemind.schemas import MemoryItem, MemoryKind, Position


# 0.995 per simulated hour, expressed per simulated second
DEFAULT_DECAY_RATE = -math.log(0.995) / 3600.0


@dataclass(frozen=True)
class RetrievalConfig:
    recency_weight: float = 1.0 / 3.0
    importance_weight: float = 1.0 / 3.0
    relevance_weight: float = 1.0 / 3.0
    decay_rate: float = DEFAULT_DECAY_RATE
    default_k: int = 10

    def __post_init__(self) -> None:
        weights = (self.recency_weight, self.importance_weight, self.relevance_weight)
        if any(weight < 0 for weight in weights):
            raise ValueError("Retrieval weights must be non-negative")
        if sum(weights) <= 0:
            raise ValueError("At least one retrieval weight must be positive")
        if self.decay_rate <= 0:
            raise ValueError("decay_rate must be positive")
        if self.default_k <= 0:
            raise ValueError("default_k must be positive")


@dataclass(frozen=True)
class RetrievalResult:
    """One ranked item plus the per-axis scores behind its rank."""

    item: MemoryItem
    score: float
    recency: float
    importance: float
    relevance: Optional[float] = None

    def __iter__(self) -> Iterator[Union[MemoryItem, float]]:
        # Unpacks as (item, score)
        yield self.item
        yield self.score


def recency_score(timestamp: float, now: float, decay_rate: float = DEFAULT_DECAY_RATE) -> float:
    """Exponential decay in (0, 1]; an item from the future counts as age 0."""
    age = max(0.0, now - timestamp)
    return math.exp(-decay_rate * age)


def importance_score(importance: int) -> float:
    return importance / 10.0


def cosine_similarity(a: Sequence[float], b: Sequence[float]) -> Optional[float]:
    """Cosine similarity clamped to [0, 1], or None when it is undefined."""
    if not a or not b or len(a) != len(b):
        return None
    dot = sum(x * y for x, y in zip(a, b))
    norm_a = math.sqrt(sum(x * x for x in a))
    norm_b = math.sqrt(sum(y * y for y in b))
    if norm_a == 0.0 or norm_b == 0.0:
        return None
    return max(0.0, min(1.0, dot / (norm_a * norm_b)))


class MemoryRetrieval:
    """Ranks one agent's memories against a natural-language query."""

    def __init__(
        self,
        store: MemoryStore,
        embeddings: Union[EmbeddingCache, EmbeddingService, None] = None,
        config: Optional[RetrievalConfig] = None,
    ) -> None:
        self.store = store
        if isinstance(embeddings, EmbeddingCache):
            self.embeddings = embeddings
        else:
            self.embeddings = EmbeddingCache(embeddings)
        self.config = config or RetrievalConfig()

    @property
    def weights(self) -> Tuple[float, float, float]:
        return (
            self.config.recency_weight,
            self.config.importance_weight,
            self.config.relevance_weight,
        )

    def set_weights(
        self,
        *,
        recency: Optional[float] = None,
        importance: Optional[float] = None,
        relevance: Optional[float] = None,
    ) -> None:
        self.config = replace(
            self.config,
            recency_weight=self.config.recency_weight if recency is None else recency,
            importance_weight=self.config.importance_weight if importance is None else importance,
            relevance_weight=self.config.relevance_weight if relevance is None else relevance,
        )

    async def retrieve(
        self,
        query: str,
        now: float,
        k: Optional[int] = None,
        *,
        where: Optional[Callable[[MemoryItem], bool]] = None,
    ) -> List[RetrievalResult]:
        """Return the top ``k`` items for ``query`` at simulated time ``now``."""

        k = self.config.default_k if k is None else k
        candidates = self.store.get_all()
        if where is not None:
            candidates = [item for item in candidates if where(item)]
        if not candidates or k <= 0:
            return []

        query_vector = None
        if self.embeddings.available and query and query.strip():
            query_vector = await self.embeddings.try_embed(query)
            if query_vector is not None:
                await self._ensure_embeddings(candidates)
            else:
                log_debug(f"Retrieving {query[:40]!r} without relevance (query embedding failed)")

        results = [self._score(item, now, query_vector) for item in candidates]
        results.sort(key=lambda r: (-r.score, -r.item.timestamp, -r.item.sequence))
        return results[:k]

    async def retrieve_by_kind(
        self, kind: MemoryKind, query: str, now: float, k: Optional[int] = None
    ) -> List[RetrievalResult]:
        return await self.retrieve(query, now, k, where=lambda item: item.kind is kind)

    async def retrieve_near(
        self,
        position: Position,
        radius: float,
        query: str,
        now: float,
        k: Optional[int] = None,
    ) -> List[RetrievalResult]:
        return await self.retrieve(
            query,
            now,
            k,
            where=lambda item: item.location is not None
            and item.location.euclidean(position) <= radius,
        )

    async def warm_embeddings(self) -> int:
        """Embed every stored item that has no cached vector yet.

        Returns the number of items that gained an embedding.
        """
        if not self.embeddings.available:
            return 0
        return await self._ensure_embeddings(self.store.get_all())

    async def _ensure_embeddings(self, items: Sequence[MemoryItem]) -> int:
        missing = [item for item in items if item.embedding is None]
        if not missing:
            return 0
        vectors = await self.embeddings.embed_many(item.description for item in missing)
        attached = 0
        for item in missing:
            vector = vectors.get(item.description)
            if vector is None:
                continue
            try:
                self.store.attach_embedding(item.id, vector)
            except ImmutableFieldError:
                continue
            attached += 1
        return attached

    def _score(
        self, item: MemoryItem, now: float, query_vector: Optional[List[float]]
    ) -> RetrievalResult:
        w_recency, w_importance, w_relevance = self.weights
        recency = recency_score(item.timestamp, now, self.config.decay_rate)
        importance = importance_score(item.importance)

        relevance = None
        if query_vector is not None and item.embedding is not None:
            relevance = cosine_similarity(query_vector, item.embedding)

        weighted = w_recency * recency + w_importance * importance
        total_weight = w_recency + w_importance
        if relevance is not None:
            weighted += w_relevance * relevance
            total_weight += w_relevance

        score = weighted / total_weight if total_weight > 0 else 0.0
        return RetrievalResult(
            item=item,
            score=score,
            recency=recency,
            importance=importance,
            relevance=relevance,
        )


__all__ = [
    "MemoryRetrieval",
    "RetrievalConfig",
    "RetrievalResult",
    "DEFAULT_DECAY_RATE",
    "recency_score",
    "importance_score",
    "cosine_similarity",
]
