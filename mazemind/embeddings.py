"""
Embedding service adapters and the exact-text embedding cache.

Embedding generation is an external, fallible capability. Adapters raise
EmbeddingServiceError on any failure; the cache in front of them turns those
failures into "no vector for this text" so retrieval can degrade to recency
and importance only.
"""

import asyncio
import os
from typing import Dict, Iterable, List, Optional, Protocol, runtime_checkable

from openai import AsyncOpenAI, OpenAIError

from mazemind.config import Config
from mazemind.errors import EmbeddingServiceError
from mazemind.local_llm import LocalLLMError, call_ollama_embed
from mazemind.logging_utils import log_debug, log_error, log_llm


@runtime_checkable
class EmbeddingService(Protocol):
    """Anything that turns text into a fixed-length vector."""

    @property
    def dimension(self) -> int:
        ...

    @property
    def model_name(self) -> str:
        ...

    async def embed(self, text: str) -> List[float]:
        ...


class OpenAIEmbedding:
    """
    Embedding adapter using OpenAI's embedding API.

    Also works against OpenAI-compatible servers through ``base_url``.
    """

    _KNOWN_DIMENSIONS = {
        "text-embedding-3-small": 1536,
        "text-embedding-3-large": 3072,
        "text-embedding-ada-002": 1536,
    }

    def __init__(
        self,
        model: str = "text-embedding-3-small",
        api_key: Optional[str] = None,
        base_url: Optional[str] = None,
        dimensions: Optional[int] = None,
        timeout: float = 30.0,
        max_retries: int = 2,
    ) -> None:
        self._model = model
        self._dimensions = dimensions
        self._dimension = dimensions or self._KNOWN_DIMENSIONS.get(model, 1536)
        self._client = AsyncOpenAI(
            api_key=api_key or os.getenv("OPENAI_API_KEY"),
            base_url=base_url,
            timeout=timeout,
            max_retries=max_retries,
        )

    @property
    def dimension(self) -> int:
        return self._dimension

    @property
    def model_name(self) -> str:
        return self._model

    async def embed(self, text: str) -> List[float]:
        if not text or not text.strip():
            raise EmbeddingServiceError("Cannot embed empty text")

        kwargs = {"model": self._model, "input": text}
        if self._dimensions is not None:
            kwargs["dimensions"] = self._dimensions

        try:
            response = await self._client.embeddings.create(**kwargs)
        except OpenAIError as exc:
            raise EmbeddingServiceError(f"OpenAI embedding request failed: {exc}") from exc
        return list(response.data[0].embedding)


class OllamaEmbedding:
    """Embedding adapter for a local Ollama server (``/api/embed``)."""

    def __init__(
        self,
        model: str = "nomic-embed-text",
        dimension: int = 768,
        base_url: Optional[str] = None,
        timeout: float = 30.0,
    ) -> None:
        self._model = model
        self._dimension = dimension
        self._base_url = base_url
        self._timeout = timeout

    @property
    def dimension(self) -> int:
        return self._dimension

    @property
    def model_name(self) -> str:
        return self._model

    async def embed(self, text: str) -> List[float]:
        try:
            return await call_ollama_embed(
                text=text,
                model=self._model,
                base_url=self._base_url,
                timeout=self._timeout,
            )
        except LocalLLMError as exc:
            raise EmbeddingServiceError(str(exc)) from exc


def build_embedding_service(config: type[Config] = Config) -> Optional[EmbeddingService]:
    """Pick an embedding adapter from configuration, or None when disabled."""

    provider = config.EMBEDDING_PROVIDER.lower()
    if provider == "none":
        return None
    if provider == "ollama":
        return OllamaEmbedding(
            model=config.EMBEDDING_MODEL,
            dimension=config.EMBEDDING_DIMENSION,
            base_url=config.OLLAMA_BASE_URL,
        )
    if provider == "openai":
        return OpenAIEmbedding(
            model=config.EMBEDDING_MODEL,
            api_key=config.OPENAI_API_KEY,
            dimensions=config.EMBEDDING_DIMENSION,
        )
    raise ValueError(f"Unknown embedding provider '{config.EMBEDDING_PROVIDER}'")


class EmbeddingCache:
    """Exact-string keyed cache in front of an embedding service.

    A text is embedded at most once while it succeeds; failures are not
    cached so a later call can try again.
    """

    def __init__(self, service: Optional[EmbeddingService]) -> None:
        self.service = service
        self._vectors: Dict[str, List[float]] = {}
        self.hits = 0
        self.misses = 0
        self.errors = 0

    @property
    def available(self) -> bool:
        return self.service is not None

    def __len__(self) -> int:
        return len(self._vectors)

    def peek(self, text: str) -> Optional[List[float]]:
        return self._vectors.get(text)

    async def embed(self, text: str) -> List[float]:
        """Return the cached vector for ``text``, embedding it on a miss.

        Raises:
            EmbeddingServiceError: If no service is configured or it fails
        """
        cached = self._vectors.get(text)
        if cached is not None:
            self.hits += 1
            return cached

        if self.service is None:
            raise EmbeddingServiceError("No embedding service configured")

        self.misses += 1
        try:
            vector = await self.service.embed(text)
        except EmbeddingServiceError:
            self.errors += 1
            raise
        except asyncio.CancelledError:
            raise
        except Exception as exc:  # custom services raise their own transport errors
            self.errors += 1
            raise EmbeddingServiceError(f"{self.service.model_name} failed: {exc}") from exc

        if len(vector) != self.service.dimension:
            self.errors += 1
            raise EmbeddingServiceError(
                f"{self.service.model_name} returned {len(vector)} dimensions, "
                f"expected {self.service.dimension}"
            )

        self._vectors[text] = vector
        return vector

    async def try_embed(self, text: str) -> Optional[List[float]]:
        """Like ``embed`` but returns None instead of raising."""
        try:
            return await self.embed(text)
        except asyncio.CancelledError:
            raise
        except Exception as exc:
            log_debug(f"Embedding unavailable for {text[:40]!r}: {exc}")
            return None

    async def embed_many(self, texts: Iterable[str]) -> Dict[str, List[float]]:
        """Embed distinct texts concurrently; failed texts are left out."""

        unique = list(dict.fromkeys(texts))
        if not unique or self.service is None:
            return {}

        pending = [text for text in unique if text not in self._vectors]
        if pending:
            log_llm(f"Embedding {len(pending)} text(s) with {self.service.model_name}")
        vectors = await asyncio.gather(*(self.try_embed(text) for text in unique))
        result = {text: vector for text, vector in zip(unique, vectors) if vector is not None}
        failed = len(unique) - len(result)
        if failed:
            log_error(f"Embedding failed for {failed}/{len(unique)} text(s); scoring without relevance")
        return result

    def statistics(self) -> Dict[str, int]:
        return {
            "cached": len(self._vectors),
            "hits": self.hits,
            "misses": self.misses,
            "errors": self.errors,
        }


__all__ = [
    "EmbeddingService",
    "OpenAIEmbedding",
    "OllamaEmbedding",
    "EmbeddingCache",
    "build_embedding_service",
]
