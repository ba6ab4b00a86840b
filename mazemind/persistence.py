"""
Pluggable storage for agent cognition snapshots.

The cognitive core never decides when to persist. It exposes its memory
stream and plan hierarchy as a ``CognitionSnapshot``; an outer layer picks a
``PersistenceStrategy`` and calls save/load around simulation episodes.

Two implementations are included:
1. InMemoryPersistence - dict-backed, lost on exit (tests, prototyping)
2. JsonPersistence - one pretty-printed JSON document per agent

Usage pattern:
    persistence = JsonPersistence("agent_snapshots")
    await persistence.initialize()
    await persistence.save_snapshot(cognition.export_snapshot())
    ...
    snapshot = await persistence.load_snapshot("runner-1")
    await cognition.restore(snapshot)
"""

import asyncio
import json
import re
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field, ValidationError

from mazemind.errors import SnapshotError


SNAPSHOT_FORMAT_VERSION = 1


class CognitionSnapshot(BaseModel):
    """Serializable state of one agent's cognitive core."""

    format_version: int = SNAPSHOT_FORMAT_VERSION
    agent_id: str = Field(..., min_length=1)
    game_time: float = Field(0.0, ge=0)
    id_prefix: str = "mem"
    memories: List[Dict[str, Any]] = Field(default_factory=list)
    planner: Dict[str, Any] = Field(default_factory=dict)
    reflection: Dict[str, Any] = Field(default_factory=dict)


class PersistenceStrategy(ABC):
    """Abstract storage backend for cognition snapshots.

    All methods are async so file or database backends can run I/O without
    blocking the tick loop.
    """

    @abstractmethod
    async def initialize(self) -> None:
        """Prepare the backend (create directories, open pools)."""

    @abstractmethod
    async def close(self) -> None:
        """Release backend resources."""

    @abstractmethod
    async def save_snapshot(self, snapshot: CognitionSnapshot) -> None:
        """Store ``snapshot``, replacing any earlier one for the same agent."""

    @abstractmethod
    async def load_snapshot(self, agent_id: str) -> Optional[CognitionSnapshot]:
        """Return the stored snapshot, or None when there is none.

        Raises:
            SnapshotError: If the stored document cannot be decoded
        """

    @abstractmethod
    async def delete_snapshot(self, agent_id: str) -> None:
        """Remove the stored snapshot (no-op when absent)."""

    @abstractmethod
    async def list_agents(self) -> List[str]:
        """Agent ids that currently have a stored snapshot."""


class InMemoryPersistence(PersistenceStrategy):
    """Dict-backed persistence; snapshots are deep-copied on save and load."""

    def __init__(self) -> None:
        self.snapshots: Dict[str, CognitionSnapshot] = {}

    async def initialize(self) -> None:
        pass

    async def close(self) -> None:
        # Data is kept so callers can inspect it after a run
        pass

    async def save_snapshot(self, snapshot: CognitionSnapshot) -> None:
        self.snapshots[snapshot.agent_id] = snapshot.model_copy(deep=True)

    async def load_snapshot(self, agent_id: str) -> Optional[CognitionSnapshot]:
        stored = self.snapshots.get(agent_id)
        return stored.model_copy(deep=True) if stored is not None else None

    async def delete_snapshot(self, agent_id: str) -> None:
        self.snapshots.pop(agent_id, None)

    async def list_agents(self) -> List[str]:
        return sorted(self.snapshots)


_UNSAFE_CHARS = re.compile(r"[^A-Za-z0-9_.-]")


class JsonPersistence(PersistenceStrategy):
    """File-based persistence: ``{base_path}/{agent_id}.json``.

    File I/O runs in a worker thread via ``asyncio.to_thread``. Writes go to
    a temporary file first and are renamed into place.
    """

    def __init__(self, base_path: Path | str = "agent_snapshots"):
        self.base_path = Path(base_path)

    async def initialize(self) -> None:
        await asyncio.to_thread(self.base_path.mkdir, parents=True, exist_ok=True)

    async def close(self) -> None:
        return None

    async def save_snapshot(self, snapshot: CognitionSnapshot) -> None:
        path = self._path(snapshot.agent_id)
        payload = json.dumps(snapshot.model_dump(mode="json"), indent=2)

        def _write() -> None:
            path.parent.mkdir(parents=True, exist_ok=True)
            tmp = path.with_suffix(".json.tmp")
            tmp.write_text(payload, "utf-8")
            tmp.replace(path)

        await asyncio.to_thread(_write)

    async def load_snapshot(self, agent_id: str) -> Optional[CognitionSnapshot]:
        path = self._path(agent_id)
        if not path.exists():
            return None

        raw = await asyncio.to_thread(path.read_text, "utf-8")
        try:
            return CognitionSnapshot.model_validate_json(raw)
        except ValidationError as exc:
            raise SnapshotError(f"Snapshot {path} is malformed: {exc}") from exc

    async def delete_snapshot(self, agent_id: str) -> None:
        path = self._path(agent_id)
        if path.exists():
            await asyncio.to_thread(path.unlink)

    async def list_agents(self) -> List[str]:
        if not self.base_path.exists():
            return []
        paths = await asyncio.to_thread(lambda: sorted(self.base_path.glob("*.json")))
        agents = []
        for path in paths:
            raw = await asyncio.to_thread(path.read_text, "utf-8")
            try:
                agents.append(json.loads(raw)["agent_id"])
            except (ValueError, KeyError):
                continue
        return agents

    def _path(self, agent_id: str) -> Path:
        return self.base_path / f"{_UNSAFE_CHARS.sub('_', agent_id)}.json"


__all__ = [
    "CognitionSnapshot",
    "PersistenceStrategy",
    "InMemoryPersistence",
    "JsonPersistence",
    "SNAPSHOT_FORMAT_VERSION",
]
