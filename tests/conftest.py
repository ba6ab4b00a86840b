"""Shared fixtures: scripted reasoning and keyword embedding fakes."""

from collections import defaultdict, deque
from typing import Callable, Deque, Dict, List, Tuple

import pytest

from mazemind.errors import EmbeddingServiceError
from mazemind.memory import MemoryStore
from mazemind.reasoning import RenderedPrompt
from mazemind.schemas import (
    PointOfInterest,
    Position,
    RegionSummary,
    SurvivalStats,
    WorldSnapshot,
)


class ScriptedReasoning:
    """Reasoning service that replays queued responses per response model.

    Queued exceptions are raised. With nothing queued, a handler registered
    for the model is used; otherwise the call fails like an unreachable
    service.
    """

    def __init__(self) -> None:
        self.queues: Dict[type, Deque[object]] = defaultdict(deque)
        self.handlers: Dict[type, Callable[[RenderedPrompt], object]] = {}
        self.calls: List[Tuple[type, RenderedPrompt]] = []

    def queue(self, response_model: type, *responses: object) -> None:
        self.queues[response_model].extend(responses)

    def handle(self, response_model: type, handler: Callable[[RenderedPrompt], object]) -> None:
        self.handlers[response_model] = handler

    def calls_for(self, response_model: type) -> List[RenderedPrompt]:
        return [prompt for model, prompt in self.calls if model is response_model]

    async def complete(self, prompt, response_model):
        self.calls.append((response_model, prompt))
        queue = self.queues[response_model]
        if queue:
            response = queue.popleft()
            if isinstance(response, BaseException):
                raise response
            return response
        handler = self.handlers.get(response_model)
        if handler is not None:
            return handler(prompt)
        raise ConnectionError(f"no scripted {response_model.__name__}")


class KeywordEmbedding:
    """Deterministic bag-of-keywords embedding."""

    VOCAB = ("food", "water", "energy", "exit", "dead", "junction", "rest", "wall")

    def __init__(self, *, fail_on: Tuple[str, ...] = ()) -> None:
        self.fail_on = fail_on
        self.calls: List[str] = []

    @property
    def dimension(self) -> int:
        return len(self.VOCAB)

    @property
    def model_name(self) -> str:
        return "keyword-test"

    async def embed(self, text: str) -> List[float]:
        self.calls.append(text)
        if any(marker in text for marker in self.fail_on):
            raise EmbeddingServiceError(f"cannot embed {text!r}")
        lowered = text.lower()
        return [float(lowered.count(word)) for word in self.VOCAB]


def make_snapshot(
    game_time: float = 0.0,
    *,
    x: int = 0,
    y: int = 0,
    hunger: float = 80.0,
    thirst: float = 80.0,
    energy: float = 80.0,
    pois=(),
    frontier=(),
    regions=(),
    exploration: float = 0.1,
) -> WorldSnapshot:
    return WorldSnapshot(
        game_time=game_time,
        position=Position(x=x, y=y),
        survival=SurvivalStats(hunger=hunger, thirst=thirst, energy=energy),
        exploration_progress=exploration,
        points_of_interest=list(pois),
        frontier=list(frontier),
        regions=list(regions),
    )


def poi(poi_id: str, kind: str, x: int, y: int, *, value: int = 5, reachable: bool = True) -> PointOfInterest:
    return PointOfInterest(id=poi_id, kind=kind, position=Position(x=x, y=y), value=value, reachable=reachable)


def region(name: str, x: int, y: int, visits: int = 0) -> RegionSummary:
    return RegionSummary(name=name, center=Position(x=x, y=y), visits=visits)


@pytest.fixture(autouse=True)
def quiet_logs(monkeypatch):
    monkeypatch.setenv("MAZEMIND_NO_COLOR", "1")
    monkeypatch.delenv("MAZEMIND_DEBUG", raising=False)


@pytest.fixture
def store() -> MemoryStore:
    return MemoryStore()


@pytest.fixture
def reasoning() -> ScriptedReasoning:
    return ScriptedReasoning()


@pytest.fixture
def embedder() -> KeywordEmbedding:
    return KeywordEmbedding()
