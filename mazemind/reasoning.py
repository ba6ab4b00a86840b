"""
Reasoning-service boundary.

Every call to the generative model goes through ``request_structured``,
which decodes the reply into a validated pydantic model or an explicit
``ReasoningFailure``. Callers never see a partially-filled object and never
see an exception for service-side trouble; they branch on the variant and
fall back to deterministic generation on failure.
"""

from __future__ import annotations

import asyncio
import re
from dataclasses import dataclass
from enum import Enum
from typing import Generic, Optional, Protocol, TypeVar, Union, runtime_checkable

from pydantic import BaseModel, ValidationError

from mazemind.config import Config
from mazemind.llm_utils import call_llm_with_retries
from mazemind.logging_utils import log_error, log_llm


ModelT = TypeVar("ModelT", bound=BaseModel)


@dataclass
class RenderedPrompt:
    """A prompt split the way chat APIs expect it."""

    system: str
    user: str


@runtime_checkable
class ReasoningService(Protocol):
    """Given a prompt and a response schema, return a validated instance or raise."""

    async def complete(self, prompt: RenderedPrompt, response_model: type[ModelT]) -> ModelT:
        ...


class FailureKind(str, Enum):
    UNAVAILABLE = "UNAVAILABLE"
    TIMEOUT = "TIMEOUT"
    SCHEMA = "SCHEMA"


@dataclass(frozen=True)
class ReasoningSuccess(Generic[ModelT]):
    value: ModelT

    @property
    def ok(self) -> bool:
        return True


@dataclass(frozen=True)
class ReasoningFailure:
    kind: FailureKind
    detail: str

    @property
    def ok(self) -> bool:
        return False


ReasoningResult = Union[ReasoningSuccess[ModelT], ReasoningFailure]


class LLMReasoningService:
    """Mirascope-backed reasoning service with validation-aware retries."""

    def __init__(
        self,
        *,
        provider: Optional[str] = None,
        model: Optional[str] = None,
        max_attempts: int = 3,
        base_url: Optional[str] = None,
        api_key: Optional[str] = None,
    ) -> None:
        self.provider = provider or Config.LLM_PROVIDER
        self.model = model or Config.LLM_MODEL
        self.max_attempts = max_attempts
        if self.provider.lower() == "local":
            base_url = base_url or Config.LOCAL_LLM_BASE_URL
            api_key = api_key or Config.LOCAL_LLM_API_KEY
        elif self.provider.lower() == "ollama":
            base_url = base_url or Config.OLLAMA_BASE_URL
        self.base_url = base_url
        self.api_key = api_key

    async def complete(self, prompt: RenderedPrompt, response_model: type[ModelT]) -> ModelT:
        log_llm(f"Requesting {response_model.__name__} from {self.provider}/{self.model}")
        return await call_llm_with_retries(
            system_prompt=prompt.system,
            user_prompt=prompt.user,
            llm_provider=self.provider,
            llm_model=self.model,
            response_model=response_model,
            max_attempts=self.max_attempts,
            base_url=self.base_url,
            api_key=self.api_key,
        )


async def request_structured(
    service: Optional[ReasoningService],
    prompt: RenderedPrompt,
    response_model: type[ModelT],
    *,
    timeout: Optional[float] = None,
) -> ReasoningResult:
    """Ask the service for ``response_model`` and classify the outcome.

    A missing service counts as unavailable. Timeouts are enforced here as
    well as inside the provider layer so every service gets the same bound.
    """

    if service is None:
        return ReasoningFailure(FailureKind.UNAVAILABLE, "no reasoning service configured")

    timeout = Config.REASONING_TIMEOUT_SECONDS if timeout is None else timeout
    name = response_model.__name__
    try:
        value = await asyncio.wait_for(service.complete(prompt, response_model), timeout=timeout)
    except asyncio.TimeoutError:
        log_error(f"{name} request timed out after {timeout:g}s")
        return ReasoningFailure(FailureKind.TIMEOUT, f"timed out after {timeout:g}s")
    except ValidationError as exc:
        log_error(f"{name} response failed validation: {exc.error_count()} issue(s)")
        return ReasoningFailure(FailureKind.SCHEMA, str(exc))
    except asyncio.CancelledError:
        raise
    except Exception as exc:  # provider/transport errors vary by SDK
        log_error(f"{name} request failed: {exc}")
        return ReasoningFailure(FailureKind.UNAVAILABLE, str(exc))

    if not isinstance(value, response_model):
        # Services may hand back dicts or foreign models; decode strictly.
        try:
            payload = value.model_dump() if isinstance(value, BaseModel) else value
            value = response_model.model_validate(payload)
        except ValidationError as exc:
            log_error(f"{name} response failed validation: {exc.error_count()} issue(s)")
            return ReasoningFailure(FailureKind.SCHEMA, str(exc))

    return ReasoningSuccess(value)


_CODE_FENCE = re.compile(r"^```(?:json)?\s*|\s*```$", re.IGNORECASE)


def decode_structured_text(text: str, response_model: type[ModelT]) -> ReasoningResult:
    """Decode raw model text (optionally fenced) into ``response_model``."""

    cleaned = _CODE_FENCE.sub("", (text or "").strip()).strip()
    if not cleaned:
        return ReasoningFailure(FailureKind.SCHEMA, "empty response")
    try:
        return ReasoningSuccess(response_model.model_validate_json(cleaned))
    except ValidationError as exc:
        return ReasoningFailure(FailureKind.SCHEMA, str(exc))


__all__ = [
    "RenderedPrompt",
    "ReasoningService",
    "LLMReasoningService",
    "FailureKind",
    "ReasoningSuccess",
    "ReasoningFailure",
    "ReasoningResult",
    "request_structured",
    "decode_structured_text",
]
