"""Helper utilities for reasoning-service error handling and retries."""

from __future__ import annotations

import asyncio
from dataclasses import dataclass
from typing import Any, Callable, Sequence, TypeVar

from mirascope import llm
from openai import AsyncOpenAI
from pydantic import BaseModel, ValidationError
from tenacity import AsyncRetrying, retry_if_exception_type, stop_after_attempt

from mazemind.errors import ReasoningServiceError
from mazemind.local_llm import LocalLLMError, call_ollama_chat
from mazemind.logging_utils import log_error, log_llm


ModelT = TypeVar("ModelT", bound=BaseModel)
LLM_TIMEOUT_SECONDS = 120.0


@dataclass(slots=True)
class ValidationFeedback:
    """Structured feedback for retrying failed schema outputs."""

    llm_text: str
    issues: Sequence[str]


def _truncate_preview(value: Any, *, limit: int = 80) -> str:
    if value is None:
        return "null"
    text = repr(value)
    if len(text) > limit:
        return text[: limit - 3] + "..."
    return text


def inject_validation_feedback(error: ValidationError) -> ValidationFeedback:
    """Turn a pydantic ValidationError into guidance for the retry prompt.

    Each issue names the field path, the message, the error type and a short
    preview of the offending input so the model can correct itself.
    """

    issues: list[str] = []
    for err in error.errors(include_url=False):
        loc = ".".join(str(part) for part in err.get("loc", [])) or "root"
        details = f"{loc}: {err.get('msg', 'validation error')}"
        err_type = err.get("type")
        if err_type:
            details += f" [type={err_type}]"
        if "input" in err:
            details += f" | received={_truncate_preview(err.get('input'))}"
        issues.append(details)

    if not issues:
        issues.append("root: response did not match the expected schema")

    instructions = [
        "Your previous JSON response failed to validate against the required schema.",
        "Produce a corrected response that strictly matches the schema.",
        "Do not include explanations or code fences. Return only valid JSON.",
        "Issues detected:",
    ]
    instructions.extend(f"- {issue}" for issue in issues)

    return ValidationFeedback(llm_text="\n".join(instructions), issues=issues)


def _log_validation_failure(
    *,
    model_name: str,
    attempt: int,
    max_attempts: int,
    feedback: ValidationFeedback,
) -> None:
    log_error(
        f"Schema validation failed for {model_name} (attempt {attempt}/{max_attempts})"
    )
    for issue in feedback.issues:
        log_error(f"    - {issue}")


async def call_llm_with_retries(
    *,
    system_prompt: str,
    user_prompt: str,
    llm_provider: str,
    llm_model: str,
    response_model: type[ModelT],
    max_attempts: int = 3,
    timeout: float = LLM_TIMEOUT_SECONDS,
    base_url: str | None = None,
    api_key: str | None = None,
    feedback_builder: Callable[[ValidationError], ValidationFeedback] = inject_validation_feedback,
) -> ModelT:
    """Invoke a structured call with validation-aware retries.

    Only ValidationError triggers a retry; the feedback is appended to the
    original prompt so the model keeps full context. Timeouts propagate as
    ``asyncio.TimeoutError`` and transport failures of the local provider as
    ``ReasoningServiceError``. After ``max_attempts`` the final
    ValidationError is re-raised.

    ``llm_provider="ollama"`` talks to a local Ollama server directly;
    ``llm_provider="local"`` points Mirascope's OpenAI provider at an
    OpenAI-compatible ``base_url``.
    """

    system_prompt = system_prompt.strip()
    base_user_prompt = user_prompt.strip()

    def _build_user_prompt(feedback_payload: ValidationFeedback | None) -> str:
        sections = [base_user_prompt]
        if feedback_payload is not None:
            sections.append(feedback_payload.llm_text)
        return "\n\n".join(section for section in sections if section)

    def _build_combined_prompt(user_section: str) -> str:
        sections: list[str] = []
        if system_prompt:
            sections.append(system_prompt)
        if user_section:
            sections.append(user_section)
        return "\n\n".join(sections)

    feedback_payload: ValidationFeedback | None = None
    provider = llm_provider.lower()
    use_ollama = provider == "ollama"

    remote_invoke: Callable[[str], Any] | None = None
    if not use_ollama:
        call_kwargs: dict[str, Any] = {}
        if provider == "local":
            if not base_url:
                raise ReasoningServiceError("The 'local' provider needs a base_url")
            provider = "openai"
            call_kwargs["client"] = AsyncOpenAI(base_url=base_url, api_key=api_key or "not-needed")

        @llm.call(provider=provider, model=llm_model, response_model=response_model, **call_kwargs)
        async def _invoke(prompt: str) -> str:
            return prompt

        remote_invoke = _invoke

    attempt_number = 0
    async for attempt in AsyncRetrying(
        retry=retry_if_exception_type(ValidationError),
        stop=stop_after_attempt(max_attempts),
        reraise=True,
    ):
        with attempt:
            attempt_number += 1
            if attempt_number > 1:
                log_llm(
                    f"Retry {attempt_number}/{max_attempts} for {response_model.__name__};"
                    " attempting schema correction"
                )
            user_section = _build_user_prompt(feedback_payload)
            try:
                if use_ollama:
                    raw_response = await asyncio.wait_for(
                        call_ollama_chat(
                            system_prompt=system_prompt,
                            user_prompt=user_section,
                            llm_model=llm_model,
                            base_url=base_url,
                            timeout=timeout,
                        ),
                        timeout=timeout,
                    )
                    return response_model.model_validate_json(raw_response)

                if remote_invoke is None:
                    raise ReasoningServiceError("Remote invoke is not initialized")

                return await asyncio.wait_for(
                    remote_invoke(_build_combined_prompt(user_section)),
                    timeout=timeout,
                )
            except ValidationError as exc:
                feedback_payload = feedback_builder(exc)
                _log_validation_failure(
                    model_name=response_model.__name__,
                    attempt=attempt_number,
                    max_attempts=max_attempts,
                    feedback=feedback_payload,
                )
                raise
            except asyncio.TimeoutError:
                log_error(
                    f"Reasoning call timed out after {timeout:g}s for {response_model.__name__}"
                )
                raise
            except LocalLLMError as exc:
                raise ReasoningServiceError(
                    f"Local provider error ({llm_provider}): {exc}"
                ) from exc

    raise ReasoningServiceError("Retry loop exited unexpectedly")


__all__ = [
    "ValidationFeedback",
    "inject_validation_feedback",
    "call_llm_with_retries",
    "LLM_TIMEOUT_SECONDS",
]
