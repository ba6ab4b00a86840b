"""Utilities for calling a locally hosted Ollama server (chat and embeddings)."""

from __future__ import annotations

import asyncio
import json
import os
from typing import Any
from urllib import error, request

DEFAULT_OLLAMA_BASE_URL = "http://127.0.0.1:11434"
_CHAT_ENDPOINT = "/api/chat"
_EMBED_ENDPOINT = "/api/embed"


class LocalLLMError(RuntimeError):
    """Raised when a local model invocation fails."""


def _resolve_base_url(base_url: str | None) -> str:
    return (base_url or os.getenv("OLLAMA_BASE_URL") or DEFAULT_OLLAMA_BASE_URL).rstrip("/")


def _perform_ollama_request(
    endpoint: str,
    payload: dict[str, Any],
    base_url: str,
    timeout: float,
) -> dict[str, Any]:
    """Execute the blocking HTTP request against the Ollama REST API."""

    url = f"{base_url.rstrip('/')}{endpoint}"
    data = json.dumps(payload).encode("utf-8")
    req = request.Request(
        url,
        data=data,
        headers={"Content-Type": "application/json"},
        method="POST",
    )

    try:
        with request.urlopen(req, timeout=timeout) as resp:
            raw = resp.read().decode("utf-8")
    except error.HTTPError as exc:
        body = exc.read().decode("utf-8", errors="ignore") if exc.fp else ""
        message = body or exc.reason
        raise LocalLLMError(
            f"Ollama request to {endpoint} failed with status {exc.code}: {message}"
        ) from exc
    except error.URLError as exc:
        raise LocalLLMError(f"Could not reach Ollama at {url}: {exc.reason}") from exc

    try:
        parsed = json.loads(raw)
    except json.JSONDecodeError as exc:
        raise LocalLLMError("Ollama returned non-JSON response.") from exc

    if not isinstance(parsed, dict):
        raise LocalLLMError("Ollama returned an unexpected payload shape.")
    return parsed


async def call_ollama_chat(
    *,
    system_prompt: str,
    user_prompt: str,
    llm_model: str,
    base_url: str | None = None,
    timeout: float = 120.0,
) -> str:
    """Invoke a local Ollama chat model and return the assistant text.

    The request asks for JSON output since every caller decodes the reply
    into a pydantic response model.
    """

    system_prompt = system_prompt.strip()
    user_prompt = user_prompt.strip()
    if not user_prompt:
        raise LocalLLMError("Cannot call Ollama with an empty user prompt.")

    messages: list[dict[str, str]] = []
    if system_prompt:
        messages.append({"role": "system", "content": system_prompt})
    messages.append({"role": "user", "content": user_prompt})

    payload = {
        "model": llm_model,
        "messages": messages,
        "stream": False,
        "format": "json",
    }

    parsed = await asyncio.to_thread(
        _perform_ollama_request,
        _CHAT_ENDPOINT,
        payload,
        _resolve_base_url(base_url),
        timeout,
    )
    message = parsed.get("message") or {}
    content = message.get("content")
    if not content:
        raise LocalLLMError("Ollama response did not include assistant content.")
    return content


async def call_ollama_embed(
    *,
    text: str,
    model: str,
    base_url: str | None = None,
    timeout: float = 30.0,
) -> list[float]:
    """Embed one text with a local Ollama embedding model."""

    if not text.strip():
        raise LocalLLMError("Cannot embed empty text.")

    parsed = await asyncio.to_thread(
        _perform_ollama_request,
        _EMBED_ENDPOINT,
        {"model": model, "input": text},
        _resolve_base_url(base_url),
        timeout,
    )
    vectors = parsed.get("embeddings") or []
    if not vectors or not vectors[0]:
        raise LocalLLMError("Ollama response did not include an embedding.")
    return [float(value) for value in vectors[0]]


__all__ = [
    "LocalLLMError",
    "call_ollama_chat",
    "call_ollama_embed",
    "DEFAULT_OLLAMA_BASE_URL",
]
