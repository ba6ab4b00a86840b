"""Tests for log tags and environment configuration."""

import pytest

from mazemind.config import Config
from mazemind.logging_utils import (
    LOG_TAG_DETERMINISTIC,
    LOG_TAG_ERROR,
    LOG_TAG_LLM,
    colored,
    Color,
    log_debug,
    log_deterministic,
    log_error,
    log_llm,
)


def test_tags_distinguish_fallbacks_from_service_calls(capsys):
    log_deterministic("Daily plan fallback (UNAVAILABLE)")
    log_llm("Requesting DailyPlanResponse from openai/gpt-4o-mini")
    log_error("Dropping uncited insight")

    lines = capsys.readouterr().out.splitlines()
    assert lines[0].startswith(LOG_TAG_DETERMINISTIC)
    assert lines[1].startswith(LOG_TAG_LLM)
    assert lines[2].startswith(LOG_TAG_ERROR)


def test_debug_lines_need_the_debug_flag(capsys, monkeypatch):
    log_debug("hidden")
    assert capsys.readouterr().out == ""

    monkeypatch.setenv("MAZEMIND_DEBUG", "1")
    log_debug("visible")
    assert "visible" in capsys.readouterr().out


def test_colors_can_be_disabled(monkeypatch):
    assert colored("plain", Color.RED) == "plain"
    monkeypatch.delenv("MAZEMIND_NO_COLOR")
    assert colored("red", Color.RED) == f"{Color.RED.value}red{Color.RESET.value}"


class _Settings(Config):
    LLM_PROVIDER = "openai"
    OPENAI_API_KEY = "sk-test"
    LOCAL_LLM_BASE_URL = None
    EMBEDDING_PROVIDER = "none"
    EMBEDDING_DIMENSION = 8
    REASONING_TIMEOUT_SECONDS = 5.0


def test_valid_configuration_passes():
    _Settings.validate()
    assert "Embeddings: none" in _Settings.display()


@pytest.mark.parametrize(
    "overrides",
    [
        {"OPENAI_API_KEY": None},
        {"LLM_PROVIDER": "local"},
        {"EMBEDDING_PROVIDER": "word2vec"},
        {"EMBEDDING_DIMENSION": 0},
        {"REASONING_TIMEOUT_SECONDS": 0.0},
    ],
)
def test_invalid_configuration_is_rejected(overrides):
    settings = type("Settings", (_Settings,), overrides)
    with pytest.raises(ValueError):
        settings.validate()
