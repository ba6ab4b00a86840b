"""
Mazemind Configuration

Loads configuration from environment variables with sensible defaults.
Component tuning (retrieval weights, reflection cadence, planner thresholds)
lives in frozen dataclasses next to each component.
"""

import os
from pathlib import Path
from dotenv import load_dotenv

# Load .env file if it exists
load_dotenv()


def _env_flag(name: str) -> bool:
    return os.getenv(name, "").lower() in ("1", "true", "yes")


class Config:
    """Application configuration loaded from environment variables."""

    # Reasoning service (LLM) configuration
    LLM_PROVIDER: str = os.getenv("LLM_PROVIDER", "openai")
    LLM_MODEL: str = os.getenv("LLM_MODEL", "gpt-4o-mini")

    # API Keys
    ANTHROPIC_API_KEY: str | None = os.getenv("ANTHROPIC_API_KEY")
    OPENAI_API_KEY: str | None = os.getenv("OPENAI_API_KEY")

    # Local LLM Configuration (OpenAI-compatible servers or Ollama)
    # Example: http://localhost:11434/v1 for Ollama's OpenAI-compatible API
    LOCAL_LLM_BASE_URL: str | None = os.getenv("LOCAL_LLM_BASE_URL")
    LOCAL_LLM_API_KEY: str | None = os.getenv("LOCAL_LLM_API_KEY", "not-needed")
    OLLAMA_BASE_URL: str | None = os.getenv("OLLAMA_BASE_URL")

    # Embedding service configuration ("openai", "ollama" or "none")
    EMBEDDING_PROVIDER: str = os.getenv("EMBEDDING_PROVIDER", "openai")
    EMBEDDING_MODEL: str = os.getenv("EMBEDDING_MODEL", "text-embedding-3-small")
    EMBEDDING_DIMENSION: int = int(os.getenv("EMBEDDING_DIMENSION", "1536"))

    # Reasoning calls slower than this fall back to deterministic generation
    REASONING_TIMEOUT_SECONDS: float = float(os.getenv("REASONING_TIMEOUT_SECONDS", "30"))

    # Fail loudly on plan invariant violations (development mode)
    STRICT_INVARIANTS: bool = _env_flag("MAZEMIND_STRICT")

    # Logging
    DEBUG: bool = _env_flag("MAZEMIND_DEBUG")

    # Project Paths
    PROJECT_ROOT: Path = Path(__file__).parent.parent
    SNAPSHOT_DIR: Path = PROJECT_ROOT / "agent_snapshots"

    @classmethod
    def validate(cls) -> None:
        """Validate configuration and raise errors if required values are missing."""
        if cls.LLM_PROVIDER == "local" and not cls.LOCAL_LLM_BASE_URL:
            raise ValueError(
                "LOCAL_LLM_BASE_URL is required when using the 'local' provider. "
                "Set it to your local LLM server endpoint (e.g., http://localhost:11434/v1 for Ollama)"
            )

        is_using_local = cls.LOCAL_LLM_BASE_URL is not None

        if cls.LLM_PROVIDER == "anthropic" and not cls.ANTHROPIC_API_KEY and not is_using_local:
            raise ValueError(
                "ANTHROPIC_API_KEY is required when using the 'anthropic' provider"
            )

        if cls.LLM_PROVIDER == "openai" and not cls.OPENAI_API_KEY and not is_using_local:
            raise ValueError(
                "OPENAI_API_KEY is required when using the 'openai' provider. "
                "For local LLMs, set LOCAL_LLM_BASE_URL instead."
            )

        if cls.EMBEDDING_PROVIDER not in ("openai", "ollama", "none"):
            raise ValueError(
                f"Unknown EMBEDDING_PROVIDER '{cls.EMBEDDING_PROVIDER}' "
                "(expected 'openai', 'ollama' or 'none')"
            )

        if cls.EMBEDDING_DIMENSION <= 0:
            raise ValueError("EMBEDDING_DIMENSION must be a positive integer")

        if cls.REASONING_TIMEOUT_SECONDS <= 0:
            raise ValueError("REASONING_TIMEOUT_SECONDS must be positive")

    @classmethod
    def display(cls) -> str:
        """Return a formatted string showing current configuration."""
        lines = [
            "Mazemind Configuration:",
            f"  LLM Provider: {cls.LLM_PROVIDER}",
            f"  LLM Model: {cls.LLM_MODEL}",
            f"  Embeddings: {cls.EMBEDDING_PROVIDER} ({cls.EMBEDDING_MODEL}, {cls.EMBEDDING_DIMENSION}d)",
            f"  Reasoning Timeout: {cls.REASONING_TIMEOUT_SECONDS}s",
            f"  Strict Invariants: {cls.STRICT_INVARIANTS}",
        ]
        return "\n".join(lines)
