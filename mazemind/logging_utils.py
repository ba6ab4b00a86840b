"""Logging utilities for the cognitive core.

Provides color-coded output to distinguish deterministic work (rule-based
fallbacks, bookkeeping) from reasoning-service calls, plus a debug channel
that stays silent unless ``MAZEMIND_DEBUG`` is set.
"""

import os
from enum import Enum


class Color(Enum):
    """ANSI color codes for terminal output."""

    # Colors for operation types
    BLUE = "\033[94m"      # Deterministic operations (fallbacks, cascades)
    YELLOW = "\033[93m"    # Service calls (reasoning, embeddings)
    RED = "\033[91m"       # Errors and discarded responses
    GREEN = "\033[92m"     # Success/completion
    CYAN = "\033[96m"      # Info/metadata
    GREY = "\033[90m"      # Debug chatter

    # Formatting
    BOLD = "\033[1m"
    RESET = "\033[0m"


def colored(text: str, color: Color, bold: bool = False) -> str:
    """Wrap text in ANSI color codes if colors are enabled.

    Args:
        text: Text to colorize
        color: Color to apply
        bold: Whether to make text bold

    Returns:
        Colorized text if MAZEMIND_NO_COLOR is not set, otherwise plain text
    """
    if os.getenv("MAZEMIND_NO_COLOR"):
        return text

    prefix = color.value
    if bold:
        prefix = Color.BOLD.value + prefix

    return f"{prefix}{text}{Color.RESET.value}"


def debug_enabled() -> bool:
    """Return True when debug-level lines should be printed."""
    return os.getenv("MAZEMIND_DEBUG", "").lower() in ("1", "true", "yes")


def log_deterministic(message: str) -> None:
    """Log a deterministic operation (blue)."""
    print(colored(f"{LOG_TAG_DETERMINISTIC} {message}", Color.BLUE))


def log_llm(message: str) -> None:
    """Log a reasoning/embedding service operation (yellow)."""
    print(colored(f"{LOG_TAG_LLM} {message}", Color.YELLOW))


def log_error(message: str) -> None:
    """Log an error or discarded response (red)."""
    print(colored(f"{LOG_TAG_ERROR} {message}", Color.RED))


def log_success(message: str) -> None:
    """Log a success (green)."""
    print(colored(f"{LOG_TAG_SUCCESS} {message}", Color.GREEN))


def log_info(message: str) -> None:
    """Log metadata/info (cyan)."""
    print(colored(f"{LOG_TAG_INFO} {message}", Color.CYAN))


def log_debug(message: str) -> None:
    """Log a debug line (grey), only when MAZEMIND_DEBUG is set."""
    if debug_enabled():
        print(colored(f"{LOG_TAG_DEBUG} {message}", Color.GREY))


# Markers for operation types (color-blind accessible)
LOG_TAG_DETERMINISTIC = "[•]"  # Deterministic operation
LOG_TAG_LLM = "[AI]"           # Service call
LOG_TAG_ERROR = "[!]"          # Error/retry
LOG_TAG_SUCCESS = "[✓]"        # Success
LOG_TAG_INFO = "[i]"           # Information
LOG_TAG_DEBUG = "[.]"          # Debug
