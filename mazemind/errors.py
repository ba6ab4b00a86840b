"""Exception hierarchy for the cognitive core.

Only data-invariant violations are allowed to reach callers (and only in
strict mode). Service-side failures are converted into explicit failure
values at the reasoning/embedding boundary and logged.
"""


class MazemindError(Exception):
    """Base class for all errors raised by mazemind."""


class MemoryAppendError(MazemindError, ValueError):
    """Raised when an item cannot be appended to the memory store."""


class ImmutableFieldError(MazemindError, AttributeError):
    """Raised when code attempts to rewrite an immutable memory field."""


class InvalidStatusTransition(MazemindError, ValueError):
    """Raised when a plan status would move backward or leave a terminal state."""

    def __init__(self, node_id: str, current: str, requested: str) -> None:
        self.node_id = node_id
        self.current = current
        self.requested = requested
        super().__init__(
            f"Plan node {node_id}: cannot transition from {current} to {requested}"
        )


class PlanInvariantError(MazemindError, AssertionError):
    """Raised when a plan subtree violates duration, contiguity or parent rules."""


class ReasoningServiceError(MazemindError, RuntimeError):
    """Raised by reasoning-service adapters when the provider cannot be reached."""


class EmbeddingServiceError(MazemindError, RuntimeError):
    """Raised by embedding adapters on transport failure or bad vector shape."""


class SnapshotError(MazemindError, ValueError):
    """Raised when persisted records cannot be re-ingested safely."""


__all__ = [
    "MazemindError",
    "MemoryAppendError",
    "ImmutableFieldError",
    "InvalidStatusTransition",
    "PlanInvariantError",
    "ReasoningServiceError",
    "EmbeddingServiceError",
    "SnapshotError",
]
