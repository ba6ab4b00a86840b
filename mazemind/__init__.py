"""
Mazemind - cognitive core for maze-survival agents.

Memory stream, weighted retrieval, reflection and hierarchical planning for
one agent at a time. No world simulation, rendering or storage backend is
required; the caller supplies a world snapshot each tick and executes the
actions that come back.
"""

__version__ = "0.1.0"

from .config import Config
from .errors import (
    EmbeddingServiceError,
    ImmutableFieldError,
    InvalidStatusTransition,
    MazemindError,
    MemoryAppendError,
    PlanInvariantError,
    ReasoningServiceError,
    SnapshotError,
)
from .memory import MemoryStore
from .retrieval import MemoryRetrieval, RetrievalConfig, RetrievalResult
from .embeddings import (
    EmbeddingCache,
    EmbeddingService,
    OllamaEmbedding,
    OpenAIEmbedding,
    build_embedding_service,
)
from .reasoning import (
    FailureKind,
    LLMReasoningService,
    ReasoningFailure,
    ReasoningService,
    ReasoningSuccess,
    request_structured,
)
from .persistence import (
    CognitionSnapshot,
    InMemoryPersistence,
    JsonPersistence,
    PersistenceStrategy,
)
from .cognition import (
    AgentCognition,
    HierarchicalPlanner,
    PlannerConfig,
    PlanScheduler,
    ReflectionCadence,
    ReflectionConfig,
    ReflectionEngine,
    TickResult,
)
from .schemas import (
    ActionOutcome,
    ActionPlan,
    ActionType,
    DailyPlan,
    HourlyPlan,
    MemoryItem,
    MemoryKind,
    Observation,
    PlanPriority,
    PlanStatus,
    PointOfInterest,
    Position,
    RegionSummary,
    SurvivalStats,
    WorldSnapshot,
)

__all__ = [
    "__version__",
    "Config",
    # Errors
    "MazemindError",
    "MemoryAppendError",
    "ImmutableFieldError",
    "InvalidStatusTransition",
    "PlanInvariantError",
    "ReasoningServiceError",
    "EmbeddingServiceError",
    "SnapshotError",
    # Memory and retrieval
    "MemoryStore",
    "MemoryRetrieval",
    "RetrievalConfig",
    "RetrievalResult",
    "EmbeddingCache",
    "EmbeddingService",
    "OpenAIEmbedding",
    "OllamaEmbedding",
    "build_embedding_service",
    # Reasoning
    "ReasoningService",
    "LLMReasoningService",
    "FailureKind",
    "ReasoningSuccess",
    "ReasoningFailure",
    "request_structured",
    # Persistence
    "CognitionSnapshot",
    "PersistenceStrategy",
    "InMemoryPersistence",
    "JsonPersistence",
    # Cognition
    "AgentCognition",
    "TickResult",
    "HierarchicalPlanner",
    "PlanScheduler",
    "PlannerConfig",
    "ReflectionEngine",
    "ReflectionCadence",
    "ReflectionConfig",
    # Schemas
    "MemoryItem",
    "MemoryKind",
    "Observation",
    "Position",
    "PlanStatus",
    "PlanPriority",
    "ActionType",
    "DailyPlan",
    "HourlyPlan",
    "ActionPlan",
    "ActionOutcome",
    "SurvivalStats",
    "PointOfInterest",
    "RegionSummary",
    "WorldSnapshot",
]
