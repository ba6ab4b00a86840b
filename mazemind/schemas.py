"""
Pydantic schemas for the mazemind cognitive core.

All data structures shared between the memory store, retrieval, reflection
and the hierarchical planner are defined here.

Design Philosophy:
- Simulated game time is a float number of seconds since the episode began
- Enum values are upper-case strings so reasoning-service output can be
  validated against them directly
- MemoryItem guards its own immutability; only plan-linked items carry a
  mutable status that mirrors the plan hierarchy
"""

from enum import Enum
from math import hypot
from typing import Any, Dict, List, Optional
from uuid import uuid4

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

from mazemind.errors import ImmutableFieldError


# ============================================================================
# Enumerations
# ============================================================================


class MemoryKind(str, Enum):
    """What produced a memory item."""

    OBSERVATION = "OBSERVATION"
    REFLECTION = "REFLECTION"
    PLAN = "PLAN"


class PlanStatus(str, Enum):
    """Lifecycle status shared by every level of the plan hierarchy.

    Transitions only move forward: PENDING -> IN_PROGRESS -> one of the
    terminal statuses. PENDING may also jump straight to a terminal status.
    """

    PENDING = "PENDING"
    IN_PROGRESS = "IN_PROGRESS"
    COMPLETED = "COMPLETED"
    ABANDONED = "ABANDONED"
    FAILED = "FAILED"

    @property
    def is_terminal(self) -> bool:
        return self in TERMINAL_STATUSES

    def can_transition_to(self, target: "PlanStatus") -> bool:
        if self.is_terminal:
            return False
        if self is PlanStatus.PENDING:
            return target is not PlanStatus.PENDING
        return target.is_terminal


TERMINAL_STATUSES = frozenset(
    {PlanStatus.COMPLETED, PlanStatus.ABANDONED, PlanStatus.FAILED}
)


class PlanPriority(str, Enum):
    CRITICAL = "CRITICAL"  # Survival-related
    HIGH = "HIGH"          # Important goals
    MEDIUM = "MEDIUM"      # Normal activities
    LOW = "LOW"            # Optional exploration


class ActionType(str, Enum):
    """Categorical action vocabulary understood by the action-execution layer."""

    MOVE = "MOVE"
    EXPLORE = "EXPLORE"
    SEEK_ITEM = "SEEK_ITEM"
    CONSUME_ITEM = "CONSUME_ITEM"
    REST = "REST"
    REFLECT = "REFLECT"
    WAIT = "WAIT"


class PlanLevel(str, Enum):
    DAILY = "DAILY"
    HOURLY = "HOURLY"
    ACTION = "ACTION"


class ReflectionCategory(str, Enum):
    STRATEGY = "strategy"
    PATTERN = "pattern"
    EMOTIONAL = "emotional"
    LEARNING = "learning"


# ============================================================================
# Spatial Schemas
# ============================================================================


class Position(BaseModel):
    """Tile coordinate in the maze grid."""

    model_config = ConfigDict(frozen=True)

    x: int
    y: int

    def manhattan(self, other: "Position") -> int:
        return abs(self.x - other.x) + abs(self.y - other.y)

    def euclidean(self, other: "Position") -> float:
        return hypot(self.x - other.x, self.y - other.y)

    def __str__(self) -> str:
        return f"({self.x}, {self.y})"


# ============================================================================
# Memory Schemas
# ============================================================================


class MemoryItem(BaseModel):
    """Atomic record in an agent's memory stream.

    Memory kinds:
    - OBSERVATION: perceptions of the maze or the agent's own body
    - REFLECTION: synthesized insights, always citing earlier items
    - PLAN: a reference to one node of the plan hierarchy

    Importance scoring (1-10):
    - 1-3: Mundane observations (empty corridor, routine movement)
    - 4-6: Notable events (junctions, items spotted, plan steps)
    - 7-9: Significant events (critical stats, dead ends after long searches)
    - 10: Life-changing events (exit found, near death)

    Once created, ``description``, ``importance``, ``timestamp`` and
    ``embedding`` cannot be rewritten. The embedding may be filled in once,
    lazily, after creation. ``status`` is writable on PLAN items only.
    """

    id: str = Field(..., min_length=1, description="Store-assigned identifier")
    kind: MemoryKind
    description: str = Field(..., min_length=1)
    timestamp: float = Field(..., ge=0, description="Simulated game time (seconds)")
    importance: int = Field(..., ge=1, le=10)
    embedding: Optional[List[float]] = Field(
        None, description="Cached embedding vector, generated lazily"
    )
    location: Optional[Position] = None
    tags: List[str] = Field(default_factory=list)
    # Reflections cite the items that justified them (strictly earlier items only)
    citations: List[str] = Field(default_factory=list)
    plan_ref: Optional[str] = Field(None, description="Plan node represented by a PLAN item")
    plan_level: Optional[PlanLevel] = None
    status: Optional[PlanStatus] = None
    sequence: int = Field(0, ge=0, description="Insertion order within the store")

    @field_validator("tags")
    @classmethod
    def dedupe_tags(cls, value: List[str]) -> List[str]:
        seen: list[str] = []
        for tag in value:
            if tag not in seen:
                seen.append(tag)
        return seen

    def __setattr__(self, name: str, value: Any) -> None:
        if name == "status":
            if self.kind is not MemoryKind.PLAN:
                raise ImmutableFieldError(
                    f"Memory {self.id}: only PLAN items carry a mutable status"
                )
            super().__setattr__(name, value)
            return
        if name == "embedding" and self.embedding is None:
            super().__setattr__(name, value)
            return
        raise ImmutableFieldError(f"Memory {self.id}: field '{name}' is immutable")

    @property
    def has_embedding(self) -> bool:
        return bool(self.embedding)


# ============================================================================
# Plan Hierarchy Schemas
# ============================================================================


def _new_plan_id() -> str:
    return uuid4().hex


class PlanNode(BaseModel):
    """Fields shared by every level of the plan hierarchy."""

    id: str = Field(default_factory=_new_plan_id)
    start_time: float = Field(..., ge=0)
    duration: float = Field(..., gt=0)
    status: PlanStatus = PlanStatus.PENDING
    # Generation stamp: async results carrying an older version are stale
    version: int = Field(0, ge=0)
    memory_id: Optional[str] = None
    completed_at: Optional[float] = None

    @property
    def end_time(self) -> float:
        return self.start_time + self.duration

    def contains(self, game_time: float) -> bool:
        return self.start_time <= game_time < self.end_time


class ActionPlan(PlanNode):
    """Lowest level: one planning quantum (five simulated minutes by default)."""

    parent_id: str
    action: str
    action_type: ActionType
    target_position: Optional[Position] = None
    target_item: Optional[str] = None
    outcome: Optional[str] = None


class HourlyPlan(PlanNode):
    """Middle level: one simulated hour, decomposed lazily into actions."""

    parent_id: str
    objective: str
    actions: List[ActionPlan] = Field(default_factory=list)

    @property
    def is_decomposed(self) -> bool:
        return bool(self.actions)


class DailyPlan(PlanNode):
    """Top level: the agent's multi-hour intention."""

    goal: str
    reasoning: str
    priority: PlanPriority
    created_at: float = Field(..., ge=0)
    hourly_plans: List[HourlyPlan] = Field(default_factory=list)
    abandoned_reason: Optional[str] = None
    # "reasoning" when produced by the reasoning service, "fallback" otherwise
    source: str = "reasoning"

    def iter_actions(self):
        for hourly in self.hourly_plans:
            yield from hourly.actions


# ============================================================================
# World Snapshot Schemas (supplied once per tick by the caller)
# ============================================================================


class SurvivalStats(BaseModel):
    """Per-resource levels on a 0-100 scale (100 = full, 0 = depleted).

    ``stress`` runs the other way (0 = calm) and is only reported, never
    used as a critical trigger.
    """

    hunger: float = Field(100.0, ge=0, le=100)
    thirst: float = Field(100.0, ge=0, le=100)
    energy: float = Field(100.0, ge=0, le=100)
    stress: float = Field(0.0, ge=0, le=100)


class PointOfInterest(BaseModel):
    """Something the agent knows about in the maze (item, exit, landmark)."""

    id: str
    kind: str = Field(..., description="food, water, energy, exit, ...")
    position: Position
    value: int = Field(5, ge=1, le=10)
    reachable: bool = True


class RegionSummary(BaseModel):
    name: str
    center: Position
    visits: int = Field(0, ge=0)
    reachable: bool = True


class WorldSnapshot(BaseModel):
    """Read-only view of the world handed to the core once per tick."""

    game_time: float = Field(..., ge=0)
    position: Position
    survival: SurvivalStats = Field(default_factory=SurvivalStats)
    time_of_day: str = ""
    exploration_progress: float = Field(0.0, ge=0, le=1)
    points_of_interest: List[PointOfInterest] = Field(default_factory=list)
    regions: List[RegionSummary] = Field(default_factory=list)
    # Known-but-unexplored reachable tiles, used by exploration fallbacks
    frontier: List[Position] = Field(default_factory=list)
    metadata: Dict[str, Any] = Field(default_factory=dict)


class Observation(BaseModel):
    """A perception reported by the caller for the current tick."""

    description: str = Field(..., min_length=1)
    importance: int = Field(5, ge=1, le=10)
    location: Optional[Position] = None
    tags: List[str] = Field(default_factory=list)


class ActionOutcome(BaseModel):
    """Result reported by the action-execution layer for one ActionPlan."""

    status: PlanStatus = PlanStatus.COMPLETED
    summary: str = ""
    completed_at: Optional[float] = Field(None, ge=0)
    importance: Optional[int] = Field(None, ge=1, le=10)

    @field_validator("status")
    @classmethod
    def terminal_only(cls, value: PlanStatus) -> PlanStatus:
        if not value.is_terminal:
            raise ValueError("ActionOutcome.status must be COMPLETED, ABANDONED or FAILED")
        return value


# ============================================================================
# Reasoning Response Schemas (strict decode targets)
# ============================================================================


def _upper(value: Any) -> Any:
    return value.strip().upper() if isinstance(value, str) else value


class DailyPlanResponse(BaseModel):
    goal: str = Field(..., min_length=1)
    reasoning: str = Field(..., min_length=1)
    priority: PlanPriority

    @field_validator("priority", mode="before")
    @classmethod
    def normalize_priority(cls, value: Any) -> Any:
        return _upper(value)


class HourlyPlanResponse(BaseModel):
    objective: str = Field(..., min_length=1)


class ActionPlanResponse(BaseModel):
    action: str = Field(..., min_length=1)
    action_type: ActionType
    target_x: Optional[int] = None
    target_y: Optional[int] = None
    target_item: Optional[str] = None

    @field_validator("action_type", mode="before")
    @classmethod
    def normalize_type(cls, value: Any) -> Any:
        return _upper(value)

    @model_validator(mode="after")
    def paired_coordinates(self) -> "ActionPlanResponse":
        if (self.target_x is None) != (self.target_y is None):
            raise ValueError("target_x and target_y must be provided together")
        return self

    @property
    def target_position(self) -> Optional[Position]:
        if self.target_x is None or self.target_y is None:
            return None
        return Position(x=self.target_x, y=self.target_y)


class ReflectionInsight(BaseModel):
    statement: str = Field(..., min_length=1)
    citations: List[str] = Field(..., min_length=1)
    category: ReflectionCategory = ReflectionCategory.LEARNING

    @field_validator("category", mode="before")
    @classmethod
    def normalize_category(cls, value: Any) -> Any:
        return value.strip().lower() if isinstance(value, str) else value


class ReflectionResponse(BaseModel):
    insights: List[ReflectionInsight] = Field(..., min_length=1, max_length=5)
