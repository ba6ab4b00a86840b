"""Cadence and tuning knobs for reflection and planning.

Everything here is a frozen dataclass so one configuration can be shared
between agents without accidental mutation. Invalid combinations raise
``ValueError`` at construction time.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Optional


SIMULATED_HOUR = 3600.0
PLANNING_QUANTUM = 300.0


@dataclass(frozen=True)
class ReflectionCadence:
    """Decides when the reflection engine should run.

    Fires when enough new observations have piled up since the last
    reflection, or when ``interval`` simulated seconds have elapsed. Nothing
    fires until the store holds at least ``min_memories`` candidates.

    The interval trigger also needs at least one new observation; with
    nothing new the engine would only re-read the inputs it last saw.
    """

    observation_threshold: int = 20
    interval: Optional[float] = 2 * SIMULATED_HOUR
    min_memories: int = 5

    def __post_init__(self) -> None:
        if self.observation_threshold <= 0:
            raise ValueError("observation_threshold must be >= 1")
        if self.interval is not None and self.interval <= 0:
            raise ValueError("interval must be positive (or None to disable)")
        if self.min_memories < 0:
            raise ValueError("min_memories must be >= 0")

    def should_reflect(
        self,
        *,
        now: float,
        last_reflection_time: Optional[float],
        new_observations: int,
        candidate_count: int,
    ) -> bool:
        if candidate_count < self.min_memories or candidate_count == 0:
            return False
        if new_observations >= self.observation_threshold:
            return True
        if self.interval is None or new_observations <= 0:
            return False
        reference = 0.0 if last_reflection_time is None else last_reflection_time
        return now - reference >= self.interval


@dataclass(frozen=True)
class ReflectionConfig:
    cadence: ReflectionCadence = field(default_factory=ReflectionCadence)
    # How many inputs the reasoning service sees per reflection
    max_inputs: int = 30
    min_importance: int = 3
    max_insights: int = 5
    # Reflections are never less important than this
    importance_floor: int = 7
    use_heuristic_fallback: bool = True

    def __post_init__(self) -> None:
        if self.max_inputs <= 0:
            raise ValueError("max_inputs must be >= 1")
        if not 1 <= self.min_importance <= 10:
            raise ValueError("min_importance must be within 1-10")
        if not 1 <= self.max_insights <= 5:
            raise ValueError("max_insights must be within 1-5")
        if not 1 <= self.importance_floor <= 10:
            raise ValueError("importance_floor must be within 1-10")


@dataclass(frozen=True)
class PlannerConfig:
    hourly_plans_per_day: int = 3
    actions_per_hour: int = 12
    hour_duration: float = SIMULATED_HOUR
    action_duration: float = PLANNING_QUANTUM

    # Critical survival thresholds (0-100 scale, lower is worse)
    critical_hunger: float = 20.0
    critical_thirst: float = 15.0
    critical_energy: float = 10.0
    # A stat must climb this far above its threshold before it can fire again
    critical_hysteresis: float = 10.0
    # Deterministic fallback treats stats under this as urgent
    urgent_threshold: float = 30.0

    # Distance to target growing by more than this factor counts as divergence
    divergence_multiplier: float = 1.5
    # Ignore divergence until the agent has been this far from the target
    divergence_min_distance: int = 3

    consume_reach: int = 2
    discovery_value: int = 8
    discovery_radius: int = 5
    discovery_item_count: int = 3

    fallback_tiles_per_action: int = 5
    # Decompose the next hour when it starts within this many seconds
    decomposition_lookahead: float = 2 * PLANNING_QUANTUM

    def __post_init__(self) -> None:
        if self.hourly_plans_per_day <= 0 or self.actions_per_hour <= 0:
            raise ValueError("Plan fan-out must be >= 1")
        if self.hour_duration <= 0 or self.action_duration <= 0:
            raise ValueError("Plan durations must be positive")
        if abs(self.actions_per_hour * self.action_duration - self.hour_duration) > 1e-9:
            raise ValueError(
                "hour_duration must equal actions_per_hour x action_duration "
                f"({self.actions_per_hour} x {self.action_duration} != {self.hour_duration})"
            )
        if self.divergence_multiplier <= 1.0:
            raise ValueError("divergence_multiplier must be greater than 1")
        if self.fallback_tiles_per_action <= 0:
            raise ValueError("fallback_tiles_per_action must be >= 1")

    @property
    def day_duration(self) -> float:
        return self.hourly_plans_per_day * self.hour_duration


__all__ = [
    "SIMULATED_HOUR",
    "PLANNING_QUANTUM",
    "ReflectionCadence",
    "ReflectionConfig",
    "PlannerConfig",
]
