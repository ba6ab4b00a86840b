"""Deterministic plan generation used when the reasoning service fails.

Every function here is pure: the same snapshot always yields the same goal,
objective or action, so the tick loop keeps moving even with no reasoning
service at all. Responses are returned as the same pydantic models the
service would produce, which lets the planner treat both paths alike.
"""

from __future__ import annotations

import math
from typing import List, Optional, Tuple

from mazemind.schemas import (
    ActionPlanResponse,
    ActionType,
    DailyPlanResponse,
    HourlyPlanResponse,
    PlanPriority,
    PointOfInterest,
    Position,
    RegionSummary,
    WorldSnapshot,
)

from .cadence import PlannerConfig


# Survival stat -> resource kind that restores it
RESOURCE_FOR_STAT = {"hunger": "food", "thirst": "water", "energy": "energy"}
_RESOURCE_WORDS = ("food", "water", "energy")


def critical_stats(snapshot: WorldSnapshot, config: PlannerConfig) -> List[str]:
    stats = snapshot.survival
    critical = []
    if stats.hunger < config.critical_hunger:
        critical.append("hunger")
    if stats.thirst < config.critical_thirst:
        critical.append("thirst")
    if stats.energy < config.critical_energy:
        critical.append("energy")
    return critical


def urgent_need(snapshot: WorldSnapshot, config: PlannerConfig) -> Optional[str]:
    """The most depleted stat under the urgent threshold, if any."""
    stats = snapshot.survival
    levels = [
        (stats.hunger, "hunger"),
        (stats.thirst, "thirst"),
        (stats.energy, "energy"),
    ]
    below = [entry for entry in levels if entry[0] < config.urgent_threshold]
    if not below:
        return None
    return min(below)[1]


def determine_priority(snapshot: WorldSnapshot, config: PlannerConfig) -> PlanPriority:
    if critical_stats(snapshot, config):
        return PlanPriority.CRITICAL
    stats = snapshot.survival
    if stats.hunger < 40 or stats.thirst < 40:
        return PlanPriority.HIGH
    if snapshot.exploration_progress < 0.3:
        return PlanPriority.MEDIUM
    return PlanPriority.HIGH


def nearest_resource(snapshot: WorldSnapshot, kind: str) -> Optional[PointOfInterest]:
    candidates = [
        poi
        for poi in snapshot.points_of_interest
        if poi.kind == kind and poi.reachable
    ]
    if not candidates:
        return None
    here = snapshot.position
    return min(candidates, key=lambda poi: (poi.position.manhattan(here), poi.id))


def nearest_frontier(snapshot: WorldSnapshot, origin: Optional[Position] = None) -> Optional[Position]:
    if not snapshot.frontier:
        return None
    origin = origin or snapshot.position
    return min(snapshot.frontier, key=lambda tile: (tile.manhattan(origin), tile.x, tile.y))


def least_visited_region(snapshot: WorldSnapshot) -> Optional[RegionSummary]:
    regions = [region for region in snapshot.regions if region.reachable]
    if not regions:
        return None
    here = snapshot.position
    return min(regions, key=lambda r: (r.visits, r.center.manhattan(here), r.name))


def resource_in_text(text: str) -> Optional[str]:
    lowered = text.lower()
    for word in _RESOURCE_WORDS:
        if word in lowered:
            return word
    return None


def fallback_daily_plan(snapshot: WorldSnapshot, config: PlannerConfig) -> DailyPlanResponse:
    """Seek the nearest known resource when a stat is low, else explore."""
    priority = determine_priority(snapshot, config)
    need = urgent_need(snapshot, config)

    if need is not None:
        kind = RESOURCE_FOR_STAT[need]
        resource = nearest_resource(snapshot, kind)
        if resource is not None:
            goal = f"Reach the {kind} at {resource.position} to restore {need}"
            reasoning = (
                f"{need.capitalize()} is at {getattr(snapshot.survival, need):.0f}/100 and the "
                f"nearest known {kind} is {resource.position.manhattan(snapshot.position)} tiles away"
            )
        else:
            goal = f"Search unexplored corridors for {kind} to restore {need}"
            reasoning = f"{need.capitalize()} is low and no {kind} is known yet"
        return DailyPlanResponse(goal=goal, reasoning=reasoning, priority=priority)

    region = least_visited_region(snapshot)
    if region is not None:
        goal = f"Explore the {region.name} region around {region.center}"
        reasoning = f"It is the least visited reachable region ({region.visits} visits)"
    elif snapshot.exploration_progress < 0.5:
        goal = "Systematically explore unexplored corridors of the maze"
        reasoning = "Survival needs are stable and most of the maze is unknown"
    else:
        goal = "Search for the maze exit in unexplored areas"
        reasoning = "Survival needs are stable and much of the maze is already mapped"
    return DailyPlanResponse(goal=goal, reasoning=reasoning, priority=priority)


def fallback_hourly_objective(goal: str, hour_index: int) -> HourlyPlanResponse:
    label = f"(hour {hour_index + 1})"
    resource = resource_in_text(goal)
    if resource == "food":
        objective = f"Search corridors for food items {label}"
    elif resource == "water":
        objective = f"Search for water sources {label}"
    elif resource == "energy":
        objective = f"Find energy-restoring items and rest {label}"
    elif "explore" in goal.lower():
        objective = f"Map unexplored corridors and check for items {label}"
    else:
        objective = f"Continue exploration toward the exit {label}"
    return HourlyPlanResponse(objective=objective)


def step_toward(origin: Position, target: Position, tiles: int) -> Position:
    """Walk up to ``tiles`` steps along a straight Manhattan path (x first)."""
    dx = target.x - origin.x
    dy = target.y - origin.y
    move_x = int(math.copysign(min(abs(dx), tiles), dx)) if dx else 0
    remaining = tiles - abs(move_x)
    move_y = int(math.copysign(min(abs(dy), remaining), dy)) if dy and remaining > 0 else 0
    return Position(x=origin.x + move_x, y=origin.y + move_y)


def _fallback_target(
    goal: str, objective: str, snapshot: WorldSnapshot
) -> Tuple[Optional[Position], Optional[str]]:
    """Pick where the fallback actions head and which item they expect."""
    kind = resource_in_text(objective) or resource_in_text(goal)
    if kind is not None:
        resource = nearest_resource(snapshot, kind)
        if resource is not None:
            return resource.position, kind
    frontier = nearest_frontier(snapshot)
    if frontier is not None:
        return frontier, None
    region = least_visited_region(snapshot)
    if region is not None:
        return region.center, None
    return None, None


def fallback_action(
    goal: str,
    objective: str,
    action_index: int,
    snapshot: WorldSnapshot,
    config: PlannerConfig,
) -> ActionPlanResponse:
    """Straight-line movement toward the chosen target, then act on it."""

    target, item = _fallback_target(goal, objective, snapshot)
    step = action_index + 1
    if target is None:
        return ActionPlanResponse(
            action=f"Rest and listen for clues (step {step})",
            action_type=ActionType.REST,
        )

    here = snapshot.position
    tiles = config.fallback_tiles_per_action
    steps_needed = math.ceil(here.manhattan(target) / tiles)

    if action_index < steps_needed:
        waypoint = step_toward(here, target, tiles * step)
        if item is not None:
            return ActionPlanResponse(
                action=f"Head toward the {item} at {target} via {waypoint}",
                action_type=ActionType.SEEK_ITEM,
                target_x=waypoint.x,
                target_y=waypoint.y,
                target_item=item,
            )
        return ActionPlanResponse(
            action=f"Move toward {target} via {waypoint}",
            action_type=ActionType.MOVE,
            target_x=waypoint.x,
            target_y=waypoint.y,
        )

    if action_index == steps_needed:
        if item is not None:
            return ActionPlanResponse(
                action=f"Pick up and use the {item} at {target}",
                action_type=ActionType.CONSUME_ITEM,
                target_x=target.x,
                target_y=target.y,
                target_item=item,
            )
        return ActionPlanResponse(
            action=f"Explore around {target}",
            action_type=ActionType.EXPLORE,
            target_x=target.x,
            target_y=target.y,
        )

    frontier = nearest_frontier(snapshot, origin=target)
    if frontier is not None and frontier != target:
        return ActionPlanResponse(
            action=f"Explore toward unexplored tile {frontier}",
            action_type=ActionType.EXPLORE,
            target_x=frontier.x,
            target_y=frontier.y,
        )
    return ActionPlanResponse(
        action=f"Rest near {target} (step {step})",
        action_type=ActionType.REST,
    )


__all__ = [
    "RESOURCE_FOR_STAT",
    "critical_stats",
    "urgent_need",
    "determine_priority",
    "nearest_resource",
    "nearest_frontier",
    "least_visited_region",
    "fallback_daily_plan",
    "fallback_hourly_objective",
    "fallback_action",
    "step_toward",
]
