"""Maze survival: one agent explores a small grid maze while staying fed.

The maze world here is deliberately simple. It only exists to drive the
cognitive core through its tick loop: observations go in, the current
five-minute action comes out, and outcomes are reported back.

By default no reasoning service is used and every plan comes from the
deterministic fallbacks:

    uv run python examples/maze_survival/run.py --ticks 180

``--scripted`` plugs in a tiny canned reasoning service that only answers
daily goals (everything else still falls back). ``--llm`` uses the provider
configured through the environment (LLM_PROVIDER, LLM_MODEL, API keys,
EMBEDDING_PROVIDER).

Pass ``--save-dir`` to write the agent's memory and plans to JSON at the end.
"""

from __future__ import annotations

import argparse
import asyncio
from typing import Dict, List, Optional, Set, Tuple

from mazemind import AgentCognition, JsonPersistence
from mazemind.logging_utils import Color, colored, log_info, log_success
from mazemind.schemas import (
    ActionOutcome,
    ActionPlan,
    ActionType,
    DailyPlanResponse,
    Observation,
    PointOfInterest,
    Position,
    RegionSummary,
    SurvivalStats,
    WorldSnapshot,
)


MAZE = [
    "###############",
    "#S....#.....F.#",
    "#.###.#.###.#.#",
    "#...#...#...#.#",
    "###.#####.###.#",
    "#W..#.....#E..#",
    "#.###.###.#.###",
    "#.....#F....X.#",
    "###############",
]

ITEM_KINDS = {"F": "food", "W": "water", "E": "energy", "X": "exit"}
RESTORES = {"food": "hunger", "water": "thirst", "energy": "energy"}
ITEM_VALUE = {"food": 6, "water": 6, "energy": 5, "exit": 10}

SECONDS_PER_TICK = 60.0
SIGHT_RADIUS = 3
DECAY_PER_TICK = {"hunger": 0.45, "thirst": 0.6, "energy": 0.25}
RESTORE_AMOUNT = 45.0

Tile = Tuple[int, int]
STEPS = [(1, 0), (-1, 0), (0, 1), (0, -1)]


class MazeWorld:
    """Grid maze with consumable items and decaying survival stats."""

    def __init__(self, layout: List[str]):
        self.walls: Set[Tile] = set()
        self.items: Dict[Tile, str] = {}
        self.position: Tile = (1, 1)
        for y, row in enumerate(layout):
            for x, char in enumerate(row):
                if char == "#":
                    self.walls.add((x, y))
                elif char == "S":
                    self.position = (x, y)
                elif char in ITEM_KINDS:
                    self.items[(x, y)] = ITEM_KINDS[char]
        self.width = max(len(row) for row in layout)
        self.height = len(layout)
        self.open_tiles = {
            (x, y)
            for y in range(self.height)
            for x in range(self.width)
            if (x, y) not in self.walls
        }

        self.stats = {"hunger": 70.0, "thirst": 60.0, "energy": 80.0}
        self.seen: Set[Tile] = set()
        self.visits: Dict[Tile, int] = {self.position: 1}
        self.known_items: Dict[Tile, str] = {}
        self.found_exit = False

    # ------------------------------------------------------------------
    # Perception
    # ------------------------------------------------------------------

    def look(self) -> List[Observation]:
        """Reveal nearby tiles; returns observations for newly seen items."""
        px, py = self.position
        observations: List[Observation] = []
        for tile in self.open_tiles:
            if abs(tile[0] - px) + abs(tile[1] - py) > SIGHT_RADIUS or tile in self.seen:
                continue
            self.seen.add(tile)
            kind = self.items.get(tile)
            if kind is not None:
                self.known_items[tile] = kind
                observations.append(
                    Observation(
                        description=f"Spotted {kind} at {Position(x=tile[0], y=tile[1])}",
                        importance=9 if kind == "exit" else 6,
                        location=Position(x=tile[0], y=tile[1]),
                        tags=["item", kind],
                    )
                )
        if self._open_neighbours(self.position) == 1 and self.visits[self.position] == 1:
            observations.append(
                Observation(
                    description=f"Hit a dead end at {Position(x=px, y=py)}",
                    importance=4,
                    location=Position(x=px, y=py),
                    tags=["dead_end"],
                )
            )
        return observations

    def snapshot(self, game_time: float) -> WorldSnapshot:
        here = Position(x=self.position[0], y=self.position[1])
        pois = [
            PointOfInterest(
                id=f"{kind}-{x}-{y}",
                kind=kind,
                position=Position(x=x, y=y),
                value=ITEM_VALUE[kind],
            )
            for (x, y), kind in sorted(self.known_items.items())
        ]
        frontier = sorted(
            (
                Position(x=x, y=y)
                for (x, y) in self.seen
                if any(
                    (x + dx, y + dy) in self.open_tiles and (x + dx, y + dy) not in self.seen
                    for dx, dy in STEPS
                )
            ),
            key=lambda pos: (pos.manhattan(here), pos.x, pos.y),
        )[:8]
        return WorldSnapshot(
            game_time=game_time,
            position=here,
            survival=SurvivalStats(**{name: max(0.0, value) for name, value in self.stats.items()}),
            time_of_day=f"hour {int(game_time // 3600) + 1}",
            exploration_progress=len(self.seen) / len(self.open_tiles),
            points_of_interest=pois,
            regions=self._regions(),
            frontier=frontier,
        )

    def _regions(self) -> List[RegionSummary]:
        mid_x, mid_y = self.width // 2, self.height // 2
        quadrants = {
            "north-west": (mid_x // 2, mid_y // 2),
            "north-east": (mid_x + mid_x // 2, mid_y // 2),
            "south-west": (mid_x // 2, mid_y + mid_y // 2),
            "south-east": (mid_x + mid_x // 2, mid_y + mid_y // 2),
        }
        regions = []
        for name, (cx, cy) in quadrants.items():
            visits = sum(
                count
                for (x, y), count in self.visits.items()
                if (x < mid_x) == (cx < mid_x) and (y < mid_y) == (cy < mid_y)
            )
            center = min(self.open_tiles, key=lambda tile: (abs(tile[0] - cx) + abs(tile[1] - cy), tile))
            regions.append(RegionSummary(name=name, center=Position(x=center[0], y=center[1]), visits=visits))
        return regions

    def _open_neighbours(self, tile: Tile) -> int:
        return sum((tile[0] + dx, tile[1] + dy) in self.open_tiles for dx, dy in STEPS)

    # ------------------------------------------------------------------
    # Actions
    # ------------------------------------------------------------------

    def decay(self) -> None:
        for name, amount in DECAY_PER_TICK.items():
            self.stats[name] = max(0.0, self.stats[name] - amount)

    def step_toward(self, target: Position) -> bool:
        """Move one tile along a shortest path to ``target``; False when stuck."""
        goal = (target.x, target.y)
        if self.position == goal:
            return True
        path = self._path(goal)
        if not path:
            return False
        self.position = path[0]
        self.visits[self.position] = self.visits.get(self.position, 0) + 1
        return True

    def _path(self, goal: Tile) -> List[Tile]:
        if goal not in self.open_tiles:
            return []
        frontier = [self.position]
        came_from: Dict[Tile, Optional[Tile]] = {self.position: None}
        while frontier:
            current = frontier.pop(0)
            if current == goal:
                break
            for dx, dy in STEPS:
                nxt = (current[0] + dx, current[1] + dy)
                if nxt in self.open_tiles and nxt not in came_from:
                    came_from[nxt] = current
                    frontier.append(nxt)
        if goal not in came_from:
            return []
        path = []
        node: Optional[Tile] = goal
        while node is not None and node != self.position:
            path.append(node)
            node = came_from[node]
        return list(reversed(path))

    def consume(self, kind: Optional[str]) -> Optional[str]:
        """Use the item on the current tile if it matches ``kind``."""
        here_kind = self.items.get(self.position)
        if here_kind is None or (kind is not None and here_kind != kind):
            return None
        if here_kind == "exit":
            self.found_exit = True
            return here_kind
        stat = RESTORES[here_kind]
        self.stats[stat] = min(100.0, self.stats[stat] + RESTORE_AMOUNT)
        del self.items[self.position]
        self.known_items.pop(self.position, None)
        return here_kind

    def render(self) -> str:
        rows = []
        for y in range(self.height):
            row = []
            for x in range(self.width):
                tile = (x, y)
                if tile == self.position:
                    row.append("@")
                elif tile in self.walls:
                    row.append("#")
                elif tile in self.items and tile in self.seen:
                    row.append({"food": "F", "water": "W", "energy": "E", "exit": "X"}[self.items[tile]])
                elif tile in self.seen:
                    row.append(".")
                else:
                    row.append(" ")
            rows.append("".join(row))
        return "\n".join(rows)


class ScriptedGoals:
    """Canned reasoning service: answers daily goals, defers everything else."""

    def __init__(self) -> None:
        self.calls = 0

    async def complete(self, prompt, response_model):
        if response_model is not DailyPlanResponse:
            raise ConnectionError("scripted service only plans days")
        self.calls += 1
        return DailyPlanResponse(
            goal="Explore the maze systematically and note every resource",
            reasoning="Scripted goal for demonstration runs",
            priority="MEDIUM",
        )


def execute(
    world: MazeWorld, action: Optional[ActionPlan], now: float
) -> Tuple[List[Observation], Optional[ActionOutcome]]:
    """Carry out one tick of ``action``; returns observations and an outcome when done."""
    if action is None:
        world.stats["energy"] = min(100.0, world.stats["energy"] + 0.5)
        return [], None

    observations: List[Observation] = []
    if action.action_type in (ActionType.REST, ActionType.WAIT, ActionType.REFLECT):
        if action.action_type is ActionType.REST:
            world.stats["energy"] = min(100.0, world.stats["energy"] + 3.0)
        if now + SECONDS_PER_TICK >= action.end_time:
            return observations, ActionOutcome(summary="rested")
        return observations, None

    if action.target_position is not None:
        if not world.step_toward(action.target_position):
            return observations, ActionOutcome(status="FAILED", summary="no path to target")

    at_target = action.target_position is None or world.position == (
        action.target_position.x,
        action.target_position.y,
    )
    if action.action_type in (ActionType.CONSUME_ITEM, ActionType.SEEK_ITEM) and at_target:
        used = world.consume(action.target_item)
        if used == "exit":
            observations.append(Observation(description="Found the exit of the maze", importance=10, tags=["exit"]))
            return observations, ActionOutcome(summary="reached the exit", importance=10)
        if used is not None:
            observations.append(
                Observation(
                    description=f"Consumed {used}; {RESTORES[used]} restored",
                    importance=7,
                    tags=["consumed", used],
                )
            )
            return observations, ActionOutcome(summary=f"consumed {used}")
        if action.action_type is ActionType.CONSUME_ITEM:
            return observations, ActionOutcome(status="FAILED", summary=f"no {action.target_item} here")

    if at_target and action.action_type is not ActionType.CONSUME_ITEM:
        return observations, ActionOutcome(summary=f"arrived at {action.target_position}")
    return observations, None


def status_line(world: MazeWorld, tick: int, action: Optional[ActionPlan]) -> str:
    stats = " ".join(f"{name[0].upper()}:{value:5.1f}" for name, value in world.stats.items())
    label = action.action if action is not None else "(idle)"
    return f"t={tick:03d} pos={world.position} {stats} | {label}"


async def run(args: argparse.Namespace) -> None:
    world = MazeWorld(MAZE)
    if args.llm:
        cognition = AgentCognition.from_config("runner-1")
    elif args.scripted:
        cognition = AgentCognition("runner-1", reasoning=ScriptedGoals())
    else:
        cognition = AgentCognition("runner-1")

    last_goal = None
    try:
        for tick in range(args.ticks):
            now = tick * SECONDS_PER_TICK
            world.decay()
            observations = world.look()
            result = await cognition.tick(world.snapshot(now), observations)
            if result.replan_reason:
                print(colored(f"  re-plan: {result.replan_reason}", Color.CYAN))
            # Wait for background planning so runs are reproducible
            await cognition.settle(now)
            action = result.action or cognition.planner.get_current_action(now)

            plan = cognition.planner.active_plan
            if plan is not None and plan.goal != last_goal:
                last_goal = plan.goal
                print(colored(f"Goal ({plan.priority.value}): {plan.goal}", Color.GREEN, bold=True))

            events, outcome = execute(world, action, now)
            for observation in events:
                cognition.observe(observation, now)
            if outcome is not None and action is not None:
                cognition.complete_action(action.id, outcome, now=now)

            if args.verbose or tick % 10 == 0:
                print(status_line(world, tick, action))
            if world.found_exit:
                log_success(f"Exit reached at tick {tick}")
                break
            if min(world.stats.values()) <= 0:
                log_info(f"Agent collapsed at tick {tick}")
                break
    finally:
        await cognition.close()

    print()
    print(world.render())
    print()
    counts = cognition.store.statistics()
    log_info(f"Memories: {counts}")
    log_info(f"Plans generated: {len(cognition.planner.history)}")
    for item in cognition.store.get_by_tag("reflection")[-5:]:
        log_info(f"Reflection: {item.description}")

    if args.save_dir:
        persistence = JsonPersistence(args.save_dir)
        await persistence.initialize()
        await persistence.save_snapshot(cognition.export_snapshot())
        log_success(f"Saved snapshot for {cognition.agent_id} to {args.save_dir}")


def parse_args() -> argparse.Namespace:
    """Parse command line arguments."""
    parser = argparse.ArgumentParser(description="Maze survival with hierarchical planning")
    parser.add_argument("--ticks", type=int, default=180, help="Ticks to simulate (one minute each)")
    parser.add_argument("--llm", action="store_true", help="Use the configured reasoning provider")
    parser.add_argument("--scripted", action="store_true", help="Use a canned daily-goal service")
    parser.add_argument("--save-dir", type=str, default=None, help="Write a JSON snapshot here")
    parser.add_argument("--verbose", action="store_true", help="Print every tick")
    return parser.parse_args()


if __name__ == "__main__":
    asyncio.run(run(parse_args()))
