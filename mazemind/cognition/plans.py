"""Plan hierarchy rules: forward-only status transitions and subtree invariants."""

from __future__ import annotations

from typing import Iterator, List, Optional, Sequence, Union

from mazemind.errors import InvalidStatusTransition, PlanInvariantError
from mazemind.schemas import (
    ActionPlan,
    DailyPlan,
    HourlyPlan,
    PlanLevel,
    PlanNode,
    PlanStatus,
)


AnyPlan = Union[DailyPlan, HourlyPlan, ActionPlan]

# Float tolerance for start/duration arithmetic
_EPSILON = 1e-6


def plan_level(node: PlanNode) -> PlanLevel:
    if isinstance(node, DailyPlan):
        return PlanLevel.DAILY
    if isinstance(node, HourlyPlan):
        return PlanLevel.HOURLY
    return PlanLevel.ACTION


def transition(node: PlanNode, status: PlanStatus, *, at: Optional[float] = None) -> bool:
    """Move ``node`` to ``status``.

    Returns False when the node already has that status. Terminal statuses
    stamp ``completed_at``.

    Raises:
        InvalidStatusTransition: If the move would go backward or leave a
            terminal status
    """
    if node.status is status:
        return False
    if not node.status.can_transition_to(status):
        raise InvalidStatusTransition(node.id, node.status.value, status.value)
    node.status = status
    if status.is_terminal and at is not None:
        node.completed_at = at
    return True


def children_of(node: PlanNode) -> Sequence[PlanNode]:
    if isinstance(node, DailyPlan):
        return node.hourly_plans
    if isinstance(node, HourlyPlan):
        return node.actions
    return ()


def iter_subtree(node: PlanNode) -> Iterator[PlanNode]:
    """Yield ``node`` and all of its descendants, depth first."""
    yield node
    for child in children_of(node):
        yield from iter_subtree(child)


def validate_children(
    parent: Union[DailyPlan, HourlyPlan],
    children: Sequence[Union[HourlyPlan, ActionPlan]],
    *,
    expected_count: int,
) -> None:
    """Check a freshly generated child list before it is attached.

    Raises:
        PlanInvariantError: On wrong fan-out, orphaned children, overlapping
            or gapped windows, or durations that do not sum to the parent's
    """
    if len(children) != expected_count:
        raise PlanInvariantError(
            f"Plan {parent.id}: expected {expected_count} children, got {len(children)}"
        )

    cursor = parent.start_time
    total = 0.0
    for index, child in enumerate(children):
        if child.parent_id != parent.id:
            raise PlanInvariantError(
                f"Plan {parent.id}: child {index} ({child.id}) belongs to {child.parent_id}"
            )
        if abs(child.start_time - cursor) > _EPSILON:
            raise PlanInvariantError(
                f"Plan {parent.id}: child {index} starts at {child.start_time}, expected {cursor}"
            )
        cursor = child.end_time
        total += child.duration

    if abs(total - parent.duration) > _EPSILON:
        raise PlanInvariantError(
            f"Plan {parent.id}: children cover {total}s but the parent lasts {parent.duration}s"
        )


def validate_tree(plan: DailyPlan) -> List[str]:
    """Return every invariant problem in ``plan`` (empty when consistent).

    Undecomposed hourly plans are allowed; decomposition is lazy.
    """
    problems: List[str] = []
    if plan.hourly_plans:
        try:
            validate_children(plan, plan.hourly_plans, expected_count=len(plan.hourly_plans))
        except PlanInvariantError as exc:
            problems.append(str(exc))

    in_progress = 0
    for hourly in plan.hourly_plans:
        if hourly.actions:
            try:
                validate_children(hourly, hourly.actions, expected_count=len(hourly.actions))
            except PlanInvariantError as exc:
                problems.append(str(exc))
            if all(a.status is PlanStatus.COMPLETED for a in hourly.actions) and (
                hourly.status is not PlanStatus.COMPLETED
            ):
                problems.append(f"Hourly plan {hourly.id}: all actions completed but status is {hourly.status.value}")
        in_progress += sum(1 for a in hourly.actions if a.status is PlanStatus.IN_PROGRESS)
        if hourly.status.is_terminal and any(a.status is PlanStatus.IN_PROGRESS for a in hourly.actions):
            problems.append(f"Hourly plan {hourly.id} is {hourly.status.value} with an action in progress")

    if in_progress > 1:
        problems.append(f"Plan {plan.id}: {in_progress} actions are IN_PROGRESS")
    return problems


__all__ = [
    "AnyPlan",
    "plan_level",
    "transition",
    "children_of",
    "iter_subtree",
    "validate_children",
    "validate_tree",
]
