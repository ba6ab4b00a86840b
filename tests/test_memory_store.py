"""Tests for the append-only memory store."""

import pytest

from mazemind.errors import (
    ImmutableFieldError,
    InvalidStatusTransition,
    MemoryAppendError,
    SnapshotError,
)
from mazemind.memory import MemoryStore, clamp_importance
from mazemind.schemas import MemoryKind, PlanLevel, PlanStatus, Position


def test_append_assigns_stable_sequential_ids(store):
    first = store.add_observation("Entered a narrow corridor", 10.0, 3)
    second = store.add_observation("Found a junction", 20.0, 5)

    assert first.id == "mem-000001"
    assert second.id == "mem-000002"
    assert [item.id for item in store] == [first.id, second.id]
    assert second.sequence == first.sequence + 1
    assert len(store) == 2
    assert first.id in store


def test_rejects_out_of_order_timestamp(store):
    store.add_observation("Later event", 100.0, 3)

    with pytest.raises(MemoryAppendError):
        store.add_observation("Earlier event", 50.0, 3)

    # Equal timestamps are fine
    store.add_observation("Same moment", 100.0, 3)
    assert len(store) == 2


@pytest.mark.parametrize("importance", [0, 11])
def test_append_rejects_importance_out_of_range(store, importance):
    with pytest.raises(MemoryAppendError):
        store.append(MemoryKind.OBSERVATION, "Something happened", 1.0, importance)


def test_append_rejects_empty_description(store):
    with pytest.raises(MemoryAppendError):
        store.append(MemoryKind.OBSERVATION, "   ", 1.0, 5)


def test_convenience_adders_clamp_importance(store):
    low = store.add_observation("Dust", 1.0, -4)
    high = store.add_observation("Exit spotted", 2.0, 42)

    assert low.importance == 1
    assert high.importance == 10
    assert clamp_importance(6.6) == 7


def test_reflection_requires_existing_citations(store):
    seen = store.add_observation("Hit a dead end", 1.0, 6)

    with pytest.raises(MemoryAppendError):
        store.append(MemoryKind.REFLECTION, "Uncited insight", 2.0, 7)
    with pytest.raises(MemoryAppendError):
        store.add_reflection("Cites the future", 2.0, 7, ["mem-999999"])

    reflection = store.add_reflection("Dead ends cluster in the west", 2.0, 7, [seen.id], tags=["pattern"])
    assert reflection.citations == [seen.id]
    assert reflection.tags == ["reflection", "pattern"]


def test_plan_items_need_reference_and_are_unique(store):
    with pytest.raises(MemoryAppendError):
        store.append(MemoryKind.PLAN, "Plan without a node", 1.0, 5)

    item = store.add_plan("Plan (HIGH): find water", 1.0, 6, plan_ref="node-1", plan_level=PlanLevel.DAILY)
    assert item.status is PlanStatus.PENDING
    assert item.tags[:2] == ["plan", "daily"]
    assert store.get_plan_item("node-1") is item

    with pytest.raises(MemoryAppendError):
        store.add_plan("Duplicate", 2.0, 6, plan_ref="node-1", plan_level=PlanLevel.DAILY)


def test_non_plan_items_cannot_carry_status(store):
    with pytest.raises(MemoryAppendError):
        store.append(MemoryKind.OBSERVATION, "Odd", 1.0, 5, status=PlanStatus.PENDING)


def test_items_are_immutable(store):
    item = store.add_observation("Found food at (3, 4)", 1.0, 6)

    with pytest.raises(ImmutableFieldError):
        item.description = "Something else"
    with pytest.raises(ImmutableFieldError):
        item.importance = 2
    with pytest.raises(ImmutableFieldError):
        item.status = PlanStatus.COMPLETED


def test_embedding_is_written_once(store):
    item = store.add_observation("Water nearby", 1.0, 5)
    assert not item.has_embedding

    store.attach_embedding(item.id, [0.1, 0.2])
    store.attach_embedding(item.id, [0.1, 0.2])
    assert item.embedding == [0.1, 0.2]

    with pytest.raises(ImmutableFieldError):
        store.attach_embedding(item.id, [0.3, 0.4])


def test_update_plan_status_moves_forward_only(store):
    store.add_plan("Hourly objective: explore", 1.0, 4, plan_ref="h-1", plan_level=PlanLevel.HOURLY)

    store.update_plan_status("h-1", PlanStatus.IN_PROGRESS)
    store.update_plan_status("h-1", PlanStatus.IN_PROGRESS)
    store.update_plan_status("h-1", PlanStatus.COMPLETED)
    assert store.get_plan_item("h-1").status is PlanStatus.COMPLETED

    with pytest.raises(InvalidStatusTransition):
        store.update_plan_status("h-1", PlanStatus.IN_PROGRESS)
    with pytest.raises(KeyError):
        store.update_plan_status("missing", PlanStatus.COMPLETED)


def test_queries(store):
    a = store.add_observation("Food at the junction", 10.0, 4, location=Position(x=1, y=1), tags=["food"])
    b = store.add_observation("Long empty corridor", 20.0, 2, location=Position(x=9, y=9))
    c = store.add_observation("Water trickling", 30.0, 6, tags=["water"])
    store.add_reflection("Junctions hide food", 40.0, 7, [a.id])

    assert [item.id for item in store.get_recent(2)][1] == c.id
    assert store.get_recent(0) == []
    assert store.get_by_tag("food") == [a]
    assert store.get_in_time_range(15.0, 30.0) == [b, c]
    assert store.get_near(Position(x=0, y=0), 2.0) == [a]
    assert store.count_by_kind(MemoryKind.OBSERVATION) == 3
    assert store.count_since(MemoryKind.OBSERVATION, a.sequence) == 2
    assert store.latest_timestamp == 40.0


def test_statistics(store):
    store.add_observation("One", 1.0, 2)
    item = store.add_observation("Two", 2.0, 4)
    store.attach_embedding(item.id, [1.0])

    stats = store.statistics()
    assert stats["total"] == 2
    assert stats["by_kind"]["OBSERVATION"] == 2
    assert stats["by_kind"]["REFLECTION"] == 0
    assert stats["with_embedding"] == 1
    assert stats["mean_importance"] == 3.0


def test_export_and_reingest_preserves_ids(store):
    first = store.add_observation("Dead end", 1.0, 6)
    store.add_reflection("Avoid the west", 2.0, 7, [first.id])
    store.add_plan("Plan (LOW): rest", 3.0, 6, plan_ref="d-1", plan_level=PlanLevel.DAILY)
    store.update_plan_status("d-1", PlanStatus.ABANDONED)

    restored = MemoryStore.from_records(store.export_records())

    assert [item.id for item in restored] == [item.id for item in store]
    assert restored.get_plan_item("d-1").status is PlanStatus.ABANDONED
    new_item = restored.add_observation("After reload", 4.0, 3)
    assert new_item.id == "mem-000004"


def test_reingest_rejects_reordered_records(store):
    store.add_observation("First", 1.0, 3)
    store.add_observation("Second", 2.0, 3)
    records = list(reversed(store.export_records()))

    with pytest.raises(SnapshotError):
        MemoryStore.from_records(records)


def test_reingest_rejects_forward_citations(store):
    first = store.add_observation("First", 1.0, 3)
    store.add_reflection("Insight", 2.0, 7, [first.id])
    records = store.export_records()
    records[1]["citations"] = ["mem-000003"]

    with pytest.raises(SnapshotError):
        MemoryStore.from_records(records)
