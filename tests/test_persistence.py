"""Tests for snapshot persistence strategies."""

import pytest

from conftest import make_snapshot

from mazemind.cognition.runtime import AgentCognition
from mazemind.errors import SnapshotError
from mazemind.persistence import CognitionSnapshot, InMemoryPersistence, JsonPersistence


async def _agent(agent_id="runner-1"):
    cognition = AgentCognition(agent_id)
    await cognition.tick(make_snapshot(0.0), ["Entered the maze", "Smelled water to the east"])
    await cognition.settle(0.0)
    await cognition.tick(make_snapshot(10.0))
    return cognition


@pytest.mark.asyncio
async def test_in_memory_persistence_copies_snapshots():
    persistence = InMemoryPersistence()
    await persistence.initialize()
    snapshot = CognitionSnapshot(agent_id="runner-1", memories=[])

    await persistence.save_snapshot(snapshot)
    snapshot.memories.append({"mutated": True})
    loaded = await persistence.load_snapshot("runner-1")

    assert loaded.memories == []
    assert await persistence.list_agents() == ["runner-1"]
    assert await persistence.load_snapshot("nobody") is None

    await persistence.delete_snapshot("runner-1")
    assert await persistence.list_agents() == []


@pytest.mark.asyncio
async def test_json_persistence_round_trips_a_running_agent(tmp_path):
    cognition = await _agent()
    persistence = JsonPersistence(tmp_path / "snapshots")
    await persistence.initialize()

    await persistence.save_snapshot(cognition.export_snapshot())
    loaded = await persistence.load_snapshot("runner-1")

    clone = AgentCognition("runner-1")
    await clone.restore(loaded)

    assert [item.id for item in clone.store] == [item.id for item in cognition.store]
    assert clone.planner.active_plan.goal == cognition.planner.active_plan.goal
    assert clone.planner.current_action.id == cognition.planner.current_action.id
    # Ids keep counting from where the saved store stopped
    new_item = clone.observe("Reached a junction", 20.0)
    assert new_item.id not in {item.id for item in cognition.store}

    await cognition.close()
    await clone.close()


@pytest.mark.asyncio
async def test_json_persistence_file_layout(tmp_path):
    persistence = JsonPersistence(tmp_path)
    await persistence.save_snapshot(CognitionSnapshot(agent_id="team/runner 1"))

    assert (tmp_path / "team_runner_1.json").exists()
    assert not list(tmp_path.glob("*.tmp"))
    assert await persistence.list_agents() == ["team/runner 1"]

    await persistence.delete_snapshot("team/runner 1")
    assert await persistence.load_snapshot("team/runner 1") is None


@pytest.mark.asyncio
async def test_json_persistence_rejects_malformed_files(tmp_path):
    persistence = JsonPersistence(tmp_path)
    (tmp_path / "runner-1.json").write_text('{"agent_id": "runner-1", "game_time": -5}', "utf-8")
    (tmp_path / "garbage.json").write_text("not json", "utf-8")

    with pytest.raises(SnapshotError):
        await persistence.load_snapshot("runner-1")
    with pytest.raises(SnapshotError):
        await persistence.load_snapshot("garbage")
    # Unreadable documents are skipped when listing
    assert await persistence.list_agents() == ["runner-1"]


@pytest.mark.asyncio
async def test_list_agents_on_missing_directory(tmp_path):
    assert await JsonPersistence(tmp_path / "absent").list_agents() == []
