"""
Tests for the SQLite memory store.
"""
import asyncio
import sqlite3
import uuid
from datetime import UTC, datetime, timedelta

import pytest
import pytest_asyncio

from agentrecall.memory import DOCUMENTS, MESSAGES
from agentrecall.models import Content, Memory
from agentrecall.storage import InMemoryStore, SqliteMemoryStore


@pytest_asyncio.fixture
async def sqlite_store():
    store = SqliteMemoryStore()
    yield store
    await store.close()


def make_memory(agent_id, room_id, embedding=None, text="hi", minutes=0, **content):
    return Memory(
        id=uuid.uuid4(),
        agent_id=agent_id,
        user_id=agent_id,
        room_id=room_id,
        content=Content(text=text, **content),
        embedding=embedding,
        created_at=datetime(2024, 5, 1, tzinfo=UTC) + timedelta(minutes=minutes),
    )


@pytest.mark.asyncio
async def test_memory_round_trip(sqlite_store, agent_id, room_id):
    """Test that every memory field survives a write and read."""
    memory = make_memory(
        agent_id, room_id, [0.25, 0.5, 1.0], text="gm", source="farcaster", native_id="0x1"
    )
    await sqlite_store.create_memory(memory, MESSAGES)

    stored = await sqlite_store.get_memory_by_id(memory.id)

    assert stored.id == memory.id
    assert stored.room_id == room_id
    assert stored.content.text == "gm"
    assert stored.content.source == "farcaster"
    assert stored.content.native_id == "0x1"
    assert stored.embedding == pytest.approx([0.25, 0.5, 1.0])
    assert stored.created_at == memory.created_at
    assert stored.unique is True


@pytest.mark.asyncio
async def test_missing_id_returns_none(sqlite_store):
    assert await sqlite_store.get_memory_by_id(uuid.uuid4()) is None


@pytest.mark.asyncio
async def test_write_is_an_upsert(sqlite_store, agent_id, room_id):
    """Test that writing an existing id replaces the row."""
    memory = make_memory(agent_id, room_id, text="first")
    await sqlite_store.create_memory(memory, MESSAGES)
    await sqlite_store.create_memory(
        memory.model_copy(update={"content": Content(text="second")}), MESSAGES
    )

    assert await sqlite_store.count_memories(room_id, MESSAGES) == 1
    assert (await sqlite_store.get_memory_by_id(memory.id)).content.text == "second"


@pytest.mark.asyncio
async def test_null_embedding_is_kept_out_of_search(sqlite_store, agent_id, room_id):
    await sqlite_store.create_memory(make_memory(agent_id, room_id), MESSAGES)

    stored = await sqlite_store.get_memories(room_id=room_id, table_name=MESSAGES)
    assert stored[0].embedding is None
    assert (
        await sqlite_store.search_memories_by_embedding(
            [1.0, 0.0], table_name=MESSAGES, agent_id=agent_id
        )
        == []
    )


@pytest.mark.asyncio
async def test_search_ranks_and_scopes(sqlite_store, agent_id, room_id):
    """Test ordering by similarity, the threshold, room scoping and the table filter."""
    other_room = uuid.uuid4()
    close = make_memory(agent_id, room_id, [1.0, 0.1])
    far = make_memory(agent_id, room_id, [0.0, 1.0])
    exact = make_memory(agent_id, room_id, [1.0, 0.0])
    elsewhere = make_memory(agent_id, other_room, [1.0, 0.0])
    doc = make_memory(agent_id, room_id, [1.0, 0.0])
    for memory in (close, far, exact, elsewhere):
        await sqlite_store.create_memory(memory, MESSAGES)
    await sqlite_store.create_memory(doc, DOCUMENTS)

    results = await sqlite_store.search_memories_by_embedding(
        [1.0, 0.0],
        table_name=MESSAGES,
        agent_id=agent_id,
        room_id=room_id,
        match_threshold=0.5,
    )
    assert [m.id for m in results] == [exact.id, close.id]
    assert results[0].similarity == pytest.approx(1.0)

    everywhere = await sqlite_store.search_memories_by_embedding(
        [1.0, 0.0], table_name=MESSAGES, agent_id=agent_id, count=2
    )
    assert len(everywhere) == 2
    assert {m.id for m in everywhere} == {exact.id, elsewhere.id}


@pytest.mark.asyncio
async def test_search_unique_only(sqlite_store, agent_id, room_id):
    flagged = make_memory(agent_id, room_id, [1.0, 0.0])
    flagged.unique = False
    await sqlite_store.create_memory(flagged, MESSAGES)

    results = await sqlite_store.search_memories_by_embedding(
        [1.0, 0.0], table_name=MESSAGES, agent_id=agent_id, unique=True
    )
    assert results == []


@pytest.mark.asyncio
async def test_get_memories_newest_first(sqlite_store, agent_id, room_id):
    for minutes in (0, 2, 1):
        await sqlite_store.create_memory(
            make_memory(agent_id, room_id, text=str(minutes), minutes=minutes), MESSAGES
        )

    recent = await sqlite_store.get_memories(room_id=room_id, table_name=MESSAGES, count=2)
    assert [m.content.text for m in recent] == ["2", "1"]


@pytest.mark.asyncio
async def test_get_memories_by_room_ids(sqlite_store, agent_id):
    rooms = [uuid.uuid4() for _ in range(3)]
    for room in rooms:
        await sqlite_store.create_memory(make_memory(agent_id, room), MESSAGES)

    found = await sqlite_store.get_memories_by_room_ids(
        table_name=MESSAGES, agent_id=agent_id, room_ids=rooms[:2]
    )
    assert {m.room_id for m in found} == set(rooms[:2])
    assert (
        await sqlite_store.get_memories_by_room_ids(
            table_name=MESSAGES, agent_id=agent_id, room_ids=[]
        )
        == []
    )


@pytest.mark.asyncio
async def test_remove_is_scoped_to_table(sqlite_store, agent_id, room_id):
    """Test that removal only touches rows of the named table."""
    keep, drop = make_memory(agent_id, room_id), make_memory(agent_id, room_id)
    await sqlite_store.create_memory(keep, MESSAGES)
    await sqlite_store.create_memory(drop, MESSAGES)

    await sqlite_store.remove_memory(drop.id, DOCUMENTS)
    assert await sqlite_store.count_memories(room_id, MESSAGES) == 2

    await sqlite_store.remove_memory(drop.id, MESSAGES)
    assert await sqlite_store.get_memory_by_id(drop.id) is None

    await sqlite_store.remove_all_memories(room_id, MESSAGES)
    assert await sqlite_store.count_memories(room_id, MESSAGES) == 0


@pytest.mark.asyncio
async def test_count_unique(sqlite_store, agent_id, room_id):
    flagged = make_memory(agent_id, room_id)
    flagged.unique = False
    await sqlite_store.create_memory(flagged, MESSAGES)
    await sqlite_store.create_memory(make_memory(agent_id, room_id), MESSAGES)

    assert await sqlite_store.count_memories(room_id, MESSAGES) == 1
    assert await sqlite_store.count_memories(room_id, MESSAGES, unique=False) == 2


@pytest.mark.asyncio
async def test_table_name_required(sqlite_store, room_id):
    with pytest.raises(ValueError, match="table_name is required"):
        await sqlite_store.count_memories(room_id, "")


@pytest.mark.asyncio
async def test_cache_rows(sqlite_store, agent_id):
    """Test get, set and delete of agent-scoped cache rows."""
    assert await sqlite_store.get_cache(agent_id=agent_id, key="k") is None
    assert await sqlite_store.set_cache(agent_id=agent_id, key="k", value="v")
    assert await sqlite_store.get_cache(agent_id=agent_id, key="k") == "v"
    assert await sqlite_store.delete_cache(agent_id=agent_id, key="k") is True
    assert await sqlite_store.delete_cache(agent_id=agent_id, key="k") is False


@pytest.mark.asyncio
async def test_ensure_connection_is_idempotent(tmp_path, agent_id, room_id):
    """Test that registering the same participant twice leaves one row per table."""
    path = tmp_path / "connections.db"
    store = SqliteMemoryStore(path)
    for _ in range(2):
        await store.ensure_connection(
            user_id=agent_id, room_id=room_id, username="alice", name=None, source="lens"
        )
    await store.close()

    conn = sqlite3.connect(path)
    try:
        accounts = conn.execute("SELECT name FROM accounts").fetchall()
        rooms = conn.execute("SELECT id FROM rooms").fetchall()
        participants = conn.execute("SELECT * FROM participants").fetchall()
    finally:
        conn.close()

    assert accounts == [("alice",)]
    assert rooms == [(str(room_id),)]
    assert len(participants) == 1


@pytest.mark.asyncio
async def test_data_survives_reopen(tmp_path, agent_id, room_id):
    path = tmp_path / "recall.db"
    memory = make_memory(agent_id, room_id, [1.0, 2.0])

    store = SqliteMemoryStore(path)
    await store.create_memory(memory, MESSAGES)
    await store.close()

    reopened = SqliteMemoryStore(path)
    stored = await reopened.get_memory_by_id(memory.id)
    await reopened.close()

    assert stored.embedding == pytest.approx([1.0, 2.0])


@pytest.mark.asyncio
async def test_waiting_on_a_locked_database_keeps_the_loop_running(tmp_path, agent_id, room_id):
    """Test that a write waiting out another connection's lock does not stall other tasks.

    The lock is released by a loop callback, so the write only completes if
    the loop kept running while the store waited.
    """
    path = tmp_path / "locked.db"
    store = SqliteMemoryStore(path, timeout=5.0)
    await store.count_memories(room_id, MESSAGES)

    holder = sqlite3.connect(path, isolation_level=None)
    holder.execute("BEGIN EXCLUSIVE")

    ticks = 0

    async def tick():
        nonlocal ticks
        while True:
            await asyncio.sleep(0.02)
            ticks += 1

    ticker = asyncio.create_task(tick())
    asyncio.get_running_loop().call_later(0.3, holder.execute, "ROLLBACK")
    try:
        await store.create_memory(make_memory(agent_id, room_id), MESSAGES)
        assert ticks >= 5
        assert await store.count_memories(room_id, MESSAGES) == 1
    finally:
        ticker.cancel()
        holder.close()
        await store.close()


@pytest.mark.asyncio
async def test_similarity_matches_in_memory_backend(sqlite_store, agent_id, room_id):
    """Test that both backends score the same vectors identically.

    The vectors are not exactly representable in float32.
    """
    in_memory = InMemoryStore()
    vectors = [[0.1, 0.7, 0.3], [0.33, 0.2, 0.9], [0.61, 0.05, 0.47]]
    memories = [make_memory(agent_id, room_id, v) for v in vectors]
    for memory in memories:
        await sqlite_store.create_memory(memory, MESSAGES)
        await in_memory.create_memory(memory, MESSAGES)

    query = [0.3, 0.6, 0.2]
    from_sqlite = await sqlite_store.search_memories_by_embedding(
        query, table_name=MESSAGES, agent_id=agent_id
    )
    from_memory = await in_memory.search_memories_by_embedding(
        query, table_name=MESSAGES, agent_id=agent_id
    )

    assert [m.id for m in from_sqlite] == [m.id for m in from_memory]
    assert [m.similarity for m in from_sqlite] == [m.similarity for m in from_memory]
    assert [m.embedding for m in from_sqlite] == [m.embedding for m in from_memory]
