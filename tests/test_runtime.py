"""
End-to-end tests for the composed MemoryRuntime and embedding cache.
"""
from unittest.mock import MagicMock

import pytest

from agentrecall import MemoryRuntime, RecallConfig
from agentrecall.cache import CacheManager, DbCacheAdapter, FsCacheAdapter, MemoryCacheAdapter
from agentrecall.embedding import CachedEmbedder, zero_vector
from agentrecall.ids import string_to_uuid
from agentrecall.models import Content, KnowledgeItem, Memory
from agentrecall.runtime import create_cache_adapter, create_store
from agentrecall.storage import InMemoryStore, QdrantMemoryStore, SqliteMemoryStore
from agentrecall.threads import node_memory_id


def config(**overrides):
    values = {"agent_id": "runtime-agent", "embedding_dimension": 26, "chunk_size": 8, "bleed": 2}
    values.update(overrides)
    return RecallConfig(**values)


def test_store_per_backend(tmp_path):
    """Test that the configured storage backend picks the store class."""
    assert isinstance(create_store(config()), InMemoryStore)
    sqlite = create_store(config(storage_backend="sqlite", sqlite_path=str(tmp_path / "a.db")))
    assert isinstance(sqlite, SqliteMemoryStore)
    assert sqlite.path == str(tmp_path / "a.db")


def test_cache_adapter_per_backend(tmp_path):
    store = InMemoryStore()
    assert isinstance(create_cache_adapter(config(), store), MemoryCacheAdapter)
    fs = create_cache_adapter(config(cache_backend="fs", cache_dir=str(tmp_path)), store)
    assert isinstance(fs, FsCacheAdapter)
    db = create_cache_adapter(config(cache_backend="db"), store)
    assert isinstance(db, DbCacheAdapter)
    assert db.agent_id == string_to_uuid("runtime-agent")


def test_db_cache_needs_cache_table():
    """Test that a db cache over a store without cache rows is refused."""
    qdrant = QdrantMemoryStore(config(storage_backend="qdrant"), client=MagicMock())
    with pytest.raises(ValueError, match="cache table"):
        create_cache_adapter(config(storage_backend="qdrant", cache_backend="db"), qdrant)


@pytest.mark.asyncio
async def test_identical_text_is_embedded_once(embedder):
    """Test that the embedding cache serves repeated text without calling the model."""
    cached = CachedEmbedder(embedder, CacheManager(MemoryCacheAdapter()), namespace="m")

    first = await cached.embed("abc")
    second = await cached.embed("abc")
    await cached.embed("xyz")

    assert first == second
    assert embedder.calls == ["abc", "xyz"]


def test_embedding_key_is_namespaced(embedder):
    cached = CachedEmbedder(embedder, CacheManager(MemoryCacheAdapter()), namespace="m")
    assert cached.cache_key("abc").startswith("embedding/m/")
    assert cached.cache_key("abc") != cached.cache_key("abd")


def test_zero_vector():
    assert zero_vector(3) == [0.0, 0.0, 0.0]


@pytest.mark.asyncio
async def test_knowledge_round_trip(embedder):
    """Test indexing and retrieving knowledge through the runtime."""
    runtime = await MemoryRuntime.create(config(), embedder=embedder)
    agent_id = runtime.config.agent_uuid
    item = KnowledgeItem(id=string_to_uuid("faq"), content=Content(text="bbbb cccc"))

    await runtime.index_knowledge(item)
    found = await runtime.knowledge.retrieve(
        Memory(
            id=string_to_uuid("q"),
            agent_id=agent_id,
            user_id=agent_id,
            room_id=agent_id,
            content=Content(text="bbbb"),
        )
    )

    assert [k.id for k in found] == [item.id]
    await runtime.close()


@pytest.mark.asyncio
async def test_thread_builder_writes_messages(embedder, tmp_path, make_node, platform_client):
    """Test a thread walk persisted into SQLite with a db-backed cache."""
    runtime = await MemoryRuntime.create(
        config(
            storage_backend="sqlite",
            sqlite_path=str(tmp_path / "recall.db"),
            cache_backend="db",
        ),
        embedder=embedder,
    )
    nodes = [make_node("root"), make_node("reply", in_reply_to="root", minutes=1)]

    thread = await runtime.thread_builder("farcaster").build_thread(
        nodes[1], platform_client(nodes)
    )

    assert [n.id for n in thread] == ["root", "reply"]
    stored = await runtime.messages.get_memory_by_id(
        node_memory_id("reply", runtime.config.agent_uuid)
    )
    assert stored.content.source == "farcaster"
    assert stored.content.in_reply_to == node_memory_id("root", runtime.config.agent_uuid)
    await runtime.close()


@pytest.mark.asyncio
async def test_cached_client_shares_the_runtime_cache(embedder, make_node, platform_client):
    """Test that a wrapped platform client writes nodes into the runtime's cache."""
    runtime = await MemoryRuntime.create(config(), embedder=embedder)
    node = make_node("0x01")
    client = platform_client([node])

    cached = runtime.cached_client(client, "lens")
    assert await cached.get("0x01") == node
    assert await cached.get("0x01") == node

    assert client.calls == ["0x01"]
    assert await runtime.cache.get("lens/node/0x01") == node.model_dump(mode="json")
    await runtime.close()


@pytest.mark.asyncio
async def test_embeddings_go_through_cache(embedder):
    runtime = await MemoryRuntime.create(config(), embedder=embedder)

    await runtime.embedder.embed("same text")
    await runtime.embedder.embed("same text")

    assert embedder.calls == ["same text"]
    await runtime.close()
