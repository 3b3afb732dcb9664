"""Composition root: builds one agent's memory stack from a RecallConfig."""

from __future__ import annotations

from dataclasses import dataclass

from loguru import logger

from .cache import CacheAdapter, CacheManager, DbCacheAdapter, FsCacheAdapter, MemoryCacheAdapter
from .config import CacheBackend, RecallConfig, StorageBackend
from .duplicates import DuplicateGate
from .embedding import CachedEmbedder, Embedder, FastEmbedEmbedder
from .knowledge import KnowledgeIndexer
from .log import component_logger, configure_logging
from .memory import DOCUMENTS, FRAGMENTS, MESSAGES, MemoryManager
from .models import KnowledgeItem
from .platform import CachedPlatformClient, PlatformClient
from .storage import InMemoryStore, MemoryStore, QdrantMemoryStore, SqliteMemoryStore
from .threads import ThreadBuilder

__all__ = ["MemoryRuntime", "create_store", "create_cache_adapter"]


def create_store(config: RecallConfig) -> MemoryStore:
    match config.storage_backend:
        case StorageBackend.SQLITE.value:
            return SqliteMemoryStore(config.sqlite_path, log=component_logger("sqlite_store"))
        case StorageBackend.QDRANT.value:
            return QdrantMemoryStore(config)
        case _:
            return InMemoryStore()


def create_cache_adapter(config: RecallConfig, store: MemoryStore) -> CacheAdapter:
    match config.cache_backend:
        case CacheBackend.FS.value:
            return FsCacheAdapter(config.cache_dir, log=component_logger("fs_cache"))
        case CacheBackend.DB.value:
            if not isinstance(store, (InMemoryStore, SqliteMemoryStore)):
                raise ValueError(
                    f"Cache backend 'db' needs a store with a cache table, not '{config.storage_backend}'"
                )
            return DbCacheAdapter(store, config.agent_uuid)
        case _:
            return MemoryCacheAdapter()


@dataclass
class MemoryRuntime:
    """Everything one agent process shares: store, cache, managers, indexer."""

    config: RecallConfig
    store: MemoryStore
    cache: CacheManager
    embedder: Embedder
    messages: MemoryManager
    documents: MemoryManager
    fragments: MemoryManager
    knowledge: KnowledgeIndexer

    @classmethod
    async def create(
        cls, config: RecallConfig, embedder: Embedder | None = None
    ) -> MemoryRuntime:
        configure_logging(config.log_level, debug=config.debug)
        agent_id = config.agent_uuid

        store = create_store(config)
        if isinstance(store, QdrantMemoryStore):
            await store.initialize()

        cache = CacheManager(create_cache_adapter(config, store), log=component_logger("cache"))
        embedder = CachedEmbedder(
            embedder or FastEmbedEmbedder(config.embedding_model),
            cache,
            namespace=config.embedding_model,
        )
        gate = DuplicateGate(
            store, threshold=config.match_threshold, log=component_logger("duplicate_gate")
        )

        def manager(table_name: str) -> MemoryManager:
            return MemoryManager(
                store,
                table_name,
                gate=gate,
                embedder=embedder,
                log=component_logger(f"memory.{table_name}"),
            )

        documents, fragments = manager(DOCUMENTS), manager(FRAGMENTS)
        knowledge = KnowledgeIndexer(
            documents,
            fragments,
            embedder,
            agent_id=agent_id,
            dimension=config.embedding_dimension,
            log=component_logger("knowledge"),
        )
        logger.info(
            f"Memory runtime ready for agent {agent_id} "
            f"(storage={config.storage_backend}, cache={config.cache_backend})"
        )
        return cls(
            config=config,
            store=store,
            cache=cache,
            embedder=embedder,
            messages=manager(MESSAGES),
            documents=documents,
            fragments=fragments,
            knowledge=knowledge,
        )

    def thread_builder(self, source: str) -> ThreadBuilder:
        """A thread builder persisting ``source`` nodes into the messages table."""
        return ThreadBuilder(
            self.messages,
            self.store,
            agent_id=self.config.agent_uuid,
            source=source,
            log=component_logger(f"threads.{source}"),
        )

    def cached_client(
        self, client: PlatformClient, source: str, ttl: float | None = None
    ) -> CachedPlatformClient:
        """Wrap a platform client so every node it returns lands in the shared cache."""
        return CachedPlatformClient(
            client, self.cache, source=source, ttl=ttl, log=component_logger(f"platform.{source}")
        )

    async def index_knowledge(self, item: KnowledgeItem) -> None:
        await self.knowledge.index(item, self.config.chunk_size, self.config.bleed)

    async def close(self) -> None:
        await self.store.close()
