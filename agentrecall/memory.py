"""Table-scoped access to a memory store that owns the write path."""

from __future__ import annotations

import uuid
from collections.abc import Sequence
from typing import TYPE_CHECKING

from loguru import logger

from .storage.base import require_table

if TYPE_CHECKING:
    from loguru import Logger

    from .duplicates import DuplicateGate
    from .embedding import Embedder
    from .models import Memory, Vector
    from .storage.base import MemoryStore

__all__ = ["MemoryManager", "MESSAGES", "DOCUMENTS", "FRAGMENTS"]

MESSAGES = "messages"
DOCUMENTS = "documents"
FRAGMENTS = "fragments"


class MemoryManager:
    """Reads and writes one logical table ("messages", "documents", "fragments").

    ``create_memory`` computes ``unique`` exactly once: a memory whose id is
    already stored keeps its original flag and timestamp, otherwise the
    duplicate gate decides.
    """

    def __init__(
        self,
        store: MemoryStore,
        table_name: str,
        *,
        gate: DuplicateGate | None = None,
        embedder: Embedder | None = None,
        log: Logger | None = None,
    ) -> None:
        self.store = store
        self.table_name = require_table(table_name)
        self.gate = gate
        self.embedder = embedder
        self._log = log or logger.bind(component=f"memory.{table_name}")

    async def add_embedding_to_memory(self, memory: Memory) -> Memory:
        """Embed ``content.text`` when the memory has no embedding yet."""
        if memory.embedding is not None:
            return memory
        if self.embedder is None:
            raise ValueError(f"No embedder configured for '{self.table_name}'")
        memory.embedding = await self.embedder.embed(memory.content.text)
        return memory

    async def create_memory(self, memory: Memory) -> Memory:
        existing = await self.store.get_memory_by_id(memory.id)
        if existing is not None:
            memory.unique = existing.unique
            memory.created_at = existing.created_at
        elif self.gate is not None:
            memory.unique = await self.gate.is_unique(
                memory.embedding,
                agent_id=memory.agent_id,
                room_id=memory.room_id,
                table_name=self.table_name,
            )
        await self.store.create_memory(memory, self.table_name)
        self._log.debug(f"Stored memory '{memory.id}' (unique={memory.unique})")
        return memory

    async def get_memory_by_id(self, memory_id: uuid.UUID) -> Memory | None:
        return await self.store.get_memory_by_id(memory_id)

    async def search_memories_by_embedding(
        self,
        embedding: Vector,
        *,
        agent_id: uuid.UUID,
        room_id: uuid.UUID | None = None,
        match_threshold: float | None = None,
        count: int | None = None,
        unique: bool = False,
    ) -> list[Memory]:
        return await self.store.search_memories_by_embedding(
            embedding,
            table_name=self.table_name,
            agent_id=agent_id,
            room_id=room_id,
            match_threshold=match_threshold,
            count=count,
            unique=unique,
        )

    async def get_memories_by_room_ids(
        self, *, agent_id: uuid.UUID, room_ids: Sequence[uuid.UUID]
    ) -> list[Memory]:
        return await self.store.get_memories_by_room_ids(
            table_name=self.table_name, agent_id=agent_id, room_ids=room_ids
        )

    async def get_memories(
        self, *, room_id: uuid.UUID, count: int | None = None, unique: bool = False
    ) -> list[Memory]:
        return await self.store.get_memories(
            room_id=room_id, table_name=self.table_name, count=count, unique=unique
        )

    async def remove_memory(self, memory_id: uuid.UUID) -> None:
        await self.store.remove_memory(memory_id, self.table_name)

    async def remove_all_memories(self, room_id: uuid.UUID) -> None:
        await self.store.remove_all_memories(room_id, self.table_name)

    async def count_memories(self, room_id: uuid.UUID, unique: bool = True) -> int:
        return await self.store.count_memories(room_id, self.table_name, unique)
