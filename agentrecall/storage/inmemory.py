"""In-process memory store with linear-scan similarity search."""

from __future__ import annotations

import uuid
from collections.abc import Sequence
from typing import Any

from ..models import Memory, Vector
from ..similarity import to_float32
from .base import MemoryStore, rank_by_similarity, require_table

__all__ = ["InMemoryStore"]


class InMemoryStore(MemoryStore):
    """Keeps memories, cache rows and connections in dicts for one process.

    Embeddings are kept at float32 precision, matching the persistent stores.
    """

    def __init__(self) -> None:
        self.memories: dict[uuid.UUID, tuple[str, Memory]] = {}
        self.cache: dict[tuple[uuid.UUID, str], str] = {}
        self.accounts: dict[uuid.UUID, dict[str, Any]] = {}
        self.rooms: set[uuid.UUID] = set()
        self.participants: dict[uuid.UUID, set[uuid.UUID]] = {}

    def _table(self, table_name: str) -> list[Memory]:
        return [m for t, m in self.memories.values() if t == table_name]

    async def create_memory(self, memory: Memory, table_name: str) -> None:
        require_table(table_name)
        embedding = to_float32(memory.embedding) if memory.embedding is not None else None
        stored = memory.model_copy(update={"similarity": None, "embedding": embedding}, deep=True)
        self.memories[memory.id] = (table_name, stored)

    async def get_memory_by_id(self, memory_id: uuid.UUID) -> Memory | None:
        row = self.memories.get(memory_id)
        return row[1].model_copy(deep=True) if row else None

    async def search_memories_by_embedding(
        self,
        embedding: Vector,
        *,
        table_name: str,
        agent_id: uuid.UUID,
        room_id: uuid.UUID | None = None,
        match_threshold: float | None = None,
        count: int | None = None,
        unique: bool = False,
    ) -> list[Memory]:
        require_table(table_name)
        candidates = [
            m
            for m in self._table(table_name)
            if m.agent_id == agent_id
            and (room_id is None or m.room_id == room_id)
            and (not unique or m.unique)
        ]
        return rank_by_similarity(embedding, candidates, match_threshold, count)

    async def get_memories_by_room_ids(
        self,
        *,
        table_name: str,
        agent_id: uuid.UUID,
        room_ids: Sequence[uuid.UUID],
    ) -> list[Memory]:
        require_table(table_name)
        rooms = set(room_ids)
        return [
            m.model_copy(deep=True)
            for m in self._table(table_name)
            if m.agent_id == agent_id and m.room_id in rooms
        ]

    async def get_memories(
        self,
        *,
        room_id: uuid.UUID,
        table_name: str,
        count: int | None = None,
        unique: bool = False,
    ) -> list[Memory]:
        require_table(table_name)
        rows = [
            m.model_copy(deep=True)
            for m in self._table(table_name)
            if m.room_id == room_id and (not unique or m.unique)
        ]
        rows.sort(key=lambda m: m.created_at, reverse=True)
        return rows[:count] if count else rows

    async def remove_memory(self, memory_id: uuid.UUID, table_name: str) -> None:
        require_table(table_name)
        row = self.memories.get(memory_id)
        if row and row[0] == table_name:
            del self.memories[memory_id]

    async def remove_all_memories(self, room_id: uuid.UUID, table_name: str) -> None:
        require_table(table_name)
        doomed = [
            mid
            for mid, (t, m) in self.memories.items()
            if t == table_name and m.room_id == room_id
        ]
        for mid in doomed:
            del self.memories[mid]

    async def count_memories(
        self, room_id: uuid.UUID, table_name: str, unique: bool = True
    ) -> int:
        require_table(table_name)
        return sum(
            1
            for m in self._table(table_name)
            if m.room_id == room_id and (not unique or m.unique)
        )

    # ------------------ cache -------------------
    async def get_cache(self, *, agent_id: uuid.UUID, key: str) -> str | None:
        return self.cache.get((agent_id, key))

    async def set_cache(self, *, agent_id: uuid.UUID, key: str, value: str) -> bool:
        self.cache[(agent_id, key)] = value
        return True

    async def delete_cache(self, *, agent_id: uuid.UUID, key: str) -> bool:
        return self.cache.pop((agent_id, key), None) is not None

    # ------------------ connections -------------
    async def ensure_connection(
        self,
        *,
        user_id: uuid.UUID,
        room_id: uuid.UUID,
        username: str,
        name: str | None,
        source: str,
    ) -> None:
        self.accounts.setdefault(
            user_id, {"username": username, "name": name or username, "source": source}
        )
        self.rooms.add(room_id)
        self.participants.setdefault(room_id, set()).add(user_id)
