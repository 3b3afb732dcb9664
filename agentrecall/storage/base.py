"""
Storage contract shared by every memory store backend.

A store persists memories into named tables ("messages", "documents",
"fragments", ...) and answers similarity searches over their embeddings.
Writes are upserts keyed by the memory id, so replaying the same external
item collapses onto a single row instead of relying on locks.
"""

from __future__ import annotations

import uuid
from abc import ABC, abstractmethod
from collections.abc import Sequence
from typing import Protocol

from ..models import Memory, Vector
from ..similarity import cosine_similarity, to_float32

__all__ = [
    "MemoryStore",
    "ConnectionRegistry",
    "require_table",
    "rank_by_similarity",
]


def require_table(table_name: str | None) -> str:
    if not table_name:
        raise ValueError("table_name is required")
    return table_name


def rank_by_similarity(
    embedding: Vector,
    candidates: Sequence[Memory],
    match_threshold: float | None = None,
    count: int | None = None,
) -> list[Memory]:
    """Score candidates against ``embedding``, keep those >= threshold, best first.

    The query is rounded to float32 like the stored vectors, so every backend
    scores the same pair identically.
    """
    embedding = to_float32(embedding)
    scored = []
    for memory in candidates:
        if memory.embedding is None:
            continue
        score = cosine_similarity(embedding, memory.embedding)
        if match_threshold is not None and score < match_threshold:
            continue
        scored.append(memory.model_copy(update={"similarity": score}))
    scored.sort(key=lambda m: m.similarity, reverse=True)
    return scored[:count] if count else scored


class ConnectionRegistry(Protocol):
    """Registers the account, room and participant behind an observed message."""

    async def ensure_connection(
        self,
        *,
        user_id: uuid.UUID,
        room_id: uuid.UUID,
        username: str,
        name: str | None,
        source: str,
    ) -> None: ...


class MemoryStore(ABC):
    """Abstract base class for a memory store backend."""

    @abstractmethod
    async def create_memory(self, memory: Memory, table_name: str) -> None:
        """Insert or replace a memory by id."""
        pass

    @abstractmethod
    async def get_memory_by_id(self, memory_id: uuid.UUID) -> Memory | None:
        pass

    @abstractmethod
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
        """Memories ordered by descending similarity, each with ``similarity`` set."""
        pass

    @abstractmethod
    async def get_memories_by_room_ids(
        self,
        *,
        table_name: str,
        agent_id: uuid.UUID,
        room_ids: Sequence[uuid.UUID],
    ) -> list[Memory]:
        pass

    @abstractmethod
    async def get_memories(
        self,
        *,
        room_id: uuid.UUID,
        table_name: str,
        count: int | None = None,
        unique: bool = False,
    ) -> list[Memory]:
        """Most recent first."""
        pass

    @abstractmethod
    async def remove_memory(self, memory_id: uuid.UUID, table_name: str) -> None:
        pass

    @abstractmethod
    async def remove_all_memories(self, room_id: uuid.UUID, table_name: str) -> None:
        pass

    @abstractmethod
    async def count_memories(
        self, room_id: uuid.UUID, table_name: str, unique: bool = True
    ) -> int:
        pass

    @abstractmethod
    async def ensure_connection(
        self,
        *,
        user_id: uuid.UUID,
        room_id: uuid.UUID,
        username: str,
        name: str | None,
        source: str,
    ) -> None:
        """Register the account and its participation in the room (idempotent)."""
        pass

    async def close(self) -> None:
        """Release backend resources."""
