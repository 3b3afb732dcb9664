"""Soft near-duplicate check performed when a memory with an embedding is written."""

from __future__ import annotations

import uuid
from typing import TYPE_CHECKING

from loguru import logger

from .models import Vector
from .storage.base import require_table

if TYPE_CHECKING:
    from loguru import Logger

    from .storage.base import MemoryStore

__all__ = ["DuplicateGate", "DEFAULT_MATCH_THRESHOLD"]

DEFAULT_MATCH_THRESHOLD = 0.95


class DuplicateGate:
    """Decides the ``unique`` flag of a new memory.

    A memory is a near-duplicate when an existing memory in the same
    (agent, room, table) partition reaches ``threshold`` similarity. The
    gate only flags; the caller still writes the memory. Search failures are
    not caught here, so they abort the enclosing write.
    """

    def __init__(
        self,
        store: MemoryStore,
        threshold: float = DEFAULT_MATCH_THRESHOLD,
        sample_count: int = 1,
        log: Logger | None = None,
    ) -> None:
        self.store = store
        self.threshold = threshold
        self.sample_count = sample_count
        self._log = log or logger.bind(component="duplicate_gate")

    async def is_unique(
        self,
        embedding: Vector | None,
        *,
        agent_id: uuid.UUID,
        room_id: uuid.UUID,
        table_name: str,
    ) -> bool:
        require_table(table_name)
        if embedding is None:
            return True

        neighbors = await self.store.search_memories_by_embedding(
            embedding,
            table_name=table_name,
            agent_id=agent_id,
            room_id=room_id,
            match_threshold=self.threshold,
            count=self.sample_count,
        )
        duplicates = [
            m for m in neighbors if m.similarity is not None and m.similarity >= self.threshold
        ]
        if duplicates:
            self._log.debug(
                f"Near-duplicate of '{duplicates[0].id}' in '{table_name}' "
                f"(similarity {duplicates[0].similarity:.3f})"
            )
        return not duplicates
