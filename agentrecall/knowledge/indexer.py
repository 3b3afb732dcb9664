"""Knowledge ingestion and retrieval over document and fragment tables."""

from __future__ import annotations

import asyncio
import uuid
from typing import TYPE_CHECKING

from loguru import logger

from ..embedding import zero_vector
from ..ids import fragment_id
from ..models import Content, KnowledgeItem, Memory
from .text import preprocess, split_chunks

if TYPE_CHECKING:
    from loguru import Logger

    from ..embedding import Embedder
    from ..memory import MemoryManager

__all__ = ["KnowledgeIndexer"]


class KnowledgeIndexer:
    """Stores documents whole and searches them through embedded fragments.

    Documents are written with a zero embedding; only their fragments are
    searched by vector. Fragment ids hash the document id with the chunk
    text, so re-indexing the same document rewrites the same rows.
    """

    def __init__(
        self,
        documents: MemoryManager,
        fragments: MemoryManager,
        embedder: Embedder,
        *,
        agent_id: uuid.UUID,
        dimension: int,
        match_threshold: float = 0.1,
        count: int = 5,
        log: Logger | None = None,
    ) -> None:
        self.documents = documents
        self.fragments = fragments
        self.embedder = embedder
        self.agent_id = agent_id
        self.dimension = dimension
        self.match_threshold = match_threshold
        self.count = count
        self._log = log or logger.bind(component="knowledge")

    async def index(self, item: KnowledgeItem, chunk_size: int = 512, bleed: int = 20) -> None:
        await self.documents.create_memory(
            Memory(
                id=item.id,
                agent_id=self.agent_id,
                user_id=self.agent_id,
                room_id=self.agent_id,
                content=item.content,
                embedding=zero_vector(self.dimension),
            )
        )

        chunks = split_chunks(preprocess(item.content.text), chunk_size, bleed)
        self._log.info(f"Indexing document '{item.id}' as {len(chunks)} fragments")
        for chunk in chunks:
            embedding = await self.embedder.embed(chunk)
            await self.fragments.create_memory(
                Memory(
                    id=fragment_id(item.id, chunk),
                    agent_id=self.agent_id,
                    user_id=self.agent_id,
                    room_id=self.agent_id,
                    content=Content(text=chunk, source=str(item.id)),
                    embedding=embedding,
                )
            )

    async def retrieve(self, query: Memory) -> list[KnowledgeItem]:
        """Documents whose fragments match the query text, best match first."""
        processed = preprocess(query.content.text)
        if not processed:
            self._log.warning("Empty processed text for knowledge query")
            return []

        embedding = await self.embedder.embed(processed)
        fragments = await self.fragments.search_memories_by_embedding(
            embedding,
            agent_id=self.agent_id,
            room_id=self.agent_id,
            match_threshold=self.match_threshold,
            count=self.count,
        )

        sources: list[uuid.UUID] = []
        for fragment in fragments:
            self._log.debug(
                f"Matched fragment '{fragment.content.text}' with similarity {fragment.similarity}"
            )
            try:
                source = uuid.UUID(str(fragment.content.source))
            except ValueError:
                self._log.warning(f"Fragment '{fragment.id}' has no valid source document")
                continue
            if source not in sources:
                sources.append(source)

        documents = await asyncio.gather(
            *(self.documents.get_memory_by_id(source) for source in sources)
        )
        return [
            KnowledgeItem(id=document.id, content=document.content)
            for document in documents
            if document is not None
        ]
