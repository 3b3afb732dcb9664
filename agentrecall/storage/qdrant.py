"""Handles interaction with the Qdrant vector database."""

from __future__ import annotations

import uuid
from collections.abc import Sequence
from datetime import UTC, datetime
from typing import TYPE_CHECKING, Any

from loguru import logger
from qdrant_client import AsyncQdrantClient, models

from ..circuit_breaker import CircuitBreaker
from ..embedding import zero_vector
from ..models import Content, Memory, Vector
from .base import MemoryStore, require_table

if TYPE_CHECKING:
    from ..config import RecallConfig

__all__ = ["QdrantMemoryStore"]

SCROLL_PAGE_SIZE = 256


class QdrantMemoryStore(MemoryStore):
    """Manages all communication with the Qdrant collection.

    Every memory is one point whose id is the memory id, so writes are
    upserts. The logical table lives in the ``type`` payload field. Memories
    without an embedding are stored with a zero vector and
    ``has_embedding=False`` so similarity search skips them.
    """

    def __init__(
        self,
        config: RecallConfig,
        client: AsyncQdrantClient | None = None,
        breaker: CircuitBreaker | None = None,
    ) -> None:
        self.config = config
        self.collection_name = config.collection_name
        self.dimension = config.embedding_dimension
        self.client = client or AsyncQdrantClient(
            url=config.qdrant_url,
            api_key=config.qdrant_api_key,
            prefer_grpc=config.prefer_grpc,
            grpc_port=config.grpc_port,
        )
        self.breaker = breaker or CircuitBreaker()
        self.accounts: dict[uuid.UUID, dict[str, Any]] = {}
        self.rooms: set[uuid.UUID] = set()
        self.participants: dict[uuid.UUID, set[uuid.UUID]] = {}

    async def initialize(self) -> None:
        """Ensures the collection and its payload indexes exist."""
        try:
            exists = await self.client.collection_exists(self.collection_name)
            if exists:
                logger.info(f"Collection '{self.collection_name}' already exists.")
            else:
                logger.info(f"Creating collection '{self.collection_name}'.")
                await self.client.create_collection(
                    collection_name=self.collection_name,
                    vectors_config=models.VectorParams(
                        size=self.dimension, distance=models.Distance.COSINE
                    ),
                )
        except Exception as e:
            logger.error(f"Error checking/creating collection: {e}")
            raise
        await self.ensure_indexes()

    async def ensure_indexes(self) -> None:
        """Creates indexes for the fields every query filters on."""
        desired_indexes = {
            "type": models.PayloadSchemaType.KEYWORD,
            "agent_id": models.PayloadSchemaType.KEYWORD,
            "room_id": models.PayloadSchemaType.KEYWORD,
            "user_id": models.PayloadSchemaType.KEYWORD,
            "unique": models.PayloadSchemaType.BOOL,
            "has_embedding": models.PayloadSchemaType.BOOL,
            "created_at": models.PayloadSchemaType.FLOAT,
        }
        try:
            collection_info = await self.client.get_collection(self.collection_name)
            existing_indexes = (
                set(collection_info.payload_schema.keys())
                if collection_info.payload_schema
                else set()
            )
            missing_indexes = {
                k: v for k, v in desired_indexes.items() if k not in existing_indexes
            }
            if not missing_indexes:
                logger.info("All required payload indexes are in place.")
                return

            logger.info(f"Creating missing indexes: {list(missing_indexes.keys())}")
            for field_name, schema_type in missing_indexes.items():
                await self.client.create_payload_index(
                    collection_name=self.collection_name,
                    field_name=field_name,
                    field_schema=schema_type,
                    wait=True,
                )
            logger.info("Successfully created payload indexes.")
        except Exception as e:
            logger.error(f"Failed to ensure indexes: {e}")

    async def close(self) -> None:
        """Closes the connection to Qdrant."""
        await self.client.close()

    # ------------------ conversion --------------
    def _to_point(self, memory: Memory, table_name: str) -> models.PointStruct:
        return models.PointStruct(
            id=str(memory.id),
            vector=memory.embedding if memory.embedding is not None else zero_vector(self.dimension),
            payload={
                "type": table_name,
                "agent_id": str(memory.agent_id),
                "user_id": str(memory.user_id),
                "room_id": str(memory.room_id),
                "content": memory.content.model_dump(mode="json"),
                "unique": memory.unique,
                "has_embedding": memory.embedding is not None,
                "created_at": memory.created_at.timestamp(),
            },
        )

    def _to_memory(self, point: Any) -> Memory:
        payload = point.payload or {}
        vector = point.vector if payload.get("has_embedding") else None
        return Memory(
            id=uuid.UUID(str(point.id)),
            agent_id=uuid.UUID(payload["agent_id"]),
            user_id=uuid.UUID(payload["user_id"]),
            room_id=uuid.UUID(payload["room_id"]),
            content=Content.model_validate(payload.get("content", {})),
            embedding=list(vector) if vector is not None else None,
            created_at=datetime.fromtimestamp(payload["created_at"], UTC),
            unique=payload.get("unique", True),
            similarity=getattr(point, "score", None),
        )

    @staticmethod
    def _match(key: str, value: Any) -> models.FieldCondition:
        return models.FieldCondition(key=key, match=models.MatchValue(value=value))

    async def _scroll_all(self, scroll_filter: models.Filter) -> list[Memory]:
        memories: list[Memory] = []
        offset = None
        while True:
            points, offset = await self.breaker.call(
                lambda: self.client.scroll(
                    collection_name=self.collection_name,
                    scroll_filter=scroll_filter,
                    limit=SCROLL_PAGE_SIZE,
                    offset=offset,
                    with_payload=True,
                    with_vectors=True,
                )
            )
            memories.extend(self._to_memory(p) for p in points)
            if offset is None:
                return memories

    # ------------------ memories ----------------
    async def create_memory(self, memory: Memory, table_name: str) -> None:
        require_table(table_name)
        point = self._to_point(memory, table_name)
        await self.breaker.call(
            lambda: self.client.upsert(
                collection_name=self.collection_name, points=[point], wait=True
            )
        )
        logger.debug(f"Upserted memory '{memory.id}' into '{table_name}'")

    async def get_memory_by_id(self, memory_id: uuid.UUID) -> Memory | None:
        points = await self.breaker.call(
            lambda: self.client.retrieve(
                collection_name=self.collection_name,
                ids=[str(memory_id)],
                with_payload=True,
                with_vectors=True,
            )
        )
        return self._to_memory(points[0]) if points else None

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
        must = [
            self._match("type", table_name),
            self._match("agent_id", str(agent_id)),
            self._match("has_embedding", True),
        ]
        if room_id is not None:
            must.append(self._match("room_id", str(room_id)))
        if unique:
            must.append(self._match("unique", True))

        response = await self.breaker.call(
            lambda: self.client.query_points(
                collection_name=self.collection_name,
                query=list(embedding),
                query_filter=models.Filter(must=must),
                limit=count or 10,
                score_threshold=match_threshold,
                with_payload=True,
                with_vectors=True,
            )
        )
        return [self._to_memory(p) for p in response.points]

    async def get_memories_by_room_ids(
        self,
        *,
        table_name: str,
        agent_id: uuid.UUID,
        room_ids: Sequence[uuid.UUID],
    ) -> list[Memory]:
        require_table(table_name)
        if not room_ids:
            return []
        scroll_filter = models.Filter(
            must=[
                self._match("type", table_name),
                self._match("agent_id", str(agent_id)),
                models.FieldCondition(
                    key="room_id", match=models.MatchAny(any=[str(r) for r in room_ids])
                ),
            ]
        )
        memories = await self._scroll_all(scroll_filter)
        memories.sort(key=lambda m: m.created_at, reverse=True)
        return memories

    async def get_memories(
        self,
        *,
        room_id: uuid.UUID,
        table_name: str,
        count: int | None = None,
        unique: bool = False,
    ) -> list[Memory]:
        require_table(table_name)
        must = [self._match("type", table_name), self._match("room_id", str(room_id))]
        if unique:
            must.append(self._match("unique", True))
        memories = await self._scroll_all(models.Filter(must=must))
        memories.sort(key=lambda m: m.created_at, reverse=True)
        return memories[:count] if count else memories

    async def remove_memory(self, memory_id: uuid.UUID, table_name: str) -> None:
        require_table(table_name)
        selector = models.FilterSelector(
            filter=models.Filter(
                must=[
                    models.HasIdCondition(has_id=[str(memory_id)]),
                    self._match("type", table_name),
                ]
            )
        )
        await self.breaker.call(
            lambda: self.client.delete(
                collection_name=self.collection_name, points_selector=selector, wait=True
            )
        )

    async def remove_all_memories(self, room_id: uuid.UUID, table_name: str) -> None:
        require_table(table_name)
        selector = models.FilterSelector(
            filter=models.Filter(
                must=[self._match("type", table_name), self._match("room_id", str(room_id))]
            )
        )
        await self.breaker.call(
            lambda: self.client.delete(
                collection_name=self.collection_name, points_selector=selector, wait=True
            )
        )
        logger.info(f"Removed all '{table_name}' memories for room '{room_id}'")

    async def count_memories(
        self, room_id: uuid.UUID, table_name: str, unique: bool = True
    ) -> int:
        require_table(table_name)
        must = [self._match("type", table_name), self._match("room_id", str(room_id))]
        if unique:
            must.append(self._match("unique", True))
        result = await self.breaker.call(
            lambda: self.client.count(
                collection_name=self.collection_name,
                count_filter=models.Filter(must=must),
                exact=True,
            )
        )
        return result.count

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
        # Qdrant holds no relational tables; connections are process-local.
        self.accounts.setdefault(
            user_id, {"username": username, "name": name or username, "source": source}
        )
        self.rooms.add(room_id)
        self.participants.setdefault(room_id, set()).add(user_id)
