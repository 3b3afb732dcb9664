"""
SQLite memory store.

Tables:
- memories: one row per memory, ``type`` holds the logical table name
- cache: agent-scoped key/value rows backing DbCacheAdapter
- accounts / rooms / participants: users seen in conversations

Embeddings are stored as packed float32 blobs and compared with a linear
cosine scan; this backend targets single-agent deployments and tests.
Statements run on aiosqlite's worker thread, so a locked database never
stalls the event loop.
"""

from __future__ import annotations

import asyncio
import json
import uuid
from collections.abc import Sequence
from datetime import UTC, datetime
from pathlib import Path
from typing import TYPE_CHECKING

import aiosqlite
import numpy as np
from loguru import logger

from ..models import Content, Memory, Vector
from .base import MemoryStore, rank_by_similarity, require_table

if TYPE_CHECKING:
    from loguru import Logger

__all__ = ["SqliteMemoryStore"]

SCHEMA = """
CREATE TABLE IF NOT EXISTS memories (
    id TEXT PRIMARY KEY,
    type TEXT NOT NULL,
    content TEXT NOT NULL,
    embedding BLOB,
    user_id TEXT NOT NULL,
    room_id TEXT NOT NULL,
    agent_id TEXT NOT NULL,
    "unique" INTEGER NOT NULL DEFAULT 1,
    created_at REAL NOT NULL
);
CREATE INDEX IF NOT EXISTS idx_memories_scope ON memories (type, agent_id, room_id);
CREATE TABLE IF NOT EXISTS cache (
    key TEXT NOT NULL,
    agent_id TEXT NOT NULL,
    value TEXT NOT NULL,
    created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP,
    PRIMARY KEY (key, agent_id)
);
CREATE TABLE IF NOT EXISTS accounts (
    id TEXT PRIMARY KEY,
    username TEXT NOT NULL,
    name TEXT,
    source TEXT,
    created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP
);
CREATE TABLE IF NOT EXISTS rooms (
    id TEXT PRIMARY KEY,
    created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP
);
CREATE TABLE IF NOT EXISTS participants (
    user_id TEXT NOT NULL,
    room_id TEXT NOT NULL,
    PRIMARY KEY (user_id, room_id)
);
"""

UPSERT_MEMORY = """
INSERT INTO memories (id, type, content, embedding, user_id, room_id, agent_id, "unique", created_at)
VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?)
ON CONFLICT(id) DO UPDATE SET
    type = excluded.type,
    content = excluded.content,
    embedding = excluded.embedding,
    user_id = excluded.user_id,
    room_id = excluded.room_id,
    agent_id = excluded.agent_id,
    "unique" = excluded."unique",
    created_at = excluded.created_at
"""


def _encode_embedding(embedding: Vector | None) -> bytes | None:
    if embedding is None:
        return None
    return np.asarray(embedding, dtype=np.float32).tobytes()


def _decode_embedding(blob: bytes | None) -> Vector | None:
    if blob is None:
        return None
    return np.frombuffer(blob, dtype=np.float32).astype(float).tolist()


class SqliteMemoryStore(MemoryStore):
    """SQLite-backed store; also serves the cache table and connection registry.

    The connection is opened, and the schema created, on first use.
    ``timeout`` is SQLite's busy timeout in seconds.
    """

    def __init__(
        self,
        path: str | Path = ":memory:",
        timeout: float = 5.0,
        log: Logger | None = None,
    ) -> None:
        self.path = str(path)
        self.timeout = timeout
        self._log = log or logger.bind(component="sqlite_store")
        self._conn: aiosqlite.Connection | None = None
        self._connect_lock = asyncio.Lock()

    async def _get_connection(self) -> aiosqlite.Connection:
        """Get or create the database connection."""
        async with self._connect_lock:
            if self._conn is None:
                conn = await aiosqlite.connect(self.path, timeout=self.timeout)
                conn.row_factory = aiosqlite.Row
                await conn.executescript(SCHEMA)
                await conn.commit()
                self._conn = conn
                self._log.debug(f"SQLite schema ready at {self.path}")
        return self._conn

    async def close(self) -> None:
        if self._conn is not None:
            await self._conn.close()
            self._conn = None

    async def _fetchall(self, sql: str, params: Sequence[object] = ()) -> list[aiosqlite.Row]:
        conn = await self._get_connection()
        async with conn.execute(sql, params) as cursor:
            return list(await cursor.fetchall())

    async def _fetchone(self, sql: str, params: Sequence[object] = ()) -> aiosqlite.Row | None:
        conn = await self._get_connection()
        async with conn.execute(sql, params) as cursor:
            return await cursor.fetchone()

    async def _write(self, sql: str, params: Sequence[object]) -> int:
        """Run one statement and commit; returns the affected row count."""
        conn = await self._get_connection()
        async with conn.execute(sql, params) as cursor:
            await conn.commit()
            return cursor.rowcount

    def _row_to_memory(self, row: aiosqlite.Row) -> Memory:
        return Memory(
            id=uuid.UUID(row["id"]),
            agent_id=uuid.UUID(row["agent_id"]),
            user_id=uuid.UUID(row["user_id"]),
            room_id=uuid.UUID(row["room_id"]),
            content=Content.model_validate(json.loads(row["content"])),
            embedding=_decode_embedding(row["embedding"]),
            created_at=datetime.fromtimestamp(row["created_at"], UTC),
            unique=bool(row["unique"]),
        )

    # ------------------ memories ----------------
    async def create_memory(self, memory: Memory, table_name: str) -> None:
        require_table(table_name)
        await self._write(
            UPSERT_MEMORY,
            (
                str(memory.id),
                table_name,
                memory.content.model_dump_json(),
                _encode_embedding(memory.embedding),
                str(memory.user_id),
                str(memory.room_id),
                str(memory.agent_id),
                1 if memory.unique else 0,
                memory.created_at.timestamp(),
            ),
        )

    async def get_memory_by_id(self, memory_id: uuid.UUID) -> Memory | None:
        row = await self._fetchone("SELECT * FROM memories WHERE id = ?", (str(memory_id),))
        return self._row_to_memory(row) if row else None

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
        sql = "SELECT * FROM memories WHERE embedding IS NOT NULL AND type = ? AND agent_id = ?"
        params: list[object] = [table_name, str(agent_id)]
        if unique:
            sql += ' AND "unique" = 1'
        if room_id is not None:
            sql += " AND room_id = ?"
            params.append(str(room_id))
        candidates = [self._row_to_memory(r) for r in await self._fetchall(sql, params)]
        return rank_by_similarity(embedding, candidates, match_threshold, count)

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
        placeholders = ", ".join("?" for _ in room_ids)
        sql = (
            "SELECT * FROM memories WHERE type = ? AND agent_id = ? "
            f"AND room_id IN ({placeholders}) ORDER BY created_at DESC"
        )
        rows = await self._fetchall(sql, [table_name, str(agent_id), *(str(r) for r in room_ids)])
        return [self._row_to_memory(r) for r in rows]

    async def get_memories(
        self,
        *,
        room_id: uuid.UUID,
        table_name: str,
        count: int | None = None,
        unique: bool = False,
    ) -> list[Memory]:
        require_table(table_name)
        sql = "SELECT * FROM memories WHERE type = ? AND room_id = ?"
        params: list[object] = [table_name, str(room_id)]
        if unique:
            sql += ' AND "unique" = 1'
        sql += " ORDER BY created_at DESC"
        if count:
            sql += " LIMIT ?"
            params.append(count)
        return [self._row_to_memory(r) for r in await self._fetchall(sql, params)]

    async def remove_memory(self, memory_id: uuid.UUID, table_name: str) -> None:
        require_table(table_name)
        await self._write(
            "DELETE FROM memories WHERE type = ? AND id = ?", (table_name, str(memory_id))
        )

    async def remove_all_memories(self, room_id: uuid.UUID, table_name: str) -> None:
        require_table(table_name)
        await self._write(
            "DELETE FROM memories WHERE type = ? AND room_id = ?", (table_name, str(room_id))
        )

    async def count_memories(
        self, room_id: uuid.UUID, table_name: str, unique: bool = True
    ) -> int:
        require_table(table_name)
        sql = "SELECT COUNT(*) AS count FROM memories WHERE type = ? AND room_id = ?"
        if unique:
            sql += ' AND "unique" = 1'
        row = await self._fetchone(sql, (table_name, str(room_id)))
        return row["count"]

    # ------------------ cache -------------------
    async def get_cache(self, *, agent_id: uuid.UUID, key: str) -> str | None:
        row = await self._fetchone(
            "SELECT value FROM cache WHERE key = ? AND agent_id = ?", (key, str(agent_id))
        )
        return row["value"] if row else None

    async def set_cache(self, *, agent_id: uuid.UUID, key: str, value: str) -> bool:
        await self._write(
            "INSERT OR REPLACE INTO cache (key, agent_id, value, created_at) "
            "VALUES (?, ?, ?, CURRENT_TIMESTAMP)",
            (key, str(agent_id), value),
        )
        return True

    async def delete_cache(self, *, agent_id: uuid.UUID, key: str) -> bool:
        deleted = await self._write(
            "DELETE FROM cache WHERE key = ? AND agent_id = ?", (key, str(agent_id))
        )
        return deleted > 0

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
        conn = await self._get_connection()
        await conn.execute(
            "INSERT OR IGNORE INTO accounts (id, username, name, source) VALUES (?, ?, ?, ?)",
            (str(user_id), username, name or username, source),
        )
        await conn.execute("INSERT OR IGNORE INTO rooms (id) VALUES (?)", (str(room_id),))
        await conn.execute(
            "INSERT OR IGNORE INTO participants (user_id, room_id) VALUES (?, ?)",
            (str(user_id), str(room_id)),
        )
        await conn.commit()
