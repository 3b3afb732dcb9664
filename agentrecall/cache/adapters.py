"""Key-value cache adapters over a single storage medium.

Every adapter stores opaque strings. ``get`` returns ``None`` when the key is
absent and raises :class:`CacheError` when the medium itself fails, so callers
can tell a miss from an unreachable store.
"""

from __future__ import annotations

import asyncio
import uuid
from abc import ABC, abstractmethod
from pathlib import Path
from typing import TYPE_CHECKING, Protocol
from urllib.parse import quote

from loguru import logger

if TYPE_CHECKING:
    from loguru import Logger

__all__ = [
    "CacheError",
    "CacheStore",
    "CacheAdapter",
    "MemoryCacheAdapter",
    "FsCacheAdapter",
    "DbCacheAdapter",
]


class CacheError(RuntimeError):
    """The cache medium could not be read or written."""


class CacheStore(Protocol):
    """Agent-scoped key-value table provided by a database-backed store."""

    async def get_cache(self, *, agent_id: uuid.UUID, key: str) -> str | None: ...

    async def set_cache(self, *, agent_id: uuid.UUID, key: str, value: str) -> bool: ...

    async def delete_cache(self, *, agent_id: uuid.UUID, key: str) -> bool: ...


class CacheAdapter(ABC):
    """Uniform get/set/delete over one storage medium."""

    @abstractmethod
    async def get(self, key: str) -> str | None:
        pass

    @abstractmethod
    async def set(self, key: str, value: str) -> None:
        pass

    @abstractmethod
    async def delete(self, key: str) -> None:
        pass


class MemoryCacheAdapter(CacheAdapter):
    """In-process dict; single process, no locking."""

    def __init__(self, initial_data: dict[str, str] | None = None) -> None:
        self.data: dict[str, str] = initial_data if initial_data is not None else {}

    async def get(self, key: str) -> str | None:
        return self.data.get(key)

    async def set(self, key: str, value: str) -> None:
        self.data[key] = value

    async def delete(self, key: str) -> None:
        self.data.pop(key, None)


class FsCacheAdapter(CacheAdapter):
    """One file per key under a root directory.

    Keys keep their ``namespace/id`` layout as sub-directories, but each
    segment is percent-encoded and ``.``/``..``/empty segments are refused, so
    a key can never address a file outside ``root``.
    """

    def __init__(self, root: str | Path, log: Logger | None = None) -> None:
        self.root = Path(root).resolve()
        self._log = log or logger.bind(component="fs_cache")

    def path_for(self, key: str) -> Path:
        """Map a cache key to its file path, raising ValueError for unsafe keys."""
        segments = key.split("/")
        if not key or any(s in ("", ".", "..") for s in segments):
            raise ValueError(f"Unsafe cache key: {key!r}")
        path = self.root.joinpath(*(quote(s, safe="") for s in segments)).resolve()
        if not path.is_relative_to(self.root):
            raise ValueError(f"Cache key escapes cache root: {key!r}")
        return path

    async def get(self, key: str) -> str | None:
        path = self.path_for(key)
        try:
            return await asyncio.to_thread(path.read_text, encoding="utf-8")
        except FileNotFoundError:
            return None
        except OSError as e:
            raise CacheError(f"Failed to read cache key {key!r}: {e}") from e

    async def set(self, key: str, value: str) -> None:
        path = self.path_for(key)

        def _write() -> None:
            path.parent.mkdir(parents=True, exist_ok=True)
            path.write_text(value, encoding="utf-8")

        try:
            await asyncio.to_thread(_write)
        except OSError as e:
            # A failed write degrades to a miss on the next read.
            self._log.error(f"Failed to write cache key {key!r}: {e}")

    async def delete(self, key: str) -> None:
        path = self.path_for(key)
        try:
            await asyncio.to_thread(path.unlink)
        except FileNotFoundError:
            return
        except OSError as e:
            raise CacheError(f"Failed to delete cache key {key!r}: {e}") from e


class DbCacheAdapter(CacheAdapter):
    """Delegates to a database cache table; every row is keyed by (agent_id, key)."""

    def __init__(self, store: CacheStore, agent_id: uuid.UUID) -> None:
        self.store = store
        self.agent_id = agent_id

    async def get(self, key: str) -> str | None:
        try:
            return await self.store.get_cache(agent_id=self.agent_id, key=key)
        except Exception as e:
            raise CacheError(f"Failed to read cache key {key!r}: {e}") from e

    async def set(self, key: str, value: str) -> None:
        try:
            await self.store.set_cache(agent_id=self.agent_id, key=key, value=value)
        except Exception as e:
            raise CacheError(f"Failed to write cache key {key!r}: {e}") from e

    async def delete(self, key: str) -> None:
        try:
            await self.store.delete_cache(agent_id=self.agent_id, key=key)
        except Exception as e:
            raise CacheError(f"Failed to delete cache key {key!r}: {e}") from e
