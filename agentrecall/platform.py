"""Platform client contract and a cache-backed wrapper around it.

A platform client is the thin integration with an external network (casts,
publications, posts). Only the shape matters here: fetch a node by its
native id and fetch batches of recent nodes.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Protocol

from loguru import logger
from pydantic import ValidationError

from .cache import CacheOptions
from .models import ThreadNode

if TYPE_CHECKING:
    from loguru import Logger

    from .cache import CacheManager

__all__ = ["PlatformClient", "CachedPlatformClient"]


class PlatformClient(Protocol):
    async def get(self, native_id: str) -> ThreadNode | None: ...

    async def get_timeline(self, limit: int = 20) -> list[ThreadNode]: ...

    async def get_mentions(self, limit: int = 20) -> list[ThreadNode]: ...


class CachedPlatformClient:
    """Caches every node it sees under ``<source>/node/<native_id>``."""

    def __init__(
        self,
        client: PlatformClient,
        cache: CacheManager,
        *,
        source: str,
        ttl: float | None = None,
        log: Logger | None = None,
    ) -> None:
        self.client = client
        self.cache = cache
        self.source = source
        self.ttl = ttl
        self._log = log or logger.bind(component=f"platform.{source}")

    def cache_key(self, native_id: str) -> str:
        return f"{self.source}/node/{native_id}"

    async def _remember(self, node: ThreadNode) -> None:
        options = CacheOptions.from_ttl(self.ttl) if self.ttl else None
        await self.cache.set(self.cache_key(node.id), node.model_dump(mode="json"), options)

    async def get(self, native_id: str) -> ThreadNode | None:
        cached = await self.cache.get(self.cache_key(native_id))
        if cached is not None:
            try:
                return ThreadNode.model_validate(cached)
            except ValidationError as e:
                self._log.warning(f"Discarding malformed cached node '{native_id}': {e}")

        node = await self.client.get(native_id)
        if node is not None:
            await self._remember(node)
        return node

    async def get_timeline(self, limit: int = 20) -> list[ThreadNode]:
        nodes = await self.client.get_timeline(limit)
        for node in nodes:
            await self._remember(node)
        return nodes

    async def get_mentions(self, limit: int = 20) -> list[ThreadNode]:
        nodes = await self.client.get_mentions(limit)
        for node in nodes:
            await self._remember(node)
        return nodes
