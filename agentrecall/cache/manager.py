"""JSON envelope with optional expiry on top of any cache adapter."""

from __future__ import annotations

import json
import time
from dataclasses import dataclass
from enum import Enum
from typing import TYPE_CHECKING, Any

from loguru import logger

from .adapters import CacheAdapter, CacheError

if TYPE_CHECKING:
    from loguru import Logger

__all__ = [
    "CacheManager",
    "CacheOptions",
    "CacheResult",
    "CacheStatus",
    "now_ms",
]


def now_ms() -> int:
    return int(time.time() * 1000)


class CacheStatus(str, Enum):
    """Outcome of a cache lookup."""

    HIT = "hit"
    MISS = "miss"
    EXPIRED = "expired"
    ERROR = "error"


@dataclass(frozen=True)
class CacheResult:
    status: CacheStatus
    value: Any = None
    error: Exception | None = None

    @property
    def hit(self) -> bool:
        return self.status is CacheStatus.HIT


@dataclass(frozen=True)
class CacheOptions:
    """Absolute expiry as epoch milliseconds; 0 never expires."""

    expires: int = 0

    @classmethod
    def from_ttl(cls, seconds: float) -> CacheOptions:
        return cls(expires=now_ms() + int(seconds * 1000))


class CacheManager:
    """Stores ``{"value": ..., "expires": ...}`` envelopes through an adapter.

    Expiry is read-driven: an expired entry is deleted by the first read that
    sees it, never by a background sweep.
    """

    def __init__(self, adapter: CacheAdapter, log: Logger | None = None) -> None:
        self.adapter = adapter
        self._log = log or logger.bind(component="cache")

    async def lookup(self, key: str) -> CacheResult:
        """Look up a key and report whether it hit, missed, expired or failed."""
        try:
            data = await self.adapter.get(key)
        except CacheError as e:
            self._log.warning(f"Cache read failed for '{key}': {e}")
            return CacheResult(CacheStatus.ERROR, error=e)

        if data is None:
            return CacheResult(CacheStatus.MISS)

        try:
            envelope = json.loads(data)
            value, expires = envelope["value"], envelope.get("expires", 0)
        except (json.JSONDecodeError, KeyError, TypeError) as e:
            self._log.warning(f"Corrupt cache entry for '{key}': {e}")
            return CacheResult(CacheStatus.ERROR, error=e)

        if not expires or expires > now_ms():
            return CacheResult(CacheStatus.HIT, value=value)

        try:
            await self.adapter.delete(key)
        except CacheError as e:
            self._log.debug(f"Best-effort eviction of '{key}' failed: {e}")
        return CacheResult(CacheStatus.EXPIRED)

    async def get(self, key: str) -> Any | None:
        """Return the cached value, or None if it is absent, expired or unreadable."""
        return (await self.lookup(key)).value

    async def set(self, key: str, value: Any, options: CacheOptions | None = None) -> None:
        expires = options.expires if options else 0
        await self.adapter.set(key, json.dumps({"value": value, "expires": expires}))

    async def delete(self, key: str) -> None:
        await self.adapter.delete(key)
