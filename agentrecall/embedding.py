"""Embedding collaborators: the embedder contract, a FastEmbed default and a cache wrapper."""

from __future__ import annotations

import asyncio
import hashlib
from typing import TYPE_CHECKING, Any, Protocol

from loguru import logger

from .models import Vector

if TYPE_CHECKING:
    from .cache import CacheManager

__all__ = [
    "Embedder",
    "FastEmbedEmbedder",
    "CachedEmbedder",
    "zero_vector",
]


def zero_vector(dimension: int) -> Vector:
    return [0.0] * dimension


class Embedder(Protocol):
    """Turns text into a fixed-length vector. Not assumed deterministic."""

    async def embed(self, text: str) -> Vector: ...


class FastEmbedEmbedder:
    """Local ONNX embeddings via fastembed, loaded on first use."""

    def __init__(self, model_name: str = "BAAI/bge-small-en-v1.5") -> None:
        self.model_name = model_name
        self._model: Any = None

    def _load(self) -> Any:
        if self._model is None:
            from fastembed import TextEmbedding

            logger.info(f"Loading embedding model: {self.model_name}")
            self._model = TextEmbedding(model_name=self.model_name)
        return self._model

    def _embed_sync(self, text: str) -> Vector:
        vectors = list(self._load().embed([text]))
        return [float(x) for x in vectors[0]]

    async def embed(self, text: str) -> Vector:
        return await asyncio.to_thread(self._embed_sync, text)


class CachedEmbedder:
    """Reuses vectors for identical text through the cache manager."""

    def __init__(self, embedder: Embedder, cache: CacheManager, *, namespace: str) -> None:
        self.embedder = embedder
        self.cache = cache
        self.namespace = namespace

    def cache_key(self, text: str) -> str:
        digest = hashlib.sha256(text.encode("utf-8")).hexdigest()
        return f"embedding/{self.namespace}/{digest}"

    async def embed(self, text: str) -> Vector:
        key = self.cache_key(text)
        cached = await self.cache.get(key)
        if cached is not None:
            return cached
        vector = await self.embedder.embed(text)
        await self.cache.set(key, vector)
        return vector
