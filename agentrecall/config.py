"""Configuration management with environment variable support and type safety.

This module provides the RecallConfig dataclass for wiring storage, cache and
embedding backends from environment variables.
"""

from __future__ import annotations

import os
import uuid
from dataclasses import dataclass
from enum import Enum

from .ids import string_to_uuid

__all__ = [
    "RecallConfig",
    "StorageBackend",
    "CacheBackend",
]


class StorageBackend(str, Enum):
    """Supported memory store backends."""

    MEMORY = "memory"
    SQLITE = "sqlite"
    QDRANT = "qdrant"


class CacheBackend(str, Enum):
    """Supported cache adapter backends."""

    MEMORY = "memory"
    FS = "fs"
    DB = "db"


@dataclass
class RecallConfig:
    """Configuration for an agent's memory runtime loaded from environment variables."""

    # Required configuration
    agent_id: str

    # Optional configuration with defaults
    storage_backend: str = StorageBackend.MEMORY.value
    sqlite_path: str = "agentrecall.db"
    qdrant_url: str = "http://localhost:6333"
    qdrant_api_key: str | None = None
    collection_name: str = "agentrecall_memories"
    prefer_grpc: bool = False
    grpc_port: int = 6334
    embedding_model: str = "BAAI/bge-small-en-v1.5"
    embedding_dimension: int = 384
    cache_backend: str = CacheBackend.MEMORY.value
    cache_dir: str = ".cache/agentrecall"
    match_threshold: float = 0.95
    chunk_size: int = 512
    bleed: int = 20
    log_level: str = "INFO"
    debug: bool = False

    def __post_init__(self):
        """Validate backend names and numeric ranges after initialization."""
        if not self.agent_id:
            raise ValueError("agent_id is required")
        valid_storage = {b.value for b in StorageBackend}
        if self.storage_backend not in valid_storage:
            raise ValueError(
                f"Invalid storage backend '{self.storage_backend}'. Valid backends: {sorted(valid_storage)}"
            )
        valid_cache = {b.value for b in CacheBackend}
        if self.cache_backend not in valid_cache:
            raise ValueError(
                f"Invalid cache backend '{self.cache_backend}'. Valid backends: {sorted(valid_cache)}"
            )
        if not 0.0 <= self.match_threshold <= 1.0:
            raise ValueError("match_threshold must be between 0 and 1")
        if self.embedding_dimension <= 0:
            raise ValueError("embedding_dimension must be positive")
        if self.chunk_size <= 0 or not 0 <= self.bleed < self.chunk_size:
            raise ValueError("chunk_size must be positive and bleed in [0, chunk_size)")

    @property
    def agent_uuid(self) -> uuid.UUID:
        """The agent id as a UUID; non-UUID names are hashed deterministically."""
        try:
            return uuid.UUID(self.agent_id)
        except ValueError:
            return string_to_uuid(self.agent_id)

    @classmethod
    def from_env(cls) -> RecallConfig:
        """Load configuration from environment variables."""
        agent_id = os.getenv("AGENT_ID")
        if not agent_id:
            raise ValueError("AGENT_ID environment variable is required")

        return cls(
            agent_id=agent_id,
            storage_backend=os.getenv("STORAGE_BACKEND", "memory").lower(),
            sqlite_path=os.getenv("SQLITE_PATH", "agentrecall.db"),
            qdrant_url=os.getenv("QDRANT_URL", "http://localhost:6333"),
            qdrant_api_key=os.getenv("QDRANT_API_KEY"),
            collection_name=os.getenv("COLLECTION_NAME", "agentrecall_memories"),
            prefer_grpc=os.getenv("PREFER_GRPC", "false").lower() == "true",
            grpc_port=int(os.getenv("GRPC_PORT", "6334")),
            embedding_model=os.getenv("EMBEDDING_MODEL", "BAAI/bge-small-en-v1.5"),
            embedding_dimension=int(os.getenv("EMBEDDING_DIMENSION", "384")),
            cache_backend=os.getenv("CACHE_BACKEND", "memory").lower(),
            cache_dir=os.getenv("CACHE_DIR", ".cache/agentrecall"),
            match_threshold=float(os.getenv("MATCH_THRESHOLD", "0.95")),
            chunk_size=int(os.getenv("CHUNK_SIZE", "512")),
            bleed=int(os.getenv("BLEED", "20")),
            log_level=os.getenv("LOG_LEVEL", "INFO"),
            debug=os.getenv("DEBUG", "false").lower() == "true",
        )
