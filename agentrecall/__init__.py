"""agentrecall - semantic memory cache and retrieval for conversational agents.

agentrecall is the memory layer shared by an agent's platform clients and its
knowledge base. It provides:

- Similarity-gated writes that flag near-duplicate embeddings
- Reply-chain thread reconstruction with idempotent, deterministic-id storage
- A key-value cache with TTL over memory, filesystem and database backends
- Knowledge ingestion: preprocessing, overlapping chunks, fragment retrieval

Key Components:
    RecallConfig: Configuration management with environment variables
    MemoryRuntime: Composition root wiring store, cache, managers and indexer
    CacheManager: JSON envelope with read-driven expiry over any CacheAdapter
    DuplicateGate: Soft near-duplicate check consulted on every write
    ThreadBuilder: Root-first conversation reconstruction
    KnowledgeIndexer: Document/fragment indexing and retrieval

Example:
    >>> from agentrecall import MemoryRuntime, RecallConfig
    >>> runtime = await MemoryRuntime.create(RecallConfig.from_env())

Architecture:
    Platform event → ThreadBuilder → MemoryManager (DuplicateGate) → MemoryStore
    Document → preprocess → chunk → embed → MemoryManager → MemoryStore

"""

from __future__ import annotations

from .cache import CacheManager, CacheOptions
from .config import RecallConfig
from .duplicates import DuplicateGate
from .knowledge import KnowledgeIndexer
from .memory import MemoryManager
from .models import Content, KnowledgeItem, Memory, ThreadNode
from .runtime import MemoryRuntime
from .threads import ThreadBuilder

__version__ = "0.1.0"
__all__ = [
    "CacheManager",
    "CacheOptions",
    "RecallConfig",
    "DuplicateGate",
    "KnowledgeIndexer",
    "MemoryManager",
    "Content",
    "KnowledgeItem",
    "Memory",
    "ThreadNode",
    "MemoryRuntime",
    "ThreadBuilder",
]
