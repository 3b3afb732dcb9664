from .base import ConnectionRegistry, MemoryStore
from .inmemory import InMemoryStore
from .qdrant import QdrantMemoryStore
from .sqlite import SqliteMemoryStore

__all__ = [
    "ConnectionRegistry",
    "MemoryStore",
    "InMemoryStore",
    "QdrantMemoryStore",
    "SqliteMemoryStore",
]
