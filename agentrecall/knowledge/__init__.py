from .indexer import KnowledgeIndexer
from .text import preprocess, split_chunks

__all__ = ["KnowledgeIndexer", "preprocess", "split_chunks"]
