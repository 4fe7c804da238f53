"""
Persistence layer.

Provides:
- SQLite record store for memories, patterns and failure learnings
- Embedding cache wrapping any embedding provider
"""

from .sqlite_store import SQLiteStore, blob_to_vector, vector_to_blob
from .embedding_cache import CachingEmbeddingProvider

__all__ = [
    "SQLiteStore",
    "blob_to_vector",
    "vector_to_blob",
    "CachingEmbeddingProvider",
]
