"""
Embedding cache - wrap any EmbeddingProvider with a SQLite-backed cache.

Caches embeddings by content hash to avoid recomputing.
"""

import asyncio
import hashlib
import json
import time
from typing import List

import numpy as np

from agent_memory.embeddings.provider import EmbeddingProvider
from .sqlite_store import SQLiteStore


class CachingEmbeddingProvider(EmbeddingProvider):
    """
    Wrapper for an EmbeddingProvider that caches vectors.

    Key = blake2b(text + model_name)
    Value = float32 vector bytes

    Usage:
        >>> store = SQLiteStore("data/memory/memory.db")
        >>> provider = CachingEmbeddingProvider(SentenceTransformerProvider(), store)
        >>> await provider.embed("hello")
        >>> await provider.embed("hello")  # cache hit
    """

    def __init__(self, inner: EmbeddingProvider, store: SQLiteStore, model_name: str = ""):
        """
        Initialize caching provider.

        Args:
            inner: Provider that computes embeddings on a miss
            store: SQLiteStore holding the embedding_cache table
            model_name: Model identifier for cache key (defaults to inner.model_name)
        """
        self.inner = inner
        self.store = store
        self.model_name = model_name or getattr(inner, "model_name", type(inner).__name__)

        # Track cache hits/misses
        self.hits = 0
        self.misses = 0

    def _cache_key(self, text: str) -> str:
        """Generate cache key for text."""
        key_data = json.dumps({"text": text, "model": self.model_name}, sort_keys=True)
        return hashlib.blake2b(key_data.encode("utf-8"), digest_size=32).hexdigest()

    def _get(self, key: str):
        row = self.store.fetchone("SELECT value FROM embedding_cache WHERE key = ?", (key,))
        return row["value"] if row else None

    def _set(self, key: str, vector: List[float]) -> None:
        self.store.execute(
            "INSERT OR REPLACE INTO embedding_cache (key, value, ts) VALUES (?, ?, ?)",
            (key, np.asarray(vector, dtype=np.float32).tobytes(), int(time.time())),
        )

    async def embed(self, text: str) -> List[float]:
        key = self._cache_key(text)
        cached = await asyncio.to_thread(self._get, key)

        if cached is not None:
            self.hits += 1
            return np.frombuffer(cached, dtype=np.float32).tolist()

        self.misses += 1
        vector = await self.inner.embed(text)
        await asyncio.to_thread(self._set, key, vector)
        return vector

    def estimate_tokens(self, text: str) -> int:
        return self.inner.estimate_tokens(text)

    def get_stats(self) -> dict:
        """Get cache statistics."""
        total = self.hits + self.misses
        hit_rate = self.hits / total if total > 0 else 0.0

        return {
            "hits": self.hits,
            "misses": self.misses,
            "total": total,
            "hit_rate": hit_rate,
        }

    def reset_stats(self) -> None:
        """Reset cache statistics."""
        self.hits = 0
        self.misses = 0
