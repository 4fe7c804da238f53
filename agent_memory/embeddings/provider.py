"""
Embedding providers: text -> vector, plus a token estimator.

The subsystem only talks to the EmbeddingProvider interface; the concrete
model behind it is a deployment choice.
"""

from __future__ import annotations

import asyncio
import hashlib
import math
import re
from abc import ABC, abstractmethod
from typing import Any, List, Optional

import numpy as np


CHARS_PER_TOKEN = 4

_TOKEN_RE = re.compile(r"\w+")


def estimate_tokens(text: str) -> int:
    """
    Estimate token count with a deterministic character heuristic.

    Roughly four characters per token; not an exact tokenizer.
    """
    if not text:
        return 0
    return math.ceil(len(text) / CHARS_PER_TOKEN)


class EmbeddingProvider(ABC):
    """Maps text to a fixed-length vector."""

    @abstractmethod
    async def embed(self, text: str) -> List[float]:
        """Embed a single text."""

    async def embed_many(self, texts: List[str]) -> List[List[float]]:
        """Embed several texts; providers with batching should override."""
        return [await self.embed(text) for text in texts]

    def estimate_tokens(self, text: str) -> int:
        """Estimate prompt cost of text."""
        return estimate_tokens(text)


class SentenceTransformerProvider(EmbeddingProvider):
    """
    Embeddings from a sentence-transformers model.

    Encoding is CPU/GPU bound, so it runs in a worker thread to keep the
    event loop free.
    """

    def __init__(
        self,
        model: Optional[Any] = None,
        model_name: str = "all-MiniLM-L6-v2",
        normalize: bool = True,
    ):
        """
        Initialize provider.

        Args:
            model: Preloaded SentenceTransformer (or compatible encoder)
            model_name: Model to load when no model is given
            normalize: L2-normalize embeddings
        """
        if model is None:
            from sentence_transformers import SentenceTransformer
            model = SentenceTransformer(model_name)

        self.model = model
        self.model_name = model_name
        self.normalize = normalize

    def _encode(self, texts: List[str]) -> np.ndarray:
        return self.model.encode(
            texts,
            convert_to_numpy=True,
            normalize_embeddings=self.normalize,
            show_progress_bar=False,
        )

    async def embed(self, text: str) -> List[float]:
        vectors = await asyncio.to_thread(self._encode, [text])
        return vectors[0].astype(np.float32).tolist()

    async def embed_many(self, texts: List[str]) -> List[List[float]]:
        if not texts:
            return []
        vectors = await asyncio.to_thread(self._encode, texts)
        return [v.astype(np.float32).tolist() for v in vectors]


class HashingEmbeddingProvider(EmbeddingProvider):
    """
    Deterministic bag-of-words embeddings via feature hashing.

    No model download; identical texts embed identically and texts sharing
    vocabulary land close together. Used offline and in tests.
    """

    def __init__(self, dim: int = 384):
        self.dim = dim
        self.model_name = f"hashing-{dim}"

    def _bucket(self, token: str) -> tuple:
        digest = hashlib.blake2b(token.encode("utf-8"), digest_size=8).digest()
        value = int.from_bytes(digest, "little")
        sign = 1.0 if value & 1 else -1.0
        return (value >> 1) % self.dim, sign

    def embed_sync(self, text: str) -> List[float]:
        vector = np.zeros(self.dim, dtype=np.float32)
        for token in _TOKEN_RE.findall(text.lower()):
            index, sign = self._bucket(token)
            vector[index] += sign

        norm = np.linalg.norm(vector)
        if norm > 0:
            vector /= norm
        return vector.tolist()

    async def embed(self, text: str) -> List[float]:
        return self.embed_sync(text)
