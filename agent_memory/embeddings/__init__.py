from .provider import (
    EmbeddingProvider,
    HashingEmbeddingProvider,
    SentenceTransformerProvider,
    estimate_tokens,
)
from .similarity import pairs_above, similarities_to

__all__ = [
    "EmbeddingProvider",
    "HashingEmbeddingProvider",
    "SentenceTransformerProvider",
    "estimate_tokens",
    "pairs_above",
    "similarities_to",
]
