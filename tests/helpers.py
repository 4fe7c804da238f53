"""Test helpers: padded vectors and a pinned embedding provider."""

from typing import Dict, List, Optional, Sequence

from agent_memory.embeddings.provider import EmbeddingProvider


DIM = 64
PINNED_DIMS = 8


def vec(*values: float) -> List[float]:
    """Pad a short vector with zeros to the test dimension."""
    assert len(values) <= PINNED_DIMS
    return list(values) + [0.0] * (DIM - len(values))


class StaticEmbeddingProvider(EmbeddingProvider):
    """
    Embeddings pinned per text for tests.

    Unknown texts get their own basis vector from the dimensions above
    PINNED_DIMS, so they are orthogonal to every pinned vector and to each
    other.
    """

    def __init__(self, vectors: Optional[Dict[str, Sequence[float]]] = None):
        self.vectors: Dict[str, List[float]] = {k: list(v) for k, v in (vectors or {}).items()}
        self._unknown: Dict[str, List[float]] = {}
        self.calls: List[str] = []
        self.fail = False

    def pin(self, text: str, vector: Sequence[float]) -> None:
        self.vectors[text] = list(vector)

    async def embed(self, text: str) -> List[float]:
        self.calls.append(text)
        if self.fail:
            raise RuntimeError("embedding service unavailable")
        if text in self.vectors:
            return list(self.vectors[text])
        if text not in self._unknown:
            index = PINNED_DIMS + len(self._unknown) % (DIM - PINNED_DIMS)
            vector = [0.0] * DIM
            vector[index] = 1.0
            self._unknown[text] = vector
        return list(self._unknown[text])
