"""
Creation path for memories: embed, then store.
"""

import logging
from typing import List, Optional

from agent_memory.embeddings.provider import EmbeddingProvider
from .schemas import Memory, MemoryCreate
from .store import MemoryStore


logger = logging.getLogger(__name__)


def embedding_text(title: str, content: str) -> str:
    """Text that represents a memory in vector space."""
    return f"{title}\n{content}"


class MemoryWriter:
    """
    Creates memories with a fresh embedding.

    If the provider is down the memory is still stored, without an
    embedding, and can be picked up later by backfill_embeddings().
    """

    def __init__(self, store: MemoryStore, embedder: EmbeddingProvider):
        self.store = store
        self.embedder = embedder

    async def create(self, payload: MemoryCreate) -> Memory:
        """
        Embed and store a new memory.

        Args:
            payload: Memory fields

        Returns:
            Created Memory (embedding may be None if embedding failed)
        """
        embedding: Optional[List[float]] = None
        try:
            embedding = await self.embedder.embed(embedding_text(payload.title, payload.content))
        except Exception as e:
            logger.warning(f"Embedding failed for new memory '{payload.title}': {e}")

        return await self.store.create(payload, embedding=embedding)

    async def backfill_embeddings(self, agent_id: str, limit: int = 100) -> int:
        """
        Compute embeddings for active memories that lack one.

        Args:
            agent_id: Owning agent
            limit: Maximum memories to process

        Returns:
            Number of memories updated
        """
        missing = await self.store.list_missing_embeddings(agent_id, limit=limit)
        if not missing:
            return 0

        texts = [embedding_text(m.title, m.content) for m in missing]
        try:
            vectors = await self.embedder.embed_many(texts)
        except Exception as e:
            logger.warning(f"Embedding backfill failed for agent {agent_id}: {e}")
            return 0

        updated = 0
        for memory, vector in zip(missing, vectors):
            if await self.store.update_embedding(memory.id, vector):
                updated += 1

        logger.info(f"Backfilled {updated} embeddings for agent {agent_id}")
        return updated
