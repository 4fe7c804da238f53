"""
Semantic search over an agent's memories.

score = similarity * confidence * importance, where similarity is
1 - cosine distance between the query and memory embeddings.
"""

import logging
from typing import List, Optional, Sequence

from agent_memory.config.settings import SearchCfg
from agent_memory.embeddings.provider import EmbeddingProvider
from agent_memory.embeddings.similarity import similarities_to
from agent_memory.errors import DependencyUnavailableError
from .schemas import ScoredMemory
from .store import MemoryStore


logger = logging.getLogger(__name__)


class SemanticSearch:
    """
    Embeds a query and ranks the agent's memories against it.
    """

    def __init__(
        self,
        store: MemoryStore,
        embedder: EmbeddingProvider,
        config: Optional[SearchCfg] = None,
    ):
        """
        Initialize search engine.

        Args:
            store: MemoryStore instance
            embedder: Provider used to embed queries
            config: Defaults for arguments left as None
        """
        self.store = store
        self.embedder = embedder
        self.config = config or SearchCfg()

    async def embed_query(self, query: str) -> List[float]:
        """Embed a query, wrapping provider failures."""
        try:
            return await self.embedder.embed(query)
        except Exception as e:
            raise DependencyUnavailableError(f"Embedding provider failed: {e}") from e

    async def search(
        self,
        agent_id: str,
        query: str,
        memory_types: Optional[Sequence[str]] = None,
        subject_type: Optional[str] = None,
        subject_id: Optional[str] = None,
        include_inactive: bool = False,
        min_confidence: Optional[float] = None,
        min_similarity: Optional[float] = None,
        limit: Optional[int] = None,
    ) -> List[ScoredMemory]:
        """
        Retrieve an agent's most relevant memories for a query.

        The similarity cutoff is applied after the limit cut, so fewer than
        `limit` results may come back even when more candidates pass it.

        Args:
            agent_id: Owning agent
            query: Free-text query
            memory_types: Restrict to these types
            subject_type: Restrict to this subject type
            subject_id: Restrict to this subject id
            include_inactive: Include deactivated memories
            min_confidence: Candidate confidence floor (default 0.3)
            min_similarity: Post-filter similarity floor (default 0.3)
            limit: Maximum results before the similarity post-filter (default 10)

        Returns:
            ScoredMemory list, best score first

        Raises:
            DependencyUnavailableError: If the query cannot be embedded
        """
        cfg = self.config
        min_confidence = cfg.min_confidence if min_confidence is None else min_confidence
        min_similarity = cfg.min_similarity if min_similarity is None else min_similarity
        limit = cfg.limit if limit is None else limit

        query_vector = await self.embed_query(query)

        candidates = await self.store.list_candidates(
            agent_id,
            memory_types=memory_types,
            subject_type=subject_type,
            subject_id=subject_id,
            include_inactive=include_inactive,
            min_confidence=min_confidence,
            require_embedding=True,
        )
        if not candidates:
            return []

        sims = similarities_to(query_vector, [m.embedding for m in candidates])

        scored = []
        for memory, sim in zip(candidates, sims):
            similarity = float(sim)
            score = similarity * memory.confidence * memory.importance
            scored.append(ScoredMemory(memory=memory, similarity=similarity, score=score, priority=score))

        scored.sort(key=lambda s: s.score, reverse=True)
        top = scored[:limit]

        results = [s for s in top if s.similarity >= min_similarity]
        logger.debug(
            f"Search agent={agent_id} candidates={len(candidates)} "
            f"top={len(top)} returned={len(results)}"
        )
        return results

    async def keyword_search(
        self,
        agent_id: str,
        query: str,
        memory_types: Optional[Sequence[str]] = None,
        include_inactive: bool = False,
        min_confidence: Optional[float] = None,
        limit: Optional[int] = None,
    ) -> List[ScoredMemory]:
        """
        Substring search for when embeddings are unavailable.

        Ordered by confidence, then importance; similarity is reported as 0.
        """
        min_confidence = self.config.min_confidence if min_confidence is None else min_confidence
        limit = self.config.limit if limit is None else limit
        memories = await self.store.keyword_search(
            agent_id,
            query,
            memory_types=memory_types,
            include_inactive=include_inactive,
            min_confidence=min_confidence,
            limit=limit,
        )
        return [
            ScoredMemory(memory=m, similarity=0.0, score=m.confidence * m.importance,
                         priority=m.confidence * m.importance)
            for m in memories
        ]
