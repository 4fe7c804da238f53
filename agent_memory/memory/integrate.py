"""
Wiring for the memory subsystem.

Builds store, search, consolidation, context and pattern components from
Settings and exposes the entry points an agent loop needs.
"""

import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Optional, Union

from agent_memory.config.settings import Settings
from agent_memory.embeddings.provider import (
    EmbeddingProvider,
    SentenceTransformerProvider,
)
from agent_memory.errors import NotFoundError
from agent_memory.persist.embedding_cache import CachingEmbeddingProvider
from agent_memory.persist.sqlite_store import SQLiteStore
from agent_memory.telemetry import configure_logging
from .consolidation import ConsolidationEngine
from .context import ContextAssembler
from .failures import FailureLearningStore
from .patterns import PatternTracker
from .schemas import ContextResult, Memory, MemoryCreate
from .search import SemanticSearch
from .store import MemoryStore
from .writer import MemoryWriter


logger = logging.getLogger(__name__)


@dataclass
class MemorySystem:
    """All memory components sharing one database and embedding provider."""

    settings: Settings
    db: SQLiteStore
    embedder: EmbeddingProvider
    store: MemoryStore
    writer: MemoryWriter
    search: SemanticSearch
    consolidation: ConsolidationEngine
    patterns: PatternTracker
    failures: FailureLearningStore
    context: ContextAssembler

    async def remember(self, payload: MemoryCreate) -> Memory:
        """Create a memory through the embedding creation path."""
        return await self.writer.create(payload)

    async def build_context(self, agent_id: str, query: str, **kwargs) -> ContextResult:
        """Shortcut for ContextAssembler.build_context."""
        return await self.context.build_context(agent_id, query, **kwargs)

    async def reinforce(self, memory_id: str) -> Memory:
        """
        Record that a memory was confirmed in practice.

        Raises:
            NotFoundError: If the memory does not exist
        """
        memory = await self.store.record_reinforcement(
            memory_id, step=self.settings.consolidation.reinforce_step
        )
        if memory is None:
            raise NotFoundError("memory", memory_id)
        return memory

    async def contradict(self, memory_id: str) -> Memory:
        """
        Record that a memory was contradicted; confidence drops accordingly.

        Raises:
            NotFoundError: If the memory does not exist
        """
        memory = await self.store.record_contradiction(
            memory_id, step=self.settings.consolidation.contradict_step
        )
        if memory is None:
            raise NotFoundError("memory", memory_id)
        return memory

    async def close(self) -> None:
        """Wait for pending telemetry, then close the database."""
        await self.context.drain()
        self.db.close()


def create_memory_system(
    settings: Optional[Settings] = None,
    embedder: Optional[EmbeddingProvider] = None,
    db_path: Optional[Union[str, Path]] = None,
) -> MemorySystem:
    """
    Factory function to create the memory subsystem.

    Args:
        settings: Settings (defaults if None)
        embedder: Embedding provider; defaults to a sentence-transformers model
        db_path: Override for settings.paths.db_path

    Returns:
        MemorySystem instance
    """
    settings = settings or Settings()
    configure_logging(settings.log_level)
    db = SQLiteStore(db_path or settings.paths.db_path)

    if embedder is None:
        embedder = SentenceTransformerProvider(
            model_name=settings.embedding.model_name,
            normalize=settings.embedding.normalize,
        )
    if settings.embedding.use_cache and not isinstance(embedder, CachingEmbeddingProvider):
        embedder = CachingEmbeddingProvider(embedder, db)

    store = MemoryStore(db)
    writer = MemoryWriter(store, embedder)
    search = SemanticSearch(store, embedder, settings.search)
    patterns = PatternTracker(db, settings.patterns)
    failures = FailureLearningStore(db)

    system = MemorySystem(
        settings=settings,
        db=db,
        embedder=embedder,
        store=store,
        writer=writer,
        search=search,
        consolidation=ConsolidationEngine(store, writer, settings.consolidation),
        patterns=patterns,
        failures=failures,
        context=ContextAssembler(search, store, patterns, failures, settings.context),
    )
    logger.info(f"Memory system ready (db={db.db_path}, embedder={type(embedder).__name__})")
    return system
