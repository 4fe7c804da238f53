"""Test configuration and fixtures."""

from typing import List, Optional

import pytest

from agent_memory.memory.consolidation import ConsolidationEngine
from agent_memory.memory.context import ContextAssembler
from agent_memory.memory.failures import FailureLearningStore
from agent_memory.memory.patterns import PatternTracker
from agent_memory.memory.schemas import MemoryCreate
from agent_memory.memory.search import SemanticSearch
from agent_memory.memory.store import MemoryStore
from agent_memory.memory.writer import MemoryWriter
from agent_memory.persist.sqlite_store import SQLiteStore
from helpers import StaticEmbeddingProvider


@pytest.fixture
def db(tmp_path):
    """Create a temporary SQLiteStore instance."""
    store = SQLiteStore(tmp_path / "memory.db")
    yield store
    store.close()


@pytest.fixture
def embedder():
    return StaticEmbeddingProvider()


@pytest.fixture
def store(db):
    return MemoryStore(db)


@pytest.fixture
def writer(store, embedder):
    return MemoryWriter(store, embedder)


@pytest.fixture
def search(store, embedder):
    return SemanticSearch(store, embedder)


@pytest.fixture
def consolidation(store, writer):
    return ConsolidationEngine(store, writer)


@pytest.fixture
def patterns(db):
    return PatternTracker(db)


@pytest.fixture
def failures(db):
    return FailureLearningStore(db)


@pytest.fixture
def assembler(search, store, patterns, failures):
    return ContextAssembler(search, store, patterns, failures)


@pytest.fixture
def make_memory(store):
    """Factory storing a memory with an explicit embedding."""

    async def _make(
        title: str = "Memory",
        content: str = "Some knowledge.",
        agent_id: str = "agent_a",
        embedding: Optional[List[float]] = None,
        **fields,
    ):
        payload = MemoryCreate(agent_id=agent_id, title=title, content=content, **fields)
        return await store.create(payload, embedding=embedding)

    return _make
