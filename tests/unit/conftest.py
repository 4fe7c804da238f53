"""
Shared fixtures for unit tests.
"""
import time

import pytest

from agent_memory.memory.schemas import Memory, ScoredMemory


@pytest.fixture
def scored():
    """Build ScoredMemory objects without touching the database."""
    counter = {"n": 0}

    def _scored(
        memory_type: str = "fact",
        subject=None,
        similarity: float = 1.0,
        confidence: float = 1.0,
        importance: float = 1.0,
        **fields,
    ) -> ScoredMemory:
        counter["n"] += 1
        subject_type, subject_id = subject if subject else (None, None)
        memory = Memory(
            id=f"mem_{counter['n']}",
            agent_id="agent_a",
            memory_type=memory_type,
            subject_type=subject_type,
            subject_id=subject_id,
            title=f"Memory {counter['n']}",
            content=f"Content {counter['n']}",
            confidence=confidence,
            importance=importance,
            created_at=fields.pop("created_at", time.time()),
            **fields,
        )
        score = similarity * confidence * importance
        return ScoredMemory(memory=memory, similarity=similarity, score=score, priority=score)

    return _scored
