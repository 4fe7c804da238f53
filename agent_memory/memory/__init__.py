"""
Agent memory subsystem.

Provides:
- Memory storage with tombstone-style deactivation
- Semantic search (similarity x confidence x importance)
- Consolidation: duplicate merging, confidence/expiry cleanup, importance decay
- Token-budgeted, diversified context assembly for prompts
- Pattern success tracking and failure learnings
"""

from .schemas import (
    ConsolidationResult,
    ContextResult,
    DuplicatePair,
    FailureLearning,
    Memory,
    MemoryCreate,
    MemorySource,
    MemoryType,
    Pattern,
    PatternCreate,
    ScoredMemory,
)
from .store import MemoryStore
from .writer import MemoryWriter
from .search import SemanticSearch
from .consolidation import SIMILARITY_THRESHOLD, ConsolidationEngine
from .context import ContextAssembler
from .patterns import PatternTracker
from .failures import FailureLearningStore
from .integrate import MemorySystem, create_memory_system

__all__ = [
    "ConsolidationResult",
    "ContextResult",
    "DuplicatePair",
    "FailureLearning",
    "Memory",
    "MemoryCreate",
    "MemorySource",
    "MemoryType",
    "Pattern",
    "PatternCreate",
    "ScoredMemory",
    "MemoryStore",
    "MemoryWriter",
    "SemanticSearch",
    "SIMILARITY_THRESHOLD",
    "ConsolidationEngine",
    "ContextAssembler",
    "PatternTracker",
    "FailureLearningStore",
    "MemorySystem",
    "create_memory_system",
]
