"""
Memory system data models.

Defines Memory, Pattern and FailureLearning records plus the result types
returned by search, consolidation and context assembly.
"""

import time
from typing import List, Literal, Optional

from pydantic import BaseModel, Field


# Type aliases
MemoryType = Literal[
    "policy",
    "procedure",
    "preference",
    "team_member",
    "creator",
    "project_pattern",
    "fact",
]
MemorySource = Literal["explicit", "inferred"]

# Group order for assembled context (not alphabetic)
MEMORY_TYPE_ORDER: List[str] = [
    "policy",
    "procedure",
    "preference",
    "team_member",
    "creator",
    "project_pattern",
    "fact",
]

MEMORY_TYPE_HEADINGS = {
    "policy": "Policies",
    "procedure": "Procedures",
    "preference": "Preferences",
    "team_member": "Team Members",
    "creator": "Creators",
    "project_pattern": "Project Patterns",
    "fact": "Facts",
}


class Memory(BaseModel):
    """
    A unit of knowledge owned by exactly one agent.

    Deactivation is a tombstone: records stay in the store with
    is_active=False, and superseded_by points at the memory that replaced
    them when consolidation merged them away.
    """

    id: str = Field(..., description="Unique identifier")
    agent_id: str = Field(..., description="Owning agent")

    # Classification
    memory_type: MemoryType = Field("fact", description="Knowledge category")
    subject_type: Optional[str] = Field(None, description="Kind of entity the memory is about")
    subject_id: Optional[str] = Field(None, description="Entity the memory is about")

    # Content
    title: str = Field(..., description="Short label")
    content: str = Field(..., description="Free-text knowledge")
    embedding: Optional[List[float]] = Field(None, description="Vector; absent until computed")

    # Scoring
    confidence: float = Field(1.0, ge=0.0, le=1.0, description="How certain the memory is true")
    importance: float = Field(0.5, ge=0.0, le=1.0, description="Weight when relevant")

    # Usage telemetry
    times_used: int = 0
    times_reinforced: int = 0
    times_contradicted: int = 0
    last_used_at: Optional[float] = None

    # Provenance
    source: MemorySource = "explicit"
    source_context: Optional[str] = None
    source_conversation_id: Optional[str] = None

    # Lifecycle
    is_active: bool = True
    superseded_by: Optional[str] = None
    expires_at: Optional[float] = None

    created_at: float = Field(default_factory=time.time)
    updated_at: float = Field(default_factory=time.time)

    @property
    def subject_key(self) -> Optional[tuple]:
        """(subject_type, subject_id) pair, or None when the memory has no subject."""
        if self.subject_type is None and self.subject_id is None:
            return None
        return (self.subject_type, self.subject_id)


class MemoryCreate(BaseModel):
    """Fields supplied when authoring or inferring a new memory."""

    agent_id: str
    memory_type: MemoryType = "fact"
    title: str = Field(..., min_length=1)
    content: str = Field(..., min_length=1)
    subject_type: Optional[str] = None
    subject_id: Optional[str] = None
    confidence: float = Field(1.0, ge=0.0, le=1.0)
    importance: float = Field(0.5, ge=0.0, le=1.0)
    source: MemorySource = "explicit"
    source_context: Optional[str] = None
    source_conversation_id: Optional[str] = None
    expires_at: Optional[float] = None

    class Config:
        json_schema_extra = {
            "example": {
                "agent_id": "agent_bri",
                "memory_type": "preference",
                "title": "Reply tone",
                "content": "Keep creator replies short and upbeat; no emoji in subject lines.",
                "subject_type": "team_member",
                "subject_id": "tm_42",
                "confidence": 0.9,
                "importance": 0.7,
                "source": "explicit",
            }
        }


class ScoredMemory(BaseModel):
    """A search hit with its similarity and combined score."""

    memory: Memory
    similarity: float = 0.0
    score: float = 0.0
    # Set by context ranking; defaults to score
    priority: float = 0.0


class DuplicatePair(BaseModel):
    """Two memories whose embeddings are near-identical."""

    first_id: str
    second_id: str
    similarity: float


class ConsolidationResult(BaseModel):
    """Outcome counts of a consolidation run."""

    merged: int = 0
    deactivated: int = 0
    kept: int = 0


class Pattern(BaseModel):
    """A captured successful query->response template."""

    id: str
    agent_id: str
    query_pattern: str
    response_pattern: str
    tools_used: List[str] = Field(default_factory=list)
    category: Optional[str] = None
    times_used: int = 0
    success_rate: float = Field(0.0, ge=0.0, le=1.0)
    avg_feedback_score: float = 0.0
    feedback_id: Optional[str] = None
    created_at: float = Field(default_factory=time.time)
    updated_at: float = Field(default_factory=time.time)


class PatternCreate(BaseModel):
    """Fields supplied when capturing a new pattern."""

    agent_id: str
    query_pattern: str = Field(..., min_length=1)
    response_pattern: str = Field(..., min_length=1)
    tools_used: List[str] = Field(default_factory=list)
    category: Optional[str] = None
    success_rate: float = Field(0.0, ge=0.0, le=1.0)


class FailureLearning(BaseModel):
    """A recorded mistake and the approach that should replace it."""

    id: str
    agent_id: str
    failure_type: str
    what_went_wrong: str
    correct_approach: str
    acknowledged: bool = False
    behavior_applied: bool = False
    created_at: float = Field(default_factory=time.time)


class ContextResult(BaseModel):
    """Assembled prompt context and the memories it contains."""

    context: str = ""
    memories_used: List[str] = Field(default_factory=list)
    token_estimate: int = 0
