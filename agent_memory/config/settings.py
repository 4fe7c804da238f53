"""Application settings and configuration schema."""

import json
import os
from pathlib import Path
from typing import Optional, Union

from pydantic import BaseModel, Field


DB_PATH_ENV = "AGENT_MEMORY_DB_PATH"


class Paths(BaseModel):
    """File and directory paths configuration."""
    db_path: str = "data/memory/memory.db"


class EmbeddingCfg(BaseModel):
    """Embedding provider configuration."""
    model_name: str = "all-MiniLM-L6-v2"
    normalize: bool = True
    use_cache: bool = True


class SearchCfg(BaseModel):
    """Defaults for semantic search."""
    min_confidence: float = Field(0.3, ge=0.0, le=1.0)
    min_similarity: float = Field(0.3, ge=0.0, le=1.0)
    limit: int = Field(10, ge=1)


class ConsolidationCfg(BaseModel):
    """Duplicate merging, cleanup and decay thresholds."""
    similarity_threshold: float = Field(0.92, ge=0.0, le=1.0)
    min_confidence_to_keep: float = Field(0.2, ge=0.0, le=1.0)
    merge_separator: str = "\n\n---\n\n"
    decay_after_days: float = 30.0
    decay_factor: float = Field(0.9, gt=0.0, le=1.0)
    decay_floor: float = Field(0.1, ge=0.0, le=1.0)
    reinforce_step: float = 0.05
    contradict_step: float = 0.1


class ContextCfg(BaseModel):
    """Token-budgeted context assembly."""
    max_tokens: int = Field(2000, ge=1)
    min_confidence: float = Field(0.4, ge=0.0, le=1.0)
    candidate_limit: int = 30
    max_per_type: int = 4
    max_per_subject: int = 2
    max_total: int = 20
    conversation_share: float = Field(0.3, ge=0.0, le=1.0)
    use_recency: bool = True
    recency_weight: float = 0.05
    recency_decay_days: float = 30.0
    quick_limit: int = 5
    subject_limit: int = 10
    failure_limit: int = 5
    pattern_limit: int = 5


class PatternCfg(BaseModel):
    """Pattern tracker thresholds."""
    success_threshold: float = Field(0.8, ge=0.0, le=1.0)
    cleanup_min_success_rate: float = Field(0.3, ge=0.0, le=1.0)
    cleanup_min_uses: int = 5


class Settings(BaseModel):
    """Main application settings."""
    paths: Paths = Field(default_factory=Paths)
    embedding: EmbeddingCfg = Field(default_factory=EmbeddingCfg)
    search: SearchCfg = Field(default_factory=SearchCfg)
    consolidation: ConsolidationCfg = Field(default_factory=ConsolidationCfg)
    context: ContextCfg = Field(default_factory=ContextCfg)
    patterns: PatternCfg = Field(default_factory=PatternCfg)
    log_level: str = "INFO"


def load_settings(path: Optional[Union[str, Path]] = None) -> Settings:
    """
    Load settings from an optional JSON file.

    Values missing from the file fall back to defaults. The database path can
    be overridden with the AGENT_MEMORY_DB_PATH environment variable.

    Args:
        path: JSON settings file, or None for defaults

    Returns:
        Settings instance
    """
    data = {}
    if path is not None:
        data = json.loads(Path(path).read_text(encoding="utf-8"))

    settings = Settings.model_validate(data)

    db_path = os.environ.get(DB_PATH_ENV)
    if db_path:
        settings.paths.db_path = db_path

    return settings
