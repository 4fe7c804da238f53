from .settings import (
    ConsolidationCfg,
    ContextCfg,
    EmbeddingCfg,
    Paths,
    PatternCfg,
    SearchCfg,
    Settings,
    load_settings,
)

__all__ = [
    "ConsolidationCfg",
    "ContextCfg",
    "EmbeddingCfg",
    "Paths",
    "PatternCfg",
    "SearchCfg",
    "Settings",
    "load_settings",
]
