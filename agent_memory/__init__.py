"""Long-term agent memory with retrieval-augmented context assembly."""

from .errors import (
    AgentMemoryError,
    DependencyUnavailableError,
    InvalidArgumentError,
    NotFoundError,
)

__version__ = "0.1.0"

__all__ = [
    "AgentMemoryError",
    "DependencyUnavailableError",
    "InvalidArgumentError",
    "NotFoundError",
]
