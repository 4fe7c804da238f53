"""
Exception types raised by the memory subsystem.
"""


class AgentMemoryError(Exception):
    """Base class for all memory subsystem errors."""


class NotFoundError(AgentMemoryError):
    """A referenced memory or pattern does not exist (or is no longer active)."""

    def __init__(self, kind: str, record_id: str):
        self.kind = kind
        self.record_id = record_id
        super().__init__(f"{kind} not found: {record_id}")


class InvalidArgumentError(AgentMemoryError, ValueError):
    """The caller passed arguments that cannot be honored."""


class DependencyUnavailableError(AgentMemoryError):
    """An external collaborator (embedding provider, store) failed."""
