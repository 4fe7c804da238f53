"""
Unit tests for telemetry helpers and the error hierarchy.
"""
import uuid

import pytest
from structlog.testing import capture_logs

from agent_memory.errors import (
    AgentMemoryError,
    DependencyUnavailableError,
    InvalidArgumentError,
    NotFoundError,
)
from agent_memory.telemetry import log_step, new_run_id


def test_new_run_id_is_uuid():
    run_id = new_run_id()
    assert str(uuid.UUID(run_id)) == run_id
    assert new_run_id() != run_id


def test_log_step_emits_timing_event():
    with capture_logs() as logs:
        log_step("run-1", "consolidate", 12.3456, {"agent_id": "agent_a", "merged": 2})

    assert len(logs) == 1
    event = logs[0]
    assert event["event"] == "step_executed"
    assert event["run_id"] == "run-1"
    assert event["step"] == "consolidate"
    assert event["duration_ms"] == 12.35
    assert event["merged"] == 2


def test_error_hierarchy():
    for error_cls in (NotFoundError, InvalidArgumentError, DependencyUnavailableError):
        assert issubclass(error_cls, AgentMemoryError)
    assert issubclass(InvalidArgumentError, ValueError)


def test_not_found_message():
    error = NotFoundError("memory", "mem_123")
    assert str(error) == "memory not found: mem_123"
    assert error.record_id == "mem_123"

    with pytest.raises(AgentMemoryError):
        raise error
