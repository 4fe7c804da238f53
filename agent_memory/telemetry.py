"""
Logging setup and step timing for memory operations.
"""

import logging
import uuid
from typing import Any, Dict, Optional

import structlog


logger = structlog.get_logger(__name__)


def configure_logging(level: str = "INFO") -> None:
    """
    Route stdlib logging and structlog step events to JSON lines.

    Args:
        level: Log level name (DEBUG, INFO, ...)
    """
    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.INFO),
        format="%(message)s",
    )
    structlog.configure(
        processors=[
            structlog.stdlib.add_log_level,
            structlog.stdlib.add_logger_name,
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.processors.StackInfoRenderer(),
            structlog.processors.format_exc_info,
            structlog.processors.JSONRenderer(),
        ],
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=False,
    )


def new_run_id() -> str:
    """Generate a new unique run ID."""
    return str(uuid.uuid4())


def log_step(
    run_id: str,
    step_name: str,
    ms: float,
    extra: Optional[Dict[str, Any]] = None,
) -> None:
    """
    Log a pipeline step with timing.

    Args:
        run_id: Unique run identifier
        step_name: Name of the step (e.g., "build_context", "consolidate")
        ms: Duration in milliseconds
        extra: Optional extra fields to log
    """
    log_data = {
        "run_id": run_id,
        "step": step_name,
        "duration_ms": round(ms, 2),
        **(extra or {}),
    }
    logger.info("step_executed", **log_data)
