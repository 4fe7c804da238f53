"""
Failure learnings: mistakes an agent made and what it should do instead.

Only acknowledged entries whose corrected behavior has been applied are
fed back into prompts.
"""

import asyncio
import time
import uuid
from typing import List, Optional

from agent_memory.persist.sqlite_store import SQLiteStore
from .schemas import FailureLearning


_SELECT = (
    "SELECT id, agent_id, failure_type, what_went_wrong, correct_approach, "
    "acknowledged, behavior_applied, created_at FROM failure_learnings"
)


def _row_to_failure(row) -> FailureLearning:
    data = dict(row)
    data["acknowledged"] = bool(data["acknowledged"])
    data["behavior_applied"] = bool(data["behavior_applied"])
    return FailureLearning(**data)


class FailureLearningStore:
    """Read/write access to failure learnings."""

    def __init__(self, db: SQLiteStore):
        self.db = db

    async def record_failure(
        self,
        agent_id: str,
        failure_type: str,
        what_went_wrong: str,
        correct_approach: str,
    ) -> FailureLearning:
        """Record a new, unacknowledged failure."""
        failure = FailureLearning(
            id=f"fail_{uuid.uuid4().hex[:12]}",
            agent_id=agent_id,
            failure_type=failure_type,
            what_went_wrong=what_went_wrong,
            correct_approach=correct_approach,
            created_at=time.time(),
        )
        await asyncio.to_thread(
            self.db.execute,
            "INSERT INTO failure_learnings (id, agent_id, failure_type, what_went_wrong, "
            "correct_approach, acknowledged, behavior_applied, created_at) "
            "VALUES (?, ?, ?, ?, ?, 0, 0, ?)",
            (failure.id, agent_id, failure_type, what_went_wrong, correct_approach, failure.created_at),
        )
        return failure

    async def get(self, failure_id: str) -> Optional[FailureLearning]:
        row = await asyncio.to_thread(self.db.fetchone, f"{_SELECT} WHERE id = ?", (failure_id,))
        return _row_to_failure(row) if row else None

    async def acknowledge(self, failure_id: str) -> bool:
        updated = await asyncio.to_thread(
            self.db.execute,
            "UPDATE failure_learnings SET acknowledged = 1 WHERE id = ?",
            (failure_id,),
        )
        return updated > 0

    async def mark_behavior_applied(self, failure_id: str) -> bool:
        updated = await asyncio.to_thread(
            self.db.execute,
            "UPDATE failure_learnings SET behavior_applied = 1 WHERE id = ?",
            (failure_id,),
        )
        return updated > 0

    async def list_applied(self, agent_id: str, limit: int = 5) -> List[FailureLearning]:
        """Acknowledged, behavior-applied learnings, most recent first."""
        rows = await asyncio.to_thread(
            self.db.fetchall,
            f"{_SELECT} WHERE agent_id = ? AND acknowledged = 1 AND behavior_applied = 1 "
            "ORDER BY created_at DESC LIMIT ?",
            (agent_id, limit),
        )
        return [_row_to_failure(r) for r in rows]
