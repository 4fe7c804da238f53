"""
Pattern tracking: outcome statistics for reusable query->response templates.

Patterns are disposable heuristics, so cleanup hard-deletes them. Updates
on an unknown pattern id are silent no-ops because they usually arrive from
background callbacks.
"""

import asyncio
import json
import logging
import sqlite3
import time
import uuid
from typing import List, Optional

from agent_memory.config.settings import PatternCfg
from agent_memory.persist.sqlite_store import SQLiteStore
from .schemas import Pattern, PatternCreate


logger = logging.getLogger(__name__)

PATTERN_COLUMNS = [
    "id", "agent_id", "query_pattern", "response_pattern", "tools_used",
    "category", "times_used", "success_rate", "avg_feedback_score",
    "feedback_id", "created_at", "updated_at",
]

_SELECT = f"SELECT {', '.join(PATTERN_COLUMNS)} FROM patterns"


def row_to_pattern(row: sqlite3.Row) -> Pattern:
    """Convert a patterns row into a Pattern model."""
    data = dict(row)
    data["tools_used"] = json.loads(data["tools_used"] or "[]")
    return Pattern(**data)


def next_success_rate(old_rate: float, times_used: int, success: bool) -> float:
    """
    Online incremental mean of outcomes.

    Args:
        old_rate: Rate before this outcome
        times_used: Usage count after incrementing for this outcome
        success: Outcome of this use
    """
    n = times_used
    total = old_rate * (n - 1) + (1.0 if success else 0.0)
    return total / n


def next_feedback_score(current_avg: float, rating: float) -> float:
    """
    Blend a new rating into the feedback score.

    Two-term blend rather than a running mean: the newest rating always
    carries half the weight.
    """
    if current_avg == 0:
        return rating
    return (current_avg + rating) / 2


class PatternTracker:
    """
    Stores patterns and keeps their success statistics current.
    """

    def __init__(self, db: SQLiteStore, config: Optional[PatternCfg] = None):
        self.db = db
        self.config = config or PatternCfg()

    def _get_sync(self, pattern_id: str) -> Optional[Pattern]:
        row = self.db.fetchone(f"{_SELECT} WHERE id = ?", (pattern_id,))
        return row_to_pattern(row) if row else None

    async def create_pattern(self, payload: PatternCreate) -> Pattern:
        """Capture a new pattern."""
        now = time.time()
        pattern = Pattern(
            id=f"pat_{uuid.uuid4().hex[:12]}",
            created_at=now,
            updated_at=now,
            **payload.model_dump(),
        )

        values = pattern.model_dump()
        values["tools_used"] = json.dumps(pattern.tools_used)

        await asyncio.to_thread(
            self.db.execute,
            f"INSERT INTO patterns ({', '.join(PATTERN_COLUMNS)}) "
            f"VALUES ({', '.join('?' for _ in PATTERN_COLUMNS)})",
            [values[c] for c in PATTERN_COLUMNS],
        )
        return pattern

    async def get_pattern(self, pattern_id: str) -> Optional[Pattern]:
        """Retrieve a pattern by ID."""
        return await asyncio.to_thread(self._get_sync, pattern_id)

    async def list_patterns(
        self,
        agent_id: str,
        category: Optional[str] = None,
        min_success_rate: Optional[float] = None,
        limit: int = 50,
    ) -> List[Pattern]:
        """List an agent's patterns, best success rate first."""
        sql = f"{_SELECT} WHERE agent_id = ?"
        params: list = [agent_id]
        if category is not None:
            sql += " AND category = ?"
            params.append(category)
        if min_success_rate is not None:
            sql += " AND success_rate >= ?"
            params.append(min_success_rate)
        sql += " ORDER BY success_rate DESC, times_used DESC LIMIT ?"
        params.append(limit)

        rows = await asyncio.to_thread(self.db.fetchall, sql, params)
        return [row_to_pattern(r) for r in rows]

    async def get_successful_patterns(
        self,
        agent_id: str,
        min_success_rate: Optional[float] = None,
        limit: int = 5,
    ) -> List[Pattern]:
        """Patterns at or above the success threshold (default 0.8)."""
        threshold = self.config.success_threshold if min_success_rate is None else min_success_rate
        return await self.list_patterns(agent_id, min_success_rate=threshold, limit=limit)

    def _record_usage_sync(self, pattern_id: str, success: bool) -> Optional[Pattern]:
        with self.db.transaction() as conn:
            updated = conn.execute(
                "UPDATE patterns SET times_used = times_used + 1 WHERE id = ?",
                (pattern_id,),
            ).rowcount
            if not updated:
                return None

            row = conn.execute(
                "SELECT times_used, success_rate FROM patterns WHERE id = ?",
                (pattern_id,),
            ).fetchone()
            rate = next_success_rate(row["success_rate"], row["times_used"], success)

            conn.execute(
                "UPDATE patterns SET success_rate = ?, updated_at = ? WHERE id = ?",
                (rate, time.time(), pattern_id),
            )
        return self._get_sync(pattern_id)

    async def record_pattern_usage(self, pattern_id: str, success: bool) -> Optional[Pattern]:
        """
        Count a use and fold its outcome into success_rate.

        The usage count is incremented first; the new rate uses the
        post-increment count n: (old * (n - 1) + outcome) / n.

        Returns:
            Updated Pattern, or None if the pattern does not exist
        """
        pattern = await asyncio.to_thread(self._record_usage_sync, pattern_id, success)
        if pattern is None:
            logger.debug(f"Ignoring usage for unknown pattern {pattern_id}")
        return pattern

    def _update_feedback_sync(
        self,
        pattern_id: str,
        rating: float,
        feedback_id: Optional[str],
    ) -> Optional[Pattern]:
        with self.db.transaction() as conn:
            row = conn.execute(
                "SELECT avg_feedback_score, feedback_id FROM patterns WHERE id = ?",
                (pattern_id,),
            ).fetchone()
            if row is None:
                return None

            score = next_feedback_score(row["avg_feedback_score"], rating)
            conn.execute(
                "UPDATE patterns SET avg_feedback_score = ?, feedback_id = ?, updated_at = ? WHERE id = ?",
                (score, feedback_id or row["feedback_id"], time.time(), pattern_id),
            )
        return self._get_sync(pattern_id)

    async def update_pattern_feedback(
        self,
        pattern_id: str,
        rating: float,
        feedback_id: Optional[str] = None,
    ) -> Optional[Pattern]:
        """
        Blend a feedback rating into avg_feedback_score.

        Returns:
            Updated Pattern, or None if the pattern does not exist
        """
        return await asyncio.to_thread(self._update_feedback_sync, pattern_id, rating, feedback_id)

    async def cleanup_patterns(
        self,
        agent_id: Optional[str] = None,
        min_success_rate: Optional[float] = None,
        min_uses: Optional[int] = None,
    ) -> int:
        """
        Hard-delete patterns that have been tried enough and keep failing.

        Args:
            agent_id: Restrict to one agent, or None for all
            min_success_rate: Delete below this rate (default 0.3)
            min_uses: Only patterns used at least this often (default 5)

        Returns:
            Number of patterns deleted
        """
        rate = self.config.cleanup_min_success_rate if min_success_rate is None else min_success_rate
        uses = self.config.cleanup_min_uses if min_uses is None else min_uses

        sql = "DELETE FROM patterns WHERE success_rate < ? AND times_used >= ?"
        params: list = [rate, uses]
        if agent_id is not None:
            sql += " AND agent_id = ?"
            params.append(agent_id)

        deleted = await asyncio.to_thread(self.db.execute, sql, params)
        if deleted:
            logger.info(f"Deleted {deleted} underperforming patterns (agent={agent_id or '*'})")
        return deleted
