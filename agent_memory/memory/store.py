"""
Memory persistence layer on top of the SQLite record store.

Pure data access: scoped queries and narrow mutations. Ranking and
similarity math live in search/consolidation, not here.
"""

import asyncio
import logging
import sqlite3
import time
import uuid
from typing import Any, List, Optional, Sequence

from agent_memory.persist.sqlite_store import (
    SQLiteStore,
    blob_to_vector,
    placeholders,
    vector_to_blob,
)
from .schemas import Memory, MemoryCreate


logger = logging.getLogger(__name__)

MEMORY_COLUMNS = [
    "id", "agent_id", "memory_type", "subject_type", "subject_id",
    "title", "content", "embedding", "confidence", "importance",
    "times_used", "times_reinforced", "times_contradicted", "last_used_at",
    "source", "source_context", "source_conversation_id",
    "is_active", "superseded_by", "expires_at", "created_at", "updated_at",
]

_SELECT = f"SELECT {', '.join(MEMORY_COLUMNS)} FROM memories"


def _clamp(value: float) -> float:
    return max(0.0, min(1.0, value))


def like_pattern(text: str) -> str:
    """Substring LIKE pattern with %, _ and the escape char matched literally."""
    escaped = text.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")
    return f"%{escaped}%"


def row_to_memory(row: sqlite3.Row) -> Memory:
    """Convert a memories row into a Memory model."""
    data = dict(row)
    data["embedding"] = blob_to_vector(data["embedding"])
    data["is_active"] = bool(data["is_active"])
    return Memory(**data)


class MemoryStore:
    """
    Async access to memory records.

    Every method dispatches its SQL to a worker thread so callers on the
    event loop never block on disk I/O.
    """

    def __init__(self, db: SQLiteStore):
        """
        Initialize memory store.

        Args:
            db: Shared SQLite record store
        """
        self.db = db

    async def _fetch(self, sql: str, params: Sequence[Any] = ()) -> List[Memory]:
        rows = await asyncio.to_thread(self.db.fetchall, sql, params)
        return [row_to_memory(r) for r in rows]

    async def _write(self, sql: str, params: Sequence[Any] = ()) -> int:
        return await asyncio.to_thread(self.db.execute, sql, params)

    # ------------------------------------------------------------------
    # Create / read
    # ------------------------------------------------------------------

    async def create(
        self,
        payload: MemoryCreate,
        embedding: Optional[List[float]] = None,
    ) -> Memory:
        """
        Store a new memory.

        Args:
            payload: Memory fields
            embedding: Precomputed embedding, or None

        Returns:
            Created Memory
        """
        now = time.time()
        memory = Memory(
            id=f"mem_{uuid.uuid4().hex[:12]}",
            embedding=embedding,
            created_at=now,
            updated_at=now,
            **payload.model_dump(),
        )

        values = memory.model_dump()
        values["embedding"] = vector_to_blob(memory.embedding)
        values["is_active"] = int(memory.is_active)

        await self._write(
            f"INSERT INTO memories ({', '.join(MEMORY_COLUMNS)}) "
            f"VALUES ({placeholders(len(MEMORY_COLUMNS))})",
            [values[c] for c in MEMORY_COLUMNS],
        )
        logger.debug(f"Created memory {memory.id} for agent {memory.agent_id}")
        return memory

    async def get(self, memory_id: str) -> Optional[Memory]:
        """Retrieve a memory by ID, active or not."""
        rows = await self._fetch(f"{_SELECT} WHERE id = ?", (memory_id,))
        return rows[0] if rows else None

    async def get_many(self, memory_ids: Sequence[str]) -> List[Memory]:
        """Retrieve several memories by ID (order not guaranteed)."""
        if not memory_ids:
            return []
        return await self._fetch(
            f"{_SELECT} WHERE id IN ({placeholders(len(memory_ids))})",
            list(memory_ids),
        )

    async def list_by_agent(
        self,
        agent_id: str,
        include_inactive: bool = False,
        limit: int = 100,
    ) -> List[Memory]:
        """List an agent's memories, most important first."""
        sql = f"{_SELECT} WHERE agent_id = ?"
        if not include_inactive:
            sql += " AND is_active = 1"
        sql += " ORDER BY importance DESC, confidence DESC, created_at DESC LIMIT ?"
        return await self._fetch(sql, (agent_id, limit))

    async def list_by_type(self, agent_id: str, memory_type: str, limit: int = 100) -> List[Memory]:
        """List an agent's active memories of one type."""
        return await self._fetch(
            f"{_SELECT} WHERE agent_id = ? AND memory_type = ? AND is_active = 1 "
            "ORDER BY importance DESC, confidence DESC LIMIT ?",
            (agent_id, memory_type, limit),
        )

    async def list_by_subject(
        self,
        agent_id: str,
        subject_type: str,
        subject_id: str,
        limit: int = 100,
    ) -> List[Memory]:
        """List an agent's active memories about one subject."""
        return await self._fetch(
            f"{_SELECT} WHERE agent_id = ? AND subject_type = ? AND subject_id = ? "
            "AND is_active = 1 ORDER BY importance DESC, confidence DESC LIMIT ?",
            (agent_id, subject_type, subject_id, limit),
        )

    async def list_by_conversation(self, conversation_id: str) -> List[Memory]:
        """List memories learned in a given conversation."""
        return await self._fetch(
            f"{_SELECT} WHERE source_conversation_id = ? ORDER BY created_at",
            (conversation_id,),
        )

    async def list_recent(
        self,
        agent_id: str,
        limit: int = 20,
        since: Optional[float] = None,
    ) -> List[Memory]:
        """List recently created active memories, newest first."""
        sql = f"{_SELECT} WHERE agent_id = ? AND is_active = 1"
        params: List[Any] = [agent_id]
        if since is not None:
            sql += " AND created_at >= ?"
            params.append(since)
        sql += " ORDER BY created_at DESC LIMIT ?"
        params.append(limit)
        return await self._fetch(sql, params)

    async def list_most_used(self, agent_id: str, limit: int = 20) -> List[Memory]:
        """List active memories by usage count."""
        return await self._fetch(
            f"{_SELECT} WHERE agent_id = ? AND is_active = 1 "
            "ORDER BY times_used DESC, last_used_at DESC LIMIT ?",
            (agent_id, limit),
        )

    async def list_candidates(
        self,
        agent_id: str,
        memory_types: Optional[Sequence[str]] = None,
        subject_type: Optional[str] = None,
        subject_id: Optional[str] = None,
        include_inactive: bool = False,
        min_confidence: float = 0.0,
        require_embedding: bool = True,
    ) -> List[Memory]:
        """
        Fetch search candidates with all filters applied.

        Args:
            agent_id: Owning agent
            memory_types: Restrict to these types
            subject_type: Restrict to this subject type
            subject_id: Restrict to this subject id
            include_inactive: Include deactivated memories
            min_confidence: Lower bound on confidence (inclusive)
            require_embedding: Only memories with an embedding

        Returns:
            Matching memories (unordered)
        """
        sql = f"{_SELECT} WHERE agent_id = ? AND confidence >= ?"
        params: List[Any] = [agent_id, min_confidence]

        if not include_inactive:
            sql += " AND is_active = 1"
        if require_embedding:
            sql += " AND embedding IS NOT NULL"
        if memory_types:
            sql += f" AND memory_type IN ({placeholders(len(memory_types))})"
            params.extend(memory_types)
        if subject_type is not None:
            sql += " AND subject_type = ?"
            params.append(subject_type)
        if subject_id is not None:
            sql += " AND subject_id = ?"
            params.append(subject_id)

        return await self._fetch(sql, params)

    async def keyword_search(
        self,
        agent_id: str,
        query: str,
        memory_types: Optional[Sequence[str]] = None,
        include_inactive: bool = False,
        min_confidence: float = 0.0,
        limit: int = 10,
    ) -> List[Memory]:
        """Case-insensitive substring match on title/content, best confidence first."""
        pattern = like_pattern(query.lower())
        sql = (
            f"{_SELECT} WHERE agent_id = ? AND confidence >= ? "
            "AND (lower(title) LIKE ? ESCAPE '\\' OR lower(content) LIKE ? ESCAPE '\\')"
        )
        params: List[Any] = [agent_id, min_confidence, pattern, pattern]

        if not include_inactive:
            sql += " AND is_active = 1"
        if memory_types:
            sql += f" AND memory_type IN ({placeholders(len(memory_types))})"
            params.extend(memory_types)

        sql += " ORDER BY confidence DESC, importance DESC LIMIT ?"
        params.append(limit)
        return await self._fetch(sql, params)

    async def list_active_with_embeddings(self, agent_id: str) -> List[Memory]:
        """Working set for duplicate detection."""
        return await self._fetch(
            f"{_SELECT} WHERE agent_id = ? AND is_active = 1 AND embedding IS NOT NULL "
            "ORDER BY created_at",
            (agent_id,),
        )

    async def list_missing_embeddings(self, agent_id: str, limit: int = 100) -> List[Memory]:
        """Active memories whose embedding was never computed."""
        return await self._fetch(
            f"{_SELECT} WHERE agent_id = ? AND is_active = 1 AND embedding IS NULL "
            "ORDER BY created_at LIMIT ?",
            (agent_id, limit),
        )

    async def list_low_confidence(
        self,
        agent_id: Optional[str],
        threshold: float,
    ) -> List[Memory]:
        """Active memories with confidence below threshold."""
        sql = f"{_SELECT} WHERE is_active = 1 AND confidence < ?"
        params: List[Any] = [threshold]
        if agent_id is not None:
            sql += " AND agent_id = ?"
            params.append(agent_id)
        return await self._fetch(sql, params)

    async def list_expired(self, agent_id: Optional[str], now: float) -> List[Memory]:
        """Active memories whose expires_at has passed."""
        sql = f"{_SELECT} WHERE is_active = 1 AND expires_at IS NOT NULL AND expires_at <= ?"
        params: List[Any] = [now]
        if agent_id is not None:
            sql += " AND agent_id = ?"
            params.append(agent_id)
        return await self._fetch(sql, params)

    async def list_stale(
        self,
        agent_id: Optional[str],
        cutoff: float,
        floor: float,
    ) -> List[Memory]:
        """Active memories not used (or created, if never used) since cutoff."""
        sql = (
            f"{_SELECT} WHERE is_active = 1 AND importance > ? "
            "AND COALESCE(last_used_at, created_at) < ?"
        )
        params: List[Any] = [floor, cutoff]
        if agent_id is not None:
            sql += " AND agent_id = ?"
            params.append(agent_id)
        return await self._fetch(sql, params)

    async def count_active(self, agent_id: str) -> int:
        """Number of active memories for an agent."""
        row = await asyncio.to_thread(
            self.db.fetchone,
            "SELECT COUNT(*) AS n FROM memories WHERE agent_id = ? AND is_active = 1",
            (agent_id,),
        )
        return int(row["n"]) if row else 0

    # ------------------------------------------------------------------
    # Narrow mutations
    # ------------------------------------------------------------------

    async def record_usage(self, memory_ids: Sequence[str], used_at: Optional[float] = None) -> int:
        """
        Increment times_used and stamp last_used_at for many memories.

        One multi-row UPDATE, not one round trip per memory.

        Returns:
            Number of rows updated
        """
        if not memory_ids:
            return 0
        ts = used_at if used_at is not None else time.time()
        return await self._write(
            "UPDATE memories SET times_used = times_used + 1, last_used_at = ?, updated_at = ? "
            f"WHERE id IN ({placeholders(len(memory_ids))})",
            [ts, ts, *memory_ids],
        )

    async def record_reinforcement(self, memory_id: str, step: float = 0.05) -> Optional[Memory]:
        """Count a confirmation and nudge confidence up (capped at 1)."""
        await self._write(
            "UPDATE memories SET times_reinforced = times_reinforced + 1, "
            "confidence = MIN(1.0, confidence + ?), updated_at = ? WHERE id = ?",
            (step, time.time(), memory_id),
        )
        return await self.get(memory_id)

    async def record_contradiction(self, memory_id: str, step: float = 0.1) -> Optional[Memory]:
        """Count a contradiction and nudge confidence down (floored at 0)."""
        await self._write(
            "UPDATE memories SET times_contradicted = times_contradicted + 1, "
            "confidence = MAX(0.0, confidence - ?), updated_at = ? WHERE id = ?",
            (step, time.time(), memory_id),
        )
        return await self.get(memory_id)

    async def update_confidence(self, memory_id: str, confidence: float) -> bool:
        """Set confidence (clamped to [0, 1])."""
        updated = await self._write(
            "UPDATE memories SET confidence = ?, updated_at = ? WHERE id = ?",
            (_clamp(confidence), time.time(), memory_id),
        )
        return updated > 0

    async def update_memory_type(self, memory_id: str, memory_type: str) -> bool:
        """Reclassify a memory."""
        updated = await self._write(
            "UPDATE memories SET memory_type = ?, updated_at = ? WHERE id = ?",
            (memory_type, time.time(), memory_id),
        )
        return updated > 0

    async def update_embedding(self, memory_id: str, embedding: List[float]) -> bool:
        """Attach a computed embedding."""
        updated = await self._write(
            "UPDATE memories SET embedding = ?, updated_at = ? WHERE id = ?",
            (vector_to_blob(embedding), time.time(), memory_id),
        )
        return updated > 0

    async def scale_importance(self, memory_ids: Sequence[str], factor: float, floor: float) -> int:
        """Multiply importance by factor for many memories, never below floor."""
        if not memory_ids:
            return 0
        return await self._write(
            "UPDATE memories SET importance = MAX(?, importance * ?), updated_at = ? "
            f"WHERE id IN ({placeholders(len(memory_ids))})",
            [floor, factor, time.time(), *memory_ids],
        )

    async def supersede(self, memory_ids: Sequence[str], new_id: str) -> int:
        """
        Deactivate memories and point them at their replacement.

        Single batched update so is_active and superseded_by change together.
        """
        if not memory_ids:
            return 0
        return await self._write(
            "UPDATE memories SET is_active = 0, superseded_by = ?, updated_at = ? "
            f"WHERE id IN ({placeholders(len(memory_ids))})",
            [new_id, time.time(), *memory_ids],
        )

    async def deactivate(self, memory_ids: Sequence[str]) -> int:
        """Deactivate memories without a successor."""
        if not memory_ids:
            return 0
        return await self._write(
            "UPDATE memories SET is_active = 0, updated_at = ? "
            f"WHERE is_active = 1 AND id IN ({placeholders(len(memory_ids))})",
            [time.time(), *memory_ids],
        )

    async def deactivate_low_confidence(self, agent_id: Optional[str], threshold: float) -> int:
        """Deactivate active memories with confidence below threshold."""
        sql = "UPDATE memories SET is_active = 0, updated_at = ? WHERE is_active = 1 AND confidence < ?"
        params: List[Any] = [time.time(), threshold]
        if agent_id is not None:
            sql += " AND agent_id = ?"
            params.append(agent_id)
        return await self._write(sql, params)

    async def deactivate_expired(self, agent_id: Optional[str], now: float) -> int:
        """Deactivate active memories whose expires_at has passed."""
        sql = (
            "UPDATE memories SET is_active = 0, updated_at = ? "
            "WHERE is_active = 1 AND expires_at IS NOT NULL AND expires_at <= ?"
        )
        params: List[Any] = [now, now]
        if agent_id is not None:
            sql += " AND agent_id = ?"
            params.append(agent_id)
        return await self._write(sql, params)
