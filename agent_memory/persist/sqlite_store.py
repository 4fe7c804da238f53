"""
SQLite-backed record store for the memory subsystem.

Tables:
- memories: agent knowledge records (embedding stored as float32 BLOB)
- patterns: reusable query->response templates with outcome stats
- failure_learnings: acknowledged mistakes and their corrections
- embedding_cache: content hash -> vector bytes

One connection is shared across worker threads; every statement runs under
a lock so async callers can dispatch through asyncio.to_thread.
"""

import sqlite3
import threading
from contextlib import contextmanager
from pathlib import Path
from typing import Any, Iterator, List, Optional, Sequence, Union

import numpy as np


SCHEMA = [
    """
    CREATE TABLE IF NOT EXISTS memories (
        id TEXT PRIMARY KEY,
        agent_id TEXT NOT NULL,
        memory_type TEXT NOT NULL,
        subject_type TEXT,
        subject_id TEXT,
        title TEXT NOT NULL,
        content TEXT NOT NULL,
        embedding BLOB,
        confidence REAL NOT NULL,
        importance REAL NOT NULL,
        times_used INTEGER NOT NULL DEFAULT 0,
        times_reinforced INTEGER NOT NULL DEFAULT 0,
        times_contradicted INTEGER NOT NULL DEFAULT 0,
        last_used_at REAL,
        source TEXT NOT NULL,
        source_context TEXT,
        source_conversation_id TEXT,
        is_active INTEGER NOT NULL DEFAULT 1,
        superseded_by TEXT REFERENCES memories(id),
        expires_at REAL,
        created_at REAL NOT NULL,
        updated_at REAL NOT NULL
    )
    """,
    "CREATE INDEX IF NOT EXISTS idx_memories_agent ON memories(agent_id, is_active)",
    "CREATE INDEX IF NOT EXISTS idx_memories_subject ON memories(agent_id, subject_type, subject_id)",
    "CREATE INDEX IF NOT EXISTS idx_memories_conversation ON memories(source_conversation_id)",
    """
    CREATE TABLE IF NOT EXISTS patterns (
        id TEXT PRIMARY KEY,
        agent_id TEXT NOT NULL,
        query_pattern TEXT NOT NULL,
        response_pattern TEXT NOT NULL,
        tools_used TEXT NOT NULL DEFAULT '[]',
        category TEXT,
        times_used INTEGER NOT NULL DEFAULT 0,
        success_rate REAL NOT NULL DEFAULT 0,
        avg_feedback_score REAL NOT NULL DEFAULT 0,
        feedback_id TEXT,
        created_at REAL NOT NULL,
        updated_at REAL NOT NULL
    )
    """,
    "CREATE INDEX IF NOT EXISTS idx_patterns_agent ON patterns(agent_id)",
    """
    CREATE TABLE IF NOT EXISTS failure_learnings (
        id TEXT PRIMARY KEY,
        agent_id TEXT NOT NULL,
        failure_type TEXT NOT NULL,
        what_went_wrong TEXT NOT NULL,
        correct_approach TEXT NOT NULL,
        acknowledged INTEGER NOT NULL DEFAULT 0,
        behavior_applied INTEGER NOT NULL DEFAULT 0,
        created_at REAL NOT NULL
    )
    """,
    "CREATE INDEX IF NOT EXISTS idx_failures_agent ON failure_learnings(agent_id, created_at)",
    """
    CREATE TABLE IF NOT EXISTS embedding_cache (
        key TEXT PRIMARY KEY,
        value BLOB NOT NULL,
        ts INTEGER NOT NULL
    )
    """,
]


def vector_to_blob(vector: Optional[Sequence[float]]) -> Optional[bytes]:
    """Encode an embedding as float32 bytes."""
    if vector is None:
        return None
    return np.asarray(vector, dtype=np.float32).tobytes()


def blob_to_vector(blob: Optional[bytes]) -> Optional[List[float]]:
    """Decode float32 bytes back into a list of floats."""
    if blob is None:
        return None
    return np.frombuffer(blob, dtype=np.float32).tolist()


def placeholders(count: int) -> str:
    """Build a '?, ?, ?' list for IN clauses."""
    return ", ".join("?" for _ in range(count))


class SQLiteStore:
    """
    File-backed SQLite database holding memory, pattern and failure records.

    Thread-safe with WAL mode and a connection-level lock.
    """

    def __init__(self, db_path: Union[str, Path]):
        """
        Initialize store at given path.

        Args:
            db_path: Path to SQLite database file, or ":memory:"
        """
        self.db_path = str(db_path)
        if self.db_path != ":memory:":
            Path(self.db_path).parent.mkdir(parents=True, exist_ok=True)

        self._lock = threading.RLock()
        self._conn = sqlite3.connect(
            self.db_path,
            check_same_thread=False,  # Accessed from asyncio worker threads
            timeout=10.0,
        )
        self._conn.row_factory = sqlite3.Row

        self._conn.execute("PRAGMA journal_mode=WAL")
        self._conn.execute("PRAGMA synchronous=NORMAL")

        self._init_tables()

    def _init_tables(self) -> None:
        """Create tables and indexes if they don't exist."""
        with self._lock:
            for statement in SCHEMA:
                self._conn.execute(statement)
            self._conn.commit()

    @contextmanager
    def transaction(self) -> Iterator[sqlite3.Connection]:
        """
        Run several statements atomically.

        Commits on success, rolls back on any exception.
        """
        with self._lock:
            try:
                yield self._conn
                self._conn.commit()
            except Exception:
                self._conn.rollback()
                raise

    def execute(self, sql: str, params: Sequence[Any] = ()) -> int:
        """
        Execute a single write statement.

        Returns:
            Number of rows affected
        """
        with self.transaction() as conn:
            cursor = conn.execute(sql, params)
            return cursor.rowcount

    def fetchall(self, sql: str, params: Sequence[Any] = ()) -> List[sqlite3.Row]:
        """Run a query and return all rows."""
        with self._lock:
            return self._conn.execute(sql, params).fetchall()

    def fetchone(self, sql: str, params: Sequence[Any] = ()) -> Optional[sqlite3.Row]:
        """Run a query and return the first row, if any."""
        with self._lock:
            return self._conn.execute(sql, params).fetchone()

    def close(self) -> None:
        """Close database connection."""
        with self._lock:
            self._conn.close()

    def __enter__(self):
        """Context manager entry."""
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        """Context manager exit."""
        self.close()
