"""
Memory Consolidation Engine - keep an agent's memory set compact and trustworthy

Three independent passes, each with a dry_run mode that only counts:
- duplicate detection + greedy merge of near-identical memories
- cleanup of low-confidence and expired memories (deactivation, never delete)
- importance decay of memories that have not been used for a while

Runs are not locked internally. Callers must serialize consolidation per
agent (a scheduler or an advisory lock); concurrent runs for the same agent
can double-merge.
"""

import logging
import time
from typing import List, Optional, Set

from agent_memory.config.settings import ConsolidationCfg
from agent_memory.embeddings.similarity import pairs_above
from agent_memory.errors import InvalidArgumentError, NotFoundError
from agent_memory.telemetry import log_step, new_run_id
from .schemas import ConsolidationResult, DuplicatePair, Memory, MemoryCreate
from .store import MemoryStore
from .writer import MemoryWriter


logger = logging.getLogger(__name__)

SIMILARITY_THRESHOLD = 0.92


class ConsolidationEngine:
    """
    Merges near-duplicate memories and retires low-value ones.

    Duplicate detection loads an agent-scoped working set once per call
    and compares all pairs, so cost grows as O(n^2) with the agent's active
    memory count. Callers with large sets should chunk.
    """

    def __init__(
        self,
        store: MemoryStore,
        writer: MemoryWriter,
        config: Optional[ConsolidationCfg] = None,
    ):
        self.store = store
        self.writer = writer
        self.config = config or ConsolidationCfg()

    # ------------------------------------------------------------------
    # Duplicates
    # ------------------------------------------------------------------

    async def find_duplicates(
        self,
        agent_id: str,
        threshold: Optional[float] = None,
    ) -> List[DuplicatePair]:
        """
        Find pairs of an agent's active memories with near-identical embeddings.

        Args:
            agent_id: Owning agent
            threshold: Minimum cosine similarity (default 0.92)

        Returns:
            DuplicatePair list sorted by similarity, highest first
        """
        threshold = self.config.similarity_threshold if threshold is None else threshold

        working_set = await self.store.list_active_with_embeddings(agent_id)
        if len(working_set) < 2:
            return []

        pairs = pairs_above([m.embedding for m in working_set], threshold)
        return [
            DuplicatePair(
                first_id=working_set[i].id,
                second_id=working_set[j].id,
                similarity=sim,
            )
            for i, j, sim in pairs
        ]

    async def merge_memories(self, first_id: str, second_id: str) -> Memory:
        """
        Merge two active memories of the same agent into a new one.

        The merged memory gets its own embedding from the writer; both
        originals are deactivated and point at it via superseded_by.

        Args:
            first_id: Memory whose title/type lead the merge
            second_id: Memory folded into the first

        Returns:
            The newly created merged Memory

        Raises:
            NotFoundError: If either memory is missing or already inactive
            InvalidArgumentError: If the ids are equal or owned by different agents
        """
        if first_id == second_id:
            raise InvalidArgumentError(f"Cannot merge memory {first_id} with itself")

        first = await self.store.get(first_id)
        if first is None or not first.is_active:
            raise NotFoundError("memory", first_id)

        second = await self.store.get(second_id)
        if second is None or not second.is_active:
            raise NotFoundError("memory", second_id)

        if first.agent_id != second.agent_id:
            raise InvalidArgumentError(
                f"Cannot merge memories of different agents ({first.agent_id} vs {second.agent_id})"
            )

        payload = self._merged_payload(first, second)
        merged = await self.writer.create(payload)
        await self.store.supersede([first.id, second.id], merged.id)

        logger.info(f"Merged memories {first.id} + {second.id} -> {merged.id}")
        return merged

    def _merged_payload(self, first: Memory, second: Memory) -> MemoryCreate:
        if first.title == second.title:
            title = first.title
        else:
            title = f"{first.title} / {second.title}"

        same_subject = first.subject_key == second.subject_key

        return MemoryCreate(
            agent_id=first.agent_id,
            memory_type=first.memory_type,
            title=title,
            content=f"{first.content}{self.config.merge_separator}{second.content}",
            subject_type=first.subject_type if same_subject else None,
            subject_id=first.subject_id if same_subject else None,
            confidence=max(first.confidence, second.confidence),
            importance=max(first.importance, second.importance),
            source="inferred",
            source_context=f"Merged from memories {first.id} and {second.id}",
        )

    # ------------------------------------------------------------------
    # Cleanup
    # ------------------------------------------------------------------

    async def cleanup_low_confidence(
        self,
        agent_id: Optional[str] = None,
        min_confidence_to_keep: Optional[float] = None,
        dry_run: bool = False,
    ) -> int:
        """
        Deactivate active memories with confidence below the keep threshold.

        Args:
            agent_id: Restrict to one agent, or None for all agents
            min_confidence_to_keep: Threshold (default 0.2)
            dry_run: Count only

        Returns:
            Number of memories deactivated (or that would be)
        """
        threshold = (
            self.config.min_confidence_to_keep
            if min_confidence_to_keep is None
            else min_confidence_to_keep
        )
        if dry_run:
            return len(await self.store.list_low_confidence(agent_id, threshold))

        count = await self.store.deactivate_low_confidence(agent_id, threshold)
        if count:
            logger.info(f"Deactivated {count} low-confidence memories (agent={agent_id or '*'})")
        return count

    async def cleanup_expired_memories(
        self,
        agent_id: Optional[str] = None,
        dry_run: bool = False,
        now: Optional[float] = None,
    ) -> int:
        """
        Deactivate active memories whose expires_at has passed, whatever their confidence.

        Returns:
            Number of memories deactivated (or that would be)
        """
        now = time.time() if now is None else now
        if dry_run:
            return len(await self.store.list_expired(agent_id, now))

        count = await self.store.deactivate_expired(agent_id, now)
        if count:
            logger.info(f"Deactivated {count} expired memories (agent={agent_id or '*'})")
        return count

    async def decay_importance(
        self,
        agent_id: Optional[str] = None,
        older_than_days: Optional[float] = None,
        factor: Optional[float] = None,
        floor: Optional[float] = None,
        dry_run: bool = False,
        now: Optional[float] = None,
    ) -> int:
        """
        Reduce importance of memories not used within a window.

        A memory that was never used ages from its creation time. Importance
        is multiplied by `factor` and never drops below `floor`.

        Returns:
            Number of memories decayed (or that would be)
        """
        cfg = self.config
        older_than_days = cfg.decay_after_days if older_than_days is None else older_than_days
        factor = cfg.decay_factor if factor is None else factor
        floor = cfg.decay_floor if floor is None else floor
        now = time.time() if now is None else now

        cutoff = now - older_than_days * 86400
        stale = await self.store.list_stale(agent_id, cutoff, floor)
        if dry_run or not stale:
            return len(stale)

        count = await self.store.scale_importance([m.id for m in stale], factor, floor)
        logger.info(f"Decayed importance of {count} memories (agent={agent_id or '*'})")
        return count

    # ------------------------------------------------------------------
    # Full run
    # ------------------------------------------------------------------

    async def consolidate(
        self,
        agent_id: str,
        dry_run: bool = False,
        min_confidence_to_keep: Optional[float] = None,
        threshold: Optional[float] = None,
    ) -> ConsolidationResult:
        """
        Merge duplicates, then deactivate low-confidence memories.

        Pairs are processed greedily in similarity order and a memory takes
        part in at most one merge per run.

        Args:
            agent_id: Owning agent
            dry_run: Compute counts without mutating anything
            min_confidence_to_keep: Cleanup threshold (default 0.2)
            threshold: Duplicate similarity threshold (default 0.92)

        Returns:
            ConsolidationResult with merged, deactivated and kept counts
        """
        run_id = new_run_id()
        started = time.perf_counter()

        pairs = await self.find_duplicates(agent_id, threshold=threshold)

        used: Set[str] = set()
        planned: List[DuplicatePair] = []
        for pair in pairs:
            if pair.first_id in used or pair.second_id in used:
                continue
            if not dry_run:
                await self.merge_memories(pair.first_id, pair.second_id)
            used.add(pair.first_id)
            used.add(pair.second_id)
            planned.append(pair)
        merged = len(planned)

        keep_threshold = (
            self.config.min_confidence_to_keep
            if min_confidence_to_keep is None
            else min_confidence_to_keep
        )

        if dry_run:
            low = await self.store.list_low_confidence(agent_id, keep_threshold)
            deactivated = len([m for m in low if m.id not in used])
            # A merged memory inherits the higher parent confidence
            parents = {m.id: m.confidence for m in await self.store.get_many(list(used))}
            deactivated += sum(
                1 for p in planned
                if max(parents[p.first_id], parents[p.second_id]) < keep_threshold
            )
            active = await self.store.count_active(agent_id)
            kept = active - merged - deactivated
        else:
            deactivated = await self.cleanup_low_confidence(agent_id, keep_threshold)
            kept = await self.store.count_active(agent_id)

        result = ConsolidationResult(merged=merged, deactivated=deactivated, kept=kept)
        log_step(
            run_id,
            "consolidate",
            (time.perf_counter() - started) * 1000,
            {"agent_id": agent_id, "dry_run": dry_run, **result.model_dump()},
        )
        return result
