"""
Token-budgeted context assembly for agent prompts.

Pipeline:
1. search    - oversized semantic candidate pool
2. rank      - similarity x confidence x importance + small recency bonus
3. diversify - cap results per memory type and per subject
4. group     - by memory type in a fixed, readable order
5. assemble  - all-or-nothing items under a running token budget
6. telemetry - detached, best-effort usage update for included memories

Memory retrieval must never block agent execution: a failed search yields
an empty context, and telemetry failures are only logged.
"""

import asyncio
import logging
import math
import time
from collections import Counter, OrderedDict
from typing import Callable, Dict, List, Optional, Sequence, Set, Tuple

from agent_memory.config.settings import ContextCfg
from agent_memory.telemetry import log_step, new_run_id
from .failures import FailureLearningStore
from .patterns import PatternTracker
from .schemas import (
    MEMORY_TYPE_HEADINGS,
    MEMORY_TYPE_ORDER,
    ContextResult,
    FailureLearning,
    Memory,
    Pattern,
    ScoredMemory,
)
from .search import SemanticSearch
from .store import MemoryStore


logger = logging.getLogger(__name__)

CONVERSATION_HEADING = "## Current Conversation"
FAILURES_HEADING = "## Lessons Learned"
PATTERNS_HEADING = "## Successful Patterns"


def format_memory(memory: Memory) -> str:
    """Render one memory as a bullet line."""
    return f"- {memory.title}: {memory.content}"


def format_failure(failure: FailureLearning) -> str:
    return (
        f"- [{failure.failure_type}] {failure.what_went_wrong} "
        f"Instead: {failure.correct_approach}"
    )


def format_pattern(pattern: Pattern) -> str:
    line = f"- When: {pattern.query_pattern} -> {pattern.response_pattern}"
    if pattern.tools_used:
        line += f" (tools: {', '.join(pattern.tools_used)})"
    return line


def rank_memories(
    candidates: Sequence[ScoredMemory],
    use_recency: bool = True,
    recency_weight: float = 0.05,
    recency_decay_days: float = 30.0,
    now: Optional[float] = None,
) -> List[ScoredMemory]:
    """
    Re-sort candidates by combined priority. Nothing is filtered out.

    priority = similarity * confidence * importance
               + recency_weight * exp(-age_days / recency_decay_days)

    Age counts from last use, or from creation for never-used memories.
    """
    now = time.time() if now is None else now

    for item in candidates:
        memory = item.memory
        priority = item.similarity * memory.confidence * memory.importance

        if use_recency and recency_decay_days > 0:
            reference = memory.last_used_at or memory.created_at
            age_days = max(0.0, (now - reference) / 86400)
            priority += recency_weight * math.exp(-age_days / recency_decay_days)

        item.priority = priority

    return sorted(candidates, key=lambda s: s.priority, reverse=True)


def diversify(
    ranked: Sequence[ScoredMemory],
    max_per_type: int = 4,
    max_per_subject: int = 2,
    max_total: int = 20,
) -> List[ScoredMemory]:
    """
    Greedy walk in rank order keeping at most `max_per_type` per memory
    type and `max_per_subject` per (subject_type, subject_id).

    Memories without a subject only count against the type cap.
    """
    type_counts: Counter = Counter()
    subject_counts: Counter = Counter()
    selected: List[ScoredMemory] = []

    for item in ranked:
        if len(selected) >= max_total:
            break

        memory = item.memory
        if type_counts[memory.memory_type] >= max_per_type:
            continue

        subject = memory.subject_key
        if subject is not None and subject_counts[subject] >= max_per_subject:
            continue

        selected.append(item)
        type_counts[memory.memory_type] += 1
        if subject is not None:
            subject_counts[subject] += 1

    return selected


def group_by_type(items: Sequence[ScoredMemory]) -> "OrderedDict[str, List[ScoredMemory]]":
    """Group by memory type in MEMORY_TYPE_ORDER, keeping rank order inside a group."""
    buckets: Dict[str, List[ScoredMemory]] = {}
    for item in items:
        buckets.setdefault(item.memory.memory_type, []).append(item)

    ordered: "OrderedDict[str, List[ScoredMemory]]" = OrderedDict()
    for memory_type in MEMORY_TYPE_ORDER:
        if memory_type in buckets:
            ordered[memory_type] = buckets.pop(memory_type)
    for memory_type in sorted(buckets):
        ordered[memory_type] = buckets[memory_type]
    return ordered


class _Budget:
    """Running token counter over emitted context pieces."""

    def __init__(self, max_tokens: int, estimate: Callable[[str], int]):
        self.max_tokens = max_tokens
        self.estimate = estimate
        self.used = 0
        self.parts: List[str] = []

    def fits(self, *pieces: str) -> bool:
        cost = sum(self.estimate(p) for p in pieces)
        return self.used + cost <= self.max_tokens

    def add(self, piece: str) -> None:
        self.parts.append(piece)
        self.used += self.estimate(piece)

    def add_section(self, heading: str, lines: Sequence[str]) -> Tuple[int, bool]:
        """
        Append a heading plus as many whole lines as fit.

        The heading is only emitted together with its first line.

        Returns:
            (lines added, True if a line did not fit)
        """
        header = f"\n{heading}\n"
        added = 0
        for line in lines:
            piece = f"{line}\n"
            if added == 0:
                if not self.fits(header, piece):
                    return added, True
                self.add(header)
            elif not self.fits(piece):
                return added, True
            self.add(piece)
            added += 1
        return added, False

    def text(self) -> str:
        return "".join(self.parts).strip("\n")


class ContextAssembler:
    """
    Builds the knowledge section of an agent prompt.

    Usage telemetry runs as detached asyncio tasks; call drain() to wait for
    them (tests, graceful shutdown).
    """

    def __init__(
        self,
        search: SemanticSearch,
        store: MemoryStore,
        patterns: Optional[PatternTracker] = None,
        failures: Optional[FailureLearningStore] = None,
        config: Optional[ContextCfg] = None,
    ):
        """
        Initialize assembler.

        Args:
            search: Semantic search engine
            store: Memory store (usage telemetry, subject lookups)
            patterns: Optional pattern source for the successful-patterns section
            failures: Optional failure-learning feed for the lessons section
            config: Context defaults
        """
        self.search = search
        self.store = store
        self.patterns = patterns
        self.failures = failures
        self.config = config or ContextCfg()
        self._pending: Set[asyncio.Task] = set()

    def estimate_tokens(self, text: str) -> int:
        return self.search.embedder.estimate_tokens(text)

    # ------------------------------------------------------------------
    # Full pipeline
    # ------------------------------------------------------------------

    async def build_context(
        self,
        agent_id: str,
        query: str,
        max_tokens: Optional[int] = None,
        min_confidence: Optional[float] = None,
        conversation_context: Optional[str] = None,
        include_failures: bool = False,
        include_patterns: bool = False,
        memory_types: Optional[Sequence[str]] = None,
    ) -> ContextResult:
        """
        Assemble relevant memories into a context string under a token budget.

        Args:
            agent_id: Agent whose memories are searched
            query: Current user request / task
            max_tokens: Budget for the whole context (default 2000)
            min_confidence: Candidate confidence floor (default 0.4)
            conversation_context: Optional recent conversation, capped at 30% of the budget
            include_failures: Append lessons from applied failure learnings
            include_patterns: Append high success-rate patterns
            memory_types: Restrict memories to these types

        Returns:
            ContextResult; context is "" when no memories qualify
        """
        cfg = self.config
        max_tokens = cfg.max_tokens if max_tokens is None else max_tokens
        min_confidence = cfg.min_confidence if min_confidence is None else min_confidence

        run_id = new_run_id()
        started = time.perf_counter()

        candidates = await self._safe_search(
            agent_id,
            query,
            memory_types=memory_types,
            min_confidence=min_confidence,
            limit=cfg.candidate_limit,
        )
        if not candidates:
            return ContextResult()

        ranked = rank_memories(
            candidates,
            use_recency=cfg.use_recency,
            recency_weight=cfg.recency_weight,
            recency_decay_days=cfg.recency_decay_days,
        )
        selected = diversify(
            ranked,
            max_per_type=cfg.max_per_type,
            max_per_subject=cfg.max_per_subject,
            max_total=cfg.max_total,
        )
        groups = group_by_type(selected)

        budget = _Budget(max_tokens, self.estimate_tokens)

        if conversation_context:
            section = self._conversation_section(
                conversation_context, int(max_tokens * cfg.conversation_share)
            )
            if section and budget.fits(section):
                budget.add(section)

        memories_used: List[str] = []
        exhausted = False
        for memory_type, items in groups.items():
            heading = f"## {MEMORY_TYPE_HEADINGS.get(memory_type, memory_type.replace('_', ' ').title())}"
            added, exhausted = budget.add_section(heading, [format_memory(i.memory) for i in items])
            memories_used.extend(i.memory.id for i in items[:added])
            if exhausted:
                break

        if not memories_used:
            return ContextResult()

        if not exhausted and include_failures and self.failures is not None:
            lessons = await self._safe_failures(agent_id)
            _, exhausted = budget.add_section(FAILURES_HEADING, [format_failure(f) for f in lessons])

        if not exhausted and include_patterns and self.patterns is not None:
            patterns = await self._safe_patterns(agent_id)
            budget.add_section(PATTERNS_HEADING, [format_pattern(p) for p in patterns])

        context = budget.text()
        self._schedule_usage_update(memories_used)

        log_step(
            run_id,
            "build_context",
            (time.perf_counter() - started) * 1000,
            {
                "agent_id": agent_id,
                "candidates": len(candidates),
                "selected": len(selected),
                "used": len(memories_used),
                "tokens": budget.used,
            },
        )
        return ContextResult(
            context=context,
            memories_used=memories_used,
            token_estimate=self.estimate_tokens(context),
        )

    def _conversation_section(self, conversation: str, cap: int) -> str:
        """Conversation text under its heading, cut down to `cap` tokens."""
        if cap <= 0:
            return ""

        text = conversation.strip()
        section = f"{CONVERSATION_HEADING}\n{text}\n"
        if self.estimate_tokens(section) <= cap:
            return section

        chars = len(text)
        while chars > 0:
            chars = int(chars * 0.9)
            section = f"{CONVERSATION_HEADING}\n...{text[-chars:] if chars else ''}\n"
            if self.estimate_tokens(section) <= cap:
                return section if chars else ""
        return ""

    # ------------------------------------------------------------------
    # Lightweight entry points
    # ------------------------------------------------------------------

    async def quick_context(
        self,
        agent_id: str,
        query: str,
        limit: Optional[int] = None,
        min_confidence: Optional[float] = None,
    ) -> ContextResult:
        """Flat list of the top few memories, no grouping or budget."""
        limit = self.config.quick_limit if limit is None else limit
        min_confidence = self.config.min_confidence if min_confidence is None else min_confidence

        results = await self._safe_search(agent_id, query, min_confidence=min_confidence, limit=limit)
        if not results:
            return ContextResult()

        context = "\n".join(format_memory(r.memory) for r in results)
        return ContextResult(
            context=context,
            memories_used=[r.memory.id for r in results],
            token_estimate=self.estimate_tokens(context),
        )

    async def subject_context(
        self,
        agent_id: str,
        subject_type: str,
        subject_id: str,
        query: Optional[str] = None,
        limit: Optional[int] = None,
    ) -> ContextResult:
        """
        Everything the agent knows about one subject.

        Direct subject lookup first, then (if a query is given) a semantic
        pass restricted to the same subject; duplicates are dropped by id.
        """
        limit = self.config.subject_limit if limit is None else limit

        memories: List[Memory] = list(
            await self.store.list_by_subject(agent_id, subject_type, subject_id, limit=limit)
        )

        if query:
            seen = {m.id for m in memories}
            results = await self._safe_search(
                agent_id,
                query,
                subject_type=subject_type,
                subject_id=subject_id,
                limit=limit,
            )
            for r in results:
                if r.memory.id not in seen:
                    memories.append(r.memory)
                    seen.add(r.memory.id)

        memories = memories[:limit]
        if not memories:
            return ContextResult()

        lines = [f"## About {subject_type} {subject_id}"]
        lines.extend(format_memory(m) for m in memories)
        context = "\n".join(lines)
        return ContextResult(
            context=context,
            memories_used=[m.id for m in memories],
            token_estimate=self.estimate_tokens(context),
        )

    # ------------------------------------------------------------------
    # Degrading lookups
    # ------------------------------------------------------------------

    async def _safe_search(self, agent_id: str, query: str, **kwargs) -> List[ScoredMemory]:
        try:
            return await self.search.search(agent_id, query, **kwargs)
        except Exception as e:
            logger.warning(f"Memory search failed for agent {agent_id}, continuing without memories: {e}")
            return []

    async def _safe_failures(self, agent_id: str) -> List[FailureLearning]:
        try:
            return await self.failures.list_applied(agent_id, limit=self.config.failure_limit)
        except Exception as e:
            logger.warning(f"Failure-learning lookup failed for agent {agent_id}: {e}")
            return []

    async def _safe_patterns(self, agent_id: str) -> List[Pattern]:
        try:
            return await self.patterns.get_successful_patterns(agent_id, limit=self.config.pattern_limit)
        except Exception as e:
            logger.warning(f"Pattern lookup failed for agent {agent_id}: {e}")
            return []

    # ------------------------------------------------------------------
    # Usage telemetry
    # ------------------------------------------------------------------

    def _schedule_usage_update(self, memory_ids: List[str]) -> None:
        """Spawn the usage update without awaiting it."""
        task = asyncio.create_task(self._record_usage(list(memory_ids)))
        self._pending.add(task)
        task.add_done_callback(self._pending.discard)

    async def _record_usage(self, memory_ids: List[str]) -> None:
        try:
            await self.store.record_usage(memory_ids)
        except Exception as e:
            logger.warning(f"Usage telemetry update failed for {len(memory_ids)} memories: {e}")

    async def drain(self) -> None:
        """Wait for outstanding usage updates."""
        if self._pending:
            await asyncio.gather(*list(self._pending), return_exceptions=True)
