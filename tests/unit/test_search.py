"""
Unit tests for SemanticSearch.

Tests:
- score = similarity x confidence x importance ordering
- confidence floor, inactive exclusion, type/subject/agent filters
- similarity post-filter applied after the limit cut
- embedding failures surface as DependencyUnavailableError
- keyword fallback ordering
"""

import math

import pytest

from agent_memory.config.settings import SearchCfg
from agent_memory.errors import DependencyUnavailableError
from agent_memory.memory.search import SemanticSearch
from helpers import vec


pytestmark = pytest.mark.asyncio


@pytest.fixture(autouse=True)
def pinned_query(embedder):
    embedder.pin("refunds", vec(1.0, 0.0))


async def test_orders_by_combined_score(search, make_memory):
    """A less similar but more trusted memory can outrank an exact match."""
    exact_weak = await make_memory(embedding=vec(1.0, 0.0), confidence=0.5, importance=0.5)
    close_strong = await make_memory(embedding=vec(0.8, 0.6), confidence=1.0, importance=1.0)

    results = await search.search("agent_a", "refunds")

    assert [r.memory.id for r in results] == [close_strong.id, exact_weak.id]
    assert results[0].similarity == pytest.approx(0.8, abs=1e-5)
    assert results[0].score == pytest.approx(0.8, abs=1e-5)
    assert results[1].score == pytest.approx(0.25, abs=1e-5)


async def test_excludes_inactive_unless_requested(search, store, make_memory):
    live = await make_memory(embedding=vec(1.0))
    retired = await make_memory(embedding=vec(1.0))
    await store.supersede([retired.id], live.id)

    default = await search.search("agent_a", "refunds")
    assert [r.memory.id for r in default] == [live.id]

    everything = await search.search("agent_a", "refunds", include_inactive=True)
    assert {r.memory.id for r in everything} == {live.id, retired.id}


async def test_min_confidence_filters_candidates(search, make_memory):
    await make_memory(embedding=vec(1.0), confidence=0.2)
    kept = await make_memory(embedding=vec(1.0), confidence=0.3)

    results = await search.search("agent_a", "refunds", min_confidence=0.3)
    assert [r.memory.id for r in results] == [kept.id]


async def test_similarity_cutoff_applies_after_limit(search, make_memory):
    """
    The top-`limit` cut happens first; low-similarity survivors are then
    dropped even if a lower-ranked candidate would have passed.
    """
    best = await make_memory(embedding=vec(1.0, 0.0), confidence=1.0, importance=1.0)
    # similarity 1/sqrt(17) ~ 0.24, score ~ 0.24
    await make_memory(embedding=vec(1.0, 4.0), confidence=1.0, importance=1.0)
    # similarity ~0.71 but score ~0.14, so it misses the cut
    await make_memory(embedding=vec(1.0, 1.0), confidence=0.4, importance=0.5)

    results = await search.search("agent_a", "refunds", limit=2, min_similarity=0.3)

    assert [r.memory.id for r in results] == [best.id]


async def test_limit_without_post_filter_loss(search, make_memory):
    for i in range(5):
        await make_memory(title=f"m{i}", embedding=vec(1.0, 0.1 * i))

    results = await search.search("agent_a", "refunds", limit=3)
    assert len(results) == 3
    assert results == sorted(results, key=lambda r: r.score, reverse=True)


async def test_type_subject_and_agent_filters(search, make_memory):
    wanted = await make_memory(
        embedding=vec(1.0), memory_type="policy", subject_type="creator", subject_id="cr_1"
    )
    await make_memory(embedding=vec(1.0), memory_type="fact", subject_type="creator", subject_id="cr_1")
    await make_memory(embedding=vec(1.0), memory_type="policy", subject_type="creator", subject_id="cr_2")
    await make_memory(
        embedding=vec(1.0), memory_type="policy", subject_type="creator", subject_id="cr_1",
        agent_id="agent_b",
    )

    results = await search.search(
        "agent_a",
        "refunds",
        memory_types=["policy"],
        subject_type="creator",
        subject_id="cr_1",
    )
    assert [r.memory.id for r in results] == [wanted.id]


async def test_memories_without_embeddings_are_skipped(search, make_memory):
    await make_memory(title="Unembedded")
    assert await search.search("agent_a", "refunds") == []


async def test_embedding_failure_raises_dependency_unavailable(search, embedder, make_memory):
    await make_memory(embedding=vec(1.0))
    embedder.fail = True

    with pytest.raises(DependencyUnavailableError):
        await search.search("agent_a", "refunds")


async def test_similarity_is_one_minus_cosine_distance(search, make_memory):
    await make_memory(embedding=vec(1.0, 1.0))

    results = await search.search("agent_a", "refunds")
    assert results[0].similarity == pytest.approx(1 / math.sqrt(2), abs=1e-5)


async def test_keyword_search_ignores_similarity(search, make_memory):
    strong = await make_memory(content="Refunds over $500 need approval", confidence=0.9, importance=0.9)
    weak = await make_memory(content="refunds are logged in the ledger", confidence=0.6, importance=0.9)

    results = await search.keyword_search("agent_a", "refunds")

    assert [r.memory.id for r in results] == [strong.id, weak.id]
    assert all(r.similarity == 0.0 for r in results)


async def test_keyword_search_underscore_is_not_a_wildcard(search, make_memory):
    await make_memory(title="Refunds", content="Refunds need approval")

    assert await search.keyword_search("agent_a", "_") == []
    assert await search.keyword_search("agent_a", "%") == []


async def test_config_supplies_defaults(store, embedder, make_memory):
    exact = await make_memory(embedding=vec(1.0, 0.0), confidence=0.5)
    await make_memory(embedding=vec(1.0, 1.0), confidence=0.5)
    strict = SemanticSearch(store, embedder, SearchCfg(min_confidence=0.5, min_similarity=0.99, limit=1))

    results = await strict.search("agent_a", "refunds")
    assert [r.memory.id for r in results] == [exact.id]

    # Explicit arguments still win over the configured defaults
    relaxed = await strict.search("agent_a", "refunds", min_similarity=0.5, limit=5)
    assert len(relaxed) == 2

    assert await strict.search("agent_a", "refunds", min_confidence=0.6) == []
