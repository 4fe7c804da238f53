"""
Unit tests for embedding providers, the embedding cache and similarity helpers.

Tests CachingEmbeddingProvider with a mocked SentenceTransformer.
"""
import numpy as np
import pytest
from unittest.mock import MagicMock

from agent_memory.embeddings.provider import (
    HashingEmbeddingProvider,
    SentenceTransformerProvider,
    estimate_tokens,
)
from agent_memory.embeddings.similarity import pairs_above, similarities_to
from agent_memory.persist.embedding_cache import CachingEmbeddingProvider


def mock_model():
    """SentenceTransformer stand-in returning a distinct vector per text."""
    model = MagicMock()

    def encode(texts, **kwargs):
        return np.array([[float(len(t)), 1.0, 0.0, 0.5] for t in texts], dtype=np.float32)

    model.encode.side_effect = encode
    return model


# ============================================================================
# Token Estimation Tests
# ============================================================================

def test_estimate_tokens_four_chars_per_token():
    assert estimate_tokens("") == 0
    assert estimate_tokens("abcd") == 1
    assert estimate_tokens("abcde") == 2
    assert estimate_tokens("x" * 400) == 100


# ============================================================================
# Provider Tests
# ============================================================================

async def test_sentence_transformer_provider_uses_model():
    model = mock_model()
    provider = SentenceTransformerProvider(model=model, model_name="test-model")

    vector = await provider.embed("hello")

    assert vector == pytest.approx([5.0, 1.0, 0.0, 0.5])
    kwargs = model.encode.call_args.kwargs
    assert kwargs["normalize_embeddings"] is True


async def test_sentence_transformer_embed_many_batches():
    model = mock_model()
    provider = SentenceTransformerProvider(model=model)

    vectors = await provider.embed_many(["a", "bb"])

    assert model.encode.call_count == 1
    assert [v[0] for v in vectors] == [1.0, 2.0]
    assert await provider.embed_many([]) == []


async def test_hashing_provider_deterministic_and_normalized():
    provider = HashingEmbeddingProvider(dim=128)

    first = await provider.embed("Refunds need manager approval")
    second = await provider.embed("refunds NEED manager approval")

    assert len(first) == 128
    assert first == pytest.approx(second)
    assert np.linalg.norm(first) == pytest.approx(1.0, abs=1e-5)


async def test_hashing_provider_related_texts_closer():
    provider = HashingEmbeddingProvider()

    base = await provider.embed("refunds need manager approval")
    related = await provider.embed("refunds need approval")
    unrelated = await provider.embed("shipping takes one week")

    sims = similarities_to(base, [related, unrelated])
    assert sims[0] > sims[1]


async def test_hashing_provider_empty_text():
    provider = HashingEmbeddingProvider(dim=16)
    assert await provider.embed("") == [0.0] * 16


# ============================================================================
# Cache Tests
# ============================================================================

async def test_first_embed_miss_inserts_cache(db):
    model = mock_model()
    provider = CachingEmbeddingProvider(SentenceTransformerProvider(model=model), db, "test-model")

    vector = await provider.embed("test text")

    model.encode.assert_called_once()
    assert provider.misses == 1
    assert provider.hits == 0
    assert vector == pytest.approx([9.0, 1.0, 0.0, 0.5])
    assert db.fetchone("SELECT COUNT(*) AS n FROM embedding_cache")["n"] == 1


async def test_second_embed_hit_no_model_call(db):
    model = mock_model()
    provider = CachingEmbeddingProvider(SentenceTransformerProvider(model=model), db, "test-model")

    first = await provider.embed("test text")
    second = await provider.embed("test text")

    assert model.encode.call_count == 1  # Not called again!
    assert provider.hits == 1
    assert provider.misses == 1
    assert first == pytest.approx(second)


async def test_cache_key_includes_model_name(db):
    model = mock_model()
    inner = SentenceTransformerProvider(model=model)

    await CachingEmbeddingProvider(inner, db, "model-a").embed("same text")
    other = CachingEmbeddingProvider(inner, db, "model-b")
    await other.embed("same text")

    assert other.misses == 1
    assert model.encode.call_count == 2


async def test_cache_survives_new_wrapper(db):
    model = mock_model()
    await CachingEmbeddingProvider(SentenceTransformerProvider(model=model), db, "m").embed("persist me")

    fresh = CachingEmbeddingProvider(SentenceTransformerProvider(model=model), db, "m")
    await fresh.embed("persist me")

    assert fresh.hits == 1
    assert model.encode.call_count == 1


async def test_cache_stats(db):
    provider = CachingEmbeddingProvider(HashingEmbeddingProvider(dim=8), db)

    await provider.embed("text1")  # miss
    await provider.embed("text2")  # miss
    await provider.embed("text1")  # hit

    stats = provider.get_stats()
    assert stats["hits"] == 1
    assert stats["misses"] == 2
    assert stats["total"] == 3
    assert stats["hit_rate"] == pytest.approx(1 / 3)
    assert provider.model_name == "hashing-8"

    provider.reset_stats()
    assert provider.get_stats()["total"] == 0


# ============================================================================
# Similarity Tests
# ============================================================================

def test_similarities_to_empty():
    assert len(similarities_to([1.0, 0.0], [])) == 0


def test_similarities_to_cosine():
    sims = similarities_to([1.0, 0.0], [[2.0, 0.0], [0.0, 3.0], [1.0, 1.0]])
    assert sims == pytest.approx([1.0, 0.0, 1 / np.sqrt(2)], abs=1e-6)


def test_pairs_above_upper_triangle_sorted():
    vectors = [[1.0, 0.0], [1.0, 0.1], [0.0, 1.0], [1.0, 0.0]]

    pairs = pairs_above(vectors, 0.9)

    assert [(i, j) for i, j, _ in pairs] == [(0, 3), (0, 1), (1, 3)]
    assert all(i < j for i, j, _ in pairs)
    assert pairs[0][2] == pytest.approx(1.0, abs=1e-6)


def test_pairs_above_needs_two_vectors():
    assert pairs_above([[1.0, 0.0]], 0.5) == []
