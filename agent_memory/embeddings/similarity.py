"""Cosine similarity helpers over embedding vectors."""
from __future__ import annotations
from typing import List, Sequence, Tuple

import numpy as np
from sklearn.metrics.pairwise import cosine_similarity


def similarities_to(query: Sequence[float], vectors: Sequence[Sequence[float]]) -> np.ndarray:
    """
    Cosine similarity (1 - cosine distance) of one query against many vectors.

    Returns:
        1-D array aligned with `vectors`
    """
    if len(vectors) == 0:
        return np.array([], dtype=np.float32)

    q = np.asarray(query, dtype=np.float32).reshape(1, -1)
    matrix = np.asarray(vectors, dtype=np.float32)
    return cosine_similarity(q, matrix)[0]


def pairs_above(
    vectors: Sequence[Sequence[float]],
    threshold: float,
) -> List[Tuple[int, int, float]]:
    """
    All index pairs (i < j) whose cosine similarity is >= threshold.

    Computes the full n x n matrix, so cost is O(n^2) in time and memory.

    Returns:
        (i, j, similarity) tuples sorted by similarity, highest first
    """
    n = len(vectors)
    if n < 2:
        return []

    matrix = cosine_similarity(np.asarray(vectors, dtype=np.float32))
    rows, cols = np.triu_indices(n, k=1)
    values = matrix[rows, cols]
    keep = values >= threshold

    pairs = [
        (int(i), int(j), float(s))
        for i, j, s in zip(rows[keep], cols[keep], values[keep])
    ]
    pairs.sort(key=lambda p: p[2], reverse=True)
    return pairs
