"""Cosine similarity over embeddings.

Used by the in-process vector fallback and by the tag channel when the
backend has no vector functions. Zero-magnitude vectors score 0.0.
"""

from __future__ import annotations

from collections.abc import Sequence

import numpy as np
from numpy.typing import NDArray


def cosine_similarity(a: Sequence[float] | NDArray, b: Sequence[float] | NDArray) -> float:
    """dot(a, b) / (|a| * |b|), or 0.0 when either vector has zero magnitude."""
    va = np.asarray(a, dtype=np.float64)
    vb = np.asarray(b, dtype=np.float64)
    if va.shape != vb.shape or va.size == 0:
        return 0.0
    norm = np.linalg.norm(va) * np.linalg.norm(vb)
    if norm == 0:
        return 0.0
    return float(np.dot(va, vb) / norm)


def cosine_similarities(query: Sequence[float] | NDArray, vectors: list[Sequence[float]]) -> NDArray[np.float64]:
    """Similarity of ``query`` against each row of ``vectors``.

    Rows whose dimension differs from the query's score 0.0 rather than
    failing the whole batch.
    """
    q = np.asarray(query, dtype=np.float64)
    if not vectors:
        return np.empty(0)
    q_norm = np.linalg.norm(q)
    if q_norm == 0:
        return np.zeros(len(vectors))

    usable = [i for i, v in enumerate(vectors) if v is not None and len(v) == q.size]
    scores = np.zeros(len(vectors))
    if not usable:
        return scores

    matrix = np.array([vectors[i] for i in usable], dtype=np.float64)
    norms = np.linalg.norm(matrix, axis=1)
    safe_norms = np.where(norms == 0, 1.0, norms)
    sims = (matrix @ q) / (safe_norms * q_norm)
    sims = np.where(norms == 0, 0.0, sims)
    scores[usable] = sims
    return scores
