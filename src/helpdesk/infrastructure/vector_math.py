"""
Vector math for semantic scoring.

Similarity against a missing or incompatible vector is defined as 0.0,
never an error.
"""

from typing import Optional, Sequence

import numpy as np


def cosine_similarity(
    a: Optional[Sequence[float]], b: Optional[Sequence[float]]
) -> float:
    """
    Cosine similarity of two vectors.

    Returns 0.0 when either vector is empty, has zero norm, or the
    dimensions differ.
    """
    if a is None or b is None or len(a) == 0 or len(b) == 0 or len(a) != len(b):
        return 0.0
    va = np.asarray(a, dtype=np.float64)
    vb = np.asarray(b, dtype=np.float64)
    norm = float(np.linalg.norm(va) * np.linalg.norm(vb))
    if norm == 0.0:
        return 0.0
    return float(np.dot(va, vb) / norm)


def cosine_similarities(
    query: Sequence[float], matrix: np.ndarray
) -> np.ndarray:
    """
    Cosine similarity of one query vector against each row of a matrix.

    Rows with zero norm score 0.0. The caller guarantees matching dimensions.
    """
    q = np.asarray(query, dtype=np.float64)
    q_norm = np.linalg.norm(q)
    if q_norm == 0.0 or matrix.size == 0:
        return np.zeros(matrix.shape[0] if matrix.ndim == 2 else 0)
    row_norms = np.linalg.norm(matrix, axis=1)
    denom = row_norms * q_norm
    dots = matrix @ q
    with np.errstate(divide="ignore", invalid="ignore"):
        sims = np.where(denom > 0, dots / denom, 0.0)
    return sims
