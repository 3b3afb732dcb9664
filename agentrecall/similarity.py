"""Cosine similarity over embedding vectors."""

from __future__ import annotations

from collections.abc import Sequence

import numpy as np

__all__ = ["cosine_similarity", "to_float32"]


def to_float32(vector: Sequence[float]) -> list[float]:
    """Round a vector to the float32 precision every store persists."""
    return np.asarray(vector, dtype=np.float32).astype(np.float64).tolist()


def cosine_similarity(a: Sequence[float], b: Sequence[float]) -> float:
    """Cosine similarity of two vectors; 0.0 when either is a zero vector."""
    va = np.asarray(a, dtype=np.float64)
    vb = np.asarray(b, dtype=np.float64)
    if va.shape != vb.shape:
        raise ValueError(f"Embedding dimension mismatch: {va.shape[0]} != {vb.shape[0]}")
    denom = np.linalg.norm(va) * np.linalg.norm(vb)
    if denom == 0.0:
        return 0.0
    return float(np.dot(va, vb) / denom)
