"""Weight initialisation and attention helpers for transformer parts."""

from __future__ import annotations

from collections.abc import Sequence

import numpy as np

from deeprisk.errors import DimensionMismatchError, InvalidDimensionError


def xavier_init(shape: Sequence[int]) -> np.ndarray:
    """Return a (fan_in, fan_out) matrix drawn from N(0, sqrt(6 / (fan_in + fan_out)))."""
    dims = tuple(int(d) for d in shape)
    if len(dims) != 2:
        raise InvalidDimensionError(f"Expected a 2-D shape, got {len(dims)} dimensions")
    n_in, n_out = dims
    if n_in + n_out <= 0:
        raise InvalidDimensionError(f"Shape must have a positive size, got {dims}")
    limit = np.sqrt(6.0 / (n_in + n_out))
    rng = np.random.default_rng()
    return rng.normal(0.0, limit, size=dims).astype(np.float32)


def _as_4d(name: str, arr) -> np.ndarray:
    out = np.asarray(arr, dtype=np.float32)
    if out.ndim != 4:
        raise InvalidDimensionError(f"Expected {name} with 4 dimensions, got {out.ndim}")
    return out


def compute_attention(query, key, value, d_k: float) -> np.ndarray:
    """Scaled dot-product attention over (batch, heads, seq_len, dim) tensors.

    Scores use the first ``int(d_k)`` features of query and key and are divided
    by ``sqrt(d_k)`` before a row-wise softmax; the result has the value's
    feature size.
    """
    q = _as_4d("query", query)
    k = _as_4d("key", key)
    v = _as_4d("value", value)
    if k.shape[:3] != q.shape[:3] or v.shape[:3] != q.shape[:3]:
        raise DimensionMismatchError(
            f"Query {q.shape}, key {k.shape} and value {v.shape} disagree on "
            "batch, heads or sequence length"
        )
    width = int(d_k)
    if width > q.shape[3] or width > k.shape[3]:
        raise DimensionMismatchError(
            f"d_k={width} exceeds the feature size of query {q.shape[3]} or key {k.shape[3]}"
        )

    scale = np.float32(np.sqrt(d_k))
    scores = np.einsum("bhik,bhjk->bhij", q[..., :width], k[..., :width]) / scale
    scores = scores - scores.max(axis=-1, keepdims=True)
    weights = np.exp(scores)
    weights /= weights.sum(axis=-1, keepdims=True)
    return np.einsum("bhij,bhjk->bhik", weights, v).astype(np.float32)