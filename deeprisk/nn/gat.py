"""Graph attention network for learning relationships between assets."""

from __future__ import annotations

import numpy as np

from deeprisk.errors import InvalidDimensionError

_LEAKY_SLOPE = 0.01


def _leaky_relu(x: np.ndarray) -> np.ndarray:
    return np.where(x > 0.0, x, _LEAKY_SLOPE * x)


class GATModule:
    """Multi-head graph attention over node features.

    Each head scores every connected pair of nodes, normalises the scores per
    row and aggregates transformed neighbour features; the heads are averaged.
    """

    def __init__(self, in_features: int, out_features: int, n_heads: int, dropout: float) -> None:
        if dropout < 0.0 or dropout > 1.0:
            raise InvalidDimensionError(f"Dropout rate must be between 0 and 1, got {dropout}")
        self.in_features = in_features
        self.out_features = out_features
        self.n_heads = n_heads
        self.dropout = float(dropout)
        self._rng = np.random.default_rng()
        std = np.sqrt(2.0 / (in_features + out_features))
        self.weight = self._rng.normal(0.0, std, size=(out_features, in_features)).astype(np.float32)
        self.attention = self._rng.normal(0.0, std, size=(n_heads, 2 * out_features)).astype(
            np.float32
        )

    def __repr__(self) -> str:
        return (
            f"GATModule(in_features={self.in_features}, out_features={self.out_features}, "
            f"n_heads={self.n_heads}, dropout={self.dropout})"
        )

    def _attention_weights(self, h: np.ndarray, params: np.ndarray, mask: np.ndarray) -> np.ndarray:
        source = h @ params[: self.out_features]
        target = h @ params[self.out_features :]
        scores = _leaky_relu(source[:, np.newaxis] + target[np.newaxis, :])
        alpha = np.where(mask, scores, 0.0).astype(np.float32)
        row_sums = alpha.sum(axis=1, keepdims=True)
        positive = row_sums > 0.0
        return np.where(positive, alpha / np.where(positive, row_sums, 1.0), alpha)

    def _apply_dropout(self, x: np.ndarray) -> np.ndarray:
        mask = self._rng.uniform(0.0, 1.0, size=x.shape)
        if self.dropout >= 1.0:
            return np.zeros_like(x)
        return np.where(mask < self.dropout, 0.0, x / (1.0 - self.dropout)).astype(np.float32)

    def forward(self, x, adj) -> np.ndarray:
        """Return updated node features of shape (n_nodes, out_features)."""
        x = np.asarray(x, dtype=np.float32)
        adj = np.asarray(adj, dtype=np.float32)
        if x.ndim != 2 or x.shape[1] != self.in_features:
            got = x.shape[1] if x.ndim == 2 else x.shape
            raise InvalidDimensionError(
                f"Expected input dimension {self.in_features}, got {got}"
            )
        n_nodes = x.shape[0]
        if adj.shape != (n_nodes, n_nodes):
            raise InvalidDimensionError(
                f"Expected adjacency of shape ({n_nodes}, {n_nodes}), got {adj.shape}"
            )

        h = x @ self.weight.T
        mask = adj > 0.0
        output = np.zeros((n_nodes, self.out_features), dtype=np.float32)
        for params in self.attention:
            output += self._attention_weights(h, params, mask) @ h
        output /= np.float32(self.n_heads)

        if self.dropout > 0.0:
            output = self._apply_dropout(output)
        return output.astype(np.float32)