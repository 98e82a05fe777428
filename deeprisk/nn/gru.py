"""Gated recurrent unit for processing sequential features."""

from __future__ import annotations

import numpy as np

from deeprisk.errors import InvalidDimensionError, InvalidInputError


def _sigmoid(x: np.ndarray) -> np.ndarray:
    return 1.0 / (1.0 + np.exp(-x))


class GRUModule:
    """A single-step gated recurrent unit.

    Weights for the update, reset and new gates are stacked along the first
    axis of ``w_ih`` and ``w_hh``, each block ``hidden_size`` rows tall.
    """

    def __init__(self, input_size: int, hidden_size: int) -> None:
        if input_size <= 0:
            raise InvalidInputError("Input size must be greater than 0")
        if hidden_size <= 0:
            raise InvalidInputError("Hidden size must be greater than 0")
        self.input_size = input_size
        self.hidden_size = hidden_size
        self.w_ih = np.zeros((3 * hidden_size, input_size), dtype=np.float32)
        self.w_hh = np.zeros((3 * hidden_size, hidden_size), dtype=np.float32)
        self.b_ih = np.zeros((3 * hidden_size, 1), dtype=np.float32)
        self.b_hh = np.zeros((3 * hidden_size, 1), dtype=np.float32)
        self.init_weights()

    def __repr__(self) -> str:
        return f"GRUModule(input_size={self.input_size}, hidden_size={self.hidden_size})"

    def init_weights(self) -> None:
        """Reset weights to a constant 0.1 and biases to zero."""
        self.w_ih.fill(0.1)
        self.w_hh.fill(0.1)
        self.b_ih.fill(0.0)
        self.b_hh.fill(0.0)

    def _gates(self, x: np.ndarray, h: np.ndarray) -> np.ndarray:
        bias = (self.b_ih + self.b_hh).T
        return x @ self.w_ih.T + h @ self.w_hh.T + bias

    def forward(self, x) -> np.ndarray:
        """Run one step from a zero hidden state; return shape (batch, hidden_size)."""
        x = np.asarray(x, dtype=np.float32)
        if x.ndim != 2:
            raise InvalidDimensionError(f"Expected a 2-D input, got {x.ndim} dimensions")
        if x.shape[1] != self.input_size:
            raise InvalidDimensionError(
                f"Expected input dimension {self.input_size}, got {x.shape[1]}"
            )
        hs = self.hidden_size
        h = np.zeros((x.shape[0], hs), dtype=np.float32)
        gates = self._gates(x, h)
        update = _sigmoid(gates[:, :hs])
        candidate = np.tanh(gates[:, 2 * hs:])
        return (update * h + (1.0 - update) * candidate).astype(np.float32)