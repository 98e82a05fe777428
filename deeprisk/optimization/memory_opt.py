"""Memory-saving tools: sparse tensors, chunked processing, file-backed arrays and pools."""

from __future__ import annotations

import math
import os
from collections.abc import Callable, Sequence
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, TypeVar

import numpy as np

from deeprisk.errors import (
    DimensionMismatchError,
    InvalidDimensionError,
    InvalidInputError,
    ModelError,
    UnsupportedOperationError,
)

T = TypeVar("T")

_F32_SIZE = 4
_INDEX_SIZE = 8


@dataclass
class MemoryConfig:
    """Switches and sizes for the memory optimisations."""

    use_sparse_tensors: bool = False
    sparsity_threshold: float = 0.7
    use_chunked_processing: bool = False
    chunk_size: int = 1000
    use_checkpointing: bool = False
    checkpoint_segments: int = 4
    use_mmap: bool = False


def _as_matrix(tensor) -> np.ndarray:
    arr = np.asarray(tensor, dtype=np.float32)
    if arr.ndim != 2:
        raise InvalidDimensionError(f"Expected a 2-D tensor, got {arr.ndim} dimensions")
    return arr


@dataclass
class SparseTensor:
    """Coordinate-format storage of the entries of a matrix above a threshold."""

    values: np.ndarray
    indices: list[tuple[int, int]]
    shape: tuple[int, int]
    density: float

    @classmethod
    def from_dense(cls, tensor, threshold: float) -> "SparseTensor":
        """Keep the entries whose absolute value exceeds ``threshold``, in row-major order."""
        arr = _as_matrix(tensor)
        rows, cols = arr.shape
        kept_rows, kept_cols = np.nonzero(np.abs(arr) > threshold)
        values = arr[kept_rows, kept_cols].astype(np.float32)
        indices = list(zip(kept_rows.tolist(), kept_cols.tolist()))
        total = rows * cols
        density = float(np.float32(len(indices)) / np.float32(total)) if total else 0.0
        return cls(values=values, indices=indices, shape=(rows, cols), density=density)

    def to_dense(self) -> np.ndarray:
        """Return the full matrix with dropped entries set to zero."""
        dense = np.zeros(self.shape, dtype=np.float32)
        if self.indices:
            rows, cols = zip(*self.indices)
            dense[list(rows), list(cols)] = self.values
        return dense

    def dot(self, rhs) -> np.ndarray:
        """Return the product of this matrix with a dense matrix."""
        other = _as_matrix(rhs)
        m, k = self.shape
        k2, n = other.shape
        if k != k2:
            raise DimensionMismatchError(
                "Incompatible dimensions for matrix multiplication: "
                f"({m}, {k}) x ({k2}, {n})"
            )
        result = np.zeros((m, n), dtype=np.float32)
        for value, (i, j) in zip(self.values, self.indices):
            result[i] += value * other[j]
        return result

    def memory_usage(self) -> int:
        """Return the bytes taken by values, indices and metadata."""
        values_size = len(self.values) * _F32_SIZE
        indices_size = len(self.indices) * 2 * _INDEX_SIZE
        metadata_size = 2 * _INDEX_SIZE + _F32_SIZE
        return values_size + indices_size + metadata_size


class ChunkedProcessor:
    """Applies a function to consecutive row blocks of a large dataset."""

    def __init__(self, config: MemoryConfig, total_samples: int) -> None:
        if config.chunk_size <= 0:
            raise InvalidInputError("Chunk size must be greater than 0")
        self.config = config
        self.current_chunk = 0
        self.total_chunks = math.ceil(total_samples / config.chunk_size)

    def process_in_chunks(self, data, processor: Callable[[np.ndarray], T]) -> list[T]:
        """Return ``processor`` applied to each chunk of rows, in order."""
        arr = _as_matrix(data)
        size = self.config.chunk_size
        results = []
        for chunk_idx in range(self.total_chunks):
            start = chunk_idx * size
            results.append(processor(arr[start:start + size]))
            self.current_chunk = chunk_idx
        return results

    def progress(self) -> float:
        """Return the index of the last processed chunk as a fraction of all chunks."""
        if self.total_chunks == 0:
            return 0.0
        return self.current_chunk / self.total_chunks


class GradientCheckpointer:
    """Processes a sequence in segments to bound peak memory."""

    def __init__(self, config: MemoryConfig) -> None:
        self.config = config

    def process_sequence(
        self,
        data,
        processor: Callable[[np.ndarray], Any],
        combine: Callable[[list[Any]], Any] | None = None,
    ):
        """Apply ``processor`` to the sequence, segment by segment when checkpointing.

        With checkpointing on, the per-segment results are merged by ``combine``.
        """
        arr = _as_matrix(data)
        if not self.config.use_checkpointing:
            return processor(arr)
        if combine is None:
            raise InvalidInputError("A combine function is required when checkpointing")
        segments = self.config.checkpoint_segments
        if segments <= 0:
            raise InvalidInputError("Number of checkpoint segments must be greater than 0")
        seq_len = arr.shape[0]
        segment_size = math.ceil(seq_len / segments)
        results = []
        for segment_idx in range(segments):
            start = segment_idx * segment_size
            if start >= seq_len:
                break
            results.append(processor(arr[start:start + segment_size]))
        return combine(results)


class MemoryMappedArray:
    """A row-major array of little-endian float32 values kept in a file."""

    def __init__(self, path: str | os.PathLike, shape: Sequence[int], element_size: int) -> None:
        self.path = Path(path)
        self.shape = tuple(int(d) for d in shape)
        self.element_size = element_size
        if not self.path.exists():
            with self.path.open("wb") as handle:
                handle.truncate(math.prod(self.shape) * element_size)

    def __repr__(self) -> str:
        return f"MemoryMappedArray(path={str(self.path)!r}, shape={self.shape})"

    def _require_f32_2d(self) -> None:
        if len(self.shape) != 2:
            raise UnsupportedOperationError("Only 2D arrays are supported for memory mapping")
        if self.element_size != _F32_SIZE:
            raise UnsupportedOperationError("Only f32 data is supported for memory mapping")

    def _offset(self, start: Sequence[int]) -> int:
        return int(np.ravel_multi_index(tuple(start), self.shape)) * self.element_size

    def read_slice(self, start: Sequence[int], end: Sequence[int]) -> np.ndarray:
        """Return the block from ``start`` (inclusive) to ``end`` (exclusive)."""
        start, end = list(start), list(end)
        if len(start) != len(self.shape) or len(end) != len(self.shape):
            raise InvalidDimensionError(
                "Start and end indices must have the same dimensionality as the array"
            )
        for s, e, dim in zip(start, end, self.shape):
            if s < 0 or s >= e or e > dim:
                raise InvalidDimensionError(
                    f"Invalid slice indices: start={start}, end={end}, shape={list(self.shape)}"
                )
        self._require_f32_2d()
        rows, cols = end[0] - start[0], end[1] - start[1]
        row_bytes = self.shape[1] * self.element_size
        base = self._offset(start)
        block = np.empty((rows, cols), dtype=np.float32)
        with self.path.open("rb") as handle:
            for r, row in enumerate(block):
                handle.seek(base + r * row_bytes)
                raw = handle.read(cols * self.element_size)
                if len(raw) != cols * self.element_size:
                    raise OSError(f"Unexpected end of file in {self.path}")
                row[:] = np.frombuffer(raw, dtype="<f4")
        return block

    def write_slice(self, start: Sequence[int], data) -> None:
        """Store a 2-D block with its top-left corner at ``start``."""
        start = list(start)
        if len(start) != len(self.shape):
            raise InvalidDimensionError(
                "Start indices must have the same dimensionality as the array"
            )
        self._require_f32_2d()
        block = _as_matrix(data)
        rows, cols = block.shape
        end = [start[0] + rows, start[1] + cols]
        for s, e, dim in zip(start, end, self.shape):
            if s < 0 or e > dim:
                raise InvalidDimensionError(
                    f"Data doesn't fit: start={start}, data_shape={(rows, cols)}, "
                    f"array_shape={list(self.shape)}"
                )
        row_bytes = self.shape[1] * self.element_size
        base = self._offset(start)
        with self.path.open("r+b") as handle:
            for r, row in enumerate(block):
                handle.seek(base + r * row_bytes)
                handle.write(row.astype("<f4").tobytes())


@dataclass
class MemoryPool:
    """Hands out float32 matrices, reusing released ones of the same shape."""

    max_memory: int
    _available: dict[tuple[int, ...], list[np.ndarray]] = field(
        default_factory=dict, init=False, repr=False
    )
    _memory_usage: int = field(default=0, init=False)

    def allocate(self, shape: Sequence[int]) -> np.ndarray:
        """Return a matrix of ``shape``, reused if one was released, else new and zeroed."""
        key = tuple(int(d) for d in shape)
        if len(key) != 2:
            raise InvalidDimensionError(f"Expected a 2-D shape, got {len(key)} dimensions")
        reusable = self._available.get(key)
        if reusable:
            return reusable.pop()
        size = math.prod(key) * _F32_SIZE
        if self._memory_usage + size > self.max_memory:
            raise ModelError("Memory pool exhausted")
        self._memory_usage += size
        return np.zeros(key, dtype=np.float32)

    def release(self, tensor: np.ndarray) -> None:
        """Return a matrix to the pool for later reuse."""
        self._available.setdefault(tuple(tensor.shape), []).append(tensor)

    def clear(self) -> None:
        """Drop all pooled matrices and reset the usage count."""
        self._available.clear()
        self._memory_usage = 0

    def memory_usage(self) -> int:
        """Return the bytes allocated through the pool."""
        return self._memory_usage

    def max_memory(self) -> int:  # noqa: F811 - shadows the field on instances only via dataclass
        """Return the byte limit of the pool."""
        return self._max_memory

    def __post_init__(self) -> None:
        self._max_memory = self.__dict__.pop("max_memory")