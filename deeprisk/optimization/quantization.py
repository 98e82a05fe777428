"""Quantization of weight matrices to lower-precision formats."""

from __future__ import annotations

import abc
import enum
from dataclasses import dataclass, field

import numpy as np

from deeprisk.errors import InvalidDimensionError, UnsupportedOperationError

_MIN_SCALE = 1e-10


class QuantizationPrecision(enum.Enum):
    """Numeric formats a tensor can be quantized to."""

    INT8 = "int8"
    INT16 = "int16"
    FLOAT16 = "float16"
    FLOAT32 = "float32"


@dataclass
class QuantizationConfig:
    """Settings that control how tensors are quantized."""

    weight_precision: QuantizationPrecision = QuantizationPrecision.INT8
    activation_precision: QuantizationPrecision = QuantizationPrecision.INT8
    per_channel_quantization: bool = True
    calibrate_with_data: bool = True
    symmetric: bool = True


def _round_half_away(x: np.ndarray) -> np.ndarray:
    return np.sign(x) * np.floor(np.abs(x) + np.float32(0.5))


def _unsupported(precision: QuantizationPrecision, action: str) -> UnsupportedOperationError:
    return UnsupportedOperationError(f"{precision.name} {action} is not supported")


@dataclass
class QuantizedTensor:
    """A quantized 2-D tensor together with what is needed to restore it.

    ``data`` holds the quantized values in row-major order. Per-channel
    tensors carry one scale (and zero point) per column.
    """

    data: bytes
    scales: np.ndarray
    zero_points: np.ndarray | None
    shape: tuple[int, int]
    precision: QuantizationPrecision
    per_channel: bool

    def dequantize(self) -> np.ndarray:
        """Return the tensor restored to float32."""
        rows, cols = self.shape
        if self.precision is QuantizationPrecision.FLOAT32:
            values = np.frombuffer(self.data, dtype="<f4", count=rows * cols)
            return values.reshape(rows, cols).astype(np.float32)
        if self.precision is not QuantizationPrecision.INT8:
            raise _unsupported(self.precision, "dequantization")

        # Symmetric values are signed; asymmetric values use the full unsigned range.
        raw_dtype = np.int8 if self.zero_points is None else np.uint8
        q = np.frombuffer(self.data, dtype=raw_dtype, count=rows * cols)
        q = q.reshape(rows, cols).astype(np.float32)

        if self.zero_points is None:
            zero = np.float32(0.0)
        elif self.per_channel:
            zero = self.zero_points.astype(np.float32)[np.newaxis, :]
        else:
            zero = np.float32(self.zero_points[0])

        scale = self.scales[np.newaxis, :] if self.per_channel else self.scales[0]
        return (scale * (q - zero)).astype(np.float32)


@dataclass
class Quantizer:
    """Compresses tensors according to a :class:`QuantizationConfig`."""

    config: QuantizationConfig = field(default_factory=QuantizationConfig)
    calibration_data: list[np.ndarray] | None = field(default=None, init=False)

    def add_calibration_data(self, data) -> None:
        """Keep a representative sample for calibrating quantization ranges."""
        if self.calibration_data is None:
            self.calibration_data = []
        self.calibration_data.append(np.asarray(data, dtype=np.float32))

    def quantize_tensor(self, tensor) -> QuantizedTensor:
        """Quantize a 2-D tensor to the configured weight precision."""
        arr = np.asarray(tensor, dtype=np.float32)
        if arr.ndim != 2:
            raise InvalidDimensionError(f"Expected a 2-D tensor, got {arr.ndim} dimensions")
        precision = self.config.weight_precision
        if precision is QuantizationPrecision.INT8:
            return self._quantize_int8(arr)
        if precision is QuantizationPrecision.FLOAT32:
            return QuantizedTensor(
                data=arr.astype("<f4").tobytes(order="C"),
                scales=np.ones(1, dtype=np.float32),
                zero_points=None,
                shape=(arr.shape[0], arr.shape[1]),
                precision=QuantizationPrecision.FLOAT32,
                per_channel=False,
            )
        raise _unsupported(precision, "quantization")

    def _scale_and_zero(self, low: np.ndarray, high: np.ndarray):
        if self.config.symmetric:
            scale = np.maximum(np.abs(low), np.abs(high)) / np.float32(127.0)
            scale = np.maximum(scale, np.float32(_MIN_SCALE)).astype(np.float32)
            return scale, None
        scale = (high - low) / np.float32(255.0)
        scale = np.maximum(scale, np.float32(_MIN_SCALE)).astype(np.float32)
        zero = _round_half_away(-low / scale).astype(np.int32)
        return scale, zero

    def _quantize_values(self, arr: np.ndarray, scale, zero) -> bytes:
        if zero is None:
            q = np.clip(_round_half_away(arr / scale), -127, 127).astype(np.int8)
        else:
            q = np.clip(_round_half_away(arr / scale + zero), 0, 255).astype(np.uint8)
        return q.tobytes(order="C")

    def _quantize_int8(self, arr: np.ndarray) -> QuantizedTensor:
        rows, cols = arr.shape
        if self.config.per_channel_quantization:
            scales, zeros = self._scale_and_zero(arr.min(axis=0), arr.max(axis=0))
            data = self._quantize_values(
                arr,
                scales[np.newaxis, :],
                None if zeros is None else zeros[np.newaxis, :],
            )
            return QuantizedTensor(
                data=data,
                scales=scales,
                zero_points=zeros,
                shape=(rows, cols),
                precision=QuantizationPrecision.INT8,
                per_channel=True,
            )

        scale, zero = self._scale_and_zero(np.float32(arr.min()), np.float32(arr.max()))
        data = self._quantize_values(arr, scale, zero)
        return QuantizedTensor(
            data=data,
            scales=np.array([scale], dtype=np.float32),
            zero_points=None if zero is None else np.array([zero], dtype=np.int32),
            shape=(rows, cols),
            precision=QuantizationPrecision.INT8,
            per_channel=False,
        )


class Quantizable(abc.ABC):
    """Interface for models whose parameters can be quantized."""

    @abc.abstractmethod
    def quantize(self, config: QuantizationConfig) -> None:
        """Quantize the model's parameters in place."""

    @abc.abstractmethod
    def memory_usage(self) -> int:
        """Return the memory the model occupies, in bytes."""