"""
traces — offline arithmetic on raw waveform buffers.

Buffers hold signed 8-bit (BYTE transfers) or signed 16-bit little-endian
(WORD transfers) samples. The sample width is always passed in explicitly.
Sums and differences are done in a wider signed type and clamped when they
are narrowed back.
"""
from __future__ import annotations

import logging

import numpy as np

logger = logging.getLogger(__name__)

_DTYPES = {1: np.dtype(np.int8), 2: np.dtype("<i2")}

_I16 = np.iinfo(np.int16)


def _dtype(bytes_per_point: int) -> np.dtype:
    try:
        return _DTYPES[bytes_per_point]
    except KeyError:
        raise ValueError(f"bytes per point must be 1 or 2, got {bytes_per_point}") from None


def samples_view(buffer: bytes, bytes_per_point: int) -> np.ndarray:
    """Read-only typed view of ``buffer``."""
    dt = _dtype(bytes_per_point)
    if len(buffer) % dt.itemsize:
        raise ValueError(f"buffer of {len(buffer)} bytes is not a whole number of {dt.itemsize}-byte samples")
    return np.frombuffer(buffer, dtype=dt)


def _widen16(buffer: bytes, bytes_per_point: int, points: int) -> np.ndarray:
    s = samples_view(buffer, bytes_per_point)
    if len(s) < points:
        raise ValueError(f"buffer holds {len(s)} points, {points} needed")
    w = s[:points].astype(np.int32)
    if bytes_per_point == 1:
        # 8-bit data goes into the MSB so both inputs share the 16-bit full scale
        w *= 256
    return w


def average_segments(buffer: bytes, segment_count: int, bytes_per_point: int) -> bytes:
    """
    Average a stack of segments point by point.

    The buffer is ``segment_count`` consecutive traces of equal length.
    The result is one trace at the input width; the mean truncates toward
    zero.
    """
    if segment_count < 1:
        raise ValueError("segment_count must be >= 1")
    dt = _dtype(bytes_per_point)
    samples = samples_view(buffer, bytes_per_point)
    points = len(samples) // segment_count

    stack = samples[:points * segment_count].reshape(segment_count, points).astype(np.int64)
    sums = stack.sum(axis=0)
    mean = np.sign(sums) * (np.abs(sums) // segment_count)

    info = np.iinfo(dt)
    over = (mean > info.max) | (mean < info.min)
    if over.any():
        logger.warning("%d averaged points out of %d-bit range, clamped", int(over.sum()), 8 * dt.itemsize)
    return np.clip(mean, info.min, info.max).astype(dt).tobytes()


def subtract_traces(buffer_a: bytes, buffer_b: bytes, bytes_per_point_a: int, bytes_per_point_b: int,
                    bytes_per_point_out: int, points_per_trace: int) -> bytes:
    """A - B for any mix of 8- and 16-bit inputs and output.

    8-bit output keeps only the high byte of the clamped 16-bit difference.
    """
    out_dt = _dtype(bytes_per_point_out)
    a = _widen16(buffer_a, bytes_per_point_a, points_per_trace)
    b = _widen16(buffer_b, bytes_per_point_b, points_per_trace)
    diff = np.clip(a - b, _I16.min, _I16.max)
    if bytes_per_point_out == 1:
        return (diff >> 8).astype(out_dt).tobytes()
    return diff.astype(out_dt).tobytes()
