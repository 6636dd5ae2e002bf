"""
wfi — the text sidecar written next to every ``.wf`` binary trace.

Layout (one field per block, in this order)::

    % test.wfi
    % Waveform captured using lgetwf

    % Number of bytes:
    20004

    % Vertical gain:
    3.05176e-05
    ...

Byte and trace counts are per segment when the scope is in sequence mode.
"""
from __future__ import annotations

import dataclasses
import logging
import os
from typing import TYPE_CHECKING, Optional, Union

import numpy as np

from .channels import ChannelLike, parse_channel
from .errors import FileWriteError

if TYPE_CHECKING:
    from .transfer import DataTransfer

logger = logging.getLogger(__name__)

PathLike = Union[str, "os.PathLike[str]"]

_FIELDS = (
    ("byte_count", "Number of bytes", int),
    ("vertical_gain", "Vertical gain", float),
    ("vertical_offset", "Vertical offset", float),
    ("horizontal_interval", "Horizontal interval", float),
    ("horizontal_offset", "Horizontal offset", float),
    ("trace_count", "Number of traces", int),
    ("bytes_per_point", "Number of bytes per data-point", int),
    ("keep_all_points", "Keep all datapoints (0 or missing knocks off 1 point, legacy lecroy)", int),
)


@dataclasses.dataclass
class WaveformInfo:
    """Scaling and size of one capture.

    ``byte_count`` and ``trace_count`` are raw totals; ``segment_count`` is
    what the scope reported (0 is kept as-is and disables normalisation).
    """
    vertical_gain: float
    vertical_offset: float
    horizontal_interval: float
    horizontal_offset: float
    byte_count: int
    trace_count: int = 1
    bytes_per_point: int = 2
    segment_count: int = 1
    keep_all_points: int = 1

    @property
    def bytes_per_trace(self) -> int:
        if self.segment_count == 0:
            return self.byte_count
        return self.byte_count // self.segment_count

    @property
    def total_traces(self) -> int:
        if self.segment_count == 0:
            return self.trace_count
        return self.trace_count * self.segment_count

    @property
    def points_per_trace(self) -> int:
        return self.bytes_per_trace // self.bytes_per_point

    def to_volts(self, samples: np.ndarray) -> np.ndarray:
        return self.vertical_gain * np.asarray(samples, dtype=np.float64) - self.vertical_offset

    def to_time(self, n: Optional[int] = None) -> np.ndarray:
        n = self.points_per_trace if n is None else n
        return self.horizontal_offset + self.horizontal_interval * np.arange(n)


def query_waveform_info(transfer: "DataTransfer", channel: ChannelLike, trace_count: int = 1,
                        bytes_per_point: int = 2, byte_count: Optional[int] = None,
                        timeout_ms: Optional[int] = None,
                        voltage_offset: Optional[float] = None) -> WaveformInfo:
    """Ask the scope for the scaling of ``channel``'s current waveform."""
    s, acq = transfer.s, transfer.acq
    timeout_ms = transfer.timeout_ms if timeout_ms is None else timeout_ms
    ch = parse_channel(channel)
    src = ch.source

    if byte_count is None:
        byte_count = transfer.calculate_no_of_bytes(ch, timeout_ms)
    hinterval = s.obtain_insp(f"{src}:INSP? HORIZ_INTERVAL", float, timeout_ms)
    hoffset = s.obtain_insp(f"{src}:INSP? HORIZ_OFFSET", float, timeout_ms)
    vgain = s.obtain_insp(f"{src}:INSP? VERTICAL_GAIN", float, timeout_ms)
    if voltage_offset is None:
        voltage_offset = s.obtain_insp(f"{src}:INSP? VERTICAL_OFFSET", float, timeout_ms)

    # an average collapses the segments, so maths channels count as one
    segments = 1 if ch.is_derived else acq.get_segment_count()
    if segments == 0:
        logger.warning("scope reported 0 segments for %s, writing unnormalised counts", src)

    return WaveformInfo(
        vertical_gain=vgain,
        vertical_offset=voltage_offset,
        horizontal_interval=hinterval,
        horizontal_offset=hoffset,
        byte_count=int(byte_count),
        trace_count=trace_count,
        bytes_per_point=bytes_per_point,
        segment_count=segments,
    )


def format_wfi(info: WaveformInfo, name: str, captured_by: str) -> str:
    values = {
        "byte_count": info.bytes_per_trace,
        "vertical_gain": info.vertical_gain,
        "vertical_offset": info.vertical_offset,
        "horizontal_interval": info.horizontal_interval,
        "horizontal_offset": info.horizontal_offset,
        "trace_count": info.total_traces,
        "bytes_per_point": info.bytes_per_point,
        "keep_all_points": info.keep_all_points,
    }
    out = [f"% {name}\n", f"% Waveform captured using {captured_by}\n\n"]
    for attr, label, kind in _FIELDS:
        v = values[attr]
        out.append(f"% {label}:\n{v:g}\n\n" if kind is float else f"% {label}:\n{v}\n\n")
    return "".join(out)


def write_wfi_file(path: PathLike, info: WaveformInfo, captured_by: str) -> None:
    text = format_wfi(info, os.fspath(path), captured_by)
    try:
        with open(path, "w", encoding="utf-8") as f:
            f.write(text)
    except OSError as e:
        raise FileWriteError(f"could not open {os.fspath(path)} for writing: {e}") from e


def read_wfi(path: PathLike) -> WaveformInfo:
    """Parse a sidecar back. Counts come back already per segment."""
    by_label = {label: (attr, kind) for attr, label, kind in _FIELDS}
    found = {}
    pending = None
    with open(path, "r", encoding="utf-8") as f:
        for line in f:
            line = line.strip()
            if not line:
                continue
            if line.startswith("%"):
                label = line[1:].strip()
                pending = by_label.get(label[:-1]) if label.endswith(":") else None
                continue
            if pending is not None:
                attr, kind = pending
                found[attr] = kind(float(line)) if kind is int else kind(line)
                pending = None

    missing = [attr for attr, _, _ in _FIELDS if attr not in found and attr != "keep_all_points"]
    if missing:
        raise ValueError(f"{os.fspath(path)}: missing fields {', '.join(missing)}")
    return WaveformInfo(segment_count=1, **found)
