"""
capture — one complete acquisition to a ``.wf`` / ``.wfi`` file pair.

    with LeCroyScope("192.168.0.10") as scope:
        res = capture(scope, "run01", "2", sample_rate=1e9, averages=500)
        print(res.points_per_trace, res.sample_rate)
"""
from __future__ import annotations

import dataclasses
import logging
import os
from typing import Optional

from .channels import Channel, ChannelLike, parse_channel
from .errors import FileWriteError
from .scope import LeCroyScope
from .wfi import PathLike, WaveformInfo, write_wfi_file

logger = logging.getLogger(__name__)


@dataclasses.dataclass
class CaptureResult:
    channel: Channel
    wf_path: str
    wfi_path: str
    info: WaveformInfo
    sample_rate: float
    data: bytes

    @property
    def byte_count(self) -> int:
        return self.info.byte_count

    @property
    def points_per_trace(self) -> int:
        return self.info.points_per_trace


def capture(
    scope: LeCroyScope,
    basename: PathLike,
    channel: ChannelLike,
    *,
    sample_rate: float = 0,
    min_points: int = 0,
    bytes_per_point: int = 2,
    averages: Optional[int] = None,
    segmented_averages: Optional[int] = None,
    segments: Optional[int] = None,
    clear_sweeps: bool = True,
    timeout_ms: int = 10000,
    label: str = "lecroyscpi",
) -> CaptureResult:
    """
    Configure, acquire and save one waveform.

    The sidecar is written before the data is read, so its byte count is the
    one the scope announced. Asking for ``averages`` or ``segmented_averages``
    moves the read to the maths partner of ``channel``; ``segments`` arms a
    new sequence acquisition before reading.
    """
    if bytes_per_point not in (1, 2):
        raise ValueError("bytes_per_point must be 1 or 2")
    base = os.fspath(basename)
    wf_path, wfi_path = f"{base}.wf", f"{base}.wfi"
    ch = parse_channel(channel)

    actual_rate = scope.set_sample_rate(sample_rate, min_points, timeout_ms)
    if bytes_per_point == 1:
        scope.set_bytes_per_point(1)
    try:
        if averages is not None:
            ch = scope.set_averages(ch, averages)
        if segmented_averages is not None:
            ch = scope.set_segmented_averages(ch, segmented_averages)
        if segments is not None:
            scope.set_segmentation(segments)
        scope.display_channel(ch, True)

        info = scope.waveform_info(ch, 1, bytes_per_point, timeout_ms=timeout_ms)
        write_wfi_file(wfi_path, info, label)
        logger.info("channel %s: %d bytes/trace, %d pts/trace, %g Sa/s",
                    ch.token, info.bytes_per_trace, info.points_per_trace, actual_rate)

        data = scope.get_data(ch, clear_sweeps=clear_sweeps, arm_and_wait=segments is not None,
                              timeout_ms=timeout_ms, capacity=info.byte_count)
    finally:
        if bytes_per_point == 1:
            scope.set_bytes_per_point(2)

    if len(data) != info.byte_count:
        logger.warning("expected %d bytes from %s, got %d", info.byte_count, ch.source, len(data))
    try:
        with open(wf_path, "wb") as f:
            f.write(data)
    except OSError as e:
        raise FileWriteError(f"could not open {wf_path} for writing: {e}") from e

    return CaptureResult(channel=ch, wf_path=wf_path, wfi_path=wfi_path, info=info,
                         sample_rate=actual_rate, data=data)
