"""
transfer — pulls one waveform off the scope as a definite-length block.

``get_data`` copes with every acquisition mode:

  - acquisition channel, new acquisition:  ARM;WAIT then *OPC?
  - acquisition channel, same acquisition: *OPC? only
  - maths channel, fresh average:          CLSW, then wait for the INR bits
  - maths channel, running average:        read straight away
  - segmented average:                     CLSW, ARM;WAIT, *OPC?, INR bits

No retries are attempted here.
"""
from __future__ import annotations

import logging
from typing import Optional

from .acquisition import AcquisitionController
from .block import MAX_HEADER_SCAN, decode_block
from .channels import ChannelLike, parse_channel
from .errors import AcquisitionIncompleteError
from .session import Session


class DataTransfer:
    def __init__(self, session: Session, controller: AcquisitionController, *,
                 timeout_ms: int = 10000, logger: Optional[logging.Logger] = None):
        self.s = session
        self.acq = controller
        self.timeout_ms = timeout_ms
        self.logger = logger or logging.getLogger(__name__)

    def get_data(self, channel: ChannelLike, clear_sweeps: bool = False, arm_and_wait: bool = True,
                 timeout_ms: Optional[int] = None, capacity: Optional[int] = None) -> bytes:
        """
        Return the raw waveform bytes for ``channel``.

        An empty result means the scope produced nothing: either *OPC? did
        not report completion or the instrument answered ``#0``.
        """
        timeout_ms = self.timeout_ms if timeout_ms is None else timeout_ms
        ch = parse_channel(channel)
        fresh_average = ch.is_derived and clear_sweeps

        if fresh_average:
            self.acq.clear_sweeps()
        if arm_and_wait:
            self.s.send("ARM;WAIT")
        if arm_and_wait or not ch.is_derived:
            try:
                self._wait_opc(timeout_ms)
            except AcquisitionIncompleteError as e:
                self.logger.error("get_data(%s): %s", ch.source, e)
                return b""
        if fresh_average and not self.acq.wait_all_averages(timeout_ms):
            self.logger.error("get_data(%s): averaging did not complete, waveform not read", ch.source)
            return b""

        self.s.send(f"{ch.source}:WF? DAT1")
        max_len = None if capacity is None else capacity + MAX_HEADER_SCAN
        raw = self.s.receive_raw(max_len, timeout_ms)
        block = decode_block(raw, capacity=capacity)
        if block.empty:
            self.logger.warning("get_data(%s): scope returned an empty block", ch.source)
        return block.payload

    def _wait_opc(self, timeout_ms: int) -> None:
        ret = self.s.obtain_long("*OPC?", timeout_ms)
        if ret != 1:
            raise AcquisitionIncompleteError(f"*OPC? did not return 1 (got {ret})")

    def calculate_no_of_bytes(self, channel: ChannelLike, timeout_ms: Optional[int] = None) -> int:
        """
        Size of the next WF? DAT1 payload from ``INSP? WAVE_ARRAY_1``.

        Asked twice: right after a sample rate change the first answer is
        still the old one.
        """
        timeout_ms = self.timeout_ms if timeout_ms is None else timeout_ms
        cmd = f"{parse_channel(channel).source}:INSP? WAVE_ARRAY_1"
        self.s.obtain_insp(cmd, int, timeout_ms)
        return self.s.obtain_insp(cmd, int, timeout_ms)

    def calculate_no_of_bytes_from_vbs(self, channel: ChannelLike) -> int:
        """Same as ``calculate_no_of_bytes`` but from VBS queries, which answer faster than INSP?."""
        points = self.acq.get_num_points()
        bpp = self.acq.get_bytes_per_point()
        # maths channels return 1+points whatever the segmentation (the
        # average collapses segments); acquisition channels return 2+points
        # per segment
        if parse_channel(channel).is_derived:
            return bpp * (1 + points)
        return bpp * self.acq.get_segment_count() * (2 + points)
