"""
acquisition — brings the scope into a state from which a waveform read
returns what the caller asked for.

Realtime and segmented captures read the acquisition channels directly and
need an ARM;WAIT for each new acquisition. Averaged captures read a maths
channel (F1..F4) defined as a summed average of its partner acquisition
channel; a fresh average needs CLSW first and is complete once every
displayed averaging function has flagged its INR bit.
"""
from __future__ import annotations

import logging
import time
from enum import Enum
from typing import Optional, Tuple

from .channels import (
    BOUND_SLOTS, Channel, ChannelKind, ChannelLike, parse_channel, split_pair,
)
from .session import Session


class TriggerMode(Enum):
    AUTO = "AUTO"
    NORM = "NORM"
    SINGLE = "SINGLE"
    STOP = "STOP"


class AcquisitionMode(Enum):
    REALTIME = "REALTIME"
    SEGMENTED = "SEGMENTED"
    AVERAGED = "AVERAGED"
    SEGMENTED_AVERAGED = "SEGMENTED_AVERAGED"

    @property
    def derived(self) -> bool:
        """True when data is read from a maths channel rather than C1..C4."""
        return self in (AcquisitionMode.AVERAGED, AcquisitionMode.SEGMENTED_AVERAGED)


def transfer_flags(mode: AcquisitionMode, new_acquisition: bool = True) -> Tuple[bool, bool]:
    """Return ``(clear_sweeps, arm_and_wait)`` for a read in the given mode."""
    if mode is AcquisitionMode.AVERAGED:
        return new_acquisition, False
    if mode is AcquisitionMode.SEGMENTED_AVERAGED:
        return new_acquisition, new_acquisition
    # clear_sweeps is ignored for acquisition channels
    return False, new_acquisition


# INR? bits 8..11 flag "function F1..F4 has completed its processing"
_INR_FUNCTION_BIT = 256

_SAMPLE_RATE_VBS = "app.Acquisition.Horizontal.SampleRate"

_TRIGGER_ALIASES = {"NORMAL": "NORM"}


class AcquisitionController:
    def __init__(self, session: Session, *, timeout_ms: int = 10000,
                 average_limit_s: Optional[float] = 600.0, poll_interval_s: float = 0.01,
                 logger: Optional[logging.Logger] = None):
        self.s = session
        self.timeout_ms = timeout_ms
        self.average_limit_s = average_limit_s
        self.poll_interval_s = poll_interval_s
        self.logger = logger or logging.getLogger(__name__)

    @staticmethod
    def _bstr(on: bool) -> str: return "ON" if on else "OFF"

    # Trigger
    def set_trigger_mode(self, mode: TriggerMode | str) -> None:
        if isinstance(mode, TriggerMode):
            m = mode
        else:
            name = str(mode).upper()
            m = TriggerMode(_TRIGGER_ALIASES.get(name, name))
        self.s.send(f"TRMD {m.value}")

    def set_for_auto(self) -> None: self.set_trigger_mode(TriggerMode.AUTO)
    def set_for_norm(self) -> None: self.set_trigger_mode(TriggerMode.NORM)

    def single(self) -> None: self.s.send("ARM;WAIT")
    def stop(self) -> None: self.s.send("STOP")

    def set_trigger_channel(self, channel: ChannelLike) -> None:
        """Edge trigger on the given source."""
        self.s.send(f"TRSE EDGE,SR,{parse_channel(channel).source}")

    # Display
    def display_channel(self, channel: ChannelLike, on: bool) -> None:
        self.s.send(f"{parse_channel(channel).source}:TRACE {self._bstr(on)}")

    def is_displayed(self, channel: ChannelLike) -> bool:
        return "ON" in self.s.send_and_receive(f"{parse_channel(channel).source}:TRACE?", self.timeout_ms).upper()

    # Averaging
    def set_averages(self, channel: ChannelLike, count: int) -> Channel:
        """
        Average either member of a maths/acquisition pair.

        ``count > 1`` defines the maths channel as a summed average of its
        partner, shows it and hides the raw channel; the maths channel is
        returned. ``count <= 1`` undoes that and returns the acquisition
        channel.
        """
        maths, acq = split_pair(channel)
        if count > 1:
            self.s.send(
                f"{maths.source}:DEF EQN,'AVG({acq.source})',AVERAGETYPE,SUMMED,SWEEPS,{int(count)} SWEEP;"
                f"{maths.source}:TRACE ON;{acq.source}:TRACE OFF"
            )
            self.logger.info("%s averaging %s over %d sweeps", maths.source, acq.source, count)
            return maths
        self.s.send(f"{maths.source}:TRACE OFF;{acq.source}:TRACE ON")
        return acq

    def get_averages(self, channel: ChannelLike) -> int:
        maths, _ = split_pair(channel)
        return self.s.obtain_long(f"VBS? 'Return=app.Math.{maths.source}.Operator1Setup.Sweeps'", self.timeout_ms)

    def clear_sweeps(self) -> None:
        # INR? resets the register; the value itself doesn't matter
        self.s.obtain_numeric("INR?", self.timeout_ms)
        self.s.send("CLSW")

    def _averaging_mask(self, timeout_ms: Optional[int]) -> int:
        mask = 0
        for n in range(1, BOUND_SLOTS + 1):
            f = Channel(ChannelKind.FUNCTION, n)
            if "ON" not in self.s.send_and_receive(f"{f.source}:TRACE?", timeout_ms).upper():
                continue
            if "AVG" not in self.s.send_and_receive(f"{f.source}:DEF?", timeout_ms).upper():
                continue
            mask |= _INR_FUNCTION_BIT << (n - 1)
        return mask

    def wait_all_averages(self, timeout_ms: Optional[int] = None, *,
                          limit_s: Optional[float] = None, max_polls: Optional[int] = None) -> bool:
        """
        Poll INR? until every displayed averaging function F1..F4 has
        signalled completion at least once.

        Bits are OR-ed into a local accumulator because INR? clears on read
        and functions finish at different times. Returns False if the
        ``limit_s`` / ``max_polls`` budget runs out first; transport timeouts
        propagate.
        """
        timeout_ms = self.timeout_ms if timeout_ms is None else timeout_ms
        limit_s = self.average_limit_s if limit_s is None else limit_s
        mask = self._averaging_mask(timeout_ms)
        self.logger.debug("waiting for averages, INR mask 0x%04x", mask)

        deadline = None if limit_s is None else time.monotonic() + limit_s
        seen = 0
        polls = 0
        while True:
            seen |= self.s.obtain_long("INR?", timeout_ms)
            polls += 1
            if (seen & mask) == mask:
                return True
            if max_polls is not None and polls >= max_polls:
                self.logger.warning("averages incomplete after %d INR? polls (seen 0x%04x, mask 0x%04x)",
                                    polls, seen, mask)
                return False
            if deadline is not None and time.monotonic() >= deadline:
                self.logger.warning("averages incomplete after %.1f s (seen 0x%04x, mask 0x%04x)",
                                    limit_s, seen, mask)
                return False
            if self.poll_interval_s:
                time.sleep(self.poll_interval_s)

    # Segmentation
    def get_segmented_status(self) -> bool:
        mode = self.s.send_and_receive("VBS? 'Return=app.Acquisition.Horizontal.SampleMode'", self.timeout_ms)
        return mode.strip().strip('"').startswith("Sequence")

    def get_segment_count(self) -> int:
        """Number of segments, or 1 when not in sequence mode."""
        if self.get_segmented_status():
            return self.s.obtain_long("VBS? 'Return=app.Acquisition.Horizontal.NumSegments'", self.timeout_ms)
        return 1

    def set_segmentation(self, count: int, arm: bool = True) -> int:
        """Request ``count`` segments; the scope may clamp, so the actual count is returned."""
        if count > 1:
            cmd = f"SEQ ON,{int(count)}"
            if arm:
                cmd += ";ARM"
        else:
            cmd = "SEQ OFF"
        self.s.send(cmd)
        actual = self.get_segment_count()
        if count > 1 and actual != count:
            self.logger.info("requested %d segments, scope set %d", count, actual)
        return actual

    def set_segmented_averages(self, channel: ChannelLike, count: int, arm: bool = True) -> Channel:
        """Average ``count`` segments of one sequence acquisition on the maths partner."""
        return self.set_averages(channel, self.set_segmentation(count, arm))

    # Horizontal
    def set_sample_rate(self, rate: float = 0, min_points: int = 0,
                        timeout_ms: Optional[int] = None) -> float:
        """
        Set the rate directly, or infer it from a minimum number of points
        across the ten screen divisions. An explicit rate wins. The value
        the scope reports afterwards is returned; treat it, not the request,
        as authoritative.
        """
        timeout_ms = self.timeout_ms if timeout_ms is None else timeout_ms
        if min_points > 0:
            time_range = self.s.obtain_numeric("TIME_DIV?", timeout_ms) * 10.0
            self.s.send(f"VBS '{_SAMPLE_RATE_VBS}={min_points / time_range:g}'")
        if rate > 0:
            self.s.send(f"VBS '{_SAMPLE_RATE_VBS}={rate:g}'")
        return self.s.obtain_numeric(f"VBS? 'Return={_SAMPLE_RATE_VBS}'", timeout_ms)

    def get_num_points(self) -> int:
        return self.s.obtain_long("VBS? 'Return=app.Acquisition.Horizontal.NumPoints'", self.timeout_ms)

    # Transfer format
    def get_bytes_per_point(self) -> int:
        return 2 if "WORD" in self.s.send_and_receive("COMM_FORMAT?", self.timeout_ms).upper() else 1

    def set_bytes_per_point(self, n: int) -> None:
        if n not in (1, 2):
            raise ValueError("bytes per point must be 1 or 2")
        self.s.send(f"COMM_FORMAT DEF9,{'BYTE' if n == 1 else 'WORD'},BIN")
