"""
scope — LeCroy X-Stream / WaveRunner driver over VXI-11, built on PyVISA.

Implements:
- Connection with retries, transfer format setup (DEF9, WORD, BIN, LSB first)
- Single-character channel naming: 1-4, A-H (F1-F8), S-Z (M1-M8)
- Trigger mode/source, ARM;WAIT, *OPC? completion
- Summed averaging on F1-F4, sweep clearing, INR? completion polling
- Sequence (segmented) mode, sample rate by value or by minimum points
- WF? DAT1 block transfer, .wfi sidecar generation
- Mock instrument for testing

API sketch:
    scope = LeCroyScope("192.168.0.10", timeout_ms=10000)
    scope.connect()
    scope.set_sample_rate(1e9)
    chan = scope.set_averages("1", 1000)            # -> Channel F1
    data = scope.get_data(chan, clear_sweeps=True, arm_and_wait=False)
    scope.write_wfi("trace.wfi", chan, "my_rig")
    scope.close()
"""
from __future__ import annotations

import logging
import re
import time
from typing import Any, Dict, List, Optional

from .acquisition import AcquisitionController, TriggerMode
from .channels import Channel, ChannelLike
from .errors import NotConnectedError, ScopeError
from .session import Session
from .transfer import DataTransfer
from .wfi import PathLike, WaveformInfo, query_waveform_info, write_wfi_file

try:
    import pyvisa  # type: ignore
except ImportError:  # pragma: no cover
    pyvisa = None

DEFAULT_BANNER = "LECROYSCPI VXI-11 DRIVER"


def require_connected(fn):
    def wrapper(self, *a, **k):
        if not self._connected:
            raise NotConnectedError("Instrument not connected. Call connect() first.")
        return fn(self, *a, **k)
    wrapper.__name__ = fn.__name__
    wrapper.__doc__ = fn.__doc__
    return wrapper


def to_visa_address(address: str) -> str:
    """Bare IPv4/hostnames become a VXI-11 resource string."""
    if "::" in address:
        return address
    return f"TCPIP0::{address}::inst0::INSTR"


class LeCroyScope:
    def __init__(
        self,
        address: str,
        *,
        timeout_ms: int = 10000,
        check_errors: bool = False,
        logger: Optional[logging.Logger] = None,
        rm: Optional["pyvisa.ResourceManager"] = None,
        retries: int = 3,
        retry_delay: float = 0.1,
        average_limit_s: Optional[float] = 600.0,
        poll_interval_s: float = 0.01,
        banner: Optional[str] = DEFAULT_BANNER,
        defer_init_io: bool = False,
    ):
        self.address = to_visa_address(address)
        self.timeout_ms = int(timeout_ms)
        self.check_errors = check_errors
        self.logger = logger or logging.getLogger(__name__ + ".scope")
        self.rm = rm
        self.banner = banner
        self.average_limit_s = average_limit_s
        self.poll_interval_s = poll_interval_s
        self._defer_init_io = defer_init_io
        self._retries = retries
        self._retry_delay = retry_delay
        self._resource = None
        self._session: Optional[Session] = None
        self._acq: Optional[AcquisitionController] = None
        self._transfer: Optional[DataTransfer] = None
        self._connected = False
        self.identity: Optional[str] = None

    def __enter__(self):
        self.connect()
        return self

    def __exit__(self, exc_type, exc_value, traceback):
        self.close()

    def connect(self) -> None:
        if self._connected:
            return
        if self.rm is None and pyvisa is None:
            raise ImportError("pyvisa is not installed. Please 'pip install pyvisa'.")

        last_err: Optional[Exception] = None
        for attempt in range(self._retries + 1):
            try:
                if self.rm is None:
                    self.rm = pyvisa.ResourceManager()
                self._resource = self.rm.open_resource(self.address)
                self._resource.timeout = self.timeout_ms
                break
            except Exception as e:
                last_err = e
                self.logger.debug("connect() attempt %d/%d failed: %s",
                                  attempt + 1, self._retries + 1, e)
                if attempt < self._retries:
                    time.sleep(self._retry_delay)
        else:
            raise ScopeError(f"Failed to connect to {self.address} after {self._retries + 1} attempts") from last_err

        # big waveforms arrive in one read
        if hasattr(self._resource, "chunk_size"):
            self._resource.chunk_size = 1 << 20

        self._session = Session(self._resource, check_errors=self.check_errors, logger=self.logger)
        self._acq = AcquisitionController(
            self._session, timeout_ms=self.timeout_ms, average_limit_s=self.average_limit_s,
            poll_interval_s=self.poll_interval_s, logger=self.logger,
        )
        self._transfer = DataTransfer(self._session, self._acq, timeout_ms=self.timeout_ms, logger=self.logger)
        self._connected = True
        self.logger.info("connected to %s", self.address)
        if not self._defer_init_io:
            try:
                self.initialize()
            except ScopeError:
                self._resource.close()
                self._reset()
                raise

    @require_connected
    def initialize(self) -> None:
        """Binary 16-bit LSB-first transfers, headerless replies, banner on screen."""
        s = self._session
        # WORD is needed for averaged data
        s.send("COMM_FORMAT DEF9,WORD,BIN")
        s.send("COMM_HEADER OFF")
        s.send("COMM_ORDER LO")
        if self.banner:
            s.send(f'MSG "{self.banner}"')
        self.identity = s.send_and_receive("*IDN?", self.timeout_ms).strip()
        self.logger.info("identity: %s", self.identity)

    def close(self) -> None:
        if not self._connected:
            return
        try:
            if self.banner:
                # clears the message line
                self._session.send("MSG")
            self._resource.close()
        finally:
            self._reset()

    def _reset(self) -> None:
        self._resource = None
        self._session = None
        self._acq = None
        self._transfer = None
        self._connected = False

    # ---- Thin façade → controller / transfer ----
    @require_connected
    def set_trigger_mode(self, mode: TriggerMode | str) -> None: self._acq.set_trigger_mode(mode)

    @require_connected
    def set_for_auto(self) -> None: self._acq.set_for_auto()

    @require_connected
    def set_for_norm(self) -> None: self._acq.set_for_norm()

    @require_connected
    def single(self) -> None: self._acq.single()

    @require_connected
    def stop(self) -> None: self._acq.stop()

    @require_connected
    def set_trigger_channel(self, channel: ChannelLike) -> None: self._acq.set_trigger_channel(channel)

    @require_connected
    def display_channel(self, channel: ChannelLike, on: bool = True) -> None: self._acq.display_channel(channel, on)

    @require_connected
    def is_displayed(self, channel: ChannelLike) -> bool: return self._acq.is_displayed(channel)

    @require_connected
    def set_averages(self, channel: ChannelLike, count: int) -> Channel: return self._acq.set_averages(channel, count)

    @require_connected
    def get_averages(self, channel: ChannelLike) -> int: return self._acq.get_averages(channel)

    @require_connected
    def set_segmented_averages(self, channel: ChannelLike, count: int, arm: bool = True) -> Channel:
        return self._acq.set_segmented_averages(channel, count, arm)

    @require_connected
    def clear_sweeps(self) -> None: self._acq.clear_sweeps()

    @require_connected
    def wait_all_averages(self, timeout_ms: Optional[int] = None, *, limit_s: Optional[float] = None,
                          max_polls: Optional[int] = None) -> bool:
        return self._acq.wait_all_averages(timeout_ms, limit_s=limit_s, max_polls=max_polls)

    @require_connected
    def set_segmentation(self, count: int, arm: bool = True) -> int: return self._acq.set_segmentation(count, arm)

    @require_connected
    def get_segmented_status(self) -> bool: return self._acq.get_segmented_status()

    @require_connected
    def get_segment_count(self) -> int: return self._acq.get_segment_count()

    @require_connected
    def set_sample_rate(self, rate: float = 0, min_points: int = 0, timeout_ms: Optional[int] = None) -> float:
        return self._acq.set_sample_rate(rate, min_points, timeout_ms)

    @require_connected
    def get_bytes_per_point(self) -> int: return self._acq.get_bytes_per_point()

    @require_connected
    def set_bytes_per_point(self, n: int) -> None: self._acq.set_bytes_per_point(n)

    @require_connected
    def get_data(self, channel: ChannelLike, clear_sweeps: bool = False, arm_and_wait: bool = True,
                 timeout_ms: Optional[int] = None, capacity: Optional[int] = None) -> bytes:
        return self._transfer.get_data(channel, clear_sweeps, arm_and_wait, timeout_ms, capacity)

    @require_connected
    def calculate_no_of_bytes(self, channel: ChannelLike, timeout_ms: Optional[int] = None) -> int:
        return self._transfer.calculate_no_of_bytes(channel, timeout_ms)

    @require_connected
    def calculate_no_of_bytes_from_vbs(self, channel: ChannelLike) -> int:
        return self._transfer.calculate_no_of_bytes_from_vbs(channel)

    @require_connected
    def waveform_info(self, channel: ChannelLike, trace_count: int = 1, bytes_per_point: int = 2,
                      byte_count: Optional[int] = None, timeout_ms: Optional[int] = None,
                      voltage_offset: Optional[float] = None) -> WaveformInfo:
        return query_waveform_info(self._transfer, channel, trace_count, bytes_per_point,
                                   byte_count, timeout_ms, voltage_offset)

    @require_connected
    def write_wfi(self, path: PathLike, channel: ChannelLike, captured_by: str, trace_count: int = 1,
                  bytes_per_point: int = 2, byte_count: Optional[int] = None,
                  timeout_ms: Optional[int] = None, voltage_offset: Optional[float] = None) -> int:
        """Query scaling for ``channel`` and write the sidecar. Returns the total byte count."""
        info = self.waveform_info(channel, trace_count, bytes_per_point, byte_count, timeout_ms, voltage_offset)
        write_wfi_file(path, info, captured_by)
        return info.byte_count

    @require_connected
    def write_raw(self, cmd: str) -> None:
        """Send a command string as-is."""
        self._session.send(cmd)

    @require_connected
    def query_raw(self, cmd: str) -> str:
        """Send a query string and return the raw reply."""
        return self._session.send_and_receive(cmd, self.timeout_ms)


# ---------------------------
# Mock for tests
# ---------------------------
_TRACE_RE = re.compile(r"^([CFM]\d):TRACE\s+(ON|OFF)$")
_INSP_RE = re.compile(r"^([CFM]\d):INSP\?\s+'?(\w+)'?$")
_VBS_SET_RE = re.compile(r"^VBS\s+'app\.Acquisition\.Horizontal\.SampleRate=([^']+)'$")
_VBS_GET_RE = re.compile(r"^VBS\?\s+'Return=(.+)'$")


class MockLeCroyResource:
    """Stands in for a pyvisa resource. Every write/query lands in ``log``."""

    def __init__(self, idn: str = "LECROY,WAVERUNNER-104MXI,LCRY0000000,6.1.0"):
        self.idn = idn
        self.timeout = 5000
        self.chunk_size = 20 * 1024
        self.closed = False
        self.log: List[str] = []
        self.state: Dict[str, Any] = {
            "trace": {"C1": True, "C2": False, "C3": False, "C4": False,
                      "F1": False, "F2": False, "F3": False, "F4": False},
            "def": {},
            "inr": [],
            "opc": "1",
            "time_div": 1e-6,
            "sample_rate": 1e9,
            "num_points": 10000,
            "comm_format": "DEF9,WORD,BIN",
            "sample_mode": "RealTime",
            "segments": 1,
            "max_segments": 1000,
            "insp": {"WAVE_ARRAY_1": 20004, "HORIZ_INTERVAL": 1e-9, "HORIZ_OFFSET": -5e-6,
                     "VERTICAL_GAIN": 3.05176e-05, "VERTICAL_OFFSET": 0.02},
            "blocks": {},
            "trig_mode": "AUTO",
            "trig_src": "C1",
        }
        self._pending: Optional[bytes] = None

    def write(self, cmd: str):
        self.log.append(cmd)
        for part in cmd.split(";"):
            self._apply(part.strip())

    def _apply(self, u: str):
        st = self.state
        m = _TRACE_RE.match(u)
        if m:
            st["trace"][m.group(1)] = m.group(2) == "ON"
            return
        m = _VBS_SET_RE.match(u)
        if m:
            st["sample_rate"] = float(m.group(1))
            return
        if u[:3] in {f"F{n}:" for n in range(1, 9)} and u[3:].startswith("DEF "):
            st["def"][u[:2]] = u[7:]
        elif u.startswith("COMM_FORMAT "): st["comm_format"] = u.split(" ", 1)[1]
        elif u.startswith("SEQ ON,"):
            st["sample_mode"] = "Sequence"
            st["segments"] = min(int(u.split(",")[1]), st["max_segments"])
        elif u == "SEQ OFF":
            st["sample_mode"] = "RealTime"
            st["segments"] = 1
        elif u.startswith("TRMD "): st["trig_mode"] = u.split()[-1]
        elif u.startswith("TRSE "): st["trig_src"] = u.split(",")[-1]
        elif u.endswith(":WF? DAT1"):
            self._pending = st["blocks"].get(u[:2], b"#0") + b"\n"

    def query(self, cmd: str) -> str:
        self.log.append(cmd)
        st = self.state
        u = cmd.strip()
        if u == "*IDN?": return self.idn + "\n"
        if u == "*OPC?": return st["opc"] + "\n"
        if u == "CMR?": return "0\n"
        if u == "INR?":
            return f"{st['inr'].pop(0) if st['inr'] else 0}\n"
        if u == "TIME_DIV?": return f"{st['time_div']:E}\n"
        if u == "COMM_FORMAT?": return st["comm_format"] + "\n"
        if u.endswith(":TRACE?"):
            return ("ON" if st["trace"].get(u[:2], False) else "OFF") + "\n"
        if u.endswith(":DEF?"):
            return st["def"].get(u[:2], "EQN,'ZOOM(C1)'") + "\n"
        m = _INSP_RE.match(u)
        if m:
            name = m.group(2)
            return f'"{name:<20}: {st["insp"].get(name, 0)}          "\n'
        m = _VBS_GET_RE.match(u)
        if m:
            prop = m.group(1)
            if prop.endswith("SampleMode"): return st["sample_mode"] + "\n"
            if prop.endswith("NumSegments"): return f"{st['segments']}\n"
            if prop.endswith("SampleRate"): return f"{st['sample_rate']:g}\n"
            if prop.endswith("NumPoints"): return f"{st['num_points']}\n"
            if prop.endswith("Operator1Setup.Sweeps"):
                d = st["def"].get(prop.split(".")[2], "")
                sw = re.search(r"SWEEPS,(\d+)", d)
                return f"{sw.group(1) if sw else 1}\n"
        return "\n"

    def read_raw(self) -> bytes:
        data, self._pending = self._pending or b"", None
        return data

    def set_block(self, source: str, payload: bytes, preamble: bytes = b"DAT1,"):
        self.state["blocks"][source] = preamble + b"#9" + f"{len(payload):09d}".encode() + payload

    def close(self):
        self.closed = True


class MockResourceManager:
    def __init__(self, resource: Optional[MockLeCroyResource] = None):
        self._resource = resource or MockLeCroyResource()

    def open_resource(self, address: str):
        return self._resource


# ---------------------------
# Demo
# ---------------------------
if __name__ == "__main__":
    logging.basicConfig(level=logging.DEBUG)
    res = MockLeCroyResource()
    res.set_block("F1", bytes(range(16)))
    res.state["inr"] = [256]
    scope = LeCroyScope("MOCK::SCOPE", rm=MockResourceManager(res), timeout_ms=3000)
    scope.connect()
    chan = scope.set_averages("1", 100)
    data = scope.get_data(chan, clear_sweeps=True, arm_and_wait=False)
    print("bytes:", len(data))
    scope.close()
