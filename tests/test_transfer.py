import logging

import pytest
from pyvisa.constants import StatusCode
from pyvisa.errors import VisaIOError

from lecroyscpi.errors import (
    CommandError, MalformedBlockError, NotConnectedError, ScopeError, TransportError,
)
from lecroyscpi.scope import LeCroyScope, MockLeCroyResource, MockResourceManager


def test_connect_initialises_transfer_format(res):
    s = LeCroyScope("192.168.1.20", rm=MockResourceManager(res))
    assert s.address == "TCPIP0::192.168.1.20::inst0::INSTR"
    s.connect()
    assert res.log[:4] == ["COMM_FORMAT DEF9,WORD,BIN", "COMM_HEADER OFF", "COMM_ORDER LO",
                           'MSG "LECROYSCPI VXI-11 DRIVER"']
    assert s.identity.startswith("LECROY")
    s.close()
    assert res.log[-1] == "MSG"
    assert res.closed


def test_full_resource_string_kept():
    assert LeCroyScope("TCPIP0::scope.lab::inst0::INSTR").address == "TCPIP0::scope.lab::inst0::INSTR"


def test_requires_connection():
    s = LeCroyScope("10.0.0.1", rm=MockResourceManager())
    with pytest.raises(NotConnectedError):
        s.get_data("1")


def test_connect_gives_up_after_retries():
    class BrokenRM:
        calls = 0

        def open_resource(self, address):
            BrokenRM.calls += 1
            raise OSError("no route to host")

    s = LeCroyScope("10.0.0.1", rm=BrokenRM(), retries=2, retry_delay=0)
    with pytest.raises(ScopeError) as ei:
        s.connect()
    assert BrokenRM.calls == 3
    assert isinstance(ei.value.__cause__, OSError)


def test_context_manager(res):
    with LeCroyScope("10.0.0.1", rm=MockResourceManager(res), banner=None) as s:
        s.stop()
    assert "STOP" in res.log
    assert "MSG" not in res.log


def test_check_errors_reads_cmr(res):
    s = LeCroyScope("10.0.0.1", rm=MockResourceManager(res), check_errors=True)
    s.connect()
    res.log.clear()
    s.stop()
    assert res.log == ["STOP", "CMR?"]


def test_check_errors_raises_on_nonzero_cmr():
    class FailingResource(MockLeCroyResource):
        def query(self, cmd):
            if cmd == "CMR?":
                self.log.append(cmd)
                return "4\n"
            return super().query(cmd)

    res = FailingResource()
    s = LeCroyScope("10.0.0.1", rm=MockResourceManager(res), check_errors=True)
    with pytest.raises(CommandError):
        s.connect()
    assert res.closed
    with pytest.raises(NotConnectedError):
        s.stop()


def test_acquisition_channel_arms_and_waits(scope, res):
    res.set_block("C1", b"\x01\x00\x02\x00")
    assert scope.get_data("1") == b"\x01\x00\x02\x00"
    assert res.log == ["ARM;WAIT", "*OPC?", "C1:WF? DAT1"]


def test_acquisition_channel_without_arm_still_checks_opc(scope, res):
    res.set_block("C2", b"\x05\x06")
    assert scope.get_data("2", arm_and_wait=False) == b"\x05\x06"
    assert res.log == ["*OPC?", "C2:WF? DAT1"]


def test_fresh_average_sequence(scope, res):
    res.state["trace"]["F1"] = True
    res.state["def"]["F1"] = "EQN,'AVG(C1)',AVERAGETYPE,SUMMED,SWEEPS,100 SWEEP"
    res.state["inr"] = [0, 256]
    res.set_block("F1", b"\xaa\xbb")

    data = scope.get_data("A", clear_sweeps=True, arm_and_wait=False)

    assert data == b"\xaa\xbb"
    assert res.log == [
        "INR?", "CLSW",
        "F1:TRACE?", "F1:DEF?", "F2:TRACE?", "F3:TRACE?", "F4:TRACE?",
        "INR?",
        "F1:WF? DAT1",
    ]


def test_running_average_reads_immediately(scope, res):
    res.set_block("F2", b"\x01\x02")
    assert scope.get_data("B", clear_sweeps=False, arm_and_wait=False) == b"\x01\x02"
    assert res.log == ["F2:WF? DAT1"]


def test_opc_failure_returns_empty(scope, res, caplog):
    res.state["opc"] = "0"
    res.set_block("C1", b"\x01\x02")
    with caplog.at_level(logging.ERROR):
        assert scope.get_data("1") == b""
    assert "C1:WF? DAT1" not in res.log
    assert "*OPC?" in caplog.text


def test_unfinished_average_returns_empty(res, caplog):
    s = LeCroyScope("10.0.0.1", rm=MockResourceManager(res), average_limit_s=0, poll_interval_s=0)
    s.connect()
    res.log.clear()
    res.state["trace"]["F1"] = True
    res.state["def"]["F1"] = "EQN,'AVG(C1)',AVERAGETYPE,SUMMED,SWEEPS,100 SWEEP"
    res.set_block("F1", b"\x01\x02")
    with caplog.at_level(logging.ERROR):
        assert s.get_data("A", clear_sweeps=True, arm_and_wait=False) == b""
    assert "F1:WF? DAT1" not in res.log
    assert "averaging did not complete" in caplog.text
    s.close()


def test_segmented_average_sequence(scope, res):
    res.state["trace"]["F2"] = True
    res.state["def"]["F2"] = "EQN,'AVG(C2)',AVERAGETYPE,SUMMED,SWEEPS,8 SWEEP"
    res.state["inr"] = [0, 512]
    res.set_block("F2", b"\x10\x20")

    assert scope.get_data("B", clear_sweeps=True, arm_and_wait=True) == b"\x10\x20"
    assert res.log == [
        "INR?", "CLSW",
        "ARM;WAIT", "*OPC?",
        "F1:TRACE?", "F2:TRACE?", "F2:DEF?", "F3:TRACE?", "F4:TRACE?",
        "INR?",
        "F2:WF? DAT1",
    ]


def test_timeout_during_average_wait_propagates():
    class StalledResource(MockLeCroyResource):
        def query(self, cmd):
            if cmd == "INR?":
                self.log.append(cmd)
                raise VisaIOError(StatusCode.error_timeout)
            return super().query(cmd)

    res = StalledResource()
    res.state["trace"]["F1"] = True
    res.state["def"]["F1"] = "EQN,'AVG(C1)',AVERAGETYPE,SUMMED,SWEEPS,100 SWEEP"
    s = LeCroyScope("10.0.0.1", rm=MockResourceManager(res), poll_interval_s=0)
    s.connect()
    with pytest.raises(TransportError) as ei:
        s.wait_all_averages()
    assert isinstance(ei.value.__cause__, VisaIOError)
    assert res.log.count("INR?") == 1


def test_per_call_timeout_is_restored():
    class TimeoutRecorder(MockLeCroyResource):
        def __init__(self):
            super().__init__()
            self.read_timeouts = []

        def read_raw(self):
            self.read_timeouts.append(self.timeout)
            return super().read_raw()

    res = TimeoutRecorder()
    res.set_block("C1", b"\x01\x02")
    s = LeCroyScope("10.0.0.1", rm=MockResourceManager(res), timeout_ms=2000)
    s.connect()
    assert s.get_data("1", arm_and_wait=False, timeout_ms=12345) == b"\x01\x02"
    assert res.read_timeouts == [12345]
    assert res.timeout == 2000
    s.close()


def test_empty_block_is_not_an_error(scope, res, caplog):
    with caplog.at_level(logging.WARNING):
        assert scope.get_data("3", arm_and_wait=False) == b""
    assert "empty block" in caplog.text


def test_capacity_limits_payload(scope, res):
    res.set_block("C1", bytes(range(100)))
    assert scope.get_data("1", arm_and_wait=False, capacity=40) == bytes(range(40))


def test_garbage_reply_raises(scope, res):
    res.state["blocks"]["C1"] = b"ERROR ERROR ERROR ERROR ERROR"
    with pytest.raises(MalformedBlockError):
        scope.get_data("1", arm_and_wait=False)


def test_byte_count_asked_twice(scope, res):
    res.state["insp"]["WAVE_ARRAY_1"] = 4002
    assert scope.calculate_no_of_bytes("2") == 4002
    assert res.log == ["C2:INSP? WAVE_ARRAY_1", "C2:INSP? WAVE_ARRAY_1"]


def test_byte_count_from_vbs(scope, res):
    res.state["num_points"] = 10000
    assert scope.calculate_no_of_bytes_from_vbs("A") == 2 * 10001
    res.state["sample_mode"] = "Sequence"
    res.state["segments"] = 10
    assert scope.calculate_no_of_bytes_from_vbs("1") == 2 * 10 * 10002
    res.state["comm_format"] = "DEF9,BYTE,BIN"
    assert scope.calculate_no_of_bytes_from_vbs("A") == 10001
