import logging

import pytest

from lecroyscpi.acquisition import AcquisitionMode, TriggerMode, transfer_flags
from lecroyscpi.channels import Channel, ChannelKind


def test_trigger_commands(scope, res):
    scope.set_for_norm()
    scope.set_trigger_mode("auto")
    scope.set_trigger_mode(TriggerMode.STOP)
    scope.set_trigger_channel("2")
    scope.single()
    scope.stop()
    assert res.log == ["TRMD NORM", "TRMD AUTO", "TRMD STOP", "TRSE EDGE,SR,C2", "ARM;WAIT", "STOP"]
    assert res.state["trig_src"] == "C2"


def test_averages_on_then_off(scope, res):
    ch = scope.set_averages("1", 100)
    assert ch == Channel(ChannelKind.FUNCTION, 1)
    assert res.log[-1] == "F1:DEF EQN,'AVG(C1)',AVERAGETYPE,SUMMED,SWEEPS,100 SWEEP;F1:TRACE ON;C1:TRACE OFF"
    assert res.state["trace"]["F1"] and not res.state["trace"]["C1"]
    assert scope.get_averages("A") == 100

    ch = scope.set_averages("A", 1)
    assert ch.source == "C1"
    assert res.log[-1] == "F1:TRACE OFF;C1:TRACE ON"
    assert res.state["trace"]["C1"] and not res.state["trace"]["F1"]


def test_display_channel(scope, res):
    scope.display_channel("3", True)
    assert scope.is_displayed("3")
    scope.display_channel("3", False)
    assert not scope.is_displayed("3")


def test_segmentation(scope, res):
    assert scope.get_segment_count() == 1
    assert scope.set_segmentation(50) == 50
    assert "SEQ ON,50;ARM" in res.log
    assert scope.get_segmented_status()

    res.state["max_segments"] = 20
    assert scope.set_segmentation(50, arm=False) == 20
    assert "SEQ ON,50" in res.log

    assert scope.set_segmentation(1) == 1
    assert res.log[-2] == "SEQ OFF"


def test_segmented_averages(scope, res):
    ch = scope.set_segmented_averages("2", 8)
    assert ch.source == "F2"
    assert "SWEEPS,8 SWEEP" in res.state["def"]["F2"]


def test_sample_rate_direct(scope, res):
    assert scope.set_sample_rate(2e9) == pytest.approx(2e9)
    assert "VBS 'app.Acquisition.Horizontal.SampleRate=2e+09'" in res.log


def test_sample_rate_from_points(scope, res):
    res.state["time_div"] = 1e-6
    assert scope.set_sample_rate(0, min_points=50000) == pytest.approx(5e9)
    assert res.log[0] == "TIME_DIV?"


def test_sample_rate_query_only(scope, res):
    assert scope.set_sample_rate() == pytest.approx(1e9)
    assert len(res.log) == 1


def test_bytes_per_point(scope, res):
    assert scope.get_bytes_per_point() == 2
    scope.set_bytes_per_point(1)
    assert res.log[-1] == "COMM_FORMAT DEF9,BYTE,BIN"
    assert scope.get_bytes_per_point() == 1
    with pytest.raises(ValueError):
        scope.set_bytes_per_point(4)


def test_clear_sweeps_reads_inr_first(scope, res):
    scope.clear_sweeps()
    assert res.log == ["INR?", "CLSW"]


def _average_on(res, *slots):
    for n in slots:
        res.state["trace"][f"F{n}"] = True
        res.state["def"][f"F{n}"] = f"EQN,'AVG(C{n})',AVERAGETYPE,SUMMED,SWEEPS,10 SWEEP"


def test_wait_all_averages_accumulates_bits(scope, res):
    _average_on(res, 1, 2)
    res.state["inr"] = [256, 0, 512]
    assert scope.wait_all_averages()
    assert res.log.count("INR?") == 3


def test_wait_all_averages_ignores_non_average_functions(scope, res):
    _average_on(res, 1)
    res.state["trace"]["F3"] = True
    res.state["def"]["F3"] = "EQN,'ZOOM(C3)'"
    res.state["inr"] = [256]
    assert scope.wait_all_averages()
    assert res.log.count("INR?") == 1


def test_wait_all_averages_gives_up(scope, res, caplog):
    _average_on(res, 4)
    with caplog.at_level(logging.WARNING):
        assert scope.wait_all_averages(max_polls=5) is False
    assert res.log.count("INR?") == 5
    assert "averages incomplete" in caplog.text


def test_wait_all_averages_time_limit(scope, res):
    _average_on(res, 1)
    assert scope.wait_all_averages(limit_s=0) is False


def test_transfer_flags():
    assert transfer_flags(AcquisitionMode.REALTIME) == (False, True)
    assert transfer_flags(AcquisitionMode.REALTIME, new_acquisition=False) == (False, False)
    assert transfer_flags(AcquisitionMode.SEGMENTED) == (False, True)
    assert transfer_flags(AcquisitionMode.AVERAGED) == (True, False)
    assert transfer_flags(AcquisitionMode.AVERAGED, new_acquisition=False) == (False, False)
    assert transfer_flags(AcquisitionMode.SEGMENTED_AVERAGED) == (True, True)
    assert AcquisitionMode.AVERAGED.derived and not AcquisitionMode.SEGMENTED.derived


def test_averages_toggle_is_reversible(scope, res):
    scope.set_averages("1", 1000)
    scope.set_averages("1", 0)
    assert not scope.is_displayed("A")
    assert scope.is_displayed("1")


def test_trigger_mode_accepts_normal(scope, res):
    scope.set_trigger_mode("normal")
    scope.set_trigger_mode("Norm")
    assert res.log == ["TRMD NORM", "TRMD NORM"]
    with pytest.raises(ValueError):
        scope.set_trigger_mode("sometimes")
