import json
import logging
import time

import pytest

from Logic_Web.config import Config
from Logic_Web.engine.driver import SimulationDriver

from netlists import clocked_flip_flop, input_to_output


def _wires(driver):
    return [s.connection for s in driver.signals]


def _running(data, hz=10.0, toggles=()):
    driver = SimulationDriver(data)
    driver.set_clock_frequency(hz)
    for eid in toggles:
        driver.toggle_input(eid)
    driver.start()
    return driver


def test_input_signal_reaches_output_and_expires():
    driver = _running(input_to_output(), toggles=[1])

    driver.advance(100)
    assert _wires(driver) == ["w1"]
    assert driver.active_outputs == {}

    driver.advance(90)
    assert driver.active_outputs == {2: pytest.approx(190.0)}
    assert driver.signals == ()

    driver.toggle_input(1)
    driver.advance(500)  # t=690
    assert 2 in driver.active_outputs
    driver.advance(110)  # t=800, sweep sees 610 ms without a refresh
    assert driver.active_outputs == {}


def test_one_signal_per_wire_and_one_arrival_per_period():
    driver = _running(input_to_output(), toggles=[1])
    stamps = set()
    for _ in range(200):
        driver.advance(10)
        assert _wires(driver).count("w1") <= 1
        stamps.update(driver.active_outputs.values())

    # arrivals at 190, 290, ... 1990
    assert sorted(stamps) == pytest.approx([190.0 + 100 * k for k in range(19)])


def test_inactive_input_emits_nothing():
    driver = _running(input_to_output())
    driver.advance(1000)

    assert driver.signals == ()
    assert driver.active_outputs == {}


def test_dff_ne_latches_data_and_drives_output():
    driver = _running(clocked_flip_flop(), toggles=[2])

    driver.advance(190)
    # clock arrives before data in the same tick, so nothing latched yet
    assert driver.flip_flops[3].output_value is False
    assert driver.flip_flops[3].has_d is True

    driver.advance(100)  # t=290
    assert driver.flip_flops[3].output_value is True
    assert "q" not in _wires(driver)

    driver.advance(100)  # t=390, deferred emission fired
    assert "q" in _wires(driver)

    driver.advance(110)  # t=500
    assert 4 in driver.active_outputs


def test_dff_ne_edge_without_new_data_clears_output():
    driver = _running(clocked_flip_flop(), toggles=[2])
    driver.advance(295)
    driver.toggle_input(2)

    driver.advance(105)  # t=400, edge at 390 re-latches the pending D
    assert driver.flip_flops[3].output_value is True
    driver.advance(100)  # t=500, edge at 490 finds no D
    assert driver.flip_flops[3].output_value is False
    assert driver.flip_flops[3].has_d is False


def test_dff_latches_only_while_enable_is_driven():
    driver = _running(clocked_flip_flop("DFF", with_enable=True), toggles=[2, 5])
    driver.advance(190)
    assert driver.flip_flops[3].has_en is True
    assert driver.flip_flops[3].output_value is False

    driver.advance(100)
    assert driver.flip_flops[3].output_value is True


def test_dff_enable_lapse_blocks_latching():
    driver = _running(clocked_flip_flop("DFF", with_enable=True), toggles=[5])
    driver.advance(195)
    driver.toggle_input(5)
    assert driver.flip_flops[3].has_en is True

    driver.advance(505)  # t=700, last refresh at 190
    assert driver.flip_flops[3].has_en is True
    driver.advance(100)  # t=800
    assert driver.flip_flops[3].has_en is False
    assert driver.enable_trackers[3].en is False

    driver.toggle_input(2)
    driver.advance(300)  # t=1100, edge at 1090 finds D pending
    state = driver.flip_flops[3]
    assert state.output_value is False
    assert state.has_en is False


def test_stop_discards_signals_and_cancels_deferred_emission():
    driver = _running(clocked_flip_flop(), toggles=[2])
    driver.advance(290)
    assert driver.flip_flops[3].output_value is True

    driver.stop()
    assert driver.signals == ()
    assert driver.active_outputs == {}
    assert not driver.running

    driver.advance(500)
    assert driver.signals == ()

    driver.start()
    driver.advance(100)
    assert "q" not in _wires(driver)
    assert set(_wires(driver)) == {"clk_w", "d_in"}


def test_reset_while_running_clears_everything():
    driver = _running(clocked_flip_flop(), toggles=[2])
    driver.advance(295)

    driver.reset()

    assert driver.signals == ()
    assert driver.active_outputs == {}
    assert driver.active_inputs == frozenset()
    state = driver.flip_flops[3]
    assert (state.has_d, state.has_en, state.output_value, state.last_clock_time) == (
        False,
        True,
        False,
        0.0,
    )
    # the deferred emission scheduled by the latch at 290 is gone
    driver.advance(100)
    assert "q" not in _wires(driver)
    assert driver.running


def test_reset_while_stopped():
    driver = SimulationDriver(clocked_flip_flop("DFF"))
    driver.toggle_input(2)

    driver.reset()

    assert driver.active_inputs == frozenset()
    assert driver.flip_flops[3].has_en is False
    assert not driver.running


def test_reset_trigger_is_consumed_once():
    driver = _running(input_to_output(), toggles=[1])
    driver.advance(150)
    driver.request_reset()
    assert driver.reset_pending
    assert _wires(driver) == ["w1"]

    driver.advance(0)

    assert not driver.reset_pending
    assert driver.signals == ()
    assert driver.active_inputs == frozenset()


def test_clock_frequency_is_clamped_and_rescheduled():
    driver = _running(input_to_output(), toggles=[1])

    assert driver.set_clock_frequency(0) == 1
    assert driver.set_clock_frequency(500) == 100

    # emission moves to t=10 and a full traversal fits in one advancement tick
    driver.advance(10)
    assert driver.active_outputs == {2: 10.0}
    assert driver.signals == ()


def test_toggle_ignores_non_inputs():
    driver = SimulationDriver(clocked_flip_flop())

    assert driver.toggle_input(3) is False
    assert driver.toggle_input(99) is False
    assert driver.toggle_input(2) is True
    assert driver.active_inputs == frozenset({2})
    assert driver.toggle_input(2) is False


def test_load_arranges_only_unplaced_netlists():
    placed = input_to_output()
    placed["elements"][0].update(x=5, y=6)

    assert SimulationDriver(placed).netlist.element(1).x == 5.0
    assert SimulationDriver(input_to_output()).netlist.element(2).x == 300.0

    driver = SimulationDriver()
    driver.load_netlist(placed, arrange_layout=True)
    assert driver.netlist.element(1).x == 100.0


def test_malformed_netlist_loads_empty_with_warning(caplog):
    driver = SimulationDriver(input_to_output())
    with caplog.at_level(logging.WARNING):
        driver.load_netlist({"elements": "nope", "connections": []})

    assert driver.netlist.elements == []
    assert "Malformed netlist" in caplog.text

    driver.load_netlist(None)
    assert driver.netlist.connections == []


def test_move_arrange_undo_redo_restore():
    driver = SimulationDriver(input_to_output())

    driver.move_element(2, 400, 50)
    assert driver.netlist.element(2).x == 400.0
    driver.move_element(1, 0, 0)

    assert driver.undo()
    assert driver.netlist.element(1).x == 100.0
    assert driver.redo()
    assert driver.netlist.element(1).x == 0.0

    driver.auto_arrange()
    assert driver.netlist.positions() == {1: (100.0, 100.0), 2: (300.0, 100.0)}
    driver.undo()
    assert driver.netlist.positions() == {1: (0.0, 0.0), 2: (400.0, 50.0)}

    driver.restore_layout()
    assert driver.netlist.positions() == {1: (100.0, 100.0), 2: (300.0, 100.0)}
    assert not driver.history.can_undo
    assert not driver.undo()


def test_element_at_hit_test():
    driver = SimulationDriver(input_to_output())

    assert driver.element_at(125, 125).id == 1
    assert driver.element_at(350, 150).id == 2
    assert driver.element_at(10, 10) is None


def test_snapshot_reports_signal_positions():
    driver = _running(input_to_output(), toggles=[1])
    driver.advance(150)  # progress 0.6 along a 150 px wire

    snap = driver.snapshot_for_ui()

    assert snap.running and snap.clock_frequency == 10.0
    assert [e.id for e in snap.elements] == [1, 2]
    (sig,) = snap.signals
    assert sig.progress == pytest.approx(0.6)
    assert (sig.x, sig.y) == pytest.approx((240.0, 125.0))
    assert snap.active_inputs == frozenset({1})
    json.dumps(snap.to_dict())


def test_handle_control_round_trip():
    driver = SimulationDriver()
    driver.handle_control({"cmd": "load_netlist", "netlist": input_to_output()})
    assert driver.handle_control({"cmd": "toggle_input", "id": 1}) == {"id": 1, "active": True}
    assert driver.handle_control({"cmd": "set_clock", "hz": 250}) == {"clock_frequency": 100.0}
    driver.handle_control({"cmd": "start"})
    assert driver.handle_control({"cmd": "advance", "ms": 20})["events"] > 0
    driver.handle_control({"cmd": "move", "id": 2, "x": 1, "y": 2})
    assert driver.handle_control({"cmd": "undo"}) == {"changed": True}
    driver.handle_control({"cmd": "reset"})
    assert not driver.reset_pending
    assert driver.active_inputs == frozenset()
    driver.handle_control({"cmd": "stop"})
    assert not driver.running
    assert driver.handle_control({"cmd": "bogus"}) is None


def test_event_logs_written(tmp_path):
    driver = _running(input_to_output(), toggles=[1])
    driver.advance(200)

    out = tmp_path / "output"
    records = [json.loads(line) for line in (out / "signal_log.jsonl").read_text().splitlines()]
    labels = [r["label"] for r in records]
    assert labels[:2] == ["emit", "arrival"]
    assert records[0]["connection"] == "w1"
    assert (out / "metrics.csv").exists()


def test_disabled_category_writes_nothing(tmp_path):
    Config.logging_mode = ["event"]
    driver = _running(input_to_output(), toggles=[1])
    driver.advance(200)

    assert not (tmp_path / "output" / "signal_log.jsonl").exists()


def test_realtime_loop_advances_clock():
    driver = SimulationDriver(input_to_output())
    driver.run_realtime()
    try:
        time.sleep(0.1)
    finally:
        driver.stop_realtime()

    assert driver.now > 0


def test_reset_command_applies_while_stopped():
    driver = SimulationDriver(clocked_flip_flop("DFF"))
    driver.toggle_input(2)

    driver.handle_control({"cmd": "reset"})

    snap = driver.snapshot_for_ui()
    assert snap.active_inputs == frozenset()
    assert not snap.running
    assert not driver.reset_pending


def test_negative_advance_is_rejected():
    driver = _running(input_to_output(), toggles=[1])
    driver.advance(300)

    with pytest.raises(ValueError):
        driver.advance(-250)
    with pytest.raises(ValueError):
        driver.handle_control({"cmd": "advance", "ms": -250})

    assert driver.now == 300.0
    assert driver.advance(0) == 0


def test_deferred_emission_skips_occupied_output_wire(tmp_path):
    Config.log_files["signal"]["suppressed"] = True
    driver = _running(clocked_flip_flop(), toggles=[2])

    # latch at 290 drives q at 390; the edge at 390 schedules another for 490
    driver.advance(395)
    (q_sig,) = [s for s in driver.signals if s.connection == "q"]
    assert q_sig.created_at == 390.0

    # slow the wires down so q is still in flight when the 490 emission fires
    driver.set_clock_frequency(1)
    driver.advance(100)

    q_signals = [s for s in driver.signals if s.connection == "q"]
    assert len(q_signals) == 1
    assert q_signals[0].created_at == 390.0
    assert q_signals[0].progress == pytest.approx(0.1)

    records = [
        json.loads(line)
        for line in (tmp_path / "output" / "signal_log.jsonl").read_text().splitlines()
    ]
    suppressed = [r for r in records if r["label"] == "suppressed"]
    assert suppressed == [{"label": "suppressed", "frame": 49, "time_ms": 490.0, "id": 3}]
