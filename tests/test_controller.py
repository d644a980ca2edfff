import pytest

from rotrack.config import RotorConf, RotorConfigError, load_rotor_conf
from rotrack.prop.propagator import SECDAY, TargetState
from rotrack.rotor.angles import is_within_threshold
from rotrack.rotor.controller import (
    HIDDEN,
    STATE_CORRECTING,
    STATE_IDLE,
    STATE_MANUAL,
    STATE_NO_PATH,
    STATE_TRACKING,
    TrackingController,
)
from rotrack.rotor.rotctld import DeviceReading, RotctldError

from conftest import T0, FakeClient, FakePropagator


def make_controller(prop, qth, sat, conf=None, client=None):
    client = client or FakeClient()

    def factory(host, port):
        client.host = host
        client.port = port
        return client

    ctrl = TrackingController(prop, qth, [sat], conf=conf or RotorConf(name="test"), client_factory=factory)
    return ctrl, client


def start_tracking(ctrl, t, catnum=25544):
    ctrl.update(t)
    assert ctrl.select_target(catnum)
    ctrl.update(t)
    ctrl.set_tracking(True)


def test_idle_uses_manual_position(fake_prop, qth, sat):
    ctrl, _ = make_controller(fake_prop, qth, sat)
    res = ctrl.tick()
    assert res.state == STATE_IDLE
    assert res.command == (180.0, 45.0)
    assert res.sat_marker == HIDDEN
    assert res.path is None


def test_manual_position_is_clamped(fake_prop, qth, sat):
    ctrl, _ = make_controller(fake_prop, qth, sat)
    ctrl.update(T0)
    ctrl.select_target(25544)
    ctrl.set_manual(400.0, -5.0)
    res = ctrl.tick()
    assert res.state == STATE_MANUAL
    assert res.command == (360.0, 0.0)


def test_park(fake_prop, qth, sat):
    ctrl, _ = make_controller(fake_prop, qth, sat)
    start_tracking(ctrl, T0 + 300 / SECDAY)
    ctrl.park()
    assert not ctrl.tracking
    assert ctrl.tick().command == (0.0, 0.0)


def test_tracking_follows_path(fake_prop, qth, sat):
    ctrl, _ = make_controller(fake_prop, qth, sat)
    start_tracking(ctrl, T0 + 300 / SECDAY)
    res = ctrl.tick()
    assert res.state == STATE_TRACKING
    assert abs(res.command[0] - 150.0) < 1e-3
    assert abs(res.command[1] - 60.0) < 1e-3
    assert res.sat_marker == res.path


def test_command_held_inside_threshold(fake_prop, qth, sat):
    ctrl, _ = make_controller(fake_prop, qth, sat)
    t = T0 + 300 / SECDAY
    start_tracking(ctrl, t)
    first = ctrl.tick().command
    assert ctrl.tick().command == first
    ctrl.update(t + 1 / SECDAY)
    res = ctrl.tick()
    assert res.state == STATE_TRACKING
    assert res.command == first


def test_correcting_moves_ahead_within_threshold(fake_prop, qth, sat):
    ctrl, _ = make_controller(fake_prop, qth, sat)
    start_tracking(ctrl, T0 + 300 / SECDAY)
    ctrl.tick()
    ctrl.update(T0 + 340 / SECDAY)
    res = ctrl.tick()
    assert res.state == STATE_CORRECTING
    assert is_within_threshold(res.path[0], res.path[1], res.target[0], res.target[1], ctrl.threshold)
    # the new target leads the satellite instead of trailing it
    assert res.target[0] > res.path[0]
    assert ctrl.memory.valid
    assert (ctrl.memory.az, ctrl.memory.el) == res.target


def test_north_crossing_stays_continuous(qth, sat):
    prop = FakePropagator(az_start=350.0, az_end=370.0)
    conf = RotorConf(name="wide", maxaz=450.0)
    ctrl, _ = make_controller(prop, qth, sat, conf=conf)
    start_tracking(ctrl, T0 + 60 / SECDAY)
    commands = [ctrl.tick().command]
    for k in range(2, 10):
        ctrl.update(T0 + 60 * k / SECDAY)
        commands.append(ctrl.tick().command)

    for prev, cur in zip(commands, commands[1:]):
        assert abs(cur[0] - prev[0]) < 20.0
    for az, _el in commands:
        assert 345.0 <= az <= 375.0
    # went through north without unwinding
    assert commands[-1][0] > 360.0


def test_before_aos_points_at_rise_azimuth(fake_prop, qth, sat):
    ctrl, _ = make_controller(fake_prop, qth, sat)
    start_tracking(ctrl, T0 - 300 / SECDAY)
    res = ctrl.tick()
    assert res.path == (100.0, 0.0)
    assert res.command == (100.0, 0.0)


def test_unknown_target(fake_prop, qth, sat):
    ctrl, _ = make_controller(fake_prop, qth, sat)
    seen = []
    ctrl.pass_listeners.append(seen.append)
    start_tracking(ctrl, T0 + 300 / SECDAY)
    assert ctrl.current_pass is not None

    assert not ctrl.select_target(99999)
    assert ctrl.target is None
    assert ctrl.current_pass is None
    assert seen[-1] is None
    assert ctrl.tick().state == STATE_IDLE


def test_memory_cleared_on_selection_and_toggle(fake_prop, qth, sat):
    ctrl, _ = make_controller(fake_prop, qth, sat)
    start_tracking(ctrl, T0 + 300 / SECDAY)
    ctrl.tick()
    assert ctrl.memory.valid
    ctrl.set_tracking(True)
    assert not ctrl.memory.valid
    ctrl.tick()
    ctrl.select_target(25544)
    assert not ctrl.memory.valid


class NoPassPropagator(FakePropagator):
    def next_pass(self, sat, qth, t, days=3.0):
        self.pass_calls.append(("next", t))
        return None


def test_no_path_only_polls(qth, sat):
    prop = NoPassPropagator()
    ctrl, client = make_controller(prop, qth, sat)
    start_tracking(ctrl, T0 - 300 / SECDAY)
    ctrl.set_engaged(True)
    res = ctrl.tick()
    assert res.state == STATE_NO_PATH
    assert res.command is None
    assert res.got_rotor
    assert client.sent == []


def test_no_path_holds_last_command(fake_prop, qth, sat):
    ctrl, _ = make_controller(fake_prop, qth, sat)
    start_tracking(ctrl, T0 + 300 / SECDAY)
    first = ctrl.tick().command
    ctrl.passes.clear()
    ctrl.target_state = TargetState(az=200.0, el=-5.0, aos=T0 + 1.0, los=T0 + 1.01)
    res = ctrl.tick()
    assert res.state == STATE_NO_PATH
    assert res.command == first


def test_exchange_sends_clamped_command(fake_prop, qth, sat):
    conf = RotorConf(name="low", maxel=30.0)
    ctrl, client = make_controller(fake_prop, qth, sat, conf=conf)
    start_tracking(ctrl, T0 + 300 / SECDAY)
    ctrl.set_engaged(True)
    assert client.started
    res = ctrl.tick()
    assert abs(res.target[1] - 60.0) < 1e-3
    assert client.sent[-1] == res.command
    assert res.command[1] == 30.0
    assert ctrl.commanded == res.command
    assert ctrl.actual == (0.0, 0.0)


def test_device_error_hides_rotor_marker(fake_prop, qth, sat):
    client = FakeClient(reading=DeviceReading(10.0, 20.0, True))
    ctrl, _ = make_controller(fake_prop, qth, sat, client=client)
    ctrl.set_engaged(True)
    res = ctrl.tick()
    assert res.error
    assert res.got_rotor
    assert res.rotor_marker == HIDDEN


def test_busy_client_skips_exchange(fake_prop, qth, sat):
    ctrl, client = make_controller(fake_prop, qth, sat)
    ctrl.set_engaged(True)
    client.busy = True
    res = ctrl.tick()
    assert not res.got_rotor
    assert res.rotor is None
    assert client.sent == []


def test_engage_requires_rotor_profile(fake_prop, qth, sat):
    ctrl = TrackingController(fake_prop, qth, [sat], client_factory=FakeClient)
    with pytest.raises(RotorConfigError):
        ctrl.set_engaged(True)
    assert not ctrl.engaged


class FailingClient(FakeClient):
    def start(self):
        raise RotctldError("connection refused")


def test_engage_failure_leaves_controller_disengaged(fake_prop, qth, sat):
    ctrl, _ = make_controller(fake_prop, qth, sat, client=FailingClient())
    with pytest.raises(RotctldError):
        ctrl.set_engaged(True)
    assert not ctrl.engaged
    assert ctrl.client is None


def test_engage_and_disengage(fake_prop, qth, sat):
    conf = RotorConf(name="remote", host="rotor.local", port=4600)
    ctrl, client = make_controller(fake_prop, qth, sat, conf=conf)
    ctrl.set_monitor(True)
    ctrl.set_engaged(True)
    assert (client.host, client.port) == ("rotor.local", 4600)
    assert client.monitor
    with pytest.raises(RuntimeError):
        ctrl.select_rotor(RotorConf(name="other"))
    ctrl.set_engaged(False)
    assert client.stopped
    assert ctrl.client is None
    assert not ctrl.engaged


def test_cycle_and_threshold_write_back(fake_prop, qth, sat):
    ctrl, _ = make_controller(fake_prop, qth, sat)
    ctrl.set_cycle_period(500)
    ctrl.set_threshold(2.5)
    assert ctrl.conf.cycle == 500
    assert ctrl.conf.threshold == 2.5
    with pytest.raises(ValueError):
        ctrl.set_cycle_period(0)
    with pytest.raises(ValueError):
        ctrl.set_threshold(-1.0)


def test_close_saves_profile(fake_prop, qth, sat, tmp_config):
    ctrl, client = make_controller(fake_prop, qth, sat, conf=RotorConf(name="saved"))
    ctrl.set_engaged(True)
    ctrl.set_cycle_period(750)
    ctrl.close()
    assert client.stopped
    assert load_rotor_conf("saved").cycle == 750


def test_countdown(fake_prop, qth, sat):
    ctrl, _ = make_controller(fake_prop, qth, sat)
    assert ctrl.countdown() == "--:--"
    ctrl.update(T0 - 90.5 / SECDAY)
    ctrl.select_target(25544)
    assert ctrl.countdown() == "01:30"
    assert ctrl.countdown(T0 - 7200.5 / SECDAY) == "02:00:00"
    ctrl.update(T0 + 299.5 / SECDAY)
    assert ctrl.countdown() == "05:00"


def test_flipped_pass_drives_through_zenith(qth, sat):
    prop = FakePropagator(az_start=100.0, az_end=260.0)
    conf = RotorConf(name="flip", aztype="180", azstoppos=-180.0, minaz=-180.0, maxaz=180.0, maxel=180.0)
    ctrl, _ = make_controller(prop, qth, sat, conf=conf)
    start_tracking(ctrl, T0 + 150 / SECDAY)
    assert ctrl.flipped
    res = ctrl.tick()
    # az 140 el ~42 flipped to az 320 el ~138
    assert abs(res.path[0] - 320.0) < 1e-3
    assert res.command[1] > 90.0
    assert abs(res.display[0] + 40.0) < 1e-3
