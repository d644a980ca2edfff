import math
import os
import time

os.environ.setdefault("QT_QPA_PLATFORM", "offscreen")

import pytest

from rotrack import config
from rotrack.prop.propagator import SECDAY, Pass, PassDetail, Qth, Satellite, TargetState
from rotrack.rotor.rotctld import DeviceReading

T0 = 2460000.5


class FakePropagator:
    """Satellite sweeping linearly in azimuth with a sine-shaped elevation arc.

    Below the horizon (outside [aos, los]) the elevation is -10 degrees.
    """

    def __init__(self, aos=T0, duration_s=600.0, az_start=100.0, az_end=200.0, max_el=60.0, ndetails=21):
        self.aos = aos
        self.los = aos + duration_s / SECDAY
        self.az_start = az_start
        self.az_end = az_end
        self.max_el = max_el
        self.ndetails = ndetails
        self.calls = 0
        self.pass_calls = []

    def _frac(self, t):
        return (t - self.aos) / (self.los - self.aos)

    def compute(self, sat, qth, t):
        self.calls += 1
        frac = self._frac(t)
        az = (self.az_start + (self.az_end - self.az_start) * frac) % 360.0
        if 0.0 <= frac <= 1.0:
            el = self.max_el * math.sin(math.pi * frac)
        else:
            el = -10.0
        return az, el

    def target_state(self, sat, qth, t):
        az, el = self.compute(sat, qth, t)
        return TargetState(az=az, el=el, aos=self.aos, los=self.los)

    def make_pass(self, qth):
        details = []
        for i in range(self.ndetails):
            t = self.aos + (self.los - self.aos) * i / (self.ndetails - 1)
            az, el = self.compute(None, qth, t)
            details.append(PassDetail(t, az, max(el, 0.0)))
        return Pass(
            aos=self.aos,
            los=self.los,
            aos_az=details[0].az,
            los_az=details[-1].az,
            max_el=self.max_el,
            qth=qth,
            details=details,
        )

    def next_pass(self, sat, qth, t, days=3.0):
        self.pass_calls.append(("next", t))
        return self.make_pass(qth)

    def current_pass(self, sat, qth, t):
        self.pass_calls.append(("current", t))
        return self.make_pass(qth)


class FakeClient:
    """Stands in for RotctldClient in controller tests."""

    def __init__(self, host="localhost", port=4533, reading=None):
        self.host = host
        self.port = port
        self.reading = reading or DeviceReading(0.0, 0.0, False)
        self.sent = []
        self.busy = False
        self.monitor = False
        self.started = False
        self.stopped = False

    def set_monitor(self, monitor):
        self.monitor = monitor

    def start(self):
        self.started = True

    def stop(self, halt=True):
        self.stopped = True

    def exchange(self, az, el):
        if self.busy:
            return None
        self.sent.append((az, el))
        return self.reading

    def poll(self):
        if self.busy:
            return None
        return self.reading


def wait_for(pred, timeout=5.0, interval=0.01):
    end = time.monotonic() + timeout
    while time.monotonic() < end:
        if pred():
            return True
        time.sleep(interval)
    return pred()


@pytest.fixture
def qth():
    return Qth(name="test", lat=45.0, lon=10.0, alt_m=100.0)


@pytest.fixture
def sat():
    return Satellite(catnum=25544, name="ISS (ZARYA)")


@pytest.fixture
def fake_prop():
    return FakePropagator()


@pytest.fixture
def tmp_config(tmp_path, monkeypatch):
    path = tmp_path / "rotrack_config.json"
    monkeypatch.setattr(config, "_CONFIG_PATH", str(path))
    return path
