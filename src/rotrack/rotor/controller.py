"""Rotator tracking controller.

The controller is driven from two places:
  - `update(t)` whenever new satellite data is available (refreshes the
    target geometry and the active pass)
  - `tick()` once per rotator cycle (computes the rotor target and hands it
    to the rotctld client thread)

Neither call blocks on the network.
"""
import logging
from dataclasses import dataclass
from typing import Callable, List, Optional, Sequence, Tuple, Union

from rotrack.config import RotorConf, RotorConfigError, load_rotor_conf, save_rotor_conf
from rotrack.prop.propagator import SECDAY, Pass, Qth, Satellite, TargetState
from rotrack.rotor.angles import clamp, is_within_threshold, make_positive, project_for_display, smooth
from rotrack.rotor.passes import PassTracker
from rotrack.rotor.path import find_future_target, flip_position, profile_offset
from rotrack.rotor.rotctld import DeviceReading, RotctldClient

logger = logging.getLogger(__name__)

STATE_IDLE = "idle"
STATE_MANUAL = "manual"
STATE_TRACKING = "tracking"
STATE_CORRECTING = "correcting"
STATE_NO_PATH = "no-path"

# polar plot position meaning "do not draw"
HIDDEN = (-10.0, -10.0)

Position = Tuple[float, float]


@dataclass
class SmoothingMemory:
    """Last commanded az/el, used to keep the next azimuth continuous across north."""

    az: float = 0.0
    el: float = 0.0
    valid: bool = False

    def store(self, az: float, el: float) -> None:
        self.az = az
        self.el = el
        self.valid = True

    def clear(self) -> None:
        self.valid = False

    def smooth_az(self, az: float) -> float:
        if self.valid:
            return smooth(self.az, az)
        return az


@dataclass(frozen=True)
class TickResult:
    state: str
    path: Optional[Position]
    target: Optional[Position]
    command: Optional[Position]
    display: Optional[Position]
    sat_marker: Position
    ctrl_marker: Position
    rotor: Optional[Position]
    rotor_marker: Position
    error: bool
    got_rotor: bool


class TrackingController:
    def __init__(
        self,
        propagator,
        qth: Qth,
        satellites: Sequence[Satellite] = (),
        conf: Union[RotorConf, str, None] = None,
        client_factory: Callable[..., RotctldClient] = RotctldClient,
    ):
        self.propagator = propagator
        self.qth = qth
        self.satellites = list(satellites)
        self.client_factory = client_factory

        self.conf: Optional[RotorConf] = None
        self.delay = 1000
        self.threshold = 5.0

        self.tracking = False
        self.engaged = False
        self.monitor = False

        self.t = 0.0
        self.target: Optional[Satellite] = None
        self.target_state: Optional[TargetState] = None

        # manual (knob) position used when not tracking
        self.manual_az = 180.0
        self.manual_el = 45.0

        self.memory = SmoothingMemory()
        self.passes = PassTracker(propagator, on_new_pass=self._on_new_pass)
        self.pass_listeners: List[Callable[[Optional[Pass]], None]] = []

        self.client: Optional[RotctldClient] = None
        self.last_result: Optional[TickResult] = None
        self._state = STATE_IDLE

        if conf is not None:
            self.select_rotor(conf)

    # ---------------- configuration ----------------

    def select_rotor(self, conf: Union[RotorConf, str]) -> bool:
        """Switch to another rotator profile (by name or object). Not allowed while engaged."""
        if self.engaged:
            raise RuntimeError("Disengage the rotator before selecting another one")

        if isinstance(conf, str):
            try:
                conf = load_rotor_conf(conf)
            except RotorConfigError as e:
                logger.error("Failed to load rotator configuration: %s", e)
                self.conf = None
                return False

        self.conf = conf
        self.delay = conf.cycle
        self.threshold = conf.threshold
        self.set_manual(self.manual_az, self.manual_el)
        self.passes.set_rotor(conf.aztype, conf.azstoppos)
        logger.info("Loaded new rotator configuration %s", conf.name)
        return True

    def set_cycle_period(self, ms: int) -> None:
        ms = int(ms)
        if ms <= 0:
            raise ValueError("cycle period must be positive")
        self.delay = ms
        if self.conf is not None:
            self.conf.cycle = ms

    def set_threshold(self, deg: float) -> None:
        deg = float(deg)
        if deg <= 0:
            raise ValueError("threshold must be positive")
        self.threshold = deg
        if self.conf is not None:
            self.conf.threshold = deg

    def set_qth(self, qth: Qth) -> None:
        self.qth = qth

    def set_manual(self, az: float, el: float) -> None:
        conf = self.conf or RotorConf()
        self.manual_az = clamp(float(az), conf.minaz, conf.maxaz)
        self.manual_el = clamp(float(el), conf.minel, conf.maxel)

    # ---------------- target ----------------

    def select_target(self, catnum: int) -> bool:
        sat = next((s for s in self.satellites if s.catnum == catnum), None)
        self.memory.clear()
        if sat is None:
            logger.error("Invalid satellite selection: %s", catnum)
            self.target = None
            self.target_state = None
            self.passes.clear()
            self._on_new_pass(None, True)
            return False

        self.target = sat
        self.target_state = self.propagator.target_state(sat, self.qth, self.t)
        self.passes.select(sat, self.target_state, self.qth, self.t)
        return True

    def update(self, t: float) -> Optional[TargetState]:
        """New satellite data at Julian date t: refresh target geometry and pass."""
        self.t = t
        if self.target is None:
            return None
        self.target_state = self.propagator.target_state(self.target, self.qth, t)
        self.passes.refresh(self.target, self.target_state, self.qth, t, self.delay)
        return self.target_state

    def _on_new_pass(self, pass_: Optional[Pass], restart: bool) -> None:
        if restart:
            self.memory.clear()
        for listener in self.pass_listeners:
            listener(pass_)

    # ---------------- modes ----------------

    def set_tracking(self, on: bool) -> None:
        self.memory.clear()
        self.tracking = bool(on)

    def set_monitor(self, on: bool) -> None:
        self.monitor = bool(on)
        if self.client is not None:
            self.client.set_monitor(self.monitor)

    def set_engaged(self, on: bool) -> None:
        """Start or stop the rotctld client.

        Raises RotorConfigError without a rotator profile and RotctldError when
        the server cannot be reached; `engaged` stays False in both cases.
        """
        if on:
            if self.engaged:
                return
            if self.conf is None:
                logger.error("Controller does not have a valid rotator configuration")
                raise RotorConfigError("No rotator configuration selected")
            client = self.client_factory(self.conf.host, self.conf.port)
            client.set_monitor(self.monitor)
            client.start()
            self.client = client
            self.engaged = True
        else:
            if not self.engaged:
                return
            self.engaged = False
            client, self.client = self.client, None
            if client is not None:
                client.stop()

    def park(self) -> None:
        self.set_tracking(False)
        self.set_manual(0.0, 0.0)

    def close(self, save: bool = True) -> None:
        self.set_engaged(False)
        if save and self.conf is not None:
            save_rotor_conf(self.conf)

    # ---------------- accessors ----------------

    @property
    def state(self) -> str:
        return self._state

    @property
    def current_pass(self) -> Optional[Pass]:
        return self.passes.pass_

    @property
    def flipped(self) -> bool:
        return self.passes.flipped

    @property
    def commanded(self) -> Optional[Position]:
        return self.last_result.command if self.last_result else None

    @property
    def actual(self) -> Optional[Position]:
        return self.last_result.rotor if self.last_result else None

    def _flip_active(self) -> bool:
        conf = self.conf or RotorConf()
        return self.passes.flipped and conf.maxel >= 180.0

    def countdown(self, t: Optional[float] = None) -> str:
        """Time to AOS (target below the horizon) or LOS, as HH:MM:SS or MM:SS."""
        if self.target_state is None:
            return "--:--"
        t = self.t if t is None else t
        when = self.target_state.aos if self.target_state.el < 0.0 else self.target_state.los
        s = max(0, int((when - t) * SECDAY))
        h, s = divmod(s, 3600)
        m, s = divmod(s, 60)
        if h > 0:
            return f"{h:02d}:{m:02d}:{s:02d}"
        return f"{m:02d}:{s:02d}"

    # ---------------- control loop ----------------

    def _path_point(self) -> Optional[Position]:
        """Where the satellite is, or where it rises/sets while below the horizon."""
        state = self.target_state
        pass_ = self.passes.pass_
        point = None
        if state.el < 0.0:
            if pass_ is not None:
                if self.t < pass_.aos:
                    point = (pass_.aos_az, 0.0)
                elif self.t > pass_.los:
                    point = (pass_.los_az, 0.0)
        else:
            point = (state.az, state.el)

        if point is not None and self._flip_active():
            point = flip_position(*point)
        return point

    def _compute(self, when: float) -> Position:
        return self.propagator.compute(self.target, self.qth, when)

    def tick(self) -> TickResult:
        conf = self.conf or RotorConf()
        tracking = self.tracking and self.target is not None and self.target_state is not None

        path = None
        target = None
        sat_marker = HIDDEN

        if not tracking:
            target = (self.manual_az, self.manual_el)
            self.memory.store(*target)
            state = STATE_MANUAL if self.target is not None else STATE_IDLE
        else:
            point = self._path_point()
            if point is None:
                state = STATE_NO_PATH
                if self.memory.valid:
                    target = (self.memory.az, self.memory.el)
            else:
                pthaz = self.memory.smooth_az(point[0])
                pthel = point[1]
                path = (pthaz, pthel)

                if self.memory.valid:
                    trgaz, trgel = self.memory.az, self.memory.el
                else:
                    trgaz, trgel = path

                state = STATE_TRACKING
                if not is_within_threshold(pthaz, pthel, trgaz, trgel, self.threshold):
                    state = STATE_CORRECTING
                    if self.target_state.el < 0.0:
                        trgaz, trgel = path
                    else:
                        trgaz, trgel = find_future_target(
                            self._compute,
                            self.t,
                            self.passes.pass_,
                            pthaz,
                            pthel,
                            self.threshold,
                            self.delay,
                            flip=self._flip_active(),
                        )
                    trgaz = self.memory.smooth_az(trgaz)

                self.memory.store(trgaz, trgel)
                target = (trgaz, trgel)
                sat_marker = (make_positive(pthaz), make_positive(pthel))

            if target is not None:
                details = self.passes.pass_.details if self.passes.pass_ else ()
                offset = profile_offset(details, target[0], conf.minaz, conf.maxaz)
                target = (target[0] + offset, target[1])

        self._state = state

        command = display = None
        ctrl_marker = HIDDEN
        if target is not None:
            display = project_for_display(target[0], target[1], conf.aztype)
            ctrl_marker = (make_positive(target[0]), make_positive(target[1]))
            command = (clamp(target[0], conf.minaz, conf.maxaz), clamp(target[1], conf.minel, conf.maxel))

        reading = self._exchange(command)
        rotor = None
        rotor_marker = HIDDEN
        error = False
        if reading is not None:
            rotor = (reading.az, reading.el)
            error = reading.error
            if not error:
                rotor_marker = (make_positive(reading.az), make_positive(reading.el))

        self.last_result = TickResult(
            state=state,
            path=path,
            target=target,
            command=command,
            display=display,
            sat_marker=sat_marker,
            ctrl_marker=ctrl_marker,
            rotor=rotor,
            rotor_marker=rotor_marker,
            error=error,
            got_rotor=reading is not None,
        )
        return self.last_result

    def _exchange(self, command: Optional[Position]) -> Optional[DeviceReading]:
        if not self.engaged or self.client is None:
            return None
        if command is None:
            return self.client.poll()
        return self.client.exchange(*command)
