"""Keeps the predicted pass for the tracked satellite up to date."""
import logging
from typing import Callable, Optional

from rotrack.prop.propagator import SECDAY, Pass, Qth, Satellite, TargetState, ground_distance
from rotrack.rotor.angles import AZ_TYPE_360
from rotrack.rotor.path import is_flipped_pass

logger = logging.getLogger(__name__)

# ground station movement (degrees of arc) that invalidates a cached pass
QTH_DRIFT_LIMIT = 1.0
PASS_SEARCH_DAYS = 3.0


class PassTracker:
    """Owns the active pass and its `flipped` flag.

    `on_new_pass(pass_, restart)` is called after every replacement; `restart`
    is True when the tracking target jumped (unexpected pass, pass ended or
    moved) and the controller should forget its last commanded position.
    """

    def __init__(self, propagator, on_new_pass: Optional[Callable[[Optional[Pass], bool], None]] = None):
        self.propagator = propagator
        self.on_new_pass = on_new_pass
        self.pass_: Optional[Pass] = None
        self.flipped = False
        self.az_type = AZ_TYPE_360
        self.stop_pos = 0.0

    def set_rotor(self, az_type: str, stop_pos: float) -> None:
        self.az_type = az_type
        self.stop_pos = float(stop_pos)
        self._set_flipped()

    def clear(self) -> None:
        self.pass_ = None
        self.flipped = False

    def _set_flipped(self) -> None:
        self.flipped = bool(self.pass_) and is_flipped_pass(self.pass_, self.az_type, self.stop_pos)

    def _replace(self, new_pass: Optional[Pass], restart: bool) -> None:
        self.pass_ = new_pass
        self._set_flipped()
        if new_pass is not None:
            logger.debug(
                "New pass AOS %.5f LOS %.5f max el %.1f flipped=%s",
                new_pass.aos, new_pass.los, new_pass.max_el, self.flipped,
            )
        if self.on_new_pass is not None:
            self.on_new_pass(new_pass, restart)

    def _next(self, sat: Satellite, qth: Qth, t: float) -> Optional[Pass]:
        return self.propagator.next_pass(sat, qth, t, PASS_SEARCH_DAYS)

    def select(self, sat: Satellite, state: Optional[TargetState], qth: Qth, t: float) -> Optional[Pass]:
        """Compute the pass for a newly selected satellite."""
        if state is not None and state.el > 0.0:
            new_pass = self.propagator.current_pass(sat, qth, t)
        else:
            new_pass = self._next(sat, qth, t)
        self._replace(new_pass, restart=True)
        return self.pass_

    def refresh(self, sat: Satellite, state: TargetState, qth: Qth, t: float, delay_ms: float) -> Optional[Pass]:
        pass_ = self.pass_

        if pass_ is not None and ground_distance(qth, pass_.qth) > QTH_DRIFT_LIMIT:
            logger.info("Ground station moved, recomputing pass")
            self._replace(self._next(sat, qth, t), restart=False)
            pass_ = self.pass_

        if pass_ is None:
            if state.el > 0.0:
                new_pass = self.propagator.current_pass(sat, qth, t)
            else:
                new_pass = self._next(sat, qth, t)
            self._replace(new_pass, restart=False)
        elif pass_.aos > t or pass_.los < t:
            if state.el >= 0.0:
                # up, but not in the predicted pass
                self._replace(self.propagator.current_pass(sat, qth, t), restart=True)
            elif (state.aos - pass_.aos) > (delay_ms / SECDAY / 1000.0 / 4.0):
                # the next AOS is later than the cached pass says
                self._replace(self._next(sat, qth, t), restart=True)
        elif state.el < 0.0:
            # inside the pass window but already set
            self._replace(self._next(sat, qth, t), restart=True)

        return self.pass_
