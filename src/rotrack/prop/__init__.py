"""Orbit propagation and pass prediction"""

from .propagator import (
    Pass,
    PassDetail,
    Qth,
    Satellite,
    SkyfieldPropagator,
    TargetState,
    ground_distance,
    julian_now,
    load_satellites,
    load_tle,
)

__all__ = [
    "Pass",
    "PassDetail",
    "Qth",
    "Satellite",
    "SkyfieldPropagator",
    "TargetState",
    "ground_distance",
    "julian_now",
    "load_satellites",
    "load_tle",
]
