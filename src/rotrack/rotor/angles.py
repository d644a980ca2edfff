"""Angle helpers for rotator azimuth/elevation arithmetic (all values in degrees)."""
from typing import Tuple

AZ_TYPE_RAW = "raw"
AZ_TYPE_360 = "360"
AZ_TYPE_180 = "180"

AZ_TYPES = (AZ_TYPE_RAW, AZ_TYPE_360, AZ_TYPE_180)


def ring_abs_diff(a: float, b: float) -> float:
    """Shortest distance between two angles on a 360 degree ring, e.g. 350 vs 10 -> 20."""
    diff = abs(a - b) % 360.0
    if diff > 180.0:
        diff = 360.0 - diff
    return diff


def smooth(reference: float, value: float) -> float:
    """Keep `value` near `reference` across due north (359 -> 1 reads as 359 -> 361)."""
    res = value
    if reference + 170.0 < value:
        res -= 360.0
    if reference - 170.0 > value:
        res += 360.0
    return res


def make_positive(angle: float) -> float:
    while angle < 0:
        angle += 360.0
    return angle


def clamp(value: float, low: float, high: float) -> float:
    return max(low, min(high, value))


def is_within_threshold(az1: float, el1: float, az2: float, el2: float, threshold: float) -> bool:
    """Combined az/el distance test; not a true great-circle distance but close enough."""
    daz = ring_abs_diff(az1, az2)
    del_ = ring_abs_diff(el1, el2)
    return (daz * daz) + (del_ * del_) < (threshold * threshold)


def project_for_display(az: float, el: float, az_type: str) -> Tuple[float, float]:
    """Project a command position into the configured azimuth convention.

    Display only: the result must never be fed back into target calculations.
    """
    if az_type == AZ_TYPE_360:
        while az < 0:
            az += 360.0
        while az > 360:
            az -= 360.0
    elif az_type == AZ_TYPE_180:
        while az < -180:
            az += 360.0
        while az > 180:
            az -= 360.0
    return az, el
