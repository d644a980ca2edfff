"""Pass geometry helpers used by the tracking loop.

- flip detection and the flip transform for rotators with 180 degree elevation
- binary search for a future target on the satellite path
- azimuth profiling to keep a whole pass inside the rotator travel limits
"""
import logging
from typing import Callable, Optional, Sequence, Tuple

from rotrack.prop.propagator import SECDAY, Pass
from rotrack.rotor.angles import AZ_TYPE_180, is_within_threshold, smooth

logger = logging.getLogger(__name__)

# look-ahead used for the search when no pass is known
DEFAULT_HORIZON = 20.0 / 1440.0

PROFILE_OFFSETS = (-360.0, 0.0, 360.0)


def flip_position(az: float, el: float) -> Tuple[float, float]:
    """Drive through the zenith: el -> 180 - el, az moved to the opposite side."""
    if az > 180.0:
        az -= 180.0
    else:
        az += 180.0
    return az, 180.0 - el


def _wrap_into(az: float, low: float, high: float) -> float:
    while az > high:
        az -= 360.0
    while az < low:
        az += 360.0
    return az


def is_flipped_pass(pass_: Pass, az_type: str, stop_pos: float) -> bool:
    """True when following the pass would cross the rotator stop.

    Each azimuth is wrapped into the settable range (shifted so that it starts
    at the stop position); a jump of more than 180 degrees between consecutive
    samples means the rotator would have to go the long way round.
    """
    if az_type == AZ_TYPE_180:
        low, high = -180.0, 180.0
    else:
        low, high = 0.0, 360.0
    offset = stop_pos - low
    low += offset
    high += offset

    azimuths = [pass_.aos_az] + [d.az for d in pass_.details] + [pass_.los_az]
    last = _wrap_into(azimuths[0], low, high)
    flipped = False
    for az in azimuths[1:]:
        caz = _wrap_into(az, low, high)
        if abs(caz - last) > 180.0:
            flipped = True
        last = caz
    return flipped


def find_future_target(
    compute: Callable[[float], Tuple[float, float]],
    t: float,
    pass_: Optional[Pass],
    path_az: float,
    path_el: float,
    threshold: float,
    delay_ms: float,
    flip: bool = False,
) -> Tuple[float, float]:
    """Find the point on the satellite path just inside the threshold of the path point.

    `compute(t)` returns the satellite (az, el) at Julian date t. The search
    bisects the time ahead of `t`: a step is kept only when the propagated
    point is still within `threshold` of (path_az, path_el), so the answer
    never lands beyond the threshold and the rotor does not overshoot.
    """
    tick = delay_ms / 1000.0 / SECDAY

    if pass_ is not None:
        step = pass_.los - t
    else:
        step = DEFAULT_HORIZON
    step /= 2.0
    if step < tick / 2.0:
        step = tick / 2.0

    def at(when):
        az, el = compute(when)
        if flip:
            az, el = flip_position(az, el)
        return az, el

    elapsed = 0.0
    while step > tick / 4.0:
        az, el = at(t + elapsed + step)
        if 0.0 <= el <= 180.0 and is_within_threshold(path_az, path_el, az, el, threshold):
            elapsed += step
        step /= 2.0

    return at(t + elapsed)


def profile_offset(details: Sequence, sample_az: float, min_az: float, max_az: float) -> float:
    """Pick -360, 0 or +360 so the whole pass fits in [min_az, max_az].

    Among the offsets that fit, the one keeping the azimuths closest to zero
    wins (e.g. -10 -> -40 rather than 350 -> 320). Returns 0 when nothing fits.
    """
    if not details:
        return 0.0

    minaz, maxaz = float("inf"), float("-inf")
    last = details[0].az
    for d in details:
        saz = smooth(last, d.az)
        minaz = min(minaz, saz)
        maxaz = max(maxaz, saz)
        last = saz

    while sample_az < minaz:
        minaz -= 360.0
        maxaz -= 360.0
    while sample_az > maxaz:
        minaz += 360.0
        maxaz += 360.0

    offset = 0.0
    best = None
    for candidate in PROFILE_OFFSETS:
        low = minaz + candidate
        high = maxaz + candidate
        if low >= min_az and high <= max_az:
            stretch = max(abs(low), abs(high))
            if best is None or stretch < best:
                best = stretch
                offset = candidate

    if best is None:
        logger.debug(
            "Pass envelope [%.1f, %.1f] does not fit rotator range [%.1f, %.1f]",
            minaz, maxaz, min_az, max_az,
        )
    return offset
