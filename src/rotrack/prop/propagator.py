"""TLE loading, satellite az/el propagation and pass prediction using skyfield.

Times are Julian dates (days, float) on the UT1 scale, which stays within a
second of UTC and is what the rotor controller works in.
"""
from __future__ import annotations

import logging
import math
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Tuple

import numpy as np
from skyfield.api import EarthSatellite, load, wgs84

logger = logging.getLogger(__name__)

SECDAY = 86400.0

# pass detail sampling
DETAIL_STEP_S = 10.0
MAX_DETAILS = 200


@dataclass(frozen=True)
class Qth:
    """Ground station location."""

    name: str = "home"
    lat: float = 0.0
    lon: float = 0.0
    alt_m: float = 0.0


def ground_distance(a: Qth, b: Qth) -> float:
    """Great-circle separation of two ground stations, in degrees of arc."""
    lat1, lat2 = math.radians(a.lat), math.radians(b.lat)
    dlat = lat2 - lat1
    dlon = math.radians(b.lon - a.lon)
    h = math.sin(dlat / 2) ** 2 + math.cos(lat1) * math.cos(lat2) * math.sin(dlon / 2) ** 2
    return math.degrees(2 * math.asin(min(1.0, math.sqrt(h))))


@dataclass
class Satellite:
    catnum: int
    name: str
    line1: str = ""
    line2: str = ""

    @classmethod
    def from_tle(cls, tle: List[str]) -> "Satellite":
        name, line1, line2 = tle
        try:
            catnum = int(line1[2:7])
        except ValueError as e:
            raise ValueError(f"Bad catalog number in TLE line 1: {line1!r}") from e
        return cls(catnum=catnum, name=name.strip(), line1=line1, line2=line2)


@dataclass(frozen=True)
class TargetState:
    """Live geometry of the selected satellite at one instant."""

    az: float
    el: float
    aos: float
    los: float


@dataclass(frozen=True)
class PassDetail:
    time: float
    az: float
    el: float


@dataclass
class Pass:
    aos: float
    los: float
    aos_az: float
    los_az: float
    max_el: float
    qth: Qth
    details: List[PassDetail] = field(default_factory=list)

    @property
    def duration_s(self) -> int:
        return int(round((self.los - self.aos) * SECDAY))

    def contains(self, t: float) -> bool:
        return self.aos <= t <= self.los


def load_tle(path: str) -> List[str]:
    """Load TLE file containing two-line elements. Returns list [name, line1, line2]."""
    with open(path, "r") as f:
        lines = [l.strip() for l in f if l.strip()]
    if len(lines) >= 3:
        return [lines[0], lines[1], lines[2]]
    raise ValueError("TLE file must contain at least 3 non-empty lines (name, line1, line2)")


def load_satellites(path: str) -> List[Satellite]:
    """Load every name/line1/line2 triple from a TLE file."""
    with open(path, "r", encoding="utf-8", errors="ignore") as f:
        lines = [l.strip() for l in f if l.strip()]

    sats = []
    i = 0
    while i < len(lines) - 2:
        if lines[i + 1].startswith("1 ") and lines[i + 2].startswith("2 "):
            try:
                sats.append(Satellite.from_tle(lines[i:i + 3]))
            except ValueError as e:
                logger.warning("Skipping TLE entry %r: %s", lines[i], e)
            i += 3
        else:
            i += 1
    return sats


def julian_now() -> float:
    return float(load.timescale().now().ut1)


class SkyfieldPropagator:
    """Orbit predictor used by the rotor controller.

    Keeps one skyfield EarthSatellite per catalog number and caches the next
    AOS/LOS per satellite so `target_state` stays cheap when called every tick.
    """

    def __init__(self, days_ahead: float = 3.0):
        self.ts = load.timescale()
        self.days_ahead = float(days_ahead)
        self._sats: Dict[int, EarthSatellite] = {}
        self._events: Dict[Tuple[int, Qth], Tuple[float, float]] = {}

    def _earth_sat(self, sat: Satellite) -> EarthSatellite:
        es = self._sats.get(sat.catnum)
        if es is None:
            es = EarthSatellite(sat.line1, sat.line2, sat.name, self.ts)
            self._sats[sat.catnum] = es
        return es

    def _topocentric(self, sat: Satellite, qth: Qth, t):
        observer = wgs84.latlon(qth.lat, qth.lon, elevation_m=qth.alt_m)
        return (self._earth_sat(sat) - observer).at(self.ts.ut1_jd(t))

    def compute(self, sat: Satellite, qth: Qth, t: float) -> Tuple[float, float]:
        """Return (az, el) in degrees at Julian date t."""
        alt, az, _ = self._topocentric(sat, qth, t).altaz()
        return float(az.degrees), float(alt.degrees)

    def _find_events(self, sat: Satellite, qth: Qth, t0: float, t1: float):
        observer = wgs84.latlon(qth.lat, qth.lon, elevation_m=qth.alt_m)
        times, events = self._earth_sat(sat).find_events(
            observer, self.ts.ut1_jd(t0), self.ts.ut1_jd(t1), altitude_degrees=0.0
        )
        return [(float(ti.ut1), int(ev)) for ti, ev in zip(times, events)]

    def _next_aos_los(self, sat: Satellite, qth: Qth, t: float, up: bool) -> Tuple[float, float]:
        key = (sat.catnum, qth)
        cached = self._events.get(key)
        if cached is not None and t <= cached[1] and (up or t < cached[0]):
            return cached

        aos = t if up else None
        los = None
        for when, ev in self._find_events(sat, qth, t, t + self.days_ahead):
            if ev == 0 and aos is None:
                aos = when
            elif ev == 2 and aos is not None:
                los = when
                break

        horizon = t + self.days_ahead
        result = (horizon if aos is None else aos, horizon if los is None else los)
        self._events[key] = result
        return result

    def target_state(self, sat: Satellite, qth: Qth, t: float) -> TargetState:
        az, el = self.compute(sat, qth, t)
        aos, los = self._next_aos_los(sat, qth, t, el > 0.0)
        return TargetState(az=az, el=el, aos=aos, los=los)

    def _build_pass(self, sat: Satellite, qth: Qth, aos: float, los: float) -> Pass:
        num = int((los - aos) * SECDAY / DETAIL_STEP_S) + 1
        num = max(2, min(MAX_DETAILS, num))
        jd = np.linspace(aos, los, num)
        observer = wgs84.latlon(qth.lat, qth.lon, elevation_m=qth.alt_m)
        alt, az, _ = (self._earth_sat(sat) - observer).at(self.ts.ut1_jd(jd)).altaz()
        azs = np.asarray(az.degrees, dtype=float)
        els = np.asarray(alt.degrees, dtype=float)
        details = [PassDetail(float(j), float(a), float(e)) for j, a, e in zip(jd, azs, els)]
        return Pass(
            aos=float(aos),
            los=float(los),
            aos_az=float(azs[0]),
            los_az=float(azs[-1]),
            max_el=float(els.max()),
            qth=qth,
            details=details,
        )

    def next_pass(self, sat: Satellite, qth: Qth, t: float, days: float = 3.0) -> Optional[Pass]:
        """Next complete pass starting after t, searching `days` ahead."""
        aos = None
        for when, ev in self._find_events(sat, qth, t, t + days):
            if ev == 0 and aos is None:
                aos = when
            elif ev == 2 and aos is not None:
                logger.debug("Next pass for %s: AOS %.5f LOS %.5f", sat.name, aos, when)
                return self._build_pass(sat, qth, aos, when)
        logger.info("No pass for %s within %.1f days", sat.name, days)
        return None

    def current_pass(self, sat: Satellite, qth: Qth, t: float) -> Optional[Pass]:
        """Pass in progress at t; falls back to the next pass when the satellite is down."""
        _, el = self.compute(sat, qth, t)
        if el <= 0.0:
            return self.next_pass(sat, qth, t, self.days_ahead)

        events = self._find_events(sat, qth, t - 0.5, t + self.days_ahead)
        aos = t - 0.5
        los = t + self.days_ahead
        for when, ev in events:
            if ev == 0 and when <= t:
                aos = when
            elif ev == 2 and when > t:
                los = when
                break
        return self._build_pass(sat, qth, aos, los)
