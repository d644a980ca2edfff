"""Simple config persistence for rotrack, including rotator profiles."""
import json
import logging
import os
from dataclasses import asdict, dataclass
from typing import Dict, List, Optional

from rotrack.prop.propagator import Qth
from rotrack.rotor.angles import AZ_TYPE_360, AZ_TYPES

logger = logging.getLogger(__name__)

_CONFIG_PATH = os.path.expanduser("~/.rotrack_config.json")


class RotorConfigError(RuntimeError):
    """Missing or unusable rotator profile."""


@dataclass
class RotorConf:
    name: str = "default"
    host: str = "localhost"
    port: int = 4533
    aztype: str = AZ_TYPE_360
    azstoppos: float = 0.0
    minaz: float = 0.0
    maxaz: float = 360.0
    minel: float = 0.0
    maxel: float = 90.0
    cycle: int = 1000
    threshold: float = 5.0

    @classmethod
    def from_dict(cls, name: str, d: Dict) -> "RotorConf":
        try:
            conf = cls(
                name=name,
                host=str(d.get("host", "localhost")),
                port=int(d.get("port", 4533)),
                aztype=str(d.get("aztype", AZ_TYPE_360)),
                azstoppos=float(d.get("azstoppos", 0.0)),
                minaz=float(d.get("minaz", 0.0)),
                maxaz=float(d.get("maxaz", 360.0)),
                minel=float(d.get("minel", 0.0)),
                maxel=float(d.get("maxel", 90.0)),
                cycle=int(d.get("cycle", 1000)),
                threshold=float(d.get("threshold", 5.0)),
            )
        except (TypeError, ValueError) as e:
            raise RotorConfigError(f"Rotator profile {name!r} is invalid: {e}") from e
        conf.validate()
        return conf

    def validate(self) -> None:
        if self.aztype not in AZ_TYPES:
            raise RotorConfigError(f"Rotator profile {self.name!r}: unknown azimuth type {self.aztype!r}")
        if self.minaz >= self.maxaz:
            raise RotorConfigError(f"Rotator profile {self.name!r}: minaz must be below maxaz")
        if self.minel >= self.maxel:
            raise RotorConfigError(f"Rotator profile {self.name!r}: minel must be below maxel")
        if self.cycle <= 0 or self.threshold <= 0:
            raise RotorConfigError(f"Rotator profile {self.name!r}: cycle and threshold must be positive")

    def to_dict(self) -> Dict:
        d = asdict(self)
        d.pop("name")
        return d


def load_config() -> Dict:
    if os.path.exists(_CONFIG_PATH):
        try:
            with open(_CONFIG_PATH, "r") as f:
                return json.load(f)
        except (OSError, ValueError) as e:
            logger.warning("Ignoring unreadable config %s: %s", _CONFIG_PATH, e)
            return {}
    return {}


def save_config(cfg: Dict) -> None:
    d = os.path.dirname(_CONFIG_PATH)
    if d and not os.path.exists(d):
        os.makedirs(d, exist_ok=True)
    with open(_CONFIG_PATH, "w") as f:
        json.dump(cfg, f, indent=2)


def list_rotors(cfg: Optional[Dict] = None) -> List[str]:
    cfg = load_config() if cfg is None else cfg
    return sorted((cfg.get("rotators") or {}).keys(), key=str.lower)


def load_rotor_conf(name: str, cfg: Optional[Dict] = None) -> RotorConf:
    cfg = load_config() if cfg is None else cfg
    profile = (cfg.get("rotators") or {}).get(name)
    if not isinstance(profile, dict):
        raise RotorConfigError(f"No rotator profile named {name!r}")
    return RotorConf.from_dict(name, profile)


def save_rotor_conf(conf: RotorConf) -> None:
    cfg = load_config()
    cfg.setdefault("rotators", {})[conf.name] = conf.to_dict()
    save_config(cfg)


def load_qth(cfg: Optional[Dict] = None) -> Qth:
    cfg = load_config() if cfg is None else cfg
    q = cfg.get("qth") or {}
    return Qth(
        name=str(q.get("name", "home")),
        lat=float(q.get("lat", 0.0)),
        lon=float(q.get("lon", 0.0)),
        alt_m=float(q.get("alt_m", 0.0)),
    )
