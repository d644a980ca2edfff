"""Rotor control: angle math, pass geometry and the rotctld client.

The tracking controller pulls in the config layer, import it explicitly:

    from rotrack.rotor.controller import TrackingController
"""

from .angles import is_within_threshold, project_for_display, ring_abs_diff, smooth
from .rotctld import RotctldClient, RotctldError

__all__ = [
    "RotctldClient",
    "RotctldError",
    "is_within_threshold",
    "project_for_display",
    "ring_abs_diff",
    "smooth",
]
