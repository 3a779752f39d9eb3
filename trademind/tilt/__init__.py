"""Tilt interlock package."""

from trademind.tilt.interlock import TiltInterlock, TiltLockedError

__all__ = [
    "TiltInterlock",
    "TiltLockedError",
]
