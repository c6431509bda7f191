"""Angle helpers shared between the resolver, the detector and the morph engine.

All angles are expressed in degrees using screen coordinates: the y axis
points down, so ``-90`` is "up" and angles grow clockwise.
"""

from __future__ import annotations

import math
from typing import Tuple

__all__ = [
    "angular_distance",
    "cartesian_to_angle",
    "clamp",
    "clamp01",
    "coerce_float",
    "lerp",
    "normalize_deg",
    "polar_to_cartesian",
]

Point = Tuple[float, float]


def clamp01(value: float) -> float:
    return max(0.0, min(1.0, value))


def clamp(value: float, minimum: float, maximum: float) -> float:
    return max(minimum, min(maximum, value))


def lerp(a: float, b: float, t: float) -> float:
    return a + (b - a) * t


def coerce_float(value: object, default: float = 0.0) -> float:
    """Return ``value`` converted to a finite ``float`` when possible."""

    if value is None or isinstance(value, bool):
        return default
    if isinstance(value, (int, float)):
        number = float(value)
    else:
        try:
            number = float(str(value))
        except (TypeError, ValueError):
            return default
    return number if math.isfinite(number) else default


def normalize_deg(angle: float) -> float:
    """Wrap ``angle`` into ``[0, 360)``."""

    wrapped = math.fmod(angle, 360.0)
    if wrapped < 0.0:
        wrapped += 360.0
    # fmod(-1e-18, 360) + 360 rounds to exactly 360.0
    return 0.0 if wrapped >= 360.0 else wrapped


def angular_distance(a: float, b: float) -> float:
    """Return the shortest distance between two angles, in ``[0, 180]``.

    ``angular_distance(359, 2)`` is ``3`` and not ``357``.
    """

    diff = abs(normalize_deg(a) - normalize_deg(b))
    return min(diff, 360.0 - diff)


def polar_to_cartesian(center: Point, radius: float, angle_deg: float) -> Point:
    rad = math.radians(angle_deg)
    cx, cy = center
    return cx + math.cos(rad) * radius, cy + math.sin(rad) * radius


def cartesian_to_angle(center: Point, point: Point) -> float:
    cx, cy = center
    px, py = point
    return math.degrees(math.atan2(py - cy, px - cx))
