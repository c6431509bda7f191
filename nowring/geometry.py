"""Segment layouts for each time scale and the morph between two of them."""

from __future__ import annotations

import math
from dataclasses import dataclass, replace
from typing import Dict, Sequence, Tuple

from .angle_utils import clamp, clamp01, lerp, polar_to_cartesian
from .temporal import TimeScale

__all__ = [
    "PHI",
    "GeometrySegment",
    "ScaleFrame",
    "apply_morph_pulse",
    "interpolate",
    "layout_for",
    "scale_frame",
]

PHI = (1.0 + math.sqrt(5.0)) / 2.0

DEFAULT_CENTER: Tuple[float, float] = (300.0, 300.0)
DEFAULT_RADIUS = 200.0

Layout = Tuple["GeometrySegment", ...]


@dataclass(frozen=True)
class GeometrySegment:
    """One positioned element of a scale layout (rotation in degrees)."""

    index: int
    angle: float
    x: float
    y: float
    scale: float
    rotation: float
    opacity: float

    @property
    def position(self) -> Tuple[float, float]:
        return self.x, self.y


@dataclass(frozen=True)
class ScaleFrame:
    """Container-level transform applied around a layout."""

    zoom_level: float
    container_scale: float
    global_rotation: float
    metaphor: str


_FRAMES: Dict[TimeScale, ScaleFrame] = {
    TimeScale.DAY: ScaleFrame(1.0, 1.0, 0.0, "Vinyl/Sun"),
    TimeScale.WEEK: ScaleFrame(max((1.0 / PHI) * 0.85, 0.7), 0.9, 0.0, "Lotus/Wheel"),
    TimeScale.MONTH: ScaleFrame(max((1.0 / PHI) * 0.75, 0.6), 0.8, 22.5, "Constellation/Hive"),
    TimeScale.YEAR: ScaleFrame(max((1.0 / PHI) * 0.65, 0.5), 0.7, 0.0, "Galaxy/Solar System"),
}


def scale_frame(scale: TimeScale) -> ScaleFrame:
    return _FRAMES[scale]


def _ring(count: int, center: Tuple[float, float], radius: float, *, scale: float, rotation_offset: float) -> Layout:
    segments = []
    for i in range(count):
        angle = (i / count) * 360.0 - 90.0
        x, y = polar_to_cartesian(center, radius, angle)
        segments.append(GeometrySegment(i, angle, x, y, scale, angle + rotation_offset, 1.0))
    return tuple(segments)


def layout_for(
    scale: TimeScale,
    *,
    center: Tuple[float, float] = DEFAULT_CENTER,
    radius: float = DEFAULT_RADIUS,
    weeks_in_month: int = 4,
) -> Layout:
    """Return the resting layout of ``scale``.

    day
        24 hour marks evenly spaced on the circle, upright.
    week
        7 day petals on a ring of ``radius / PHI``.
    month
        4 to 6 week flowers on a gentle expanding spiral (0.8 of a turn).
    year
        12 month bubbles on a slightly elliptical "seasonal" orbit.
    """

    radius = max(0.0, float(radius))
    if scale is TimeScale.DAY:
        return _ring(24, center, radius, scale=1.0, rotation_offset=90.0)
    if scale is TimeScale.WEEK:
        return _ring(7, center, radius / PHI, scale=0.7, rotation_offset=0.0)
    if scale is TimeScale.MONTH:
        count = int(clamp(int(weeks_in_month), 4, 6))
        segments = []
        for i in range(count):
            spiral_angle = (i / count) * 360.0 * 0.8
            x, y = polar_to_cartesian(center, radius * (0.4 + i * 0.15), spiral_angle)
            segments.append(GeometrySegment(i, spiral_angle, x, y, 0.5 + i * 0.1, spiral_angle, 1.0))
        return tuple(segments)
    if scale is TimeScale.YEAR:
        segments = []
        for i in range(12):
            angle = (i / 12.0) * 360.0 - 90.0
            seasonal = radius * (0.8 + math.sin(math.radians(angle) * 2.0) * 0.1)
            x, y = polar_to_cartesian(center, seasonal, angle)
            segments.append(GeometrySegment(i, angle, x, y, 0.4, angle, 1.0))
        return tuple(segments)
    raise ValueError(f"unsupported time scale: {scale!r}")


def interpolate(
    from_layout: Sequence[GeometrySegment],
    to_layout: Sequence[GeometrySegment],
    progress: float,
) -> Layout:
    """Blend two layouts index by index.

    Aligned pairs are interpolated linearly. When the cardinalities differ the
    extra segments of ``from_layout`` fade out and the extra segments of
    ``to_layout`` fade in, both driven by ``progress``.
    """

    t = clamp01(float(progress))
    paired = min(len(from_layout), len(to_layout))
    out = []
    for i in range(paired):
        a = from_layout[i]
        b = to_layout[i]
        out.append(
            GeometrySegment(
                index=i,
                angle=lerp(a.angle, b.angle, t),
                x=lerp(a.x, b.x, t),
                y=lerp(a.y, b.y, t),
                scale=lerp(a.scale, b.scale, t),
                rotation=lerp(a.rotation, b.rotation, t),
                opacity=lerp(a.opacity, b.opacity, t),
            )
        )
    for seg in from_layout[paired:]:
        out.append(replace(seg, opacity=seg.opacity * (1.0 - t)))
    for seg in to_layout[paired:]:
        out.append(replace(seg, opacity=seg.opacity * t))
    return tuple(out)


def apply_morph_pulse(segments: Sequence[GeometrySegment], progress: float) -> Layout:
    """Add the cosmetic swell of a morph; identity at ``progress`` 0 and 1."""

    factor = math.sin(clamp01(float(progress)) * math.pi)
    if factor <= 1e-9:
        return tuple(segments)
    return tuple(
        replace(
            seg,
            scale=seg.scale * (1.0 + factor * 0.1),
            rotation=seg.rotation + factor * 22.5,
            opacity=seg.opacity * (1.0 - factor * 0.3),
        )
        for seg in segments
    )
