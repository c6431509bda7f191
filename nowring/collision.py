"""Sweep the "now" indicator against the glyph snapshot and report overlaps.

Two strategies share one output contract (:class:`CollisionEvent`, emitted at
most once per continuous overlap):

``slots``
    The circle carries ``slot_count`` evenly spaced lines starting at the now
    angle. A glyph collides when one of the lines passes within
    ``threshold_deg`` of it and ``proximity * intensity`` is meaningful.
``proximity``
    The tip of the now indicator is compared with each glyph position in
    pixels. The most recently played glyph is remembered until the range has
    been empty for a short grace window.

:func:`scan_slots` and :func:`scan_proximity` are pure; the
:class:`CollisionDetector` keeps their state between ticks and owns the grace
timer.
"""

from __future__ import annotations

import logging
import math
from dataclasses import asdict, dataclass, replace
from types import MappingProxyType
from typing import Any, FrozenSet, Iterable, List, Mapping, Optional, Tuple

from .angle_utils import angular_distance, cartesian_to_angle, polar_to_cartesian
from .scheduling import Scheduler, TimerHandle

__all__ = [
    "ActiveCollisionSet",
    "CollisionDetector",
    "CollisionEvent",
    "EMPTY_ACTIVE",
    "Glyph",
    "ProximityScan",
    "ProximityState",
    "SlotScan",
    "sanitize_glyphs",
    "scan_proximity",
    "scan_slots",
]

logger = logging.getLogger(__name__)

Point = Tuple[float, float]
ActiveCollisionSet = Mapping[str, bool]

EMPTY_ACTIVE: ActiveCollisionSet = MappingProxyType({})

DEFAULT_CENTER: Point = (300.0, 300.0)
DEFAULT_NOW_RADIUS = 200.0


# ---------------------------------------------------------------------------
# Data structures


@dataclass(frozen=True)
class Glyph:
    """Read-only data marker supplied by the data layer each tick."""

    id: str
    angle: Optional[float] = None
    x: Optional[float] = None
    y: Optional[float] = None
    radius: Optional[float] = None
    category: str = "mood"
    intensity: float = 0.5
    label: Optional[str] = None

    @property
    def has_position(self) -> bool:
        return self.x is not None and self.y is not None

    def resolved_angle(self, center: Point) -> Optional[float]:
        if self.angle is not None:
            return self.angle
        if self.has_position:
            return cartesian_to_angle(center, (self.x, self.y))  # type: ignore[arg-type]
        return None

    def resolved_position(self, center: Point, ring_radius: float) -> Optional[Point]:
        if self.has_position:
            return float(self.x), float(self.y)  # type: ignore[arg-type]
        if self.angle is None:
            return None
        radius = self.radius if self.radius is not None else ring_radius
        return polar_to_cartesian(center, radius, self.angle)


@dataclass(frozen=True)
class CollisionEvent:
    glyph_id: str
    category: str
    intensity: float
    glyph_intensity: float
    angle: Optional[float]
    line_angle: float
    now_angle: float
    slot_index: int
    position: Optional[Point]
    timestamp_ms: float
    mode: str = "slots"
    label: Optional[str] = None


@dataclass(frozen=True)
class SlotScan:
    active: ActiveCollisionSet
    events: Tuple[CollisionEvent, ...]


@dataclass(frozen=True)
class ProximityState:
    last_played: Optional[str] = None
    in_range: FrozenSet[str] = frozenset()


@dataclass(frozen=True)
class ProximityScan:
    state: ProximityState
    events: Tuple[CollisionEvent, ...]


# ---------------------------------------------------------------------------
# Ingestion


def _is_finite_number(value: object) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool) and math.isfinite(value)


def _first_present(data: Mapping[str, Any], *keys: str) -> Any:
    for key in keys:
        value = data.get(key)
        if value is not None:
            return value
    return None


def sanitize_glyphs(raw: Optional[Iterable[object]]) -> List[Glyph]:
    """Return the usable glyphs of ``raw``; malformed entries are logged and skipped."""

    accepted: List[Glyph] = []
    seen: set = set()
    for idx, entry in enumerate(raw or ()):
        if isinstance(entry, Glyph):
            data: Mapping[str, Any] = asdict(entry)
        elif isinstance(entry, Mapping):
            data = entry
        else:
            logger.warning("[Collision] glyph #%d rejected: unsupported type %s", idx, type(entry).__name__)
            continue

        raw_id = data.get("id")
        glyph_id = "" if raw_id is None else str(raw_id).strip()
        if not glyph_id:
            logger.warning("[Collision] glyph #%d rejected: empty id", idx)
            continue
        if glyph_id in seen:
            logger.warning("[Collision] glyph %r rejected: duplicate id", glyph_id)
            continue

        intensity = _first_present(data, "intensity", "valence", "energy")
        if intensity is None:
            intensity = 0.5
        if not _is_finite_number(intensity):
            logger.warning("[Collision] glyph %r rejected: non-finite intensity %r", glyph_id, intensity)
            continue

        angle = data.get("angle")
        x = data.get("x")
        y = data.get("y")
        provided = [value for value in (angle, x, y) if value is not None]
        if not provided:
            logger.warning("[Collision] glyph %r rejected: no angle or position", glyph_id)
            continue
        if not all(_is_finite_number(value) for value in provided):
            logger.warning("[Collision] glyph %r rejected: non-finite coordinates", glyph_id)
            continue
        if (x is None) != (y is None) and angle is None:
            logger.warning("[Collision] glyph %r rejected: incomplete position", glyph_id)
            continue

        radius = data.get("radius")
        label = _first_present(data, "label", "mood")
        accepted.append(
            Glyph(
                id=glyph_id,
                angle=float(angle) if angle is not None else None,
                x=float(x) if x is not None and y is not None else None,
                y=float(y) if x is not None and y is not None else None,
                radius=float(radius) if _is_finite_number(radius) else None,
                category=str(_first_present(data, "category", "type") or "mood"),
                intensity=max(0.0, min(1.0, float(intensity))),
                label=str(label) if label is not None else None,
            )
        )
        seen.add(glyph_id)
    return accepted


# ---------------------------------------------------------------------------
# Pure scans


def scan_slots(
    active: ActiveCollisionSet,
    glyphs: Iterable[Glyph],
    now_angle: float,
    *,
    slot_count: int = 24,
    threshold_deg: float = 8.0,
    min_intensity: float = 0.1,
    timestamp_ms: float = 0.0,
    center: Point = DEFAULT_CENTER,
) -> SlotScan:
    """Angular slot scan: ``(active, glyphs, now_angle) -> (active', events)``."""

    count = max(1, int(slot_count))
    step = 360.0 / count
    threshold = max(0.0, float(threshold_deg))
    next_active = {}
    events: List[CollisionEvent] = []

    for glyph in glyphs:
        glyph_angle = glyph.resolved_angle(center)
        if glyph_angle is None:
            continue
        within = False
        best: Optional[Tuple[float, int, float]] = None
        for i in range(count):
            line_angle = now_angle + i * step
            distance = angular_distance(line_angle, glyph_angle)
            if distance > threshold:
                continue
            within = True
            proximity = 1.0 - distance / threshold if threshold > 0.0 else 1.0
            strength = proximity * glyph.intensity
            if best is None or strength > best[0]:
                best = (strength, i, line_angle)
        if not within:
            # out of reach of every line: re-armed for a later pass
            continue
        if active.get(glyph.id, False):
            next_active[glyph.id] = True
            continue
        if best is not None and best[0] > min_intensity:
            strength, slot, line_angle = best
            events.append(
                CollisionEvent(
                    glyph_id=glyph.id,
                    category=glyph.category,
                    intensity=strength,
                    glyph_intensity=glyph.intensity,
                    angle=glyph_angle,
                    line_angle=line_angle,
                    now_angle=now_angle,
                    slot_index=slot,
                    position=(glyph.x, glyph.y) if glyph.has_position else None,  # type: ignore[arg-type]
                    timestamp_ms=timestamp_ms,
                    mode="slots",
                    label=glyph.label,
                )
            )
            next_active[glyph.id] = True
    return SlotScan(MappingProxyType(next_active), tuple(events))


def scan_proximity(
    state: ProximityState,
    glyphs: Iterable[Glyph],
    tip: Point,
    *,
    detection_radius_px: float = 18.0,
    now_angle: float = 0.0,
    timestamp_ms: float = 0.0,
    center: Point = DEFAULT_CENTER,
    ring_radius: float = DEFAULT_NOW_RADIUS,
) -> ProximityScan:
    """Euclidean scan of the indicator tip against glyph positions."""

    radius = max(0.0, float(detection_radius_px))
    tip_x, tip_y = tip
    last_played = state.last_played
    in_range = set()
    events: List[CollisionEvent] = []

    for glyph in glyphs:
        position = glyph.resolved_position(center, ring_radius)
        if position is None:
            continue
        if math.hypot(position[0] - tip_x, position[1] - tip_y) > radius:
            continue
        in_range.add(glyph.id)
        if glyph.id in state.in_range or glyph.id == last_played:
            continue
        last_played = glyph.id
        events.append(
            CollisionEvent(
                glyph_id=glyph.id,
                category=glyph.category,
                intensity=glyph.intensity,
                glyph_intensity=glyph.intensity,
                angle=glyph.resolved_angle(center),
                line_angle=now_angle,
                now_angle=now_angle,
                slot_index=0,
                position=position,
                timestamp_ms=timestamp_ms,
                mode="proximity",
                label=glyph.label,
            )
        )
    return ProximityScan(ProximityState(last_played, frozenset(in_range)), tuple(events))


# ---------------------------------------------------------------------------
# Stateful detector


class CollisionDetector:
    """Keep the scan state between ticks and own the grace-window timer."""

    MODES = ("slots", "proximity")

    def __init__(
        self,
        scheduler: Scheduler,
        *,
        mode: str = "slots",
        slot_count: int = 24,
        threshold_deg: float = 8.0,
        min_intensity: float = 0.1,
        detection_radius_px: float = 18.0,
        grace_ms: float = 100.0,
        center: Point = DEFAULT_CENTER,
        now_radius: float = DEFAULT_NOW_RADIUS,
    ) -> None:
        if mode not in self.MODES:
            raise ValueError(f"unknown collision mode: {mode!r}")
        self._scheduler = scheduler
        self.mode = mode
        self.slot_count = max(1, int(slot_count))
        self.threshold_deg = max(0.0, float(threshold_deg))
        self.min_intensity = float(min_intensity)
        self.detection_radius_px = max(0.0, float(detection_radius_px))
        self.grace_ms = max(0.0, float(grace_ms))
        self.center = center
        self.now_radius = float(now_radius)
        self._active: ActiveCollisionSet = EMPTY_ACTIVE
        self._proximity = ProximityState()
        self._grace_handle: Optional[TimerHandle] = None
        self._disposed = False

    @property
    def active(self) -> ActiveCollisionSet:
        return self._active

    @property
    def last_played(self) -> Optional[str]:
        return self._proximity.last_played

    def tip(self, now_angle: float) -> Point:
        return polar_to_cartesian(self.center, self.now_radius, now_angle)

    def scan(
        self,
        glyphs: Iterable[Glyph],
        now_angle: float,
        now_ms: Optional[float] = None,
    ) -> Tuple[CollisionEvent, ...]:
        if self._disposed:
            return ()
        timestamp = self._scheduler.now_ms() if now_ms is None else float(now_ms)
        if self.mode == "slots":
            result = scan_slots(
                self._active,
                glyphs,
                now_angle,
                slot_count=self.slot_count,
                threshold_deg=self.threshold_deg,
                min_intensity=self.min_intensity,
                timestamp_ms=timestamp,
                center=self.center,
            )
            self._active = result.active
            events = result.events
        else:
            scan = scan_proximity(
                self._proximity,
                glyphs,
                self.tip(now_angle),
                detection_radius_px=self.detection_radius_px,
                now_angle=now_angle,
                timestamp_ms=timestamp,
                center=self.center,
                ring_radius=self.now_radius,
            )
            self._proximity = scan.state
            self._active = MappingProxyType({glyph_id: True for glyph_id in scan.state.in_range})
            self._update_grace()
            events = scan.events
        if events:
            logger.debug("[Collision] %d new collision(s) at %.2f deg", len(events), now_angle)
        return events

    def _update_grace(self) -> None:
        if self._proximity.in_range:
            self._cancel_grace()
            return
        if self._proximity.last_played is None:
            return
        if self._grace_handle is not None and self._grace_handle.active:
            return
        self._grace_handle = self._scheduler.call_later(self.grace_ms, self._release_last_played)

    def _release_last_played(self) -> None:
        self._grace_handle = None
        if self._disposed or self._proximity.in_range:
            return
        self._proximity = replace(self._proximity, last_played=None)

    def _cancel_grace(self) -> None:
        if self._grace_handle is not None:
            self._grace_handle.cancel()
            self._grace_handle = None

    def reset(self) -> None:
        self._cancel_grace()
        self._active = EMPTY_ACTIVE
        self._proximity = ProximityState()

    def dispose(self) -> None:
        if self._disposed:
            return
        self.reset()
        self._disposed = True
