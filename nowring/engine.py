"""One-tick facade over the transition controller, the detector and the ripple bus.

Within a tick the now angle is resolved first, the glyph snapshot is scanned
against it and every resulting event is published to the ripple bus before
:meth:`TimelineEngine.tick` returns. The returned :class:`FrameSnapshot` only
holds immutable values.
"""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass, field
from datetime import datetime
from types import MappingProxyType
from typing import Callable, Dict, Iterable, Mapping, Optional, Tuple

from .collision import EMPTY_ACTIVE, ActiveCollisionSet, CollisionDetector, CollisionEvent, Glyph, sanitize_glyphs
from .control.config import sanitize_params
from .geometry import GeometrySegment
from .ripples import Ripple, RippleEventBus
from .scheduling import ManualScheduler, Scheduler
from .temporal import TimeScale, angle_for, weeks_spanned
from .transition import ScaleTransitionController, TransitionState

__all__ = ["FrameSnapshot", "TimelineEngine"]

logger = logging.getLogger(__name__)

Clock = Callable[[], datetime]


@dataclass(frozen=True)
class FrameSnapshot:
    instant: Optional[datetime]
    now_angle: float
    transition: TransitionState
    segments: Tuple[GeometrySegment, ...]
    events: Tuple[CollisionEvent, ...]
    ripples: Tuple[Ripple, ...]
    active: ActiveCollisionSet
    ripple_progress: Mapping[str, float] = field(default_factory=lambda: MappingProxyType({}))


class TimelineEngine:
    """Own the stateful components and run them in tick order.

    Without an explicit scheduler the engine owns a :class:`ManualScheduler`
    and advances it on every :meth:`tick`, by ``dt_ms`` when given and by the
    elapsed wall-clock time otherwise.
    """

    def __init__(
        self,
        scheduler: Optional[Scheduler] = None,
        params: Optional[Mapping[str, object]] = None,
        clock: Optional[Clock] = None,
    ) -> None:
        self.scheduler: Scheduler = scheduler if scheduler is not None else ManualScheduler()
        self._owns_scheduler = scheduler is None
        self._last_perf: Optional[float] = None
        self.state: Dict[str, dict] = sanitize_params(params)
        self._clock: Clock = clock if clock is not None else datetime.now
        self._glyphs: Tuple[Glyph, ...] = ()
        self._month_weeks = self._configured_weeks()
        self._auto_weeks = 0
        self._last_active_count = 0
        self._last_angle = 0.0
        self._started = False
        self._disposed = False

        transition = self.state["transition"]
        self.controller = ScaleTransitionController(
            self.scheduler,
            initial_scale=TimeScale.parse(transition["initialScale"]),
            duration_ms=transition["durationMs"],
            tick_interval_ms=transition["tickIntervalMs"],
            center=self._center(),
            radius=self.state["geometry"]["radius"],
            weeks_in_month=self._month_weeks or 4,
            morph_pulse=transition["morphPulse"],
        )
        self.detector = self._build_detector()
        ripple = self.state["ripple"]
        self.bus = RippleEventBus(
            self.scheduler,
            ttl_range_ms=(ripple["ttlMinMs"], ripple["ttlMaxMs"]),
            neighbor_attenuation=ripple["neighborAttenuation"],
            neighbor_min_intensity=ripple["neighborMinIntensity"],
            slot_count=self.state["collision"]["slotCount"],
            max_ripples=ripple["maxRipples"],
        )

    # ------------------------------------------------------------------ helpers
    @property
    def disposed(self) -> bool:
        return self._disposed

    @property
    def glyphs(self) -> Tuple[Glyph, ...]:
        return self._glyphs

    def _center(self) -> Tuple[float, float]:
        geo = self.state["geometry"]
        return geo["centerX"], geo["centerY"]

    def _configured_weeks(self) -> int:
        return int(self.state["geometry"]["weeksInMonth"])

    def _build_detector(self) -> CollisionDetector:
        col = self.state["collision"]
        return CollisionDetector(
            self.scheduler,
            mode=col["mode"],
            slot_count=col["slotCount"],
            threshold_deg=col["detectionRadiusDegrees"],
            min_intensity=col["minIntensity"],
            detection_radius_px=col["detectionRadiusPixels"],
            grace_ms=col["graceWindowMs"],
            center=self._center(),
            now_radius=col["nowRadius"],
        )

    # ------------------------------------------------------------------ params
    def set_params(self, payload: Mapping[str, object]) -> None:
        """Merge ``payload`` into the live table and refresh what depends on it."""

        if not isinstance(payload, Mapping) or self._disposed:
            return
        previous = self.state
        self.state = sanitize_params(payload, base=previous)
        changed = {section for section in self.state if self.state[section] != previous.get(section)}
        if not changed:
            return
        logger.debug("[Engine] parameters changed: %s", ", ".join(sorted(changed)))

        if "transition" in changed:
            transition = self.state["transition"]
            self.controller.duration_ms = max(0.0, float(transition["durationMs"]))
            self.controller.tick_interval_ms = max(1.0, float(transition["tickIntervalMs"]))
            self.controller.morph_pulse = bool(transition["morphPulse"])
        if "geometry" in changed:
            self._month_weeks = self._configured_weeks()
            self._auto_weeks = 0
            self.controller.set_geometry(
                center=self._center(),
                radius=self.state["geometry"]["radius"],
                weeks_in_month=self._month_weeks or 4,
            )
        if changed & {"collision", "geometry"}:
            # a new detector starts with an empty active set
            self.detector.dispose()
            self.detector = self._build_detector()
            self._last_active_count = 0
        if changed & {"ripple", "collision"}:
            ripple = self.state["ripple"]
            self.bus.ttl_range_ms = (float(ripple["ttlMinMs"]), float(ripple["ttlMaxMs"]))
            self.bus.neighbor_attenuation = float(ripple["neighborAttenuation"])
            self.bus.neighbor_min_intensity = float(ripple["neighborMinIntensity"])
            self.bus.max_ripples = int(ripple["maxRipples"])
            self.bus.slot_count = int(self.state["collision"]["slotCount"])

    # ------------------------------------------------------------------ inputs
    def set_glyphs(self, raw: Optional[Iterable[object]]) -> Tuple[Glyph, ...]:
        """Replace the glyph snapshot scanned by the following ticks."""

        self._glyphs = tuple(sanitize_glyphs(raw))
        return self._glyphs

    def add_collision_listener(self, callback: Callable[[CollisionEvent], None]) -> None:
        self.bus.add_collision_hook(callback)

    def add_mood_listener(self, callback: Callable[[str, CollisionEvent], None]) -> None:
        self.bus.add_mood_hook(callback)

    def request_scale(self, target: "TimeScale | str") -> bool:
        if self._disposed:
            return False
        return self.controller.request(target)

    def zoom_in(self) -> bool:
        return False if self._disposed else self.controller.zoom_in()

    def zoom_out(self) -> bool:
        return False if self._disposed else self.controller.zoom_out()

    def handle_key(self, key: str, *, shift: bool = False) -> bool:
        return False if self._disposed else self.controller.handle_key(key, shift=shift)

    # ------------------------------------------------------------------ ticking
    def _sync_month_weeks(self, instant: datetime) -> None:
        if self._month_weeks:
            return
        weeks = weeks_spanned(instant.year, instant.month)
        if weeks != self._auto_weeks:
            self._auto_weeks = weeks
            self.controller.set_geometry(weeks_in_month=weeks)

    def _advance_clock(self, dt_ms: Optional[float]) -> None:
        scheduler = self.scheduler
        if not isinstance(scheduler, ManualScheduler):
            return
        if dt_ms is None:
            if not self._owns_scheduler:
                return
            now = time.perf_counter()
            dt_ms = 0.0 if self._last_perf is None else (now - self._last_perf) * 1000.0
            self._last_perf = now
        if dt_ms > 0.0:
            scheduler.advance(dt_ms)

    def tick(self, instant: Optional[datetime] = None, dt_ms: Optional[float] = None) -> FrameSnapshot:
        """Run one frame: move the clock, resolve the angle, scan, publish, snapshot.

        ``dt_ms`` advances a manual scheduler by that amount first; an owned
        scheduler without ``dt_ms`` follows the wall clock.
        """

        if self._disposed:
            return FrameSnapshot(
                instant=None,
                now_angle=self._last_angle,
                transition=self.controller.state,
                segments=(),
                events=(),
                ripples=(),
                active=EMPTY_ACTIVE,
            )
        self._advance_clock(dt_ms)
        instant = instant if instant is not None else self._clock()
        if not self._started:
            self.controller.tick()
        self._sync_month_weeks(instant)

        now_angle = angle_for(self.controller.state.current_scale, instant)
        self._last_angle = now_angle
        events = self.detector.scan(self._glyphs, now_angle)
        for event in events:
            self.bus.publish(event)

        active = self.detector.active
        if len(active) != self._last_active_count:
            logger.debug("[Engine] %d glyph(s) in collision", len(active))
            self._last_active_count = len(active)
        ripples = self.bus.ripples
        now_ms = self.scheduler.now_ms()
        return FrameSnapshot(
            instant=instant,
            now_angle=now_angle,
            transition=self.controller.state,
            segments=self.controller.geometry(),
            events=events,
            ripples=ripples,
            active=active,
            ripple_progress=MappingProxyType({r.id: r.progress(now_ms) for r in ripples}),
        )

    # ---------------------------------------------------------------- lifecycle
    def start(self) -> None:
        if self._disposed or self._started:
            return
        self._started = True
        self.controller.start()
        logger.debug("[Engine] started")

    def dispose(self) -> None:
        """Cancel every scheduled callback owned by the components."""

        if self._disposed:
            return
        self._disposed = True
        self._started = False
        self.controller.dispose()
        self.detector.dispose()
        self.bus.dispose()
        self._glyphs = ()
        logger.debug("[Engine] disposed")
