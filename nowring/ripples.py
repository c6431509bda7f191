"""Short-lived ripples spawned by collisions.

Each :class:`~nowring.collision.CollisionEvent` produces a primary ripple and,
on the neighbouring slot lines, attenuated secondary ripples. Every ripple is
scheduled for exactly one retirement; the bus is the only writer of the live
list and hands out tuples.
"""

from __future__ import annotations

import itertools
import logging
from dataclasses import dataclass
from typing import Callable, Dict, List, Optional, Sequence, Tuple

from .angle_utils import clamp01
from .collision import CollisionEvent
from .scheduling import Scheduler, TimerHandle

__all__ = ["Ripple", "RippleEventBus", "ripple_ttl_ms"]

logger = logging.getLogger(__name__)

# (base seconds, seconds per unit of intensity) of each signature ripple.
_SIGNATURE_DURATIONS: Dict[str, Tuple[float, float]] = {
    "sleep": (4.0, 2.0),  # low, slow hum
    "mood": (3.0, 1.5),
    "weather": (1.5, 0.8),  # crystalline crackle
    "mobility": (2.0, 1.2),
    "plans": (2.0, 1.2),
}
_DEFAULT_DURATION = (2.0, 0.0)
_SHORTEST_S = 1.5
_LONGEST_S = 6.0


def ripple_ttl_ms(
    category: str,
    intensity: float,
    ttl_range: Sequence[float] = (1000.0, 2500.0),
) -> float:
    """Lifetime of a ripple, longer for slow categories and high intensity.

    The signature durations (1.5 s for a faint weather crackle up to 6 s for
    a full-intensity sleep hum) are mapped linearly onto ``ttl_range``.
    """

    low, high = sorted((float(ttl_range[0]), float(ttl_range[1])))
    base, gain = _SIGNATURE_DURATIONS.get(str(category).lower(), _DEFAULT_DURATION)
    seconds = base + gain * clamp01(float(intensity))
    t = clamp01((seconds - _SHORTEST_S) / (_LONGEST_S - _SHORTEST_S))
    return low + t * (high - low)


@dataclass(frozen=True)
class Ripple:
    id: str
    origin_glyph_id: str
    category: str
    intensity: float
    created_at_ms: float
    ttl_ms: float
    slot_index: int
    angle: float
    primary: bool = True
    label: Optional[str] = None

    @property
    def expires_at_ms(self) -> float:
        return self.created_at_ms + self.ttl_ms

    def progress(self, now_ms: float) -> float:
        if self.ttl_ms <= 0.0:
            return 1.0
        return clamp01((now_ms - self.created_at_ms) / self.ttl_ms)


RippleListener = Callable[[Tuple[Ripple, ...]], None]
RetireListener = Callable[[Ripple], None]
CollisionHook = Callable[[CollisionEvent], None]
MoodHook = Callable[[str, CollisionEvent], None]


class RippleEventBus:
    """Turn collision events into ripples and retire each of them once."""

    def __init__(
        self,
        scheduler: Scheduler,
        *,
        ttl_range_ms: Sequence[float] = (1000.0, 2500.0),
        neighbor_attenuation: float = 0.3,
        neighbor_min_intensity: float = 0.05,
        slot_count: int = 24,
        max_ripples: int = 512,
    ) -> None:
        self._scheduler = scheduler
        self.ttl_range_ms: Tuple[float, float] = (float(ttl_range_ms[0]), float(ttl_range_ms[1]))
        self.neighbor_attenuation = clamp01(float(neighbor_attenuation))
        self.neighbor_min_intensity = max(0.0, float(neighbor_min_intensity))
        self.slot_count = max(1, int(slot_count))
        self.max_ripples = max(1, int(max_ripples))
        self._ripples: Dict[str, Ripple] = {}
        self._timers: Dict[str, TimerHandle] = {}
        self._counter = itertools.count(1)
        self._listeners: List[RippleListener] = []
        self._retire_listeners: List[RetireListener] = []
        self._collision_hooks: List[CollisionHook] = []
        self._mood_hooks: List[MoodHook] = []
        self._disposed = False

    # ------------------------------------------------------------------ access
    @property
    def ripples(self) -> Tuple[Ripple, ...]:
        return tuple(self._ripples.values())

    @property
    def pending_timers(self) -> int:
        return sum(1 for handle in self._timers.values() if handle.active)

    def add_listener(self, callback: RippleListener) -> None:
        self._listeners.append(callback)

    def add_retire_listener(self, callback: RetireListener) -> None:
        self._retire_listeners.append(callback)

    def add_collision_hook(self, callback: CollisionHook) -> None:
        self._collision_hooks.append(callback)

    def add_mood_hook(self, callback: MoodHook) -> None:
        self._mood_hooks.append(callback)

    # ---------------------------------------------------------------- publish
    def publish(self, event: CollisionEvent) -> Tuple[Ripple, ...]:
        """Spawn the ripples of ``event`` and notify hooks and listeners."""

        if self._disposed:
            return ()
        now = self._scheduler.now_ms()
        created = [
            self._spawn(event, event.intensity, event.slot_index, event.line_angle, primary=True, now_ms=now)
        ]
        step = 360.0 / self.slot_count
        # proximity hits have no slot lines, hence no neighbours
        offsets = (-1, 1) if event.mode == "slots" else ()
        for offset in offsets:
            neighbor = event.slot_index + offset
            if not 0 <= neighbor < self.slot_count:
                continue
            intensity = event.intensity * self.neighbor_attenuation
            if intensity <= self.neighbor_min_intensity:
                continue
            angle = event.now_angle + neighbor * step
            created.append(self._spawn(event, intensity, neighbor, angle, primary=False, now_ms=now))
        self._enforce_cap()
        self._run_hooks(event)
        self._notify()
        return tuple(ripple for ripple in created if ripple.id in self._ripples)

    def _spawn(
        self,
        event: CollisionEvent,
        intensity: float,
        slot_index: int,
        angle: float,
        *,
        primary: bool,
        now_ms: float,
    ) -> Ripple:
        ripple = Ripple(
            id=f"ripple-{event.glyph_id}-{next(self._counter)}",
            origin_glyph_id=event.glyph_id,
            category=event.category,
            intensity=intensity,
            created_at_ms=now_ms,
            ttl_ms=ripple_ttl_ms(event.category, intensity, self.ttl_range_ms),
            slot_index=slot_index,
            angle=angle,
            primary=primary,
            label=event.label,
        )
        self._ripples[ripple.id] = ripple
        self._timers[ripple.id] = self._scheduler.call_later(
            ripple.ttl_ms, lambda ripple_id=ripple.id: self._expire(ripple_id)
        )
        return ripple

    def _enforce_cap(self) -> None:
        # soft memory limit: the oldest ripples go first
        overflow = len(self._ripples) - self.max_ripples
        if overflow <= 0:
            return
        for ripple_id in list(self._ripples)[:overflow]:
            self._retire(ripple_id)
        logger.debug("[Ripples] cap of %d reached, retired %d early", self.max_ripples, overflow)

    def _run_hooks(self, event: CollisionEvent) -> None:
        for hook in list(self._collision_hooks):
            try:
                hook(event)
            except Exception:
                logger.exception("[Ripples] collision hook failed")
        if event.category == "mood" and event.label:
            for mood_hook in list(self._mood_hooks):
                try:
                    mood_hook(event.label, event)
                except Exception:
                    logger.exception("[Ripples] mood hook failed")

    def _notify(self) -> None:
        snapshot = self.ripples
        for callback in list(self._listeners):
            try:
                callback(snapshot)
            except Exception:
                logger.exception("[Ripples] listener failed")

    # ---------------------------------------------------------------- retire
    def _expire(self, ripple_id: str) -> None:
        self._timers.pop(ripple_id, None)
        if self._disposed:
            return
        if self._retire(ripple_id):
            self._notify()

    def _retire(self, ripple_id: str) -> bool:
        handle = self._timers.pop(ripple_id, None)
        if handle is not None:
            handle.cancel()
        ripple = self._ripples.pop(ripple_id, None)
        if ripple is None:
            return False
        for callback in list(self._retire_listeners):
            try:
                callback(ripple)
            except Exception:
                logger.exception("[Ripples] retire listener failed")
        return True

    def clear(self) -> None:
        """Retire every live ripple now."""

        for ripple_id in list(self._ripples):
            self._retire(ripple_id)
        self._notify()

    def dispose(self) -> None:
        """Cancel every pending retirement; nothing fires afterwards."""

        if self._disposed:
            return
        self._disposed = True
        for handle in self._timers.values():
            handle.cancel()
        self._timers.clear()
        self._ripples.clear()
        self._listeners.clear()
        self._retire_listeners.clear()
        self._collision_hooks.clear()
        self._mood_hooks.clear()
        logger.debug("[Ripples] disposed")
