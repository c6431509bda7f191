"""State machine driving the animated change between two time scales.

``idle -> active -> idle``: a request is accepted only while idle, the
progress is eased by a three-phase golden-ratio curve (scale, morph, settle)
and the new scale is committed once the raw progress reaches 1. Requests that
arrive during a transition are discarded, never queued.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, replace
from enum import Enum
from typing import Callable, Dict, List, Optional, Tuple

from .angle_utils import clamp01
from .geometry import PHI, DEFAULT_CENTER, DEFAULT_RADIUS, GeometrySegment, apply_morph_pulse, interpolate, layout_for
from .scheduling import Scheduler, TimerHandle
from .temporal import SCALE_ORDER, TimeScale

__all__ = [
    "ScaleTransitionController",
    "TransitionPhase",
    "TransitionState",
    "golden_ease",
]

logger = logging.getLogger(__name__)

StateListener = Callable[["TransitionState"], None]


class TransitionPhase(Enum):
    IDLE = "idle"
    ACTIVE = "active"


@dataclass(frozen=True)
class TransitionState:
    current_scale: TimeScale
    target_scale: TimeScale
    phase: TransitionPhase = TransitionPhase.IDLE
    progress: float = 0.0
    started_at_ms: Optional[float] = None

    @property
    def is_transitioning(self) -> bool:
        return self.phase is TransitionPhase.ACTIVE


def golden_ease(raw: float) -> float:
    """Map raw progress onto the scale/morph/settle curve.

    The three phases cover ``[0, 0.3)``, ``[0.3, 0.7)`` and ``[0.7, 1]`` of
    both input and output, so the curve is continuous and non-decreasing.
    """

    p = clamp01(raw)
    if p < 0.3:
        return 0.3 * (p / 0.3) ** (1.0 / PHI)
    if p < 0.7:
        return 0.3 + (p - 0.3) / 0.4 * 0.4
    return 0.7 + ((p - 0.7) / 0.3) ** PHI * 0.3


_KEY_TARGETS: Dict[str, TimeScale] = {
    "d": TimeScale.DAY,
    "w": TimeScale.WEEK,
    "m": TimeScale.MONTH,
    "y": TimeScale.YEAR,
}


class ScaleTransitionController:
    """Own the :class:`TransitionState` and the timer that advances it."""

    def __init__(
        self,
        scheduler: Scheduler,
        *,
        initial_scale: TimeScale = TimeScale.DAY,
        duration_ms: float = 1500.0,
        tick_interval_ms: float = 16.0,
        center: Tuple[float, float] = DEFAULT_CENTER,
        radius: float = DEFAULT_RADIUS,
        weeks_in_month: int = 4,
        morph_pulse: bool = True,
    ) -> None:
        self._scheduler = scheduler
        scale = TimeScale.parse(initial_scale)
        self._state = TransitionState(scale, scale)
        self.duration_ms = max(0.0, float(duration_ms))
        self.tick_interval_ms = max(1.0, float(tick_interval_ms))
        self.morph_pulse = bool(morph_pulse)
        self._center = center
        self._radius = radius
        self._weeks_in_month = weeks_in_month
        self._layouts: Dict[TimeScale, Tuple[GeometrySegment, ...]] = {}
        self._listeners: List[StateListener] = []
        self._tick_handle: Optional[TimerHandle] = None
        self._started = False
        self._disposed = False

    # ------------------------------------------------------------------ state
    @property
    def state(self) -> TransitionState:
        return self._state

    @property
    def is_transitioning(self) -> bool:
        return self._state.is_transitioning

    @property
    def disposed(self) -> bool:
        return self._disposed

    def add_listener(self, callback: StateListener) -> None:
        self._listeners.append(callback)

    def _publish(self) -> None:
        state = self._state
        for callback in list(self._listeners):
            try:
                callback(state)
            except Exception:
                logger.exception("[Transition] listener failed")

    # -------------------------------------------------------------- lifecycle
    def start(self) -> None:
        if self._disposed or self._started:
            return
        self._started = True
        if self._state.is_transitioning:
            self._schedule_tick()

    def dispose(self) -> None:
        if self._disposed:
            return
        self._disposed = True
        self._started = False
        self._cancel_tick()
        self._listeners.clear()
        logger.debug("[Transition] disposed")

    def _schedule_tick(self) -> None:
        if self._tick_handle is not None and self._tick_handle.active:
            return
        self._tick_handle = self._scheduler.call_later(self.tick_interval_ms, self._on_timer)

    def _cancel_tick(self) -> None:
        if self._tick_handle is not None:
            self._tick_handle.cancel()
            self._tick_handle = None

    def _on_timer(self) -> None:
        self._tick_handle = None
        if self._disposed:
            return
        self.tick()
        if self._started and self._state.is_transitioning:
            self._schedule_tick()

    # ------------------------------------------------------------- transitions
    def request(self, target: "TimeScale | str") -> bool:
        """Start a transition towards ``target``; ``False`` when rejected."""

        scale = TimeScale.parse(target)
        if self._disposed:
            logger.debug("[Transition] request for %s ignored: controller disposed", scale.value)
            return False
        state = self._state
        if state.is_transitioning:
            logger.debug(
                "[Transition] request for %s rejected: %s -> %s in progress",
                scale.value,
                state.current_scale.value,
                state.target_scale.value,
            )
            return False
        if scale is state.current_scale:
            return False
        self._state = TransitionState(
            current_scale=state.current_scale,
            target_scale=scale,
            phase=TransitionPhase.ACTIVE,
            progress=0.0,
            started_at_ms=self._scheduler.now_ms(),
        )
        logger.debug("[Transition] %s -> %s started", state.current_scale.value, scale.value)
        self._publish()
        if self._started:
            self._schedule_tick()
        return True

    def tick(self, now_ms: Optional[float] = None) -> TransitionState:
        """Advance the active transition to ``now_ms`` (scheduler time by default)."""

        state = self._state
        if self._disposed or not state.is_transitioning:
            return state
        now = self._scheduler.now_ms() if now_ms is None else float(now_ms)
        started = state.started_at_ms if state.started_at_ms is not None else now
        if self.duration_ms <= 0.0:
            raw = 1.0
        else:
            raw = clamp01((now - started) / self.duration_ms)
        eased = 1.0 if raw >= 1.0 else max(state.progress, golden_ease(raw))
        self._state = replace(state, progress=eased)
        self._publish()
        if raw >= 1.0:
            self._commit()
        return self._state

    def _commit(self) -> None:
        target = self._state.target_scale
        self._cancel_tick()
        self._state = TransitionState(target, target)
        logger.debug("[Transition] committed %s", target.value)
        self._publish()

    def cancel(self) -> None:
        """Abandon the active transition and stay on the current scale."""

        state = self._state
        if not state.is_transitioning:
            return
        self._cancel_tick()
        self._state = TransitionState(state.current_scale, state.current_scale)
        logger.debug("[Transition] %s -> %s cancelled", state.current_scale.value, state.target_scale.value)
        self._publish()

    # -------------------------------------------------------------- navigation
    def zoom_in(self) -> bool:
        index = SCALE_ORDER.index(self._state.current_scale)
        if index == 0:
            return False
        return self.request(SCALE_ORDER[index - 1])

    def zoom_out(self) -> bool:
        index = SCALE_ORDER.index(self._state.current_scale)
        if index >= len(SCALE_ORDER) - 1:
            return False
        return self.request(SCALE_ORDER[index + 1])

    def handle_key(self, key: str, *, shift: bool = False) -> bool:
        """Keyboard navigation: ``d w m y``, ``z``/``Z``, ``+``/``-`` and arrows."""

        if not key:
            return False
        if key == "Z" or (key.lower() == "z" and shift):
            return self.zoom_out()
        lowered = key.lower()
        if lowered == "z":
            return self.zoom_in()
        if lowered in _KEY_TARGETS:
            return self.request(_KEY_TARGETS[lowered])
        if lowered in ("+", "arrowup"):
            return self.zoom_in()
        if lowered in ("-", "arrowdown"):
            return self.zoom_out()
        return False

    # ---------------------------------------------------------------- geometry
    def set_geometry(
        self,
        *,
        center: Optional[Tuple[float, float]] = None,
        radius: Optional[float] = None,
        weeks_in_month: Optional[int] = None,
    ) -> None:
        if center is not None:
            self._center = center
        if radius is not None:
            self._radius = radius
        if weeks_in_month is not None:
            self._weeks_in_month = weeks_in_month
        self._layouts.clear()

    def layout(self, scale: TimeScale) -> Tuple[GeometrySegment, ...]:
        cached = self._layouts.get(scale)
        if cached is None:
            cached = layout_for(
                scale,
                center=self._center,
                radius=self._radius,
                weeks_in_month=self._weeks_in_month,
            )
            self._layouts[scale] = cached
        return cached

    def geometry(self) -> Tuple[GeometrySegment, ...]:
        """Current layout, interpolated while a transition is active."""

        state = self._state
        current = self.layout(state.current_scale)
        if not state.is_transitioning:
            return current
        blended = interpolate(current, self.layout(state.target_scale), state.progress)
        if self.morph_pulse:
            blended = apply_morph_pulse(blended, state.progress)
        return blended
