"""Temporal navigation and collision-resonance engine for a rotating timeline."""

from .collision import CollisionDetector, CollisionEvent, Glyph
from .engine import FrameSnapshot, TimelineEngine
from .ripples import Ripple, RippleEventBus
from .scheduling import ManualScheduler
from .temporal import TimeScale, angle_for
from .transition import ScaleTransitionController, TransitionState

__all__ = [
    "CollisionDetector",
    "CollisionEvent",
    "FrameSnapshot",
    "Glyph",
    "ManualScheduler",
    "Ripple",
    "RippleEventBus",
    "ScaleTransitionController",
    "TimeScale",
    "TimelineEngine",
    "TransitionState",
    "angle_for",
]
