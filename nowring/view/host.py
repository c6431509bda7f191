"""Qt-bound host running the timeline engine on the event loop.

:class:`QtScheduler` implements the scheduler protocol with single-shot
``QTimer`` objects so transition ticks, ripple expiries and grace windows are
delivered by the Qt event loop. :class:`TimelineHost` owns the frame timer and
re-publishes the engine output as Qt signals for a rendering layer.
"""

from __future__ import annotations

import logging
import math
from typing import Callable, Iterable, Mapping, Optional, Set, cast

from PyQt5 import QtCore, QtGui

from ..engine import Clock, FrameSnapshot, TimelineEngine

__all__ = ["QtScheduler", "TimelineHost"]

logger = logging.getLogger(__name__)

_QT_KEY_NAMES = {
    QtCore.Qt.Key_Up: "ArrowUp",
    QtCore.Qt.Key_Down: "ArrowDown",
}


class _QtHandle:
    __slots__ = ("_timer", "_callback", "_owner", "__weakref__")

    def __init__(self, timer: QtCore.QTimer, callback: Callable[[], None], owner: Set["_QtHandle"]) -> None:
        self._timer: Optional[QtCore.QTimer] = timer
        self._callback: Optional[Callable[[], None]] = callback
        self._owner = owner

    @property
    def active(self) -> bool:
        return self._callback is not None

    def cancel(self) -> None:
        timer = self._timer
        self._timer = None
        self._callback = None
        self._owner.discard(self)
        if timer is not None:
            timer.stop()
            timer.deleteLater()

    def _fire(self) -> None:
        callback = self._callback
        self.cancel()
        if callback is not None:
            callback()


class QtScheduler:
    """Scheduler backed by ``QElapsedTimer`` and single-shot ``QTimer`` objects."""

    def __init__(self, parent: Optional[QtCore.QObject] = None) -> None:
        self._parent = parent
        self._clock = QtCore.QElapsedTimer()
        self._clock.start()
        self._handles: Set[_QtHandle] = set()

    def now_ms(self) -> float:
        return self._clock.nsecsElapsed() / 1_000_000.0

    def call_later(self, delay_ms: float, callback: Callable[[], None]) -> _QtHandle:
        timer = QtCore.QTimer(self._parent)
        timer.setSingleShot(True)
        timer.setTimerType(QtCore.Qt.PreciseTimer)
        handle = _QtHandle(timer, callback, self._handles)
        timer.timeout.connect(handle._fire)
        self._handles.add(handle)
        # rounded up so a callback never runs before its due time
        timer.start(max(0, int(math.ceil(delay_ms))))
        return handle

    @property
    def pending(self) -> int:
        return len(self._handles)

    def cancel_all(self) -> None:
        for handle in list(self._handles):
            handle.cancel()


class TimelineHost(QtCore.QObject):
    """Drive :class:`TimelineEngine` from a frame timer and emit its output."""

    frameReady = QtCore.pyqtSignal(object)
    collisionDetected = QtCore.pyqtSignal(object)
    ripplesChanged = QtCore.pyqtSignal(object)
    transitionChanged = QtCore.pyqtSignal(object)

    def __init__(
        self,
        params: Optional[Mapping[str, object]] = None,
        clock: Optional[Clock] = None,
        parent: Optional[QtCore.QObject] = None,
    ) -> None:
        super().__init__(parent)
        self.scheduler = QtScheduler(self)
        self.engine = TimelineEngine(self.scheduler, params, clock)
        self.engine.add_collision_listener(self.collisionDetected.emit)
        self.engine.bus.add_listener(self.ripplesChanged.emit)
        self.engine.controller.add_listener(self.transitionChanged.emit)
        self.last_frame: Optional[FrameSnapshot] = None
        self._timer = QtCore.QTimer(self)
        self._frame_interval_ms = int(self.engine.state["system"]["frameIntervalMs"])
        self._timer.timeout.connect(self._on_frame)
        self._running = False

    # ---------------------------------------------------------------- lifecycle
    @property
    def frame_interval_ms(self) -> int:
        return self._frame_interval_ms

    @property
    def running(self) -> bool:
        return self._running

    def start(self) -> None:
        if self._running or self.engine.disposed:
            return
        self._running = True
        self.engine.start()
        if self._frame_interval_ms > 0:
            self._timer.start(self._frame_interval_ms)
        logger.debug("[Host] frame loop started (%d ms)", self._frame_interval_ms)

    def dispose(self) -> None:
        self._running = False
        self._timer.stop()
        self.engine.dispose()
        self.scheduler.cancel_all()
        logger.debug("[Host] disposed")

    def _on_frame(self) -> None:
        frame = self.engine.tick()
        self.last_frame = frame
        self.frameReady.emit(frame)

    def set_frame_interval(self, interval_ms: int) -> None:
        """Update the refresh interval used by the frame timer (0 stops it)."""

        interval_ms = max(int(interval_ms), 0)
        if interval_ms == self._frame_interval_ms and self._timer.isActive() == (
            interval_ms > 0 and self._running
        ):
            return
        self._frame_interval_ms = interval_ms
        if interval_ms <= 0 or not self._running:
            if self._timer.isActive():
                self._timer.stop()
            return
        if self._timer.isActive():
            self._timer.setInterval(interval_ms)
        else:
            self._timer.start(interval_ms)

    # ------------------------------------------------------------------ inputs
    def set_params(self, payload: Mapping[str, object]) -> None:
        self.engine.set_params(payload)
        self.set_frame_interval(self.engine.state["system"]["frameIntervalMs"])

    def set_glyphs(self, raw: Optional[Iterable[object]]) -> None:
        self.engine.set_glyphs(raw)

    def request_scale(self, target: str) -> bool:
        return self.engine.request_scale(target)

    def handle_key_event(self, event: QtGui.QKeyEvent) -> bool:
        key = _QT_KEY_NAMES.get(event.key()) or event.text()
        shift = bool(event.modifiers() & QtCore.Qt.ShiftModifier)
        return self.engine.handle_key(key, shift=shift)

    def watch(self, widget: QtCore.QObject) -> None:
        """Route the key presses received by ``widget`` to the scale navigation."""

        widget.installEventFilter(self)

    def eventFilter(self, watched: QtCore.QObject, event: QtCore.QEvent) -> bool:
        if event.type() == QtCore.QEvent.KeyPress:
            if self.handle_key_event(cast(QtGui.QKeyEvent, event)):
                return True
        return super().eventFilter(watched, event)
