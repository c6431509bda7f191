"""Scheduler abstraction used by every stateful component.

Components never sleep and never own hidden global timers: they ask a
:class:`Scheduler` for a cancellable callback and keep the returned handle so
``dispose()`` can cancel it. :class:`ManualScheduler` drives a virtual clock
from the host tick; the Qt-backed implementation lives in
:mod:`nowring.view.host`.
"""

from __future__ import annotations

import heapq
import itertools
from typing import Callable, List, Optional, Protocol, Tuple

__all__ = ["ManualScheduler", "Scheduler", "TimerHandle"]

Callback = Callable[[], None]


class TimerHandle(Protocol):
    @property
    def active(self) -> bool: ...

    def cancel(self) -> None: ...


class Scheduler(Protocol):
    def now_ms(self) -> float: ...

    def call_later(self, delay_ms: float, callback: Callback) -> TimerHandle: ...


class _ManualHandle:
    __slots__ = ("due_ms", "callback", "_active")

    def __init__(self, due_ms: float, callback: Callback) -> None:
        self.due_ms = due_ms
        self.callback: Optional[Callback] = callback
        self._active = True

    @property
    def active(self) -> bool:
        return self._active

    def cancel(self) -> None:
        self._active = False
        self.callback = None

    def _fire(self) -> None:
        callback = self.callback
        self.cancel()
        if callback is not None:
            callback()


class ManualScheduler:
    """Virtual clock advanced explicitly by the host.

    Timers are only checked when :meth:`advance` is called, the way a frame
    loop only notices timers once per frame: a callback due at ``t`` fires
    during the first ``advance`` that reaches ``t``, never before.
    """

    def __init__(self, start_ms: float = 0.0) -> None:
        self._now = float(start_ms)
        self._queue: List[Tuple[float, int, _ManualHandle]] = []
        self._seq = itertools.count()

    def now_ms(self) -> float:
        return self._now

    def call_later(self, delay_ms: float, callback: Callback) -> _ManualHandle:
        handle = _ManualHandle(self._now + max(0.0, float(delay_ms)), callback)
        heapq.heappush(self._queue, (handle.due_ms, next(self._seq), handle))
        return handle

    @property
    def pending(self) -> int:
        return sum(1 for _, _, handle in self._queue if handle.active)

    def advance(self, dt_ms: float) -> int:
        """Move the clock forward and fire every callback now due.

        Callbacks scheduled while firing are honoured in the same call when
        they are already due. Returns the number of callbacks fired.
        """

        self._now += max(0.0, float(dt_ms))
        fired = 0
        while self._queue and self._queue[0][0] <= self._now:
            _, _, handle = heapq.heappop(self._queue)
            if not handle.active:
                continue
            handle._fire()
            fired += 1
        return fired

    def cancel_all(self) -> None:
        for _, _, handle in self._queue:
            handle.cancel()
        self._queue.clear()
