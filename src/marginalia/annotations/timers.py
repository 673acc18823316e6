"""Debounced, cancellable timers keyed by annotation id.

A :class:`DebouncedTimers` built without an explicit scheduler picks one each
time it arms a timer:

1. the running asyncio loop, when called from inside one;
2. a ``QTimer`` single shot, when a ``QApplication`` is alive;
3. otherwise a :class:`DeferredScheduler`, whose overdue callbacks run on the
   next :meth:`DebouncedTimers.run_due` call.
"""

from __future__ import annotations

import asyncio
import heapq
import itertools
import logging
import time
from typing import Any, Callable, Protocol

LOGGER = logging.getLogger(__name__)

QApplication: Any = None
QTimer: Any = None

try:  # pragma: no cover - PySide6 optional in CI
    from PySide6.QtCore import QTimer as _QtTimer
    from PySide6.QtWidgets import QApplication as _QtApplication

    QApplication = _QtApplication
    QTimer = _QtTimer
except ImportError:  # pragma: no cover - runtime fallback
    pass


class TimerHandle(Protocol):
    def cancel(self) -> Any:
        ...


class Scheduler(Protocol):
    """Anything with ``call_later(delay, callback)``; an asyncio loop qualifies."""

    def call_later(self, delay: float, callback: Callable[[], Any]) -> TimerHandle:
        ...


class QtScheduler:
    """``call_later`` on top of single-shot ``QTimer`` objects."""

    def call_later(self, delay: float, callback: Callable[[], Any]) -> _QtHandle:
        timer = QTimer()
        timer.setSingleShot(True)
        handle = _QtHandle(timer)
        timer.timeout.connect(lambda: handle.fire(callback))
        timer.start(max(0, int(delay * 1000)))
        return handle


class _QtHandle:
    __slots__ = ("_timer", "_done")

    def __init__(self, timer: Any) -> None:
        # The handle owns the QTimer; dropping it would destroy the timer.
        self._timer = timer
        self._done = False

    def fire(self, callback: Callable[[], Any]) -> None:
        self._done = True
        callback()

    def cancel(self) -> None:
        if not self._done:
            self._done = True
            self._timer.stop()


class _DeferredHandle:
    __slots__ = ("due", "callback", "cancelled")

    def __init__(self, due: float, callback: Callable[[], Any]) -> None:
        self.due = due
        self.callback = callback
        self.cancelled = False

    def cancel(self) -> None:
        self.cancelled = True


class DeferredScheduler:
    """Deadline queue for code that runs without any event loop.

    Nothing fires on its own; :meth:`run_due` runs every callback whose
    deadline has passed, in deadline order.
    """

    def __init__(self, clock: Callable[[], float] = time.monotonic) -> None:
        self._clock = clock
        self._queue: list[tuple[float, int, _DeferredHandle]] = []
        self._counter = itertools.count()

    def call_later(self, delay: float, callback: Callable[[], Any]) -> _DeferredHandle:
        handle = _DeferredHandle(self._clock() + delay, callback)
        heapq.heappush(self._queue, (handle.due, next(self._counter), handle))
        return handle

    def run_due(self) -> int:
        now = self._clock()
        fired = 0
        while self._queue and self._queue[0][0] <= now:
            _, _, handle = heapq.heappop(self._queue)
            if handle.cancelled:
                continue
            handle.cancelled = True
            handle.callback()
            fired += 1
        return fired


def default_scheduler(fallback: Scheduler) -> Scheduler:
    """Return the scheduler for the current context, ``fallback`` when nothing drives time."""

    try:
        return asyncio.get_running_loop()
    except RuntimeError:
        pass
    if QApplication is not None and QApplication.instance() is not None:
        return QtScheduler()
    return fallback


class DebouncedTimers:
    """One pending callback per key; scheduling again restarts the countdown."""

    def __init__(
        self,
        delay: float,
        scheduler: Scheduler | None = None,
        *,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._delay = max(0.0, float(delay))
        self._scheduler = scheduler
        self._deferred = DeferredScheduler(clock)
        self._handles: dict[str, TimerHandle] = {}

    @property
    def delay(self) -> float:
        return self._delay

    def pending(self) -> set[str]:
        return set(self._handles)

    def is_pending(self, key: str) -> bool:
        return key in self._handles

    def schedule(self, key: str, callback: Callable[[str], Any]) -> None:
        self.cancel(key)
        handle: TimerHandle | None = None

        def _fire() -> None:
            if self._handles.get(key) is handle:
                self._handles.pop(key, None)
            callback(key)

        scheduler = self._scheduler or default_scheduler(self._deferred)
        handle = scheduler.call_later(self._delay, _fire)
        self._handles[key] = handle

    def run_due(self) -> int:
        """Fire deferred timers whose deadline has passed; returns how many ran."""

        fired = self._deferred.run_due()
        if fired:
            LOGGER.debug("DebouncedTimers: fired %d overdue timer(s)", fired)
        return fired

    def cancel(self, key: str) -> bool:
        handle = self._handles.pop(key, None)
        if handle is None:
            return False
        handle.cancel()
        return True

    def cancel_all(self) -> None:
        for key in list(self._handles):
            self.cancel(key)


__all__ = ["DebouncedTimers", "DeferredScheduler", "QtScheduler", "Scheduler", "TimerHandle", "default_scheduler"]
