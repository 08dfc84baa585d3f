"""Timer scheduling for deferred operations.

LoopScheduler: real timers on the running asyncio loop
ManualScheduler: virtual time, advanced explicitly (deterministic tests)

Operations never touch loop timers directly; they call
``scheduler.schedule_after()``. An exception escaping a timer callback is
logged and kept in ``scheduler.uncaught``; no deferred value ever sees it.
"""

from __future__ import annotations

import asyncio
import heapq
import itertools
import logging
from typing import Any, Callable, Protocol

logger = logging.getLogger(__name__)


class TimerHandle(Protocol):
    """Handle returned for every scheduled callback."""

    def cancel(self) -> None:
        ...

    def cancelled(self) -> bool:
        ...


class TimerScheduler(Protocol):
    """Timer interface used by all time-dependent operations."""

    uncaught: list[Exception]

    def schedule_after(
        self, duration_ms: int, callback: Callable[..., Any], *args: Any
    ) -> TimerHandle:
        """Run ``callback(*args)`` once, ``duration_ms`` from now."""
        ...

    def now_ms(self) -> int:
        ...


def _invoke(
    callback: Callable[..., Any], args: tuple[Any, ...], uncaught: list[Exception]
) -> None:
    try:
        callback(*args)
    except Exception as exc:
        uncaught.append(exc)
        logger.exception(
            "Timer callback %s raised; the exception is lost",
            getattr(callback, "__qualname__", repr(callback)),
        )


def _check_duration(duration_ms: int) -> None:
    if duration_ms < 0:
        raise ValueError(f"Timer duration must be >= 0 ms, got {duration_ms}")


class LoopScheduler:
    """Timers backed by ``loop.call_later``. Used outside of unit tests."""

    def __init__(self, loop: asyncio.AbstractEventLoop | None = None) -> None:
        self._loop = loop
        self.uncaught: list[Exception] = []

    @property
    def loop(self) -> asyncio.AbstractEventLoop:
        return self._loop or asyncio.get_running_loop()

    def schedule_after(
        self, duration_ms: int, callback: Callable[..., Any], *args: Any
    ) -> asyncio.TimerHandle:
        _check_duration(duration_ms)
        return self.loop.call_later(
            duration_ms / 1000, _invoke, callback, args, self.uncaught
        )

    def now_ms(self) -> int:
        return int(self.loop.time() * 1000)


class ManualTimer:
    """Handle for a timer registered on a ManualScheduler."""

    __slots__ = ("when_ms", "callback", "args", "_cancelled")

    def __init__(self, when_ms: int, callback: Callable[..., Any], args: tuple[Any, ...]) -> None:
        self.when_ms = when_ms
        self.callback = callback
        self.args = args
        self._cancelled = False

    def cancel(self) -> None:
        self._cancelled = True

    def cancelled(self) -> bool:
        return self._cancelled


class ManualScheduler:
    """Simulated timers for deterministic tests.

    Time advances only when explicitly moved by the test. Due timers fire
    in expiry order; timers due at the same instant fire in registration
    order.
    """

    def __init__(self, start_ms: int = 0) -> None:
        self._now = start_ms
        self._queue: list[tuple[int, int, ManualTimer]] = []
        self._seq = itertools.count()
        self.uncaught: list[Exception] = []

    def now_ms(self) -> int:
        return self._now

    @property
    def pending_count(self) -> int:
        return sum(1 for _, _, timer in self._queue if not timer.cancelled())

    def schedule_after(
        self, duration_ms: int, callback: Callable[..., Any], *args: Any
    ) -> ManualTimer:
        _check_duration(duration_ms)
        timer = ManualTimer(self._now + duration_ms, callback, args)
        heapq.heappush(self._queue, (timer.when_ms, next(self._seq), timer))
        return timer

    def advance_ms(self, ms: int) -> int:
        """Move time forward, firing every timer that falls due.

        Returns the number of callbacks fired.
        """
        if ms < 0:
            raise ValueError(f"ManualScheduler cannot go backwards: {ms} ms")
        target = self._now + ms
        fired = 0
        while self._queue and self._queue[0][0] <= target:
            when_ms, _, timer = heapq.heappop(self._queue)
            if timer.cancelled():
                continue
            self._now = when_ms
            _invoke(timer.callback, timer.args, self.uncaught)
            fired += 1
        self._now = target
        return fired

    def run_all(self) -> int:
        """Fire everything outstanding, including timers added meanwhile."""
        fired = 0
        while self._queue:
            fired += self.advance_ms(self._queue[0][0] - self._now)
        return fired
