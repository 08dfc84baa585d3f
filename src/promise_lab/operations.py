"""Demonstration operations built on DeferredValue.

Each sleep schedules a timer and settles (or fails to settle) its
DeferredValue when the timer fires. The ``*_promise`` helpers return the
DeferredValue synchronously; the ``*_function`` helpers are suspendable and
await one of them.

Observations go to an explicit OperationProbe rather than to globals:
flags change only inside timer callbacks, the trace records every step.
"""

from __future__ import annotations

import asyncio
from dataclasses import dataclass, field
from typing import Any, Callable

from promise_lab.core.deferred import DeferredValue, Settle, suspendable
from promise_lab.core.errors import OperationFailed, TimerCallbackError
from promise_lab.core.scheduler import TimerScheduler
from promise_lab.observability.logger import get_logger

logger = get_logger(__name__)


@dataclass
class OperationProbe:
    """What a test may observe about operations it started."""

    pending: bool = True  # no timer has fired yet
    resolved: bool = False
    rejected: bool = False
    thrown: bool = False
    events: list[str] = field(default_factory=list)

    def record(self, label: str, step: str) -> None:
        self.events.append(f"{label}:{step}")


class Operations:
    """Timer-backed operations sharing one scheduler and one probe."""

    def __init__(
        self,
        scheduler: TimerScheduler,
        *,
        sleep_ms: int = 1000,
        probe: OperationProbe | None = None,
    ) -> None:
        self.scheduler = scheduler
        self.sleep_ms = sleep_ms
        self.probe = probe or OperationProbe()
        self._outstanding = 0
        self._idle = asyncio.Event()
        self._idle.set()

    def trace(self, label: str, step: str) -> None:
        self.probe.record(label, step)
        logger.info("operation.step", label=label, step=step)

    # ------------------------------------------------------------------
    # Timers
    # ------------------------------------------------------------------

    def _arm(self, callback: Callable[..., Any], *args: Any) -> None:
        # Handles are never exposed, so every armed timer fires exactly once.
        self._outstanding += 1
        self._idle.clear()
        self.scheduler.schedule_after(self.sleep_ms, self._fire, callback, args)

    def _fire(self, callback: Callable[..., Any], args: tuple[Any, ...]) -> None:
        self.probe.pending = False
        try:
            callback(*args)
        finally:
            self._outstanding -= 1
            if self._outstanding == 0:
                self._idle.set()

    async def drain(self, timeout_ms: int) -> bool:
        """Wait until every armed timer has fired. False on timeout."""
        try:
            await asyncio.wait_for(self._idle.wait(), timeout_ms / 1000)
        except TimeoutError:
            return False
        return True

    def _finish_success(self, resolve: Settle, label: str) -> None:
        self.trace(label, "finished promise")
        self.probe.resolved = True
        resolve(label)

    def _finish_failure(self, reject: Settle, label: str) -> None:
        self.trace(label, "finished promise")
        self.probe.rejected = True
        reject(OperationFailed(label))

    def _throw(self, label: str) -> None:
        self.probe.thrown = True
        raise TimerCallbackError(label)

    # ------------------------------------------------------------------
    # Sleeps
    # ------------------------------------------------------------------

    def successful_sleep(self, label: str) -> DeferredValue[str]:
        """Fulfills with ``label`` once the timer fires."""
        return DeferredValue.create(
            lambda resolve, reject: self._arm(self._finish_success, resolve, label)
        )

    def failing_sleep(self, label: str) -> DeferredValue[str]:
        """Rejects with ``OperationFailed(label)`` once the timer fires."""
        return DeferredValue.create(
            lambda resolve, reject: self._arm(self._finish_failure, reject, label)
        )

    def throwing_sleep(self, label: str) -> DeferredValue[str]:
        """Raises inside the timer callback; never settles."""
        return DeferredValue.create(
            lambda resolve, reject: self._arm(self._throw, label)
        )

    # ------------------------------------------------------------------
    # Operations
    # ------------------------------------------------------------------

    def success_promise(self, label: str) -> DeferredValue[str]:
        self.trace(label, "success_promise:enter")
        deferred = self.successful_sleep(label)
        self.trace(label, "success_promise:leave")
        return deferred

    def fail_promise(self, label: str) -> DeferredValue[str]:
        self.trace(label, "fail_promise:enter")
        deferred = self.failing_sleep(label)
        self.trace(label, "fail_promise:leave")
        return deferred

    @suspendable
    async def waiting_function(self, label: str) -> None:
        self.trace(label, "waiting_function:enter")
        await self.success_promise(label)
        self.trace(label, "waiting_function:leave")

    @suspendable
    async def throwing_function(self, label: str) -> None:
        self.trace(label, "throwing_function:enter")
        await self.throwing_sleep(label)
        self.trace(label, "throwing_function:leave")

    @suspendable
    async def chained_function(self, label: str, next_label: str) -> DeferredValue[str]:
        """Await one operation, hand back another one's DeferredValue."""
        self.trace(label, "chained_function:enter")
        await self.success_promise(label)
        self.trace(label, "chained_function:leave")
        return self.success_promise(next_label)
