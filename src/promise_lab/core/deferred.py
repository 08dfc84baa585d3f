"""Deferred values: the eventual outcome of work that finishes later.

DeferredValue: settles exactly once, to a value or to a rejection reason
suspendable: decorator making any function return a DeferredValue

Settlement never runs consumers synchronously. Handlers and awaiting
coroutines are resumed through ``loop.call_soon`` on the loop the value
belongs to, so code after ``settle_success()`` always finishes first.

Exceptions raised from timer callbacks are outside this module's reach:
they never settle anything and the value stays pending forever.
"""

from __future__ import annotations

import asyncio
import functools
import inspect
import logging
from typing import Any, Callable, Generator, Generic, TypeVar

from .enums import DeferredState
from .errors import DeferredRejection, InvalidStateError

logger = logging.getLogger(__name__)

T = TypeVar("T")

Settle = Callable[[Any], None]
Executor = Callable[[Settle, Settle], Any]


def is_deferred(obj: Any) -> bool:
    """True when ``obj`` is already a DeferredValue and must not be wrapped."""
    return isinstance(obj, DeferredValue)


def _running_loop() -> asyncio.AbstractEventLoop | None:
    try:
        return asyncio.get_running_loop()
    except RuntimeError:
        return None


def _wake(waiter: asyncio.Future, _source: DeferredValue) -> None:
    # The awaiting task may have been cancelled in the meantime.
    if not waiter.done():
        waiter.set_result(None)


class DeferredValue(Generic[T]):
    """Container for an eventual value or failure reason.

    The creator settles it through ``settle_success`` / ``settle_failure``;
    everyone else reads it with ``await``, ``then`` and ``catch``.
    """

    def __init__(self, *, loop: asyncio.AbstractEventLoop | None = None) -> None:
        self._state = DeferredState.PENDING
        self._value: Any = None
        self._reason: BaseException | None = None
        self._reason_tb: Any = None
        self._callbacks: list[Callable[[DeferredValue[T]], None]] = []
        self._loop = loop
        self._adopting = False
        # Strong reference to the task driving a suspendable body.
        self._task: asyncio.Task | None = None

    # ------------------------------------------------------------------
    # Construction
    # ------------------------------------------------------------------

    @classmethod
    def create(
        cls,
        executor: Executor,
        *,
        loop: asyncio.AbstractEventLoop | None = None,
    ) -> DeferredValue[Any]:
        """Run ``executor(settle_success, settle_failure)`` and return the value.

        The executor runs synchronously. Anything it schedules is scheduled
        before ``create`` returns; settlement happens whenever the executor
        (or something it scheduled) calls one of the two callbacks. An
        exception escaping the executor rejects the value.
        """
        deferred = cls(loop=loop)
        try:
            executor(deferred.settle_success, deferred.settle_failure)
        except Exception as exc:
            deferred.settle_failure(exc)
        return deferred

    @classmethod
    def resolved(cls, value: Any = None) -> DeferredValue[Any]:
        """Fulfilled value; a DeferredValue argument is returned as-is."""
        if is_deferred(value):
            return value
        deferred = cls()
        deferred.settle_success(value)
        return deferred

    @classmethod
    def rejected(cls, reason: Any) -> DeferredValue[Any]:
        deferred = cls()
        deferred.settle_failure(reason)
        return deferred

    @classmethod
    def from_coroutine(cls, coro: Any) -> DeferredValue[Any]:
        """Drive ``coro`` eagerly and mirror its outcome.

        The coroutine runs synchronously up to its first real suspension
        point. Needs a running event loop.
        """
        loop = asyncio.get_running_loop()
        deferred = cls(loop=loop)
        task = asyncio.Task(coro, loop=loop, eager_start=True)
        if task.done():
            deferred._settle_from_task(task)
        else:
            deferred._task = task
            task.add_done_callback(deferred._settle_from_task)
        return deferred

    # ------------------------------------------------------------------
    # Settlement (owned by the creator)
    # ------------------------------------------------------------------

    def settle_success(self, value: Any = None) -> None:
        """Fulfill with ``value``. No-op once settled.

        Settling with another DeferredValue adopts its eventual outcome.
        """
        if not self._accepts_settlement():
            return
        if is_deferred(value):
            if value is self:
                self._settle(
                    DeferredState.REJECTED,
                    reason=TypeError("DeferredValue cannot be resolved with itself"),
                )
                return
            self._adopting = True
            value._subscribe(self._adopt)
            return
        self._settle(DeferredState.FULFILLED, value=value)

    def settle_failure(self, reason: Any) -> None:
        """Reject with ``reason``. No-op once settled."""
        if not self._accepts_settlement():
            return
        if not isinstance(reason, BaseException):
            reason = DeferredRejection(reason)
        self._settle(DeferredState.REJECTED, reason=reason)

    def _accepts_settlement(self) -> bool:
        if self._state is DeferredState.PENDING and not self._adopting:
            return True
        logger.debug("Ignoring settlement of already settled %r", self)
        return False

    def _adopt(self, source: DeferredValue[Any]) -> None:
        self._settle(source._state, value=source._value, reason=source._reason)

    def _settle_from_task(self, task: asyncio.Task) -> None:
        self._task = None
        if task.cancelled():
            self.settle_failure(asyncio.CancelledError())
            return
        exc = task.exception()
        if exc is not None:
            self.settle_failure(exc)
        else:
            self.settle_success(task.result())

    def _settle(
        self,
        state: DeferredState,
        value: Any = None,
        reason: BaseException | None = None,
    ) -> None:
        self._state = state
        self._value = value
        self._reason = reason
        # Traceback as of settlement; every re-raise starts from it.
        self._reason_tb = reason.__traceback__ if reason is not None else None
        callbacks, self._callbacks = self._callbacks, []
        for callback in callbacks:
            self._call_soon(callback)

    # ------------------------------------------------------------------
    # Consumption
    # ------------------------------------------------------------------

    @property
    def state(self) -> DeferredState:
        return self._state

    @property
    def is_pending(self) -> bool:
        return self._state is DeferredState.PENDING

    @property
    def is_settled(self) -> bool:
        return self._state is not DeferredState.PENDING

    def result(self) -> T:
        """Fulfilled value, or the rejection reason raised."""
        if self._state is DeferredState.FULFILLED:
            return self._value
        if self._state is DeferredState.REJECTED:
            raise self._reason.with_traceback(self._reason_tb)
        raise InvalidStateError("DeferredValue is still pending")

    def reason(self) -> BaseException:
        if self._state is not DeferredState.REJECTED:
            raise InvalidStateError(
                f"DeferredValue has no rejection reason (state={self._state.value})"
            )
        return self._reason

    def then(
        self,
        on_fulfilled: Callable[[Any], Any] | None = None,
        on_rejected: Callable[[BaseException], Any] | None = None,
    ) -> DeferredValue[Any]:
        """Attach handlers; returns a DeferredValue for the handler's outcome.

        A missing handler passes the outcome through unchanged. A handler
        that raises rejects the returned value.
        """
        derived: DeferredValue[Any] = DeferredValue(loop=self._loop)

        def _handle(source: DeferredValue[Any]) -> None:
            if source._state is DeferredState.FULFILLED:
                if on_fulfilled is None:
                    derived.settle_success(source._value)
                    return
                handler, arg = on_fulfilled, source._value
            else:
                if on_rejected is None:
                    derived.settle_failure(source._reason)
                    return
                handler, arg = on_rejected, source._reason
            try:
                outcome = handler(arg)
            except Exception as exc:
                derived.settle_failure(exc)
            else:
                derived.settle_success(outcome)

        self._subscribe(_handle)
        return derived

    def catch(self, on_rejected: Callable[[BaseException], Any]) -> DeferredValue[Any]:
        return self.then(None, on_rejected)

    def __await__(self) -> Generator[Any, None, T]:
        if self._state is DeferredState.PENDING:
            waiter = asyncio.get_running_loop().create_future()
            wake = functools.partial(_wake, waiter)
            self._subscribe(wake)
            try:
                yield from waiter.__await__()
            finally:
                # A cancelled awaiter leaves no callback behind.
                if self._state is DeferredState.PENDING:
                    self._unsubscribe(wake)
        return self.result()

    def _subscribe(self, callback: Callable[[DeferredValue[T]], None]) -> None:
        if self._state is DeferredState.PENDING:
            self._callbacks.append(callback)
        else:
            self._call_soon(callback)

    def _unsubscribe(self, callback: Callable[[DeferredValue[T]], None]) -> None:
        try:
            self._callbacks.remove(callback)
        except ValueError:
            pass

    def _call_soon(self, callback: Callable[[DeferredValue[T]], None]) -> None:
        loop = self._loop or _running_loop()
        if loop is None:
            # Settled outside any loop: nobody can be suspended on us.
            callback(self)
        else:
            loop.call_soon(callback, self)

    def __repr__(self) -> str:
        if self._state is DeferredState.FULFILLED:
            return f"<DeferredValue fulfilled value={self._value!r}>"
        if self._state is DeferredState.REJECTED:
            return f"<DeferredValue rejected reason={self._reason!r}>"
        return "<DeferredValue pending>"


def suspendable(fn: Callable[..., Any]) -> Callable[..., DeferredValue[Any]]:
    """Make ``fn`` always return a DeferredValue.

    - a plain return value fulfills it (``None`` for an empty body)
    - a returned DeferredValue is passed through, never nested
    - an exception raised before any suspension rejects it instead of
      reaching the caller
    - ``async def`` bodies start eagerly and run up to their first ``await``
      that actually suspends
    """

    @functools.wraps(fn)
    def wrapper(*args: Any, **kwargs: Any) -> DeferredValue[Any]:
        try:
            result = fn(*args, **kwargs)
        except Exception as exc:
            return DeferredValue.rejected(exc)
        if inspect.iscoroutine(result):
            return DeferredValue.from_coroutine(result)
        return DeferredValue.resolved(result)

    return wrapper
