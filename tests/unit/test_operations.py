"""Test the timer-backed operations against virtual and real time."""

import asyncio

import pytest

from promise_lab.core.enums import DeferredState
from promise_lab.core.errors import OperationFailed, TimerCallbackError
from promise_lab.operations import OperationProbe, Operations


async def _flush(rounds: int = 5) -> None:
    for _ in range(rounds):
        await asyncio.sleep(0)


async def _resolve(deferred):
    return await deferred


# ===========================================================================
# Calling without awaiting
# ===========================================================================

class TestNotAwaited:
    async def test_success_promise_returns_before_timer(self, manual_ops, manual_scheduler):
        deferred = manual_ops.success_promise("#1")

        assert deferred.is_pending
        assert manual_ops.probe.pending is True
        assert manual_ops.probe.resolved is False
        assert manual_ops.probe.events == [
            "#1:success_promise:enter",
            "#1:success_promise:leave",
        ]

        manual_scheduler.advance_ms(999)
        assert manual_ops.probe.pending is True

        manual_scheduler.advance_ms(1)
        assert manual_ops.probe.pending is False
        assert manual_ops.probe.resolved is True
        assert deferred.state is DeferredState.FULFILLED
        assert manual_ops.probe.events[-1] == "#1:finished promise"

    async def test_waiting_function_returns_immediately(self, manual_ops, manual_scheduler):
        deferred = manual_ops.waiting_function("#3")

        assert deferred.is_pending
        assert manual_ops.probe.events == [
            "#3:waiting_function:enter",
            "#3:success_promise:enter",
            "#3:success_promise:leave",
        ]

        manual_scheduler.advance_ms(1000)
        assert await deferred is None
        assert manual_ops.probe.events[-2:] == [
            "#3:finished promise",
            "#3:waiting_function:leave",
        ]

    async def test_timers_interleave_by_expiry(self, manual_scheduler):
        probe = OperationProbe()
        slow = Operations(manual_scheduler, sleep_ms=300, probe=probe)
        fast = Operations(manual_scheduler, sleep_ms=100, probe=probe)

        slow_value = slow.success_promise("slow")
        fast_value = fast.success_promise("fast")
        manual_scheduler.run_all()

        finished = [e for e in probe.events if e.endswith("finished promise")]
        assert finished == ["fast:finished promise", "slow:finished promise"]
        assert await fast_value == "fast"
        assert await slow_value == "slow"


# ===========================================================================
# Awaiting
# ===========================================================================

class TestAwaited:
    async def test_await_resumes_after_timer_with_value(self, manual_ops, manual_scheduler):
        task = asyncio.create_task(_resolve(manual_ops.success_promise("#2")))
        await _flush()
        assert not task.done()

        manual_scheduler.advance_ms(1000)
        assert await task == "#2"

    async def test_await_on_real_timers(self, fast_ops):
        assert await fast_ops.success_promise("#2") == "#2"
        assert fast_ops.probe.resolved is True

    async def test_rejection_reraises_reason(self, manual_ops, manual_scheduler):
        deferred = manual_ops.fail_promise("#4")
        manual_scheduler.advance_ms(1000)

        with pytest.raises(OperationFailed) as excinfo:
            await deferred
        assert excinfo.value is deferred.reason()
        assert excinfo.value.label == "#4"
        assert manual_ops.probe.rejected is True

    async def test_rejection_reaches_catch_handler(self, manual_ops, manual_scheduler):
        recovered = manual_ops.fail_promise("#4").catch(lambda exc: f"caught {exc.label}")
        manual_scheduler.advance_ms(1000)
        assert await recovered == "caught #4"

    async def test_try_except_around_await(self, fast_ops):
        try:
            await fast_ops.fail_promise("#4")
            outcome = "resumed"
        except OperationFailed:
            outcome = "caught"
        assert outcome == "caught"

    async def test_chained_function_resolves_to_second_value(
        self, manual_ops, manual_scheduler
    ):
        deferred = manual_ops.chained_function("#a", "#b")

        manual_scheduler.advance_ms(1000)
        await _flush()
        assert deferred.is_pending
        assert "#a:chained_function:leave" in manual_ops.probe.events

        manual_scheduler.advance_ms(1000)
        assert await deferred == "#b"


# ===========================================================================
# Exception inside a timer callback
# ===========================================================================

class TestLostThrow:
    async def test_throwing_sleep_never_settles(self, manual_ops, manual_scheduler):
        deferred = manual_ops.throwing_sleep("#5")
        handled = []
        deferred.catch(handled.append)

        manual_scheduler.advance_ms(1000)
        await _flush()

        assert deferred.is_pending
        assert handled == []
        assert manual_ops.probe.thrown is True
        assert manual_ops.probe.pending is False
        assert len(manual_scheduler.uncaught) == 1
        assert isinstance(manual_scheduler.uncaught[0], TimerCallbackError)

    async def test_throwing_function_never_resumes(self, manual_ops, manual_scheduler):
        async def guarded():
            try:
                await manual_ops.throwing_function("#5")
            except TimerCallbackError:
                return "caught"
            return "resumed"

        task = asyncio.create_task(guarded())
        await _flush()
        manual_scheduler.advance_ms(1000)
        await _flush()

        assert not task.done()
        assert "#5:throwing_function:leave" not in manual_ops.probe.events

        task.cancel()
        with pytest.raises(asyncio.CancelledError):
            await task

    async def test_bounded_wait_times_out(self, fast_ops, loop_scheduler):
        deferred = fast_ops.throwing_function("#5")

        with pytest.raises(TimeoutError):
            await asyncio.wait_for(_resolve(deferred), 0.1)

        assert deferred.is_pending
        assert len(loop_scheduler.uncaught) == 1


# ===========================================================================
# Drain
# ===========================================================================

class TestDrain:
    async def test_drain_waits_for_all_timers(self, fast_ops):
        fast_ops.success_promise("a")
        fast_ops.throwing_sleep("b")

        assert await fast_ops.drain(500) is True
        assert fast_ops.probe.resolved is True
        assert fast_ops.probe.thrown is True

    async def test_drain_with_nothing_armed(self, fast_ops):
        assert await fast_ops.drain(10) is True

    async def test_drain_timeout(self, loop_scheduler):
        ops = Operations(loop_scheduler, sleep_ms=1000)
        ops.success_promise("slow")
        assert await ops.drain(10) is False

    async def test_drain_after_every_sleep_kind(self, manual_ops, manual_scheduler):
        assert manual_ops.successful_sleep("a").is_pending
        manual_ops.failing_sleep("b").catch(lambda exc: None)
        manual_ops.throwing_sleep("c")
        assert manual_scheduler.pending_count == 3

        manual_scheduler.advance_ms(1000)
        assert manual_scheduler.pending_count == 0
        assert await manual_ops.drain(10) is True
