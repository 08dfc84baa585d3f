"""The five async/await demonstrations, runnable one at a time.

Each scenario body gets an Operations instance and its label ("#1".."#5"),
records its own steps in the shared trace, and reports how the calling
continuation ended up: returned early, resumed, caught a rejection, or
never resumed at all.
"""

from __future__ import annotations

import asyncio
from dataclasses import dataclass
from typing import Awaitable, Callable

from pydantic import BaseModel, Field

from promise_lab.core.config import Settings
from promise_lab.core.enums import ScenarioOutcome
from promise_lab.core.errors import OperationError, ScenarioNotFound
from promise_lab.core.scheduler import LoopScheduler
from promise_lab.observability.logger import bind_label, get_logger
from promise_lab.operations import Operations

logger = get_logger(__name__)

ScenarioBody = Callable[[Operations, str, Settings], Awaitable[ScenarioOutcome]]


class ScenarioResult(BaseModel):
    name: str
    label: str
    description: str
    outcome: ScenarioOutcome
    events: list[str] = Field(default_factory=list)
    uncaught: int = 0  # exceptions lost inside timer callbacks


@dataclass(frozen=True)
class Scenario:
    name: str
    description: str
    body: ScenarioBody


# ---------------------------------------------------------------------------
# Bodies
# ---------------------------------------------------------------------------

async def _no_await(ops: Operations, label: str, settings: Settings) -> ScenarioOutcome:
    ops.trace(label, "enter")
    ops.success_promise(label)
    ops.trace(label, "leave")
    return ScenarioOutcome.RETURNED


async def _await(ops: Operations, label: str, settings: Settings) -> ScenarioOutcome:
    ops.trace(label, "enter")
    await ops.success_promise(label)
    ops.trace(label, "done")
    ops.trace(label, "leave")
    return ScenarioOutcome.RESUMED


async def _awaiting_function_no_await(
    ops: Operations, label: str, settings: Settings
) -> ScenarioOutcome:
    ops.trace(label, "enter")
    ops.waiting_function(label)
    ops.trace(label, "leave")
    return ScenarioOutcome.RETURNED


async def _rejected(ops: Operations, label: str, settings: Settings) -> ScenarioOutcome:
    outcome = ScenarioOutcome.RESUMED
    try:
        ops.trace(label, "enter")
        await ops.fail_promise(label)
        ops.trace(label, "after:fail_promise")
    except OperationError as exc:
        ops.trace(label, f"exception {exc!r}")
        outcome = ScenarioOutcome.CAUGHT
    ops.trace(label, "leave")
    return outcome


async def _thrown(ops: Operations, label: str, settings: Settings) -> ScenarioOutcome:
    ops.trace(label, "enter")
    outcome = ScenarioOutcome.RESUMED
    deferred = ops.throwing_function(label)

    async def _resume() -> None:
        await deferred

    try:
        await asyncio.wait_for(_resume(), settings.settle_grace_ms / 1000)
        ops.trace(label, "after:throwing_function")
    except OperationError as exc:
        ops.trace(label, f"exception {exc!r}")
        outcome = ScenarioOutcome.CAUGHT
    except TimeoutError:
        ops.trace(label, "never resumed")
        outcome = ScenarioOutcome.NEVER_RESUMED
    ops.trace(label, "leave")
    return outcome


SCENARIOS: dict[str, Scenario] = {
    s.name: s
    for s in (
        Scenario("no-await", "async function without await returns immediately", _no_await),
        Scenario("await", "async function with await waits", _await),
        Scenario(
            "awaiting-function-no-await",
            "awaiting function still returns immediately",
            _awaiting_function_no_await,
        ),
        Scenario("rejected", "rejected promise throws", _rejected),
        Scenario("thrown", "throwing promise throws", _thrown),
    )
}


async def _flush_callbacks(rounds: int = 5) -> None:
    """Let continuations resumed by the last timers run to completion."""
    for _ in range(rounds):
        await asyncio.sleep(0)


def get_scenario(name: str) -> tuple[str, Scenario]:
    """Look up a scenario and its label."""
    for index, (key, scenario) in enumerate(SCENARIOS.items(), start=1):
        if key == name:
            return f"#{index}", scenario
    raise ScenarioNotFound(
        f"Unknown scenario {name!r}; expected one of {', '.join(SCENARIOS)}"
    )


async def run_scenario(name: str, settings: Settings | None = None) -> ScenarioResult:
    """Run one scenario, then wait for the timers it started to fire."""
    settings = settings or Settings()
    label, scenario = get_scenario(name)
    scheduler = LoopScheduler()
    ops = Operations(scheduler, sleep_ms=settings.sleep_ms)

    with bind_label(label):
        logger.info("scenario.start", scenario=name)
        outcome = await scenario.body(ops, label, settings)
        if not await ops.drain(settings.settle_grace_ms):
            logger.warning("scenario.timers_outstanding", scenario=name)
        await _flush_callbacks()
        logger.info("scenario.finish", scenario=name, outcome=outcome.value)

    return ScenarioResult(
        name=name,
        label=label,
        description=scenario.description,
        outcome=outcome,
        events=list(ops.probe.events),
        uncaught=len(scheduler.uncaught),
    )
