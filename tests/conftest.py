"""Shared fixtures for the promise-lab test suite."""

from __future__ import annotations

import pytest

from promise_lab.core.scheduler import LoopScheduler, ManualScheduler
from promise_lab.operations import OperationProbe, Operations


# ---------------------------------------------------------------------------
# Schedulers
# ---------------------------------------------------------------------------

@pytest.fixture
def manual_scheduler() -> ManualScheduler:
    """Return a virtual-time scheduler starting at t=0."""
    return ManualScheduler()


@pytest.fixture
def loop_scheduler() -> LoopScheduler:
    """Return a scheduler backed by the running loop's timers."""
    return LoopScheduler()


# ---------------------------------------------------------------------------
# Operations
# ---------------------------------------------------------------------------

@pytest.fixture
def probe() -> OperationProbe:
    return OperationProbe()


@pytest.fixture
def manual_ops(manual_scheduler, probe) -> Operations:
    """Operations with 1000 ms timers on virtual time."""
    return Operations(manual_scheduler, sleep_ms=1000, probe=probe)


@pytest.fixture
def fast_ops(loop_scheduler, probe) -> Operations:
    """Operations with 20 ms timers on real time."""
    return Operations(loop_scheduler, sleep_ms=20, probe=probe)
