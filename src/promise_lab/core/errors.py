"""Custom exception hierarchy for promise-lab."""

from typing import Any


class PromiseLabError(Exception):
    """Base exception for all promise-lab errors."""


# --- Configuration ---
class ConfigError(PromiseLabError):
    """Invalid or missing configuration."""


# --- Deferred values ---
class DeferredError(PromiseLabError):
    """Misuse of a deferred value."""


class InvalidStateError(DeferredError):
    """Outcome read from a deferred value that has not settled that way."""


class DeferredRejection(DeferredError):
    """Rejection whose reason is not an exception.

    The original reason is kept untouched in ``reason``.
    """

    def __init__(self, reason: Any):
        self.reason = reason
        super().__init__(f"Deferred value rejected with {reason!r}")


# --- Operations ---
class OperationError(PromiseLabError):
    """Failure raised by a demonstration operation."""

    def __init__(self, label: str):
        self.label = label
        super().__init__(label)


class OperationFailed(OperationError):
    """Reason a failing sleep rejects with."""


class TimerCallbackError(OperationError):
    """Raised inside a timer callback, after the suspension boundary."""


# --- Scenarios ---
class ScenarioNotFound(PromiseLabError):
    """No scenario registered under the requested name."""
