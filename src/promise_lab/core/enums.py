"""Enumerations used across promise-lab."""

from enum import Enum


class DeferredState(str, Enum):
    PENDING = "pending"
    FULFILLED = "fulfilled"
    REJECTED = "rejected"


class ScenarioOutcome(str, Enum):
    RETURNED = "returned"  # caller moved on without awaiting
    RESUMED = "resumed"
    CAUGHT = "caught"
    NEVER_RESUMED = "never_resumed"
