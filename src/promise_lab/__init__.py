"""Deferred values and suspension-capable functions on asyncio."""

from promise_lab.core.deferred import DeferredValue, is_deferred, suspendable
from promise_lab.core.enums import DeferredState

__all__ = ["DeferredState", "DeferredValue", "is_deferred", "suspendable"]
