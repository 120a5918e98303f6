"""
Stratyx error taxonomy.

Events that fail quality or freshness gates are dropped and counted, not
raised to callers. Contract violations (mismatched shapes, negative
counts) raise immediately.
"""

from __future__ import annotations

from typing import Any


class StratyxError(Exception):
    """Base class for all Stratyx errors."""


class MalformedEvent(StratyxError):
    """Event is missing required fields or carries invalid values."""

    def __init__(self, message: str, quality: float = 0.0, event_type: str | None = None):
        super().__init__(message)
        self.quality = quality
        self.event_type = event_type


class StaleEvent(StratyxError):
    """Event is older than the configured maximum age."""

    def __init__(self, message: str, age_ms: float):
        super().__init__(message)
        self.age_ms = age_ms


class InsufficientSample(StratyxError, ValueError):
    """Too few observations for the requested statistic."""

    def __init__(self, required: int, actual: int):
        super().__init__(f"Need at least {required} samples, got {actual}")
        self.required = required
        self.actual = actual


class ShapeMismatch(StratyxError, ValueError):
    """Input arrays have incompatible lengths or invalid counts."""


class HandlerFailure(StratyxError):
    """A registered subscriber raised while handling a payload."""

    def __init__(self, handler: Any, original: BaseException):
        name = getattr(handler, "__qualname__", repr(handler))
        super().__init__(f"Handler {name} failed: {original}")
        self.handler = handler
        self.original = original
