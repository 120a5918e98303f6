"""
Stratyx Core - Foundation modules shared by every analytics component.

- constants: enums, phase bounds, impact tables and model weights
- config: configuration loading from files and environment
- errors: error taxonomy
- events: domain events and the ingestion boundary
- schemas: data contracts crossing component boundaries
"""

from stratyx.core.constants import (
    DebtCategory,
    EventType,
    Freshness,
    NodeTier,
    Outcome,
    Phase,
    Priority,
    Trend,
)
from stratyx.core.errors import (
    HandlerFailure,
    InsufficientSample,
    MalformedEvent,
    ShapeMismatch,
    StaleEvent,
    StratyxError,
)
from stratyx.core.events import DomainEvent, parse_event
from stratyx.core.schemas import (
    ConfidenceInterval,
    GameStateSnapshot,
    PatternOccurrence,
    StatisticalTest,
    TemporalFeature,
    ValidatedInsight,
)

__all__ = [
    # Enums
    "DebtCategory",
    "EventType",
    "Freshness",
    "NodeTier",
    "Outcome",
    "Phase",
    "Priority",
    "Trend",
    # Errors
    "HandlerFailure",
    "InsufficientSample",
    "MalformedEvent",
    "ShapeMismatch",
    "StaleEvent",
    "StratyxError",
    # Events
    "DomainEvent",
    "parse_event",
    # Schemas
    "ConfidenceInterval",
    "GameStateSnapshot",
    "PatternOccurrence",
    "StatisticalTest",
    "TemporalFeature",
    "ValidatedInsight",
]
