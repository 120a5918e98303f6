"""
Domain events and the ingestion boundary.

Raw provider payloads are parsed once into a :class:`DomainEvent`. Each
event type has a typed payload variant carrying only its contract fields;
quality scoring happens here so downstream code never re-checks fields.
"""

from __future__ import annotations

import logging
from collections.abc import Mapping
from dataclasses import dataclass, field
from datetime import UTC, datetime
from types import MappingProxyType
from typing import Any

from stratyx.core.constants import (
    INVALID_TIMESTAMP_PENALTY,
    MISSING_CORE_FIELD_PENALTY,
    MISSING_DATA_PENALTY,
    REQUIRED_FIELDS,
    EventType,
)

logger = logging.getLogger(__name__)


# ============================================================================
# Typed payload variants
# ============================================================================


@dataclass(frozen=True)
class KillPayload:
    attacker: str | None
    victim: str | None
    weapon: str | None
    is_headshot: bool = False
    is_critical: bool = False


@dataclass(frozen=True)
class ObjectivePayload:
    location: str | None
    action: str | None
    is_critical: bool = False


@dataclass(frozen=True)
class EconomyPayload:
    amount: float | None
    action: str | None
    deficit: float | None = None
    team: str | None = None


@dataclass(frozen=True)
class UtilityPayload:
    utility_type: str | None
    player_id: str | None
    wasted: bool = False
    effective: bool = False


@dataclass(frozen=True)
class RoundPayload:
    round_number: int | None = None
    winner: str | None = None


@dataclass(frozen=True)
class GenericPayload:
    player_id: str | None = None


Payload = KillPayload | ObjectivePayload | EconomyPayload | UtilityPayload | RoundPayload | GenericPayload


def _str_or_none(value: Any) -> str | None:
    if value is None or value == "":
        return None
    return str(value)


def _float_or_none(value: Any) -> float | None:
    try:
        return float(value) if value is not None else None
    except (TypeError, ValueError, OverflowError):
        return None


def _int_or_none(value: Any) -> int | None:
    try:
        return int(value) if value is not None else None
    except (TypeError, ValueError, OverflowError):
        return None


def build_payload(event_type: EventType, data: Mapping[str, Any]) -> Payload:
    """Build the typed payload variant for an event type."""
    if event_type == EventType.KILL:
        return KillPayload(
            attacker=_str_or_none(data.get("attacker")),
            victim=_str_or_none(data.get("victim")),
            weapon=_str_or_none(data.get("weapon")),
            is_headshot=bool(data.get("isHeadshot", False)),
            is_critical=bool(data.get("isCritical", False)),
        )
    if event_type == EventType.OBJECTIVE:
        return ObjectivePayload(
            location=_str_or_none(data.get("location")),
            action=_str_or_none(data.get("action")),
            is_critical=bool(data.get("isCritical", False)),
        )
    if event_type == EventType.ECONOMY:
        return EconomyPayload(
            amount=_float_or_none(data.get("amount")),
            action=_str_or_none(data.get("action")),
            deficit=_float_or_none(data.get("deficit")),
            team=_str_or_none(data.get("team")),
        )
    if event_type == EventType.UTILITY:
        return UtilityPayload(
            utility_type=_str_or_none(data.get("type")),
            player_id=_str_or_none(data.get("playerId")),
            wasted=bool(data.get("wasted", False)),
            effective=bool(data.get("effective", False)),
        )
    if event_type in (EventType.ROUND_START, EventType.ROUND_END):
        return RoundPayload(
            round_number=_int_or_none(data.get("roundNumber")),
            winner=_str_or_none(data.get("winner")),
        )
    return GenericPayload(player_id=_str_or_none(data.get("playerId")))


# ============================================================================
# Domain event
# ============================================================================


@dataclass(frozen=True)
class DomainEvent:
    """A single immutable match event, as accepted at the ingestion boundary."""

    type: EventType
    timestamp: datetime | None
    payload: Payload = field(default_factory=GenericPayload)
    data: Mapping[str, Any] = field(default_factory=dict)
    sequence_number: int | None = None
    round_number: int | None = None
    quality: float = 1.0
    raw_type: str = ""
    raw_timestamp: str = ""
    actor_id: str = "unknown"

    def age_ms(self, now: datetime | None = None) -> float | None:
        if self.timestamp is None:
            return None
        now = now or datetime.now(UTC)
        return (now - self.timestamp).total_seconds() * 1000

    def to_dict(self) -> dict[str, Any]:
        return {
            "type": self.raw_type or self.type.value,
            "timestamp": self.timestamp.isoformat() if self.timestamp else self.raw_timestamp,
            "data": dict(self.data),
            "sequenceNumber": self.sequence_number,
            "roundNumber": self.round_number,
        }


def parse_timestamp(value: Any) -> datetime | None:
    """Parse an ISO-8601 string (or datetime / epoch ms) into an aware UTC datetime."""
    if isinstance(value, datetime):
        ts = value
    elif isinstance(value, (int, float)) and not isinstance(value, bool):
        try:
            return datetime.fromtimestamp(value / 1000, tz=UTC)
        except (OverflowError, OSError, ValueError):
            return None
    elif isinstance(value, str) and value:
        try:
            ts = datetime.fromisoformat(value.replace("Z", "+00:00"))
        except ValueError:
            return None
    else:
        return None

    if ts.tzinfo is None:
        ts = ts.replace(tzinfo=UTC)
    try:
        return ts.astimezone(UTC)
    except OverflowError:
        return None


def score_quality(raw_type: Any, raw_timestamp: Any, data: Any) -> float:
    """
    Score completeness of a raw event in [0, 1].

    Missing type or timestamp costs 0.5, an unparseable timestamp 0.3, and
    missing required data fields up to 0.2 in proportion to how many are absent.
    """
    score = 1.0

    if not raw_type or not raw_timestamp:
        score -= MISSING_CORE_FIELD_PENALTY

    if parse_timestamp(raw_timestamp) is None:
        score -= INVALID_TIMESTAMP_PENALTY

    if isinstance(data, Mapping):
        required = REQUIRED_FIELDS.get(str(raw_type), ())
        if required:
            missing = [name for name in required if name not in data]
            score -= (len(missing) / len(required)) * MISSING_DATA_PENALTY
    else:
        score -= MISSING_DATA_PENALTY

    return max(0.0, score)


def _coerce_type(raw_type: Any) -> EventType:
    try:
        return EventType(str(raw_type))
    except ValueError:
        logger.debug(f"Unrecognized event type: {raw_type!r}")
        return EventType.UNKNOWN


def parse_event(raw: Mapping[str, Any] | DomainEvent) -> DomainEvent:
    """
    Parse a raw inbound payload into a DomainEvent.

    Never raises on bad content: the result carries a quality score that
    the engine gates on.
    """
    if isinstance(raw, DomainEvent):
        return raw

    raw_type = raw.get("type")
    raw_timestamp = raw.get("timestamp")
    data = raw.get("data")
    quality = score_quality(raw_type, raw_timestamp, data)
    fields = dict(data) if isinstance(data, Mapping) else {}
    event_type = _coerce_type(raw_type)
    actor = fields.get("playerId") or fields.get("victim")

    return DomainEvent(
        type=event_type,
        timestamp=parse_timestamp(raw_timestamp),
        payload=build_payload(event_type, fields),
        data=MappingProxyType(fields),
        sequence_number=_int_or_none(raw.get("sequenceNumber")),
        round_number=_int_or_none(raw.get("roundNumber")),
        quality=quality,
        raw_type=str(raw_type) if raw_type is not None else "",
        raw_timestamp=str(raw_timestamp) if raw_timestamp is not None else "",
        actor_id=str(actor) if actor else "unknown",
    )
