"""
Data contracts shared across Stratyx components.

Every shape that crosses a component boundary lives here: derived
features, statistical results, emitted insights and the game-state
snapshot consumed by the win-probability model. ``to_dict()`` returns the
outbound wire shape.
"""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any

from stratyx.core.constants import Outcome, Phase, Priority


def _iso(ts: datetime | None) -> str | None:
    return ts.isoformat() if ts else None


@dataclass(frozen=True)
class TemporalFeature:
    """A feature derived from one domain event. Never mutated after creation."""

    feature_id: str
    timestamp: datetime
    event_type: str
    actor_id: str
    action_label: str
    phase: Phase
    outcome: Outcome
    impact_score: float
    context: Mapping[str, Any] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.feature_id,
            "timestamp": _iso(self.timestamp),
            "eventType": self.event_type,
            "actorId": self.actor_id,
            "actionLabel": self.action_label,
            "phase": self.phase.value,
            "outcome": self.outcome.value,
            "impactScore": round(self.impact_score, 4),
            "context": dict(self.context),
        }


@dataclass
class PatternOccurrence:
    """Running tally for one (phase, event type) or (actor, action) key."""

    scope: str
    subject: str
    action: str
    count: int = 0
    cumulative_impact: float = 0.0
    last_seen: datetime | None = None

    def record(self, impact: float, timestamp: datetime) -> None:
        self.count += 1
        self.cumulative_impact += impact
        self.last_seen = timestamp

    @property
    def key(self) -> tuple[str, str, str]:
        return (self.scope, self.subject, self.action)

    @property
    def pattern_key(self) -> str:
        return f"{self.subject}_{self.action}"

    def to_dict(self) -> dict[str, Any]:
        return {
            "patternKey": self.pattern_key,
            "scope": self.scope,
            "count": self.count,
            "cumulativeImpact": round(self.cumulative_impact, 4),
            "lastSeen": _iso(self.last_seen),
        }


@dataclass(frozen=True)
class ConfidenceInterval:
    lower: float
    upper: float
    mean: float
    confidence_level: float = 0.95

    @property
    def width(self) -> float:
        return self.upper - self.lower

    def to_dict(self) -> dict[str, Any]:
        return {
            "lower": self.lower,
            "upper": self.upper,
            "mean": self.mean,
            "confidenceLevel": self.confidence_level,
        }


@dataclass(frozen=True)
class StatisticalTest:
    """Result of a hypothesis test. Non-significant defaults use p=1, effect=0."""

    test_name: str
    p_value: float
    is_significant: bool
    effect_size: float
    confidence_level: float = 0.95
    statistic: float | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "testName": self.test_name,
            "pValue": self.p_value,
            "isSignificant": self.is_significant,
            "effectSize": self.effect_size,
            "confidenceLevel": self.confidence_level,
            "statistic": self.statistic,
        }


@dataclass(frozen=True)
class ValidatedInsight:
    """A causal finding that passed the significance gate. Immutable once emitted."""

    insight_id: str
    actor_id: str
    event_type: str
    micro_action: str
    macro_outcome: str
    causal_weight: float
    recommendation: str
    priority: Priority
    p_value: float
    confidence_interval: ConfidenceInterval
    sample_size: int
    data_quality: float
    timestamp: datetime
    effect_size: float = 0.0

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.insight_id,
            "microAction": self.micro_action,
            "macroOutcome": self.macro_outcome,
            "causalWeight": round(self.causal_weight, 4),
            "recommendation": self.recommendation,
            "priority": self.priority.value,
            "pValue": self.p_value,
            "effectSize": self.effect_size,
            "confidenceInterval": {
                "lower": self.confidence_interval.lower,
                "upper": self.confidence_interval.upper,
                "mean": self.confidence_interval.mean,
            },
            "sampleSize": self.sample_size,
            "dataQuality": round(self.data_quality, 4),
            "timestamp": _iso(self.timestamp),
        }


@dataclass(frozen=True)
class GameStateSnapshot:
    """Game state consumed by the win-probability model."""

    round_number: int = 0
    score_home: int = 0
    score_away: int = 0
    economy_diff: float = 0.0
    man_advantage: float = 0.0
    objectives_controlled: float = 0.5
    phase: Phase = Phase.EARLY
    strategy_debt: float = 0.0

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> GameStateSnapshot:
        score = data.get("score") or {}
        return cls(
            round_number=int(data.get("roundNumber", 0)),
            score_home=int(score.get("home", 0)),
            score_away=int(score.get("away", 0)),
            economy_diff=float(data.get("economyDiff", 0.0)),
            man_advantage=float(data.get("manAdvantage", 0.0)),
            objectives_controlled=float(data.get("objectivesControlled", 0.5)),
            phase=Phase(data.get("phase", Phase.EARLY.value)),
            strategy_debt=float(data.get("strategyDebt", 0.0)),
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "roundNumber": self.round_number,
            "score": {"home": self.score_home, "away": self.score_away},
            "economyDiff": self.economy_diff,
            "manAdvantage": self.man_advantage,
            "objectivesControlled": self.objectives_controlled,
            "phase": self.phase.value,
            "strategyDebt": self.strategy_debt,
        }
