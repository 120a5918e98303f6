"""
Temporal feature store.

Append-only, capacity-bounded log of derived features. Oldest entries are
evicted first once the cap is reached. Reads never consume: every accessor
returns a fresh list, so repeated calls without writes return identical
sequences. Single-writer: the ingestion pipeline is the only producer.
"""

from __future__ import annotations

import logging
import uuid
from collections import Counter, deque
from collections.abc import Mapping
from dataclasses import dataclass
from datetime import datetime
from typing import Any

from stratyx.core.constants import Outcome, Phase
from stratyx.core.events import DomainEvent
from stratyx.core.schemas import TemporalFeature

logger = logging.getLogger(__name__)

DEFAULT_CAPACITY = 1000


@dataclass(frozen=True)
class FeatureMetadata:
    """Derived attributes supplied by the engine when storing an event."""

    actor_id: str
    action_label: str
    phase: Phase
    outcome: Outcome
    impact_score: float


@dataclass
class PlayerTimeSeries:
    actor_id: str
    features: list[TemporalFeature]
    total_actions: int
    avg_impact_score: float
    positive_actions: int
    negative_actions: int
    phase_breakdown: dict[str, int]

    def to_dict(self) -> dict[str, Any]:
        return {
            "actorId": self.actor_id,
            "features": [f.to_dict() for f in self.features],
            "aggregates": {
                "totalActions": self.total_actions,
                "avgImpactScore": round(self.avg_impact_score, 4),
                "positiveActions": self.positive_actions,
                "negativeActions": self.negative_actions,
                "phaseBreakdown": self.phase_breakdown,
            },
        }


class TemporalFeatureStore:
    """Bounded, insertion-ordered store of TemporalFeatures."""

    def __init__(self, capacity: int = DEFAULT_CAPACITY):
        if capacity < 1:
            raise ValueError(f"Feature store capacity must be positive, got {capacity}")
        self.capacity = capacity
        self._features: deque[TemporalFeature] = deque(maxlen=capacity)
        self.evicted = 0

    def store(self, event: DomainEvent, metadata: FeatureMetadata) -> TemporalFeature:
        """Append a feature derived from ``event``; evicts the oldest when full."""
        if event.timestamp is None:
            raise ValueError("Cannot store a feature for an event without a timestamp")

        feature = TemporalFeature(
            feature_id=str(uuid.uuid4()),
            timestamp=event.timestamp,
            event_type=event.type.value,
            actor_id=metadata.actor_id,
            action_label=metadata.action_label,
            phase=metadata.phase,
            outcome=metadata.outcome,
            impact_score=metadata.impact_score,
            context=event.data,
        )

        if len(self._features) == self.capacity:
            self.evicted += 1
        self._features.append(feature)
        return feature

    def get_recent_features(self, n: int = 50) -> list[TemporalFeature]:
        """Most recent ``n`` features, oldest first."""
        if n <= 0:
            return []
        size = len(self._features)
        start = max(0, size - n)
        return [self._features[i] for i in range(start, size)]

    def all_features(self) -> list[TemporalFeature]:
        return list(self._features)

    def query(
        self,
        actor_id: str | None = None,
        action_label: str | None = None,
        phase: Phase | None = None,
        start: datetime | None = None,
        end: datetime | None = None,
        limit: int | None = None,
    ) -> list[TemporalFeature]:
        """Filter stored features; results are sorted by timestamp."""
        results = [
            f
            for f in self._features
            if (actor_id is None or f.actor_id == actor_id)
            and (action_label is None or f.action_label == action_label)
            and (phase is None or f.phase == phase)
            and (start is None or f.timestamp >= start)
            and (end is None or f.timestamp <= end)
        ]
        results.sort(key=lambda f: f.timestamp)
        if limit:
            results = results[:limit]
        return results

    def player_time_series(self, actor_id: str) -> PlayerTimeSeries | None:
        features = self.query(actor_id=actor_id)
        if not features:
            return None

        phases = Counter(f.phase.value for f in features)
        return PlayerTimeSeries(
            actor_id=actor_id,
            features=features,
            total_actions=len(features),
            avg_impact_score=sum(f.impact_score for f in features) / len(features),
            positive_actions=sum(1 for f in features if f.outcome == Outcome.POSITIVE),
            negative_actions=sum(1 for f in features if f.outcome == Outcome.NEGATIVE),
            phase_breakdown={p.value: phases.get(p.value, 0) for p in Phase},
        )

    def high_impact_features(self, threshold: float = 0.7, limit: int = 20) -> list[TemporalFeature]:
        ranked = sorted(
            (f for f in self._features if abs(f.impact_score) >= threshold),
            key=lambda f: abs(f.impact_score),
            reverse=True,
        )
        return ranked[:limit]

    def phase_statistics(self, phase: Phase) -> Mapping[str, Any]:
        features = self.query(phase=phase)
        counts = Counter(f.action_label for f in features)
        return {
            "totalFeatures": len(features),
            "avgImpactScore": sum(f.impact_score for f in features) / (len(features) or 1),
            "topActions": [{"action": a, "count": c} for a, c in counts.most_common(5)],
        }

    def size(self) -> int:
        return len(self._features)

    def __len__(self) -> int:
        return len(self._features)

    def clear(self) -> None:
        self._features.clear()
        self.evicted = 0
