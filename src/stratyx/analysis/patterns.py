"""
Pattern analyzer.

Batch scans over a snapshot of stored features. Four kinds of findings
are surfaced, each subject to an occurrence floor and a confidence floor:

- recurring mistakes: negative features grouped by (actor, action)
- success sequences: three consecutive positive features less than 60s apart
- vulnerabilities: the dominant negative action per phase
- strengths: high-impact positive features grouped by action

Scans are not incremental; call :meth:`PatternAnalyzer.analyze` with a
fresh snapshot (usually ``TemporalFeatureStore.all_features()``).
"""

from __future__ import annotations

import logging
import uuid
from collections.abc import Sequence
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any

import pandas as pd

from stratyx.core.config import PatternConfig
from stratyx.core.constants import Outcome, Phase
from stratyx.core.schemas import TemporalFeature

logger = logging.getLogger(__name__)

STRENGTH_IMPACT_THRESHOLD = 0.6
PROBLEMATIC_SEQUENCE_IMPACT = -0.3
MIN_SEQUENCE_FREQUENCY = 2
SUCCESS_SEQUENCE_CONFIDENCE = 0.72
CONSISTENCY_ACTION_SCALE = 20
MAX_BEHAVIOR_SCORE = 100.0

FEATURE_COLUMNS = ["timestamp", "actor_id", "action_label", "phase", "outcome", "impact_score"]


class PatternType(Enum):
    RECURRING_MISTAKE = "recurring_mistake"
    SUCCESS_SEQUENCE = "success_sequence"
    VULNERABILITY = "vulnerability"
    STRENGTH = "strength"


NEGATIVE_PATTERN_TYPES = (PatternType.RECURRING_MISTAKE, PatternType.VULNERABILITY)


@dataclass
class DetectedPattern:
    """A longer-horizon finding from one pattern scan."""

    pattern_type: PatternType
    description: str
    occurrences: int
    confidence: float
    players_involved: list[str]
    phases: list[Phase]
    impact_score: float
    first_seen: datetime
    last_seen: datetime
    recommendation: str
    pattern_id: str = field(default_factory=lambda: str(uuid.uuid4()))

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.pattern_id,
            "type": self.pattern_type.value,
            "description": self.description,
            "occurrences": self.occurrences,
            "confidence": round(self.confidence, 4),
            "playersInvolved": self.players_involved,
            "phases": [p.value for p in self.phases],
            "impactScore": round(self.impact_score, 4),
            "firstSeen": self.first_seen.isoformat(),
            "lastSeen": self.last_seen.isoformat(),
            "recommendation": self.recommendation,
        }


@dataclass
class PlayerBehaviorPattern:
    actor_id: str
    patterns: list[DetectedPattern]
    risk_score: float
    strength_score: float
    consistency: float

    def to_dict(self) -> dict[str, Any]:
        return {
            "playerId": self.actor_id,
            "patterns": [p.to_dict() for p in self.patterns],
            "riskScore": round(self.risk_score, 2),
            "strengthScore": round(self.strength_score, 2),
            "consistency": round(self.consistency, 4),
        }


@dataclass
class SequencePattern:
    sequence: list[str]
    frequency: int
    avg_impact: float

    @property
    def is_problematic(self) -> bool:
        return self.avg_impact < PROBLEMATIC_SEQUENCE_IMPACT

    def to_dict(self) -> dict[str, Any]:
        return {
            "sequence": self.sequence,
            "frequency": self.frequency,
            "avgImpact": round(self.avg_impact, 4),
            "isProblematic": self.is_problematic,
        }


def features_to_frame(features: Sequence[TemporalFeature]) -> pd.DataFrame:
    """Tabulate features in insertion order; empty input yields an empty frame with the right columns."""
    if not features:
        return pd.DataFrame(columns=FEATURE_COLUMNS)
    return pd.DataFrame(
        [
            {
                "timestamp": f.timestamp,
                "actor_id": f.actor_id,
                "action_label": f.action_label,
                "phase": f.phase,
                "outcome": f.outcome,
                "impact_score": f.impact_score,
            }
            for f in features
        ],
        columns=FEATURE_COLUMNS,
    )


def _unique(values) -> list:
    return list(dict.fromkeys(values))


def _phases(values) -> list[Phase]:
    # pandas may store enum members as plain strings
    return [Phase(v) for v in _unique(values)]


class PatternAnalyzer:
    """Detects recurring patterns across stored features."""

    def __init__(self, config: PatternConfig | None = None):
        self.config = config or PatternConfig()
        self._detected: dict[str, DetectedPattern] = {}

    @property
    def min_occurrences(self) -> int:
        return self.config.min_occurrences

    def analyze(self, features: Sequence[TemporalFeature]) -> list[DetectedPattern]:
        """Run all four detectors and return findings above the confidence floor."""
        if len(features) < self.min_occurrences:
            return []

        df = features_to_frame(features)
        patterns = [
            *self.detect_recurring_mistakes(df),
            *self.detect_success_sequences(df),
            *self.detect_vulnerabilities(df),
            *self.detect_strengths(df),
        ]
        for pattern in patterns:
            self._detected[pattern.pattern_id] = pattern

        accepted = [p for p in patterns if p.confidence >= self.config.min_confidence]
        logger.debug(f"Pattern scan over {len(features)} features found {len(accepted)} patterns")
        return accepted

    # ------------------------------------------------------------------
    # Detectors
    # ------------------------------------------------------------------

    def detect_recurring_mistakes(self, df: pd.DataFrame) -> list[DetectedPattern]:
        negative = df[df["outcome"] == Outcome.NEGATIVE]
        patterns = []

        for (actor, action), group in negative.groupby(["actor_id", "action_label"], sort=False):
            count = len(group)
            if count < self.min_occurrences:
                continue

            phases = _phases(group["phase"])
            avg_impact = float(group["impact_score"].abs().mean())
            phase_names = ", ".join(p.value for p in phases)
            patterns.append(
                DetectedPattern(
                    pattern_type=PatternType.RECURRING_MISTAKE,
                    description=f"{actor} repeatedly {action}",
                    occurrences=count,
                    confidence=min(0.95, 0.5 + count * 0.1),
                    players_involved=[actor],
                    phases=phases,
                    impact_score=-avg_impact,
                    first_seen=group["timestamp"].iloc[0],
                    last_seen=group["timestamp"].iloc[-1],
                    recommendation=(
                        f"Coach {actor} to avoid {action} during {phase_names} phases. "
                        f"Pattern detected {count} times with avg impact of {avg_impact:.2f}."
                    ),
                )
            )
        return patterns

    def detect_success_sequences(self, df: pd.DataFrame) -> list[DetectedPattern]:
        """
        Chains of three consecutive positive features, each gap under the
        success window. Identical action chains are merged into one finding.
        """
        positive = df[df["outcome"] == Outcome.POSITIVE].reset_index(drop=True)
        window = self.config.success_window_seconds
        chains: dict[tuple[str, ...], list[pd.DataFrame]] = {}

        for i in range(len(positive) - 2):
            chain = positive.iloc[i : i + 3]
            gaps = chain["timestamp"].diff().iloc[1:]
            if not all(gap.total_seconds() < window for gap in gaps):
                continue
            chains.setdefault(tuple(chain["action_label"]), []).append(chain)

        patterns = []
        for sequence, matches in chains.items():
            combined = pd.concat(matches)
            players = _unique(combined["actor_id"])
            arrow = " -> ".join(sequence)
            patterns.append(
                DetectedPattern(
                    pattern_type=PatternType.SUCCESS_SEQUENCE,
                    description=f"Successful sequence: {arrow}",
                    occurrences=len(matches),
                    confidence=SUCCESS_SEQUENCE_CONFIDENCE,
                    players_involved=players,
                    phases=_phases(combined["phase"]),
                    impact_score=float(combined["impact_score"].mean()),
                    first_seen=matches[0]["timestamp"].iloc[0],
                    last_seen=matches[-1]["timestamp"].iloc[-1],
                    recommendation=(
                        f"Reinforce this successful pattern: {arrow}. Involves {', '.join(players)}."
                    ),
                )
            )
        return patterns

    def detect_vulnerabilities(self, df: pd.DataFrame) -> list[DetectedPattern]:
        negative = df[df["outcome"] == Outcome.NEGATIVE]
        patterns = []

        for phase in Phase:
            in_phase = negative[negative["phase"] == phase]
            if len(in_phase) < self.min_occurrences:
                continue

            counts = in_phase["action_label"].value_counts()
            action, count = counts.index[0], int(counts.iloc[0])
            if count < self.min_occurrences:
                continue

            relevant = in_phase[in_phase["action_label"] == action]
            avg_impact = float(relevant["impact_score"].abs().mean())
            patterns.append(
                DetectedPattern(
                    pattern_type=PatternType.VULNERABILITY,
                    description=f"{phase.value.capitalize()}-game vulnerability: {action}",
                    occurrences=count,
                    confidence=min(0.9, 0.6 + count * 0.08),
                    players_involved=_unique(relevant["actor_id"]),
                    phases=[phase],
                    impact_score=-avg_impact,
                    first_seen=relevant["timestamp"].iloc[0],
                    last_seen=relevant["timestamp"].iloc[-1],
                    recommendation=(
                        f"VULNERABILITY ALERT: Team consistently struggles with {action} "
                        f"in {phase.value} game. Tactical adjustment needed."
                    ),
                )
            )
        return patterns

    def detect_strengths(self, df: pd.DataFrame) -> list[DetectedPattern]:
        strong = df[(df["outcome"] == Outcome.POSITIVE) & (df["impact_score"] > STRENGTH_IMPACT_THRESHOLD)]
        patterns = []

        for action, group in strong.groupby("action_label", sort=False):
            count = len(group)
            if count < self.min_occurrences:
                continue

            patterns.append(
                DetectedPattern(
                    pattern_type=PatternType.STRENGTH,
                    description=f"Consistent strength: {action}",
                    occurrences=count,
                    confidence=min(0.95, 0.65 + count * 0.07),
                    players_involved=_unique(group["actor_id"]),
                    phases=_phases(group["phase"]),
                    impact_score=float(group["impact_score"].mean()),
                    first_seen=group["timestamp"].iloc[0],
                    last_seen=group["timestamp"].iloc[-1],
                    recommendation=(
                        f"STRENGTH IDENTIFIED: {action} is consistently successful "
                        f"({count} occurrences). Leverage this in strategy."
                    ),
                )
            )
        return patterns

    # ------------------------------------------------------------------
    # Player and sequence views
    # ------------------------------------------------------------------

    def analyze_player(self, actor_id: str, features: Sequence[TemporalFeature]) -> PlayerBehaviorPattern:
        own = [f for f in features if f.actor_id == actor_id]
        patterns = self.analyze(own)

        risk = sum(abs(p.impact_score) * 10 for p in patterns if p.pattern_type in NEGATIVE_PATTERN_TYPES)
        strength = sum(p.impact_score * 10 for p in patterns if p.pattern_type not in NEGATIVE_PATTERN_TYPES)
        unique_actions = len({f.action_label for f in own})

        return PlayerBehaviorPattern(
            actor_id=actor_id,
            patterns=patterns,
            risk_score=min(MAX_BEHAVIOR_SCORE, risk),
            strength_score=min(MAX_BEHAVIOR_SCORE, max(0.0, strength)),
            consistency=1 - min(1.0, unique_actions / CONSISTENCY_ACTION_SCALE),
        )

    def detect_sequences(
        self, features: Sequence[TemporalFeature], window_size: int | None = None
    ) -> list[SequencePattern]:
        """
        Sliding-window scan for repeating action subsequences.

        Only sequences seen at least twice are returned, strongest average
        impact first.
        """
        size = window_size or self.config.sequence_window
        if size < 1:
            raise ValueError(f"window_size must be positive, got {size}")

        labels = [f.action_label for f in features]
        impacts = [f.impact_score for f in features]
        seen: dict[tuple[str, ...], list[float]] = {}

        for i in range(len(features) - size + 1):
            key = tuple(labels[i : i + size])
            seen.setdefault(key, []).append(sum(impacts[i : i + size]) / size)

        sequences = [
            SequencePattern(sequence=list(key), frequency=len(avgs), avg_impact=sum(avgs) / len(avgs))
            for key, avgs in seen.items()
            if len(avgs) >= MIN_SEQUENCE_FREQUENCY
        ]
        sequences.sort(key=lambda s: abs(s.avg_impact), reverse=True)
        return sequences

    def top_patterns(self, limit: int = 10) -> list[DetectedPattern]:
        """Patterns from every scan so far, largest absolute impact first."""
        ranked = sorted(self._detected.values(), key=lambda p: abs(p.impact_score), reverse=True)
        return ranked[:limit]

    def clear(self) -> None:
        self._detected.clear()
