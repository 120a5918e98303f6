"""
Causal engine.

Per-event incremental processor. For every accepted event it tracks the
round phase, derives a TemporalFeature, grows the causal graph, accumulates
strategy debt and nudges the running win probability. Once an actor has
enough impact samples for an event type, the history is tested against a
zero baseline and a ValidatedInsight is emitted if the result is
significant.

Events that fail the quality or freshness gate are dropped and counted.
Any exception while processing one event is logged and swallowed so the
stream keeps flowing.
"""

from __future__ import annotations

import logging
import time
import uuid
from collections import deque
from collections.abc import Callable
from dataclasses import dataclass
from datetime import UTC, datetime
from typing import Any

import numpy as np

from stratyx.analysis.causal_graph import CausalGraph, CausalNode
from stratyx.analysis.feature_store import FeatureMetadata, TemporalFeatureStore
from stratyx.analysis.statistics import StatisticalValidator
from stratyx.analysis.strategy_debt import StrategyDebt
from stratyx.analysis.win_probability import WinProbabilityModel, WinProbabilityResult
from stratyx.core.config import StratyxConfig
from stratyx.core.constants import (
    BASE_IMPACTS,
    CRITICAL_MULTIPLIER,
    DEBT_CATEGORY_BY_EVENT,
    DEBT_PROBABILITY_DECAY,
    EARLY_PHASE_END_SECONDS,
    ECONOMY_DEFICIT_THRESHOLD,
    HEADSHOT_MULTIPLIER,
    IMPACT_HISTORY_SIZE,
    MAX_WIN_PROBABILITY,
    MID_PHASE_END_SECONDS,
    MIN_INSIGHT_IMPACT,
    MIN_WIN_PROBABILITY,
    PHASE_MULTIPLIERS,
    DebtCategory,
    EventType,
    NodeTier,
    Outcome,
    Phase,
    Priority,
)
from stratyx.core.errors import MalformedEvent, StaleEvent
from stratyx.core.events import DomainEvent, EconomyPayload, KillPayload, ObjectivePayload, UtilityPayload, parse_event
from stratyx.core.schemas import GameStateSnapshot, PatternOccurrence, ValidatedInsight

logger = logging.getLogger(__name__)

MICRO_NODE_CONFIDENCE = 0.85
PERFORMANCE_WINDOW = 100
QUALITY_WINDOW = 50
INSIGHT_HISTORY_SIZE = 200
PHASE_SCOPE = "phase"
ACTOR_SCOPE = "actor"

# Intermediate consequences: (description, node confidence, edge weight, evidence)
EARLY_DEATH_CONSEQUENCE = ("Man disadvantage", 0.78, 0.68, ("early_death", "positioning_error"))
OBJECTIVE_LOSS_CONSEQUENCE = ("Map control deficit", 0.82, 0.89, ("objective_lost", "rotation_gap"))
ECONOMY_DEFICIT_CONSEQUENCE = ("Reduced utility availability", 0.7, 0.64, ("economy_deficit",))


# ============================================================================
# Helpers
# ============================================================================


def phase_for_elapsed(elapsed_seconds: float) -> Phase:
    if elapsed_seconds < EARLY_PHASE_END_SECONDS:
        return Phase.EARLY
    if elapsed_seconds < MID_PHASE_END_SECONDS:
        return Phase.MID
    return Phase.LATE


def action_label(event: DomainEvent) -> str:
    """Map an event to its impact-table key, or its bare type when it has none."""
    payload = event.payload
    if isinstance(payload, ObjectivePayload):
        action = (payload.action or "").lower()
        if action == "lost":
            return "objective_lost"
        if action in ("captured", "gained"):
            return "objective_captured"
        if action == "defended":
            return "objective_defended"
    elif isinstance(payload, EconomyPayload):
        action = (payload.action or "").lower()
        if action == "deficit" or (payload.deficit or 0) > ECONOMY_DEFICIT_THRESHOLD:
            return "economy_deficit"
        if action == "bonus":
            return "economy_bonus"
    elif isinstance(payload, UtilityPayload):
        if payload.wasted:
            return "utility_wasted"
        if payload.effective:
            return "utility_effective"
    return event.type.value


def event_impact(event: DomainEvent, label: str, phase: Phase) -> float:
    impact = BASE_IMPACTS.get(label, 0.0) * PHASE_MULTIPLIERS[phase]
    payload = event.payload
    if isinstance(payload, KillPayload) and payload.is_headshot:
        impact *= HEADSHOT_MULTIPLIER
    if getattr(payload, "is_critical", False):
        impact *= CRITICAL_MULTIPLIER
    return impact


def outcome_for(impact: float) -> Outcome:
    if impact > 0:
        return Outcome.POSITIVE
    if impact < 0:
        return Outcome.NEGATIVE
    return Outcome.NEUTRAL


def priority_for(mean_impact: float, effect_size: float, p_value: float) -> Priority:
    score = abs(mean_impact) * 0.4 + effect_size * 0.4 + (1 - p_value) * 0.2
    if score > 0.6:
        return Priority.HIGH
    if score > 0.3:
        return Priority.MEDIUM
    return Priority.LOW


def infer_macro_outcome(mean_impact: float) -> str:
    if mean_impact < -0.15:
        return "Significant strategic disadvantage, increased loss probability"
    if mean_impact < -0.05:
        return "Minor tactical setback, recoverable"
    if mean_impact > 0.15:
        return "Strong strategic advantage, momentum shift"
    return "Neutral tactical impact"


def recommendation_for(actor_id: str, event_type: str, mean_impact: float, occurrences: int) -> str:
    if mean_impact < -0.1:
        return (
            f"CRITICAL: {actor_id} shows recurring negative pattern in {event_type} "
            f"({occurrences} occurrences, avg impact: {mean_impact:.3f}). "
            f"Immediate coaching intervention recommended."
        )
    if mean_impact < -0.05:
        return (
            f"WARNING: {actor_id} tendency towards suboptimal {event_type} decisions. "
            f"Consider tactical adjustment. Sample size: {occurrences}"
        )
    return f"Pattern detected for {actor_id} in {event_type}. Monitor for further development."


# ============================================================================
# Metrics
# ============================================================================


@dataclass
class DropCounters:
    """Events rejected before processing, by reason."""

    malformed: int = 0
    stale: int = 0
    failed: int = 0

    @property
    def total(self) -> int:
        return self.malformed + self.stale + self.failed

    def to_dict(self) -> dict[str, int]:
        return {"malformed": self.malformed, "stale": self.stale, "failed": self.failed}


@dataclass(frozen=True)
class PerformanceMetrics:
    avg_processing_ms: float
    max_processing_ms: float
    events_processed: int
    insights_generated: int
    data_quality_score: float
    drops: DropCounters

    def to_dict(self) -> dict[str, Any]:
        return {
            "avgProcessingTime": round(self.avg_processing_ms, 3),
            "maxProcessingTime": round(self.max_processing_ms, 3),
            "eventsProcessed": self.events_processed,
            "insightsGenerated": self.insights_generated,
            "dataQualityScore": round(self.data_quality_score, 4),
            "dropped": self.drops.to_dict(),
        }


# ============================================================================
# Engine
# ============================================================================


class CausalEngine:
    """
    Incremental micro -> macro causal processor for one match session.

    All state lives on the instance and is only touched by :meth:`process`;
    call :meth:`reset` between matches.
    """

    def __init__(
        self,
        config: StratyxConfig | None = None,
        feature_store: TemporalFeatureStore | None = None,
        validator: StatisticalValidator | None = None,
        win_model: WinProbabilityModel | None = None,
        clock: Callable[[], datetime] | None = None,
    ):
        self.config = config or StratyxConfig()
        engine_cfg = self.config.engine
        self.feature_store = feature_store or TemporalFeatureStore(engine_cfg.feature_store_capacity)
        self.validator = validator or StatisticalValidator.from_config(self.config.statistics)
        self.win_model = win_model or WinProbabilityModel()
        self._clock = clock or (lambda: datetime.now(UTC))

        self.graph = CausalGraph()
        self.debt = StrategyDebt()
        self.drops = DropCounters()

        self._reset_state()

    def _reset_state(self) -> None:
        self.phase = Phase.EARLY
        self.round_start: datetime | None = None
        self.win_probability = self.config.engine.prior_win_probability
        self.events_processed = 0
        self.insights_generated = 0
        self._impact_history: dict[tuple[str, str], deque[float]] = {}
        self._occurrences: dict[tuple[str, str, str], PatternOccurrence] = {}
        self._insights: deque[ValidatedInsight] = deque(maxlen=INSIGHT_HISTORY_SIZE)
        self._processing_ms: deque[float] = deque(maxlen=PERFORMANCE_WINDOW)
        self._qualities: deque[float] = deque(maxlen=QUALITY_WINDOW)

    # ------------------------------------------------------------------
    # Processing
    # ------------------------------------------------------------------

    def process(self, raw: dict[str, Any] | DomainEvent) -> ValidatedInsight | None:
        """
        Process one event.

        Returns:
            The insight emitted for this event, or None
        """
        start = time.perf_counter()
        try:
            event = parse_event(raw)
            self._check_quality(event)
            self._check_freshness(event)
            insight = self._process_event(event)
        except MalformedEvent as e:
            self.drops.malformed += 1
            logger.warning(f"Dropped low quality event: {e}")
            return None
        except StaleEvent as e:
            self.drops.stale += 1
            logger.warning(f"Dropped stale event: {e}")
            return None
        except Exception:
            self.drops.failed += 1
            logger.exception("Error processing event")
            return None

        elapsed_ms = (time.perf_counter() - start) * 1000
        self._processing_ms.append(elapsed_ms)
        if elapsed_ms > self.config.engine.max_processing_ms:
            logger.warning(f"Slow processing detected: {elapsed_ms:.2f}ms")
        else:
            logger.debug(f"Processed {event.type} in {elapsed_ms:.2f}ms")
        return insight

    def _check_quality(self, event: DomainEvent) -> None:
        if event.quality < self.config.engine.min_data_quality:
            raise MalformedEvent(
                f"quality {event.quality:.2f} below {self.config.engine.min_data_quality} "
                f"for type {event.raw_type!r}",
                quality=event.quality,
                event_type=event.raw_type,
            )

    def _check_freshness(self, event: DomainEvent) -> None:
        age = event.age_ms(self._clock())
        if age is None:
            raise MalformedEvent("missing timestamp", quality=event.quality, event_type=event.raw_type)
        if age > self.config.engine.max_event_age_ms:
            raise StaleEvent(f"{event.type} is {age:.0f}ms old", age_ms=age)

    def _process_event(self, event: DomainEvent) -> ValidatedInsight | None:
        self._update_phase(event)

        label = action_label(event)
        impact = event_impact(event, label, self.phase)
        actor = event.actor_id

        self.feature_store.store(
            event,
            FeatureMetadata(
                actor_id=actor,
                action_label=label,
                phase=self.phase,
                outcome=outcome_for(impact),
                impact_score=impact,
            ),
        )
        self.events_processed += 1
        self._qualities.append(event.quality)

        self._record_occurrence(PHASE_SCOPE, self.phase.value, event.type.value, impact, event.timestamp)
        self._record_occurrence(ACTOR_SCOPE, actor, label, impact, event.timestamp)

        history = self._impact_history.setdefault(
            (actor, event.type.value), deque(maxlen=IMPACT_HISTORY_SIZE)
        )
        history.append(impact)

        micro = self._update_graph(event, label, actor)
        self._update_debt(event, impact, actor)

        insight = self._generate_insight(event, impact, actor, history)
        if insight is not None:
            self._link_macro(micro, insight)
        return insight

    def _update_phase(self, event: DomainEvent) -> None:
        if event.type == EventType.ROUND_START:
            self.round_start = event.timestamp
            self.phase = Phase.EARLY
        elif self.round_start is not None:
            elapsed = (event.timestamp - self.round_start).total_seconds()
            self.phase = phase_for_elapsed(elapsed)

    def _record_occurrence(
        self, scope: str, subject: str, action: str, impact: float, timestamp: datetime
    ) -> None:
        key = (scope, subject, action)
        occurrence = self._occurrences.get(key)
        if occurrence is None:
            occurrence = self._occurrences[key] = PatternOccurrence(scope, subject, action)
        occurrence.record(impact, timestamp)

    def _update_graph(self, event: DomainEvent, label: str, actor: str) -> CausalNode:
        micro = self.graph.add_node(
            NodeTier.MICRO, f"{label} by {actor}", event.timestamp, MICRO_NODE_CONFIDENCE
        )

        consequence = None
        if event.type == EventType.KILL and self.phase == Phase.EARLY:
            consequence = EARLY_DEATH_CONSEQUENCE
        elif label == "objective_lost":
            consequence = OBJECTIVE_LOSS_CONSEQUENCE
        elif label == "economy_deficit":
            consequence = ECONOMY_DEFICIT_CONSEQUENCE

        if consequence is not None:
            description, confidence, weight, evidence = consequence
            node = self.graph.add_node(NodeTier.INTERMEDIATE, description, event.timestamp, confidence)
            self.graph.add_edge(micro, node, weight, evidence)

        return micro

    def _update_debt(self, event: DomainEvent, impact: float, actor: str) -> None:
        if impact >= 0:
            return
        category = DEBT_CATEGORY_BY_EVENT.get(event.type, DebtCategory.TACTICAL)
        self.debt.add(impact, self.phase, category, actor, event.timestamp)

        # Linear decay of the running estimate by accumulated debt
        nudged = self.win_probability - DEBT_PROBABILITY_DECAY * self.debt.total
        self.win_probability = min(MAX_WIN_PROBABILITY, max(MIN_WIN_PROBABILITY, nudged))

    def _generate_insight(
        self, event: DomainEvent, impact: float, actor: str, history: deque[float]
    ) -> ValidatedInsight | None:
        if abs(impact) < MIN_INSIGHT_IMPACT:
            return None
        if not self.validator.has_enough_samples(len(history)):
            return None

        samples = list(history)
        test = self.validator.rank_sum_test(samples, [0.0] * len(samples))
        if not test.is_significant:
            return None

        interval = self.validator.confidence_interval(samples)
        mean_impact = float(np.mean(samples))

        insight = ValidatedInsight(
            insight_id=str(uuid.uuid4()),
            actor_id=actor,
            event_type=event.type.value,
            micro_action=f"{event.type.value} by {actor}",
            macro_outcome=infer_macro_outcome(mean_impact),
            causal_weight=abs(test.effect_size),
            recommendation=recommendation_for(actor, event.type.value, mean_impact, len(samples)),
            priority=priority_for(mean_impact, test.effect_size, test.p_value),
            p_value=test.p_value,
            confidence_interval=interval,
            sample_size=len(samples),
            data_quality=event.quality,
            timestamp=self._clock(),
            effect_size=test.effect_size,
        )
        self._insights.append(insight)
        self.insights_generated += 1
        logger.info(f"Insight for {actor} ({insight.priority}): p={test.p_value:.4f}, n={len(samples)}")
        return insight

    def _link_macro(self, micro: CausalNode, insight: ValidatedInsight) -> None:
        macro = self.graph.add_node(
            NodeTier.MACRO, insight.macro_outcome, micro.timestamp, 1 - insight.p_value
        )
        self.graph.add_edge(micro, macro, insight.causal_weight, (f"p={insight.p_value:.4f}",))

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def impact_history(self, actor_id: str, event_type: str) -> list[float]:
        return list(self._impact_history.get((actor_id, str(event_type)), ()))

    def insights(self, limit: int | None = None) -> list[ValidatedInsight]:
        """Emitted insights, newest first."""
        ordered = list(reversed(self._insights))
        return ordered[:limit] if limit else ordered

    def top_patterns(self, limit: int = 10) -> list[PatternOccurrence]:
        ranked = sorted(
            self._occurrences.values(),
            key=lambda o: (o.count, abs(o.cumulative_impact)),
            reverse=True,
        )
        return ranked[:limit]

    def performance_metrics(self) -> PerformanceMetrics:
        timings = list(self._processing_ms)
        qualities = list(self._qualities)
        return PerformanceMetrics(
            avg_processing_ms=float(np.mean(timings)) if timings else 0.0,
            max_processing_ms=max(timings) if timings else 0.0,
            events_processed=self.events_processed,
            insights_generated=self.insights_generated,
            data_quality_score=float(np.mean(qualities)) if qualities else 1.0,
            drops=self.drops,
        )

    def counterfactual(self, state: GameStateSnapshot, **changes: Any) -> WinProbabilityResult:
        """What-if estimate from the current debt, with ``changes`` applied on top."""
        changes.setdefault("strategy_debt", self.debt.total)
        changes.setdefault("phase", self.phase)
        return self.win_model.simulate_counterfactual(state, **changes)

    def reset(self) -> None:
        """Clear all session state, including the feature store and graph."""
        self.feature_store.clear()
        self.graph.clear()
        self.debt.reset()
        self.drops = DropCounters()
        self._reset_state()
        logger.info("Causal engine reset")
