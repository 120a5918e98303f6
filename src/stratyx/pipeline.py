"""
Coaching pipeline session.

Explicitly constructed session object that wires the delivery layer, the
causal engine, the feature store, the pattern analyzer and the
win-probability model for one match. Nothing here is global: create one
pipeline per match and call :meth:`CoachingPipeline.reset` (or build a new
one) between matches.
"""

from __future__ import annotations

import logging
from collections.abc import Callable, Mapping
from datetime import datetime
from typing import Any

from stratyx.analysis.causal_engine import CausalEngine
from stratyx.analysis.feature_store import TemporalFeatureStore
from stratyx.analysis.patterns import DetectedPattern, PatternAnalyzer
from stratyx.analysis.win_probability import WinProbabilityModel, WinProbabilityResult
from stratyx.core.config import StratyxConfig
from stratyx.core.schemas import GameStateSnapshot, ValidatedInsight
from stratyx.realtime.sync import EventSource, RealTimeSyncService, StateFetcher

logger = logging.getLogger(__name__)


class CoachingPipeline:
    """One match session: raw events in, insights, debt and win probability out."""

    def __init__(
        self,
        config: StratyxConfig | None = None,
        source: EventSource | None = None,
        fetch_state: StateFetcher | None = None,
        clock: Callable[[], datetime] | None = None,
    ):
        self.config = config or StratyxConfig()
        self.feature_store = TemporalFeatureStore(self.config.engine.feature_store_capacity)
        self.win_model = WinProbabilityModel()
        self.engine = CausalEngine(
            config=self.config,
            feature_store=self.feature_store,
            win_model=self.win_model,
            clock=clock,
        )
        self.patterns = PatternAnalyzer(self.config.patterns)
        self.sync = RealTimeSyncService(source=source, fetch_state=fetch_state, config=self.config.sync)
        self.sync.on_event(self.ingest)
        self.sync.on_state_update(self._on_state)

        self.game_state: GameStateSnapshot | None = None
        self.last_result: WinProbabilityResult | None = None
        self._insight_listeners: list[Callable[[ValidatedInsight], Any]] = []

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    async def start(self) -> None:
        await self.sync.start()

    async def stop(self) -> None:
        await self.sync.stop()

    def reset(self) -> None:
        """Clear every component for a new match."""
        self.engine.reset()
        self.win_model.reset()
        self.patterns.clear()
        self.game_state = None
        self.last_result = None
        logger.info("Pipeline reset")

    # ------------------------------------------------------------------
    # Inbound
    # ------------------------------------------------------------------

    def on_insight(self, listener: Callable[[ValidatedInsight], Any]) -> None:
        self._insight_listeners.append(listener)

    def ingest(self, raw: Mapping[str, Any]) -> ValidatedInsight | None:
        """Process one raw event synchronously through the causal engine."""
        insight = self.engine.process(raw)
        if insight is not None:
            for listener in self._insight_listeners:
                listener(insight)
        return insight

    async def publish(self, raw: Mapping[str, Any]) -> None:
        """Queue one raw event through the delivery layer."""
        await self.sync.publish(raw)

    def update_game_state(self, state: GameStateSnapshot | Mapping[str, Any]) -> WinProbabilityResult:
        if not isinstance(state, GameStateSnapshot):
            state = GameStateSnapshot.from_dict(state)
        self.game_state = state
        self.last_result = self.win_model.calculate(state)
        return self.last_result

    def _on_state(self, state: Mapping[str, Any]) -> None:
        self.update_game_state(state)

    # ------------------------------------------------------------------
    # Outbound
    # ------------------------------------------------------------------

    def latest_insights(self, limit: int = 20) -> list[ValidatedInsight]:
        return self.engine.insights(limit)

    def scan_patterns(self) -> list[DetectedPattern]:
        return self.patterns.analyze(self.feature_store.all_features())

    def snapshot(self) -> dict[str, Any]:
        """Everything a dashboard needs in one JSON-ready dict."""
        return {
            "winProbability": self.engine.win_probability,
            "model": self.last_result.to_dict() if self.last_result else None,
            "recentTrend": self.win_model.recent_trend().value,
            "phase": self.engine.phase.value,
            "strategyDebt": self.engine.debt.to_dict(),
            "insights": [i.to_dict() for i in self.latest_insights(10)],
            "topPatterns": [p.to_dict() for p in self.engine.top_patterns(5)],
            "performance": self.engine.performance_metrics().to_dict(),
            "sync": self.sync.get_status().to_dict(),
            "monitor": self.sync.monitor.summary(),
            "featureCount": self.feature_store.size(),
        }
