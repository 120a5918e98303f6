"""
Win-probability estimator.

Weighted-logistic model over five named factors (score, economy, man
advantage, objective control, strategy debt). The logit is passed through
a steepened sigmoid and clamped to [0.05, 0.95] so the model never claims
certainty. Confidence falls as the factor contributions disagree.

Monte Carlo uncertainty estimation is vectorized with numpy, never touches
the model's history, and can be pushed to a worker thread with
:meth:`WinProbabilityModel.monte_carlo_async` to keep it off the hot path.
"""

from __future__ import annotations

import asyncio
import logging
from collections import deque
from dataclasses import dataclass, field, replace
from datetime import UTC, datetime
from typing import Any

import numpy as np

from stratyx.core.constants import (
    ECONOMY_SCALE,
    MAX_MAN_ADVANTAGE,
    MAX_LOGIT,
    MAX_STRATEGY_DEBT,
    MAX_WIN_PROBABILITY,
    MIN_MODEL_CONFIDENCE,
    MIN_WIN_PROBABILITY,
    PROBABILITY_HISTORY_SIZE,
    RECENT_TREND_DEAD_BAND,
    ROUNDS_TO_WIN,
    SIGMOID_STEEPNESS,
    TREND_DEAD_BAND,
    WIN_PROBABILITY_WEIGHTS,
    Trend,
)
from stratyx.core.schemas import GameStateSnapshot

logger = logging.getLogger(__name__)

DEFAULT_ITERATIONS = 1000

# Half-widths of the uniform noise applied per Monte Carlo iteration
ECONOMY_NOISE = 1000.0
MAN_ADVANTAGE_NOISE = 0.25
OBJECTIVE_NOISE = 0.05
DEBT_NOISE = 5.0

FACTOR_LABELS = {
    "score_advantage": "Score Advantage",
    "economy_advantage": "Economy Advantage",
    "man_advantage": "Man Advantage",
    "objective_control": "Objective Control",
    "strategy_debt": "Strategy Debt",
}


# ============================================================================
# Result types
# ============================================================================


@dataclass(frozen=True)
class WinProbabilityFactor:
    """One named contribution to the logit."""

    name: str
    weight: float
    value: float
    contribution: float

    def to_dict(self) -> dict[str, Any]:
        return {
            "name": self.name,
            "weight": self.weight,
            "value": round(self.value, 4),
            "contribution": round(self.contribution, 4),
        }


@dataclass(frozen=True)
class WinProbabilityResult:
    probability: float
    confidence: float
    factors: list[WinProbabilityFactor] = field(default_factory=list)
    trend: Trend = Trend.STABLE
    delta: float = 0.0

    def to_dict(self) -> dict[str, Any]:
        return {
            "probability": round(self.probability, 4),
            "confidence": round(self.confidence, 4),
            "factors": [f.to_dict() for f in self.factors],
            "trend": self.trend.value,
            "delta": round(self.delta, 4),
        }


@dataclass(frozen=True)
class ProbabilityPoint:
    timestamp: datetime
    probability: float

    def to_dict(self) -> dict[str, Any]:
        return {"timestamp": self.timestamp.isoformat(), "probability": self.probability}


@dataclass(frozen=True)
class MonteCarloSummary:
    iterations: int
    mean: float
    median: float
    std_dev: float
    p10: float
    p25: float
    p75: float
    p90: float

    def to_dict(self) -> dict[str, Any]:
        return {
            "iterations": self.iterations,
            "mean": self.mean,
            "median": self.median,
            "stdDev": self.std_dev,
            "percentiles": {"p10": self.p10, "p25": self.p25, "p75": self.p75, "p90": self.p90},
        }


# ============================================================================
# Factor math
# ============================================================================


def _normalized_factors(
    score_diff: np.ndarray | float,
    economy_diff: np.ndarray | float,
    man_advantage: np.ndarray | float,
    objectives_controlled: np.ndarray | float,
    strategy_debt: np.ndarray | float,
) -> dict[str, np.ndarray | float]:
    """Normalize raw inputs to the factor scale; works on scalars and arrays alike."""
    return {
        "score_advantage": np.asarray(score_diff) / ROUNDS_TO_WIN,
        "economy_advantage": np.tanh(np.asarray(economy_diff) / ECONOMY_SCALE),
        "man_advantage": np.asarray(man_advantage) / MAX_MAN_ADVANTAGE,
        "objective_control": (np.asarray(objectives_controlled) - 0.5) * 2,
        "strategy_debt": np.minimum(np.asarray(strategy_debt) / MAX_STRATEGY_DEBT, 1.0),
    }


def _probability_from_logit(logit: np.ndarray | float) -> np.ndarray:
    bounded = np.clip(np.nan_to_num(np.asarray(logit, dtype=float), nan=0.0), -MAX_LOGIT, MAX_LOGIT)
    raw = 1.0 / (1.0 + np.exp(-SIGMOID_STEEPNESS * bounded))
    return np.clip(raw, MIN_WIN_PROBABILITY, MAX_WIN_PROBABILITY)


def factor_confidence(contributions: list[float]) -> float:
    """1 - 2*variance of the contributions, floored at 0.3."""
    variance = float(np.var(contributions)) if contributions else 0.0
    if not np.isfinite(variance):
        return MIN_MODEL_CONFIDENCE
    return max(MIN_MODEL_CONFIDENCE, 1.0 - min(variance * 2, 1.0))


def classify_trend(delta: float, dead_band: float = TREND_DEAD_BAND) -> Trend:
    if abs(delta) < dead_band:
        return Trend.STABLE
    return Trend.INCREASING if delta > 0 else Trend.DECREASING


# ============================================================================
# Model
# ============================================================================


class WinProbabilityModel:
    """Stateful estimator: remembers the previous probability and a bounded history."""

    def __init__(self, weights: dict[str, float] | None = None, history_size: int = PROBABILITY_HISTORY_SIZE):
        self.weights = dict(weights or WIN_PROBABILITY_WEIGHTS)
        self._previous = 0.5
        self._history: deque[ProbabilityPoint] = deque(maxlen=history_size)

    def evaluate(self, state: GameStateSnapshot) -> tuple[float, list[WinProbabilityFactor]]:
        """Probability and factors for a state without recording it."""
        values = _normalized_factors(
            state.score_home - state.score_away,
            state.economy_diff,
            state.man_advantage,
            state.objectives_controlled,
            state.strategy_debt,
        )
        factors = [
            WinProbabilityFactor(
                name=FACTOR_LABELS[key],
                weight=self.weights[key],
                value=float(value),
                contribution=self.weights[key] * float(value),
            )
            for key, value in values.items()
        ]
        logit = sum(f.contribution for f in factors)
        return float(_probability_from_logit(logit)), factors

    def calculate(self, state: GameStateSnapshot) -> WinProbabilityResult:
        """Compute the probability for ``state`` and append it to the history."""
        result = self._result(state)
        self._previous = result.probability
        self._history.append(ProbabilityPoint(timestamp=datetime.now(UTC), probability=result.probability))
        return result

    def simulate_counterfactual(self, state: GameStateSnapshot, **changes: Any) -> WinProbabilityResult:
        """What-if: recompute with some snapshot fields replaced. Leaves the history and trend untouched."""
        return self._result(replace(state, **changes))

    def _result(self, state: GameStateSnapshot) -> WinProbabilityResult:
        probability, factors = self.evaluate(state)
        delta = probability - self._previous
        return WinProbabilityResult(
            probability=probability,
            confidence=factor_confidence([f.contribution for f in factors]),
            factors=factors,
            trend=classify_trend(delta),
            delta=delta,
        )

    def history(self) -> list[ProbabilityPoint]:
        return list(self._history)

    def recent_trend(self, window: int = 10) -> Trend:
        """Compare the mean of the two halves of the last ``window`` probabilities."""
        if len(self._history) < window or window < 2:
            return Trend.STABLE

        recent = [p.probability for p in list(self._history)[-window:]]
        half = window // 2
        diff = float(np.mean(recent[half:]) - np.mean(recent[:half]))
        return classify_trend(diff, RECENT_TREND_DEAD_BAND)

    def monte_carlo(
        self,
        state: GameStateSnapshot,
        iterations: int = DEFAULT_ITERATIONS,
        seed: int | None = None,
        rng: np.random.Generator | None = None,
    ) -> MonteCarloSummary:
        """
        Perturb the snapshot with bounded uniform noise and summarize the
        resulting probability distribution.

        Args:
            state: Base game state
            iterations: Number of perturbed samples
            seed: Seed for a fresh generator (ignored when rng is given)
            rng: Explicit numpy Generator
        """
        if iterations < 1:
            raise ValueError(f"iterations must be positive, got {iterations}")
        rng = rng or np.random.default_rng(seed)

        def noise(half_width: float) -> np.ndarray:
            return rng.uniform(-half_width, half_width, size=iterations)

        values = _normalized_factors(
            np.full(iterations, state.score_home - state.score_away, dtype=float),
            state.economy_diff + noise(ECONOMY_NOISE),
            state.man_advantage + noise(MAN_ADVANTAGE_NOISE),
            np.clip(state.objectives_controlled + noise(OBJECTIVE_NOISE), 0.0, 1.0),
            np.maximum(state.strategy_debt + noise(DEBT_NOISE), 0.0),
        )
        logit = sum(self.weights[key] * value for key, value in values.items())
        samples = _probability_from_logit(logit)

        p10, p25, p75, p90 = np.percentile(samples, [10, 25, 75, 90])
        return MonteCarloSummary(
            iterations=iterations,
            mean=float(samples.mean()),
            median=float(np.median(samples)),
            std_dev=float(samples.std()),
            p10=float(p10),
            p25=float(p25),
            p75=float(p75),
            p90=float(p90),
        )

    async def monte_carlo_async(
        self, state: GameStateSnapshot, iterations: int = DEFAULT_ITERATIONS, seed: int | None = None
    ) -> MonteCarloSummary:
        """Run :meth:`monte_carlo` in a worker thread."""
        return await asyncio.to_thread(self.monte_carlo, state, iterations, seed)

    def reset(self) -> None:
        self._previous = 0.5
        self._history.clear()
