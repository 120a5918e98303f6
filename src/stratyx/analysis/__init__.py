"""
Stratyx Analysis - Event-to-insight analytics.

This module contains:
- feature_store: bounded log of derived temporal features
- statistics: significance tests, intervals and data quality checks
- causal_graph / strategy_debt: state grown by the causal engine
- causal_engine: per-event incremental processor
- patterns: batch pattern scans over stored features
- win_probability: weighted-logistic win-probability model
"""

from stratyx.analysis.causal_engine import CausalEngine, DropCounters, PerformanceMetrics
from stratyx.analysis.causal_graph import CausalEdge, CausalGraph, CausalNode
from stratyx.analysis.feature_store import FeatureMetadata, TemporalFeatureStore
from stratyx.analysis.patterns import (
    DetectedPattern,
    PatternAnalyzer,
    PatternType,
    PlayerBehaviorPattern,
    SequencePattern,
)
from stratyx.analysis.statistics import StatisticalValidator
from stratyx.analysis.strategy_debt import StrategyDebt, StrategyDebtItem
from stratyx.analysis.win_probability import (
    MonteCarloSummary,
    WinProbabilityFactor,
    WinProbabilityModel,
    WinProbabilityResult,
)

__all__: list[str] = [
    "CausalEngine",
    "DropCounters",
    "PerformanceMetrics",
    "CausalEdge",
    "CausalGraph",
    "CausalNode",
    "FeatureMetadata",
    "TemporalFeatureStore",
    "DetectedPattern",
    "PatternAnalyzer",
    "PatternType",
    "PlayerBehaviorPattern",
    "SequencePattern",
    "StatisticalValidator",
    "StrategyDebt",
    "StrategyDebtItem",
    "MonteCarloSummary",
    "WinProbabilityFactor",
    "WinProbabilityModel",
    "WinProbabilityResult",
]
