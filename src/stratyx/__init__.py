"""
Stratyx - Real-time causal coaching analytics

Turns a live stream of match events into statistically validated coaching
insights, a strategy debt score and a running win-probability estimate.

Usage:
    from stratyx import CoachingPipeline

    pipeline = CoachingPipeline()
    for raw in events:
        insight = pipeline.ingest(raw)
        if insight:
            print(insight.recommendation)
"""

__version__ = "0.3.0"
__author__ = "Stratyx Contributors"


def __getattr__(name):
    """Lazy import for heavy dependencies."""
    if name == "CoachingPipeline":
        from stratyx.pipeline import CoachingPipeline
        return CoachingPipeline
    elif name == "CausalEngine":
        from stratyx.analysis.causal_engine import CausalEngine
        return CausalEngine
    elif name == "PatternAnalyzer":
        from stratyx.analysis.patterns import PatternAnalyzer
        return PatternAnalyzer
    elif name == "WinProbabilityModel":
        from stratyx.analysis.win_probability import WinProbabilityModel
        return WinProbabilityModel
    elif name == "RealTimeSyncService":
        from stratyx.realtime.sync import RealTimeSyncService
        return RealTimeSyncService
    elif name == "load_config":
        from stratyx.core.config import load_config
        return load_config
    raise AttributeError(f"module 'stratyx' has no attribute '{name}'")


__all__ = [
    # Version
    "__version__",
    # Session
    "CoachingPipeline",
    # Components
    "CausalEngine",
    "PatternAnalyzer",
    "WinProbabilityModel",
    "RealTimeSyncService",
    # Config
    "load_config",
]
