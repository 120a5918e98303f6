"""Tests for batch pattern detection."""

from datetime import UTC, datetime, timedelta

import pytest

from stratyx.analysis.patterns import PatternAnalyzer, PatternType, features_to_frame
from stratyx.core.config import PatternConfig
from stratyx.core.constants import Outcome, Phase
from stratyx.core.schemas import TemporalFeature

BASE = datetime(2024, 5, 1, 12, 0, 0, tzinfo=UTC)


def _make_feature(
    offset_s: float,
    actor: str = "X",
    label: str = "kill",
    impact: float = -0.2,
    phase: Phase = Phase.EARLY,
) -> TemporalFeature:
    if impact > 0:
        outcome = Outcome.POSITIVE
    elif impact < 0:
        outcome = Outcome.NEGATIVE
    else:
        outcome = Outcome.NEUTRAL
    return TemporalFeature(
        feature_id=f"f{offset_s}",
        timestamp=BASE + timedelta(seconds=offset_s),
        event_type=label.split("_")[0],
        actor_id=actor,
        action_label=label,
        phase=phase,
        outcome=outcome,
        impact_score=impact,
    )


def _by_type(patterns, pattern_type):
    return [p for p in patterns if p.pattern_type == pattern_type]


class TestFeaturesToFrame:
    """Tests for tabulating features."""

    def test_empty(self):
        df = features_to_frame([])
        assert df.empty
        assert "impact_score" in df.columns

    def test_rows_in_order(self):
        df = features_to_frame([_make_feature(0), _make_feature(5, actor="Y")])
        assert list(df["actor_id"]) == ["X", "Y"]


class TestPatternAnalyzer:
    """Tests for PatternAnalyzer.analyze and its detectors."""

    def test_too_few_features(self):
        analyzer = PatternAnalyzer()
        assert analyzer.analyze([_make_feature(0), _make_feature(1)]) == []

    def test_recurring_mistake(self):
        analyzer = PatternAnalyzer()
        patterns = analyzer.analyze([_make_feature(i) for i in range(3)])
        mistakes = _by_type(patterns, PatternType.RECURRING_MISTAKE)
        assert len(mistakes) == 1
        mistake = mistakes[0]
        assert mistake.description == "X repeatedly kill"
        assert mistake.occurrences == 3
        assert mistake.confidence == pytest.approx(0.8)
        assert mistake.impact_score == pytest.approx(-0.2)
        assert mistake.players_involved == ["X"]
        assert mistake.phases == [Phase.EARLY]
        assert mistake.first_seen == BASE
        assert mistake.last_seen == BASE + timedelta(seconds=2)

    def test_vulnerability_per_phase(self):
        analyzer = PatternAnalyzer()
        features = [_make_feature(i, actor=a) for i, a in enumerate(["X", "Y", "Z"])]
        features.append(_make_feature(50, phase=Phase.MID))
        patterns = analyzer.analyze(features)
        vulnerabilities = _by_type(patterns, PatternType.VULNERABILITY)
        assert len(vulnerabilities) == 1
        assert vulnerabilities[0].description == "Early-game vulnerability: kill"
        assert vulnerabilities[0].players_involved == ["X", "Y", "Z"]
        assert vulnerabilities[0].confidence == pytest.approx(0.84)
        assert _by_type(patterns, PatternType.RECURRING_MISTAKE) == []

    def test_success_sequence(self):
        analyzer = PatternAnalyzer()
        features = [
            _make_feature(0, label="utility_effective", impact=0.13),
            _make_feature(10, label="objective_captured", impact=0.26),
            _make_feature(20, label="objective_defended", impact=0.2),
        ]
        sequences = _by_type(analyzer.analyze(features), PatternType.SUCCESS_SEQUENCE)
        assert len(sequences) == 1
        assert sequences[0].confidence == pytest.approx(0.72)
        assert sequences[0].occurrences == 1
        assert "utility_effective -> objective_captured -> objective_defended" in sequences[0].description

    def test_success_sequence_broken_by_gap(self):
        analyzer = PatternAnalyzer()
        features = [
            _make_feature(0, label="utility_effective", impact=0.13),
            _make_feature(10, label="objective_captured", impact=0.26),
            _make_feature(80, label="objective_defended", impact=0.2),
        ]
        assert _by_type(analyzer.analyze(features), PatternType.SUCCESS_SEQUENCE) == []

    def test_identical_chains_merged(self):
        analyzer = PatternAnalyzer()
        features = [_make_feature(i * 5, label="objective_captured", impact=0.26) for i in range(5)]
        sequences = _by_type(analyzer.analyze(features), PatternType.SUCCESS_SEQUENCE)
        assert len(sequences) == 1
        assert sequences[0].occurrences == 3

    def test_strength(self):
        analyzer = PatternAnalyzer()
        features = [_make_feature(i * 100, label="objective_captured", impact=0.7) for i in range(3)]
        strengths = _by_type(analyzer.analyze(features), PatternType.STRENGTH)
        assert len(strengths) == 1
        assert strengths[0].confidence == pytest.approx(0.86)
        assert strengths[0].impact_score == pytest.approx(0.7)

    def test_confidence_floor(self):
        analyzer = PatternAnalyzer(PatternConfig(min_confidence=0.92))
        assert analyzer.analyze([_make_feature(i) for i in range(3)]) == []
        patterns = analyzer.analyze([_make_feature(i) for i in range(5)])
        assert [p.pattern_type for p in patterns] == [PatternType.RECURRING_MISTAKE]

    def test_top_patterns_and_clear(self):
        analyzer = PatternAnalyzer()
        analyzer.analyze([_make_feature(i) for i in range(3)])
        assert len(analyzer.top_patterns()) == 2
        analyzer.clear()
        assert analyzer.top_patterns() == []

    def test_to_dict(self):
        analyzer = PatternAnalyzer()
        data = analyzer.analyze([_make_feature(i) for i in range(3)])[0].to_dict()
        assert data["type"] == "recurring_mistake"
        assert data["phases"] == ["early"]
        assert data["firstSeen"] == BASE.isoformat()


class TestPlayerAndSequences:
    """Tests for player summaries and sliding-window sequences."""

    def test_analyze_player(self):
        analyzer = PatternAnalyzer()
        features = [_make_feature(i) for i in range(3)] + [_make_feature(10, actor="Y", impact=0.1)]
        behavior = analyzer.analyze_player("X", features)
        assert behavior.risk_score == pytest.approx(4.0)
        assert behavior.strength_score == 0.0
        assert behavior.consistency == pytest.approx(0.95)

    def test_detect_sequences(self):
        analyzer = PatternAnalyzer()
        labels = ["kill", "utility_wasted", "kill", "utility_wasted", "kill"]
        features = [_make_feature(i, label=label, impact=-0.4) for i, label in enumerate(labels)]
        sequences = analyzer.detect_sequences(features, window_size=2)
        assert {tuple(s.sequence) for s in sequences} == {
            ("kill", "utility_wasted"),
            ("utility_wasted", "kill"),
        }
        assert all(s.frequency == 2 for s in sequences)
        assert all(s.is_problematic for s in sequences)

    def test_detect_sequences_invalid_window(self):
        with pytest.raises(ValueError):
            PatternAnalyzer().detect_sequences([_make_feature(0)], window_size=0)
