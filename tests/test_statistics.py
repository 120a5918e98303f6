"""Tests for the statistical validation functions."""

from datetime import UTC, datetime, timedelta

import pytest

from stratyx.analysis.statistics import (
    StatisticalValidator,
    beta_posterior,
    check_completeness,
    chi_square_test,
    classify_freshness,
    cohens_d,
    confidence_interval,
    correlation_test,
    cusum_detection,
    has_minimum_sample_size,
    is_data_fresh,
    is_outlier,
    rank_sum_test,
    wilson_score_interval,
)
from stratyx.core.config import StatisticsConfig
from stratyx.core.constants import Freshness
from stratyx.core.errors import InsufficientSample, ShapeMismatch


class TestConfidenceInterval:
    """Tests for the t-based confidence interval."""

    def test_bounds_contain_mean(self):
        ci = confidence_interval([1.0, 2.0, 3.0, 4.0, 5.0])
        assert ci.lower <= ci.mean <= ci.upper
        assert ci.mean == pytest.approx(3.0)

    def test_known_values(self):
        ci = confidence_interval([1.0, 2.0, 3.0, 4.0, 5.0], level=0.95)
        # t(0.975, 4) = 2.776, s/sqrt(n) = 0.7071
        assert ci.lower == pytest.approx(1.037, abs=1e-3)
        assert ci.upper == pytest.approx(4.963, abs=1e-3)

    def test_widens_with_level(self):
        samples = [0.1, 0.4, 0.35, 0.8, 0.2, 0.5]
        assert confidence_interval(samples, 0.99).width > confidence_interval(samples, 0.95).width

    def test_constant_samples_collapse(self):
        ci = confidence_interval([-0.195] * 5)
        assert ci.lower == ci.upper == pytest.approx(-0.195)

    def test_single_sample_raises(self):
        with pytest.raises(InsufficientSample):
            confidence_interval([1.0])

    @pytest.mark.parametrize("level", [0.0, 1.0, 1.5])
    def test_invalid_level(self, level):
        with pytest.raises(ValueError):
            confidence_interval([1.0, 2.0], level)


class TestRankSumTest:
    """Tests for the Mann-Whitney U test."""

    def test_small_groups_default(self):
        result = rank_sum_test([1.0, 2.0], [3.0, 4.0, 5.0])
        assert result.p_value == 1.0
        assert result.is_significant is False
        assert result.effect_size == 0.0

    def test_identical_values_default(self):
        result = rank_sum_test([0.0] * 5, [0.0] * 5)
        assert result.is_significant is False

    def test_separated_groups_significant(self):
        result = rank_sum_test([-0.195] * 5, [0.0] * 5)
        assert result.test_name == "Mann-Whitney U"
        assert result.is_significant is True
        assert result.p_value < 0.01
        assert result.effect_size == pytest.approx(1.0)
        assert result.statistic == 0.0

    def test_overlapping_groups_not_significant(self):
        result = rank_sum_test([1.0, 3.0, 5.0, 7.0], [2.0, 4.0, 6.0, 8.0])
        assert result.is_significant is False
        assert 0.0 <= result.effect_size <= 1.0


class TestChiSquareTest:
    """Tests for the chi-square goodness-of-fit test."""

    def test_shape_mismatch(self):
        with pytest.raises(ShapeMismatch):
            chi_square_test([1, 2, 3], [1, 2])

    def test_negative_counts(self):
        with pytest.raises(ShapeMismatch):
            chi_square_test([1, -2], [1, 2])

    def test_matching_distribution(self):
        result = chi_square_test([25, 25, 25, 25], [25, 25, 25, 25])
        assert result.p_value == pytest.approx(1.0)
        assert result.is_significant is False

    def test_skewed_distribution(self):
        result = chi_square_test([90, 10], [50, 50])
        assert result.is_significant is True
        assert result.effect_size > 0.5

    def test_single_cell(self):
        assert chi_square_test([5], [5]).p_value == 1.0


class TestCorrelationTest:
    """Tests for Pearson correlation."""

    def test_too_few_pairs(self):
        result = correlation_test(range(9), range(9))
        assert result.is_significant is False
        assert result.p_value == 1.0

    def test_perfect_correlation(self):
        result = correlation_test(range(12), [2 * x + 1 for x in range(12)])
        assert result.effect_size == pytest.approx(1.0)
        assert result.is_significant is True

    def test_negative_correlation(self):
        x = list(range(20))
        y = [-v + (0.5 if v % 2 else -0.5) for v in x]
        result = correlation_test(x, y)
        assert result.effect_size < -0.9
        assert result.p_value < 0.001

    def test_constant_series(self):
        assert correlation_test([1.0] * 12, range(12)).is_significant is False

    def test_length_mismatch(self):
        with pytest.raises(ShapeMismatch):
            correlation_test(range(10), range(11))


class TestEffectSizes:
    """Tests for Cohen's d and sample size checks."""

    def test_cohens_d(self):
        d = cohens_d([2.0, 4.0, 6.0], [1.0, 3.0, 5.0])
        assert d == pytest.approx(0.5)

    def test_cohens_d_zero_variance(self):
        assert cohens_d([1.0, 1.0], [1.0, 1.0]) == 0.0

    def test_cohens_d_insufficient(self):
        with pytest.raises(InsufficientSample):
            cohens_d([1.0], [1.0, 2.0])

    def test_minimum_sample_size(self):
        assert has_minimum_sample_size(10, "correlation") is True
        assert has_minimum_sample_size(4, "ttest") is False
        with pytest.raises(ShapeMismatch):
            has_minimum_sample_size(-1)


class TestProportions:
    """Tests for Wilson intervals and beta posteriors."""

    def test_wilson_contains_proportion(self):
        ci = wilson_score_interval(7, 10)
        assert 0.0 <= ci.lower < 0.7 < ci.upper <= 1.0

    def test_wilson_zero_total(self):
        assert wilson_score_interval(0, 0).width == 0.0

    def test_wilson_invalid_counts(self):
        with pytest.raises(ShapeMismatch):
            wilson_score_interval(5, 3)

    def test_beta_posterior(self):
        posterior = beta_posterior(8, 2)
        assert posterior.alpha == 9
        assert posterior.beta == 3
        assert posterior.mean == pytest.approx(0.75)
        low, high = posterior.credible_interval
        assert low < 0.75 < high


class TestCusum:
    """Tests for CUSUM change detection."""

    def test_detects_upward_step(self):
        series = [0.0] * 50 + [10.0] * 50
        result = cusum_detection(series, target=0.0)
        assert result.change_points
        assert all(cp >= 50 for cp in result.change_points)
        assert set(result.directions) == {"up"}

    def test_detects_downward_step(self):
        series = [5.0] * 10 + [-5.0] * 10
        result = cusum_detection(series, target=5.0)
        assert "down" in result.directions
        assert min(result.change_points) >= 10

    def test_flat_series(self):
        assert cusum_detection([1.0] * 20, target=1.0).change_points == []

    def test_to_dict(self):
        data = cusum_detection([0.0] * 10 + [10.0] * 10, target=0.0).to_dict()
        assert set(data) == {"changePoints", "direction"}


class TestDataQuality:
    """Tests for outlier, completeness and freshness checks."""

    def test_outlier(self):
        data = [10.0, 11.0, 9.0, 10.5, 9.5, 10.2, 9.8]
        assert is_outlier(100.0, data) is True
        assert is_outlier(10.3, data) is False

    def test_outlier_needs_reference_points(self):
        assert is_outlier(100.0, [1.0, 2.0]) is False

    def test_completeness(self):
        report = check_completeness([1, None, "", 4])
        assert report.complete is False
        assert report.missing_count == 2
        assert report.completeness_rate == 0.5

    def test_freshness(self):
        now = datetime(2024, 5, 1, 12, 0, 10, tzinfo=UTC)
        assert is_data_fresh(now - timedelta(seconds=5), max_age_ms=10000, now=now) is True
        assert is_data_fresh(now - timedelta(seconds=30), max_age_ms=10000, now=now) is False
        assert is_data_fresh("garbage", now=now) is False

    @pytest.mark.parametrize(
        "age_ms, expected",
        [(0, Freshness.REAL_TIME), (1999, Freshness.REAL_TIME), (2000, Freshness.DELAYED), (10000, Freshness.STALE)],
    )
    def test_classify_freshness(self, age_ms, expected):
        assert classify_freshness(age_ms) == expected


class TestStatisticalValidator:
    """Tests for the configured validator."""

    def test_from_config(self):
        validator = StatisticalValidator.from_config(
            StatisticsConfig(significance_threshold=0.01, min_sample_size=8, confidence_level=0.9)
        )
        assert validator.has_enough_samples(8) is True
        assert validator.has_enough_samples(7) is False
        assert validator.confidence_interval([1.0, 2.0, 3.0]).confidence_level == 0.9

    def test_threshold_applies(self):
        strict = StatisticalValidator(significance_threshold=0.001)
        result = strict.rank_sum_test([-0.195] * 5, [0.0] * 5)
        assert result.is_significant is False
