"""
Statistical validation for coaching insights.

Every probabilistic claim surfaced to a coach carries a p-value, an
effect size and a confidence interval; the functions here are the single
gate that insight-producing components pass through. All functions are
pure. Tests that lack evidence return a non-significant result instead of
raising; contract violations (mismatched shapes, negative counts) raise.

Decision rule used everywhere: reject the null when p < 0.05.
"""

from __future__ import annotations

import logging
import math
from collections.abc import Sequence
from dataclasses import dataclass, field
from datetime import UTC, datetime
from typing import Any

import numpy as np
from scipy import stats

from stratyx.core.constants import DELAYED_MAX_AGE_MS, REAL_TIME_MAX_AGE_MS, Freshness
from stratyx.core.errors import InsufficientSample, ShapeMismatch
from stratyx.core.events import parse_timestamp
from stratyx.core.schemas import ConfidenceInterval, StatisticalTest

logger = logging.getLogger(__name__)

SIGNIFICANCE_THRESHOLD = 0.05
DEFAULT_CONFIDENCE_LEVEL = 0.95
OUTLIER_Z_THRESHOLD = 3.0

MIN_RANK_SUM_GROUP = 3
MIN_CORRELATION_SAMPLES = 10

# Minimum sample size per kind of test
MINIMUM_SAMPLES = {
    "correlation": 10,
    "ttest": 5,
    "chisquare": 5,
}


def _not_significant(test_name: str, confidence_level: float = DEFAULT_CONFIDENCE_LEVEL) -> StatisticalTest:
    return StatisticalTest(
        test_name=test_name,
        p_value=1.0,
        is_significant=False,
        effect_size=0.0,
        confidence_level=confidence_level,
    )


def _as_array(values: Sequence[float]) -> np.ndarray:
    return np.asarray(values, dtype=float)


# ============================================================================
# Interval estimation
# ============================================================================


def confidence_interval(
    samples: Sequence[float], level: float = DEFAULT_CONFIDENCE_LEVEL
) -> ConfidenceInterval:
    """
    Student's t confidence interval for the mean.

    Raises:
        InsufficientSample: fewer than 2 samples
        ValueError: level outside (0, 1)
    """
    if not 0.0 < level < 1.0:
        raise ValueError(f"Confidence level must be in (0, 1), got {level}")

    data = _as_array(samples)
    n = data.size
    if n < 2:
        raise InsufficientSample(required=2, actual=n)

    mean = float(data.mean())
    std_err = float(data.std(ddof=1)) / math.sqrt(n)
    t_critical = float(stats.t.ppf(1 - (1 - level) / 2, df=n - 1))
    margin = t_critical * std_err

    return ConfidenceInterval(
        lower=mean - margin,
        upper=mean + margin,
        mean=mean,
        confidence_level=level,
    )


def wilson_score_interval(
    successes: int, total: int, level: float = DEFAULT_CONFIDENCE_LEVEL
) -> ConfidenceInterval:
    """Wilson score interval for a proportion; better behaved than Wald for small n."""
    if successes < 0 or total < 0 or successes > total:
        raise ShapeMismatch(f"Invalid counts: {successes} successes of {total}")
    if total == 0:
        return ConfidenceInterval(lower=0.0, upper=0.0, mean=0.0, confidence_level=level)

    z = float(stats.norm.ppf(1 - (1 - level) / 2))
    p = successes / total
    denominator = 1 + z * z / total
    center = p + z * z / (2 * total)
    adjustment = z * math.sqrt((p * (1 - p) + z * z / (4 * total)) / total)

    return ConfidenceInterval(
        lower=max(0.0, (center - adjustment) / denominator),
        upper=min(1.0, (center + adjustment) / denominator),
        mean=p,
        confidence_level=level,
    )


@dataclass(frozen=True)
class BetaPosterior:
    alpha: float
    beta: float
    mean: float
    variance: float
    credible_interval: tuple[float, float]


def beta_posterior(
    successes: int, failures: int, prior_alpha: float = 1.0, prior_beta: float = 1.0
) -> BetaPosterior:
    """Beta-binomial posterior with a 95% equal-tailed credible interval."""
    if successes < 0 or failures < 0:
        raise ShapeMismatch("Success and failure counts must be non-negative")

    a = prior_alpha + successes
    b = prior_beta + failures
    dist = stats.beta(a, b)
    lower, upper = dist.ppf([0.025, 0.975])

    return BetaPosterior(
        alpha=a,
        beta=b,
        mean=float(dist.mean()),
        variance=float(dist.var()),
        credible_interval=(float(lower), float(upper)),
    )


# ============================================================================
# Hypothesis tests
# ============================================================================


def rank_sum_test(
    group_a: Sequence[float],
    group_b: Sequence[float],
    alpha: float = SIGNIFICANCE_THRESHOLD,
) -> StatisticalTest:
    """
    Mann-Whitney U rank-sum test (two-sided, normal approximation).

    Effect size is the rank-biserial magnitude ``1 - 2U/(n1*n2)`` with U the
    smaller of the two U statistics. Groups with fewer than 3 observations,
    or with no variation at all, yield a non-significant default.
    """
    a = _as_array(group_a)
    b = _as_array(group_b)
    n1, n2 = a.size, b.size

    if n1 < MIN_RANK_SUM_GROUP or n2 < MIN_RANK_SUM_GROUP:
        return _not_significant("Mann-Whitney U")

    combined = np.concatenate([a, b])
    if np.all(combined == combined[0]):
        return _not_significant("Mann-Whitney U")

    result = stats.mannwhitneyu(a, b, alternative="two-sided", method="asymptotic")
    u1 = float(result.statistic)
    u = min(u1, n1 * n2 - u1)
    p_value = float(result.pvalue)
    if math.isnan(p_value):
        return _not_significant("Mann-Whitney U")

    return StatisticalTest(
        test_name="Mann-Whitney U",
        p_value=p_value,
        is_significant=p_value < alpha,
        effect_size=1 - (2 * u) / (n1 * n2),
        statistic=u,
    )


def chi_square_test(
    observed: Sequence[float],
    expected: Sequence[float],
    alpha: float = SIGNIFICANCE_THRESHOLD,
) -> StatisticalTest:
    """
    Pearson chi-square goodness-of-fit test.

    Cells with zero expected count are skipped. Effect size is
    ``sqrt(chi2 / n)`` over the observed total.

    Raises:
        ShapeMismatch: arrays differ in length or contain negative counts
    """
    obs = _as_array(observed)
    exp = _as_array(expected)

    if obs.shape != exp.shape:
        raise ShapeMismatch(
            f"Observed and expected must have the same length ({obs.size} != {exp.size})"
        )
    if np.any(obs < 0) or np.any(exp < 0):
        raise ShapeMismatch("Chi-square counts must be non-negative")

    df = obs.size - 1
    if df < 1:
        return _not_significant("Chi-Square Test")

    mask = exp != 0
    chi2 = float(np.sum((obs[mask] - exp[mask]) ** 2 / exp[mask]))
    p_value = float(stats.chi2.sf(chi2, df))
    total = float(obs.sum())

    return StatisticalTest(
        test_name="Chi-Square Test",
        p_value=p_value,
        is_significant=p_value < alpha,
        effect_size=math.sqrt(chi2 / total) if total > 0 else 0.0,
        statistic=chi2,
    )


def correlation_test(
    x: Sequence[float],
    y: Sequence[float],
    alpha: float = SIGNIFICANCE_THRESHOLD,
) -> StatisticalTest:
    """
    Pearson correlation with a two-sided t-based p-value.

    Effect size is r itself. Fewer than 10 pairs, or a constant series,
    yield a non-significant default.

    Raises:
        ShapeMismatch: x and y differ in length
    """
    xs = _as_array(x)
    ys = _as_array(y)
    if xs.shape != ys.shape:
        raise ShapeMismatch(f"x and y must have the same length ({xs.size} != {ys.size})")

    n = xs.size
    if n < MIN_CORRELATION_SAMPLES or xs.std() == 0 or ys.std() == 0:
        return _not_significant("Pearson Correlation")

    r = float(np.corrcoef(xs, ys)[0, 1])
    df = n - 2
    if abs(r) >= 1.0:
        p_value = 0.0
        t_stat = math.inf
    else:
        t_stat = r * math.sqrt(df / (1 - r * r))
        p_value = float(2 * stats.t.sf(abs(t_stat), df))

    return StatisticalTest(
        test_name="Pearson Correlation",
        p_value=p_value,
        is_significant=p_value < alpha,
        effect_size=r,
        statistic=t_stat,
    )


def cohens_d(group_a: Sequence[float], group_b: Sequence[float]) -> float:
    """Standardized mean difference using the pooled standard deviation."""
    a = _as_array(group_a)
    b = _as_array(group_b)
    if a.size < 2 or b.size < 2:
        raise InsufficientSample(required=2, actual=min(a.size, b.size))

    pooled_var = ((a.size - 1) * a.var(ddof=1) + (b.size - 1) * b.var(ddof=1)) / (
        a.size + b.size - 2
    )
    if pooled_var == 0:
        return 0.0
    return float((a.mean() - b.mean()) / math.sqrt(pooled_var))


def has_minimum_sample_size(sample_size: int, test_kind: str = "ttest") -> bool:
    if sample_size < 0:
        raise ShapeMismatch(f"Sample size cannot be negative: {sample_size}")
    return sample_size >= MINIMUM_SAMPLES[test_kind]


# ============================================================================
# Change detection
# ============================================================================


@dataclass(frozen=True)
class CusumResult:
    change_points: list[int] = field(default_factory=list)
    directions: list[str] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        return {"changePoints": self.change_points, "direction": self.directions}


def cusum_detection(
    series: Sequence[float], target: float, threshold_sigma: float = 2.0
) -> CusumResult:
    """
    Two-sided CUSUM control chart.

    Slack is 0.5 sigma and the decision threshold is ``threshold_sigma``
    sigma, with sigma the sample standard deviation of the series. Each
    side resets to zero after flagging a change point.
    """
    values = _as_array(series)
    if values.size < 2:
        return CusumResult()

    sigma = float(values.std(ddof=1))
    if sigma == 0:
        return CusumResult()

    slack = 0.5 * sigma
    threshold = threshold_sigma * sigma
    upper = 0.0
    lower = 0.0
    change_points: list[int] = []
    directions: list[str] = []

    for i, value in enumerate(values):
        diff = float(value) - target
        upper = max(0.0, upper + diff - slack)
        lower = min(0.0, lower + diff + slack)

        if upper > threshold:
            change_points.append(i)
            directions.append("up")
            upper = 0.0

        if lower < -threshold:
            change_points.append(i)
            directions.append("down")
            lower = 0.0

    return CusumResult(change_points=change_points, directions=directions)


# ============================================================================
# Data quality
# ============================================================================


def is_outlier(value: float, dataset: Sequence[float], z_threshold: float = OUTLIER_Z_THRESHOLD) -> bool:
    """3-sigma outlier check; needs at least 3 reference points."""
    data = _as_array(dataset)
    if data.size < 3:
        return False

    mean = float(data.mean())
    std = float(data.std(ddof=1))
    if std == 0:
        return value != mean
    return abs((value - mean) / std) > z_threshold


@dataclass(frozen=True)
class CompletenessReport:
    complete: bool
    missing_count: int
    completeness_rate: float


def check_completeness(values: Sequence[Any]) -> CompletenessReport:
    total = len(values)
    missing = sum(1 for v in values if v is None or v == "")
    return CompletenessReport(
        complete=missing == 0,
        missing_count=missing,
        completeness_rate=(total - missing) / total if total else 1.0,
    )


def is_in_valid_range(value: float, minimum: float, maximum: float) -> bool:
    return minimum <= value <= maximum


def is_data_fresh(timestamp: str | datetime, max_age_ms: float = 10000, now: datetime | None = None) -> bool:
    """True when the timestamp is no older than max_age_ms. Unparseable timestamps are never fresh."""
    ts = parse_timestamp(timestamp)
    if ts is None:
        return False
    now = now or datetime.now(UTC)
    return (now - ts).total_seconds() * 1000 <= max_age_ms


def classify_freshness(age_ms: float) -> Freshness:
    if age_ms < REAL_TIME_MAX_AGE_MS:
        return Freshness.REAL_TIME
    if age_ms < DELAYED_MAX_AGE_MS:
        return Freshness.DELAYED
    return Freshness.STALE


# ============================================================================
# Configured validator
# ============================================================================


@dataclass(frozen=True)
class StatisticalValidator:
    """Binds configured thresholds to the pure functions above."""

    significance_threshold: float = SIGNIFICANCE_THRESHOLD
    confidence_level: float = DEFAULT_CONFIDENCE_LEVEL
    min_sample_size: int = 5

    @classmethod
    def from_config(cls, config) -> StatisticalValidator:
        return cls(
            significance_threshold=config.significance_threshold,
            confidence_level=config.confidence_level,
            min_sample_size=config.min_sample_size,
        )

    def has_enough_samples(self, n: int) -> bool:
        return n >= self.min_sample_size

    def confidence_interval(self, samples: Sequence[float]) -> ConfidenceInterval:
        return confidence_interval(samples, self.confidence_level)

    def rank_sum_test(self, group_a: Sequence[float], group_b: Sequence[float]) -> StatisticalTest:
        return rank_sum_test(group_a, group_b, alpha=self.significance_threshold)

    def chi_square_test(self, observed: Sequence[float], expected: Sequence[float]) -> StatisticalTest:
        return chi_square_test(observed, expected, alpha=self.significance_threshold)

    def correlation_test(self, x: Sequence[float], y: Sequence[float]) -> StatisticalTest:
        return correlation_test(x, y, alpha=self.significance_threshold)
