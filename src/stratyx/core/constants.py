"""
Stratyx - Constants

Enums, phase boundaries, impact tables and model weights shared by the
analytics components.
"""

from enum import StrEnum


class EventType(StrEnum):
    """Inbound match event types."""

    KILL = "kill"
    DEATH = "death"
    OBJECTIVE = "objective"
    ECONOMY = "economy"
    UTILITY = "utility"
    ROUND_START = "round_start"
    ROUND_END = "round_end"
    UNKNOWN = "unknown"


class Phase(StrEnum):
    """Phase within a round, derived from time since round start."""

    EARLY = "early"
    MID = "mid"
    LATE = "late"


class Outcome(StrEnum):
    """Outcome of a single action for the focus team."""

    POSITIVE = "positive"
    NEGATIVE = "negative"
    NEUTRAL = "neutral"


class Priority(StrEnum):
    HIGH = "high"
    MEDIUM = "medium"
    LOW = "low"


class NodeTier(StrEnum):
    """Tier of a node in the causal graph."""

    MICRO = "micro"
    INTERMEDIATE = "intermediate"
    MACRO = "macro"


class DebtCategory(StrEnum):
    INDIVIDUAL = "individual"
    TEAM = "team"
    TACTICAL = "tactical"
    ECONOMIC = "economic"


class Trend(StrEnum):
    INCREASING = "increasing"
    DECREASING = "decreasing"
    STABLE = "stable"


class Freshness(StrEnum):
    REAL_TIME = "real-time"
    DELAYED = "delayed"
    STALE = "stale"


# ============================================================================
# Event contract
# ============================================================================

# Fields each event type must carry in its data payload
REQUIRED_FIELDS: dict[str, tuple[str, ...]] = {
    EventType.KILL: ("attacker", "victim", "weapon"),
    EventType.OBJECTIVE: ("location", "action"),
    EventType.ECONOMY: ("amount", "action"),
    EventType.UTILITY: ("type", "playerId"),
}

# Quality score penalties
MISSING_CORE_FIELD_PENALTY = 0.5  # no type or no timestamp
INVALID_TIMESTAMP_PENALTY = 0.3
MISSING_DATA_PENALTY = 0.2  # scaled by the fraction of required fields missing

# ============================================================================
# Phase state machine
# ============================================================================

EARLY_PHASE_END_SECONDS = 30.0
MID_PHASE_END_SECONDS = 90.0

# Early mistakes compound, late mistakes matter less to round outcome
PHASE_MULTIPLIERS: dict[Phase, float] = {
    Phase.EARLY: 1.3,
    Phase.MID: 1.0,
    Phase.LATE: 0.8,
}

# ============================================================================
# Impact model
# ============================================================================

# Base impact per (event type, action) before phase multiplier. Kills are
# scored from the victim's side, so they count against the victim's team.
BASE_IMPACTS: dict[str, float] = {
    "kill": -0.15,
    "death": -0.15,
    "objective_lost": -0.15,
    "objective_captured": 0.20,
    "objective_defended": 0.15,
    "economy_deficit": -0.10,
    "economy_bonus": 0.05,
    "utility_wasted": -0.05,
    "utility_effective": 0.10,
}

HEADSHOT_MULTIPLIER = 1.1
CRITICAL_MULTIPLIER = 1.2

# Economy deficits above this are treated as a strategic setback
ECONOMY_DEFICIT_THRESHOLD = 5000

# Only events at least this impactful are candidates for insights
MIN_INSIGHT_IMPACT = 0.1

# Impact history window per (actor, event type)
IMPACT_HISTORY_SIZE = 20

# ============================================================================
# Strategy debt
# ============================================================================

MAX_STRATEGY_DEBT = 100.0
MAX_ITEM_DEBT = 20.0  # per-source cap on a single debt item
DEBT_LEVELS = ((30.0, "healthy"), (60.0, "warning"), (80.0, "high"))

DEBT_CATEGORY_BY_EVENT: dict[str, DebtCategory] = {
    EventType.KILL: DebtCategory.INDIVIDUAL,
    EventType.DEATH: DebtCategory.INDIVIDUAL,
    EventType.UTILITY: DebtCategory.TEAM,
    EventType.OBJECTIVE: DebtCategory.TACTICAL,
    EventType.ECONOMY: DebtCategory.ECONOMIC,
}

# Linear decay applied to the running win probability per point of debt
DEBT_PROBABILITY_DECAY = 0.002

# ============================================================================
# Win probability model
# ============================================================================

WIN_PROBABILITY_WEIGHTS: dict[str, float] = {
    "score_advantage": 0.25,
    "economy_advantage": 0.20,
    "man_advantage": 0.30,
    "objective_control": 0.15,
    "strategy_debt": -0.10,
}

MIN_WIN_PROBABILITY = 0.05
MAX_WIN_PROBABILITY = 0.95
MIN_MODEL_CONFIDENCE = 0.3
SIGMOID_STEEPNESS = 4.0
# Logits are bounded before the sigmoid; NaN maps to an even logit
MAX_LOGIT = 10.0
TREND_DEAD_BAND = 0.02
RECENT_TREND_DEAD_BAND = 0.03
PROBABILITY_HISTORY_SIZE = 100

ROUNDS_TO_WIN = 13
ECONOMY_SCALE = 10000.0
MAX_MAN_ADVANTAGE = 5.0

# ============================================================================
# Freshness
# ============================================================================

REAL_TIME_MAX_AGE_MS = 2000
DELAYED_MAX_AGE_MS = 10000
