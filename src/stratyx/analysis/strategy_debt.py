"""
Strategy debt ledger.

Accumulates the cost of small in-match mistakes into a capped 0-100 score
with per-phase buckets, a per-category breakdown and per-source items.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any

from stratyx.core.constants import (
    DEBT_LEVELS,
    MAX_ITEM_DEBT,
    MAX_STRATEGY_DEBT,
    DebtCategory,
    Phase,
)

logger = logging.getLogger(__name__)

DEBT_SCALE = 100.0

RECOMMENDATIONS: dict[DebtCategory, str] = {
    DebtCategory.INDIVIDUAL: "Review {source} positioning and duel selection",
    DebtCategory.TEAM: "Coordinate utility usage around {source}",
    DebtCategory.TACTICAL: "Rework the plan for {source}; repeated objective losses",
    DebtCategory.ECONOMIC: "Tighten buy discipline for {source}",
}


def debt_level(total: float) -> str:
    for ceiling, label in DEBT_LEVELS:
        if total < ceiling:
            return label
    return "critical"


@dataclass
class StrategyDebtItem:
    """Debt attributed to one (category, source) pair; contribution capped per item."""

    category: DebtCategory
    source: str
    contribution: float = 0.0
    occurrences: int = 0
    last_seen: datetime | None = None

    @property
    def recommendation(self) -> str:
        return RECOMMENDATIONS[self.category].format(source=self.source)

    def to_dict(self) -> dict[str, Any]:
        return {
            "category": self.category.value,
            "source": self.source,
            "contribution": round(self.contribution, 2),
            "occurrences": self.occurrences,
            "recommendation": self.recommendation,
            "lastSeen": self.last_seen.isoformat() if self.last_seen else None,
        }


@dataclass
class StrategyDebt:
    """Running strategy debt for one match session."""

    total: float = 0.0
    phase_debt: dict[Phase, float] = field(default_factory=lambda: {p: 0.0 for p in Phase})
    breakdown: dict[DebtCategory, float] = field(
        default_factory=lambda: {c: 0.0 for c in DebtCategory}
    )
    _items: dict[tuple[DebtCategory, str], StrategyDebtItem] = field(
        default_factory=dict, init=False, repr=False
    )

    def add(
        self,
        impact: float,
        phase: Phase,
        category: DebtCategory,
        source: str,
        timestamp: datetime | None = None,
    ) -> float:
        """
        Record a negative-impact action.

        Adds ``|impact| * 100`` to the total (clamped to 100), the phase bucket
        and the category breakdown. Non-negative impacts add nothing.

        Returns:
            The amount actually added to the total
        """
        if impact >= 0:
            return 0.0

        increase = abs(impact) * DEBT_SCALE
        before = self.total
        self.total = min(MAX_STRATEGY_DEBT, self.total + increase)
        self.phase_debt[phase] += increase
        self.breakdown[category] += increase

        item = self._items.get((category, source))
        if item is None:
            item = StrategyDebtItem(category=category, source=source)
            self._items[(category, source)] = item
        item.contribution = min(MAX_ITEM_DEBT, item.contribution + increase)
        item.occurrences += 1
        item.last_seen = timestamp

        if before < MAX_STRATEGY_DEBT <= self.total:
            logger.warning(f"Strategy debt reached the {MAX_STRATEGY_DEBT:.0f} cap")

        return self.total - before

    @property
    def level(self) -> str:
        return debt_level(self.total)

    def items(self, limit: int | None = None) -> list[StrategyDebtItem]:
        ranked = sorted(self._items.values(), key=lambda i: i.contribution, reverse=True)
        return ranked[:limit] if limit else ranked

    def reset(self) -> None:
        self.total = 0.0
        self.phase_debt = {p: 0.0 for p in Phase}
        self.breakdown = {c: 0.0 for c in DebtCategory}
        self._items.clear()

    def to_dict(self) -> dict[str, Any]:
        return {
            "total": round(self.total, 2),
            "level": self.level,
            "phaseDebt": {p.value: round(v, 2) for p, v in self.phase_debt.items()},
            "breakdown": {c.value: round(v, 2) for c, v in self.breakdown.items()},
            "items": [i.to_dict() for i in self.items()],
        }
