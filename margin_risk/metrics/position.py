"""
Position Risk Evaluator - Health factor (risk ratio) of margin positions
"""

from dataclasses import dataclass
from typing import Dict, List, Sequence

from ..config import DEFAULT_POLICY, RiskPolicy
from ..state.models import Position

SENTINEL_SAFE = DEFAULT_POLICY.sentinel_safe_risk_ratio

# (label, min inclusive, max exclusive)
RISK_RATIO_BUCKETS = [
    ("< 1.05", 0.0, 1.05),
    ("1.05-1.10", 1.05, 1.10),
    ("1.10-1.20", 1.10, 1.20),
    ("1.20-1.50", 1.20, 1.50),
    ("1.50+", 1.50, float("inf")),
]


@dataclass(frozen=True)
class PositionRisk:
    """Health of a single position"""

    risk_ratio: float
    is_liquidatable: bool
    collateral_usd: float
    debt_usd: float
    liquidation_threshold: float

    @property
    def distance_to_liquidation_pct(self) -> float:
        """Percentage distance above the threshold (negative = liquidatable)"""
        return (
            (self.risk_ratio - self.liquidation_threshold)
            / self.liquidation_threshold
            * 100
        )

    def to_dict(self) -> dict:
        return {
            "risk_ratio": self.risk_ratio,
            "is_liquidatable": self.is_liquidatable,
            "collateral_usd": self.collateral_usd,
            "debt_usd": self.debt_usd,
            "liquidation_threshold": self.liquidation_threshold,
            "distance_to_liquidation_pct": self.distance_to_liquidation_pct,
        }


def risk_ratio_from_legs(
    collateral_usd: float, debt_usd: float, sentinel: float = SENTINEL_SAFE
) -> float:
    """
    Collateral / debt, or the safe sentinel when there is no debt

    The sentinel is finite, never infinity.
    """
    if debt_usd > 0:
        return collateral_usd / debt_usd

    return sentinel


def evaluate(position: Position, policy: RiskPolicy = DEFAULT_POLICY) -> PositionRisk:
    """
    Evaluate a position's risk ratio and liquidation status

    Args:
        position: Position with USD-denominated legs
        policy: Supplies the zero-debt sentinel

    Returns:
        PositionRisk
    """
    collateral = position.collateral_usd
    debt = position.debt_usd
    ratio = risk_ratio_from_legs(collateral, debt, policy.sentinel_safe_risk_ratio)

    return PositionRisk(
        risk_ratio=ratio,
        is_liquidatable=ratio <= position.liquidation_threshold,
        collateral_usd=collateral,
        debt_usd=debt,
        liquidation_threshold=position.liquidation_threshold,
    )


def ratio_at_risk(
    risk_ratio: float, liquidation_threshold: float, policy: RiskPolicy = DEFAULT_POLICY
) -> bool:
    return risk_ratio <= liquidation_threshold * (1 + policy.at_risk_buffer)


def is_at_risk(
    position: Position, policy: RiskPolicy = DEFAULT_POLICY
) -> bool:
    """Whether the risk ratio is within the at-risk buffer above the threshold"""
    ratio = evaluate(position, policy).risk_ratio
    return ratio_at_risk(ratio, position.liquidation_threshold, policy)


def risk_distribution(
    positions: Sequence[Position], policy: RiskPolicy = DEFAULT_POLICY
) -> List[Dict]:
    """
    Histogram of positions by risk ratio

    Returns:
        One dict per bucket with label, min_ratio, max_ratio, count and
        total_debt_usd, in ascending ratio order
    """
    buckets = [
        {
            "label": label,
            "min_ratio": low,
            "max_ratio": high,
            "count": 0,
            "total_debt_usd": 0.0,
        }
        for label, low, high in RISK_RATIO_BUCKETS
    ]

    for position in positions:
        risk = evaluate(position, policy)

        for bucket in buckets:
            if bucket["min_ratio"] <= risk.risk_ratio < bucket["max_ratio"]:
                bucket["count"] += 1
                bucket["total_debt_usd"] += risk.debt_usd
                break

    return buckets
