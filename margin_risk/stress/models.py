"""
Stress Testing Models - Data structures for shock and stress curve results
"""

from dataclasses import dataclass
from typing import Dict, Optional, Tuple

SAFE = "SAFE"
WATCH = "WATCH"
LIQ = "LIQ"


@dataclass(frozen=True)
class SimulatedPosition:
    """A position re-priced under a shock scenario"""

    original_risk_ratio: float
    simulated_risk_ratio: float
    original_buffer_pct: float
    simulated_buffer_pct: float
    simulated_collateral_usd: float
    simulated_debt_usd: float
    was_liquidatable: bool
    would_liquidate: bool
    impact: str

    @property
    def risk_ratio_delta(self) -> float:
        return self.simulated_risk_ratio - self.original_risk_ratio

    @property
    def buffer_delta_pct(self) -> float:
        return self.simulated_buffer_pct - self.original_buffer_pct

    @property
    def newly_liquidatable(self) -> bool:
        return self.would_liquidate and not self.was_liquidatable

    def to_dict(self) -> Dict:
        return {
            "original_risk_ratio": self.original_risk_ratio,
            "simulated_risk_ratio": self.simulated_risk_ratio,
            "original_buffer_pct": self.original_buffer_pct,
            "simulated_buffer_pct": self.simulated_buffer_pct,
            "simulated_collateral_usd": self.simulated_collateral_usd,
            "simulated_debt_usd": self.simulated_debt_usd,
            "would_liquidate": self.would_liquidate,
            "impact": self.impact,
            "risk_ratio_delta": self.risk_ratio_delta,
            "buffer_delta_pct": self.buffer_delta_pct,
        }


@dataclass(frozen=True)
class ShockSummary:
    """Aggregate results of one shock scenario over a set of positions"""

    asset_filter: str
    pct_change: float
    position_count: int
    liquidatable_count: int
    at_risk_count: int
    newly_affected_count: int
    total_debt_at_risk_usd: float
    collateral_at_risk_usd: float
    long_liquidatable_count: int
    short_liquidatable_count: int
    long_debt_at_risk_usd: float
    short_debt_at_risk_usd: float
    first_liquidation_pct: Optional[float]

    def to_dict(self) -> Dict:
        """Convert to dictionary for serialization"""
        return {
            "asset_filter": self.asset_filter,
            "pct_change": self.pct_change,
            "position_count": self.position_count,
            "liquidatable_count": self.liquidatable_count,
            "at_risk_count": self.at_risk_count,
            "newly_affected_count": self.newly_affected_count,
            "total_debt_at_risk_usd": self.total_debt_at_risk_usd,
            "collateral_at_risk_usd": self.collateral_at_risk_usd,
            "long_liquidatable_count": self.long_liquidatable_count,
            "short_liquidatable_count": self.short_liquidatable_count,
            "long_debt_at_risk_usd": self.long_debt_at_risk_usd,
            "short_debt_at_risk_usd": self.short_debt_at_risk_usd,
            "first_liquidation_pct": self.first_liquidation_pct,
        }

    def summary(self) -> str:
        """Generate human-readable summary"""
        first = (
            f"{self.first_liquidation_pct:+.1f}%"
            if self.first_liquidation_pct is not None
            else "none in range"
        )
        return f"""
Shock: {self.asset_filter} {self.pct_change:+.1f}%
----------------------------------------
Positions: {self.position_count}
Liquidatable: {self.liquidatable_count} ({self.newly_affected_count} newly)
At Risk: {self.at_risk_count}
Debt at Risk: ${self.total_debt_at_risk_usd:,.2f}
Collateral at Risk: ${self.collateral_at_risk_usd:,.2f}
First Liquidation At: {first}
"""


@dataclass(frozen=True)
class StressCurvePoint:
    """Health of a position set at one sampled price"""

    price: float
    pct_change_from_current: float
    worst_health_factor: float
    median_health_factor: float
    positions_at_risk: int

    def to_dict(self) -> Dict:
        return {
            "price": self.price,
            "pct_change_from_current": self.pct_change_from_current,
            "worst_health_factor": self.worst_health_factor,
            "median_health_factor": self.median_health_factor,
            "positions_at_risk": self.positions_at_risk,
        }


@dataclass(frozen=True)
class PriceRange:
    """Inclusive price interval sampled at num_points evenly spaced prices"""

    lower: float
    upper: float
    num_points: int = 80


@dataclass(frozen=True)
class StressCurveAnalysis:
    """A stress curve together with the statistics read off it"""

    current_price: float
    liquidation_threshold: float
    curve: Tuple[StressCurvePoint, ...]
    liquidation_price: Optional[float]
    buffer_pct: Optional[float]
    at_risk_at_20pct_drop: int
    at_risk_at_30pct_drop: int

    @property
    def has_liquidation_crossing(self) -> bool:
        return self.liquidation_price is not None

    def summary(self) -> str:
        """Generate human-readable summary"""
        if self.liquidation_price is None:
            liq = "unknown (no crossing in range)"
            buffer = "n/a"
        else:
            liq = f"${self.liquidation_price:,.4f}"
            buffer = f"{self.buffer_pct:.1f}%"

        return f"""
Stress Curve
----------------------------------------
Current Price: ${self.current_price:,.4f}
Liquidation Threshold: {self.liquidation_threshold:.3f}
Liquidation Price: {liq}
Buffer: {buffer}
Positions at Risk (-20%): {self.at_risk_at_20pct_drop}
Positions at Risk (-30%): {self.at_risk_at_30pct_drop}
"""
