"""
Concentration Analyzer - Supplier concentration statistics for a pool
"""

from dataclasses import dataclass
from typing import Sequence, Union

import numpy as np

from ..config import DEFAULT_POLICY, DominanceThresholds
from ..state.models import PoolState, SupplierLedgerEntry

DIVERSIFIED = "diversified"
MODERATE = "moderate"
CONCENTRATED = "concentrated"
DOMINATED = "dominated"


@dataclass(frozen=True)
class ConcentrationAnalysis:
    """Supplier concentration statistics"""

    hhi: float
    gini: float
    top1_share_pct: float
    top3_share_pct: float
    supplier_count: int
    dominance_level: str
    top1_amount_usd: float = 0.0
    total_supplied_usd: float = 0.0

    def to_dict(self) -> dict:
        return {
            "hhi": self.hhi,
            "gini": self.gini,
            "top1_share_pct": self.top1_share_pct,
            "top3_share_pct": self.top3_share_pct,
            "supplier_count": self.supplier_count,
            "dominance_level": self.dominance_level,
            "top1_amount_usd": self.top1_amount_usd,
            "total_supplied_usd": self.total_supplied_usd,
        }


def herfindahl_index(amounts: Sequence[float]) -> float:
    """
    Herfindahl-Hirschman Index over positive amounts

    Returns:
        HHI (0-10000, 10000 = single supplier)
    """
    total = sum(amounts)

    if total == 0:
        return 0.0

    market_shares = [(a / total * 100) for a in amounts]
    return sum(share**2 for share in market_shares)


def gini_coefficient(amounts: Sequence[float]) -> float:
    """
    Inequality of a distribution of amounts

    Returns:
        Gini coefficient clamped to [0, 1] (0 = equal distribution).
        0.0 for fewer than two amounts or a zero total.
    """
    values = np.sort(np.asarray(amounts, dtype=float))
    n = len(values)

    if n <= 1 or values.sum() == 0:
        return 0.0

    index = np.arange(1, n + 1)
    gini = (2 * np.sum(index * values)) / (n * np.sum(values)) - (n + 1) / n

    return float(min(max(gini, 0.0), 1.0))


def dominance_level(
    top1_share_pct: float,
    hhi: float,
    thresholds: DominanceThresholds = DEFAULT_POLICY.dominance,
) -> str:
    """Ordinal dominance label for display"""
    if top1_share_pct > thresholds.dominated_top1_pct or hhi > thresholds.dominated_hhi:
        return DOMINATED
    if (
        top1_share_pct > thresholds.concentrated_top1_pct
        or hhi > thresholds.concentrated_hhi
    ):
        return CONCENTRATED
    if top1_share_pct > thresholds.moderate_top1_pct or hhi > thresholds.moderate_hhi:
        return MODERATE
    return DIVERSIFIED


def analyze(
    ledger: Sequence[SupplierLedgerEntry],
    thresholds: DominanceThresholds = DEFAULT_POLICY.dominance,
) -> ConcentrationAnalysis:
    """
    Analyze supplier concentration

    Entries with net_supplied_usd <= 0 (fully withdrawn addresses) are
    excluded before any statistic is computed.

    Args:
        ledger: Net supplied amount per address
        thresholds: Dominance level cutoffs

    Returns:
        ConcentrationAnalysis
    """
    amounts = sorted(
        (e.net_supplied_usd for e in ledger if e.net_supplied_usd > 0), reverse=True
    )
    total = sum(amounts)

    if total == 0:
        return ConcentrationAnalysis(
            hhi=0.0,
            gini=0.0,
            top1_share_pct=0.0,
            top3_share_pct=0.0,
            supplier_count=0,
            dominance_level=DIVERSIFIED,
        )

    top1_share = amounts[0] / total * 100
    top3_share = sum(amounts[:3]) / total * 100
    hhi = herfindahl_index(amounts)

    return ConcentrationAnalysis(
        hhi=hhi,
        gini=gini_coefficient(amounts),
        top1_share_pct=top1_share,
        top3_share_pct=top3_share,
        supplier_count=len(amounts),
        dominance_level=dominance_level(top1_share, hhi, thresholds),
        top1_amount_usd=amounts[0],
        total_supplied_usd=total,
    )


def utilization_if_top_supplier_exits(
    state: PoolState, top_supplier: Union[ConcentrationAnalysis, float]
) -> float:
    """
    Utilization (%) the pool would have if its largest supplier withdrew

    Args:
        state: Current pool state
        top_supplier: ConcentrationAnalysis or the top supplier's amount

    Returns:
        Utilization percentage capped at 100 (0 when nothing is borrowed)
    """
    if isinstance(top_supplier, ConcentrationAnalysis):
        top_amount = top_supplier.top1_amount_usd
    else:
        top_amount = top_supplier

    if state.borrow <= 0:
        return 0.0

    supply_after_exit = max(state.supply - top_amount, 0.01)
    return min(state.borrow / supply_after_exit * 100, 100.0)
