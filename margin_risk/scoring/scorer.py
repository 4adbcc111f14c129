"""
Composite Risk Scorer - Blends pool risk factors into one 0-100 score
"""

from dataclasses import dataclass
from typing import Dict, Optional, Sequence

import pandas as pd

from ..config import DEFAULT_POLICY, RiskPolicy
from ..errors import InvalidInputError
from ..metrics.concentration import ConcentrationAnalysis, analyze
from ..state.models import InterestConfig, PoolState, RiskScoreWeights, SupplierLedgerEntry

COMPONENTS = ("utilization", "liquidity", "rate", "concentration")


def _clamp(value: float, low: float = 0.0, high: float = 100.0) -> float:
    return min(high, max(low, value))


def _require_pct(name: str, value: float):
    if not 0 <= value <= 100:
        raise InvalidInputError(f"{name} must be in [0, 100], got {value}")


@dataclass(frozen=True)
class CompositeRiskScore:
    """Composite score with its breakdown"""

    total: float
    subscores: Dict[str, float]
    weighted_contributions: Dict[str, float]

    def to_dict(self) -> dict:
        return {
            "total": self.total,
            "subscores": dict(self.subscores),
            "weighted_contributions": dict(self.weighted_contributions),
        }


def concentration_risk_from(analysis: ConcentrationAnalysis) -> float:
    """
    Map supplier concentration to a 0-100 risk sub-score

    Uses the top supplier's share of supply (%), capped at 100.
    """
    return _clamp(analysis.top1_share_pct)


class CompositeRiskScorer:
    """Calculates the composite risk score of a pool (0-100, higher = riskier)"""

    def __init__(
        self,
        policy: RiskPolicy = DEFAULT_POLICY,
        weights: Optional[RiskScoreWeights] = None,
    ):
        """
        Args:
            policy: Risk policy (supplies default weights and cutoffs)
            weights: Custom weights; validated to sum to 1.0 on construction
        """
        self.policy = policy
        self.weights = weights or policy.weights

    def _score_utilization(self, utilization_pct: float, kink_pct: float) -> float:
        """
        Score utilization relative to the rate curve kink

        Scoring logic:
        - below 60% of the kink: 0-20
        - 60% of the kink up to the kink: 20-50
        - above the kink: 50-100 across the headroom left to 100%
        """
        safe_zone = kink_pct * 0.6

        if utilization_pct <= safe_zone:
            score = utilization_pct / safe_zone * 20
        elif utilization_pct <= kink_pct:
            score = 20 + (utilization_pct - safe_zone) / (kink_pct * 0.4) * 30
        else:
            score = 50 + (utilization_pct - kink_pct) / (100 - kink_pct) * 50

        return _clamp(score)

    def _score_liquidity(self, available_liquidity_pct: float) -> float:
        """
        Score available liquidity as % of supply

        Scoring logic:
        - above 50%: 0
        - 20-50%: 0-50
        - below 20%: 50-100
        """
        if available_liquidity_pct > 50:
            score = 0.0
        elif available_liquidity_pct > 20:
            score = (50 - available_liquidity_pct) / 30 * 50
        else:
            score = 50 + (20 - available_liquidity_pct) / 20 * 50

        return _clamp(score)

    def _score_rate(self, utilization_pct: float) -> float:
        return _clamp(min(100.0, utilization_pct * 0.8))

    def score(
        self,
        utilization_pct: float,
        available_liquidity_pct: float,
        kink_pct: float,
        concentration_risk: Optional[float] = None,
    ) -> CompositeRiskScore:
        """
        Calculate the composite risk score

        Args:
            utilization_pct: Pool utilization (0-100)
            available_liquidity_pct: Available liquidity as % of supply (0-100)
            kink_pct: Optimal utilization of the rate curve (0-100, exclusive of 0)
            concentration_risk: Concentration sub-score (0-100); the policy's
                                neutral value when not known

        Returns:
            CompositeRiskScore with total, sub-scores and weighted contributions
        """
        _require_pct("utilization_pct", utilization_pct)
        _require_pct("available_liquidity_pct", available_liquidity_pct)
        if not 0 < kink_pct <= 100:
            raise InvalidInputError(f"kink_pct must be in (0, 100], got {kink_pct}")

        if concentration_risk is None:
            concentration_risk = self.policy.neutral_concentration_risk

        subscores = {
            "utilization": self._score_utilization(utilization_pct, kink_pct),
            "liquidity": self._score_liquidity(available_liquidity_pct),
            "rate": self._score_rate(utilization_pct),
            "concentration": _clamp(concentration_risk),
        }
        weights = self.weights.to_dict()
        contributions = {k: subscores[k] * weights[k] for k in COMPONENTS}

        return CompositeRiskScore(
            total=_clamp(sum(contributions.values())),
            subscores=subscores,
            weighted_contributions=contributions,
        )

    def score_pool(
        self,
        state: PoolState,
        interest_config: InterestConfig,
        ledger: Optional[Sequence[SupplierLedgerEntry]] = None,
    ) -> CompositeRiskScore:
        """
        Score a pool snapshot

        The kink is the curve's optimal utilization. Without a ledger the
        concentration sub-score falls back to the policy's neutral value.
        """
        concentration = None
        if ledger:
            concentration = concentration_risk_from(
                analyze(ledger, self.policy.dominance)
            )

        return self.score(
            utilization_pct=state.utilization_pct,
            available_liquidity_pct=state.available_liquidity_pct,
            kink_pct=interest_config.optimal_utilization * 100,
            concentration_risk=concentration,
        )

    def score_series(
        self,
        frame: pd.DataFrame,
        kink_pct: float,
        concentration_risk: Optional[float] = None,
    ) -> pd.DataFrame:
        """
        Score every row of a pool history

        Args:
            frame: DataFrame with utilization_pct and available_liquidity_pct
            kink_pct: Optimal utilization (0-100)
            concentration_risk: Concentration sub-score applied to every row

        Returns:
            DataFrame (same index) with risk_score, one column per sub-score
            and one w_<component> column per weighted contribution
        """
        rows = []

        for _, row in frame.iterrows():
            result = self.score(
                float(row["utilization_pct"]),
                float(row["available_liquidity_pct"]),
                kink_pct,
                concentration_risk,
            )
            record = {"risk_score": result.total}
            record.update({f"{k}_risk": v for k, v in result.subscores.items()})
            record.update({f"w_{k}": v for k, v in result.weighted_contributions.items()})
            rows.append(record)

        return pd.DataFrame(rows, index=frame.index)

    def get_risk_level(self, total: float) -> str:
        """
        Convert a numeric score to a risk level label

        Returns:
            HIGH, MODERATE or LOW
        """
        if total >= self.policy.high_risk_score:
            return "HIGH"
        elif total >= self.policy.moderate_risk_score:
            return "MODERATE"
        else:
            return "LOW"

    def generate_report(self, result: CompositeRiskScore, pool_name: str = "") -> str:
        """
        Plain-text breakdown of a score

        Returns:
            Formatted string with the total, level and each component
        """
        report = f"""
=== Risk Score Report ===

Pool: {pool_name}

--- Composite Risk Score ---
Overall Score: {result.total:.1f} / 100
Risk Level: {self.get_risk_level(result.total)}

--- Component Scores ---
"""
        weights = self.weights.to_dict()

        for component in COMPONENTS:
            report += (
                f"{component.title()}: {result.subscores[component]:.1f} / 100 "
                f"(weight: {weights[component] * 100:.0f}%, "
                f"contributes {result.weighted_contributions[component]:.1f})\n"
            )

        return report
