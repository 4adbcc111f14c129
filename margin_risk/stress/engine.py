"""
Price Shock Simulator - Re-prices margin positions under hypothetical price moves
"""

import logging
from dataclasses import replace
from typing import Dict, List, Optional, Sequence

import numpy as np
import pandas as pd

from ..config import DEFAULT_POLICY, RiskPolicy
from ..metrics.position import evaluate, ratio_at_risk
from ..state.models import ALL_ASSETS, SHORT, Position, ShockScenario
from .models import LIQ, SAFE, WATCH, ShockSummary, SimulatedPosition

logger = logging.getLogger(__name__)


def reprice(position: Position, shock: ShockScenario) -> Position:
    """
    Apply a shock to the legs denominated in the shocked asset

    Collateral and debt in the same asset scale together, so a position
    that is both long and short an asset is re-priced on both sides.
    Unaffected legs keep their USD value.
    """
    base_mult = shock.multiplier if shock.shocks_base(position) else 1.0
    quote_mult = shock.multiplier if shock.shocks_quote(position) else 1.0

    return replace(
        position,
        base_asset_usd=position.base_asset_usd * base_mult,
        base_debt_usd=position.base_debt_usd * base_mult,
        quote_asset_usd=position.quote_asset_usd * quote_mult,
        quote_debt_usd=position.quote_debt_usd * quote_mult,
    )


def liquidation_shock_pct(position: Position, asset_filter: str) -> Optional[float]:
    """
    Price change (%) of the filtered asset at which the position hits its threshold

    Solves shocked_collateral * m + other_collateral
    == threshold * (shocked_debt * m + other_debt) for the multiplier m.

    Returns:
        The change as a percentage, or None when the position's ratio does
        not depend on that asset, or the crossing needs a price below zero
    """
    probe = ShockScenario(asset_filter, 0.0)
    threshold = position.liquidation_threshold

    if probe.shocks_base(position):
        shocked_c, shocked_d = position.base_asset_usd, position.base_debt_usd
        other_c, other_d = position.quote_asset_usd, position.quote_debt_usd
    elif probe.shocks_quote(position):
        shocked_c, shocked_d = position.quote_asset_usd, position.quote_debt_usd
        other_c, other_d = position.base_asset_usd, position.base_debt_usd
    else:
        return None

    denominator = shocked_c - threshold * shocked_d
    if abs(denominator) < 1e-12:
        return None

    multiplier = (threshold * other_d - other_c) / denominator
    if multiplier < 0:
        return None
    # No debt at the crossing means the ratio is the safe sentinel there
    if shocked_d * multiplier + other_d <= 0:
        return None

    return (multiplier - 1) * 100


class PriceShockSimulator:
    """Runs price shock scenarios on margin positions"""

    # Price changes (%) swept by run_scenarios: -50% to +20% in 2% steps
    DEFAULT_SCENARIOS = list(range(-50, 21, 2))

    def __init__(self, policy: RiskPolicy = DEFAULT_POLICY):
        self.policy = policy

    def simulate(self, position: Position, shock: ShockScenario) -> SimulatedPosition:
        """
        Simulate one position under a shock

        Args:
            position: Position to re-price
            shock: Asset and percentage change to apply

        Returns:
            SimulatedPosition comparing the current and shocked state
        """
        original = evaluate(position, self.policy)
        shocked = evaluate(reprice(position, shock), self.policy)

        if shocked.is_liquidatable:
            impact = LIQ
        elif shocked.distance_to_liquidation_pct < self.policy.watch_distance_pct:
            impact = WATCH
        else:
            impact = SAFE

        return SimulatedPosition(
            original_risk_ratio=original.risk_ratio,
            simulated_risk_ratio=shocked.risk_ratio,
            original_buffer_pct=original.distance_to_liquidation_pct,
            simulated_buffer_pct=shocked.distance_to_liquidation_pct,
            simulated_collateral_usd=shocked.collateral_usd,
            simulated_debt_usd=shocked.debt_usd,
            was_liquidatable=original.is_liquidatable,
            would_liquidate=shocked.is_liquidatable,
            impact=impact,
        )

    def first_liquidation_pct(
        self, positions: Sequence[Position], asset_filter: str = ALL_ASSETS
    ) -> Optional[float]:
        """
        The price drop closest to zero that liquidates a currently healthy position

        Returns:
            Negative percentage, or None if no drop liquidates anything new
        """
        first = None

        for position in positions:
            if evaluate(position, self.policy).is_liquidatable:
                continue

            pct = liquidation_shock_pct(position, asset_filter)
            if pct is None or pct >= 0:
                continue

            if first is None or pct > first:
                first = pct

        return first

    def simulate_many(
        self, positions: Sequence[Position], shock: ShockScenario
    ) -> ShockSummary:
        """
        Apply one shock to every position and aggregate the impact

        Debt and collateral at risk are the shocked values of positions
        that would be liquidatable. A position counts as at risk when its
        shocked ratio is within the policy buffer above its threshold, and
        as newly affected when it is liquidatable under the shock but not
        without it.
        """
        liquidatable = 0
        at_risk = 0
        newly_affected = 0
        debt_at_risk = 0.0
        collateral_at_risk = 0.0
        long_count = short_count = 0
        long_debt = short_debt = 0.0

        for position in positions:
            sim = self.simulate(position, shock)

            if ratio_at_risk(
                sim.simulated_risk_ratio, position.liquidation_threshold, self.policy
            ):
                at_risk += 1

            if not sim.would_liquidate:
                continue

            liquidatable += 1
            debt_at_risk += sim.simulated_debt_usd
            collateral_at_risk += sim.simulated_collateral_usd

            if sim.newly_liquidatable:
                newly_affected += 1

            # Neutral books are grouped with longs
            if position.direction == SHORT:
                short_count += 1
                short_debt += sim.simulated_debt_usd
            else:
                long_count += 1
                long_debt += sim.simulated_debt_usd

        logger.debug(
            f"Shock {shock.asset_filter} {shock.pct_change:+.1f}%: "
            f"{liquidatable}/{len(positions)} liquidatable"
        )

        return ShockSummary(
            asset_filter=shock.asset_filter,
            pct_change=shock.pct_change,
            position_count=len(positions),
            liquidatable_count=liquidatable,
            at_risk_count=at_risk,
            newly_affected_count=newly_affected,
            total_debt_at_risk_usd=debt_at_risk,
            collateral_at_risk_usd=collateral_at_risk,
            long_liquidatable_count=long_count,
            short_liquidatable_count=short_count,
            long_debt_at_risk_usd=long_debt,
            short_debt_at_risk_usd=short_debt,
            first_liquidation_pct=self.first_liquidation_pct(
                positions, shock.asset_filter
            ),
        )

    def run_scenarios(
        self,
        positions: Sequence[Position],
        shocks: Optional[Sequence[float]] = None,
        asset_filter: str = ALL_ASSETS,
    ) -> pd.DataFrame:
        """
        Run a sweep of shocks and return the liquidation curve

        Args:
            positions: Positions to stress
            shocks: Percentage changes (default: DEFAULT_SCENARIOS)
            asset_filter: Asset the shocks apply to

        Returns:
            DataFrame with one ShockSummary row per shock, ordered as given
        """
        if shocks is None:
            shocks = self.DEFAULT_SCENARIOS

        rows = [
            self.simulate_many(positions, ShockScenario(asset_filter, float(pct))).to_dict()
            for pct in shocks
        ]

        return pd.DataFrame(rows)

    def find_cliff_points(self, results: pd.DataFrame) -> List[Dict]:
        """
        Identify sharp jumps in debt at risk between consecutive scenarios

        A cliff is a step where debt at risk grows at least
        cliff_min_multiplier times and ends above cliff_min_debt_usd,
        which signals many positions sitting at similar ratios.

        Args:
            results: DataFrame from run_scenarios

        Returns:
            List of cliff dicts in scenario order
        """
        if len(results) < 2:
            return []

        debts = results["total_debt_at_risk_usd"].to_numpy()
        pcts = results["pct_change"].to_numpy()

        cliffs = []

        for i in range(1, len(results)):
            before = float(debts[i - 1])
            after = float(debts[i])
            # A step away from zero debt is measured against $1
            multiplier = after / before if before > 0 else after

            if (
                multiplier >= self.policy.cliff_min_multiplier
                and after > self.policy.cliff_min_debt_usd
            ):
                cliffs.append({
                    "from_pct": float(pcts[i - 1]),
                    "pct": float(pcts[i]),
                    "debt_before_usd": before,
                    "debt_after_usd": after,
                    "multiplier": multiplier,
                })

        return cliffs

    def find_cliff_point(self, results: pd.DataFrame) -> Optional[Dict]:
        """The steepest cliff, or None when the curve has no cliff"""
        cliffs = self.find_cliff_points(results)

        if not cliffs:
            return None

        return max(cliffs, key=lambda c: c["multiplier"])

    def liquidation_shock_frame(
        self, positions: Sequence[Position], asset_filter: str = ALL_ASSETS
    ) -> pd.DataFrame:
        """
        Per-position liquidation shocks for an asset

        Returns:
            DataFrame indexed by margin_manager_id with the liquidation shock
            (%) of each position and its current risk ratio
        """
        rows = []

        for position in positions:
            risk = evaluate(position, self.policy)
            pct = liquidation_shock_pct(position, asset_filter)

            rows.append({
                "margin_manager_id": position.margin_manager_id,
                "direction": position.direction,
                "risk_ratio": risk.risk_ratio,
                "is_liquidatable": risk.is_liquidatable,
                "liquidation_shock_pct": np.nan if pct is None else pct,
            })

        frame = pd.DataFrame(rows)
        if frame.empty:
            return frame

        return frame.set_index("margin_manager_id")


def simulate(
    position: Position, shock: ShockScenario, policy: RiskPolicy = DEFAULT_POLICY
) -> SimulatedPosition:
    return PriceShockSimulator(policy).simulate(position, shock)


def simulate_many(
    positions: Sequence[Position],
    shock: ShockScenario,
    policy: RiskPolicy = DEFAULT_POLICY,
) -> ShockSummary:
    return PriceShockSimulator(policy).simulate_many(positions, shock)
