"""
Liquidation Stress Curve - Health factor of a position set across a price grid
"""

import logging
from typing import Optional, Sequence, Tuple

import numpy as np
import pandas as pd

from ..config import DEFAULT_POLICY, RiskPolicy
from ..errors import InvalidInputError
from ..state.models import Position
from .models import PriceRange, StressCurveAnalysis, StressCurvePoint

logger = logging.getLogger(__name__)


def find_liquidation_price(
    curve: Sequence[StressCurvePoint], threshold: float
) -> Optional[float]:
    """
    Interpolate the price at which the worst health factor crosses the threshold

    The curve is scanned in price order for the first pair with
    worst[i] < threshold <= worst[i + 1]. Prices outside the sampled range
    are never extrapolated.

    Args:
        curve: Stress curve ordered by ascending price
        threshold: Liquidation threshold

    Returns:
        Liquidation price, or None when the curve never crosses the threshold
    """
    for left, right in zip(curve, curve[1:]):
        if left.worst_health_factor < threshold <= right.worst_health_factor:
            ratio = (threshold - left.worst_health_factor) / (
                right.worst_health_factor - left.worst_health_factor
            )
            return left.price + ratio * (right.price - left.price)

    return None


def liquidation_buffer_pct(
    current_price: float, liquidation_price: Optional[float]
) -> Optional[float]:
    """
    How far (%) the price can fall before the liquidation price is reached

    Returns:
        Buffer percentage, or None when the liquidation price is unknown
    """
    if liquidation_price is None:
        return None
    if current_price <= 0:
        raise InvalidInputError(f"current_price must be > 0, got {current_price}")

    return (current_price - liquidation_price) / current_price * 100


def default_price_range(
    current_price: float,
    historical_prices: Optional[Sequence[float]] = None,
    num_points: int = 80,
) -> PriceRange:
    """
    Price range spanning recent history with room for scenario planning

    The lower bound is 70% of the historical low or half the current price,
    whichever is lower; the upper bound is 130% of the historical high (or
    the current price if higher).
    """
    if current_price <= 0:
        raise InvalidInputError(f"current_price must be > 0, got {current_price}")

    prices = list(historical_prices) if historical_prices is not None else []
    min_historical = min(prices) if prices else current_price
    max_historical = max(prices) if prices else current_price

    return PriceRange(
        lower=min(min_historical * 0.7, current_price * 0.5),
        upper=max(max_historical, current_price) * 1.3,
        num_points=num_points,
    )


def positions_at_risk_at_drop(
    curve: Sequence[StressCurvePoint], current_price: float, pct_drop: float
) -> int:
    """Positions at risk at the sampled price nearest to a percentage drop"""
    if not curve:
        return 0

    target = current_price * (1 - pct_drop / 100)
    closest = min(curve, key=lambda point: abs(point.price - target))

    return closest.positions_at_risk


def curve_to_frame(curve: Sequence[StressCurvePoint]) -> pd.DataFrame:
    """Stress curve as a DataFrame, one row per sampled price"""
    return pd.DataFrame(
        [point.to_dict() for point in curve],
        columns=[
            "price",
            "pct_change_from_current",
            "worst_health_factor",
            "median_health_factor",
            "positions_at_risk",
        ],
    )


class LiquidationStressCurve:
    """Builds health-factor-versus-price curves for a set of positions"""

    def __init__(self, policy: RiskPolicy = DEFAULT_POLICY):
        self.policy = policy

    def _validate(self, positions: Sequence[Position], price_range: PriceRange):
        if not positions:
            raise InvalidInputError("At least one position is required")
        if price_range.num_points < 2:
            raise InvalidInputError(
                f"num_points must be >= 2, got {price_range.num_points}"
            )
        if price_range.lower < 0:
            raise InvalidInputError(f"lower must be >= 0, got {price_range.lower}")
        if price_range.upper < price_range.lower:
            raise InvalidInputError(
                f"upper ({price_range.upper}) must be >= lower ({price_range.lower})"
            )

    def build_curve(
        self,
        positions: Sequence[Position],
        price_range: PriceRange,
        current_price: Optional[float] = None,
    ) -> Tuple[StressCurvePoint, ...]:
        """
        Sample the book's health at evenly spaced base asset prices

        Every position's base collateral and base debt are scaled by
        price / current_price; quote legs stay put. Health factors are
        capped at policy.health_factor_cap. Positions without debt cannot
        be liquidated and are left out of worst, median and at-risk counts.

        Args:
            positions: Positions to evaluate (at least one with debt)
            price_range: Inclusive range and number of samples
            current_price: Base asset price the USD legs were valued at
                           (default: oracle price of the first position)

        Returns:
            Tuple of StressCurvePoint in ascending price order
        """
        self._validate(positions, price_range)

        if current_price is None:
            current_price = positions[0].oracle_price
        if current_price <= 0:
            raise InvalidInputError(f"current_price must be > 0, got {current_price}")

        positions = [p for p in positions if p.debt_usd > 0]
        if not positions:
            raise InvalidInputError("At least one position with debt is required")

        n = price_range.num_points
        step = (price_range.upper - price_range.lower) / (n - 1)
        prices = price_range.lower + np.arange(n) * step
        ratios = prices / current_price

        base_collateral = np.array([p.base_asset_usd for p in positions])
        quote_collateral = np.array([p.quote_asset_usd for p in positions])
        base_debt = np.array([p.base_debt_usd for p in positions])
        quote_debt = np.array([p.quote_debt_usd for p in positions])
        thresholds = np.array([p.liquidation_threshold for p in positions])

        # (points x positions)
        collateral = ratios[:, None] * base_collateral + quote_collateral
        debt = ratios[:, None] * base_debt + quote_debt
        has_debt = debt > 0
        health = np.where(
            has_debt,
            collateral / np.where(has_debt, debt, 1.0),
            self.policy.sentinel_safe_risk_ratio,
        )

        at_risk = (health <= thresholds).sum(axis=1)
        ordered = np.sort(health, axis=1)
        cap = self.policy.health_factor_cap
        worst = np.minimum(ordered[:, 0], cap)
        median = np.minimum(ordered[:, len(positions) // 2], cap)

        logger.debug(
            f"Built stress curve: {n} points, {len(positions)} positions, "
            f"prices {price_range.lower:.4f}-{price_range.upper:.4f}"
        )

        return tuple(
            StressCurvePoint(
                price=float(prices[i]),
                pct_change_from_current=float(
                    (prices[i] - current_price) / current_price * 100
                ),
                worst_health_factor=float(worst[i]),
                median_health_factor=float(median[i]),
                positions_at_risk=int(at_risk[i]),
            )
            for i in range(n)
        )

    def analyze(
        self,
        positions: Sequence[Position],
        price_range: Optional[PriceRange] = None,
        current_price: Optional[float] = None,
        historical_prices: Optional[Sequence[float]] = None,
        threshold: Optional[float] = None,
    ) -> StressCurveAnalysis:
        """
        Build the curve and read off liquidation price, buffer and drop scenarios

        Args:
            positions: Positions to evaluate (at least one)
            price_range: Range to sample (default: default_price_range)
            current_price: Current base asset price (default: first position's
                           oracle price)
            historical_prices: Recent prices used for the default range
            threshold: Liquidation threshold (default: first position's)

        Returns:
            StressCurveAnalysis
        """
        if not positions:
            raise InvalidInputError("At least one position is required")

        if current_price is None:
            current_price = positions[0].oracle_price
        if threshold is None:
            threshold = positions[0].liquidation_threshold
        if price_range is None:
            price_range = default_price_range(current_price, historical_prices)

        curve = self.build_curve(positions, price_range, current_price)
        liquidation_price = find_liquidation_price(curve, threshold)

        if liquidation_price is None:
            logger.info("No liquidation crossing in sampled price range")

        return StressCurveAnalysis(
            current_price=current_price,
            liquidation_threshold=threshold,
            curve=curve,
            liquidation_price=liquidation_price,
            buffer_pct=liquidation_buffer_pct(current_price, liquidation_price),
            at_risk_at_20pct_drop=positions_at_risk_at_drop(curve, current_price, 20),
            at_risk_at_30pct_drop=positions_at_risk_at_drop(curve, current_price, 30),
        )


def build_curve(
    positions: Sequence[Position],
    price_range: PriceRange,
    current_price: Optional[float] = None,
    policy: RiskPolicy = DEFAULT_POLICY,
) -> Tuple[StressCurvePoint, ...]:
    return LiquidationStressCurve(policy).build_curve(positions, price_range, current_price)
