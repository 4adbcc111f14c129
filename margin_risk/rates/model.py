"""
Interest Rate Model - Kinked borrow/supply rate curve for margin pools
"""

from dataclasses import dataclass

import numpy as np
import pandas as pd

from ..errors import InvalidInputError
from ..state.models import InterestConfig, PoolEconomicConfig, PoolState


@dataclass(frozen=True)
class RatePair:
    """Annualized borrow and supply rates as decimals (0.05 = 5%)"""

    borrow_apr: float
    supply_apr: float

    def to_dict(self) -> dict:
        return {"borrow_apr": self.borrow_apr, "supply_apr": self.supply_apr}


@dataclass(frozen=True)
class PoolRates:
    """Utilization of a pool together with the rates it implies"""

    utilization: float
    borrow_apr: float
    supply_apr: float

    def to_dict(self) -> dict:
        return {
            "utilization": self.utilization,
            "borrow_apr": self.borrow_apr,
            "supply_apr": self.supply_apr,
        }


def borrow_apr(utilization: float, config: InterestConfig) -> float:
    """
    Borrow APR on the kinked curve

    Below the kink the rate grows with base_slope; above it, the extra
    utilization is charged at excess_slope. Both branches agree at the kink.
    """
    optimal = config.optimal_utilization

    if utilization <= optimal:
        return config.base_rate + config.base_slope * utilization

    return (
        config.base_rate
        + config.base_slope * optimal
        + config.excess_slope * (utilization - optimal)
    )


def compute_rates(
    utilization: float, config: InterestConfig, spread: float
) -> RatePair:
    """
    Compute borrow and supply APR for a utilization level

    Args:
        utilization: Pool utilization as decimal, must be in [0, 1]
        config: Interest rate curve parameters
        spread: Protocol spread taken from interest, in [0, 1]

    Returns:
        RatePair with borrow_apr and supply_apr

    Raises:
        InvalidInputError: utilization or spread out of range (not clamped)
    """
    if not 0 <= utilization <= 1:
        raise InvalidInputError(f"utilization must be in [0, 1], got {utilization}")
    if not 0 <= spread <= 1:
        raise InvalidInputError(f"spread must be in [0, 1], got {spread}")

    borrow = borrow_apr(utilization, config)
    supply = borrow * utilization * (1 - spread)

    return RatePair(borrow_apr=borrow, supply_apr=supply)


class InterestRateModel:
    """Rate curve of a single pool"""

    def __init__(self, config: InterestConfig, spread: float = 0.0):
        """
        Args:
            config: Interest rate curve parameters
            spread: Protocol spread (PoolEconomicConfig.protocol_spread)
        """
        if not 0 <= spread <= 1:
            raise InvalidInputError(f"spread must be in [0, 1], got {spread}")

        self.config = config
        self.spread = spread

    @classmethod
    def for_pool(
        cls, interest_config: InterestConfig, pool_config: PoolEconomicConfig
    ) -> "InterestRateModel":
        return cls(interest_config, pool_config.protocol_spread)

    def rates(self, utilization: float) -> RatePair:
        return compute_rates(utilization, self.config, self.spread)

    def pool_rates(self, state: PoolState) -> PoolRates:
        """
        Rates at a pool's current utilization

        Utilization is derived from the pool state (clamped, zero for an
        empty pool), so this never raises for a well-formed state.
        """
        utilization = state.utilization
        pair = self.rates(utilization)

        return PoolRates(
            utilization=utilization,
            borrow_apr=pair.borrow_apr,
            supply_apr=pair.supply_apr,
        )

    def rate_curve(self, n_points: int = 101) -> pd.DataFrame:
        """
        Generate the full rate curve

        Returns:
            DataFrame with columns: utilization, borrow_apr, supply_apr
        """
        if n_points < 2:
            raise InvalidInputError(f"n_points must be >= 2, got {n_points}")

        utilizations = np.linspace(0.0, 1.0, n_points)
        pairs = [self.rates(float(u)) for u in utilizations]

        return pd.DataFrame(
            {
                "utilization": utilizations,
                "borrow_apr": [p.borrow_apr for p in pairs],
                "supply_apr": [p.supply_apr for p in pairs],
            }
        )

    def rates_for_series(self, utilization: pd.Series) -> pd.DataFrame:
        """
        Map a utilization time series to rates

        The series is produced outside the engine (e.g. by a historical
        state reconstructor); the index is preserved.

        Args:
            utilization: Series of utilization decimals in [0, 1]

        Returns:
            DataFrame with columns: utilization, borrow_apr, supply_apr
        """
        pairs = [self.rates(float(u)) for u in utilization]

        return pd.DataFrame(
            {
                "utilization": utilization.values,
                "borrow_apr": [p.borrow_apr for p in pairs],
                "supply_apr": [p.supply_apr for p in pairs],
            },
            index=utilization.index,
        )


def pool_rates(
    state: PoolState, interest_config: InterestConfig, pool_config: PoolEconomicConfig
) -> PoolRates:
    """Shortcut for InterestRateModel.for_pool(...).pool_rates(state)"""
    return InterestRateModel.for_pool(interest_config, pool_config).pool_rates(state)
