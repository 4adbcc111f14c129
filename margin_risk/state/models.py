"""Data models for pool state, positions and supplier ledgers"""

import math
from dataclasses import dataclass, field
from datetime import datetime
from typing import Optional

from ..errors import InvalidInputError

ALL_ASSETS = "ALL"

LONG = "LONG"
SHORT = "SHORT"
NEUTRAL = "NEUTRAL"


def _require_non_negative(owner: str, **values: float):
    for name, value in values.items():
        if not math.isfinite(value) or value < 0:
            raise InvalidInputError(f"{owner}.{name} must be finite and >= 0, got {value}")


def _require_fraction(owner: str, **values: float):
    for name, value in values.items():
        if not 0 <= value <= 1:
            raise InvalidInputError(f"{owner}.{name} must be in [0, 1], got {value}")


@dataclass(frozen=True)
class InterestConfig:
    """Kinked interest-rate curve parameters (all fractions)"""

    base_rate: float
    base_slope: float
    optimal_utilization: float
    excess_slope: float

    def __post_init__(self):
        _require_fraction(
            "InterestConfig",
            base_rate=self.base_rate,
            base_slope=self.base_slope,
            excess_slope=self.excess_slope,
        )
        if not 0 < self.optimal_utilization < 1:
            raise InvalidInputError(
                f"optimal_utilization must be in (0, 1), got {self.optimal_utilization}"
            )

    def to_dict(self) -> dict:
        return {
            "base_rate": self.base_rate,
            "base_slope": self.base_slope,
            "optimal_utilization": self.optimal_utilization,
            "excess_slope": self.excess_slope,
        }


@dataclass(frozen=True)
class PoolEconomicConfig:
    """Margin pool economics: protocol spread and supply/borrow limits"""

    protocol_spread: float
    supply_cap: float = 0.0
    min_borrow: float = 0.0
    max_utilization_rate: float = 1.0

    def __post_init__(self):
        if not 0 <= self.protocol_spread <= 1:
            raise InvalidInputError(
                f"protocol_spread must be in [0, 1], got {self.protocol_spread}"
            )
        _require_non_negative(
            "PoolEconomicConfig", supply_cap=self.supply_cap, min_borrow=self.min_borrow
        )
        if not 0 < self.max_utilization_rate <= 1:
            raise InvalidInputError(
                f"max_utilization_rate must be in (0, 1], got {self.max_utilization_rate}"
            )

    def to_dict(self) -> dict:
        return {
            "protocol_spread": self.protocol_spread,
            "supply_cap": self.supply_cap,
            "min_borrow": self.min_borrow,
            "max_utilization_rate": self.max_utilization_rate,
        }


@dataclass(frozen=True)
class PoolState:
    """Snapshot of a margin pool's supply and borrow totals"""

    supply: float
    borrow: float
    supply_shares: float = 0.0
    borrow_shares: float = 0.0

    def __post_init__(self):
        _require_non_negative(
            "PoolState",
            supply=self.supply,
            borrow=self.borrow,
            supply_shares=self.supply_shares,
            borrow_shares=self.borrow_shares,
        )

    @property
    def utilization(self) -> float:
        """
        Borrow / supply, clamped to [0, 1]

        Returns:
            0.0 for an empty pool. Borrow above supply is clamped to 1.0
            rather than trusted.
        """
        if self.supply == 0:
            return 0.0

        return min(self.borrow / self.supply, 1.0)

    @property
    def utilization_pct(self) -> float:
        return self.utilization * 100

    @property
    def available_liquidity(self) -> float:
        """Assets not lent out and available for withdrawal"""
        return max(self.supply - self.borrow, 0.0)

    @property
    def available_liquidity_pct(self) -> float:
        """Available liquidity as % of supply (100 for an empty pool)"""
        if self.supply == 0:
            return 100.0

        return self.available_liquidity / self.supply * 100

    def supply_shares_to_amount(self, shares: float) -> float:
        """Convert supply shares to underlying assets at the current share price"""
        ratio = self.supply / self.supply_shares if self.supply_shares > 0 else 1.0
        return shares * ratio

    def borrow_shares_to_amount(self, shares: float) -> float:
        """Convert borrow shares to owed assets at the current share price"""
        ratio = self.borrow / self.borrow_shares if self.borrow_shares > 0 else 1.0
        return shares * ratio

    def remaining_supply_capacity(self, config: PoolEconomicConfig) -> float:
        """How much more can be supplied before hitting the supply cap"""
        return max(config.supply_cap - self.supply, 0.0)

    def max_borrowable(self, config: PoolEconomicConfig) -> float:
        """How much more can be borrowed before hitting max utilization"""
        return max(self.supply * config.max_utilization_rate - self.borrow, 0.0)

    def to_dict(self) -> dict:
        return {
            "supply": self.supply,
            "borrow": self.borrow,
            "supply_shares": self.supply_shares,
            "borrow_shares": self.borrow_shares,
            "utilization": self.utilization,
            "available_liquidity": self.available_liquidity,
            "available_liquidity_pct": self.available_liquidity_pct,
        }


@dataclass(frozen=True)
class Position:
    """
    A leveraged margin account with USD-denominated collateral and debt legs

    The base legs move with the base asset price; the quote legs are
    usually a stablecoin. USD values are snapshots converted upstream with
    the oracle price recorded in base_pyth_price / base_pyth_decimals.
    """

    base_asset_usd: float
    quote_asset_usd: float
    base_debt_usd: float
    quote_debt_usd: float
    liquidation_threshold: float
    base_pyth_price: float = 0.0
    base_pyth_decimals: int = 0
    margin_manager_id: str = ""
    base_asset_symbol: str = "BASE"
    quote_asset_symbol: str = "QUOTE"
    updated_at: Optional[datetime] = None

    def __post_init__(self):
        _require_non_negative(
            "Position",
            base_asset_usd=self.base_asset_usd,
            quote_asset_usd=self.quote_asset_usd,
            base_debt_usd=self.base_debt_usd,
            quote_debt_usd=self.quote_debt_usd,
            base_pyth_price=self.base_pyth_price,
        )
        if not math.isfinite(self.liquidation_threshold) or self.liquidation_threshold <= 1:
            raise InvalidInputError(
                f"liquidation_threshold must be > 1, got {self.liquidation_threshold}"
            )

    @property
    def collateral_usd(self) -> float:
        return self.base_asset_usd + self.quote_asset_usd

    @property
    def debt_usd(self) -> float:
        return self.base_debt_usd + self.quote_debt_usd

    @property
    def oracle_price(self) -> float:
        """Base asset price in USD, unscaled from the Pyth representation"""
        return self.base_pyth_price / (10 ** abs(self.base_pyth_decimals))

    @property
    def net_base_exposure_usd(self) -> float:
        """Base collateral minus base debt; positive means long the base asset"""
        return self.base_asset_usd - self.base_debt_usd

    @property
    def direction(self) -> str:
        exposure = self.net_base_exposure_usd
        if exposure > 0:
            return LONG
        if exposure < 0:
            return SHORT
        return NEUTRAL

    def to_dict(self) -> dict:
        return {
            "margin_manager_id": self.margin_manager_id,
            "base_asset_symbol": self.base_asset_symbol,
            "quote_asset_symbol": self.quote_asset_symbol,
            "base_asset_usd": self.base_asset_usd,
            "quote_asset_usd": self.quote_asset_usd,
            "base_debt_usd": self.base_debt_usd,
            "quote_debt_usd": self.quote_debt_usd,
            "liquidation_threshold": self.liquidation_threshold,
            "base_pyth_price": self.base_pyth_price,
            "base_pyth_decimals": self.base_pyth_decimals,
            "updated_at": self.updated_at.isoformat() if self.updated_at else None,
        }


@dataclass(frozen=True)
class SupplierLedgerEntry:
    """Net amount an address has supplied to a pool"""

    address: str
    net_supplied_usd: float

    def to_dict(self) -> dict:
        return {"address": self.address, "net_supplied_usd": self.net_supplied_usd}


@dataclass(frozen=True)
class ShockScenario:
    """
    A hypothetical percentage move in one asset's price

    asset_filter is an asset symbol, or ALL to shock every position's
    base asset. pct_change is a percentage: -10.0 means a 10% drop.
    """

    asset_filter: str
    pct_change: float

    def __post_init__(self):
        if self.pct_change < -100:
            raise InvalidInputError(
                f"pct_change must be >= -100, got {self.pct_change}"
            )

    @property
    def multiplier(self) -> float:
        return 1 + self.pct_change / 100

    def shocks_base(self, position: Position) -> bool:
        return self.asset_filter in (ALL_ASSETS, position.base_asset_symbol)

    def shocks_quote(self, position: Position) -> bool:
        return self.asset_filter == position.quote_asset_symbol


@dataclass(frozen=True)
class RiskScoreWeights:
    """Weights of the composite risk score components"""

    utilization: float = 0.35
    liquidity: float = 0.30
    rate: float = 0.20
    concentration: float = 0.15

    def __post_init__(self):
        total = self.utilization + self.liquidity + self.rate + self.concentration
        if abs(total - 1.0) > 1e-9:
            raise InvalidInputError(f"Weights must sum to 1.0, got {total}")
        _require_non_negative(
            "RiskScoreWeights",
            utilization=self.utilization,
            liquidity=self.liquidity,
            rate=self.rate,
            concentration=self.concentration,
        )

    def to_dict(self) -> dict:
        return {
            "utilization": self.utilization,
            "liquidity": self.liquidity,
            "rate": self.rate,
            "concentration": self.concentration,
        }


@dataclass(frozen=True)
class PoolSnapshot:
    """Everything the engine needs to assess one pool at a point in time"""

    pool_name: str
    state: PoolState
    interest_config: InterestConfig
    pool_config: PoolEconomicConfig
    positions: tuple = field(default_factory=tuple)
    ledger: tuple = field(default_factory=tuple)
    timestamp: Optional[datetime] = None

    @property
    def total_collateral_usd(self) -> float:
        return sum(p.collateral_usd for p in self.positions)

    @property
    def total_debt_usd(self) -> float:
        return sum(p.debt_usd for p in self.positions)

    def to_dict(self) -> dict:
        return {
            "pool_name": self.pool_name,
            "timestamp": self.timestamp.isoformat() if self.timestamp else None,
            "state": self.state.to_dict(),
            "interest_config": self.interest_config.to_dict(),
            "pool_config": self.pool_config.to_dict(),
            "num_positions": len(self.positions),
            "num_suppliers": len(self.ledger),
            "total_collateral_usd": self.total_collateral_usd,
            "total_debt_usd": self.total_debt_usd,
        }
