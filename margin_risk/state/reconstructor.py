"""Snapshot reconstruction from raw indexer rows"""

import json
import logging
import numbers
from datetime import datetime, timezone
from pathlib import Path
from typing import Dict, Optional, Tuple

import pandas as pd

from ..errors import InvalidInputError
from ..metrics.position import risk_ratio_from_legs
from .models import (
    InterestConfig,
    PoolEconomicConfig,
    PoolSnapshot,
    PoolState,
    Position,
    SupplierLedgerEntry,
)

logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)

DEFAULT_LIQUIDATION_THRESHOLD = 1.05


def pyth_price_to_usd(amount: float, pyth_price: float, pyth_decimals: int) -> float:
    """
    Convert a human-readable token amount to USD with a Pyth price

    Pyth prices are integers scaled by 10^|decimals|. A missing price
    values the amount at 0.
    """
    if not pyth_price or pyth_decimals is None:
        return 0.0

    price = pyth_price / (10 ** abs(int(pyth_decimals)))
    return amount * price


def _as_float(value, default: float = 0.0) -> float:
    if value is None or pd.isna(value):
        return default
    return float(value)


def _as_datetime(value) -> Optional[datetime]:
    if value is None or pd.isna(value):
        return None
    if isinstance(value, datetime):
        ts = value
    elif isinstance(value, numbers.Real):
        # Indexer timestamps are milliseconds since epoch
        ts = datetime.fromtimestamp(value / 1000, tz=timezone.utc)
    else:
        ts = pd.to_datetime(value, utc=True).to_pydatetime()

    if ts.tzinfo is None:
        ts = ts.replace(tzinfo=timezone.utc)
    return ts


class StateReconstructor:
    """Reconstructs engine inputs from raw pool, position and event data"""

    def __init__(
        self,
        pool_config: dict,
        float_scaling: float = 1.0,
        max_age_secs: Optional[float] = None,
    ):
        """
        Initialize state reconstructor

        Args:
            pool_config: Pool configuration (name, interest_config,
                         margin_pool_config, liquidation_risk_ratio, decimals)
            float_scaling: Divisor for fixed-point config values
                           (1e9 for raw on-chain configs)
            max_age_secs: Reject position rows older than this (None = accept all)
        """
        self.pool_config = pool_config
        self.float_scaling = float_scaling
        self.max_age_secs = max_age_secs
        self.decimals = pool_config.get("decimals", 0)

        self.liquidation_threshold = self._unscale(
            pool_config.get("liquidation_risk_ratio"), DEFAULT_LIQUIDATION_THRESHOLD
        )

        logger.info(f"Initialized reconstructor for {pool_config.get('name', 'pool')}")
        logger.info(f"  Liquidation threshold: {self.liquidation_threshold:.3f}")

    def _unscale(self, value, default: float) -> float:
        if value is None:
            return default
        return float(value) / self.float_scaling

    def interest_config(self) -> InterestConfig:
        ic = self.pool_config.get("interest_config")
        if not ic:
            raise InvalidInputError("pool_config has no interest_config")

        return InterestConfig(
            base_rate=self._unscale(ic.get("base_rate"), 0.0),
            base_slope=self._unscale(ic.get("base_slope"), 0.0),
            optimal_utilization=self._unscale(ic.get("optimal_utilization"), 0.8),
            excess_slope=self._unscale(ic.get("excess_slope"), 0.0),
        )

    def economic_config(self) -> PoolEconomicConfig:
        mc = self.pool_config.get("margin_pool_config", {})

        return PoolEconomicConfig(
            protocol_spread=self._unscale(mc.get("protocol_spread"), 0.0),
            supply_cap=_as_float(mc.get("supply_cap")),
            min_borrow=_as_float(mc.get("min_borrow")),
            max_utilization_rate=self._unscale(mc.get("max_utilization_rate"), 1.0),
        )

    def pool_state(self, state: dict) -> PoolState:
        """Build a PoolState from a raw state mapping"""
        return PoolState(
            supply=_as_float(state.get("supply")),
            borrow=_as_float(state.get("borrow")),
            supply_shares=_as_float(state.get("supply_shares")),
            borrow_shares=_as_float(state.get("borrow_shares")),
        )

    def _is_stale(self, updated_at: Optional[datetime], now: datetime) -> bool:
        if self.max_age_secs is None or updated_at is None:
            return False
        return (now - updated_at).total_seconds() > self.max_age_secs

    def reconstruct_positions(
        self, states_df: pd.DataFrame, now: Optional[datetime] = None
    ) -> Tuple[Position, ...]:
        """
        Convert margin manager states into Position objects

        Rows without debt are dropped (nothing to liquidate), as are rows
        older than max_age_secs and rows that fail validation.

        Args:
            states_df: DataFrame with margin manager states (amounts in
                       human-readable units plus Pyth prices)
            now: Reference time for staleness checks (default: current UTC
                 time; naive datetimes are taken as UTC)

        Returns:
            Tuple of positions sorted by risk ratio, most at risk first
        """
        logger.info("Reconstructing positions...")

        if states_df.empty:
            logger.warning("No margin manager states available")
            return ()

        now = now or datetime.now(timezone.utc)
        if now.tzinfo is None:
            now = now.replace(tzinfo=timezone.utc)

        positions = []
        stale = 0

        for _, row in states_df.iterrows():
            try:
                base_price = _as_float(row.get("base_pyth_price"))
                base_decimals = int(_as_float(row.get("base_pyth_decimals")))
                quote_price = _as_float(row.get("quote_pyth_price"))
                quote_decimals = int(_as_float(row.get("quote_pyth_decimals")))

                base_debt = _as_float(row.get("base_debt"))
                quote_debt = _as_float(row.get("quote_debt"))
                if base_debt <= 0 and quote_debt <= 0:
                    continue

                updated_at = _as_datetime(row.get("updated_at"))
                if self._is_stale(updated_at, now):
                    stale += 1
                    continue

                position = Position(
                    base_asset_usd=pyth_price_to_usd(
                        _as_float(row.get("base_asset")), base_price, base_decimals
                    ),
                    quote_asset_usd=pyth_price_to_usd(
                        _as_float(row.get("quote_asset")), quote_price, quote_decimals
                    ),
                    base_debt_usd=pyth_price_to_usd(base_debt, base_price, base_decimals),
                    quote_debt_usd=pyth_price_to_usd(quote_debt, quote_price, quote_decimals),
                    liquidation_threshold=self.liquidation_threshold,
                    base_pyth_price=base_price,
                    base_pyth_decimals=base_decimals,
                    margin_manager_id=str(row.get("margin_manager_id", "")),
                    base_asset_symbol=row.get("base_asset_symbol") or "BASE",
                    quote_asset_symbol=row.get("quote_asset_symbol") or "QUOTE",
                    updated_at=updated_at,
                )

                positions.append(position)

            except (InvalidInputError, TypeError, ValueError) as e:
                logger.warning(
                    f"Error processing position {row.get('margin_manager_id')}: {e}"
                )
                continue

        if stale:
            logger.warning(f"Skipped {stale} stale positions (older than {self.max_age_secs}s)")

        positions.sort(key=lambda p: risk_ratio_from_legs(p.collateral_usd, p.debt_usd))
        logger.info(f"Reconstructed {len(positions)} positions")

        return tuple(positions)

    def build_supplier_ledger(
        self, supplied_df: pd.DataFrame, withdrawn_df: pd.DataFrame
    ) -> Tuple[SupplierLedgerEntry, ...]:
        """
        Net supply and withdraw events per address

        Args:
            supplied_df: Supply events with supplier and amount columns
            withdrawn_df: Withdraw events with supplier and amount columns

        Returns:
            Ledger entries with a positive net balance, largest first
        """
        scale = 10 ** self.decimals
        net: Dict[str, float] = {}

        for frame, sign in ((supplied_df, 1.0), (withdrawn_df, -1.0)):
            if frame is None or frame.empty:
                continue

            totals = frame.assign(amount=frame["amount"].astype(float) / scale).groupby(
                "supplier"
            )["amount"].sum()

            for supplier, amount in totals.items():
                net[supplier] = net.get(supplier, 0.0) + sign * amount

        ledger = [
            SupplierLedgerEntry(address=address, net_supplied_usd=amount)
            for address, amount in net.items()
            if amount > 0
        ]
        ledger.sort(key=lambda e: e.net_supplied_usd, reverse=True)

        logger.info(f"Built supplier ledger: {len(ledger)} active suppliers")

        return tuple(ledger)

    def create_snapshot(
        self,
        state: dict,
        states_df: pd.DataFrame,
        supplied_df: Optional[pd.DataFrame] = None,
        withdrawn_df: Optional[pd.DataFrame] = None,
        timestamp: Optional[datetime] = None,
    ) -> PoolSnapshot:
        """
        Create a complete pool snapshot

        Args:
            state: Raw pool state mapping (supply, borrow, shares)
            states_df: Margin manager states
            supplied_df: Supply events (optional)
            withdrawn_df: Withdraw events (optional)
            timestamp: Snapshot timestamp (default: now)

        Returns:
            PoolSnapshot
        """
        pool_name = self.pool_config.get("name", "pool")
        logger.info(f"Creating snapshot for {pool_name}...")

        empty = pd.DataFrame(columns=["supplier", "amount"])
        snapshot = PoolSnapshot(
            pool_name=pool_name,
            state=self.pool_state(state),
            interest_config=self.interest_config(),
            pool_config=self.economic_config(),
            positions=self.reconstruct_positions(states_df),
            ledger=self.build_supplier_ledger(
                supplied_df if supplied_df is not None else empty,
                withdrawn_df if withdrawn_df is not None else empty,
            ),
            timestamp=timestamp or datetime.now(timezone.utc),
        )

        logger.info(
            f"Snapshot created: {len(snapshot.positions)} positions, "
            f"utilization={snapshot.state.utilization * 100:.1f}%"
        )

        return snapshot


def save_snapshot(snapshot: PoolSnapshot, output_path: str):
    """
    Save snapshot to JSON file

    Args:
        snapshot: PoolSnapshot to save
        output_path: Path to save JSON file
    """
    output_path = Path(output_path)
    output_path.parent.mkdir(parents=True, exist_ok=True)

    data = {
        "pool_name": snapshot.pool_name,
        "timestamp": snapshot.timestamp.isoformat() if snapshot.timestamp else None,
        "state": {
            "supply": snapshot.state.supply,
            "borrow": snapshot.state.borrow,
            "supply_shares": snapshot.state.supply_shares,
            "borrow_shares": snapshot.state.borrow_shares,
        },
        "interest_config": snapshot.interest_config.to_dict(),
        "pool_config": snapshot.pool_config.to_dict(),
        "positions": [p.to_dict() for p in snapshot.positions],
        "ledger": [e.to_dict() for e in snapshot.ledger],
    }

    with open(output_path, "w") as f:
        json.dump(data, f, indent=2, default=str)

    logger.info(f"Snapshot saved to {output_path}")


def load_snapshot(input_path: str) -> PoolSnapshot:
    """
    Load snapshot from JSON file

    Args:
        input_path: Path to JSON file

    Returns:
        PoolSnapshot
    """
    input_path = Path(input_path)

    with open(input_path, "r") as f:
        data = json.load(f)

    positions = []
    for p_data in data.get("positions", []):
        p_data = dict(p_data)
        p_data["updated_at"] = _as_datetime(p_data.get("updated_at"))
        positions.append(Position(**p_data))

    snapshot = PoolSnapshot(
        pool_name=data["pool_name"],
        state=PoolState(**data["state"]),
        interest_config=InterestConfig(**data["interest_config"]),
        pool_config=PoolEconomicConfig(**data["pool_config"]),
        positions=tuple(positions),
        ledger=tuple(SupplierLedgerEntry(**e) for e in data.get("ledger", [])),
        timestamp=_as_datetime(data.get("timestamp")),
    )

    logger.info(f"Snapshot loaded from {input_path}")

    return snapshot
