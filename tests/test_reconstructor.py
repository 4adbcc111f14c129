"""Tests for StateReconstructor"""

from datetime import datetime, timedelta, timezone

import pandas as pd
import pytest

from margin_risk.errors import InvalidInputError
from margin_risk.state.models import PoolState
from margin_risk.state.reconstructor import (
    StateReconstructor,
    load_snapshot,
    pyth_price_to_usd,
    save_snapshot,
)

NOW = datetime(2024, 1, 1, tzinfo=timezone.utc)


def epoch_ms(ts: datetime) -> int:
    return int(ts.timestamp() * 1000)


@pytest.fixture
def pool_config():
    """Raw on-chain pool configuration (fixed point, 1e9 scaling)"""
    return {
        'name': 'USDC',
        'decimals': 6,
        'liquidation_risk_ratio': 1_100_000_000,
        'interest_config': {
            'base_rate': 20_000_000,
            'base_slope': 50_000_000,
            'optimal_utilization': 800_000_000,
            'excess_slope': 500_000_000,
        },
        'margin_pool_config': {
            'protocol_spread': 100_000_000,
            'supply_cap': 1_000_000,
            'max_utilization_rate': 900_000_000,
        },
    }


@pytest.fixture
def states_df():
    """Margin manager states: amounts in token units plus Pyth prices"""
    fresh = epoch_ms(NOW - timedelta(seconds=60))
    stale = epoch_ms(NOW - timedelta(hours=2))

    rows = [
        ('0x111', 100.0, 200.0, 0.0, 250.0, fresh),   # 354 + 200 vs 250
        ('0x222', 50.0, 10.0, 0.0, 0.0, fresh),       # no debt
        ('0x333', 100.0, 0.0, 0.0, 300.0, stale),     # stale
        ('0x444', 100.0, 0.0, 0.0, 300.0, fresh),     # 354 vs 300
        ('0x555', -5.0, 0.0, 0.0, 10.0, fresh),       # invalid
    ]

    return pd.DataFrame([
        {
            'margin_manager_id': manager_id,
            'base_asset': base,
            'quote_asset': quote,
            'base_debt': base_debt,
            'quote_debt': quote_debt,
            'base_pyth_price': 354_000_000,
            'base_pyth_decimals': -8,
            'quote_pyth_price': 100_000_000,
            'quote_pyth_decimals': -8,
            'base_asset_symbol': 'SUI',
            'quote_asset_symbol': 'USDC',
            'updated_at': updated_at,
        }
        for manager_id, base, quote, base_debt, quote_debt, updated_at in rows
    ])


@pytest.fixture
def supplied_df():
    return pd.DataFrame([
        {'supplier': '0xa', 'amount': 1_000_000_000},
        {'supplier': '0xa', 'amount': 500_000_000},
        {'supplier': '0xb', 'amount': 200_000_000},
    ])


@pytest.fixture
def withdrawn_df():
    return pd.DataFrame([
        {'supplier': '0xa', 'amount': 300_000_000},
        {'supplier': '0xb', 'amount': 200_000_000},
        {'supplier': '0xc', 'amount': 50_000_000},
    ])


@pytest.fixture
def reconstructor(pool_config):
    return StateReconstructor(pool_config, float_scaling=1e9)


def test_pyth_price_to_usd():
    """Test Pyth price conversion"""
    assert pyth_price_to_usd(2.0, 354_000_000, -8) == pytest.approx(7.08)
    assert pyth_price_to_usd(2.0, 354_000_000, 8) == pytest.approx(7.08)
    assert pyth_price_to_usd(2.0, 0, -8) == 0.0


def test_configs(reconstructor):
    """Test fixed-point config unscaling"""
    ic = reconstructor.interest_config()
    pc = reconstructor.economic_config()

    assert reconstructor.liquidation_threshold == pytest.approx(1.1)
    assert ic.base_rate == pytest.approx(0.02)
    assert ic.optimal_utilization == pytest.approx(0.8)
    assert pc.protocol_spread == pytest.approx(0.1)
    assert pc.supply_cap == 1_000_000
    assert pc.max_utilization_rate == pytest.approx(0.9)


def test_missing_interest_config():
    """Test that a pool without a rate curve is rejected"""
    reconstructor = StateReconstructor({'name': 'X'})

    with pytest.raises(InvalidInputError):
        reconstructor.interest_config()


def test_default_threshold():
    assert StateReconstructor({'name': 'X'}).liquidation_threshold == 1.05


def test_pool_state(reconstructor):
    state = reconstructor.pool_state({'supply': 1000.0, 'borrow': 400.0, 'supply_shares': 950.0})

    assert state == PoolState(supply=1000.0, borrow=400.0, supply_shares=950.0)


def test_reconstruct_positions(reconstructor, states_df):
    """Test position reconstruction, filtering and ordering"""
    positions = reconstructor.reconstruct_positions(states_df, now=NOW)

    # No-debt and invalid rows are dropped; no age limit configured.
    # Equal ratios keep their input order.
    assert [p.margin_manager_id for p in positions] == ['0x333', '0x444', '0x111']

    riskiest = positions[0]
    assert riskiest.base_asset_usd == pytest.approx(354.0)
    assert riskiest.quote_debt_usd == pytest.approx(300.0)
    assert riskiest.liquidation_threshold == pytest.approx(1.1)
    assert riskiest.oracle_price == pytest.approx(3.54)
    assert riskiest.base_asset_symbol == 'SUI'
    assert riskiest.updated_at.tzinfo is not None


def test_stale_positions_skipped(pool_config, states_df):
    """Test that rows older than max_age_secs are dropped"""
    reconstructor = StateReconstructor(pool_config, float_scaling=1e9, max_age_secs=3600)

    positions = reconstructor.reconstruct_positions(states_df, now=NOW)

    assert [p.margin_manager_id for p in positions] == ['0x444', '0x111']


def test_naive_now_treated_as_utc(pool_config, states_df):
    """Naive reference times are taken as UTC"""
    reconstructor = StateReconstructor(pool_config, float_scaling=1e9, max_age_secs=3600)

    positions = reconstructor.reconstruct_positions(states_df, now=NOW.replace(tzinfo=None))

    assert [p.margin_manager_id for p in positions] == ['0x444', '0x111']


def test_reconstruct_empty(reconstructor):
    assert reconstructor.reconstruct_positions(pd.DataFrame()) == ()


def test_build_supplier_ledger(reconstructor, supplied_df, withdrawn_df):
    """Test supply/withdraw netting per address"""
    ledger = reconstructor.build_supplier_ledger(supplied_df, withdrawn_df)

    # 0xb nets to zero and 0xc only withdrew
    assert len(ledger) == 1
    assert ledger[0].address == '0xa'
    assert ledger[0].net_supplied_usd == pytest.approx(1200.0)


def test_build_supplier_ledger_orders_largest_first(reconstructor, supplied_df):
    ledger = reconstructor.build_supplier_ledger(supplied_df, pd.DataFrame())

    assert [e.address for e in ledger] == ['0xa', '0xb']


def test_create_snapshot(reconstructor, states_df, supplied_df, withdrawn_df):
    """Test complete snapshot creation"""
    snapshot = reconstructor.create_snapshot(
        {'supply': 1000.0, 'borrow': 500.0},
        states_df,
        supplied_df,
        withdrawn_df,
        timestamp=NOW,
    )

    assert snapshot.pool_name == 'USDC'
    assert snapshot.timestamp == NOW
    assert snapshot.state.utilization == pytest.approx(0.5)
    assert len(snapshot.positions) == 3
    assert len(snapshot.ledger) == 1


def test_save_and_load_snapshot(reconstructor, states_df, supplied_df, withdrawn_df, tmp_path):
    """Test snapshot JSON persistence"""
    snapshot = reconstructor.create_snapshot(
        {'supply': 1000.0, 'borrow': 500.0, 'supply_shares': 990.0, 'borrow_shares': 480.0},
        states_df,
        supplied_df,
        withdrawn_df,
        timestamp=NOW,
    )
    path = tmp_path / 'snapshots' / 'usdc.json'

    save_snapshot(snapshot, str(path))
    loaded = load_snapshot(str(path))

    assert path.exists()
    assert loaded == snapshot
