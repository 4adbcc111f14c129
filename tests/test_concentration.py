"""
Tests for the Concentration Analyzer
"""

import numpy as np
import pytest

from margin_risk.config import DominanceThresholds
from margin_risk.metrics.concentration import (
    CONCENTRATED,
    DIVERSIFIED,
    DOMINATED,
    MODERATE,
    analyze,
    dominance_level,
    gini_coefficient,
    herfindahl_index,
    utilization_if_top_supplier_exits,
)
from margin_risk.state.models import PoolState, SupplierLedgerEntry


def ledger_of(*amounts):
    return [
        SupplierLedgerEntry(address=f"0x{i:040x}", net_supplied_usd=amount)
        for i, amount in enumerate(amounts)
    ]


class TestAnalyze:
    """Concentration statistics over a supplier ledger"""

    def test_equal_shares(self):
        """Four equal suppliers: HHI 2500, no inequality"""
        result = analyze(ledger_of(100, 100, 100, 100))

        assert result.hhi == pytest.approx(2500.0)
        assert result.gini == pytest.approx(0.0, abs=1e-12)
        assert result.top1_share_pct == pytest.approx(25.0)
        assert result.top3_share_pct == pytest.approx(75.0)
        assert result.supplier_count == 4

    def test_single_supplier_after_exclusions(self):
        """Zero balances are excluded, leaving one supplier with 100%"""
        result = analyze(ledger_of(400, 0, 0, 0))

        assert result.supplier_count == 1
        assert result.hhi == pytest.approx(10000.0)
        assert result.gini == 0.0
        assert result.top1_share_pct == pytest.approx(100.0)
        assert result.dominance_level == DOMINATED

    def test_negative_balances_excluded(self):
        result = analyze(ledger_of(300, -50, 100))

        assert result.supplier_count == 2
        assert result.total_supplied_usd == pytest.approx(400.0)
        assert result.top1_share_pct == pytest.approx(75.0)

    def test_empty_ledger(self):
        result = analyze([])

        assert result.hhi == 0.0
        assert result.gini == 0.0
        assert result.supplier_count == 0
        assert result.dominance_level == DIVERSIFIED

    def test_top_supplier_amount(self):
        result = analyze(ledger_of(10, 70, 20))

        assert result.top1_amount_usd == 70
        assert result.top1_share_pct == pytest.approx(70.0)
        assert result.top3_share_pct == pytest.approx(100.0)

    def test_to_dict(self):
        data = analyze(ledger_of(50, 50)).to_dict()

        assert data["hhi"] == pytest.approx(5000.0)
        assert data["dominance_level"] == CONCENTRATED


class TestHerfindahlIndex:
    """HHI bounds"""

    def test_bounds_random_ledgers(self):
        rng = np.random.default_rng(7)

        for _ in range(50):
            amounts = rng.uniform(0.01, 1000, size=rng.integers(1, 40))
            hhi = herfindahl_index(list(amounts))
            assert 0 <= hhi <= 10000 + 1e-6

    def test_max_only_for_single_supplier(self):
        assert herfindahl_index([5.0]) == pytest.approx(10000.0)
        assert herfindahl_index([5.0, 0.001]) < 10000.0

    def test_zero_total(self):
        assert herfindahl_index([]) == 0.0


class TestGiniCoefficient:
    """Gini bounds and degenerate cases"""

    def test_known_value(self):
        # sorted [1, 3]: 2 * (1*1 + 2*3) / (2 * 4) - 3/2 = 0.25
        assert gini_coefficient([3.0, 1.0]) == pytest.approx(0.25)

    def test_bounds_random_ledgers(self):
        rng = np.random.default_rng(11)

        for _ in range(50):
            amounts = rng.exponential(100, size=rng.integers(2, 60))
            assert 0 <= gini_coefficient(amounts) <= 1

    def test_single_value(self):
        assert gini_coefficient([42.0]) == 0.0

    def test_all_zero(self):
        assert gini_coefficient([0.0, 0.0, 0.0]) == 0.0

    def test_highly_unequal(self):
        assert gini_coefficient([1.0] * 9 + [10000.0]) > 0.85


class TestDominanceLevel:
    """Ordinal dominance classification"""

    @pytest.mark.parametrize(
        "top1,hhi,expected",
        [
            (81, 0, DOMINATED),
            (10, 5001, DOMINATED),
            (51, 0, CONCENTRATED),
            (10, 2501, CONCENTRATED),
            (26, 0, MODERATE),
            (10, 1501, MODERATE),
            (25, 1500, DIVERSIFIED),
            (80, 1000, CONCENTRATED),
        ],
    )
    def test_levels(self, top1, hhi, expected):
        assert dominance_level(top1, hhi) == expected

    def test_custom_thresholds(self):
        thresholds = DominanceThresholds(moderate_top1_pct=10.0)

        assert dominance_level(12, 0, thresholds) == MODERATE


class TestWhaleExit:
    """Utilization if the largest supplier withdraws"""

    def test_from_analysis(self):
        state = PoolState(supply=1000.0, borrow=300.0)
        analysis = analyze(ledger_of(500, 250, 250))

        # 300 / (1000 - 500)
        assert utilization_if_top_supplier_exits(state, analysis) == pytest.approx(60.0)

    def test_capped_at_100(self):
        state = PoolState(supply=1000.0, borrow=600.0)

        assert utilization_if_top_supplier_exits(state, 900.0) == 100.0

    def test_no_borrow(self):
        state = PoolState(supply=1000.0, borrow=0.0)

        assert utilization_if_top_supplier_exits(state, 900.0) == 0.0
