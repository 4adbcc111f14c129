"""
Tests for the Position Risk Evaluator
"""

import pytest

from margin_risk.config import RiskPolicy
from margin_risk.errors import InvalidInputError
from margin_risk.metrics.position import (
    SENTINEL_SAFE,
    evaluate,
    is_at_risk,
    ratio_at_risk,
    risk_distribution,
    risk_ratio_from_legs,
)
from margin_risk.state.models import Position


def make_position(base=1000.0, quote=200.0, base_debt=800.0, quote_debt=0.0, threshold=1.05):
    return Position(
        base_asset_usd=base,
        quote_asset_usd=quote,
        base_debt_usd=base_debt,
        quote_debt_usd=quote_debt,
        liquidation_threshold=threshold,
    )


class TestEvaluate:
    """Risk ratio and liquidation status"""

    def test_reference_position(self):
        """1000 + 200 collateral against 800 debt -> 1.5, not liquidatable"""
        risk = evaluate(make_position())

        assert risk.collateral_usd == 1200.0
        assert risk.debt_usd == 800.0
        assert risk.risk_ratio == pytest.approx(1.5)
        assert risk.is_liquidatable is False

    def test_zero_debt_uses_sentinel(self):
        """Zero debt is maximally safe and reported as a finite sentinel"""
        risk = evaluate(make_position(base_debt=0.0, quote_debt=0.0))

        assert risk.risk_ratio == SENTINEL_SAFE == 999.0
        assert risk.is_liquidatable is False

    def test_sentinel_from_policy(self):
        policy = RiskPolicy(sentinel_safe_risk_ratio=500.0)
        risk = evaluate(make_position(base_debt=0.0), policy)

        assert risk.risk_ratio == 500.0

    def test_liquidatable_at_threshold(self):
        """A ratio exactly at the threshold is liquidatable"""
        risk = evaluate(make_position(base=1050.0, quote=0.0, base_debt=1000.0))

        assert risk.risk_ratio == pytest.approx(1.05)
        assert risk.is_liquidatable is True

    def test_liquidatable_below_threshold(self):
        risk = evaluate(make_position(base=900.0, quote=0.0, base_debt=0.0, quote_debt=1000.0))

        assert risk.risk_ratio == pytest.approx(0.9)
        assert risk.is_liquidatable is True

    def test_zero_collateral_with_debt(self):
        risk = evaluate(make_position(base=0.0, quote=0.0, base_debt=10.0))

        assert risk.risk_ratio == 0.0
        assert risk.is_liquidatable is True

    def test_distance_to_liquidation(self):
        risk = evaluate(make_position())

        # (1.5 - 1.05) / 1.05 * 100
        assert risk.distance_to_liquidation_pct == pytest.approx(42.857, rel=1e-4)

    def test_strictly_decreasing_in_debt(self):
        """Holding collateral fixed, more debt means a lower ratio"""
        ratios = [
            evaluate(make_position(quote_debt=extra)).risk_ratio
            for extra in (0.0, 1.0, 50.0, 400.0, 5000.0)
        ]

        assert all(r2 < r1 for r1, r2 in zip(ratios, ratios[1:]))

    def test_risk_ratio_from_legs(self):
        assert risk_ratio_from_legs(300.0, 200.0) == pytest.approx(1.5)
        assert risk_ratio_from_legs(300.0, 0.0) == SENTINEL_SAFE


class TestInputValidation:
    """Malformed positions are rejected on construction"""

    @pytest.mark.parametrize(
        "field", ["base_asset_usd", "quote_asset_usd", "base_debt_usd", "quote_debt_usd"]
    )
    def test_negative_leg_rejected(self, field):
        values = dict(
            base_asset_usd=100.0,
            quote_asset_usd=100.0,
            base_debt_usd=50.0,
            quote_debt_usd=50.0,
            liquidation_threshold=1.1,
        )
        values[field] = -1.0

        with pytest.raises(InvalidInputError):
            Position(**values)

    @pytest.mark.parametrize("threshold", [1.0, 0.9, 0.0])
    def test_threshold_must_exceed_one(self, threshold):
        with pytest.raises(InvalidInputError):
            make_position(threshold=threshold)


class TestAtRisk:
    """At-risk buffer above the liquidation threshold"""

    def test_within_buffer(self):
        # 1.2 <= 1.05 * 1.2 = 1.26
        assert is_at_risk(make_position(base=1200.0, quote=0.0, base_debt=1000.0))

    def test_outside_buffer(self):
        assert not is_at_risk(make_position())

    def test_custom_buffer(self):
        policy = RiskPolicy(at_risk_buffer=0.5)
        # 1.5 <= 1.05 * 1.5 = 1.575
        assert is_at_risk(make_position(), policy)

    def test_ratio_line(self):
        """Shocked ratios use the same line as current ones"""
        assert ratio_at_risk(1.25, 1.05)
        assert not ratio_at_risk(1.27, 1.05)
        assert not ratio_at_risk(SENTINEL_SAFE, 1.05)


class TestRiskDistribution:
    """Histogram of positions by risk ratio"""

    def test_buckets(self):
        positions = [
            make_position(base=1000.0, quote=0.0, base_debt=1000.0),  # 1.00
            make_position(base=1070.0, quote=0.0, base_debt=1000.0),  # 1.07
            make_position(base=1100.0, quote=0.0, base_debt=1000.0),  # 1.10
            make_position(),  # 1.50
            make_position(base_debt=0.0),  # sentinel
        ]

        buckets = risk_distribution(positions)
        counts = {b["label"]: b["count"] for b in buckets}

        assert counts == {
            "< 1.05": 1,
            "1.05-1.10": 1,
            "1.10-1.20": 1,
            "1.20-1.50": 0,
            "1.50+": 2,
        }
        assert buckets[0]["total_debt_usd"] == pytest.approx(1000.0)

    def test_empty(self):
        assert all(b["count"] == 0 for b in risk_distribution([]))
