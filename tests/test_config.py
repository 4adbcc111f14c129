"""Tests for risk policy loading"""

import pytest
import yaml

from margin_risk.config import (
    DEFAULT_POLICY,
    POLICY_ENV_VAR,
    DominanceThresholds,
    RiskPolicy,
    load_policy,
    policy_from_dict,
)
from margin_risk.errors import InvalidInputError


@pytest.fixture
def policy_file(tmp_path):
    path = tmp_path / "risk_policy.yaml"
    path.write_text(yaml.safe_dump({
        "policy": {
            "at_risk_buffer": 0.3,
            "health_factor_cap": 4.0,
            "dominance": {"dominated_top1_pct": 90.0},
            "weights": {
                "utilization": 0.4,
                "liquidity": 0.3,
                "rate": 0.2,
                "concentration": 0.1,
            },
        }
    }))
    return path


class TestDefaults:
    """Built-in policy values"""

    def test_default_policy(self):
        assert DEFAULT_POLICY.sentinel_safe_risk_ratio == 999.0
        assert DEFAULT_POLICY.health_factor_cap == 5.0
        assert DEFAULT_POLICY.at_risk_buffer == 0.20
        assert DEFAULT_POLICY.dominance == DominanceThresholds()
        assert DEFAULT_POLICY.weights.rate == 0.20

    def test_bundled_policy_matches_defaults(self, monkeypatch):
        """config/risk_policy.yaml ships the built-in values"""
        monkeypatch.delenv(POLICY_ENV_VAR, raising=False)

        assert load_policy() == RiskPolicy()


class TestPolicyFromDict:
    """Partial overrides"""

    def test_partial_override(self):
        policy = policy_from_dict({"watch_distance_pct": 10.0})

        assert policy.watch_distance_pct == 10.0
        assert policy.sentinel_safe_risk_ratio == 999.0

    def test_nested_sections(self):
        policy = policy_from_dict({"dominance": {"moderate_hhi": 1000.0}})

        assert policy.dominance.moderate_hhi == 1000.0
        assert policy.dominance.dominated_hhi == 5000.0

    def test_empty(self):
        assert policy_from_dict({}) == DEFAULT_POLICY
        assert policy_from_dict(None) == DEFAULT_POLICY

    def test_unknown_key(self):
        with pytest.raises(InvalidInputError):
            policy_from_dict({"sentinel": 1.0})

    def test_unknown_nested_key(self):
        with pytest.raises(InvalidInputError):
            policy_from_dict({"weights": {"volatility": 0.1}})

    def test_weights_must_sum_to_one(self):
        with pytest.raises(InvalidInputError):
            policy_from_dict({"weights": {"utilization": 0.9}})


class TestLoadPolicy:
    """YAML loading and path resolution"""

    def test_explicit_path(self, policy_file):
        policy = load_policy(policy_file)

        assert policy.at_risk_buffer == 0.3
        assert policy.health_factor_cap == 4.0
        assert policy.dominance.dominated_top1_pct == 90.0
        assert policy.weights.utilization == 0.4

    def test_missing_file_uses_defaults(self, tmp_path):
        assert load_policy(tmp_path / "missing.yaml") == DEFAULT_POLICY

    def test_env_var(self, policy_file, monkeypatch):
        monkeypatch.setenv(POLICY_ENV_VAR, str(policy_file))

        assert load_policy().at_risk_buffer == 0.3

    def test_top_level_mapping(self, tmp_path):
        """A file without a policy section is read as the policy itself"""
        path = tmp_path / "flat.yaml"
        path.write_text("cliff_min_multiplier: 3.0\n")

        assert load_policy(path).cliff_min_multiplier == 3.0

    def test_empty_file(self, tmp_path):
        path = tmp_path / "empty.yaml"
        path.write_text("")

        assert load_policy(path) == DEFAULT_POLICY
