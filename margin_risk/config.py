"""Policy constants for the risk engine, overridable from YAML"""

import logging
import os
from dataclasses import dataclass, field, fields, replace
from pathlib import Path
from typing import Optional

import yaml
from dotenv import load_dotenv

from .errors import InvalidInputError
from .state.models import RiskScoreWeights

logger = logging.getLogger(__name__)

POLICY_ENV_VAR = "MARGIN_RISK_POLICY"
DEFAULT_POLICY_PATH = Path(__file__).parent.parent / "config" / "risk_policy.yaml"


@dataclass(frozen=True)
class DominanceThresholds:
    """
    Cutoffs for supplier dominance levels

    Each level is reached when the top supplier's share (%) or the HHI
    exceeds the level's cutoff. UI-tuned, not derived.
    """

    dominated_top1_pct: float = 80.0
    dominated_hhi: float = 5000.0
    concentrated_top1_pct: float = 50.0
    concentrated_hhi: float = 2500.0
    moderate_top1_pct: float = 25.0
    moderate_hhi: float = 1500.0


@dataclass(frozen=True)
class RiskPolicy:
    """All tunable constants used across the engine"""

    # Risk ratio reported for positions without debt
    sentinel_safe_risk_ratio: float = 999.0
    # Ceiling applied to stress curve health factors
    health_factor_cap: float = 5.0
    # "At risk" = risk ratio within this fraction above the liquidation threshold
    at_risk_buffer: float = 0.20
    # Simulated distance to liquidation (%) below which a position is WATCH
    watch_distance_pct: float = 15.0
    dominance: DominanceThresholds = field(default_factory=DominanceThresholds)
    weights: RiskScoreWeights = field(default_factory=RiskScoreWeights)
    # Concentration sub-score used when no supplier ledger is available
    neutral_concentration_risk: float = 30.0
    cliff_min_multiplier: float = 2.0
    cliff_min_debt_usd: float = 100.0
    high_risk_score: float = 70.0
    moderate_risk_score: float = 40.0


DEFAULT_POLICY = RiskPolicy()


def _build_section(cls, values: dict, section: str):
    known = {f.name for f in fields(cls)}
    unknown = set(values) - known
    if unknown:
        raise InvalidInputError(f"Unknown keys in '{section}': {sorted(unknown)}")
    return cls(**values)


def policy_from_dict(data: dict) -> RiskPolicy:
    """
    Build a RiskPolicy from a (partial) dictionary of overrides

    Args:
        data: Mapping with any RiskPolicy field; 'dominance' and 'weights'
              may be nested mappings.

    Returns:
        RiskPolicy with defaults for every key not given
    """
    data = dict(data or {})
    overrides = {}

    if "dominance" in data:
        overrides["dominance"] = _build_section(
            DominanceThresholds, data.pop("dominance") or {}, "dominance"
        )
    if "weights" in data:
        overrides["weights"] = _build_section(
            RiskScoreWeights, data.pop("weights") or {}, "weights"
        )

    known = {f.name for f in fields(RiskPolicy)}
    unknown = set(data) - known
    if unknown:
        raise InvalidInputError(f"Unknown policy keys: {sorted(unknown)}")

    overrides.update(data)
    return replace(DEFAULT_POLICY, **overrides)


def load_policy(path: Optional[Path] = None) -> RiskPolicy:
    """
    Load the risk policy from YAML

    Resolution order: explicit path, then the MARGIN_RISK_POLICY environment
    variable (a .env file is honoured), then config/risk_policy.yaml.

    Args:
        path: Optional path to a YAML policy file

    Returns:
        RiskPolicy (defaults if no file is found)
    """
    if path is None:
        load_dotenv()
        env_path = os.getenv(POLICY_ENV_VAR)
        path = Path(env_path) if env_path else DEFAULT_POLICY_PATH

    path = Path(path)

    if not path.exists():
        logger.warning(f"Risk policy not found: {path}, using defaults")
        return DEFAULT_POLICY

    with open(path, "r") as f:
        data = yaml.safe_load(f) or {}

    policy = policy_from_dict(data.get("policy", data))
    logger.info(f"Loaded risk policy from {path}")

    return policy
