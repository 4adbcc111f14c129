"""Risk analytics engine for collateralized margin-lending pools"""

from .config import DEFAULT_POLICY, RiskPolicy, load_policy
from .errors import InvalidInputError, MarginRiskError
from .metrics import ConcentrationAnalysis, PositionRisk, analyze, evaluate
from .rates import InterestRateModel, RatePair, compute_rates
from .scoring import CompositeRiskScore, CompositeRiskScorer
from .state.models import (
    InterestConfig,
    PoolEconomicConfig,
    PoolState,
    Position,
    RiskScoreWeights,
    ShockScenario,
    SupplierLedgerEntry,
)
from .stress import (
    LiquidationStressCurve,
    PriceRange,
    PriceShockSimulator,
    StressCurvePoint,
    find_liquidation_price,
)

__version__ = "0.1.0"
