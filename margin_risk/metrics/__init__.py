"""Position and supplier risk metrics"""

from .concentration import ConcentrationAnalysis, analyze
from .position import PositionRisk, evaluate

__all__ = ["ConcentrationAnalysis", "PositionRisk", "analyze", "evaluate"]
