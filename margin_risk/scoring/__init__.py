"""Risk scoring modules"""

from .scorer import CompositeRiskScore, CompositeRiskScorer, concentration_risk_from

__all__ = ["CompositeRiskScore", "CompositeRiskScorer", "concentration_risk_from"]
