"""Stress testing modules"""

from .curve import LiquidationStressCurve, find_liquidation_price
from .engine import PriceShockSimulator
from .models import PriceRange, ShockSummary, SimulatedPosition, StressCurvePoint

__all__ = [
    "LiquidationStressCurve",
    "PriceRange",
    "PriceShockSimulator",
    "ShockSummary",
    "SimulatedPosition",
    "StressCurvePoint",
    "find_liquidation_price",
]
