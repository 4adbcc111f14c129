"""Interest rate modules"""

from .model import InterestRateModel, PoolRates, RatePair, compute_rates, pool_rates

__all__ = ["InterestRateModel", "PoolRates", "RatePair", "compute_rates", "pool_rates"]
