"""Exceptions raised by the risk engine"""


class MarginRiskError(Exception):
    """Base class for all risk engine errors"""


class InvalidInputError(MarginRiskError, ValueError):
    """
    Raised when a caller hands the engine malformed input

    Examples: utilization outside [0, 1], negative collateral or debt,
    an empty position set where one is required, or score weights that
    do not sum to 1.0. Never retried; sanitize upstream.
    """
