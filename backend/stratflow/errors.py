"""
Error taxonomy for the backtest core
"""
from stratflow.models import BacktestError


class StratflowError(Exception):
    """Base class for all engine errors"""


class ConfigurationError(StratflowError):
    """Strategy graph is malformed or has no action-reachable condition"""


class InsufficientDataError(StratflowError):
    """Fewer candles than a simulation needs"""


class IndicatorComputationError(StratflowError):
    """Raised when a single indicator series cannot be computed.

    Recovered inside the IndicatorBank: the node's series degrades to all-None.
    """

    def __init__(self, node_id: str, cause: Exception):
        self.node_id = node_id
        self.cause = cause
        super().__init__(f"Indicator '{node_id}' failed: {cause}")


def to_error_result(exc: StratflowError) -> BacktestError:
    """Convert an engine error into the discriminated failure shape"""
    return BacktestError(error=str(exc), errorType=type(exc).__name__)
