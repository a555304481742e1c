import pytest
from loguru import logger

from builders import make_candles, threshold_strategy


@pytest.fixture(autouse=True)
def _quiet_logger():
    """Keep loguru output out of test reports"""
    logger.remove()
    yield


@pytest.fixture
def rsi_scenario():
    """Buy when RSI(2) < 30, sell when RSI(2) > 70"""
    candles = make_candles([100, 90, 80, 95, 110])
    nodes, edges = threshold_strategy("LT", 30, "GT", 70, indicator_type="RSI", period=2)
    return candles, nodes, edges


@pytest.fixture
def price_strategy():
    """SMA(1) follows the close, so thresholds act directly on price"""
    return threshold_strategy
