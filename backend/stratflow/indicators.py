"""
Technical Indicators
Optimized with NumPy, aligned to the candle series
"""
import numpy as np
from numba import jit
from loguru import logger
from typing import Dict, Any, List, Optional, Callable

from stratflow import MACD_FIELDS
from stratflow.errors import IndicatorComputationError
from stratflow.models import IndicatorConfig, IndicatorNode


# ==================== INDICATOR FUNCTIONS ====================

@jit(nopython=True)
def _sma_core(values: np.ndarray, period: int) -> np.ndarray:
    """SMA Core (Numba optimized)"""
    n = len(values)
    result = np.full(n, np.nan)

    for i in range(period - 1, n):
        result[i] = np.mean(values[i - period + 1:i + 1])

    return result


def calculate_sma(values: np.ndarray, period: int) -> np.ndarray:
    """Simple Moving Average"""
    if len(values) < period:
        return np.full(len(values), np.nan)
    return _sma_core(values, period)


def calculate_ema(values: np.ndarray, period: int) -> np.ndarray:
    """Exponential Moving Average"""
    ema = np.full(len(values), np.nan)
    if len(values) < period:
        return ema

    multiplier = 2 / (period + 1)

    # First EMA = SMA
    ema[period - 1] = np.mean(values[:period])

    for i in range(period, len(values)):
        ema[i] = (values[i] - ema[i - 1]) * multiplier + ema[i - 1]

    return ema


@jit(nopython=True)
def _rsi_core(values: np.ndarray, period: int) -> np.ndarray:
    """RSI Core (Numba optimized, Wilder smoothing)"""
    n = len(values)
    rsi = np.full(n, np.nan)

    deltas = np.diff(values)
    gains = np.where(deltas > 0, deltas, 0.0)
    losses = np.where(deltas < 0, -deltas, 0.0)

    avg_gain = np.mean(gains[:period])
    avg_loss = np.mean(losses[:period])

    if avg_loss == 0:
        rsi[period] = 100.0
    else:
        rs = avg_gain / avg_loss
        rsi[period] = 100.0 - (100.0 / (1.0 + rs))

    for i in range(period + 1, n):
        avg_gain = (avg_gain * (period - 1) + gains[i - 1]) / period
        avg_loss = (avg_loss * (period - 1) + losses[i - 1]) / period

        if avg_loss == 0:
            rsi[i] = 100.0
        else:
            rs = avg_gain / avg_loss
            rsi[i] = 100.0 - (100.0 / (1.0 + rs))

    return rsi


def calculate_rsi(values: np.ndarray, period: int = 14) -> np.ndarray:
    """Relative Strength Index"""
    if len(values) < period + 1:
        return np.full(len(values), np.nan)
    return _rsi_core(values, period)


def calculate_macd(values: np.ndarray, fast: int = 12, slow: int = 26, signal: int = 9):
    """MACD line, signal line (EMA of the valid MACD values) and histogram"""
    ema_fast = calculate_ema(values, fast)
    ema_slow = calculate_ema(values, slow)

    macd = ema_fast - ema_slow

    first_valid = slow - 1
    signal_aligned = np.full(len(macd), np.nan)
    if first_valid + signal <= len(macd):
        macd_slice = macd[first_valid:].astype(np.float64)
        signal_slice = calculate_ema(macd_slice, signal)
        signal_aligned[first_valid:] = signal_slice

    histogram = macd - signal_aligned

    return macd, signal_aligned, histogram


# ==================== ALIGNED SERIES ====================

def pad_left(values: np.ndarray, length: int) -> np.ndarray:
    """Left-pad a producer's output with NaN so it lines up with the prices"""
    values = np.asarray(values, dtype=np.float64)
    if len(values) > length:
        raise ValueError(f"Indicator produced {len(values)} values for {length} prices")
    if len(values) == length:
        return values
    return np.concatenate([np.full(length - len(values), np.nan), values])


def _scalar_series(values: np.ndarray) -> List[Optional[float]]:
    return [None if np.isnan(v) else float(v) for v in values]


def _macd_series(macd, signal, histogram) -> List[Optional[Dict[str, float]]]:
    series = []
    for m, s, h in zip(macd, signal, histogram):
        if np.isnan(s):
            series.append(None)
        else:
            series.append(dict(zip(MACD_FIELDS, (float(m), float(s), float(h)))))
    return series


def _rsi(prices: np.ndarray, params: Dict[str, Any]):
    return calculate_rsi(prices, int(params.get("period", 14)))


def _sma(prices: np.ndarray, params: Dict[str, Any]):
    return calculate_sma(prices, int(params.get("period", 14)))


def _ema(prices: np.ndarray, params: Dict[str, Any]):
    return calculate_ema(prices, int(params.get("period", 14)))


def _macd(prices: np.ndarray, params: Dict[str, Any]):
    return calculate_macd(
        prices,
        int(params.get("fastPeriod", 12)),
        int(params.get("slowPeriod", 26)),
        int(params.get("signalPeriod", 9)),
    )


INDICATOR_FUNCTIONS: Dict[str, Callable] = {
    "RSI": _rsi,
    "SMA": _sma,
    "EMA": _ema,
    "MACD": _macd,
}


def compute(prices, indicator_type: str, params: Optional[Dict[str, Any]] = None) -> List[Any]:
    """Compute one indicator; series[i] corresponds to prices[i].

    Scalar indicators yield float|None per index, MACD yields
    {"MACD", "signal", "histogram"} records (None during warm-up).
    """
    func = INDICATOR_FUNCTIONS.get(indicator_type)
    if func is None:
        raise ValueError(f"Unsupported indicator type: {indicator_type}")

    prices = np.asarray(prices, dtype=np.float64)
    length = len(prices)
    output = func(prices, params or {})

    if indicator_type == "MACD":
        macd, signal, histogram = (pad_left(part, length) for part in output)
        return _macd_series(macd, signal, histogram)
    return _scalar_series(pad_left(output, length))


class IndicatorBank:
    """Per-run cache of indicator series keyed by node id"""

    def __init__(self, close: np.ndarray):
        self.close = np.asarray(close, dtype=np.float64)
        self.length = len(self.close)
        # Series by parameter key, shared between nodes with identical config
        self.indicators: Dict[str, List[Any]] = {}
        self.series: Dict[str, List[Any]] = {}
        self.failed: List[str] = []

    @staticmethod
    def _key(config: IndicatorConfig) -> str:
        params = config.params()
        return "_".join([config.indicatorType.lower()] + [str(v) for v in params.values()])

    def build(self, nodes: List[IndicatorNode]) -> "IndicatorBank":
        """Compute the series of every indicator node"""
        for node in nodes:
            self.series[node.id] = self._build_single(node)
        logger.debug(f"Built {len(self.indicators)} indicator series for {len(nodes)} nodes")
        return self

    def _build_single(self, node: IndicatorNode) -> List[Any]:
        key = self._key(node.config)
        if key in self.indicators:
            return self.indicators[key]
        try:
            series = compute(self.close, node.config.indicatorType, node.config.params())
        except Exception as e:
            error = IndicatorComputationError(node.id, e)
            logger.warning(f"{error}; branch disabled for this run")
            self.failed.append(node.id)
            return [None] * self.length
        self.indicators[key] = series
        return series

    def get(self, node_id: str) -> Optional[List[Any]]:
        return self.series.get(node_id)

    def value_at(self, node_id: str, index: int) -> Any:
        series = self.series.get(node_id)
        if series is None or not 0 <= index < len(series):
            return None
        return series[index]
