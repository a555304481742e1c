"""
Candle Preparation
CSV ingestion and gap filling ahead of a backtest
"""
import numpy as np
import pandas as pd
from loguru import logger
from typing import List, Sequence

from stratflow.models import Candle

_UNIT_MS = {
    'm': 60 * 1000,
    'h': 60 * 60 * 1000,
    'd': 24 * 60 * 60 * 1000,
}

REQUIRED_COLUMNS = ['time', 'open', 'high', 'low', 'close', 'volume']


def timeframe_to_ms(timeframe: str) -> int:
    """Convert '15m' / '1h' / '1d' to milliseconds"""
    unit = timeframe[-1:]
    if unit not in _UNIT_MS:
        raise ValueError(f"Unsupported timeframe unit: {unit or timeframe!r}")
    try:
        value = int(timeframe[:-1])
    except ValueError:
        raise ValueError(f"Invalid timeframe: {timeframe!r}") from None
    if value <= 0:
        raise ValueError(f"Invalid timeframe: {timeframe!r}")
    return value * _UNIT_MS[unit]


def fill_missing_candles(candles: Sequence[Candle], timeframe: str) -> List[Candle]:
    """Forward-fill missing bars with flat candles at the previous close"""
    if len(candles) < 2:
        return list(candles)

    interval = timeframe_to_ms(timeframe)
    filled = [candles[0]]
    missing_count = 0

    for prev, current in zip(candles, candles[1:]):
        diff = current.timestamp - prev.timestamp
        if diff > interval:
            gaps = round(diff / interval) - 1
            for j in range(1, gaps + 1):
                filled.append(Candle(
                    timestamp=prev.timestamp + j * interval,
                    open=prev.close, high=prev.close, low=prev.close, close=prev.close,
                    volume=0.0,
                ))
                missing_count += 1
        filled.append(current)

    if missing_count > 0:
        logger.info(f"Data integrity check complete. Filled {missing_count} missing candles.")

    return filled


def candles_from_dataframe(df: pd.DataFrame) -> List[Candle]:
    """Parse a DataFrame into time-ordered candles (timestamps in ms)"""
    df = df.copy()
    df.columns = df.columns.str.lower().str.strip()
    for alias in ('datetime', 'timestamp', 'date'):
        if alias in df.columns and 'time' not in df.columns:
            df.rename(columns={alias: 'time'}, inplace=True)

    missing = [c for c in REQUIRED_COLUMNS if c not in df.columns]
    if missing:
        raise ValueError(f"CSV must contain: {REQUIRED_COLUMNS} (missing: {missing}, found: {list(df.columns)})")

    if not pd.api.types.is_numeric_dtype(df['time']):
        epoch = pd.Timestamp(0, tz='UTC')
        times = (pd.to_datetime(df['time'], utc=True) - epoch) // pd.Timedelta(milliseconds=1)
    else:
        times = df['time'].astype(np.int64)
        # Epoch seconds -> ms
        if len(times) and times.max() < 10**11:
            times = times * 1000

    df = df.assign(time=times.values).sort_values('time').reset_index(drop=True)
    return [
        Candle(timestamp=int(t), open=float(o), high=float(h), low=float(l), close=float(c), volume=float(v))
        for t, o, h, l, c, v in zip(df['time'], df['open'], df['high'], df['low'], df['close'], df['volume'])
    ]


def read_candles_csv(path: str) -> List[Candle]:
    """Load candles from a CSV file"""
    candles = candles_from_dataframe(pd.read_csv(path))
    logger.info(f"Loaded {len(candles)} candles from {path}")
    return candles
