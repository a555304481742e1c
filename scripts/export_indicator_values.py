#!/usr/bin/env python3
"""
Export aligned indicator values for a candle CSV.
Usage: python scripts/export_indicator_values.py BTCUSDT_1h.csv --type MACD --tail 20

Useful for checking the engine's values against a charting platform.
"""
import argparse
from datetime import datetime, timezone

from stratflow.candles import read_candles_csv
from stratflow.indicators import compute
from stratflow.logger_config import init_logger
from stratflow.models import IndicatorConfig


def _fmt(value) -> str:
    if value is None:
        return f"{'-':>11}"
    return f"{value:11.4f}"


def main():
    parser = argparse.ArgumentParser(description=__doc__, formatter_class=argparse.RawDescriptionHelpFormatter)
    parser.add_argument("csv_path")
    parser.add_argument("--type", dest="indicator_type", default="RSI")
    parser.add_argument("--period", type=int, default=14)
    parser.add_argument("--fast", type=int, default=12)
    parser.add_argument("--slow", type=int, default=26)
    parser.add_argument("--signal", type=int, default=9)
    parser.add_argument("--tail", type=int, default=20, help="number of trailing bars to print")
    args = parser.parse_args()

    init_logger("WARNING")
    config = IndicatorConfig(
        indicatorType=args.indicator_type, period=args.period,
        fastPeriod=args.fast, slowPeriod=args.slow, signalPeriod=args.signal,
    )
    candles = read_candles_csv(args.csv_path)
    series = compute([c.close for c in candles], config.indicatorType, config.params())

    if config.indicatorType == "MACD":
        print("datetime         | Close       | MACD        | Signal      | Histogram")
    else:
        print(f"datetime         | Close       | {config.indicatorType}")
    print("-" * 72)

    for candle, value in list(zip(candles, series))[-args.tail:]:
        ts = datetime.fromtimestamp(candle.timestamp / 1000, tz=timezone.utc).strftime("%Y-%m-%d %H:%M")
        if config.indicatorType == "MACD":
            fields = value or {}
            print(f"{ts} | {candle.close:11.4f} | {_fmt(fields.get('MACD'))} | "
                  f"{_fmt(fields.get('signal'))} | {_fmt(fields.get('histogram'))}")
        else:
            print(f"{ts} | {candle.close:11.4f} | {_fmt(value)}")


if __name__ == "__main__":
    main()
