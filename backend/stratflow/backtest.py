"""
Backtest Engine
Replays graph decisions candle by candle
"""
import numpy as np
from loguru import logger
from pydantic import ValidationError
from typing import Any, Dict, List, Sequence, Union

from stratflow.errors import (
    ConfigurationError, InsufficientDataError, StratflowError, to_error_result,
)
from stratflow.graph import GraphResolver, StrategyGraph
from stratflow.indicators import IndicatorBank
from stratflow.metrics import TradeLedger, calculate_statistics
from stratflow.models import (
    BacktestError, BacktestResult, Candle, EnrichedCandle,
    EquityPoint, SimulationParams, Trade,
)


def require_candles(count: int) -> None:
    """A simulation needs a seed candle plus at least one tradable candle"""
    if count < 2:
        raise InsufficientDataError(f"Backtest needs at least 2 candles, got {count}")


class BacktestEngine:
    """Single-position long-only simulation over one candle series"""

    def __init__(self, candles: Sequence[Candle], graph: StrategyGraph, params: SimulationParams):
        require_candles(len(candles))
        self.candles = list(candles)
        self.graph = graph
        self.params = params
        self.length = len(self.candles)
        self.close = np.array([c.close for c in self.candles], dtype=np.float64)

    def run(self) -> BacktestResult:
        """Run backtest"""
        indicator_bank = IndicatorBank(self.close).build(self.graph.indicator_nodes())
        resolver = GraphResolver(self.graph, indicator_bank)

        result = self._simulate(resolver)
        result.enrichedSeries = self._enrich(indicator_bank)
        return result

    def _simulate(self, resolver: GraphResolver) -> BacktestResult:
        commission_rate = self.params.commission_rate
        slippage_rate = self.params.slippage_rate
        initial_balance = self.params.initialBalance

        balance = initial_balance
        in_position = False
        entry_price = 0.0
        peak = balance
        max_drawdown = 0.0
        ledger = TradeLedger()
        trades: List[Trade] = []
        equity = [EquityPoint(timestamp=self.candles[0].timestamp, balance=balance)]

        for i in range(1, self.length):
            candle = self.candles[i]

            if not in_position and resolver.action_fires("Buy", i):
                fill_price = candle.close * (1 + slippage_rate)
                commission = balance * commission_rate
                balance -= commission
                ledger.record_commission(commission)
                in_position = True
                entry_price = fill_price
                trades.append(Trade(timestamp=candle.timestamp, side="Buy", price=fill_price,
                                    commission=commission, balance=balance))
                logger.debug(f"BUY  #{i} @ {fill_price:.4f} (fee {commission:.4f})")

            elif in_position and resolver.action_fires("Sell", i):
                fill_price = candle.close * (1 - slippage_rate)
                trade_return = (fill_price - entry_price) / entry_price
                position_value = balance * (1 + trade_return)
                commission = position_value * commission_rate
                ledger.record_commission(commission)
                ledger.record_round_trip(trade_return, position_value - balance)
                balance = position_value - commission
                in_position = False
                trades.append(Trade(timestamp=candle.timestamp, side="Sell", price=fill_price,
                                    commission=commission, balance=balance))
                logger.debug(f"SELL #{i} @ {fill_price:.4f} (return {trade_return:.4%})")

            equity.append(EquityPoint(timestamp=candle.timestamp, balance=balance))

            peak = max(peak, balance)
            if peak > 0:
                max_drawdown = max(max_drawdown, (peak - balance) / peak)

        stats = calculate_statistics(ledger, initial_balance, balance, max_drawdown, in_position)
        logger.info(
            f"Backtest finished: {self.length} candles, {stats.totalTrades} round-trips, "
            f"net {stats.netProfitPct:.2f}%"
        )
        return BacktestResult(enrichedSeries=[], trades=trades, equityCurve=equity, stats=stats)

    def _enrich(self, indicator_bank: IndicatorBank) -> List[EnrichedCandle]:
        enriched = []
        for i, candle in enumerate(self.candles):
            values = {node_id: series[i] for node_id, series in indicator_bank.series.items()}
            enriched.append(EnrichedCandle(**candle.model_dump(), indicators=values))
        return enriched


def run_backtest(candles: Sequence[Union[Candle, Dict[str, Any]]], nodes: Sequence[Any],
                 edges: Sequence[Any], initial_balance: float, commission_rate_pct: float,
                 slippage_rate_pct: float) -> Union[BacktestResult, BacktestError]:
    """Run one backtest; returns a result or a discriminated error"""
    try:
        require_candles(len(candles))
        params = SimulationParams(
            initialBalance=initial_balance,
            commissionRatePct=commission_rate_pct,
            slippageRatePct=slippage_rate_pct,
        )
        series = [c if isinstance(c, Candle) else Candle.model_validate(c) for c in candles]
        graph = StrategyGraph(nodes, edges).validate()
        return BacktestEngine(series, graph, params).run()
    except ValidationError as e:
        logger.warning("Backtest rejected: invalid input")
        return to_error_result(ConfigurationError(f"Invalid backtest input: {e}"))
    except StratflowError as e:
        logger.warning(f"Backtest rejected: {e}")
        return to_error_result(e)
