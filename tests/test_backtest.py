import pytest

from builders import HOUR_MS, START_MS, action, compare, edge, indicator, logic, make_candles
from stratflow import indicators
from stratflow.backtest import BacktestEngine, require_candles, run_backtest
from stratflow.errors import InsufficientDataError
from stratflow.graph import StrategyGraph
from stratflow.models import BacktestError, BacktestResult, Candle, SimulationParams


def test_rsi_round_trip(rsi_scenario):
    candles, nodes, edges = rsi_scenario
    result = run_backtest(candles, nodes, edges, 1000, 0, 0)

    assert isinstance(result, BacktestResult)
    assert [(t.side, t.timestamp, t.price) for t in result.trades] == [
        ("Buy", START_MS + 2 * HOUR_MS, 80.0),
        ("Sell", START_MS + 4 * HOUR_MS, 110.0),
    ]
    stats = result.stats
    assert stats.totalTrades == 1
    assert stats.winningTrades == 1
    assert stats.winRate == 100.0
    assert stats.netProfitPct == pytest.approx((110 / 80 - 1) * 100, abs=1e-9)
    assert stats.profitFactor is None
    assert stats.totalCommissions == 0.0
    assert stats.openPosition is False


def test_equity_curve_and_enriched_series(rsi_scenario):
    candles, nodes, edges = rsi_scenario
    result = run_backtest(candles, nodes, edges, 1000, 0, 0)

    assert [p.timestamp for p in result.equityCurve] == [c["timestamp"] for c in candles]
    assert [p.balance for p in result.equityCurve] == pytest.approx([1000, 1000, 1000, 1000, 1375])
    assert len(result.enrichedSeries) == len(candles)
    assert result.enrichedSeries[1].indicators == {"ind": None}
    assert result.enrichedSeries[3].indicators["ind"] == pytest.approx(60.0)
    assert result.enrichedSeries[4].close == 110


def test_identical_inputs_identical_output(rsi_scenario):
    candles, nodes, edges = rsi_scenario
    first = run_backtest(candles, nodes, edges, 1000, 0.1, 0.05)
    second = run_backtest(candles, nodes, edges, 1000, 0.1, 0.05)
    assert first.model_dump_json() == second.model_dump_json()


def test_commission_and_slippage(price_strategy):
    nodes, edges = price_strategy("LT", 95, "GT", 110)
    result = run_backtest(make_candles([100, 90, 120, 120]), nodes, edges, 1000, 1, 0.5)

    entry = 90 * 1.005
    exit_ = 120 * 0.995
    balance_after_entry = 1000 - 10
    value = balance_after_entry * (1 + (exit_ - entry) / entry)

    buy, sell = result.trades
    assert buy.price == pytest.approx(entry)
    assert buy.commission == pytest.approx(10)
    assert buy.balance == pytest.approx(balance_after_entry)
    assert sell.price == pytest.approx(exit_)
    assert sell.commission == pytest.approx(value * 0.01)
    assert result.stats.finalBalance == pytest.approx(value * 0.99)
    assert result.stats.totalCommissions == pytest.approx(10 + value * 0.01)
    # Entry commission is the only dip below the running peak
    assert result.stats.maxDrawdownPct == pytest.approx(1.0)


def test_open_position_is_not_a_completed_trade(price_strategy):
    nodes, edges = price_strategy("LT", 95, "GT", 110)
    result = run_backtest(make_candles([100, 90, 95, 96]), nodes, edges, 1000, 0, 0)

    assert [t.side for t in result.trades] == ["Buy"]
    assert result.stats.totalTrades == 0
    assert result.stats.winRate == 0.0
    assert result.stats.profitFactor == 0.0
    assert result.stats.netProfitPct == 0.0
    assert result.stats.openPosition is True


def test_losing_trade(price_strategy):
    nodes, edges = price_strategy("LT", 95, "LT", 85)
    result = run_backtest(make_candles([100, 90, 80, 100]), nodes, edges, 1000, 0, 0)

    assert [t.side for t in result.trades] == ["Buy", "Sell"]
    stats = result.stats
    assert stats.losingTrades == 1
    assert stats.winRate == 0.0
    assert stats.profitFactor == 0.0
    assert stats.netProfitPct == pytest.approx((80 / 90 - 1) * 100)
    assert stats.maxDrawdownPct == pytest.approx((1 - 80 / 90) * 100)


def test_mixed_trades_profit_factor(price_strategy):
    # buy 90 -> sell 120 (win), buy 90 -> sell 60 (loss)
    nodes = [
        indicator("px", "SMA", period=1),
        compare("cheap", "LT", 95),
        compare("rich", "GT", 110),
        compare("crash", "LT", 70),
        logic("exit", "OR"),
        action("buy", "Buy"),
        action("sell", "Sell"),
    ]
    edges = [
        edge("px", "cheap"), edge("px", "rich"), edge("px", "crash"),
        edge("rich", "exit"), edge("crash", "exit"),
        edge("cheap", "buy"), edge("exit", "sell"),
    ]
    result = run_backtest(make_candles([100, 90, 120, 90, 60]), nodes, edges, 1000, 0, 0)

    stats = result.stats
    assert stats.totalTrades == 2
    assert stats.winRate == 50.0
    gross_profit = 1000 * (120 / 90 - 1)
    balance = 1000 + gross_profit
    gross_loss = balance * (1 - 60 / 90)
    assert stats.profitFactor == pytest.approx(gross_profit / gross_loss)
    assert stats.finalBalance == pytest.approx(balance - gross_loss)


def test_no_same_step_flip_flop(price_strategy):
    nodes, edges = price_strategy("GT", 0, "GT", 0)
    candles = make_candles([100, 101, 102, 103, 104])
    result = run_backtest(candles, nodes, edges, 1000, 0, 0)

    assert [t.side for t in result.trades] == ["Buy", "Sell", "Buy", "Sell"]
    assert len({t.timestamp for t in result.trades}) == 4
    # Index 0 only seeds the equity curve
    assert result.trades[0].timestamp == candles[1]["timestamp"]
    assert result.stats.totalTrades == 2


def test_balance_never_negative(price_strategy):
    nodes, edges = price_strategy("GT", 0, "GT", 0)
    closes = [100, 50, 1, 200, 0.5, 300, 2, 150]
    result = run_backtest(make_candles(closes), nodes, edges, 1000, 100, 100)
    assert all(p.balance >= 0 for p in result.equityCurve)
    assert result.stats.finalBalance >= 0


def test_and_with_single_input_never_trades():
    nodes = [
        indicator("px", "SMA", period=1),
        compare("always", "GT", 0),
        logic("and", "AND"),
        action("buy", "Buy"),
    ]
    edges = [edge("px", "always"), edge("always", "and"), edge("and", "buy")]
    result = run_backtest(make_candles([100, 101, 102, 103]), nodes, edges, 1000, 0, 0)
    assert result.trades == []
    assert result.stats.netProfitPct == 0.0


def test_missing_subfield_never_trades():
    nodes = [
        indicator("rsi", "RSI", period=2),
        compare("hist", "GT", -1000, input_field="histogram"),
        action("buy", "Buy"),
    ]
    edges = [edge("rsi", "hist"), edge("hist", "buy")]
    result = run_backtest(make_candles([100, 90, 80, 95, 110]), nodes, edges, 1000, 0, 0)
    assert isinstance(result, BacktestResult)
    assert result.trades == []


@pytest.mark.parametrize("closes", [[], [100]])
def test_insufficient_data(rsi_scenario, closes):
    _, nodes, edges = rsi_scenario
    result = run_backtest(make_candles(closes), nodes, edges, 1000, 0, 0)
    assert isinstance(result, BacktestError)
    assert result.errorType == "InsufficientDataError"


def test_engine_rejects_single_candle(price_strategy):
    nodes, edges = price_strategy("LT", 95, "GT", 110)
    graph = StrategyGraph(nodes, edges).validate()
    with pytest.raises(InsufficientDataError):
        BacktestEngine([Candle(timestamp=0, open=1, high=1, low=1, close=1)], graph, SimulationParams())


def test_require_candles():
    require_candles(2)
    for count in (0, 1):
        with pytest.raises(InsufficientDataError, match=f"got {count}"):
            require_candles(count)


def test_configuration_error_is_surfaced():
    nodes = [indicator("rsi"), compare("cmp", "LT", 30)]
    result = run_backtest(make_candles([1, 2, 3]), nodes, [edge("rsi", "cmp")], 1000, 0, 0)
    assert isinstance(result, BacktestError)
    assert result.errorType == "ConfigurationError"
    assert "Action" in result.error


def test_invalid_parameters_are_configuration_errors(rsi_scenario):
    candles, nodes, edges = rsi_scenario
    result = run_backtest(candles, nodes, edges, 1000, 150, 0)
    assert isinstance(result, BacktestError)
    assert result.errorType == "ConfigurationError"


@pytest.mark.parametrize("closes", [[2, 1, 0, 5], [2, 1, -3, 5]])
def test_non_positive_prices_are_rejected(rsi_scenario, closes):
    # RSI(2) reaches 0 on the third candle, which would fill a Buy at that price
    _, nodes, edges = rsi_scenario
    result = run_backtest(make_candles(closes), nodes, edges, 1000, 0, 0)
    assert isinstance(result, BacktestError)
    assert result.errorType == "ConfigurationError"
    assert "close" in result.error


def test_malformed_candle_payload_is_a_configuration_error(rsi_scenario):
    _, nodes, edges = rsi_scenario
    result = run_backtest([{"timestamp": 0, "close": 1.0}, "bar"], nodes, edges, 1000, 0, 0)
    assert isinstance(result, BacktestError)
    assert result.errorType == "ConfigurationError"


def test_failed_indicator_disables_only_its_branch(monkeypatch):
    def broken(prices, params):
        raise ZeroDivisionError("bad parameters")

    monkeypatch.setitem(indicators.INDICATOR_FUNCTIONS, "EMA", broken)
    nodes = [
        indicator("ema", "EMA", period=2),
        indicator("px", "SMA", period=1),
        compare("ema_low", "LT", 1e9),
        compare("cheap", "LT", 95),
        compare("rich", "GT", 110),
        logic("entry", "OR"),
        action("buy", "Buy"),
        action("sell", "Sell"),
    ]
    edges = [
        edge("ema", "ema_low"), edge("px", "cheap"), edge("px", "rich"),
        edge("ema_low", "entry"), edge("cheap", "entry"),
        edge("entry", "buy"), edge("rich", "sell"),
    ]
    result = run_backtest(make_candles([100, 90, 120]), nodes, edges, 1000, 0, 0)

    assert isinstance(result, BacktestResult)
    assert [t.side for t in result.trades] == ["Buy", "Sell"]
    assert result.trades[0].timestamp == START_MS + HOUR_MS
    assert all(c.indicators["ema"] is None for c in result.enrichedSeries)
