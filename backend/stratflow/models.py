"""
Data Models for STRATFLOW Backend
"""
from typing import Annotated, List, Dict, Any, Optional, Union, Literal

from pydantic import BaseModel, Field, field_validator, model_validator


IndicatorType = Literal["RSI", "SMA", "EMA", "MACD"]
LogicType = Literal["Compare", "AND", "OR"]
Operator = Literal["GT", "LT"]
Side = Literal["Buy", "Sell"]


def _match_choice(value: Any, choices) -> Any:
    """Map editor spellings ('rsi', 'gt', 'buy') onto canonical literals"""
    if isinstance(value, str):
        for choice in choices:
            if value.strip().lower() == choice.lower():
                return choice
    return value


class Candle(BaseModel):
    """OHLCV Candle"""
    timestamp: int
    open: float = Field(gt=0)
    high: float = Field(gt=0)
    low: float = Field(gt=0)
    close: float = Field(gt=0)
    volume: float = Field(0.0, ge=0)


# ---------------------------------------------------------------------------
# Node configuration
# ---------------------------------------------------------------------------

class DataSourceConfig(BaseModel):
    exchange: str = "binance"
    symbol: str = "BTC/USDT"


class IndicatorConfig(BaseModel):
    """Indicator Node Configuration"""
    indicatorType: IndicatorType = "RSI"
    period: int = Field(14, gt=0)
    fastPeriod: int = Field(12, gt=0)
    slowPeriod: int = Field(26, gt=0)
    signalPeriod: int = Field(9, gt=0)

    @field_validator("indicatorType", mode="before")
    @classmethod
    def _normalize_type(cls, v):
        return _match_choice(v, ("RSI", "SMA", "EMA", "MACD"))

    @model_validator(mode="after")
    def _check_macd_periods(self):
        if self.indicatorType == "MACD" and self.fastPeriod >= self.slowPeriod:
            raise ValueError("MACD fastPeriod must be smaller than slowPeriod")
        return self

    def params(self) -> Dict[str, int]:
        if self.indicatorType == "MACD":
            return {
                "fastPeriod": self.fastPeriod,
                "slowPeriod": self.slowPeriod,
                "signalPeriod": self.signalPeriod,
            }
        return {"period": self.period}


class LogicConfig(BaseModel):
    """Logic Node Configuration"""
    logicType: LogicType = "Compare"
    operator: Operator = "LT"
    threshold: float = 30.0
    inputField: Optional[str] = None

    @field_validator("logicType", mode="before")
    @classmethod
    def _normalize_logic(cls, v):
        return _match_choice(v, ("Compare", "AND", "OR"))

    @field_validator("operator", mode="before")
    @classmethod
    def _normalize_operator(cls, v):
        return _match_choice(v, ("GT", "LT"))


class ActionConfig(BaseModel):
    actionType: Side = "Buy"

    @field_validator("actionType", mode="before")
    @classmethod
    def _normalize_action(cls, v):
        return _match_choice(v, ("Buy", "Sell"))


# ---------------------------------------------------------------------------
# Strategy graph
# ---------------------------------------------------------------------------

class DataSourceNode(BaseModel):
    id: str
    kind: Literal["DataSource"] = "DataSource"
    config: DataSourceConfig = Field(default_factory=DataSourceConfig)


class IndicatorNode(BaseModel):
    id: str
    kind: Literal["Indicator"] = "Indicator"
    config: IndicatorConfig = Field(default_factory=IndicatorConfig)


class LogicNode(BaseModel):
    id: str
    kind: Literal["Logic"] = "Logic"
    config: LogicConfig = Field(default_factory=LogicConfig)


class ActionNode(BaseModel):
    id: str
    kind: Literal["Action"] = "Action"
    config: ActionConfig = Field(default_factory=ActionConfig)


StrategyNode = Annotated[
    Union[DataSourceNode, IndicatorNode, LogicNode, ActionNode],
    Field(discriminator="kind"),
]


class Edge(BaseModel):
    """Directed edge from upstream producer to downstream consumer"""
    source: str
    target: str
    id: Optional[str] = None


class SimulationParams(BaseModel):
    """Simulation Parameters (percent inputs)"""
    initialBalance: float = Field(10000.0, gt=0)
    commissionRatePct: float = Field(0.1, ge=0, le=100)
    slippageRatePct: float = Field(0.05, ge=0, le=100)

    @property
    def commission_rate(self) -> float:
        return self.commissionRatePct / 100.0

    @property
    def slippage_rate(self) -> float:
        return self.slippageRatePct / 100.0


# ---------------------------------------------------------------------------
# Results
# ---------------------------------------------------------------------------

class Trade(BaseModel):
    """Single simulated fill"""
    timestamp: int
    side: Side
    price: float
    commission: float = 0.0
    balance: float = 0.0


class EquityPoint(BaseModel):
    timestamp: int
    balance: float


class EnrichedCandle(Candle):
    """Candle plus the aligned value of every indicator node"""
    indicators: Dict[str, Any] = {}


class Stats(BaseModel):
    """Backtest Statistics"""
    netProfitPct: float
    totalTrades: int
    winningTrades: int
    losingTrades: int
    winRate: float
    maxDrawdownPct: float
    profitFactor: Optional[float]  # None means infinite (no losing trades)
    totalCommissions: float
    finalBalance: float
    openPosition: bool = False


class BacktestResult(BaseModel):
    """Backtest Result"""
    enrichedSeries: List[EnrichedCandle]
    trades: List[Trade]
    equityCurve: List[EquityPoint]
    stats: Stats


class BacktestError(BaseModel):
    """Backtest failure"""
    error: str
    errorType: str


class BacktestRequest(BaseModel):
    """Backtest Request

    Payloads stay loosely typed here; run_backtest validates them and
    reports problems in the BacktestError shape.
    """
    candles: List[Dict[str, Any]]
    nodes: List[Dict[str, Any]]
    edges: List[Dict[str, Any]] = []
    params: Dict[str, Any] = {}


class IndicatorRequest(BaseModel):
    """Indicator preview request"""
    prices: List[float]
    config: IndicatorConfig = Field(default_factory=IndicatorConfig)


class FillRequest(BaseModel):
    """Gap-fill request"""
    candles: List[Candle]
    timeframe: str
