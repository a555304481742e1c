"""
Statistics Aggregator
"""
from dataclasses import dataclass
from typing import Optional

from stratflow.models import Stats


@dataclass
class TradeLedger:
    """Running totals over completed round-trips and fills"""
    winning_trades: int = 0
    losing_trades: int = 0
    gross_profit: float = 0.0
    gross_loss: float = 0.0
    total_commissions: float = 0.0

    def record_commission(self, amount: float) -> None:
        self.total_commissions += amount

    def record_round_trip(self, trade_return: float, pnl: float) -> None:
        """Classify a closed trade; a zero return counts as a loss"""
        if trade_return > 0:
            self.winning_trades += 1
            self.gross_profit += pnl
        else:
            self.losing_trades += 1
            self.gross_loss += abs(pnl)

    @property
    def total_trades(self) -> int:
        return self.winning_trades + self.losing_trades


def profit_factor(gross_profit: float, gross_loss: float) -> Optional[float]:
    """Gross profit / gross loss; None stands for infinite"""
    if gross_loss > 0:
        return gross_profit / gross_loss
    if gross_profit > 0:
        return None
    return 0.0


def calculate_statistics(ledger: TradeLedger, initial_balance: float, final_balance: float,
                         max_drawdown: float, open_position: bool = False) -> Stats:
    """Calculate statistics"""
    total_trades = ledger.total_trades
    win_rate = (ledger.winning_trades / total_trades * 100) if total_trades > 0 else 0.0

    return Stats(
        netProfitPct=(final_balance - initial_balance) / initial_balance * 100,
        totalTrades=total_trades,
        winningTrades=ledger.winning_trades,
        losingTrades=ledger.losing_trades,
        winRate=win_rate,
        maxDrawdownPct=max_drawdown * 100,
        profitFactor=profit_factor(ledger.gross_profit, ledger.gross_loss),
        totalCommissions=ledger.total_commissions,
        finalBalance=final_balance,
        openPosition=open_position,
    )
