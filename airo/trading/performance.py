import time
from dataclasses import dataclass, field
from typing import Optional

from airo.constants import BASELINE_EQUITY, WINRATE_WINDOWS
from airo.trading.simulator import SimulatorState
from airo.trading.trade import Trade

@dataclass(frozen=True)
class PerformanceStats:
    total_trades: int
    total_wins: int
    total_losses: int
    win_rate: float              # percent
    avg_win: float
    avg_loss: float
    expectancy: float
    net_profit: float
    best_trade: float
    worst_trade: float
    max_drawdown: float          # percent of peak equity
    consecutive_losses: int

    def summary(self) -> str:
        return (
            f"W:{self.total_wins} L:{self.total_losses} "
            f"WR:{self.win_rate:.1f}% "
            f"P&L:${self.net_profit:+.2f} "
            f"E:${self.expectancy:+.2f} "
            f"MaxDD:{self.max_drawdown:.2f}% "
            f"Streak:{'L' if self.consecutive_losses else 'OK'}{self.consecutive_losses}"
        )

def max_drawdown(trades: list[Trade], baseline: float = BASELINE_EQUITY) -> float:
    """Largest peak-to-trough equity drop in percent, replaying closes in order."""
    equity = peak = baseline
    worst = 0.0
    for t in sorted(trades, key=lambda t: t.close_time or 0):
        equity += t.pnl
        if equity > peak:
            peak = equity
        dd = (peak - equity) / peak * 100 if peak > 0 else 0.0
        if dd > worst:
            worst = dd
    return worst

def _trailing_losses(trades: list[Trade]) -> int:
    streak = 0
    for t in sorted(trades, key=lambda t: t.close_time or 0, reverse=True):
        if t.pnl < 0:
            streak += 1
        else:
            break
    return streak

def compute_stats(trades: list[Trade], state: Optional[SimulatorState] = None) -> Optional[PerformanceStats]:
    closed = [t for t in trades if not t.is_open and t.pnl is not None]
    if not closed:
        return None

    wins = [t.pnl for t in closed if t.pnl > 0]
    losses = [t.pnl for t in closed if t.pnl < 0]

    # the simulator's lifetime counters are exact; the trade list may be a sample
    if state is not None and state.closed_count > 0:
        total_wins, total_losses = state.win_count, state.loss_count
        win_rate = state.win_rate * 100
        streak = state.consecutive_losses
    else:
        total_wins, total_losses = len(wins), len(losses)
        win_rate = len(wins) / len(closed) * 100
        streak = _trailing_losses(closed)

    avg_win = sum(wins) / len(wins) if wins else 0.0
    avg_loss = sum(losses) / len(losses) if losses else 0.0
    expectancy = (win_rate / 100) * avg_win - (1 - win_rate / 100) * abs(avg_loss)
    pnls = [t.pnl for t in closed]

    return PerformanceStats(
        total_trades=len(closed),
        total_wins=total_wins,
        total_losses=total_losses,
        win_rate=round(win_rate, 2),
        avg_win=round(avg_win, 2),
        avg_loss=round(avg_loss, 2),
        expectancy=round(expectancy, 2),
        net_profit=round(sum(pnls), 2),
        best_trade=max(max(pnls), 0.0),
        worst_trade=min(min(pnls), 0.0),
        max_drawdown=round(max_drawdown(closed), 2),
        consecutive_losses=streak,
    )

@dataclass(frozen=True)
class WindowStat:
    trades: int = 0
    wins: int = 0
    win_rate: float = 0.0        # percent

@dataclass(frozen=True)
class WinRateSnapshot:
    timestamp: float
    windows: dict = field(default_factory=dict)

    def to_row(self) -> dict:
        row = {"timestamp": self.timestamp}
        for name in WINRATE_WINDOWS:
            stat = self.windows.get(name, WindowStat())
            row[f"winrate_{name}"] = stat.win_rate
            row[f"trades_{name}"] = stat.trades
            row[f"wins_{name}"] = stat.wins
        return row

def compute_window_winrates(trades: list[Trade], now: Optional[float] = None) -> WinRateSnapshot:
    """Win rate of closed trades opened within each rolling window ending at `now`."""
    now = now if now is not None else time.time()
    closed = [t for t in trades if not t.is_open and t.pnl is not None]
    windows = {}
    for name, seconds in WINRATE_WINDOWS.items():
        start = now - seconds
        in_range = [t for t in closed if start <= t.timestamp <= now]
        wins = sum(1 for t in in_range if t.pnl > 0)
        rate = round(wins / len(in_range) * 100, 2) if in_range else 0.0
        windows[name] = WindowStat(trades=len(in_range), wins=wins, win_rate=rate)
    return WinRateSnapshot(timestamp=now, windows=windows)
