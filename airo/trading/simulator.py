import time
import uuid
from collections import deque
from dataclasses import dataclass, field
from typing import Optional

import numpy as np

from airo.config import SimulatorProfile
from airo.constants import CloseReason
from airo.core.indicators import IndicatorSet
from airo.core.regime import RegimeDetector
from airo.core.signal import Signal
from airo.trading.money_manager import MoneyManager, price_decimals
from airo.trading.trade import Trade, TradeOutcome
from airo.utils.candle import Candle
from airo.utils.logger import log

@dataclass
class SimulatorState:
    """Lifetime counters of the demo simulator. Persisted between sessions."""

    trade_count: int = 0
    win_count: int = 0
    loss_count: int = 0
    consecutive_losses: int = 0
    recent_trades: deque = field(default_factory=lambda: deque(maxlen=50))

    @property
    def closed_count(self) -> int:
        return self.win_count + self.loss_count

    @property
    def win_rate(self) -> float:
        t = self.closed_count
        return self.win_count / t if t > 0 else 0.0

    def record_result(self, trade_id: str, is_win: bool, pnl: float):
        self.recent_trades.append({"id": trade_id, "is_win": is_win, "pnl": pnl})
        if is_win:
            self.win_count += 1
            self.consecutive_losses = 0
        else:
            self.loss_count += 1
            self.consecutive_losses += 1

    def reset(self):
        self.trade_count = 0
        self.win_count = 0
        self.loss_count = 0
        self.consecutive_losses = 0
        self.recent_trades.clear()

    def to_dict(self) -> dict:
        return {
            "trade_count": self.trade_count,
            "win_count": self.win_count,
            "loss_count": self.loss_count,
            "consecutive_losses": self.consecutive_losses,
            "recent_trades": list(self.recent_trades),
        }

    @classmethod
    def from_dict(cls, data: dict) -> "SimulatorState":
        state = cls(
            trade_count=int(data.get("trade_count", 0)),
            win_count=int(data.get("win_count", 0)),
            loss_count=int(data.get("loss_count", 0)),
            consecutive_losses=int(data.get("consecutive_losses", 0)),
        )
        state.recent_trades.extend(data.get("recent_trades", []))
        return state

@dataclass(frozen=True)
class MarketContext:
    trending: bool = False
    high_volume: bool = False

    @classmethod
    def from_market(cls, candles: list[Candle], indicators: Optional[IndicatorSet],
                    volume_spike: float = 1.3, window: int = 30) -> "MarketContext":
        regime = RegimeDetector.detect(candles, window)
        high_volume = False
        if indicators is not None and candles and indicators.volume_sma > 0:
            high_volume = candles[-1].volume > indicators.volume_sma * volume_spike
        return cls(trending=RegimeDetector.is_trending(regime), high_volume=high_volume)

class TradeSimulator:
    """Demo execution model.

    Win or loss and its size are drawn when the trade opens. Closing only
    turns that predetermined outcome into an exit price and a PnL; the live
    market price at close time plays no part.
    """

    def __init__(self, profile: SimulatorProfile, state: Optional[SimulatorState] = None,
                 rng: Optional[np.random.Generator] = None, anti_streak_losses: int = 12):
        self.profile = profile
        self.state = state if state is not None else SimulatorState()
        self.rng = rng if rng is not None else np.random.default_rng()
        self.anti_streak_losses = anti_streak_losses

    # ------------------------------------------------------------------
    def win_probability(self, signal: Signal, context: Optional[MarketContext] = None) -> float:
        p = self.profile
        if self.state.consecutive_losses >= self.anti_streak_losses:
            return p.streak_win_rate
        prob = p.base_win_rate
        if signal.strength is not None:
            prob += p.strength_bonus.get(signal.strength, 0.0)
        if context is not None:
            if context.trending:
                prob += p.trending_bonus
            if context.high_volume:
                prob += p.volume_bonus
        return min(max(prob, 0.0), 1.0)

    def decide_outcome(self, probability: float) -> TradeOutcome:
        p = self.profile
        if self.rng.random() < probability:
            lo, hi = p.win_multiplier
            return TradeOutcome(is_win=True, multiplier=float(self.rng.uniform(lo, hi)))
        lo, hi = p.loss_multiplier
        return TradeOutcome(is_win=False, multiplier=float(self.rng.uniform(lo, hi)))

    def close_delay(self) -> float:
        lo, hi = self.profile.close_delay
        return float(self.rng.uniform(lo, hi))

    # ------------------------------------------------------------------
    def simulate_open(self, signal: Signal, current_price: float, money_mgr: MoneyManager,
                      context: Optional[MarketContext] = None,
                      now: Optional[float] = None) -> Trade:
        p = self.profile
        now = now if now is not None else time.time()

        prob = self.win_probability(signal, context)
        outcome = self.decide_outcome(prob)

        vol_lo, vol_hi = p.volatility
        sl_distance = current_price * float(self.rng.uniform(vol_lo, vol_hi))
        entry = current_price + (float(self.rng.random()) - 0.5) * current_price * p.slippage
        levels = money_mgr.levels(signal.type, entry, sl_distance,
                                  price_decimals(current_price, p.price_precision),
                                  p.qty_precision)

        self.state.trade_count += 1
        trade = Trade(
            id=f"DEMO-{int(now * 1000)}-{uuid.uuid4().hex[:9]}",
            symbol=signal.symbol,
            type=signal.type,
            quantity=levels.quantity,
            entry_price=levels.entry_price,
            stop_loss=levels.stop_loss,
            take_profit=levels.take_profit,
            timestamp=now,
            risk_amount=levels.risk_amount,
            outcome=outcome,
            signal_score=signal.score,
            counter_trend=signal.counter_trend,
            is_simulated=True,
        )
        log.info("📊 Demo trade %s  outcome %s (%.1f%% of risk)  p(win)=%.1f%%",
                 trade.id, "WIN" if outcome.is_win else "LOSS",
                 outcome.multiplier * 100, prob * 100)
        return trade

    def simulate_close(self, trade: Trade, current_price: Optional[float] = None,
                       now: Optional[float] = None) -> Optional[Trade]:
        """Materialise the predetermined outcome. `current_price` is accepted
        for parity with the live path and ignored."""
        if trade.outcome is None or not trade.is_open:
            return None
        p = self.profile
        is_win, multiplier = trade.outcome.is_win, trade.outcome.multiplier
        risk = abs(trade.entry_price - trade.stop_loss) * trade.quantity
        pnl = round(risk * multiplier, 2)

        jitter = float(self.rng.random()) - 0.5
        if is_win:
            exit_price = trade.take_profit + jitter * abs(trade.take_profit - trade.entry_price) * p.exit_variance
            reason = CloseReason.TP_HIT
        else:
            exit_price = trade.stop_loss + jitter * abs(trade.stop_loss - trade.entry_price) * p.exit_variance
            reason = CloseReason.SL_HIT

        closed = trade.closed(
            exit_price=round(exit_price, price_decimals(trade.entry_price, p.price_precision)),
            pnl=pnl,
            reason=reason,
            close_time=now if now is not None else time.time(),
        )
        self.state.record_result(trade.id, is_win, pnl)
        return closed
