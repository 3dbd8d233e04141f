import time
from dataclasses import asdict, dataclass
from typing import Optional

from airo.constants import CloseReason, SignalType
from airo.trading.trade import Trade
from airo.utils.logger import log

@dataclass
class Balance:
    quote: float
    base: float

    def equity(self, price: float) -> float:
        return self.quote + self.base * price

    def to_dict(self) -> dict:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: dict) -> "Balance":
        return cls(quote=float(data["quote"]), base=float(data["base"]))

class TradeLedger:
    """Owns every trade and the virtual balance.

    Opening reserves the risk amount in quote and books the quantity in base,
    signed by direction. Closing reverses both legs and credits the realised
    PnL, so quote + base * price moves by exactly the PnL over a round trip.
    """

    def __init__(self, balance: Balance, max_open: int = 3):
        self.balance = balance
        self.max_open = max_open
        self.trades: list[Trade] = []
        self._by_id: dict[str, int] = {}

    def __len__(self):
        return len(self.trades)

    def get(self, trade_id: str) -> Optional[Trade]:
        idx = self._by_id.get(trade_id)
        return None if idx is None else self.trades[idx]

    def open_trades(self, simulated: Optional[bool] = None) -> list[Trade]:
        return [t for t in self.trades
                if t.is_open and (simulated is None or t.is_simulated == simulated)]

    def closed_trades(self) -> list[Trade]:
        return [t for t in self.trades if not t.is_open]

    def can_open(self) -> bool:
        return len(self.open_trades(simulated=True)) < self.max_open

    # ------------------------------------------------------------------
    def record_open(self, trade: Trade):
        if trade.id in self._by_id:
            raise ValueError(f"duplicate trade id {trade.id}")
        if trade.is_simulated and not self.can_open():
            raise ValueError(f"max {self.max_open} open trades reached")
        self._by_id[trade.id] = len(self.trades)
        self.trades.append(trade)
        self.balance.quote -= trade.side * trade.risk_amount
        self.balance.base += trade.side * trade.quantity

    def record_close(self, trade_id: str, closed_trade: Trade) -> Trade:
        idx = self._by_id.get(trade_id)
        if idx is None:
            raise KeyError(trade_id)
        current = self.trades[idx]
        if not current.is_open:
            raise ValueError(f"trade {trade_id} is already closed")
        if closed_trade.is_open or closed_trade.pnl is None:
            raise ValueError(f"trade {trade_id} has no close to record")
        self.trades[idx] = closed_trade
        self.balance.base -= current.side * current.quantity
        self.balance.quote += current.side * current.risk_amount + closed_trade.pnl
        return closed_trade

    def check_price_closures(self, price: float, now: Optional[float] = None) -> list[Trade]:
        """Close live (non-simulated) trades whose TP or SL the price crossed."""
        closed = []
        for trade in self.open_trades(simulated=False):
            reason = None
            if trade.type == SignalType.BUY:
                if price >= trade.take_profit:
                    reason = CloseReason.TP_HIT
                elif price <= trade.stop_loss:
                    reason = CloseReason.SL_HIT
            else:
                if price <= trade.take_profit:
                    reason = CloseReason.TP_HIT
                elif price >= trade.stop_loss:
                    reason = CloseReason.SL_HIT
            if reason is None:
                continue
            pnl = trade.side * (price - trade.entry_price) * trade.quantity
            done = trade.closed(exit_price=price, pnl=pnl, reason=reason,
                                close_time=now if now is not None else time.time())
            self.record_close(trade.id, done)
            log.info("🔔 Trade closed: %s %s  %s  PnL %+.2f",
                     trade.type.value, trade.symbol, reason.value, pnl)
            closed.append(done)
        return closed

    def load(self, trades: list[Trade]):
        """Restore trades without touching the balance (it is restored separately)."""
        self.trades = []
        self._by_id = {}
        for t in trades:
            self._by_id[t.id] = len(self.trades)
            self.trades.append(t)

    def reset(self, balance: Balance):
        self.trades.clear()
        self._by_id.clear()
        self.balance = balance
