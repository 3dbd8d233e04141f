from dataclasses import dataclass, replace
from typing import Optional

from airo.constants import CloseReason, SignalType, TradeStatus

@dataclass(frozen=True)
class TradeOutcome:
    is_win: bool
    multiplier: float                        # x risk, negative on a loss

@dataclass
class Trade:
    id: str
    symbol: str
    type: SignalType
    quantity: float
    entry_price: float
    stop_loss: float
    take_profit: float
    timestamp: float                         # open time, unix seconds
    risk_amount: float = 0.0
    outcome: Optional[TradeOutcome] = None   # decided at open on the simulated path
    signal_score: int = 0
    counter_trend: bool = False
    is_simulated: bool = True
    status: TradeStatus = TradeStatus.OPEN
    exit_price: Optional[float] = None
    close_time: Optional[float] = None
    pnl: Optional[float] = None
    close_reason: Optional[CloseReason] = None

    @property
    def is_open(self) -> bool:
        return self.status == TradeStatus.OPEN

    @property
    def side(self) -> int:
        return 1 if self.type == SignalType.BUY else -1

    def closed(self, exit_price: float, pnl: float, reason: CloseReason,
               close_time: float) -> "Trade":
        if not self.is_open:
            raise ValueError(f"trade {self.id} is already closed")
        return replace(
            self,
            status=TradeStatus.CLOSED,
            exit_price=exit_price,
            pnl=pnl,
            close_reason=reason,
            close_time=close_time,
        )

    def to_row(self) -> dict:
        return {
            "id": self.id,
            "symbol": self.symbol,
            "type": self.type.value,
            "quantity": self.quantity,
            "entry_price": self.entry_price,
            "stop_loss": self.stop_loss,
            "take_profit": self.take_profit,
            "timestamp": self.timestamp,
            "risk_amount": self.risk_amount,
            "is_win": None if self.outcome is None else int(self.outcome.is_win),
            "multiplier": None if self.outcome is None else self.outcome.multiplier,
            "signal_score": self.signal_score,
            "counter_trend": int(self.counter_trend),
            "is_simulated": int(self.is_simulated),
            "status": self.status.value,
            "exit_price": self.exit_price,
            "close_time": self.close_time,
            "pnl": self.pnl,
            "close_reason": None if self.close_reason is None else self.close_reason.value,
        }

    @classmethod
    def from_row(cls, row: dict) -> "Trade":
        outcome = None
        if row.get("is_win") is not None:
            outcome = TradeOutcome(is_win=bool(row["is_win"]), multiplier=float(row["multiplier"]))
        reason = row.get("close_reason")
        return cls(
            id=row["id"],
            symbol=row["symbol"],
            type=SignalType(row["type"]),
            quantity=float(row["quantity"]),
            entry_price=float(row["entry_price"]),
            stop_loss=float(row["stop_loss"]),
            take_profit=float(row["take_profit"]),
            timestamp=float(row["timestamp"]),
            risk_amount=float(row.get("risk_amount") or 0.0),
            outcome=outcome,
            signal_score=int(row.get("signal_score") or 0),
            counter_trend=bool(row.get("counter_trend")),
            is_simulated=bool(row.get("is_simulated", 1)),
            status=TradeStatus(row["status"]),
            exit_price=row.get("exit_price"),
            close_time=row.get("close_time"),
            pnl=row.get("pnl"),
            close_reason=None if reason is None else CloseReason(reason),
        )
