import math
from dataclasses import dataclass

from airo.config import BotConfig
from airo.constants import SignalType

def price_decimals(price: float, minimum: int = 2, significant: int = 5) -> int:
    """Decimals that keep `significant` digits of `price`, never fewer than `minimum`.
    BTC-sized prices stay at cents; sub-dollar symbols get enough digits for
    a 1% stop to survive rounding."""
    if price <= 0 or not math.isfinite(price):
        return minimum
    return max(minimum, significant - 1 - math.floor(math.log10(price)))

@dataclass(frozen=True)
class TradeLevels:
    entry_price: float
    stop_loss: float
    take_profit: float
    quantity: float
    risk_amount: float

class MoneyManager:
    def __init__(self, cfg: BotConfig):
        self.cfg = cfg

    def risk_amount(self) -> float:
        """Fixed-fractional risk on the configured base balance, not the live one."""
        return self.cfg.risk_balance * (self.cfg.risk_per_trade / 100)

    def levels(self, side: SignalType, entry: float, sl_distance: float,
               price_precision: int = 2, qty_precision: int = 6) -> TradeLevels:
        """SL one `sl_distance` away from entry, TP `rrr` distances the other way.
        Quantity is sized so a stop-out loses exactly the risk amount."""
        if sl_distance <= 0:
            raise ValueError("stop distance must be positive")
        entry = round(entry, price_precision)
        if side == SignalType.BUY:
            stop = entry - sl_distance
            tp = entry + sl_distance * self.cfg.rrr
        else:
            stop = entry + sl_distance
            tp = entry - sl_distance * self.cfg.rrr
        stop = round(stop, price_precision)
        tp = round(tp, price_precision)

        risk = self.risk_amount()
        dist = abs(entry - stop)
        if dist <= 0:
            raise ValueError(f"stop distance rounds to zero at precision {price_precision}")
        qty = round(risk / dist, qty_precision)
        return TradeLevels(entry_price=entry, stop_loss=stop, take_profit=tp,
                           quantity=qty, risk_amount=risk)
