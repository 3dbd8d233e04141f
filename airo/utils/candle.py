import time
from collections import deque
from dataclasses import dataclass
from typing import Iterable, Optional

@dataclass
class Candle:
    open_time: int          # exchange milliseconds
    open: float
    high: float
    low: float
    close: float
    volume: float = 0.0
    close_time: int = 0

    def is_final(self, now_ms: int) -> bool:
        return self.close_time > 0 and now_ms > self.close_time

def _first(get, *names):
    for name in names:
        value = get(name, None)
        if value is not None:
            return value
    return 0

def parse_candle(raw) -> Candle:
    """Flexible candle parser: Binance REST kline lists, websocket kline
    payloads (bare or wrapped in the event's "k" field), dicts and plain objects."""
    if isinstance(raw, (list, tuple)):
        # [openTime, open, high, low, close, volume, closeTime, ...]
        return Candle(
            open_time=int(raw[0]),
            open=float(raw[1]),
            high=float(raw[2]),
            low=float(raw[3]),
            close=float(raw[4]),
            volume=float(raw[5]) if len(raw) > 5 else 0.0,
            close_time=int(raw[6]) if len(raw) > 6 else 0,
        )

    if isinstance(raw, dict):
        if isinstance(raw.get("k"), dict):
            raw = raw["k"]
        if "t" in raw:
            return Candle(
                open_time=int(raw["t"]),
                close_time=int(raw.get("T") or 0),
                open=float(raw["o"]),
                high=float(raw["h"]),
                low=float(raw["l"]),
                close=float(raw["c"]),
                volume=float(raw.get("v") or 0),
            )
        get = raw.get
    else:
        def get(name, default=None):
            return getattr(raw, name, default)

    return Candle(
        open_time=int(_first(get, "open_time", "openTime")),
        close_time=int(_first(get, "close_time", "closeTime")),
        open=float(_first(get, "open")),
        high=float(_first(get, "high")),
        low=float(_first(get, "low")),
        close=float(_first(get, "close")),
        volume=float(_first(get, "volume")),
    )

class CandleWindow:
    """Rolling, open-time ordered candle history for one timeframe.

    The newest candle is patched in place while it is still forming; a
    candle with a new open time is appended and the oldest one drops off.
    """

    def __init__(self, maxlen: int = 100):
        self.maxlen = maxlen
        self._candles: deque[Candle] = deque(maxlen=maxlen)

    def __len__(self):
        return len(self._candles)

    def __iter__(self):
        return iter(self._candles)

    @property
    def last(self) -> Optional[Candle]:
        return self._candles[-1] if self._candles else None

    def to_list(self) -> list[Candle]:
        return list(self._candles)

    def replace(self, candles: Iterable[Candle]):
        by_time: dict[int, Candle] = {}
        for c in candles:
            by_time[c.open_time] = c
        self._candles.clear()
        for t in sorted(by_time):
            self._candles.append(by_time[t])

    def apply_update(self, candle: Candle, now_ms: Optional[int] = None) -> bool:
        """Patch or append a live candle. Returns False if it was rejected.

        A candle whose close time has passed is final; later updates with the
        same open time are rejected."""
        last = self.last
        if last is None:
            self._candles.append(candle)
            return True
        if candle.open_time == last.open_time:
            now_ms = now_ms if now_ms is not None else int(time.time() * 1000)
            if last.is_final(now_ms):
                return False
            self._candles[-1] = candle
            return True
        if candle.open_time > last.open_time:
            self._candles.append(candle)
            return True
        return False

    def clear(self):
        self._candles.clear()
