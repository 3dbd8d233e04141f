import time
from dataclasses import astuple, asdict, dataclass
from typing import Optional

import numpy as np

from airo.config import SignalPreset
from airo.constants import SignalStrength, SignalType
from airo.core.indicators import IndicatorSet
from airo.errors import SignalIncompleteError
from airo.utils.candle import Candle
from airo.utils.logger import log

@dataclass(frozen=True)
class Conditions:
    rsi: bool
    stochastic: bool
    ema: bool
    macd: bool
    volume: bool
    fibonacci: bool

    @property
    def score(self) -> int:
        return sum(astuple(self))

    def as_dict(self) -> dict:
        return asdict(self)

@dataclass(frozen=True)
class Signal:
    type: SignalType
    price: float
    timestamp: float
    symbol: str
    timeframe: str
    conditions: Conditions
    score: int
    counter_trend: bool = False
    strength: Optional[SignalStrength] = None
    is_demo: bool = False

    def __post_init__(self):
        if self.score != self.conditions.score:
            raise ValueError(f"score {self.score} does not match conditions ({self.conditions.score})")

def strength_for(score: int) -> SignalStrength:
    if score >= 6:
        return SignalStrength.STRONG
    if score == 5:
        return SignalStrength.MEDIUM
    return SignalStrength.WEAK

class SignalScorer:
    """Multi-timeframe rule scorer.

    The 1h and 1d sets only decide the trend; the six entry conditions are
    read from the primary set and the latest candle. Branches are checked
    in a fixed order: trend BUY, trend SELL, counter-trend BUY, counter-trend
    SELL.
    """

    def __init__(self, preset: SignalPreset, symbol: str, timeframe: str):
        self.preset = preset
        self.symbol = symbol
        self.timeframe = timeframe

    def buy_conditions(self, ind: IndicatorSet, close: float, volume: float) -> Conditions:
        p = self.preset
        return Conditions(
            rsi=ind.rsi < p.rsi_oversold,
            stochastic=ind.stochastic_k < p.stoch_low and ind.stochastic_k > ind.stochastic_d,
            ema=ind.ema_short > ind.ema_long,
            macd=ind.macd_histogram > 0 and ind.macd_histogram > ind.macd_signal,
            volume=volume > ind.volume_sma * p.volume_spike,
            fibonacci=close <= ind.fib_levels.level61 * (1 + p.fib_tolerance),
        )

    def sell_conditions(self, ind: IndicatorSet, close: float, volume: float) -> Conditions:
        p = self.preset
        return Conditions(
            rsi=ind.rsi > p.rsi_overbought,
            stochastic=ind.stochastic_k > p.stoch_high and ind.stochastic_k < ind.stochastic_d,
            ema=ind.ema_short < ind.ema_long,
            macd=ind.macd_histogram < 0 and ind.macd_histogram < ind.macd_signal,
            volume=volume > ind.volume_sma * p.volume_spike,
            fibonacci=close >= ind.fib_levels.level38 * (1 - p.fib_tolerance),
        )

    def generate(
        self,
        primary: Optional[IndicatorSet],
        h1: Optional[IndicatorSet],
        d1: Optional[IndicatorSet],
        last_candle: Optional[Candle],
        now: Optional[float] = None,
    ) -> Optional[Signal]:
        try:
            self._check_complete(primary, h1, d1, last_candle)
        except SignalIncompleteError as e:
            log.info("No signal: %s", e)
            return None

        close = last_candle.close
        volume = last_candle.volume

        bullish = h1.ema_short > h1.ema_long and d1.ema_short > d1.ema_long
        bearish = h1.ema_short < h1.ema_long and d1.ema_short < d1.ema_long

        buy = self.buy_conditions(primary, close, volume)
        sell = self.sell_conditions(primary, close, volume)
        p = self.preset

        if bullish and buy.score >= p.trend_min_score:
            sig = self._make(SignalType.BUY, buy, close, now)
            log.info("🚀 BUY signal  score %d/6  price %.2f", buy.score, close)
        elif bearish and sell.score >= p.trend_min_score:
            sig = self._make(SignalType.SELL, sell, close, now)
            log.info("🚨 SELL signal  score %d/6  price %.2f", sell.score, close)
        elif buy.score >= p.counter_min_score:
            sig = self._make(SignalType.BUY, buy, close, now, counter_trend=True)
            log.info("⚠ Counter-trend BUY signal  score %d/6  price %.2f", buy.score, close)
        elif sell.score >= p.counter_min_score:
            sig = self._make(SignalType.SELL, sell, close, now, counter_trend=True)
            log.info("⚠ Counter-trend SELL signal  score %d/6  price %.2f", sell.score, close)
        else:
            log.info("No qualifying signal. BUY score %d, SELL score %d", buy.score, sell.score)
            sig = None
        return sig

    def _make(self, kind: SignalType, conditions: Conditions, price: float,
              now: Optional[float], counter_trend: bool = False) -> Signal:
        return Signal(
            type=kind,
            price=price,
            timestamp=now if now is not None else time.time(),
            symbol=self.symbol,
            timeframe=self.timeframe,
            conditions=conditions,
            score=conditions.score,
            counter_trend=counter_trend,
            strength=strength_for(conditions.score),
        )

    @staticmethod
    def _check_complete(primary, h1, d1, last_candle):
        missing = [name for name, ind in (("primary", primary), ("1h", h1), ("1d", d1)) if ind is None]
        if missing:
            raise SignalIncompleteError(f"indicator sets missing for {', '.join(missing)}")
        if last_candle is None:
            raise SignalIncompleteError("no candle to price the signal")

def generate_demo_signal(
    last_candle: Optional[Candle],
    symbol: str,
    timeframe: str,
    rng: np.random.Generator,
    chance: float = 0.30,
    now: Optional[float] = None,
) -> Optional[Signal]:
    """Random signal source for demo sessions, independent of the indicators.
    Demo signals carry no strength, so trades from them run at the base win rate."""
    if last_candle is None:
        return None
    if rng.random() >= chance:
        return None
    kind = SignalType.BUY if rng.random() > 0.5 else SignalType.SELL
    conditions = Conditions(*(bool(rng.random() > 0.5) for _ in range(6)))
    log.info("🎲 Demo signal %s  score %d/6", kind.value, conditions.score)
    return Signal(
        type=kind,
        price=last_candle.close,
        timestamp=now if now is not None else time.time(),
        symbol=symbol,
        timeframe=timeframe,
        conditions=conditions,
        score=conditions.score,
        is_demo=True,
    )
