from dataclasses import replace

import numpy as np
import pytest

from airo.config import BotConfig
from airo.constants import SignalType
from airo.core.indicators import FibLevels, IndicatorSet
from airo.core.signal import Conditions, Signal, strength_for
from airo.trading.trade import Trade, TradeOutcome
from airo.utils.candle import Candle

START_MS = 1_700_000_000_000
STEP_MS = 300_000


@pytest.fixture
def cfg():
    return BotConfig(live_stream=False, cycle_interval=0.05)


@pytest.fixture
def rng():
    return np.random.default_rng(42)


@pytest.fixture
def make_candles():
    """Candles on a 5m grid with a fixed high/low spread around each close."""
    def _make(closes, spread=0.5, volume=10.0, start_ms=START_MS):
        return [
            Candle(
                open_time=start_ms + i * STEP_MS,
                open=c,
                high=c + spread,
                low=c - spread,
                close=c,
                volume=volume,
                close_time=start_ms + (i + 1) * STEP_MS - 1,
            )
            for i, c in enumerate(closes)
        ]
    return _make


@pytest.fixture
def make_indicators():
    """Indicator set where every BUY condition holds for a close of 130 and volume 20."""
    base = IndicatorSet(
        ema_short=105.0,
        ema_long=100.0,
        rsi=25.0,
        stochastic_k=20.0,
        stochastic_d=15.0,
        macd=1.0,
        macd_signal=0.2,
        macd_histogram=0.5,
        atr=2.0,
        volume_sma=10.0,
        fib_levels=FibLevels.from_range(200.0, 100.0),
        recent_high=200.0,
        recent_low=100.0,
    )

    def _make(**overrides):
        return replace(base, **overrides)
    return _make


@pytest.fixture
def make_signal():
    def _make(kind=SignalType.BUY, score=6, price=30_000.0, symbol="BTCUSDT"):
        conditions = Conditions(*([True] * score + [False] * (6 - score)))
        return Signal(
            type=kind,
            price=price,
            timestamp=1_700_000_000.0,
            symbol=symbol,
            timeframe="5m",
            conditions=conditions,
            score=score,
            strength=strength_for(score),
        )
    return _make


@pytest.fixture
def make_trade():
    def _make(trade_id="T-1", kind=SignalType.BUY, entry=100.0, stop=95.0, take=110.0,
              qty=20.0, risk=100.0, simulated=True, outcome=None, timestamp=1_700_000_000.0):
        return Trade(
            id=trade_id,
            symbol="BTCUSDT",
            type=kind,
            quantity=qty,
            entry_price=entry,
            stop_loss=stop,
            take_profit=take,
            timestamp=timestamp,
            risk_amount=risk,
            outcome=outcome,
            is_simulated=simulated,
        )
    return _make


@pytest.fixture
def win_outcome():
    return TradeOutcome(is_win=True, multiplier=2.0)


@pytest.fixture
def loss_outcome():
    return TradeOutcome(is_win=False, multiplier=-0.9)
