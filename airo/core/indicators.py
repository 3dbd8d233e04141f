from dataclasses import dataclass
from typing import Optional

import numpy as np
from numpy.lib.stride_tricks import sliding_window_view

from airo.config import BotConfig
from airo.errors import IndicatorInsufficientDataError
from airo.utils.candle import Candle
from airo.utils.logger import log

FIB_RATIOS = {"level23": 0.236, "level38": 0.382, "level50": 0.5, "level61": 0.618}

@dataclass(frozen=True)
class FibLevels:
    level0: float
    level23: float
    level38: float
    level50: float
    level61: float
    level100: float

    @classmethod
    def from_range(cls, high: float, low: float) -> "FibLevels":
        span = high - low
        return cls(
            level0=high,
            level100=low,
            **{name: high - span * ratio for name, ratio in FIB_RATIOS.items()},
        )

@dataclass(frozen=True)
class IndicatorSet:
    ema_short: float
    ema_long: float
    rsi: float
    stochastic_k: float
    stochastic_d: float
    macd: float
    macd_signal: float
    macd_histogram: float
    atr: float
    volume_sma: float
    fib_levels: FibLevels
    recent_high: float
    recent_low: float

class IndicatorEngine:
    """Turns a candle window into the last value of every indicator the
    signal scorer reads. Periods come from the bot config."""

    def __init__(self, cfg: BotConfig):
        self.cfg = cfg

    def compute(self, candles: list[Candle]) -> Optional[IndicatorSet]:
        try:
            return self._compute(candles)
        except IndicatorInsufficientDataError as e:
            log.info("Not enough data for indicators (%s)", e)
        except Exception as e:
            log.error("Indicator calculation failed: %s", e)
        return None

    def _compute(self, candles: list[Candle]) -> IndicatorSet:
        cfg = self.cfg
        if candles is None or len(candles) < cfg.min_candles:
            raise IndicatorInsufficientDataError(len(candles or []), cfg.min_candles)

        closes = np.array([c.close  for c in candles], dtype=np.float64)
        highs  = np.array([c.high   for c in candles], dtype=np.float64)
        lows   = np.array([c.low    for c in candles], dtype=np.float64)
        vols   = np.array([c.volume for c in candles], dtype=np.float64)
        for series in (closes, highs, lows, vols):
            if not np.all(np.isfinite(series)):
                raise ValueError("non-finite value in candle data")

        ema_short = IndicatorEngine._ema_series(closes, cfg.ema_short)
        ema_long = IndicatorEngine._ema_series(closes, cfg.ema_long)
        rsi = IndicatorEngine._rsi_series(closes, cfg.rsi_period)
        k, d = IndicatorEngine._stochastic(highs, lows, closes,
                                           cfg.stochastic_period, cfg.stochastic_signal)
        macd, signal, hist = IndicatorEngine._macd(closes, cfg.macd_fast,
                                                   cfg.macd_slow, cfg.macd_signal)
        atr = IndicatorEngine._atr_series(highs, lows, closes, cfg.atr_period)
        vol_sma = IndicatorEngine._sma_series(vols, cfg.volume_period)

        recent_high = float(np.max(highs[-cfg.fib_lookback:]))
        recent_low = float(np.min(lows[-cfg.fib_lookback:]))

        return IndicatorSet(
            ema_short=IndicatorEngine._last(ema_short),
            ema_long=IndicatorEngine._last(ema_long),
            rsi=IndicatorEngine._last(rsi),
            stochastic_k=IndicatorEngine._last(k),
            stochastic_d=IndicatorEngine._last(d),
            macd=IndicatorEngine._last(macd),
            macd_signal=IndicatorEngine._last(signal),
            macd_histogram=IndicatorEngine._last(hist),
            atr=IndicatorEngine._last(atr),
            volume_sma=IndicatorEngine._last(vol_sma),
            fib_levels=FibLevels.from_range(recent_high, recent_low),
            recent_high=recent_high,
            recent_low=recent_low,
        )

    # ---- Helpers ----
    @staticmethod
    def _last(series: np.ndarray) -> float:
        return float(series[-1]) if len(series) else 0.0

    @staticmethod
    def _sma_series(data: np.ndarray, period: int) -> np.ndarray:
        if len(data) < period:
            return np.empty(0)
        return sliding_window_view(data, period).mean(axis=1)

    @staticmethod
    def _ema_series(data: np.ndarray, period: int) -> np.ndarray:
        """EMA seeded with the SMA of the first `period` values."""
        if len(data) < period:
            return np.empty(0)
        alpha = 2.0 / (period + 1)
        out = np.empty(len(data) - period + 1, dtype=np.float64)
        out[0] = np.mean(data[:period])
        for i, v in enumerate(data[period:], start=1):
            out[i] = alpha * v + (1 - alpha) * out[i - 1]
        return out

    @staticmethod
    def _wilder(data: np.ndarray, period: int) -> np.ndarray:
        if len(data) < period:
            return np.empty(0)
        out = np.empty(len(data) - period + 1, dtype=np.float64)
        out[0] = np.mean(data[:period])
        for i, v in enumerate(data[period:], start=1):
            out[i] = (out[i - 1] * (period - 1) + v) / period
        return out

    @staticmethod
    def _rsi_series(closes: np.ndarray, period: int = 14) -> np.ndarray:
        deltas = np.diff(closes)
        avg_gain = IndicatorEngine._wilder(np.maximum(deltas, 0), period)
        avg_loss = IndicatorEngine._wilder(np.maximum(-deltas, 0), period)
        if not len(avg_gain):
            return np.empty(0)
        rsi = np.full(len(avg_gain), 50.0)
        losing = avg_loss > 0
        rs = avg_gain[losing] / avg_loss[losing]
        rsi[losing] = 100.0 - 100.0 / (1.0 + rs)
        rsi[~losing & (avg_gain > 0)] = 100.0
        return rsi

    @staticmethod
    def _stochastic(highs, lows, closes, k_period=14, d_period=3):
        if len(closes) < k_period:
            return np.empty(0), np.empty(0)
        hh = sliding_window_view(highs, k_period).max(axis=1)
        ll = sliding_window_view(lows, k_period).min(axis=1)
        c = closes[k_period - 1:]
        span = hh - ll
        k = np.full(len(c), 50.0)
        moving = span > 0
        k[moving] = 100.0 * (c[moving] - ll[moving]) / span[moving]
        d = IndicatorEngine._sma_series(k, d_period)
        return k, d

    @staticmethod
    def _macd(closes, fast=12, slow=26, signal=9):
        fast_ema = IndicatorEngine._ema_series(closes, fast)
        slow_ema = IndicatorEngine._ema_series(closes, slow)
        if not len(slow_ema):
            return np.empty(0), np.empty(0), np.empty(0)
        macd = fast_ema[slow - fast:] - slow_ema
        signal_line = IndicatorEngine._ema_series(macd, signal)
        hist = macd[len(macd) - len(signal_line):] - signal_line
        return macd, signal_line, hist

    @staticmethod
    def _atr_series(highs, lows, closes, period=14):
        if len(closes) < 2:
            return np.empty(0)
        tr = np.maximum(
            highs[1:] - lows[1:],
            np.maximum(
                np.abs(highs[1:] - closes[:-1]),
                np.abs(lows[1:] - closes[:-1])
            )
        )
        return IndicatorEngine._wilder(tr, period)

def compute_indicators(candles: list[Candle], cfg: BotConfig) -> Optional[IndicatorSet]:
    return IndicatorEngine(cfg).compute(candles)
