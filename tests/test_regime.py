import numpy as np

from airo.constants import Regime
from airo.core.regime import RegimeDetector, classify


def test_short_history_is_ranging(make_candles):
    assert RegimeDetector.detect(make_candles([100.0 + i for i in range(10)])) == Regime.RANGING


def test_steady_drift():
    up = 100.0 * 1.001 ** np.arange(30)
    assert classify(up) == Regime.TRENDING_UP
    assert classify(up[::-1].copy()) == Regime.TRENDING_DOWN
    assert classify(np.full(30, 100.0)) == Regime.RANGING


def test_noise_beats_slope():
    zigzag = 100.0 + np.tile([0.0, 2.0], 15) + np.arange(30) * 0.1
    assert classify(zigzag) == Regime.VOLATILE


def test_is_trending():
    assert RegimeDetector.is_trending(Regime.TRENDING_DOWN)
    assert not RegimeDetector.is_trending(Regime.VOLATILE)
