import numpy as np

from airo.constants import Regime
from airo.utils.candle import Candle

VOLATILE_STD = 0.005     # std of per-candle returns
TREND_DRIFT = 0.002      # fitted move over the window, relative to the last close

def classify(closes: np.ndarray, vol_ceiling: float = VOLATILE_STD,
             min_drift: float = TREND_DRIFT) -> Regime:
    """Noisy series are VOLATILE whatever their slope; otherwise the least-squares
    drift decides between trending and ranging."""
    rets = np.diff(closes) / (closes[:-1] + 1e-10)
    if np.std(rets) > vol_ceiling:
        return Regime.VOLATILE
    slope = np.polyfit(np.arange(len(closes)), closes, 1)[0]
    drift = slope * len(closes) / (closes[-1] + 1e-10)
    if drift > min_drift:
        return Regime.TRENDING_UP
    if drift < -min_drift:
        return Regime.TRENDING_DOWN
    return Regime.RANGING

class RegimeDetector:
    @staticmethod
    def detect(candles: list[Candle], window: int = 30) -> Regime:
        if len(candles) < window:
            return Regime.RANGING
        return classify(np.array([c.close for c in candles[-window:]], dtype=np.float64))

    @staticmethod
    def is_trending(regime: Regime) -> bool:
        return regime in (Regime.TRENDING_UP, Regime.TRENDING_DOWN)
