from enum import Enum

class SignalType(Enum):
    BUY = "BUY"
    SELL = "SELL"

class SignalStrength(Enum):
    WEAK = "WEAK"
    MEDIUM = "MEDIUM"
    STRONG = "STRONG"

class TradeStatus(Enum):
    OPEN = "OPEN"
    CLOSED = "CLOSED"

class CloseReason(Enum):
    TP_HIT = "TP HIT"
    SL_HIT = "SL HIT"

class BotStatus(Enum):
    STOPPED = "stopped"
    RUNNING = "running"

class Regime(Enum):
    TRENDING_UP = "trending_up"
    TRENDING_DOWN = "trending_down"
    RANGING = "ranging"
    VOLATILE = "volatile"

# Binance interval codes the bot accepts for the primary timeframe
INTERVALS = (
    "1m", "3m", "5m", "15m", "30m",
    "1h", "2h", "4h", "6h", "8h", "12h",
    "1d", "3d", "1w",
)

# Rolling win-rate windows, in seconds
WINRATE_WINDOWS = {
    "1h": 60 * 60,
    "4h": 4 * 60 * 60,
    "24h": 24 * 60 * 60,
    "7d": 7 * 24 * 60 * 60,
    "30d": 30 * 24 * 60 * 60,
}

BASELINE_EQUITY = 10_000.0
