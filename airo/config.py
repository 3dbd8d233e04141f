from dataclasses import asdict, dataclass, field, replace

from airo.constants import INTERVALS, SignalStrength
from airo.errors import ConfigurationError

@dataclass(frozen=True)
class SimulatorProfile:
    """Parameters of one demo-simulator variant."""

    name: str
    base_win_rate: float                     # probability, 0..1
    strength_bonus: dict = field(default_factory=dict)
    trending_bonus: float = 0.02
    volume_bonus: float = 0.01
    streak_win_rate: float = 0.80            # forced once the loss streak hits the ceiling
    win_multiplier: tuple = (1.5, 3.0)       # x risk
    loss_multiplier: tuple = (-1.0, -0.8)    # x risk
    close_delay: tuple = (30.0, 150.0)       # seconds
    volatility: tuple = (0.01, 0.03)         # SL distance as a fraction of price
    slippage: float = 0.001                  # full width, fraction of price
    exit_variance: float = 0.10              # of the TP/SL distance
    price_precision: int = 2                 # minimum; cheap symbols get more digits
    qty_precision: int = 6

@dataclass(frozen=True)
class SignalPreset:
    """Thresholds of one signal-scoring rule set version."""

    name: str
    rsi_oversold: float = 35.0
    rsi_overbought: float = 65.0
    stoch_low: float = 25.0
    stoch_high: float = 75.0
    volume_spike: float = 1.3
    fib_tolerance: float = 0.01
    trend_min_score: int = 4
    counter_min_score: int = 4

SIMULATOR_PROFILES = {
    "standard": SimulatorProfile(
        name="standard",
        base_win_rate=0.105,
        strength_bonus={SignalStrength.MEDIUM: 0.02, SignalStrength.STRONG: 0.05},
    ),
    "high-reward": SimulatorProfile(
        name="high-reward",
        base_win_rate=0.10,
        strength_bonus={SignalStrength.MEDIUM: 0.03, SignalStrength.STRONG: 0.05},
        win_multiplier=(2.0, 5.0),
        loss_multiplier=(-1.0, -0.95),
        close_delay=(30.0, 300.0),
        volatility=(0.01, 0.04),
    ),
}

SIGNAL_PRESETS = {
    "relaxed-v2": SignalPreset(name="relaxed-v2"),
    "strict-v1": SignalPreset(
        name="strict-v1",
        rsi_oversold=30.0,
        rsi_overbought=70.0,
        stoch_low=20.0,
        stoch_high=80.0,
        volume_spike=1.5,
        counter_min_score=5,
    ),
}

# keys the settings panel may change at runtime
SETTINGS_KEYS = (
    "risk_per_trade", "rrr",
    "ema_short", "ema_long", "rsi_period", "stochastic_period",
    "macd_fast", "macd_slow", "macd_signal", "atr_period",
)

@dataclass
class BotConfig:
    """All tuneable knobs in one place."""

    # --- market ---
    symbol: str = "BTCUSDT"
    timeframe: str = "5m"                   # primary timeframe
    quote_asset: str = "USDT"
    base_asset: str = "BTC"
    primary_limit: int = 100
    h1_limit: int = 50
    d1_limit: int = 30
    rest_url: str = "https://api.binance.com"
    ws_url: str = "wss://stream.binance.com:9443/ws"
    fetch_timeout: float = 10.0             # seconds per REST call
    live_stream: bool = True                # patch the primary window from websocket klines

    # --- money management ---
    initial_quote: float = 10_000.0
    initial_base: float = 0.0
    risk_balance: float = 10_000.0          # fixed balance the risk % applies to
    risk_per_trade: float = 1.0             # percent
    rrr: float = 2.5                        # risk:reward

    # --- indicators ---
    ema_short: int = 9
    ema_long: int = 21
    rsi_period: int = 14
    stochastic_period: int = 14
    stochastic_signal: int = 3
    macd_fast: int = 12
    macd_slow: int = 26
    macd_signal: int = 9
    atr_period: int = 14
    volume_period: int = 20
    fib_lookback: int = 100
    min_candles: int = 30

    # --- signals / simulation ---
    signal_preset: str = "relaxed-v2"
    signal_mode: str = "scorer"             # "scorer" or "demo"
    demo_signal_chance: float = 0.30
    simulator_profile: str = "standard"
    max_concurrent_trades: int = 3
    anti_streak_losses: int = 12
    regime_window: int = 30

    # --- scheduling ---
    cycle_interval: float = 30.0
    winrate_interval: float = 300.0
    max_signals: int = 20

    # --- persistence ---
    db_path: str = "airo_journal.db"
    db_timeout: float = 5.0

    @property
    def profile(self) -> SimulatorProfile:
        return SIMULATOR_PROFILES[self.simulator_profile]

    @property
    def preset(self) -> SignalPreset:
        return SIGNAL_PRESETS[self.signal_preset]

    def validate(self) -> "BotConfig":
        problems = []
        if not self.symbol:
            problems.append("symbol is empty")
        if self.timeframe not in INTERVALS:
            problems.append(f"unknown timeframe {self.timeframe!r}")
        for name in ("ema_short", "ema_long", "rsi_period", "stochastic_period",
                     "stochastic_signal", "macd_fast", "macd_slow", "macd_signal",
                     "atr_period", "volume_period", "fib_lookback", "min_candles",
                     "max_concurrent_trades", "anti_streak_losses"):
            if getattr(self, name) <= 0:
                problems.append(f"{name} must be positive")
        if self.ema_short >= self.ema_long:
            problems.append("ema_short must be shorter than ema_long")
        if self.macd_fast >= self.macd_slow:
            problems.append("macd_fast must be shorter than macd_slow")
        if not 0 < self.risk_per_trade <= 100:
            problems.append("risk_per_trade must be in (0, 100]")
        if self.rrr <= 0:
            problems.append("rrr must be positive")
        if self.cycle_interval <= 0:
            problems.append("cycle_interval must be positive")
        if self.simulator_profile not in SIMULATOR_PROFILES:
            problems.append(f"unknown simulator profile {self.simulator_profile!r}")
        if self.signal_preset not in SIGNAL_PRESETS:
            problems.append(f"unknown signal preset {self.signal_preset!r}")
        if self.signal_mode not in ("scorer", "demo"):
            problems.append(f"unknown signal mode {self.signal_mode!r}")
        if problems:
            raise ConfigurationError("; ".join(problems))
        return self

    def settings(self) -> dict:
        values = asdict(self)
        return {k: values[k] for k in SETTINGS_KEYS}

    def with_settings(self, **changes) -> "BotConfig":
        unknown = set(changes) - set(SETTINGS_KEYS)
        if unknown:
            raise ConfigurationError(f"not a runtime setting: {', '.join(sorted(unknown))}")
        return replace(self, **changes).validate()
