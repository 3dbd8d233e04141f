class AiroError(Exception):
    """Base class for every error raised by the engine."""


class DataFetchError(AiroError):
    """Market data source unreachable or returned malformed candles."""


class IndicatorInsufficientDataError(AiroError):
    """Candle window shorter than the indicator minimum."""

    def __init__(self, have: int, need: int):
        super().__init__(f"need {need} candles, have {have}")
        self.have = have
        self.need = need


class SignalIncompleteError(AiroError):
    """An indicator set for one of the timeframes is missing."""


class PersistenceError(AiroError):
    """Storage read or write failed."""


class ConfigurationError(AiroError):
    """Invalid or missing configuration. The bot refuses to start."""
