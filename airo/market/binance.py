import asyncio
import json
import time
from dataclasses import dataclass
from typing import Optional

import aiohttp
import websockets

from airo.errors import DataFetchError
from airo.utils.candle import Candle, CandleWindow, parse_candle
from airo.utils.logger import log

@dataclass
class MarketSnapshot:
    primary: list[Candle]
    h1: list[Candle]
    d1: list[Candle]

class BinanceMarketData:
    """Public Binance spot klines over REST plus the kline websocket stream."""

    def __init__(self, rest_url: str = "https://api.binance.com",
                 ws_url: str = "wss://stream.binance.com:9443/ws",
                 timeout: float = 10.0,
                 session: Optional[aiohttp.ClientSession] = None):
        self.rest_url = rest_url.rstrip("/")
        self.ws_url = ws_url.rstrip("/")
        self.timeout = timeout
        self.session = session

    async def start(self):
        if self.session is None or self.session.closed:
            self.session = aiohttp.ClientSession(
                timeout=aiohttp.ClientTimeout(total=self.timeout)
            )

    async def close(self):
        if self.session is not None and not self.session.closed:
            await self.session.close()

    async def get_candles(self, symbol: str, interval: str, limit: int) -> list[Candle]:
        await self.start()
        params = {"symbol": symbol, "interval": interval, "limit": limit}
        try:
            async with self.session.get(f"{self.rest_url}/api/v3/klines", params=params) as resp:
                if resp.status != 200:
                    body = await resp.text()
                    raise DataFetchError(f"HTTP {resp.status} for {symbol} {interval}: {body[:200]}")
                data = await resp.json()
        except (aiohttp.ClientError, asyncio.TimeoutError) as e:
            raise DataFetchError(f"klines {symbol} {interval}: {e!r}") from e

        if not isinstance(data, list):
            raise DataFetchError(f"unexpected klines payload for {symbol} {interval}")
        try:
            candles = [parse_candle(k) for k in data]
        except (ValueError, TypeError, IndexError, KeyError) as e:
            raise DataFetchError(f"malformed kline for {symbol} {interval}: {e}") from e
        return candles

    async def fetch_timeframes(self, symbol: str, timeframe: str,
                               limits: tuple = (100, 50, 30)) -> MarketSnapshot:
        primary_limit, h1_limit, d1_limit = limits
        primary = await self.get_candles(symbol, timeframe, primary_limit)
        h1 = await self.get_candles(symbol, "1h", h1_limit)
        d1 = await self.get_candles(symbol, "1d", d1_limit)
        log.info("Fetched %d/%d/%d candles for %s (%s/1h/1d)",
                 len(primary), len(h1), len(d1), symbol, timeframe)
        return MarketSnapshot(primary=primary, h1=h1, d1=d1)

    async def stream_klines(self, symbol: str, interval: str, window: CandleWindow,
                            reconnect_delay: float = 5.0):
        """Patch `window` from live kline pushes until cancelled."""
        url = f"{self.ws_url}/{symbol.lower()}@kline_{interval}"
        while True:
            try:
                async with websockets.connect(url, ping_interval=20) as ws:
                    log.info("✅ WebSocket connected: %s@kline_%s", symbol.lower(), interval)
                    async for message in ws:
                        self._handle_kline(message, window)
            except asyncio.CancelledError:
                raise
            except Exception as e:
                log.error("WebSocket error: %s", e)
            await asyncio.sleep(reconnect_delay)

    @staticmethod
    def _handle_kline(message, window: CandleWindow, now_ms: Optional[int] = None):
        try:
            data = json.loads(message)
            if not isinstance(data, dict) or "k" not in data:
                return
            candle = parse_candle(data)
        except (ValueError, TypeError, KeyError) as e:
            log.debug("Ignoring malformed kline message: %s", e)
            return
        now_ms = now_ms if now_ms is not None else int(time.time() * 1000)
        if not window.apply_update(candle, now_ms):
            log.debug("Ignoring stale kline %d (out of order or already closed)", candle.open_time)
