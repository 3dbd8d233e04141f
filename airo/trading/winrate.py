import asyncio
import time
from typing import Optional

from airo.constants import WINRATE_WINDOWS
from airo.errors import PersistenceError
from airo.trading.journal import TradeJournal
from airo.trading.performance import WinRateSnapshot, compute_window_winrates
from airo.utils.logger import log

class WinRateService:
    """Periodically aggregates rolling win rates from the journal, not from
    the in-memory ledger, and stores each result as a snapshot."""

    def __init__(self, journal: TradeJournal, interval: float = 300.0):
        self.journal = journal
        self.interval = interval
        self.last: Optional[WinRateSnapshot] = None
        self._task: Optional[asyncio.Task] = None

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    def calculate(self, now: Optional[float] = None) -> Optional[WinRateSnapshot]:
        now = now if now is not None else time.time()
        start = now - max(WINRATE_WINDOWS.values())
        try:
            trades = self.journal.trades_in_range(start, now)
            snapshot = compute_window_winrates(trades, now)
            self.journal.save_winrate(snapshot)
        except PersistenceError as e:
            log.warning("Win-rate snapshot failed: %s", e)
            return None
        self.last = snapshot
        log.info("Win rate  1h %.1f%%  24h %.1f%%  7d %.1f%%",
                 snapshot.windows["1h"].win_rate,
                 snapshot.windows["24h"].win_rate,
                 snapshot.windows["7d"].win_rate)
        return snapshot

    def start(self):
        if self.running:
            log.info("Win-rate service already running")
            return
        log.info("Starting win-rate service (every %ds)", int(self.interval))
        self._task = asyncio.create_task(self._run())

    async def _run(self):
        while True:
            self.calculate()
            await asyncio.sleep(self.interval)

    async def stop(self):
        if not self.running:
            return
        self._task.cancel()
        try:
            await self._task
        except asyncio.CancelledError:
            pass
        self._task = None
        # one last snapshot on the way out
        self.calculate()
