import asyncio
from collections import deque
from typing import Callable, Optional

import numpy as np

from airo.config import SETTINGS_KEYS, BotConfig
from airo.constants import BotStatus
from airo.core.indicators import IndicatorEngine, IndicatorSet
from airo.core.signal import Signal, SignalScorer, generate_demo_signal
from airo.errors import ConfigurationError, DataFetchError, PersistenceError
from airo.market.binance import BinanceMarketData
from airo.trading.journal import TradeJournal
from airo.trading.ledger import Balance, TradeLedger
from airo.trading.money_manager import MoneyManager
from airo.trading.performance import PerformanceStats, compute_stats
from airo.trading.simulator import MarketContext, SimulatorState, TradeSimulator
from airo.trading.trade import Trade
from airo.trading.winrate import WinRateService
from airo.utils.candle import CandleWindow
from airo.utils.logger import LogBuffer, LogEntry, log


class SignalBot:
    """Paper-trading bot: market data → indicators → signal → demo trade.

    One asyncio task runs the cycle on a fixed period while RUNNING. Every
    simulated trade gets its own cancellable close timer keyed by trade id.
    All state lives on the event loop thread, so nothing here is locked.
    """

    def __init__(self, cfg: BotConfig, market: Optional[BinanceMarketData] = None,
                 journal: Optional[TradeJournal] = None,
                 rng: Optional[np.random.Generator] = None):
        self.cfg = cfg.validate()
        self.market = market if market is not None else BinanceMarketData(
            cfg.rest_url, cfg.ws_url, cfg.fetch_timeout,
        )
        self.journal = journal
        self.rng = rng if rng is not None else np.random.default_rng()

        self.status = BotStatus.STOPPED
        self.error: Optional[str] = None     # banner text for config/connectivity failures

        self.candles = CandleWindow(cfg.primary_limit)
        self.h1_candles = CandleWindow(cfg.h1_limit)
        self.d1_candles = CandleWindow(cfg.d1_limit)
        self.indicators: dict[str, Optional[IndicatorSet]] = {}
        self.signals: deque[Signal] = deque(maxlen=cfg.max_signals)
        self.performance: Optional[PerformanceStats] = None

        self.engine = IndicatorEngine(cfg)
        self.scorer = SignalScorer(cfg.preset, cfg.symbol, cfg.timeframe)
        self.money_mgr = MoneyManager(cfg)
        self.simulator = TradeSimulator(cfg.profile, SimulatorState(), self.rng,
                                        cfg.anti_streak_losses)
        self.ledger = TradeLedger(Balance(cfg.initial_quote, cfg.initial_base),
                                  cfg.max_concurrent_trades)
        self.winrate = WinRateService(journal, cfg.winrate_interval) if journal else None

        self.log_buffer = LogBuffer(maxlen=20)
        log.addHandler(self.log_buffer)

        self._close_timers: dict[str, asyncio.TimerHandle] = {}
        self._loop_task: Optional[asyncio.Task] = None
        self._stream_task: Optional[asyncio.Task] = None
        self._stop_event: Optional[asyncio.Event] = None

        self._restore()

    # ------------------------------------------------------------------
    @property
    def balance(self) -> Balance:
        return self.ledger.balance

    @property
    def trades(self) -> list[Trade]:
        return self.ledger.trades

    @property
    def logs(self) -> list[LogEntry]:
        return list(self.log_buffer.entries)

    @property
    def pending_closures(self) -> int:
        return len(self._close_timers)

    # ------------------------------------------------------------------
    def _persist(self, fn: Callable, *args):
        if self.journal is None:
            return
        try:
            fn(*args)
        except PersistenceError as e:
            log.warning("Persistence failed, keeping in-memory state: %s", e)

    def _save_state(self):
        if self.journal is None:
            return
        self._persist(self.journal.set_value, "balance", self.ledger.balance.to_dict())
        self._persist(self.journal.set_value, "simulator", self.simulator.state.to_dict())

    def _restore(self):
        """Reload settings, balance, simulator counters and trades from the journal."""
        if self.journal is None:
            return
        try:
            saved = self.journal.get_value("settings")
            if saved:
                try:
                    self._apply_config(self.cfg.with_settings(
                        **{k: v for k, v in saved.items() if k in SETTINGS_KEYS}
                    ))
                except ConfigurationError as e:
                    log.warning("Ignoring saved settings: %s", e)
            balance = self.journal.get_value("balance")
            if balance:
                self.ledger.balance = Balance.from_dict(balance)
            state = self.journal.get_value("simulator")
            if state:
                self.simulator.state = SimulatorState.from_dict(state)
            trades = self.journal.load_trades()
        except PersistenceError as e:
            log.warning("Could not restore from journal, starting fresh: %s", e)
            return
        if trades:
            self.ledger.load(trades)
            self.performance = compute_stats(self.ledger.trades, self.simulator.state)
        log.info("🔄 Restored %d trades  balance %.2f %s / %.6f %s",
                 len(trades), self.balance.quote, self.cfg.quote_asset,
                 self.balance.base, self.cfg.base_asset)

    def _apply_config(self, cfg: BotConfig):
        self.cfg = cfg
        self.engine.cfg = cfg
        self.money_mgr.cfg = cfg

    # ------------------------------------------------------------------
    async def start(self):
        if self.status == BotStatus.RUNNING:
            log.info("Bot already running")
            return
        try:
            self.cfg.validate()
        except ConfigurationError as e:
            self.error = f"Configuration error: {e}"
            log.error(self.error)
            raise

        self.status = BotStatus.RUNNING
        self._stop_event = asyncio.Event()
        log.info("🚀 Starting bot  %s %s  every %ds  profile=%s preset=%s",
                 self.cfg.symbol, self.cfg.timeframe, int(self.cfg.cycle_interval),
                 self.cfg.simulator_profile, self.cfg.signal_preset)

        self._resume_open_trades()
        if self.cfg.live_stream:
            self._stream_task = asyncio.create_task(
                self.market.stream_klines(self.cfg.symbol, self.cfg.timeframe, self.candles)
            )
        if self.winrate is not None:
            self.winrate.start()
        self._loop_task = asyncio.create_task(self._run_loop())

    async def _run_loop(self):
        loop = asyncio.get_running_loop()
        while self.status == BotStatus.RUNNING:
            started = loop.time()
            await self.run_cycle()
            # a slow cycle eats into the wait; ticks never overlap
            wait = max(0.0, self.cfg.cycle_interval - (loop.time() - started))
            try:
                await asyncio.wait_for(self._stop_event.wait(), timeout=wait)
            except asyncio.TimeoutError:
                pass

    async def run_forever(self):
        await self.start()
        if self._loop_task is not None:
            await self._loop_task

    async def stop(self):
        """Finish the in-flight cycle, then halt streaming and win-rate snapshots.

        Pending demo closes are cancelled too, so open simulated trades keep
        their reserved balance while stopped; `start` gives each of them a
        fresh close delay.
        """
        if self.status == BotStatus.STOPPED:
            return
        self.status = BotStatus.STOPPED
        self._stop_event.set()
        if self._loop_task is not None:
            try:
                await self._loop_task       # let an in-flight cycle finish
            except asyncio.CancelledError:
                pass
            self._loop_task = None
        if self._stream_task is not None:
            self._stream_task.cancel()
            try:
                await self._stream_task
            except asyncio.CancelledError:
                pass
            self._stream_task = None
        self._cancel_close_timers()
        if self.winrate is not None:
            await self.winrate.stop()
        log.info("⏹ Bot stopped.  %s",
                 self.performance.summary() if self.performance else "no closed trades")

    async def close(self):
        await self.stop()
        await self.market.close()
        if self.journal is not None:
            self.journal.close()
        log.removeHandler(self.log_buffer)

    def reset(self):
        """Back to the initial balance with no trades, signals or counters."""
        self._cancel_close_timers()
        self.ledger.reset(Balance(self.cfg.initial_quote, self.cfg.initial_base))
        self.signals.clear()
        self.simulator.state.reset()
        self.performance = None
        if self.journal is not None:
            self._persist(self.journal.clear_trades)
        self._save_state()
        log.info("♻ Demo account reset to %.2f %s", self.cfg.initial_quote, self.cfg.quote_asset)

    def update_settings(self, **changes) -> BotConfig:
        cfg = self.cfg.with_settings(**changes)
        self._apply_config(cfg)
        if self.journal is not None:
            self._persist(self.journal.set_value, "settings", cfg.settings())
        log.info("⚙ Settings updated: %s", ", ".join(f"{k}={v}" for k, v in changes.items()))
        return cfg

    async def refresh(self) -> bool:
        """Re-fetch market data and indicators without trading."""
        ok = await self._refresh_market()
        self.refresh_performance()
        return ok

    # ------------------------------------------------------------------
    async def run_cycle(self) -> Optional[Trade]:
        try:
            return await self._cycle()
        except Exception as e:
            log.error("Bot cycle error: %s", e, exc_info=True)
            return None

    async def _cycle(self) -> Optional[Trade]:
        log.info("🔄 Bot cycle start")
        if not await self._refresh_market():
            log.info("No market data, cycle skipped")
            return None

        primary = self.indicators.get("primary")
        last = self.candles.last
        if self.cfg.signal_mode == "demo":
            signal = generate_demo_signal(last, self.cfg.symbol, self.cfg.timeframe,
                                          self.rng, self.cfg.demo_signal_chance)
        else:
            signal = self.scorer.generate(primary, self.indicators.get("h1"),
                                          self.indicators.get("d1"), last)

        trade = None
        if signal is not None:
            self.signals.appendleft(signal)
            if self.ledger.can_open():
                trade = self.open_trade(signal)
            else:
                log.warning("⚠ Max %d open trades, skipping execution", self.ledger.max_open)

        if last is not None:
            for closed in self.ledger.check_price_closures(last.close):
                if self.journal is not None:
                    self._persist(self.journal.update_trade, closed)
                self._save_state()

        self.refresh_performance()
        log.info("✅ Bot cycle done")
        return trade

    async def _refresh_market(self) -> bool:
        cfg = self.cfg
        try:
            snap = await asyncio.wait_for(
                self.market.fetch_timeframes(
                    cfg.symbol, cfg.timeframe, (cfg.primary_limit, cfg.h1_limit, cfg.d1_limit),
                ),
                timeout=cfg.fetch_timeout * 3,
            )
        except (DataFetchError, asyncio.TimeoutError) as e:
            self.error = f"Market data unavailable: {str(e) or 'timeout'}"
            log.error(self.error)
            return False
        self.error = None

        self.candles.replace(snap.primary)
        self.h1_candles.replace(snap.h1)
        self.d1_candles.replace(snap.d1)
        self.indicators = {
            "primary": self.engine.compute(self.candles.to_list()),
            "h1": self.engine.compute(self.h1_candles.to_list()),
            "d1": self.engine.compute(self.d1_candles.to_list()),
        }
        return True

    def refresh_performance(self) -> Optional[PerformanceStats]:
        stats = compute_stats(self.ledger.trades, self.simulator.state)
        if stats is not None:
            self.performance = stats
            if self.journal is not None:
                self._persist(self.journal.save_performance, stats,
                              self.balance.quote, self.balance.base)
        return stats

    # ------------------------------------------------------------------
    def open_trade(self, signal: Signal) -> Optional[Trade]:
        context = MarketContext.from_market(
            self.candles.to_list(), self.indicators.get("primary"),
            self.cfg.preset.volume_spike, self.cfg.regime_window,
        )
        try:
            trade = self.simulator.simulate_open(signal, signal.price, self.money_mgr, context)
            self.ledger.record_open(trade)
        except ValueError as e:
            log.error("Demo trade execution error: %s", e)
            return None

        if self.journal is not None:
            self._persist(self.journal.save_trade, trade)
        self._save_state()
        log.info("✅ Demo %s %.6f %s @ %.2f  SL %.2f  TP %.2f",
                 trade.type.value, trade.quantity, trade.symbol,
                 trade.entry_price, trade.stop_loss, trade.take_profit)
        self._schedule_close(trade)
        return trade

    def _schedule_close(self, trade: Trade, delay: Optional[float] = None):
        delay = self.simulator.close_delay() if delay is None else delay
        loop = asyncio.get_running_loop()
        self._close_timers[trade.id] = loop.call_later(delay, self._close_simulated, trade.id)

    def _close_simulated(self, trade_id: str) -> Optional[Trade]:
        self._close_timers.pop(trade_id, None)
        trade = self.ledger.get(trade_id)
        if trade is None or not trade.is_open:
            return None
        try:
            last = self.candles.last
            closed = self.simulator.simulate_close(trade, last.close if last else trade.entry_price)
            if closed is None:
                return None
            self.ledger.record_close(trade_id, closed)
        except (ValueError, KeyError) as e:
            log.error("Demo close failed for %s: %s", trade_id, e)
            return None

        if self.journal is not None:
            self._persist(self.journal.update_trade, closed)
        self._save_state()
        icon = "💰" if closed.pnl > 0 else "📉"
        log.info("%s Demo trade closed: %s %s  %s  PnL %+.2f",
                 icon, closed.type.value, closed.symbol, closed.close_reason.value, closed.pnl)
        self.refresh_performance()
        return closed

    def _resume_open_trades(self):
        for trade in self.ledger.open_trades(simulated=True):
            if trade.id not in self._close_timers:
                self._schedule_close(trade)

    def _cancel_close_timers(self):
        for handle in self._close_timers.values():
            handle.cancel()
        if self._close_timers:
            log.info("Cancelled %d pending demo closes", len(self._close_timers))
        self._close_timers.clear()
