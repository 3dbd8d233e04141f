import asyncio
import os
import sys

from dotenv import load_dotenv

from airo.bot import SignalBot
from airo.config import BotConfig
from airo.errors import ConfigurationError, PersistenceError
from airo.trading.journal import TradeJournal
from airo.utils.logger import log

def main():
    load_dotenv()

    # --- Load config from env or defaults ---
    try:
        cfg = BotConfig(
            symbol=os.environ.get("AIRO_SYMBOL", "BTCUSDT").upper(),
            timeframe=os.environ.get("AIRO_TIMEFRAME", "5m"),
            quote_asset=os.environ.get("AIRO_QUOTE_ASSET", "USDT"),
            base_asset=os.environ.get("AIRO_BASE_ASSET", "BTC"),
            risk_per_trade=float(os.environ.get("AIRO_RISK_PER_TRADE", "1.0")),
            rrr=float(os.environ.get("AIRO_RRR", "2.5")),
            signal_preset=os.environ.get("AIRO_SIGNAL_PRESET", "relaxed-v2"),
            signal_mode=os.environ.get("AIRO_SIGNAL_MODE", "scorer"),
            simulator_profile=os.environ.get("AIRO_SIMULATOR_PROFILE", "standard"),
            cycle_interval=float(os.environ.get("AIRO_CYCLE_INTERVAL", "30")),
            live_stream=os.environ.get("AIRO_LIVE_STREAM", "1") not in ("0", "false", "no"),
            db_path=os.environ.get("AIRO_DB_PATH", "airo_journal.db"),
        ).validate()
    except (ValueError, ConfigurationError) as e:
        print("=" * 60)
        print("  ERROR: Invalid configuration!")
        print()
        print(f"  {e}")
        print()
        print("  Check the AIRO_* environment variables or your .env file.")
        print("=" * 60)
        sys.exit(1)

    try:
        journal = TradeJournal(cfg.db_path, cfg.db_timeout)
    except PersistenceError as e:
        log.warning("Journal unavailable, running in memory only: %s", e)
        journal = None

    bot = SignalBot(cfg, journal=journal)

    async def run():
        try:
            await bot.run_forever()
        except Exception as e:
            log.critical("Critical error: %s", e, exc_info=True)
        finally:
            await bot.close()

    try:
        asyncio.run(run())
    except KeyboardInterrupt:
        pass

if __name__ == "__main__":
    main()
