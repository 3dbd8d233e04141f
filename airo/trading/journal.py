import functools
import json
import sqlite3
import time
from typing import Any, Optional

from airo.errors import PersistenceError
from airo.trading.performance import PerformanceStats, WinRateSnapshot
from airo.trading.trade import Trade

TRADE_COLUMNS = (
    "id", "symbol", "type", "quantity", "entry_price", "stop_loss", "take_profit",
    "timestamp", "risk_amount", "is_win", "multiplier", "signal_score",
    "counter_trend", "is_simulated", "status", "exit_price", "close_time", "pnl",
    "close_reason",
)

def _guarded(fn):
    @functools.wraps(fn)
    def wrapper(self, *args, **kwargs):
        try:
            return fn(self, *args, **kwargs)
        except sqlite3.Error as e:
            raise PersistenceError(f"{fn.__name__}: {e}") from e
    return wrapper

class TradeJournal:
    """SQLite store: key-value settings plus trade, performance and win-rate history."""

    def __init__(self, db_path: str, timeout: float = 5.0):
        try:
            self.conn = sqlite3.connect(db_path, timeout=timeout)
        except sqlite3.Error as e:
            raise PersistenceError(f"cannot open {db_path}: {e}") from e
        self.conn.row_factory = sqlite3.Row
        self._init_db()

    @_guarded
    def _init_db(self):
        self.conn.execute("""
            CREATE TABLE IF NOT EXISTS trades (
                id            TEXT PRIMARY KEY,
                symbol        TEXT,
                type          TEXT,
                quantity      REAL,
                entry_price   REAL,
                stop_loss     REAL,
                take_profit   REAL,
                timestamp     REAL,
                risk_amount   REAL,
                is_win        INTEGER,
                multiplier    REAL,
                signal_score  INTEGER,
                counter_trend INTEGER,
                is_simulated  INTEGER,
                status        TEXT,
                exit_price    REAL,
                close_time    REAL,
                pnl           REAL,
                close_reason  TEXT,
                updated_at    REAL
            )
        """)
        self.conn.execute("CREATE INDEX IF NOT EXISTS trades_ts ON trades (timestamp)")
        self.conn.execute("""
            CREATE TABLE IF NOT EXISTS performance_snapshots (
                timestamp          REAL,
                total_trades       INTEGER,
                winning_trades     INTEGER,
                losing_trades      INTEGER,
                winrate            REAL,
                total_pnl          REAL,
                balance_quote      REAL,
                balance_base       REAL,
                max_drawdown       REAL,
                avg_win            REAL,
                avg_loss           REAL,
                largest_win        REAL,
                largest_loss       REAL,
                consecutive_losses INTEGER
            )
        """)
        windows = ", ".join(
            f"{kind}_{w} {ctype}"
            for w in ("1h", "4h", "24h", "7d", "30d")
            for kind, ctype in (("winrate", "REAL"), ("trades", "INTEGER"), ("wins", "INTEGER"))
        )
        self.conn.execute(f"CREATE TABLE IF NOT EXISTS winrate_snapshots (timestamp REAL, {windows})")
        self.conn.execute("""
            CREATE TABLE IF NOT EXISTS kv (
                key     TEXT PRIMARY KEY,
                value   TEXT,
                updated REAL
            )
        """)
        self.conn.commit()

    # ---- key-value ----
    @_guarded
    def set_value(self, key: str, value: Any):
        self.conn.execute(
            "INSERT OR REPLACE INTO kv (key, value, updated) VALUES (?,?,?)",
            (key, json.dumps(value), time.time()),
        )
        self.conn.commit()

    @_guarded
    def get_value(self, key: str, default: Any = None) -> Any:
        row = self.conn.execute("SELECT value FROM kv WHERE key = ?", (key,)).fetchone()
        if row is None:
            return default
        try:
            return json.loads(row["value"])
        except ValueError as e:
            raise PersistenceError(f"corrupt value for {key!r}: {e}") from e

    @_guarded
    def delete_value(self, key: str):
        self.conn.execute("DELETE FROM kv WHERE key = ?", (key,))
        self.conn.commit()

    # ---- trades ----
    @_guarded
    def save_trade(self, t: Trade):
        row = t.to_row()
        placeholders = ",".join("?" for _ in TRADE_COLUMNS)
        self.conn.execute(
            f"INSERT INTO trades ({', '.join(TRADE_COLUMNS)}, updated_at) VALUES ({placeholders}, ?)",
            tuple(row[c] for c in TRADE_COLUMNS) + (time.time(),),
        )
        self.conn.commit()

    @_guarded
    def update_trade(self, t: Trade) -> bool:
        row = t.to_row()
        cur = self.conn.execute(
            "UPDATE trades SET status = ?, exit_price = ?, close_time = ?, pnl = ?, "
            "close_reason = ?, updated_at = ? WHERE id = ?",
            (row["status"], row["exit_price"], row["close_time"], row["pnl"],
             row["close_reason"], time.time(), t.id),
        )
        self.conn.commit()
        return cur.rowcount > 0

    @_guarded
    def load_trades(self) -> list[Trade]:
        cur = self.conn.execute(
            f"SELECT {', '.join(TRADE_COLUMNS)} FROM trades ORDER BY timestamp ASC"
        )
        return [Trade.from_row(dict(r)) for r in cur.fetchall()]

    @_guarded
    def trades_in_range(self, start: float, end: float, status: Optional[str] = "CLOSED") -> list[Trade]:
        sql = f"SELECT {', '.join(TRADE_COLUMNS)} FROM trades WHERE timestamp >= ? AND timestamp <= ?"
        params: tuple = (start, end)
        if status is not None:
            sql += " AND status = ?"
            params += (status,)
        cur = self.conn.execute(sql + " ORDER BY timestamp ASC", params)
        return [Trade.from_row(dict(r)) for r in cur.fetchall()]

    @_guarded
    def clear_trades(self):
        self.conn.execute("DELETE FROM trades")
        self.conn.commit()

    # ---- snapshots ----
    @_guarded
    def save_performance(self, stats: PerformanceStats, quote: float, base: float):
        self.conn.execute(
            "INSERT INTO performance_snapshots VALUES (?,?,?,?,?,?,?,?,?,?,?,?,?,?)",
            (time.time(), stats.total_trades, stats.total_wins, stats.total_losses,
             stats.win_rate, stats.net_profit, quote, base, stats.max_drawdown,
             stats.avg_win, stats.avg_loss, stats.best_trade, stats.worst_trade,
             stats.consecutive_losses),
        )
        self.conn.commit()

    @_guarded
    def save_winrate(self, snapshot: WinRateSnapshot):
        row = snapshot.to_row()
        cols = list(row)
        self.conn.execute(
            f"INSERT INTO winrate_snapshots ({', '.join(cols)}) VALUES ({','.join('?' for _ in cols)})",
            tuple(row[c] for c in cols),
        )
        self.conn.commit()

    @_guarded
    def latest_winrate(self) -> Optional[dict]:
        row = self.conn.execute(
            "SELECT * FROM winrate_snapshots ORDER BY timestamp DESC LIMIT 1"
        ).fetchone()
        return dict(row) if row else None

    def close(self):
        self.conn.close()
