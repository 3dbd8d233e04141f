import pytest

from airo.constants import CloseReason, SignalType, TradeStatus
from airo.errors import PersistenceError
from airo.trading.journal import TradeJournal
from airo.trading.performance import compute_stats, compute_window_winrates


@pytest.fixture
def journal(tmp_path):
    j = TradeJournal(str(tmp_path / "journal.db"))
    yield j
    j.close()


def test_trade_round_trip(journal, make_trade, win_outcome):
    trade = make_trade(kind=SignalType.SELL, entry=100.0, stop=105.0, take=90.0,
                       outcome=win_outcome)
    journal.save_trade(trade)
    [loaded] = journal.load_trades()
    assert loaded == trade
    assert loaded.status == TradeStatus.OPEN
    assert loaded.outcome.multiplier == 2.0


def test_update_trade_on_close(journal, make_trade):
    trade = make_trade()
    journal.save_trade(trade)
    closed = trade.closed(110.0, 200.0, CloseReason.TP_HIT, 1_700_000_100.0)
    assert journal.update_trade(closed)
    [loaded] = journal.load_trades()
    assert loaded.status == TradeStatus.CLOSED
    assert loaded.pnl == 200.0
    assert loaded.close_reason == CloseReason.TP_HIT

    ghost = make_trade(trade_id="GHOST").closed(1.0, 1.0, CloseReason.TP_HIT, 1.0)
    assert not journal.update_trade(ghost)


def test_duplicate_trade_raises_persistence_error(journal, make_trade):
    journal.save_trade(make_trade())
    with pytest.raises(PersistenceError):
        journal.save_trade(make_trade())


def test_trades_in_range_only_closed(journal, make_trade):
    for i, ts in enumerate((100.0, 200.0, 300.0)):
        t = make_trade(trade_id=f"T-{i}", timestamp=ts)
        journal.save_trade(t)
        if i < 2:
            journal.update_trade(t.closed(100.0, 10.0, CloseReason.TP_HIT, ts + 1))
    assert [t.id for t in journal.trades_in_range(150.0, 400.0)] == ["T-1"]
    assert len(journal.trades_in_range(0.0, 400.0, status=None)) == 3


def test_key_value(journal):
    assert journal.get_value("balance", {"quote": 1}) == {"quote": 1}
    journal.set_value("balance", {"quote": 9_900.0, "base": 0.02})
    assert journal.get_value("balance") == {"quote": 9_900.0, "base": 0.02}
    journal.delete_value("balance")
    assert journal.get_value("balance") is None


def test_corrupt_value(journal):
    journal.conn.execute("INSERT INTO kv (key, value, updated) VALUES ('bad', '{oops', 0)")
    with pytest.raises(PersistenceError, match="corrupt"):
        journal.get_value("bad")


def test_snapshots(journal, make_trade):
    t = make_trade(timestamp=1_000.0).closed(110.0, 200.0, CloseReason.TP_HIT, 1_010.0)
    journal.save_performance(compute_stats([t]), 10_200.0, 0.0)
    row = journal.conn.execute("SELECT * FROM performance_snapshots").fetchone()
    assert row["total_pnl"] == 200.0
    assert row["balance_quote"] == 10_200.0

    assert journal.latest_winrate() is None
    journal.save_winrate(compute_window_winrates([t], now=1_100.0))
    latest = journal.latest_winrate()
    assert latest["winrate_1h"] == 100.0
    assert latest["trades_30d"] == 1


def test_clear_trades(journal, make_trade):
    journal.save_trade(make_trade())
    journal.clear_trades()
    assert journal.load_trades() == []


def test_unopenable_path(tmp_path):
    with pytest.raises(PersistenceError):
        TradeJournal(str(tmp_path / "missing-dir" / "journal.db"))
