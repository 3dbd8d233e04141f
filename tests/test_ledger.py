import pytest

from airo.constants import CloseReason, SignalType
from airo.trading.ledger import Balance, TradeLedger


@pytest.fixture
def ledger():
    return TradeLedger(Balance(quote=10_000.0, base=0.0), max_open=3)


def test_buy_round_trip_moves_equity_by_pnl(ledger, make_trade):
    trade = make_trade(qty=20.0, risk=100.0)
    ledger.record_open(trade)
    assert ledger.balance.quote == pytest.approx(9_900.0)
    assert ledger.balance.base == pytest.approx(20.0)

    closed = trade.closed(exit_price=110.0, pnl=250.0, reason=CloseReason.TP_HIT, close_time=1.0)
    ledger.record_close(trade.id, closed)
    assert ledger.balance.quote == pytest.approx(10_250.0)
    assert ledger.balance.base == pytest.approx(0.0)
    assert ledger.balance.equity(12_345.0) == pytest.approx(10_250.0)
    assert ledger.get(trade.id).pnl == 250.0


def test_sell_round_trip(ledger, make_trade):
    trade = make_trade(kind=SignalType.SELL, entry=100.0, stop=105.0, take=90.0)
    ledger.record_open(trade)
    assert ledger.balance.quote == pytest.approx(10_100.0)
    assert ledger.balance.base == pytest.approx(-20.0)
    closed = trade.closed(exit_price=105.0, pnl=-95.0, reason=CloseReason.SL_HIT, close_time=1.0)
    ledger.record_close(trade.id, closed)
    assert ledger.balance.quote == pytest.approx(9_905.0)
    assert ledger.balance.base == pytest.approx(0.0)


def test_concurrency_cap(ledger, make_trade):
    for i in range(3):
        ledger.record_open(make_trade(trade_id=f"T-{i}"))
    assert not ledger.can_open()
    with pytest.raises(ValueError, match="max 3"):
        ledger.record_open(make_trade(trade_id="T-3"))
    first = ledger.get("T-0")
    ledger.record_close("T-0", first.closed(100.0, 0.0, CloseReason.SL_HIT, 1.0))
    assert ledger.can_open()


def test_duplicate_id_rejected(ledger, make_trade):
    ledger.record_open(make_trade())
    with pytest.raises(ValueError, match="duplicate"):
        ledger.record_open(make_trade())


def test_double_close_rejected(ledger, make_trade):
    trade = make_trade()
    ledger.record_open(trade)
    closed = trade.closed(110.0, 200.0, CloseReason.TP_HIT, 1.0)
    ledger.record_close(trade.id, closed)
    with pytest.raises(ValueError):
        ledger.record_close(trade.id, closed)
    with pytest.raises(KeyError):
        ledger.record_close("missing", closed)


def test_price_closures_only_touch_live_trades(ledger, make_trade):
    live = make_trade(trade_id="LIVE-1", simulated=False, qty=2.0)
    demo = make_trade(trade_id="DEMO-1")
    ledger.record_open(live)
    ledger.record_open(demo)

    assert ledger.check_price_closures(105.0) == []
    closed = ledger.check_price_closures(111.0, now=5.0)
    assert [t.id for t in closed] == ["LIVE-1"]
    assert closed[0].close_reason == CloseReason.TP_HIT
    assert closed[0].pnl == pytest.approx(22.0)
    assert ledger.get("DEMO-1").is_open


def test_price_closure_sell_stop(ledger, make_trade):
    ledger.record_open(make_trade(kind=SignalType.SELL, entry=100.0, stop=105.0, take=90.0,
                                  qty=2.0, simulated=False))
    closed = ledger.check_price_closures(106.0)
    assert closed[0].close_reason == CloseReason.SL_HIT
    assert closed[0].pnl == pytest.approx(-12.0)


def test_reset(ledger, make_trade):
    ledger.record_open(make_trade())
    ledger.reset(Balance(10_000.0, 0.0))
    assert ledger.trades == []
    assert ledger.get("T-1") is None
    assert ledger.balance.quote == 10_000.0


def test_load_keeps_balance(ledger, make_trade):
    ledger.load([make_trade(trade_id="A"), make_trade(trade_id="B")])
    assert len(ledger) == 2
    assert ledger.get("B").id == "B"
    assert ledger.balance.quote == 10_000.0
