from dataclasses import replace

import numpy as np
import pytest

from airo.config import SIMULATOR_PROFILES, BotConfig
from airo.constants import CloseReason, SignalType
from airo.core.signal import generate_demo_signal
from airo.trading.money_manager import MoneyManager
from airo.trading.simulator import MarketContext, SimulatorState, TradeSimulator
from airo.trading.trade import TradeOutcome
from airo.utils.candle import Candle


@pytest.fixture
def money_mgr():
    return MoneyManager(BotConfig())


@pytest.fixture
def simulator(rng):
    return TradeSimulator(SIMULATOR_PROFILES["standard"], rng=rng)


def test_win_probability_bonuses(simulator, make_signal):
    weak = make_signal(score=4)
    strong = make_signal(score=6)
    assert simulator.win_probability(weak) == pytest.approx(0.105)
    assert simulator.win_probability(strong) == pytest.approx(0.155)
    ctx = MarketContext(trending=True, high_volume=True)
    assert simulator.win_probability(strong, ctx) == pytest.approx(0.185)


def test_anti_streak_override(simulator, make_signal):
    simulator.state.consecutive_losses = 12
    assert simulator.win_probability(make_signal(score=4)) == pytest.approx(0.80)


def test_anti_streak_wins_most_trials(simulator, make_signal):
    simulator.state.consecutive_losses = 12
    sig = make_signal(score=4)
    wins = sum(simulator.decide_outcome(simulator.win_probability(sig)).is_win
               for _ in range(1000))
    assert wins >= 700


def test_base_win_rate_converges(simulator, make_signal):
    sig = make_signal(score=4)
    outcomes = [simulator.decide_outcome(simulator.win_probability(sig)) for _ in range(4000)]
    rate = sum(o.is_win for o in outcomes) / len(outcomes)
    assert 0.08 < rate < 0.13
    for o in outcomes:
        if o.is_win:
            assert 1.5 <= o.multiplier <= 3.0
        else:
            assert -1.0 <= o.multiplier <= -0.8


def test_open_buy_levels(simulator, money_mgr, make_signal):
    trade = simulator.simulate_open(make_signal(SignalType.BUY), 30_000.0, money_mgr, now=1_700_000_000.0)
    assert trade.id.startswith("DEMO-1700000000000-")
    assert trade.stop_loss < trade.entry_price < trade.take_profit
    assert abs(trade.entry_price - 30_000.0) <= 30_000.0 * 0.0005 + 0.01
    sl_dist = trade.entry_price - trade.stop_loss
    assert 0.01 * 30_000 * 0.99 <= sl_dist <= 0.03 * 30_000 * 1.01
    assert trade.take_profit - trade.entry_price == pytest.approx(2.5 * sl_dist, abs=0.02)
    assert trade.quantity == pytest.approx(100.0 / sl_dist, rel=1e-4)
    assert trade.risk_amount == pytest.approx(100.0)
    assert trade.outcome is not None
    assert simulator.state.trade_count == 1


def test_open_sell_levels(simulator, money_mgr, make_signal):
    trade = simulator.simulate_open(make_signal(SignalType.SELL), 30_000.0, money_mgr)
    assert trade.take_profit < trade.entry_price < trade.stop_loss
    assert trade.quantity == pytest.approx(100.0 / (trade.stop_loss - trade.entry_price), rel=1e-4)


def test_open_and_close_sub_dollar_symbol(simulator, money_mgr, make_signal):
    sig = make_signal(SignalType.BUY, price=0.05, symbol="DOGEUSDT")
    trade = simulator.simulate_open(sig, 0.05, money_mgr)
    assert trade.stop_loss < trade.entry_price < trade.take_profit
    assert trade.quantity == pytest.approx(100.0 / (trade.entry_price - trade.stop_loss), rel=1e-4)

    closed = simulator.simulate_close(replace(trade, outcome=TradeOutcome(is_win=True, multiplier=2.0)))
    assert closed.exit_price > trade.entry_price
    assert closed.pnl == pytest.approx(200.0, abs=0.05)


@pytest.mark.parametrize("kind", [SignalType.BUY, SignalType.SELL])
def test_close_realises_predetermined_win(simulator, money_mgr, make_signal, kind):
    trade = simulator.simulate_open(make_signal(kind), 30_000.0, money_mgr)
    trade = replace(trade, outcome=TradeOutcome(is_win=True, multiplier=2.0))
    closed = simulator.simulate_close(trade, current_price=1.0)
    risk = abs(trade.entry_price - trade.stop_loss) * trade.quantity
    assert closed.pnl == pytest.approx(round(risk * 2.0, 2))
    assert closed.pnl > 0
    assert closed.close_reason == CloseReason.TP_HIT
    tp_dist = abs(trade.take_profit - trade.entry_price)
    assert abs(closed.exit_price - trade.take_profit) <= tp_dist * 0.05 + 0.01
    assert not closed.is_open
    assert simulator.state.win_count == 1
    assert simulator.state.consecutive_losses == 0


def test_close_realises_predetermined_loss(simulator, money_mgr, make_signal):
    trade = simulator.simulate_open(make_signal(), 30_000.0, money_mgr)
    trade = replace(trade, outcome=TradeOutcome(is_win=False, multiplier=-0.9))
    closed = simulator.simulate_close(trade)
    assert closed.pnl < 0
    assert closed.pnl == pytest.approx(-90.0, abs=0.05)
    assert closed.close_reason == CloseReason.SL_HIT
    assert simulator.state.loss_count == 1
    assert simulator.state.consecutive_losses == 1


def test_close_ignores_closed_or_unsimulated(simulator, make_trade, win_outcome):
    assert simulator.simulate_close(make_trade()) is None
    closed = simulator.simulate_close(make_trade(outcome=win_outcome))
    assert simulator.simulate_close(closed) is None


def test_close_delay_range(simulator):
    delays = [simulator.close_delay() for _ in range(200)]
    assert all(30.0 <= d <= 150.0 for d in delays)


def test_state_round_trip():
    state = SimulatorState(trade_count=5, win_count=1, loss_count=3, consecutive_losses=2)
    state.record_result("DEMO-1", False, -95.0)
    restored = SimulatorState.from_dict(state.to_dict())
    assert restored.to_dict() == state.to_dict()
    assert restored.win_rate == pytest.approx(0.2)


def test_market_context(make_candles, make_indicators):
    rising = make_candles([100.0 * (1.0005 ** i) for i in range(40)], spread=0.01, volume=20.0)
    ctx = MarketContext.from_market(rising, make_indicators(volume_sma=10.0))
    assert ctx.trending
    assert ctx.high_volume
    flat = MarketContext.from_market(make_candles([100.0] * 40), None)
    assert not flat.trending and not flat.high_volume


def test_seeded_runs_repeat(money_mgr, make_signal):
    a = TradeSimulator(SIMULATOR_PROFILES["standard"], rng=np.random.default_rng(3))
    b = TradeSimulator(SIMULATOR_PROFILES["standard"], rng=np.random.default_rng(3))
    ta = a.simulate_open(make_signal(), 30_000.0, money_mgr, now=1.0)
    tb = b.simulate_open(make_signal(), 30_000.0, money_mgr, now=1.0)
    assert (ta.entry_price, ta.stop_loss, ta.outcome) == (tb.entry_price, tb.stop_loss, tb.outcome)


def test_demo_signal_trades_at_base_rate(simulator):
    last = Candle(open_time=0, open=100.0, high=101.0, low=99.0, close=100.0)
    rng = np.random.default_rng(5)
    for _ in range(20):
        sig = generate_demo_signal(last, "BTCUSDT", "5m", rng, chance=1.0)
        assert simulator.win_probability(sig) == pytest.approx(0.105)
