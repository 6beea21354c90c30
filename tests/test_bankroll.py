from __future__ import annotations

import random
from typing import List, Tuple

import pytest
from hypothesis import given, strategies as st

from edgecast.bankroll import (
    LedgerStateError,
    LedgerStatus,
    StopReason,
    StreakType,
    Wager,
    close,
    open_ledger,
    settle,
    should_stop,
    simulate_wager,
    stop,
)
from edgecast.configuration import BacktestConfig
from edgecast.utils import InvalidInputError


def test_open_ledger() -> None:
    ledger = open_ledger(1_000.0)
    assert ledger.balance == ledger.peak == ledger.trough == 1_000.0
    assert ledger.status is LedgerStatus.ACTIVE
    assert ledger.growth_pct == 100.0
    with pytest.raises(InvalidInputError):
        open_ledger(-5.0)
    with pytest.raises(InvalidInputError):
        open_ledger(float("inf"))


def test_settle_win_and_loss() -> None:
    ledger = open_ledger(100.0)
    won = settle(ledger, Wager(stake=10.0, price=2.5), won=True)
    assert won.balance == pytest.approx(115.0)
    assert won.total_returned == pytest.approx(25.0)
    assert won.streak_type is StreakType.WIN
    assert won.peak == pytest.approx(115.0)
    # The original ledger is untouched.
    assert ledger.balance == 100.0

    lost = settle(won, Wager(stake=23.0, price=2.0), won=False)
    assert lost.balance == pytest.approx(92.0)
    assert lost.streak_type is StreakType.LOSS
    assert lost.streak_length == 1
    assert lost.trough == pytest.approx(92.0)
    assert lost.max_drawdown == pytest.approx(23.0 / 115.0)
    assert lost.total_bets == 2
    assert lost.win_rate == pytest.approx(50.0)
    assert lost.roi == pytest.approx(-8.0 / 33.0 * 100.0)
    assert lost.average_price == pytest.approx(2.25)


def test_streaks_track_longest_runs() -> None:
    ledger = open_ledger(1_000.0)
    for result in (True, True, True, False, False, True):
        ledger = settle(ledger, Wager(stake=10.0, price=2.0), won=result)
    assert ledger.longest_win_streak == 3
    assert ledger.longest_loss_streak == 2
    assert ledger.streak_length == 1
    assert ledger.streak_type is StreakType.WIN


def test_settle_rejects_invalid_bets() -> None:
    ledger = open_ledger(50.0)
    with pytest.raises(InvalidInputError):
        settle(ledger, Wager(stake=-1.0, price=2.0), won=True)
    with pytest.raises(InvalidInputError):
        settle(ledger, Wager(stake=60.0, price=2.0), won=True)
    with pytest.raises(InvalidInputError):
        settle(ledger, Wager(stake=5.0, price=0.0), won=True)


def test_status_transitions_are_one_way() -> None:
    ledger = stop(open_ledger(100.0), StopReason.STOP_LOSS)
    assert ledger.status is LedgerStatus.STOPPED
    with pytest.raises(LedgerStateError):
        settle(ledger, Wager(stake=1.0, price=2.0), won=True)
    with pytest.raises(LedgerStateError):
        stop(ledger, StopReason.TAKE_PROFIT)

    final = close(ledger)
    assert final.status is LedgerStatus.TERMINAL
    assert final.stop_reason is StopReason.STOP_LOSS
    with pytest.raises(LedgerStateError):
        close(final)

    exhausted = close(open_ledger(100.0))
    assert exhausted.stop_reason is StopReason.EXHAUSTED


def test_should_stop_thresholds() -> None:
    ledger = settle(open_ledger(100.0), Wager(stake=40.0, price=2.0), won=False)
    assert should_stop(ledger, stop_loss_pct=60.0) is StopReason.STOP_LOSS
    assert should_stop(ledger, stop_loss_pct=50.0) is None

    grown = settle(open_ledger(100.0), Wager(stake=50.0, price=3.0), won=True)
    assert should_stop(grown, take_profit_pct=200.0) is StopReason.TAKE_PROFIT
    assert should_stop(grown, take_profit_pct=250.0) is None

    config = BacktestConfig(stop_loss_pct=60.0, take_profit_pct=150.0)
    assert should_stop(ledger, config) is StopReason.STOP_LOSS
    assert should_stop(grown, config) is StopReason.TAKE_PROFIT
    assert should_stop(open_ledger(100.0), config) is None


def test_simulate_wager_uses_injected_generator() -> None:
    ledger = open_ledger(100.0)
    first = simulate_wager(ledger, Wager(stake=10.0, price=2.0), 0.5, random.Random(5))
    second = simulate_wager(ledger, Wager(stake=10.0, price=2.0), 0.5, random.Random(5))
    assert first == second
    always = simulate_wager(ledger, Wager(stake=10.0, price=2.0), 1.0, random.Random(1))
    assert always[1] is True
    never = simulate_wager(ledger, Wager(stake=10.0, price=2.0), 0.0, random.Random(1))
    assert never[1] is False
    with pytest.raises(InvalidInputError):
        simulate_wager(ledger, Wager(stake=10.0, price=2.0), 1.5, random.Random(1))


_bets = st.lists(
    st.tuples(
        st.floats(min_value=0.0, max_value=1.0, allow_nan=False),
        st.floats(min_value=1.01, max_value=20.0, allow_nan=False),
        st.booleans(),
    ),
    max_size=40,
)


@given(bets=_bets)
def test_ledger_invariants_hold_for_any_sequence(bets: List[Tuple[float, float, bool]]) -> None:
    ledger = open_ledger(1_000.0)
    previous_peak = ledger.peak
    previous_trough = ledger.trough
    for share, price, won in bets:
        ledger = settle(ledger, Wager(stake=ledger.balance * share, price=price), won)
        assert ledger.peak >= ledger.balance >= ledger.trough
        assert ledger.peak >= previous_peak
        assert ledger.trough <= previous_trough
        assert 0.0 <= ledger.max_drawdown <= 1.0
        previous_peak = ledger.peak
        previous_trough = ledger.trough
    assert ledger.won_bets + ledger.lost_bets == ledger.total_bets == len(bets)
