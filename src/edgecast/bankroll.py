"""Bankroll ledger and its pure settlement transitions.

A ledger is an immutable snapshot; every transition returns a new one.  The
backtest runner threads a single ledger through a replay, and every replay
opens its own.
"""

from __future__ import annotations

import dataclasses
import enum
import math
import random
from typing import Protocol, Tuple

from .utils import InvalidInputError, require_finite

__all__ = [
    "BankrollLedger",
    "LedgerStateError",
    "LedgerStatus",
    "StopReason",
    "StreakType",
    "Wager",
    "close",
    "open_ledger",
    "settle",
    "should_stop",
    "simulate_wager",
    "stop",
]

# Stakes may exceed the balance by rounding noise only.
_STAKE_TOLERANCE = 1e-9


class LedgerStatus(str, enum.Enum):
    ACTIVE = "active"
    STOPPED = "stopped"
    TERMINAL = "terminal"


class StreakType(str, enum.Enum):
    NONE = "none"
    WIN = "win"
    LOSS = "loss"


class StopReason(str, enum.Enum):
    STOP_LOSS = "stop_loss"
    TAKE_PROFIT = "take_profit"
    EXHAUSTED = "exhausted"


class LedgerStateError(RuntimeError):
    """Raised when a transition is applied to a ledger that is not active."""


class SupportsWager(Protocol):
    stake: float
    price: float


@dataclasses.dataclass(frozen=True, slots=True)
class Wager:
    stake: float
    price: float
    label: str = ""


@dataclasses.dataclass(frozen=True, slots=True)
class BankrollLedger:
    balance: float
    starting_balance: float
    peak: float
    trough: float
    total_bets: int = 0
    won_bets: int = 0
    lost_bets: int = 0
    total_staked: float = 0.0
    total_returned: float = 0.0
    streak_length: int = 0
    streak_type: StreakType = StreakType.NONE
    longest_win_streak: int = 0
    longest_loss_streak: int = 0
    max_drawdown: float = 0.0
    price_sum: float = 0.0
    status: LedgerStatus = LedgerStatus.ACTIVE
    stop_reason: StopReason | None = None

    @property
    def net_profit(self) -> float:
        return self.balance - self.starting_balance

    @property
    def roi(self) -> float:
        """Net profit per unit staked, in percent."""

        if self.total_staked <= 0.0:
            return 0.0
        return self.net_profit / self.total_staked * 100.0

    @property
    def win_rate(self) -> float:
        if not self.total_bets:
            return 0.0
        return self.won_bets / self.total_bets * 100.0

    @property
    def average_price(self) -> float:
        if not self.total_bets:
            return 0.0
        return self.price_sum / self.total_bets

    @property
    def max_drawdown_pct(self) -> float:
        return self.max_drawdown * 100.0

    @property
    def growth_pct(self) -> float:
        """Current balance relative to the starting balance, in percent."""

        if self.starting_balance <= 0.0:
            return 100.0
        return self.balance / self.starting_balance * 100.0

    @property
    def is_active(self) -> bool:
        return self.status is LedgerStatus.ACTIVE


def open_ledger(starting_balance: float) -> BankrollLedger:
    balance = require_finite(starting_balance, "starting_balance")
    if balance < 0.0:
        raise InvalidInputError(
            f"Starting balance cannot be negative, got {starting_balance!r}",
            field="starting_balance",
        )
    return BankrollLedger(balance=balance, starting_balance=balance, peak=balance, trough=balance)


def _require_active(ledger: BankrollLedger) -> None:
    if ledger.status is not LedgerStatus.ACTIVE:
        raise LedgerStateError(f"Ledger is {ledger.status.value}; no further bets can be settled")


def settle(ledger: BankrollLedger, bet: SupportsWager, won: bool) -> BankrollLedger:
    """Return the ledger that results from settling ``bet``."""

    _require_active(ledger)
    stake = require_finite(bet.stake, "stake")
    price = require_finite(bet.price, "price")
    if stake < 0.0:
        raise InvalidInputError(f"Stake cannot be negative, got {stake!r}", field="stake")
    if stake > ledger.balance + _STAKE_TOLERANCE:
        raise InvalidInputError(
            f"Stake {stake:.2f} exceeds the available balance {ledger.balance:.2f}",
            field="stake",
        )
    if price <= 0.0:
        raise InvalidInputError(f"Decimal prices must be positive, got {price!r}", field="price")
    stake = min(stake, ledger.balance)

    payout = stake * price if won else 0.0
    balance = ledger.balance - stake + payout
    outcome = StreakType.WIN if won else StreakType.LOSS
    if ledger.streak_type is outcome:
        streak_length = ledger.streak_length + 1
    else:
        streak_length = 1
    peak = max(ledger.peak, balance)
    trough = min(ledger.trough, balance)
    drawdown = (peak - balance) / peak if peak > 0.0 else 0.0

    return dataclasses.replace(
        ledger,
        balance=balance,
        peak=peak,
        trough=trough,
        total_bets=ledger.total_bets + 1,
        won_bets=ledger.won_bets + (1 if won else 0),
        lost_bets=ledger.lost_bets + (0 if won else 1),
        total_staked=ledger.total_staked + stake,
        total_returned=ledger.total_returned + payout,
        streak_length=streak_length,
        streak_type=outcome,
        longest_win_streak=(
            max(ledger.longest_win_streak, streak_length) if won else ledger.longest_win_streak
        ),
        longest_loss_streak=(
            ledger.longest_loss_streak if won else max(ledger.longest_loss_streak, streak_length)
        ),
        max_drawdown=max(ledger.max_drawdown, drawdown),
        price_sum=ledger.price_sum + price,
    )


def should_stop(
    ledger: BankrollLedger,
    stop_loss_pct: float | object | None = None,
    take_profit_pct: float | None = None,
) -> StopReason | None:
    """Return the threshold the ledger has crossed, if any.

    Either pass the two percentages or any object exposing
    ``stop_loss_pct`` and ``take_profit_pct`` attributes, such as
    :class:`edgecast.configuration.BacktestConfig`.
    """

    if stop_loss_pct is not None and not isinstance(stop_loss_pct, (int, float)):
        config = stop_loss_pct
        stop_loss_pct = getattr(config, "stop_loss_pct", None)
        take_profit_pct = getattr(config, "take_profit_pct", None)
    growth = ledger.growth_pct
    if stop_loss_pct is not None and growth <= float(stop_loss_pct):  # type: ignore[arg-type]
        return StopReason.STOP_LOSS
    if take_profit_pct is not None and growth >= float(take_profit_pct):
        return StopReason.TAKE_PROFIT
    return None


def stop(ledger: BankrollLedger, reason: StopReason) -> BankrollLedger:
    _require_active(ledger)
    return dataclasses.replace(ledger, status=LedgerStatus.STOPPED, stop_reason=reason)


def close(ledger: BankrollLedger) -> BankrollLedger:
    """Move a ledger to its terminal state; an active ledger is stopped as exhausted."""

    if ledger.status is LedgerStatus.TERMINAL:
        raise LedgerStateError("Ledger is already terminal")
    reason = ledger.stop_reason if ledger.stop_reason is not None else StopReason.EXHAUSTED
    return dataclasses.replace(ledger, status=LedgerStatus.TERMINAL, stop_reason=reason)


def simulate_wager(
    ledger: BankrollLedger,
    bet: SupportsWager,
    probability: float,
    rng: random.Random,
) -> Tuple[BankrollLedger, bool]:
    """Draw the bet's outcome from ``rng`` with win chance ``probability`` and settle it."""

    chance = require_finite(probability, "probability")
    if not 0.0 <= chance <= 1.0:
        raise InvalidInputError("probability must be within [0, 1]", field="probability")
    won = rng.random() < chance
    return settle(ledger, bet, won), won
