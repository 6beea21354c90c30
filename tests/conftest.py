import datetime as dt
import random
from typing import Callable, List

import pytest

from edgecast.analytics import MarketPrices
from edgecast.backtesting import HistoricalMatch
from edgecast.models import (
    OutcomeProbabilities,
    analytic_distribution,
    over_threshold_probability,
    stochastic_sample,
)

KICKOFF = dt.datetime(2024, 8, 10, 15, 0)
FAVOURITE_PRICES = MarketPrices(home=2.2, draw=3.4, away=3.4)


def favourite_estimate(confidence: float = 0.8) -> OutcomeProbabilities:
    """Estimate for a home side scoring at 2.0 against an away side at 1.0."""

    analytic = analytic_distribution(2.0, 1.0)
    return OutcomeProbabilities(
        home_win=analytic.home_win,
        draw=analytic.draw,
        away_win=analytic.away_win,
        over_probability=over_threshold_probability(2.0, 1.0),
        confidence=confidence,
    )


def make_match(
    index: int,
    home_goals: int,
    away_goals: int,
    *,
    estimate: OutcomeProbabilities | None = None,
    prices: MarketPrices = FAVOURITE_PRICES,
) -> HistoricalMatch:
    return HistoricalMatch(
        match_id=f"m{index:03d}",
        kickoff=KICKOFF + dt.timedelta(days=index),
        home_team=f"Home {index}",
        away_team=f"Away {index}",
        home_goals=home_goals,
        away_goals=away_goals,
        estimate=estimate,
        prices=prices,
    )


def biased_history(seed: int, size: int = 100) -> List[HistoricalMatch]:
    """Matches whose scores really are drawn from Poisson(2.0) vs Poisson(1.0)."""

    rng = random.Random(seed)
    estimate = favourite_estimate()
    matches = []
    for index in range(size):
        sample = stochastic_sample(2.0, 1.0, 1, rng=rng)
        ((home_goals, away_goals),) = sample.score_frequency
        matches.append(make_match(index, home_goals, away_goals, estimate=estimate))
    return matches


@pytest.fixture
def history() -> List[HistoricalMatch]:
    return biased_history(seed=7)


@pytest.fixture
def history_factory() -> Callable[..., List[HistoricalMatch]]:
    return biased_history
