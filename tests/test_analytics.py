from __future__ import annotations

import math

import pytest

from edgecast.analytics import (
    MarketFamily,
    MarketPrices,
    RiskLevel,
    ValueRating,
    analyze,
    detect_arbitrage,
    edge,
    flat_stake_fraction,
    market_margin,
    stake_fraction,
    value_candidates,
)
from edgecast.configuration import AnalyzerSettings
from edgecast.models import OutcomeProbabilities
from edgecast.utils import InvalidInputError, fair_price, implied_probability, is_usable_price

ESTIMATE = OutcomeProbabilities(
    home_win=0.5, draw=0.25, away_win=0.25, over_probability=0.55, confidence=0.8
)
PRICES = MarketPrices(home=2.2, draw=3.4, away=3.6, over=1.9, under=1.9)


def test_edge_is_total() -> None:
    assert edge(0.5, 2.2) == pytest.approx(10.0)
    assert edge(0.5, 1.0) == pytest.approx(-50.0)
    assert edge(0.5, -3.0) < 0.0


def test_stake_fraction_capital_growth_formula() -> None:
    # ((1.2 * 0.5) - 0.5) / 1.2
    assert stake_fraction(0.5, 2.2) == pytest.approx(0.1 / 1.2)
    assert stake_fraction(0.5, 2.2, fractional=True, fraction=0.25) == pytest.approx(0.025 / 1.2)
    assert stake_fraction(0.5, 2.2, ceiling=0.05) == pytest.approx(0.05)
    assert stake_fraction(0.5, 1.0) == 0.0
    assert stake_fraction(0.4, 2.0) == 0.0
    assert stake_fraction(0.0, 5.0) == 0.0
    assert stake_fraction(1.0, 2.0) == pytest.approx(1.0)
    assert stake_fraction(float("nan"), 2.0) == 0.0


def test_flat_stake_tiers() -> None:
    assert flat_stake_fraction(12.0) == 0.02
    assert flat_stake_fraction(3.0) == 0.01
    assert flat_stake_fraction(0.5) == 0.005
    assert flat_stake_fraction(0.0) == 0.0
    assert flat_stake_fraction(-4.0) == 0.0


def test_market_margin() -> None:
    assert market_margin([2.0, 2.0]) == pytest.approx(0.0)
    assert market_margin([1.9, 1.9]) == pytest.approx((2 / 1.9 - 1) * 100)
    with pytest.raises(InvalidInputError):
        market_margin([])
    with pytest.raises(InvalidInputError):
        market_margin([2.0, 0.0])


def test_detect_arbitrage_reference_cases() -> None:
    arbitrage = detect_arbitrage([3.10, 3.10, 3.20])
    assert arbitrage.is_arbitrage
    assert arbitrage.profit_pct > 0.0
    assert sum(arbitrage.stake_split) == pytest.approx(1.0)

    regular = detect_arbitrage([1.8, 3.3, 2.1])
    assert not regular.is_arbitrage
    assert regular.profit_pct == 0.0
    assert regular.stake_split == (0.0, 0.0, 0.0)

    with pytest.raises(InvalidInputError):
        detect_arbitrage([2.0, -1.5])


def test_price_helpers() -> None:
    assert implied_probability(4.0) == 0.25
    assert fair_price(0.25) == 4.0
    assert is_usable_price(1.5)
    assert not is_usable_price(None)
    assert not is_usable_price(math.nan)
    assert not is_usable_price(True)
    assert not is_usable_price("n/a")
    with pytest.raises(InvalidInputError):
        implied_probability(0.0)
    with pytest.raises(InvalidInputError):
        fair_price(0.0)


def test_analyze_grades_each_populated_market() -> None:
    analysis = analyze(ESTIMATE, PRICES, bankroll=1_000.0)
    markets = {item.market for item in analysis.recommendations}
    assert markets == {MarketFamily.MATCH_RESULT, MarketFamily.OVER_UNDER}
    assert len(analysis.recommendations) == 5
    edges = [item.edge_pct for item in analysis.recommendations]
    assert edges == sorted(edges, reverse=True)

    best = analysis.recommendations[0]
    assert best.outcome == "home"
    assert best.edge_pct == pytest.approx(10.0)
    assert best.value_rating is ValueRating.EXCELLENT
    assert best.is_strong_value
    assert best.risk_level is RiskLevel.LOW
    assert best.stakes.fixed_percentage == 0.02
    assert best.stakes.fixed_amount == pytest.approx(20.0)
    assert best.variance == pytest.approx(0.25 * 2.2**2)

    assert all(item.is_value for item in analysis.top_recommendations)
    assert analysis.total_opportunities == len(analysis.top_recommendations)
    assert analysis.best_market is MarketFamily.MATCH_RESULT
    assert set(analysis.margins) == {MarketFamily.MATCH_RESULT, MarketFamily.OVER_UNDER}
    assert analysis.outcome_margins["home"] == pytest.approx((1 / 2.2 - 0.5) * 100)
    assert 0.0 <= analysis.market_efficiency <= 1.0
    assert analysis.arbitrage == ()
    assert [advice.strategy for advice in analysis.strategy_advice] == [
        "value_betting",
        "capital_growth",
        "fixed_stake",
    ]
    assert analysis.warnings == ()


def test_negative_edges_are_graded_very_high_risk() -> None:
    analysis = analyze(ESTIMATE, PRICES)
    draw = next(item for item in analysis.recommendations if item.outcome == "draw")
    assert draw.edge_pct < 0.0
    assert draw.value_rating is ValueRating.NEGATIVE
    assert draw.risk_level is RiskLevel.VERY_HIGH
    assert draw.stakes.full_growth == 0.0
    assert draw.stakes.fixed_percentage == 0.0
    # Negative edges never reach the highlighted set, so no risk warning.
    assert draw not in analysis.top_recommendations
    assert not any("very high risk" in message for message in analysis.warnings)


def test_double_chance_covers_all_three_pairings() -> None:
    prices = MarketPrices(home_or_draw=1.4, home_or_away=1.3, draw_or_away=2.1)
    analysis = analyze(ESTIMATE, prices)
    outcomes = {item.outcome: item for item in analysis.recommendations}
    assert set(outcomes) == {"home_or_draw", "home_or_away", "draw_or_away"}
    assert outcomes["home_or_draw"].model_probability == pytest.approx(0.75)
    assert outcomes["home_or_draw"].description == "Home or draw"


def test_incomplete_or_non_finite_families_are_omitted() -> None:
    prices = MarketPrices(home=2.2, draw=None, away=3.6, over=1.9, under=math.nan)
    analysis = analyze(ESTIMATE, prices)
    assert analysis.recommendations == ()
    assert analysis.margins == {}
    assert analysis.overall_edge_pct == 0.0
    assert analysis.best_market is None


def test_contract_violations_raise() -> None:
    with pytest.raises(InvalidInputError) as excinfo:
        analyze(ESTIMATE, MarketPrices(home=-2.0, draw=3.4, away=3.6))
    assert excinfo.value.field == "home"

    broken = OutcomeProbabilities(0.6, 0.3, 0.3, over_probability=0.5, confidence=0.8)
    with pytest.raises(InvalidInputError):
        analyze(broken, PRICES)
    with pytest.raises(InvalidInputError):
        analyze(ESTIMATE, PRICES, bankroll=-1.0)


def test_rounded_external_estimates_are_accepted() -> None:
    rounded = OutcomeProbabilities(0.334, 0.333, 0.3335, over_probability=0.5, confidence=0.7)
    analysis = analyze(rounded, PRICES)
    assert analysis.recommendations


def test_prices_at_or_below_one_are_zero_edge_stakes() -> None:
    prices = MarketPrices(home=1.0, draw=0.9, away=1.05)
    analysis = analyze(ESTIMATE, prices)
    for item in analysis.recommendations:
        assert item.stakes.full_growth == 0.0
        assert item.stakes.fractional_growth == 0.0


def test_warnings() -> None:
    expensive = MarketPrices(home=1.5, draw=3.0, away=3.0)
    shaky = OutcomeProbabilities(0.5, 0.25, 0.25, over_probability=0.5, confidence=0.5)
    analysis = analyze(shaky, expensive, bankroll=100.0)
    assert any("margin" in message for message in analysis.warnings)
    assert any("confidence" in message for message in analysis.warnings)
    assert any("bankroll" in message for message in analysis.warnings)


def test_arbitrage_is_reported_on_primary_markets() -> None:
    prices = MarketPrices(home=3.10, draw=3.10, away=3.20, over=2.1, under=2.05)
    analysis = analyze(ESTIMATE, prices)
    families = {item.market for item in analysis.arbitrage}
    assert families == {MarketFamily.MATCH_RESULT, MarketFamily.OVER_UNDER}
    for opportunity in analysis.arbitrage:
        assert opportunity.profit_pct > 0.0
        assert sum(opportunity.stake_split) == pytest.approx(1.0)


def test_stakes_respect_configured_ceiling() -> None:
    settings = AnalyzerSettings(max_stake_fraction=0.01)
    analysis = analyze(ESTIMATE, PRICES, settings=settings)
    for item in analysis.recommendations:
        assert 0.0 <= item.stakes.full_growth <= 0.01
        assert 0.0 <= item.stakes.fractional_growth <= 0.01
        assert 0.0 <= item.stakes.fixed_percentage <= 0.01


def test_value_candidates_filters_by_edge() -> None:
    candidates = value_candidates(ESTIMATE, PRICES, min_edge_pct=5.0)
    assert [item.outcome for item in candidates] == ["home"]
    everything = value_candidates(ESTIMATE, PRICES)
    assert all(item.edge_pct > 0.0 for item in everything)
    assert len(everything) == 2
