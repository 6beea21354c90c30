"""Edge detection, stake sizing and market diagnostics."""

from __future__ import annotations

import collections
import dataclasses
import enum
import logging
import math
from typing import Dict, List, Mapping, Sequence, Tuple

from .configuration import AnalyzerSettings
from .models import OutcomeProbabilities
from .utils import InvalidInputError, implied_probability, is_usable_price

__all__ = [
    "ArbitrageCheck",
    "ArbitrageOpportunity",
    "BetRecommendation",
    "BettingAnalysis",
    "MarketFamily",
    "MarketPrices",
    "RiskLevel",
    "StakeSizing",
    "StrategyAdvice",
    "ValueRating",
    "analyze",
    "detect_arbitrage",
    "edge",
    "flat_stake_fraction",
    "market_margin",
    "stake_fraction",
    "value_candidates",
]

logger = logging.getLogger(__name__)


class MarketFamily(str, enum.Enum):
    MATCH_RESULT = "match_result"
    OVER_UNDER = "over_under"
    DOUBLE_CHANCE = "double_chance"


class ValueRating(str, enum.Enum):
    EXCELLENT = "excellent"
    GOOD = "good"
    FAIR = "fair"
    POOR = "poor"
    NEGATIVE = "negative"


class RiskLevel(str, enum.Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    VERY_HIGH = "very_high"


# Outcomes per family, in the order prices are checked and reported.
FAMILY_OUTCOMES: Mapping[MarketFamily, Tuple[str, ...]] = {
    MarketFamily.MATCH_RESULT: ("home", "draw", "away"),
    MarketFamily.OVER_UNDER: ("over", "under"),
    MarketFamily.DOUBLE_CHANCE: ("home_or_draw", "home_or_away", "draw_or_away"),
}

# Families whose outcomes are mutually exclusive and exhaustive.
_ARBITRAGE_FAMILIES = (MarketFamily.MATCH_RESULT, MarketFamily.OVER_UNDER)


@dataclasses.dataclass(frozen=True, slots=True)
class MarketPrices:
    """Decimal prices for every supported outcome; absent prices are ``None``."""

    home: float | None = None
    draw: float | None = None
    away: float | None = None
    over: float | None = None
    under: float | None = None
    home_or_draw: float | None = None
    home_or_away: float | None = None
    draw_or_away: float | None = None

    def family_quotes(self, family: MarketFamily) -> Tuple[Tuple[str, float], ...] | None:
        """Return ``(outcome, price)`` pairs, or ``None`` for an incomplete family.

        Prices that are present but not strictly positive break the input
        contract and raise :class:`InvalidInputError`.
        """

        quotes: List[Tuple[str, float]] = []
        for outcome in FAMILY_OUTCOMES[family]:
            value = getattr(self, outcome)
            if not is_usable_price(value):
                return None
            price = float(value)  # type: ignore[arg-type]
            if price <= 0.0:
                raise InvalidInputError(
                    f"Decimal prices must be positive, got {value!r}", field=outcome
                )
            quotes.append((outcome, price))
        return tuple(quotes)

    def as_dict(self) -> Dict[str, float | None]:
        return dataclasses.asdict(self)


@dataclasses.dataclass(frozen=True, slots=True)
class ArbitrageCheck:
    is_arbitrage: bool
    profit_pct: float
    stake_split: Tuple[float, ...]


@dataclasses.dataclass(frozen=True, slots=True)
class ArbitrageOpportunity:
    market: MarketFamily
    outcomes: Tuple[str, ...]
    prices: Tuple[float, ...]
    stake_split: Tuple[float, ...]
    profit_pct: float


@dataclasses.dataclass(frozen=True, slots=True)
class StakeSizing:
    full_growth: float
    fractional_growth: float
    fixed_percentage: float
    fixed_amount: float


@dataclasses.dataclass(frozen=True, slots=True)
class BetRecommendation:
    market: MarketFamily
    outcome: str
    description: str
    price: float
    implied_probability: float
    model_probability: float
    edge_pct: float
    value_rating: ValueRating
    risk_level: RiskLevel
    confidence: float
    variance: float
    stakes: StakeSizing
    potential_profit: float
    is_value: bool
    is_strong_value: bool


@dataclasses.dataclass(frozen=True, slots=True)
class StrategyAdvice:
    strategy: str
    recommended: bool
    reasoning: str
    expected_return: float
    risk_level: RiskLevel
    bankroll_requirement: float


@dataclasses.dataclass(frozen=True, slots=True)
class BettingAnalysis:
    estimate: OutcomeProbabilities
    prices: MarketPrices
    bankroll: float
    recommendations: Tuple[BetRecommendation, ...]
    top_recommendations: Tuple[BetRecommendation, ...]
    overall_edge_pct: float
    total_opportunities: int
    best_market: MarketFamily | None
    margins: Mapping[MarketFamily, float]
    outcome_margins: Mapping[str, float]
    market_efficiency: float
    arbitrage: Tuple[ArbitrageOpportunity, ...]
    strategy_advice: Tuple[StrategyAdvice, ...]
    warnings: Tuple[str, ...]


# ---------------------------------------------------------------------------
# Pure pricing functions
# ---------------------------------------------------------------------------


def edge(probability: float, price: float) -> float:
    """Expected value of a unit stake, as a percentage."""

    return (probability * price - 1.0) * 100.0


def stake_fraction(
    probability: float,
    price: float,
    fractional: bool = False,
    fraction: float = 0.25,
    ceiling: float = 1.0,
) -> float:
    """Capital-growth optimal share of the bankroll to stake.

    ``((price - 1) * p - (1 - p)) / (price - 1)`` clamped to ``[0, 1]``, damped
    by ``fraction`` when ``fractional`` is set and finally capped at
    ``ceiling``.  Prices at or below 1, probabilities outside ``(0, 1]`` and
    non-positive edges all size to exactly zero.
    """

    if not (math.isfinite(probability) and math.isfinite(price)):
        return 0.0
    if price <= 1.0 or probability <= 0.0 or probability > 1.0:
        return 0.0
    if edge(probability, price) <= 0.0:
        return 0.0
    net_odds = price - 1.0
    full = (net_odds * probability - (1.0 - probability)) / net_odds
    full = max(0.0, min(1.0, full))
    if fractional:
        full *= max(0.0, fraction)
    return max(0.0, min(full, max(0.0, ceiling)))


def flat_stake_fraction(edge_pct: float) -> float:
    """Tiered flat stake: 2% above a 5% edge, 1% above 2%, 0.5% above 0."""

    if edge_pct > 5.0:
        return 0.02
    if edge_pct > 2.0:
        return 0.01
    if edge_pct > 0.0:
        return 0.005
    return 0.0


def _reciprocal_sum(prices: Sequence[float]) -> float:
    if not prices:
        raise InvalidInputError("At least one price is required", field="prices")
    return sum(implied_probability(price) for price in prices)


def market_margin(prices: Sequence[float]) -> float:
    """Bookmaker overround for a mutually exclusive set of prices, in percent."""

    return (_reciprocal_sum(prices) - 1.0) * 100.0


def detect_arbitrage(prices: Sequence[float]) -> ArbitrageCheck:
    """Detect a guaranteed-profit split across a complete set of outcomes."""

    total = _reciprocal_sum(prices)
    if total >= 1.0:
        return ArbitrageCheck(
            is_arbitrage=False,
            profit_pct=0.0,
            stake_split=tuple(0.0 for _ in prices),
        )
    return ArbitrageCheck(
        is_arbitrage=True,
        profit_pct=(1.0 / total - 1.0) * 100.0,
        stake_split=tuple((1.0 / price) / total for price in prices),
    )


# ---------------------------------------------------------------------------
# Grading
# ---------------------------------------------------------------------------


def _value_rating(edge_pct: float) -> ValueRating:
    if edge_pct >= 10.0:
        return ValueRating.EXCELLENT
    if edge_pct >= 5.0:
        return ValueRating.GOOD
    if edge_pct >= 2.0:
        return ValueRating.FAIR
    if edge_pct >= 0.0:
        return ValueRating.POOR
    return ValueRating.NEGATIVE


def _risk_level(edge_pct: float, price: float, confidence: float) -> RiskLevel:
    if edge_pct < 0.0:
        return RiskLevel.VERY_HIGH
    if confidence < 0.6 or price > 5.0:
        return RiskLevel.HIGH
    if confidence < 0.75 or price > 3.0:
        return RiskLevel.MEDIUM
    return RiskLevel.LOW


def _outcome_probabilities(estimate: OutcomeProbabilities) -> Dict[str, float]:
    return {
        "home": estimate.home_win,
        "draw": estimate.draw,
        "away": estimate.away_win,
        "over": estimate.over_probability,
        "under": estimate.under_probability,
        "home_or_draw": min(1.0, estimate.home_win + estimate.draw),
        "home_or_away": min(1.0, estimate.home_win + estimate.away_win),
        "draw_or_away": min(1.0, estimate.draw + estimate.away_win),
    }


def _describe(outcome: str, threshold: float) -> str:
    if outcome == "home":
        return "Home win"
    if outcome == "draw":
        return "Draw"
    if outcome == "away":
        return "Away win"
    if outcome == "over":
        return f"Over {threshold:g} goals"
    if outcome == "under":
        return f"Under {threshold:g} goals"
    first, _, second = outcome.partition("_or_")
    return f"{first.capitalize()} or {second}"


def _recommend(
    market: MarketFamily,
    outcome: str,
    price: float,
    probability: float,
    estimate: OutcomeProbabilities,
    bankroll: float,
    settings: AnalyzerSettings,
) -> BetRecommendation:
    edge_pct = edge(probability, price)
    ceiling = settings.max_stake_fraction
    full = stake_fraction(probability, price, ceiling=ceiling)
    damped = stake_fraction(
        probability, price, fractional=True, fraction=settings.growth_fraction, ceiling=ceiling
    )
    fixed = min(flat_stake_fraction(edge_pct), ceiling)
    return BetRecommendation(
        market=market,
        outcome=outcome,
        description=_describe(outcome, estimate.over_threshold),
        price=price,
        implied_probability=1.0 / price,
        model_probability=probability,
        edge_pct=edge_pct,
        value_rating=_value_rating(edge_pct),
        risk_level=_risk_level(edge_pct, price, estimate.confidence),
        confidence=estimate.confidence,
        variance=probability * (1.0 - probability) * price**2,
        stakes=StakeSizing(
            full_growth=full,
            fractional_growth=damped,
            fixed_percentage=fixed,
            fixed_amount=bankroll * fixed,
        ),
        potential_profit=bankroll * damped * (price - 1.0),
        is_value=edge_pct > 0.0,
        is_strong_value=edge_pct > settings.strong_edge_pct,
    )


def _check_inputs(
    estimate: OutcomeProbabilities, bankroll: float, settings: AnalyzerSettings
) -> None:
    if not math.isfinite(bankroll) or bankroll < 0.0:
        raise InvalidInputError(
            f"Bankroll must be a non-negative finite amount, got {bankroll!r}",
            field="bankroll",
        )
    estimate.validate(settings.contract_tolerance)


def _recommendations(
    estimate: OutcomeProbabilities,
    prices: MarketPrices,
    bankroll: float,
    settings: AnalyzerSettings,
) -> Tuple[List[BetRecommendation], Dict[MarketFamily, Tuple[Tuple[str, float], ...]]]:
    probabilities = _outcome_probabilities(estimate)
    quotes_by_family: Dict[MarketFamily, Tuple[Tuple[str, float], ...]] = {}
    recommendations: List[BetRecommendation] = []
    for family in MarketFamily:
        quotes = prices.family_quotes(family)
        if quotes is None:
            logger.debug("Skipping %s market with incomplete prices", family.value)
            continue
        quotes_by_family[family] = quotes
        for outcome, price in quotes:
            recommendations.append(
                _recommend(
                    family, outcome, price, probabilities[outcome], estimate, bankroll, settings
                )
            )
    # Stable sort keeps family order among equal edges.
    recommendations.sort(key=lambda item: item.edge_pct, reverse=True)
    return recommendations, quotes_by_family


def value_candidates(
    estimate: OutcomeProbabilities,
    prices: MarketPrices,
    *,
    min_edge_pct: float = 0.0,
    settings: AnalyzerSettings | None = None,
    bankroll: float = 1.0,
) -> List[BetRecommendation]:
    """Positive-edge recommendations meeting ``min_edge_pct``, best edge first."""

    settings = settings or AnalyzerSettings()
    _check_inputs(estimate, bankroll, settings)
    recommendations, _ = _recommendations(estimate, prices, bankroll, settings)
    return [
        item
        for item in recommendations
        if item.edge_pct > 0.0 and item.edge_pct >= min_edge_pct
    ]


# ---------------------------------------------------------------------------
# Full analysis
# ---------------------------------------------------------------------------


def _strategy_advice(
    recommendations: Sequence[BetRecommendation], bankroll: float
) -> Tuple[StrategyAdvice, ...]:
    value_bets = [item for item in recommendations if item.is_value]
    average_edge = (
        sum(item.edge_pct for item in value_bets) / len(value_bets) if value_bets else 0.0
    )
    if average_edge > 10.0:
        value_risk = RiskLevel.LOW
    elif average_edge > 5.0:
        value_risk = RiskLevel.MEDIUM
    else:
        value_risk = RiskLevel.HIGH
    if value_bets:
        value_reasoning = (
            f"Found {len(value_bets)} value bet(s) with an average edge of {average_edge:.2f}%"
        )
    else:
        value_reasoning = "No positive edge opportunities found"

    largest = max((item.stakes.full_growth for item in recommendations), default=0.0)
    if largest > 0.2:
        growth_reasoning = (
            "Full growth stake is very large; this suggests overconfidence. "
            "Use a fractional stake."
        )
    elif largest > 0.01:
        growth_reasoning = f"Growth-optimal stake is {largest * 100:.2f}% of the bankroll"
    else:
        growth_reasoning = "Growth-optimal stake is negligible; the edge is minimal"
    if largest > 0.15:
        growth_risk = RiskLevel.HIGH
    elif largest > 0.05:
        growth_risk = RiskLevel.MEDIUM
    else:
        growth_risk = RiskLevel.LOW

    return (
        StrategyAdvice(
            strategy="value_betting",
            recommended=bool(value_bets),
            reasoning=value_reasoning,
            expected_return=average_edge,
            risk_level=value_risk,
            bankroll_requirement=bankroll * 20.0,
        ),
        StrategyAdvice(
            strategy="capital_growth",
            recommended=0.01 < largest < 0.2,
            reasoning=growth_reasoning,
            expected_return=average_edge,
            risk_level=growth_risk,
            bankroll_requirement=bankroll * 30.0,
        ),
        StrategyAdvice(
            strategy="fixed_stake",
            recommended=True,
            reasoning="Conservative approach: stake 1-2% of the bankroll per bet.",
            expected_return=average_edge * 0.8,
            risk_level=RiskLevel.LOW,
            bankroll_requirement=bankroll * 10.0,
        ),
    )


def _best_market(recommendations: Sequence[BetRecommendation]) -> MarketFamily | None:
    totals: Dict[MarketFamily, float] = collections.defaultdict(float)
    for item in recommendations:
        if item.is_value:
            totals[item.market] += item.edge_pct
    if not totals:
        return None
    return max(totals.items(), key=lambda pair: pair[1])[0]


def analyze(
    estimate: OutcomeProbabilities,
    prices: MarketPrices,
    bankroll: float = 1_000.0,
    *,
    settings: AnalyzerSettings | None = None,
) -> BettingAnalysis:
    """Grade every priced outcome and summarise the market.

    Families with a missing or non-finite price are left out.  Negative
    bankrolls, non-positive prices and incoherent estimates raise
    :class:`InvalidInputError`.
    """

    settings = settings or AnalyzerSettings()
    _check_inputs(estimate, bankroll, settings)
    recommendations, quotes_by_family = _recommendations(estimate, prices, bankroll, settings)

    top = tuple(item for item in recommendations if item.is_value)[: settings.top_n]
    overall = (
        sum(item.edge_pct for item in recommendations) / len(recommendations)
        if recommendations
        else 0.0
    )
    margins = {
        family: market_margin([price for _, price in quotes])
        for family, quotes in quotes_by_family.items()
    }
    probabilities = _outcome_probabilities(estimate)
    outcome_margins: Dict[str, float] = {}
    match_quotes = quotes_by_family.get(MarketFamily.MATCH_RESULT)
    if match_quotes:
        for outcome, price in match_quotes:
            outcome_margins[outcome] = (1.0 / price - probabilities[outcome]) * 100.0

    arbitrage: List[ArbitrageOpportunity] = []
    for family in _ARBITRAGE_FAMILIES:
        quotes = quotes_by_family.get(family)
        if not quotes:
            continue
        family_prices = tuple(price for _, price in quotes)
        check = detect_arbitrage(family_prices)
        if check.is_arbitrage:
            logger.info(
                "Arbitrage on %s market: %.2f%% guaranteed", family.value, check.profit_pct
            )
            arbitrage.append(
                ArbitrageOpportunity(
                    market=family,
                    outcomes=tuple(outcome for outcome, _ in quotes),
                    prices=family_prices,
                    stake_split=check.stake_split,
                    profit_pct=check.profit_pct,
                )
            )

    warnings: List[str] = []
    for family, margin in margins.items():
        if margin > settings.high_margin_pct:
            warnings.append(
                f"High bookmaker margin on {family.value} market ({margin:.1f}%)"
            )
    if estimate.confidence < settings.low_confidence:
        warnings.append("Low model confidence; probabilities may be unreliable")
    if bankroll < settings.small_bankroll:
        warnings.append("Small bankroll; variance can be problematic")
    # Only negative edges grade VERY_HIGH and ``top`` holds value bets, so this
    # stays silent unless the risk grading changes.
    if any(item.risk_level is RiskLevel.VERY_HIGH for item in top):
        warnings.append("Some recommendations carry very high risk")

    return BettingAnalysis(
        estimate=estimate,
        prices=prices,
        bankroll=bankroll,
        recommendations=tuple(recommendations),
        top_recommendations=top,
        overall_edge_pct=overall,
        total_opportunities=sum(1 for item in recommendations if item.is_value),
        best_market=_best_market(recommendations),
        margins=margins,
        outcome_margins=outcome_margins,
        market_efficiency=max(0.0, min(1.0, 1.0 - abs(overall) / 100.0)),
        arbitrage=tuple(arbitrage),
        strategy_advice=_strategy_advice(recommendations, bankroll),
        warnings=tuple(warnings),
    )
