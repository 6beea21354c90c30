"""Outcome probability models for two-sided fixtures.

Goal counts for each side are modelled as independent Poisson variables.  The
rates come from :func:`expected_goal_rate` and feed two estimators that must
agree with each other:

``analytic_distribution``
    The closed-form joint score grid, summed into home/draw/away totals.
``stochastic_sample``
    Inverse-transform draws of score pairs from an injected random source.

The sampler is a cross-check on the grid, not a redundant feature: for the
same rate pair the two agree within a few percentage points once enough
trials are drawn.
"""

from __future__ import annotations

import collections
import dataclasses
import logging
import math
import random
from typing import Dict, List, Mapping, Sequence, Tuple

from .ratings import HOME_ADVANTAGE, CompetitorRating
from .utils import InvalidInputError, require_finite

__all__ = [
    "AnalyticDistribution",
    "DEFAULT_MAX_GOALS",
    "DEFAULT_OVER_THRESHOLD",
    "MAX_GOAL_RATE",
    "MIN_GOAL_RATE",
    "MatchPrediction",
    "OutcomeProbabilities",
    "PREDICTION_MAX_GOALS",
    "PROBABILITY_TOLERANCE",
    "StochasticSample",
    "analytic_distribution",
    "blend_estimates",
    "brier_score",
    "expected_goal_rate",
    "over_threshold_probability",
    "poisson_pmf",
    "predict_match",
    "stochastic_sample",
    "under_threshold_probability",
]

logger = logging.getLogger(__name__)

MIN_GOAL_RATE = 0.3
MAX_GOAL_RATE = 4.0
DEFAULT_MAX_GOALS = 10
# Goal cap that keeps the truncated mass below 0.1% up to MAX_GOAL_RATE.
PREDICTION_MAX_GOALS = 13
DEFAULT_OVER_THRESHOLD = 2.5
PROBABILITY_TOLERANCE = 1e-6
# League-average goals conceded per match; opponents above it inflate the rate.
_CONCEDED_BASELINE = 1.5
_ELO_SCALE = 400.0
_ELO_WEIGHT = 0.5
# Upper bound on inverse-transform steps for a single draw.
_SAMPLING_CAP = 1_000


# ---------------------------------------------------------------------------
# Estimate records
# ---------------------------------------------------------------------------


@dataclasses.dataclass(frozen=True, slots=True)
class OutcomeProbabilities:
    """Home/draw/away probabilities plus an over/under figure and confidence."""

    home_win: float
    draw: float
    away_win: float
    over_probability: float
    confidence: float
    over_threshold: float = DEFAULT_OVER_THRESHOLD

    @property
    def under_probability(self) -> float:
        return max(0.0, 1.0 - self.over_probability)

    @property
    def total(self) -> float:
        return self.home_win + self.draw + self.away_win

    @property
    def most_likely(self) -> str:
        ranked = sorted(
            (("home", self.home_win), ("draw", self.draw), ("away", self.away_win)),
            key=lambda item: item[1],
            reverse=True,
        )
        return ranked[0][0]

    def validate(self, tolerance: float = PROBABILITY_TOLERANCE) -> "OutcomeProbabilities":
        """Raise :class:`InvalidInputError` unless the estimate is coherent.

        Each probability must be finite and within ``[0, 1]`` and the three
        outcome probabilities must sum to one within ``tolerance``.  The
        estimate is returned unchanged so the call can be chained.
        """

        for field_name in (
            "home_win",
            "draw",
            "away_win",
            "over_probability",
            "confidence",
        ):
            value = getattr(self, field_name)
            if not isinstance(value, (int, float)) or not math.isfinite(value):
                raise InvalidInputError(
                    f"{field_name} must be a finite probability, got {value!r}",
                    field=field_name,
                )
            if not 0.0 <= value <= 1.0:
                raise InvalidInputError(
                    f"{field_name} must be within [0, 1], got {value!r}",
                    field=field_name,
                )
        if abs(self.total - 1.0) > tolerance:
            raise InvalidInputError(
                f"Outcome probabilities sum to {self.total:.6f}, expected 1",
                field="home_win+draw+away_win",
            )
        return self

    def as_dict(self) -> Dict[str, float]:
        return dataclasses.asdict(self)


@dataclasses.dataclass(frozen=True, slots=True)
class AnalyticDistribution:
    home_win: float
    draw: float
    away_win: float
    score_grid: Tuple[Tuple[float, ...], ...]
    truncated_mass: float

    @property
    def max_goals(self) -> int:
        return len(self.score_grid) - 1

    def score_probability(self, home_goals: int, away_goals: int) -> float:
        if not (0 <= home_goals <= self.max_goals and 0 <= away_goals <= self.max_goals):
            return 0.0
        return self.score_grid[home_goals][away_goals]

    def most_likely_score(self) -> Tuple[int, int]:
        best = (0, 0)
        best_probability = -1.0
        for home_goals, row in enumerate(self.score_grid):
            for away_goals, probability in enumerate(row):
                if probability > best_probability:
                    best = (home_goals, away_goals)
                    best_probability = probability
        return best


@dataclasses.dataclass(frozen=True, slots=True)
class StochasticSample:
    home_win: float
    draw: float
    away_win: float
    avg_home_goals: float
    avg_away_goals: float
    over_probability: float
    over_threshold: float
    score_frequency: Mapping[Tuple[int, int], int]
    n_trials: int

    def top_scores(self, limit: int = 5) -> List[Tuple[Tuple[int, int], float]]:
        """Most frequent scorelines with their relative frequencies."""

        ranked = sorted(
            self.score_frequency.items(), key=lambda item: (-item[1], item[0])
        )
        return [(score, count / self.n_trials) for score, count in ranked[:limit]]


@dataclasses.dataclass(frozen=True, slots=True)
class MatchPrediction:
    lambda_home: float
    lambda_away: float
    analytic: AnalyticDistribution
    sample: StochasticSample
    estimate: OutcomeProbabilities


# ---------------------------------------------------------------------------
# Rate estimation
# ---------------------------------------------------------------------------


def expected_goal_rate(
    own: CompetitorRating, opponent: CompetitorRating, is_home: bool
) -> float:
    """Expected goals for ``own`` against ``opponent``.

    Attack strength averages the scoring record with the chance-quality
    figure; the opponent's conceding record scales it relative to a league
    baseline.  Relative Elo and a fixed home advantage shift the result
    multiplicatively before it is clamped to ``[MIN_GOAL_RATE, MAX_GOAL_RATE]``.
    """

    elo_advantage = (own.elo - opponent.elo) / _ELO_SCALE
    home_term = HOME_ADVANTAGE if is_home else -HOME_ADVANTAGE
    attack_strength = (own.goals_scored_avg + own.xg_per_match) / 2.0
    defensive_weakness = opponent.goals_conceded_avg / _CONCEDED_BASELINE
    rate = attack_strength * (1.0 + elo_advantage * _ELO_WEIGHT + home_term) * defensive_weakness
    return max(MIN_GOAL_RATE, min(MAX_GOAL_RATE, rate))


def _check_rate(value: float, field: str) -> float:
    rate = require_finite(value, field)
    if rate < 0.0:
        raise InvalidInputError(f"{field} cannot be negative, got {value!r}", field=field)
    return rate


def poisson_pmf(lam: float, k: int) -> float:
    """Poisson probability mass at ``k``; ``lam == 0`` is a point mass at zero."""

    if k < 0:
        return 0.0
    if lam <= 0.0:
        return 1.0 if k == 0 else 0.0
    term = math.exp(-lam)
    for i in range(1, k + 1):
        term *= lam / i
    return term


def _pmf_vector(lam: float, max_goals: int) -> List[float]:
    if lam <= 0.0:
        return [1.0] + [0.0] * max_goals
    values = [math.exp(-lam)]
    for k in range(1, max_goals + 1):
        values.append(values[-1] * lam / k)
    return values


# ---------------------------------------------------------------------------
# Analytic grid
# ---------------------------------------------------------------------------


def analytic_distribution(
    lambda_home: float,
    lambda_away: float,
    max_goals: int = DEFAULT_MAX_GOALS,
) -> AnalyticDistribution:
    """Joint score grid and renormalised home/draw/away probabilities."""

    lam_home = _check_rate(lambda_home, "lambda_home")
    lam_away = _check_rate(lambda_away, "lambda_away")
    if max_goals < 0:
        raise InvalidInputError("max_goals cannot be negative", field="max_goals")
    home_pmf = _pmf_vector(lam_home, max_goals)
    away_pmf = _pmf_vector(lam_away, max_goals)

    home_win = 0.0
    draw = 0.0
    away_win = 0.0
    grid: List[Tuple[float, ...]] = []
    for home_goals, p_home in enumerate(home_pmf):
        row = tuple(p_home * p_away for p_away in away_pmf)
        grid.append(row)
        for away_goals, joint in enumerate(row):
            if home_goals > away_goals:
                home_win += joint
            elif home_goals == away_goals:
                draw += joint
            else:
                away_win += joint

    total = home_win + draw + away_win
    if total <= 0.0:
        raise InvalidInputError(
            f"max_goals={max_goals} captures no probability mass for the given rates",
            field="max_goals",
        )
    truncated = max(0.0, 1.0 - total)
    if truncated > 1e-3:
        logger.debug(
            "Goal cap %d omits %.4f of the probability mass (lambda %.2f/%.2f)",
            max_goals,
            truncated,
            lam_home,
            lam_away,
        )
    return AnalyticDistribution(
        home_win=home_win / total,
        draw=draw / total,
        away_win=away_win / total,
        score_grid=tuple(grid),
        truncated_mass=truncated,
    )


def over_threshold_probability(
    lambda_home: float,
    lambda_away: float,
    threshold: float = DEFAULT_OVER_THRESHOLD,
    max_goals: int = DEFAULT_MAX_GOALS,
) -> float:
    """Probability that the combined score exceeds ``threshold``.

    The under side is summed over the grid and complemented, so mass removed
    by the goal cap counts towards ``over``.
    """

    lam_home = _check_rate(lambda_home, "lambda_home")
    lam_away = _check_rate(lambda_away, "lambda_away")
    if max_goals < 0:
        raise InvalidInputError("max_goals cannot be negative", field="max_goals")
    home_pmf = _pmf_vector(lam_home, max_goals)
    away_pmf = _pmf_vector(lam_away, max_goals)
    under = 0.0
    for home_goals, p_home in enumerate(home_pmf):
        for away_goals, p_away in enumerate(away_pmf):
            if home_goals + away_goals <= threshold:
                under += p_home * p_away
    return max(0.0, min(1.0, 1.0 - under))


def under_threshold_probability(
    lambda_home: float,
    lambda_away: float,
    threshold: float = DEFAULT_OVER_THRESHOLD,
    max_goals: int = DEFAULT_MAX_GOALS,
) -> float:
    return 1.0 - over_threshold_probability(lambda_home, lambda_away, threshold, max_goals)


# ---------------------------------------------------------------------------
# Stochastic sampler
# ---------------------------------------------------------------------------


def _draw_poisson(rng: random.Random, lam: float) -> int:
    if lam <= 0.0:
        return 0
    u = rng.random()
    k = 0
    term = math.exp(-lam)
    cumulative = term
    while u > cumulative and k < _SAMPLING_CAP:
        k += 1
        term *= lam / k
        if term <= 0.0:
            break
        cumulative += term
    return k


def stochastic_sample(
    lambda_home: float,
    lambda_away: float,
    n_trials: int = 10_000,
    *,
    rng: random.Random | None = None,
    seed: int | None = None,
    over_threshold: float = DEFAULT_OVER_THRESHOLD,
) -> StochasticSample:
    """Estimate outcome frequencies by drawing ``n_trials`` score pairs.

    Pass ``rng`` (or ``seed``) for reproducible draws; without either a fresh
    unseeded generator is used.
    """

    lam_home = _check_rate(lambda_home, "lambda_home")
    lam_away = _check_rate(lambda_away, "lambda_away")
    if n_trials <= 0:
        raise InvalidInputError("n_trials must be positive", field="n_trials")
    generator = rng if rng is not None else random.Random(seed)

    home_wins = 0
    draws = 0
    away_wins = 0
    overs = 0
    home_goals_total = 0
    away_goals_total = 0
    frequency: Dict[Tuple[int, int], int] = collections.Counter()
    for _ in range(n_trials):
        home_goals = _draw_poisson(generator, lam_home)
        away_goals = _draw_poisson(generator, lam_away)
        home_goals_total += home_goals
        away_goals_total += away_goals
        if home_goals > away_goals:
            home_wins += 1
        elif home_goals == away_goals:
            draws += 1
        else:
            away_wins += 1
        if home_goals + away_goals > over_threshold:
            overs += 1
        frequency[(home_goals, away_goals)] += 1

    return StochasticSample(
        home_win=home_wins / n_trials,
        draw=draws / n_trials,
        away_win=away_wins / n_trials,
        avg_home_goals=home_goals_total / n_trials,
        avg_away_goals=away_goals_total / n_trials,
        over_probability=overs / n_trials,
        over_threshold=over_threshold,
        score_frequency=dict(frequency),
        n_trials=n_trials,
    )


# ---------------------------------------------------------------------------
# Estimate construction
# ---------------------------------------------------------------------------


def predict_match(
    home: CompetitorRating,
    away: CompetitorRating,
    *,
    n_trials: int = 10_000,
    rng: random.Random | None = None,
    seed: int | None = None,
    max_goals: int = PREDICTION_MAX_GOALS,
    over_threshold: float = DEFAULT_OVER_THRESHOLD,
    confidence: float = 0.7,
) -> MatchPrediction:
    """Combine the analytic grid and the sampler into one estimate.

    Outcome and over probabilities are the mean of both estimators; the
    outcome triple is renormalised afterwards.
    """

    lambda_home = expected_goal_rate(home, away, is_home=True)
    lambda_away = expected_goal_rate(away, home, is_home=False)
    analytic = analytic_distribution(lambda_home, lambda_away, max_goals)
    sample = stochastic_sample(
        lambda_home,
        lambda_away,
        n_trials,
        rng=rng,
        seed=seed,
        over_threshold=over_threshold,
    )
    analytic_over = over_threshold_probability(
        lambda_home, lambda_away, over_threshold, max_goals
    )
    home_win = (analytic.home_win + sample.home_win) / 2.0
    draw = (analytic.draw + sample.draw) / 2.0
    away_win = (analytic.away_win + sample.away_win) / 2.0
    total = home_win + draw + away_win
    estimate = OutcomeProbabilities(
        home_win=home_win / total,
        draw=draw / total,
        away_win=away_win / total,
        over_probability=(analytic_over + sample.over_probability) / 2.0,
        confidence=confidence,
        over_threshold=over_threshold,
    ).validate()
    logger.debug(
        "%s vs %s: lambda %.2f/%.2f -> %.3f/%.3f/%.3f",
        home.name,
        away.name,
        lambda_home,
        lambda_away,
        estimate.home_win,
        estimate.draw,
        estimate.away_win,
    )
    return MatchPrediction(
        lambda_home=lambda_home,
        lambda_away=lambda_away,
        analytic=analytic,
        sample=sample,
        estimate=estimate,
    )


def blend_estimates(
    components: Sequence[Tuple[OutcomeProbabilities, float]],
    *,
    tolerance: float = 1e-3,
) -> OutcomeProbabilities:
    """Weighted blend of several estimates, e.g. the analytic model and classifiers.

    Weights need not sum to one; they are normalised.  Every component is
    validated first, and the blended triple is renormalised so it satisfies
    the sum-to-one invariant.
    """

    if not components:
        raise InvalidInputError("At least one estimate is required to blend", field="components")
    thresholds = {estimate.over_threshold for estimate, _ in components}
    if len(thresholds) > 1:
        raise InvalidInputError(
            "Cannot blend estimates priced on different over/under thresholds",
            field="over_threshold",
        )
    total_weight = 0.0
    home_win = draw = away_win = over = confidence = 0.0
    for estimate, weight in components:
        weight = require_finite(weight, "weight")
        if weight < 0.0:
            raise InvalidInputError("Blend weights cannot be negative", field="weight")
        estimate.validate(tolerance)
        total_weight += weight
        home_win += estimate.home_win * weight
        draw += estimate.draw * weight
        away_win += estimate.away_win * weight
        over += estimate.over_probability * weight
        confidence += estimate.confidence * weight
    if total_weight <= 0.0:
        raise InvalidInputError("Blend weights must have a positive sum", field="weight")
    outcome_total = home_win + draw + away_win
    return OutcomeProbabilities(
        home_win=home_win / outcome_total,
        draw=draw / outcome_total,
        away_win=away_win / outcome_total,
        over_probability=over / total_weight,
        confidence=confidence / total_weight,
        over_threshold=thresholds.pop(),
    )


def brier_score(estimate: OutcomeProbabilities, home_goals: int, away_goals: int) -> float:
    """Mean squared error of the outcome triple against the actual result."""

    actual = (
        1.0 if home_goals > away_goals else 0.0,
        1.0 if home_goals == away_goals else 0.0,
        1.0 if home_goals < away_goals else 0.0,
    )
    predicted = (estimate.home_win, estimate.draw, estimate.away_win)
    return sum((p - a) ** 2 for p, a in zip(predicted, actual)) / 3.0
