"""Competitor strength records and rating helpers."""

from __future__ import annotations

import dataclasses
from typing import Sequence

from .utils import InvalidInputError, require_finite

__all__ = [
    "CompetitorRating",
    "EloUpdate",
    "ELO_K_BASE",
    "HOME_ADVANTAGE",
    "elo_expected_score",
    "estimate_xg",
    "exponential_weighted_average",
    "update_elo_ratings",
]

ELO_K_BASE = 32.0
# Home advantage expressed on the goal-rate scale; converted to Elo points
# when rating updates are applied.
HOME_ADVANTAGE = 0.15


@dataclasses.dataclass(frozen=True, slots=True)
class CompetitorRating:
    """Strength descriptor for one side of a fixture."""

    name: str
    goals_scored_avg: float
    goals_conceded_avg: float
    xg_per_match: float
    elo: float = 1500.0

    def __post_init__(self) -> None:
        for field_name in ("goals_scored_avg", "goals_conceded_avg", "xg_per_match"):
            value = require_finite(getattr(self, field_name), field_name)
            if value < 0.0:
                raise InvalidInputError(
                    f"{field_name} cannot be negative for {self.name}", field=field_name
                )
        require_finite(self.elo, "elo")


@dataclasses.dataclass(frozen=True, slots=True)
class EloUpdate:
    rating_a: float
    rating_b: float


def elo_expected_score(rating_a: float, rating_b: float) -> float:
    """Expected score of ``a`` against ``b`` on the logistic Elo curve."""

    return 1.0 / (1.0 + 10.0 ** ((rating_b - rating_a) / 400.0))


def update_elo_ratings(
    rating_a: float,
    rating_b: float,
    score_a: int,
    score_b: int,
    is_home_a: bool = True,
) -> EloUpdate:
    """Apply a goal-difference weighted Elo update after a result.

    The home side's opponent is handicapped by ``HOME_ADVANTAGE * 100`` points
    when the expectation is computed.  The update is zero-sum.
    """

    if score_a < 0 or score_b < 0:
        raise InvalidInputError("Scores cannot be negative", field="score")
    adjusted_b = rating_b - HOME_ADVANTAGE * 100.0 if is_home_a else rating_b
    expected_a = elo_expected_score(rating_a, adjusted_b)
    if score_a > score_b:
        actual_a = 1.0
    elif score_a < score_b:
        actual_a = 0.0
    else:
        actual_a = 0.5
    k_factor = ELO_K_BASE * (1.0 + abs(score_a - score_b) / 8.0)
    delta = k_factor * (actual_a - expected_a)
    return EloUpdate(rating_a=rating_a + delta, rating_b=rating_b - delta)


def estimate_xg(shots: float, shots_on_target: float, possession: float) -> float:
    """Rough expected-goals figure from shot volume, accuracy and possession."""

    for name, value in (
        ("shots", shots),
        ("shots_on_target", shots_on_target),
        ("possession", possession),
    ):
        if require_finite(value, name) < 0.0:
            raise InvalidInputError(f"{name} cannot be negative", field=name)
    shot_quality = shots_on_target / max(shots, 1.0)
    possession_factor = possession / 50.0
    return shots * 0.1 * shot_quality * possession_factor


def exponential_weighted_average(values: Sequence[float], alpha: float = 0.3) -> float:
    """Exponentially weighted average with the most recent value last."""

    if not 0.0 < alpha <= 1.0:
        raise InvalidInputError("alpha must be within (0, 1]", field="alpha")
    if not values:
        return 0.0
    iterator = iter(values)
    average = float(next(iterator))
    for value in iterator:
        average = alpha * float(value) + (1.0 - alpha) * average
    return average
