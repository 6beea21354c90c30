"""Shared price helpers and the input-contract exception."""

from __future__ import annotations

import math

__all__ = [
    "InvalidInputError",
    "fair_price",
    "implied_probability",
    "is_usable_price",
    "require_finite",
]


class InvalidInputError(ValueError):
    """Raised when a caller breaks an input contract.

    The optional ``field`` and ``match_id`` attributes attribute the failure
    to a specific value so that aborted replays can be traced back to the
    offending record.
    """

    def __init__(
        self,
        message: str,
        *,
        field: str | None = None,
        match_id: str | None = None,
    ) -> None:
        self.field = field
        self.match_id = match_id
        details = []
        if match_id is not None:
            details.append(f"match={match_id}")
        if field is not None:
            details.append(f"field={field}")
        if details:
            message = f"{message} ({', '.join(details)})"
        super().__init__(message)


def require_finite(value: float, field: str) -> float:
    """Return ``value`` as a float, rejecting NaN and infinities."""

    number = float(value)
    if not math.isfinite(number):
        raise InvalidInputError(f"{field} must be a finite number, got {value!r}", field=field)
    return number


def is_usable_price(value: object) -> bool:
    """Return ``True`` when ``value`` is a finite number."""

    if value is None or isinstance(value, bool):
        return False
    try:
        return math.isfinite(float(value))  # type: ignore[arg-type]
    except (TypeError, ValueError):
        return False


def implied_probability(price: float) -> float:
    """Return the bookmaker's implied probability for a decimal price."""

    value = require_finite(price, "price")
    if value <= 0.0:
        raise InvalidInputError(f"Decimal prices must be positive, got {price!r}", field="price")
    return 1.0 / value


def fair_price(probability: float) -> float:
    """Convert a probability into the decimal price with no margin."""

    value = require_finite(probability, "probability")
    if value <= 0.0 or value > 1.0:
        raise InvalidInputError(
            "Probability must be within (0, 1] to have a fair price", field="probability"
        )
    return 1.0 / value
