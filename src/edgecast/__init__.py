"""
edgecast: outcome probabilities, value bets and staking backtests for football.

The package estimates match outcome probabilities from competitor ratings,
grades priced outcomes against those estimates, and replays match histories
to measure how a staking strategy would have performed.
"""

from importlib.metadata import PackageNotFoundError, version

try:  # pragma: no cover - exercised in packaging workflows
    __version__ = version("edgecast")
except PackageNotFoundError:  # pragma: no cover - local editable installs
    __version__ = "0.0.0"

_EXPORTS = {
    # Ratings and outcome model
    "CompetitorRating": ".ratings",
    "update_elo_ratings": ".ratings",
    "OutcomeProbabilities": ".models",
    "analytic_distribution": ".models",
    "blend_estimates": ".models",
    "expected_goal_rate": ".models",
    "over_threshold_probability": ".models",
    "predict_match": ".models",
    "stochastic_sample": ".models",
    # Decision analyzer
    "MarketPrices": ".analytics",
    "analyze": ".analytics",
    "detect_arbitrage": ".analytics",
    "edge": ".analytics",
    "market_margin": ".analytics",
    "stake_fraction": ".analytics",
    # Bankroll and backtesting
    "BankrollLedger": ".bankroll",
    "open_ledger": ".bankroll",
    "settle": ".bankroll",
    "should_stop": ".bankroll",
    "HistoricalMatch": ".backtesting",
    "load_historical_matches": ".backtesting",
    "run_backtest": ".backtesting",
    "run_monte_carlo": ".backtesting",
    # Configuration and errors
    "BacktestConfig": ".configuration",
    "load_config": ".configuration",
    "InvalidInputError": ".utils",
}

__all__ = sorted(_EXPORTS)


def __getattr__(name: str) -> object:  # pragma: no cover - thin lazy importer
    from importlib import import_module

    target_module = _EXPORTS.get(name)
    if not target_module:
        raise AttributeError(f"module {__name__} has no attribute {name}")
    module = import_module(target_module, __name__)
    attr = getattr(module, name)
    globals()[name] = attr
    return attr


def __dir__() -> list[str]:  # pragma: no cover - trivial
    return sorted(list(globals().keys()) + __all__)
