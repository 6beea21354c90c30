from __future__ import annotations

import os
from pathlib import Path

import pytest
from pydantic import ValidationError

from edgecast.configuration import (
    BacktestConfig,
    ConfigurationError,
    EdgecastConfig,
    StakingStrategy,
    load_config,
    validate_config,
)

REPO_ROOT = Path(__file__).resolve().parents[1]


@pytest.fixture(autouse=True)
def _clean_environment(monkeypatch: pytest.MonkeyPatch) -> None:
    for key in list(os.environ):
        if key.startswith("EDGECAST"):
            monkeypatch.delenv(key, raising=False)


def test_backtest_config_defaults() -> None:
    config = BacktestConfig()
    assert config.starting_bankroll == 1_000.0
    assert config.strategy is StakingStrategy.CAPITAL_GROWTH
    assert config.max_stake_pct == 5.0
    assert config.growth_fraction == 0.25
    assert config.min_confidence == 0.6
    assert config.stop_loss_pct is None
    assert config.take_profit_pct is None
    assert config.sortino_denominator == "all"


@pytest.mark.parametrize(
    "overrides",
    [
        {"max_stake_pct": 150.0},
        {"max_stake_pct": -1.0},
        {"growth_fraction": 0.0},
        {"min_confidence": 1.5},
        {"strategy": "martingale"},
        {"sortino_denominator": "upside"},
    ],
)
def test_backtest_config_rejects_out_of_range_values(overrides: dict) -> None:
    with pytest.raises(ValidationError):
        BacktestConfig(**overrides)


def test_repository_configuration_loads() -> None:
    config = load_config(base_path=REPO_ROOT / "config" / "edgecast.yaml")
    assert isinstance(config, EdgecastConfig)
    assert config.environment == "default"
    assert config.backtest.min_edge_pct == pytest.approx(2.0)
    assert validate_config(config) == []

    research = load_config(base_path=REPO_ROOT / "config" / "edgecast.yaml", environment="research")
    assert research.environment == "research"
    assert research.backtest.stop_loss_pct == pytest.approx(50.0)
    assert research.backtest.take_profit_pct == pytest.approx(200.0)
    assert research.monte_carlo.simulations == 5000
    # Untouched values come from the base layer.
    assert research.backtest.min_edge_pct == pytest.approx(2.0)


def test_missing_default_file_falls_back_to_defaults(
    tmp_path: Path, monkeypatch: pytest.MonkeyPatch
) -> None:
    monkeypatch.chdir(tmp_path)
    config = load_config()
    assert config == EdgecastConfig()
    with pytest.raises(FileNotFoundError):
        load_config(base_path=tmp_path / "absent.yaml")


def test_configuration_layers_and_env_overrides(
    tmp_path: Path, monkeypatch: pytest.MonkeyPatch
) -> None:
    base = tmp_path / "edgecast.yaml"
    base.write_text(
        """
backtest:
  starting_bankroll: 500.0
  min_edge_pct: 1.0
  max_stake_pct: 4.0
monte_carlo:
  simulations: 200
"""
    )
    env_layer = tmp_path / "edgecast.staging.yaml"
    env_layer.write_text(
        """
backtest:
  min_edge_pct: 3.0
monte_carlo:
  simulations: 300
"""
    )
    extra = tmp_path / "override.yaml"
    extra.write_text(
        """
monte_carlo:
  simulations: 400
"""
    )

    monkeypatch.setenv("EDGECAST_ENV", "staging")
    monkeypatch.setenv("EDGECAST_CONFIG_OVERRIDES", str(extra))
    monkeypatch.setenv("EDGECAST__BACKTEST__MAX_STAKE_PCT", "2.5")
    monkeypatch.setenv("EDGECAST__BACKTEST__STRATEGY", "flat_percentage")

    config = load_config(base_path=base)

    assert config.environment == "staging"
    assert config.backtest.starting_bankroll == pytest.approx(500.0)
    assert config.backtest.min_edge_pct == pytest.approx(3.0)
    assert config.monte_carlo.simulations == 400
    assert config.backtest.max_stake_pct == pytest.approx(2.5)
    assert config.backtest.strategy is StakingStrategy.FLAT_PERCENTAGE


def test_environment_token_substitution(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    base = tmp_path / "edgecast.yaml"
    monkeypatch.setenv("EDGECAST_TEST_SEED", "2024")
    base.write_text(
        """
monte_carlo:
  seed: "${EDGECAST_TEST_SEED}"
"""
    )
    config = load_config(base_path=base)
    assert config.monte_carlo.seed == 2024


def test_invalid_yaml_values_raise_validation_error(tmp_path: Path) -> None:
    base = tmp_path / "edgecast.yaml"
    base.write_text("backtest:\n  max_stake_pct: 250\n")
    with pytest.raises(ValidationError):
        load_config(base_path=base)


def test_validate_config_errors() -> None:
    config = EdgecastConfig(
        backtest=BacktestConfig(starting_bankroll=0.0, stop_loss_pct=80.0, take_profit_pct=70.0)
    )
    with pytest.raises(ConfigurationError) as excinfo:
        validate_config(config)
    message = str(excinfo.value)
    assert "starting_bankroll" in message
    assert "take_profit_pct must be above backtest.stop_loss_pct" in message
    assert "above 100" in message


def test_validate_config_warnings() -> None:
    config = EdgecastConfig(
        backtest=BacktestConfig(max_stake_pct=0.0, min_edge_pct=-1.0),
        model={"n_trials": 500, "max_goals": 5},
    )
    warnings = validate_config(config)
    assert any("no bets will be placed" in message for message in warnings)
    assert any("min_edge_pct" in message for message in warnings)
    assert any("n_trials" in message for message in warnings)
    assert any("max_goals" in message for message in warnings)

    aggressive = EdgecastConfig(
        analyzer={"max_stake_fraction": 0.1},
        backtest=BacktestConfig(max_stake_pct=20.0),
    )
    warnings = validate_config(aggressive)
    assert any("deep drawdowns" in message for message in warnings)
    assert any("analyzer ceiling" in message for message in warnings)
