from __future__ import annotations

import enum
import json
import os
import re
from pathlib import Path
from typing import Any, Dict, Iterable, Literal, Mapping, MutableMapping, Sequence

import yaml
from pydantic import BaseModel, ConfigDict, Field

ENVIRONMENT_VARIABLE = "EDGECAST_ENV"
EXTRA_CONFIG_VARIABLE = "EDGECAST_CONFIG_OVERRIDES"
ENV_OVERRIDE_PREFIX = "EDGECAST__"
DEFAULT_CONFIG_PATH = "config/edgecast.yaml"


class StakingStrategy(str, enum.Enum):
    """How the backtest runner sizes the single bet it places per match."""

    CAPITAL_GROWTH = "capital_growth"
    FLAT_PERCENTAGE = "flat_percentage"
    EDGE_PROPORTIONAL = "edge_proportional"


class AnalyzerSettings(BaseModel):
    """Thresholds used by :func:`edgecast.analytics.analyze`."""

    model_config = ConfigDict(frozen=True)

    growth_fraction: float = Field(default=0.25, gt=0.0, le=1.0)
    max_stake_fraction: float = Field(default=1.0, ge=0.0, le=1.0)
    top_n: int = Field(default=5, ge=1)
    high_margin_pct: float = Field(default=10.0, ge=0.0)
    low_confidence: float = Field(default=0.6, ge=0.0, le=1.0)
    small_bankroll: float = Field(default=500.0, ge=0.0)
    strong_edge_pct: float = Field(default=5.0, ge=0.0)
    contract_tolerance: float = Field(default=1e-3, gt=0.0, lt=0.1)


class BacktestConfig(BaseModel):
    """Replay options; every field has its default applied at construction."""

    model_config = ConfigDict(frozen=True)

    starting_bankroll: float = Field(default=1_000.0, ge=0.0)
    strategy: StakingStrategy = StakingStrategy.CAPITAL_GROWTH
    min_edge_pct: float = 0.0
    max_stake_pct: float = Field(default=5.0, ge=0.0, le=100.0)
    growth_fraction: float = Field(default=0.25, gt=0.0, le=1.0)
    min_confidence: float = Field(default=0.6, ge=0.0, le=1.0)
    stop_loss_pct: float | None = Field(default=None, ge=0.0)
    take_profit_pct: float | None = Field(default=None, ge=0.0)
    sortino_denominator: Literal["all", "downside"] = "all"


class ModelSettings(BaseModel):
    """Defaults for the outcome probability model."""

    max_goals: int = Field(default=13, ge=0, le=30)
    n_trials: int = Field(default=10_000, gt=0)
    over_threshold: float = Field(default=2.5, ge=0.0)
    confidence: float = Field(default=0.7, ge=0.0, le=1.0)
    seed: int | None = None


class MonteCarloSettings(BaseModel):
    """Batch size and parallelism for shuffled replays."""

    simulations: int = Field(default=1_000, gt=0)
    workers: int = Field(default=1, ge=1)
    seed: int | None = None


class EdgecastConfig(BaseModel):
    """Aggregate configuration for the modelling and backtest stack."""

    environment: str = "default"
    model: ModelSettings = Field(default_factory=ModelSettings)
    analyzer: AnalyzerSettings = Field(default_factory=AnalyzerSettings)
    backtest: BacktestConfig = Field(default_factory=BacktestConfig)
    monte_carlo: MonteCarloSettings = Field(default_factory=MonteCarloSettings)


class ConfigurationError(ValueError):
    """Raised when edgecast configuration validation fails."""


_ENV_PATTERN = re.compile(r"\$\{([^}]+)\}")


def _load_yaml(path: Path) -> Dict[str, Any]:
    """Read one YAML layer; an empty file counts as an empty mapping."""

    if not path.exists():
        raise FileNotFoundError(path)
    with path.open("r", encoding="utf-8") as handle:
        data = yaml.safe_load(handle) or {}
    if not isinstance(data, dict):
        raise TypeError(f"Configuration at {path} must be a mapping")
    return dict(data)


def _merge_layers(base: Dict[str, Any], layer: Mapping[str, Any]) -> Dict[str, Any]:
    """Overlay ``layer`` on ``base``; nested sections merge key by key."""

    merged: Dict[str, Any] = dict(base)
    for key, value in layer.items():
        if (
            key in merged
            and isinstance(merged[key], Mapping)
            and isinstance(value, Mapping)
        ):
            merged[key] = _merge_layers(dict(merged[key]), value)
        else:
            merged[key] = value
    return merged


def _resolve_env_tokens(value: Any) -> Any:
    """Replace ``${VAR}`` tokens in string values with the variable, or nothing if unset."""

    if isinstance(value, str):
        return _ENV_PATTERN.sub(lambda match: os.getenv(match.group(1), ""), value)
    if isinstance(value, Mapping):
        return {k: _resolve_env_tokens(v) for k, v in value.items()}
    if isinstance(value, Sequence) and not isinstance(value, (str, bytes, bytearray)):
        return [_resolve_env_tokens(item) for item in value]
    return value


def _coerce_env_value(raw: str) -> Any:
    """Turn an override string into a number, null, list or bool where it parses as one."""

    try:
        return json.loads(raw)
    except json.JSONDecodeError:
        lowered = raw.lower()
        if lowered in {"true", "false"}:
            return lowered == "true"
        return raw


def _set_nested(mapping: MutableMapping[str, Any], path: Iterable[str], value: Any) -> None:
    """Assign ``value`` at a section path such as ``("BACKTEST", "MIN_EDGE_PCT")``."""

    segments = list(path)
    if not segments:
        return
    head, *tail = segments
    key = head.lower().replace("-", "_")
    if not tail:
        mapping[key] = value
        return
    child = mapping.get(key)
    if not isinstance(child, MutableMapping):
        child = {}
    else:
        child = dict(child)
    mapping[key] = child
    _set_nested(child, tail, value)


def _apply_env_overrides(data: Dict[str, Any]) -> Dict[str, Any]:
    """Apply every ``EDGECAST__SECTION__FIELD`` variable on top of the loaded layers."""

    updated = dict(data)
    for key, raw_value in os.environ.items():
        if not key.startswith(ENV_OVERRIDE_PREFIX):
            continue
        path = [segment for segment in key[len(ENV_OVERRIDE_PREFIX) :].split("__") if segment]
        if not path:
            continue
        _set_nested(updated, path, _coerce_env_value(raw_value))
    return updated


def load_config(
    *,
    base_path: str | os.PathLike[str] | None = None,
    environment: str | None = None,
    extra_paths: Sequence[str | os.PathLike[str]] | None = None,
) -> EdgecastConfig:
    """Load layered configuration.

    ``config/edgecast.yaml`` (or ``base_path``) is merged with an optional
    ``<stem>.<env>.yaml`` sibling, any extra override files and finally
    ``EDGECAST__SECTION__FIELD`` environment variables.  A missing base file
    is only an error when ``base_path`` was given explicitly.
    """

    config_path = Path(base_path or DEFAULT_CONFIG_PATH)
    if base_path is None and not config_path.exists():
        data: Dict[str, Any] = {}
    else:
        data = _load_yaml(config_path)

    env_name = environment or os.getenv(ENVIRONMENT_VARIABLE) or data.get("environment")
    if isinstance(env_name, str):
        env_path = config_path.with_name(f"{config_path.stem}.{env_name}{config_path.suffix}")
        if env_path.exists():
            data = _merge_layers(data, _load_yaml(env_path))
        data["environment"] = env_name

    merged = dict(data)
    override_sources: list[Path] = []
    if extra_paths:
        override_sources.extend(Path(path) for path in extra_paths)
    env_overrides = os.getenv(EXTRA_CONFIG_VARIABLE)
    if env_overrides:
        override_sources.extend(Path(token) for token in env_overrides.split(os.pathsep) if token)

    for override in override_sources:
        if override.exists():
            merged = _merge_layers(merged, _load_yaml(override))

    merged = _apply_env_overrides(merged)
    merged = _resolve_env_tokens(merged)

    return EdgecastConfig.model_validate(merged)


def validate_config(config: EdgecastConfig) -> list[str]:
    """Check cross-field constraints that single-field validation cannot see.

    Returns a list of warnings; raises :class:`ConfigurationError` when any
    fatal combination is found.
    """

    errors: list[str] = []
    warnings: list[str] = []

    backtest = config.backtest
    if backtest.starting_bankroll <= 0:
        errors.append("backtest.starting_bankroll must be greater than zero")
    if (
        backtest.stop_loss_pct is not None
        and backtest.take_profit_pct is not None
        and backtest.take_profit_pct <= backtest.stop_loss_pct
    ):
        errors.append("backtest.take_profit_pct must be above backtest.stop_loss_pct")
    if backtest.stop_loss_pct is not None and backtest.stop_loss_pct >= 100:
        errors.append("backtest.stop_loss_pct must be below 100 or the replay stops immediately")
    if backtest.take_profit_pct is not None and backtest.take_profit_pct <= 100:
        errors.append("backtest.take_profit_pct must be above 100 or the replay stops immediately")
    if backtest.max_stake_pct == 0:
        warnings.append("backtest.max_stake_pct is 0; no bets will be placed")
    elif backtest.max_stake_pct > 10:
        warnings.append(
            "backtest.max_stake_pct exceeds 10% of the bankroll; expect deep drawdowns"
        )
    if backtest.min_edge_pct < 0:
        warnings.append("backtest.min_edge_pct is negative; only positive-edge bets are ever placed")

    if config.analyzer.max_stake_fraction < backtest.max_stake_pct / 100.0:
        warnings.append(
            "analyzer.max_stake_fraction is below backtest.max_stake_pct; "
            "the analyzer ceiling will bind first"
        )

    model = config.model
    if model.n_trials < 1_000:
        warnings.append(
            "model.n_trials is below 1000; sampled probabilities will be noisy"
        )
    if model.max_goals < 13:
        warnings.append(
            "model.max_goals is below 13; more than 0.1% of the score mass is dropped at high goal rates"
        )

    monte_carlo = config.monte_carlo
    if monte_carlo.workers > (os.cpu_count() or 1) * 4:
        warnings.append("monte_carlo.workers is far above the available CPU count")

    if errors:
        bullet_list = "\n".join(f"- {message}" for message in errors)
        raise ConfigurationError(f"Configuration validation failed:\n{bullet_list}")

    return warnings


__all__ = [
    "AnalyzerSettings",
    "BacktestConfig",
    "ConfigurationError",
    "DEFAULT_CONFIG_PATH",
    "EdgecastConfig",
    "ModelSettings",
    "MonteCarloSettings",
    "StakingStrategy",
    "load_config",
    "validate_config",
]
