"""Command line interface for outcome modelling and strategy backtests."""

from __future__ import annotations

import argparse
import concurrent.futures
import dataclasses
import json
import logging
import sys
from typing import Callable, Dict, Sequence

from .backtesting import (
    BacktestAbortedError,
    load_historical_matches,
    persist_backtest_report,
    persist_simulation_batch,
    run_backtest,
    run_monte_carlo,
)
from .config import get_config
from .configuration import (
    ConfigurationError,
    EdgecastConfig,
    load_config,
    validate_config,
)
from .logging import configure_logging
from .models import (
    analytic_distribution,
    over_threshold_probability,
    stochastic_sample,
)

logger = logging.getLogger(__name__)

CommandHandler = Callable[[EdgecastConfig, argparse.Namespace], int]


@dataclasses.dataclass(slots=True)
class Subcommand:
    """Container describing a CLI sub-command."""

    name: str
    help: str
    configure: Callable[[argparse.ArgumentParser], None]
    handler: CommandHandler
    validate: bool

    def add_to_parser(
        self,
        subparsers,
        parent: argparse.ArgumentParser,
    ) -> argparse.ArgumentParser:
        parser = subparsers.add_parser(self.name, parents=[parent], help=self.help)
        self.configure(parser)
        parser.set_defaults(handler=self.handler, command=self.name, validate=self.validate)
        return parser


class SubcommandApp:
    """Registry that wires handlers into an :class:`argparse` parser."""

    def __init__(self, description: str | None = None) -> None:
        self._commands: list[Subcommand] = []
        self._description = description

    def command(
        self,
        name: str,
        *,
        help: str,
        configure: Callable[[argparse.ArgumentParser], None],
        validate: bool = True,
    ) -> Callable[[CommandHandler], CommandHandler]:
        """Register a handler; ``validate`` runs config validation before it."""

        def _decorator(handler: CommandHandler) -> CommandHandler:
            self._commands.append(
                Subcommand(
                    name=name,
                    help=help,
                    configure=configure,
                    handler=handler,
                    validate=validate,
                )
            )
            return handler

        return _decorator

    @property
    def commands(self) -> Sequence[Subcommand]:
        return tuple(self._commands)

    def build_parser(self) -> argparse.ArgumentParser:
        parent = argparse.ArgumentParser(add_help=False)
        parent.add_argument("--config", dest="config_file")
        parent.add_argument("--environment", dest="config_environment")
        parent.add_argument("--log-level")

        parser = argparse.ArgumentParser(description=self._description)
        subparsers = parser.add_subparsers(dest="command", required=True)
        for command in self._commands:
            command.add_to_parser(subparsers, parent)
        return parser


APP = SubcommandApp(description=__doc__)


def _configure_probabilities_parser(parser: argparse.ArgumentParser) -> None:
    parser.add_argument("--lambda-home", type=float, required=True)
    parser.add_argument("--lambda-away", type=float, required=True)
    parser.add_argument("--trials", type=int)
    parser.add_argument("--max-goals", type=int)
    parser.add_argument("--threshold", type=float)
    parser.add_argument("--seed", type=int)


def _configure_backtest_parser(parser: argparse.ArgumentParser) -> None:
    parser.add_argument("history", help="CSV/Parquet file or directory of match history")
    parser.add_argument("--output", help="Directory for CSV and JSON reports")
    parser.add_argument("--unordered", action="store_true", help="Keep file order instead of sorting by kickoff")


def _configure_monte_carlo_parser(parser: argparse.ArgumentParser) -> None:
    parser.add_argument("history", help="CSV/Parquet file or directory of match history")
    parser.add_argument("--simulations", type=int)
    parser.add_argument("--seed", type=int)
    parser.add_argument("--workers", type=int)
    parser.add_argument("--output", help="Directory for CSV and JSON reports")


def _configure_validate_parser(parser: argparse.ArgumentParser) -> None:
    parser.add_argument(
        "--warnings-as-errors",
        action="store_true",
        help="Fail validation when configuration warnings are encountered.",
    )


def _resolve_seed(*candidates: int | None) -> int | None:
    for candidate in candidates:
        if candidate is not None:
            return candidate
    return get_config().seed


def _print_json(payload: Dict[str, object]) -> None:
    print(json.dumps(payload, indent=2, sort_keys=True))


@APP.command(
    "probabilities",
    help="Outcome probabilities for a pair of expected goal rates",
    configure=_configure_probabilities_parser,
)
def _cmd_probabilities(config: EdgecastConfig, args: argparse.Namespace) -> int:
    model = config.model
    max_goals = args.max_goals if args.max_goals is not None else model.max_goals
    trials = args.trials if args.trials is not None else model.n_trials
    threshold = args.threshold if args.threshold is not None else model.over_threshold
    seed = _resolve_seed(args.seed, model.seed)

    analytic = analytic_distribution(args.lambda_home, args.lambda_away, max_goals)
    sample = stochastic_sample(
        args.lambda_home,
        args.lambda_away,
        trials,
        seed=seed,
        over_threshold=threshold,
    )
    _print_json(
        {
            "analytic": {
                "home_win": analytic.home_win,
                "draw": analytic.draw,
                "away_win": analytic.away_win,
                "truncated_mass": analytic.truncated_mass,
                "most_likely_score": list(analytic.most_likely_score()),
                "over_probability": over_threshold_probability(
                    args.lambda_home, args.lambda_away, threshold, max_goals
                ),
            },
            "sampled": {
                "home_win": sample.home_win,
                "draw": sample.draw,
                "away_win": sample.away_win,
                "avg_home_goals": sample.avg_home_goals,
                "avg_away_goals": sample.avg_away_goals,
                "over_probability": sample.over_probability,
                "n_trials": sample.n_trials,
                "top_scores": [
                    {"score": f"{home}-{away}", "frequency": frequency}
                    for (home, away), frequency in sample.top_scores()
                ],
            },
            "over_threshold": threshold,
            "seed": seed,
        }
    )
    return 0


@APP.command(
    "backtest",
    help="Replay a match history once with the configured staking strategy",
    configure=_configure_backtest_parser,
)
def _cmd_backtest(config: EdgecastConfig, args: argparse.Namespace) -> int:
    matches = load_historical_matches(args.history)
    report = run_backtest(
        matches,
        config.backtest,
        chronological=not args.unordered,
        analyzer_settings=config.analyzer,
    )
    print(report.to_json(include_series=False))
    if args.output:
        artifacts = persist_backtest_report(report, args.output)
        print(f"Reports written to {artifacts.summary_path.parent}", file=sys.stderr)
    return 0


@APP.command(
    "monte-carlo",
    help="Replay shuffled copies of a match history and summarise the ROI spread",
    configure=_configure_monte_carlo_parser,
)
def _cmd_monte_carlo(config: EdgecastConfig, args: argparse.Namespace) -> int:
    settings = config.monte_carlo
    simulations = args.simulations if args.simulations is not None else settings.simulations
    workers = args.workers if args.workers is not None else settings.workers
    seed = _resolve_seed(args.seed, settings.seed)
    matches = load_historical_matches(args.history)

    if workers > 1:
        with concurrent.futures.ProcessPoolExecutor(max_workers=workers) as executor:
            batch = run_monte_carlo(
                matches,
                config.backtest,
                simulations,
                seed=seed,
                executor=executor,
                analyzer_settings=config.analyzer,
            )
    else:
        batch = run_monte_carlo(
            matches,
            config.backtest,
            simulations,
            seed=seed,
            analyzer_settings=config.analyzer,
        )
    stats = batch.statistics
    _print_json(
        {
            "simulations": batch.completed,
            "seed": seed,
            "statistics": dataclasses.asdict(stats),
        }
    )
    if args.output:
        artifacts = persist_simulation_batch(batch, args.output)
        print(f"Reports written to {artifacts.summary_path.parent}", file=sys.stderr)
    return 0


@APP.command(
    "validate-config",
    help="Validate edgecast configuration",
    configure=_configure_validate_parser,
    validate=False,
)
def _cmd_validate_config(config: EdgecastConfig, args: argparse.Namespace) -> int:
    try:
        warnings = validate_config(config)
    except ConfigurationError as exc:
        print("Configuration invalid:")
        for line in str(exc).splitlines():
            text = line if line.startswith("-") else f"- {line}"
            print(text)
        return 1

    print(f"Configuration '{config.environment}' is valid.")
    if warnings:
        print("Warnings:")
        for message in warnings:
            print(f"- {message}")
        if args.warnings_as_errors:
            return 2
    return 0


def _build_parser() -> argparse.ArgumentParser:
    return APP.build_parser()


def _dispatch(args: argparse.Namespace) -> int:
    settings = get_config()
    configure_logging(args.log_level or settings.log_level.value)
    config = load_config(
        base_path=args.config_file or settings.config_path,
        environment=args.config_environment,
    )
    if args.validate:
        try:
            warnings = validate_config(config)
        except ConfigurationError as exc:
            raise SystemExit(str(exc)) from exc
        for message in warnings:
            print(f"[config-warning] {message}", file=sys.stderr)

    handler: CommandHandler = args.handler
    try:
        return handler(config, args)
    except BacktestAbortedError as exc:
        logger.error("%s", exc)
        raise SystemExit(str(exc)) from exc


def main(argv: Sequence[str] | None = None) -> int:
    parser = _build_parser()
    args = parser.parse_args(argv)
    return _dispatch(args)


__all__ = ["main"]


if __name__ == "__main__":  # pragma: no cover - CLI entrypoint
    raise SystemExit(main())
