"""Historical replay and Monte Carlo robustness checks for staking strategies.

A replay walks a match history once, placing at most one bet per match and
threading a single bankroll ledger through the sequence.  The Monte Carlo
runner repeats the replay over independently shuffled copies of the same
history to measure how sensitive a strategy is to the order of results.
"""

from __future__ import annotations

import concurrent.futures
import dataclasses
import datetime as dt
import enum
import json
import logging
import math
import random
import statistics
import threading
from collections.abc import Iterable, Mapping, Sequence
from pathlib import Path
from typing import Any

import polars as pl
from pydantic import BaseModel

from . import bankroll as ledger_ops
from .analytics import BetRecommendation, MarketPrices, flat_stake_fraction, value_candidates
from .bankroll import BankrollLedger, StopReason, Wager
from .configuration import AnalyzerSettings, BacktestConfig, StakingStrategy
from .models import OutcomeProbabilities
from .utils import InvalidInputError

__all__ = [
    "BacktestAbortedError",
    "BacktestArtifacts",
    "BacktestReport",
    "BetRecord",
    "EquityPoint",
    "HistoricalMatch",
    "RoiDistribution",
    "SimulationArtifacts",
    "SimulationBatch",
    "batch_to_frame",
    "bets_to_frame",
    "equity_to_frame",
    "load_historical_matches",
    "persist_backtest_report",
    "persist_simulation_batch",
    "run_backtest",
    "run_monte_carlo",
]

logger = logging.getLogger(__name__)

ANNUALISATION_FACTOR = math.sqrt(252.0)
RUIN_THRESHOLD = 0.5
EDGE_PROPORTIONAL_SCALE = 0.1


class BacktestAbortedError(RuntimeError):
    """Raised when a match breaks an input contract during a replay."""

    def __init__(self, match_id: str, field: str | None, cause: Exception) -> None:
        # All three go into ``args`` so the error survives a trip through a
        # process pool.
        super().__init__(match_id, field, cause)
        self.match_id = match_id
        self.field = field
        self.cause = cause

    def __str__(self) -> str:
        location = f"match {self.match_id}"
        if self.field is not None:
            location += f", field {self.field}"
        return f"Backtest aborted at {location}: {self.cause}"


@dataclasses.dataclass(frozen=True, slots=True)
class HistoricalMatch:
    match_id: str
    kickoff: dt.datetime
    home_team: str
    away_team: str
    home_goals: int
    away_goals: int
    estimate: OutcomeProbabilities | None = None
    prices: MarketPrices = dataclasses.field(default_factory=MarketPrices)

    def outcome_won(self, outcome: str, over_threshold: float) -> bool:
        """Whether a bet on ``outcome`` settles as a win for this final score."""

        home, away = self.home_goals, self.away_goals
        if outcome == "home":
            return home > away
        if outcome == "draw":
            return home == away
        if outcome == "away":
            return home < away
        if outcome == "over":
            return home + away > over_threshold
        if outcome == "under":
            return home + away <= over_threshold
        if outcome == "home_or_draw":
            return home >= away
        if outcome == "home_or_away":
            return home != away
        if outcome == "draw_or_away":
            return home <= away
        raise InvalidInputError(f"Unknown outcome {outcome!r}", field="outcome", match_id=self.match_id)


@dataclasses.dataclass(frozen=True, slots=True)
class BetRecord:
    match_id: str
    kickoff: dt.datetime
    market: str
    outcome: str
    price: float
    model_probability: float
    edge_pct: float
    stake_fraction: float
    stake: float
    won: bool
    profit: float
    balance_before: float
    balance_after: float

    @property
    def bet_return(self) -> float:
        return self.profit / self.stake if self.stake > 0.0 else 0.0


@dataclasses.dataclass(frozen=True, slots=True)
class EquityPoint:
    index: int
    match_id: str | None
    kickoff: dt.datetime | None
    balance: float


@dataclasses.dataclass(frozen=True, slots=True)
class BacktestReport:
    config: BacktestConfig
    total_matches: int
    skipped_matches: int
    total_bets: int
    won_bets: int
    lost_bets: int
    starting_bankroll: float
    final_bankroll: float
    net_profit: float
    total_staked: float
    total_returned: float
    roi: float
    yield_pct: float
    win_rate: float
    max_drawdown_pct: float
    sharpe_ratio: float
    sortino_ratio: float
    calmar_ratio: float
    average_price: float
    average_stake: float
    average_edge_pct: float
    longest_win_streak: int
    longest_loss_streak: int
    start_date: dt.datetime | None
    end_date: dt.datetime | None
    stop_reason: StopReason | None
    bets: tuple[BetRecord, ...]
    equity_curve: tuple[EquityPoint, ...]
    bankroll_history: tuple[float, ...]

    @property
    def stopped_early(self) -> bool:
        return self.stop_reason in (StopReason.STOP_LOSS, StopReason.TAKE_PROFIT)

    def to_dict(self, *, include_series: bool = True) -> dict[str, Any]:
        payload: dict[str, Any] = {}
        for field in dataclasses.fields(self):
            if not include_series and field.name in {"bets", "equity_curve", "bankroll_history"}:
                continue
            payload[field.name] = _jsonable(getattr(self, field.name))
        return payload

    def to_json(self, *, include_series: bool = True) -> str:
        return json.dumps(self.to_dict(include_series=include_series), indent=2, sort_keys=True)


@dataclasses.dataclass(frozen=True, slots=True)
class RoiDistribution:
    runs: int
    mean: float
    median: float
    std_dev: float
    worst: float
    best: float
    percentile_25: float
    percentile_75: float
    percentile_95: float
    probability_of_profit: float
    probability_of_ruin: float


@dataclasses.dataclass(frozen=True, slots=True)
class SimulationBatch:
    config: BacktestConfig
    requested: int
    seeds: tuple[int, ...]
    reports: tuple[BacktestReport, ...]
    statistics: RoiDistribution
    cancelled: bool = False

    @property
    def completed(self) -> int:
        return len(self.reports)

    def to_dict(self) -> dict[str, Any]:
        return {
            "config": _jsonable(self.config),
            "requested": self.requested,
            "completed": self.completed,
            "cancelled": self.cancelled,
            "statistics": _jsonable(self.statistics),
            "runs": [
                {"seed": seed, **report.to_dict(include_series=False)}
                for seed, report in zip(self.seeds, self.reports)
            ],
        }


@dataclasses.dataclass(frozen=True, slots=True)
class BacktestArtifacts:
    report: BacktestReport
    bets_path: Path
    equity_path: Path
    summary_path: Path


@dataclasses.dataclass(frozen=True, slots=True)
class SimulationArtifacts:
    batch: SimulationBatch
    runs_path: Path
    summary_path: Path


def _jsonable(value: Any) -> Any:
    if isinstance(value, BaseModel):
        return value.model_dump(mode="json")
    if dataclasses.is_dataclass(value) and not isinstance(value, type):
        return {field.name: _jsonable(getattr(value, field.name)) for field in dataclasses.fields(value)}
    if isinstance(value, Mapping):
        return {str(_jsonable(key)): _jsonable(item) for key, item in value.items()}
    if isinstance(value, (list, tuple)):
        return [_jsonable(item) for item in value]
    if isinstance(value, (dt.datetime, dt.date)):
        return value.isoformat()
    if isinstance(value, enum.Enum):
        return value.value
    if isinstance(value, float):
        return value if math.isfinite(value) else None
    return value


# ---------------------------------------------------------------------------
# Replay
# ---------------------------------------------------------------------------


@dataclasses.dataclass(frozen=True, slots=True)
class _PreparedMatch:
    match: HistoricalMatch
    candidate: BetRecommendation | None
    error: InvalidInputError | None = None


def _prepare(
    match: HistoricalMatch,
    config: BacktestConfig,
    settings: AnalyzerSettings,
) -> _PreparedMatch:
    estimate = match.estimate
    if estimate is None:
        return _PreparedMatch(match=match, candidate=None)
    try:
        # A broken estimate aborts the replay even when it would not be bet.
        estimate.validate(settings.contract_tolerance)
        if estimate.confidence < config.min_confidence:
            return _PreparedMatch(match=match, candidate=None)
        candidates = value_candidates(
            estimate,
            match.prices,
            min_edge_pct=config.min_edge_pct,
            settings=settings,
        )
    except InvalidInputError as exc:
        return _PreparedMatch(match=match, candidate=None, error=exc)
    # Candidates arrive best edge first; only that one is bet.
    return _PreparedMatch(match=match, candidate=candidates[0] if candidates else None)


def _stake_share(candidate: BetRecommendation, config: BacktestConfig) -> float:
    if config.strategy is StakingStrategy.CAPITAL_GROWTH:
        share = candidate.stakes.full_growth * config.growth_fraction
    elif config.strategy is StakingStrategy.FLAT_PERCENTAGE:
        share = flat_stake_fraction(candidate.edge_pct)
    else:
        share = candidate.edge_pct / 100.0 * EDGE_PROPORTIONAL_SCALE
    return max(0.0, min(share, config.max_stake_pct / 100.0))


def _ratios(
    returns: Sequence[float],
    roi: float,
    max_drawdown_pct: float,
    sortino_denominator: str,
) -> tuple[float, float, float]:
    sharpe = sortino = 0.0
    if returns:
        mean_return = statistics.fmean(returns)
        std_dev = statistics.pstdev(returns)
        if std_dev > 0.0:
            sharpe = mean_return / std_dev * ANNUALISATION_FACTOR
        downside = [value for value in returns if value < 0.0]
        count = len(returns) if sortino_denominator == "all" else len(downside)
        if downside and count:
            downside_dev = math.sqrt(sum(value * value for value in downside) / count)
            if downside_dev > 0.0:
                sortino = mean_return / downside_dev * ANNUALISATION_FACTOR
    calmar = roi / max_drawdown_pct if max_drawdown_pct > 0.0 else 0.0
    return sharpe, sortino, calmar


def _replay(
    prepared: Sequence[_PreparedMatch],
    config: BacktestConfig,
) -> BacktestReport:
    ledger: BankrollLedger = ledger_ops.open_ledger(config.starting_bankroll)
    bets: list[BetRecord] = []
    equity = [EquityPoint(index=0, match_id=None, kickoff=None, balance=ledger.balance)]
    history: list[float] = []
    processed = 0
    skipped = 0
    first_kickoff: dt.datetime | None = None
    last_kickoff: dt.datetime | None = None

    for item in prepared:
        match = item.match
        if match.estimate is None:
            skipped += 1
            continue
        processed += 1
        history.append(ledger.balance)
        first_kickoff = first_kickoff or match.kickoff
        last_kickoff = match.kickoff
        if item.error is not None:
            logger.warning("Aborting replay at match %s: %s", match.match_id, item.error)
            raise BacktestAbortedError(match.match_id, item.error.field, item.error) from item.error
        candidate = item.candidate
        if candidate is None:
            continue
        share = _stake_share(candidate, config)
        stake = ledger.balance * share
        if stake <= 0.0:
            continue

        won = match.outcome_won(candidate.outcome, match.estimate.over_threshold)
        balance_before = ledger.balance
        try:
            ledger = ledger_ops.settle(ledger, Wager(stake=stake, price=candidate.price), won)
        except InvalidInputError as exc:
            logger.warning("Aborting replay at match %s: %s", match.match_id, exc)
            raise BacktestAbortedError(match.match_id, exc.field, exc) from exc
        bets.append(
            BetRecord(
                match_id=match.match_id,
                kickoff=match.kickoff,
                market=candidate.market.value,
                outcome=candidate.outcome,
                price=candidate.price,
                model_probability=candidate.model_probability,
                edge_pct=candidate.edge_pct,
                stake_fraction=share,
                stake=stake,
                won=won,
                profit=ledger.balance - balance_before,
                balance_before=balance_before,
                balance_after=ledger.balance,
            )
        )
        equity.append(
            EquityPoint(
                index=len(bets),
                match_id=match.match_id,
                kickoff=match.kickoff,
                balance=ledger.balance,
            )
        )

        reason = ledger_ops.should_stop(ledger, config)
        if reason is not None:
            logger.info(
                "Replay stopped by %s after match %s at %.1f%% of the starting bankroll",
                reason.value,
                match.match_id,
                ledger.growth_pct,
            )
            ledger = ledger_ops.stop(ledger, reason)
            break

    ledger = ledger_ops.close(ledger)
    starting = ledger.starting_balance
    roi = ledger.net_profit / starting * 100.0 if starting > 0.0 else 0.0
    sharpe, sortino, calmar = _ratios(
        [bet.bet_return for bet in bets],
        roi,
        ledger.max_drawdown_pct,
        config.sortino_denominator,
    )
    count = len(bets)
    return BacktestReport(
        config=config,
        total_matches=processed,
        skipped_matches=skipped,
        total_bets=ledger.total_bets,
        won_bets=ledger.won_bets,
        lost_bets=ledger.lost_bets,
        starting_bankroll=starting,
        final_bankroll=ledger.balance,
        net_profit=ledger.net_profit,
        total_staked=ledger.total_staked,
        total_returned=ledger.total_returned,
        roi=roi,
        yield_pct=ledger.roi,
        win_rate=ledger.win_rate,
        max_drawdown_pct=ledger.max_drawdown_pct,
        sharpe_ratio=sharpe,
        sortino_ratio=sortino,
        calmar_ratio=calmar,
        average_price=ledger.average_price,
        average_stake=ledger.total_staked / count if count else 0.0,
        average_edge_pct=sum(bet.edge_pct for bet in bets) / count if count else 0.0,
        longest_win_streak=ledger.longest_win_streak,
        longest_loss_streak=ledger.longest_loss_streak,
        start_date=first_kickoff,
        end_date=last_kickoff,
        stop_reason=ledger.stop_reason,
        bets=tuple(bets),
        equity_curve=tuple(equity),
        bankroll_history=tuple(history),
    )


def run_backtest(
    matches: Iterable[HistoricalMatch],
    config: BacktestConfig | None = None,
    *,
    chronological: bool = True,
    analyzer_settings: AnalyzerSettings | None = None,
) -> BacktestReport:
    """Replay ``matches`` once and summarise the resulting bankroll path.

    Matches are ordered by kickoff unless ``chronological`` is false, in
    which case the given order is kept.  A match that breaks an input
    contract aborts the replay with :class:`BacktestAbortedError`.
    """

    config = config or BacktestConfig()
    settings = analyzer_settings or AnalyzerSettings()
    ordered = list(matches)
    if chronological:
        ordered.sort(key=lambda match: match.kickoff)
    return _replay([_prepare(match, config, settings) for match in ordered], config)


# ---------------------------------------------------------------------------
# Monte Carlo
# ---------------------------------------------------------------------------


def _shuffled_replay(
    prepared: Sequence[_PreparedMatch], config: BacktestConfig, seed: int
) -> BacktestReport:
    order = list(prepared)
    random.Random(seed).shuffle(order)
    return _replay(order, config)


def _percentile(ordered: Sequence[float], fraction: float) -> float:
    index = min(int(len(ordered) * fraction), len(ordered) - 1)
    return ordered[index]


def _distribution(reports: Sequence[BacktestReport], starting: float) -> RoiDistribution:
    if not reports:
        return RoiDistribution(
            runs=0,
            mean=0.0,
            median=0.0,
            std_dev=0.0,
            worst=0.0,
            best=0.0,
            percentile_25=0.0,
            percentile_75=0.0,
            percentile_95=0.0,
            probability_of_profit=0.0,
            probability_of_ruin=0.0,
        )
    rois = sorted(report.roi for report in reports)
    runs = len(rois)
    profitable = sum(1 for report in reports if report.roi > 0.0)
    ruined = sum(1 for report in reports if report.final_bankroll < starting * RUIN_THRESHOLD)
    return RoiDistribution(
        runs=runs,
        mean=statistics.fmean(rois),
        median=_percentile(rois, 0.5),
        std_dev=statistics.pstdev(rois),
        worst=rois[0],
        best=rois[-1],
        percentile_25=_percentile(rois, 0.25),
        percentile_75=_percentile(rois, 0.75),
        percentile_95=_percentile(rois, 0.95),
        probability_of_profit=profitable / runs,
        probability_of_ruin=ruined / runs,
    )


def run_monte_carlo(
    matches: Iterable[HistoricalMatch],
    config: BacktestConfig | None = None,
    n_simulations: int = 1_000,
    *,
    seed: int | None = None,
    rng: random.Random | None = None,
    executor: concurrent.futures.Executor | None = None,
    cancel_event: threading.Event | None = None,
    analyzer_settings: AnalyzerSettings | None = None,
) -> SimulationBatch:
    """Replay shuffled copies of ``matches`` and summarise the ROI spread.

    Every run gets its own seed, drawn up front from ``rng`` (or a generator
    seeded with ``seed``), so results do not depend on whether an
    ``executor`` is used.  Setting ``cancel_event`` stops the batch between
    runs and returns the completed prefix with ``cancelled=True``.
    """

    if n_simulations <= 0:
        raise InvalidInputError("n_simulations must be positive", field="n_simulations")
    config = config or BacktestConfig()
    settings = analyzer_settings or AnalyzerSettings()
    master = rng if rng is not None else random.Random(seed)
    seeds = [master.randrange(2**63) for _ in range(n_simulations)]
    prepared = [_prepare(match, config, settings) for match in matches]
    logger.info("Starting Monte Carlo batch of %d shuffled replays", n_simulations)

    reports: list[BacktestReport] = []
    cancelled = False
    if executor is None:
        for index, run_seed in enumerate(seeds):
            if cancel_event is not None and cancel_event.is_set():
                cancelled = True
                break
            reports.append(_shuffled_replay(prepared, config, run_seed))
            if (index + 1) % 100 == 0:
                logger.debug("Completed %d/%d replays", index + 1, n_simulations)
    else:
        futures: list[concurrent.futures.Future[BacktestReport]] = []
        for run_seed in seeds:
            if cancel_event is not None and cancel_event.is_set():
                cancelled = True
                break
            futures.append(executor.submit(_shuffled_replay, prepared, config, run_seed))
        for index, future in enumerate(futures):
            if cancel_event is not None and cancel_event.is_set():
                cancelled = True
                for pending in futures[index:]:
                    pending.cancel()
                break
            reports.append(future.result())

    if cancelled:
        logger.info("Monte Carlo batch cancelled after %d/%d replays", len(reports), n_simulations)
    distribution = _distribution(reports, config.starting_bankroll)
    logger.info(
        "Monte Carlo batch finished: mean ROI %.2f%%, profitable in %.1f%% of runs",
        distribution.mean,
        distribution.probability_of_profit * 100.0,
    )
    return SimulationBatch(
        config=config,
        requested=n_simulations,
        seeds=tuple(seeds[: len(reports)]),
        reports=tuple(reports),
        statistics=distribution,
        cancelled=cancelled,
    )


# ---------------------------------------------------------------------------
# Loading and export
# ---------------------------------------------------------------------------

_REQUIRED_COLUMNS = {
    "match_id",
    "kickoff",
    "home_team",
    "away_team",
    "home_goals",
    "away_goals",
}

_PRICE_COLUMNS = {
    "home": "price_home",
    "draw": "price_draw",
    "away": "price_away",
    "over": "price_over",
    "under": "price_under",
    "home_or_draw": "price_home_or_draw",
    "home_or_away": "price_home_or_away",
    "draw_or_away": "price_draw_or_away",
}


def _parse_kickoff(value: Any, match_id: str) -> dt.datetime:
    if isinstance(value, dt.datetime):
        return value
    if isinstance(value, dt.date):
        return dt.datetime.combine(value, dt.time())
    if isinstance(value, str):
        try:
            return dt.datetime.fromisoformat(value)
        except ValueError as exc:
            raise InvalidInputError(
                f"Unparseable kickoff {value!r}", field="kickoff", match_id=match_id
            ) from exc
    raise InvalidInputError(f"Missing kickoff {value!r}", field="kickoff", match_id=match_id)


def _row_to_match(row: Mapping[str, Any]) -> HistoricalMatch:
    match_id = str(row["match_id"])
    prices = {outcome: row.get(column) for outcome, column in _PRICE_COLUMNS.items()}
    estimate: OutcomeProbabilities | None = None
    triple = (
        row.get("home_win_probability"),
        row.get("draw_probability"),
        row.get("away_win_probability"),
    )
    if all(value is not None for value in triple):
        over = row.get("over_probability")
        if over is None:
            # Without an over figure the over/under market cannot be priced.
            prices["over"] = prices["under"] = None
            over = 0.5
        threshold = row.get("over_threshold")
        confidence = row.get("confidence")
        estimate = OutcomeProbabilities(
            home_win=float(triple[0]),  # type: ignore[arg-type]
            draw=float(triple[1]),  # type: ignore[arg-type]
            away_win=float(triple[2]),  # type: ignore[arg-type]
            over_probability=float(over),
            confidence=float(confidence) if confidence is not None else 0.7,
            over_threshold=float(threshold) if threshold is not None else 2.5,
        )
    return HistoricalMatch(
        match_id=match_id,
        kickoff=_parse_kickoff(row["kickoff"], match_id),
        home_team=str(row["home_team"]),
        away_team=str(row["away_team"]),
        home_goals=int(row["home_goals"]),
        away_goals=int(row["away_goals"]),
        estimate=estimate,
        prices=MarketPrices(**{key: _optional_float(value) for key, value in prices.items()}),
    )


def _optional_float(value: Any) -> float | None:
    if value is None:
        return None
    return float(value)


def load_historical_matches(path: str | Path) -> list[HistoricalMatch]:
    """Load a match history stored as CSV or Parquet files.

    Parameters
    ----------
    path:
        A single file or a directory of files sharing one schema.  Required
        columns are ``match_id``, ``kickoff``, team names and final goals;
        probability columns (``home_win_probability`` and friends) and
        ``price_<outcome>`` columns are optional.
    """

    target = Path(path)
    if not target.exists():
        raise FileNotFoundError(f"History path does not exist: {target}")

    files: list[Path]
    if target.is_file():
        files = [target]
    else:
        files = sorted(
            candidate
            for candidate in target.rglob("*")
            if candidate.suffix.lower() in {".csv", ".parquet"}
        )
    if not files:
        raise ValueError(f"No history files found under {target}")

    frames: list[pl.DataFrame] = []
    for file in files:
        if file.suffix.lower() == ".csv":
            frames.append(pl.read_csv(file, try_parse_dates=True))
        elif file.suffix.lower() == ".parquet":
            frames.append(pl.read_parquet(file))
        else:  # pragma: no cover - filtered above
            raise ValueError(f"Unsupported history format: {file.suffix}")
    frame = frames[0] if len(frames) == 1 else pl.concat(frames, how="vertical_relaxed")

    missing = _REQUIRED_COLUMNS.difference(frame.columns)
    if missing:
        raise ValueError(f"History missing required columns: {sorted(missing)}")
    return [_row_to_match(row) for row in frame.iter_rows(named=True)]


_BET_SCHEMA = {
    "match_id": pl.Utf8,
    "kickoff": pl.Utf8,
    "market": pl.Utf8,
    "outcome": pl.Utf8,
    "price": pl.Float64,
    "model_probability": pl.Float64,
    "edge_pct": pl.Float64,
    "stake_fraction": pl.Float64,
    "stake": pl.Float64,
    "won": pl.Boolean,
    "profit": pl.Float64,
    "balance_before": pl.Float64,
    "balance_after": pl.Float64,
}

_EQUITY_SCHEMA = {
    "index": pl.Int64,
    "match_id": pl.Utf8,
    "kickoff": pl.Utf8,
    "balance": pl.Float64,
}

_RUN_SCHEMA = {
    "run": pl.Int64,
    "seed": pl.UInt64,
    "roi": pl.Float64,
    "final_bankroll": pl.Float64,
    "total_bets": pl.Int64,
    "win_rate": pl.Float64,
    "max_drawdown_pct": pl.Float64,
    "sharpe_ratio": pl.Float64,
    "stop_reason": pl.Utf8,
}


def bets_to_frame(bets: Sequence[BetRecord]) -> pl.DataFrame:
    rows = [
        {**dataclasses.asdict(bet), "kickoff": bet.kickoff.isoformat()} for bet in bets
    ]
    return pl.DataFrame(rows, schema=_BET_SCHEMA)


def equity_to_frame(points: Sequence[EquityPoint]) -> pl.DataFrame:
    rows = [
        {
            "index": point.index,
            "match_id": point.match_id,
            "kickoff": point.kickoff.isoformat() if point.kickoff is not None else None,
            "balance": point.balance,
        }
        for point in points
    ]
    return pl.DataFrame(rows, schema=_EQUITY_SCHEMA)


def batch_to_frame(batch: SimulationBatch) -> pl.DataFrame:
    """One row per completed replay, in run order."""

    rows = [
        {
            "run": index,
            "seed": seed,
            "roi": report.roi,
            "final_bankroll": report.final_bankroll,
            "total_bets": report.total_bets,
            "win_rate": report.win_rate,
            "max_drawdown_pct": report.max_drawdown_pct,
            "sharpe_ratio": report.sharpe_ratio,
            "stop_reason": report.stop_reason.value if report.stop_reason else None,
        }
        for index, (seed, report) in enumerate(zip(batch.seeds, batch.reports))
    ]
    return pl.DataFrame(rows, schema=_RUN_SCHEMA)


def persist_backtest_report(
    report: BacktestReport,
    output_dir: str | Path,
    *,
    bets_filename: str = "bets.csv",
    equity_filename: str = "equity_curve.csv",
    summary_filename: str = "summary.json",
) -> BacktestArtifacts:
    """Write the bet list and equity curve as CSV plus a JSON summary."""

    destination = Path(output_dir)
    destination.mkdir(parents=True, exist_ok=True)
    bets_path = destination / bets_filename
    equity_path = destination / equity_filename
    summary_path = destination / summary_filename

    bets_to_frame(report.bets).write_csv(bets_path)
    equity_to_frame(report.equity_curve).write_csv(equity_path)
    summary_path.write_text(report.to_json(include_series=False), encoding="utf-8")
    return BacktestArtifacts(
        report=report,
        bets_path=bets_path,
        equity_path=equity_path,
        summary_path=summary_path,
    )


def persist_simulation_batch(
    batch: SimulationBatch,
    output_dir: str | Path,
    *,
    runs_filename: str = "simulations.csv",
    summary_filename: str = "simulation_summary.json",
) -> SimulationArtifacts:
    destination = Path(output_dir)
    destination.mkdir(parents=True, exist_ok=True)
    runs_path = destination / runs_filename
    summary_path = destination / summary_filename

    batch_to_frame(batch).write_csv(runs_path)
    summary = {
        "config": _jsonable(batch.config),
        "requested": batch.requested,
        "completed": batch.completed,
        "cancelled": batch.cancelled,
        "statistics": _jsonable(batch.statistics),
    }
    summary_path.write_text(json.dumps(summary, indent=2, sort_keys=True), encoding="utf-8")
    return SimulationArtifacts(batch=batch, runs_path=runs_path, summary_path=summary_path)
