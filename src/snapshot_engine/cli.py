"""CLI entry point for the snapshot engine."""

from __future__ import annotations

import json
from pathlib import Path
from typing import Any

import click

from .core.config import SnapshotSettings, load_settings
from .core.errors import ConfigError, DataError, SnapshotCancelled
from .core.models import DateRange, SnapshotFilters
from .observability.logger import setup_logging

EXIT_CANCELLED = 130


def _load_records(path: str | None, key: str) -> list[dict[str, Any]] | None:
    """Read a JSON array, or an object holding the array under *key*."""
    if path is None:
        return None
    with open(Path(path), encoding="utf-8") as f:
        data = json.load(f)
    if isinstance(data, dict):
        data = data.get(key, [])
    if not isinstance(data, list):
        raise click.BadParameter(f"{path}: expected a JSON array of records")
    return data


def _filters(date_from: str | None, date_to: str | None, strategies: tuple[str, ...]) -> SnapshotFilters:
    date_range = None
    if date_from or date_to:
        date_range = DateRange(from_=date_from, to=date_to)
    return SnapshotFilters(date_range=date_range, strategies=strategies or None)


def _run_snapshot(
    ctx: click.Context,
    trades_path: str,
    daily_log_path: str | None,
    date_from: str | None,
    date_to: str | None,
    strategies: tuple[str, ...],
    one_lot: bool,
    timeout: float | None,
):
    import asyncio

    from .core.cancellation import CancelToken
    from .snapshot import build_snapshot

    settings: SnapshotSettings = ctx.obj
    trades = _load_records(trades_path, "trades")
    daily_logs = _load_records(daily_log_path, "dailyLogs")

    async def run():
        token = CancelToken()
        handle = None
        if timeout is not None:
            handle = asyncio.get_running_loop().call_later(timeout, token.cancel, "timeout")
        try:
            return await build_snapshot(
                trades,
                daily_logs,
                filters=_filters(date_from, date_to, strategies),
                normalize_to_one_lot=one_lot or settings.normalize_to_one_lot,
                cancel_token=token,
                settings=settings,
            )
        finally:
            if handle is not None:
                handle.cancel()

    try:
        return asyncio.run(run())
    except SnapshotCancelled:
        ctx.exit(EXIT_CANCELLED)
    except DataError as exc:
        raise click.ClickException(str(exc)) from exc


def _snapshot_options(func):
    options = [
        click.option("--trades", "trades_path", required=True, type=click.Path(exists=True, dir_okay=False),
                     help="Trade records JSON file"),
        click.option("--daily-log", "daily_log_path", default=None, type=click.Path(exists=True, dir_okay=False),
                     help="Daily account log JSON file"),
        click.option("--from", "date_from", default=None, help="First open date (YYYY-MM-DD)"),
        click.option("--to", "date_to", default=None, help="Last open date (YYYY-MM-DD)"),
        click.option("--strategy", "strategies", multiple=True, help="Restrict to a strategy (repeatable)"),
        click.option("--one-lot", is_flag=True, default=False, help="Normalize trades to one contract"),
        click.option("--timeout", default=None, type=float, help="Cancel the run after N seconds"),
    ]
    for option in reversed(options):
        func = option(func)
    return func


@click.group()
@click.option("--config", default=None, help="Config file path")
@click.option("--log-level", default=None, help="Override log level")
@click.option("--log-format", default=None, type=click.Choice(["console", "json"]), help="Log renderer")
@click.pass_context
def main(ctx: click.Context, config: str | None, log_level: str | None, log_format: str | None) -> None:
    """Trade Snapshot Engine."""
    try:
        settings = load_settings(config_path=config)
    except ConfigError as exc:
        raise click.ClickException(str(exc)) from exc

    setup_logging(
        level=log_level or settings.observability.log_level,
        format=log_format or settings.observability.log_format,
    )
    ctx.obj = settings


@main.command()
@_snapshot_options
@click.pass_context
def summary(ctx: click.Context, **kwargs: Any) -> None:
    """Print portfolio statistics and series sizes."""
    snapshot = _run_snapshot(ctx, **kwargs)
    stats = snapshot.portfolio_stats
    chart = snapshot.chart_data

    for name, value in vars(stats).items():
        click.echo(f"{name}: {value}")
    click.echo(f"equity_source: {chart.equity_source}")
    click.echo(f"equity_points: {len(chart.equity_curve)}")
    click.echo(f"rolling_points: {len(chart.rolling_metrics)}")
    click.echo(f"streaks: {len(chart.streak_data.streaks)}")
    click.echo(f"mfe_mae_points: {len(chart.mfe_mae_data)}")


@main.command()
@_snapshot_options
@click.pass_context
def equity(ctx: click.Context, **kwargs: Any) -> None:
    """Print the equity curve, one point per line."""
    snapshot = _run_snapshot(ctx, **kwargs)
    for point, dd in zip(snapshot.chart_data.equity_curve, snapshot.chart_data.drawdown_data):
        click.echo(
            f"{point.date.isoformat()}  {point.equity:.2f}  "
            f"hwm={point.high_water_mark:.2f}  dd={dd.drawdown_pct:.2f}%  trades={point.trade_number}"
        )


if __name__ == "__main__":
    main()
