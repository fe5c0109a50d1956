"""Logwarden CLI — entry point.

Commands:
    logwarden parse  <query>          Show the tokens a query compiles to
    logwarden search <file> <query>   Filter an NDJSON log file with a query
    logwarden run    <file>           Evaluate stored alerts against a log file
"""
from __future__ import annotations

import json
import logging
from dataclasses import asdict
from pathlib import Path
from typing import Any

import click
from rich import box
from rich.console import Console
from rich.table import Table

from .config import settings
from .query.parser import parse as parse_query
from .query.tokens import Token, is_exclusion, to_query
from .store.ndjson import NdjsonReader
from .store.records import LogRecord

console = Console()
err_console = Console(stderr=True)

# ── Helpers ─────────────────────────────────────────────────────────────────


def _level_colour(level: str) -> str:
    return {
        "error": "red",
        "warning": "yellow",
        "debug": "dim",
        "info": "green",
    }.get(level.lower(), "white")


def _token_row(token: Token) -> tuple[str, str, str, str]:
    """Return (kind, field, operator, value) strings for a token."""
    data: dict[str, Any] = asdict(token)
    kind = type(token).__name__
    field = data.get("key") or {
        "LevelFilter": "level",
        "ExcludeLevelFilter": "level",
        "TimestampFilter": "timestamp",
        "ExcludeTimestampFilter": "timestamp",
        "SourceFilter": "source",
        "ExcludeSourceFilter": "source",
    }.get(kind, "")
    operator = data.get("operator")
    value = next(
        (data[k] for k in ("text", "value", "level", "instant", "pattern") if k in data),
        "",
    )
    op = getattr(operator, "value", "") if operator is not None else ""
    return kind, str(field), op, value.isoformat() if hasattr(value, "isoformat") else str(value)


def _token_json(token: Token) -> dict[str, Any]:
    kind, field, op, value = _token_row(token)
    return {"type": kind, "field": field or None, "operator": op or None, "value": value}


# ── CLI root ─────────────────────────────────────────────────────────────────


@click.group()
@click.version_option(version="1.0.0", prog_name="logwarden")
@click.option("--log-level", default=None, help="Logging level (default: LOGWARDEN_LOG_LEVEL).")
def main(log_level: str | None) -> None:
    """logwarden — log search queries and alert evaluation."""
    logging.basicConfig(
        level=(log_level or settings.log_level).upper(),
        format="%(asctime)s %(levelname)-8s %(name)s: %(message)s",
    )


# ── parse ────────────────────────────────────────────────────────────────────


@main.command()
@click.argument("query")
@click.option("--json", "as_json", is_flag=True, help="Emit tokens as JSON.")
def parse(query: str, as_json: bool) -> None:
    """Compile QUERY and show the resulting tokens.

    \b
    Examples:
      logwarden parse 'error user_id:123 -debug'
      logwarden parse 'level:warn timestamp:>=-1h source:api' --json
    """
    tokens = parse_query(query)
    if as_json:
        click.echo(json.dumps([_token_json(t) for t in tokens]))
        return
    if not tokens:
        err_console.print("[yellow]Query compiles to no tokens (matches everything).[/yellow]")
        return

    tbl = Table(title="Tokens", box=box.ROUNDED, highlight=True)
    for col in ("#", "kind", "field", "op", "value"):
        tbl.add_column(col, overflow="fold")
    for i, token in enumerate(tokens, start=1):
        style = "red" if is_exclusion(token) else ""
        tbl.add_row(str(i), *_token_row(token), style=style)
    console.print(tbl)
    console.print(f"[dim]canonical: {to_query(tokens)}[/dim]")


# ── search ───────────────────────────────────────────────────────────────────


@main.command()
@click.argument("file", type=click.Path(exists=True, path_type=Path))
@click.argument("query")
@click.option("--limit", "-n", default=0, type=int, help="Max records to display (0 = all).")
@click.option(
    "--output", "-o", "output_fmt", default="table",
    type=click.Choice(["table", "json"], case_sensitive=False),
    help="Output format.",
    show_default=True,
)
def search(file: Path, query: str, limit: int, output_fmt: str) -> None:
    """Filter an NDJSON log FILE with a search QUERY.

    \b
    Examples:
      logwarden search app.ndjson 'level:error -source:cron'
      logwarden search app.ndjson 'duration_ms:>500' -o json -n 20
    """
    store = NdjsonReader().load(str(file))
    matches: list[LogRecord] = store.search(parse_query(query), limit=limit or None)

    if output_fmt == "json":
        for record in matches:
            click.echo(json.dumps(record.to_dict(), default=str))
        err_console.print(f"[dim]{len(matches)} of {len(store)} records matched[/dim]")
        return

    if not matches:
        err_console.print("[yellow]No matching records.[/yellow]")
        return

    tbl = Table(title=file.name, box=box.ROUNDED, highlight=True)
    for col in ("id", "timestamp", "level", "source", "message"):
        tbl.add_column(col, overflow="fold", max_width=70)
    for record in matches:
        colour = _level_colour(record.level)
        tbl.add_row(
            str(record.id),
            record.timestamp.isoformat(),
            f"[{colour}]{record.level}[/{colour}]",
            record.source,
            record.message,
        )
    console.print(tbl)
    console.print(f"[dim]{len(matches)} of {len(store)} records matched[/dim]")


# ── run ──────────────────────────────────────────────────────────────────────


@main.command()
@click.argument("file", type=click.Path(exists=True, path_type=Path))
@click.option("--redis-url", default=None, help="Alert store URL (default: LOGWARDEN_REDIS_URL).")
@click.option("--once", is_flag=True, help="Run a single tick and exit.")
@click.option("--interval", default=None, type=float, help="Seconds between ticks.")
def run(file: Path, redis_url: str | None, once: bool, interval: float | None) -> None:
    """Evaluate the alerts stored in Redis against an NDJSON log FILE.

    Lines appended to FILE while running are picked up on the next tick.
    Ctrl-C lets the tick in progress finish before exiting.
    """
    from .alerts.redis_store import RedisAlertStore
    from .engine.evaluator import Evaluator, TickReport
    from .engine.scheduler import Scheduler
    from .notify.dispatcher import Dispatcher
    from .store.ndjson import NdjsonFileStore

    alerts = RedisAlertStore(url=redis_url or settings.redis_url, prefix=settings.redis_prefix)
    if not alerts.ping():
        err_console.print("[red]Alert store is unreachable.[/red]")
        raise SystemExit(1)

    period = interval if interval is not None else settings.evaluation_interval
    evaluator = Evaluator(NdjsonFileStore(file), alerts, Dispatcher())
    scheduler = Scheduler(evaluator, interval=period, run_immediately=True)

    def _show(report: TickReport | None) -> None:
        if report is None or report.load_error is not None:
            err_console.print(
                f"[red]Tick failed ({scheduler.consecutive_failures} in a row)[/red]"
            )
            return
        tbl = Table(title=f"tick @ {report.started_at.isoformat()}", box=box.SIMPLE_HEAVY)
        tbl.add_column("alert", style="cyan")
        tbl.add_column("outcome")
        for alert_id, outcome in report.outcomes.items():
            tbl.add_row(str(alert_id), outcome.value)
        console.print(tbl)

    scheduler.on_tick(_show)
    if once:
        scheduler.run_once()
        return

    import time

    console.print(f"[dim]Evaluating every {period}s (Ctrl-C to stop)[/dim]")
    scheduler.start()
    try:
        while scheduler.running:
            time.sleep(0.5)
    except KeyboardInterrupt:
        console.print("\n[dim]Stopping after the current tick…[/dim]")
    finally:
        scheduler.stop()
    console.print("[dim]Stopped.[/dim]")
