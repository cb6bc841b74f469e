"""CLI interface for agentspend."""

import json
import logging
import time

import click
import uvicorn
from rich.console import Console
from rich.live import Live
from rich.table import Table

from . import __version__
from .config import MAX_LATEST_RECORDS, MAX_TREND_DAYS, RETENTION_DAYS, Settings
from .runtime import MeterRuntime

console = Console()


def _runtime(**kwargs) -> MeterRuntime:
    return MeterRuntime.from_settings(Settings.from_env(), **kwargs)


@click.group()
@click.version_option(__version__)
@click.option("--log-level", default="warning", type=click.Choice(["debug", "info", "warning", "error"]))
def cli(log_level):
    """agentspend - cost metering and budget alerts for agent runtimes."""
    logging.basicConfig(
        level=getattr(logging, log_level.upper()),
        format="%(asctime)s [%(name)s] %(levelname)s: %(message)s",
    )


@cli.command()
@click.option("--host", default=None, help="Dashboard host")
@click.option("--port", default=None, type=int, help="Dashboard port")
def serve(host, port):
    """Start the read-only dashboard API."""
    from .dashboard_app import create_dashboard_app

    runtime = _runtime()
    host = host or runtime.settings.dashboard_host
    port = port or runtime.settings.dashboard_port
    console.print(f"[bold green]agentspend v{__version__}[/]")
    console.print(f"  Dashboard: http://{host}:{port}")
    console.print(f"  Data:      {runtime.settings.data_dir}")
    console.print()
    uvicorn.run(create_dashboard_app(runtime), host=host, port=port)


@cli.command()
def check():
    """Show spend for today, this week and this month."""
    click.echo(_runtime().run_tool("spend_check"))


@cli.command()
def breakdown():
    """Show where today's money went."""
    click.echo(_runtime().run_tool("spend_breakdown"))


@cli.command()
def budget():
    """Show budget status, projections and suggestions."""
    click.echo(_runtime().run_tool("spend_budget"))


@cli.command()
@click.option("--days", "-d", default=7, type=click.IntRange(1, MAX_TREND_DAYS), help="Number of days")
def trend(days):
    """Show daily cost for the trailing N days."""
    points = _runtime().query.trend(days)

    table = Table(show_header=True, header_style="bold cyan")
    table.add_column("Date", style="white")
    table.add_column("Runs", justify="right")
    table.add_column("Cost", justify="right", style="yellow")
    for point in points:
        table.add_row(point.date, str(point.records), f"${point.cost:.4f}" if point.records else "-")

    table.add_section()
    table.add_row(
        "[bold]TOTAL[/]",
        f"[bold]{sum(p.records for p in points)}[/]",
        f"[bold yellow]${sum(p.cost for p in points):.4f}[/]",
    )
    console.print(table)


def _records_table(records) -> Table:
    t = Table(show_header=True, header_style="bold cyan")
    t.add_column("Time", style="dim")
    t.add_column("Session")
    t.add_column("Type")
    t.add_column("Model")
    t.add_column("In", justify="right")
    t.add_column("Out", justify="right")
    t.add_column("Cost", justify="right", style="yellow")
    for r in records:
        type_style = "magenta" if r.is_subagent else "blue"
        t.add_row(
            time.strftime("%H:%M:%S", time.gmtime(r.ts)),
            r.session_key,
            f"[{type_style}]{r.trace_type}[/]",
            r.model,
            f"{r.input_tokens:,}",
            f"{r.output_tokens:,}",
            f"${r.cost:.4f}",
        )
    return t


@cli.command()
@click.option("--limit", "-n", default=20, type=click.IntRange(1, MAX_LATEST_RECORDS), help="Number of records")
@click.option("--follow", "-f", is_flag=True, help="Keep refreshing")
def tail(limit, follow):
    """Show today's most recent records."""
    runtime = _runtime()
    if not follow:
        console.print(_records_table(runtime.query.latest(limit)))
        return
    try:
        with Live(console=console, refresh_per_second=1) as live:
            while True:
                # Another process owns the writes; re-read today's log each refresh.
                runtime.store.init()
                live.update(_records_table(runtime.query.latest(limit)))
                time.sleep(2)
    except KeyboardInterrupt:
        pass


@cli.command()
@click.argument("event_file", type=click.File("r"))
@click.option("--session-key", "-s", default="agent:main:main", help="Session key of the turn")
def ingest(event_file, session_key):
    """Meter a completion event read from a JSON file."""
    runtime = _runtime(background_delivery=False)
    try:
        event = json.load(event_file)
    except json.JSONDecodeError as e:
        raise click.ClickException(f"Invalid event JSON: {e}")

    record = runtime.on_agent_end(event, {"sessionKey": session_key})
    if record is None:
        console.print("[yellow]No record produced from event[/]")
        return
    console.print(
        f"[green]Recorded[/] {record.model} in={record.input_tokens:,} out={record.output_tokens:,} "
        f"cost=${record.cost:.6f} ({record.cost_source})"
    )


@cli.command()
@click.option("--days", default=RETENTION_DAYS, type=click.IntRange(min=1), help="Retention window in days")
def cleanup(days):
    """Delete raw record logs older than the retention window."""
    deleted = _runtime().store.cleanup_retention(days)
    console.print(f"[green]Deleted {deleted} record file(s) older than {days} days.[/]")
