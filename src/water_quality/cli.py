"""
Command-line interface for the water quality pipeline.

This module provides the main CLI entry points using Click.

Commands:
- db-init: Initialize database
- db-stats: Show database statistics
- submit: Submit one half-reading and try to pair it
- sweep: Delete expired, unmatched buffer entries
- buffer-status: Show buffer occupancy
- incomplete: Report old unmatched entries
- readings: List recent complete readings
- alerts: List alerts
- sensor: Show the latest value of a physical sensor
- health-check: Check configuration and database

Example:
    $ water-quality --help
    $ water-quality submit --facility plant-7 --side inlet --device dev-1 \\
        --ph 7.2 --tds 450 --turbidity 25 --temperature 28
    $ water-quality buffer-status --facility plant-7
"""

from __future__ import annotations

import json
import threading
from pathlib import Path
from typing import Any

import click
from rich.console import Console
from rich.table import Table

from water_quality import __version__
from water_quality.config import get_settings, load_settings
from water_quality.exceptions import ValidationError, WaterQualityError
from water_quality.ingest import ReadingPipeline
from water_quality.models import AlertStatus, SubmissionResult
from water_quality.storage import SQLiteStorage, open_storage
from water_quality.utils.logging import configure_from_settings, get_logger

console = Console()

SEVERITY_STYLES = {
    "low": "cyan",
    "medium": "yellow",
    "high": "red",
    "critical": "bold red",
}


def _fail(ctx: click.Context, error: WaterQualityError) -> None:
    console.print(f"[red]Error:[/red] {error}")
    for detail in getattr(error, "errors", []):
        console.print(f"  - {detail}")
    ctx.exit(1)


def _parse_sensor_options(values: tuple[str, ...]) -> dict[str, str]:
    mapping: dict[str, str] = {}
    for item in values:
        key, sep, sensor_id = item.partition("=")
        if not sep or not key or not sensor_id:
            raise click.BadParameter(f"expected KEY=SENSOR_ID, got {item!r}", param_hint="--sensor")
        mapping[key] = sensor_id
    return mapping


@click.group()
@click.version_option(version=__version__, prog_name="water-quality")
@click.option(
    "--config",
    "-c",
    type=click.Path(exists=True, path_type=Path),
    help="Configuration file path",
)
@click.option(
    "--verbose",
    "-v",
    is_flag=True,
    help="Enable verbose output",
)
@click.pass_context
def main(ctx: click.Context, config: Path | None, verbose: bool) -> None:
    """Water Quality Pipeline CLI.

    Reconcile inlet/outlet telemetry, score treatment quality and
    manage the pending-reading buffer.
    """
    ctx.ensure_object(dict)

    try:
        settings = load_settings(config) if config else get_settings()
    except WaterQualityError as e:
        _fail(ctx, e)
        return

    ctx.obj["settings"] = settings
    ctx.obj["verbose"] = verbose

    configure_from_settings(settings.logging, verbose=verbose)


@main.command("db-init")
@click.pass_context
def db_init(ctx: click.Context) -> None:
    """Initialize the database schema.

    Creates all tables, indexes, and views if they don't exist.
    Safe to run multiple times.
    """
    settings = ctx.obj["settings"]
    logger = get_logger(__name__)

    db_path = settings.database_path
    console.print(f"Initializing database: [cyan]{db_path}[/cyan]")

    try:
        storage = open_storage(settings)
    except WaterQualityError as e:
        _fail(ctx, e)
        return

    logger.info("database_initialized", path=str(db_path))
    console.print("[green]✓[/green] Database initialized successfully")
    storage.close()


@main.command("db-stats")
@click.pass_context
def db_stats(ctx: click.Context) -> None:
    """Show database statistics."""
    settings = ctx.obj["settings"]
    db_path = settings.database_path

    if not db_path.exists():
        console.print(f"[red]Database not found:[/red] {db_path}")
        console.print("Run 'water-quality db-init' to create it.")
        return

    with SQLiteStorage(db_path) as storage:
        stats = storage.get_stats()

    table = Table(title="Database Statistics")
    table.add_column("Metric", style="cyan")
    table.add_column("Value", justify="right")

    table.add_row("Database Path", str(db_path))
    table.add_row("File Size", f"{stats.get('file_size_mb', 0):.2f} MB")
    table.add_row("Schema Version", str(stats.get("schema_version")))
    table.add_row("", "")
    table.add_row("Pending Entries", f"{stats.get('pending_entries_count', 0):,}")
    table.add_row("Complete Readings", f"{stats.get('complete_readings_count', 0):,}")
    table.add_row("Alerts", f"{stats.get('alerts_count', 0):,}")
    table.add_row("Active Alerts", f"{stats.get('active_alerts', 0):,}")
    table.add_row("Indexed Sensors", f"{stats.get('sensor_index_count', 0):,}")

    console.print(table)


def _print_submission(result: SubmissionResult) -> None:
    if not result.merged:
        console.print(f"[yellow]Buffered[/yellow] entry [cyan]{result.entry_id}[/cyan]")
        console.print(result.message)
        return

    analysis = result.quality_analysis
    console.print(f"[green]✓[/green] Reading [cyan]{result.reading_id}[/cyan] complete")
    if analysis is None:
        return

    console.print(f"Score: [bold]{analysis.score}[/bold] ({analysis.status.value})")

    if analysis.violations:
        table = Table(title="Violations")
        table.add_column("Parameter", style="cyan")
        table.add_column("Location")
        table.add_column("Condition")
        table.add_column("Value", justify="right")
        table.add_column("Threshold", justify="right")
        table.add_column("Severity")
        for v in analysis.violations:
            style = SEVERITY_STYLES[v.severity.value]
            table.add_row(
                v.parameter,
                v.location.value,
                v.condition.value,
                f"{v.value:g}",
                f"{v.threshold:g}",
                f"[{style}]{v.severity.value}[/{style}]",
            )
        console.print(table)

    for rec in analysis.recommendations:
        console.print(f"- [{rec.priority.value}] {rec.message}")


@main.command("submit")
@click.option("--facility", "facility_id", help="Facility identifier")
@click.option("--side", type=click.Choice(["inlet", "outlet"]), help="Which half this is")
@click.option("--device", "device_id", help="Submitting device")
@click.option("--ph", type=float)
@click.option("--tds", type=float)
@click.option("--turbidity", type=float)
@click.option("--temperature", type=float)
@click.option(
    "--sensor",
    "sensors",
    multiple=True,
    help="Sensor mapping entry KEY=SENSOR_ID (repeatable)",
)
@click.option(
    "--payload",
    type=click.Path(exists=True, dir_okay=False, path_type=Path),
    help="JSON file with the full submission (overrides other options)",
)
@click.option("--json", "as_json", is_flag=True, help="Print the result as JSON")
@click.pass_context
def submit(
    ctx: click.Context,
    facility_id: str | None,
    side: str | None,
    device_id: str | None,
    ph: float | None,
    tds: float | None,
    turbidity: float | None,
    temperature: float | None,
    sensors: tuple[str, ...],
    payload: Path | None,
    as_json: bool,
) -> None:
    """Submit one half-reading and try to pair it."""
    settings = ctx.obj["settings"]

    data: dict[str, Any]
    if payload is not None:
        try:
            data = json.loads(payload.read_text())
        except json.JSONDecodeError as e:
            _fail(ctx, ValidationError(f"Invalid JSON in {payload}", errors=[str(e)]))
            return
        if not isinstance(data, dict):
            _fail(ctx, ValidationError(f"Payload {payload} must be a JSON object"))
            return
    else:
        params = {"ph": ph, "tds": tds, "turbidity": turbidity, "temperature": temperature}
        data = {
            "facility_id": facility_id,
            "side": side,
            "device_id": device_id,
            "parameters": {k: v for k, v in params.items() if v is not None},
            "sensor_mapping": _parse_sensor_options(sensors),
        }

    try:
        with ReadingPipeline.from_settings(settings) as pipeline:
            result = pipeline.submit_reading(
                data.get("facility_id"),  # type: ignore[arg-type]
                data.get("side"),  # type: ignore[arg-type]
                data.get("device_id"),  # type: ignore[arg-type]
                data.get("parameters") or {},
                data.get("sensor_mapping"),
            )
    except WaterQualityError as e:
        _fail(ctx, e)
        return

    if as_json:
        click.echo(result.model_dump_json(indent=2))
    else:
        _print_submission(result)


@main.command("sweep")
@click.option(
    "--interval",
    type=float,
    help="Keep sweeping every N seconds until interrupted",
)
@click.pass_context
def sweep(ctx: click.Context, interval: float | None) -> None:
    """Delete expired, never-merged buffer entries."""
    settings = ctx.obj["settings"]

    try:
        pipeline = ReadingPipeline.from_settings(settings)
    except WaterQualityError as e:
        _fail(ctx, e)
        return

    with pipeline:
        if interval is None:
            result = pipeline.sweep_expired_buffer()
            console.print(f"[green]✓[/green] Deleted {result.deleted} expired entries")
            return

        stop = threading.Event()
        console.print(f"Sweeping every {interval:g}s (Ctrl+C to stop)")
        try:
            total = pipeline.janitor.run_periodic(interval, stop)
        except KeyboardInterrupt:
            stop.set()
            console.print("[yellow]Stopped[/yellow]")
            return
        console.print(f"Deleted {total} expired entries")


@main.command("buffer-status")
@click.option("--facility", "facility_id", help="Limit to one facility")
@click.pass_context
def buffer_status(ctx: click.Context, facility_id: str | None) -> None:
    """Show pending-entry buffer occupancy."""
    settings = ctx.obj["settings"]

    with open_storage(settings) as storage:
        status = storage.buffer_status(facility_id)

    table = Table(title=f"Buffer Status ({facility_id or 'all facilities'})")
    table.add_column("Metric", style="cyan")
    table.add_column("Count", justify="right")

    table.add_row("Total", f"{status.total:,}")
    table.add_row("Merged", f"{status.merged:,}")
    table.add_row("Unmerged", f"{status.unmerged:,}")
    for side, count in status.by_side.items():
        table.add_row(f"  {side}", f"{count:,}")

    console.print(table)


@main.command("incomplete")
@click.option("--facility", "facility_id", help="Limit to one facility")
@click.pass_context
def incomplete(ctx: click.Context, facility_id: str | None) -> None:
    """Report unmatched entries older than the incomplete-reading window."""
    settings = ctx.obj["settings"]

    with ReadingPipeline.from_settings(settings) as pipeline:
        report = pipeline.check_incomplete_readings(facility_id)

    if not report.has_incomplete:
        console.print("[green]No incomplete readings[/green]")
        return

    table = Table(title=f"Incomplete Readings ({report.count})")
    table.add_column("Entry", style="cyan")
    table.add_column("Facility")
    table.add_column("Side")
    table.add_column("Device")
    table.add_column("Received")

    for entry in report.entries:
        table.add_row(
            entry.id or "",
            entry.facility_id,
            entry.side.value,
            entry.device_id,
            entry.received_at.strftime("%Y-%m-%d %H:%M:%S"),
        )

    console.print(table)


@main.command("readings")
@click.option("--facility", "facility_id", help="Limit to one facility")
@click.option("--limit", type=int, default=20, show_default=True)
@click.pass_context
def readings(ctx: click.Context, facility_id: str | None, limit: int) -> None:
    """List recent complete readings."""
    settings = ctx.obj["settings"]

    with open_storage(settings) as storage:
        rows = storage.list_readings(facility_id=facility_id, limit=limit)

    if not rows:
        console.print("[yellow]No readings[/yellow]")
        return

    table = Table(title="Recent Readings")
    table.add_column("Reading", style="cyan")
    table.add_column("Facility")
    table.add_column("Observed")
    table.add_column("Score", justify="right")
    table.add_column("Status")
    table.add_column("Violations", justify="right")

    for reading in rows:
        analysis = reading.quality_analysis
        table.add_row(
            reading.id,
            reading.facility_id,
            reading.observed_at.strftime("%Y-%m-%d %H:%M:%S"),
            str(analysis.score),
            analysis.status.value,
            str(len(analysis.violations)),
        )

    console.print(table)


@main.command("alerts")
@click.option("--facility", "facility_id", help="Limit to one facility")
@click.option(
    "--status",
    type=click.Choice([s.value for s in AlertStatus]),
    help="Filter by alert status",
)
@click.option("--limit", type=int, default=50, show_default=True)
@click.pass_context
def alerts(ctx: click.Context, facility_id: str | None, status: str | None, limit: int) -> None:
    """List alerts, newest first."""
    settings = ctx.obj["settings"]

    with open_storage(settings) as storage:
        rows = storage.list_alerts(
            facility_id=facility_id,
            status=AlertStatus(status) if status else None,
            limit=limit,
        )

    if not rows:
        console.print("[green]No alerts[/green]")
        return

    table = Table(title="Alerts")
    table.add_column("Created")
    table.add_column("Facility", style="cyan")
    table.add_column("Rule")
    table.add_column("Value", justify="right")
    table.add_column("Severity")
    table.add_column("Status")

    for alert in rows:
        style = SEVERITY_STYLES[alert.severity.value]
        table.add_row(
            alert.created_at.strftime("%Y-%m-%d %H:%M:%S"),
            alert.facility_id,
            alert.rule,
            f"{alert.value:g}",
            f"[{style}]{alert.severity.value}[/{style}]",
            alert.status.value,
        )

    console.print(table)


@main.command("sensor")
@click.argument("sensor_id")
@click.pass_context
def sensor(ctx: click.Context, sensor_id: str) -> None:
    """Show the latest value reported by a physical sensor."""
    settings = ctx.obj["settings"]

    with ReadingPipeline.from_settings(settings) as pipeline:
        value = pipeline.latest_sensor_value(sensor_id)

    if value is None:
        console.print(f"[yellow]No readings for sensor[/yellow] {sensor_id}")
        return

    console.print(
        f"[cyan]{sensor_id}[/cyan] {value.facility_id} {value.side.value} "
        f"{value.parameter} = [bold]{value.value:g}[/bold] "
        f"at {value.observed_at:%Y-%m-%d %H:%M:%S} (reading {value.reading_id})"
    )


@main.command("health-check")
@click.pass_context
def health_check(ctx: click.Context) -> None:
    """Run system health check."""
    import sys

    settings = ctx.obj["settings"]

    console.print("[bold]System Health Check[/bold]")
    console.print()
    console.print(f"Python: [green]{sys.version.split()[0]}[/green]")

    db_path = settings.database_path
    if db_path.exists():
        with SQLiteStorage(db_path) as storage:
            stats = storage.get_stats()
        console.print(
            f"Database: [green]OK[/green] "
            f"({stats.get('complete_readings_count', 0):,} readings, "
            f"{stats.get('pending_entries_count', 0):,} pending)"
        )
    else:
        console.print("Database: [yellow]Not initialized[/yellow]")

    buffer_cfg = settings.buffer
    console.print(
        f"Merge window: {buffer_cfg.merge_window_minutes:g} min, "
        f"incomplete after: {buffer_cfg.incomplete_after_minutes:g} min"
    )

    notify_cfg = settings.notifications
    if notify_cfg.enabled:
        console.print(f"Notifications: [green]{notify_cfg.gateway}[/green]")
    else:
        console.print("Notifications: [yellow]Disabled[/yellow]")

    console.print()
    console.print("[green]Health check complete[/green]")


if __name__ == "__main__":
    main()
