"""CLI entrypoint for quake-reconcile."""

from __future__ import annotations

import asyncio
import json
import logging
from datetime import datetime, timedelta, timezone

import click
from rich.console import Console
from rich.table import Table

from quake_reconcile.clients import static_fetcher
from quake_reconcile.sources import SOURCES, enabled_sources

console = Console()


def _mag_color(mag: float) -> str:
    if mag >= 5.0:
        return "red"
    if mag >= 3.0:
        return "yellow"
    return "green"


def _catalog(dsn: str | None, fetchers=None):
    from quake_reconcile.db import PostgresEventStore
    from quake_reconcile.service import QuakeCatalog
    return QuakeCatalog(PostgresEventStore(dsn), fetchers)


@click.group()
@click.option("--dsn", envvar="DATABASE_URL", default=None, help="PostgreSQL DSN.")
@click.option("-v", "--verbose", is_flag=True, help="Debug logging.")
@click.pass_context
def cli(ctx, dsn: str | None, verbose: bool):
    """Quake Reconcile: multi-source earthquake catalog."""
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.INFO,
        format="%(asctime)s %(name)s %(levelname)s %(message)s",
    )
    ctx.obj = {"dsn": dsn}


@cli.command("init-db")
@click.pass_context
def init_db(ctx):
    """Create the catalog and run ledger tables."""
    from quake_reconcile.db import PostgresEventStore
    PostgresEventStore(ctx.obj["dsn"]).init_db()
    click.echo("Database initialized")


@cli.command()
@click.option("--source", "-s", "sources", multiple=True,
              type=click.Choice(sorted(SOURCES)), help="Sources to ingest (default: all enabled).")
@click.option("--hours", default=24, help="Lookback window in hours.")
@click.option("--min-mag", default=1.0, help="Minimum magnitude floor.")
@click.option("--phivolcs-file", type=click.Path(exists=True, dir_okay=False),
              help="JSON rows produced by the PHIVOLCS scraper.")
@click.option("--json", "as_json", is_flag=True, help="Print the run result as JSON.")
@click.pass_context
def run(ctx, sources: tuple[str, ...], hours: int, min_mag: float, phivolcs_file: str | None,
        as_json: bool):
    """Run one reconciliation and persist the result."""
    names = list(sources) or enabled_sources()
    fetchers = {}
    if phivolcs_file:
        with open(phivolcs_file, encoding="utf-8") as fh:
            fetchers["phivolcs"] = static_fetcher(json.load(fh))
        if "phivolcs" not in names:
            names.append("phivolcs")

    catalog = _catalog(ctx.obj["dsn"], fetchers)
    result = asyncio.run(catalog.run_reconciliation(names, timedelta(hours=hours), min_mag))

    if as_json:
        click.echo(json.dumps(result.to_dict(), indent=2))
        ctx.exit(0 if result.success else 1)

    table = Table(title=f"Run {result.run_id or '-'}")
    table.add_column("Source")
    table.add_column("OK", justify="center")
    table.add_column("Records", justify="right")
    table.add_column("Events", justify="right")
    table.add_column("Rejected", justify="right")
    table.add_column("Duplicates", justify="right")
    table.add_column("Filtered", justify="right")
    table.add_column("Error")
    for s in result.sources:
        table.add_row(
            s.source,
            "[green]yes[/]" if s.ok else "[red]no[/]",
            str(s.records), str(s.normalized), str(s.rejected),
            str(s.duplicates), str(s.filtered),
            s.error or "",
        )
    console.print(table)

    if not result.success:
        click.echo(f"Run failed: {result.error}", err=True)
        ctx.exit(1)
    click.echo(
        f"{result.events_found} events: {result.events_new} new, "
        f"{result.events_updated} updated, {result.events_unchanged} unchanged, "
        f"{result.events_rejected} rejected ({result.duration_ms} ms)"
    )


@cli.command()
@click.option("--hours", default=24, help="Lookback window in hours.")
@click.option("--min-mag", default=None, type=float, help="Minimum magnitude.")
@click.option("--max-mag", default=None, type=float, help="Maximum magnitude.")
@click.option("--region", default=None, help="Region filter, e.g. 'Japan' or 'Luzon'.")
@click.option("--limit", default=25, help="Max results to display.")
@click.option("--offset", default=0, help="Results to skip.")
@click.option("--json", "as_json", is_flag=True, help="Print events as JSON.")
@click.pass_context
def events(ctx, hours: int, min_mag, max_mag, region, limit: int, offset: int, as_json: bool):
    """List reconciled events, newest first."""
    start = datetime.now(timezone.utc) - timedelta(hours=hours)
    rows, total = _catalog(ctx.obj["dsn"]).list_events(
        start, None, min_mag, max_mag, region, limit, offset,
    )

    if as_json:
        click.echo(json.dumps({"total": total, "events": [e.to_dict() for e in rows]}, indent=2))
        return

    table = Table(title=f"Earthquakes ({len(rows)} of {total})")
    table.add_column("Mag", style="bold", width=6)
    table.add_column("Location")
    table.add_column("Region")
    table.add_column("Depth (km)", justify="right")
    table.add_column("Time (UTC)")
    table.add_column("Sources")
    table.add_column("Rev", justify="right")
    for e in rows:
        color = _mag_color(e.magnitude)
        table.add_row(
            f"[{color}]{e.magnitude:.1f}[/] {e.magnitude_type}",
            e.location or "",
            e.region or "",
            f"{e.depth_km:.1f}",
            f"{e.occurred_at:%Y-%m-%d %H:%M:%S}",
            ",".join(e.sources),
            str(e.revision),
        )
    console.print(table)


@cli.command()
@click.option("--hours", default=24, help="Lookback window in hours.")
@click.option("--min-mag", default=None, type=float, help="Minimum magnitude.")
@click.option("--max-mag", default=None, type=float, help="Maximum magnitude.")
@click.option("--region", default=None, help="Region filter.")
@click.pass_context
def stats(ctx, hours: int, min_mag, max_mag, region):
    """Summary statistics over the reconciled catalog."""
    start = datetime.now(timezone.utc) - timedelta(hours=hours)
    s = _catalog(ctx.obj["dsn"]).compute_stats(start, None, min_mag, max_mag, region)

    click.echo(f"Total events: {s.total}")
    if s.total:
        click.echo(
            f"Magnitude avg {s.avg_magnitude:.2f}, min {s.min_magnitude:.1f}, "
            f"max {s.max_magnitude:.1f}; avg depth {s.avg_depth_km:.1f} km"
        )

    bands = Table(title="By magnitude")
    bands.add_column("Band")
    bands.add_column("Count", justify="right")
    for label, count in s.counts_by_magnitude_band.items():
        bands.add_row(label, str(count))
    console.print(bands)

    regions = Table(title="By region")
    regions.add_column("Region")
    regions.add_column("Count", justify="right")
    for name, count in s.counts_by_region.items():
        regions.add_row(name, str(count))
    console.print(regions)


@cli.command("last-run")
@click.option("--source", default=None, help="Source name, or 'multi' for combined runs.")
@click.option("--json", "as_json", is_flag=True, help="Print the ledger entry as JSON.")
@click.pass_context
def last_run(ctx, source: str | None, as_json: bool):
    """Show the most recent run ledger entry."""
    entry = _catalog(ctx.obj["dsn"]).last_run(source)
    if entry is None:
        click.echo("No runs recorded")
        return
    if as_json:
        click.echo(entry.to_json())
        return
    status = "open" if entry.is_open else ("ok" if entry.success else "failed")
    click.echo(f"Run {entry.run_id} [{entry.source}] {status}")
    click.echo(f"  started   {entry.started_at.isoformat()}")
    if entry.completed_at:
        click.echo(f"  completed {entry.completed_at.isoformat()} ({entry.duration_ms} ms)")
    click.echo(
        f"  found {entry.events_found}, new {entry.events_new}, "
        f"updated {entry.events_updated}, unchanged {entry.events_unchanged}, "
        f"rejected {entry.events_rejected}"
    )
    if entry.failed_sources:
        click.echo(f"  failed sources: {', '.join(entry.failed_sources)}")
    if entry.error_message:
        click.echo(f"  error: {entry.error_message}")
