"""CLI interface for the myhealth storage.

Usage:
    python -m myhealth.cli status
    python -m myhealth.cli weight set 1 94.3 --at 2024-05-01
    python -m myhealth.cli weight list 1 --from 2024-05-01 --to 2024-06-01
    python -m myhealth.cli weight delete 1 1714521600
    python -m myhealth.cli backup backups/myhealth.json.gz
    python -m myhealth.cli restore backups/myhealth.json.gz --yes
"""

from __future__ import annotations

import asyncio
import logging
import sys
import time
from datetime import datetime
from typing import Optional

import click
from dateutil.parser import ParserError, parse as dateparse
from rich.console import Console
from rich.table import Table

from myhealth.storage.backup import dump_backup, load_backup
from myhealth.storage.config import StoreOptions
from myhealth.storage.db import WeightStore
from myhealth.storage.errors import EmptyResultError, StorageError
from myhealth.storage.models import Weight

console = Console()

DEFAULT_DB_PATH = "data/myhealth.db"
DEFAULT_CONFIG_PATH = "config.yaml"
MIN_TIMESTAMP = -(2**63)
MAX_TIMESTAMP = 2**63 - 1


def run_async(coro):
    """Run an async function, turning storage errors into exit code 1."""
    try:
        return asyncio.run(coro)
    except StorageError as exc:
        console.print(f"[red]Error:[/red] {exc}")
        sys.exit(1)


def parse_time(value: str) -> int:
    """Parse epoch seconds or a date/time string into epoch seconds."""
    value = value.strip()
    if value.lstrip("-").isdigit():
        return int(value)
    try:
        return int(dateparse(value).timestamp())
    except (ParserError, ValueError, OverflowError) as exc:
        raise click.BadParameter(f"Cannot parse time: {value}") from exc


def format_time(ts: int) -> str:
    try:
        return datetime.fromtimestamp(ts).strftime("%Y-%m-%d %H:%M")
    except (OverflowError, OSError, ValueError):
        return str(ts)


def make_store(ctx: click.Context) -> WeightStore:
    options = StoreOptions.from_yaml(ctx.obj["config_path"])
    return WeightStore(ctx.obj["db_path"], options)


@click.group()
@click.option("--db", default=DEFAULT_DB_PATH, help="Database path")
@click.option("--config", default=DEFAULT_CONFIG_PATH, help="Config file path")
@click.option(
    "--log-level",
    default="WARNING",
    type=click.Choice(["DEBUG", "INFO", "WARNING", "ERROR"], case_sensitive=False),
    help="Logging level",
)
@click.pass_context
def cli(ctx, db: str, config: str, log_level: str):
    """myhealth storage CLI."""
    logging.basicConfig(
        level=getattr(logging, log_level.upper()),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    ctx.ensure_object(dict)
    ctx.obj["db_path"] = db
    ctx.obj["config_path"] = config


@cli.command()
@click.pass_context
def status(ctx):
    """Show database status."""

    async def _run():
        async with make_store(ctx) as store:
            stats = await store.get_stats()

        console.print("\n[bold]Database Status[/bold]")
        console.print(f"  Path: {ctx.obj['db_path']}")
        console.print(f"  Size: {stats['db_size_bytes'] / 1024:.1f} KB")
        console.print(f"  Migration: {stats['last_migration_id']}")
        console.print(f"  Users: {stats['total_users']}")
        console.print(f"  Weight records: {stats['total_weight']}")

    run_async(_run())


@cli.group()
def weight():
    """Manage weight measurements."""


@weight.command("set")
@click.argument("user_id", type=int)
@click.argument("value", type=float)
@click.option("--at", "at", help="Measurement time (epoch seconds or date, default: now)")
@click.pass_context
def weight_set(ctx, user_id: int, value: float, at: Optional[str]):
    """Set the weight of a user at a point in time."""
    timestamp = parse_time(at) if at else int(time.time())

    async def _run():
        async with make_store(ctx) as store:
            await store.set_weight(user_id, Weight(timestamp=timestamp, value=value))
        console.print(f"[green]Saved {value} for user {user_id} at {format_time(timestamp)}")

    run_async(_run())


@weight.command("list")
@click.argument("user_id", type=int)
@click.option("--from", "from_", help="Range start (epoch seconds or date)")
@click.option("--to", "to", help="Range end (epoch seconds or date)")
@click.pass_context
def weight_list(ctx, user_id: int, from_: Optional[str], to: Optional[str]):
    """List weight measurements of a user, oldest first."""
    from_ts = parse_time(from_) if from_ else MIN_TIMESTAMP
    to_ts = parse_time(to) if to else MAX_TIMESTAMP

    async def _run():
        async with make_store(ctx) as store:
            try:
                weights = await store.get_weight_list(user_id, from_ts, to_ts)
            except EmptyResultError:
                console.print(f"[yellow]No weight records for user {user_id}")
                return

        table = Table(title=f"Weight for user {user_id}")
        table.add_column("Time", style="cyan")
        table.add_column("Timestamp", justify="right", style="dim")
        table.add_column("Value", justify="right", style="green")
        for w in weights:
            table.add_row(format_time(w.timestamp), str(w.timestamp), f"{w.value:g}")
        console.print(table)

    run_async(_run())


@weight.command("delete")
@click.argument("user_id", type=int)
@click.argument("at")
@click.pass_context
def weight_delete(ctx, user_id: int, at: str):
    """Delete the weight of a user at an exact time."""
    timestamp = parse_time(at)

    async def _run():
        async with make_store(ctx) as store:
            await store.delete_weight(user_id, timestamp)
        console.print(f"[green]Deleted weight for user {user_id} at {format_time(timestamp)}")

    run_async(_run())


@cli.command()
@click.argument("output", type=click.Path(dir_okay=False))
@click.pass_context
def backup(ctx, output: str):
    """Write a backup of all data to OUTPUT (.json or .json.gz)."""

    async def _run():
        async with make_store(ctx) as store:
            with console.status("[bold green]Creating backup..."):
                snapshot = await store.backup()
        path = dump_backup(snapshot, output)
        console.print(f"[green]Backup of {len(snapshot.weight)} weight records written to {path}")

    run_async(_run())


@cli.command()
@click.argument("input_path", metavar="INPUT", type=click.Path(exists=True, dir_okay=False))
@click.option("--yes", is_flag=True, help="Do not ask for confirmation")
@click.pass_context
def restore(ctx, input_path: str, yes: bool):
    """Replace all data with the backup in INPUT."""
    try:
        snapshot = load_backup(input_path)
    except StorageError as exc:
        console.print(f"[red]Error:[/red] {exc}")
        sys.exit(1)

    if not yes:
        click.confirm(
            f"Replace all data in {ctx.obj['db_path']} with "
            f"{len(snapshot.weight)} weight records?",
            abort=True,
        )

    async def _run():
        async with make_store(ctx) as store:
            with console.status("[bold green]Restoring..."):
                await store.restore(snapshot)
        console.print(f"[green]Restored {len(snapshot.weight)} weight records")

    run_async(_run())


def main():
    cli()


if __name__ == "__main__":
    main()
