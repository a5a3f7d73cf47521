"""sleepguard demo — run a local confidential session from an entries file."""

from __future__ import annotations

import asyncio
from pathlib import Path

import click
import yaml

from sleepguard.core.exceptions import SleepGuardError


def load_entries(path: Path) -> list:
    """Read a YAML (or JSON) list of sleep entries."""
    from sleepguard.payload import SleepEntry

    with open(path) as f:
        data = yaml.safe_load(f) or []
    if isinstance(data, dict):
        data = data.get("entries", [])
    if not isinstance(data, list):
        raise click.BadParameter("expected a list of entries", param_hint="ENTRIES_FILE")
    return [SleepEntry.from_dict(item) for item in data]


@click.command()
@click.argument("entries_file", type=click.Path(exists=True, dir_okay=False, path_type=Path))
@click.option("--config", "config_file", type=click.Path(dir_okay=False), default=None, help="YAML/JSON config file.")
@click.option("--aggregation/--no-aggregation", default=True, help="Fold entries into the running sums.")
@click.option("--anonymous/--no-anonymous", default=False, help="Allow anonymous reporting.")
@click.option("--key-length", type=int, default=2048, show_default=True, help="Paillier modulus size in bits.")
@click.option("--log-level", default=None, help="Override logging.level from config.")
def demo(
    entries_file: Path,
    config_file: str | None,
    aggregation: bool,
    anonymous: bool,
    key_length: int,
    log_level: str | None,
) -> None:
    """Submit entries encrypted to a local ledger, then decrypt your stats."""
    from rich.console import Console

    from sleepguard.core.config import Config
    from sleepguard.core.errors import friendly_error_message
    from sleepguard.core.utils.logging import setup_logging

    config = Config(config_file=config_file)
    setup_logging(
        level=log_level or str(config.get("logging.level", "WARNING")).upper(),
        log_file=config.get_log_file(),
    )

    try:
        entries = load_entries(entries_file)
    except SleepGuardError as e:
        raise click.ClickException(friendly_error_message(e)) from e

    console = Console()
    try:
        asyncio.run(_run_demo(console, config, entries, aggregation, anonymous, key_length))
    except SleepGuardError as e:
        raise click.ClickException(friendly_error_message(e)) from e


async def _run_demo(console, config, entries, aggregation: bool, anonymous: bool, key_length: int) -> None:
    from rich.table import Table

    from sleepguard.core.events import PHASE_STARTED
    from sleepguard.network import LocalNetwork

    network = LocalNetwork(config=config, chain_id=int(config.get("network.chain_id")), key_length=key_length)
    client = network.client_for(network.create_wallet())
    client.events.on(PHASE_STARTED, lambda event: console.print(f"[dim]{event.payload['message']}[/dim]"))

    console.print(f"Account [bold]{client.address}[/bold] on ledger {client.ledger_address}")
    await client.create_profile(allow_aggregation=aggregation, allow_anonymous_report=anonymous)
    for entry in entries:
        await client.submit_sleep_data(entry)

    report = await client.get_user_data()
    table = Table(title="Your decrypted entries")
    for column in ("date", "bedtime", "wake", "hours", "deep %", "wakes", "score"):
        table.add_column(column)
    for entry in report.entries:
        table.add_row(
            str(entry.date),
            f"{entry.bedtime // 60:02d}:{entry.bedtime % 60:02d}",
            f"{entry.wake_time // 60:02d}:{entry.wake_time % 60:02d}",
            f"{entry.duration:.1f}",
            str(entry.deep_sleep_ratio),
            str(entry.wake_count),
            str(entry.sleep_score),
        )
    console.print(table)
    if report.partial:
        console.print(f"[yellow]Partial result: entries {report.failed_indices} could not be decrypted[/yellow]")

    mine = await client.get_aggregated_stats()
    everyone = await client.get_global_stats()
    console.print(
        f"Your averages: {mine.avg_duration:.2f}h, {mine.avg_deep_sleep:.1f}% deep, "
        f"score {mine.avg_score:.2f} over {mine.total_entries} entries"
    )
    console.print(
        f"Global averages: {everyone.avg_duration:.2f}h, {everyone.avg_deep_sleep:.1f}% deep, "
        f"score {everyone.avg_score:.2f} over {everyone.participants} submissions"
    )
