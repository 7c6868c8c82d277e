"""Command-line interface for World Evolver."""

import logging
from collections import defaultdict
from pathlib import Path

import click
from rich.console import Console
from rich.logging import RichHandler
from rich.markup import escape
from rich.table import Table

from world_evolver import __version__

console = Console()


def _configure_logging(level: str) -> None:
    logging.basicConfig(
        level=level.upper(),
        format="%(message)s",
        handlers=[RichHandler(console=console, show_path=False)],
        force=True,
    )


@click.group()
@click.version_option(version=__version__)
def main() -> None:
    """World Evolver - declarative graph evolution for procedural world history."""
    pass


@main.command()
def status() -> None:
    """Show the effective settings."""
    from world_evolver.config import get_settings

    settings = get_settings()
    console.print("[bold]World Evolver Status[/bold]\n")

    table = Table(title="Settings")
    table.add_column("Setting", style="cyan")
    table.add_column("Value", style="green", justify="right")
    for name, value in settings.model_dump().items():
        table.add_row(name, str(value))
    console.print(table)


@main.command()
@click.argument("config", type=click.Path(exists=True, dir_okay=False))
@click.option("--ticks", "-n", type=int, default=None, help="Ticks to simulate (default from settings)")
@click.option("--seed", "-s", type=int, default=None, help="Random seed (overrides world file)")
@click.option("--verbose", "-v", is_flag=True, help="Log rule diagnostics")
def simulate(config: str, ticks: int | None, seed: int | None, verbose: bool) -> None:
    """Run a world file for N ticks and summarise what happened."""
    from world_evolver.config import get_settings
    from world_evolver.engine.world import load_world
    from world_evolver.errors import WorldEvolverError

    settings = get_settings()
    _configure_logging("DEBUG" if verbose else settings.log_level)
    ticks = settings.ticks if ticks is None else ticks

    try:
        engine = load_world(Path(config), seed=seed)
    except WorldEvolverError as e:
        console.print(f"[red]✗[/red] {escape(str(e))}")
        raise SystemExit(1)

    store = engine.store
    console.print(f"[bold]Simulating:[/bold] {Path(config).name}")
    console.print(
        f"[dim]{store.entity_count} entities, {store.relationship_count} relationships, "
        f"seed {engine.seed}[/dim]\n"
    )

    with console.status(f"Running {ticks} ticks..."):
        records = engine.run(ticks)

    console.print(f"[green]✓[/green] Ran {len(records)} ticks")

    added: dict[str, int] = defaultdict(int)
    removed: dict[str, int] = defaultdict(int)
    modified: dict[str, int] = defaultdict(int)
    for record in records:
        for result in record.system_results:
            added[result.system_id] += len(result.relationships_added)
            removed[result.system_id] += len(result.relationships_removed)
            modified[result.system_id] += len(result.entities_modified)

    table = Table(title="Systems")
    table.add_column("System", style="cyan")
    table.add_column("Added", style="green", justify="right")
    table.add_column("Removed", style="red", justify="right")
    table.add_column("Modified", style="yellow", justify="right")
    for system in engine.systems:
        table.add_row(
            system.name,
            str(added[system.id]),
            str(removed[system.id]),
            str(modified[system.id]),
        )
    console.print(table)

    actions = [r for record in records for r in record.action_results]
    if actions:
        succeeded = sum(1 for r in actions if r.success)
        console.print(f"\nActions: {succeeded}/{len(actions)} succeeded")

    summary = store.summary()
    final = Table(title="Final World")
    final.add_column("Metric", style="cyan")
    final.add_column("Value", style="green", justify="right")
    final.add_row("Tick", str(summary["tick"]))
    final.add_row("Entities", str(summary["entities"]))
    final.add_row("Relationships", str(summary["relationships"]))
    final.add_row("Current era", summary["era"] or "-")
    final.add_row("Protected violations", str(summary["protected_violations"]))
    for pressure_id, value in sorted(summary["pressures"].items()):
        final.add_row(f"Pressure: {pressure_id}", f"{value:.2f}")
    console.print(final)


if __name__ == "__main__":
    main()
