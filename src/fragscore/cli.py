"""
fragscore CLI - Command Line Interface for the player metrics engine

Provides commands for:
- Scoring a player's roles in a match
- Finding the best player per role in a match
- Showing a player's dashboard with trends
- Inspecting cache statistics
"""

import json
import logging
from pathlib import Path
from typing import Optional

import typer
from rich.console import Console
from rich.panel import Panel
from rich.table import Table

from fragscore import __version__
from fragscore.core.config import FragscoreConfig, load_config
from fragscore.core.constants import ROLES
from fragscore.services import Services, build_services

app = typer.Typer(
    name="fragscore",
    help="CS2 player metrics - role scores, top players per role and dashboard trends",
    add_completion=False,
)
console = Console()
logger = logging.getLogger(__name__)

_TREND_STYLES = {"up": "green", "down": "red", "neutral": "dim"}


def version_callback(value: bool) -> None:
    """Show version and exit."""
    if value:
        console.print(f"[bold blue]fragscore[/bold blue] v{__version__}")
        raise typer.Exit()


def _configure_logging(config: FragscoreConfig, verbose: bool) -> None:
    level = logging.DEBUG if verbose else getattr(logging, str(config.logging.level).upper(), logging.INFO)
    logging.basicConfig(level=level, format=config.logging.format)
    logging.getLogger().setLevel(level)


@app.callback()
def main_callback(
    ctx: typer.Context,
    version: bool = typer.Option(
        None,
        "--version",
        callback=version_callback,
        is_eager=True,
        help="Show version and exit",
    ),
    config_file: Optional[Path] = typer.Option(
        None,
        "--config",
        "-c",
        help="Path to a YAML, TOML or JSON config file",
    ),
    db: Optional[Path] = typer.Option(
        None,
        "--db",
        help="Path to the SQLite event store",
    ),
    no_cache: bool = typer.Option(
        False,
        "--no-cache",
        help="Recompute every aggregate instead of memoising it",
    ),
    verbose: bool = typer.Option(
        False,
        "--verbose",
        "-V",
        help="Enable verbose output",
    ),
) -> None:
    """fragscore - CS2 Player Metrics Engine"""
    config = load_config(config_file)
    if db is not None:
        config.database.path = str(db)
    if no_cache:
        config.cache.enabled = False

    _configure_logging(config, verbose)
    ctx.obj = config


def _services(ctx: typer.Context) -> Services:
    config = ctx.obj if isinstance(ctx.obj, FragscoreConfig) else load_config()
    return build_services(config)


def _format_trend(stat: dict) -> str:
    style = _TREND_STYLES.get(stat["trend"], "white")
    sign = "+" if stat["change"] > 0 else ""
    return f"[{style}]{stat['trend']} {sign}{stat['change']}%[/{style}]"


@app.command()
def complexion(
    ctx: typer.Context,
    match_id: int = typer.Argument(..., help="Match ID"),
    steam_id: str = typer.Argument(..., help="Player Steam ID"),
    as_user: Optional[str] = typer.Option(
        None,
        "--as-user",
        help="Only show the scores if this Steam ID played in the match",
    ),
    as_json: bool = typer.Option(False, "--json", help="Print raw JSON"),
) -> None:
    """Score a player against the four roles for one match."""
    services = _services(ctx)

    if as_user is not None:
        bundle = services.complexion.get_for_user(as_user, steam_id, match_id)
    else:
        bundle = services.complexion.get(steam_id, match_id)

    if as_json:
        console.print_json(json.dumps(bundle))
        return

    if not bundle:
        console.print(f"[yellow]No data for player {steam_id} in match {match_id}[/yellow]")
        raise typer.Exit(1)

    table = Table(title=f"Player Complexion - {steam_id} (match {match_id})")
    table.add_column("Role", style="cyan")
    table.add_column("Score", justify="right", style="green")
    for role in ROLES:
        table.add_row(role.value.title(), str(bundle[role.value]))
    console.print(table)


@app.command("top-roles")
def top_roles(
    ctx: typer.Context,
    match_id: int = typer.Argument(..., help="Match ID"),
    stats: bool = typer.Option(False, "--stats", help="Include headline stats per role"),
    as_json: bool = typer.Option(False, "--json", help="Print raw JSON"),
) -> None:
    """Show the best opener, closer, support and fragger of a match."""
    services = _services(ctx)
    result = services.top_roles.top_per_role(match_id, include_stats=stats)

    if as_json:
        console.print_json(json.dumps(result))
        return

    table = Table(title=f"Top Role Players - match {match_id}")
    table.add_column("Role", style="cyan")
    table.add_column("Player", style="white")
    table.add_column("Steam ID", style="dim")
    table.add_column("Score", justify="right", style="green")
    if stats:
        table.add_column("Highlights", style="white")

    for role in ROLES:
        slot = result[role.value]
        row = [role.value.title(), slot["name"] or "-", slot["steam_id"] or "-", str(slot["score"])]
        if stats:
            row.append(", ".join(f"{k}: {v}" for k, v in slot.get("stats", {}).items()) or "-")
        table.add_row(*row)
    console.print(table)


def _window_filters(count: Optional[int], map_name: Optional[str]) -> dict:
    filters = {}
    if count is not None:
        if count <= 0:
            console.print("[red]Error:[/red] --count must be positive")
            raise typer.Exit(1)
        filters["past_match_count"] = count
    if map_name:
        filters["map"] = map_name
    return filters


@app.command()
def dashboard(
    ctx: typer.Context,
    steam_id: str = typer.Argument(..., help="Player Steam ID"),
    count: Optional[int] = typer.Option(
        None,
        "--count",
        "-n",
        help="Matches per window (defaults to the configured count)",
    ),
    map_name: Optional[str] = typer.Option(None, "--map", "-m", help="Only include this map"),
    as_json: bool = typer.Option(False, "--json", help="Print raw JSON"),
) -> None:
    """Show a player's dashboard summary against the previous window."""
    services = _services(ctx)
    summary = services.dashboard.summary(steam_id, _window_filters(count, map_name))
    if as_json:
        console.print_json(json.dumps(summary))
        return

    card = summary["player_card"]
    console.print(
        Panel(
            f"[bold]Matches:[/bold] {card['total_matches']}   "
            f"[bold]Win %:[/bold] {card['win_percentage']}   "
            f"[bold]K/D:[/bold] {card['average_kd']}   "
            f"[bold]ADR:[/bold] {card['average_adr']}\n"
            f"[bold]Kills:[/bold] {card['total_kills']}   "
            f"[bold]Deaths:[/bold] {card['total_deaths']}   "
            f"[bold]Utility effectiveness:[/bold] "
            f"{summary['average_utility_effectiveness']['value']}/100",
            title=f"Player {steam_id}",
            border_style="blue",
        )
    )

    roles = card["player_complexion"]
    if roles:
        table = Table(title="Average Role Scores")
        table.add_column("Role", style="cyan")
        table.add_column("Score", justify="right", style="green")
        for role in ROLES:
            table.add_row(role.value.title(), str(roles[role.value]))
        console.print(table)

    for title, movers in (
        ("Most Improved", summary["most_improved_stats"]),
        ("Least Improved", summary["least_improved_stats"]),
    ):
        if not movers:
            continue
        table = Table(title=title)
        table.add_column("Stat", style="cyan")
        table.add_column("Value", justify="right")
        table.add_column("Trend", justify="right")
        for mover in movers:
            table.add_row(mover["name"], str(mover["value"]), _format_trend(mover))
        console.print(table)


@app.command()
def maps(
    ctx: typer.Context,
    steam_id: str = typer.Argument(..., help="Player Steam ID"),
    count: Optional[int] = typer.Option(
        None,
        "--count",
        "-n",
        help="Matches in the window (defaults to the configured count)",
    ),
    as_json: bool = typer.Option(False, "--json", help="Print raw JSON"),
) -> None:
    """Show a player's per-map breakdown over the current window."""
    services = _services(ctx)
    result = services.dashboard.map_stats(steam_id, _window_filters(count, None))
    if as_json:
        console.print_json(json.dumps(result))
        return

    if not result["maps"]:
        console.print(f"[yellow]No matches for player {steam_id}[/yellow]")
        raise typer.Exit(1)

    table = Table(title=f"Maps - {steam_id} ({result['total_matches']} matches)")
    table.add_column("Map", style="cyan")
    table.add_column("Matches", justify="right")
    table.add_column("Win %", justify="right", style="green")
    table.add_column("K/D", justify="right")
    table.add_column("ADR", justify="right")
    table.add_column("Opening K/D", justify="right")
    for row in result["maps"]:
        table.add_row(
            row["map"],
            str(row["matches"]),
            str(row["win_rate"]),
            str(row["avg_kd"]),
            str(row["avg_adr"]),
            f"{row['avg_opening_kills']}/{row['avg_opening_deaths']}",
        )
    console.print(table)


@app.command("cache-stats")
def cache_stats(
    ctx: typer.Context,
    match_id: Optional[int] = typer.Option(
        None,
        "--match",
        help="Warm the cache with this match's top roles and participant dashboards first",
    ),
) -> None:
    """Show match cache statistics."""
    services = _services(ctx)
    if match_id is not None:
        services.top_roles.top_per_role(match_id)
        services.dashboard.warm_cache_for_match(match_id)

    stats = services.cache.get_stats().to_dict()
    table = Table(title="Match Cache")
    table.add_column("Metric", style="cyan")
    table.add_column("Value", justify="right")
    for name, value in stats.items():
        table.add_row(name.replace("_", " ").title(), str(value))
    console.print(table)


if __name__ == "__main__":
    app()
