"""Shared console utilities for CLI commands."""

from datetime import datetime

from rich.console import Console
from rich.table import Table

from cadence.scheduling.diagnostics import ActionInfo, HealthCheckResult, HealthStatus
from cadence.scheduling.types import utc_now

# Shared console instance for all CLI commands
console = Console()


def error(msg: str) -> None:
    """Print an error message in red."""
    console.print(f"[red]{msg}[/red]")


def warning(msg: str) -> None:
    """Print a warning message in yellow."""
    console.print(f"[yellow]{msg}[/yellow]")


def success(msg: str) -> None:
    """Print a success message in green."""
    console.print(f"[green]{msg}[/green]")


def dim(msg: str) -> None:
    """Print a dimmed message."""
    console.print(f"[dim]{msg}[/dim]")


def create_table(
    title: str,
    columns: list[tuple[str, str | dict]],
) -> Table:
    """Create a styled table with consistent formatting.

    Args:
        title: Table title.
        columns: List of (name, style) or (name, kwargs_dict) tuples.
    """
    table = Table(title=title)
    for name, style_or_kwargs in columns:
        if isinstance(style_or_kwargs, dict):
            table.add_column(name, **style_or_kwargs)
        else:
            table.add_column(name, style=style_or_kwargs)
    return table


def format_countdown(next_fire: datetime | None) -> str:
    """Format a countdown string for the next fire time."""
    if next_fire is None:
        return "[dim]?[/dim]"

    now = utc_now()
    if next_fire <= now:
        return "[green]now[/green]"

    total_seconds = int((next_fire - now).total_seconds())
    if total_seconds < 60:
        return f"in {total_seconds}s"

    total_minutes = total_seconds // 60
    if total_minutes < 60:
        return f"in {total_minutes}m"

    hours, minutes = divmod(total_minutes, 60)
    if hours < 24:
        return f"in {hours}h {minutes}m" if minutes else f"in {hours}h"

    days, hours = divmod(hours, 24)
    return f"in {days}d {hours}h" if hours else f"in {days}d"


_HEALTH_STYLES = {
    HealthStatus.HEALTHY: "green",
    HealthStatus.DEGRADED: "yellow",
    HealthStatus.FAILING: "red",
}


def statistics_table(
    infos: list[ActionInfo], health: dict[str, HealthCheckResult]
) -> Table:
    """Render runner statistics as a table."""
    table = create_table(
        "Scheduled actions",
        [
            ("Name", "cyan"),
            ("State", ""),
            ("Runs", {"justify": "right"}),
            ("OK", {"justify": "right", "style": "green"}),
            ("Failed", {"justify": "right", "style": "red"}),
            ("Over budget", {"justify": "right", "style": "yellow"}),
            ("Health", ""),
        ],
    )
    for info in infos:
        stats = info.statistics
        result = health.get(info.name)
        if result is None:
            health_cell = "[dim]-[/dim]"
        else:
            style = _HEALTH_STYLES[result.status]
            health_cell = f"[{style}]{result.status.value}[/{style}]"
        table.add_row(
            info.name,
            stats.state.value,
            str(stats.iterations_started),
            str(stats.iterations_succeeded),
            str(stats.iterations_failed),
            str(stats.iterations_over_budget),
            health_cell,
        )
    return table
