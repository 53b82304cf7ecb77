"""Commands for inspecting configured actions."""

from pathlib import Path
from typing import Annotated

import typer

from cadence.cli.console import console, create_table, dim, error, format_countdown, success
from cadence.config import CadenceConfig, ConfigError, load_config
from cadence.scheduling.types import describe_scheduler, utc_now


def _load(config_path: Path | None) -> CadenceConfig:
    try:
        return load_config(config_path)
    except (FileNotFoundError, ConfigError) as e:
        error(str(e))
        raise typer.Exit(1) from None


def _format_flags(config: CadenceConfig, name: str) -> str:
    options = config.options_for(config.get_action(name))
    flags = [
        flag
        for flag, enabled in (
            ("crash-on-payload", options.crash_on_payload_exception),
            ("crash-on-scheduler", options.crash_on_scheduler_exception),
            ("separate-thread", options.prefer_separate_thread),
            ("overlap", options.allow_overlapping_execution),
        )
        if enabled
    ]
    return ", ".join(flags) or "[dim]-[/dim]"


def register(app: typer.Typer) -> None:
    """Register the list and check commands."""

    @app.command("list")
    def list_actions(
        config: Annotated[
            Path | None,
            typer.Option(
                "--config",
                "-c",
                help="Path to configuration file",
            ),
        ] = None,
    ) -> None:
        """List configured actions and their next execution time."""
        cfg = _load(config)

        if not cfg.actions:
            dim("No scheduled actions configured")
            return

        table = create_table(
            "Scheduled actions",
            [
                ("Name", "cyan"),
                ("Scheduler", ""),
                ("Next run", ""),
                ("Target", "dim"),
                ("Options", ""),
            ],
        )

        now = utc_now()
        for action in cfg.actions:
            try:
                scheduler = action.build_scheduler()
            except ConfigError as e:
                table.add_row(action.name, f"[red]{e}[/red]", "", action.target, "")
                continue

            if not action.enabled:
                next_run = "[dim]disabled[/dim]"
            else:
                next_run = format_countdown(scheduler.schedule_next(now))

            table.add_row(
                action.name,
                describe_scheduler(scheduler),
                next_run,
                action.target,
                _format_flags(cfg, action.name),
            )

        console.print(table)

    @app.command()
    def check(
        config: Annotated[
            Path | None,
            typer.Option(
                "--config",
                "-c",
                help="Path to configuration file",
            ),
        ] = None,
    ) -> None:
        """Validate the config file and resolve every action target."""
        cfg = _load(config)

        failures = 0
        for action in cfg.enabled_actions:
            try:
                action.build_scheduler()
                action.resolve_payload()
            except ConfigError as e:
                error(str(e))
                failures += 1

        if failures:
            raise typer.Exit(1)

        success(f"Configuration OK ({len(cfg.enabled_actions)} actions)")
