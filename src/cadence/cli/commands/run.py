"""Run command: drive configured actions until interrupted."""

import asyncio
import logging
import os
import signal as signal_module
from pathlib import Path
from typing import Annotated

import typer

from cadence.cli.console import console, error, statistics_table
from cadence.scheduling.errors import ScheduledActionError

logger = logging.getLogger(__name__)


def register(app: typer.Typer) -> None:
    """Register the run command."""

    @app.command()
    def run(
        config: Annotated[
            Path | None,
            typer.Option(
                "--config",
                "-c",
                help="Path to configuration file",
            ),
        ] = None,
        log_level: Annotated[
            str | None,
            typer.Option(
                "--log-level",
                "-l",
                help="Override the configured log level",
            ),
        ] = None,
    ) -> None:
        """Run all configured scheduled actions until SIGINT/SIGTERM."""
        try:
            crashed = asyncio.run(_run(config, log_level))
        except KeyboardInterrupt:
            # Use print here since logging may not be configured yet
            print("\nStopped")
            return
        if crashed:
            raise typer.Exit(1)


async def _run(config_path: Path | None, log_level: str | None) -> bool:
    """Run the configured application. Returns True if any action crashed."""
    from cadence.application import ConfiguredApplication, InMemoryDiagnostics
    from cadence.config import ConfigError, load_config
    from cadence.logging import configure_logging

    try:
        config = load_config(config_path)
    except (FileNotFoundError, ConfigError) as e:
        error(str(e))
        raise typer.Exit(1) from None

    configure_logging(
        level=log_level or config.logging.level,
        use_rich=config.logging.rich,
        log_to_file=config.logging.file,
        retention_days=config.logging.retention_days,
    )

    application = ConfiguredApplication()
    try:
        application.initialize(config, InMemoryDiagnostics())
    except ConfigError as e:
        error(str(e))
        raise typer.Exit(1) from None

    shutdown = asyncio.Event()
    loop = asyncio.get_running_loop()
    shutdown_count = 0

    def handle_signal() -> None:
        nonlocal shutdown_count
        shutdown_count += 1

        if shutdown_count == 1:
            # First signal: let running iterations finish
            logger.info("scheduler_shutting_down")
            shutdown.set()
        else:
            # Second signal: force immediate exit
            logger.warning("scheduler_force_shutdown")
            os._exit(1)

    for sig in (signal_module.SIGTERM, signal_module.SIGINT):
        loop.add_signal_handler(sig, handle_signal)

    crashed = False
    try:
        await application.run(shutdown)
    except* ScheduledActionError as group:
        crashed = True
        for exc in group.exceptions:
            error(f"Action crashed: {exc}")
    finally:
        runner = application.runner
        console.print(statistics_table(runner.infos(), runner.health()))
        application.close()

    return crashed
