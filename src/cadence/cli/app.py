"""Main CLI application."""

import typer

from cadence.cli.commands import actions, run

app = typer.Typer(
    name="cadence",
    help="Cadence - run recurring scheduled actions",
    no_args_is_help=True,
)

run.register(app)
actions.register(app)
