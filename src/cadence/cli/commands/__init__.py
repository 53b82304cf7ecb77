"""CLI command modules."""

from cadence.cli.commands import actions, run

__all__ = ["actions", "run"]
