"""Command-line interface."""

from cadence.cli.app import app

__all__ = ["app"]
