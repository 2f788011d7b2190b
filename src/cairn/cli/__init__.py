"""Command-line interface."""

from cairn.cli.app import app

__all__ = ["app"]
