"""Command line interface."""

from .main import cli, main, resolve, run

__all__ = ["cli", "main", "resolve", "run"]
