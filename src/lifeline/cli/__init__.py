"""Lifeline command-line interface."""

from lifeline.cli.main import cli, main

__all__ = ["cli", "main"]
