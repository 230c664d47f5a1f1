"""Command line interface for smrnaflow."""

from smrnaflow.cli.main import cli

__all__ = ["cli"]
