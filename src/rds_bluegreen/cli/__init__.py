"""Command-line interface."""

from rds_bluegreen.cli.main import cli

__all__ = ['cli']
