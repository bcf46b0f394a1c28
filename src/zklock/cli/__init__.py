"""Command-line interface for zklock."""

from zklock.cli.main import main, run
from zklock.cli.parser import build_parser, parse_arguments

__all__ = ["build_parser", "main", "parse_arguments", "run"]
