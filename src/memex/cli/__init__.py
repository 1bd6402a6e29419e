"""CLI package for memex."""

from memex.cli.main import main, parse_args

__all__ = ["main", "parse_args"]
