"""Application entrypoints for motion input."""

from .main import cli, main, parse_args, run, run_session

__all__ = ["cli", "main", "parse_args", "run", "run_session"]
