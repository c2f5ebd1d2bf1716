"""
CLI for shush.
"""

from shush.cli.main import build_parser, main, shush_command

__all__ = ["build_parser", "main", "shush_command"]
