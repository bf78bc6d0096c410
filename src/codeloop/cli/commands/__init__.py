"""CLI command modules."""

from codeloop.cli.commands import run, tools

__all__ = ["run", "tools"]
