"""
Output formatting utilities for the CLI.

Provides consistent output formatting across all CLI commands.
"""

import logging

from rich.console import Console
from rich.logging import RichHandler

# Global console instance
console = Console()


def print_info(message: str) -> None:
    """Print an info message."""
    console.print(f"[blue]i[/blue] {message}")


def configure_logging(verbose: bool = False) -> None:
    """Route library logging through rich.

    Args:
        verbose: DEBUG level when True, WARNING otherwise
    """
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(name)s: %(message)s",
        handlers=[RichHandler(console=Console(stderr=True), show_path=False, rich_tracebacks=True)],
        force=True,
    )
    # LiteLLM is chatty at DEBUG
    logging.getLogger("LiteLLM").setLevel(logging.INFO if verbose else logging.WARNING)
