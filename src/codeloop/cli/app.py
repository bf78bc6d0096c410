"""
Main Typer application for codeloop CLI.

This module defines the root CLI application and registers all command groups.
"""

from typing import Annotated

import typer

from codeloop import __version__
from codeloop.cli.commands import run, tools
from codeloop.cli.output import configure_logging, print_info

# Create the main Typer app
app = typer.Typer(
    name="codeloop",
    help="AI coding agent that works through your workspace with tools.",
    no_args_is_help=True,
    rich_markup_mode="rich",
    pretty_exceptions_enable=True,
    pretty_exceptions_show_locals=False,
)


def version_callback(value: bool) -> None:
    """Print version and exit."""
    if value:
        print_info(f"codeloop version [green]{__version__}[/green]")
        raise typer.Exit()


@app.callback()
def main_callback(
    version: Annotated[
        bool | None,
        typer.Option(
            "--version",
            "-V",
            help="Show version and exit.",
            callback=version_callback,
            is_eager=True,
        ),
    ] = None,
    verbose: Annotated[
        bool,
        typer.Option(
            "--verbose",
            "-v",
            help="Enable debug logging.",
        ),
    ] = False,
) -> None:
    """
    [bold blue]codeloop[/bold blue] - AI coding agent

    Gives an LLM file, search, terminal and language-server tools, asks
    before risky actions, and keeps long sessions inside the context window.
    """
    configure_logging(verbose)


# Register commands
# "run" is a plain command so options may follow the instruction
app.command("run")(run.run_instruction)
app.add_typer(tools.app, name="tools")


if __name__ == "__main__":
    app()
