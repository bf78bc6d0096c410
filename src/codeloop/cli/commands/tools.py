"""
codeloop tools - Inspect and try the built-in tools.

Usage:
    codeloop tools list
    codeloop tools list --json
    codeloop tools info <tool-name>
    codeloop tools test <tool-name> --params '{"path": "README.md"}'
"""

import asyncio
import json
from pathlib import Path
from typing import Annotated

import typer
from rich.console import Console
from rich.markup import escape
from rich.table import Table

from codeloop.agent.executor import ToolExecutor
from codeloop.agent.prompts import tool_definitions_json
from codeloop.tools.base import ToolExecutionError
from codeloop.tools.builtin import create_default_registry
from codeloop.tools.models import ApprovalType, ToolCall, ToolExecutionContext

app = typer.Typer(
    name="tools",
    help="Inspect and try the agent's tools.",
)

console = Console()


@app.command("list")
def list_tools(
    json_output: Annotated[
        bool,
        typer.Option(
            "--json",
            help="Print the tool definitions sent to the LLM.",
        ),
    ] = False,
) -> None:
    """List all available tools."""
    registry = create_default_registry()

    if json_output:
        console.print_json(tool_definitions_json(registry.get_tool_definitions()))
        return

    table = Table(title="Available Tools")
    table.add_column("Name", style="cyan", no_wrap=True)
    table.add_column("Category", style="magenta")
    table.add_column("Approval")
    table.add_column("Parallel")
    table.add_column("Description")

    for tool in registry.list_tools():
        approval = registry.get_approval_type(tool.name)
        desc = tool.description[:60] + "..." if len(tool.description) > 60 else tool.description
        table.add_row(
            tool.name,
            tool.category.value,
            "-" if approval == ApprovalType.NONE else approval.value,
            "yes" if registry.is_read_only(tool.name) else "no",
            desc,
        )

    console.print(table)
    console.print(f"\n[dim]Total: {len(registry)} tool(s)[/dim]")


@app.command("info")
def tool_info(
    tool_name: Annotated[
        str,
        typer.Argument(help="Tool name to get info about"),
    ],
) -> None:
    """Show detailed information about a tool."""
    registry = create_default_registry()
    tool = registry.get(tool_name)

    if not tool:
        console.print(f"[red]Error:[/red] Tool not found: {tool_name}")
        console.print(f"\n[dim]Available tools: {', '.join(registry.list_tool_names())}[/dim]")
        raise typer.Exit(1)

    policy = registry.get_retry_config(tool_name)
    console.print(f"\n[bold cyan]{tool.name}[/bold cyan]")
    console.print(f"Category: {tool.category.value}")
    console.print(f"Approval: {registry.get_approval_type(tool_name).value}")
    console.print(f"Timeout: {registry.get_timeout(tool_name):g}s")
    console.print(f"Retryable: {policy.retryable} (max retries: {policy.max_retries})")
    console.print(f"\n[bold]Description:[/bold]\n{tool.description}")

    console.print("\n[bold]Input Schema:[/bold]")
    console.print_json(json.dumps(tool.get_input_schema()))


@app.command("test")
def test_tool(
    tool_name: Annotated[
        str,
        typer.Argument(help="Tool name to test"),
    ],
    params: Annotated[
        str | None,
        typer.Option(
            "--params",
            "-p",
            help="Tool parameters as JSON",
        ),
    ] = None,
    workspace: Annotated[
        Path,
        typer.Option(
            "--workspace",
            "-w",
            help="Workspace root the tool operates in.",
            exists=True,
            file_okay=False,
            resolve_path=True,
        ),
    ] = Path("."),
) -> None:
    """Run a single tool call outside of an agent run."""
    registry = create_default_registry()

    if tool_name not in registry:
        console.print(f"[red]Error:[/red] Tool not found: {tool_name}")
        raise typer.Exit(1)

    tool_params = {}
    if params:
        try:
            tool_params = json.loads(params)
        except json.JSONDecodeError as e:
            console.print(f"[red]Error:[/red] Invalid JSON: {escape(str(e))}")
            raise typer.Exit(1)

    validation = registry.validate(tool_name, tool_params)
    if not validation.success:
        console.print(f"[red]Validation Error:[/red] {escape(validation.error or '')}")
        console.print(f"\n[dim]Run 'codeloop tools info {tool_name}' to see parameters[/dim]")
        raise typer.Exit(1)

    approval = registry.get_approval_type(tool_name)
    if approval != ApprovalType.NONE:
        console.print(f"[yellow]Warning:[/yellow] {tool_name} needs {approval.value} approval")
        console.print(f"Parameters: {tool_params}")
        if not typer.confirm("Continue?"):
            console.print("Cancelled.")
            raise typer.Exit(0)

    tool_call = ToolCall(id="cli-test", name=tool_name, arguments=tool_params)
    context = ToolExecutionContext(workspace_path=workspace)
    executor = ToolExecutor(registry)

    console.print(f"\n[dim]Executing {tool_name}...[/dim]\n")
    try:
        result = asyncio.run(executor.execute(tool_call, validation.data, context))
    except ToolExecutionError as e:
        console.print("[red]Tool Error:[/red]")
        console.print(str(e), markup=False)
        raise typer.Exit(1)

    console.print("[green]Success![/green]")
    console.print("\n[bold]Output:[/bold]")
    console.print(result, markup=False)
