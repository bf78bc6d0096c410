"""
codeloop run - Run the agent on an instruction.

Usage:
    codeloop run "Add a --dry-run flag to the deploy script"
    codeloop run "Fix the failing test" --workspace ./service
    codeloop run "Explain this module" --mode chat
    codeloop run "Rename the helper" --auto-approve-edits --model openai/gpt-4o
"""

import asyncio
import json
import logging
import os
from pathlib import Path
from typing import Annotated, Any

import typer
from rich.console import Console
from rich.markdown import Markdown
from rich.markup import escape
from rich.panel import Panel

from codeloop.agent.models import AgentEvent, EventType, RunResult, StopReason, WorkMode
from codeloop.agent.orchestrator import Agent
from codeloop.checkpoints import SnapshotCheckpointService
from codeloop.cli.output import configure_logging
from codeloop.config import Config, ConfigurationError, LLMConfig, load_config
from codeloop.context import LLMSummarizer
from codeloop.providers import LiteLLMClient
from codeloop.tools.builtin import create_default_registry
from codeloop.tools.models import ToolCall

logger = logging.getLogger(__name__)

console = Console()

# Exit codes
EXIT_FAILED = 1
EXIT_CONFIG = 2
EXIT_ABORTED = 130


def _resolve_api_key(llm: LLMConfig) -> LLMConfig:
    """Fill in the API key from the provider's usual environment variable."""
    if llm.api_key or not llm.provider:
        return llm
    env_key = f"{llm.provider.upper()}_API_KEY"
    api_key = os.environ.get(env_key)
    if api_key:
        logger.debug(f"Using API key from {env_key}")
        return llm.model_copy(update={"api_key": api_key})
    return llm


def _apply_overrides(
    config: Config,
    model: str | None,
    inline: bool,
    auto_approve_edits: bool,
    auto_approve_terminal: bool,
    yes: bool,
    max_tool_loops: int | None,
) -> Config:
    """Apply command line options on top of loaded configuration."""
    llm_updates: dict[str, Any] = {}
    if model:
        if "/" in model:
            provider, _, name = model.partition("/")
            llm_updates.update(provider=provider, model=name)
        else:
            llm_updates["model"] = model
    if inline:
        llm_updates["tool_format"] = "inline"

    auto_approve = config.agent.auto_approve.model_copy(
        update={
            "edits": config.agent.auto_approve.edits or auto_approve_edits or yes,
            "terminal": config.agent.auto_approve.terminal or auto_approve_terminal or yes,
            "dangerous": config.agent.auto_approve.dangerous or yes,
        }
    )
    agent_updates: dict[str, Any] = {"auto_approve": auto_approve}
    if max_tool_loops is not None:
        agent_updates["max_tool_loops"] = max_tool_loops

    return config.model_copy(
        update={
            "llm": _resolve_api_key(config.llm.model_copy(update=llm_updates)),
            "agent": config.agent.model_copy(update=agent_updates),
        }
    )


def _format_arguments(tool_call: ToolCall) -> str:
    return json.dumps(tool_call.arguments, indent=2, ensure_ascii=False, default=str)


class ConsoleRenderer:
    """Prints agent events and answers approval prompts interactively."""

    def __init__(self, agent: Agent | None = None, quiet: bool = False):
        self.agent = agent
        self.quiet = quiet
        self._prompts: set[asyncio.Task[None]] = set()

    def __call__(self, event: AgentEvent) -> None:
        # JSON mode keeps stdout machine-readable; approvals still prompt
        if self.quiet and event.event_type != EventType.TOOL_APPROVAL_NEEDED:
            return
        handler = {
            EventType.STREAM_TEXT: self._on_text,
            EventType.TOOL_APPROVAL_NEEDED: self._on_approval_needed,
            EventType.TOOL_START: self._on_tool_start,
            EventType.TOOL_COMPLETE: self._on_tool_complete,
            EventType.TOOL_ERROR: self._on_tool_error,
            EventType.TOOL_REJECTED: self._on_tool_rejected,
            EventType.CONTEXT_COMPRESSED: self._on_notice,
            EventType.LOOP_DETECTED: self._on_warning,
            EventType.WARNING: self._on_warning,
            EventType.ERROR: self._on_error,
        }.get(event.event_type)
        if handler is not None:
            handler(event)

    def _on_text(self, event: AgentEvent) -> None:
        if event.text:
            console.print(event.text, end="", markup=False, highlight=False)

    def _on_tool_start(self, event: AgentEvent) -> None:
        if event.tool_call:
            console.print(f"\n[dim]→ {event.tool_call.name}[/dim]")

    def _on_tool_complete(self, event: AgentEvent) -> None:
        if event.tool_call:
            console.print(f"[green]✓[/green] {event.tool_call.name}")

    def _on_tool_error(self, event: AgentEvent) -> None:
        name = event.tool_call.name if event.tool_call else "tool"
        console.print(f"[red]✗[/red] {name}: {escape(event.text or '')}")

    def _on_tool_rejected(self, event: AgentEvent) -> None:
        name = event.tool_call.name if event.tool_call else "tool"
        console.print(f"[yellow]Rejected:[/yellow] {name}")

    def _on_notice(self, event: AgentEvent) -> None:
        console.print(f"[dim]{escape(event.text or '')}[/dim]")

    def _on_warning(self, event: AgentEvent) -> None:
        console.print(f"\n[yellow]![/yellow] {escape(event.text or '')}")

    def _on_error(self, event: AgentEvent) -> None:
        console.print(f"\n[red]Error:[/red] {escape(event.text or '')}")

    def _on_approval_needed(self, event: AgentEvent) -> None:
        if self.agent is None or event.tool_call is None:
            return
        task = asyncio.get_running_loop().create_task(self._prompt_approval(event))
        self._prompts.add(task)
        task.add_done_callback(self._prompts.discard)

    async def _prompt_approval(self, event: AgentEvent) -> None:
        assert self.agent is not None and event.tool_call is not None
        approval_type = (event.data or {}).get("approval_type", "")
        console.print()
        console.print(
            Panel(
                _format_arguments(event.tool_call),
                title=f"[yellow]Approve {event.tool_call.name}?[/yellow] [dim]({approval_type})[/dim]",
                border_style="yellow",
            )
        )
        try:
            approved = await asyncio.to_thread(typer.confirm, "Run this tool?", default=True)
        except (typer.Abort, EOFError):
            approved = False

        if approved:
            self.agent.approve()
        else:
            self.agent.reject()


def _print_summary(result: RunResult, json_output: bool) -> None:
    if json_output:
        console.print_json(
            data={
                "success": result.success,
                "stop_reason": result.stop_reason.value,
                "response": result.content,
                "tool_loops": result.tool_loops,
                "tool_calls": [
                    {"name": tc.name, "arguments": tc.arguments, "status": tc.status.value}
                    for tc in result.tool_calls
                ],
                "error": result.error,
            }
        )
        return

    console.print()
    if result.success:
        console.print(f"[green]✓[/green] Completed in {result.tool_loops} tool round(s)")
    else:
        console.print(f"[red]✗ Stopped:[/red] {result.stop_reason.value}")
        if result.error:
            console.print(f"Reason: {escape(result.error)}")


async def _run_agent(
    instruction: str,
    config: Config,
    workspace: Path,
    mode: WorkMode,
    json_output: bool,
) -> RunResult:
    client = LiteLLMClient()
    registry = create_default_registry(default_timeout=config.agent.tool_timeout)
    checkpoints = SnapshotCheckpointService()
    renderer = ConsoleRenderer(quiet=json_output)

    agent = Agent(
        client,
        registry,
        config.agent,
        checkpoints=checkpoints,
        summarizer=LLMSummarizer(client, config.llm, retry=config.agent.retry),
        event_callback=renderer,
    )
    renderer.agent = agent

    if not json_output:
        console.print(f"[dim]Running in {workspace} ({mode.value} mode, {config.llm.model_id})[/dim]\n")

    result = await agent.send(instruction, config.llm, workspace=workspace, mode=mode)

    if checkpoints.checkpoints and not json_output:
        console.print(f"\n[dim]{len(checkpoints.checkpoints)} checkpoint(s) taken before file changes[/dim]")
    return result


def run_instruction(
    instruction: Annotated[
        str,
        typer.Argument(help="What the agent should do."),
    ],
    workspace: Annotated[
        Path,
        typer.Option(
            "--workspace",
            "-w",
            help="Workspace root the tools operate in.",
            exists=True,
            file_okay=False,
            resolve_path=True,
        ),
    ] = Path("."),
    model: Annotated[
        str | None,
        typer.Option(
            "--model",
            "-m",
            help="Model to use, as provider/model or a model name.",
        ),
    ] = None,
    mode: Annotated[
        WorkMode,
        typer.Option(
            "--mode",
            help="Work mode: agent, plan or chat.",
            case_sensitive=False,
        ),
    ] = WorkMode.AGENT,
    auto_approve_edits: Annotated[
        bool,
        typer.Option(
            "--auto-approve-edits",
            help="Apply file edits without asking.",
        ),
    ] = False,
    auto_approve_terminal: Annotated[
        bool,
        typer.Option(
            "--auto-approve-terminal",
            help="Run terminal commands without asking.",
        ),
    ] = False,
    yes: Annotated[
        bool,
        typer.Option(
            "--yes",
            "-y",
            help="Approve every tool call, including deletions.",
        ),
    ] = False,
    inline: Annotated[
        bool,
        typer.Option(
            "--inline",
            help="Describe tools in the prompt instead of native function calling.",
        ),
    ] = False,
    max_tool_loops: Annotated[
        int | None,
        typer.Option(
            "--max-tool-loops",
            help="Maximum tool-call rounds for this run.",
            min=1,
        ),
    ] = None,
    json_output: Annotated[
        bool,
        typer.Option(
            "--json",
            help="Output the run result as JSON.",
        ),
    ] = False,
    verbose: Annotated[
        bool,
        typer.Option(
            "--verbose",
            help="Enable debug logging.",
        ),
    ] = False,
) -> None:
    """Run the agent on an instruction inside a workspace."""
    if verbose:
        configure_logging(True)

    try:
        config = load_config(project_path=workspace)
    except ConfigurationError as e:
        console.print(f"[red]Configuration error:[/red] {escape(str(e))}")
        raise typer.Exit(EXIT_CONFIG)

    config = _apply_overrides(
        config,
        model=model,
        inline=inline,
        auto_approve_edits=auto_approve_edits,
        auto_approve_terminal=auto_approve_terminal,
        yes=yes,
        max_tool_loops=max_tool_loops,
    )

    try:
        result = asyncio.run(_run_agent(instruction, config, workspace, mode, json_output))
    except KeyboardInterrupt:
        console.print("\n[yellow]Aborted.[/yellow]")
        raise typer.Exit(EXIT_ABORTED)

    if result.content and not json_output and result.stop_reason == StopReason.COMPLETED:
        # Streamed text is raw; show the final answer rendered once more
        console.print()
        console.print(Markdown(result.content))

    _print_summary(result, json_output)

    if not result.success:
        raise typer.Exit(EXIT_FAILED)
