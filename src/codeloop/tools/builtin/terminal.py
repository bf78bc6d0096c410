"""Shell command execution tool."""

import asyncio
import contextlib
import logging

from codeloop.tools.base import Tool, ToolExecutionError
from codeloop.tools.models import ApprovalType, ToolCategory, ToolExecutionContext
from codeloop.tools.schemas import RunCommandArgs

logger = logging.getLogger(__name__)

MAX_OUTPUT_CHARS = 20000


class RunCommandTool(Tool):
    """Run a shell command inside the workspace.

    Requires terminal approval. A command that exits non-zero is reported
    as a tool error carrying the exit code and output, so the LLM can react
    to it.
    """

    @property
    def name(self) -> str:
        """Tool name."""
        return "run_command"

    @property
    def description(self) -> str:
        """Tool description."""
        return (
            "Run a shell command in the workspace and return its combined output. "
            "Use it to run tests, builds, linters or git. "
            "Avoid interactive or long-running commands (timeout: 30s default)."
        )

    @property
    def args_model(self) -> type[RunCommandArgs]:
        return RunCommandArgs

    @property
    def category(self) -> ToolCategory:
        return ToolCategory.TERMINAL

    @property
    def approval_type(self) -> ApprovalType:
        return ApprovalType.TERMINAL

    @property
    def timeout(self) -> float:
        # Outer bound; the command's own timeout argument is enforced below
        return 610.0

    @property
    def max_retries(self) -> int:
        return 0

    async def execute(self, args: RunCommandArgs, context: ToolExecutionContext) -> str:
        """Execute a shell command.

        Args:
            args: Command, optional working directory and timeout
            context: Workspace scope

        Returns:
            Command output with the exit code

        Raises:
            ToolExecutionError: If the command fails, times out or exits non-zero
        """
        if args.cwd:
            cwd = self.resolve_path(args.cwd, context)
        elif context.workspace_path is not None:
            cwd = context.workspace_path
        else:
            cwd = None

        logger.info(f"Running command: {args.command[:100]}")

        try:
            process = await asyncio.create_subprocess_shell(
                args.command,
                cwd=str(cwd) if cwd else None,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.STDOUT,
            )
        except OSError as e:
            raise ToolExecutionError(f"Failed to start command: {e}")

        try:
            stdout, _ = await asyncio.wait_for(process.communicate(), timeout=args.timeout)
        except asyncio.TimeoutError:
            await _kill(process)
            logger.warning(f"Command timeout: {args.command[:100]}")
            raise ToolExecutionError(f"Command timed out after {args.timeout} seconds")
        except asyncio.CancelledError:
            # Reap the child even if cancellation is delivered again
            await asyncio.shield(_kill(process))
            raise

        output = stdout.decode("utf-8", errors="replace")
        if len(output) > MAX_OUTPUT_CHARS:
            output = output[:MAX_OUTPUT_CHARS] + "\n... (output truncated)"

        exit_code = process.returncode
        if exit_code != 0:
            raise ToolExecutionError(
                f"Command exited with code {exit_code}\n{output}".rstrip(),
                exit_code=exit_code,
            )

        return f"Exit code: 0\n{output}".rstrip()


async def _kill(process: asyncio.subprocess.Process) -> None:
    with contextlib.suppress(ProcessLookupError):
        process.kill()
    await process.wait()
