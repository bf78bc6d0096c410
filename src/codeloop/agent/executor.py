"""Tool execution with timeouts, retries and pre-edit checkpoints."""

import asyncio
import json
import logging
from typing import Any, Optional

from pydantic import BaseModel

from codeloop.checkpoints import CheckpointKind, CheckpointService
from codeloop.tools.base import ToolExecutionError, ToolTimeoutError
from codeloop.tools.models import ToolCall, ToolExecutionContext
from codeloop.tools.registry import ToolRegistry

logger = logging.getLogger(__name__)


def serialize_result(result: Any) -> str:
    """Render a tool result as the text the LLM will see."""
    if isinstance(result, str):
        return result
    if result is None:
        return ""
    if isinstance(result, BaseModel):
        return result.model_dump_json(indent=2)
    return json.dumps(result, ensure_ascii=False, indent=2, default=str)


class ToolExecutor:
    """Runs validated tool calls.

    Timeouts and retry budgets come from the registry. Only transient
    failures are re-run, and only for retryable tools; any final failure is
    raised as ``ToolExecutionError`` with ``retryable`` taken from the
    tool's metadata.
    """

    def __init__(
        self,
        registry: ToolRegistry,
        checkpoints: Optional[CheckpointService] = None,
        retry_delay: float = 0.5,
    ):
        """Initialize executor.

        Args:
            registry: Tool registry
            checkpoints: Service that captures pre-images before mutating tools
            retry_delay: Base delay between attempts in seconds (grows linearly)
        """
        self.registry = registry
        self.checkpoints = checkpoints
        self.retry_delay = retry_delay

    async def execute(
        self,
        tool_call: ToolCall,
        args: BaseModel,
        context: ToolExecutionContext,
    ) -> str:
        """Execute a tool call.

        Args:
            tool_call: Call being executed (name and id are used)
            args: Validated arguments
            context: Workspace scope

        Returns:
            Serialized result

        Raises:
            ToolExecutionError: If the tool failed after all attempts
        """
        tool = self.registry.get(tool_call.name)
        if tool is None:
            raise ToolExecutionError(f"Unknown tool: {tool_call.name}")

        policy = self.registry.get_retry_config(tool_call.name)
        timeout = self.registry.get_timeout(tool_call.name)

        try:
            await self._checkpoint(tool_call, args, context)
        except ToolExecutionError as e:
            e.retryable = policy.retryable
            raise

        attempts = 1 + (policy.max_retries if policy.retryable else 0)
        for attempt in range(1, attempts + 1):
            try:
                logger.info(f"Executing tool: {tool_call.name} ({tool_call.id}), attempt {attempt}")
                result = await asyncio.wait_for(tool.execute(args, context), timeout=timeout)
                return serialize_result(result)

            except asyncio.TimeoutError:
                error: ToolExecutionError = ToolTimeoutError(
                    f"Tool '{tool_call.name}' timed out after {timeout:g}s"
                )
            except ToolExecutionError as e:
                error = e
            except Exception as e:
                logger.error(f"Tool {tool_call.name} raised unexpectedly: {e}", exc_info=True)
                error = ToolExecutionError(str(e) or type(e).__name__)

            if error.transient and attempt < attempts:
                logger.warning(
                    f"Tool {tool_call.name} failed ({error}), retrying ({attempt}/{attempts - 1})"
                )
                await asyncio.sleep(self.retry_delay * attempt)
                continue

            error.retryable = policy.retryable
            raise error

        # Unreachable: the loop either returns or raises
        raise ToolExecutionError(f"Tool '{tool_call.name}' did not run")

    async def _checkpoint(
        self,
        tool_call: ToolCall,
        args: BaseModel,
        context: ToolExecutionContext,
    ) -> None:
        if self.checkpoints is None or not self.registry.is_mutating(tool_call.name):
            return

        path = getattr(args, "path", None)
        if not path:
            return

        tool = self.registry.get(tool_call.name)
        full_path = tool.resolve_path(path, context)
        try:
            await self.checkpoints.create_checkpoint(
                CheckpointKind.TOOL_EDIT,
                f"Before {tool_call.name}: {path}",
                [full_path],
                message_id=context.assistant_id,
            )
        except Exception as e:
            logger.error(f"Checkpoint failed before {tool_call.name}: {e}", exc_info=True)
            raise ToolExecutionError(f"Could not checkpoint {path} before {tool_call.name}: {e}")
