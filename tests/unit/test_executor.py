"""Tests for tool execution with timeouts, retries and checkpoints."""

import asyncio
from pathlib import Path
from typing import Iterable, Optional

import pytest
from pydantic import BaseModel

from codeloop.agent.executor import ToolExecutor, serialize_result
from codeloop.checkpoints import CheckpointKind, CheckpointService, SnapshotCheckpointService
from codeloop.tools.base import Tool, ToolExecutionError, ToolTimeoutError
from codeloop.tools.builtin import create_default_registry
from codeloop.tools.models import ToolCall, ToolCategory, ToolExecutionContext
from codeloop.tools.registry import ToolRegistry
from codeloop.tools.schemas import WriteFileArgs


class EmptyArgs(BaseModel):
    pass


class ScriptedTool(Tool):
    """Raises the scripted errors in order, then returns ``result``."""

    def __init__(
        self,
        errors: Optional[list[Exception]] = None,
        result: object = "done",
        retryable: bool = True,
        max_retries: int = 2,
        delay: float = 0.0,
        timeout: Optional[float] = None,
    ):
        self.errors = list(errors or [])
        self.result = result
        self._retryable = retryable
        self._max_retries = max_retries
        self._timeout = timeout
        self.delay = delay
        self.calls = 0
        super().__init__()

    @property
    def name(self) -> str:
        return "scripted"

    @property
    def description(self) -> str:
        return "Scripted tool"

    @property
    def args_model(self) -> type[EmptyArgs]:
        return EmptyArgs

    @property
    def category(self) -> ToolCategory:
        return ToolCategory.READ

    @property
    def timeout(self) -> Optional[float]:
        return self._timeout

    @property
    def retryable(self) -> bool:
        return self._retryable

    @property
    def max_retries(self) -> int:
        return self._max_retries

    async def execute(self, args: EmptyArgs, context: ToolExecutionContext) -> object:
        self.calls += 1
        if self.delay:
            await asyncio.sleep(self.delay)
        if self.errors:
            raise self.errors.pop(0)
        return self.result


class FailingCheckpoints(CheckpointService):
    async def create_checkpoint(
        self,
        kind: CheckpointKind,
        description: str,
        affected_paths: Iterable[Path],
        message_id: Optional[str] = None,
    ):
        raise OSError("disk full")

    async def rollback_to(self, checkpoint_id: str):
        raise NotImplementedError


def make_executor(tool: Tool, **kwargs) -> ToolExecutor:
    registry = ToolRegistry()
    registry.register(tool)
    return ToolExecutor(registry, retry_delay=0.0, **kwargs)


SCRIPTED_CALL = ToolCall(id="call_1", name="scripted")


class TestRetries:
    @pytest.mark.asyncio
    async def test_success(self):
        tool = ScriptedTool()

        result = await make_executor(tool).execute(SCRIPTED_CALL, EmptyArgs(), ToolExecutionContext())

        assert result == "done"
        assert tool.calls == 1

    @pytest.mark.asyncio
    async def test_transient_failure_retried(self):
        tool = ScriptedTool(errors=[ToolExecutionError("flaky", transient=True)])

        result = await make_executor(tool).execute(SCRIPTED_CALL, EmptyArgs(), ToolExecutionContext())

        assert result == "done"
        assert tool.calls == 2

    @pytest.mark.asyncio
    async def test_permanent_failure_not_retried(self):
        tool = ScriptedTool(errors=[ToolExecutionError("bad input")])

        with pytest.raises(ToolExecutionError, match="bad input") as exc_info:
            await make_executor(tool).execute(SCRIPTED_CALL, EmptyArgs(), ToolExecutionContext())

        assert tool.calls == 1
        assert exc_info.value.retryable is True

    @pytest.mark.asyncio
    async def test_retry_budget_exhausted(self):
        errors = [ToolExecutionError(f"flaky {i}", transient=True) for i in range(5)]
        tool = ScriptedTool(errors=errors, max_retries=2)

        with pytest.raises(ToolExecutionError, match="flaky 2"):
            await make_executor(tool).execute(SCRIPTED_CALL, EmptyArgs(), ToolExecutionContext())

        assert tool.calls == 3

    @pytest.mark.asyncio
    async def test_non_retryable_tool_runs_once(self):
        tool = ScriptedTool(errors=[ToolExecutionError("flaky", transient=True)], retryable=False)

        with pytest.raises(ToolExecutionError) as exc_info:
            await make_executor(tool).execute(SCRIPTED_CALL, EmptyArgs(), ToolExecutionContext())

        assert tool.calls == 1
        assert exc_info.value.retryable is False

    @pytest.mark.asyncio
    async def test_timeout_is_transient(self):
        """A timed-out attempt is re-run, and the last timeout is raised."""
        tool = ScriptedTool(delay=1.0, timeout=0.05, max_retries=1)

        with pytest.raises(ToolTimeoutError, match="timed out after 0.05s"):
            await make_executor(tool).execute(SCRIPTED_CALL, EmptyArgs(), ToolExecutionContext())

        assert tool.calls == 2

    @pytest.mark.asyncio
    async def test_unexpected_exception_wrapped(self):
        tool = ScriptedTool(errors=[RuntimeError("kaboom")])

        with pytest.raises(ToolExecutionError, match="kaboom"):
            await make_executor(tool).execute(SCRIPTED_CALL, EmptyArgs(), ToolExecutionContext())

    @pytest.mark.asyncio
    async def test_unknown_tool(self):
        executor = ToolExecutor(ToolRegistry())

        with pytest.raises(ToolExecutionError, match="Unknown tool: scripted"):
            await executor.execute(SCRIPTED_CALL, EmptyArgs(), ToolExecutionContext())


class TestSerializeResult:
    def test_values(self):
        assert serialize_result("text") == "text"
        assert serialize_result(None) == ""
        assert serialize_result({"b": 1}) == '{\n  "b": 1\n}'
        assert serialize_result(EmptyArgs()) == "{}"

    @pytest.mark.asyncio
    async def test_structured_result_serialized(self):
        tool = ScriptedTool(result={"files": ["a.py"]})

        result = await make_executor(tool).execute(SCRIPTED_CALL, EmptyArgs(), ToolExecutionContext())

        assert '"files"' in result


class TestCheckpoints:
    @pytest.mark.asyncio
    async def test_checkpoint_before_write(self, workspace):
        checkpoints = SnapshotCheckpointService()
        executor = ToolExecutor(create_default_registry(), checkpoints=checkpoints)
        context = ToolExecutionContext(workspace_path=workspace, assistant_id="msg-1")
        tool_call = ToolCall(id="call_1", name="write_file")

        await executor.execute(tool_call, WriteFileArgs(path="README.md", content="changed"), context)

        [checkpoint] = checkpoints.checkpoints
        assert checkpoint.kind == CheckpointKind.TOOL_EDIT
        assert checkpoint.message_id == "msg-1"
        assert checkpoint.description == "Before write_file: README.md"
        [snapshot] = checkpoint.snapshots.values()
        assert snapshot.content == b"# Demo\n\nA demo project.\n"

        rollback = await checkpoints.rollback_to(checkpoint.id)
        assert rollback.success is True
        assert (workspace / "README.md").read_text() == "# Demo\n\nA demo project.\n"

    @pytest.mark.asyncio
    async def test_read_only_tools_not_checkpointed(self, workspace):
        checkpoints = SnapshotCheckpointService()
        tool = ScriptedTool()

        await make_executor(tool, checkpoints=checkpoints).execute(
            SCRIPTED_CALL, EmptyArgs(), ToolExecutionContext(workspace_path=workspace)
        )

        assert checkpoints.checkpoints == []

    @pytest.mark.asyncio
    async def test_checkpoint_failure_blocks_tool(self, workspace):
        executor = ToolExecutor(create_default_registry(), checkpoints=FailingCheckpoints())
        context = ToolExecutionContext(workspace_path=workspace)

        with pytest.raises(ToolExecutionError, match="Could not checkpoint README.md"):
            await executor.execute(
                ToolCall(id="c", name="write_file"),
                WriteFileArgs(path="README.md", content="changed"),
                context,
            )

        assert (workspace / "README.md").read_text() == "# Demo\n\nA demo project.\n"
