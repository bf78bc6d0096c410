"""Tests for tool registry."""

import logging

import pytest
from pydantic import BaseModel, ConfigDict

from codeloop.tools.base import Tool
from codeloop.tools.models import ApprovalType, ToolCategory, ToolExecutionContext
from codeloop.tools.registry import DEFAULT_MAX_RETRIES, DEFAULT_TOOL_TIMEOUT, ToolRegistry


class EchoArgs(BaseModel):
    model_config = ConfigDict(extra="forbid")

    text: str
    times: int = 1


class EchoTool(Tool):
    """Simple read tool for testing."""

    def __init__(self, description: str = "Echo text back"):
        self._description = description
        super().__init__()

    @property
    def name(self) -> str:
        return "echo"

    @property
    def description(self) -> str:
        return self._description

    @property
    def args_model(self) -> type[EchoArgs]:
        return EchoArgs

    @property
    def category(self) -> ToolCategory:
        return ToolCategory.READ

    async def execute(self, args: EchoArgs, context: ToolExecutionContext) -> str:
        return args.text * args.times


class ShellTool(Tool):
    """Terminal tool with explicit metadata."""

    @property
    def name(self) -> str:
        return "shell"

    @property
    def description(self) -> str:
        return "Run something"

    @property
    def args_model(self) -> type[EchoArgs]:
        return EchoArgs

    @property
    def category(self) -> ToolCategory:
        return ToolCategory.TERMINAL

    @property
    def approval_type(self) -> ApprovalType:
        return ApprovalType.TERMINAL

    @property
    def timeout(self) -> float:
        return 5.0

    @property
    def retryable(self) -> bool:
        return False

    @property
    def max_retries(self) -> int:
        return 0

    async def execute(self, args: EchoArgs, context: ToolExecutionContext) -> str:
        return args.text


class TestToolRegistry:
    """Tests for ToolRegistry."""

    def test_register_tool(self):
        """Test registering a tool."""
        registry = ToolRegistry()
        tool = EchoTool()

        registry.register(tool)

        assert len(registry) == 1
        assert "echo" in registry
        assert registry.get("echo") is tool

    def test_reregister_overwrites_with_warning(self, caplog):
        """Last registration wins and a warning is logged."""
        registry = ToolRegistry()
        registry.register(EchoTool("first"))

        with caplog.at_level(logging.WARNING, logger="codeloop.tools.registry"):
            registry.register(EchoTool("second"))

        assert len(registry) == 1
        assert registry.get("echo").description == "second"
        assert "already registered" in caplog.text

    def test_unregister_tool(self):
        registry = ToolRegistry()
        registry.register(EchoTool())

        assert registry.unregister("echo") is True
        assert len(registry) == 0
        assert registry.unregister("echo") is False

    def test_get_nonexistent_tool(self):
        registry = ToolRegistry()

        assert registry.get("nonexistent") is None
        assert registry.get_metadata("nonexistent") is None

    def test_list_and_category(self):
        registry = ToolRegistry()
        registry.register(EchoTool())
        registry.register(ShellTool())

        assert registry.list_tool_names() == ["echo", "shell"]
        assert [t.name for t in registry.get_by_category(ToolCategory.TERMINAL)] == ["shell"]

    def test_get_tool_definitions(self):
        """Definitions carry name, description and a JSON schema."""
        registry = ToolRegistry()
        registry.register(EchoTool())

        definitions = registry.get_tool_definitions()

        assert len(definitions) == 1
        definition = definitions[0]
        assert definition["name"] == "echo"
        assert definition["description"] == "Echo text back"
        assert definition["parameters"]["type"] == "object"
        assert definition["parameters"]["required"] == ["text"]
        assert set(definition["parameters"]["properties"]) == {"text", "times"}
        assert "title" not in definition["parameters"]["properties"]["text"]


class TestRegistryDefaults:
    """Metadata lookups fall back to registry-wide defaults."""

    def test_defaults_for_unset_metadata(self):
        registry = ToolRegistry()
        registry.register(EchoTool())

        assert registry.get_approval_type("echo") == ApprovalType.NONE
        assert registry.get_timeout("echo") == DEFAULT_TOOL_TIMEOUT
        policy = registry.get_retry_config("echo")
        assert policy.retryable is True
        assert policy.max_retries == DEFAULT_MAX_RETRIES

    def test_custom_defaults(self):
        registry = ToolRegistry(default_timeout=12.0, default_max_retries=1, default_retryable=False)
        registry.register(EchoTool())

        assert registry.get_timeout("echo") == 12.0
        policy = registry.get_retry_config("echo")
        assert policy.retryable is False
        assert policy.max_retries == 1

    def test_explicit_metadata_wins(self):
        registry = ToolRegistry(default_timeout=12.0)
        registry.register(ShellTool())

        assert registry.get_approval_type("shell") == ApprovalType.TERMINAL
        assert registry.get_timeout("shell") == 5.0
        policy = registry.get_retry_config("shell")
        assert policy.retryable is False
        assert policy.max_retries == 0

    def test_metadata_snapshot(self):
        registry = ToolRegistry()
        registry.register(ShellTool())

        metadata = registry.get_metadata("shell")

        assert metadata.category == ToolCategory.TERMINAL
        assert metadata.approval_type == ApprovalType.TERMINAL
        assert metadata.timeout == 5.0


class TestValidation:
    """Argument validation against tool schemas."""

    def test_valid_arguments(self):
        registry = ToolRegistry()
        registry.register(EchoTool())

        result = registry.validate("echo", {"text": "hi", "times": 2})

        assert result.success is True
        assert result.data == EchoArgs(text="hi", times=2)
        assert result.error is None

    def test_unknown_tool(self):
        result = ToolRegistry().validate("missing", {})

        assert result.success is False
        assert result.error == "Unknown tool: missing"

    def test_every_violation_is_reported(self):
        registry = ToolRegistry()
        registry.register(EchoTool())

        result = registry.validate("echo", {"times": "many", "extra": True})

        assert result.success is False
        paths = {issue.path for issue in result.issues}
        assert paths == {"text", "times", "extra"}
        assert result.error.startswith("Invalid parameters: ")

    def test_non_dict_arguments(self):
        registry = ToolRegistry()
        registry.register(EchoTool())

        result = registry.validate("echo", "not a dict")

        assert result.success is False
        assert result.issues


class TestExecutionPolicy:
    """Parallel safety and mutation classification of the built-in tools."""

    @pytest.mark.parametrize(
        "name",
        ["read_file", "list_directory", "search_files", "go_to_definition", "get_lint_errors"],
    )
    def test_read_only_tools(self, registry, name):
        assert registry.is_read_only(name) is True
        assert registry.is_mutating(name) is False

    @pytest.mark.parametrize(
        "name",
        ["edit_file", "write_file", "delete_file_or_folder", "run_command"],
    )
    def test_mutating_tools(self, registry, name):
        assert registry.is_read_only(name) is False
        assert registry.is_mutating(name) is True

    def test_unknown_tool_is_not_parallel_safe(self, registry):
        assert registry.is_read_only("nope") is False

    def test_builtin_metadata(self, registry):
        assert len(registry) == 11
        assert registry.get_approval_type("edit_file") == ApprovalType.EDITS
        assert registry.get_approval_type("write_file") == ApprovalType.EDITS
        assert registry.get_approval_type("delete_file_or_folder") == ApprovalType.DANGEROUS
        assert registry.get_approval_type("run_command") == ApprovalType.TERMINAL
        assert registry.get_approval_type("read_file") == ApprovalType.NONE

        assert registry.get_retry_config("read_file").max_retries == 2
        assert registry.get_retry_config("edit_file").max_retries == 0
        assert registry.get_retry_config("delete_file_or_folder").retryable is False
        assert registry.get_timeout("run_command") == 610.0
