"""Tool registry for managing available tools."""

import logging
from typing import Any, Optional

from pydantic import ValidationError

from codeloop.tools.base import Tool
from codeloop.tools.models import (
    ApprovalType,
    RetryPolicy,
    ToolCategory,
    ToolMetadata,
    ValidationIssue,
    ValidationResult,
)

logger = logging.getLogger(__name__)

DEFAULT_TOOL_TIMEOUT = 60.0
DEFAULT_MAX_RETRIES = 3

# Mutating regardless of how they were categorized
MUTATING_TOOL_NAMES = frozenset({"edit_file", "write_file", "run_command"})


class ToolRegistry:
    """Registry for managing available tools.

    Single source of truth for tool metadata: schemas, categories,
    approval requirements, timeouts and retry policy. Constructed
    explicitly and handed to the agent, so every test can use its own.
    """

    def __init__(
        self,
        default_timeout: float = DEFAULT_TOOL_TIMEOUT,
        default_max_retries: int = DEFAULT_MAX_RETRIES,
        default_retryable: bool = True,
    ):
        """Initialize the tool registry.

        Args:
            default_timeout: Timeout in seconds for tools that set none
            default_max_retries: Retry budget for tools that set none
            default_retryable: Retryability for tools that set none
        """
        self._tools: dict[str, Tool] = {}
        self.default_timeout = default_timeout
        self.default_max_retries = default_max_retries
        self.default_retryable = default_retryable

    def register(self, tool: Tool) -> None:
        """Register a tool.

        Re-registering a name replaces the previous tool.

        Args:
            tool: Tool instance to register
        """
        if tool.name in self._tools:
            logger.warning(f"Tool '{tool.name}' already registered, overwriting")

        self._tools[tool.name] = tool
        logger.debug(f"Registered tool: {tool.name}")

    def unregister(self, name: str) -> bool:
        """Unregister a tool.

        Args:
            name: Tool name to unregister

        Returns:
            True if tool was unregistered, False if not found
        """
        if name in self._tools:
            del self._tools[name]
            logger.debug(f"Unregistered tool: {name}")
            return True
        return False

    def get(self, name: str) -> Optional[Tool]:
        """Get a tool by name."""
        return self._tools.get(name)

    def get_metadata(self, name: str) -> Optional[ToolMetadata]:
        """Get registration metadata for a tool."""
        tool = self._tools.get(name)
        return tool.metadata if tool else None

    def list_tools(self) -> list[Tool]:
        """Get list of all registered tools."""
        return list(self._tools.values())

    def list_tool_names(self) -> list[str]:
        """Get list of all registered tool names."""
        return list(self._tools.keys())

    def get_by_category(self, category: ToolCategory) -> list[Tool]:
        """Get tools of one category."""
        return [tool for tool in self._tools.values() if tool.category == category]

    def get_tool_definitions(self) -> list[dict[str, Any]]:
        """Get tool definitions for all registered tools.

        Returns:
            List of ``{name, description, parameters}`` objects for the LLM
        """
        return [tool.get_tool_definition() for tool in self._tools.values()]

    def get_approval_type(self, name: str) -> ApprovalType:
        """Get the approval requirement of a tool (NONE when unset or unknown)."""
        tool = self._tools.get(name)
        if tool is None or tool.approval_type is None:
            return ApprovalType.NONE
        return tool.approval_type

    def get_timeout(self, name: str) -> float:
        """Get a tool's timeout in seconds."""
        tool = self._tools.get(name)
        if tool is None or tool.timeout is None:
            return self.default_timeout
        return tool.timeout

    def get_retry_config(self, name: str) -> RetryPolicy:
        """Get a tool's retry policy."""
        tool = self._tools.get(name)
        retryable = tool.retryable if tool and tool.retryable is not None else self.default_retryable
        max_retries = (
            tool.max_retries if tool and tool.max_retries is not None else self.default_max_retries
        )
        return RetryPolicy(retryable=retryable, max_retries=max_retries)

    def validate(self, name: str, args: Any) -> ValidationResult:
        """Validate raw LLM arguments against a tool's schema.

        Args:
            name: Tool name
            args: Raw arguments (normally a dict)

        Returns:
            ValidationResult with the typed arguments, or every violation
            with its field path
        """
        tool = self._tools.get(name)
        if tool is None:
            return ValidationResult(success=False, error=f"Unknown tool: {name}")

        try:
            data = tool.args_model.model_validate(args)
        except ValidationError as e:
            issues = [
                ValidationIssue(
                    path=".".join(str(part) for part in err["loc"]) or "<root>",
                    message=err["msg"],
                )
                for err in e.errors()
            ]
            error = "Invalid parameters: " + "; ".join(str(issue) for issue in issues)
            return ValidationResult(success=False, error=error, issues=issues)

        return ValidationResult(success=True, data=data)

    def is_read_only(self, name: str) -> bool:
        """Whether a tool may run in parallel with other read-only tools."""
        tool = self._tools.get(name)
        if tool is None or name in MUTATING_TOOL_NAMES:
            return False
        return tool.category.is_parallel_safe

    def is_mutating(self, name: str) -> bool:
        """Whether a tool changes workspace state and must run serially."""
        tool = self._tools.get(name)
        if name in MUTATING_TOOL_NAMES:
            return True
        return tool is not None and tool.category == ToolCategory.WRITE

    def __len__(self) -> int:
        """Get number of registered tools."""
        return len(self._tools)

    def __contains__(self, name: str) -> bool:
        """Check if tool is registered."""
        return name in self._tools

    def __str__(self) -> str:
        """String representation."""
        return f"ToolRegistry({len(self._tools)} tools)"

    def __repr__(self) -> str:
        """Representation."""
        tools = ", ".join(self._tools.keys())
        return f"<ToolRegistry tools=[{tools}]>"
