"""Tool system for the agent.

Tools are the side-effecting (or read-only) operations the LLM can invoke:
reading and editing workspace files, running commands, searching code and
querying a language server.
"""

from codeloop.tools.base import Tool, ToolExecutionError, ToolTimeoutError
from codeloop.tools.models import (
    ApprovalType,
    RetryPolicy,
    ToolCall,
    ToolCategory,
    ToolExecutionContext,
    ToolMetadata,
    ToolStatus,
    ValidationIssue,
    ValidationResult,
)
from codeloop.tools.registry import MUTATING_TOOL_NAMES, ToolRegistry

__all__ = [
    "ApprovalType",
    "MUTATING_TOOL_NAMES",
    "RetryPolicy",
    "Tool",
    "ToolCall",
    "ToolCategory",
    "ToolExecutionContext",
    "ToolExecutionError",
    "ToolMetadata",
    "ToolRegistry",
    "ToolStatus",
    "ToolTimeoutError",
    "ValidationIssue",
    "ValidationResult",
]
