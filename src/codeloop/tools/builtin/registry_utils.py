"""Utility functions for tool registry setup."""

import logging
from typing import Optional

from codeloop.tools.builtin.file import (
    DeleteFileOrFolderTool,
    EditFileTool,
    ListDirectoryTool,
    ReadFileTool,
    WriteFileTool,
)
from codeloop.tools.builtin.lsp import (
    DocumentSymbolsTool,
    FindReferencesTool,
    GoToDefinitionTool,
    LanguageService,
    LintErrorsTool,
)
from codeloop.tools.builtin.search import SearchFilesTool
from codeloop.tools.builtin.terminal import RunCommandTool
from codeloop.tools.registry import ToolRegistry

logger = logging.getLogger(__name__)


def register_builtin_tools(
    registry: ToolRegistry,
    language_service: Optional[LanguageService] = None,
) -> None:
    """Register all built-in tools.

    Args:
        registry: ToolRegistry to register tools in
        language_service: Optional backend for the LSP tools
    """
    # Read-only tools (parallel-safe, no approval)
    registry.register(ReadFileTool())
    registry.register(ListDirectoryTool())
    registry.register(SearchFilesTool())

    # Write tools (edit approval, checkpointed)
    registry.register(EditFileTool())
    registry.register(WriteFileTool())
    registry.register(DeleteFileOrFolderTool())

    # Terminal
    registry.register(RunCommandTool())

    # Language server
    registry.register(GoToDefinitionTool(language_service))
    registry.register(FindReferencesTool(language_service))
    registry.register(DocumentSymbolsTool(language_service))
    registry.register(LintErrorsTool(language_service))

    if language_service is None:
        logger.debug("No language service configured; LSP tools will report errors")

    logger.info(f"Registered {len(registry)} built-in tools")


def create_default_registry(
    language_service: Optional[LanguageService] = None,
    default_timeout: Optional[float] = None,
) -> ToolRegistry:
    """Create a registry with every built-in tool registered."""
    registry = ToolRegistry() if default_timeout is None else ToolRegistry(default_timeout=default_timeout)
    register_builtin_tools(registry, language_service=language_service)
    return registry
