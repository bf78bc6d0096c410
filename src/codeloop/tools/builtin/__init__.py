"""Built-in tools for the agent.

This module provides the standard workspace tools:
- Read, list and search files
- Edit, write and delete files
- Run shell commands
- Query a language service (definitions, references, symbols, diagnostics)
"""

from codeloop.tools.builtin.file import (
    DeleteFileOrFolderTool,
    EditFileTool,
    ListDirectoryTool,
    ReadFileTool,
    WriteFileTool,
)
from codeloop.tools.builtin.lsp import (
    Diagnostic,
    DocumentSymbol,
    DocumentSymbolsTool,
    FindReferencesTool,
    GoToDefinitionTool,
    LanguageService,
    LintErrorsTool,
    Location,
)
from codeloop.tools.builtin.registry_utils import create_default_registry, register_builtin_tools
from codeloop.tools.builtin.search import SearchFilesTool
from codeloop.tools.builtin.terminal import RunCommandTool

__all__ = [
    "DeleteFileOrFolderTool",
    "Diagnostic",
    "DocumentSymbol",
    "DocumentSymbolsTool",
    "EditFileTool",
    "FindReferencesTool",
    "GoToDefinitionTool",
    "LanguageService",
    "LintErrorsTool",
    "ListDirectoryTool",
    "Location",
    "ReadFileTool",
    "RunCommandTool",
    "SearchFilesTool",
    "WriteFileTool",
    "create_default_registry",
    "register_builtin_tools",
]
