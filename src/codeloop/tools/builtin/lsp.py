"""Language-server query tools.

The agent does not manage language-server processes. These tools delegate
to a ``LanguageService`` supplied by the host (editor, CLI wrapper, test).
"""

import logging
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Optional

from pydantic import BaseModel

from codeloop.tools.base import Tool, ToolExecutionError
from codeloop.tools.models import ToolCategory, ToolExecutionContext
from codeloop.tools.schemas import DocumentSymbolsArgs, LintErrorsArgs, LspLocationArgs

logger = logging.getLogger(__name__)


class Location(BaseModel):
    """A position in a workspace file (1-based)."""

    path: str
    line: int
    column: int = 1
    preview: Optional[str] = None


class DocumentSymbol(BaseModel):
    name: str
    kind: str
    line: int
    container: Optional[str] = None


class Diagnostic(BaseModel):
    line: int
    column: int = 1
    severity: str = "error"
    message: str
    source: Optional[str] = None


class LanguageService(ABC):
    """Host-provided language intelligence."""

    @abstractmethod
    async def definition(self, path: Path, line: int, column: int) -> list[Location]:
        pass

    @abstractmethod
    async def references(self, path: Path, line: int, column: int) -> list[Location]:
        pass

    @abstractmethod
    async def document_symbols(self, path: Path) -> list[DocumentSymbol]:
        pass

    @abstractmethod
    async def diagnostics(self, path: Path, refresh: bool = False) -> list[Diagnostic]:
        pass


def _format_locations(locations: list[Location], empty: str) -> str:
    if not locations:
        return empty
    lines = []
    for loc in locations:
        line = f"{loc.path}:{loc.line}:{loc.column}"
        if loc.preview:
            line += f": {loc.preview.strip()}"
        lines.append(line)
    return "\n".join(lines)


class LspTool(Tool):
    """Base for tools backed by a LanguageService."""

    def __init__(self, service: Optional[LanguageService] = None):
        """Initialize the tool.

        Args:
            service: Language service to query; calls fail when missing
        """
        self._service = service
        super().__init__()

    @property
    def category(self) -> ToolCategory:
        return ToolCategory.LSP

    @property
    def max_retries(self) -> int:
        return 2

    @property
    def service(self) -> LanguageService:
        if self._service is None:
            raise ToolExecutionError("No language service is configured for this workspace")
        return self._service


class GoToDefinitionTool(LspTool):
    @property
    def name(self) -> str:
        return "go_to_definition"

    @property
    def description(self) -> str:
        return "Find where the symbol at a position (1-based line/column) is defined."

    @property
    def args_model(self) -> type[LspLocationArgs]:
        return LspLocationArgs

    async def execute(self, args: LspLocationArgs, context: ToolExecutionContext) -> str:
        path = self.resolve_path(args.path, context)
        locations = await self.service.definition(path, args.line, args.column)
        return _format_locations(locations, "No definition found")


class FindReferencesTool(LspTool):
    @property
    def name(self) -> str:
        return "find_references"

    @property
    def description(self) -> str:
        return "List all references to the symbol at a position (1-based line/column)."

    @property
    def args_model(self) -> type[LspLocationArgs]:
        return LspLocationArgs

    async def execute(self, args: LspLocationArgs, context: ToolExecutionContext) -> str:
        path = self.resolve_path(args.path, context)
        locations = await self.service.references(path, args.line, args.column)
        return _format_locations(locations, "No references found")


class DocumentSymbolsTool(LspTool):
    @property
    def name(self) -> str:
        return "get_document_symbols"

    @property
    def description(self) -> str:
        return "List the classes, functions and other symbols declared in a file."

    @property
    def args_model(self) -> type[DocumentSymbolsArgs]:
        return DocumentSymbolsArgs

    async def execute(self, args: DocumentSymbolsArgs, context: ToolExecutionContext) -> str:
        path = self.resolve_path(args.path, context)
        symbols = await self.service.document_symbols(path)
        if not symbols:
            return f"No symbols found in {args.path}"
        return "\n".join(
            f"{s.line}: {s.kind} {s.container + '.' if s.container else ''}{s.name}"
            for s in symbols
        )


class LintErrorsTool(LspTool):
    @property
    def name(self) -> str:
        return "get_lint_errors"

    @property
    def description(self) -> str:
        return "Get compiler and linter diagnostics for a file."

    @property
    def args_model(self) -> type[LintErrorsArgs]:
        return LintErrorsArgs

    async def execute(self, args: LintErrorsArgs, context: ToolExecutionContext) -> str:
        path = self.resolve_path(args.path, context)
        diagnostics = await self.service.diagnostics(path, refresh=args.refresh)
        if not diagnostics:
            return f"No problems found in {args.path}"

        lines = [f"{len(diagnostics)} problem(s) in {args.path}:"]
        for d in diagnostics:
            source = f" [{d.source}]" if d.source else ""
            lines.append(f"{d.line}:{d.column} {d.severity}{source}: {d.message}")
        return "\n".join(lines)
