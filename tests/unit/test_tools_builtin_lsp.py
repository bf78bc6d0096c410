"""Tests for language-server query tools."""

from pathlib import Path

import pytest

from codeloop.tools.base import ToolExecutionError
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
from codeloop.tools.models import ToolExecutionContext
from codeloop.tools.schemas import DocumentSymbolsArgs, LintErrorsArgs, LspLocationArgs


class FakeLanguageService(LanguageService):
    """Canned answers, recording every query."""

    def __init__(self):
        self.queries: list[tuple] = []

    async def definition(self, path: Path, line: int, column: int) -> list[Location]:
        self.queries.append(("definition", path.name, line, column))
        return [Location(path="src/app.py", line=1, column=5, preview="def main():\n")]

    async def references(self, path: Path, line: int, column: int) -> list[Location]:
        self.queries.append(("references", path.name, line, column))
        return []

    async def document_symbols(self, path: Path) -> list[DocumentSymbol]:
        return [
            DocumentSymbol(name="App", kind="class", line=1),
            DocumentSymbol(name="run", kind="method", line=3, container="App"),
        ]

    async def diagnostics(self, path: Path, refresh: bool = False) -> list[Diagnostic]:
        self.queries.append(("diagnostics", path.name, refresh))
        return [Diagnostic(line=2, column=4, message="undefined name 'x'", source="pyflakes")]


@pytest.fixture
def context(workspace):
    return ToolExecutionContext(workspace_path=workspace)


@pytest.fixture
def service():
    return FakeLanguageService()


class TestLspTools:
    @pytest.mark.asyncio
    async def test_no_service_configured(self, context):
        tool = GoToDefinitionTool()

        with pytest.raises(ToolExecutionError, match="No language service"):
            await tool.execute(LspLocationArgs(path="src/app.py", line=1, column=5), context)

    @pytest.mark.asyncio
    async def test_definition(self, context, service):
        tool = GoToDefinitionTool(service)

        result = await tool.execute(LspLocationArgs(path="src/app.py", line=1, column=5), context)

        assert result == "src/app.py:1:5: def main():"
        assert service.queries == [("definition", "app.py", 1, 5)]

    @pytest.mark.asyncio
    async def test_no_references(self, context, service):
        result = await FindReferencesTool(service).execute(
            LspLocationArgs(path="src/app.py", line=1, column=5), context
        )

        assert result == "No references found"

    @pytest.mark.asyncio
    async def test_document_symbols(self, context, service):
        result = await DocumentSymbolsTool(service).execute(
            DocumentSymbolsArgs(path="src/app.py"), context
        )

        assert result == "1: class App\n3: method App.run"

    @pytest.mark.asyncio
    async def test_lint_errors(self, context, service):
        result = await LintErrorsTool(service).execute(
            LintErrorsArgs(path="src/app.py", refresh=True), context
        )

        assert result.splitlines() == [
            "1 problem(s) in src/app.py:",
            "2:4 error [pyflakes]: undefined name 'x'",
        ]
        assert service.queries == [("diagnostics", "app.py", True)]
