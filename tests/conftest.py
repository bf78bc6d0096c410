"""
Pytest configuration and fixtures for codeloop tests.
"""

import tempfile
from collections.abc import Generator
from pathlib import Path

import pytest
from typer.testing import CliRunner

from codeloop.config.schema import AgentConfig, LLMConfig, RetrySettings
from codeloop.tools.builtin import create_default_registry
from codeloop.tools.registry import ToolRegistry


@pytest.fixture
def cli_runner() -> CliRunner:
    """Provide a Typer CLI test runner."""
    return CliRunner()


@pytest.fixture
def temp_dir() -> Generator[Path, None, None]:
    """Provide a temporary directory for tests."""
    with tempfile.TemporaryDirectory() as tmpdir:
        yield Path(tmpdir)


@pytest.fixture
def workspace(temp_dir: Path) -> Path:
    """Provide a small workspace with a few source files."""
    root = temp_dir / "workspace"
    (root / "src").mkdir(parents=True)
    (root / "src" / "app.py").write_text("def main():\n    return 'hello'\n")
    (root / "README.md").write_text("# Demo\n\nA demo project.\n")
    (root / "node_modules" / "pkg").mkdir(parents=True)
    (root / "node_modules" / "pkg" / "index.js").write_text("// hello from a dependency\n")
    return root


@pytest.fixture
def mock_codeloop_home(temp_dir: Path, monkeypatch: pytest.MonkeyPatch) -> Path:
    """Point CODELOOP_HOME at an empty directory."""
    home = temp_dir / ".codeloop-home"
    home.mkdir()
    monkeypatch.setenv("CODELOOP_HOME", str(home))
    return home


@pytest.fixture
def registry() -> ToolRegistry:
    """Registry with every built-in tool."""
    return create_default_registry()


@pytest.fixture
def llm_config() -> LLMConfig:
    """LLM configuration with a dummy key."""
    return LLMConfig(provider="openai", model="gpt-4o", api_key="sk-test")


@pytest.fixture
def agent_config() -> AgentConfig:
    """Agent configuration with instant LLM retries."""
    return AgentConfig(retry=RetrySettings(max_retries=2, retry_delay=0.0))
