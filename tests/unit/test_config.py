"""Tests for configuration loading and merging."""

from pathlib import Path

import pytest

from codeloop.config import ConfigurationError, load_config
from codeloop.config.loader import _parse_env_value, apply_env_overrides, load_yaml_file
from codeloop.config.merger import deep_merge, set_nested_value
from codeloop.config.schema import AgentConfig, AutoApproveConfig, Config, LLMConfig, RetrySettings
from codeloop.storage.paths import find_project_config, get_codeloop_home, get_global_config_path
from codeloop.tools.models import ApprovalType


def write_config(directory: Path, content: str) -> Path:
    config_dir = directory / ".codeloop"
    config_dir.mkdir(parents=True, exist_ok=True)
    path = config_dir / "config.yaml"
    path.write_text(content)
    return path


class TestSchema:
    def test_defaults(self):
        config = Config()

        assert config.agent.max_tool_loops == 30
        assert config.agent.loop_detection.max_exact_repeats == 2
        assert config.agent.context.keep_recent_turns == 3
        assert "node_modules" in config.agent.ignored_directories
        assert config.llm.tool_format == "native"

    def test_model_id(self):
        assert LLMConfig(provider="openai", model="gpt-4o").model_id == "openai/gpt-4o"
        assert LLMConfig(provider="openai", model="azure/gpt-4o").model_id == "azure/gpt-4o"

    @pytest.mark.parametrize(
        "provider,api_key,expected",
        [
            ("openai", "sk-1", True),
            ("openai", "   ", False),
            ("openai", None, False),
            ("ollama", None, True),
        ],
    )
    def test_has_credentials(self, provider, api_key, expected):
        assert LLMConfig(provider=provider, api_key=api_key).has_credentials() is expected

    def test_retry_delay_backoff(self):
        settings = RetrySettings(retry_delay=1.0, backoff_multiplier=2.0, max_delay=5.0)

        assert [settings.delay_for(n) for n in (1, 2, 3, 4)] == [1.0, 2.0, 4.0, 5.0]

    def test_auto_approve(self):
        config = AutoApproveConfig(terminal=True)

        assert config.allows(ApprovalType.NONE) is True
        assert config.allows(ApprovalType.TERMINAL) is True
        assert config.allows(ApprovalType.EDITS) is False

    def test_invalid_values(self):
        with pytest.raises(ValueError):
            AgentConfig(max_tool_loops=0)


class TestMerger:
    def test_nested_merge(self):
        base = {"agent": {"max_tool_loops": 30, "retry": {"max_retries": 3}}}
        override = {"agent": {"retry": {"max_retries": 5}}}

        merged = deep_merge(base, override)

        assert merged == {"agent": {"max_tool_loops": 30, "retry": {"max_retries": 5}}}
        assert base["agent"]["retry"]["max_retries"] == 3

    def test_list_operators(self):
        base = {"dirs": ["dist", "build"]}

        assert deep_merge(base, {"+dirs": ["out", "dist"]}) == {"dirs": ["dist", "build", "out"]}
        assert deep_merge(base, {"-dirs": ["build"]}) == {"dirs": ["dist"]}
        assert deep_merge({}, {"+dirs": ["out"]}) == {"dirs": ["out"]}

    def test_null_drops_key(self):
        assert deep_merge({"a": 1, "b": 2}, {"a": None}) == {"b": 2}

    def test_nested_values(self):
        config: dict = {}
        set_nested_value(config, "agent.retry.max_retries", 5)

        assert config == {"agent": {"retry": {"max_retries": 5}}}


class TestEnvOverrides:
    @pytest.mark.parametrize(
        "raw,parsed",
        [
            ("true", True),
            ("Off", False),
            ("42", 42),
            ("-3", -3),
            ("0.5", 0.5),
            ('["dist", "out"]', ["dist", "out"]),
            ("[not json", "[not json"),
            ("gpt-4o", "gpt-4o"),
        ],
    )
    def test_parse_env_value(self, raw, parsed):
        assert _parse_env_value(raw) == parsed

    def test_nested_override(self):
        environ = {
            "CODELOOP_AGENT__RETRY__MAX_RETRIES": "5",
            "CODELOOP_LLM__MODEL": "gpt-4o",
            "CODELOOP_HOME": "/somewhere",
            "OTHER__VALUE": "x",
        }

        config = apply_env_overrides({}, environ)

        assert config == {"agent": {"retry": {"max_retries": 5}}, "llm": {"model": "gpt-4o"}}

    def test_malformed_variable_ignored(self):
        assert apply_env_overrides({}, {"CODELOOP_AGENT____X": "1"}) == {}


class TestLoadYaml:
    def test_missing_file(self, temp_dir):
        assert load_yaml_file(temp_dir / "nope.yaml") == {}

    def test_empty_file(self, temp_dir):
        path = temp_dir / "empty.yaml"
        path.write_text("")

        assert load_yaml_file(path) == {}

    def test_invalid_yaml(self, temp_dir):
        path = temp_dir / "bad.yaml"
        path.write_text("agent: [unclosed\n")

        with pytest.raises(ConfigurationError, match="Invalid YAML"):
            load_yaml_file(path)

    def test_top_level_must_be_mapping(self, temp_dir):
        path = temp_dir / "list.yaml"
        path.write_text("- a\n- b\n")

        with pytest.raises(ConfigurationError, match="Expected a mapping"):
            load_yaml_file(path)


class TestLoadConfig:
    def test_home_from_env(self, mock_codeloop_home):
        assert get_codeloop_home() == mock_codeloop_home.resolve()
        assert get_global_config_path() == mock_codeloop_home.resolve() / "config.yaml"

    def test_layers(self, mock_codeloop_home, workspace, monkeypatch):
        """Global, then project, then environment."""
        (mock_codeloop_home / "config.yaml").write_text(
            "agent:\n  max_tool_loops: 10\n  tool_timeout: 20\nllm:\n  provider: openai\n"
        )
        write_config(workspace, "agent:\n  max_tool_loops: 12\n  +ignored_directories: [generated]\n")
        monkeypatch.setenv("CODELOOP_AGENT__TOOL_TIMEOUT", "45")

        config = load_config(project_path=workspace / "src")

        assert config.agent.max_tool_loops == 12
        assert config.agent.tool_timeout == 45.0
        assert config.llm.provider == "openai"
        assert config.agent.ignored_directories[-1] == "generated"
        assert "node_modules" in config.agent.ignored_directories

    def test_skip_flags(self, mock_codeloop_home, workspace, monkeypatch):
        write_config(workspace, "agent:\n  max_tool_loops: 12\n")
        monkeypatch.setenv("CODELOOP_AGENT__MAX_TOOL_LOOPS", "7")

        config = load_config(project_path=workspace, skip_project=True, skip_env=True)

        assert config.agent.max_tool_loops == 30

    def test_invalid_value(self, mock_codeloop_home, workspace):
        write_config(workspace, "agent:\n  max_tool_loops: 0\n")

        with pytest.raises(ConfigurationError, match="agent.max_tool_loops"):
            load_config(project_path=workspace, skip_env=True)

    def test_find_project_config(self, mock_codeloop_home, workspace):
        path = write_config(workspace, "{}\n")

        assert find_project_config(workspace / "src") == path.resolve()

    def test_global_config_not_a_project_config(self, temp_dir, monkeypatch):
        home = temp_dir / ".codeloop"
        home.mkdir()
        (home / "config.yaml").write_text("{}\n")
        monkeypatch.setenv("CODELOOP_HOME", str(home))

        assert find_project_config(temp_dir) is None
