"""Configuration models and loading."""

from codeloop.config.loader import ConfigurationError, load_config
from codeloop.config.schema import (
    AgentConfig,
    AutoApproveConfig,
    Config,
    ContextConfig,
    LLMConfig,
    LoopDetectionConfig,
    RetrySettings,
)

__all__ = [
    "AgentConfig",
    "AutoApproveConfig",
    "Config",
    "ConfigurationError",
    "ContextConfig",
    "LLMConfig",
    "LoopDetectionConfig",
    "RetrySettings",
    "load_config",
]
