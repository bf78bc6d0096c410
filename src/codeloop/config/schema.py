"""
Pydantic configuration schema for codeloop.

This module defines all configuration models with validation.
"""

from typing import Literal

from pydantic import BaseModel, ConfigDict, Field

from codeloop.tools.models import DEFAULT_IGNORED_DIRECTORIES, ApprovalType

# Providers that run locally and need no API key
LOCAL_PROVIDERS = frozenset({"ollama", "lm_studio", "llamacpp", "vllm"})

# =============================================================================
# Loop Detection Configuration
# =============================================================================


class LoopDetectionConfig(BaseModel):
    """Thresholds for detecting a stuck tool loop."""

    max_history: int = Field(default=15, ge=2)
    max_exact_repeats: int = Field(default=2, ge=1)
    max_same_target_repeats: int = Field(default=3, ge=1)


# =============================================================================
# Retry Configuration
# =============================================================================


class RetrySettings(BaseModel):
    """Retry policy for LLM requests."""

    max_retries: int = Field(default=3, ge=0)
    retry_delay: float = Field(default=1.0, ge=0.0, description="Initial delay in seconds")
    backoff_multiplier: float = Field(default=1.5, ge=1.0)
    max_delay: float = Field(default=30.0, ge=0.0)

    def delay_for(self, attempt: int) -> float:
        """Delay before retry number ``attempt`` (1-based)."""
        delay = self.retry_delay * (self.backoff_multiplier ** (attempt - 1))
        return min(delay, self.max_delay)


# =============================================================================
# Context Management Configuration
# =============================================================================


class ContextConfig(BaseModel):
    """Context window budget and compression configuration."""

    compress_threshold: int = Field(
        default=40000,
        ge=1,
        description="Estimated token count above which older turns are summarized",
    )
    keep_recent_turns: int = Field(default=3, ge=1)
    max_tool_result_chars: int = Field(default=10000, ge=100)
    summary_max_tokens: int = 500
    estimator: Literal["heuristic", "tiktoken"] = "heuristic"


# =============================================================================
# Approval Configuration
# =============================================================================


class AutoApproveConfig(BaseModel):
    """Which approval categories skip the user prompt."""

    edits: bool = False
    terminal: bool = False
    dangerous: bool = False

    def allows(self, approval_type: ApprovalType) -> bool:
        """Whether a tool with this approval requirement may run unprompted."""
        if approval_type == ApprovalType.NONE:
            return True
        if approval_type == ApprovalType.EDITS:
            return self.edits
        if approval_type == ApprovalType.TERMINAL:
            return self.terminal
        return self.dangerous


# =============================================================================
# Agent Configuration
# =============================================================================


class AgentConfig(BaseModel):
    """Agent loop configuration."""

    model_config = ConfigDict(extra="allow")

    max_tool_loops: int = Field(
        default=30,
        ge=1,
        description="Maximum tool-call rounds per run",
    )
    tool_timeout: float = Field(default=60.0, gt=0, description="Default per-tool timeout in seconds")
    request_timeout: float = Field(default=120.0, gt=0, description="Per LLM request timeout in seconds")
    ignored_directories: list[str] = Field(default_factory=lambda: list(DEFAULT_IGNORED_DIRECTORIES))

    loop_detection: LoopDetectionConfig = Field(default_factory=LoopDetectionConfig)
    retry: RetrySettings = Field(default_factory=RetrySettings)
    context: ContextConfig = Field(default_factory=ContextConfig)
    auto_approve: AutoApproveConfig = Field(default_factory=AutoApproveConfig)


# =============================================================================
# LLM Configuration
# =============================================================================


class LLMConfig(BaseModel):
    """Model and credentials for one run."""

    model_config = ConfigDict(extra="allow")

    provider: str = "anthropic"
    model: str = "claude-sonnet-4-20250514"
    api_key: str | None = None
    base_url: str | None = None
    temperature: float | None = Field(default=None, ge=0.0, le=2.0)
    max_tokens: int | None = Field(default=None, ge=1)
    tool_format: Literal["native", "inline"] = "native"

    @property
    def model_id(self) -> str:
        """Model identifier in ``provider/model`` form."""
        if "/" in self.model or not self.provider:
            return self.model
        return f"{self.provider}/{self.model}"

    def has_credentials(self) -> bool:
        """Whether a request can be made (local providers need no key)."""
        if self.provider in LOCAL_PROVIDERS:
            return True
        return bool(self.api_key and self.api_key.strip())


# =============================================================================
# Root Configuration Model
# =============================================================================


class Config(BaseModel):
    """
    Root configuration model for codeloop.

    Configuration can be loaded from YAML files and environment variables,
    merged in order of priority.
    """

    model_config = ConfigDict(extra="allow")

    agent: AgentConfig = Field(default_factory=AgentConfig)
    llm: LLMConfig = Field(default_factory=LLMConfig)
