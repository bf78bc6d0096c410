"""
Provider data models for codeloop.

Defines the request handed to an LLM client and the events it streams back.
"""

from dataclasses import dataclass, field
from typing import Any, Union


@dataclass
class TokenUsage:
    """Token usage statistics."""

    input_tokens: int = 0
    output_tokens: int = 0
    total_tokens: int = 0

    def __post_init__(self) -> None:
        if self.total_tokens == 0:
            self.total_tokens = self.input_tokens + self.output_tokens


@dataclass
class LLMRequest:
    """One LLM round: OpenAI-style messages plus optional tool definitions."""

    model: str
    messages: list[dict[str, Any]]
    tools: list[dict[str, Any]] | None = None  # {name, description, parameters}
    temperature: float | None = None
    max_tokens: int | None = None
    api_key: str | None = None
    base_url: str | None = None
    extra: dict[str, Any] = field(default_factory=dict)


# =============================================================================
# Stream events
# =============================================================================


@dataclass
class TextDelta:
    """A chunk of assistant text."""

    text: str


@dataclass
class ReasoningDelta:
    """A chunk of model reasoning, shown but not sent back."""

    text: str


@dataclass
class NativeToolCall:
    """One complete tool call from the native function-calling channel.

    ``arguments`` is usually a JSON string; it may already be a dict.
    """

    id: str | None
    name: str
    arguments: Union[str, dict[str, Any]]


@dataclass
class StreamDone:
    """Terminal event for a successful stream."""

    content: str = ""
    usage: TokenUsage | None = None
    finish_reason: str | None = None


@dataclass
class StreamError:
    """Terminal event for a failed stream."""

    message: str
    retryable: bool = False


StreamEvent = Union[TextDelta, ReasoningDelta, NativeToolCall, StreamDone, StreamError]
