"""LLM provider layer: streaming contract, events and the LiteLLM adapter."""

from codeloop.providers.base import LLMClient
from codeloop.providers.exceptions import (
    AuthenticationError,
    ContextLengthExceededError,
    FailureType,
    InvalidRequestError,
    NetworkError,
    ProviderError,
    RateLimitError,
    ServerError,
    classify_error,
    should_retry,
)
from codeloop.providers.litellm_client import LiteLLMClient
from codeloop.providers.models import (
    LLMRequest,
    NativeToolCall,
    ReasoningDelta,
    StreamDone,
    StreamError,
    StreamEvent,
    TextDelta,
    TokenUsage,
)

__all__ = [
    "AuthenticationError",
    "ContextLengthExceededError",
    "FailureType",
    "InvalidRequestError",
    "LiteLLMClient",
    "LLMClient",
    "LLMRequest",
    "NativeToolCall",
    "NetworkError",
    "ProviderError",
    "RateLimitError",
    "ReasoningDelta",
    "ServerError",
    "StreamDone",
    "StreamError",
    "StreamEvent",
    "TextDelta",
    "TokenUsage",
    "classify_error",
    "should_retry",
]
