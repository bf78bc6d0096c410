"""
Provider exceptions for codeloop.

Defines provider errors and how failures are classified for retries.
"""

import asyncio
from enum import Enum

from litellm.exceptions import (
    APIConnectionError,
    APIError,
    AuthenticationError as LiteLLMAuthError,
    BadRequestError,
    ContextWindowExceededError,
    RateLimitError as LiteLLMRateLimitError,
    ServiceUnavailableError,
    Timeout as LiteLLMTimeout,
)


class FailureType(Enum):
    """Classification of provider failures for retry decisions."""

    RATE_LIMIT = "rate_limit"
    AUTH_ERROR = "auth_error"
    NETWORK_ERROR = "network_error"
    TIMEOUT = "timeout"
    SERVER_ERROR = "server_error"
    CONTEXT_LENGTH = "context_length"
    INVALID_REQUEST = "invalid_request"
    UNKNOWN = "unknown"


class ProviderError(Exception):
    """Base exception for provider errors."""

    def __init__(self, message: str, provider: str | None = None):
        super().__init__(message)
        self.provider = provider


class AuthenticationError(ProviderError):
    """API key invalid or missing."""

    pass


class RateLimitError(ProviderError):
    """Provider rate limit exceeded."""

    def __init__(
        self,
        message: str,
        provider: str | None = None,
        retry_after: int | None = None,
    ):
        super().__init__(message, provider)
        self.retry_after = retry_after


class ContextLengthExceededError(ProviderError):
    """Request exceeded the model's context length."""

    pass


class NetworkError(ProviderError):
    """Network-related error (connection, timeout, etc.)."""

    pass


class ServerError(ProviderError):
    """Provider server error (5xx status codes)."""

    pass


class InvalidRequestError(ProviderError):
    """Invalid request sent to provider."""

    pass


# Lower-cased substrings that mark an error as transient
RETRYABLE_MESSAGE_PATTERNS = (
    "timeout",
    "timed out",
    "econnreset",
    "etimedout",
    "enotfound",
    "network",
    "rate limit",
    "temporarily unavailable",
    "overloaded",
    "429",
    "503",
    "504",
)


def _classify_message(message: str) -> FailureType:
    lowered = message.lower()
    if "rate limit" in lowered or "429" in lowered:
        return FailureType.RATE_LIMIT
    if "timeout" in lowered or "timed out" in lowered or "etimedout" in lowered:
        return FailureType.TIMEOUT
    if any(p in lowered for p in RETRYABLE_MESSAGE_PATTERNS):
        return FailureType.NETWORK_ERROR
    return FailureType.UNKNOWN


def classify_error(error: Exception) -> FailureType:
    """
    Classify an exception into a failure type.

    LiteLLM exceptions are checked first, then our own, then the message
    text.

    Args:
        error: The exception to classify.

    Returns:
        The failure type classification.
    """
    if isinstance(error, LiteLLMRateLimitError):
        return FailureType.RATE_LIMIT
    if isinstance(error, LiteLLMAuthError):
        return FailureType.AUTH_ERROR
    if isinstance(error, ContextWindowExceededError):
        return FailureType.CONTEXT_LENGTH
    if isinstance(error, LiteLLMTimeout):
        return FailureType.TIMEOUT
    if isinstance(error, (APIConnectionError, ServiceUnavailableError)):
        return FailureType.NETWORK_ERROR
    if isinstance(error, BadRequestError):
        return FailureType.INVALID_REQUEST
    if isinstance(error, APIError):
        status = getattr(error, "status_code", None)
        if status and 500 <= status < 600:
            return FailureType.SERVER_ERROR
        if status and 400 <= status < 500:
            return FailureType.INVALID_REQUEST
        return _classify_message(str(error))

    if isinstance(error, (asyncio.TimeoutError, TimeoutError)):
        return FailureType.TIMEOUT
    if isinstance(error, RateLimitError):
        return FailureType.RATE_LIMIT
    if isinstance(error, AuthenticationError):
        return FailureType.AUTH_ERROR
    if isinstance(error, ContextLengthExceededError):
        return FailureType.CONTEXT_LENGTH
    if isinstance(error, NetworkError):
        return FailureType.NETWORK_ERROR
    if isinstance(error, ServerError):
        return FailureType.SERVER_ERROR
    if isinstance(error, InvalidRequestError):
        return FailureType.INVALID_REQUEST
    if isinstance(error, ConnectionError):
        return FailureType.NETWORK_ERROR

    return _classify_message(str(error))


def should_retry(failure_type: FailureType) -> bool:
    """
    Determine if a failure type is worth retrying.

    Args:
        failure_type: The classified failure type.

    Returns:
        True for transient failures.
    """
    return failure_type in {
        FailureType.RATE_LIMIT,
        FailureType.NETWORK_ERROR,
        FailureType.TIMEOUT,
        FailureType.SERVER_ERROR,
    }


def is_retryable_error(error: Exception) -> bool:
    """Classify and decide in one step."""
    return should_retry(classify_error(error))


def describe_error(error: Exception) -> str:
    """A concrete, user-facing description of a provider failure."""
    failure = classify_error(error)
    detail = str(error) or type(error).__name__
    if failure == FailureType.AUTH_ERROR:
        return f"Authentication failed, check your API key: {detail}"
    if failure == FailureType.RATE_LIMIT:
        return f"Rate limited by the provider: {detail}"
    if failure == FailureType.CONTEXT_LENGTH:
        return f"The conversation is too long for this model: {detail}"
    return detail
