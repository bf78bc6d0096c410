"""
LiteLLM-backed LLM client.

Translates an ``LLMRequest`` into a streaming ``acompletion`` call and the
chunks back into stream events. Native tool-call deltas are accumulated per
index and emitted once the stream has finished.
"""

import asyncio
import logging
from typing import Any, AsyncIterator

from litellm import acompletion

from codeloop.providers.base import LLMClient
from codeloop.providers.exceptions import describe_error, is_retryable_error
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

logger = logging.getLogger(__name__)


def to_litellm_tools(tools: list[dict[str, Any]]) -> list[dict[str, Any]]:
    """Wrap ``{name, description, parameters}`` definitions in the function-tool envelope."""
    return [
        {
            "type": "function",
            "function": {
                "name": tool["name"],
                "description": tool["description"],
                "parameters": tool["parameters"],
            },
        }
        for tool in tools
    ]


class LiteLLMClient(LLMClient):
    """Streams completions through LiteLLM."""

    def __init__(self, **default_kwargs: Any):
        """Initialize client.

        Args:
            **default_kwargs: Extra arguments passed to every acompletion call
        """
        self.default_kwargs = default_kwargs

    def _build_kwargs(self, request: LLMRequest) -> dict[str, Any]:
        kwargs: dict[str, Any] = {
            **self.default_kwargs,
            "model": request.model,
            "messages": request.messages,
            "stream": True,
            **request.extra,
        }
        if request.tools:
            kwargs["tools"] = to_litellm_tools(request.tools)
        if request.temperature is not None:
            kwargs["temperature"] = request.temperature
        if request.max_tokens:
            kwargs["max_tokens"] = request.max_tokens
        if request.api_key:
            kwargs["api_key"] = request.api_key
        if request.base_url:
            kwargs["api_base"] = request.base_url
        return kwargs

    async def stream(self, request: LLMRequest, cancel: asyncio.Event) -> AsyncIterator[StreamEvent]:
        """
        Stream one completion.

        Yields:
            TextDelta / ReasoningDelta while streaming, NativeToolCall per
            accumulated tool call, then StreamDone or StreamError.
        """
        logger.info(f"Streaming completion with model: {request.model}")

        content_parts: list[str] = []
        tool_calls: dict[int, dict[str, Any]] = {}
        usage: TokenUsage | None = None
        finish_reason: str | None = None

        try:
            response = await acompletion(**self._build_kwargs(request))

            async for chunk in response:  # type: ignore
                if cancel.is_set():
                    yield StreamError("Request aborted", retryable=False)
                    return

                chunk_usage = getattr(chunk, "usage", None)
                if chunk_usage:
                    usage = TokenUsage(
                        input_tokens=getattr(chunk_usage, "prompt_tokens", 0) or 0,
                        output_tokens=getattr(chunk_usage, "completion_tokens", 0) or 0,
                    )

                if not chunk.choices:
                    continue

                choice = chunk.choices[0]
                finish_reason = choice.finish_reason or finish_reason
                delta = choice.delta

                reasoning = getattr(delta, "reasoning_content", None)
                if reasoning:
                    yield ReasoningDelta(text=reasoning)

                text = getattr(delta, "content", None)
                if text:
                    content_parts.append(text)
                    yield TextDelta(text=text)

                for tc in getattr(delta, "tool_calls", None) or []:
                    entry = tool_calls.setdefault(
                        tc.index or 0, {"id": None, "name": "", "arguments": ""}
                    )
                    if tc.id:
                        entry["id"] = tc.id
                    function = tc.function
                    if function is None:
                        continue
                    if function.name and not entry["name"]:
                        entry["name"] = function.name
                    if function.arguments:
                        entry["arguments"] += function.arguments

        except asyncio.CancelledError:
            raise
        except Exception as e:
            logger.warning(f"LLM stream failed: {e}")
            yield StreamError(describe_error(e), retryable=is_retryable_error(e))
            return

        for index in sorted(tool_calls):
            entry = tool_calls[index]
            if not entry["name"]:
                logger.warning(f"Dropping nameless tool call at index {index}")
                continue
            yield NativeToolCall(id=entry["id"], name=entry["name"], arguments=entry["arguments"])

        yield StreamDone(content="".join(content_parts), usage=usage, finish_reason=finish_reason)
