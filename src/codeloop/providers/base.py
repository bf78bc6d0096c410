"""LLM client contract used by the agent."""

import asyncio
from abc import ABC, abstractmethod
from typing import AsyncIterator

from codeloop.providers.models import LLMRequest, StreamEvent


class LLMClient(ABC):
    """Streams one LLM round.

    Implementations yield text and reasoning deltas and one ``NativeToolCall``
    per complete native tool call, and finish with exactly one
    ``StreamDone`` or ``StreamError``. They should stop promptly once
    ``cancel`` is set.
    """

    @abstractmethod
    def stream(self, request: LLMRequest, cancel: asyncio.Event) -> AsyncIterator[StreamEvent]:
        pass
