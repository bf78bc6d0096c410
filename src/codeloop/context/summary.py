"""
Summaries of older conversation turns.

A summary has three sections: file changes, decisions and open threads.
``LLMSummarizer`` asks the model to write it and falls back to
``HeuristicSummarizer``, which derives the same sections from the messages.
"""

import asyncio
import logging
from abc import ABC, abstractmethod
from typing import Optional, Sequence

from codeloop.agent.conversation import AssistantMessage, Message, ToolResultMessage, UserMessage
from codeloop.config.schema import LLMConfig, RetrySettings
from codeloop.providers.base import LLMClient
from codeloop.providers.exceptions import NetworkError, ProviderError
from codeloop.providers.models import LLMRequest, StreamDone, StreamError, TextDelta
from codeloop.providers.retry import with_retry
from codeloop.tools.models import ToolStatus
from codeloop.tools.registry import MUTATING_TOOL_NAMES

logger = logging.getLogger(__name__)

_FILE_TOOLS = MUTATING_TOOL_NAMES | {"delete_file_or_folder"}
_MAX_LINE_CHARS = 200


def _clip(text: str, limit: int = _MAX_LINE_CHARS) -> str:
    text = " ".join(text.split())
    return text if len(text) <= limit else text[: limit - 3] + "..."


class Summarizer(ABC):
    """Turns older messages into a compact summary."""

    @abstractmethod
    async def summarize(
        self,
        messages: Sequence[Message],
        previous_summary: Optional[str] = None,
        max_tokens: int = 500,
    ) -> str:
        """Summarize messages.

        Args:
            messages: Turns being replaced (never containing a summary)
            previous_summary: Summary those turns already built on, if any
            max_tokens: Size budget for the result

        Returns:
            Summary text
        """
        pass


class HeuristicSummarizer(Summarizer):
    """Deterministic summary built from tool calls and message text."""

    async def summarize(
        self,
        messages: Sequence[Message],
        previous_summary: Optional[str] = None,
        max_tokens: int = 500,
    ) -> str:
        file_changes: list[str] = []
        decisions: list[str] = []
        open_threads: list[str] = []
        requests: list[str] = []

        for message in messages:
            if isinstance(message, UserMessage):
                requests.append(_clip(message.content))
            elif isinstance(message, AssistantMessage):
                if message.content.strip():
                    decisions.append(_clip(message.content))
                for tc in message.tool_calls:
                    target = tc.arguments.get("path") or tc.arguments.get("command")
                    if tc.name in _FILE_TOOLS and target:
                        file_changes.append(f"{tc.name} {target} ({tc.status.value})")
                    if tc.status == ToolStatus.ERROR:
                        open_threads.append(f"{tc.name} failed: {_clip(tc.error or 'unknown error')}")
            elif isinstance(message, ToolResultMessage) and message.status == ToolStatus.REJECTED:
                open_threads.append(f"User rejected {message.name}")

        sections = []
        if previous_summary:
            sections.append("## Earlier context\n" + _clip(previous_summary, 1000))
        if requests:
            sections.append("## User requests\n" + "\n".join(f"- {r}" for r in requests))
        sections.append(
            "## File changes\n" + ("\n".join(f"- {c}" for c in file_changes) or "- none")
        )
        sections.append(
            "## Decisions\n" + ("\n".join(f"- {d}" for d in decisions[-10:]) or "- none")
        )
        sections.append(
            "## Open threads\n" + ("\n".join(f"- {t}" for t in open_threads) or "- none")
        )

        summary = "\n\n".join(sections)
        max_chars = max_tokens * 4
        if len(summary) > max_chars:
            summary = summary[: max_chars - 30].rstrip() + "\n[... summary truncated ...]"
        return summary


class LLMSummarizer(Summarizer):
    """Asks the LLM for the summary, falling back to the heuristic one."""

    SUMMARY_PROMPT = """Summarize the earlier part of a coding session so work can continue without it.
Use exactly these sections:
## File changes
(files created, edited or deleted, and what changed)
## Decisions
(approaches chosen and facts established)
## Open threads
(unfinished tasks, failures, questions still open)

Keep the summary under {max_tokens} tokens.
{previous}
Conversation:
{conversation}

Summary:"""

    def __init__(
        self,
        client: LLMClient,
        llm_config: LLMConfig,
        fallback: Optional[Summarizer] = None,
        timeout: float = 60.0,
        retry: Optional[RetrySettings] = None,
    ):
        self.client = client
        self.llm_config = llm_config
        self.fallback = fallback or HeuristicSummarizer()
        self.timeout = timeout
        self.retry = retry or RetrySettings(max_retries=1)

    def _format_conversation(self, messages: Sequence[Message]) -> str:
        lines = []
        for message in messages:
            role = message.role.upper()
            if isinstance(message, ToolResultMessage):
                role = f"TOOL {message.name}"
            lines.append(f"{role}: {message.text()[:1000]}")
        return "\n\n".join(lines)

    async def summarize(
        self,
        messages: Sequence[Message],
        previous_summary: Optional[str] = None,
        max_tokens: int = 500,
    ) -> str:
        previous = (
            f"\nThe conversation continues from this earlier summary:\n{previous_summary}\n"
            if previous_summary
            else ""
        )
        prompt = self.SUMMARY_PROMPT.format(
            max_tokens=max_tokens,
            previous=previous,
            conversation=self._format_conversation(messages),
        )
        request = LLMRequest(
            model=self.llm_config.model_id,
            messages=[{"role": "user", "content": prompt}],
            max_tokens=max_tokens,
            api_key=self.llm_config.api_key,
            base_url=self.llm_config.base_url,
        )

        try:
            summary = await with_retry(
                lambda: asyncio.wait_for(self._collect(request), timeout=self.timeout),
                self.retry,
            )
            if not summary.strip():
                raise ValueError("empty summary")
            return summary.strip()
        except asyncio.CancelledError:
            raise
        except Exception as e:
            logger.warning(f"LLM summary failed, using heuristic summary: {e}")
            return await self.fallback.summarize(messages, previous_summary, max_tokens)

    async def _collect(self, request: LLMRequest) -> str:
        parts: list[str] = []
        async for event in self.client.stream(request, asyncio.Event()):
            if isinstance(event, TextDelta):
                parts.append(event.text)
            elif isinstance(event, StreamDone):
                return event.content or "".join(parts)
            elif isinstance(event, StreamError):
                error_class = NetworkError if event.retryable else ProviderError
                raise error_class(event.message)
        return "".join(parts)
