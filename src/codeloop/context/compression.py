"""
Context compression.

Keeps the conversation within a token budget by replacing older turns with
a single summary message while the most recent turns stay verbatim.
"""

import logging
from dataclasses import dataclass
from enum import IntEnum
from typing import Optional

from codeloop.agent.conversation import AssistantMessage, Message, SummaryMessage, UserMessage
from codeloop.context.estimator import HeuristicEstimator, TokenEstimator
from codeloop.context.summary import HeuristicSummarizer, Summarizer

logger = logging.getLogger(__name__)


class CompressionLevel(IntEnum):
    """How far over budget the conversation is; higher levels keep less."""

    NONE = 0
    LIGHT = 1
    MODERATE = 2
    AGGRESSIVE = 3


@dataclass
class CompressionState:
    """Result of sizing (and possibly compressing) the history."""

    estimated_tokens: int
    level: CompressionLevel = CompressionLevel.NONE
    boundary_index: int = 0  # first message kept verbatim
    compressed: bool = False
    tokens_after: Optional[int] = None


def select_level(estimated_tokens: int, threshold: int) -> CompressionLevel:
    """Pick a compression level from the ratio of estimate to threshold."""
    if estimated_tokens <= threshold:
        return CompressionLevel.NONE
    ratio = estimated_tokens / threshold
    if ratio <= 1.5:
        return CompressionLevel.LIGHT
    if ratio <= 2.0:
        return CompressionLevel.MODERATE
    return CompressionLevel.AGGRESSIVE


class ContextCompressor:
    """Summarizes older turns once the history exceeds a token threshold.

    ``keep_recent_turns`` user exchanges are kept at LIGHT level; MODERATE
    keeps one fewer and AGGRESSIVE keeps only the latest exchange, with a
    proportionally smaller summary budget.

    A single long request has only one user exchange. When splitting by
    exchanges leaves nothing to summarize, the latest request is split by
    assistant rounds instead: each assistant message with its tool results
    counts as one round, the request itself and the most recent rounds stay
    verbatim, and the earlier rounds are summarized.
    """

    def __init__(
        self,
        threshold: int = 40000,
        keep_recent_turns: int = 3,
        summary_max_tokens: int = 500,
        estimator: Optional[TokenEstimator] = None,
        summarizer: Optional[Summarizer] = None,
    ):
        self.threshold = threshold
        self.keep_recent_turns = keep_recent_turns
        self.summary_max_tokens = summary_max_tokens
        self.estimator = estimator or HeuristicEstimator()
        self.summarizer = summarizer or HeuristicSummarizer()

    def estimate(self, messages: list[Message]) -> int:
        """Estimated tokens of the whole history."""
        return self.estimator.count_messages(messages)

    def turns_to_keep(self, level: CompressionLevel) -> int:
        if level >= CompressionLevel.AGGRESSIVE:
            return 1
        if level == CompressionLevel.MODERATE:
            return max(1, self.keep_recent_turns - 1)
        return self.keep_recent_turns

    def summary_budget(self, level: CompressionLevel) -> int:
        if level >= CompressionLevel.AGGRESSIVE:
            return max(100, self.summary_max_tokens // 2)
        return self.summary_max_tokens

    @staticmethod
    def find_boundary(messages: list[Message], keep_turns: int) -> int:
        """Index of the user message that starts the last ``keep_turns`` exchanges.

        Returns 0 when there are not enough exchanges to split.
        """
        user_indices = [i for i, m in enumerate(messages) if isinstance(m, UserMessage)]
        if len(user_indices) <= keep_turns:
            return 0
        return user_indices[-keep_turns]

    @staticmethod
    def find_round_boundary(messages: list[Message], keep_rounds: int) -> int:
        """Index of the assistant message that starts the last ``keep_rounds`` rounds.

        Only rounds after the latest user message count. Returns 0 when that
        request has not produced enough rounds to split.
        """
        last_user = _last_user_index(messages)
        start = last_user + 1 if last_user is not None else 0
        rounds = [i for i in range(start, len(messages)) if isinstance(messages[i], AssistantMessage)]
        if len(rounds) <= keep_rounds:
            return 0
        return rounds[-keep_rounds]

    async def compress(self, messages: list[Message]) -> tuple[list[Message], CompressionState]:
        """Compress history if it is over budget.

        The input list is never modified. When nothing needs compressing the
        same list object is returned.

        Args:
            messages: Full conversation history

        Returns:
            Tuple of (history to use, compression state)
        """
        estimated = self.estimate(messages)
        level = select_level(estimated, self.threshold)
        state = CompressionState(estimated_tokens=estimated, level=level)

        if level == CompressionLevel.NONE:
            return messages, state

        keep = self.turns_to_keep(level)
        boundary = self.find_boundary(messages, keep)
        head = messages[:boundary]
        pinned: list[Message] = []

        if not _has_new_content(head):
            boundary = self.find_round_boundary(messages, keep)
            head = messages[:boundary]
            # The request being worked on stays verbatim
            last_user = _last_user_index(head)
            if last_user is not None:
                pinned = [head[last_user]]
                head = head[:last_user] + head[last_user + 1 :]

        state.boundary_index = boundary
        if not _has_new_content(head):
            logger.debug(f"Context over budget ({estimated} tokens) but nothing to compress")
            return messages, state

        previous = [m.content for m in head if isinstance(m, SummaryMessage)]
        to_summarize = [m for m in head if not isinstance(m, SummaryMessage)]

        summary_text = await self.summarizer.summarize(
            to_summarize,
            previous_summary="\n\n".join(previous) or None,
            max_tokens=self.summary_budget(level),
        )
        summary = SummaryMessage(content=summary_text, replaced_count=len(head))

        compressed: list[Message] = [*pinned, summary, *messages[boundary:]]
        state.compressed = True
        state.tokens_after = self.estimate(compressed)
        logger.info(
            f"Compressed context ({level.name.lower()}): {len(head)} messages summarized, "
            f"{estimated} -> {state.tokens_after} estimated tokens"
        )
        return compressed, state


def _last_user_index(messages: list[Message]) -> Optional[int]:
    for i in range(len(messages) - 1, -1, -1):
        if isinstance(messages[i], UserMessage):
            return i
    return None


def _has_new_content(head: list[Message]) -> bool:
    # A head that is only earlier summaries has nothing new to fold in
    return any(not isinstance(m, SummaryMessage) for m in head)
