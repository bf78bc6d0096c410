"""Token estimation for conversation history."""

import math
import re
from abc import ABC, abstractmethod
from typing import Iterable, Protocol

import tiktoken

# Fixed cost per message for role markers and separators
MESSAGE_OVERHEAD_TOKENS = 4

_CJK = re.compile(r"[\u3040-\u30ff\u3400-\u4dbf\u4e00-\u9fff\uac00-\ud7af\uf900-\ufaff]")


class _HasText(Protocol):
    def text(self) -> str: ...


class TokenEstimator(ABC):
    """Estimates token usage of text and messages."""

    @abstractmethod
    def count(self, text: str) -> int:
        pass

    def count_message(self, message: _HasText) -> int:
        return self.count(message.text()) + MESSAGE_OVERHEAD_TOKENS

    def count_messages(self, messages: Iterable[_HasText]) -> int:
        return sum(self.count_message(m) for m in messages)


class HeuristicEstimator(TokenEstimator):
    """Character-based estimate: about 4 chars per token, 1.5 for CJK.

    Deterministic and monotonic: appending text never lowers the estimate.
    """

    def count(self, text: str) -> int:
        if not text:
            return 0
        cjk = len(_CJK.findall(text))
        other = len(text) - cjk
        return math.ceil(other / 4 + cjk / 1.5)


class TiktokenEstimator(TokenEstimator):
    """Counts tokens with a tiktoken encoding."""

    def __init__(self, encoding_name: str = "cl100k_base"):
        self._encoding = tiktoken.get_encoding(encoding_name)

    def count(self, text: str) -> int:
        if not text:
            return 0
        return len(self._encoding.encode(text, disallowed_special=()))


def get_estimator(name: str = "heuristic") -> TokenEstimator:
    """Get an estimator by name (``heuristic`` or ``tiktoken``).

    Raises:
        ValueError: If the name is unknown
    """
    if name == "heuristic":
        return HeuristicEstimator()
    if name == "tiktoken":
        return TiktokenEstimator()
    raise ValueError(f"Unknown token estimator: {name}")
