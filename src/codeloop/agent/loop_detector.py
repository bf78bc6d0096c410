"""Detection of repetitive tool-call behaviour."""

import hashlib
import json
import logging
import time
from collections import deque
from dataclasses import dataclass, field
from typing import Any, Iterable, Optional

from codeloop.tools.models import ToolCall
from codeloop.tools.registry import MUTATING_TOOL_NAMES

logger = logging.getLogger(__name__)

_KEY_PARAMS = ("path", "file", "command", "query")

# Same-target threshold for tools that change state, whatever the configured value
MUTATING_SAME_TARGET_THRESHOLD = 2


@dataclass(frozen=True)
class ToolCallSignature:
    """Fingerprint of one tool call."""

    name: str
    key_param: Optional[str]
    args_hash: str
    timestamp: float = field(compare=False, default=0.0)

    def same_call(self, other: "ToolCallSignature") -> bool:
        return self.name == other.name and self.args_hash == other.args_hash


@dataclass
class LoopCheckResult:
    """Outcome of a loop check."""

    is_loop: bool
    reason: Optional[str] = None


def hash_arguments(arguments: dict[str, Any]) -> str:
    """Stable hash of an argument mapping (key order does not matter)."""
    normalized = json.dumps(arguments, sort_keys=True, default=str)
    return hashlib.sha1(normalized.encode("utf-8")).hexdigest()[:16]


def create_signature(tool_call: ToolCall) -> ToolCallSignature:
    """Build the signature of a tool call."""
    args = tool_call.arguments
    key = next((args[k] for k in _KEY_PARAMS if args.get(k)), None)
    return ToolCallSignature(
        name=tool_call.name,
        key_param=str(key) if key is not None else None,
        args_hash=hash_arguments(args),
        timestamp=time.time(),
    )


class LoopDetector:
    """Flags an agent that keeps issuing the same tool calls.

    Three checks run in a fixed order against a bounded history of earlier
    calls; the first one that fires wins:

    1. Exact repeat: identical name and arguments seen ``max_exact_repeats``
       times before.
    2. Same target: same tool on the same path/file/command/query seen
       ``max_same_target_repeats`` times before (2 for mutating tools).
    3. Pattern: the most recent 2x2 or 2x3 calls form two identical halves,
       as in A, B, A, B.

    Calls are only added to the history when no check fires. The history is
    a FIFO window of ``max_history`` entries.
    """

    def __init__(
        self,
        max_history: int = 15,
        max_exact_repeats: int = 2,
        max_same_target_repeats: int = 3,
    ):
        self.max_history = max_history
        self.max_exact_repeats = max_exact_repeats
        self.max_same_target_repeats = max_same_target_repeats
        self._history: deque[ToolCallSignature] = deque(maxlen=max_history)

    @classmethod
    def from_config(cls, config: Any) -> "LoopDetector":
        """Create a detector from a ``LoopDetectionConfig``."""
        return cls(
            max_history=config.max_history,
            max_exact_repeats=config.max_exact_repeats,
            max_same_target_repeats=config.max_same_target_repeats,
        )

    @property
    def history(self) -> list[ToolCallSignature]:
        return list(self._history)

    def check(self, tool_calls: Iterable[ToolCall]) -> LoopCheckResult:
        """Check the calls about to be executed.

        Args:
            tool_calls: Calls of the current round, in request order

        Returns:
            LoopCheckResult; when ``is_loop`` is True the reason names the
            offending tool and how often it was seen
        """
        signatures = [create_signature(tc) for tc in tool_calls]

        for check in (self._check_exact_repeat, self._check_same_target, self._check_pattern):
            result = check(signatures)
            if result.is_loop:
                logger.warning(f"Loop detected: {result.reason}")
                return result

        self._history.extend(signatures)
        return LoopCheckResult(is_loop=False)

    def reset(self) -> None:
        """Forget all recorded calls."""
        self._history.clear()

    def _check_exact_repeat(self, signatures: list[ToolCallSignature]) -> LoopCheckResult:
        for sig in signatures:
            matches = sum(1 for h in self._history if h.same_call(sig))
            if matches >= self.max_exact_repeats:
                return LoopCheckResult(
                    is_loop=True,
                    reason=f"Detected exact repeat of {sig.name} ({matches + 1} times).",
                )
        return LoopCheckResult(is_loop=False)

    def _check_same_target(self, signatures: list[ToolCallSignature]) -> LoopCheckResult:
        for sig in signatures:
            if not sig.key_param:
                continue

            matches = sum(
                1 for h in self._history if h.name == sig.name and h.key_param == sig.key_param
            )
            threshold = (
                MUTATING_SAME_TARGET_THRESHOLD
                if sig.name in MUTATING_TOOL_NAMES
                else self.max_same_target_repeats
            )
            if matches >= threshold:
                return LoopCheckResult(
                    is_loop=True,
                    reason=f'Detected repeated {sig.name} on "{sig.key_param}" ({matches + 1} times).',
                )
        return LoopCheckResult(is_loop=False)

    def _check_pattern(self, signatures: list[ToolCallSignature]) -> LoopCheckResult:
        combined = list(self._history) + signatures
        if len(combined) < 4:
            return LoopCheckResult(is_loop=False)

        for length in (2, 3):
            if len(combined) < length * 2:
                continue

            recent = combined[-length * 2 :]
            first, second = recent[:length], recent[length:]
            if all(a.same_call(b) for a, b in zip(first, second)):
                pattern = " → ".join(sig.name for sig in first)
                return LoopCheckResult(
                    is_loop=True, reason=f"Detected repeating pattern: {pattern}."
                )

        return LoopCheckResult(is_loop=False)
