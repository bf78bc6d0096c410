"""Parser for extracting tool calls from LLM output.

Two channels are supported:

- Native function calling, where the provider hands over ``(id, name,
  arguments)`` triples and arguments may arrive as a JSON string.
- Inline tagged text, for models without native tool support::

    <tool_call>
    <function=read_file>
    <parameter=path>src/main.py</parameter>
    </function>
    </tool_call>

``StreamingToolCallScanner`` handles the inline format incrementally while
the response is still arriving.
"""

import json
import logging
import random
import re
import string
import time
from enum import Enum
from typing import Any, Optional

import json_repair
from pydantic import BaseModel, Field

from codeloop.tools.models import ToolCall

logger = logging.getLogger(__name__)

_TOOL_CALL_BLOCK = re.compile(r"<tool_call>([\s\S]*?)</tool_call>", re.IGNORECASE)
_FUNCTION_BLOCK = re.compile(
    r"<function[=\s]+[\"']?([^\"'>\s]+)[\"']?\s*>([\s\S]*?)</function>", re.IGNORECASE
)
_PARAMETER_BLOCK = re.compile(
    r"<parameter[=\s]+[\"']?([^\"'>\s]+)[\"']?\s*>([\s\S]*?)</parameter>", re.IGNORECASE
)

_FUNCTION_OPEN = re.compile(r"<function[=\s]+[\"']?([^\"'>\s]+)[\"']?\s*>", re.IGNORECASE)
_PARAMETER_OPEN_OR_FUNCTION_CLOSE = re.compile(
    r"<parameter[=\s]+[\"']?([^\"'>\s]+)[\"']?\s*>|</function>", re.IGNORECASE
)
_PARAMETER_OR_FUNCTION_CLOSE = re.compile(r"</parameter>|</function>", re.IGNORECASE)

_PARAMETER_CLOSE_TAG = "</parameter>"

# An unfinished tag longer than this is treated as plain text
_MAX_PENDING_TAG = 256
# Smallest growth of an open parameter that triggers another partial parse
_MIN_REPARSE_GROWTH = 16

_ID_ALPHABET = string.ascii_lowercase + string.digits


def generate_tool_call_id(prefix: str = "tool") -> str:
    """Generate a tool call id: source tag, millisecond timestamp, random suffix."""
    suffix = "".join(random.choices(_ID_ALPHABET, k=6))
    return f"{prefix}-{int(time.time() * 1000)}-{suffix}"


def _parse_value(raw: str) -> Any:
    """Parse a parameter value, keeping the string form unless it is JSON."""
    value = raw.strip()
    if value.startswith(("{", "[")):
        try:
            return json.loads(value)
        except ValueError:
            pass
    return value


def _parse_parameters(body: str) -> dict[str, Any]:
    return {m.group(1): _parse_value(m.group(2)) for m in _PARAMETER_BLOCK.finditer(body)}


def parse_xml_tool_calls(content: str) -> list[ToolCall]:
    """Extract every complete inline tool call from text.

    Calls inside ``<tool_call>`` wrappers are collected first, then bare
    ``<function>`` blocks outside any wrapper. A block is never parsed twice.

    Args:
        content: Full assistant text

    Returns:
        Parsed tool calls in the order they were found per pass
    """
    tool_calls: list[ToolCall] = []
    wrapped_ranges: list[tuple[int, int]] = []

    for block in _TOOL_CALL_BLOCK.finditer(content):
        wrapped_ranges.append((block.start(), block.end()))
        for func in _FUNCTION_BLOCK.finditer(block.group(1)):
            tool_calls.append(
                ToolCall(
                    id=generate_tool_call_id("xml"),
                    name=func.group(1),
                    arguments=_parse_parameters(func.group(2)),
                )
            )

    for func in _FUNCTION_BLOCK.finditer(content):
        pos = func.start()
        if any(start <= pos < end for start, end in wrapped_ranges):
            continue
        tool_calls.append(
            ToolCall(
                id=generate_tool_call_id("xml"),
                name=func.group(1),
                arguments=_parse_parameters(func.group(2)),
            )
        )

    if tool_calls:
        logger.debug(f"Parsed {len(tool_calls)} inline tool call(s)")

    return tool_calls


def strip_tool_calls(content: str) -> str:
    """Remove inline tool-call markup from text meant for display."""
    without_wrapped = _TOOL_CALL_BLOCK.sub("", content)
    return _FUNCTION_BLOCK.sub("", without_wrapped).strip()


def parse_native_tool_call(
    tool_id: Optional[str], name: str, arguments: Any
) -> ToolCall:
    """Build a ToolCall from a native function-calling triple.

    String arguments are decoded as JSON; undecodable text is preserved
    under ``raw_input`` so validation can report it instead of losing it.
    """
    if isinstance(arguments, str):
        text = arguments.strip()
        if not text:
            args: dict[str, Any] = {}
        else:
            try:
                decoded = json.loads(text)
            except ValueError:
                logger.warning(f"Tool call '{name}' has malformed JSON arguments")
                decoded = {"raw_input": arguments}
            args = decoded if isinstance(decoded, dict) else {"raw_input": decoded}
    elif isinstance(arguments, dict):
        args = dict(arguments)
    elif arguments is None:
        args = {}
    else:
        args = {"raw_input": arguments}

    return ToolCall(id=tool_id or generate_tool_call_id("native"), name=name, arguments=args)


# =============================================================================
# Incremental scanning
# =============================================================================


class ScannerState(str, Enum):
    """Where the scanner is relative to inline tool markup."""

    OUTSIDE = "outside"
    IN_CALL = "in_call"
    IN_PARAMETER = "in_parameter"


class StreamingToolCall(BaseModel):
    """A tool call observed while the response is still streaming.

    ``is_streaming`` stays True until the closing ``</function>`` tag has
    been seen; until then ``arguments`` are partial and must not be
    executed.
    """

    id: str
    name: str
    arguments: dict[str, Any] = Field(default_factory=dict)
    is_streaming: bool = True

    def to_tool_call(self) -> ToolCall:
        return ToolCall(id=self.id, name=self.name, arguments=dict(self.arguments))


def _pending_tag_start(buffer: str, start: int) -> Optional[int]:
    """Position of a trailing tag that may still be incomplete."""
    idx = buffer.rfind("<", start)
    if idx < 0 or ">" in buffer[idx:] or len(buffer) - idx > _MAX_PENDING_TAG:
        return None
    return idx


class StreamingToolCallScanner:
    """Incremental scanner for inline tool calls.

    Each ``feed`` only examines text that has not been consumed yet, plus
    at most one trailing partial tag. An open parameter is re-parsed only
    after its value has grown by half since the last parse, so partial
    argument updates also stay linear in the length of the response.
    """

    def __init__(self, id_prefix: str = "stream-xml"):
        self._id_prefix = id_prefix
        self._buffer = ""
        self._pos = 0
        self._state = ScannerState.OUTSIDE
        self._current: Optional[StreamingToolCall] = None
        self._param_name: Optional[str] = None
        self._param_start = 0
        self._param_parsed_size = 0
        self.completed: list[StreamingToolCall] = []

    @property
    def state(self) -> ScannerState:
        return self._state

    @property
    def current(self) -> Optional[StreamingToolCall]:
        """The call currently open, if any."""
        return self._current

    @property
    def buffer(self) -> str:
        return self._buffer

    def feed(self, chunk: str) -> Optional[StreamingToolCall]:
        """Consume a chunk of streamed text.

        Args:
            chunk: Newly received text

        Returns:
            A snapshot of the call that changed during this chunk (opened,
            got more arguments or closed), or None if nothing changed
        """
        self._buffer += chunk
        changed: Optional[StreamingToolCall] = None

        while True:
            if self._state == ScannerState.OUTSIDE:
                match = _FUNCTION_OPEN.search(self._buffer, self._pos)
                if match is None:
                    pending = _pending_tag_start(self._buffer, self._pos)
                    self._pos = pending if pending is not None else len(self._buffer)
                    break
                self._current = StreamingToolCall(
                    id=generate_tool_call_id(self._id_prefix), name=match.group(1)
                )
                self._state = ScannerState.IN_CALL
                self._pos = match.end()
                changed = self._current

            elif self._state == ScannerState.IN_CALL:
                match = _PARAMETER_OPEN_OR_FUNCTION_CLOSE.search(self._buffer, self._pos)
                if match is None:
                    pending = _pending_tag_start(self._buffer, self._pos)
                    self._pos = pending if pending is not None else len(self._buffer)
                    break
                self._pos = match.end()
                if match.group(1) is not None:
                    self._param_name = match.group(1)
                    self._param_start = match.end()
                    self._param_parsed_size = 0
                    self._state = ScannerState.IN_PARAMETER
                else:
                    changed = self._close_call()

            else:
                match = _PARAMETER_OR_FUNCTION_CLOSE.search(self._buffer, self._pos)
                if match is None:
                    if self._update_partial_parameter():
                        changed = self._current
                    # Only the tail can still contain the start of the closing tag
                    self._pos = max(self._param_start, len(self._buffer) - len(_PARAMETER_CLOSE_TAG))
                    break

                assert self._current is not None and self._param_name is not None
                raw = self._buffer[self._param_start : match.start()]
                self._current.arguments[self._param_name] = _parse_value(raw)
                self._param_name = None
                self._pos = match.end()
                if match.group(0).lower() == "</function>":
                    changed = self._close_call()
                else:
                    self._state = ScannerState.IN_CALL
                    changed = self._current

        return changed.model_copy(deep=True) if changed is not None else None

    def _update_partial_parameter(self) -> bool:
        """Refresh the open parameter's partial value.

        Returns:
            True if the value was re-parsed, False if it has not grown enough
            since the last parse
        """
        assert self._current is not None and self._param_name is not None
        size = len(self._buffer) - self._param_start
        growth = size - self._param_parsed_size
        if self._param_name in self._current.arguments and growth < max(
            _MIN_REPARSE_GROWTH, self._param_parsed_size // 2
        ):
            return False

        raw = self._buffer[self._param_start :]
        pending = _pending_tag_start(raw, 0)
        if pending is not None:
            raw = raw[:pending]
        value: Any = raw.strip()
        if value.startswith(("{", "[")):
            try:
                parsed = json_repair.loads(value)
            except (ValueError, RecursionError) as e:
                logger.debug(f"Partial parameter not parseable yet: {e}")
            else:
                if isinstance(parsed, (dict, list)):
                    value = parsed
        self._current.arguments[self._param_name] = value
        self._param_parsed_size = size
        return True

    def _close_call(self) -> StreamingToolCall:
        assert self._current is not None
        call = self._current
        call.is_streaming = False
        self.completed.append(call)
        self._current = None
        self._state = ScannerState.OUTSIDE
        return call

    def tool_calls(self) -> list[StreamingToolCall]:
        """Every call seen so far, the open one last."""
        calls = list(self.completed)
        if self._current is not None:
            calls.append(self._current)
        return calls


def detect_streaming_tool_call(content: str) -> Optional[StreamingToolCall]:
    """Scan a whole buffer and return the most recent call, open or closed."""
    scanner = StreamingToolCallScanner()
    scanner.feed(content)
    calls = scanner.tool_calls()
    return calls[-1].model_copy(deep=True) if calls else None
