"""Conversation history owned by the agent."""

import json
import uuid
from datetime import datetime
from typing import Any, Literal, Optional, Union

from pydantic import BaseModel, Field

from codeloop.tools.models import ToolCall, ToolStatus

SUMMARY_HEADER = "[Previous conversation summary]"


def _new_id() -> str:
    return uuid.uuid4().hex[:12]


class UserMessage(BaseModel):
    role: Literal["user"] = "user"
    id: str = Field(default_factory=_new_id)
    content: str
    timestamp: datetime = Field(default_factory=datetime.now)

    def text(self) -> str:
        return self.content


class AssistantMessage(BaseModel):
    """One LLM round: text, reasoning and the tool calls it requested."""

    role: Literal["assistant"] = "assistant"
    id: str = Field(default_factory=_new_id)
    content: str = ""
    reasoning: str = ""
    tool_calls: list[ToolCall] = Field(default_factory=list)
    is_streaming: bool = True
    timestamp: datetime = Field(default_factory=datetime.now)

    def text(self) -> str:
        parts = [self.content]
        parts.extend(f"{tc.name} {json.dumps(tc.arguments, default=str)}" for tc in self.tool_calls)
        return "\n".join(p for p in parts if p)


class ToolResultMessage(BaseModel):
    role: Literal["tool"] = "tool"
    id: str = Field(default_factory=_new_id)
    tool_call_id: str
    name: str
    content: str
    status: ToolStatus = ToolStatus.SUCCESS
    timestamp: datetime = Field(default_factory=datetime.now)

    def text(self) -> str:
        return self.content


class SummaryMessage(BaseModel):
    """Stands in for older turns removed by context compression."""

    role: Literal["summary"] = "summary"
    id: str = Field(default_factory=_new_id)
    content: str
    replaced_count: int = 0
    timestamp: datetime = Field(default_factory=datetime.now)

    def text(self) -> str:
        return self.content


Message = Union[UserMessage, AssistantMessage, ToolResultMessage, SummaryMessage]


def format_inline_call(tool_call: ToolCall) -> str:
    """Render a tool call in the inline tagged format."""
    lines = ["<tool_call>", f"<function={tool_call.name}>"]
    for key, value in tool_call.arguments.items():
        text = value if isinstance(value, str) else json.dumps(value, ensure_ascii=False)
        lines.append(f"<parameter={key}>{text}</parameter>")
    lines.extend(["</function>", "</tool_call>"])
    return "\n".join(lines)


def _synthesized_result(tool_call: ToolCall) -> str:
    if tool_call.status == ToolStatus.REJECTED:
        return "Tool call was rejected by the user."
    return f"Error: {tool_call.error or 'tool call did not complete'}"


def _assistant_to_dict(message: AssistantMessage, inline: bool) -> dict[str, Any]:
    if inline:
        parts = [message.content] + [format_inline_call(tc) for tc in message.tool_calls]
        return {"role": "assistant", "content": "\n\n".join(p for p in parts if p)}

    result: dict[str, Any] = {"role": "assistant", "content": message.content or None}
    if message.tool_calls:
        result["tool_calls"] = [
            {
                "id": tc.id,
                "type": "function",
                "function": {
                    "name": tc.name,
                    "arguments": json.dumps(tc.arguments, ensure_ascii=False, default=str),
                },
            }
            for tc in message.tool_calls
        ]
    return result


def _tool_result_to_dict(tool_call_id: str, name: str, content: str, inline: bool) -> dict[str, Any]:
    if inline:
        return {
            "role": "user",
            "content": f'<tool_result name="{name}">\n{content}\n</tool_result>',
        }
    return {"role": "tool", "tool_call_id": tool_call_id, "content": content}


def to_llm_messages(
    messages: list[Message],
    system_prompt: str = "",
    inline: bool = False,
) -> list[dict[str, Any]]:
    """Convert history to OpenAI-style message dicts.

    Every assistant tool call is followed by exactly one result; calls that
    never produced one (aborted runs) get a synthesized error result so the
    history stays well-formed.

    Args:
        messages: Conversation history
        system_prompt: System prompt placed first, if any
        inline: Use the inline tool format (results sent as user messages)

    Returns:
        Message dicts ready for the LLM client
    """
    result: list[dict[str, Any]] = []
    if system_prompt:
        result.append({"role": "system", "content": system_prompt})

    i = 0
    while i < len(messages):
        message = messages[i]
        i += 1

        if isinstance(message, SummaryMessage):
            result.append({"role": "system", "content": f"{SUMMARY_HEADER}\n{message.content}"})
        elif isinstance(message, UserMessage):
            result.append({"role": "user", "content": message.content})
        elif isinstance(message, ToolResultMessage):
            # Orphaned result (its assistant message was compressed away)
            result.append({"role": "user", "content": f"[{message.name} result]\n{message.content}"})
        elif isinstance(message, AssistantMessage):
            if not message.content and not message.tool_calls:
                continue
            result.append(_assistant_to_dict(message, inline))

            answered: set[str] = set()
            while i < len(messages) and isinstance(messages[i], ToolResultMessage):
                tool_result = messages[i]
                answered.add(tool_result.tool_call_id)
                result.append(
                    _tool_result_to_dict(tool_result.tool_call_id, tool_result.name, tool_result.content, inline)
                )
                i += 1

            for tc in message.tool_calls:
                if tc.id not in answered:
                    result.append(_tool_result_to_dict(tc.id, tc.name, _synthesized_result(tc), inline))

    return result


def find_tool_call(messages: list[Message], tool_call_id: str) -> Optional[ToolCall]:
    """Locate a tool call by id, newest first."""
    for message in reversed(messages):
        if isinstance(message, AssistantMessage):
            for tc in message.tool_calls:
                if tc.id == tool_call_id:
                    return tc
    return None
