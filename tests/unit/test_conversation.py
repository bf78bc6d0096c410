"""Tests for conversation history and its LLM rendering."""

import json

from codeloop.agent.conversation import (
    SUMMARY_HEADER,
    AssistantMessage,
    SummaryMessage,
    ToolResultMessage,
    UserMessage,
    find_tool_call,
    format_inline_call,
    to_llm_messages,
)
from codeloop.tools.models import ToolCall, ToolStatus


def read_call(call_id: str = "call_1", **kwargs) -> ToolCall:
    return ToolCall(id=call_id, name="read_file", arguments={"path": "a.py"}, **kwargs)


class TestToLlmMessages:
    def test_system_prompt_first(self):
        messages = to_llm_messages([UserMessage(content="hi")], system_prompt="Be nice")

        assert messages == [
            {"role": "system", "content": "Be nice"},
            {"role": "user", "content": "hi"},
        ]

    def test_native_tool_round(self):
        history = [
            UserMessage(content="read a.py"),
            AssistantMessage(content="Reading.", tool_calls=[read_call()]),
            ToolResultMessage(tool_call_id="call_1", name="read_file", content="print(1)"),
        ]

        messages = to_llm_messages(history)

        assistant = messages[1]
        assert assistant["content"] == "Reading."
        assert assistant["tool_calls"][0]["id"] == "call_1"
        assert json.loads(assistant["tool_calls"][0]["function"]["arguments"]) == {"path": "a.py"}
        assert messages[2] == {"role": "tool", "tool_call_id": "call_1", "content": "print(1)"}

    def test_missing_results_synthesized(self):
        """Every tool call gets exactly one result, even after an abort."""
        history = [
            AssistantMessage(
                tool_calls=[
                    read_call("call_1"),
                    read_call("call_2", status=ToolStatus.ERROR, error="aborted by user"),
                    read_call("call_3", status=ToolStatus.REJECTED),
                ]
            ),
            ToolResultMessage(tool_call_id="call_1", name="read_file", content="ok"),
        ]

        messages = to_llm_messages(history)

        assert messages[0]["content"] is None
        results = {m["tool_call_id"]: m["content"] for m in messages if m["role"] == "tool"}
        assert results == {
            "call_1": "ok",
            "call_2": "Error: aborted by user",
            "call_3": "Tool call was rejected by the user.",
        }

    def test_empty_assistant_skipped(self):
        history = [UserMessage(content="hi"), AssistantMessage(), UserMessage(content="again")]

        assert [m["role"] for m in to_llm_messages(history)] == ["user", "user"]

    def test_inline_format(self):
        history = [
            AssistantMessage(content="Reading.", tool_calls=[read_call()]),
            ToolResultMessage(tool_call_id="call_1", name="read_file", content="print(1)"),
        ]

        messages = to_llm_messages(history, inline=True)

        assert messages[0]["role"] == "assistant"
        assert "tool_calls" not in messages[0]
        assert messages[0]["content"].startswith("Reading.\n\n<tool_call>")
        assert messages[1] == {
            "role": "user",
            "content": '<tool_result name="read_file">\nprint(1)\n</tool_result>',
        }

    def test_summary_and_orphaned_result(self):
        history = [
            SummaryMessage(content="User asked for a refactor.", replaced_count=4),
            ToolResultMessage(tool_call_id="gone", name="search_files", content="3 matches"),
        ]

        messages = to_llm_messages(history)

        assert messages[0] == {"role": "system", "content": f"{SUMMARY_HEADER}\nUser asked for a refactor."}
        assert messages[1] == {"role": "user", "content": "[search_files result]\n3 matches"}


class TestHelpers:
    def test_format_inline_call(self):
        call = ToolCall(id="c", name="edit_file", arguments={"path": "a.py", "blocks": [1, 2]})

        assert format_inline_call(call) == (
            "<tool_call>\n<function=edit_file>\n"
            "<parameter=path>a.py</parameter>\n"
            "<parameter=blocks>[1, 2]</parameter>\n"
            "</function>\n</tool_call>"
        )

    def test_find_tool_call_newest_first(self):
        old = read_call("dup")
        new = read_call("dup", status=ToolStatus.SUCCESS)
        history = [AssistantMessage(tool_calls=[old]), AssistantMessage(tool_calls=[new])]

        assert find_tool_call(history, "dup") is new
        assert find_tool_call(history, "missing") is None

    def test_message_text(self):
        message = AssistantMessage(content="Done.", tool_calls=[read_call()])

        assert message.text() == 'Done.\nread_file {"path": "a.py"}'
        assert message.is_streaming is True
