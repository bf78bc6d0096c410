"""Tests for tool-call parsing."""

import re

import pytest

from codeloop.agent.parser import (
    ScannerState,
    StreamingToolCallScanner,
    detect_streaming_tool_call,
    generate_tool_call_id,
    parse_native_tool_call,
    parse_xml_tool_calls,
    strip_tool_calls,
)

READ_CALL = (
    "<tool_call>\n<function=read_file>\n<parameter=path>src/app.py</parameter>\n"
    "</function>\n</tool_call>"
)


class TestXmlParsing:
    """Complete inline tool calls."""

    def test_wrapped_call(self):
        calls = parse_xml_tool_calls(f"Let me look.\n{READ_CALL}")

        assert len(calls) == 1
        assert calls[0].name == "read_file"
        assert calls[0].arguments == {"path": "src/app.py"}
        assert re.fullmatch(r"xml-\d+-[a-z0-9]{6}", calls[0].id)

    def test_wrapped_calls_come_first(self):
        """Bare blocks are collected in a second pass, never twice."""
        content = (
            "<function=list_directory><parameter=path>.</parameter></function>\n"
            + READ_CALL
        )

        calls = parse_xml_tool_calls(content)

        assert [c.name for c in calls] == ["read_file", "list_directory"]

    def test_json_parameter_values(self):
        content = (
            "<function=edit_file>"
            "<parameter=path>a.py</parameter>"
            '<parameter=search_replace_blocks>[{"search": "x", "replace": "y"}]</parameter>'
            "<parameter=count>5</parameter>"
            "</function>"
        )

        call = parse_xml_tool_calls(content)[0]

        assert call.arguments["search_replace_blocks"] == [{"search": "x", "replace": "y"}]
        assert call.arguments["count"] == "5"

    def test_invalid_json_value_kept_as_text(self):
        content = "<function=f><parameter=data>{not json</parameter></function>"

        assert parse_xml_tool_calls(content)[0].arguments == {"data": "{not json"}

    def test_incomplete_call_ignored(self):
        assert parse_xml_tool_calls("<function=read_file><parameter=path>a</parameter>") == []

    def test_quoted_function_name(self):
        calls = parse_xml_tool_calls('<function="read_file"><parameter="path">a</parameter></function>')

        assert calls[0].name == "read_file"
        assert calls[0].arguments == {"path": "a"}

    def test_strip_tool_calls(self):
        text = strip_tool_calls(f"Reading now.\n{READ_CALL}\n<function=x></function>")

        assert text == "Reading now."


class TestNativeParsing:
    def test_json_string_arguments(self):
        call = parse_native_tool_call("call_1", "read_file", '{"path": "a.py"}')

        assert call.id == "call_1"
        assert call.arguments == {"path": "a.py"}

    def test_malformed_json_preserved(self):
        call = parse_native_tool_call("call_1", "read_file", '{"path": ')

        assert call.arguments == {"raw_input": '{"path": '}

    def test_non_object_json(self):
        assert parse_native_tool_call("c", "f", "[1, 2]").arguments == {"raw_input": [1, 2]}

    @pytest.mark.parametrize("arguments", ["", "   ", None])
    def test_empty_arguments(self, arguments):
        assert parse_native_tool_call("c", "f", arguments).arguments == {}

    def test_missing_id_generated(self):
        call = parse_native_tool_call(None, "f", {"a": 1})

        assert call.id.startswith("native-")
        assert call.arguments == {"a": 1}

    def test_generated_ids_are_unique(self):
        ids = {generate_tool_call_id() for _ in range(50)}

        assert len(ids) == 50


class TestPartialParameterValues:
    """Structured parameter values recovered while still streaming."""

    @pytest.mark.parametrize(
        "value,expected",
        [
            ('{"path": "src/ma', {"path": "src/ma"}),
            ('{"a": [1, 2', {"a": [1, 2]}),
            ('{"a": {"b": "c', {"a": {"b": "c"}}),
            ('[{"search": "x", "replace": "y"}', [{"search": "x", "replace": "y"}]),
        ],
    )
    def test_recovers_prefix(self, value, expected):
        call = detect_streaming_tool_call(f"<function=f><parameter=data>{value}")

        assert call.arguments == {"data": expected}

    def test_plain_text_kept_as_string(self):
        call = detect_streaming_tool_call("<function=f><parameter=data>hello wor")

        assert call.arguments == {"data": "hello wor"}

    def test_long_value_reparsed_sparingly(self):
        """Feeding char by char re-parses the open value only as it grows."""
        body = "x" * 2000
        scanner = StreamingToolCallScanner()
        scanner.feed("<function=write_file><parameter=content>")

        updates = [scanner.feed(ch) for ch in body]

        snapshots = [u for u in updates if u is not None]
        assert snapshots[0].arguments == {"content": "x" * 16}
        assert len(snapshots) < 30
        assert scanner.current.arguments["content"] != body

        closed = scanner.feed("</parameter></function>")
        assert closed.arguments == {"content": body}
        assert closed.is_streaming is False


class TestStreamingScanner:
    """Incremental inline scanning."""

    def test_chunked_call(self):
        scanner = StreamingToolCallScanner()

        assert scanner.feed("Let me read.<func") is None

        opened = scanner.feed("tion=read_file>\n<parameter=path>src/")
        assert opened.name == "read_file"
        assert opened.is_streaming is True
        assert opened.arguments == {"path": "src/"}
        assert scanner.state == ScannerState.IN_PARAMETER

        closed = scanner.feed("app.py</parameter>\n</function>")
        assert closed.is_streaming is False
        assert closed.arguments == {"path": "src/app.py"}
        assert closed.id == opened.id
        assert scanner.state == ScannerState.OUTSIDE
        assert len(scanner.completed) == 1

    def test_unchanged_feed_returns_none(self):
        scanner = StreamingToolCallScanner()
        scanner.feed(READ_CALL)

        assert scanner.feed(" and some more prose") is None

    def test_snapshots_are_copies(self):
        scanner = StreamingToolCallScanner()
        snapshot = scanner.feed("<function=write_file><parameter=path>a")

        scanner.feed(".py</parameter>")

        assert snapshot.arguments == {"path": "a"}
        assert scanner.current.arguments == {"path": "a.py"}

    def test_partial_json_parameter(self):
        scanner = StreamingToolCallScanner()

        snapshot = scanner.feed('<function=edit_file><parameter=search_replace_blocks>[{"search": "ol')

        assert snapshot.arguments["search_replace_blocks"] == [{"search": "ol"}]

    def test_closing_tag_split_across_chunks(self):
        scanner = StreamingToolCallScanner()
        scanner.feed("<function=read_file><parameter=path>a.py</param")

        assert scanner.current.arguments["path"] == "a.py"

        closed = scanner.feed("eter></function>")
        assert closed.arguments == {"path": "a.py"}
        assert closed.is_streaming is False

    def test_one_char_at_a_time_matches_whole_parse(self):
        text = f"Intro {READ_CALL} then <function=list_directory><parameter=path>.</parameter></function>"
        scanner = StreamingToolCallScanner()

        for ch in text:
            scanner.feed(ch)

        calls = scanner.tool_calls()
        assert [(c.name, c.arguments) for c in calls] == [
            ("read_file", {"path": "src/app.py"}),
            ("list_directory", {"path": "."}),
        ]
        assert all(not c.is_streaming for c in calls)

    def test_to_tool_call(self):
        scanner = StreamingToolCallScanner()
        scanner.feed(READ_CALL)

        call = scanner.completed[0].to_tool_call()

        assert call.name == "read_file"
        assert call.arguments == {"path": "src/app.py"}

    def test_detect_streaming_tool_call(self):
        call = detect_streaming_tool_call("text <function=read_file><parameter=path>sr")

        assert call.name == "read_file"
        assert call.is_streaming is True
        assert call.arguments == {"path": "sr"}
        assert detect_streaming_tool_call("no calls here") is None
