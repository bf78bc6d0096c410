"""System prompt fragments."""

import json
from typing import Any, Optional

from codeloop.agent.models import WorkMode

DEFAULT_SYSTEM_PROMPT = """You are a coding agent working inside the user's workspace.
Use the available tools to inspect and change files, run commands and query the language server.
Read files before editing them, make focused changes, and stop once the task is done."""

PLAN_MODE_PROMPT = """You are in plan mode. Investigate the workspace with read-only tools and
produce a step-by-step implementation plan. Do not modify files or run commands that change state."""

CHAT_MODE_PROMPT = """You are in chat mode. Answer directly; no tools are available."""

INLINE_TOOLS_HEADER = """## Tools

You can call tools by writing a block in exactly this format:

<tool_call>
<function=TOOL_NAME>
<parameter=PARAM_NAME>value</parameter>
</function>
</tool_call>

Parameter values are plain text; use JSON for objects and arrays.
You may make several tool calls in one reply. After your calls, stop and wait for the results.

Available tools:
"""


def _describe_parameters(parameters: dict[str, Any]) -> str:
    required = set(parameters.get("required", []))
    lines = []
    for name, schema in parameters.get("properties", {}).items():
        type_name = schema.get("type", "any")
        marker = "required" if name in required else "optional"
        description = schema.get("description", "")
        lines.append(f"  - {name} ({type_name}, {marker}): {description}".rstrip(": "))
    return "\n".join(lines) or "  (no parameters)"


def render_inline_tools(tool_definitions: list[dict[str, Any]]) -> str:
    """Render tool definitions for models without native function calling."""
    blocks = []
    for tool in tool_definitions:
        blocks.append(
            f"### {tool['name']}\n{tool['description']}\nParameters:\n"
            f"{_describe_parameters(tool['parameters'])}"
        )
    return INLINE_TOOLS_HEADER + "\n\n".join(blocks)


def build_system_prompt(
    base_prompt: str,
    mode: WorkMode,
    inline_tools: Optional[list[dict[str, Any]]] = None,
) -> str:
    """Assemble the system prompt for one LLM round.

    Args:
        base_prompt: Caller-supplied prompt; the default prompt when empty
        mode: Work mode of the run
        inline_tools: Tool definitions to embed (inline tool format only)

    Returns:
        Full system prompt
    """
    parts = [base_prompt.strip() or DEFAULT_SYSTEM_PROMPT]
    if mode == WorkMode.PLAN:
        parts.append(PLAN_MODE_PROMPT)
    elif mode == WorkMode.CHAT:
        parts.append(CHAT_MODE_PROMPT)
    if inline_tools:
        parts.append(render_inline_tools(inline_tools))
    return "\n\n".join(parts)


def tool_definitions_json(tool_definitions: list[dict[str, Any]]) -> str:
    """Pretty JSON of tool definitions, for debugging output."""
    return json.dumps(tool_definitions, indent=2)
