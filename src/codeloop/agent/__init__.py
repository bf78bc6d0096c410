"""
Agent building blocks for codeloop.

The orchestrator itself lives in ``codeloop.agent.orchestrator`` (``Agent``);
it is not re-exported here because it depends on ``codeloop.context``,
which in turn imports the conversation models from this package.
"""

from codeloop.agent.approval import ApprovalGate, ApprovalPendingError, ApprovalRequest
from codeloop.agent.conversation import (
    AssistantMessage,
    Message,
    SummaryMessage,
    ToolResultMessage,
    UserMessage,
    find_tool_call,
    to_llm_messages,
)
from codeloop.agent.executor import ToolExecutor, serialize_result
from codeloop.agent.loop_detector import LoopCheckResult, LoopDetector, ToolCallSignature
from codeloop.agent.models import (
    AgentEvent,
    AgentState,
    EventType,
    RunResult,
    StopReason,
    WorkMode,
)
from codeloop.agent.parser import (
    StreamingToolCall,
    StreamingToolCallScanner,
    parse_native_tool_call,
    parse_xml_tool_calls,
    strip_tool_calls,
)
from codeloop.agent.prompts import DEFAULT_SYSTEM_PROMPT, build_system_prompt

__all__ = [
    # Models
    "AgentEvent",
    "AgentState",
    "EventType",
    "RunResult",
    "StopReason",
    "WorkMode",
    # Conversation
    "AssistantMessage",
    "Message",
    "SummaryMessage",
    "ToolResultMessage",
    "UserMessage",
    "find_tool_call",
    "to_llm_messages",
    # Parsing
    "StreamingToolCall",
    "StreamingToolCallScanner",
    "parse_native_tool_call",
    "parse_xml_tool_calls",
    "strip_tool_calls",
    # Execution
    "ApprovalGate",
    "ApprovalPendingError",
    "ApprovalRequest",
    "LoopCheckResult",
    "LoopDetector",
    "ToolCallSignature",
    "ToolExecutor",
    "serialize_result",
    # Prompts
    "DEFAULT_SYSTEM_PROMPT",
    "build_system_prompt",
]
