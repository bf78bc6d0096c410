"""Data models for agent runs: states, modes, events and results."""

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Optional

from pydantic import BaseModel, Field

from codeloop.tools.models import ToolCall


class AgentState(str, Enum):
    """Orchestrator state over a single run."""

    IDLE = "idle"
    STREAMING = "streaming"  # Waiting on the LLM
    TOOL_PENDING = "tool_pending"  # Waiting on user approval
    TOOL_RUNNING = "tool_running"
    ERROR = "error"


class WorkMode(str, Enum):
    """What the agent may do during a run."""

    CHAT = "chat"  # Conversation only, no tools offered
    AGENT = "agent"  # Full tool loop
    PLAN = "plan"  # Tool loop aimed at producing a plan

    @property
    def uses_tools(self) -> bool:
        return self != WorkMode.CHAT


class StopReason(str, Enum):
    """Why a run ended."""

    COMPLETED = "completed"
    ABORTED = "aborted"
    MAX_TOOL_LOOPS = "max_tool_loops"
    LOOP_DETECTED = "loop_detected"
    TOOL_FAILED = "tool_failed"  # Non-retryable tool error
    ERROR = "error"
    BUSY = "busy"  # Rejected: another run was in progress


class EventType(str, Enum):
    """Agent events for streaming updates."""

    RUN_START = "run_start"
    STREAM_TEXT = "stream_text"
    STREAM_REASONING = "stream_reasoning"
    TOOL_STREAMING = "tool_streaming"  # Inline call still arriving
    TOOL_APPROVAL_NEEDED = "tool_approval_needed"
    TOOL_APPROVED = "tool_approved"
    TOOL_REJECTED = "tool_rejected"
    TOOL_START = "tool_start"
    TOOL_COMPLETE = "tool_complete"
    TOOL_ERROR = "tool_error"
    CONTEXT_COMPRESSED = "context_compressed"
    LOOP_DETECTED = "loop_detected"
    WARNING = "warning"
    ERROR = "error"
    RUN_COMPLETE = "run_complete"


class AgentEvent(BaseModel):
    """Event emitted during a run."""

    event_type: EventType = Field(description="Type of event")

    tool_call: Optional[ToolCall] = Field(
        default=None,
        description="Snapshot of the tool call (for tool events)",
    )

    text: Optional[str] = Field(
        default=None,
        description="Text delta, or a human-readable message",
    )

    data: Optional[dict[str, Any]] = Field(
        default=None,
        description="Additional event data",
    )

    timestamp: datetime = Field(default_factory=datetime.now)


@dataclass
class RunResult:
    """Outcome of one ``send``."""

    stop_reason: StopReason
    content: str = ""  # Final assistant text
    tool_calls: list[ToolCall] = field(default_factory=list)
    tool_loops: int = 0
    error: Optional[str] = None

    @property
    def success(self) -> bool:
        return self.stop_reason == StopReason.COMPLETED
