"""Data models for the tool system."""

from enum import Enum
from pathlib import Path
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field

# Skipped by directory listings and searches
DEFAULT_IGNORED_DIRECTORIES = (
    "node_modules",
    ".git",
    "dist",
    "build",
    ".next",
    "__pycache__",
    ".venv",
    "venv",
    ".cache",
    "coverage",
    ".nyc_output",
    "tmp",
    "temp",
    ".idea",
    ".vscode",
)


class ToolCategory(str, Enum):
    """Closed set of tool categories."""

    READ = "read"
    WRITE = "write"
    TERMINAL = "terminal"
    SEARCH = "search"
    LSP = "lsp"

    @property
    def is_parallel_safe(self) -> bool:
        """Whether tools in this category may run concurrently with each other."""
        return self in (ToolCategory.READ, ToolCategory.SEARCH, ToolCategory.LSP)


class ApprovalType(str, Enum):
    """Which user confirmation a tool needs before it runs."""

    NONE = "none"
    EDITS = "edits"
    TERMINAL = "terminal"
    DANGEROUS = "dangerous"


class ToolStatus(str, Enum):
    """Lifecycle of a single tool call."""

    PENDING = "pending"  # Parsed or still streaming
    RUNNING = "running"  # Executing
    SUCCESS = "success"
    ERROR = "error"
    REJECTED = "rejected"  # Declined by the user
    AWAITING = "awaiting"  # Waiting for user approval

    @property
    def is_terminal(self) -> bool:
        return self in (ToolStatus.SUCCESS, ToolStatus.ERROR, ToolStatus.REJECTED)


class ToolMetadata(BaseModel):
    """Registration-time description of a tool.

    Optional fields fall back to registry-wide defaults when omitted.
    """

    model_config = ConfigDict(frozen=True)

    name: str
    description: str
    category: ToolCategory
    approval_type: Optional[ApprovalType] = None
    timeout: Optional[float] = None  # seconds
    retryable: Optional[bool] = None
    max_retries: Optional[int] = None


class RetryPolicy(BaseModel):
    """Resolved retry configuration for one tool."""

    retryable: bool
    max_retries: int


class ToolCall(BaseModel):
    """A tool invocation requested by the LLM.

    Mutated in place as it moves through approval and execution.
    """

    id: str
    name: str
    arguments: dict[str, Any] = Field(default_factory=dict)
    status: ToolStatus = ToolStatus.PENDING
    result: Optional[str] = None
    error: Optional[str] = None

    def __str__(self) -> str:
        """String representation."""
        args = ", ".join(f"{k}={v!r}" for k, v in self.arguments.items())
        return f"{self.name}({args})"


class ToolExecutionContext(BaseModel):
    """Workspace scope a tool runs in."""

    workspace_path: Optional[Path] = None
    assistant_id: Optional[str] = None
    ignored_directories: list[str] = Field(default_factory=lambda: list(DEFAULT_IGNORED_DIRECTORIES))


class ValidationIssue(BaseModel):
    """One schema violation."""

    path: str
    message: str

    def __str__(self) -> str:
        return f"{self.path}: {self.message}"


class ValidationResult(BaseModel):
    """Outcome of validating raw LLM arguments against a tool schema."""

    model_config = ConfigDict(arbitrary_types_allowed=True)

    success: bool
    data: Optional[BaseModel] = None
    error: Optional[str] = None
    issues: list[ValidationIssue] = Field(default_factory=list)
