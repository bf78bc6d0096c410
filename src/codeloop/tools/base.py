"""Base classes for tool implementation."""

from abc import ABC, abstractmethod
from pathlib import Path
from typing import Any, Optional

from pydantic import BaseModel

from codeloop.tools.models import (
    ApprovalType,
    ToolCategory,
    ToolExecutionContext,
    ToolMetadata,
)


class ToolExecutionError(Exception):
    """Raised when a tool's side effect fails.

    ``transient`` marks failures worth re-running automatically
    (timeouts, flaky I/O). ``retryable`` is filled in by the executor from
    tool metadata once all attempts are spent.
    """

    def __init__(
        self,
        message: str,
        transient: bool = False,
        exit_code: Optional[int] = None,
    ):
        """Initialize error.

        Args:
            message: Error message
            transient: Whether re-running the tool might succeed
            exit_code: Optional exit code
        """
        super().__init__(message)
        self.transient = transient
        self.exit_code = exit_code
        self.retryable = True


class ToolTimeoutError(ToolExecutionError):
    """Tool did not finish within its timeout."""

    def __init__(self, message: str):
        super().__init__(message, transient=True)


class Tool(ABC):
    """Base class for all tools.

    Each tool defines:
    - Name and description (for the LLM to understand when to use it)
    - An argument model (pydantic) that doubles as its JSON schema
    - Category and approval requirement
    - Execution logic
    """

    def __init__(self):
        """Initialize the tool."""
        self._validate_definition()

    @property
    @abstractmethod
    def name(self) -> str:
        """Tool name (must be unique)."""
        pass

    @property
    @abstractmethod
    def description(self) -> str:
        """Description of what the tool does (for the LLM)."""
        pass

    @property
    @abstractmethod
    def args_model(self) -> type[BaseModel]:
        """Pydantic model the raw arguments are validated against."""
        pass

    @property
    @abstractmethod
    def category(self) -> ToolCategory:
        """Tool category."""
        pass

    @property
    def approval_type(self) -> Optional[ApprovalType]:
        """Approval requirement, None to use the registry default."""
        return None

    @property
    def timeout(self) -> Optional[float]:
        """Timeout in seconds, None to use the registry default."""
        return None

    @property
    def retryable(self) -> Optional[bool]:
        return None

    @property
    def max_retries(self) -> Optional[int]:
        return None

    @property
    def metadata(self) -> ToolMetadata:
        """Registration metadata for this tool."""
        return ToolMetadata(
            name=self.name,
            description=self.description,
            category=self.category,
            approval_type=self.approval_type,
            timeout=self.timeout,
            retryable=self.retryable,
            max_retries=self.max_retries,
        )

    def get_input_schema(self) -> dict[str, Any]:
        """Get the JSON schema object sent to the LLM.

        Returns:
            ``{"type": "object", "properties": ..., "required": [...]}``
        """
        schema = self.args_model.model_json_schema()
        properties: dict[str, Any] = {}

        for field_name, field_schema in schema.get("properties", {}).items():
            prop = {k: v for k, v in field_schema.items() if k != "title"}
            # Optional fields come out as anyOf [T, null]; flatten for the LLM
            if "anyOf" in prop:
                variants = [v for v in prop.pop("anyOf") if v.get("type") != "null"]
                if len(variants) == 1:
                    prop.update(variants[0])
            properties[field_name] = prop

        return {
            "type": "object",
            "properties": properties,
            "required": list(schema.get("required", [])),
        }

    def get_tool_definition(self) -> dict[str, Any]:
        """Get the LLM-facing tool definition.

        Returns:
            ``{name, description, parameters}``
        """
        return {
            "name": self.name,
            "description": self.description,
            "parameters": self.get_input_schema(),
        }

    @abstractmethod
    async def execute(self, args: BaseModel, context: ToolExecutionContext) -> Any:
        """Execute the tool with validated arguments.

        Args:
            args: Instance of ``args_model``
            context: Workspace scope for this call

        Returns:
            Result text, or any JSON-serializable value

        Raises:
            ToolExecutionError: If execution fails
        """
        pass

    def resolve_path(self, path: str, context: ToolExecutionContext) -> Path:
        """Resolve a tool path argument against the workspace root.

        Raises:
            ToolExecutionError: If the path escapes the workspace
        """
        candidate = Path(path).expanduser()
        root = context.workspace_path

        if root is None:
            return candidate.resolve()

        root = Path(root).resolve()
        resolved = (candidate if candidate.is_absolute() else root / candidate).resolve()
        if resolved != root and root not in resolved.parents:
            raise ToolExecutionError(f"Path '{path}' is outside the workspace")
        return resolved

    def _validate_definition(self) -> None:
        """Validate tool definition is correct.

        Raises:
            ValueError: If tool definition is invalid
        """
        if not self.name:
            raise ValueError("Tool name cannot be empty")

        if not self.description:
            raise ValueError("Tool description cannot be empty")

    def __str__(self) -> str:
        """String representation."""
        return f"Tool({self.name})"

    def __repr__(self) -> str:
        """Representation."""
        return f"<Tool name={self.name} category={self.category.value}>"
