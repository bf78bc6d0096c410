"""
Argument schemas for the built-in tools.

Every model forbids unknown fields so that nothing the LLM sends is
silently dropped; violations are reported back to it instead.
"""

import json
import re
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

SEARCH_MARKER = re.compile(r"<{3,}\s*SEARCH", re.IGNORECASE)
REPLACE_MARKER = re.compile(r">{3,}\s*REPLACE", re.IGNORECASE)

_SEARCH_KEYS = ("SEARCH", "search", "old", "original", "find", "from")
_REPLACE_KEYS = ("REPLACE", "replace", "new", "replacement", "to", "with")
_BLOCK_LIST_KEYS = ("blocks", "changes", "edits", "replacements")


class ToolArgs(BaseModel):
    """Base for tool argument models."""

    model_config = ConfigDict(extra="forbid")


# =============================================================================
# File reading
# =============================================================================


class ReadFileArgs(ToolArgs):
    path: str = Field(min_length=1, description="File path, relative to the workspace root")
    start_line: Optional[int] = Field(default=None, gt=0, description="First line to read (1-based)")
    end_line: Optional[int] = Field(default=None, gt=0, description="Last line to read (inclusive)")

    @model_validator(mode="after")
    def _check_range(self) -> "ReadFileArgs":
        if self.start_line and self.end_line and self.start_line > self.end_line:
            raise ValueError("start_line must be <= end_line")
        return self


class ListDirectoryArgs(ToolArgs):
    path: str = Field(min_length=1, description="Directory path, relative to the workspace root")


class SearchFilesArgs(ToolArgs):
    path: str = Field(min_length=1, description="Directory to search in")
    pattern: str = Field(min_length=1, description="Text or regular expression to look for")
    is_regex: bool = Field(default=False, description="Treat pattern as a regular expression")
    file_pattern: Optional[str] = Field(default=None, description="Glob filter such as '*.py'")


# =============================================================================
# File editing
# =============================================================================


def _convert_single_block(item: Any) -> Optional[str]:
    if not isinstance(item, dict):
        return None

    search = next((item[k] for k in _SEARCH_KEYS if isinstance(item.get(k), str)), None)
    replace = next((item[k] for k in _REPLACE_KEYS if isinstance(item.get(k), str)), None)

    if search is None or replace is None:
        return None
    return f"<<<<<<< SEARCH\n{search}\n=======\n{replace}\n>>>>>>> REPLACE"


def _convert_object_to_blocks(obj: Any) -> str:
    if isinstance(obj, list):
        return "\n\n".join(b for b in (_convert_single_block(i) for i in obj) if b)

    single = _convert_single_block(obj)
    if single:
        return single

    if isinstance(obj, dict):
        for key in _BLOCK_LIST_KEYS:
            if isinstance(obj.get(key), list):
                blocks = [b for b in (_convert_single_block(i) for i in obj[key]) if b]
                if blocks:
                    return "\n\n".join(blocks)
    return ""


class EditFileArgs(ToolArgs):
    path: str = Field(min_length=1, description="File to edit")
    search_replace_blocks: str = Field(
        min_length=1,
        description=(
            "One or more blocks of the form "
            "'<<<<<<< SEARCH\\n<old>\\n=======\\n<new>\\n>>>>>>> REPLACE'"
        ),
    )

    @field_validator("search_replace_blocks", mode="before")
    @classmethod
    def _normalize_blocks(cls, value: Any) -> Any:
        """Accept dict/list block forms and JSON strings of them."""
        if isinstance(value, str):
            if SEARCH_MARKER.search(value):
                return value
            try:
                parsed = json.loads(value)
            except ValueError:
                return value
            if isinstance(parsed, (dict, list)):
                return _convert_object_to_blocks(parsed)
            return value
        if isinstance(value, (dict, list)):
            return _convert_object_to_blocks(value)
        return value

    @field_validator("search_replace_blocks")
    @classmethod
    def _check_format(cls, value: str) -> str:
        if not (SEARCH_MARKER.search(value) and REPLACE_MARKER.search(value)):
            raise ValueError("Invalid SEARCH/REPLACE block format")
        return value


class WriteFileArgs(ToolArgs):
    path: str = Field(min_length=1, description="File to create or overwrite")
    content: str = Field(description="Full file content")


class DeleteFileOrFolderArgs(ToolArgs):
    path: str = Field(min_length=1, description="File or folder to delete")
    recursive: bool = Field(default=False, description="Delete non-empty folders")


# =============================================================================
# Terminal
# =============================================================================


class RunCommandArgs(ToolArgs):
    command: str = Field(min_length=1, description="Shell command to run")
    cwd: Optional[str] = Field(default=None, description="Working directory, relative to the workspace")
    timeout: int = Field(default=30, gt=0, le=600, description="Timeout in seconds")


# =============================================================================
# Language server
# =============================================================================


class LspLocationArgs(ToolArgs):
    path: str = Field(min_length=1, description="File containing the symbol")
    line: int = Field(gt=0, description="1-based line number")
    column: int = Field(gt=0, description="1-based column number")


class DocumentSymbolsArgs(ToolArgs):
    path: str = Field(min_length=1, description="File to list symbols for")


class LintErrorsArgs(ToolArgs):
    path: str = Field(min_length=1, description="File to check")
    refresh: bool = Field(default=False, description="Force the language server to re-check")
