"""File operation tools."""

import logging
import re
import shutil
from pathlib import Path
from typing import Optional

from codeloop.tools.base import Tool, ToolExecutionError
from codeloop.tools.models import ApprovalType, ToolCategory, ToolExecutionContext
from codeloop.tools.schemas import (
    DeleteFileOrFolderArgs,
    EditFileArgs,
    ListDirectoryArgs,
    ReadFileArgs,
    WriteFileArgs,
)

logger = logging.getLogger(__name__)

_BLOCK_PATTERN = re.compile(
    r"<{3,}\s*SEARCH[^\n]*\n([\s\S]*?)\n?={3,}[^\n]*\n([\s\S]*?)\n?>{3,}\s*REPLACE",
    re.IGNORECASE,
)


def parse_search_replace_blocks(text: str) -> list[tuple[str, str]]:
    """Split SEARCH/REPLACE text into ``(search, replace)`` pairs."""
    return [(m.group(1), m.group(2)) for m in _BLOCK_PATTERN.finditer(text)]


def _find_trimmed(content: str, search: str) -> Optional[tuple[int, int]]:
    """Locate ``search`` in ``content`` ignoring trailing whitespace per line.

    Returns:
        ``(start, end)`` character offsets of the matched region, or None
    """
    lines = content.splitlines(keepends=True)
    wanted = [line.rstrip() for line in search.splitlines()]
    if not wanted:
        return None

    for i in range(len(lines) - len(wanted) + 1):
        window = lines[i : i + len(wanted)]
        if [line.rstrip() for line in window] == wanted:
            start = sum(len(line) for line in lines[:i])
            end = start + sum(len(line) for line in window)
            # Keep the newline of the last matched line outside the replacement
            if window[-1].endswith("\n"):
                end -= 2 if window[-1].endswith("\r\n") else 1
            return start, end
    return None


def apply_search_replace(content: str, blocks: list[tuple[str, str]]) -> str:
    """Apply SEARCH/REPLACE pairs in order.

    Each SEARCH text must occur in the (already partially edited) content;
    only its first occurrence is replaced.

    Raises:
        ToolExecutionError: If a SEARCH text cannot be found
    """
    for index, (search, replace) in enumerate(blocks, start=1):
        if not search.strip():
            raise ToolExecutionError(f"Block {index}: SEARCH section is empty")

        if search in content:
            content = content.replace(search, replace, 1)
            continue

        span = _find_trimmed(content, search)
        if span is None:
            preview = search.strip().splitlines()[0][:80]
            raise ToolExecutionError(
                f"Block {index}: SEARCH text not found in file (starts with: {preview!r}). "
                "Read the file again and copy the exact lines."
            )
        start, end = span
        content = content[:start] + replace + content[end:]

    return content


class ReadFileTool(Tool):
    """Read file contents, optionally a line range."""

    @property
    def name(self) -> str:
        return "read_file"

    @property
    def description(self) -> str:
        return (
            "Read the contents of a file in the workspace. "
            "Optionally pass start_line/end_line (1-based, inclusive) to read a range. "
            "Lines are prefixed with their line numbers."
        )

    @property
    def args_model(self) -> type[ReadFileArgs]:
        return ReadFileArgs

    @property
    def category(self) -> ToolCategory:
        return ToolCategory.READ

    @property
    def max_retries(self) -> int:
        return 2

    async def execute(self, args: ReadFileArgs, context: ToolExecutionContext) -> str:
        """Read file contents.

        Returns:
            Numbered file lines with a short header
        """
        file_path = self.resolve_path(args.path, context)
        logger.info(f"Reading file: {file_path}")

        if not file_path.exists():
            raise ToolExecutionError(f"File not found: {args.path}")
        if not file_path.is_file():
            raise ToolExecutionError(f"Not a file: {args.path}")

        try:
            content = file_path.read_text(encoding="utf-8")
        except UnicodeDecodeError:
            raise ToolExecutionError(f"File is not valid UTF-8 text: {args.path}")
        except PermissionError:
            raise ToolExecutionError(f"Permission denied: {args.path}")

        lines = content.splitlines()
        total = len(lines)
        start = args.start_line or 1
        end = min(args.end_line or total, total)

        if total and start > total:
            raise ToolExecutionError(
                f"start_line {start} is past the end of the file ({total} lines)"
            )

        numbered = [f"{n:>6}\t{lines[n - 1]}" for n in range(start, end + 1)]
        header = f"File: {args.path} (lines {start}-{end} of {total})"
        return header + "\n" + "\n".join(numbered)


class ListDirectoryTool(Tool):
    """List the entries of one directory."""

    @property
    def name(self) -> str:
        return "list_directory"

    @property
    def description(self) -> str:
        return (
            "List files and folders in a workspace directory (non-recursive). "
            "Use '.' for the workspace root."
        )

    @property
    def args_model(self) -> type[ListDirectoryArgs]:
        return ListDirectoryArgs

    @property
    def category(self) -> ToolCategory:
        return ToolCategory.READ

    @property
    def max_retries(self) -> int:
        return 2

    async def execute(self, args: ListDirectoryArgs, context: ToolExecutionContext) -> str:
        dir_path = self.resolve_path(args.path, context)
        logger.info(f"Listing directory: {dir_path}")

        if not dir_path.exists():
            raise ToolExecutionError(f"Directory not found: {args.path}")
        if not dir_path.is_dir():
            raise ToolExecutionError(f"Not a directory: {args.path}")

        ignored = set(context.ignored_directories)
        try:
            entries = sorted(
                (item for item in dir_path.iterdir() if item.name not in ignored),
                key=lambda p: (not p.is_dir(), p.name.lower()),
            )
        except PermissionError:
            raise ToolExecutionError(f"Permission denied: {args.path}")

        if not entries:
            return f"Directory {args.path} is empty"

        output_lines = [f"Directory: {args.path}", f"Total entries: {len(entries)}", ""]
        for item in entries:
            if item.is_dir():
                output_lines.append(f"DIR   {item.name}/")
                continue
            try:
                size = item.stat().st_size
            except OSError:
                size = -1
            size_str = _format_size(size)
            output_lines.append(f"FILE  {size_str:>10}  {item.name}")

        return "\n".join(output_lines)


def _format_size(size: int) -> str:
    if size < 0:
        return "???"
    if size < 1024:
        return f"{size}B"
    if size < 1024 * 1024:
        return f"{size / 1024:.1f}KB"
    return f"{size / (1024 * 1024):.1f}MB"


class EditFileTool(Tool):
    """Edit a file with SEARCH/REPLACE blocks."""

    @property
    def name(self) -> str:
        return "edit_file"

    @property
    def description(self) -> str:
        return (
            "Edit an existing file by replacing exact text. Provide one or more blocks:\n"
            "<<<<<<< SEARCH\n<exact existing lines>\n=======\n<new lines>\n>>>>>>> REPLACE\n"
            "The SEARCH text must match the file exactly; read the file first."
        )

    @property
    def args_model(self) -> type[EditFileArgs]:
        return EditFileArgs

    @property
    def category(self) -> ToolCategory:
        return ToolCategory.WRITE

    @property
    def approval_type(self) -> ApprovalType:
        return ApprovalType.EDITS

    @property
    def max_retries(self) -> int:
        return 0

    async def execute(self, args: EditFileArgs, context: ToolExecutionContext) -> str:
        file_path = self.resolve_path(args.path, context)
        logger.info(f"Editing file: {file_path}")

        if not file_path.is_file():
            raise ToolExecutionError(f"File not found: {args.path}")

        blocks = parse_search_replace_blocks(args.search_replace_blocks)
        if not blocks:
            raise ToolExecutionError("No valid SEARCH/REPLACE blocks found")

        original = file_path.read_text(encoding="utf-8")
        updated = apply_search_replace(original, blocks)

        if updated == original:
            return f"No changes made to {args.path}"

        file_path.write_text(updated, encoding="utf-8")
        return f"Applied {len(blocks)} edit(s) to {args.path}"


class WriteFileTool(Tool):
    """Create or overwrite a file."""

    @property
    def name(self) -> str:
        return "write_file"

    @property
    def description(self) -> str:
        return (
            "Write the full content of a file, creating it (and parent folders) "
            "or overwriting it. Prefer edit_file for small changes to existing files."
        )

    @property
    def args_model(self) -> type[WriteFileArgs]:
        return WriteFileArgs

    @property
    def category(self) -> ToolCategory:
        return ToolCategory.WRITE

    @property
    def approval_type(self) -> ApprovalType:
        return ApprovalType.EDITS

    @property
    def max_retries(self) -> int:
        return 0

    async def execute(self, args: WriteFileArgs, context: ToolExecutionContext) -> str:
        file_path = self.resolve_path(args.path, context)
        logger.info(f"Writing file: {file_path}")

        if file_path.is_dir():
            raise ToolExecutionError(f"Path is a directory: {args.path}")

        existed = file_path.exists()
        try:
            file_path.parent.mkdir(parents=True, exist_ok=True)
            file_path.write_text(args.content, encoding="utf-8")
        except PermissionError:
            raise ToolExecutionError(f"Permission denied: {args.path}")

        action = "Updated" if existed else "Created"
        return f"{action} file: {args.path} ({len(args.content.encode('utf-8'))} bytes)"


class DeleteFileOrFolderTool(Tool):
    """Delete a file or folder.

    Irreversible outside of checkpoints, so it needs dangerous-level
    approval and is never retried.
    """

    @property
    def name(self) -> str:
        return "delete_file_or_folder"

    @property
    def description(self) -> str:
        return (
            "Delete a file or folder in the workspace. "
            "Set recursive=true to delete a non-empty folder."
        )

    @property
    def args_model(self) -> type[DeleteFileOrFolderArgs]:
        return DeleteFileOrFolderArgs

    @property
    def category(self) -> ToolCategory:
        return ToolCategory.WRITE

    @property
    def approval_type(self) -> ApprovalType:
        return ApprovalType.DANGEROUS

    @property
    def retryable(self) -> bool:
        return False

    async def execute(self, args: DeleteFileOrFolderArgs, context: ToolExecutionContext) -> str:
        target = self.resolve_path(args.path, context)
        logger.info(f"Deleting: {target}")

        if context.workspace_path is not None and target == Path(context.workspace_path).resolve():
            raise ToolExecutionError("Refusing to delete the workspace root")
        if not target.exists():
            raise ToolExecutionError(f"Path not found: {args.path}")

        if target.is_dir():
            if any(target.iterdir()) and not args.recursive:
                raise ToolExecutionError(
                    f"Folder is not empty: {args.path} (pass recursive=true to delete it)"
                )
            shutil.rmtree(target)
            return f"Deleted folder: {args.path}"

        target.unlink()
        return f"Deleted file: {args.path}"
