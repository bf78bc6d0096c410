"""Workspace text search tool."""

import asyncio
import fnmatch
import logging
import os
import re
from pathlib import Path
from typing import Optional

from codeloop.tools.base import Tool, ToolExecutionError
from codeloop.tools.models import ToolCategory, ToolExecutionContext
from codeloop.tools.schemas import SearchFilesArgs

logger = logging.getLogger(__name__)

MAX_SEARCH_RESULTS = 200
MAX_LINE_PREVIEW = 200
BINARY_SNIFF_BYTES = 8192


class SearchFilesTool(Tool):
    """Search file contents for text or a regular expression.

    Walks the directory tree, pruning ignored directories, and reports
    matching lines as ``path:line: text``.
    """

    @property
    def name(self) -> str:
        """Tool name."""
        return "search_files"

    @property
    def description(self) -> str:
        """Tool description."""
        return (
            "Search for text inside files under a directory. "
            "Set is_regex=true to use a regular expression, and file_pattern "
            "(e.g. '*.py') to restrict which files are searched. "
            "Returns matching lines with file path and line number."
        )

    @property
    def args_model(self) -> type[SearchFilesArgs]:
        return SearchFilesArgs

    @property
    def category(self) -> ToolCategory:
        return ToolCategory.SEARCH

    @property
    def max_retries(self) -> int:
        return 2

    async def execute(self, args: SearchFilesArgs, context: ToolExecutionContext) -> str:
        """Search for content.

        Args:
            args: Directory, pattern and filters
            context: Workspace scope

        Returns:
            Formatted match list, or a "no results" message
        """
        search_path = self.resolve_path(args.path, context)
        logger.info(f"Searching {search_path} for '{args.pattern}'")

        if not search_path.exists():
            raise ToolExecutionError(f"Directory not found: {args.path}")
        if not search_path.is_dir():
            raise ToolExecutionError(f"Not a directory: {args.path}")

        source = args.pattern if args.is_regex else re.escape(args.pattern)
        try:
            regex = re.compile(source)
        except re.error as e:
            raise ToolExecutionError(f"Invalid regular expression: {e}")

        results = await asyncio.to_thread(
            self._search,
            search_path,
            regex,
            args.file_pattern,
            set(context.ignored_directories),
        )

        if not results:
            return f"No results found for: {args.pattern}"

        header = [f"Search: {args.pattern}", f"Results: {len(results)} (max: {MAX_SEARCH_RESULTS})", ""]
        return "\n".join(header + results)

    def _search(
        self,
        base_path: Path,
        regex: re.Pattern,
        file_pattern: Optional[str],
        ignored: set[str],
    ) -> list[str]:
        results: list[str] = []

        for root, dirs, files in os.walk(base_path):
            # Prune in place so os.walk never descends into ignored trees
            dirs[:] = sorted(d for d in dirs if d not in ignored)

            for filename in sorted(files):
                if file_pattern and not fnmatch.fnmatch(filename, file_pattern):
                    continue

                file_path = Path(root) / filename
                for line_no, line in self._iter_text_lines(file_path):
                    if regex.search(line):
                        rel_path = file_path.relative_to(base_path)
                        results.append(f"{rel_path}:{line_no}: {line.strip()[:MAX_LINE_PREVIEW]}")
                        if len(results) >= MAX_SEARCH_RESULTS:
                            return results

        return results

    @staticmethod
    def _iter_text_lines(file_path: Path):
        try:
            with open(file_path, "rb") as f:
                if b"\x00" in f.read(BINARY_SNIFF_BYTES):
                    return
            with open(file_path, encoding="utf-8", errors="ignore") as f:
                for line_no, line in enumerate(f, start=1):
                    yield line_no, line
        except OSError as e:
            logger.debug(f"Skipping unreadable file {file_path}: {e}")
