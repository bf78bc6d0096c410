"""
codeloop - in-editor AI coding agent engine

Drives an LLM through a bounded loop of reasoning and tool invocations,
with approval gating, context compression and loop detection.
"""

from importlib.metadata import PackageNotFoundError, version

try:
    __version__ = version("codeloop")
except PackageNotFoundError:
    __version__ = "0.1.0"

__all__ = [
    "__version__",
]
