"""Filesystem locations used by codeloop."""

from codeloop.storage.paths import (
    find_project_config,
    get_codeloop_home,
    get_global_config_path,
)

__all__ = [
    "find_project_config",
    "get_codeloop_home",
    "get_global_config_path",
]
