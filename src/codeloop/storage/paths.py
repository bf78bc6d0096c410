"""
Path utilities for codeloop.

Provides consistent resolution of the home directory and config files.
"""

import os
from pathlib import Path

PROJECT_DIR_NAME = ".codeloop"
CONFIG_FILE_NAME = "config.yaml"


def get_codeloop_home() -> Path:
    """
    Get the codeloop home directory.

    Resolution order:
    1. CODELOOP_HOME environment variable
    2. Default: ~/.codeloop

    Returns:
        Path to the home directory.
    """
    env_home = os.environ.get("CODELOOP_HOME")
    if env_home:
        return Path(env_home).expanduser().resolve()
    return Path.home() / PROJECT_DIR_NAME


def get_global_config_path() -> Path:
    """
    Get the path to the global configuration file.

    Returns:
        Path to ~/.codeloop/config.yaml
    """
    return get_codeloop_home() / CONFIG_FILE_NAME


def find_project_config(start_path: Path | None = None) -> Path | None:
    """
    Find the project configuration file by walking up the directory tree.

    Looks for .codeloop/config.yaml starting from the given path (or the
    current directory) up to the filesystem root. The global config file is
    never returned as a project config.

    Args:
        start_path: Starting directory to search from. Defaults to cwd.

    Returns:
        Path to the project config if found, None otherwise.
    """
    current = Path.cwd() if start_path is None else Path(start_path).resolve()
    global_config = get_global_config_path()

    for directory in (current, *current.parents):
        candidate = directory / PROJECT_DIR_NAME / CONFIG_FILE_NAME
        if candidate.is_file() and candidate.resolve() != global_config.resolve():
            return candidate

    return None
