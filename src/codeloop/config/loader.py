"""
Configuration loader for codeloop.

Loads and merges configuration from multiple sources:
1. Default values
2. Global config (~/.codeloop/config.yaml)
3. Project config (.codeloop/config.yaml, searched upwards from cwd)
4. Environment variables (CODELOOP_<SECTION>__<KEY>)
"""

import json
import logging
import os
import re
from pathlib import Path
from typing import Any

import yaml
from pydantic import ValidationError

from codeloop.config.merger import deep_merge, set_nested_value
from codeloop.config.schema import Config
from codeloop.storage.paths import find_project_config, get_global_config_path

logger = logging.getLogger(__name__)

ENV_PREFIX = "CODELOOP_"
ENV_NESTING = "__"


class ConfigurationError(Exception):
    """Raised when configuration loading or validation fails."""

    pass


def load_yaml_file(path: Path) -> dict[str, Any]:
    """
    Load a YAML configuration file.

    Args:
        path: Path to the YAML file.

    Returns:
        Parsed configuration dictionary (empty if the file is missing or empty).

    Raises:
        ConfigurationError: If the file cannot be read or parsed.
    """
    try:
        with open(path, encoding="utf-8") as f:
            content = yaml.safe_load(f)
    except FileNotFoundError:
        return {}
    except yaml.YAMLError as e:
        raise ConfigurationError(f"Invalid YAML in {path}: {e}") from e
    except OSError as e:
        raise ConfigurationError(f"Cannot read {path}: {e}") from e

    if content is None:
        return {}
    if not isinstance(content, dict):
        raise ConfigurationError(f"Expected a mapping at the top of {path}, got {type(content).__name__}")
    return content


def apply_env_overrides(config: dict[str, Any], environ: dict[str, str] | None = None) -> dict[str, Any]:
    """
    Apply environment variable overrides to configuration.

    Variables follow the pattern ``CODELOOP_<SECTION>__<KEY>``; every double
    underscore descends one level, so ``CODELOOP_AGENT__RETRY__MAX_RETRIES=5``
    sets ``agent.retry.max_retries``. Variables without a double underscore
    (such as ``CODELOOP_HOME``) are not configuration keys.

    Args:
        config: Configuration dictionary to modify.
        environ: Environment to read. Defaults to os.environ.

    Returns:
        Configuration with environment overrides applied.
    """
    environ = os.environ if environ is None else environ

    for key, value in environ.items():
        if not key.startswith(ENV_PREFIX) or ENV_NESTING not in key:
            continue

        parts = [part.lower() for part in key[len(ENV_PREFIX) :].split(ENV_NESTING)]
        if not all(parts):
            logger.warning(f"Ignoring malformed config variable: {key}")
            continue

        config = set_nested_value(config, ".".join(parts), _parse_env_value(value))
        logger.debug(f"Config override from environment: {key}")

    return config


def _parse_env_value(value: str) -> Any:
    """
    Parse an environment variable value to the appropriate type.

    Args:
        value: String value from environment.

    Returns:
        Parsed value (bool, int, float, list, or string).
    """
    lowered = value.strip().lower()
    if lowered in ("true", "yes", "on"):
        return True
    if lowered in ("false", "no", "off"):
        return False

    if re.match(r"^-?\d+$", value.strip()):
        return int(value)
    if re.match(r"^-?\d+\.\d+$", value.strip()):
        return float(value)

    # JSON list, e.g. '["dist", "out"]'
    if value.strip().startswith("["):
        try:
            return json.loads(value)
        except ValueError:
            pass

    return value


def _format_validation_error(error: ValidationError) -> str:
    details = [
        f"{'.'.join(str(part) for part in err['loc'])}: {err['msg']}" for err in error.errors()
    ]
    return "; ".join(details)


def load_config(
    project_path: Path | None = None,
    skip_global: bool = False,
    skip_project: bool = False,
    skip_env: bool = False,
) -> Config:
    """
    Load and merge configuration from all sources.

    Loading order (later overrides earlier):
    1. Default values from Config model
    2. Global config (~/.codeloop/config.yaml)
    3. Project config (.codeloop/config.yaml) if found
    4. Environment variables (CODELOOP_*)

    Args:
        project_path: Starting path to search for project config. Defaults to cwd.
        skip_global: Skip loading the global configuration.
        skip_project: Skip loading project configuration.
        skip_env: Skip environment variable overrides.

    Returns:
        Merged and validated Config object.

    Raises:
        ConfigurationError: If configuration is invalid.
    """
    config_dict = Config().model_dump()

    if not skip_global:
        global_path = get_global_config_path()
        if global_path.exists():
            logger.debug(f"Loading global config: {global_path}")
            config_dict = deep_merge(config_dict, load_yaml_file(global_path))

    if not skip_project:
        project_config_path = find_project_config(project_path)
        if project_config_path is not None:
            logger.debug(f"Loading project config: {project_config_path}")
            config_dict = deep_merge(config_dict, load_yaml_file(project_config_path))

    if not skip_env:
        config_dict = apply_env_overrides(config_dict)

    try:
        return Config.model_validate(config_dict)
    except ValidationError as e:
        raise ConfigurationError(f"Configuration validation failed: {_format_validation_error(e)}") from e
