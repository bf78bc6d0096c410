"""
Configuration merging.

Layers are plain dicts merged key by key; list keys prefixed with ``+`` or
``-`` extend or shrink the inherited list instead of replacing it, e.g.
``+ignored_directories: [generated]`` in a project config.
"""

from typing import Any


def deep_merge(base: dict[str, Any], override: dict[str, Any]) -> dict[str, Any]:
    """
    Merge ``override`` into a copy of ``base``.

    Rules:
    - Nested dicts merge recursively
    - ``+key: [...]`` appends items not already present
    - ``-key: [...]`` removes items
    - ``key: null`` drops the key, so the model default applies again
    - Anything else replaces the base value

    Args:
        base: Lower-priority configuration.
        override: Higher-priority configuration.

    Returns:
        New merged dictionary; neither input is modified.

    Examples:
        >>> deep_merge({"ignored_directories": ["dist"]}, {"+ignored_directories": ["out"]})
        {'ignored_directories': ['dist', 'out']}
    """
    result = base.copy()

    for key, value in override.items():
        if key.startswith("+") and isinstance(value, list):
            target = key[1:]
            existing = result.get(target)
            if isinstance(existing, list):
                result[target] = existing + [item for item in value if item not in existing]
            else:
                result[target] = list(value)

        elif key.startswith("-") and isinstance(value, list):
            target = key[1:]
            existing = result.get(target)
            if isinstance(existing, list):
                result[target] = [item for item in existing if item not in value]

        elif value is None:
            result.pop(key, None)

        elif isinstance(value, dict) and isinstance(result.get(key), dict):
            result[key] = deep_merge(result[key], value)

        else:
            result[key] = value

    return result


def set_nested_value(config: dict[str, Any], key_path: str, value: Any) -> dict[str, Any]:
    """
    Set a value by dotted path, creating intermediate dicts.

    Returns:
        The same (modified) dictionary.
    """
    keys = key_path.split(".")
    current = config

    for key in keys[:-1]:
        if not isinstance(current.get(key), dict):
            current[key] = {}
        current = current[key]

    current[keys[-1]] = value
    return config
