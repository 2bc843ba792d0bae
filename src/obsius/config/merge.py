"""Deep merge used for settings cascading and partial settings updates."""

from __future__ import annotations

from typing import Any


def deep_merge(base: dict[str, Any], override: dict[str, Any]) -> dict[str, Any]:
    """Deep merge two dictionaries into a new one.

    Rules:
    - Nested dicts are merged recursively
    - Lists are replaced, never concatenated
    - None in ``override`` leaves the base value in place
    - Anything else in ``override`` wins

    Args:
        base: The base dictionary.
        override: The dictionary with overriding values.

    Returns:
        A new dictionary with merged values.
    """
    result = base.copy()

    for key, value in override.items():
        if value is None:
            continue

        current = result.get(key)
        if isinstance(current, dict) and isinstance(value, dict):
            result[key] = deep_merge(current, value)
        else:
            result[key] = value

    return result


def merge_layers(*layers: dict[str, Any]) -> dict[str, Any]:
    """Merge settings layers in order, later layers overriding earlier ones."""
    result: dict[str, Any] = {}
    for layer in layers:
        if layer:
            result = deep_merge(result, layer)
    return result
