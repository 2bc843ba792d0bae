"""Settings file loading and caching.

Handles:
- YAML file parsing
- Environment variable overrides
- Settings caching with reload support
- Conversion between merged dicts and the typed Settings dataclass
"""

from __future__ import annotations

import logging
import os
from collections.abc import Callable
from dataclasses import asdict
from pathlib import Path
from typing import Any

import yaml

from obsius.config.merge import merge_layers
from obsius.config.paths import get_config_paths
from obsius.config.schema import (
    AgentSettings,
    DisplaySettings,
    LoggingConfig,
    Settings,
    default_claude,
    default_codex,
    default_gemini,
)

# Module logger (may not be configured yet at import time)
_log = logging.getLogger("obsius.config")

_cached_settings: Settings | None = None

_reload_callbacks: list[Callable[[Settings], None]] = []

_KNOWN_KEYS = {
    "claude",
    "codex",
    "gemini",
    "custom_agents",
    "default_agent_id",
    "auto_allow_permissions",
    "auto_mention_active_note",
    "windows_wsl_mode",
    "display",
    "last_used_models",
    "logging",
}


def load_yaml_file(path: Path) -> dict[str, Any]:
    """Load a YAML file, returning an empty dict if missing or invalid.

    Args:
        path: Path to the YAML file.

    Returns:
        Parsed YAML as dict, or empty dict on error.
    """
    if not path.exists():
        return {}

    try:
        with open(path, encoding="utf-8") as f:
            data = yaml.safe_load(f)
            return data if isinstance(data, dict) else {}
    except yaml.YAMLError as e:
        _log.warning("Invalid YAML in %s: %s", path, e)
        return {}
    except PermissionError:
        _log.debug("Permission denied reading %s", path)
        return {}
    except OSError as e:
        _log.warning("Error reading %s: %s", path, e)
        return {}


def env_overrides() -> dict[str, Any]:
    """Build a settings layer from environment variables.

    API keys are not read here; agent configs pull them with fetch_secret().
    """
    overrides: dict[str, Any] = {}

    log_path = os.environ.get("OBSIUS_LOG")
    if log_path:
        overrides.setdefault("logging", {})["file"] = log_path

    default_agent = os.environ.get("OBSIUS_DEFAULT_AGENT")
    if default_agent:
        overrides["default_agent_id"] = default_agent

    return overrides


def _agent_from_dict(data: Any, fallback: AgentSettings) -> AgentSettings:
    if not isinstance(data, dict):
        return fallback
    return AgentSettings(
        id=data.get("id") or fallback.id,
        display_name=data.get("display_name") or fallback.display_name,
        command=data.get("command", fallback.command) or "",
        args=[str(a) for a in data.get("args", fallback.args) or []],
        env={str(k): str(v) for k, v in (data.get("env") or {}).items()},
        api_key=data.get("api_key", fallback.api_key),
    )


def dict_to_settings(data: dict[str, Any]) -> Settings:
    """Convert a merged dict to the typed Settings dataclass.

    Args:
        data: Merged settings dictionary.

    Returns:
        Typed Settings object.
    """
    custom_agents = [
        _agent_from_dict(a, AgentSettings(id=a["id"], display_name=a["id"]))
        for a in data.get("custom_agents", [])
        if isinstance(a, dict) and a.get("id")
    ]

    display_data = data.get("display", {})
    display = DisplaySettings(
        max_note_length=int(display_data.get("max_note_length", DisplaySettings.max_note_length)),
        max_selection_length=int(
            display_data.get("max_selection_length", DisplaySettings.max_selection_length)
        ),
    )

    log_data = data.get("logging", {})
    logging_config = LoggingConfig(
        level=log_data.get("level"),
        verbose=log_data.get("verbose"),
        file=log_data.get("file"),
        areas={str(k): str(v) for k, v in (log_data.get("areas") or {}).items()},
    )

    last_used = data.get("last_used_models", {})
    last_used_models = (
        {str(k): str(v) for k, v in last_used.items() if v} if isinstance(last_used, dict) else {}
    )

    extra = {k: v for k, v in data.items() if k not in _KNOWN_KEYS}

    return Settings(
        claude=_agent_from_dict(data.get("claude"), default_claude()),
        codex=_agent_from_dict(data.get("codex"), default_codex()),
        gemini=_agent_from_dict(data.get("gemini"), default_gemini()),
        custom_agents=custom_agents,
        default_agent_id=data.get("default_agent_id") or Settings.default_agent_id,
        auto_allow_permissions=bool(data.get("auto_allow_permissions", False)),
        auto_mention_active_note=bool(data.get("auto_mention_active_note", True)),
        windows_wsl_mode=bool(data.get("windows_wsl_mode", False)),
        display=display,
        last_used_models=last_used_models,
        logging=logging_config,
        extra=extra,
    )


def settings_to_dict(settings: Settings) -> dict[str, Any]:
    """Convert Settings back to a plain dict suitable for YAML output.

    ``extra`` is flattened back to the top level; API keys are never written.
    """
    data = asdict(settings)
    extra = data.pop("extra", {})
    for key in ("claude", "codex", "gemini"):
        data[key].pop("api_key", None)
    for agent in data["custom_agents"]:
        agent.pop("api_key", None)
    data.update(extra)
    return data


def load_settings(vault_root: str | None = None, reload: bool = False) -> Settings:
    """Load and merge settings from all sources.

    Priority order (highest to lowest):
    1. Environment variables
    2. Vault settings ($vault_root/.obsius/config.yaml)
    3. User settings (~/.config/obsius/ or %APPDATA%)
    4. System settings (/etc/obsius/ or %PROGRAMDATA%)

    Args:
        vault_root: Vault directory for vault-level settings.
        reload: Force reload even if cached.

    Returns:
        Merged Settings object.
    """
    global _cached_settings

    if _cached_settings is not None and not reload and vault_root is None:
        return _cached_settings

    layers: list[dict[str, Any]] = []
    for path in get_config_paths(vault_root):
        layer = load_yaml_file(path)
        if layer:
            _log.debug("Loaded settings from %s", path)
            layers.append(layer)

    env_layer = env_overrides()
    if env_layer:
        layers.append(env_layer)

    settings = dict_to_settings(merge_layers(*layers))

    # Cache only global settings (no vault_root)
    if vault_root is None:
        _cached_settings = settings

    return settings


def get_settings() -> Settings:
    """Get the cached global settings, loading them on first use."""
    if _cached_settings is None:
        return load_settings()
    return _cached_settings


def reset_settings() -> None:
    """Drop the cached settings (tests, forced reload)."""
    global _cached_settings
    _cached_settings = None


def reload_settings(vault_root: str | None = None) -> Settings:
    """Reload settings from files and notify callbacks.

    Args:
        vault_root: Optional vault directory.

    Returns:
        The newly loaded Settings.
    """
    settings = load_settings(vault_root=vault_root, reload=True)

    for callback in _reload_callbacks:
        try:
            callback(settings)
        except Exception as e:
            _log.warning("Settings reload callback error: %s", e)

    return settings


def on_settings_reload(callback: Callable[[Settings], None]) -> Callable[[], None]:
    """Register a callback invoked with the new Settings after a reload.

    Returns:
        A function that unregisters the callback.
    """
    _reload_callbacks.append(callback)

    def unregister() -> None:
        if callback in _reload_callbacks:
            _reload_callbacks.remove(callback)

    return unregister
