"""Settings management for Obsius.

Provides hierarchical YAML-based settings with:
- System-level settings (/etc/obsius/ or %PROGRAMDATA%)
- User-level settings (~/.config/obsius/ or %APPDATA%)
- Vault-level settings ($vault_root/.obsius/)
- Environment variable overrides (highest priority)

Example usage:
    from obsius.config import load_settings

    settings = load_settings(vault_root="/path/to/vault")
    print(settings.default_agent_id)
"""

from obsius.config.loader import (
    dict_to_settings,
    get_settings,
    load_settings,
    on_settings_reload,
    reload_settings,
    reset_settings,
    settings_to_dict,
)
from obsius.config.paths import (
    get_config_paths,
    get_sessions_dir,
    get_user_config_path,
    get_vault_config_path,
)
from obsius.config.schema import (
    AgentSettings,
    DisplaySettings,
    LoggingConfig,
    Settings,
)
from obsius.config.secrets import clear_secret_cache, fetch_secret

__all__ = [
    "Settings",
    "AgentSettings",
    "DisplaySettings",
    "LoggingConfig",
    "load_settings",
    "get_settings",
    "reload_settings",
    "reset_settings",
    "on_settings_reload",
    "dict_to_settings",
    "settings_to_dict",
    "fetch_secret",
    "clear_secret_cache",
    "get_config_paths",
    "get_user_config_path",
    "get_vault_config_path",
    "get_sessions_dir",
]
