"""Platform-aware settings path resolution.

Handles settings file locations for:
- Windows: %PROGRAMDATA% (system), %APPDATA% (user)
- Unix: /etc/obsius/ (system), ~/.config/obsius/ or ~/.obsius/ (user)
- Vault: $vault_root/.obsius/
"""

from __future__ import annotations

import os
import sys
from pathlib import Path

CONFIG_FILENAME = "config.yaml"
APP_NAME = "obsius"
SHORT_NAME = ".obsius"
SESSIONS_DIRNAME = "sessions"


def get_system_config_path() -> Path | None:
    """Get the system-level settings path, or None if not determinable."""
    if sys.platform == "win32":
        program_data = os.environ.get("PROGRAMDATA")
        if program_data:
            return Path(program_data) / APP_NAME / CONFIG_FILENAME
        return None
    return Path("/etc") / APP_NAME / CONFIG_FILENAME


def get_user_config_path() -> Path | None:
    """Get the user-level settings path.

    Returns:
        Path to the user settings file, or None if not determinable.
        The file may not exist.
    """
    if sys.platform == "win32":
        app_data = os.environ.get("APPDATA")
        if app_data:
            return Path(app_data) / APP_NAME / CONFIG_FILENAME
        return None

    xdg_config = os.environ.get("XDG_CONFIG_HOME")
    if xdg_config:
        return Path(xdg_config) / APP_NAME / CONFIG_FILENAME

    home = Path.home()
    xdg_default = home / ".config"
    if xdg_default.exists():
        return xdg_default / APP_NAME / CONFIG_FILENAME

    return home / SHORT_NAME / CONFIG_FILENAME


def get_vault_dir(vault_root: str) -> Path:
    """Get the per-vault state directory ($vault_root/.obsius)."""
    return Path(vault_root) / SHORT_NAME


def get_vault_config_path(vault_root: str) -> Path:
    """Get the vault-level settings path (may not exist)."""
    return get_vault_dir(vault_root) / CONFIG_FILENAME


def get_sessions_dir(vault_root: str) -> Path:
    """Get the directory holding locally saved sessions."""
    return get_vault_dir(vault_root) / SESSIONS_DIRNAME


def get_config_paths(vault_root: str | None = None) -> list[Path]:
    """Get all settings paths in priority order (lowest to highest).

    Args:
        vault_root: Optional vault directory for vault-level settings.

    Returns:
        List of paths in order: system, user, vault.
    """
    paths: list[Path] = []

    system_path = get_system_config_path()
    if system_path:
        paths.append(system_path)

    user_path = get_user_config_path()
    if user_path:
        paths.append(user_path)

    if vault_root:
        paths.append(get_vault_config_path(vault_root))

    return paths
