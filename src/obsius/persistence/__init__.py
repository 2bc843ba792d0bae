"""Local persistence of settings, session records and cached messages."""

from obsius.persistence.settings_store import YamlSettingsStore

__all__ = ["YamlSettingsStore"]
