"""YAML-backed SettingsStore.

Settings come from the config cascade (system, user, vault, environment);
updates are merged into the vault layer only, so the other layers are never
rewritten. Sessions live under ``$VAULT/.obsius/sessions/``.
"""

from __future__ import annotations

from collections.abc import Callable, Sequence
from dataclasses import replace
from datetime import datetime
from pathlib import Path
from typing import Any

from obsius.config.loader import load_settings, load_yaml_file
from obsius.config.merge import deep_merge
from obsius.config.paths import get_sessions_dir, get_vault_config_path
from obsius.config.schema import Settings
from obsius.logging import get_logger
from obsius.models.messages import ChatMessage
from obsius.models.session_info import SavedSessionInfo
from obsius.persistence import storage

log = get_logger("storage")

SettingsListener = Callable[[Settings], None]


class YamlSettingsStore:
    """SettingsStore over ``$VAULT/.obsius``.

    Args:
        vault_root: Vault directory.
        sessions_dir: Override for the session directory (tests).
    """

    def __init__(self, vault_root: str, sessions_dir: Path | None = None) -> None:
        self._vault_root = vault_root
        self._sessions_dir = sessions_dir or get_sessions_dir(vault_root)
        self._settings = load_settings(vault_root=vault_root)
        self._listeners: list[SettingsListener] = []

    @property
    def sessions_dir(self) -> Path:
        return self._sessions_dir

    def get_snapshot(self) -> Settings:
        return self._settings

    def subscribe(self, listener: SettingsListener) -> Callable[[], None]:
        """Register for settings changes; returns an unsubscribe function."""
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def reload(self) -> Settings:
        self._settings = load_settings(vault_root=self._vault_root, reload=True)
        for listener in list(self._listeners):
            try:
                listener(self._settings)
            except Exception as e:
                log.warning("Settings listener error: %s", e)
        return self._settings

    async def update_settings(self, partial: dict[str, Any]) -> None:
        path = get_vault_config_path(self._vault_root)
        layer = deep_merge(load_yaml_file(path), partial)
        storage.write_yaml_atomic(path, layer)
        log.debug("Updated vault settings: %s", sorted(partial))
        self.reload()

    async def save_session(self, info: SavedSessionInfo) -> None:
        existing = storage.load_session_record(
            storage.get_record_path(self._sessions_dir, info.session_id)
        )
        if existing is not None:
            # Keep the original creation time and any title set earlier
            info = replace(
                info,
                created_at=existing.created_at,
                title=info.title or existing.title,
            )
        storage.save_session_record(self._sessions_dir, info)

    async def save_session_messages(
        self, session_id: str, agent_id: str, messages: Sequence[ChatMessage]
    ) -> None:
        storage.save_messages(self._sessions_dir, session_id, agent_id, messages)
        record_path = storage.get_record_path(self._sessions_dir, session_id)
        record = storage.load_session_record(record_path)
        if record is not None:
            storage.save_session_record(
                self._sessions_dir, replace(record, updated_at=datetime.now())
            )

    async def load_session_messages(self, session_id: str) -> list[ChatMessage] | None:
        return storage.load_messages(self._sessions_dir, session_id)

    def get_saved_sessions(
        self, agent_id: str | None = None, cwd: str | None = None
    ) -> list[SavedSessionInfo]:
        records = storage.list_session_records(self._sessions_dir)
        if agent_id is not None:
            records = [r for r in records if r.agent_id == agent_id]
        if cwd is not None:
            records = [r for r in records if r.cwd == cwd]
        return records

    async def delete_session(self, session_id: str) -> None:
        storage.delete_session_files(self._sessions_dir, session_id)
