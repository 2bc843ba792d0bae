"""Capability interfaces consumed by the session core.

The core never talks to a process, a file system or a settings file
directly. It goes through these protocols, which the ACP adapter
(obsius.acp), the YAML store (obsius.persistence) and test fakes implement.
"""

from __future__ import annotations

from collections.abc import Callable, Sequence
from dataclasses import dataclass, field
from typing import Any, Protocol

from obsius.config.schema import Settings
from obsius.models.context import NoteMetadata
from obsius.models.errors import ErrorInfo
from obsius.models.messages import ChatMessage
from obsius.models.session_info import SavedSessionInfo
from obsius.models.updates import SessionUpdate
from obsius.types.content import PromptContent
from obsius.types.responses import (
    InitializeResponse,
    ListSessionsResponse,
    PromptResponse,
    SessionResponse,
)

SessionUpdateCallback = Callable[[SessionUpdate], None]
ErrorCallback = Callable[[ErrorInfo], None]
SelectionCallback = Callable[[NoteMetadata | None], None]


@dataclass(frozen=True, slots=True)
class AgentConfig:
    """Everything the transport needs to launch one agent process."""

    id: str
    display_name: str
    command: str
    args: tuple[str, ...] = ()
    env: dict[str, str] = field(default_factory=dict)
    working_directory: str = ""


class AgentClient(Protocol):
    """Transport to one agent process.

    All request methods raise on RPC failure; the exception carries the
    JSON-RPC ``code`` and ``data`` when the agent answered with an error.
    """

    async def initialize(self, config: AgentConfig) -> InitializeResponse:
        """Spawn the agent (replacing any running one) and run the handshake."""
        ...

    async def new_session(self, cwd: str) -> SessionResponse: ...

    async def load_session(self, session_id: str, cwd: str) -> SessionResponse:
        """Load a session; its history is replayed through session updates."""
        ...

    async def resume_session(self, session_id: str, cwd: str) -> SessionResponse: ...

    async def fork_session(self, session_id: str, cwd: str) -> SessionResponse: ...

    async def list_sessions(
        self, cwd: str | None = None, cursor: str | None = None
    ) -> ListSessionsResponse: ...

    async def send_prompt(
        self, session_id: str, content: Sequence[PromptContent]
    ) -> PromptResponse | None: ...

    async def cancel(self, session_id: str) -> None: ...

    async def disconnect(self) -> None: ...

    def is_initialized(self) -> bool: ...

    def get_current_agent_id(self) -> str | None: ...

    async def set_session_mode(self, session_id: str, mode_id: str) -> None: ...

    async def set_session_model(self, session_id: str, model_id: str) -> None: ...

    async def authenticate(self, method_id: str) -> bool:
        """Returns False when the agent rejected the method."""
        ...

    async def respond_to_permission(self, request_id: str, option_id: str) -> None: ...

    def on_session_update(self, callback: SessionUpdateCallback) -> None:
        """Register the single consumer of session updates."""
        ...

    def on_error(self, callback: ErrorCallback) -> None: ...


class VaultAccess(Protocol):
    """Read access to the note vault and the editor state."""

    @property
    def base_path(self) -> str:
        """Absolute path of the vault root on disk."""
        ...

    async def read_note(self, path: str) -> str:
        """Read a note by vault-relative path; raises when unreadable."""
        ...

    async def search_notes(self, query: str) -> list[NoteMetadata]: ...

    def get_active_note(self) -> NoteMetadata | None: ...

    def subscribe_selection_changes(self, callback: SelectionCallback) -> Callable[[], None]:
        """Register for active-note and selection changes.

        Returns:
            A function that unsubscribes.
        """
        ...


class SettingsStore(Protocol):
    """Settings snapshot plus local session persistence."""

    def get_snapshot(self) -> Settings: ...

    async def update_settings(self, partial: dict[str, Any]) -> None:
        """Deep-merge ``partial`` into the settings and persist them."""
        ...

    async def save_session(self, info: SavedSessionInfo) -> None: ...

    async def save_session_messages(
        self, session_id: str, agent_id: str, messages: Sequence[ChatMessage]
    ) -> None: ...

    async def load_session_messages(self, session_id: str) -> list[ChatMessage] | None:
        """Returns None when nothing is cached for ``session_id``."""
        ...

    def get_saved_sessions(
        self, agent_id: str | None = None, cwd: str | None = None
    ) -> list[SavedSessionInfo]:
        """Saved records, most recently updated first."""
        ...

    async def delete_session(self, session_id: str) -> None: ...
