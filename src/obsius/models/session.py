"""ChatSession: the session-of-record snapshot."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum

from obsius.models.errors import ErrorInfo
from obsius.types.common import (
    AgentCapabilities,
    AgentInfo,
    AuthMethod,
    PromptCapabilities,
    SessionModelState,
    SessionModeState,
)


class SessionState(Enum):
    """Connection state of the chat session."""

    DISCONNECTED = "disconnected"
    INITIALIZING = "initializing"
    READY = "ready"
    ERROR = "error"


@dataclass(frozen=True, slots=True)
class SlashCommand:
    """Slash command advertised by the agent."""

    name: str
    description: str = ""
    hint: str | None = None


@dataclass(frozen=True, slots=True)
class ChatSession:
    """Immutable snapshot of the live session.

    Replace it through AgentSessionManager.set_session(updater) only.
    ``state is READY`` implies ``session_id is not None``.

    Attributes:
        available_commands: None until the agent advertises commands.
        modes: None until the agent reports modes for this session.
        models: None until the agent reports models for this session.
        prompt_capabilities: Sticky across sessions with the same agent.
        agent_capabilities: Sticky across sessions with the same agent.
        agent_info: Sticky across sessions with the same agent.
    """

    agent_id: str
    agent_display_name: str
    working_directory: str
    session_id: str | None = None
    state: SessionState = SessionState.DISCONNECTED
    auth_methods: tuple[AuthMethod, ...] = ()
    available_commands: tuple[SlashCommand, ...] | None = None
    modes: SessionModeState | None = None
    models: SessionModelState | None = None
    prompt_capabilities: PromptCapabilities | None = None
    agent_capabilities: AgentCapabilities | None = None
    agent_info: AgentInfo | None = None
    error_info: ErrorInfo | None = None
    created_at: datetime = field(default_factory=datetime.now)
    last_activity_at: datetime = field(default_factory=datetime.now)

    @property
    def is_ready(self) -> bool:
        return self.state is SessionState.READY and self.session_id is not None

    @property
    def supports_embedded_context(self) -> bool:
        return bool(self.prompt_capabilities and self.prompt_capabilities.embedded_context)


def create_initial_session(
    agent_id: str,
    agent_display_name: str,
    working_directory: str,
) -> ChatSession:
    """Build the disconnected snapshot a manager starts from."""
    return ChatSession(
        agent_id=agent_id,
        agent_display_name=agent_display_name,
        working_directory=working_directory,
    )
