"""ACP response types consumed by the session core."""

from __future__ import annotations

from enum import Enum

from pydantic import Field

from obsius.types.common import (
    AcpModel,
    AgentCapabilities,
    AgentInfo,
    AuthMethod,
    PromptCapabilities,
    SessionModelState,
    SessionModeState,
)


class InitializeResponse(AcpModel):
    """Result of the initialize handshake."""

    protocol_version: int = Field(default=1, alias="protocolVersion")
    agent_capabilities: AgentCapabilities = Field(
        default_factory=AgentCapabilities, alias="agentCapabilities"
    )
    agent_info: AgentInfo | None = Field(default=None, alias="agentInfo")
    auth_methods: list[AuthMethod] = Field(default_factory=list, alias="authMethods")

    @property
    def prompt_capabilities(self) -> PromptCapabilities:
        return self.agent_capabilities.prompt_capabilities or PromptCapabilities()


class SessionResponse(AcpModel):
    """Result of new / load / resume / fork.

    Load and resume responses carry no session id on the wire; the caller
    already knows it.
    """

    session_id: str | None = Field(default=None, alias="sessionId")
    modes: SessionModeState | None = None
    models: SessionModelState | None = None


class SessionInfo(AcpModel):
    """Remote session metadata returned by session/list."""

    session_id: str = Field(alias="sessionId")
    cwd: str = ""
    title: str | None = None
    updated_at: str | None = Field(default=None, alias="updatedAt")


class ListSessionsResponse(AcpModel):
    """One page of session/list results."""

    sessions: list[SessionInfo] = Field(default_factory=list)
    next_cursor: str | None = Field(default=None, alias="nextCursor")


class StopReason(str, Enum):
    """Prompt stop reasons."""

    END_TURN = "end_turn"
    MAX_TOKENS = "max_tokens"
    MAX_TURN_REQUESTS = "max_turn_requests"
    REFUSAL = "refusal"
    CANCELLED = "cancelled"


class PromptResponse(AcpModel):
    """Prompt turn result."""

    stop_reason: StopReason = Field(default=StopReason.END_TURN, alias="stopReason")
