"""Domain session updates.

Transport adapters convert protocol notifications into these types; the
chat controller consumes them with an exhaustive ``match``. Every update
carries the session id it belongs to.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any

from obsius.models.messages import PermissionRequest
from obsius.models.session import SlashCommand
from obsius.types.common import (
    PlanEntry,
    ToolCallContentItem,
    ToolCallLocation,
    ToolCallStatus,
)


@dataclass(frozen=True, slots=True)
class AgentMessageChunk:
    session_id: str
    text: str


@dataclass(frozen=True, slots=True)
class AgentThoughtChunk:
    session_id: str
    text: str


@dataclass(frozen=True, slots=True)
class UserMessageChunk:
    """User text replayed during session/load."""

    session_id: str
    text: str


@dataclass(frozen=True, slots=True)
class ToolCallUpdate:
    """New tool call or incremental update of an existing one.

    ``is_start`` is True for the initial ``tool_call`` notification. Fields
    left as None carry no information and must not overwrite known values.
    """

    session_id: str
    tool_call_id: str
    is_start: bool = False
    title: str | None = None
    status: ToolCallStatus | None = None
    kind: str | None = None
    content: tuple[ToolCallContentItem, ...] | None = None
    locations: tuple[ToolCallLocation, ...] | None = None
    raw_input: dict[str, Any] | None = None
    permission_request: PermissionRequest | None = None


@dataclass(frozen=True, slots=True)
class PlanUpdate:
    session_id: str
    entries: tuple[PlanEntry, ...]


@dataclass(frozen=True, slots=True)
class AvailableCommandsUpdate:
    session_id: str
    commands: tuple[SlashCommand, ...]


@dataclass(frozen=True, slots=True)
class CurrentModeUpdate:
    session_id: str
    current_mode_id: str


@dataclass(frozen=True, slots=True)
class UsageUpdate:
    """Context window usage in tokens."""

    session_id: str
    size: int
    used: int


SessionUpdate = (
    AgentMessageChunk
    | AgentThoughtChunk
    | UserMessageChunk
    | ToolCallUpdate
    | PlanUpdate
    | AvailableCommandsUpdate
    | CurrentModeUpdate
    | UsageUpdate
)
