"""ACP session/update notification payloads.

The ``update`` object of a session/update notification is polymorphic on
its ``sessionUpdate`` field; ``session_update_adapter`` validates a raw
dict into the matching model.
"""

from __future__ import annotations

from typing import Annotated, Any, Literal

from pydantic import Field, TypeAdapter

from obsius.types.common import (
    AcpModel,
    AvailableCommand,
    PermissionOption,
    PlanEntry,
    ToolCallContentItem,
    ToolCallLocation,
    ToolCallStatus,
)


class AgentMessageChunk(AcpModel):
    session_update: Literal["agent_message_chunk"] = Field(alias="sessionUpdate")
    content: dict[str, Any]


class AgentThoughtChunk(AcpModel):
    session_update: Literal["agent_thought_chunk"] = Field(alias="sessionUpdate")
    content: dict[str, Any]


class UserMessageChunk(AcpModel):
    session_update: Literal["user_message_chunk"] = Field(alias="sessionUpdate")
    content: dict[str, Any]


class ToolCallFields(AcpModel):
    """Fields shared by tool_call and tool_call_update."""

    tool_call_id: str = Field(alias="toolCallId")
    title: str | None = None
    kind: str | None = None
    status: ToolCallStatus | None = None
    content: list[ToolCallContentItem] | None = None
    locations: list[ToolCallLocation] | None = None
    raw_input: dict[str, Any] | None = Field(default=None, alias="rawInput")


class ToolCallStart(ToolCallFields):
    session_update: Literal["tool_call"] = Field(alias="sessionUpdate")


class ToolCallProgress(ToolCallFields):
    session_update: Literal["tool_call_update"] = Field(alias="sessionUpdate")


class AgentPlanUpdate(AcpModel):
    session_update: Literal["plan"] = Field(alias="sessionUpdate")
    entries: list[PlanEntry] = Field(default_factory=list)


class AvailableCommandsUpdate(AcpModel):
    session_update: Literal["available_commands_update"] = Field(alias="sessionUpdate")
    available_commands: list[AvailableCommand] = Field(
        default_factory=list, alias="availableCommands"
    )


class CurrentModeUpdate(AcpModel):
    session_update: Literal["current_mode_update"] = Field(alias="sessionUpdate")
    current_mode_id: str = Field(alias="currentModeId")


class UsageUpdate(AcpModel):
    session_update: Literal["usage_update"] = Field(alias="sessionUpdate")
    size: int = 0
    used: int = 0


SessionUpdatePayload = Annotated[
    AgentMessageChunk
    | AgentThoughtChunk
    | UserMessageChunk
    | ToolCallStart
    | ToolCallProgress
    | AgentPlanUpdate
    | AvailableCommandsUpdate
    | CurrentModeUpdate
    | UsageUpdate,
    Field(discriminator="session_update"),
]

session_update_adapter: TypeAdapter[SessionUpdatePayload] = TypeAdapter(SessionUpdatePayload)


class PermissionRequest(AcpModel):
    """session/request_permission parameters."""

    session_id: str = Field(alias="sessionId")
    tool_call: ToolCallFields | None = Field(default=None, alias="toolCall")
    options: list[PermissionOption] = Field(default_factory=list)
