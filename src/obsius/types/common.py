"""Common ACP types shared across responses, notifications and messages."""

from __future__ import annotations

from enum import Enum
from typing import Annotated, Any, Literal

from pydantic import BaseModel, ConfigDict, Field


class AcpModel(BaseModel):
    """Base model for ACP types.

    Field names are snake_case with camelCase wire aliases. Instances are
    frozen so they can live inside immutable session snapshots.
    """

    model_config = ConfigDict(
        populate_by_name=True, frozen=True, extra="ignore", protected_namespaces=()
    )

    def to_wire(self) -> dict[str, Any]:
        """Dump to the camelCase wire shape, omitting unset optionals."""
        return self.model_dump(by_alias=True, exclude_none=True, mode="json")


class PromptCapabilities(AcpModel):
    """Prompt content capabilities."""

    image: bool = False
    audio: bool = False
    embedded_context: bool = Field(default=False, alias="embeddedContext")


class McpCapabilities(AcpModel):
    """MCP transport capabilities."""

    http: bool = False
    sse: bool = False


class SessionCapabilities(AcpModel):
    """Optional session operations; presence of a key means supported."""

    list_: dict[str, Any] | None = Field(default=None, alias="list")
    fork: dict[str, Any] | None = None
    resume: dict[str, Any] | None = None


class AgentCapabilities(AcpModel):
    """Agent capabilities advertised during initialization."""

    load_session: bool = Field(default=False, alias="loadSession")
    prompt_capabilities: PromptCapabilities | None = Field(
        default=None, alias="promptCapabilities"
    )
    session_capabilities: SessionCapabilities | None = Field(
        default=None, alias="sessionCapabilities"
    )
    mcp_capabilities: McpCapabilities | None = Field(default=None, alias="mcpCapabilities")


class AgentInfo(AcpModel):
    """Agent identification."""

    name: str
    title: str | None = None
    version: str | None = None


class AuthMethod(AcpModel):
    """Authentication method offered by the agent."""

    id: str
    name: str
    description: str | None = None


class ModelInfo(AcpModel):
    """Model information."""

    model_id: str = Field(alias="modelId")
    name: str
    description: str | None = None


class ModeInfo(AcpModel):
    """Operating mode information."""

    id: str
    name: str
    description: str | None = None


class SessionModeState(AcpModel):
    """Available modes and the current one."""

    available_modes: list[ModeInfo] = Field(default_factory=list, alias="availableModes")
    current_mode_id: str = Field(alias="currentModeId")


class SessionModelState(AcpModel):
    """Available models and the current one."""

    available_models: list[ModelInfo] = Field(default_factory=list, alias="availableModels")
    current_model_id: str = Field(alias="currentModelId")


class ToolCallStatus(str, Enum):
    """Status of a tool call."""

    PENDING = "pending"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"
    FAILED = "failed"


class PermissionOptionKind(str, Enum):
    """Permission option kinds."""

    ALLOW_ONCE = "allow_once"
    ALLOW_ALWAYS = "allow_always"
    REJECT_ONCE = "reject_once"
    REJECT_ALWAYS = "reject_always"


class PermissionOption(AcpModel):
    """Permission option presented to the user."""

    option_id: str = Field(alias="optionId")
    name: str
    kind: PermissionOptionKind | None = None


class PlanEntry(AcpModel):
    """Entry in an execution plan."""

    content: str
    priority: str | None = None
    status: str | None = None


class AvailableCommandInput(AcpModel):
    """Input hint for a slash command."""

    hint: str | None = None


class AvailableCommand(AcpModel):
    """Slash command advertised by the agent."""

    name: str
    description: str = ""
    input: AvailableCommandInput | None = None


class ToolCallLocation(AcpModel):
    """File location touched by a tool call."""

    path: str
    line: int | None = None


class ContentToolCallContent(AcpModel):
    """Regular content produced by a tool call."""

    type: Literal["content"] = "content"
    content: dict[str, Any]


class DiffToolCallContent(AcpModel):
    """File modification shown as a diff."""

    type: Literal["diff"] = "diff"
    path: str
    old_text: str | None = Field(default=None, alias="oldText")
    new_text: str = Field(alias="newText")


class TerminalToolCallContent(AcpModel):
    """Reference to a terminal created by the agent."""

    type: Literal["terminal"] = "terminal"
    terminal_id: str = Field(alias="terminalId")


ToolCallContentItem = Annotated[
    ContentToolCallContent | DiffToolCallContent | TerminalToolCallContent,
    Field(discriminator="type"),
]
