"""Pydantic models of the ACP payloads the session core consumes."""

from obsius.types.common import (
    AcpModel,
    AgentCapabilities,
    AgentInfo,
    AuthMethod,
    AvailableCommand,
    AvailableCommandInput,
    ContentToolCallContent,
    DiffToolCallContent,
    McpCapabilities,
    ModeInfo,
    ModelInfo,
    PermissionOption,
    PermissionOptionKind,
    PlanEntry,
    PromptCapabilities,
    SessionCapabilities,
    SessionModelState,
    SessionModeState,
    TerminalToolCallContent,
    ToolCallContentItem,
    ToolCallLocation,
    ToolCallStatus,
)
from obsius.types.content import (
    ImagePromptContent,
    PromptContent,
    ResourceAnnotations,
    ResourcePromptContent,
    TextPromptContent,
    TextResource,
    prompt_content_adapter,
)
from obsius.types.responses import (
    InitializeResponse,
    ListSessionsResponse,
    PromptResponse,
    SessionInfo,
    SessionResponse,
    StopReason,
)

__all__ = [
    "AcpModel",
    "AgentCapabilities",
    "AgentInfo",
    "AuthMethod",
    "AvailableCommand",
    "AvailableCommandInput",
    "ContentToolCallContent",
    "DiffToolCallContent",
    "McpCapabilities",
    "ModeInfo",
    "ModelInfo",
    "PermissionOption",
    "PermissionOptionKind",
    "PlanEntry",
    "PromptCapabilities",
    "SessionCapabilities",
    "SessionModelState",
    "SessionModeState",
    "TerminalToolCallContent",
    "ToolCallContentItem",
    "ToolCallLocation",
    "ToolCallStatus",
    "ImagePromptContent",
    "PromptContent",
    "ResourceAnnotations",
    "ResourcePromptContent",
    "TextPromptContent",
    "TextResource",
    "prompt_content_adapter",
    "InitializeResponse",
    "ListSessionsResponse",
    "PromptResponse",
    "SessionInfo",
    "SessionResponse",
    "StopReason",
]
