"""Domain models for the session core."""

from obsius.models.context import (
    AutoMentionContext,
    ChatContextReference,
    ChatContextSelection,
    ContextType,
    EditorPosition,
    NoteMetadata,
)
from obsius.models.errors import (
    AcpError,
    AcpErrorCode,
    AgentNotFoundError,
    AgentRequestError,
    ErrorInfo,
    ObsiusError,
    ProcessError,
    ProcessErrorType,
    SessionNotActiveError,
    SessionRestoreError,
)
from obsius.models.messages import (
    AgentThoughtContent,
    ChatMessage,
    ImageContent,
    MessageContent,
    MessageRole,
    PermissionRequest,
    PermissionRequestContent,
    PlanContent,
    TerminalContent,
    TextContent,
    TextWithContextContent,
    ToolCallContent,
)
from obsius.models.session import (
    ChatSession,
    SessionState,
    SlashCommand,
    create_initial_session,
)
from obsius.models.session_info import SavedSessionInfo

__all__ = [
    "AutoMentionContext",
    "ChatContextReference",
    "ChatContextSelection",
    "ContextType",
    "EditorPosition",
    "NoteMetadata",
    "AcpError",
    "AcpErrorCode",
    "AgentNotFoundError",
    "AgentRequestError",
    "ErrorInfo",
    "ObsiusError",
    "ProcessError",
    "ProcessErrorType",
    "SessionNotActiveError",
    "SessionRestoreError",
    "AgentThoughtContent",
    "ChatMessage",
    "ImageContent",
    "MessageContent",
    "MessageRole",
    "PermissionRequest",
    "PermissionRequestContent",
    "PlanContent",
    "TerminalContent",
    "TextContent",
    "TextWithContextContent",
    "ToolCallContent",
    "ChatSession",
    "SessionState",
    "SlashCommand",
    "create_initial_session",
    "SavedSessionInfo",
]
