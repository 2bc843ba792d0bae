"""Chat message model.

A ChatMessage holds an ordered tuple of content items. Content variants are
frozen dataclasses; message state is rebuilt, never mutated in place.
"""

from __future__ import annotations

import uuid
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any

from obsius.models.context import AutoMentionContext
from obsius.types.common import (
    PermissionOption,
    PlanEntry,
    ToolCallContentItem,
    ToolCallLocation,
    ToolCallStatus,
)


class MessageRole(str, Enum):
    USER = "user"
    ASSISTANT = "assistant"


@dataclass(frozen=True, slots=True)
class TextContent:
    text: str


@dataclass(frozen=True, slots=True)
class TextWithContextContent:
    """User text sent together with an auto-mentioned note."""

    text: str
    auto_mention_context: AutoMentionContext | None = None


@dataclass(frozen=True, slots=True)
class AgentThoughtContent:
    text: str


@dataclass(frozen=True, slots=True)
class ImageContent:
    data: str
    mime_type: str


@dataclass(frozen=True, slots=True)
class PermissionRequest:
    """Permission prompt attached to a tool call."""

    request_id: str
    options: tuple[PermissionOption, ...] = ()
    selected_option_id: str | None = None
    is_cancelled: bool = False
    is_active: bool = False


@dataclass(frozen=True, slots=True)
class ToolCallContent:
    """A tool call and its latest known state.

    ``None`` means "not reported yet" for every optional field; merges keep
    the previous value for such fields.
    """

    tool_call_id: str
    title: str | None = None
    status: ToolCallStatus | None = None
    kind: str | None = None
    content: tuple[ToolCallContentItem, ...] | None = None
    locations: tuple[ToolCallLocation, ...] | None = None
    raw_input: dict[str, Any] | None = None
    permission_request: PermissionRequest | None = None


@dataclass(frozen=True, slots=True)
class TerminalContent:
    terminal_id: str


@dataclass(frozen=True, slots=True)
class PlanContent:
    entries: tuple[PlanEntry, ...] = ()


@dataclass(frozen=True, slots=True)
class PermissionRequestContent:
    """Standalone permission prompt wrapping the tool call it guards."""

    tool_call: ToolCallContent
    is_cancelled: bool = False


MessageContent = (
    TextContent
    | TextWithContextContent
    | AgentThoughtContent
    | ImageContent
    | ToolCallContent
    | TerminalContent
    | PlanContent
    | PermissionRequestContent
)


def new_message_id() -> str:
    return str(uuid.uuid4())


@dataclass(frozen=True, slots=True)
class ChatMessage:
    """One chat turn fragment from the user or the assistant."""

    role: MessageRole
    content: tuple[MessageContent, ...] = ()
    id: str = field(default_factory=new_message_id)
    timestamp: datetime = field(default_factory=datetime.now)

    def text(self) -> str:
        """Concatenated plain text of the message (thoughts excluded)."""
        return "".join(
            c.text for c in self.content if isinstance(c, (TextContent, TextWithContextContent))
        )
