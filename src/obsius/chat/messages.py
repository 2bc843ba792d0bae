"""Pure merge functions over the chat message list.

Every function takes the current list and returns a new one; messages and
their content tuples are never mutated. The controller applies them through
its snapshot cell so each streamed update builds on the latest state.
"""

from __future__ import annotations

from collections.abc import Sequence
from dataclasses import replace

from obsius.models.messages import (
    AgentThoughtContent,
    ChatMessage,
    MessageContent,
    MessageRole,
    PermissionRequestContent,
    PlanContent,
    TextContent,
    ToolCallContent,
)
from obsius.models.updates import ToolCallUpdate
from obsius.types.common import PlanEntry, ToolCallStatus

Messages = tuple[ChatMessage, ...]

_TEXT_CONTENT_TYPES = (TextContent, AgentThoughtContent)


# -----------------------------------------------------------------------------
# Trailing-message updates
# -----------------------------------------------------------------------------


def _merge_into(message: ChatMessage, item: MessageContent) -> ChatMessage:
    """Fold ``item`` into ``message``.

    Text and thought chunks are appended to the first content of the same
    type; any other content replaces the first item of its type.
    """
    content = list(message.content)
    for index, existing in enumerate(content):
        if type(existing) is not type(item):
            continue
        if isinstance(item, _TEXT_CONTENT_TYPES):
            content[index] = replace(existing, text=existing.text + item.text)
        else:
            content[index] = item
        return replace(message, content=tuple(content))

    return replace(message, content=(*content, item))


def append_to_last_message(
    messages: Sequence[ChatMessage], role: MessageRole, item: MessageContent
) -> Messages:
    """Merge ``item`` into the trailing message when it has ``role``.

    Otherwise a new message with that role is started.
    """
    if messages and messages[-1].role is role:
        return (*messages[:-1], _merge_into(messages[-1], item))
    return (*messages, ChatMessage(role=role, content=(item,)))


def append_agent_text(messages: Sequence[ChatMessage], text: str) -> Messages:
    return append_to_last_message(messages, MessageRole.ASSISTANT, TextContent(text=text))


def append_agent_thought(messages: Sequence[ChatMessage], text: str) -> Messages:
    return append_to_last_message(
        messages, MessageRole.ASSISTANT, AgentThoughtContent(text=text)
    )


def append_user_text(messages: Sequence[ChatMessage], text: str) -> Messages:
    """Rebuild user turns from chunks replayed by session/load."""
    return append_to_last_message(messages, MessageRole.USER, TextContent(text=text))


def apply_plan(messages: Sequence[ChatMessage], entries: Sequence[PlanEntry]) -> Messages:
    """Replace the plan of the trailing assistant message."""
    return append_to_last_message(
        messages, MessageRole.ASSISTANT, PlanContent(entries=tuple(entries))
    )


# -----------------------------------------------------------------------------
# Tool calls
# -----------------------------------------------------------------------------


def tool_call_from_update(update: ToolCallUpdate) -> ToolCallContent:
    """First snapshot of a tool call; status defaults to pending."""
    return ToolCallContent(
        tool_call_id=update.tool_call_id,
        title=update.title,
        status=update.status or ToolCallStatus.PENDING,
        kind=update.kind,
        content=update.content,
        locations=update.locations,
        raw_input=update.raw_input or None,
        permission_request=update.permission_request,
    )


def merge_tool_call(existing: ToolCallContent, update: ToolCallUpdate) -> ToolCallContent:
    """Apply an incremental update to a known tool call.

    Fields the update leaves as None keep their previous value. A provided
    content tuple replaces the old one wholesale; an empty raw_input dict
    carries no information.
    """
    return ToolCallContent(
        tool_call_id=existing.tool_call_id,
        title=update.title if update.title is not None else existing.title,
        status=update.status if update.status is not None else existing.status,
        kind=update.kind if update.kind is not None else existing.kind,
        content=update.content if update.content is not None else existing.content,
        locations=update.locations if update.locations is not None else existing.locations,
        raw_input=update.raw_input if update.raw_input else existing.raw_input,
        permission_request=(
            update.permission_request
            if update.permission_request is not None
            else existing.permission_request
        ),
    )


def _merge_content_item(
    item: MessageContent, update: ToolCallUpdate
) -> MessageContent | None:
    """Merged item when ``item`` is the tool call ``update`` targets, else None."""
    match item:
        case ToolCallContent(tool_call_id=tool_call_id) if tool_call_id == update.tool_call_id:
            return merge_tool_call(item, update)
        case PermissionRequestContent(tool_call=tool_call) if (
            tool_call.tool_call_id == update.tool_call_id
        ):
            return replace(item, tool_call=merge_tool_call(tool_call, update))
    return None


def upsert_tool_call(messages: Sequence[ChatMessage], update: ToolCallUpdate) -> Messages:
    """Merge ``update`` into the tool call with the same id.

    When no message holds that id yet, a new assistant message is appended.
    """
    found = False
    result: list[ChatMessage] = []
    for message in messages:
        changed = False
        content: list[MessageContent] = []
        for item in message.content:
            merged = _merge_content_item(item, update)
            if merged is None:
                content.append(item)
            else:
                content.append(merged)
                changed = found = True
        result.append(replace(message, content=tuple(content)) if changed else message)

    if found:
        return tuple(result)
    return (
        *messages,
        ChatMessage(role=MessageRole.ASSISTANT, content=(tool_call_from_update(update),)),
    )


def find_tool_call(messages: Sequence[ChatMessage], tool_call_id: str) -> ToolCallContent | None:
    for message in messages:
        for item in message.content:
            if isinstance(item, ToolCallContent) and item.tool_call_id == tool_call_id:
                return item
            if (
                isinstance(item, PermissionRequestContent)
                and item.tool_call.tool_call_id == tool_call_id
            ):
                return item.tool_call
    return None
