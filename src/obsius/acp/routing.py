"""Conversion of session/update payloads into domain updates."""

from __future__ import annotations

from typing import Any

from pydantic import ValidationError

from obsius.logging import get_logger
from obsius.models.session import SlashCommand
from obsius.models.updates import (
    AgentMessageChunk,
    AgentThoughtChunk,
    AvailableCommandsUpdate,
    CurrentModeUpdate,
    PlanUpdate,
    SessionUpdate,
    ToolCallUpdate,
    UsageUpdate,
    UserMessageChunk,
)
from obsius.types import notifications as wire
from obsius.types.common import AvailableCommand

log = get_logger("acp")


def _chunk_text(content: dict[str, Any]) -> str | None:
    """Text of a content block; None for images, resources and the like."""
    if content.get("type") != "text":
        return None
    text = content.get("text")
    return text if isinstance(text, str) else None


def to_slash_command(command: AvailableCommand) -> SlashCommand:
    return SlashCommand(
        name=command.name,
        description=command.description,
        hint=command.input.hint if command.input else None,
    )


def route_session_update(session_id: str, payload: dict[str, Any]) -> SessionUpdate | None:
    """Translate one ``update`` object of a session/update notification.

    Args:
        session_id: Session the notification was sent for.
        payload: The ``update`` object in its camelCase wire form.

    Returns:
        The domain update, or None for payloads the core does not render
        (non-text chunks, unknown or malformed update kinds).
    """
    try:
        update = wire.session_update_adapter.validate_python(payload)
    except ValidationError as e:
        log.debug("Ignoring session update %s: %s", payload.get("sessionUpdate"), e)
        return None

    match update:
        case wire.AgentMessageChunk(content=content):
            text = _chunk_text(content)
            return AgentMessageChunk(session_id, text) if text is not None else None
        case wire.AgentThoughtChunk(content=content):
            text = _chunk_text(content)
            return AgentThoughtChunk(session_id, text) if text is not None else None
        case wire.UserMessageChunk(content=content):
            text = _chunk_text(content)
            return UserMessageChunk(session_id, text) if text is not None else None
        case wire.ToolCallStart() | wire.ToolCallProgress():
            return tool_call_update_from_wire(
                session_id, update, is_start=isinstance(update, wire.ToolCallStart)
            )
        case wire.AgentPlanUpdate(entries=entries):
            return PlanUpdate(session_id, tuple(entries))
        case wire.AvailableCommandsUpdate(available_commands=commands):
            return AvailableCommandsUpdate(
                session_id, tuple(to_slash_command(c) for c in commands)
            )
        case wire.CurrentModeUpdate(current_mode_id=mode_id):
            return CurrentModeUpdate(session_id, mode_id)
        case wire.UsageUpdate(size=size, used=used):
            return UsageUpdate(session_id, size, used)
    return None


def tool_call_update_from_wire(
    session_id: str, fields: wire.ToolCallFields, *, is_start: bool
) -> ToolCallUpdate:
    return ToolCallUpdate(
        session_id=session_id,
        tool_call_id=fields.tool_call_id,
        is_start=is_start,
        title=fields.title,
        status=fields.status,
        kind=fields.kind,
        content=tuple(fields.content) if fields.content is not None else None,
        locations=tuple(fields.locations) if fields.locations is not None else None,
        raw_input=fields.raw_input or None,
    )
