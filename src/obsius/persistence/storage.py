"""Local session persistence.

Handles saving and loading sessions to/from YAML files in:
  $VAULT/.obsius/sessions/<session-id>.yaml           (session record)
  $VAULT/.obsius/sessions/<session-id>.messages.yaml  (cached messages)

Ids with characters outside [A-Za-z0-9_-] are stored under an encoded stem.

Session records contain:
- session_id, agent_id, cwd, title
- created_at / updated_at: ISO timestamps

Message files contain the agent id and the serialized ChatMessage list.
"""

from __future__ import annotations

import base64
import re
from collections.abc import Sequence
from datetime import datetime
from pathlib import Path
from typing import Any

import yaml
from pydantic import TypeAdapter, ValidationError

from obsius.logging import get_logger
from obsius.models.context import AutoMentionContext
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
from obsius.models.session_info import SavedSessionInfo
from obsius.types.common import (
    PermissionOption,
    PlanEntry,
    ToolCallContentItem,
    ToolCallLocation,
    ToolCallStatus,
)

log = get_logger("storage")

RECORD_SUFFIX = ".yaml"
MESSAGES_SUFFIX = ".messages.yaml"
TEMP_SUFFIX = ".tmp"

_PLAIN_FILE_STEM = re.compile(r"[A-Za-z0-9_-]+")
ENCODED_STEM_PREFIX = "b64-"

_tool_content_adapter: TypeAdapter[list[ToolCallContentItem]] = TypeAdapter(
    list[ToolCallContentItem]
)


def _file_stem(session_id: str) -> str:
    """File name stem for a session id; distinct ids never share a stem.

    Ids made of letters, digits, ``_`` and ``-`` are used as they are; any
    other id (or one that looks encoded) becomes base64url behind
    ENCODED_STEM_PREFIX.
    """
    if _PLAIN_FILE_STEM.fullmatch(session_id) and not session_id.startswith(
        ENCODED_STEM_PREFIX
    ):
        return session_id
    encoded = base64.urlsafe_b64encode(session_id.encode("utf-8")).decode("ascii")
    return ENCODED_STEM_PREFIX + encoded.rstrip("=")


def ensure_sessions_dir(sessions_dir: Path) -> Path:
    sessions_dir.mkdir(parents=True, exist_ok=True)
    return sessions_dir


def get_record_path(sessions_dir: Path, session_id: str) -> Path:
    return sessions_dir / f"{_file_stem(session_id)}{RECORD_SUFFIX}"


def get_messages_path(sessions_dir: Path, session_id: str) -> Path:
    return sessions_dir / f"{_file_stem(session_id)}{MESSAGES_SUFFIX}"


def write_yaml_atomic(path: Path, data: dict[str, Any]) -> Path:
    """Write ``data`` as YAML through a temp file.

    Raises:
        RuntimeError: The file could not be written; the temp file is removed.
    """
    path.parent.mkdir(parents=True, exist_ok=True)
    temp_path = path.with_name(path.name + TEMP_SUFFIX)
    try:
        with open(temp_path, "w", encoding="utf-8") as f:
            yaml.safe_dump(data, f, default_flow_style=False, allow_unicode=True, sort_keys=False)

        # On Windows, need to remove existing file before rename
        if path.exists():
            path.unlink()
        temp_path.rename(path)
        return path
    except Exception as e:
        if temp_path.exists():
            temp_path.unlink()
        raise RuntimeError(f"Failed to write {path}: {e}") from e


def _read_yaml(path: Path) -> dict[str, Any] | None:
    if not path.exists():
        return None
    try:
        with open(path, encoding="utf-8") as f:
            data = yaml.safe_load(f)
    except (OSError, yaml.YAMLError) as e:
        log.warning("Failed to read %s: %s", path, e)
        return None
    return data if isinstance(data, dict) else None


# -----------------------------------------------------------------------------
# Session records
# -----------------------------------------------------------------------------


def record_to_dict(info: SavedSessionInfo) -> dict[str, Any]:
    return {
        "session_id": info.session_id,
        "agent_id": info.agent_id,
        "cwd": info.cwd,
        "title": info.title,
        "created_at": info.created_at.isoformat(),
        "updated_at": info.updated_at.isoformat(),
    }


def record_from_dict(data: dict[str, Any]) -> SavedSessionInfo:
    """Raises KeyError or ValueError for malformed records."""
    return SavedSessionInfo(
        session_id=str(data["session_id"]),
        agent_id=str(data.get("agent_id", "")),
        cwd=str(data.get("cwd", "")),
        title=data.get("title"),
        created_at=datetime.fromisoformat(data["created_at"]),
        updated_at=datetime.fromisoformat(data["updated_at"]),
    )


def save_session_record(sessions_dir: Path, info: SavedSessionInfo) -> Path:
    path = write_yaml_atomic(get_record_path(sessions_dir, info.session_id), record_to_dict(info))
    log.debug("Saved session record %s to %s", info.session_id, path)
    return path


def load_session_record(path: Path) -> SavedSessionInfo | None:
    data = _read_yaml(path)
    if data is None:
        return None
    try:
        return record_from_dict(data)
    except (KeyError, TypeError, ValueError) as e:
        log.warning("Invalid session record %s: %s", path, e)
        return None


def list_session_records(sessions_dir: Path) -> list[SavedSessionInfo]:
    """All readable records, sorted by updated_at (newest first)."""
    if not sessions_dir.exists():
        return []

    records: list[SavedSessionInfo] = []
    for path in sessions_dir.glob(f"*{RECORD_SUFFIX}"):
        if path.name.endswith(MESSAGES_SUFFIX):
            continue
        record = load_session_record(path)
        if record is not None:
            records.append(record)

    records.sort(key=lambda r: r.updated_at, reverse=True)
    return records


def delete_session_files(sessions_dir: Path, session_id: str) -> bool:
    """Remove the record and the message cache.

    Returns:
        True if anything was deleted.
    """
    deleted = False
    for path in (
        get_record_path(sessions_dir, session_id),
        get_messages_path(sessions_dir, session_id),
    ):
        if path.exists():
            path.unlink()
            deleted = True
    if deleted:
        log.debug("Deleted session %s", session_id)
    return deleted


# -----------------------------------------------------------------------------
# Messages
# -----------------------------------------------------------------------------


def _permission_to_dict(request: PermissionRequest) -> dict[str, Any]:
    return {
        "request_id": request.request_id,
        "options": [o.to_wire() for o in request.options],
        "selected_option_id": request.selected_option_id,
        "is_cancelled": request.is_cancelled,
        "is_active": request.is_active,
    }


def _permission_from_dict(data: dict[str, Any]) -> PermissionRequest:
    return PermissionRequest(
        request_id=str(data["request_id"]),
        options=tuple(PermissionOption.model_validate(o) for o in data.get("options") or []),
        selected_option_id=data.get("selected_option_id"),
        is_cancelled=bool(data.get("is_cancelled", False)),
        # A restored prompt can no longer be answered
        is_active=False,
    )


def _tool_call_to_dict(tool_call: ToolCallContent) -> dict[str, Any]:
    return {
        "type": "tool_call",
        "tool_call_id": tool_call.tool_call_id,
        "title": tool_call.title,
        "status": tool_call.status.value if tool_call.status else None,
        "kind": tool_call.kind,
        "content": (
            [item.to_wire() for item in tool_call.content]
            if tool_call.content is not None
            else None
        ),
        "locations": (
            [loc.to_wire() for loc in tool_call.locations]
            if tool_call.locations is not None
            else None
        ),
        "raw_input": tool_call.raw_input,
        "permission_request": (
            _permission_to_dict(tool_call.permission_request)
            if tool_call.permission_request
            else None
        ),
    }


def _tool_call_from_dict(data: dict[str, Any]) -> ToolCallContent:
    content = data.get("content")
    locations = data.get("locations")
    permission = data.get("permission_request")
    return ToolCallContent(
        tool_call_id=str(data["tool_call_id"]),
        title=data.get("title"),
        status=ToolCallStatus(data["status"]) if data.get("status") else None,
        kind=data.get("kind"),
        content=(
            tuple(_tool_content_adapter.validate_python(content)) if content is not None else None
        ),
        locations=(
            tuple(ToolCallLocation.model_validate(loc) for loc in locations)
            if locations is not None
            else None
        ),
        raw_input=data.get("raw_input"),
        permission_request=_permission_from_dict(permission) if permission else None,
    )


def content_to_dict(content: MessageContent) -> dict[str, Any]:
    match content:
        case TextContent(text=text):
            return {"type": "text", "text": text}
        case TextWithContextContent(text=text, auto_mention_context=context):
            data: dict[str, Any] = {"type": "text_with_context", "text": text}
            if context is not None:
                data["auto_mention_context"] = {
                    "note_name": context.note_name,
                    "note_path": context.note_path,
                    "from_line": context.from_line,
                    "to_line": context.to_line,
                }
            return data
        case AgentThoughtContent(text=text):
            return {"type": "agent_thought", "text": text}
        case ImageContent(data=image_data, mime_type=mime_type):
            return {"type": "image", "data": image_data, "mime_type": mime_type}
        case ToolCallContent():
            return _tool_call_to_dict(content)
        case TerminalContent(terminal_id=terminal_id):
            return {"type": "terminal", "terminal_id": terminal_id}
        case PlanContent(entries=entries):
            return {"type": "plan", "entries": [e.to_wire() for e in entries]}
        case PermissionRequestContent(tool_call=tool_call, is_cancelled=is_cancelled):
            return {
                "type": "permission_request",
                "tool_call": _tool_call_to_dict(tool_call),
                "is_cancelled": is_cancelled,
            }
    raise TypeError(f"Unsupported message content: {type(content).__name__}")


def content_from_dict(data: dict[str, Any]) -> MessageContent | None:
    """Rebuild one content item; returns None for unknown types."""
    match data.get("type"):
        case "text":
            return TextContent(text=str(data.get("text", "")))
        case "text_with_context":
            context = data.get("auto_mention_context")
            return TextWithContextContent(
                text=str(data.get("text", "")),
                auto_mention_context=AutoMentionContext(**context) if context else None,
            )
        case "agent_thought":
            return AgentThoughtContent(text=str(data.get("text", "")))
        case "image":
            return ImageContent(data=str(data["data"]), mime_type=str(data["mime_type"]))
        case "tool_call":
            return _tool_call_from_dict(data)
        case "terminal":
            return TerminalContent(terminal_id=str(data["terminal_id"]))
        case "plan":
            return PlanContent(
                entries=tuple(PlanEntry.model_validate(e) for e in data.get("entries") or [])
            )
        case "permission_request":
            return PermissionRequestContent(
                tool_call=_tool_call_from_dict(data["tool_call"]),
                is_cancelled=bool(data.get("is_cancelled", False)),
            )
    log.warning("Skipping unknown message content type: %s", data.get("type"))
    return None


def message_to_dict(message: ChatMessage) -> dict[str, Any]:
    return {
        "id": message.id,
        "role": message.role.value,
        "timestamp": message.timestamp.isoformat(),
        "content": [content_to_dict(c) for c in message.content],
    }


def message_from_dict(data: dict[str, Any]) -> ChatMessage:
    """Raises KeyError, ValueError or ValidationError for malformed data."""
    content = [content_from_dict(c) for c in data.get("content") or []]
    return ChatMessage(
        id=str(data["id"]),
        role=MessageRole(data["role"]),
        timestamp=datetime.fromisoformat(data["timestamp"]),
        content=tuple(c for c in content if c is not None),
    )


def save_messages(
    sessions_dir: Path,
    session_id: str,
    agent_id: str,
    messages: Sequence[ChatMessage],
) -> Path:
    data = {
        "session_id": session_id,
        "agent_id": agent_id,
        "saved_at": datetime.now().isoformat(),
        "messages": [message_to_dict(m) for m in messages],
    }
    path = write_yaml_atomic(get_messages_path(sessions_dir, session_id), data)
    log.debug("Saved %d messages for session %s", len(messages), session_id)
    return path


def load_messages(sessions_dir: Path, session_id: str) -> list[ChatMessage] | None:
    """Cached messages of a session, or None when nothing usable is stored."""
    data = _read_yaml(get_messages_path(sessions_dir, session_id))
    if data is None:
        return None
    try:
        return [message_from_dict(m) for m in data.get("messages") or []]
    except (KeyError, TypeError, ValueError, ValidationError) as e:
        log.warning("Invalid message cache for session %s: %s", session_id, e)
        return None
