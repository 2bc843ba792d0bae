"""Context reference tokens embedded in plain-text chat input.

Format::

    @[obsius-context:<base64url(JSON envelope)>]

where the envelope is ``{"version":1,"type":...,"notePath":...,
"noteName":...,"selection"?:{"from":{"line","ch"},"to":{"line","ch"}}}``
and base64url carries no padding. Tokens survive copy/paste through any
text field and parse back to the same normalized reference.
"""

from __future__ import annotations

import base64
import binascii
import re
from typing import Literal

from pydantic import BaseModel, ConfigDict, Field, ValidationError

from obsius.models.context import (
    ChatContextReference,
    ChatContextSelection,
    ContextType,
    EditorPosition,
)

CONTEXT_TOKEN_PREFIX = "@[obsius-context:"
CONTEXT_TOKEN_PATTERN = re.compile(r"@\[obsius-context:([A-Za-z0-9_-]+)\]")
_FULL_TOKEN_PATTERN = re.compile(r"^@\[obsius-context:([A-Za-z0-9_-]+)\]$")


class _Position(BaseModel):
    model_config = ConfigDict(strict=True)

    line: int = Field(ge=0)
    ch: int = Field(ge=0)


class _Selection(BaseModel):
    model_config = ConfigDict(strict=True, populate_by_name=True)

    from_: _Position = Field(alias="from")
    to: _Position


class _Envelope(BaseModel):
    """Serialized form of a ChatContextReference."""

    model_config = ConfigDict(strict=True, populate_by_name=True)

    version: Literal[1]
    type: Literal["selection", "file", "folder"]
    note_path: str = Field(alias="notePath")
    note_name: str = Field(alias="noteName")
    selection: _Selection | None = None


def normalize_chat_context_reference(reference: ChatContextReference) -> ChatContextReference:
    """Order a selection reference so ``from_ <= to``; other references pass through."""
    if reference.type is ContextType.SELECTION and reference.selection is not None:
        normalized = reference.selection.normalized()
        if normalized is not reference.selection:
            return ChatContextReference(
                type=reference.type,
                note_path=reference.note_path,
                note_name=reference.note_name,
                selection=normalized,
            )
    return reference


def _to_base64url(text: str) -> str:
    return base64.urlsafe_b64encode(text.encode("utf-8")).decode("ascii").rstrip("=")


def _from_base64url(payload: str) -> str | None:
    padded = payload + "=" * ((4 - len(payload) % 4) % 4)
    try:
        return base64.urlsafe_b64decode(padded).decode("utf-8")
    except (binascii.Error, UnicodeDecodeError, ValueError):
        return None


def create_chat_context_token(reference: ChatContextReference) -> str:
    """Serialize a reference into an inline token."""
    normalized = normalize_chat_context_reference(reference)
    selection = None
    if normalized.selection is not None:
        selection = _Selection(
            from_=_Position(line=normalized.selection.from_.line, ch=normalized.selection.from_.ch),
            to=_Position(line=normalized.selection.to.line, ch=normalized.selection.to.ch),
        )
    envelope = _Envelope(
        version=1,
        type=normalized.type.value,
        note_path=normalized.note_path,
        note_name=normalized.note_name,
        selection=selection,
    )
    payload = envelope.model_dump_json(by_alias=True, exclude_none=True)
    return f"{CONTEXT_TOKEN_PREFIX}{_to_base64url(payload)}]"


def parse_chat_context_token(token: str) -> ChatContextReference | None:
    """Parse a single token; returns None for anything malformed."""
    match = _FULL_TOKEN_PATTERN.match(token)
    if not match:
        return None

    decoded = _from_base64url(match.group(1))
    if decoded is None:
        return None

    try:
        envelope = _Envelope.model_validate_json(decoded)
    except ValidationError:
        return None

    context_type = ContextType(envelope.type)
    if context_type is ContextType.SELECTION:
        if envelope.selection is None:
            return None
        return normalize_chat_context_reference(
            ChatContextReference(
                type=context_type,
                note_path=envelope.note_path,
                note_name=envelope.note_name,
                selection=ChatContextSelection(
                    from_=EditorPosition(
                        envelope.selection.from_.line, envelope.selection.from_.ch
                    ),
                    to=EditorPosition(envelope.selection.to.line, envelope.selection.to.ch),
                ),
            )
        )

    return ChatContextReference(
        type=context_type,
        note_path=envelope.note_path,
        note_name=envelope.note_name,
    )


def get_chat_context_reference_key(reference: ChatContextReference) -> str:
    """Identity key used to de-duplicate references."""
    if reference.type is ContextType.SELECTION and reference.selection is not None:
        sel = reference.selection
        return (
            f"{reference.type.value}:{reference.note_path}:"
            f"{sel.from_.line}:{sel.from_.ch}-{sel.to.line}:{sel.to.ch}"
        )
    return f"{reference.type.value}:{reference.note_path}"


def extract_chat_context_tokens(
    message: str,
) -> tuple[str, list[ChatContextReference], list[str]]:
    """Pull every valid, distinct context token out of ``message``.

    Returns:
        ``(message_without_tokens, references, tokens)``; the message is
        stripped of all token-shaped substrings (valid or not) and trimmed.
    """
    references: list[ChatContextReference] = []
    tokens: list[str] = []
    seen: set[str] = set()

    for match in CONTEXT_TOKEN_PATTERN.finditer(message):
        token = match.group(0)
        parsed = parse_chat_context_token(token)
        if parsed is None:
            continue
        key = get_chat_context_reference_key(parsed)
        if key in seen:
            continue
        seen.add(key)
        references.append(parsed)
        tokens.append(token)

    stripped = CONTEXT_TOKEN_PATTERN.sub("", message).strip()
    return stripped, references, tokens


def build_message_with_context_tokens(base_message: str, tokens: list[str]) -> str:
    """Join message text and tokens; a trailing space follows the tokens."""
    trimmed = base_message.strip()
    cleaned = [t.strip() for t in tokens if t.strip()]

    if not trimmed and not cleaned:
        return ""
    if not trimmed:
        return " ".join(cleaned) + " "
    if not cleaned:
        return trimmed
    return f"{trimmed} {' '.join(cleaned)} "


def append_chat_context_token(message: str, reference: ChatContextReference) -> str:
    """Add a reference to ``message`` unless an equal one is already there.

    Existing tokens are re-emitted in canonical form after the message text.
    """
    normalized = normalize_chat_context_reference(reference)
    base, existing, _tokens = extract_chat_context_tokens(message)
    rebuilt = [create_chat_context_token(ref) for ref in existing]

    existing_keys = {get_chat_context_reference_key(ref) for ref in existing}
    if get_chat_context_reference_key(normalized) not in existing_keys:
        rebuilt.append(create_chat_context_token(normalized))

    return build_message_with_context_tokens(base, rebuilt)


def _range_label(selection: ChatContextSelection) -> str:
    return (
        f"{selection.from_.line + 1}:{selection.from_.ch + 1}-"
        f"{selection.to.line + 1}:{selection.to.ch + 1}"
    )


def format_chat_context_badge_label(reference: ChatContextReference) -> str:
    if reference.type is ContextType.SELECTION and reference.selection is not None:
        return f"{reference.note_name} {_range_label(reference.selection)}"
    if reference.type is ContextType.FOLDER:
        return f"{reference.note_name}/"
    return reference.note_name


def format_chat_context_tooltip(reference: ChatContextReference) -> str:
    if reference.type is ContextType.SELECTION and reference.selection is not None:
        return f"Selection {_range_label(reference.selection)}\n{reference.note_path}"
    if reference.type is ContextType.FOLDER:
        return f"Folder path\n{reference.note_path}"
    return f"Full file\n{reference.note_path}"
