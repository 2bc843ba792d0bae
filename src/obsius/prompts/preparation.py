"""Prompt preparation: raw user input to display content and agent content.

The typed text and images are what the chat shows (display content). What
goes to the agent additionally carries every attached context: mentioned
notes, explicit context references and the auto-mentioned active note.
Two delivery modes exist:

- Embedded context: each attachment becomes a ``resource`` block with a
  ``file://`` URI, placed before the final text block.
- Text context: attachments are inlined as tagged text blocks in front of
  the message, for agents without embedded-context support.

Attachments that cannot be read degrade to placeholders; oversized ones are
cut with an explicit notice.
"""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from datetime import datetime, timezone

from obsius.config.schema import DEFAULT_MAX_NOTE_LENGTH, DEFAULT_MAX_SELECTION_LENGTH
from obsius.logging import get_logger
from obsius.models.context import (
    AutoMentionContext,
    ChatContextReference,
    ChatContextSelection,
    ContextType,
    NoteMetadata,
)
from obsius.ports import VaultAccess
from obsius.prompts.paths import build_file_uri, resolve_absolute_path
from obsius.tokens.context import extract_chat_context_tokens
from obsius.types.content import (
    ImagePromptContent,
    PromptContent,
    ResourceAnnotations,
    ResourcePromptContent,
    TextPromptContent,
    TextResource,
)

log = get_logger("prompt")

MENTION_PATTERN = re.compile(r"@\[\[([^\]]+)\]\]")

MARKDOWN_MIME_TYPE = "text/markdown"
MENTION_PRIORITY = 1.0
SELECTION_PRIORITY = 1.0
FULL_FILE_PRIORITY = 0.95
AUTO_MENTION_PRIORITY = 0.8


@dataclass(frozen=True, slots=True)
class PreparePromptInput:
    """Everything needed to build one prompt.

    Attributes:
        message: Raw input text, possibly holding context tokens and
            ``@[[note]]`` mentions.
        vault_base_path: Absolute vault root; note paths are joined to it.
        active_note: Note to auto-mention, with its selection if any.
        supports_embedded_context: Selects resource blocks over inline text.
    """

    message: str
    vault_base_path: str = ""
    images: tuple[ImagePromptContent, ...] = ()
    active_note: NoteMetadata | None = None
    is_auto_mention_disabled: bool = False
    convert_to_wsl: bool = False
    supports_embedded_context: bool = False
    max_note_length: int = DEFAULT_MAX_NOTE_LENGTH
    max_selection_length: int = DEFAULT_MAX_SELECTION_LENGTH


@dataclass(frozen=True, slots=True)
class PreparePromptResult:
    display_content: list[PromptContent] = field(default_factory=list)
    agent_content: list[PromptContent] = field(default_factory=list)
    auto_mention_context: AutoMentionContext | None = None


async def prepare_prompt(params: PreparePromptInput, vault: VaultAccess) -> PreparePromptResult:
    """Build display and agent content for one user message."""
    user_message, references, _tokens = extract_chat_context_tokens(params.message)
    mentioned = await resolve_mentioned_notes(user_message, vault)

    if params.supports_embedded_context:
        return await _prepare_with_embedded_context(
            params, vault, mentioned, references, user_message
        )
    return await _prepare_with_text_context(params, vault, mentioned, references, user_message)


# -----------------------------------------------------------------------------
# Mentions
# -----------------------------------------------------------------------------


def extract_mention_names(message: str) -> list[str]:
    """Distinct ``@[[name]]`` targets in order of first appearance."""
    names: list[str] = []
    for match in MENTION_PATTERN.finditer(message):
        name = match.group(1).split("|", 1)[0].strip()
        if name and name not in names:
            names.append(name)
    return names


def _matches_note(note: NoteMetadata, name: str) -> bool:
    if note.name == name or note.path == name:
        return True
    stem = note.path.rsplit(".", 1)[0] if "." in note.path else note.path
    return stem == name


async def resolve_mentioned_notes(message: str, vault: VaultAccess) -> list[NoteMetadata]:
    """Look up each mentioned note in the vault; unknown names are dropped."""
    notes: list[NoteMetadata] = []
    seen: set[str] = set()
    for name in extract_mention_names(message):
        candidates = await vault.search_notes(name)
        note = next((n for n in candidates if _matches_note(n, name)), None)
        if note is None:
            log.debug("Mentioned note not found: %s", name)
            continue
        if note.path in seen:
            continue
        seen.add(note.path)
        notes.append(note)
    return notes


# -----------------------------------------------------------------------------
# Text helpers
# -----------------------------------------------------------------------------


def extract_selection_text(content: str, selection: ChatContextSelection) -> str:
    """Cut the character range of ``selection`` out of ``content``.

    The range is normalized first and clipped to the existing lines and
    line lengths.
    """
    normalized = selection.normalized()
    lines = content.split("\n")

    from_line = max(0, min(normalized.from_.line, len(lines) - 1))
    to_line = max(0, min(normalized.to.line, len(lines) - 1))
    from_ch = max(0, min(normalized.from_.ch, len(lines[from_line])))
    to_ch = max(0, min(normalized.to.ch, len(lines[to_line])))

    if from_line == to_line:
        return lines[from_line][from_ch:to_ch]

    parts = [lines[from_line][from_ch:]]
    parts.extend(lines[from_line + 1 : to_line])
    parts.append(lines[to_line][:to_ch])
    return "\n".join(parts)


def truncate_for_context(text: str, max_length: int, label: str) -> tuple[str, str]:
    """Returns ``(text, truncation_note)``; the note is empty when nothing was cut."""
    if len(text) <= max_length:
        return text, ""
    note = (
        f"\n\n[Note: {label} was truncated. Original length: {len(text)} characters, "
        f"showing first {max_length} characters]"
    )
    return text[:max_length], note


def _truncate_inline(text: str, max_length: int) -> str:
    if len(text) <= max_length:
        return text
    return text[:max_length] + f"\n\n[Note: Truncated from {len(text)} to {max_length} characters]"


def _iso_timestamp(seconds: float) -> str:
    stamp = datetime.fromtimestamp(seconds, tz=timezone.utc)
    return stamp.isoformat(timespec="milliseconds").replace("+00:00", "Z")


def _range_label(selection: ChatContextSelection) -> str:
    return (
        f"{selection.from_.line + 1}:{selection.from_.ch + 1}-"
        f"{selection.to.line + 1}:{selection.to.ch + 1}"
    )


def _resource(
    uri: str, text: str, priority: float, last_modified: str | None = None
) -> ResourcePromptContent:
    return ResourcePromptContent(
        resource=TextResource(uri=uri, mime_type=MARKDOWN_MIME_TYPE, text=text),
        annotations=ResourceAnnotations(
            audience=["assistant"], priority=priority, last_modified=last_modified
        ),
    )


def _auto_mention(params: PreparePromptInput) -> tuple[str, AutoMentionContext | None]:
    """Prefix for the message text plus the context recorded on the user message."""
    note = params.active_note
    if note is None or params.is_auto_mention_disabled:
        return "", None

    if note.selection is not None:
        from_line = note.selection.from_.line + 1
        to_line = note.selection.to.line + 1
        prefix = f"@[[{note.name}]]:{from_line}-{to_line}\n"
        context = AutoMentionContext(
            note_name=note.name, note_path=note.path, from_line=from_line, to_line=to_line
        )
        return prefix, context

    return f"@[[{note.name}]]\n", AutoMentionContext(note_name=note.name, note_path=note.path)


def _display_content(params: PreparePromptInput, user_message: str) -> list[PromptContent]:
    content: list[PromptContent] = []
    if user_message:
        content.append(TextPromptContent(text=user_message))
    content.extend(params.images)
    return content


async def _read_selected_lines(
    vault: VaultAccess, note: NoteMetadata, selection: ChatContextSelection
) -> str:
    content = await vault.read_note(note.path)
    lines = content.split("\n")
    return "\n".join(lines[selection.from_.line : selection.to.line + 1])


# -----------------------------------------------------------------------------
# Embedded-context mode
# -----------------------------------------------------------------------------


async def _prepare_with_embedded_context(
    params: PreparePromptInput,
    vault: VaultAccess,
    mentioned: list[NoteMetadata],
    references: list[ChatContextReference],
    user_message: str,
) -> PreparePromptResult:
    agent_content: list[PromptContent] = []

    for note in mentioned:
        absolute_path = resolve_absolute_path(
            params.vault_base_path, note.path, params.convert_to_wsl
        )
        uri = build_file_uri(absolute_path)
        try:
            content = await vault.read_note(note.path)
        except Exception as e:
            log.warning("Failed to read note %s: %s", note.path, e)
            agent_content.append(
                TextPromptContent(text=f"The user mentioned {uri}, but the note could not be read.")
            )
            continue
        agent_content.append(
            _resource(
                uri,
                _truncate_inline(content, params.max_note_length),
                MENTION_PRIORITY,
                _iso_timestamp(note.modified),
            )
        )

    embedded, _text = await _build_reference_context(params, vault, references)
    agent_content.extend(embedded)

    prefix, auto_mention_context = _auto_mention(params)
    if params.active_note is not None and auto_mention_context is not None:
        agent_content.extend(await _build_auto_mention_resource(params, vault, params.active_note))

    if user_message or prefix:
        agent_content.append(TextPromptContent(text=prefix + user_message))
    agent_content.extend(params.images)

    return PreparePromptResult(
        display_content=_display_content(params, user_message),
        agent_content=agent_content,
        auto_mention_context=auto_mention_context,
    )


async def _build_auto_mention_resource(
    params: PreparePromptInput, vault: VaultAccess, note: NoteMetadata
) -> list[PromptContent]:
    absolute_path = resolve_absolute_path(params.vault_base_path, note.path, params.convert_to_wsl)
    uri = build_file_uri(absolute_path)

    if note.selection is None:
        return [
            TextPromptContent(
                text=(
                    f"The user has opened the note {uri} in Obsidian. This may or may not be "
                    "related to the current conversation. If it seems relevant, consider "
                    "using the Read tool to examine its content."
                )
            )
        ]

    from_line = note.selection.from_.line + 1
    to_line = note.selection.to.line + 1
    try:
        selected = await _read_selected_lines(vault, note, note.selection)
    except Exception as e:
        log.warning("Failed to read selection from %s: %s", note.path, e)
        return [
            TextPromptContent(
                text=(
                    f"The user has selected lines {from_line}-{to_line} in {uri}. If relevant, "
                    "use the Read tool to examine the specific lines."
                )
            )
        ]

    return [
        _resource(
            uri,
            _truncate_inline(selected, params.max_selection_length),
            AUTO_MENTION_PRIORITY,
            _iso_timestamp(note.modified),
        ),
        TextPromptContent(
            text=(
                f"The user has selected lines {from_line}-{to_line} in the above note. "
                "This is what they are currently focusing on."
            )
        ),
    ]


# -----------------------------------------------------------------------------
# Explicit context references (both modes)
# -----------------------------------------------------------------------------


async def _build_reference_context(
    params: PreparePromptInput,
    vault: VaultAccess,
    references: list[ChatContextReference],
) -> tuple[list[PromptContent], list[str]]:
    """Returns ``(embedded_blocks, text_blocks)`` for the explicit references."""
    embedded: list[PromptContent] = []
    text: list[str] = []

    for reference in references:
        absolute_path = resolve_absolute_path(
            params.vault_base_path, reference.note_path, params.convert_to_wsl
        )
        uri = build_file_uri(absolute_path)

        if reference.type is ContextType.FOLDER:
            embedded.append(
                TextPromptContent(
                    text=f"The user explicitly attached the folder path {absolute_path} as context."
                )
            )
            text.append(
                f'<obsidian_explicit_context type="folder-path" ref="{absolute_path}">'
                "Folder path only (no file content attached).</obsidian_explicit_context>"
            )
            continue

        selection = reference.selection if reference.type is ContextType.SELECTION else None

        try:
            content = await vault.read_note(reference.note_path)
        except Exception as e:
            log.warning("Failed to read explicit context from %s: %s", reference.note_path, e)
            if selection is not None:
                label = _range_label(selection)
                embedded.append(
                    TextPromptContent(
                        text=(
                            f"The user attached a selection from {uri} at {label}, "
                            "but the file could not be read."
                        )
                    )
                )
                text.append(
                    f'<obsidian_explicit_context type="selection" ref="{absolute_path}" '
                    f'range="{label}">Selection could not be read.</obsidian_explicit_context>'
                )
            else:
                embedded.append(
                    TextPromptContent(
                        text=(
                            f"The user attached {uri} as full-file context, "
                            "but the file could not be read."
                        )
                    )
                )
                text.append(
                    f'<obsidian_explicit_context type="full-file" ref="{absolute_path}">'
                    "File could not be read.</obsidian_explicit_context>"
                )
            continue

        if selection is not None:
            label = _range_label(selection)
            body, note = truncate_for_context(
                extract_selection_text(content, selection),
                params.max_selection_length,
                "The selection",
            )
            embedded.append(_resource(uri, body + note, SELECTION_PRIORITY))
            embedded.append(
                TextPromptContent(
                    text=f"The user explicitly attached a text selection from {uri} at {label}."
                )
            )
            text.append(
                f'<obsidian_explicit_context type="selection" ref="{absolute_path}" '
                f'range="{label}">\n'
                f"{body}{note}\n"
                "</obsidian_explicit_context>"
            )
            continue

        body, note = truncate_for_context(content, params.max_note_length, "The file context")
        embedded.append(_resource(uri, body + note, FULL_FILE_PRIORITY))
        embedded.append(
            TextPromptContent(text=f"The user explicitly attached the full file {uri} as context.")
        )
        text.append(
            f'<obsidian_explicit_context type="full-file" ref="{absolute_path}">\n'
            f"{body}{note}\n"
            "</obsidian_explicit_context>"
        )

    return embedded, text


# -----------------------------------------------------------------------------
# Text-context mode
# -----------------------------------------------------------------------------


async def _prepare_with_text_context(
    params: PreparePromptInput,
    vault: VaultAccess,
    mentioned: list[NoteMetadata],
    references: list[ChatContextReference],
    user_message: str,
) -> PreparePromptResult:
    blocks: list[str] = []

    for mentioned_note in mentioned:
        absolute_path = resolve_absolute_path(
            params.vault_base_path, mentioned_note.path, params.convert_to_wsl
        )
        try:
            content = await vault.read_note(mentioned_note.path)
        except Exception as e:
            log.warning("Failed to read note %s: %s", mentioned_note.path, e)
            blocks.append(
                f'<obsidian_mentioned_note ref="{absolute_path}">Note could not be read.'
                "</obsidian_mentioned_note>"
            )
            continue
        body, note = truncate_for_context(content, params.max_note_length, "This note")
        blocks.append(
            f'<obsidian_mentioned_note ref="{absolute_path}">\n'
            f"{body}{note}\n</obsidian_mentioned_note>"
        )

    _embedded, reference_blocks = await _build_reference_context(params, vault, references)
    blocks.extend(reference_blocks)

    prefix, auto_mention_context = _auto_mention(params)
    if params.active_note is not None and auto_mention_context is not None:
        blocks.append(await _build_auto_mention_text(params, vault, params.active_note))

    if blocks:
        agent_text = "\n".join(blocks) + "\n\n" + prefix + user_message
    else:
        agent_text = prefix + user_message

    agent_content: list[PromptContent] = []
    if agent_text:
        agent_content.append(TextPromptContent(text=agent_text))
    agent_content.extend(params.images)

    return PreparePromptResult(
        display_content=_display_content(params, user_message),
        agent_content=agent_content,
        auto_mention_context=auto_mention_context,
    )


async def _build_auto_mention_text(
    params: PreparePromptInput, vault: VaultAccess, note: NoteMetadata
) -> str:
    absolute_path = resolve_absolute_path(params.vault_base_path, note.path, params.convert_to_wsl)

    if note.selection is None:
        return (
            f"<obsidian_opened_note>The user opened the note {absolute_path} in Obsidian. "
            "This may or may not be related to the current conversation. If it seems "
            "relevant, consider using the Read tool to examine the content.</obsidian_opened_note>"
        )

    from_line = note.selection.from_.line + 1
    to_line = note.selection.to.line + 1
    try:
        selected = await _read_selected_lines(vault, note, note.selection)
    except Exception as e:
        log.warning("Failed to read selection from %s: %s", note.path, e)
        return (
            f'<obsidian_opened_note selection="lines {from_line}-{to_line}">The user opened '
            f"the note {absolute_path} in Obsidian and is focusing on lines {from_line}-{to_line}. "
            "This may or may not be related to the current conversation. If it seems relevant, "
            "consider using the Read tool to examine the specific lines.</obsidian_opened_note>"
        )

    body, note_text = truncate_for_context(selected, params.max_selection_length, "The selection")
    return (
        f'<obsidian_opened_note selection="lines {from_line}-{to_line}">\n'
        f"The user opened the note {absolute_path} in Obsidian and selected the following "
        f"text (lines {from_line}-{to_line}):\n\n"
        f"{body}{note_text}\n\n"
        "This is what the user is currently focusing on.\n"
        "</obsidian_opened_note>"
    )
