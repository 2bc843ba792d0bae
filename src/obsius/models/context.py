"""Vault-side context types: positions, selections, notes, context references."""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum


class ContextType(str, Enum):
    """What a context reference points at."""

    SELECTION = "selection"
    FILE = "file"
    FOLDER = "folder"


@dataclass(frozen=True, slots=True, order=True)
class EditorPosition:
    """Zero-based line/character position. Ordering is (line, ch)."""

    line: int
    ch: int


@dataclass(frozen=True, slots=True)
class ChatContextSelection:
    """A character range inside a note."""

    from_: EditorPosition
    to: EditorPosition

    def normalized(self) -> ChatContextSelection:
        """Return the selection with ``from_ <= to``."""
        if self.from_ <= self.to:
            return self
        return ChatContextSelection(from_=self.to, to=self.from_)


@dataclass(frozen=True, slots=True)
class ChatContextReference:
    """An explicit context attachment (selection, file or folder)."""

    type: ContextType
    note_path: str
    note_name: str
    selection: ChatContextSelection | None = None


@dataclass(frozen=True, slots=True)
class NoteMetadata:
    """A note as reported by the vault.

    Attributes:
        path: Vault-relative path.
        name: Basename without extension.
        modified: Last modification time, seconds since the epoch.
        selection: Current editor selection when the note is active.
    """

    path: str
    name: str
    extension: str = "md"
    created: float = 0.0
    modified: float = 0.0
    selection: ChatContextSelection | None = None


@dataclass(frozen=True, slots=True)
class AutoMentionContext:
    """Active-note context attached automatically to a message (1-based lines)."""

    note_name: str
    note_path: str
    from_line: int | None = None
    to_line: int | None = None
