"""Path helpers for context attachments: vault joins, WSL conversion, file URIs."""

from __future__ import annotations

import re
from urllib.parse import quote

_WINDOWS_DRIVE = re.compile(r"^([A-Za-z]):[\\/]")


def join_vault_path(base_path: str, note_path: str) -> str:
    """Absolute path of a vault-relative note path (unchanged without a base)."""
    if not base_path:
        return note_path
    return f"{base_path}/{note_path}"


def convert_windows_path_to_wsl(path: str) -> str:
    """Map ``C:\\Users\\me`` to ``/mnt/c/Users/me``; other paths pass through."""
    match = _WINDOWS_DRIVE.match(path)
    if not match:
        return path
    drive = match.group(1).lower()
    rest = path[match.end():].replace("\\", "/")
    return f"/mnt/{drive}/{rest}"


def resolve_absolute_path(base_path: str, note_path: str, convert_to_wsl: bool = False) -> str:
    path = join_vault_path(base_path, note_path)
    if convert_to_wsl:
        path = convert_windows_path_to_wsl(path)
    return path


def build_file_uri(absolute_path: str) -> str:
    """Render an absolute path as a ``file://`` URI.

    Backslashes become forward slashes and each segment is percent-encoded;
    drive letters keep their colon (``file:///C:/notes/a%20b.md``).
    """
    normalized = absolute_path.replace("\\", "/")
    if not normalized.startswith("/"):
        normalized = "/" + normalized
    return "file://" + quote(normalized, safe="/:")
