"""Slash command tokens: ``@[obsius-slash:<name>]``."""

from __future__ import annotations

import re

SLASH_TOKEN_PREFIX = "@[obsius-slash:"
SLASH_TOKEN_PATTERN = re.compile(r"@\[obsius-slash:([^\]]+)\]")
_FULL_TOKEN_PATTERN = re.compile(r"^@\[obsius-slash:([^\]]+)\]$")


def create_slash_command_token(command_name: str) -> str:
    return f"{SLASH_TOKEN_PREFIX}{command_name}]"


def parse_slash_command_token(token: str) -> str | None:
    match = _FULL_TOKEN_PATTERN.match(token)
    return match.group(1) if match else None


def extract_slash_command_tokens(message: str) -> tuple[str, list[str]]:
    """Replace every slash token with ``/name `` text.

    Returns:
        ``(message_with_slash_as_text, command_names)``
    """
    commands = [m.group(1) for m in SLASH_TOKEN_PATTERN.finditer(message)]
    text = SLASH_TOKEN_PATTERN.sub(lambda m: f"/{m.group(1)} ", message)
    return text, commands
