"""Inline tokens that carry structured data through plain-text input."""

from obsius.tokens.context import (
    CONTEXT_TOKEN_PATTERN,
    append_chat_context_token,
    build_message_with_context_tokens,
    create_chat_context_token,
    extract_chat_context_tokens,
    format_chat_context_badge_label,
    format_chat_context_tooltip,
    get_chat_context_reference_key,
    normalize_chat_context_reference,
    parse_chat_context_token,
)
from obsius.tokens.slash import (
    SLASH_TOKEN_PATTERN,
    create_slash_command_token,
    extract_slash_command_tokens,
    parse_slash_command_token,
)

__all__ = [
    "CONTEXT_TOKEN_PATTERN",
    "SLASH_TOKEN_PATTERN",
    "append_chat_context_token",
    "build_message_with_context_tokens",
    "create_chat_context_token",
    "create_slash_command_token",
    "extract_chat_context_tokens",
    "extract_slash_command_tokens",
    "format_chat_context_badge_label",
    "format_chat_context_tooltip",
    "get_chat_context_reference_key",
    "normalize_chat_context_reference",
    "parse_chat_context_token",
    "parse_slash_command_token",
]
