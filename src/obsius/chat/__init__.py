"""Chat state: message merging, prompt turns and permission prompts."""

from obsius.chat.controller import ChatController, ChatState, ContextUsage
from obsius.chat.permissions import ActivePermission, PermissionCoordinator

__all__ = [
    "ActivePermission",
    "ChatController",
    "ChatState",
    "ContextUsage",
    "PermissionCoordinator",
]
