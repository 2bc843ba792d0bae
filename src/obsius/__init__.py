"""Obsius: agent session core for driving ACP coding agents from a note vault."""

__version__ = "0.1.0"

# Public API
from obsius.acp import AcpAgentClient
from obsius.chat import ChatController, ChatState, PermissionCoordinator
from obsius.config import Settings, get_settings, load_settings
from obsius.models import (
    AcpError,
    ChatMessage,
    ChatSession,
    ErrorInfo,
    MessageRole,
    ObsiusError,
    SessionState,
)
from obsius.orchestrator import ChatOrchestrator
from obsius.persistence import YamlSettingsStore
from obsius.ports import AgentClient, AgentConfig, SettingsStore, VaultAccess
from obsius.session import AgentSessionManager, SessionHistoryManager

__all__ = [
    # Main entry points
    "ChatOrchestrator",
    "AcpAgentClient",
    "YamlSettingsStore",
    # Managers
    "AgentSessionManager",
    "ChatController",
    "ChatState",
    "PermissionCoordinator",
    "SessionHistoryManager",
    # Ports
    "AgentClient",
    "AgentConfig",
    "SettingsStore",
    "VaultAccess",
    # Config
    "Settings",
    "get_settings",
    "load_settings",
    # Models
    "AcpError",
    "ChatMessage",
    "ChatSession",
    "ErrorInfo",
    "MessageRole",
    "ObsiusError",
    "SessionState",
]
