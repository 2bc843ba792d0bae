"""Session lifecycle: agent selection, the ChatSession state machine and history."""

from obsius.session.agent_session import AgentSessionManager
from obsius.session.agents import AgentEntry, build_agent_config, get_available_agents
from obsius.session.history import (
    HistoryState,
    SessionCapabilityFlags,
    SessionHistoryManager,
    SessionListCache,
    get_session_capability_flags,
)
from obsius.session.operations import SessionLoadHooks, get_forked_session_title

__all__ = [
    "AgentEntry",
    "AgentSessionManager",
    "HistoryState",
    "SessionCapabilityFlags",
    "SessionHistoryManager",
    "SessionListCache",
    "SessionLoadHooks",
    "build_agent_config",
    "get_available_agents",
    "get_forked_session_title",
    "get_session_capability_flags",
]
