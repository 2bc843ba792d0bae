"""Stateless session-history operations against the agent.

Each operation takes its collaborators explicitly and reports progress
through SessionLoadHooks, so the history manager keeps all state.
"""

from __future__ import annotations

from collections.abc import Callable, Sequence
from dataclasses import dataclass, field
from datetime import datetime

from obsius.logging import get_logger
from obsius.models.errors import SessionRestoreError
from obsius.models.messages import ChatMessage
from obsius.models.session_info import SavedSessionInfo
from obsius.ports import AgentClient, SettingsStore
from obsius.types.common import SessionModelState, SessionModeState
from obsius.types.responses import SessionInfo

log = get_logger("history")

FORK_TITLE_PREFIX = "Fork: "
MAX_TITLE_LENGTH = 50
FALLBACK_TITLE = "Session"

SessionLoadCallback = Callable[[str, SessionModeState | None, SessionModelState | None], None]
MessagesRestoreCallback = Callable[[list[ChatMessage]], None]


@dataclass(frozen=True, slots=True)
class SessionLoadHooks:
    """Callbacks into the session and chat state.

    Attributes:
        on_session_load: Adopt a session id (and its modes/models) as live.
        on_messages_restore: Replace the chat with locally cached messages.
        on_load_start: Open the history-replay window.
        on_load_end: Close the history-replay window.
    """

    on_session_load: SessionLoadCallback
    on_messages_restore: MessagesRestoreCallback | None = None
    on_load_start: Callable[[], None] | None = None
    on_load_end: Callable[[], None] | None = None


@dataclass(frozen=True, slots=True)
class SessionPage:
    """One page of listed sessions with local titles applied."""

    sessions: list[SessionInfo] = field(default_factory=list)
    local_session_ids: frozenset[str] = frozenset()
    next_cursor: str | None = None


def merge_with_local_titles(
    agent_sessions: Sequence[SessionInfo], local_sessions: Sequence[SavedSessionInfo]
) -> list[SessionInfo]:
    """Local titles win over the titles the agent reports."""
    local = {s.session_id: s for s in local_sessions}
    merged: list[SessionInfo] = []
    for session in agent_sessions:
        saved = local.get(session.session_id)
        if saved is not None and saved.title is not None:
            session = session.model_copy(update={"title": saved.title})
        merged.append(session)
    return merged


async def list_sessions_page(
    client: AgentClient,
    settings: SettingsStore,
    agent_id: str | None,
    cwd: str | None = None,
    cursor: str | None = None,
) -> SessionPage:
    result = await client.list_sessions(cwd=cwd, cursor=cursor)
    local_sessions = settings.get_saved_sessions(agent_id, cwd)
    return SessionPage(
        sessions=merge_with_local_titles(result.sessions, local_sessions),
        local_session_ids=frozenset(s.session_id for s in local_sessions),
        next_cursor=result.next_cursor,
    )


async def restore_session_operation(
    client: AgentClient,
    settings: SettingsStore,
    session_id: str,
    cwd: str,
    hooks: SessionLoadHooks,
    *,
    can_load: bool,
    can_resume: bool,
) -> None:
    """Restore ``session_id``, preferring load (history replay) over resume.

    The id is adopted before the RPC so replayed updates pass the
    session guard. Cached local messages are restored afterwards in both
    cases; resume gets no replay at all.

    Raises:
        SessionRestoreError: The agent supports neither load nor resume.
    """
    hooks.on_session_load(session_id, None, None)

    if can_load:
        if hooks.on_load_start:
            hooks.on_load_start()
        try:
            result = await client.load_session(session_id, cwd)
            hooks.on_session_load(result.session_id or session_id, result.modes, result.models)
            local_messages = await settings.load_session_messages(session_id)
            if local_messages and hooks.on_messages_restore:
                hooks.on_messages_restore(local_messages)
        finally:
            if hooks.on_load_end:
                hooks.on_load_end()
        return

    if can_resume:
        result = await client.resume_session(session_id, cwd)
        hooks.on_session_load(result.session_id or session_id, result.modes, result.models)
        local_messages = await settings.load_session_messages(session_id)
        if local_messages and hooks.on_messages_restore:
            hooks.on_messages_restore(local_messages)
        return

    raise SessionRestoreError("Session restoration is not supported")


def get_forked_session_title(original_title: str | None) -> str:
    """``"Fork: " + title``; titles longer than 44 characters are cut to 44 plus "..."."""
    title = original_title or FALLBACK_TITLE
    max_base = MAX_TITLE_LENGTH - len(FORK_TITLE_PREFIX)
    if len(title) > max_base:
        title = title[:max_base] + "..."
    return f"{FORK_TITLE_PREFIX}{title}"


async def fork_session_operation(
    client: AgentClient,
    settings: SettingsStore,
    agent_id: str | None,
    sessions: Sequence[SessionInfo],
    session_id: str,
    cwd: str,
    hooks: SessionLoadHooks,
) -> str:
    """Fork ``session_id`` into a new session and adopt it.

    Returns:
        The id of the new session.
    """
    result = await client.fork_session(session_id, cwd)
    if not result.session_id:
        raise SessionRestoreError("Agent returned no session id for the fork")
    new_id = result.session_id
    hooks.on_session_load(new_id, result.modes, result.models)

    local_messages = await settings.load_session_messages(session_id)
    if local_messages and hooks.on_messages_restore:
        hooks.on_messages_restore(local_messages)

    if agent_id:
        original = next((s for s in sessions if s.session_id == session_id), None)
        now = datetime.now()
        await settings.save_session(
            SavedSessionInfo(
                session_id=new_id,
                agent_id=agent_id,
                cwd=cwd,
                title=get_forked_session_title(original.title if original else None),
                created_at=now,
                updated_at=now,
            )
        )
        if local_messages:
            try:
                await settings.save_session_messages(new_id, agent_id, local_messages)
            except Exception as e:
                log.warning("Failed to copy messages to forked session %s: %s", new_id, e)

    log.info("Forked session %s into %s", session_id, new_id)
    return new_id


def truncate_title(message: str, max_length: int = MAX_TITLE_LENGTH) -> str:
    if len(message) > max_length:
        return message[:max_length] + "..."
    return message

