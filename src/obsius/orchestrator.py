"""ChatOrchestrator: one chat view's worth of session core.

Composes the session manager, chat controller, history manager and
permission coordinator over one transport, and wires the transport
callbacks into them. Callers drive everything through this class; the
managers stay reachable as attributes for reading state.
"""

from __future__ import annotations

import time
from collections.abc import Callable, Sequence

from obsius.chat.controller import ChatController
from obsius.chat.permissions import PermissionCoordinator
from obsius.logging import get_logger, setup_logging
from obsius.models.context import NoteMetadata
from obsius.ports import AgentClient, SettingsStore, VaultAccess
from obsius.session.agent_session import AgentSessionManager
from obsius.session.history import SessionHistoryManager
from obsius.session.operations import SessionLoadHooks
from obsius.types.content import ImagePromptContent

log = get_logger("session")

ALREADY_NEW_SESSION = "Already a new session"


class ChatOrchestrator:
    """Single entry point for a chat view.

    Args:
        client: Transport to the agent process.
        vault: Note access and editor state.
        settings: Settings snapshot and local session persistence.
        working_directory: Directory sessions run in (vault root when None).
        initial_agent_id: Agent to connect to first (default agent when None).
        clock: Monotonic time source for the session list cache.
    """

    def __init__(
        self,
        client: AgentClient,
        vault: VaultAccess,
        settings: SettingsStore,
        working_directory: str | None = None,
        initial_agent_id: str | None = None,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._client = client
        self._vault = vault
        self._settings = settings
        self._initial_agent_id = initial_agent_id
        self._active_note: NoteMetadata | None = None
        self._auto_mention_disabled = False
        self._unsubscribe_selection: Callable[[], None] | None = None

        cwd = working_directory or vault.base_path
        self.session = AgentSessionManager(client, settings, cwd, initial_agent_id)
        self.chat = ChatController(
            self.session,
            client,
            vault,
            settings,
            on_first_message=self._save_first_message,
        )
        self.history = SessionHistoryManager(
            client,
            settings,
            lambda: self.session.session,
            cwd,
            SessionLoadHooks(
                on_session_load=self.session.update_session_from_load,
                on_messages_restore=self.chat.set_messages_from_local,
                on_load_start=self.chat.on_load_start,
                on_load_end=self.chat.on_load_end,
            ),
            clock=clock,
        )
        self.permissions = PermissionCoordinator(lambda: self.chat.messages, client)

        client.on_session_update(self.chat.handle_session_update)
        client.on_error(self.session.handle_error)

    @property
    def working_directory(self) -> str:
        return self.session.working_directory

    @property
    def active_note(self) -> NoteMetadata | None:
        return self._active_note

    @property
    def auto_mention_disabled(self) -> bool:
        return self._auto_mention_disabled

    def set_auto_mention_disabled(self, disabled: bool) -> None:
        self._auto_mention_disabled = disabled

    # -------------------------------------------------------------------------
    # Lifecycle
    # -------------------------------------------------------------------------

    async def start(self) -> None:
        """Set up logging, track the active note and connect to the initial agent."""
        setup_logging(self._settings.get_snapshot().logging)
        self._active_note = self._vault.get_active_note()
        self._unsubscribe_selection = self._vault.subscribe_selection_changes(
            self._on_selection_change
        )
        await self.session.create_session(self._initial_agent_id)

    def _on_selection_change(self, note: NoteMetadata | None) -> None:
        self._active_note = note

    async def close(self) -> None:
        """Flush pending message saves, then close the session and the process."""
        if self._unsubscribe_selection is not None:
            self._unsubscribe_selection()
            self._unsubscribe_selection = None
        await self.chat.wait_for_pending_saves()
        await self.session.close_session()

    # -------------------------------------------------------------------------
    # Prompt turns
    # -------------------------------------------------------------------------

    async def send_message(
        self, message: str, images: Sequence[ImagePromptContent] = ()
    ) -> None:
        await self.chat.send_message(
            message,
            images=images,
            active_note=self._active_note,
            auto_mention_disabled=self._auto_mention_disabled,
        )

    async def _save_first_message(self, session_id: str, message: str) -> None:
        await self.history.save_session_locally(session_id, message)
        log.debug("Session saved locally: %s", session_id)

    async def stop_generation(self) -> str | None:
        """Cancel the running turn.

        Returns:
            The interrupted prompt text, to put back into the input box.
        """
        return await self.chat.stop_generation()

    # -------------------------------------------------------------------------
    # Session identity
    # -------------------------------------------------------------------------

    async def new_chat(self, requested_agent_id: str | None = None) -> str | None:
        """Start a fresh session, optionally with another agent.

        Returns:
            "Already a new session" when there is nothing to reset, else None.
        """
        current_agent_id = self.session.session.agent_id
        is_agent_switch = bool(requested_agent_id) and requested_agent_id != current_agent_id

        if not self.chat.messages and not is_agent_switch:
            return ALREADY_NEW_SESSION

        if self.chat.is_sending:
            await self.session.cancel_operation()

        log.info(
            "Creating new session%s",
            f" with agent: {requested_agent_id}" if is_agent_switch else "",
        )
        self._auto_mention_disabled = False
        self.chat.clear_messages()
        await self.session.restart_session(
            requested_agent_id if is_agent_switch else current_agent_id
        )
        self.history.invalidate_cache()
        return None

    async def switch_agent(self, agent_id: str) -> None:
        if agent_id != self.session.session.agent_id:
            await self.new_chat(agent_id)

    async def restart_agent(self) -> None:
        """Kill and relaunch the agent process with a fresh session."""
        log.info("Restarting agent process")
        self.chat.clear_messages()
        await self.session.force_restart_agent()

    async def restore_session(self, session_id: str, cwd: str) -> bool:
        """Returns False when the restore failed; the error is in ``history.state``."""
        self.chat.clear_messages()
        try:
            await self.history.restore_session(session_id, cwd)
        except Exception as e:
            log.error("Session restore error: %s", e)
            return False
        return True

    async def fork_session(self, session_id: str, cwd: str) -> str | None:
        """Returns the new session id, or None when the fork failed."""
        self.chat.clear_messages()
        try:
            return await self.history.fork_session(session_id, cwd)
        except Exception as e:
            log.error("Session fork error: %s", e)
            return None

    async def delete_session(self, session_id: str) -> bool:
        try:
            await self.history.delete_session(session_id)
        except Exception as e:
            log.error("Session delete error: %s", e)
            return False
        return True

    async def fetch_sessions(self, cwd: str | None = None) -> None:
        await self.history.fetch_sessions(cwd)

    async def load_more_sessions(self) -> None:
        await self.history.load_more_sessions()

    # -------------------------------------------------------------------------
    # Mode, model and permissions
    # -------------------------------------------------------------------------

    async def set_mode(self, mode_id: str) -> None:
        await self.session.set_mode(mode_id)

    async def set_model(self, model_id: str) -> None:
        await self.session.set_model(model_id)

    async def approve_permission(self) -> bool:
        return await self.permissions.approve_active()

    async def reject_permission(self) -> bool:
        return await self.permissions.reject_active()

    def clear_error(self) -> None:
        self.chat.clear_error()
        self.session.clear_error()
        self.permissions.clear_error()
