"""AgentSessionManager: the ChatSession state machine.

States::

    disconnected --create_session--> initializing --ok--> ready
                                     initializing --fail--> error
    any --create_session / load_session--> initializing
    ready --close_session--> disconnected

``error`` is not terminal; any create/load/restart re-enters
``initializing``. Identity-changing operations never raise: failures end in
the error state with a three-part ErrorInfo.
"""

from __future__ import annotations

from collections.abc import Callable, Sequence
from dataclasses import replace
from datetime import datetime

from obsius.config.schema import Settings
from obsius.logging import get_logger
from obsius.models.errors import AgentNotFoundError, ErrorInfo, error_message
from obsius.models.session import (
    ChatSession,
    SessionState,
    SlashCommand,
    create_initial_session,
)
from obsius.ports import AgentClient, SettingsStore
from obsius.session.agents import (
    AgentEntry,
    build_agent_config,
    find_agent_settings,
    get_agent_entry,
    get_available_agents,
    get_default_agent_id,
)
from obsius.state import StateCell
from obsius.types.common import SessionModelState, SessionModeState
from obsius.types.responses import InitializeResponse

log = get_logger("session")


def _agent_not_found(agent_id: str) -> ErrorInfo:
    return ErrorInfo(
        title="Agent Not Found",
        message=f'Agent with ID "{agent_id}" not found in settings',
        suggestion="Please check your agent configuration in settings.",
    )


def _with_mode(session: ChatSession, mode_id: str) -> ChatSession:
    if session.modes is None:
        return session
    return replace(session, modes=session.modes.model_copy(update={"current_mode_id": mode_id}))


def _with_model(session: ChatSession, model_id: str) -> ChatSession:
    if session.models is None:
        return session
    return replace(
        session, models=session.models.model_copy(update={"current_model_id": model_id})
    )


class AgentSessionManager:
    """Owns the live ChatSession and the agent process behind it.

    Args:
        client: Transport to the agent.
        settings: Settings snapshot and persistence.
        working_directory: Directory sessions are created in.
        initial_agent_id: Agent shown before the first session (default agent
            when None).
    """

    def __init__(
        self,
        client: AgentClient,
        settings: SettingsStore,
        working_directory: str,
        initial_agent_id: str | None = None,
    ) -> None:
        self._client = client
        self._settings = settings
        self._working_directory = working_directory

        snapshot = settings.get_snapshot()
        entry = get_agent_entry(snapshot, initial_agent_id)
        self._cell: StateCell[ChatSession] = StateCell(
            create_initial_session(entry.id, entry.display_name, working_directory)
        )
        # Ids replaced by create/load; their late updates are dropped
        self._retired_ids: set[str] = set()

    # -------------------------------------------------------------------------
    # State access
    # -------------------------------------------------------------------------

    @property
    def session(self) -> ChatSession:
        return self._cell.value

    @property
    def is_ready(self) -> bool:
        return self._cell.value.state is SessionState.READY

    @property
    def error_info(self) -> ErrorInfo | None:
        return self._cell.value.error_info

    @property
    def working_directory(self) -> str:
        return self._working_directory

    def set_session(self, updater: Callable[[ChatSession], ChatSession]) -> ChatSession:
        """Replace the session snapshot with ``updater(previous)``."""
        return self._cell.update(updater)

    def subscribe(
        self, listener: Callable[[ChatSession, ChatSession], None]
    ) -> Callable[[], None]:
        return self._cell.subscribe(listener)

    def is_stale_session(self, session_id: str) -> bool:
        """True when updates for ``session_id`` no longer belong to the live session."""
        current_id = self._cell.value.session_id
        if current_id:
            return session_id != current_id
        return session_id in self._retired_ids

    def get_available_agents(self) -> list[AgentEntry]:
        return get_available_agents(self._settings.get_snapshot())

    def clear_error(self) -> None:
        self.set_session(lambda prev: replace(prev, error_info=None))

    def _fail(self, error_info: ErrorInfo) -> None:
        self.set_session(
            lambda prev: replace(prev, state=SessionState.ERROR, error_info=error_info)
        )

    def _reset(self, agent: AgentEntry) -> None:
        """Enter ``initializing`` for a brand new session identity.

        Capabilities of the previous snapshot are kept until the agent is
        re-initialized.
        """
        if self.session.session_id:
            self._retired_ids.add(self.session.session_id)
        now = datetime.now()
        self.set_session(
            lambda prev: replace(
                prev,
                session_id=None,
                state=SessionState.INITIALIZING,
                agent_id=agent.id,
                agent_display_name=agent.display_name,
                auth_methods=(),
                available_commands=None,
                modes=None,
                models=None,
                error_info=None,
                created_at=now,
                last_activity_at=now,
            )
        )

    async def _initialize_if_needed(
        self, settings: Settings, agent_id: str
    ) -> InitializeResponse | None:
        """Spawn and handshake unless the right agent is already running.

        Returns:
            The handshake result, or None when the running process was reused.

        Raises:
            AgentNotFoundError: ``agent_id`` is not configured.
        """
        agent_settings = find_agent_settings(settings, agent_id)
        if agent_settings is None:
            raise AgentNotFoundError(agent_id)

        config = build_agent_config(settings, agent_settings, self._working_directory)
        needs_initialize = (
            not self._client.is_initialized() or self._client.get_current_agent_id() != agent_id
        )
        if not needs_initialize:
            return None

        log.info("Initializing agent %s", agent_id)
        return await self._client.initialize(config)

    def _apply_ready(
        self,
        session_id: str,
        init: InitializeResponse | None,
        modes: SessionModeState | None,
        models: SessionModelState | None,
    ) -> None:
        self._retired_ids.discard(session_id)

        def updater(prev: ChatSession) -> ChatSession:
            if init is None:
                return replace(
                    prev,
                    session_id=session_id,
                    state=SessionState.READY,
                    modes=modes,
                    models=models,
                    last_activity_at=datetime.now(),
                )
            return replace(
                prev,
                session_id=session_id,
                state=SessionState.READY,
                auth_methods=tuple(init.auth_methods),
                modes=modes,
                models=models,
                prompt_capabilities=init.prompt_capabilities,
                agent_capabilities=init.agent_capabilities,
                agent_info=init.agent_info,
                last_activity_at=datetime.now(),
            )

        self.set_session(updater)

    # -------------------------------------------------------------------------
    # Lifecycle
    # -------------------------------------------------------------------------

    async def create_session(self, override_agent_id: str | None = None) -> None:
        """Start a fresh session, spawning the agent when needed.

        Never raises; failures leave the session in the error state.
        """
        settings = self._settings.get_snapshot()
        agent_id = override_agent_id or self.session.agent_id or get_default_agent_id(settings)
        agent = get_agent_entry(settings, agent_id)

        self._reset(agent)

        try:
            init = await self._initialize_if_needed(settings, agent_id)
            result = await self._client.new_session(self._working_directory)
        except AgentNotFoundError:
            log.warning("Agent %s is not configured", agent_id)
            self._fail(_agent_not_found(agent_id))
            return
        except Exception as e:
            log.warning("Session creation failed for %s: %s", agent_id, e)
            self._fail(
                ErrorInfo(
                    title="Session Creation Failed",
                    message=f"Failed to create new session: {error_message(e)}",
                    suggestion="Please check the agent configuration and try again.",
                )
            )
            return

        if not result.session_id:
            self._fail(
                ErrorInfo(
                    title="Session Creation Failed",
                    message="Failed to create new session: the agent returned no session id",
                    suggestion="Please check the agent configuration and try again.",
                )
            )
            return

        self._apply_ready(result.session_id, init, result.modes, result.models)
        log.info("Session %s ready with agent %s", result.session_id, agent_id)

        await self._restore_last_used_model(settings, agent_id, result.session_id, result.models)

    async def _restore_last_used_model(
        self,
        settings: Settings,
        agent_id: str,
        session_id: str,
        models: SessionModelState | None,
    ) -> None:
        if models is None:
            return
        saved = settings.last_used_models.get(agent_id)
        if not saved or saved == models.current_model_id:
            return
        if not any(m.model_id == saved for m in models.available_models):
            log.debug("Last used model %s is no longer offered by %s", saved, agent_id)
            return

        try:
            await self._client.set_session_model(session_id, saved)
        except Exception as e:
            log.warning("Failed to restore model %s: %s", saved, e)
            return
        self.set_session(lambda prev: _with_model(prev, saved))

    async def load_session(self, session_id: str) -> None:
        """Load an existing session with the default agent.

        The conversation arrives later as replayed session updates. Never
        raises; failures leave the session in the error state.
        """
        settings = self._settings.get_snapshot()
        agent_id = get_default_agent_id(settings)
        self._reset(get_agent_entry(settings, agent_id))

        try:
            init = await self._initialize_if_needed(settings, agent_id)
            result = await self._client.load_session(session_id, self._working_directory)
        except AgentNotFoundError:
            log.warning("Agent %s is not configured", agent_id)
            self._fail(_agent_not_found(agent_id))
            return
        except Exception as e:
            log.warning("Loading session %s failed: %s", session_id, e)
            self._fail(
                ErrorInfo(
                    title="Session Loading Failed",
                    message=f"Failed to load session: {error_message(e)}",
                    suggestion="Please try again or create a new session.",
                )
            )
            return

        self._apply_ready(result.session_id or session_id, init, result.modes, result.models)

    async def restart_session(self, new_agent_id: str | None = None) -> None:
        await self.create_session(new_agent_id)

    async def close_session(self) -> None:
        """Cancel and disconnect; cleanup failures are only logged."""
        session_id = self.session.session_id
        if session_id:
            try:
                await self._client.cancel(session_id)
            except Exception as e:
                log.warning("Failed to cancel session: %s", e)

        try:
            await self._client.disconnect()
        except Exception as e:
            log.warning("Failed to disconnect: %s", e)

        self.set_session(
            lambda prev: replace(prev, session_id=None, state=SessionState.DISCONNECTED)
        )

    async def force_restart_agent(self) -> None:
        """Kill the agent process and start over with the same agent."""
        agent_id = self.session.agent_id
        try:
            await self._client.disconnect()
        except Exception as e:
            log.warning("Failed to disconnect: %s", e)
        await self.create_session(agent_id)

    async def cancel_operation(self) -> None:
        """Stop the running turn.

        Ends in ``ready`` even if the RPC fails, unless the session was
        replaced while the cancel was in flight.
        """
        session_id = self.session.session_id
        if not session_id:
            return

        try:
            await self._client.cancel(session_id)
        except Exception as e:
            log.warning("Failed to cancel operation: %s", e)
        finally:
            self.set_session(
                lambda prev: replace(prev, state=SessionState.READY)
                if prev.session_id == session_id
                else prev
            )

    def update_session_from_load(
        self,
        session_id: str,
        modes: SessionModeState | None = None,
        models: SessionModelState | None = None,
    ) -> None:
        """Adopt a session restored or forked by the history manager."""
        self._retired_ids.discard(session_id)
        self.set_session(
            lambda prev: replace(
                prev,
                session_id=session_id,
                state=SessionState.READY,
                modes=modes if modes is not None else prev.modes,
                models=models if models is not None else prev.models,
                error_info=None,
                last_activity_at=datetime.now(),
            )
        )

    def handle_error(self, error: ErrorInfo) -> None:
        """Record an error reported by the transport (crash, spawn failure)."""
        info = ErrorInfo(
            title=error.title or "Agent Error",
            message=error.message or "An error occurred",
            suggestion=error.suggestion,
        )
        self._fail(info)

    # -------------------------------------------------------------------------
    # Passive updates from the notification router
    # -------------------------------------------------------------------------

    def update_available_commands(self, commands: Sequence[SlashCommand]) -> None:
        self.set_session(lambda prev: replace(prev, available_commands=tuple(commands)))

    def update_current_mode(self, mode_id: str) -> None:
        self.set_session(lambda prev: _with_mode(prev, mode_id))

    # -------------------------------------------------------------------------
    # Optimistic mode / model switches
    # -------------------------------------------------------------------------

    async def set_mode(self, mode_id: str) -> None:
        session = self.session
        if not session.session_id:
            log.warning("Cannot set mode: no active session")
            return

        previous = session.modes.current_mode_id if session.modes else None
        self.set_session(lambda prev: _with_mode(prev, mode_id))

        try:
            await self._client.set_session_mode(session.session_id, mode_id)
        except Exception as e:
            log.error("Failed to set mode %s: %s", mode_id, e)
            if previous is not None:
                self.set_session(
                    lambda prev: _with_mode(prev, previous)
                    if prev.session_id == session.session_id
                    else prev
                )

    async def set_model(self, model_id: str) -> None:
        session = self.session
        if not session.session_id:
            log.warning("Cannot set model: no active session")
            return

        previous = session.models.current_model_id if session.models else None
        self.set_session(lambda prev: _with_model(prev, model_id))

        try:
            await self._client.set_session_model(session.session_id, model_id)
        except Exception as e:
            log.error("Failed to set model %s: %s", model_id, e)
            if previous is not None:
                self.set_session(
                    lambda prev: _with_model(prev, previous)
                    if prev.session_id == session.session_id
                    else prev
                )
            return

        await self._remember_model(session.agent_id, model_id)

    async def _remember_model(self, agent_id: str, model_id: str) -> None:
        if not agent_id:
            return
        last_used = dict(self._settings.get_snapshot().last_used_models)
        last_used[agent_id] = model_id
        try:
            await self._settings.update_settings({"last_used_models": last_used})
        except Exception as e:
            log.warning("Failed to persist last used model: %s", e)
