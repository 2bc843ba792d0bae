"""SessionHistoryManager: session list, cache and restore/fork/delete.

Sessions are listed by the agent when it supports ``session/list`` and at
least one restore operation; otherwise the locally saved records are shown
(for browsing and deletion only). Agent listings are cached per working
directory for five minutes; identity-changing operations invalidate the
cache instead of patching it.
"""

from __future__ import annotations

import time
from collections.abc import Callable
from dataclasses import dataclass, field, replace
from datetime import datetime

from obsius.logging import get_logger
from obsius.models.errors import error_message
from obsius.models.session import ChatSession
from obsius.models.session_info import SavedSessionInfo
from obsius.ports import AgentClient, SettingsStore
from obsius.session.operations import (
    SessionLoadHooks,
    fork_session_operation,
    list_sessions_page,
    restore_session_operation,
    truncate_title,
)
from obsius.state import StateCell
from obsius.types.common import AgentCapabilities
from obsius.types.responses import SessionInfo

log = get_logger("history")

CACHE_TTL_SECONDS = 5 * 60

Clock = Callable[[], float]


@dataclass(frozen=True, slots=True)
class SessionCapabilityFlags:
    """Session operations the agent advertised during initialization."""

    can_list: bool = False
    can_load: bool = False
    can_resume: bool = False
    can_fork: bool = False

    @property
    def can_restore(self) -> bool:
        return self.can_load or self.can_resume

    @property
    def can_show_session_history(self) -> bool:
        return self.can_list or self.can_load or self.can_resume or self.can_fork

    @property
    def is_using_local_sessions(self) -> bool:
        return not self.can_list


def get_session_capability_flags(
    capabilities: AgentCapabilities | None,
) -> SessionCapabilityFlags:
    if capabilities is None:
        return SessionCapabilityFlags()
    session_caps = capabilities.session_capabilities
    return SessionCapabilityFlags(
        can_list=bool(session_caps and session_caps.list_ is not None),
        can_load=capabilities.load_session,
        can_resume=bool(session_caps and session_caps.resume is not None),
        can_fork=bool(session_caps and session_caps.fork is not None),
    )


@dataclass(frozen=True, slots=True)
class SessionListCache:
    """One cached session listing."""

    sessions: tuple[SessionInfo, ...]
    next_cursor: str | None
    cwd: str | None
    timestamp: float

    def is_valid(self, cwd: str | None, now: float, ttl: float = CACHE_TTL_SECONDS) -> bool:
        """Whether the entry was made for ``cwd`` less than ``ttl`` seconds ago."""
        return self.cwd == cwd and (now - self.timestamp) < ttl


@dataclass(frozen=True, slots=True)
class HistoryState:
    """What the session history view shows."""

    sessions: tuple[SessionInfo, ...] = ()
    loading: bool = False
    error: str | None = None
    next_cursor: str | None = None
    local_session_ids: frozenset[str] = field(default_factory=frozenset)

    @property
    def has_more(self) -> bool:
        return self.next_cursor is not None


class SessionHistoryManager:
    """Lists, restores, forks and deletes sessions.

    Args:
        client: Transport to the agent.
        settings: Local session persistence.
        get_session: Returns the live ChatSession (capabilities, agent id).
        cwd: Working directory new records are saved under.
        hooks: Callbacks that adopt restored sessions and messages.
        clock: Monotonic time source in seconds (injectable for tests).
    """

    def __init__(
        self,
        client: AgentClient,
        settings: SettingsStore,
        get_session: Callable[[], ChatSession],
        cwd: str,
        hooks: SessionLoadHooks,
        clock: Clock = time.monotonic,
    ) -> None:
        self._client = client
        self._settings = settings
        self._get_session = get_session
        self._cwd = cwd
        self._hooks = hooks
        self._clock = clock
        self._cache: SessionListCache | None = None
        self._list_cwd: str | None = None
        self._cell: StateCell[HistoryState] = StateCell(HistoryState())

    @property
    def state(self) -> HistoryState:
        return self._cell.value

    @property
    def sessions(self) -> tuple[SessionInfo, ...]:
        return self._cell.value.sessions

    @property
    def capabilities(self) -> SessionCapabilityFlags:
        return get_session_capability_flags(self._get_session().agent_capabilities)

    @property
    def cache(self) -> SessionListCache | None:
        return self._cache

    def subscribe(
        self, listener: Callable[[HistoryState, HistoryState], None]
    ) -> Callable[[], None]:
        return self._cell.subscribe(listener)

    def invalidate_cache(self) -> None:
        self._cache = None

    def _update(self, **changes: object) -> None:
        self._cell.update(lambda prev: replace(prev, **changes))

    # -------------------------------------------------------------------------
    # Listing
    # -------------------------------------------------------------------------

    async def fetch_sessions(self, cwd: str | None = None) -> None:
        """Replace the listed sessions.

        Failures are recorded in ``state.error`` and never raised.
        """
        capabilities = self.capabilities
        agent_id = self._get_session().agent_id

        if not capabilities.can_list or not (
            capabilities.can_restore or capabilities.can_fork
        ):
            local = self._settings.get_saved_sessions(agent_id, cwd)
            self._update(
                sessions=tuple(s.to_session_info() for s in local),
                local_session_ids=frozenset(s.session_id for s in local),
                next_cursor=None,
                error=None,
            )
            return

        now = self._clock()
        if self._cache is not None and self._cache.is_valid(cwd, now):
            local = self._settings.get_saved_sessions(agent_id, cwd)
            self._update(
                sessions=self._cache.sessions,
                next_cursor=self._cache.next_cursor,
                local_session_ids=frozenset(s.session_id for s in local),
                error=None,
            )
            return

        self._update(loading=True, error=None)
        self._list_cwd = cwd
        try:
            page = await list_sessions_page(self._client, self._settings, agent_id, cwd)
        except Exception as e:
            log.warning("Failed to fetch sessions: %s", e)
            self._update(
                sessions=(),
                next_cursor=None,
                error=f"Failed to fetch sessions: {error_message(e)}",
                loading=False,
            )
            return

        self._cache = SessionListCache(
            sessions=tuple(page.sessions),
            next_cursor=page.next_cursor,
            cwd=cwd,
            timestamp=self._clock(),
        )
        self._update(
            sessions=tuple(page.sessions),
            local_session_ids=page.local_session_ids,
            next_cursor=page.next_cursor,
            loading=False,
        )

    async def load_more_sessions(self) -> None:
        """Append the next page; no-op without a cursor or list support."""
        cursor = self.state.next_cursor
        if not cursor or not self.capabilities.can_list:
            return

        self._update(loading=True, error=None)
        try:
            page = await list_sessions_page(
                self._client,
                self._settings,
                self._get_session().agent_id,
                self._list_cwd,
                cursor,
            )
        except Exception as e:
            log.warning("Failed to load more sessions: %s", e)
            self._update(error=f"Failed to load more sessions: {error_message(e)}", loading=False)
            return

        self._cell.update(
            lambda prev: replace(
                prev,
                sessions=prev.sessions + tuple(page.sessions),
                local_session_ids=page.local_session_ids,
                next_cursor=page.next_cursor,
                loading=False,
            )
        )
        if self._cache is not None:
            self._cache = replace(
                self._cache,
                sessions=self._cache.sessions + tuple(page.sessions),
                next_cursor=page.next_cursor,
                timestamp=self._clock(),
            )

    # -------------------------------------------------------------------------
    # Identity-changing operations
    # -------------------------------------------------------------------------

    async def restore_session(self, session_id: str, cwd: str) -> None:
        """Load or resume ``session_id``.

        Raises:
            SessionRestoreError: Neither load nor resume is supported.
            Exception: Whatever the transport raised; ``state.error`` is set first.
        """
        capabilities = self.capabilities
        self._update(loading=True, error=None)
        try:
            await restore_session_operation(
                self._client,
                self._settings,
                session_id,
                cwd,
                self._hooks,
                can_load=capabilities.can_load,
                can_resume=capabilities.can_resume,
            )
        except Exception as e:
            self._update(error=f"Failed to restore session: {error_message(e)}")
            raise
        finally:
            self._update(loading=False)
        self.invalidate_cache()

    async def fork_session(self, session_id: str, cwd: str) -> str:
        """Branch ``session_id`` into a new session and adopt it.

        Returns:
            The new session id.
        """
        self._update(loading=True, error=None)
        try:
            new_id = await fork_session_operation(
                self._client,
                self._settings,
                self._get_session().agent_id,
                self.sessions,
                session_id,
                cwd,
                self._hooks,
            )
        except Exception as e:
            self._update(error=f"Failed to fork session: {error_message(e)}")
            raise
        finally:
            self._update(loading=False)
        self.invalidate_cache()
        return new_id

    async def delete_session(self, session_id: str) -> None:
        """Delete the local record and message cache of ``session_id``."""
        try:
            await self._settings.delete_session(session_id)
        except Exception as e:
            self._update(error=f"Failed to delete session: {error_message(e)}")
            raise

        self._cell.update(
            lambda prev: replace(
                prev,
                sessions=tuple(s for s in prev.sessions if s.session_id != session_id),
                local_session_ids=prev.local_session_ids - {session_id},
            )
        )
        self.invalidate_cache()

    # -------------------------------------------------------------------------
    # Local records
    # -------------------------------------------------------------------------

    async def save_session_locally(self, session_id: str, message: str) -> None:
        """Record a new session titled after its first message."""
        agent_id = self._get_session().agent_id
        if not agent_id:
            return
        now = datetime.now()
        await self._settings.save_session(
            SavedSessionInfo(
                session_id=session_id,
                agent_id=agent_id,
                cwd=self._cwd,
                title=truncate_title(message),
                created_at=now,
                updated_at=now,
            )
        )
        self.invalidate_cache()
