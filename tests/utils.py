"""Shared test doubles for the obsius session core."""

from __future__ import annotations

import asyncio
from collections.abc import Callable, Sequence
from typing import Any

from obsius.config.loader import dict_to_settings, settings_to_dict
from obsius.config.merge import deep_merge
from obsius.config.schema import Settings
from obsius.models.context import NoteMetadata
from obsius.models.errors import AgentRequestError, ErrorInfo
from obsius.models.messages import ChatMessage
from obsius.models.session_info import SavedSessionInfo
from obsius.models.updates import SessionUpdate
from obsius.ports import AgentConfig, SelectionCallback
from obsius.types.common import (
    AgentCapabilities,
    AuthMethod,
    ModelInfo,
    ModeInfo,
    PromptCapabilities,
    SessionCapabilities,
    SessionModelState,
    SessionModeState,
)
from obsius.types.content import PromptContent
from obsius.types.responses import (
    InitializeResponse,
    ListSessionsResponse,
    PromptResponse,
    SessionInfo,
    SessionResponse,
)


def create_modes(current: str = "default", *ids: str) -> SessionModeState:
    """Mode state offering ``current`` plus ``ids``."""
    return SessionModeState(
        available_modes=[ModeInfo(id=i, name=i.title()) for i in (current, *ids)],
        current_mode_id=current,
    )


def create_models(current: str = "sonnet", *ids: str) -> SessionModelState:
    """Model state offering ``current`` plus ``ids``."""
    return SessionModelState(
        available_models=[ModelInfo(model_id=i, name=i.title()) for i in (current, *ids)],
        current_model_id=current,
    )


def create_capabilities(
    *,
    load: bool = False,
    list_: bool = False,
    resume: bool = False,
    fork: bool = False,
    embedded_context: bool = False,
) -> AgentCapabilities:
    return AgentCapabilities(
        load_session=load,
        prompt_capabilities=PromptCapabilities(embedded_context=embedded_context),
        session_capabilities=SessionCapabilities(
            list_={} if list_ else None,
            resume={} if resume else None,
            fork={} if fork else None,
        ),
    )


def rpc_error(code: int, message: str = "Request failed", data: Any = None) -> AgentRequestError:
    return AgentRequestError(code, message, data)


class FakeAgentClient:
    """In-memory AgentClient.

    Every call is appended to ``calls`` as ``(method, *args)``. Set an
    exception in ``failures[method]`` to make that method raise.
    Calls to a method listed in ``gates`` wait for that event first, which
    keeps the call in flight until the test sets it.
    """

    def __init__(
        self,
        capabilities: AgentCapabilities | None = None,
        auth_methods: Sequence[AuthMethod] = (),
        modes: SessionModeState | None = None,
        models: SessionModelState | None = None,
    ) -> None:
        self.calls: list[tuple[Any, ...]] = []
        self.failures: dict[str, BaseException] = {}
        self.gates: dict[str, asyncio.Event] = {}
        self.held: set[str] = set()
        self.prompt_errors: list[BaseException] = []
        self.auth_result = True
        self.capabilities = capabilities or AgentCapabilities()
        self.auth_methods = list(auth_methods)
        self.modes = modes
        self.models = models
        self.session_ids: list[str] = []
        self.fork_id = "forked-1"
        self.list_pages: dict[str | None, ListSessionsResponse] = {}
        self.initialized = False
        self.agent_id: str | None = None
        self._counter = 0
        self._update_callback: Callable[[SessionUpdate], None] | None = None
        self._error_callback: Callable[[ErrorInfo], None] | None = None

    def _record(self, method: str, *args: Any) -> None:
        self.calls.append((method, *args))
        failure = self.failures.get(method)
        if failure is not None:
            raise failure

    async def _wait_for_gate(self, method: str) -> None:
        gate = self.gates.get(method)
        if gate is None:
            return
        self.held.add(method)
        try:
            await gate.wait()
        finally:
            self.held.discard(method)

    def hold(self, method: str) -> asyncio.Event:
        """Keep calls to ``method`` pending until the returned event is set."""
        gate = asyncio.Event()
        self.gates[method] = gate
        return gate

    async def reached(self, method: str) -> None:
        """Yield to the event loop until a call to ``method`` is held."""
        for _ in range(1000):
            if method in self.held:
                return
            await asyncio.sleep(0)
        raise AssertionError(f"{method} was never called")

    def called(self, method: str) -> list[tuple[Any, ...]]:
        return [c for c in self.calls if c[0] == method]

    async def initialize(self, config: AgentConfig) -> InitializeResponse:
        self._record("initialize", config)
        self.initialized = True
        self.agent_id = config.id
        return InitializeResponse(
            agent_capabilities=self.capabilities, auth_methods=self.auth_methods
        )

    async def new_session(self, cwd: str) -> SessionResponse:
        await self._wait_for_gate("new_session")
        self._record("new_session", cwd)
        if self.session_ids:
            session_id = self.session_ids.pop(0)
        else:
            self._counter += 1
            session_id = f"session-{self._counter}"
        return SessionResponse(session_id=session_id, modes=self.modes, models=self.models)

    async def load_session(self, session_id: str, cwd: str) -> SessionResponse:
        self._record("load_session", session_id, cwd)
        return SessionResponse(modes=self.modes, models=self.models)

    async def resume_session(self, session_id: str, cwd: str) -> SessionResponse:
        self._record("resume_session", session_id, cwd)
        return SessionResponse(modes=self.modes, models=self.models)

    async def fork_session(self, session_id: str, cwd: str) -> SessionResponse:
        self._record("fork_session", session_id, cwd)
        return SessionResponse(session_id=self.fork_id, modes=self.modes, models=self.models)

    async def list_sessions(
        self, cwd: str | None = None, cursor: str | None = None
    ) -> ListSessionsResponse:
        self._record("list_sessions", cwd, cursor)
        return self.list_pages.get(cursor, ListSessionsResponse())

    async def send_prompt(
        self, session_id: str, content: Sequence[PromptContent]
    ) -> PromptResponse | None:
        self._record("send_prompt", session_id, list(content))
        if self.prompt_errors:
            raise self.prompt_errors.pop(0)
        return PromptResponse()

    async def cancel(self, session_id: str) -> None:
        await self._wait_for_gate("cancel")
        self._record("cancel", session_id)

    async def disconnect(self) -> None:
        self._record("disconnect")
        self.initialized = False
        self.agent_id = None

    def is_initialized(self) -> bool:
        return self.initialized

    def get_current_agent_id(self) -> str | None:
        return self.agent_id

    async def set_session_mode(self, session_id: str, mode_id: str) -> None:
        await self._wait_for_gate("set_session_mode")
        self._record("set_session_mode", session_id, mode_id)

    async def set_session_model(self, session_id: str, model_id: str) -> None:
        await self._wait_for_gate("set_session_model")
        self._record("set_session_model", session_id, model_id)

    async def authenticate(self, method_id: str) -> bool:
        self._record("authenticate", method_id)
        return self.auth_result

    async def respond_to_permission(self, request_id: str, option_id: str) -> None:
        self._record("respond_to_permission", request_id, option_id)

    def on_session_update(self, callback: Callable[[SessionUpdate], None]) -> None:
        self._update_callback = callback

    def on_error(self, callback: Callable[[ErrorInfo], None]) -> None:
        self._error_callback = callback

    def emit(self, update: SessionUpdate) -> None:
        """Deliver ``update`` as if the agent had sent it."""
        assert self._update_callback is not None
        self._update_callback(update)

    def emit_error(self, error: ErrorInfo) -> None:
        assert self._error_callback is not None
        self._error_callback(error)


class FakeVaultAccess:
    """VaultAccess over a dict of note paths to content."""

    def __init__(
        self,
        notes: dict[str, str] | None = None,
        base_path: str = "/vault",
        unreadable: Sequence[str] = (),
    ) -> None:
        self.notes = dict(notes or {})
        self.unreadable = set(unreadable)
        self.active_note: NoteMetadata | None = None
        self.modified: dict[str, float] = {}
        self._base_path = base_path
        self._subscribers: list[SelectionCallback] = []

    @property
    def base_path(self) -> str:
        return self._base_path

    def metadata(self, path: str) -> NoteMetadata:
        name = path.rsplit("/", 1)[-1]
        stem, _, extension = name.rpartition(".")
        return NoteMetadata(
            path=path,
            name=stem or name,
            extension=extension if stem else "",
            modified=self.modified.get(path, 0.0),
        )

    async def read_note(self, path: str) -> str:
        if path in self.unreadable or path not in self.notes:
            raise FileNotFoundError(path)
        return self.notes[path]

    async def search_notes(self, query: str) -> list[NoteMetadata]:
        all_paths = sorted({*self.notes, *self.unreadable})
        return [self.metadata(p) for p in all_paths if query.lower() in p.lower()]

    def get_active_note(self) -> NoteMetadata | None:
        return self.active_note

    def subscribe_selection_changes(self, callback: SelectionCallback) -> Callable[[], None]:
        self._subscribers.append(callback)

        def unsubscribe() -> None:
            if callback in self._subscribers:
                self._subscribers.remove(callback)

        return unsubscribe

    @property
    def subscriber_count(self) -> int:
        return len(self._subscribers)

    def set_active_note(self, note: NoteMetadata | None) -> None:
        self.active_note = note
        for callback in list(self._subscribers):
            callback(note)


class MemorySettingsStore:
    """SettingsStore kept entirely in memory."""

    def __init__(self, settings: Settings | None = None) -> None:
        self.settings = settings or Settings()
        self.records: dict[str, SavedSessionInfo] = {}
        self.messages: dict[str, list[ChatMessage]] = {}
        self.updates: list[dict[str, Any]] = []
        self.fail_saves = False

    def get_snapshot(self) -> Settings:
        return self.settings

    async def update_settings(self, partial: dict[str, Any]) -> None:
        self.updates.append(partial)
        self.settings = dict_to_settings(deep_merge(settings_to_dict(self.settings), partial))

    async def save_session(self, info: SavedSessionInfo) -> None:
        self.records[info.session_id] = info

    async def save_session_messages(
        self, session_id: str, agent_id: str, messages: Sequence[ChatMessage]
    ) -> None:
        if self.fail_saves:
            raise OSError("disk full")
        self.messages[session_id] = list(messages)

    async def load_session_messages(self, session_id: str) -> list[ChatMessage] | None:
        return self.messages.get(session_id)

    def get_saved_sessions(
        self, agent_id: str | None = None, cwd: str | None = None
    ) -> list[SavedSessionInfo]:
        records = [
            r
            for r in self.records.values()
            if (agent_id is None or r.agent_id == agent_id) and (cwd is None or r.cwd == cwd)
        ]
        return sorted(records, key=lambda r: r.updated_at, reverse=True)

    async def delete_session(self, session_id: str) -> None:
        self.records.pop(session_id, None)
        self.messages.pop(session_id, None)


def create_session_info(
    session_id: str, title: str | None = None, cwd: str = "/vault"
) -> SessionInfo:
    return SessionInfo(session_id=session_id, cwd=cwd, title=title)
