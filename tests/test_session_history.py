"""Tests for session listing, caching, restore, fork and delete.

Tests coverage for:
- src/obsius/session/history.py
- src/obsius/session/operations.py
"""

from __future__ import annotations

from datetime import datetime, timedelta
from unittest.mock import Mock, call

import pytest

from obsius.config.schema import CLAUDE_AGENT_ID, CODEX_AGENT_ID
from obsius.models.errors import SessionRestoreError
from obsius.models.messages import ChatMessage, MessageRole, TextContent
from obsius.models.session import ChatSession
from obsius.models.session_info import SavedSessionInfo
from obsius.session.history import (
    SessionCapabilityFlags,
    SessionHistoryManager,
    SessionListCache,
    get_session_capability_flags,
)
from obsius.session.operations import (
    SessionLoadHooks,
    get_forked_session_title,
    merge_with_local_titles,
    truncate_title,
)
from obsius.types.responses import ListSessionsResponse
from tests.utils import (
    FakeAgentClient,
    MemorySettingsStore,
    create_capabilities,
    create_modes,
    create_session_info,
)


class FakeClock:
    def __init__(self) -> None:
        self.now = 1000.0

    def __call__(self) -> float:
        return self.now


def saved(session_id: str, title: str | None = None, agent_id: str = CLAUDE_AGENT_ID, age: int = 0):
    stamp = datetime(2026, 1, 1, 12, 0) - timedelta(minutes=age)
    return SavedSessionInfo(
        session_id=session_id,
        agent_id=agent_id,
        cwd="/vault",
        title=title,
        created_at=stamp,
        updated_at=stamp,
    )


def cached_messages() -> list[ChatMessage]:
    return [ChatMessage(role=MessageRole.USER, content=(TextContent(text="from cache"),))]


# =============================================================================
# Fixtures
# =============================================================================


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def client():
    return FakeAgentClient(modes=create_modes("default"))


@pytest.fixture
def settings():
    return MemorySettingsStore()


@pytest.fixture
def events():
    """Parent mock so hook calls are recorded in order."""
    return Mock()


@pytest.fixture
def hooks(events):
    return SessionLoadHooks(
        on_session_load=events.load,
        on_messages_restore=events.restore,
        on_load_start=events.start,
        on_load_end=events.end,
    )


@pytest.fixture
def session():
    """Mutable holder so tests can swap agent capabilities."""
    return {
        "value": ChatSession(
            agent_id=CLAUDE_AGENT_ID,
            agent_display_name="Claude Code",
            working_directory="/vault",
            agent_capabilities=create_capabilities(list_=True, load=True, fork=True),
        )
    }


@pytest.fixture
def history(client, settings, session, hooks, clock):
    return SessionHistoryManager(
        client, settings, lambda: session["value"], "/vault", hooks, clock=clock
    )


def set_capabilities(session: dict, **flags) -> None:
    current = session["value"]
    session["value"] = ChatSession(
        agent_id=current.agent_id,
        agent_display_name=current.agent_display_name,
        working_directory=current.working_directory,
        agent_capabilities=create_capabilities(**flags),
    )


# =============================================================================
# Capabilities and cache
# =============================================================================


class TestCapabilities:
    def test_no_capabilities(self) -> None:
        flags = get_session_capability_flags(None)

        assert flags == SessionCapabilityFlags()
        assert not flags.can_show_session_history
        assert flags.is_using_local_sessions

    def test_flags(self) -> None:
        flags = get_session_capability_flags(create_capabilities(list_=True, resume=True))

        assert flags.can_list
        assert flags.can_resume
        assert flags.can_restore
        assert not flags.can_load
        assert not flags.can_fork
        assert not flags.is_using_local_sessions

    def test_cache_validity(self) -> None:
        cache = SessionListCache(sessions=(), next_cursor=None, cwd="/vault", timestamp=0.0)

        assert cache.is_valid("/vault", 299.0)
        assert not cache.is_valid("/vault", 301.0)
        assert not cache.is_valid("/other", 1.0)


# =============================================================================
# Listing
# =============================================================================


class TestFetchSessions:
    @pytest.mark.asyncio
    async def test_agent_listing_with_local_titles(self, history, client, settings) -> None:
        client.list_pages[None] = ListSessionsResponse(
            sessions=[create_session_info("a", "Agent title"), create_session_info("b", "B")],
            next_cursor="page-2",
        )
        settings.records["a"] = saved("a", "Local title")

        await history.fetch_sessions("/vault")

        state = history.state
        assert [s.title for s in state.sessions] == ["Local title", "B"]
        assert state.local_session_ids == frozenset({"a"})
        assert state.next_cursor == "page-2"
        assert state.has_more
        assert not state.loading
        assert client.called("list_sessions") == [("list_sessions", "/vault", None)]

    @pytest.mark.asyncio
    async def test_cache_hit_within_ttl(self, history, client, clock) -> None:
        client.list_pages[None] = ListSessionsResponse(sessions=[create_session_info("a")])
        await history.fetch_sessions("/vault")

        clock.now += 299
        await history.fetch_sessions("/vault")

        assert len(client.called("list_sessions")) == 1
        assert [s.session_id for s in history.sessions] == ["a"]

    @pytest.mark.asyncio
    async def test_cache_expires(self, history, client, clock) -> None:
        await history.fetch_sessions("/vault")

        clock.now += 301
        await history.fetch_sessions("/vault")

        assert len(client.called("list_sessions")) == 2

    @pytest.mark.asyncio
    async def test_cache_is_per_cwd(self, history, client) -> None:
        await history.fetch_sessions("/vault")
        await history.fetch_sessions("/elsewhere")

        assert len(client.called("list_sessions")) == 2

    @pytest.mark.asyncio
    async def test_local_sessions_without_list(self, history, client, settings, session) -> None:
        set_capabilities(session, load=True)
        settings.records["old"] = saved("old", "Older", age=10)
        settings.records["new"] = saved("new", "Newer")
        settings.records["codex"] = saved("codex", agent_id=CODEX_AGENT_ID)

        await history.fetch_sessions()

        assert [s.session_id for s in history.sessions] == ["new", "old"]
        assert history.state.local_session_ids == frozenset({"new", "old"})
        assert client.called("list_sessions") == []

    @pytest.mark.asyncio
    async def test_list_without_restore_or_fork_uses_local(self, history, client, session) -> None:
        set_capabilities(session, list_=True)

        await history.fetch_sessions()

        assert client.called("list_sessions") == []

    @pytest.mark.asyncio
    async def test_fetch_failure(self, history, client) -> None:
        client.failures["list_sessions"] = RuntimeError("boom")

        await history.fetch_sessions()

        assert history.state.error == "Failed to fetch sessions: boom"
        assert history.sessions == ()
        assert not history.state.loading
        assert history.cache is None

    @pytest.mark.asyncio
    async def test_load_more(self, history, client) -> None:
        client.list_pages[None] = ListSessionsResponse(
            sessions=[create_session_info("a")], next_cursor="page-2"
        )
        client.list_pages["page-2"] = ListSessionsResponse(sessions=[create_session_info("b")])
        await history.fetch_sessions("/vault")

        await history.load_more_sessions()

        assert [s.session_id for s in history.sessions] == ["a", "b"]
        assert not history.state.has_more
        assert client.called("list_sessions")[-1] == ("list_sessions", "/vault", "page-2")
        assert [s.session_id for s in history.cache.sessions] == ["a", "b"]

    @pytest.mark.asyncio
    async def test_load_more_without_cursor(self, history, client) -> None:
        await history.fetch_sessions()
        await history.load_more_sessions()

        assert len(client.called("list_sessions")) == 1

    @pytest.mark.asyncio
    async def test_load_more_failure(self, history, client) -> None:
        client.list_pages[None] = ListSessionsResponse(
            sessions=[create_session_info("a")], next_cursor="page-2"
        )
        await history.fetch_sessions()
        client.failures["list_sessions"] = RuntimeError("offline")

        await history.load_more_sessions()

        assert history.state.error == "Failed to load more sessions: offline"
        assert [s.session_id for s in history.sessions] == ["a"]


# =============================================================================
# Restore / fork / delete
# =============================================================================


class TestRestore:
    @pytest.mark.asyncio
    async def test_load_replays_inside_window(self, history, client, settings, events) -> None:
        settings.messages["s1"] = cached_messages()
        await history.fetch_sessions()

        await history.restore_session("s1", "/vault")

        modes = create_modes("default")
        assert events.mock_calls == [
            call.load("s1", None, None),
            call.start(),
            call.load("s1", modes, None),
            call.restore(settings.messages["s1"]),
            call.end(),
        ]
        assert client.called("load_session") == [("load_session", "s1", "/vault")]
        assert history.cache is None
        assert not history.state.loading

    @pytest.mark.asyncio
    async def test_load_failure_closes_window(self, history, client, events) -> None:
        client.failures["load_session"] = RuntimeError("gone")

        with pytest.raises(RuntimeError):
            await history.restore_session("s1", "/vault")

        assert events.mock_calls[-1] == call.end()
        assert history.state.error == "Failed to restore session: gone"
        assert not history.state.loading

    @pytest.mark.asyncio
    async def test_resume_without_load(self, history, client, settings, session, events) -> None:
        set_capabilities(session, resume=True)
        settings.messages["s1"] = cached_messages()

        await history.restore_session("s1", "/vault")

        assert client.called("resume_session") == [("resume_session", "s1", "/vault")]
        assert client.called("load_session") == []
        assert call.start() not in events.mock_calls
        events.restore.assert_called_once()

    @pytest.mark.asyncio
    async def test_resume_with_empty_cache(self, history, session, events) -> None:
        set_capabilities(session, resume=True)

        await history.restore_session("s1", "/vault")

        events.restore.assert_not_called()

    @pytest.mark.asyncio
    async def test_unsupported(self, history, session) -> None:
        set_capabilities(session, list_=True)

        with pytest.raises(SessionRestoreError):
            await history.restore_session("s1", "/vault")

        assert history.state.error == (
            "Failed to restore session: Session restoration is not supported"
        )


class TestFork:
    @pytest.mark.asyncio
    async def test_fork(self, history, client, settings, events) -> None:
        client.list_pages[None] = ListSessionsResponse(
            sessions=[create_session_info("s1", "Original")]
        )
        settings.messages["s1"] = cached_messages()
        await history.fetch_sessions()

        new_id = await history.fork_session("s1", "/vault")

        assert new_id == "forked-1"
        events.load.assert_called_once_with("forked-1", create_modes("default"), None)
        record = settings.records["forked-1"]
        assert record.title == "Fork: Original"
        assert record.agent_id == CLAUDE_AGENT_ID
        assert settings.messages["forked-1"] == settings.messages["s1"]
        assert history.cache is None

    @pytest.mark.asyncio
    async def test_fork_of_unlisted_session(self, history, settings) -> None:
        await history.fork_session("unknown", "/vault")

        assert settings.records["forked-1"].title == "Fork: Session"
        assert "forked-1" not in settings.messages

    @pytest.mark.asyncio
    async def test_fork_without_new_id(self, history, client) -> None:
        client.fork_id = None

        with pytest.raises(SessionRestoreError):
            await history.fork_session("s1", "/vault")

        assert history.state.error.startswith("Failed to fork session")

    @pytest.mark.asyncio
    async def test_fork_of_long_title(self, history, client, settings) -> None:
        title = "Refactor the authentication module across twelve files end to end"
        client.list_pages[None] = ListSessionsResponse(sessions=[create_session_info("s1", title)])
        await history.fetch_sessions()

        await history.fork_session("s1", "/vault")

        forked_title = settings.records["forked-1"].title
        assert forked_title == "Fork: Refactor the authentication module across tw..."
        assert len(forked_title) == 50

    @pytest.mark.parametrize(
        ("original", "expected"),
        [
            (None, "Fork: Session"),
            ("Short", "Fork: Short"),
            ("x" * 44, "Fork: " + "x" * 44),
            ("x" * 45, "Fork: " + "x" * 44 + "..."),
        ],
    )
    def test_forked_title(self, original, expected) -> None:
        assert get_forked_session_title(original) == expected


class TestDeleteAndSave:
    @pytest.mark.asyncio
    async def test_delete(self, history, client, settings) -> None:
        client.list_pages[None] = ListSessionsResponse(
            sessions=[create_session_info("a"), create_session_info("b")]
        )
        settings.records["a"] = saved("a")
        await history.fetch_sessions()

        await history.delete_session("a")

        assert [s.session_id for s in history.sessions] == ["b"]
        assert "a" not in history.state.local_session_ids
        assert "a" not in settings.records
        assert history.cache is None

    @pytest.mark.asyncio
    async def test_save_locally(self, history, settings) -> None:
        await history.save_session_locally("s9", "m" * 60)

        record = settings.records["s9"]
        assert record.title == "m" * 50 + "..."
        assert record.cwd == "/vault"
        assert record.agent_id == CLAUDE_AGENT_ID

    def test_truncate_title(self) -> None:
        assert truncate_title("short") == "short"
        assert truncate_title("abcdef", max_length=3) == "abc..."

    def test_merge_with_local_titles(self) -> None:
        merged = merge_with_local_titles(
            [create_session_info("a", "remote"), create_session_info("b", "remote b")],
            [saved("a", None), saved("b", "local b")],
        )

        assert [s.title for s in merged] == ["remote", "local b"]
