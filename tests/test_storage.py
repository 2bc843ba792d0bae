"""Tests for local session persistence.

Tests coverage for:
- src/obsius/persistence/storage.py
- src/obsius/persistence/settings_store.py
"""

from __future__ import annotations

from datetime import datetime

import pytest
import yaml

from obsius.models.context import AutoMentionContext
from obsius.models.messages import (
    AgentThoughtContent,
    ChatMessage,
    ImageContent,
    MessageRole,
    PermissionRequest,
    PermissionRequestContent,
    PlanContent,
    TextContent,
    TextWithContextContent,
    ToolCallContent,
)
from obsius.models.session_info import SavedSessionInfo
from obsius.persistence import storage
from obsius.persistence.settings_store import YamlSettingsStore
from obsius.types.common import (
    DiffToolCallContent,
    PermissionOption,
    PermissionOptionKind,
    PlanEntry,
    ToolCallLocation,
    ToolCallStatus,
)


def record(session_id: str, title: str | None = "Title", updated: datetime | None = None):
    stamp = updated or datetime(2026, 3, 1, 9, 30)
    return SavedSessionInfo(
        session_id=session_id,
        agent_id="claude-code-acp",
        cwd="/vault",
        title=title,
        created_at=stamp,
        updated_at=stamp,
    )


# =============================================================================
# Fixtures
# =============================================================================


@pytest.fixture
def store(tmp_path):
    return YamlSettingsStore(str(tmp_path))


@pytest.fixture
def sessions_dir(tmp_path):
    return tmp_path / "sessions"


# =============================================================================
# Files
# =============================================================================


class TestPaths:
    def test_record_and_message_paths(self, sessions_dir) -> None:
        assert storage.get_record_path(sessions_dir, "abc").name == "abc.yaml"
        assert storage.get_messages_path(sessions_dir, "abc").name == "abc.messages.yaml"

    def test_unsafe_ids_stay_inside_directory(self, sessions_dir) -> None:
        path = storage.get_record_path(sessions_dir, "../../etc/passwd")

        assert path.parent == sessions_dir
        assert "/" not in path.name

    def test_distinct_ids_get_distinct_files(self, sessions_dir) -> None:
        ids = ["a/b", "a_b", "a.b", "b64-YV9i", "sess-1"]

        names = {storage.get_record_path(sessions_dir, i).name for i in ids}

        assert len(names) == len(ids)
        assert storage.get_record_path(sessions_dir, "sess-1").name == "sess-1.yaml"

    def test_encoded_ids_round_trip(self, sessions_dir) -> None:
        storage.save_session_record(sessions_dir, record("a/b"))
        storage.save_session_record(sessions_dir, record("a_b"))

        assert sorted(r.session_id for r in storage.list_session_records(sessions_dir)) == [
            "a/b",
            "a_b",
        ]

    def test_atomic_write(self, tmp_path) -> None:
        path = tmp_path / "nested" / "data.yaml"

        storage.write_yaml_atomic(path, {"a": 1})
        storage.write_yaml_atomic(path, {"a": 2})

        assert yaml.safe_load(path.read_text(encoding="utf-8")) == {"a": 2}
        assert not (tmp_path / "nested" / "data.yaml.tmp").exists()


class TestSessionRecords:
    def test_round_trip(self, sessions_dir) -> None:
        info = record("s1")

        path = storage.save_session_record(sessions_dir, info)

        assert storage.load_session_record(path) == info

    def test_listing_is_newest_first(self, sessions_dir) -> None:
        storage.save_session_record(sessions_dir, record("old", updated=datetime(2026, 1, 1)))
        storage.save_session_record(sessions_dir, record("new", updated=datetime(2026, 2, 1)))
        storage.save_messages(sessions_dir, "new", "claude-code-acp", [])

        assert [r.session_id for r in storage.list_session_records(sessions_dir)] == [
            "new",
            "old",
        ]

    def test_invalid_records_are_skipped(self, sessions_dir) -> None:
        storage.save_session_record(sessions_dir, record("good"))
        (sessions_dir / "broken.yaml").write_text("session_id: x\n", encoding="utf-8")
        (sessions_dir / "garbage.yaml").write_text(": : [", encoding="utf-8")

        assert [r.session_id for r in storage.list_session_records(sessions_dir)] == ["good"]

    def test_missing_directory(self, sessions_dir) -> None:
        assert storage.list_session_records(sessions_dir) == []

    def test_delete(self, sessions_dir) -> None:
        storage.save_session_record(sessions_dir, record("s1"))
        storage.save_messages(sessions_dir, "s1", "claude-code-acp", [])

        assert storage.delete_session_files(sessions_dir, "s1")
        assert not storage.delete_session_files(sessions_dir, "s1")
        assert storage.list_session_records(sessions_dir) == []


# =============================================================================
# Messages
# =============================================================================


class TestMessages:
    def test_text_and_context(self, sessions_dir) -> None:
        messages = [
            ChatMessage(
                role=MessageRole.USER,
                content=(
                    TextWithContextContent(
                        text="Summarize",
                        auto_mention_context=AutoMentionContext(
                            note_name="a", note_path="notes/a.md", from_line=1, to_line=4
                        ),
                    ),
                    ImageContent(data="iVBORw0KGgo=", mime_type="image/png"),
                ),
            ),
            ChatMessage(
                role=MessageRole.ASSISTANT,
                content=(AgentThoughtContent(text="thinking"), TextContent(text="Done")),
            ),
        ]

        storage.save_messages(sessions_dir, "s1", "claude-code-acp", messages)

        assert storage.load_messages(sessions_dir, "s1") == messages

    def test_tool_call_and_plan(self, sessions_dir) -> None:
        tool_call = ToolCallContent(
            tool_call_id="t1",
            title="Edit a.md",
            status=ToolCallStatus.COMPLETED,
            kind="edit",
            content=(DiffToolCallContent(path="a.md", old_text="a", new_text="b"),),
            locations=(ToolCallLocation(path="a.md", line=2),),
            raw_input={"path": "a.md"},
        )
        plan = PlanContent(entries=(PlanEntry(content="Step", status="pending"),))
        message = ChatMessage(role=MessageRole.ASSISTANT, content=(tool_call, plan))

        storage.save_messages(sessions_dir, "s1", "claude-code-acp", [message])

        assert storage.load_messages(sessions_dir, "s1") == [message]

    def test_restored_permission_is_inactive(self, sessions_dir) -> None:
        option = PermissionOption(
            option_id="allow", name="Allow", kind=PermissionOptionKind.ALLOW_ONCE
        )
        request = PermissionRequest(request_id="r1", options=(option,), is_active=True)
        message = ChatMessage(
            role=MessageRole.ASSISTANT,
            content=(
                PermissionRequestContent(
                    tool_call=ToolCallContent(tool_call_id="t1", permission_request=request)
                ),
            ),
        )

        storage.save_messages(sessions_dir, "s1", "claude-code-acp", [message])
        [restored] = storage.load_messages(sessions_dir, "s1")

        permission = restored.content[0].tool_call.permission_request
        assert permission.request_id == "r1"
        assert permission.options == (option,)
        assert not permission.is_active

    def test_unknown_content_is_dropped(self) -> None:
        message = storage.message_from_dict(
            {
                "id": "m1",
                "role": "assistant",
                "timestamp": "2026-03-01T09:30:00",
                "content": [{"type": "hologram"}, {"type": "text", "text": "kept"}],
            }
        )

        assert message.content == (TextContent(text="kept"),)

    def test_missing_file(self, sessions_dir) -> None:
        assert storage.load_messages(sessions_dir, "nope") is None

    def test_invalid_file(self, sessions_dir) -> None:
        sessions_dir.mkdir(parents=True)
        storage.get_messages_path(sessions_dir, "s1").write_text(
            "messages:\n  - role: wizard\n", encoding="utf-8"
        )

        assert storage.load_messages(sessions_dir, "s1") is None


# =============================================================================
# YamlSettingsStore
# =============================================================================


class TestYamlSettingsStore:
    @pytest.mark.asyncio
    async def test_update_settings_writes_vault_layer(self, store, tmp_path) -> None:
        config_path = tmp_path / ".obsius" / "config.yaml"
        config_path.parent.mkdir(parents=True)
        config_path.write_text("custom_key: keep\n", encoding="utf-8")

        await store.update_settings({"last_used_models": {"claude-code-acp": "opus"}})

        written = yaml.safe_load(config_path.read_text(encoding="utf-8"))
        assert written == {
            "custom_key": "keep",
            "last_used_models": {"claude-code-acp": "opus"},
        }
        assert store.get_snapshot().last_used_models == {"claude-code-acp": "opus"}

    @pytest.mark.asyncio
    async def test_subscribers_see_updates(self, store) -> None:
        seen = []
        unsubscribe = store.subscribe(seen.append)

        await store.update_settings({"auto_allow_permissions": True})
        unsubscribe()
        await store.update_settings({"auto_allow_permissions": False})

        assert [s.auto_allow_permissions for s in seen] == [True]

    @pytest.mark.asyncio
    async def test_sessions_live_under_vault(self, store, tmp_path) -> None:
        await store.save_session(record("s1"))

        assert (tmp_path / ".obsius" / "sessions" / "s1.yaml").exists()
        assert [r.session_id for r in store.get_saved_sessions()] == ["s1"]

    @pytest.mark.asyncio
    async def test_resave_keeps_created_at_and_title(self, store) -> None:
        first = record("s1", title="Original", updated=datetime(2026, 1, 1))
        await store.save_session(first)

        await store.save_session(record("s1", title=None, updated=datetime(2026, 2, 1)))

        [saved] = store.get_saved_sessions()
        assert saved.created_at == datetime(2026, 1, 1)
        assert saved.updated_at == datetime(2026, 2, 1)
        assert saved.title == "Original"

    @pytest.mark.asyncio
    async def test_filters(self, store) -> None:
        await store.save_session(record("s1"))
        await store.save_session(
            SavedSessionInfo(session_id="s2", agent_id="codex-acp", cwd="/other")
        )

        assert [r.session_id for r in store.get_saved_sessions("codex-acp")] == ["s2"]
        assert [r.session_id for r in store.get_saved_sessions(cwd="/vault")] == ["s1"]
        assert store.get_saved_sessions("claude-code-acp", "/other") == []

    @pytest.mark.asyncio
    async def test_messages_bump_updated_at(self, store) -> None:
        await store.save_session(record("s1", updated=datetime(2020, 1, 1)))
        messages = [ChatMessage(role=MessageRole.USER, content=(TextContent(text="hi"),))]

        await store.save_session_messages("s1", "claude-code-acp", messages)

        assert await store.load_session_messages("s1") == messages
        assert store.get_saved_sessions()[0].updated_at > datetime(2020, 1, 1)

    @pytest.mark.asyncio
    async def test_delete(self, store) -> None:
        await store.save_session(record("s1"))
        await store.save_session_messages("s1", "claude-code-acp", [])

        await store.delete_session("s1")

        assert store.get_saved_sessions() == []
        assert await store.load_session_messages("s1") is None
