"""Tests for prompt preparation, sending and attachment paths."""

from __future__ import annotations

import pytest

from obsius.models.context import (
    AutoMentionContext,
    ChatContextReference,
    ChatContextSelection,
    ContextType,
    EditorPosition,
    NoteMetadata,
)
from obsius.models.errors import AcpErrorCode
from obsius.prompts.paths import (
    build_file_uri,
    convert_windows_path_to_wsl,
    join_vault_path,
    resolve_absolute_path,
)
from obsius.prompts.preparation import (
    PreparePromptInput,
    extract_mention_names,
    extract_selection_text,
    prepare_prompt,
    truncate_for_context,
)
from obsius.prompts.sending import SendPreparedPromptInput, send_prepared_prompt
from obsius.tokens.context import create_chat_context_token
from obsius.types.common import AuthMethod
from obsius.types.content import (
    ImagePromptContent,
    ResourceAnnotations,
    ResourcePromptContent,
    TextPromptContent,
    TextResource,
)
from tests.utils import FakeAgentClient, FakeVaultAccess, rpc_error

NOTE_TEXT = "line1\nline2\nline3"
NOTE_URI = "file:///vault/notes/a.md"
EPOCH = "1970-01-01T00:00:00.000Z"


# =============================================================================
# Fixtures
# =============================================================================


@pytest.fixture
def vault():
    return FakeVaultAccess(
        notes={"notes/a.md": NOTE_TEXT}, unreadable=["notes/b.md"], base_path="/vault"
    )


def params(message: str, **kwargs) -> PreparePromptInput:
    return PreparePromptInput(message=message, vault_base_path="/vault", **kwargs)


def sel(from_line: int, from_ch: int, to_line: int, to_ch: int) -> ChatContextSelection:
    return ChatContextSelection(
        from_=EditorPosition(from_line, from_ch), to=EditorPosition(to_line, to_ch)
    )


def resource(text: str, priority: float, last_modified: str | None = None) -> ResourcePromptContent:
    return ResourcePromptContent(
        resource=TextResource(uri=NOTE_URI, mime_type="text/markdown", text=text),
        annotations=ResourceAnnotations(
            audience=["assistant"], priority=priority, last_modified=last_modified
        ),
    )


# =============================================================================
# Helpers
# =============================================================================


class TestTextHelpers:
    def test_mention_names_in_order_without_duplicates(self) -> None:
        names = extract_mention_names("@[[b]] and @[[a|Alias]] and @[[b]] and @[[ ]]")
        assert names == ["b", "a"]

    def test_selection_single_line(self) -> None:
        assert extract_selection_text("hello world", sel(0, 6, 0, 11)) == "world"

    def test_selection_multi_line(self) -> None:
        assert extract_selection_text(NOTE_TEXT, sel(0, 1, 2, 2)) == "ine1\nline2\nli"

    def test_selection_reversed_and_clipped(self) -> None:
        assert extract_selection_text(NOTE_TEXT, sel(9, 99, 1, 0)) == "line2\nline3"

    def test_truncate_under_limit(self) -> None:
        assert truncate_for_context("abc", 3, "The file") == ("abc", "")

    def test_truncate_over_limit(self) -> None:
        text, note = truncate_for_context("abcdef", 2, "The file")

        assert text == "ab"
        assert note == (
            "\n\n[Note: The file was truncated. Original length: 6 characters, "
            "showing first 2 characters]"
        )


class TestPaths:
    def test_join(self) -> None:
        assert join_vault_path("/vault", "notes/a.md") == "/vault/notes/a.md"
        assert join_vault_path("", "notes/a.md") == "notes/a.md"

    def test_wsl_conversion(self) -> None:
        assert convert_windows_path_to_wsl("C:\\Users\\me\\note.md") == "/mnt/c/Users/me/note.md"
        assert convert_windows_path_to_wsl("/already/posix") == "/already/posix"

    def test_resolve_with_wsl(self) -> None:
        assert resolve_absolute_path("D:/vault", "a.md", convert_to_wsl=True) == "/mnt/d/vault/a.md"
        assert resolve_absolute_path("D:/vault", "a.md") == "D:/vault/a.md"

    def test_file_uri(self) -> None:
        assert build_file_uri("/vault/my note.md") == "file:///vault/my%20note.md"
        assert build_file_uri("C:\\notes\\a b.md") == "file:///C:/notes/a%20b.md"


# =============================================================================
# Text-context mode
# =============================================================================


class TestTextContext:
    @pytest.mark.asyncio
    async def test_plain_message(self, vault) -> None:
        result = await prepare_prompt(params("hello"), vault)

        assert result.display_content == [TextPromptContent(text="hello")]
        assert result.agent_content == [TextPromptContent(text="hello")]
        assert result.auto_mention_context is None

    @pytest.mark.asyncio
    async def test_mentioned_note_is_inlined(self, vault) -> None:
        result = await prepare_prompt(params("@[[a]] explain"), vault)

        assert result.display_content == [TextPromptContent(text="@[[a]] explain")]
        assert result.agent_content == [
            TextPromptContent(
                text=(
                    '<obsidian_mentioned_note ref="/vault/notes/a.md">\n'
                    f"{NOTE_TEXT}\n</obsidian_mentioned_note>\n\n@[[a]] explain"
                )
            )
        ]

    @pytest.mark.asyncio
    async def test_unknown_mention_is_dropped(self, vault) -> None:
        result = await prepare_prompt(params("@[[nothing]] hi"), vault)
        assert result.agent_content == [TextPromptContent(text="@[[nothing]] hi")]

    @pytest.mark.asyncio
    async def test_unreadable_mention_placeholder(self, vault) -> None:
        result = await prepare_prompt(params("@[[b]] hi"), vault)

        assert result.agent_content[0].text.startswith(
            '<obsidian_mentioned_note ref="/vault/notes/b.md">Note could not be read.'
        )

    @pytest.mark.asyncio
    async def test_mentioned_note_truncated(self, vault) -> None:
        result = await prepare_prompt(params("@[[a]]", max_note_length=5), vault)

        text = result.agent_content[0].text
        assert "line1\n\n[Note: This note was truncated. Original length: 17 characters" in text
        assert "line2" not in text

    @pytest.mark.asyncio
    async def test_explicit_selection_reference(self, vault) -> None:
        token = create_chat_context_token(
            ChatContextReference(
                type=ContextType.SELECTION,
                note_path="notes/a.md",
                note_name="a",
                selection=sel(0, 1, 1, 2),
            )
        )

        result = await prepare_prompt(params(f"why {token}"), vault)

        assert result.display_content == [TextPromptContent(text="why")]
        assert result.agent_content == [
            TextPromptContent(
                text=(
                    '<obsidian_explicit_context type="selection" ref="/vault/notes/a.md" '
                    'range="1:2-2:3">\nine1\nli\n</obsidian_explicit_context>\n\nwhy'
                )
            )
        ]

    @pytest.mark.asyncio
    async def test_explicit_folder_reference(self, vault) -> None:
        token = create_chat_context_token(
            ChatContextReference(type=ContextType.FOLDER, note_path="proj", note_name="proj")
        )

        result = await prepare_prompt(params(f"look {token}"), vault)

        assert result.agent_content[0].text.startswith(
            '<obsidian_explicit_context type="folder-path" ref="/vault/proj">'
            "Folder path only (no file content attached).</obsidian_explicit_context>"
        )

    @pytest.mark.asyncio
    async def test_auto_mention_without_selection(self, vault) -> None:
        result = await prepare_prompt(params("hi", active_note=vault.metadata("notes/a.md")), vault)

        assert result.auto_mention_context == AutoMentionContext(
            note_name="a", note_path="notes/a.md"
        )
        assert result.display_content == [TextPromptContent(text="hi")]
        assert result.agent_content == [
            TextPromptContent(
                text=(
                    "<obsidian_opened_note>The user opened the note /vault/notes/a.md in "
                    "Obsidian. This may or may not be related to the current conversation. "
                    "If it seems relevant, consider using the Read tool to examine the "
                    "content.</obsidian_opened_note>\n\n@[[a]]\nhi"
                )
            )
        ]

    @pytest.mark.asyncio
    async def test_auto_mention_with_selection(self, vault) -> None:
        note = vault.metadata("notes/a.md")
        note = NoteMetadata(path=note.path, name=note.name, selection=sel(0, 0, 1, 3))

        result = await prepare_prompt(params("hi", active_note=note), vault)

        assert result.auto_mention_context == AutoMentionContext(
            note_name="a", note_path="notes/a.md", from_line=1, to_line=2
        )
        assert result.agent_content[0].text == (
            '<obsidian_opened_note selection="lines 1-2">\n'
            "The user opened the note /vault/notes/a.md in Obsidian and selected the "
            "following text (lines 1-2):\n\nline1\nline2\n\n"
            "This is what the user is currently focusing on.\n"
            "</obsidian_opened_note>\n\n@[[a]]:1-2\nhi"
        )

    @pytest.mark.asyncio
    async def test_auto_mention_disabled(self, vault) -> None:
        result = await prepare_prompt(
            params(
                "hi", active_note=vault.metadata("notes/a.md"), is_auto_mention_disabled=True
            ),
            vault,
        )

        assert result.auto_mention_context is None
        assert result.agent_content == [TextPromptContent(text="hi")]

    @pytest.mark.asyncio
    async def test_image_only(self, vault) -> None:
        image = ImagePromptContent(data="aGk=", mime_type="image/png")

        result = await prepare_prompt(params("", images=(image,)), vault)

        assert result.display_content == [image]
        assert result.agent_content == [image]


# =============================================================================
# Embedded-context mode
# =============================================================================


class TestEmbeddedContext:
    @pytest.mark.asyncio
    async def test_mentioned_note_becomes_resource(self, vault) -> None:
        result = await prepare_prompt(
            params("@[[a]] explain", supports_embedded_context=True), vault
        )

        assert result.agent_content == [
            resource(NOTE_TEXT, 1.0, EPOCH),
            TextPromptContent(text="@[[a]] explain"),
        ]

    @pytest.mark.asyncio
    async def test_resource_wire_shape(self, vault) -> None:
        result = await prepare_prompt(params("@[[a]]", supports_embedded_context=True), vault)

        assert result.agent_content[0].to_wire() == {
            "type": "resource",
            "resource": {"uri": NOTE_URI, "mimeType": "text/markdown", "text": NOTE_TEXT},
            "annotations": {"audience": ["assistant"], "priority": 1.0, "lastModified": EPOCH},
        }

    @pytest.mark.asyncio
    async def test_unreadable_mention(self, vault) -> None:
        result = await prepare_prompt(params("@[[b]] hi", supports_embedded_context=True), vault)

        assert result.agent_content[0] == TextPromptContent(
            text="The user mentioned file:///vault/notes/b.md, but the note could not be read."
        )

    @pytest.mark.asyncio
    async def test_mention_truncated_inline(self, vault) -> None:
        result = await prepare_prompt(
            params("@[[a]]", supports_embedded_context=True, max_note_length=5), vault
        )

        assert result.agent_content[0].resource.text == (
            "line1\n\n[Note: Truncated from 17 to 5 characters]"
        )

    @pytest.mark.asyncio
    async def test_explicit_file_reference(self, vault) -> None:
        token = create_chat_context_token(
            ChatContextReference(type=ContextType.FILE, note_path="notes/a.md", note_name="a")
        )

        result = await prepare_prompt(
            params(f"why {token}", supports_embedded_context=True), vault
        )

        assert result.agent_content == [
            resource(NOTE_TEXT, 0.95),
            TextPromptContent(
                text=f"The user explicitly attached the full file {NOTE_URI} as context."
            ),
            TextPromptContent(text="why"),
        ]

    @pytest.mark.asyncio
    async def test_unreadable_explicit_selection(self, vault) -> None:
        token = create_chat_context_token(
            ChatContextReference(
                type=ContextType.SELECTION,
                note_path="notes/b.md",
                note_name="b",
                selection=sel(0, 0, 0, 2),
            )
        )

        result = await prepare_prompt(params(token, supports_embedded_context=True), vault)

        assert result.agent_content == [
            TextPromptContent(
                text=(
                    "The user attached a selection from file:///vault/notes/b.md at 1:1-1:3, "
                    "but the file could not be read."
                )
            )
        ]
        assert result.display_content == []

    @pytest.mark.asyncio
    async def test_auto_mention_without_selection(self, vault) -> None:
        result = await prepare_prompt(
            params(
                "hi", active_note=vault.metadata("notes/a.md"), supports_embedded_context=True
            ),
            vault,
        )

        assert result.agent_content == [
            TextPromptContent(
                text=(
                    f"The user has opened the note {NOTE_URI} in Obsidian. This may or may "
                    "not be related to the current conversation. If it seems relevant, "
                    "consider using the Read tool to examine its content."
                )
            ),
            TextPromptContent(text="@[[a]]\nhi"),
        ]

    @pytest.mark.asyncio
    async def test_auto_mention_with_selection(self, vault) -> None:
        note = vault.metadata("notes/a.md")
        note = NoteMetadata(path=note.path, name=note.name, selection=sel(1, 0, 2, 1))

        result = await prepare_prompt(
            params("hi", active_note=note, supports_embedded_context=True), vault
        )

        assert result.agent_content == [
            resource("line2\nline3", 0.8, EPOCH),
            TextPromptContent(
                text=(
                    "The user has selected lines 2-3 in the above note. "
                    "This is what they are currently focusing on."
                )
            ),
            TextPromptContent(text="@[[a]]:2-3\nhi"),
        ]

    @pytest.mark.asyncio
    async def test_images_follow_text(self, vault) -> None:
        image = ImagePromptContent(data="aGk=", mime_type="image/png")

        result = await prepare_prompt(
            params("look", images=(image,), supports_embedded_context=True), vault
        )

        assert result.agent_content == [TextPromptContent(text="look"), image]
        assert result.display_content == [TextPromptContent(text="look"), image]


# =============================================================================
# Sending
# =============================================================================


def send_input(auth_methods=()) -> SendPreparedPromptInput:
    content = [TextPromptContent(text="hi")]
    return SendPreparedPromptInput(
        session_id="s1",
        agent_content=content,
        display_content=content,
        auth_methods=auth_methods,
    )


class TestSendPreparedPrompt:
    @pytest.mark.asyncio
    async def test_success(self) -> None:
        client = FakeAgentClient()

        result = await send_prepared_prompt(send_input(), client)

        assert result.success
        assert client.called("send_prompt") == [
            ("send_prompt", "s1", [TextPromptContent(text="hi")])
        ]

    @pytest.mark.asyncio
    async def test_empty_response_is_success(self) -> None:
        client = FakeAgentClient()
        client.prompt_errors.append(
            rpc_error(
                AcpErrorCode.INTERNAL_ERROR, "Internal error", {"details": "Empty response text"}
            )
        )

        result = await send_prepared_prompt(send_input(), client)

        assert result.success
        assert result.error is None

    @pytest.mark.asyncio
    async def test_other_error(self) -> None:
        client = FakeAgentClient()
        client.prompt_errors.append(rpc_error(AcpErrorCode.INVALID_PARAMS, "Bad params"))

        result = await send_prepared_prompt(send_input(), client)

        assert not result.success
        assert not result.requires_auth
        assert result.error is not None
        assert result.error.code == AcpErrorCode.INVALID_PARAMS
        assert result.error.session_id == "s1"

    @pytest.mark.asyncio
    async def test_auth_with_single_method_retries(self) -> None:
        client = FakeAgentClient()
        client.prompt_errors.append(rpc_error(AcpErrorCode.AUTHENTICATION_REQUIRED))

        result = await send_prepared_prompt(
            send_input([AuthMethod(id="oauth", name="OAuth")]), client
        )

        assert result.success
        assert result.retried_successfully
        assert client.called("authenticate") == [("authenticate", "oauth")]
        assert len(client.called("send_prompt")) == 2

    @pytest.mark.asyncio
    async def test_rejected_authentication_requires_auth(self) -> None:
        client = FakeAgentClient()
        client.auth_result = False
        client.prompt_errors.append(rpc_error(AcpErrorCode.AUTHENTICATION_REQUIRED))

        result = await send_prepared_prompt(
            send_input([AuthMethod(id="oauth", name="OAuth")]), client
        )

        assert not result.success
        assert result.requires_auth
        assert result.error is not None
        assert result.error.title == "Authentication Required"

    @pytest.mark.asyncio
    async def test_failed_retry_is_plain_failure(self) -> None:
        client = FakeAgentClient()
        client.prompt_errors.extend(
            [rpc_error(AcpErrorCode.AUTHENTICATION_REQUIRED), RuntimeError("boom")]
        )

        result = await send_prepared_prompt(
            send_input([AuthMethod(id="oauth", name="OAuth")]), client
        )

        assert not result.success
        assert not result.requires_auth
        assert result.error is not None
        assert "boom" in result.error.message

    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        "methods", [[], [AuthMethod(id="a", name="A"), AuthMethod(id="b", name="B")]]
    )
    async def test_auth_without_single_method(self, methods) -> None:
        client = FakeAgentClient()
        client.prompt_errors.append(rpc_error(AcpErrorCode.AUTHENTICATION_REQUIRED))

        result = await send_prepared_prompt(send_input(methods), client)

        assert result.requires_auth
        assert client.called("authenticate") == []
