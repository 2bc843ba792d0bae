"""ChatController: the message list of the live session.

Routes session updates into the message list, runs prompt turns and
persists the conversation whenever a turn settles.
"""

from __future__ import annotations

import asyncio
from collections.abc import Awaitable, Callable, Sequence
from dataclasses import dataclass, replace

from obsius.chat.messages import (
    append_agent_text,
    append_agent_thought,
    append_user_text,
    apply_plan,
    upsert_tool_call,
)
from obsius.logging import get_logger
from obsius.models.context import NoteMetadata
from obsius.models.errors import ErrorInfo, error_message
from obsius.models.messages import (
    ChatMessage,
    ImageContent,
    MessageContent,
    MessageRole,
    TextContent,
    TextWithContextContent,
)
from obsius.models.updates import (
    AgentMessageChunk,
    AgentThoughtChunk,
    AvailableCommandsUpdate,
    CurrentModeUpdate,
    PlanUpdate,
    SessionUpdate,
    ToolCallUpdate,
    UsageUpdate,
    UserMessageChunk,
)
from obsius.ports import AgentClient, SettingsStore, VaultAccess
from obsius.prompts.preparation import PreparePromptInput, prepare_prompt
from obsius.prompts.sending import SendPreparedPromptInput, send_prepared_prompt
from obsius.session.agent_session import AgentSessionManager
from obsius.state import StateCell
from obsius.types.content import ImagePromptContent

log = get_logger("chat")

FirstMessageCallback = Callable[[str, str], Awaitable[None]]


@dataclass(frozen=True, slots=True)
class ContextUsage:
    """Context window usage last reported by the agent, in tokens."""

    size: int
    used: int


@dataclass(frozen=True, slots=True)
class ChatState:
    """Snapshot of the chat view.

    Attributes:
        messages: Conversation of the live session, oldest first.
        is_sending: A prompt turn is in flight.
        last_user_message: Text of the in-flight prompt; kept after a failure
            so the caller can restore the input box.
        error_info: Last send failure.
        is_loading_history: Inside the session/load replay window.
        usage: Context usage of the live session.
    """

    messages: tuple[ChatMessage, ...] = ()
    is_sending: bool = False
    last_user_message: str | None = None
    error_info: ErrorInfo | None = None
    is_loading_history: bool = False
    usage: ContextUsage | None = None


class ChatController:
    """Owns the messages of the live session.

    Args:
        session_manager: Source of the live session and receiver of the
            command and mode updates.
        client: Transport used to send prompts.
        vault: Note access for prompt preparation.
        settings: Settings snapshot and message persistence.
        on_first_message: Awaited with ``(session_id, text)`` after the first
            prompt of a session has been sent.
    """

    def __init__(
        self,
        session_manager: AgentSessionManager,
        client: AgentClient,
        vault: VaultAccess,
        settings: SettingsStore,
        on_first_message: FirstMessageCallback | None = None,
    ) -> None:
        self._session = session_manager
        self._client = client
        self._vault = vault
        self._settings = settings
        self._on_first_message = on_first_message
        self._cell: StateCell[ChatState] = StateCell(ChatState())
        self._pending_saves: set[asyncio.Task[None]] = set()
        self._cell.subscribe(self._save_on_settle)

    # -------------------------------------------------------------------------
    # State access
    # -------------------------------------------------------------------------

    @property
    def state(self) -> ChatState:
        return self._cell.value

    @property
    def messages(self) -> tuple[ChatMessage, ...]:
        return self._cell.value.messages

    @property
    def is_sending(self) -> bool:
        return self._cell.value.is_sending

    def subscribe(self, listener: Callable[[ChatState, ChatState], None]) -> Callable[[], None]:
        return self._cell.subscribe(listener)

    def _update(self, **changes: object) -> None:
        self._cell.update(lambda prev: replace(prev, **changes))

    def _update_messages(
        self, updater: Callable[[tuple[ChatMessage, ...]], tuple[ChatMessage, ...]]
    ) -> None:
        self._cell.update(lambda prev: replace(prev, messages=updater(prev.messages)))

    # -------------------------------------------------------------------------
    # Session updates
    # -------------------------------------------------------------------------

    def handle_session_update(self, update: SessionUpdate) -> None:
        """Apply one update from the agent.

        Updates for another session are dropped. Inside the history replay
        window only command and mode updates get through.

        Raises:
            TypeError: ``update`` is not a known SessionUpdate variant.
        """
        if self._session.is_stale_session(update.session_id):
            log.debug(
                "Ignoring update for old session: %s (current: %s)",
                update.session_id,
                self._session.session.session_id,
            )
            return

        if self.state.is_loading_history:
            if isinstance(update, (AvailableCommandsUpdate, CurrentModeUpdate)):
                self._forward_session_update(update)
            return

        match update:
            case AgentMessageChunk(text=text):
                self._update_messages(lambda messages: append_agent_text(messages, text))
            case AgentThoughtChunk(text=text):
                self._update_messages(lambda messages: append_agent_thought(messages, text))
            case UserMessageChunk(text=text):
                self._update_messages(lambda messages: append_user_text(messages, text))
            case ToolCallUpdate():
                self._update_messages(lambda messages: upsert_tool_call(messages, update))
            case PlanUpdate(entries=entries):
                self._update_messages(lambda messages: apply_plan(messages, entries))
            case UsageUpdate(size=size, used=used):
                self._update(usage=ContextUsage(size=size, used=used))
            case AvailableCommandsUpdate() | CurrentModeUpdate():
                self._forward_session_update(update)
            case _:
                raise TypeError(f"Unknown session update: {type(update).__name__}")

    def _forward_session_update(
        self, update: AvailableCommandsUpdate | CurrentModeUpdate
    ) -> None:
        match update:
            case AvailableCommandsUpdate(commands=commands):
                self._session.update_available_commands(commands)
            case CurrentModeUpdate(current_mode_id=mode_id):
                self._session.update_current_mode(mode_id)

    # -------------------------------------------------------------------------
    # Prompt turns
    # -------------------------------------------------------------------------

    async def send_message(
        self,
        message: str,
        images: Sequence[ImagePromptContent] = (),
        active_note: NoteMetadata | None = None,
        auto_mention_disabled: bool = False,
    ) -> None:
        """Send one prompt turn and record its outcome.

        Failures never raise; they are stored in ``state.error_info``.
        """
        session = self._session.session
        session_id = session.session_id
        if not session_id:
            self._update(
                error_info=ErrorInfo(
                    title="Cannot send message",
                    message="No active session. Please wait for connection.",
                )
            )
            return

        is_first_message = not self.messages
        settings = self._settings.get_snapshot()

        try:
            prepared = await prepare_prompt(
                PreparePromptInput(
                    message=message,
                    vault_base_path=self._vault.base_path,
                    images=tuple(images),
                    active_note=active_note if settings.auto_mention_active_note else None,
                    is_auto_mention_disabled=auto_mention_disabled,
                    convert_to_wsl=settings.windows_wsl_mode,
                    supports_embedded_context=session.supports_embedded_context,
                    max_note_length=settings.display.max_note_length,
                    max_selection_length=settings.display.max_selection_length,
                ),
                self._vault,
            )
        except Exception as e:
            log.error("Failed to prepare message: %s", e)
            self._update(
                is_sending=False,
                error_info=ErrorInfo(
                    title="Send message failed",
                    message=f"Failed to send message: {error_message(e)}",
                ),
            )
            return

        content: list[MessageContent] = []
        if prepared.auto_mention_context is not None:
            content.append(
                TextWithContextContent(
                    text=message, auto_mention_context=prepared.auto_mention_context
                )
            )
        else:
            content.append(TextContent(text=message))
        content.extend(ImageContent(data=img.data, mime_type=img.mime_type) for img in images)
        user_message = ChatMessage(role=MessageRole.USER, content=tuple(content))

        self._cell.update(
            lambda prev: replace(
                prev,
                messages=(*prev.messages, user_message),
                is_sending=True,
                last_user_message=message,
                error_info=None,
            )
        )

        try:
            result = await send_prepared_prompt(
                SendPreparedPromptInput(
                    session_id=session_id,
                    agent_content=prepared.agent_content,
                    display_content=prepared.display_content,
                    auth_methods=session.auth_methods,
                ),
                self._client,
            )
        except Exception as e:
            log.error("Failed to send message: %s", e)
            self._update(
                is_sending=False,
                error_info=ErrorInfo(
                    title="Send message failed",
                    message=f"Failed to send message: {error_message(e)}",
                ),
            )
        else:
            if result.success:
                self._update(is_sending=False, last_user_message=None)
            elif result.requires_auth:
                self._update(
                    is_sending=False,
                    error_info=ErrorInfo(
                        title="Authentication Required",
                        message=(
                            result.error.message
                            if result.error
                            else "The agent requires authentication."
                        ),
                        suggestion="Please authenticate with the agent and try again.",
                    ),
                )
            else:
                error = result.error
                self._update(
                    is_sending=False,
                    error_info=(
                        ErrorInfo(
                            title=error.title, message=error.message, suggestion=error.suggestion
                        )
                        if error
                        else ErrorInfo(
                            title="Send message failed", message="Failed to send message"
                        )
                    ),
                )

        if is_first_message and self._on_first_message is not None:
            try:
                await self._on_first_message(session_id, message)
            except Exception as e:
                log.warning("Failed to save session %s locally: %s", session_id, e)

    async def stop_generation(self) -> str | None:
        """Cancel the running turn.

        Returns:
            Text of the interrupted prompt, for restoring the input box.
        """
        last_message = self.state.last_user_message
        await self._session.cancel_operation()
        self._update(is_sending=False)
        return last_message

    # -------------------------------------------------------------------------
    # Message list
    # -------------------------------------------------------------------------

    def clear_messages(self) -> None:
        self._update(
            messages=(),
            last_user_message=None,
            is_sending=False,
            error_info=None,
            usage=None,
        )

    def set_messages_from_local(self, messages: Sequence[ChatMessage]) -> None:
        """Replace the conversation with locally cached messages."""
        self._update(messages=tuple(messages))

    def clear_error(self) -> None:
        self._update(error_info=None)

    def on_load_start(self) -> None:
        """Open the replay window: history arrives only from the local cache."""
        self._update(is_loading_history=True, messages=())

    def on_load_end(self) -> None:
        self._update(is_loading_history=False)

    # -------------------------------------------------------------------------
    # Save on settle
    # -------------------------------------------------------------------------

    def _save_on_settle(self, prev: ChatState, cur: ChatState) -> None:
        if not (prev.is_sending and not cur.is_sending) or not cur.messages:
            return
        session = self._session.session
        if not session.session_id:
            return

        task = asyncio.create_task(
            self._save_messages(session.session_id, session.agent_id, cur.messages)
        )
        self._pending_saves.add(task)
        task.add_done_callback(self._pending_saves.discard)

    async def _save_messages(
        self, session_id: str, agent_id: str, messages: Sequence[ChatMessage]
    ) -> None:
        try:
            await self._settings.save_session_messages(session_id, agent_id, messages)
        except Exception as e:
            log.warning("Failed to save messages for session %s: %s", session_id, e)
        else:
            log.debug("Session messages saved: %s", session_id)

    async def wait_for_pending_saves(self) -> None:
        """Wait until every scheduled message save has finished."""
        if self._pending_saves:
            await asyncio.gather(*self._pending_saves)
