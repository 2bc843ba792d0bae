"""AcpAgentClient: AgentClient over an agent subprocess speaking ACP on stdio.

The agent is launched with asyncio pipes and wrapped in the acp SDK's
client-side connection. SDK objects are converted into the obsius wire
models at this boundary, so nothing above the adapter depends on the SDK.
"""

from __future__ import annotations

import asyncio
import contextlib
import os
from collections.abc import Sequence
from typing import Any

import acp
from acp.schema import (
    AllowedOutcome,
    ClientCapabilities,
    DeniedOutcome,
    EmbeddedResourceContentBlock,
    FileSystemCapability,
    ImageContentBlock,
    Implementation,
    RequestPermissionResponse,
    TextContentBlock,
)
from pydantic import BaseModel

from obsius import __version__
from obsius.acp.diagnostics import (
    extract_stderr_error_hint,
    get_spawn_error_info,
    process_exit_error,
)
from obsius.acp.permissions import PermissionQueue
from obsius.acp.routing import route_session_update
from obsius.logging import get_logger
from obsius.models.errors import AcpErrorCode, AgentRequestError, ErrorInfo, ObsiusError
from obsius.models.updates import SessionUpdate
from obsius.ports import AgentConfig, ErrorCallback, SessionUpdateCallback, SettingsStore
from obsius.types.common import PermissionOption
from obsius.types.content import PromptContent
from obsius.types.notifications import ToolCallFields
from obsius.types.responses import (
    InitializeResponse,
    ListSessionsResponse,
    PromptResponse,
    SessionResponse,
    StopReason,
)

log = get_logger("acp")

CLIENT_NAME = "obsius"
CLIENT_TITLE = "Obsius"
EMPTY_TURN_GRACE_SECONDS = 0.1
SHUTDOWN_TIMEOUT_SECONDS = 5.0
STDERR_BUFFER_LIMIT = 8192

_IGNORED_PROMPT_ERROR_DETAILS = ("empty response text", "user aborted")


def _dump(obj: BaseModel | None) -> dict[str, Any]:
    if obj is None:
        return {}
    return obj.model_dump(by_alias=True, exclude_none=True, mode="json")


def to_acp_content_block(item: PromptContent) -> Any:
    """Build the SDK content block for one prompt block."""
    data = item.to_wire()
    match data["type"]:
        case "text":
            return TextContentBlock.model_validate(data)
        case "image":
            return ImageContentBlock.model_validate(data)
        case "resource":
            return EmbeddedResourceContentBlock.model_validate(data)
    raise ValueError(f"Unsupported prompt content type: {data['type']}")


def _is_ignored_prompt_error(error: BaseException) -> bool:
    if getattr(error, "code", None) != AcpErrorCode.INTERNAL_ERROR:
        return False
    data = getattr(error, "data", None)
    details = data.get("details") if isinstance(data, dict) else None
    return isinstance(details, str) and any(d in details for d in _IGNORED_PROMPT_ERROR_DETAILS)


class _ClientHandler:
    """Agent-to-client calls of the ACP connection."""

    def __init__(self, owner: AcpAgentClient) -> None:
        self._owner = owner

    def on_connect(self, conn: Any) -> None:
        pass

    async def session_update(self, session_id: str, update: Any, **kwargs: Any) -> None:
        self._owner._on_wire_update(session_id, _dump(update))

    async def request_permission(
        self, options: list[Any], session_id: str, tool_call: Any, **kwargs: Any
    ) -> RequestPermissionResponse:
        parsed_options = [PermissionOption.model_validate(_dump(o)) for o in options]
        fields = ToolCallFields.model_validate(_dump(tool_call)) if tool_call is not None else None
        option_id = await self._owner.permissions.request(session_id, fields, parsed_options)
        if option_id is None:
            return RequestPermissionResponse(outcome=DeniedOutcome(outcome="cancelled"))
        return RequestPermissionResponse(
            outcome=AllowedOutcome(option_id=option_id, outcome="selected")
        )

    # The client advertises neither file system nor terminal support.

    async def read_text_file(self, **kwargs: Any) -> Any:
        raise acp.RequestError.method_not_found("fs/read_text_file")

    async def write_text_file(self, **kwargs: Any) -> Any:
        raise acp.RequestError.method_not_found("fs/write_text_file")

    async def create_terminal(self, **kwargs: Any) -> Any:
        raise acp.RequestError.method_not_found("terminal/create")

    async def terminal_output(self, **kwargs: Any) -> Any:
        raise acp.RequestError.method_not_found("terminal/output")

    async def release_terminal(self, **kwargs: Any) -> Any:
        raise acp.RequestError.method_not_found("terminal/release")

    async def wait_for_terminal_exit(self, **kwargs: Any) -> Any:
        raise acp.RequestError.method_not_found("terminal/wait_for_exit")

    async def kill_terminal(self, **kwargs: Any) -> Any:
        raise acp.RequestError.method_not_found("terminal/kill")

    async def ext_method(self, method: str, params: dict[str, Any]) -> dict[str, Any]:
        raise acp.RequestError.method_not_found(method)

    async def ext_notification(self, method: str, params: dict[str, Any]) -> None:
        log.debug("Ignoring extension notification %s", method)


class AcpAgentClient:
    """Agent transport over the acp SDK.

    Args:
        settings: Read for ``auto_allow_permissions`` on every permission
            request; requests always wait for the user when None.
    """

    def __init__(self, settings: SettingsStore | None = None) -> None:
        self._settings = settings
        self._conn: Any = None
        self._process: asyncio.subprocess.Process | None = None
        self._config: AgentConfig | None = None
        self._tasks: set[asyncio.Task[None]] = set()
        self._disconnecting = False
        self._stderr = ""
        self._turn_update_count = 0
        self._update_callback: SessionUpdateCallback | None = None
        self._error_callback: ErrorCallback | None = None
        self.permissions = PermissionQueue(self._dispatch, self._auto_allow)

    # -------------------------------------------------------------------------
    # Callbacks
    # -------------------------------------------------------------------------

    def on_session_update(self, callback: SessionUpdateCallback) -> None:
        self._update_callback = callback

    def on_error(self, callback: ErrorCallback) -> None:
        self._error_callback = callback

    def _auto_allow(self) -> bool:
        return bool(self._settings and self._settings.get_snapshot().auto_allow_permissions)

    def _dispatch(self, update: SessionUpdate) -> None:
        if self._update_callback is not None:
            self._update_callback(update)

    def _report(self, error: ErrorInfo) -> None:
        if self._error_callback is not None:
            self._error_callback(error)

    def _on_wire_update(self, session_id: str, payload: dict[str, Any]) -> None:
        self._turn_update_count += 1
        update = route_session_update(session_id, payload)
        if update is not None:
            self._dispatch(update)

    # -------------------------------------------------------------------------
    # Process lifecycle
    # -------------------------------------------------------------------------

    def is_initialized(self) -> bool:
        return self._conn is not None and self._process is not None

    def get_current_agent_id(self) -> str | None:
        return self._config.id if self._config else None

    def _require_connection(self) -> Any:
        if self._conn is None:
            raise ObsiusError("Connection not initialized. Call initialize() first.")
        return self._conn

    async def initialize(self, config: AgentConfig) -> InitializeResponse:
        """Launch the agent process for ``config`` and run the handshake.

        Raises:
            ObsiusError: No command is configured.
            OSError: The process could not be started (also reported through
                the error callback).
        """
        if not config.command.strip():
            raise ObsiusError(
                f'Command not configured for agent "{config.display_name}" ({config.id}). '
                "Please configure the agent command in settings."
            )

        if self._process is not None:
            await self.disconnect()

        command = config.command.strip()
        label = f"{config.display_name} ({config.id})"
        log.info("Starting %s: %s %s", label, command, " ".join(config.args) or "(no args)")

        try:
            process = await asyncio.create_subprocess_exec(
                command,
                *config.args,
                stdin=asyncio.subprocess.PIPE,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
                env={**os.environ, **config.env},
                cwd=config.working_directory or None,
            )
        except OSError as e:
            log.error("%s failed to start: %s", label, e)
            self._report(get_spawn_error_info(e, command, label, config.id))
            raise

        log.debug("%s spawned, PID %s", label, process.pid)
        self._process = process
        self._config = config
        self._disconnecting = False
        self._stderr = ""
        self._start_task(self._read_stderr(process, label))
        self._start_task(self._watch_exit(process, command, label, config.id))

        assert process.stdin is not None and process.stdout is not None
        self._conn = acp.connect_to_agent(_ClientHandler(self), process.stdin, process.stdout)

        response = await self._conn.initialize(
            protocol_version=acp.PROTOCOL_VERSION,
            client_capabilities=ClientCapabilities(
                fs=FileSystemCapability(read_text_file=False, write_text_file=False),
                terminal=False,
            ),
            client_info=Implementation(name=CLIENT_NAME, title=CLIENT_TITLE, version=__version__),
        )
        result = InitializeResponse.model_validate(_dump(response))
        log.info("Connected to %s (protocol v%s)", label, result.protocol_version)
        return result

    def _start_task(self, coro: Any) -> None:
        task = asyncio.create_task(coro)
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)

    async def _read_stderr(self, process: asyncio.subprocess.Process, label: str) -> None:
        assert process.stderr is not None
        async for line in process.stderr:
            text = line.decode("utf-8", errors="replace")
            log.debug("%s stderr: %s", label, text.rstrip())
            self._stderr = (self._stderr + text)[-STDERR_BUFFER_LIMIT:]

    async def _watch_exit(
        self, process: asyncio.subprocess.Process, command: str, label: str, agent_id: str
    ) -> None:
        exit_code = await process.wait()
        log.info("%s exited with code %s", label, exit_code)
        if self._disconnecting or process is not self._process:
            return
        error = process_exit_error(exit_code, command, label, agent_id)
        if error is not None:
            self._report(error)

    async def disconnect(self) -> None:
        """Cancel pending permission prompts and stop the agent process."""
        self._disconnecting = True
        self.permissions.cancel_all()

        conn, self._conn = self._conn, None
        process, self._process = self._process, None
        self._config = None

        if conn is not None:
            try:
                await conn.close()
            except Exception as e:
                log.debug("Error closing connection: %s", e)

        if process is not None and process.returncode is None:
            log.info("Stopping agent process (PID %s)", process.pid)
            process.terminate()
            try:
                await asyncio.wait_for(process.wait(), timeout=SHUTDOWN_TIMEOUT_SECONDS)
            except asyncio.TimeoutError:
                process.kill()
                await process.wait()

        for task in list(self._tasks):
            task.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await task

    # -------------------------------------------------------------------------
    # Sessions
    # -------------------------------------------------------------------------

    async def new_session(self, cwd: str) -> SessionResponse:
        response = await self._require_connection().new_session(cwd=cwd, mcp_servers=[])
        result = SessionResponse.model_validate(_dump(response))
        log.info("Created session %s", result.session_id)
        return result

    async def load_session(self, session_id: str, cwd: str) -> SessionResponse:
        response = await self._require_connection().load_session(
            cwd=cwd, session_id=session_id, mcp_servers=[]
        )
        return SessionResponse.model_validate(_dump(response))

    async def resume_session(self, session_id: str, cwd: str) -> SessionResponse:
        response = await self._require_connection().resume_session(
            cwd=cwd, session_id=session_id, mcp_servers=[]
        )
        return SessionResponse.model_validate(_dump(response))

    async def fork_session(self, session_id: str, cwd: str) -> SessionResponse:
        response = await self._require_connection().fork_session(
            cwd=cwd, session_id=session_id, mcp_servers=[]
        )
        return SessionResponse.model_validate(_dump(response))

    async def list_sessions(
        self, cwd: str | None = None, cursor: str | None = None
    ) -> ListSessionsResponse:
        response = await self._require_connection().list_sessions(cursor=cursor, cwd=cwd)
        return ListSessionsResponse.model_validate(_dump(response))

    # -------------------------------------------------------------------------
    # Prompt turns
    # -------------------------------------------------------------------------

    async def send_prompt(
        self, session_id: str, content: Sequence[PromptContent]
    ) -> PromptResponse | None:
        """Run one prompt turn.

        Returns:
            The turn result, or None when the agent ended the turn with an
            error that carries no information (empty text, user abort).

        Raises:
            AgentRequestError: The turn ended without any update and the
                agent's stderr explains why.
        """
        conn = self._require_connection()
        self._turn_update_count = 0
        self._stderr = ""
        blocks = [to_acp_content_block(item) for item in content]
        log.debug("Sending prompt with %d content blocks", len(blocks))

        try:
            response = await conn.prompt(session_id=session_id, prompt=blocks)
        except Exception as e:
            if _is_ignored_prompt_error(e):
                log.info("Ignoring prompt error: %s", e)
                return None
            raise

        result = PromptResponse.model_validate(_dump(response))
        log.info("Agent completed with: %s", result.stop_reason.value)
        if self._turn_update_count == 0 and result.stop_reason is StopReason.END_TURN:
            await asyncio.sleep(EMPTY_TURN_GRACE_SECONDS)
            hint = extract_stderr_error_hint(self._stderr)
            if hint:
                raise AgentRequestError(
                    AcpErrorCode.INTERNAL_ERROR, f"The agent returned an empty response. {hint}"
                )
        return result

    async def cancel(self, session_id: str) -> None:
        """Send session/cancel; pending permission prompts are cancelled either way."""
        try:
            await self._require_connection().cancel(session_id=session_id)
        finally:
            self.permissions.cancel_all()

    async def respond_to_permission(self, request_id: str, option_id: str) -> None:
        self.permissions.respond(request_id, option_id)

    # -------------------------------------------------------------------------
    # Session configuration
    # -------------------------------------------------------------------------

    async def set_session_mode(self, session_id: str, mode_id: str) -> None:
        await self._require_connection().set_session_mode(mode_id=mode_id, session_id=session_id)
        log.info("Session mode set to %s", mode_id)

    async def set_session_model(self, session_id: str, model_id: str) -> None:
        await self._require_connection().set_session_model(
            model_id=model_id, session_id=session_id
        )
        log.info("Session model set to %s", model_id)

    async def authenticate(self, method_id: str) -> bool:
        try:
            await self._require_connection().authenticate(method_id=method_id)
        except Exception as e:
            log.error("Authentication with %s failed: %s", method_id, e)
            return False
        log.info("Authenticated with %s", method_id)
        return True
