"""Error taxonomy for the session core.

Two kinds of objects live here:
- Displayable error records (ErrorInfo and friends) stored in state and
  shown to the user as title / message / suggestion.
- Exceptions raised across the ports (ObsiusError hierarchy).
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum, IntEnum
from typing import Any


class AcpErrorCode(IntEnum):
    """JSON-RPC and ACP error codes."""

    PARSE_ERROR = -32700
    INVALID_REQUEST = -32600
    METHOD_NOT_FOUND = -32601
    INVALID_PARAMS = -32602
    INTERNAL_ERROR = -32603
    # ACP reserved range -32000..-32099
    AUTHENTICATION_REQUIRED = -32000
    RESOURCE_NOT_FOUND = -32002


@dataclass(frozen=True, slots=True)
class ErrorInfo:
    """User-facing three-part error message."""

    title: str
    message: str
    suggestion: str | None = None


@dataclass(frozen=True, slots=True)
class AcpError(ErrorInfo):
    """Protocol-level error with its JSON-RPC code."""

    code: int = AcpErrorCode.INTERNAL_ERROR
    data: Any = None
    session_id: str | None = None


class ProcessErrorType(Enum):
    """Agent process failure kinds."""

    SPAWN_FAILED = "spawn_failed"
    COMMAND_NOT_FOUND = "command_not_found"
    PROCESS_CRASHED = "process_crashed"
    PROCESS_TIMEOUT = "process_timeout"


@dataclass(frozen=True, slots=True)
class ProcessError(ErrorInfo):
    """System-level failure of the agent process."""

    type: ProcessErrorType = ProcessErrorType.SPAWN_FAILED
    agent_id: str = ""
    exit_code: int | None = None


# -----------------------------------------------------------------------------
# Exceptions
# -----------------------------------------------------------------------------


class ObsiusError(Exception):
    """Base class for errors raised by the session core."""


class AgentNotFoundError(ObsiusError):
    """The requested agent id is not configured."""

    def __init__(self, agent_id: str) -> None:
        super().__init__(f'Agent with ID "{agent_id}" not found in settings')
        self.agent_id = agent_id


class AgentRequestError(ObsiusError):
    """An RPC to the agent failed with a JSON-RPC error."""

    def __init__(self, code: int, message: str, data: Any = None) -> None:
        super().__init__(message)
        self.code = code
        self.data = data


class SessionRestoreError(ObsiusError):
    """The agent supports neither load nor resume."""


class SessionNotActiveError(ObsiusError):
    """An operation needs a session id but none is active."""


# -----------------------------------------------------------------------------
# Helpers
# -----------------------------------------------------------------------------

_CODE_MESSAGES: dict[int, tuple[str, str]] = {
    AcpErrorCode.AUTHENTICATION_REQUIRED: (
        "Authentication Required",
        "Please authenticate with the agent and try again.",
    ),
    AcpErrorCode.METHOD_NOT_FOUND: (
        "Unsupported Operation",
        "The agent does not support this operation.",
    ),
    AcpErrorCode.INVALID_PARAMS: (
        "Invalid Request",
        "The request was rejected by the agent. Check the input and try again.",
    ),
    AcpErrorCode.INVALID_REQUEST: (
        "Invalid Request",
        "The request was rejected by the agent. Check the input and try again.",
    ),
    AcpErrorCode.RESOURCE_NOT_FOUND: (
        "Not Found",
        "The requested session or resource no longer exists.",
    ),
    AcpErrorCode.PARSE_ERROR: (
        "Protocol Error",
        "The agent sent a malformed message. Try restarting the agent.",
    ),
}


def extract_error_code(error: BaseException) -> int | None:
    """Return the JSON-RPC code carried by an exception, if any."""
    code = getattr(error, "code", None)
    if isinstance(code, int) and not isinstance(code, bool):
        return code
    return None


def _error_details(error: BaseException) -> str:
    data = getattr(error, "data", None)
    if isinstance(data, dict):
        details = data.get("details") or data.get("message") or ""
        return str(details)
    if isinstance(data, str):
        return data
    return ""


def is_empty_response_error(error: BaseException) -> bool:
    """Whether ``error`` is the "empty response" quirk some agents send at turn end."""
    if extract_error_code(error) != AcpErrorCode.INTERNAL_ERROR:
        return False
    return "empty response text" in _error_details(error).lower()


def error_message(error: BaseException) -> str:
    """Human-readable message of an exception, never empty."""
    return str(error) or type(error).__name__


def to_acp_error(error: BaseException, session_id: str | None = None) -> AcpError:
    """Convert any exception into a displayable AcpError."""
    code = extract_error_code(error)
    title, suggestion = _CODE_MESSAGES.get(
        code if code is not None else AcpErrorCode.INTERNAL_ERROR,
        ("Agent Error", "Please try again. If the problem persists, restart the agent."),
    )
    message = error_message(error)
    details = _error_details(error)
    if details and details not in message:
        message = f"{message}: {details}"
    return AcpError(
        title=title,
        message=message,
        suggestion=suggestion,
        code=code if code is not None else AcpErrorCode.INTERNAL_ERROR,
        data=getattr(error, "data", None),
        session_id=session_id,
    )
