"""User-facing diagnostics for agent process failures."""

from __future__ import annotations

import os
import sys

from obsius.models.errors import ProcessError, ProcessErrorType, error_message

COMMAND_NOT_FOUND_EXIT_CODE = 127


def _command_name(command: str) -> str:
    return os.path.basename(command.replace("\\", "/")) or "command"


def get_command_not_found_suggestion(command: str) -> str:
    name = _command_name(command)
    if sys.platform == "win32":
        return (
            f'1. Verify the agent path: Use "where {name}" in Command Prompt to find the '
            "correct path. 2. If the agent requires Node.js, also check that Node.js is on "
            'the PATH (use "where node" to find it).'
        )
    return (
        f'1. Verify the agent path: Use "which {name}" in Terminal to find the correct '
        "path. 2. If the agent requires Node.js, also check that Node.js is on the PATH "
        '(use "which node" to find it).'
    )


def command_not_found_error(
    command: str, agent_label: str, agent_id: str, exit_code: int | None = None
) -> ProcessError:
    return ProcessError(
        title="Command not found",
        message=(
            f'The command "{command}" could not be found. '
            f"Please check the path configuration for {agent_label}."
        ),
        suggestion=get_command_not_found_suggestion(command),
        type=ProcessErrorType.COMMAND_NOT_FOUND,
        agent_id=agent_id,
        exit_code=exit_code,
    )


def get_spawn_error_info(
    error: BaseException, command: str, agent_label: str, agent_id: str
) -> ProcessError:
    """Describe a failed process launch."""
    if isinstance(error, FileNotFoundError):
        return command_not_found_error(command, agent_label, agent_id)
    return ProcessError(
        title="Agent startup error",
        message=f"Failed to start {agent_label}: {error_message(error)}",
        suggestion="Please check the agent configuration in settings.",
        type=ProcessErrorType.SPAWN_FAILED,
        agent_id=agent_id,
    )


def process_exit_error(
    exit_code: int, command: str, agent_label: str, agent_id: str
) -> ProcessError | None:
    """Error for an unexpected process exit; None for a clean exit."""
    if exit_code == COMMAND_NOT_FOUND_EXIT_CODE:
        return command_not_found_error(command, agent_label, agent_id, exit_code)
    if exit_code == 0:
        return None
    return ProcessError(
        title="Agent process exited",
        message=f"{agent_label} exited unexpectedly with code {exit_code}.",
        suggestion="Restart the agent. If the problem persists, check the agent logs.",
        type=ProcessErrorType.PROCESS_CRASHED,
        agent_id=agent_id,
        exit_code=exit_code,
    )


def extract_stderr_error_hint(stderr: str) -> str | None:
    """Hint for known failure messages an agent writes to stderr."""
    if not stderr:
        return None
    if "API key is missing" in stderr or "LoadAPIKeyError" in stderr:
        return (
            "The agent API key may be missing. For custom agents, add the required API key "
            "(for example, ANTHROPIC_API_KEY) in the agent environment variables settings."
        )
    if "authentication" in stderr or "unauthorized" in stderr or "401" in stderr:
        return (
            "The agent reported an authentication error. "
            "Check that your API key or credentials are valid."
        )
    return None
