"""Send prepared prompt content with auth retry and empty-response tolerance."""

from __future__ import annotations

from collections.abc import Sequence
from dataclasses import dataclass, field

from obsius.logging import get_logger
from obsius.models.errors import (
    AcpError,
    AcpErrorCode,
    extract_error_code,
    is_empty_response_error,
    to_acp_error,
)
from obsius.ports import AgentClient
from obsius.types.common import AuthMethod
from obsius.types.content import PromptContent

log = get_logger("prompt")


@dataclass(frozen=True, slots=True)
class SendPreparedPromptInput:
    session_id: str
    agent_content: list[PromptContent]
    display_content: list[PromptContent]
    auth_methods: Sequence[AuthMethod] = ()


@dataclass(frozen=True, slots=True)
class SendPromptResult:
    """Outcome of one prompt turn.

    Attributes:
        requires_auth: The agent wants authentication and it could not be
            done silently; the caller should offer a method choice.
        retried_successfully: The first send failed on auth, a silent
            authentication succeeded and the retry went through.
    """

    success: bool
    display_content: list[PromptContent] = field(default_factory=list)
    agent_content: list[PromptContent] = field(default_factory=list)
    error: AcpError | None = None
    requires_auth: bool = False
    retried_successfully: bool = False


async def send_prepared_prompt(
    params: SendPreparedPromptInput, client: AgentClient
) -> SendPromptResult:
    """Send ``params.agent_content``; never raises for RPC failures."""
    try:
        await client.send_prompt(params.session_id, params.agent_content)
    except Exception as e:
        return await _handle_send_error(e, params, client)
    return SendPromptResult(
        success=True,
        display_content=params.display_content,
        agent_content=params.agent_content,
    )


async def _handle_send_error(
    error: Exception, params: SendPreparedPromptInput, client: AgentClient
) -> SendPromptResult:
    if is_empty_response_error(error):
        log.debug("Treating empty response from agent as end of turn")
        return SendPromptResult(
            success=True,
            display_content=params.display_content,
            agent_content=params.agent_content,
        )

    if extract_error_code(error) == AcpErrorCode.AUTHENTICATION_REQUIRED:
        if len(params.auth_methods) == 1:
            retried = await _retry_with_authentication(params, params.auth_methods[0].id, client)
            if retried is not None:
                return retried
        return SendPromptResult(
            success=False,
            display_content=params.display_content,
            agent_content=params.agent_content,
            error=to_acp_error(error, params.session_id),
            requires_auth=True,
        )

    log.warning("Prompt failed for session %s: %s", params.session_id, error)
    return SendPromptResult(
        success=False,
        display_content=params.display_content,
        agent_content=params.agent_content,
        error=to_acp_error(error, params.session_id),
    )


async def _retry_with_authentication(
    params: SendPreparedPromptInput, method_id: str, client: AgentClient
) -> SendPromptResult | None:
    """Authenticate with the only advertised method and resend once.

    Returns:
        None when the agent rejected the authentication, so the caller
        surfaces ``requires_auth``.
    """
    try:
        if not await client.authenticate(method_id):
            return None
        await client.send_prompt(params.session_id, params.agent_content)
    except Exception as e:
        log.warning("Retry after authentication failed: %s", e)
        return SendPromptResult(
            success=False,
            display_content=params.display_content,
            agent_content=params.agent_content,
            error=to_acp_error(e, params.session_id),
        )
    return SendPromptResult(
        success=True,
        display_content=params.display_content,
        agent_content=params.agent_content,
        retried_successfully=True,
    )
