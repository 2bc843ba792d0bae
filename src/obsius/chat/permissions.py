"""PermissionCoordinator: the permission prompt the user can answer now."""

from __future__ import annotations

from collections.abc import Callable, Sequence
from dataclasses import dataclass

from obsius.logging import get_logger
from obsius.models.errors import ErrorInfo, error_message
from obsius.models.messages import ChatMessage, PermissionRequestContent, ToolCallContent
from obsius.ports import AgentClient
from obsius.types.common import PermissionOption, PermissionOptionKind

log = get_logger("permissions")

ALLOW_KINDS = (PermissionOptionKind.ALLOW_ONCE, PermissionOptionKind.ALLOW_ALWAYS)
REJECT_KINDS = (PermissionOptionKind.REJECT_ONCE, PermissionOptionKind.REJECT_ALWAYS)


@dataclass(frozen=True, slots=True)
class ActivePermission:
    """The one permission request awaiting an answer."""

    request_id: str
    tool_call_id: str
    options: tuple[PermissionOption, ...]


def _active_in(tool_call: ToolCallContent) -> ActivePermission | None:
    request = tool_call.permission_request
    if request is None or not request.is_active:
        return None
    return ActivePermission(
        request_id=request.request_id,
        tool_call_id=tool_call.tool_call_id,
        options=request.options,
    )


def find_active_permission(messages: Sequence[ChatMessage]) -> ActivePermission | None:
    """First tool call in the conversation whose permission request is active."""
    for message in messages:
        for item in message.content:
            match item:
                case ToolCallContent():
                    active = _active_in(item)
                case PermissionRequestContent(tool_call=tool_call, is_cancelled=False):
                    active = _active_in(tool_call)
                case _:
                    active = None
            if active is not None:
                return active
    return None


def select_option(
    options: Sequence[PermissionOption], kinds: Sequence[PermissionOptionKind]
) -> PermissionOption | None:
    """First option matching ``kinds``, in the order of ``kinds``."""
    for kind in kinds:
        for option in options:
            if option.kind == kind:
                return option
    return None


class PermissionCoordinator:
    """Answers the active permission request through the transport.

    Args:
        get_messages: Returns the current conversation.
        client: Transport the selected option is routed to.
    """

    def __init__(
        self, get_messages: Callable[[], Sequence[ChatMessage]], client: AgentClient
    ) -> None:
        self._get_messages = get_messages
        self._client = client
        self.error_info: ErrorInfo | None = None

    @property
    def active_request(self) -> ActivePermission | None:
        return find_active_permission(self._get_messages())

    async def approve_active(self) -> bool:
        """Pick allow_once, else allow_always.

        Returns:
            False when nothing is active or no allow option exists.
        """
        return await self._resolve_active(ALLOW_KINDS)

    async def reject_active(self) -> bool:
        """Pick reject_once, else reject_always.

        Returns:
            False when nothing is active or no reject option exists.
        """
        return await self._resolve_active(REJECT_KINDS)

    async def _resolve_active(self, kinds: Sequence[PermissionOptionKind]) -> bool:
        active = self.active_request
        if active is None:
            return False
        option = select_option(active.options, kinds)
        if option is None:
            log.debug("No %s option for request %s", kinds[0].value, active.request_id)
            return False
        return await self.respond(active.request_id, option.option_id)

    async def respond(self, request_id: str, option_id: str) -> bool:
        """Send an explicit choice.

        Returns:
            False when the transport rejected the response; the failure is
            kept in ``error_info``.
        """
        try:
            await self._client.respond_to_permission(request_id, option_id)
        except Exception as e:
            log.error("Failed to respond to permission request %s: %s", request_id, e)
            self.error_info = ErrorInfo(
                title="Permission Response Failed",
                message=f"Failed to respond to permission request: {error_message(e)}",
            )
            return False
        self.error_info = None
        return True

    def clear_error(self) -> None:
        self.error_info = None
