"""PermissionQueue: session/request_permission calls awaiting the user.

Requests are answered one at a time. The head of the queue is the active
request; its tool call carries ``is_active=True`` so the chat controller and
the permission coordinator can find it. Answering the head activates the
next request.
"""

from __future__ import annotations

import asyncio
import uuid
from collections.abc import Callable, Sequence
from dataclasses import dataclass

from obsius.logging import get_logger
from obsius.models.messages import PermissionRequest
from obsius.models.updates import SessionUpdate, ToolCallUpdate
from obsius.types.common import PermissionOption, PermissionOptionKind, ToolCallStatus
from obsius.types.notifications import ToolCallFields

log = get_logger("permissions")


@dataclass(slots=True)
class PendingPermission:
    request_id: str
    session_id: str
    tool_call_id: str
    options: tuple[PermissionOption, ...]
    future: asyncio.Future[str | None]


def normalize_option(option: PermissionOption) -> PermissionOption:
    """reject_always is offered as reject_once; a missing kind is guessed from the name."""
    kind = option.kind
    if kind is PermissionOptionKind.REJECT_ALWAYS:
        kind = PermissionOptionKind.REJECT_ONCE
    elif kind is None:
        kind = (
            PermissionOptionKind.ALLOW_ONCE
            if "allow" in option.name.lower()
            else PermissionOptionKind.REJECT_ONCE
        )
    return option.model_copy(update={"kind": kind})


def pick_auto_allow_option(options: Sequence[PermissionOption]) -> PermissionOption | None:
    """allow_once / allow_always, else an unkinded option named "allow...", else the first."""
    for option in options:
        if option.kind in (PermissionOptionKind.ALLOW_ONCE, PermissionOptionKind.ALLOW_ALWAYS):
            return option
        if option.kind is None and "allow" in option.name.lower():
            return option
    return options[0] if options else None


class PermissionQueue:
    """Pending permission requests, answered in arrival order.

    Args:
        emit: Receives the tool-call updates that show, activate and
            resolve each request.
        auto_allow: Returns True when requests should be granted without
            asking.
    """

    def __init__(
        self,
        emit: Callable[[SessionUpdate], None],
        auto_allow: Callable[[], bool] = lambda: False,
    ) -> None:
        self._emit = emit
        self._auto_allow = auto_allow
        self._pending: dict[str, PendingPermission] = {}
        self._order: list[str] = []

    @property
    def pending_count(self) -> int:
        return len(self._pending)

    @property
    def active_request_id(self) -> str | None:
        return self._order[0] if self._order else None

    async def request(
        self,
        session_id: str,
        tool_call: ToolCallFields | None,
        options: Sequence[PermissionOption],
    ) -> str | None:
        """Wait for the user's answer to one permission request.

        Returns:
            The selected option id, or None when the request was cancelled.
        """
        if self._auto_allow():
            option = pick_auto_allow_option(options)
            log.info("Auto-allowing permission request: %s", option.option_id if option else None)
            return option.option_id if option else None

        request_id = str(uuid.uuid4())
        tool_call_id = tool_call.tool_call_id if tool_call else str(uuid.uuid4())
        normalized = tuple(normalize_option(o) for o in options)
        is_first = not self._order

        future: asyncio.Future[str | None] = asyncio.get_running_loop().create_future()
        self._pending[request_id] = PendingPermission(
            request_id=request_id,
            session_id=session_id,
            tool_call_id=tool_call_id,
            options=normalized,
            future=future,
        )
        self._order.append(request_id)

        self._emit(
            ToolCallUpdate(
                session_id=session_id,
                tool_call_id=tool_call_id,
                is_start=True,
                title=tool_call.title if tool_call else None,
                status=(tool_call.status if tool_call else None) or ToolCallStatus.PENDING,
                kind=tool_call.kind if tool_call else None,
                content=(
                    tuple(tool_call.content)
                    if tool_call and tool_call.content is not None
                    else None
                ),
                raw_input=tool_call.raw_input if tool_call else None,
                permission_request=PermissionRequest(
                    request_id=request_id, options=normalized, is_active=is_first
                ),
            )
        )
        log.debug("Queued permission request %s for tool call %s", request_id, tool_call_id)
        return await future

    def respond(self, request_id: str, option_id: str) -> bool:
        """Answer ``request_id`` with ``option_id``.

        Returns:
            False when the request is unknown or already answered.
        """
        pending = self._pending.pop(request_id, None)
        if pending is None:
            log.warning("No pending permission request %s", request_id)
            return False
        self._order.remove(request_id)

        self._emit(
            ToolCallUpdate(
                session_id=pending.session_id,
                tool_call_id=pending.tool_call_id,
                permission_request=PermissionRequest(
                    request_id=request_id,
                    options=pending.options,
                    selected_option_id=option_id,
                    is_active=False,
                ),
            )
        )
        if not pending.future.done():
            pending.future.set_result(option_id)
        self._activate_next()
        return True

    def _activate_next(self) -> None:
        if not self._order:
            return
        head = self._pending[self._order[0]]
        self._emit(
            ToolCallUpdate(
                session_id=head.session_id,
                tool_call_id=head.tool_call_id,
                permission_request=PermissionRequest(
                    request_id=head.request_id, options=head.options, is_active=True
                ),
            )
        )

    def cancel_all(self) -> None:
        """Resolve every pending request as cancelled and complete its tool call."""
        if self._pending:
            log.info("Cancelling %d pending permission requests", len(self._pending))
        for pending in self._pending.values():
            self._emit(
                ToolCallUpdate(
                    session_id=pending.session_id,
                    tool_call_id=pending.tool_call_id,
                    status=ToolCallStatus.COMPLETED,
                    permission_request=PermissionRequest(
                        request_id=pending.request_id,
                        options=pending.options,
                        is_cancelled=True,
                        is_active=False,
                    ),
                )
            )
            if not pending.future.done():
                pending.future.set_result(None)
        self._pending.clear()
        self._order.clear()
