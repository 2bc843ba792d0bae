"""ACP transport adapter."""

from obsius.acp.client import AcpAgentClient
from obsius.acp.permissions import PermissionQueue
from obsius.acp.routing import route_session_update

__all__ = ["AcpAgentClient", "PermissionQueue", "route_session_update"]
