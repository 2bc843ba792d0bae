"""Locally persisted session metadata."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime

from obsius.types.responses import SessionInfo


@dataclass(frozen=True, slots=True)
class SavedSessionInfo:
    """Session record kept by the settings store.

    Local titles win over titles reported by the agent.
    """

    session_id: str
    agent_id: str
    cwd: str
    title: str | None = None
    created_at: datetime = field(default_factory=datetime.now)
    updated_at: datetime = field(default_factory=datetime.now)

    def to_session_info(self) -> SessionInfo:
        return SessionInfo(
            session_id=self.session_id,
            cwd=self.cwd,
            title=self.title,
            updated_at=self.updated_at.isoformat(),
        )
