"""Ports for the session driver.

These interfaces keep the driver independent of HTTP/SSE details.
"""

from __future__ import annotations

from typing import AsyncIterator, Protocol

from duelsync.core.api import Session
from duelsync.protocol.models import UserEvent


class GameTransportPort(Protocol):
    def stream_events(self, session: Session) -> AsyncIterator[dict]: ...

    async def submit_user_event(self, session: Session, seqnum: int, event: UserEvent) -> None: ...

    async def ping(self, session: Session) -> None: ...
