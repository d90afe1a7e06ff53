"""Game client exceptions.

These exception types make it easier for the caller (CLI, agent loop) to
format failures consistently without scraping strings.
"""

from __future__ import annotations


class DuelSyncError(RuntimeError):
    """Base class for game client errors."""


class NotJoinedError(DuelSyncError):
    """An operation needs a joined room but none is joined."""

    def __init__(self, operation: str):
        self.operation = operation
        super().__init__(f"You must join a room before {operation}.")


class SubscriptionError(DuelSyncError):
    """The session already has a live event subscription."""


class SessionEndedError(DuelSyncError):
    """The event stream ended before the game finished."""


class JoinRoomError(DuelSyncError):
    """The server refused to let us into the room."""

    def __init__(self, room_name: str, message: str | None = None):
        self.room_name = room_name
        self.message = message
        detail = (message or "").strip() or "join refused"
        super().__init__(f"Could not join room {room_name!r}: {detail}")


class GameHTTPError(DuelSyncError):
    """HTTP error from the game server."""

    def __init__(
        self,
        status: int,
        *,
        method: str,
        url: str,
        detail: str | None = None,
    ):
        self.status = int(status)
        self.method = method
        self.url = url
        self.detail = detail
        super().__init__(self.__str__())

    def __str__(self) -> str:
        detail = (self.detail or "").strip()
        if detail:
            return f"Game HTTP {self.status} {self.method} {self.url}: {detail}"
        return f"Game HTTP {self.status} {self.method} {self.url}"


class ProtocolError(DuelSyncError):
    """Malformed/invalid data from the game server."""

    def __init__(self, message: str, *, payload_preview: str | None = None):
        self.message = message
        self.payload_preview = payload_preview
        super().__init__(self.__str__())

    def __str__(self) -> str:
        if self.payload_preview:
            return f"Game protocol error: {self.message} (payload={self.payload_preview!r})"
        return f"Game protocol error: {self.message}"
