"""Outstanding action request tracking."""

from __future__ import annotations

from duelsync.protocol.models import RequestUserEvent


class ActionRequestTracker:
    """Holds at most one server request awaiting an answer.

    A newer request always replaces the old one, answered or not. The
    generation counter distinguishes two requests that happen to share a
    seqnum (a replayed request is still a new request).
    """

    def __init__(self) -> None:
        self._current: RequestUserEvent | None = None
        self._generation = 0

    @property
    def generation(self) -> int:
        return self._generation

    def set(self, request: RequestUserEvent) -> int:
        self._current = request
        self._generation += 1
        return self._generation

    def clear(self) -> None:
        self._current = None

    def current(self) -> RequestUserEvent | None:
        return self._current

    def matches(self, seqnum: int) -> bool:
        return self._current is not None and self._current.seqnum == seqnum

    def take(
        self, seqnum: int | None = None, *, generation: int | None = None
    ) -> RequestUserEvent | None:
        """Return and clear the live request if it is still the one asked for."""
        request = self._current
        if request is None:
            return None
        if seqnum is not None and request.seqnum != seqnum:
            return None
        if generation is not None and generation != self._generation:
            return None
        self._current = None
        return request
