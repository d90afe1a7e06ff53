"""Snapshot reconciliation."""

from __future__ import annotations

import logging

from duelsync.core.api import Phase
from duelsync.protocol.models import GameState

log = logging.getLogger("session")


class StateReconciler:
    """Keeps the latest server snapshot.

    Snapshots replace the held state wholesale. Nothing is merged, so a
    field the server leaves out can't survive from an older snapshot.
    """

    def __init__(self) -> None:
        self._state: GameState | None = None
        self._phase = Phase.UNINITIALIZED

    @property
    def state(self) -> GameState | None:
        return self._state

    @property
    def phase(self) -> Phase:
        return self._phase

    @property
    def started(self) -> bool:
        return self._state is not None

    @property
    def finished(self) -> bool:
        return self._phase is Phase.FINISHED

    def apply(self, snapshot: GameState) -> None:
        self._state = snapshot
        if self._phase is Phase.FINISHED:
            return
        if snapshot.game_finished:
            log.info(f"Game finished at round {snapshot.round_number}")
            self._phase = Phase.FINISHED
        elif self._phase is Phase.UNINITIALIZED:
            log.info("Game started")
            self._phase = Phase.ACTIVE
