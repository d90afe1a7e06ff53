"""Public API for the session core.

This module is the stable boundary between:
- front ends (console, automated agents)
- the concrete driver implementation (driver.py)

Code outside the core should depend on these types, not on driver internals.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum


@dataclass(frozen=True)
class Session:
    """One joined room. The token and room id are opaque."""

    token: str
    room_id: str
    room_name: str


class SubmitResult(Enum):
    SENT = "sent"
    STALE = "stale"  # no tracked request, or it has been superseded
    INVALID = "invalid"  # payload doesn't answer the tracked request


class Phase(Enum):
    UNINITIALIZED = "uninitialized"
    ACTIVE = "active"
    FINISHED = "finished"


# -----------------
# Event boundary
# -----------------

# ("state", GameState) - snapshot applied
# ("finished", GameState) - snapshot that ended the game
# ("request", RequestUserEvent) - a decision is needed
# ("timeout", RequestUserEvent) - implicit response sent for an expired request
# ("error", str) - background submission failed
SessionEvent = tuple[str, object]
