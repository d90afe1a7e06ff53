"""Game server protocol: wire types, HTTP/SSE client and errors."""

from duelsync.protocol.client import GameClient
from duelsync.protocol.models import (
    CardRef,
    Cost,
    CostAction,
    CostProvider,
    EndTurn,
    GameState,
    NoResponse,
    PayCost,
    PlayCard,
    RequestUserEvent,
    TurnAction,
    UserEvent,
)
from duelsync.protocol.transport import GameTransport

__all__ = [
    "CardRef",
    "Cost",
    "CostAction",
    "CostProvider",
    "EndTurn",
    "GameClient",
    "GameState",
    "GameTransport",
    "NoResponse",
    "PayCost",
    "PlayCard",
    "RequestUserEvent",
    "TurnAction",
    "UserEvent",
]
