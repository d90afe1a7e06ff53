"""Automated player.

Answers every request with a simple policy: play the first playable card,
pay costs with the fewest providers that match exactly, end the turn when
nothing is playable.
"""

from __future__ import annotations

import logging

from duelsync.core.api import SubmitResult
from duelsync.core.cost import find_payment
from duelsync.core.driver import GameSubscription, SessionDriver
from duelsync.protocol.models import (
    CostAction,
    EndTurn,
    GameState,
    NoResponse,
    PayCost,
    PlayCard,
    RequestUserEvent,
    TurnAction,
    UserEvent,
)

log = logging.getLogger("agent")


class AutoPlayer:
    def decide(self, state: GameState | None, request: RequestUserEvent) -> UserEvent:
        action = request.action
        if isinstance(action, TurnAction):
            if action.playable_cards:
                return PlayCard(entity=action.playable_cards[0])
            return EndTurn()
        if isinstance(action, CostAction):
            payment = find_payment(action.cost, action.providers)
            if payment is None:
                # Can't pay; let the request lapse so the server cancels the play.
                return NoResponse()
            return PayCost(providers=payment)
        raise TypeError(f"Unsupported request action: {type(action).__name__}")


async def autoplay(
    driver: SessionDriver,
    subscription: GameSubscription,
    player: AutoPlayer | None = None,
) -> GameState | None:
    """Play until the game finishes. Returns the final snapshot."""
    player = player or AutoPlayer()
    async for event_type, data in subscription:
        if event_type == "request" and isinstance(data, RequestUserEvent):
            decision = player.decide(driver.state, data)
            result = await driver.submit(decision, seqnum=data.seqnum)
            if result is not SubmitResult.SENT:
                log.info(f"Decision for {data.seqnum} not sent: {result.value}")
        elif event_type == "finished":
            log.info("Game over")
        elif event_type == "error":
            log.warning(str(data))
    return driver.state
