"""Card metadata lookup (display only)."""

from __future__ import annotations

import logging
from typing import Awaitable, Callable

from duelsync.protocol.models import CardPrototype, CardRef

log = logging.getLogger("duelsync")

UNKNOWN_CARD = CardPrototype(name="Unknown card", description="Unknown card")

BUILTIN_CARDS: dict[int, CardPrototype] = {
    7001: CardPrototype(name="Test Card 7001", description="Draw one card."),
    7002: CardPrototype(name="Test Card 7002", description="Draw two cards."),
    8001: CardPrototype(name="Plain Faith", description="Tap to pay 1 colorless faith."),
}


class CardCatalog:
    def __init__(self, prototypes: dict[int, CardPrototype] | None = None):
        self._prototypes: dict[int, CardPrototype] = dict(BUILTIN_CARDS)
        if prototypes:
            self._prototypes.update(prototypes)

    def __len__(self) -> int:
        return len(self._prototypes)

    def resolve(self, card_id: int) -> CardPrototype:
        return self._prototypes.get(card_id, UNKNOWN_CARD)

    def describe(self, card: CardRef) -> str:
        return f"{card.entity}: {self.resolve(card.card_id).name}"

    async def refresh(self, fetch: Callable[[], Awaitable[dict[int, CardPrototype]]]) -> bool:
        """Merge prototypes from the server. Keeps the built-ins on failure."""
        try:
            prototypes = await fetch()
        except Exception as e:
            log.warning(f"Card prototypes unavailable, using built-in table: {e}")
            return False
        self._prototypes.update(prototypes)
        log.info(f"Loaded {len(prototypes)} card prototypes")
        return True
