"""Game protocol data structures.

Wire payloads use camelCase JSON keys. Every snapshot is parsed into a fresh
object, so fields missing from the payload come back as defaults rather than
whatever the previous snapshot said.
"""

from __future__ import annotations

from dataclasses import dataclass, field

from duelsync.protocol.errors import ProtocolError

DEFAULT_COST_ANY = 1


def _preview(payload: object) -> str:
    return repr(payload)[:200]


def _as_int(payload: dict, key: str, default: int = 0) -> int:
    value = payload.get(key)
    if value is None:
        return default
    if isinstance(value, bool) or not isinstance(value, (int, float, str)):
        raise ProtocolError(f"{key} must be an integer", payload_preview=_preview(payload))
    try:
        return int(value)
    except (ValueError, OverflowError) as e:
        raise ProtocolError(f"{key} must be an integer", payload_preview=_preview(payload)) from e


def _as_bool(payload: dict, key: str) -> bool:
    value = payload.get(key)
    if value is None:
        return False
    if not isinstance(value, bool):
        raise ProtocolError(f"{key} must be a boolean", payload_preview=_preview(payload))
    return value


def _as_list(payload: dict, key: str) -> list:
    value = payload.get(key)
    if value is None:
        return []
    if not isinstance(value, list):
        raise ProtocolError(f"{key} must be a list", payload_preview=_preview(payload))
    return value


def _as_dict(payload: object, what: str) -> dict:
    if not isinstance(payload, dict):
        raise ProtocolError(f"{what} must be an object", payload_preview=_preview(payload))
    return payload


def _entity_ids(values: list, key: str) -> tuple[int, ...]:
    out: list[int] = []
    for value in values:
        if isinstance(value, bool) or not isinstance(value, int):
            raise ProtocolError(f"{key} entries must be integers", payload_preview=_preview(values))
        out.append(value)
    return tuple(out)


# -----------------
# Snapshot
# -----------------


@dataclass(frozen=True)
class CardRef:
    """A card instance: prototype id plus the server-side entity id."""

    card_id: int
    entity: int

    @classmethod
    def from_dict(cls, payload: object) -> CardRef:
        data = _as_dict(payload, "card")
        return cls(card_id=_as_int(data, "cardId"), entity=_as_int(data, "entity"))

    def to_dict(self) -> dict:
        return {"cardId": self.card_id, "entity": self.entity}


@dataclass(frozen=True)
class GameState:
    """Full authoritative game view at one instant."""

    debug_log: tuple[str, ...] = ()
    self_hand: tuple[CardRef, ...] = ()
    other_hand_count: int = 0
    self_deck_count: int = 0
    other_deck_count: int = 0
    round_number: int = 0
    is_my_turn: bool = False
    game_finished: bool = False
    self_faith: tuple[CardRef, ...] = ()
    other_faith: tuple[CardRef, ...] = ()

    @classmethod
    def from_dict(cls, payload: object) -> GameState:
        data = _as_dict(payload, "stateUpdate")
        return cls(
            debug_log=tuple(str(line) for line in _as_list(data, "debugLog")),
            self_hand=tuple(CardRef.from_dict(c) for c in _as_list(data, "selfHand")),
            other_hand_count=_as_int(data, "otherHandCount"),
            self_deck_count=_as_int(data, "selfDeckCount"),
            other_deck_count=_as_int(data, "otherDeckCount"),
            round_number=_as_int(data, "roundNumber"),
            is_my_turn=_as_bool(data, "isMyTurn"),
            game_finished=_as_bool(data, "gameFinished"),
            self_faith=tuple(CardRef.from_dict(c) for c in _as_list(data, "selfFaith")),
            other_faith=tuple(CardRef.from_dict(c) for c in _as_list(data, "otherFaith")),
        )

    def to_dict(self) -> dict:
        return {
            "debugLog": list(self.debug_log),
            "selfHand": [c.to_dict() for c in self.self_hand],
            "otherHandCount": self.other_hand_count,
            "selfDeckCount": self.self_deck_count,
            "otherDeckCount": self.other_deck_count,
            "roundNumber": self.round_number,
            "isMyTurn": self.is_my_turn,
            "gameFinished": self.game_finished,
            "selfFaith": [c.to_dict() for c in self.self_faith],
            "otherFaith": [c.to_dict() for c in self.other_faith],
        }


# -----------------
# Requests
# -----------------


@dataclass(frozen=True)
class Cost:
    """A cost requirement (or a provider's contribution toward one)."""

    any: int = 0

    @classmethod
    def from_dict(cls, payload: object) -> Cost:
        data = _as_dict(payload, "cost")
        return cls(any=_as_int(data, "any"))

    def to_dict(self) -> dict:
        return {"any": self.any}


@dataclass(frozen=True)
class CostProvider:
    entity: int
    provided: Cost = field(default_factory=Cost)

    @classmethod
    def from_dict(cls, payload: object) -> CostProvider:
        data = _as_dict(payload, "provider")
        provided = data.get("provided")
        return cls(
            entity=_as_int(data, "entity"),
            provided=Cost.from_dict(provided) if provided is not None else Cost(),
        )

    def to_dict(self) -> dict:
        return {"entity": self.entity, "provided": self.provided.to_dict()}


@dataclass(frozen=True)
class TurnAction:
    """Pick a card to play or end the turn."""

    playable_cards: tuple[int, ...] = ()

    @classmethod
    def from_dict(cls, payload: object) -> TurnAction:
        data = _as_dict(payload, "turnAction")
        return cls(playable_cards=_entity_ids(_as_list(data, "playableCards"), "playableCards"))

    def to_dict(self) -> dict:
        return {"turnAction": {"playableCards": list(self.playable_cards)}}


@dataclass(frozen=True)
class CostAction:
    """Pick providers that exactly pay the cost."""

    cost: Cost = field(default_factory=lambda: Cost(any=DEFAULT_COST_ANY))
    providers: tuple[CostProvider, ...] = ()

    @classmethod
    def from_dict(cls, payload: object) -> CostAction:
        data = _as_dict(payload, "costAction")
        raw_cost = data.get("cost")
        cost = Cost.from_dict(raw_cost) if raw_cost is not None else Cost(any=DEFAULT_COST_ANY)
        return cls(
            cost=cost,
            providers=tuple(CostProvider.from_dict(p) for p in _as_list(data, "providers")),
        )

    def to_dict(self) -> dict:
        return {
            "costAction": {
                "cost": self.cost.to_dict(),
                "providers": [p.to_dict() for p in self.providers],
            }
        }


RequestAction = TurnAction | CostAction


@dataclass(frozen=True)
class RequestUserEvent:
    """A server prompt waiting for exactly one client decision."""

    seqnum: int
    timeout_ms: int
    action: RequestAction

    def to_dict(self) -> dict:
        return {"seqnum": self.seqnum, "timeout": self.timeout_ms, **self.action.to_dict()}


# -----------------
# Responses
# -----------------


@dataclass(frozen=True)
class PlayCard:
    entity: int

    def to_dict(self) -> dict:
        return {"playCard": {"entity": self.entity}}


@dataclass(frozen=True)
class EndTurn:
    def to_dict(self) -> dict:
        return {"endTurn": {}}


@dataclass(frozen=True)
class PayCost:
    providers: tuple[int, ...] = ()

    def to_dict(self) -> dict:
        return {"payCost": {"providers": list(self.providers)}}


@dataclass(frozen=True)
class NoResponse:
    """Implicit answer sent when a request times out."""

    def to_dict(self) -> dict:
        return {}


UserEvent = PlayCard | EndTurn | PayCost | NoResponse


@dataclass(frozen=True)
class CardPrototype:
    """Display metadata for a card id."""

    name: str
    description: str = ""
