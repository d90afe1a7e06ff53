"""Game event normalization helpers."""

from __future__ import annotations

import logging

from duelsync.protocol.errors import ProtocolError
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

log = logging.getLogger("duelsync")

InboundMessage = GameState | RequestUserEvent


def coerce_event(payload: dict) -> tuple[str, object] | None:
    """Return (kind, body) for a raw stream payload.

    The server emits the oneof directly:
    {"stateUpdate": {...}} or {"requestUserEvent": {...}}

    Some gateways wrap it once more as {"eventType": {...}} or use the
    discriminated {"$case": "stateUpdate", "value": {...}} form. We unwrap
    both so downstream parsing sees a single shape.
    """
    inner = payload.get("eventType")
    if isinstance(inner, dict):
        payload = inner

    case = payload.get("$case")
    if isinstance(case, str):
        return case, payload.get("value")

    for kind in ("stateUpdate", "requestUserEvent"):
        if kind in payload:
            return kind, payload[kind]

    return None


def parse_request(payload: object, *, default_timeout_ms: int) -> RequestUserEvent:
    if not isinstance(payload, dict):
        raise ProtocolError("requestUserEvent must be an object", payload_preview=repr(payload)[:200])

    seqnum = payload.get("seqnum")
    if isinstance(seqnum, str) and seqnum.isdigit():
        # 64-bit integers may arrive as strings in proto3 JSON.
        seqnum = int(seqnum)
    if isinstance(seqnum, bool) or not isinstance(seqnum, int):
        raise ProtocolError("requestUserEvent.seqnum missing", payload_preview=repr(payload)[:200])

    timeout = payload.get("timeout")
    timeout_ms = int(timeout) if isinstance(timeout, (int, float)) and not isinstance(timeout, bool) else 0
    if timeout_ms <= 0:
        timeout_ms = default_timeout_ms

    # The request body is itself a oneof; accept the nested "eventType" form too.
    body = payload.get("eventType") if isinstance(payload.get("eventType"), dict) else payload
    if "$case" in body:
        body = {body["$case"]: body.get("value")}

    if "turnAction" in body:
        action: TurnAction | CostAction = TurnAction.from_dict(body["turnAction"] or {})
    elif "costAction" in body:
        action = CostAction.from_dict(body["costAction"] or {})
    else:
        raise ProtocolError("requestUserEvent has no known action", payload_preview=repr(payload)[:200])

    return RequestUserEvent(seqnum=seqnum, timeout_ms=timeout_ms, action=action)


def parse_message(payload: dict, *, default_timeout_ms: int) -> InboundMessage | None:
    """Demultiplex a raw stream payload into a snapshot or a request.

    Unknown message kinds return None so newer servers don't break older
    clients. Known kinds with a malformed body raise ProtocolError.
    """
    coerced = coerce_event(payload)
    if coerced is None:
        log.debug(f"Ignoring stream payload without a known event: {list(payload)[:5]}")
        return None

    kind, body = coerced
    if kind == "stateUpdate":
        return GameState.from_dict(body if body is not None else {})
    if kind == "requestUserEvent":
        return parse_request(body, default_timeout_ms=default_timeout_ms)

    log.debug(f"Ignoring unknown stream event: {kind}")
    return None


def encode_user_event(event: UserEvent) -> dict:
    if isinstance(event, (PlayCard, EndTurn, PayCost, NoResponse)):
        return event.to_dict()
    raise TypeError(f"Unsupported user event: {type(event).__name__}")
