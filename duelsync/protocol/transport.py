"""Game transport wiring.

Owns the aiohttp client session and adapts GameClient to the driver's
transport port. Parsing/state updates live in the core.
"""

from __future__ import annotations

import logging
from typing import AsyncIterator

import aiohttp

from duelsync.config import ClientConfig
from duelsync.core.api import Session
from duelsync.protocol.client import GameClient
from duelsync.protocol.models import CardPrototype, UserEvent

log = logging.getLogger("duelsync")


class GameTransport:
    def __init__(self, client: GameClient, http: aiohttp.ClientSession):
        self._client = client
        self._http = http

    @property
    def client(self) -> GameClient:
        return self._client

    async def login_and_join(self, username: str, room_name: str) -> Session:
        token = await self._client.login(self._http, username)
        joined = await self._client.join_room(self._http, token, room_name)
        if joined.message:
            log.info(joined.message)
        return Session(token=token, room_id=joined.room_id, room_name=room_name)

    def stream_events(self, session: Session) -> AsyncIterator[dict]:
        return self._client.stream_events(self._http, session.token, session.room_id)

    async def submit_user_event(self, session: Session, seqnum: int, event: UserEvent) -> None:
        await self._client.submit_user_event(
            self._http, session.token, session.room_id, seqnum, event
        )

    async def ping(self, session: Session) -> None:
        await self._client.ping(self._http, session.token, session.room_id)

    async def get_card_prototypes(self) -> dict[int, CardPrototype]:
        return await self._client.get_card_prototypes(self._http)


def build_http_timeout(config: ClientConfig | None = None) -> aiohttp.ClientTimeout:
    return aiohttp.ClientTimeout(total=(config or ClientConfig()).resolve_http_timeout_s())
