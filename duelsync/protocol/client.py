"""HTTP client for the game server."""

from __future__ import annotations

import asyncio
import json
import logging
from dataclasses import dataclass
from typing import AsyncIterator

import aiohttp

from duelsync.config import ClientConfig
from duelsync.protocol.errors import GameHTTPError, JoinRoomError, ProtocolError
from duelsync.protocol.events import encode_user_event
from duelsync.protocol.models import CardPrototype, UserEvent

log = logging.getLogger("duelsync")


@dataclass(frozen=True)
class JoinResult:
    room_id: str
    message: str


class GameClient:
    """HTTP + SSE transport for the game server."""

    def __init__(self, config: ClientConfig | None = None):
        self._config = config or ClientConfig()
        self.server_url = self._config.resolve_server_url()

    def _make_url(self, path: str) -> str:
        return f"{self.server_url}{path}"

    def _auth_headers(self, token: str) -> dict[str, str]:
        return {"Authorization": f"Bearer {token}"}

    async def request_json(
        self, session: aiohttp.ClientSession, method: str, url: str, **kwargs
    ) -> object | None:
        async with session.request(method, url, **kwargs) as resp:
            if resp.status == 204:
                return None
            text = await resp.text()
            if resp.status >= 400:
                detail = text.strip() or resp.reason
                raise GameHTTPError(resp.status, method=method, url=url, detail=detail)
            if not text:
                return None
            try:
                return json.loads(text)
            except json.JSONDecodeError:
                return text

    async def login(self, session: aiohttp.ClientSession, username: str) -> str:
        url = self._make_url("/auth/login")
        response = await self.request_json(session, "POST", url, json={"username": username})
        if isinstance(response, dict):
            token = response.get("token")
            if isinstance(token, str) and token:
                log.info(f"Logged in as {username}")
                return token
        raise ProtocolError("login response has no token", payload_preview=repr(response)[:200])

    async def join_room(
        self, session: aiohttp.ClientSession, token: str, room_name: str
    ) -> JoinResult:
        url = self._make_url("/game/rooms/join")
        response = await self.request_json(
            session,
            "POST",
            url,
            json={"roomName": room_name},
            headers=self._auth_headers(token),
        )
        if not isinstance(response, dict):
            raise ProtocolError("join response must be an object", payload_preview=repr(response)[:200])

        message = str(response.get("message") or "")
        if not response.get("success"):
            raise JoinRoomError(room_name, message)

        room_id = response.get("roomId")
        if isinstance(room_id, int) and not isinstance(room_id, bool):
            room_id = str(room_id)
        if not isinstance(room_id, str) or not room_id:
            raise ProtocolError("join response has no roomId", payload_preview=repr(response)[:200])

        log.info(f"Joined room {room_name} ({room_id})")
        return JoinResult(room_id=room_id, message=message)

    async def ping(self, session: aiohttp.ClientSession, token: str, room_id: str) -> object | None:
        url = self._make_url(f"/game/rooms/{room_id}/ping")
        log.debug(f"Pinging room: {room_id}")
        return await self.request_json(session, "POST", url, headers=self._auth_headers(token))

    async def submit_user_event(
        self,
        session: aiohttp.ClientSession,
        token: str,
        room_id: str,
        seqnum: int,
        event: UserEvent,
    ) -> None:
        url = self._make_url(f"/game/rooms/{room_id}/user-events/{seqnum}")
        await self.request_json(
            session,
            "POST",
            url,
            json=encode_user_event(event),
            headers=self._auth_headers(token),
        )
        log.info(f"Submitted {type(event).__name__} for seqnum {seqnum}")

    async def get_card_prototypes(self, session: aiohttp.ClientSession) -> dict[int, CardPrototype]:
        url = self._make_url("/cards/prototypes")
        response = await self.request_json(session, "GET", url)
        prototypes = response.get("prototypes") if isinstance(response, dict) else None
        if not isinstance(prototypes, dict):
            raise ProtocolError("card prototypes response malformed", payload_preview=repr(response)[:200])

        out: dict[int, CardPrototype] = {}
        for raw_id, proto in prototypes.items():
            if not isinstance(proto, dict):
                continue
            try:
                card_id = int(raw_id)
            except (TypeError, ValueError):
                continue
            out[card_id] = CardPrototype(
                name=str(proto.get("name") or ""),
                description=str(proto.get("description") or ""),
            )
        return out

    async def stream_events(
        self, session: aiohttp.ClientSession, token: str, room_id: str
    ) -> AsyncIterator[dict]:
        """Yield decoded JSON payloads from the room's event stream."""
        url = self._make_url(f"/game/rooms/{room_id}/events")
        headers = {"Accept": "text/event-stream", **self._auth_headers(token)}

        connect_timeout_s = self._config.resolve_sse_connect_timeout_s()
        request_timeout = aiohttp.ClientTimeout(total=None)

        try:
            resp = await asyncio.wait_for(
                session.get(url, headers=headers, timeout=request_timeout),
                timeout=connect_timeout_s,
            )
        except asyncio.TimeoutError as e:
            log.warning(f"Game SSE connect timed out for {url} after {connect_timeout_s}s")
            raise GameHTTPError(0, method="GET", url=url, detail="connect timed out") from e

        async with resp:
            if resp.status >= 400:
                detail = (await resp.text()).strip() or resp.reason
                raise GameHTTPError(resp.status, method="GET", url=url, detail=detail)
            log.info(f"Event stream open for room {room_id}")
            async for event in self.read_sse_stream(resp):
                yield event

    async def read_sse_stream(self, resp: aiohttp.ClientResponse) -> AsyncIterator[dict]:
        # Avoid aiohttp's line-based iteration (`readline()`), which can raise
        # ValueError("Chunk too big") when a single SSE line exceeds the stream
        # reader limit. Instead, read raw chunks and split events on blank lines.
        max_buf = self._config.resolve_sse_max_buffer_bytes()

        buf = bytearray()

        async for chunk in resp.content.iter_any():
            if not chunk:
                continue
            buf.extend(chunk)
            if len(buf) > max_buf:
                raise ValueError(f"SSE buffer too big ({len(buf)} bytes)")

            while True:
                event_bytes, consumed = split_sse_event(buf)
                if event_bytes is None:
                    break
                del buf[:consumed]

                event = decode_sse_event(event_bytes)
                if event is not None:
                    yield event

        # If the stream ends without a trailing blank line, ignore trailing bytes.


def split_sse_event(buf: bytearray) -> tuple[bytes | None, int]:
    """Return (event_bytes, consumed_bytes) for the next event, if any."""
    idx_nl = buf.find(b"\n\n")
    idx_crlf = buf.find(b"\r\n\r\n")
    if idx_nl == -1 and idx_crlf == -1:
        return None, 0
    if idx_crlf != -1 and (idx_nl == -1 or idx_crlf < idx_nl):
        return bytes(buf[:idx_crlf]), idx_crlf + 4
    return bytes(buf[:idx_nl]), idx_nl + 2


def decode_sse_event(event_bytes: bytes) -> dict | None:
    if not event_bytes.strip():
        return None

    data_lines: list[str] = []
    for raw_line in event_bytes.splitlines():
        line = raw_line.decode("utf-8", errors="replace").rstrip("\r")
        if not line or line.startswith(":"):
            continue
        if line.startswith("data:"):
            data_lines.append(line[len("data:") :].lstrip())

    if not data_lines:
        return None

    payload = "\n".join(data_lines)
    try:
        event = json.loads(payload)
    except json.JSONDecodeError:
        log.debug(f"Skipping non-JSON SSE payload: {payload[:80]!r}")
        return None
    if isinstance(event, dict):
        return event
    return None
