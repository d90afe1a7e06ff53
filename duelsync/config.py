"""Client configuration."""

from __future__ import annotations

import os
from dataclasses import dataclass

from duelsync.utils import env_float, env_int

DEFAULT_TICK_INTERVAL_S = 0.1
DEFAULT_TIMEOUT_MS = 20_000


@dataclass(frozen=True)
class ClientConfig:
    server_url: str | None = None
    username: str | None = None
    room_name: str | None = None

    # Optional overrides (otherwise env defaults apply)
    tick_interval_s: float | None = None
    default_timeout_ms: int | None = None
    http_timeout_s: float | None = None
    sse_connect_timeout_s: float | None = None
    sse_max_buffer_bytes: int | None = None

    def resolve_server_url(self) -> str:
        if self.server_url:
            return self.server_url.rstrip("/")
        base_url = os.getenv("DUELSYNC_SERVER_URL")
        if base_url:
            return base_url.rstrip("/")

        host = os.getenv("DUELSYNC_SERVER_HOST", "127.0.0.1")
        port = os.getenv("DUELSYNC_SERVER_PORT", "8617")
        return f"http://{host}:{port}"

    def resolve_username(self) -> str | None:
        return self.username or os.getenv("DUELSYNC_USERNAME") or None

    def resolve_room_name(self) -> str | None:
        return self.room_name or os.getenv("DUELSYNC_ROOM") or None

    def resolve_tick_interval_s(self) -> float:
        if self.tick_interval_s is not None:
            return float(self.tick_interval_s)
        return env_float("DUELSYNC_TICK_INTERVAL_S", DEFAULT_TICK_INTERVAL_S)

    def resolve_default_timeout_ms(self) -> int:
        if self.default_timeout_ms is not None:
            return int(self.default_timeout_ms)
        return env_int("DUELSYNC_DEFAULT_TIMEOUT_MS", DEFAULT_TIMEOUT_MS)

    def resolve_http_timeout_s(self) -> float:
        if self.http_timeout_s is not None:
            return float(self.http_timeout_s)
        return env_float("DUELSYNC_HTTP_TIMEOUT_S", 30.0)

    def resolve_sse_connect_timeout_s(self) -> float:
        if self.sse_connect_timeout_s is not None:
            return float(self.sse_connect_timeout_s)
        return env_float("DUELSYNC_SSE_CONNECT_TIMEOUT_S", 10.0)

    def resolve_sse_max_buffer_bytes(self) -> int:
        if self.sse_max_buffer_bytes is not None:
            return int(self.sse_max_buffer_bytes)
        return env_int("DUELSYNC_SSE_MAX_BUFFER_BYTES", 16 * 1024 * 1024)
