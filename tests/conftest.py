"""
Pytest fixtures for duelsync tests.
"""

from __future__ import annotations

import aiohttp
import pytest
import pytest_asyncio
from aiohttp.test_utils import TestServer

from duelsync.config import ClientConfig
from duelsync.core.api import Session
from duelsync.core.driver import SessionDriver

from tests.fakes import FakeGameServer, FakeTransport


@pytest.fixture
def session() -> Session:
    return Session(token="dG9rZW4=", room_id="room-1", room_name="lobby-7")


@pytest.fixture
def transport() -> FakeTransport:
    return FakeTransport()


@pytest.fixture
def config() -> ClientConfig:
    return ClientConfig(
        server_url="http://game.invalid",
        tick_interval_s=0.01,
        default_timeout_ms=1000,
    )


@pytest.fixture
def driver(transport: FakeTransport, config: ClientConfig) -> SessionDriver:
    return SessionDriver(transport, config=config)


@pytest_asyncio.fixture
async def game_server():
    fake = FakeGameServer()
    server = TestServer(fake.app())
    await server.start_server()
    fake.base_url = str(server.make_url("/")).rstrip("/")
    try:
        yield fake
    finally:
        await server.close()


@pytest_asyncio.fixture
async def http():
    async with aiohttp.ClientSession() as client_session:
        yield client_session
