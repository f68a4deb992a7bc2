"""Shared test fixtures for the outbound-connection guard."""

from __future__ import annotations

import asyncio
import logging
import os
import socket
from typing import TYPE_CHECKING

import pytest

from paranoid.policy import AddressPolicy

if TYPE_CHECKING:
    from collections.abc import AsyncGenerator, Generator

logger = logging.getLogger(__name__)

HTTP_OK_RESPONSE = b"HTTP/1.1 200 OK\r\nContent-Length: 2\r\nConnection: close\r\n\r\nok"


@pytest.fixture(autouse=True)
def _isolated_env(monkeypatch: pytest.MonkeyPatch, tmp_path_factory: pytest.TempPathFactory):
    """Keep PARANOID_* variables and any stray .env file out of every test."""
    for name in list(os.environ):
        if name.startswith("PARANOID_"):
            monkeypatch.delenv(name)
    monkeypatch.chdir(tmp_path_factory.mktemp("cwd"))


@pytest.fixture
def listening_port() -> Generator[int]:
    """A loopback TCP port with a listening socket; connects complete via the backlog."""
    with socket.socket(socket.AF_INET, socket.SOCK_STREAM) as sock:
        sock.bind(("127.0.0.1", 0))
        sock.listen(8)
        yield sock.getsockname()[1]


@pytest.fixture
def closed_port() -> int:
    """A loopback TCP port that nothing listens on."""
    with socket.socket(socket.AF_INET, socket.SOCK_STREAM) as sock:
        sock.bind(("127.0.0.1", 0))
        return sock.getsockname()[1]


@pytest.fixture
def loopback_policy(listening_port: int) -> AddressPolicy:
    return AddressPolicy(ip_allow_list=["127.0.0.1/32"], port_allow_list=[listening_port])


@pytest.fixture
async def http_server() -> AsyncGenerator[tuple[int, list[str]]]:
    """Minimal HTTP/1.1 server on loopback; yields (port, request lines seen)."""
    request_lines: list[str] = []

    async def handle(reader: asyncio.StreamReader, writer: asyncio.StreamWriter) -> None:
        try:
            head = await reader.readuntil(b"\r\n\r\n")
            request_lines.append(head.split(b"\r\n", 1)[0].decode("ascii"))
            writer.write(HTTP_OK_RESPONSE)
            await writer.drain()
        except (asyncio.IncompleteReadError, ConnectionError) as exc:
            logger.debug("Test HTTP server connection ended early: %s", exc)
        finally:
            writer.close()

    server = await asyncio.start_server(handle, "127.0.0.1", 0)
    port = server.sockets[0].getsockname()[1]
    try:
        yield port, request_lines
    finally:
        server.close()
        await server.wait_closed()
