"""httpcore network backends that route every connect through the safe dialer.

Any httpcore connection pool given one of these backends resolves, validates
and pins addresses at connection time, closing the TOCTOU gap that pre-request
DNS checks leave open.  Each backend is bound to a single policy, so the pool
that owns it never shares a socket with a pool validated under another policy.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

import httpcore

from paranoid.dialer import (
    AsyncSafeDialer,
    DialRequest,
    SafeDialer,
    TransportKind,
)
from paranoid.policy import AddressPolicy

if TYPE_CHECKING:
    from collections.abc import Iterable


class SafeNetworkBackend(httpcore.NetworkBackend):
    """Blocking network backend that only connects to policy-approved addresses."""

    def __init__(
        self,
        policy: AddressPolicy | None = None,
        dialer: SafeDialer | None = None,
    ) -> None:
        self.policy = policy or AddressPolicy.default()
        self._dialer = dialer or SafeDialer()

    def connect_tcp(
        self,
        host: str,
        port: int,
        timeout: float | None = None,
        local_address: str | None = None,
        socket_options: Iterable[httpcore.SOCKET_OPTION] | None = None,
    ) -> httpcore.NetworkStream:
        request = DialRequest(host, port, TransportKind.TCP, self.policy)
        return self._dialer.dial(
            request, timeout=timeout, local_address=local_address, socket_options=socket_options
        )

    def connect_unix_socket(
        self,
        path: str,
        timeout: float | None = None,
        socket_options: Iterable[httpcore.SOCKET_OPTION] | None = None,
    ) -> httpcore.NetworkStream:
        # Rejected by the dialer before any I/O.
        request = DialRequest(path, 0, TransportKind.UNIX, self.policy)
        return self._dialer.dial(request, timeout=timeout)


class AsyncSafeNetworkBackend(httpcore.AsyncNetworkBackend):
    """Async network backend that only connects to policy-approved addresses."""

    def __init__(
        self,
        policy: AddressPolicy | None = None,
        dialer: AsyncSafeDialer | None = None,
    ) -> None:
        self.policy = policy or AddressPolicy.default()
        self._dialer = dialer or AsyncSafeDialer()
        self._sleeper = httpcore.AnyIOBackend()

    async def connect_tcp(
        self,
        host: str,
        port: int,
        timeout: float | None = None,
        local_address: str | None = None,
        socket_options: Iterable[httpcore.SOCKET_OPTION] | None = None,
    ) -> httpcore.AsyncNetworkStream:
        request = DialRequest(host, port, TransportKind.TCP, self.policy)
        return await self._dialer.dial(
            request, timeout=timeout, local_address=local_address, socket_options=socket_options
        )

    async def connect_unix_socket(
        self,
        path: str,
        timeout: float | None = None,
        socket_options: Iterable[httpcore.SOCKET_OPTION] | None = None,
    ) -> httpcore.AsyncNetworkStream:
        request = DialRequest(path, 0, TransportKind.UNIX, self.policy)
        return await self._dialer.dial(request, timeout=timeout)

    async def sleep(self, seconds: float) -> None:
        await self._sleeper.sleep(seconds)
