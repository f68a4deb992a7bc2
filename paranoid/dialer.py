"""Resolve-validate-connect: open sockets only to addresses the policy approved.

The connect call is always handed the numeric address chosen by the resolver,
never the hostname the caller asked for, so the transport cannot re-resolve the
name to something else between the check and the connect.
"""

from __future__ import annotations

import enum
import logging
from dataclasses import dataclass, field
from typing import TYPE_CHECKING

import httpcore

from paranoid.exceptions import DialConnectionError, DialTimeoutError, UnacceptableAddressError
from paranoid.policy import AddressPolicy
from paranoid.resolver import Resolver
from paranoid.streams import AsyncGuardedStream, GuardedStream

if TYPE_CHECKING:
    from collections.abc import Iterable

logger = logging.getLogger(__name__)

UNIX_SOCKET_MESSAGE = "UNIX domain sockets are not allowed"
DISALLOWED_PORT_MESSAGE = "Disallowed port detected"


class TransportKind(enum.Enum):
    TCP = "tcp"
    UNIX = "unix"


@dataclass(frozen=True)
class DialRequest:
    """One outbound connection attempt."""

    host: str
    port: int
    transport_kind: TransportKind = TransportKind.TCP
    policy: AddressPolicy = field(default_factory=AddressPolicy.default)


def check_request(request: DialRequest) -> None:
    """Apply the checks that need no network I/O: transport kind, then port."""
    if request.transport_kind is not TransportKind.TCP:
        logger.warning("Rejected %s dial to %r", request.transport_kind.value, request.host)
        raise UnacceptableAddressError(UNIX_SOCKET_MESSAGE)
    if not request.policy.is_safe_port(request.port):
        logger.warning("Rejected dial to %r: port %r not allowed", request.host, request.port)
        raise UnacceptableAddressError(DISALLOWED_PORT_MESSAGE)


def _connect_failure(
    exc: Exception, address: str, port: int
) -> DialConnectionError | DialTimeoutError:
    detail = str(exc) or type(exc).__name__
    logger.info("Connect to %s:%d failed: %s", address, port, detail)
    if isinstance(exc, (httpcore.ConnectTimeout, TimeoutError)):
        return DialTimeoutError(detail)
    return DialConnectionError(detail)


class SafeDialer:
    """Blocking dialer built on an httpcore ``NetworkBackend``.

    Resolution blocks the calling worker thread only, and for no longer than
    ``resolve_timeout`` (or the connect timeout passed to ``dial``).
    """

    def __init__(
        self,
        network_backend: httpcore.NetworkBackend | None = None,
        resolver: Resolver | None = None,
        resolve_timeout: float | None = None,
    ) -> None:
        self._inner = network_backend or httpcore.SyncBackend()
        self._resolver = resolver or Resolver()
        self._resolve_timeout = resolve_timeout

    def dial(
        self,
        request: DialRequest,
        timeout: float | None = None,
        local_address: str | None = None,
        socket_options: Iterable[httpcore.SOCKET_OPTION] | None = None,
    ) -> GuardedStream:
        check_request(request)
        resolve_timeout = self._resolve_timeout if self._resolve_timeout is not None else timeout
        resolved = self._resolver.resolve(request.host, request.policy, timeout=resolve_timeout)

        logger.debug("Connecting to %s:%d for %r", resolved.address, request.port, request.host)
        try:
            stream = self._inner.connect_tcp(
                resolved.address,
                request.port,
                timeout=timeout,
                local_address=local_address,
                socket_options=socket_options,
            )
        except (httpcore.ConnectError, httpcore.ConnectTimeout, OSError) as exc:
            raise _connect_failure(exc, resolved.address, request.port) from exc
        return GuardedStream(stream, request.policy, resolved.address, request.host)


class AsyncSafeDialer:
    """Async dialer built on an httpcore ``AsyncNetworkBackend``.

    Resolution runs in the event loop's executor, so only the dialing task
    waits on it.  ``resolve_timeout`` bounds the lookup; when unset the
    connect timeout passed to ``dial`` bounds it instead.  Cancelling the
    task cancels whichever of the lookup or the connect is pending.
    """

    def __init__(
        self,
        network_backend: httpcore.AsyncNetworkBackend | None = None,
        resolver: Resolver | None = None,
        resolve_timeout: float | None = None,
    ) -> None:
        self._inner = network_backend or httpcore.AnyIOBackend()
        self._resolver = resolver or Resolver()
        self._resolve_timeout = resolve_timeout

    async def dial(
        self,
        request: DialRequest,
        timeout: float | None = None,
        local_address: str | None = None,
        socket_options: Iterable[httpcore.SOCKET_OPTION] | None = None,
    ) -> AsyncGuardedStream:
        check_request(request)
        resolve_timeout = self._resolve_timeout if self._resolve_timeout is not None else timeout
        resolved = await self._resolver.resolve_async(
            request.host, request.policy, timeout=resolve_timeout
        )

        logger.debug("Connecting to %s:%d for %r", resolved.address, request.port, request.host)
        try:
            stream = await self._inner.connect_tcp(
                resolved.address,
                request.port,
                timeout=timeout,
                local_address=local_address,
                socket_options=socket_options,
            )
        except (httpcore.ConnectError, httpcore.ConnectTimeout, OSError) as exc:
            raise _connect_failure(exc, resolved.address, request.port) from exc
        return AsyncGuardedStream(stream, request.policy, resolved.address, request.host)


async def dial(
    host: str,
    port: int,
    transport_kind: TransportKind = TransportKind.TCP,
    policy: AddressPolicy | None = None,
    timeout: float | None = None,
) -> AsyncGuardedStream:
    """Open a guarded TCP stream to ``host:port`` under ``policy``.

    ``None`` selects the default policy.
    """
    request = DialRequest(host, port, transport_kind, policy or AddressPolicy.default())
    return await AsyncSafeDialer().dial(request, timeout=timeout)
