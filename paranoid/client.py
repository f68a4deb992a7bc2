"""httpx clients whose every connection goes through the safe dialer."""

from __future__ import annotations

from contextlib import asynccontextmanager, contextmanager
from typing import TYPE_CHECKING, Any

import httpcore
import httpx

from paranoid.backend import AsyncSafeNetworkBackend, SafeNetworkBackend
from paranoid.dialer import AsyncSafeDialer, SafeDialer
from paranoid.exceptions import ConfigurationError
from paranoid.policy import AddressPolicy

if TYPE_CHECKING:
    from collections.abc import AsyncIterator, Iterator

# Options that would let a request leave through something other than the
# guarded pool (an explicit transport, mounts, or a proxy that resolves names
# on our behalf).
_BYPASS_OPTIONS = ("transport", "mounts", "proxy")

# Protocol options httpx ignores once a transport is supplied; they are applied
# to the guarded pool instead.
_PROTOCOL_OPTIONS = ("http1", "http2")


def _check_client_kwargs(client_kwargs: dict[str, Any]) -> None:
    bypass = [name for name in _BYPASS_OPTIONS if name in client_kwargs]
    if bypass:
        msg = f"Guarded clients do not accept {', '.join(bypass)}"
        raise ConfigurationError(msg)
    # Environment proxies would be mounted ahead of the guarded transport.
    client_kwargs["trust_env"] = False


def _pop_protocol_options(client_kwargs: dict[str, Any]) -> dict[str, bool]:
    return {name: client_kwargs.pop(name) for name in _PROTOCOL_OPTIONS if name in client_kwargs}


def build_transport(
    policy: AddressPolicy | None = None,
    *,
    verify: bool = True,
    retries: int = 0,
    resolve_timeout: float | None = None,
    http1: bool = True,
    http2: bool = False,
) -> httpx.HTTPTransport:
    """Create a blocking httpx transport bound to one policy snapshot."""
    transport = httpx.HTTPTransport(verify=verify, retries=retries, http1=http1, http2=http2)
    # Inject the guarded network backend into the transport's connection pool.
    # Uses httpx internal _pool attribute (tested against httpx 0.28.x).
    transport._pool = httpcore.ConnectionPool(
        ssl_context=httpx.create_ssl_context(verify=verify),
        retries=retries,
        http1=http1,
        http2=http2,
        network_backend=SafeNetworkBackend(policy, SafeDialer(resolve_timeout=resolve_timeout)),
    )
    return transport


def build_async_transport(
    policy: AddressPolicy | None = None,
    *,
    verify: bool = True,
    retries: int = 0,
    resolve_timeout: float | None = None,
    http1: bool = True,
    http2: bool = False,
) -> httpx.AsyncHTTPTransport:
    """Create an async httpx transport bound to one policy snapshot."""
    transport = httpx.AsyncHTTPTransport(
        verify=verify, retries=retries, http1=http1, http2=http2
    )
    # Uses httpx internal _pool attribute (tested against httpx 0.28.x).
    transport._pool = httpcore.AsyncConnectionPool(
        ssl_context=httpx.create_ssl_context(verify=verify),
        retries=retries,
        http1=http1,
        http2=http2,
        network_backend=AsyncSafeNetworkBackend(
            policy, AsyncSafeDialer(resolve_timeout=resolve_timeout)
        ),
    )
    return transport


@contextmanager
def safe_client(
    policy: AddressPolicy | None = None,
    timeout: float | httpx.Timeout | None = None,
    *,
    verify: bool = True,
    retries: int = 0,
    resolve_timeout: float | None = None,
    **client_kwargs: Any,
) -> Iterator[httpx.Client]:
    """Create an httpx.Client that validates and pins IPs at connection time."""
    _check_client_kwargs(client_kwargs)
    transport = build_transport(
        policy,
        verify=verify,
        retries=retries,
        resolve_timeout=resolve_timeout,
        **_pop_protocol_options(client_kwargs),
    )
    with httpx.Client(transport=transport, timeout=timeout, **client_kwargs) as client:
        yield client


@asynccontextmanager
async def safe_async_client(
    policy: AddressPolicy | None = None,
    timeout: float | httpx.Timeout | None = None,
    *,
    verify: bool = True,
    retries: int = 0,
    resolve_timeout: float | None = None,
    **client_kwargs: Any,
) -> AsyncIterator[httpx.AsyncClient]:
    """Create an httpx.AsyncClient that validates and pins IPs at connection time."""
    _check_client_kwargs(client_kwargs)
    transport = build_async_transport(
        policy,
        verify=verify,
        retries=retries,
        resolve_timeout=resolve_timeout,
        **_pop_protocol_options(client_kwargs),
    )
    async with httpx.AsyncClient(transport=transport, timeout=timeout, **client_kwargs) as client:
        yield client
