"""Hostname resolution filtered through an ``AddressPolicy``.

Every IPv4 record is requested, canonicalized to dotted-quad form and checked
against the policy.  The first record (in resolver order) that passes is the
one the dialer connects to.  Resolution failures stay resolution failures;
they are never reported as a policy rejection.
"""

from __future__ import annotations

import asyncio
import concurrent.futures
import ipaddress
import logging
import socket
from dataclasses import dataclass
from typing import TYPE_CHECKING

from paranoid.exceptions import DialTimeoutError, ResolutionError, UnacceptableAddressError

if TYPE_CHECKING:
    from collections.abc import Iterable, Sequence

    from paranoid.policy import AddressPolicy

logger = logging.getLogger(__name__)

ALL_BLACKLISTED_MESSAGE = "All addresses were blacklisted!"

# Blocking lookups that carry a timeout run here so the caller can stop waiting.
# A lookup that outlives its timeout keeps its worker until getaddrinfo returns.
_LOOKUP_EXECUTOR = concurrent.futures.ThreadPoolExecutor(thread_name_prefix="paranoid-resolve")

_AddrInfo = tuple[
    socket.AddressFamily, socket.SocketKind, int, str, tuple[str, int] | tuple[str, int, int, int]
]


@dataclass(frozen=True)
class ResolvedAddress:
    """A canonical IPv4 address produced by resolution."""

    address: str
    family: socket.AddressFamily = socket.AF_INET

    def __str__(self) -> str:
        return self.address


def canonicalize(address: str) -> str | None:
    """Return the dotted-quad form of an IPv4 address, or None if it is not one."""
    try:
        return str(ipaddress.IPv4Address(address))
    except ValueError:
        return None


def literal_address(host: str) -> str | None:
    """Return ``host`` unchanged when it is already an IP literal, else None.

    Bracketed IPv6 literals are unwrapped so that they reach the filter
    (which rejects them) instead of DNS.
    """
    candidate = host.strip()
    if candidate.startswith("[") and candidate.endswith("]"):
        candidate = candidate[1:-1]
    try:
        ipaddress.ip_address(candidate)
    except ValueError:
        return None
    return candidate


def _addresses_from_addrinfo(infos: Iterable[_AddrInfo]) -> list[str]:
    return [str(sockaddr[0]) for _family, _type, _proto, _canonname, sockaddr in infos]


def select_address(host: str, addresses: Sequence[str], policy: AddressPolicy) -> ResolvedAddress:
    """Pick the first address that survives canonicalization and the policy filter."""
    seen: set[str] = set()
    for raw in addresses:
        address = canonicalize(raw)
        if address is None:
            logger.debug("Dropping non-IPv4 candidate %s for %r", raw, host)
            continue
        if address in seen:
            continue
        seen.add(address)
        if policy.is_safe_ip(address):
            return ResolvedAddress(address)
        logger.debug("Candidate %s for %r rejected by policy", address, host)

    logger.warning("Rejected %r: no resolved address passed the policy (%s)", host, addresses)
    raise UnacceptableAddressError(ALL_BLACKLISTED_MESSAGE)


def _resolution_error(host: str, exc: OSError | UnicodeError) -> ResolutionError:
    # UnicodeError: the idna codec refused the name (empty or over-long label).
    logger.info("DNS resolution failed for %r: %s", host, exc)
    return ResolutionError(str(exc), host=host, errno=getattr(exc, "errno", None))


def _timeout_error(host: str) -> DialTimeoutError:
    msg = f"DNS resolution timed out for {host!r}"
    logger.info(msg)
    return DialTimeoutError(msg)


def _no_records_error(host: str) -> ResolutionError:
    msg = f"DNS resolution returned no IPv4 records for {host!r}"
    logger.info(msg)
    return ResolutionError(msg, host=host)


class Resolver:
    """Resolve a hostname to one policy-approved IPv4 address.

    ``resolve`` blocks the calling thread on ``getaddrinfo``, for at most
    ``timeout`` seconds when one is given; ``resolve_async`` hands the lookup
    to the running loop's executor so that only the calling task waits.
    """

    def resolve(
        self, host: str, policy: AddressPolicy, timeout: float | None = None
    ) -> ResolvedAddress:
        literal = literal_address(host)
        if literal is not None:
            return select_address(host, [literal], policy)

        try:
            infos = self._getaddrinfo(host, timeout)
        except TimeoutError as exc:
            raise _timeout_error(host) from exc
        except (OSError, UnicodeError) as exc:
            raise _resolution_error(host, exc) from exc
        return self._select(host, infos, policy)

    async def resolve_async(
        self, host: str, policy: AddressPolicy, timeout: float | None = None
    ) -> ResolvedAddress:
        literal = literal_address(host)
        if literal is not None:
            return select_address(host, [literal], policy)

        loop = asyncio.get_running_loop()
        try:
            infos = await asyncio.wait_for(
                loop.getaddrinfo(host, None, family=socket.AF_INET, type=socket.SOCK_STREAM),
                timeout,
            )
        except TimeoutError as exc:
            raise _timeout_error(host) from exc
        except (OSError, UnicodeError) as exc:
            raise _resolution_error(host, exc) from exc
        return self._select(host, infos, policy)

    @staticmethod
    def _getaddrinfo(host: str, timeout: float | None) -> list[_AddrInfo]:
        if timeout is None:
            return socket.getaddrinfo(host, None, family=socket.AF_INET, type=socket.SOCK_STREAM)
        future = _LOOKUP_EXECUTOR.submit(
            socket.getaddrinfo, host, None, family=socket.AF_INET, type=socket.SOCK_STREAM
        )
        try:
            return future.result(timeout)
        except TimeoutError:
            future.cancel()
            raise

    def _select(
        self, host: str, infos: Iterable[_AddrInfo], policy: AddressPolicy
    ) -> ResolvedAddress:
        addresses = _addresses_from_addrinfo(infos)
        if not addresses:
            raise _no_records_error(host)
        logger.debug("Resolved %r to %s", host, addresses)
        return select_address(host, addresses, policy)
