"""Exception types raised by the outbound-connection guard.

Convention:
- ``UnacceptableAddressError``: a deliberate security rejection (disallowed
  transport, port or address).  It is *not* an httpcore transport error, so it
  propagates out of ``httpx`` untouched and httpcore never retries it.
- ``ResolutionError``, ``DialConnectionError`` and ``DialTimeoutError``: the
  destination was acceptable but could not be reached.  They subclass the
  matching httpcore exceptions, so ``httpx`` reports them as
  ``httpx.ConnectError`` / ``httpx.ConnectTimeout`` and callers may retry.
- ``ConfigurationError``: an invalid policy; raised at construction time.
"""

from __future__ import annotations

import httpcore


class GuardError(Exception):
    """Base class for every error raised by the guard."""


class ConfigurationError(GuardError, ValueError):
    """Raised when an ``AddressPolicy`` is built from contradictory or malformed input."""


class UnacceptableAddressError(GuardError):
    """Raised when a dial is refused by policy.

    Never retried: the same request under the same policy is rejected again.
    """


class ResolutionError(GuardError, httpcore.ConnectError):
    """Raised when the hostname could not be resolved.

    The resolver's own error number and message are preserved and the
    original exception is chained as ``__cause__``.
    """

    def __init__(self, message: str, *, host: str | None = None, errno: int | None = None) -> None:
        super().__init__(message)
        self.host = host
        self.errno = errno


class DialConnectionError(GuardError, httpcore.ConnectError):
    """Raised when connecting to an already validated address fails."""


class DialTimeoutError(GuardError, httpcore.ConnectTimeout):
    """Raised when resolution or connect exceeds its timeout."""
