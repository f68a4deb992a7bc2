"""Outbound-connection guard against SSRF and DNS rebinding."""

from paranoid.backend import AsyncSafeNetworkBackend, SafeNetworkBackend
from paranoid.client import safe_async_client, safe_client
from paranoid.config import GuardSettings
from paranoid.dialer import AsyncSafeDialer, DialRequest, SafeDialer, TransportKind, dial
from paranoid.exceptions import (
    ConfigurationError,
    DialConnectionError,
    DialTimeoutError,
    GuardError,
    ResolutionError,
    UnacceptableAddressError,
)
from paranoid.policy import AddressPolicy, validate_address, validate_port
from paranoid.resolver import ResolvedAddress, Resolver

__all__ = [
    "AddressPolicy",
    "AsyncSafeDialer",
    "AsyncSafeNetworkBackend",
    "ConfigurationError",
    "DialConnectionError",
    "DialRequest",
    "DialTimeoutError",
    "GuardError",
    "GuardSettings",
    "ResolutionError",
    "ResolvedAddress",
    "Resolver",
    "SafeDialer",
    "SafeNetworkBackend",
    "TransportKind",
    "UnacceptableAddressError",
    "dial",
    "safe_async_client",
    "safe_client",
    "validate_address",
    "validate_port",
]
