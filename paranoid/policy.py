"""Address and port policy: pure allow/deny evaluation for outbound dials."""

from __future__ import annotations

import ipaddress
from dataclasses import dataclass
from itertools import chain
from typing import TYPE_CHECKING, Any

from paranoid.exceptions import ConfigurationError

if TYPE_CHECKING:
    from collections.abc import Iterable

# Non-routable, reserved and special-purpose IPv4 space. Always denied unless
# a policy's allow list punches a hole in it.
BUILTIN_DENY_NETWORKS: tuple[ipaddress.IPv4Network, ...] = tuple(
    ipaddress.IPv4Network(cidr)
    for cidr in (
        "0.0.0.0/8",
        "10.0.0.0/8",
        "100.64.0.0/10",
        "127.0.0.0/8",
        "169.254.0.0/16",
        "172.16.0.0/12",
        "192.0.0.0/29",
        "192.0.0.170/31",
        "192.0.2.0/24",
        "192.88.99.0/24",
        "192.168.0.0/16",
        "198.18.0.0/15",
        "198.51.100.0/24",
        "203.0.113.0/24",
        "224.0.0.0/4",
        "240.0.0.0/4",
        "255.255.255.255/32",
    )
)

# Common HTTP(S) ports.
DEFAULT_PORT_ALLOW_LIST: frozenset[int] = frozenset({80, 8080, 443, 8443, 8000})

MIN_PORT = 1
MAX_PORT = 65535


def _parse_network(value: object) -> ipaddress.IPv4Network:
    if isinstance(value, ipaddress.IPv4Network):
        return value
    if isinstance(value, ipaddress.IPv4Address):
        return ipaddress.IPv4Network(value)
    if not isinstance(value, str):
        msg = f"IP range must be a CIDR string, got {type(value).__name__}"
        raise ConfigurationError(msg)
    try:
        return ipaddress.IPv4Network(value.strip(), strict=False)
    except ValueError as exc:
        msg = f"Invalid IPv4 range {value!r}: {exc}"
        raise ConfigurationError(msg) from exc


def _parse_networks(values: Iterable[object] | None) -> tuple[ipaddress.IPv4Network, ...]:
    if values is None:
        return ()
    if isinstance(values, (str, bytes)):
        msg = "IP ranges must be given as a collection, not a single string"
        raise ConfigurationError(msg)
    return tuple(sorted({_parse_network(value) for value in values}))


def _parse_ports(values: Iterable[object] | None) -> frozenset[int] | None:
    if values is None:
        return None
    ports: set[int] = set()
    for value in values:
        if isinstance(value, bool) or not isinstance(value, int):
            msg = f"Port must be an integer, got {value!r}"
            raise ConfigurationError(msg)
        if not MIN_PORT <= value <= MAX_PORT:
            msg = f"Port {value} is outside {MIN_PORT}-{MAX_PORT}"
            raise ConfigurationError(msg)
        ports.add(value)
    return frozenset(ports)


def _parse_ipv4(address: object) -> ipaddress.IPv4Address | None:
    if isinstance(address, ipaddress.IPv4Address):
        return address
    if not isinstance(address, str) or not address:
        return None
    try:
        return ipaddress.IPv4Address(address)
    except ValueError:
        return None


@dataclass(frozen=True)
class AddressPolicy:
    """Immutable allow/deny configuration for outbound dials.

    Every input collection is copied into a frozen, normalized form when the
    policy is built, so mutating the caller's lists afterwards has no effect.
    Two policies built from the same configuration compare and hash equal,
    which lets them key connection pools.

    ``ip_allow_list`` overrides everything, including the built-in deny set.
    ``port_allow_list`` and ``port_deny_list`` are mutually exclusive; when
    neither is given the allow list defaults to ``DEFAULT_PORT_ALLOW_LIST``.
    An explicitly empty allow list means any port in range is accepted.
    """

    ip_allow_list: tuple[ipaddress.IPv4Network, ...] = ()
    ip_deny_list: tuple[ipaddress.IPv4Network, ...] = ()
    port_allow_list: frozenset[int] | None = None
    port_deny_list: frozenset[int] | None = None

    def __post_init__(self) -> None:
        allow_ports = _parse_ports(self.port_allow_list)
        deny_ports = _parse_ports(self.port_deny_list) or frozenset()
        if allow_ports and deny_ports:
            msg = "Only a port allow list or a port deny list may be set, not both"
            raise ConfigurationError(msg)
        if allow_ports is None:
            allow_ports = frozenset() if deny_ports else DEFAULT_PORT_ALLOW_LIST

        # Frozen dataclass: normalized values go in through object.__setattr__.
        object.__setattr__(self, "ip_allow_list", _parse_networks(self.ip_allow_list))
        object.__setattr__(self, "ip_deny_list", _parse_networks(self.ip_deny_list))
        object.__setattr__(self, "port_allow_list", allow_ports)
        object.__setattr__(self, "port_deny_list", deny_ports)

    @classmethod
    def default(cls) -> AddressPolicy:
        """Return the shared default policy (built-in deny set, common HTTP ports)."""
        return _DEFAULT_POLICY

    def is_safe_ip(self, address: object) -> bool:
        """Return True when ``address`` is a dotted-quad IPv4 address this policy accepts."""
        ip = _parse_ipv4(address)
        if ip is None:
            return False
        if any(ip in network for network in self.ip_allow_list):
            return True
        return not any(
            ip in network for network in chain(BUILTIN_DENY_NETWORKS, self.ip_deny_list)
        )

    def is_safe_port(self, port: object) -> bool:
        """Return True when ``port`` is an in-range integer this policy accepts."""
        if isinstance(port, bool) or not isinstance(port, int):
            return False
        if not MIN_PORT <= port <= MAX_PORT:
            return False
        if self.port_allow_list:
            return port in self.port_allow_list
        if self.port_deny_list:
            return port not in self.port_deny_list
        return True

    def replace(self, **changes: Any) -> AddressPolicy:
        """Build a new policy from this one's settings with ``changes`` applied.

        Setting only ``port_deny_list`` drops the default port allow list, as
        it would at construction.  An explicit allow list is kept, so the
        result has both lists and raises ``ConfigurationError``.
        """
        settings: dict[str, Any] = {
            "ip_allow_list": self.ip_allow_list,
            "ip_deny_list": self.ip_deny_list,
            "port_allow_list": self.port_allow_list,
            "port_deny_list": self.port_deny_list,
        }
        if (
            "port_deny_list" in changes
            and "port_allow_list" not in changes
            and self.port_allow_list == DEFAULT_PORT_ALLOW_LIST
        ):
            settings["port_allow_list"] = None
        settings.update(changes)
        return AddressPolicy(**settings)

    def to_dict(self) -> dict[str, list[str] | list[int]]:
        """Return a JSON-friendly view of the policy."""
        return {
            "ip_allow_list": [str(network) for network in self.ip_allow_list],
            "ip_deny_list": [str(network) for network in self.ip_deny_list],
            "port_allow_list": sorted(self.port_allow_list or ()),
            "port_deny_list": sorted(self.port_deny_list or ()),
        }


_DEFAULT_POLICY = AddressPolicy()


def validate_address(policy: AddressPolicy | None, address: object) -> bool:
    """Pre-flight check of a single address; ``None`` means the default policy."""
    return (policy or AddressPolicy.default()).is_safe_ip(address)


def validate_port(policy: AddressPolicy | None, port: object) -> bool:
    """Pre-flight check of a single port; ``None`` means the default policy."""
    return (policy or AddressPolicy.default()).is_safe_port(port)
