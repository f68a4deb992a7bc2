"""CLI pre-flight check: would the guard let us connect to this target?"""

from __future__ import annotations

import argparse
import json
import logging
import sys
from urllib.parse import urlsplit

import httpx

from paranoid.client import safe_client
from paranoid.config import GuardSettings
from paranoid.dialer import DialRequest, SafeDialer
from paranoid.exceptions import (
    ConfigurationError,
    DialConnectionError,
    DialTimeoutError,
    ResolutionError,
    UnacceptableAddressError,
)
from paranoid.policy import AddressPolicy
from paranoid.resolver import Resolver

EXIT_ALLOWED = 0
EXIT_UNREACHABLE = 1
EXIT_REJECTED = 2

_DEFAULT_PORTS = {"http": 80, "https": 443}


def _configure_logging(debug: bool) -> None:
    """Configure CLI logging."""
    level = logging.DEBUG if debug else logging.WARNING
    fmt = "%(asctime)s %(levelname)-8s %(name)s: %(message)s"
    logging.basicConfig(level=level, format=fmt, stream=sys.stderr, force=True)
    # Quiet noisy libraries
    logging.getLogger("httpx").setLevel(logging.WARNING)
    logging.getLogger("httpcore").setLevel(logging.WARNING)


def parse_target(target: str) -> tuple[str, int, str | None]:
    """Split ``host:port`` or an http(s) URL into (host, port, url)."""
    if "://" in target:
        parts = urlsplit(target)
        scheme = parts.scheme.lower()
        if scheme not in _DEFAULT_PORTS:
            msg = f"Unsupported URL scheme: {parts.scheme!r}"
            raise ValueError(msg)
        if not parts.hostname:
            msg = f"URL has no host: {target!r}"
            raise ValueError(msg)
        return parts.hostname, parts.port or _DEFAULT_PORTS[scheme], target

    host, sep, port_text = target.rpartition(":")
    if not sep or not host:
        msg = f"Target must be HOST:PORT or a URL, got {target!r}"
        raise ValueError(msg)
    if host.startswith("[") and host.endswith("]"):
        host = host[1:-1]
    try:
        port = int(port_text)
    except ValueError as exc:
        msg = f"Invalid port: {port_text!r}"
        raise ValueError(msg) from exc
    return host, port, None


def build_policy(settings: GuardSettings, args: argparse.Namespace) -> AddressPolicy:
    """Combine environment settings with command-line overrides."""
    port_allow_list = settings.port_allow_list
    port_deny_list = settings.port_deny_list
    if args.any_port:
        port_allow_list, port_deny_list = [], []
    elif args.allow_port:
        port_allow_list, port_deny_list = args.allow_port, []
    elif args.deny_port:
        port_allow_list, port_deny_list = None, args.deny_port
    return AddressPolicy(
        ip_allow_list=[*settings.ip_allow_list, *args.allow_ip],
        ip_deny_list=[*settings.ip_deny_list, *args.deny_ip],
        port_allow_list=port_allow_list,
        port_deny_list=port_deny_list,
    )


def check(
    host: str,
    port: int,
    policy: AddressPolicy,
    *,
    connect: bool = False,
    timeout: float | None = None,
    resolve_timeout: float | None = None,
) -> int:
    """Print the guard's verdict for ``host:port`` and return the exit code.

    ``resolve_timeout`` bounds name resolution; ``timeout`` bounds it when unset.
    """
    if not policy.is_safe_port(port):
        print(f"Rejected: port {port} is not allowed")
        return EXIT_REJECTED

    try:
        resolved = Resolver().resolve(
            host, policy, timeout=resolve_timeout if resolve_timeout is not None else timeout
        )
    except UnacceptableAddressError as exc:
        print(f"Rejected: {host}: {exc}")
        return EXIT_REJECTED
    except (ResolutionError, DialTimeoutError) as exc:
        print(f"Error: could not resolve {host}: {exc}")
        return EXIT_UNREACHABLE
    print(f"Allowed: {host}:{port} -> {resolved.address}")

    if not connect:
        return EXIT_ALLOWED

    try:
        dialer = SafeDialer(resolve_timeout=resolve_timeout)
        stream = dialer.dial(DialRequest(host, port, policy=policy), timeout=timeout)
    except UnacceptableAddressError as exc:
        # The name may resolve differently the second time.
        print(f"Rejected: {host}: {exc}")
        return EXIT_REJECTED
    except (ResolutionError, DialConnectionError, DialTimeoutError) as exc:
        print(f"Error: connect to {host}:{port} failed: {exc}")
        return EXIT_UNREACHABLE
    try:
        print(f"Connected: {stream.validated_address}:{port}")
    finally:
        stream.close()
    return EXIT_ALLOWED


def fetch(url: str, policy: AddressPolicy, settings: GuardSettings, timeout: float) -> int:
    """Perform a guarded GET of ``url`` and print the response status."""
    try:
        with safe_client(
            policy,
            timeout,
            verify=settings.verify_tls,
            retries=settings.connect_retries,
            resolve_timeout=settings.resolve_timeout,
        ) as client:
            response = client.get(url)
    except UnacceptableAddressError as exc:
        print(f"Rejected: {exc}")
        return EXIT_REJECTED
    except httpx.HTTPError as exc:
        print(f"Error: request failed: {exc}")
        return EXIT_UNREACHABLE
    print(f"HTTP {response.status_code} {response.reason_phrase}")
    return EXIT_ALLOWED


def main(argv: list[str] | None = None) -> None:
    """CLI entry point."""
    parser = argparse.ArgumentParser(
        prog="paranoid-check",
        description="Check whether an outbound connection would pass the SSRF guard",
    )
    parser.add_argument("target", help="HOST:PORT or http(s):// URL")
    parser.add_argument(
        "--allow-ip", action="append", default=[], metavar="CIDR", help="Allow an IPv4 range"
    )
    parser.add_argument(
        "--deny-ip", action="append", default=[], metavar="CIDR", help="Deny an IPv4 range"
    )
    port_group = parser.add_mutually_exclusive_group()
    port_group.add_argument(
        "--allow-port", action="append", type=int, default=[], help="Only allow these ports"
    )
    port_group.add_argument(
        "--deny-port", action="append", type=int, default=[], help="Allow all ports but these"
    )
    port_group.add_argument(
        "--any-port", action="store_true", help="Allow any port in 1-65535"
    )
    parser.add_argument("--connect", action="store_true", help="Open a guarded TCP connection")
    parser.add_argument("--fetch", action="store_true", help="GET the target URL")
    parser.add_argument("--timeout", type=float, help="Connect timeout in seconds")
    parser.add_argument("--policy", action="store_true", help="Print the effective policy")
    parser.add_argument("--verbose", "-v", action="store_true", help="Enable debug logging")

    args = parser.parse_args(argv)
    settings = GuardSettings()
    _configure_logging(args.verbose or settings.debug)

    try:
        host, port, url = parse_target(args.target)
    except ValueError as exc:
        print(f"Error: {exc}")
        sys.exit(EXIT_REJECTED)
    try:
        policy = build_policy(settings, args)
    except ConfigurationError as exc:
        print(f"Error: {exc}")
        sys.exit(EXIT_REJECTED)

    if args.policy:
        print(json.dumps(policy.to_dict(), indent=2))

    timeout = args.timeout if args.timeout is not None else settings.connect_timeout
    if args.fetch:
        if url is None:
            print("Error: --fetch requires a URL target")
            sys.exit(EXIT_REJECTED)
        sys.exit(fetch(url, policy, settings, timeout))

    sys.exit(
        check(
            host,
            port,
            policy,
            connect=args.connect,
            timeout=timeout,
            resolve_timeout=settings.resolve_timeout,
        )
    )


if __name__ == "__main__":
    main()
