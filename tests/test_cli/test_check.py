"""Tests for the paranoid-check CLI."""

from __future__ import annotations

import json
import logging
import socket
from unittest.mock import patch

import pytest

from cli.check import (
    EXIT_ALLOWED,
    EXIT_REJECTED,
    EXIT_UNREACHABLE,
    check,
    main,
    parse_target,
)
from paranoid.policy import AddressPolicy
from tests.test_core._dial_helpers import make_addrinfo, slow_getaddrinfo


@pytest.fixture(autouse=True)
def _restore_logging():
    """main() reconfigures the root logger; put it back after each test."""
    root = logging.getLogger()
    handlers, level = root.handlers[:], root.level
    yield
    root.handlers[:] = handlers
    root.setLevel(level)


def _run(argv: list[str]) -> int:
    with pytest.raises(SystemExit) as excinfo:
        main(argv)
    return int(excinfo.value.code)


class TestParseTarget:
    def test_host_port(self) -> None:
        assert parse_target("example.com:443") == ("example.com", 443, None)

    def test_http_url_default_port(self) -> None:
        assert parse_target("http://example.com/a") == ("example.com", 80, "http://example.com/a")

    def test_https_url_explicit_port(self) -> None:
        host, port, url = parse_target("https://example.com:8443/")
        assert (host, port) == ("example.com", 8443)
        assert url == "https://example.com:8443/"

    def test_bracketed_ipv6(self) -> None:
        assert parse_target("[::1]:80") == ("::1", 80, None)

    @pytest.mark.parametrize("target", ["example.com", ":80", "example.com:http", "ftp://x/"])
    def test_invalid(self, target: str) -> None:
        with pytest.raises(ValueError):
            parse_target(target)


class TestCheck:
    def test_allowed(self, capsys: pytest.CaptureFixture[str]) -> None:
        with patch("paranoid.resolver.socket.getaddrinfo") as mock_gai:
            mock_gai.return_value = make_addrinfo("93.184.216.34")
            code = check("example.com", 443, AddressPolicy())
        assert code == EXIT_ALLOWED
        assert "Allowed: example.com:443 -> 93.184.216.34" in capsys.readouterr().out

    def test_rejected_port_skips_dns(self, capsys: pytest.CaptureFixture[str]) -> None:
        with patch("paranoid.resolver.socket.getaddrinfo") as mock_gai:
            code = check("example.com", 22, AddressPolicy())
        assert code == EXIT_REJECTED
        mock_gai.assert_not_called()
        assert "port 22 is not allowed" in capsys.readouterr().out

    def test_rejected_address(self, capsys: pytest.CaptureFixture[str]) -> None:
        code = check("127.0.0.1", 80, AddressPolicy())
        assert code == EXIT_REJECTED
        assert "blacklisted" in capsys.readouterr().out

    def test_unresolvable(self, capsys: pytest.CaptureFixture[str]) -> None:
        with patch("paranoid.resolver.socket.getaddrinfo") as mock_gai:
            mock_gai.side_effect = socket.gaierror(socket.EAI_NONAME, "Name or service not known")
            code = check("nonexistent.invalid", 443, AddressPolicy())
        assert code == EXIT_UNREACHABLE
        assert "could not resolve" in capsys.readouterr().out

    def test_resolve_timeout(self, capsys: pytest.CaptureFixture[str]) -> None:
        with slow_getaddrinfo("93.184.216.34"):
            code = check("slow.example.com", 443, AddressPolicy(), resolve_timeout=0.05)
        assert code == EXIT_UNREACHABLE
        assert "timed out" in capsys.readouterr().out

    def test_connect_timeout_bounds_resolution(self, capsys: pytest.CaptureFixture[str]) -> None:
        with slow_getaddrinfo("93.184.216.34"):
            code = check("slow.example.com", 443, AddressPolicy(), timeout=0.05)
        assert code == EXIT_UNREACHABLE
        assert "could not resolve" in capsys.readouterr().out

    def test_connect(
        self,
        listening_port: int,
        loopback_policy: AddressPolicy,
        capsys: pytest.CaptureFixture[str],
    ) -> None:
        code = check("127.0.0.1", listening_port, loopback_policy, connect=True, timeout=5.0)
        assert code == EXIT_ALLOWED
        assert f"Connected: 127.0.0.1:{listening_port}" in capsys.readouterr().out

    def test_connect_refused(self, closed_port: int, capsys: pytest.CaptureFixture[str]) -> None:
        policy = AddressPolicy(ip_allow_list=["127.0.0.1/32"], port_allow_list=[closed_port])
        code = check("127.0.0.1", closed_port, policy, connect=True, timeout=5.0)
        assert code == EXIT_UNREACHABLE
        assert "failed" in capsys.readouterr().out


class TestMain:
    def test_default_policy_rejects_metadata_address(self) -> None:
        assert _run(["169.254.169.254:80"]) == EXIT_REJECTED

    def test_allow_ip_flag(self, capsys: pytest.CaptureFixture[str]) -> None:
        assert _run(["10.0.0.5:80", "--allow-ip", "10.0.0.5/32"]) == EXIT_ALLOWED
        assert "Allowed: 10.0.0.5:80 -> 10.0.0.5" in capsys.readouterr().out

    def test_deny_ip_flag(self) -> None:
        assert _run(["93.184.216.34:443", "--deny-ip", "93.184.216.0/24"]) == EXIT_REJECTED

    def test_allow_port_flag(self) -> None:
        assert _run(["93.184.216.34:8443", "--allow-port", "80"]) == EXIT_REJECTED

    def test_any_port_flag(self) -> None:
        assert _run(["93.184.216.34:6379", "--any-port"]) == EXIT_ALLOWED

    def test_deny_port_flag(self) -> None:
        assert _run(["93.184.216.34:6379", "--deny-port", "22"]) == EXIT_ALLOWED
        assert _run(["93.184.216.34:22", "--deny-port", "22"]) == EXIT_REJECTED

    def test_environment_policy(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("PARANOID_IP_ALLOW_LIST", "10.0.0.0/8")
        assert _run(["10.1.2.3:443"]) == EXIT_ALLOWED

    def test_environment_resolve_timeout(
        self, monkeypatch: pytest.MonkeyPatch, capsys: pytest.CaptureFixture[str]
    ) -> None:
        monkeypatch.setenv("PARANOID_RESOLVE_TIMEOUT", "0.05")
        with slow_getaddrinfo("93.184.216.34"):
            assert _run(["slow.example.com:443"]) == EXIT_UNREACHABLE
        assert "timed out" in capsys.readouterr().out

    def test_conflicting_environment(
        self, monkeypatch: pytest.MonkeyPatch, capsys: pytest.CaptureFixture[str]
    ) -> None:
        monkeypatch.setenv("PARANOID_PORT_ALLOW_LIST", "80")
        monkeypatch.setenv("PARANOID_PORT_DENY_LIST", "22")
        assert _run(["93.184.216.34:80"]) == EXIT_REJECTED
        assert "Error:" in capsys.readouterr().out

    def test_invalid_target(self, capsys: pytest.CaptureFixture[str]) -> None:
        assert _run(["not-a-target"]) == EXIT_REJECTED
        assert "Error:" in capsys.readouterr().out

    def test_print_policy(self, capsys: pytest.CaptureFixture[str]) -> None:
        _run(["93.184.216.34:443", "--policy", "--allow-port", "443"])
        out = capsys.readouterr().out
        policy = json.loads(out[: out.index("}") + 1])
        assert policy["port_allow_list"] == [443]

    def test_fetch_requires_url(self) -> None:
        assert _run(["93.184.216.34:443", "--fetch"]) == EXIT_REJECTED

    def test_fetch_rejected(self, capsys: pytest.CaptureFixture[str]) -> None:
        assert _run(["http://127.0.0.1/", "--fetch"]) == EXIT_REJECTED
        assert "Rejected:" in capsys.readouterr().out
