"""Network streams annotated with the policy that validated them."""

from __future__ import annotations

from typing import TYPE_CHECKING, Any

import httpcore

if TYPE_CHECKING:
    import ssl

    from paranoid.policy import AddressPolicy

# Keys understood by ``get_extra_info`` in addition to the wrapped stream's own.
POLICY_INFO = "address_policy"
VALIDATED_ADDRESS_INFO = "validated_address"
REQUESTED_HOST_INFO = "requested_host"


class _Annotation:
    def __init__(self, policy: AddressPolicy, validated_address: str, requested_host: str) -> None:
        self.policy = policy
        self.validated_address = validated_address
        self.requested_host = requested_host

    def lookup(self, info: str) -> tuple[bool, Any]:
        if info == POLICY_INFO:
            return True, self.policy
        if info == VALIDATED_ADDRESS_INFO:
            return True, self.validated_address
        if info == REQUESTED_HOST_INFO:
            return True, self.requested_host
        return False, None


class GuardedStream(httpcore.NetworkStream):
    """Blocking stream that remembers which policy let it connect."""

    def __init__(
        self,
        stream: httpcore.NetworkStream,
        policy: AddressPolicy,
        validated_address: str,
        requested_host: str,
    ) -> None:
        self._stream = stream
        self._annotation = _Annotation(policy, validated_address, requested_host)

    @property
    def policy(self) -> AddressPolicy:
        return self._annotation.policy

    @property
    def validated_address(self) -> str:
        return self._annotation.validated_address

    def read(self, max_bytes: int, timeout: float | None = None) -> bytes:
        return self._stream.read(max_bytes, timeout)

    def write(self, buffer: bytes, timeout: float | None = None) -> None:
        self._stream.write(buffer, timeout)

    def close(self) -> None:
        self._stream.close()

    def start_tls(
        self,
        ssl_context: ssl.SSLContext,
        server_hostname: str | None = None,
        timeout: float | None = None,
    ) -> httpcore.NetworkStream:
        tls_stream = self._stream.start_tls(ssl_context, server_hostname, timeout)
        annotation = self._annotation
        return GuardedStream(
            tls_stream, annotation.policy, annotation.validated_address, annotation.requested_host
        )

    def get_extra_info(self, info: str) -> Any:
        found, value = self._annotation.lookup(info)
        if found:
            return value
        return self._stream.get_extra_info(info)


class AsyncGuardedStream(httpcore.AsyncNetworkStream):
    """Async counterpart of ``GuardedStream``."""

    def __init__(
        self,
        stream: httpcore.AsyncNetworkStream,
        policy: AddressPolicy,
        validated_address: str,
        requested_host: str,
    ) -> None:
        self._stream = stream
        self._annotation = _Annotation(policy, validated_address, requested_host)

    @property
    def policy(self) -> AddressPolicy:
        return self._annotation.policy

    @property
    def validated_address(self) -> str:
        return self._annotation.validated_address

    async def read(self, max_bytes: int, timeout: float | None = None) -> bytes:
        return await self._stream.read(max_bytes, timeout)

    async def write(self, buffer: bytes, timeout: float | None = None) -> None:
        await self._stream.write(buffer, timeout)

    async def aclose(self) -> None:
        await self._stream.aclose()

    async def start_tls(
        self,
        ssl_context: ssl.SSLContext,
        server_hostname: str | None = None,
        timeout: float | None = None,
    ) -> httpcore.AsyncNetworkStream:
        tls_stream = await self._stream.start_tls(ssl_context, server_hostname, timeout)
        annotation = self._annotation
        return AsyncGuardedStream(
            tls_stream, annotation.policy, annotation.validated_address, annotation.requested_host
        )

    def get_extra_info(self, info: str) -> Any:
        found, value = self._annotation.lookup(info)
        if found:
            return value
        return self._stream.get_extra_info(info)
