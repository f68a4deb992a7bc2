"""Guard configuration loaded from environment variables."""

from __future__ import annotations

import json
from typing import Annotated, Any

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, NoDecode, SettingsConfigDict

from paranoid.policy import AddressPolicy


def _split_list(value: Any) -> Any:
    """Accept JSON arrays or comma-separated strings for list settings."""
    if not isinstance(value, str):
        return value
    text = value.strip()
    if text.startswith("["):
        return json.loads(text)
    return [item.strip() for item in text.split(",") if item.strip()]


class GuardSettings(BaseSettings):
    """Outbound-connection guard settings (``PARANOID_*`` environment variables)."""

    model_config = SettingsConfigDict(
        env_prefix="PARANOID_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    debug: bool = False

    # Address policy
    ip_allow_list: Annotated[list[str], NoDecode] = Field(default_factory=list)
    ip_deny_list: Annotated[list[str], NoDecode] = Field(default_factory=list)
    # Unset means the default HTTP(S) port allow list; an empty value lifts it.
    port_allow_list: Annotated[list[int] | None, NoDecode] = None
    port_deny_list: Annotated[list[int], NoDecode] = Field(default_factory=list)

    # Dialing
    connect_timeout: float = Field(default=10.0, gt=0)
    resolve_timeout: float | None = Field(default=None, gt=0)
    connect_retries: int = Field(default=0, ge=0)
    verify_tls: bool = True

    @field_validator(
        "ip_allow_list", "ip_deny_list", "port_allow_list", "port_deny_list", mode="before"
    )
    @classmethod
    def _parse_list(cls, value: Any) -> Any:
        return _split_list(value)

    def to_policy(self) -> AddressPolicy:
        """Build the address policy; raises ``ConfigurationError`` on conflicts."""
        return AddressPolicy(
            ip_allow_list=self.ip_allow_list,
            ip_deny_list=self.ip_deny_list,
            port_allow_list=self.port_allow_list,
            port_deny_list=self.port_deny_list,
        )
