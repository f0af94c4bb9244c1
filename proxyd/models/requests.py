"""Pydantic request models for the control API.

Keys are accepted both capitalized (``Name``, as the thin client sends them)
and lower-case.
"""

from __future__ import annotations

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, field_validator

from proxyd.proxy.types import Address


class CreateProxyRequest(BaseModel):
    """Body of ``POST /proxies`` and one entry of ``POST /populate``."""

    model_config = ConfigDict(populate_by_name=True)

    name: str = Field(..., min_length=1, validation_alias=AliasChoices("Name", "name"))
    upstream: str = Field(
        ..., min_length=1, validation_alias=AliasChoices("Upstream", "upstream")
    )
    listen: str | None = Field(
        default=None, validation_alias=AliasChoices("Listen", "listen")
    )
    enabled: bool = Field(default=True, validation_alias=AliasChoices("Enabled", "enabled"))

    @field_validator("upstream")
    @classmethod
    def _check_upstream(cls, value: str) -> str:
        address = Address.parse(value)
        if not address.host or address.port == 0:
            raise ValueError("upstream must be host:port with a non-zero port")
        return value

    @field_validator("listen", mode="before")
    @classmethod
    def _check_listen(cls, value: object) -> object:
        if value is None or value == "":
            return None
        if isinstance(value, str):
            Address.parse(value)
        return value


class UpdateProxyRequest(BaseModel):
    """Body of ``POST /proxies/{name}``; only the enabled flag is mutable."""

    model_config = ConfigDict(populate_by_name=True)

    enabled: bool | None = Field(
        default=None, validation_alias=AliasChoices("Enabled", "enabled")
    )


class SetStateRequest(BaseModel):
    """Body of ``POST /proxies/{name}/state``."""

    model_config = ConfigDict(populate_by_name=True)

    state: str = Field(..., validation_alias=AliasChoices("State", "state"))
