"""Response models for the control API, serialized with capitalized keys."""

from __future__ import annotations

from pydantic import BaseModel, Field

from proxyd.proxy.types import Proxy


class ProxyResponse(BaseModel):
    """Wire shape of a single proxy: ``{Name, Upstream, Listen, Enabled}``."""

    name: str = Field(serialization_alias="Name")
    upstream: str = Field(serialization_alias="Upstream")
    listen: str = Field(serialization_alias="Listen")
    enabled: bool = Field(serialization_alias="Enabled")

    @classmethod
    def from_proxy(cls, proxy: Proxy) -> ProxyResponse:
        return cls(
            name=proxy.name,
            upstream=str(proxy.upstream),
            listen=str(proxy.listen),
            enabled=proxy.enabled,
        )

    def to_wire(self) -> dict:
        return self.model_dump(by_alias=True)


class PopulateResponse(BaseModel):
    """Wire shape of ``POST /populate``."""

    proxies: list[ProxyResponse]

    def to_wire(self) -> dict:
        return self.model_dump(by_alias=True)
