"""Proxy control endpoints.

- GET    /proxies                all proxies, keyed by name
- POST   /proxies                create a proxy (201)
- GET    /proxies/{name}         one proxy
- POST   /proxies/{name}         update the Enabled flag
- POST   /proxies/{name}/state   toggle State "up" / "down"
- DELETE /proxies/{name}         delete a proxy (204)
- POST   /populate               add or replace a list of proxies (201)
- POST   /reset                  re-enable every proxy (204)
"""

from __future__ import annotations

import logging

from fastapi import APIRouter, Response, status

from proxyd.models.requests import CreateProxyRequest, SetStateRequest, UpdateProxyRequest
from proxyd.models.responses import PopulateResponse, ProxyResponse
from proxyd.services.control_api import ControlAPI

logger = logging.getLogger(__name__)


def create_proxies_router(*, control_api: ControlAPI) -> APIRouter:
    """Factory that creates the proxies router with injected dependencies."""

    proxies_router = APIRouter(tags=["proxies"])

    @proxies_router.get("/proxies")
    async def list_proxies() -> dict:
        """Every proxy keyed by name, in creation order."""
        return {
            proxy.name: ProxyResponse.from_proxy(proxy).to_wire()
            for proxy in control_api.list_proxies()
        }

    @proxies_router.post("/proxies", status_code=status.HTTP_201_CREATED)
    async def create_proxy(body: CreateProxyRequest) -> dict:
        """Create a proxy. The response carries the resolved Listen address."""
        proxy = await control_api.create_proxy(
            body.name, body.upstream, body.listen, enabled=body.enabled
        )
        return ProxyResponse.from_proxy(proxy).to_wire()

    @proxies_router.get("/proxies/{name}")
    async def get_proxy(name: str) -> dict:
        return ProxyResponse.from_proxy(control_api.get_proxy(name)).to_wire()

    @proxies_router.post("/proxies/{name}")
    async def update_proxy(name: str, body: UpdateProxyRequest) -> dict:
        proxy = await control_api.update_proxy(name, body.enabled)
        return ProxyResponse.from_proxy(proxy).to_wire()

    @proxies_router.post("/proxies/{name}/state")
    async def set_state(name: str, body: SetStateRequest) -> dict:
        proxy = await control_api.set_state(name, body.state)
        return ProxyResponse.from_proxy(proxy).to_wire()

    @proxies_router.delete("/proxies/{name}", status_code=status.HTTP_204_NO_CONTENT)
    async def delete_proxy(name: str) -> Response:
        await control_api.delete_proxy(name)
        return Response(status_code=status.HTTP_204_NO_CONTENT)

    @proxies_router.post("/populate", status_code=status.HTTP_201_CREATED)
    async def populate(body: list[CreateProxyRequest]) -> dict:
        proxies = await control_api.populate(body)
        return PopulateResponse(
            proxies=[ProxyResponse.from_proxy(p) for p in proxies]
        ).to_wire()

    @proxies_router.post("/reset", status_code=status.HTTP_204_NO_CONTENT)
    async def reset() -> Response:
        await control_api.reset()
        return Response(status_code=status.HTTP_204_NO_CONTENT)

    return proxies_router
