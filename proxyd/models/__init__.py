"""Public models for the control API."""

from proxyd.models.requests import CreateProxyRequest, SetStateRequest, UpdateProxyRequest
from proxyd.models.responses import PopulateResponse, ProxyResponse

__all__ = [
    "CreateProxyRequest",
    "PopulateResponse",
    "ProxyResponse",
    "SetStateRequest",
    "UpdateProxyRequest",
]
