"""Service layer: the control API over the proxy registry."""

from proxyd.services.control_api import ControlAPI

__all__ = ["ControlAPI"]
