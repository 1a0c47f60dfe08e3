"""Database execution gateways."""

from .base import GatewayConnectionError, GatewayError, GatewayResult, ScriptGateway
from .memory import InMemoryGateway
from .mssql import MssqlGateway

__all__ = [
    "GatewayConnectionError",
    "GatewayError",
    "GatewayResult",
    "ScriptGateway",
    "InMemoryGateway",
    "MssqlGateway",
]
