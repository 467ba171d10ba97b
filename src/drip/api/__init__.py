"""HTTP API for DRIP."""

from .server import GatewayServer, status_for

__all__ = ["GatewayServer", "status_for"]
