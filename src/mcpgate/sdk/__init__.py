"""mcpgate SDK — configuration models, YAML loading, and the gateway runner."""

from mcpgate.sdk.config import GatewayLoader, load_spec
from mcpgate.sdk.models import (
    ClientSettings,
    GatewaySpec,
    LogSettings,
    ServerSettings,
    TelemetrySettings,
)
from mcpgate.sdk.runner import GatewayRunner

__all__ = [
    "ClientSettings",
    "GatewayLoader",
    "GatewayRunner",
    "GatewaySpec",
    "LogSettings",
    "ServerSettings",
    "TelemetrySettings",
    "load_spec",
]
