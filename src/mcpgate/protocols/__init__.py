"""Protocol layer — JSON-RPC envelopes, server routing, client sessions."""

from mcpgate.protocols.errors import (
    ConfigurationError,
    GatewayError,
    LockTimeoutError,
    PlanningError,
    ToolExecutionError,
)
from mcpgate.protocols.jsonrpc import (
    NO_ID,
    ErrorCode,
    JsonRpcError,
    JsonRpcRequest,
    JsonRpcResponse,
)

__all__ = [
    "NO_ID",
    "ConfigurationError",
    "ErrorCode",
    "GatewayError",
    "JsonRpcError",
    "JsonRpcRequest",
    "JsonRpcResponse",
    "LockTimeoutError",
    "PlanningError",
    "ToolExecutionError",
]
