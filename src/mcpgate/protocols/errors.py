"""Shared error types for the gateway."""


class GatewayError(Exception):
    """Base error for all gateway failures."""


class ConfigurationError(GatewayError):
    """Required setup is missing or invalid; raised before any processing."""


class LockTimeoutError(GatewayError):
    """The request lock could not be acquired in time.

    This is a transport-level failure: it aborts the whole request instead
    of producing a JSON-RPC error envelope.
    """

    def __init__(self, timeout: float) -> None:
        self.timeout = timeout
        super().__init__("Timeout.")


class ToolExecutionError(GatewayError):
    """A remote callable did not return a usable reply."""

    def __init__(self, name: str, detail: str = "") -> None:
        self.name = name
        self.detail = detail
        super().__init__(f"Tool execution failed: {name}" + (f" ({detail})" if detail else ""))


class PlanningError(GatewayError):
    """The reasoning model produced no usable plan."""
