"""JSON-RPC 2.0 messages, error codes, and MCP content helpers.

Every message exchanged between the gateway and its peers uses these
envelopes.  Responses are serialised with :meth:`JsonRpcResponse.to_wire` so
that exactly one of ``result`` / ``error`` appears on the wire.
"""

from __future__ import annotations

from enum import IntEnum
from typing import Any

from pydantic import BaseModel

JSONRPC_VERSION = "2.0"
PROTOCOL_VERSION = "2024-11-05"

# Requests that arrive without an ``id`` are answered with this placeholder.
NO_ID = "No ID"

# JSON-RPC allows any JSON number as an id.
RequestId = int | float | str | None


class ErrorCode(IntEnum):
    """Standard JSON-RPC error codes."""

    PARSE_ERROR = -32700
    INVALID_REQUEST = -32600
    METHOD_NOT_FOUND = -32601
    INVALID_PARAMS = -32602
    INTERNAL_ERROR = -32603


# ---------------------------------------------------------------------------
# JSON-RPC 2.0 envelope
# ---------------------------------------------------------------------------


class JsonRpcRequest(BaseModel):
    """A JSON-RPC 2.0 request or notification (``id`` is ``None``)."""

    jsonrpc: str = JSONRPC_VERSION
    method: str
    id: RequestId = None
    params: dict[str, Any] = {}

    def to_wire(self) -> dict[str, Any]:
        """Serialise for sending; notifications carry no ``id`` key."""
        return self.model_dump(exclude_none=True)


class JsonRpcError(BaseModel):
    """A JSON-RPC 2.0 error object."""

    code: int
    message: str
    data: Any = None


class JsonRpcResponse(BaseModel):
    """A JSON-RPC 2.0 response message."""

    jsonrpc: str = JSONRPC_VERSION
    id: RequestId = None
    result: dict[str, Any] | None = None
    error: JsonRpcError | None = None

    @classmethod
    def failure(
        cls,
        request_id: RequestId,
        code: int,
        message: str,
    ) -> JsonRpcResponse:
        return cls(id=request_id, error=JsonRpcError(code=code, message=message))

    def to_wire(self) -> dict[str, Any]:
        data: dict[str, Any] = {"jsonrpc": self.jsonrpc, "id": self.id}
        if self.error is not None:
            data["error"] = self.error.model_dump(exclude_none=True)
        else:
            data["result"] = self.result
        return data


def error_envelope(request_id: RequestId, code: int, message: str) -> dict[str, Any]:
    """Shortcut for ``JsonRpcResponse.failure(...).to_wire()``."""
    return JsonRpcResponse.failure(request_id, code, message).to_wire()


# ---------------------------------------------------------------------------
# MCP content blocks
# ---------------------------------------------------------------------------


def text_content(text: str, *, is_error: bool = False) -> dict[str, Any]:
    """Wrap *text* as a ``tools/call`` result with a single text block."""
    return {"content": [{"type": "text", "text": text}], "isError": is_error}

