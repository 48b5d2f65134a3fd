"""HTTP surface for a :class:`RequestRouter`.

A single JSON-RPC endpoint (``POST /``, mirrored on ``POST /mcp``) accepts
one request object or a batch array.  The shared secret travels as the
``accessKey`` query parameter.
"""

from __future__ import annotations

import json
import logging

from fastapi import FastAPI, Request, Response
from fastapi.responses import JSONResponse, PlainTextResponse

from mcpgate import __version__
from mcpgate.protocols.errors import LockTimeoutError
from mcpgate.protocols.jsonrpc import ErrorCode, error_envelope
from mcpgate.protocols.server.router import RequestRouter

logger = logging.getLogger(__name__)

ACCESS_KEY_PARAM = "accessKey"


def create_app(router: RequestRouter, *, title: str = "mcpgate") -> FastAPI:
    """Build a FastAPI app that forwards every POST body to *router*."""
    app = FastAPI(title=title, version=__version__)

    async def rpc(request: Request) -> Response:
        raw = await request.body()
        try:
            body = json.loads(raw) if raw else None
        except ValueError as exc:
            return JSONResponse(error_envelope(None, ErrorCode.PARSE_ERROR, f"Parse error: {exc}"))
        if body is None:
            return JSONResponse(error_envelope(None, ErrorCode.INVALID_REQUEST, "Empty request body."))

        try:
            payload = await router.handle(body, access_key=request.query_params.get(ACCESS_KEY_PARAM))
        except LockTimeoutError as exc:
            return PlainTextResponse(str(exc), status_code=503)

        if payload is None:
            return Response(status_code=204)
        return JSONResponse(payload)

    app.add_api_route("/", rpc, methods=["POST"])
    app.add_api_route("/mcp", rpc, methods=["POST"])
    app.state.router = router
    return app
