"""RequestRouter — resolves JSON-RPC requests against aggregated tables.

One :meth:`RequestRouter.handle` call processes one HTTP body, which is
either a single request object or a batch (JSON array).  Lifecycle and
discovery methods, and every method when ``use_lock`` is set, run while
holding an exclusive lock bounded by ``lock_timeout`` seconds.
"""

from __future__ import annotations

import asyncio
import copy
import inspect
import logging
from collections.abc import AsyncIterator, Iterable
from contextlib import asynccontextmanager
from typing import Any

from mcpgate.protocols.errors import ConfigurationError, LockTimeoutError
from mcpgate.protocols.jsonrpc import (
    JSONRPC_VERSION,
    NO_ID,
    ErrorCode,
    error_envelope,
    text_content,
)
from mcpgate.protocols.server.aggregator import (
    AggregateTables,
    ItemAggregator,
    NamedTemplateSet,
    StaticTemplate,
)
from mcpgate.utils.diagnostics import DiagnosticLog
from mcpgate.utils.telemetry import ATTR_BATCH_SIZE, ATTR_LOCKED, ATTR_METHOD, get_tracer

logger = logging.getLogger(__name__)
_tracer = get_tracer(__name__)

LOCKED_METHODS = frozenset(
    {"initialize", "notifications/initialized", "tools/list", "prompts/list", "resources/list"}
)

DEFAULT_LOCK_TIMEOUT = 350.0

Payload = dict[str, Any] | list[dict[str, Any]]


def substitute_placeholders(result: dict[str, Any], arguments: dict[str, Any]) -> None:
    """Replace ``{{key}}`` in each message's text content, in place."""
    for message in result.get("messages") or []:
        content = message.get("content") if isinstance(message, dict) else None
        if not isinstance(content, dict) or not isinstance(content.get("text"), str):
            continue
        text: str = content["text"]
        for key, value in arguments.items():
            text = text.replace("{{" + str(key) + "}}", str(value))
        content["text"] = text


def normalize_handler_result(result: Any) -> dict[str, Any]:
    """Coerce a handler's return value into a response envelope (no id).

    * ``str`` becomes a text content block.
    * ``{"result": "<str>"}`` becomes a text content block.
    * ``{"mcp": {...}}`` returns the inner envelope.
    * dicts carrying ``result`` or ``error`` are used as the envelope.
    * any other dict is used as the ``result``.
    """
    if isinstance(result, str):
        return {"jsonrpc": JSONRPC_VERSION, "result": text_content(result)}
    if isinstance(result, dict):
        if set(result) == {"result"} and isinstance(result["result"], str):
            return {"jsonrpc": JSONRPC_VERSION, "result": text_content(result["result"])}
        if isinstance(result.get("mcp"), dict):
            return dict(result["mcp"])
        if "result" in result or "error" in result:
            return {"jsonrpc": JSONRPC_VERSION, **result}
        return {"jsonrpc": JSONRPC_VERSION, "result": result}
    return {"jsonrpc": JSONRPC_VERSION, "result": text_content(str(result))}


class RequestRouter:
    """Serves capability items over JSON-RPC.

    Usage::

        router = RequestRouter(items, access_key="sample")
        payload = await router.handle(body, access_key=query["accessKey"])

    The lock and the diagnostic log are owned by the router instance; pass
    your own to share them between routers.
    """

    def __init__(
        self,
        items: Iterable[Any],
        *,
        access_key: str | None = None,
        use_lock: bool = True,
        lock_timeout: float = DEFAULT_LOCK_TIMEOUT,
        lock: asyncio.Lock | None = None,
        log: DiagnosticLog | None = None,
        aggregator: ItemAggregator | None = None,
    ) -> None:
        items = list(items)
        if not items:
            msg = "RequestRouter requires at least one capability item"
            raise ConfigurationError(msg)
        self.access_key = access_key
        self.use_lock = use_lock
        self.lock_timeout = lock_timeout
        self.lock = lock or asyncio.Lock()
        self.log = log or DiagnosticLog(enabled=False)
        self.tables: AggregateTables = (aggregator or ItemAggregator()).aggregate(items)

    async def handle(self, body: Any, access_key: str | None = None) -> Payload | None:
        """Process one request body and return the response payload.

        Returns ``None`` when nothing should be sent back.

        Raises:
            LockTimeoutError: If the lock is required but not acquired in time.
        """
        with _tracer.start_as_current_span("router.handle") as span:
            batch = body if isinstance(body, list) else [body]
            span.set_attribute(ATTR_BATCH_SIZE, len(batch))
            if isinstance(body, dict) and isinstance(body.get("method"), str):
                span.set_attribute(ATTR_METHOD, body["method"].lower())

            locked = self.use_lock or any(self._is_lifecycle(r) for r in batch)
            span.set_attribute(ATTR_LOCKED, locked)
            try:
                if not locked:
                    return await self._respond(body, access_key)
                async with self._exclusive():
                    return await self._respond(body, access_key)
            finally:
                self.log.flush()

    @asynccontextmanager
    async def _exclusive(self) -> AsyncIterator[None]:
        try:
            await asyncio.wait_for(self.lock.acquire(), timeout=self.lock_timeout)
        except TimeoutError as exc:
            logger.error("Lock not acquired within %ss", self.lock_timeout)
            raise LockTimeoutError(self.lock_timeout) from exc
        try:
            yield
        finally:
            self.lock.release()

    @staticmethod
    def _is_lifecycle(request: Any) -> bool:
        if not isinstance(request, dict):
            return False
        method = request.get("method")
        return isinstance(method, str) and method.lower() in LOCKED_METHODS

    async def _respond(self, body: Any, access_key: str | None) -> Payload | None:
        if self.access_key and access_key != self.access_key:
            self.log.record("At server", "Invalid accessKey.")
            return error_envelope(None, ErrorCode.INTERNAL_ERROR, "Invalid accessKey.")

        if isinstance(body, list):
            responses = [r for r in [await self.dispatch(item) for item in body] if r is not None]
            if not responses:
                return None
            self.log.record("server --> client", responses, method="batch process")
            return responses

        if not isinstance(body, dict):
            return error_envelope(None, ErrorCode.INVALID_REQUEST, "Request must be an object or an array.")
        return await self.dispatch(body)

    async def dispatch(self, request: Any) -> dict[str, Any] | None:
        """Resolve one request object; ``None`` means no response entry."""
        if not isinstance(request, dict) or not isinstance(request.get("method"), str):
            return None
        method = request["method"].lower()
        request_id = request["id"] if "id" in request else NO_ID
        params = request.get("params")
        if params is None:
            params = {}
        self.log.record("client --> server", request, method=method, request_id=request_id)

        entry = self.tables.responses.get(method)
        if entry is None and method not in self.tables.functions:
            self.log.record(
                "server --> client",
                f"Return no value to ID {request_id}.",
                method=method,
                request_id=request_id,
            )
            return None

        if not isinstance(params, dict):
            response = error_envelope(None, ErrorCode.INVALID_PARAMS, "params must be an object.")
        elif entry is not None:
            response = self._from_template(method, entry, params)
        else:
            response = await self._invoke(method, params)

        response["id"] = request_id
        self.log.record("server --> client", response, method=method, request_id=request_id)
        return response

    def _from_template(
        self,
        method: str,
        entry: StaticTemplate | NamedTemplateSet,
        params: dict[str, Any],
    ) -> dict[str, Any]:
        if isinstance(entry, StaticTemplate):
            template = entry.response
        else:
            name = params.get("name") or params.get("uri")
            found = entry.templates.get(name) if isinstance(name, str) else None
            if found is None:
                noun = method.split("/", 1)[0].rstrip("s")
                return error_envelope(None, ErrorCode.INVALID_PARAMS, f'No {noun} name of "{name}".')
            template = found

        response = copy.deepcopy(template)
        arguments = params.get("arguments")
        result = response.get("result")
        if isinstance(arguments, dict) and isinstance(result, dict) and "messages" in result:
            substitute_placeholders(result, arguments)
        return response

    async def _invoke(self, method: str, params: dict[str, Any]) -> dict[str, Any]:
        handlers = self.tables.functions[method]
        name = params.get("name")
        uri = params.get("uri")
        try:
            if isinstance(name, str) and name in handlers:
                result = handlers[name](params.get("arguments") or {})
            elif isinstance(uri, str) and uri in handlers:
                result = handlers[uri]()
            else:
                return error_envelope(None, ErrorCode.INTERNAL_ERROR, f"{method} didn't work.")
            if inspect.isawaitable(result):
                result = await result
        except Exception as exc:
            logger.exception("Handler for %s failed", method)
            return error_envelope(None, ErrorCode.INTERNAL_ERROR, f"{type(exc).__name__}: {exc}")
        return normalize_handler_result(result)
