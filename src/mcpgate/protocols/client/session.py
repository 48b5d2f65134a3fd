"""SessionBootstrapper — one logical client session across N endpoints.

Bootstrap runs in four phases:

1. ``initialize`` is fanned out to every endpoint; only HTTP 200 replies
   carrying a ``result`` count as initialized.
2. ``notifications/initialized`` goes to initialized endpoints and
   ``notifications/cancelled`` to the rest (best effort, replies ignored).
3. ``resources/list``, ``prompts/list`` and ``tools/list`` are discovered
   on initialized endpoints, either one fan-out per method or one batched
   JSON-RPC array per endpoint.
4. Discovered descriptors become callables in a :class:`FunctionCatalog`.

Remote names are assumed globally unique; a later endpoint silently
replaces an earlier function of the same name.  Local callables (in-process
items, then user functions) are merged last and win.
"""

from __future__ import annotations

import logging
from collections.abc import Iterable
from dataclasses import dataclass
from typing import Any

from mcpgate import __version__
from mcpgate.protocols.client.endpoint import LIST_METHODS, ListMethod, RemoteEndpoint
from mcpgate.protocols.client.functions import (
    CallableFunctionSpec,
    FunctionCatalog,
    builtin_functions,
    functions_from_items,
)
from mcpgate.protocols.client.transport import FanoutTransport, HttpReply, HttpRequest
from mcpgate.protocols.errors import ToolExecutionError
from mcpgate.protocols.jsonrpc import PROTOCOL_VERSION, ErrorCode, JsonRpcRequest
from mcpgate.utils.diagnostics import DiagnosticLog
from mcpgate.utils.telemetry import (
    ATTR_DISCOVERY_MODE,
    ATTR_ENDPOINT_COUNT,
    ATTR_ENDPOINTS_READY,
    ATTR_FUNCTION_COUNT,
    get_tracer,
)

logger = logging.getLogger(__name__)
_tracer = get_tracer(__name__)

CLIENT_INFO: dict[str, str] = {"name": "mcpgate", "version": __version__}
CANCEL_REASON = f"Error: MCP error. InternalError: {int(ErrorCode.INTERNAL_ERROR)}"
NO_URLS = "No MCP URLs."
NOT_INITIALIZED = "Couldn't initialize MCPs."


def normalize_name(name: str) -> str:
    """Function names may not contain spaces."""
    return name.replace(" ", "_").strip()


@dataclass
class ClientSession:
    """Outcome of a bootstrap: endpoints, callables, and any session failure."""

    endpoints: list[RemoteEndpoint]
    functions: FunctionCatalog
    failure: str | None = None

    @property
    def ready_endpoints(self) -> list[RemoteEndpoint]:
        return [e for e in self.endpoints if e.ready]

    def server_info(self) -> list[dict[str, Any]]:
        """``serverInfo`` of every initialized endpoint that reported one."""
        return [info for e in self.endpoints if (info := e.server_info) is not None]


class SessionBootstrapper:
    """Discovers remote capabilities and builds the planner's function table.

    Usage::

        async with HttpxFanout() as fanout:
            session = await SessionBootstrapper(fanout, batch_process=True).bootstrap(urls)
            session.functions.names()
    """

    def __init__(
        self,
        transport: FanoutTransport,
        *,
        batch_process: bool = False,
        protocol_version: str = PROTOCOL_VERSION,
        client_info: dict[str, str] | None = None,
        log: DiagnosticLog | None = None,
    ) -> None:
        self._transport = transport
        self.batch_process = batch_process
        self.protocol_version = protocol_version
        self.client_info = client_info or dict(CLIENT_INFO)
        self.log = log or DiagnosticLog(enabled=False)
        self._request_id = 0

    def _next_id(self) -> int:
        self._request_id += 1
        return self._request_id

    async def bootstrap(
        self,
        urls: Iterable[str],
        *,
        functions: FunctionCatalog | None = None,
        items: Iterable[Any] = (),
    ) -> ClientSession:
        """Run the handshake and discovery against *urls*.

        Args:
            urls: Endpoint URLs, including any ``accessKey`` query parameter.
            functions: User callables; they override everything else.
            items: In-process capability items whose tools are installed
                directly, without a network round trip.
        """
        local = functions_from_items(items)
        if functions is not None:
            local.merge(functions)

        with _tracer.start_as_current_span("session.bootstrap") as span:
            try:
                session = await self._bootstrap(_unique_urls(urls), local)
            finally:
                self.log.flush()
            span.set_attribute(ATTR_ENDPOINT_COUNT, len(session.endpoints))
            span.set_attribute(ATTR_ENDPOINTS_READY, len(session.ready_endpoints))
            span.set_attribute(ATTR_FUNCTION_COUNT, len(session.functions))
            logger.info("In this run, %d functions are used.", len(session.functions))
            return session

    async def _bootstrap(self, urls: list[str], local: FunctionCatalog) -> ClientSession:
        if not urls:
            logger.info(NO_URLS)
            self.log.record("At client", NO_URLS)
            return ClientSession([], self._build_catalog([], local))

        endpoints, initialize_id = await self._handshake(urls)
        await self._notify(endpoints, initialize_id)

        ready = [e for e in endpoints if e.ready]
        if not ready:
            logger.warning(NOT_INITIALIZED)
            self.log.record("At client", NOT_INITIALIZED, method="notifications/initialized")
            return ClientSession(endpoints, self._build_catalog([], local), failure=NOT_INITIALIZED)

        with _tracer.start_as_current_span("session.discover") as span:
            span.set_attribute(ATTR_DISCOVERY_MODE, "batch" if self.batch_process else "per-call")
            if self.batch_process:
                await self._discover_batched(ready)
            else:
                await self._discover_per_call(ready)

        return ClientSession(endpoints, self._build_catalog(ready, local))

    # -- handshake ---------------------------------------------------------

    async def _handshake(self, urls: list[str]) -> tuple[list[RemoteEndpoint], int]:
        request = JsonRpcRequest(
            method="initialize",
            id=self._next_id(),
            params={
                "protocolVersion": self.protocol_version,
                "capabilities": {},
                "clientInfo": self.client_info,
            },
        )
        payload = request.to_wire()
        replies = await self._transport.fetch_all([HttpRequest(u, payload) for u in urls])
        by_url = {r.url: r for r in replies}

        endpoints: list[RemoteEndpoint] = []
        for url in urls:
            endpoint = RemoteEndpoint(url=url)
            reply = by_url.get(url)
            if reply is not None and reply.ok:
                self.log.record("server --> client", reply.text, method="initialize", request_id=request.id)
                endpoint.initialize = _result_envelope(reply)
            if endpoint.initialize is None:
                logger.warning("initialize failed for %s", url)
            endpoints.append(endpoint)
        return endpoints, int(request.id or 0)

    async def _notify(self, endpoints: list[RemoteEndpoint], initialize_id: int) -> None:
        initialized = JsonRpcRequest(method="notifications/initialized").to_wire()
        cancelled = JsonRpcRequest(
            method="notifications/cancelled",
            params={"requestId": initialize_id, "reason": CANCEL_REASON},
        ).to_wire()
        requests = [HttpRequest(e.url, initialized if e.ready else cancelled) for e in endpoints]
        for reply in await self._transport.fetch_all(requests):
            if reply.status_code not in (200, 202, 204):
                logger.debug("Notification to %s got HTTP %s", reply.url, reply.status_code)

    # -- discovery ---------------------------------------------------------

    async def _discover_per_call(self, ready: list[RemoteEndpoint]) -> None:
        by_url = {e.url: e for e in ready}
        for method in LIST_METHODS:
            payload = JsonRpcRequest(method=method, id=self._next_id()).to_wire()
            replies = await self._transport.fetch_all([HttpRequest(e.url, payload) for e in ready])
            for reply in replies:
                endpoint = by_url.get(reply.url)
                response = _result_envelope(reply) if reply.ok else None
                if endpoint is not None and response is not None:
                    endpoint.store(method, response)

    async def _discover_batched(self, ready: list[RemoteEndpoint]) -> None:
        methods_by_id: dict[int, ListMethod] = {}
        batch: list[dict[str, Any]] = []
        for method in LIST_METHODS:
            request_id = self._next_id()
            methods_by_id[request_id] = method
            batch.append(JsonRpcRequest(method=method, id=request_id).to_wire())

        by_url = {e.url: e for e in ready}
        replies = await self._transport.fetch_all([HttpRequest(e.url, batch) for e in ready])
        for reply in replies:
            endpoint = by_url.get(reply.url)
            if endpoint is None or not reply.ok:
                continue
            try:
                decoded = reply.json()
            except ValueError:
                logger.debug("Undecodable batch reply from %s", reply.url)
                continue
            for response in decoded if isinstance(decoded, list) else [decoded]:
                if not isinstance(response, dict) or "result" not in response:
                    continue
                method = methods_by_id.get(response.get("id"))  # type: ignore[arg-type]
                if method is not None:
                    endpoint.store(method, response)

    # -- function table ----------------------------------------------------

    def _build_catalog(self, ready: list[RemoteEndpoint], local: FunctionCatalog) -> FunctionCatalog:
        catalog = builtin_functions()
        remote = FunctionCatalog()
        for endpoint in ready:
            for method in LIST_METHODS:
                for descriptor in endpoint.listing(method):
                    spec = self._remote_function(endpoint.url, method, descriptor)
                    if spec is not None and remote.add(spec) is not None:
                        logger.debug("%s from %s replaces an earlier remote function", spec.name, endpoint.url)
        catalog.merge(remote)
        catalog.merge(local)
        return catalog

    def _remote_function(
        self,
        url: str,
        method: ListMethod,
        descriptor: dict[str, Any],
    ) -> CallableFunctionSpec | None:
        raw_name = descriptor.get("name")
        if not isinstance(raw_name, str) or not raw_name.strip():
            return None
        name = normalize_name(raw_name)
        description = str(descriptor.get("description", ""))

        if method == "resources/list":
            uri = descriptor.get("uri")
            if not isinstance(uri, str):
                return None

            async def read_resource(_: dict[str, Any]) -> Any:
                return await self._call_remote(url, name, "resources/read", {"uri": uri})

            return CallableFunctionSpec(name, read_resource, description, title=raw_name)

        if method == "prompts/list":
            properties = {
                normalize_name(str(arg["name"])): {
                    "type": "string",
                    "description": str(arg.get("description", "")),
                }
                for arg in descriptor.get("arguments") or []
                if isinstance(arg, dict) and arg.get("name")
            }
            parameters = {"type": "object", "properties": properties, "required": list(properties)}

            async def get_prompt(arguments: dict[str, Any]) -> Any:
                return await self._call_remote(
                    url, name, "prompts/get", {"name": raw_name, "arguments": arguments}
                )

            return CallableFunctionSpec(name, get_prompt, description, parameters, title=raw_name)

        async def call_tool(arguments: dict[str, Any]) -> Any:
            return await self._call_remote(url, name, "tools/call", {"name": raw_name, "arguments": arguments})

        return CallableFunctionSpec(name, call_tool, description, descriptor.get("inputSchema"), title=raw_name)

    async def _call_remote(self, url: str, name: str, method: str, params: dict[str, Any]) -> Any:
        """POST one request to *url*; return the decoded reply (or raw text)."""
        request = JsonRpcRequest(method=method, id=self._next_id(), params=params)
        payload = request.to_wire()
        self.log.record("client --> server", payload, method=method, request_id=request.id)
        [reply] = await self._transport.fetch_all([HttpRequest(url, payload)])
        if not reply.ok:
            raise ToolExecutionError(name, reply.error or f"HTTP {reply.status_code}")
        self.log.record("server --> client", reply.text, method=method, request_id=request.id)
        try:
            return reply.json()
        except ValueError:
            return reply.text


def _result_envelope(reply: HttpReply) -> dict[str, Any] | None:
    """Decode *reply*; return it only if it is an object with a ``result``."""
    try:
        decoded = reply.json()
    except ValueError:
        logger.debug("Undecodable reply from %s", reply.url)
        return None
    if isinstance(decoded, dict) and "result" in decoded:
        return decoded
    return None


def _unique_urls(urls: Iterable[str]) -> list[str]:
    seen: dict[str, None] = {}
    for url in urls:
        if url and url.strip():
            seen.setdefault(url.strip(), None)
    return list(seen)
