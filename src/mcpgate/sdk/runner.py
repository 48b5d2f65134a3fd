"""GatewayRunner — builds routers and runs goals from a :class:`GatewaySpec`."""

from __future__ import annotations

from collections.abc import AsyncIterator, Iterable
from contextlib import asynccontextmanager
from pathlib import Path
from typing import Any

from mcpgate.core.interface.client import ModelClient, ReasoningOracle
from mcpgate.core.planning.executor import PlannerExecutor
from mcpgate.core.planning.models import RunResult
from mcpgate.protocols.client.functions import FunctionCatalog
from mcpgate.protocols.client.session import ClientSession, SessionBootstrapper
from mcpgate.protocols.client.transport import FanoutTransport, HttpxFanout
from mcpgate.protocols.errors import ConfigurationError
from mcpgate.protocols.server.router import RequestRouter
from mcpgate.sdk.config import GatewayLoader
from mcpgate.sdk.models import ClientSettings, GatewaySpec, LogSettings
from mcpgate.utils.diagnostics import DiagnosticLog, build_log
from mcpgate.utils.telemetry import configure_telemetry


def make_log(settings: LogSettings) -> DiagnosticLog:
    return build_log(settings.enabled, settings.path, settings.max_payload)


class GatewayRunner:
    """Wire the gateway components described by a spec.

    *transport* and *oracle* default to :class:`HttpxFanout` and
    :class:`ModelClient`; tests pass scripted fakes.
    """

    def __init__(
        self,
        spec: GatewaySpec,
        *,
        functions: FunctionCatalog | None = None,
        items: Iterable[Any] = (),
        transport: FanoutTransport | None = None,
        oracle: ReasoningOracle | None = None,
    ) -> None:
        self.spec = spec
        self.functions = functions
        self.items = list(items)
        self._transport = transport
        self._oracle = oracle
        self._telemetry_ready = False

    @classmethod
    def from_yaml(cls, path: str | Path, **kwargs: Any) -> GatewayRunner:
        return cls(GatewayLoader(path).load(), **kwargs)

    def build_router(self, items: Iterable[Any] | None = None) -> RequestRouter:
        """Create the server-side router for *items* (default: the runner's)."""
        server = self.spec.server
        self._configure_telemetry()
        return RequestRouter(
            self.items if items is None else items,
            access_key=server.access_key,
            use_lock=server.use_lock,
            lock_timeout=server.lock_timeout,
            log=make_log(server.log),
        )

    async def discover(self) -> ClientSession:
        """Bootstrap a client session without planning."""
        client = self._client_settings()
        self._configure_telemetry()
        log = make_log(client.log)
        async with self._fanout(client) as fanout:
            return await self._bootstrap(fanout, client, log)

    async def run(self, goal: str) -> RunResult:
        """Bootstrap the endpoints, then plan and execute *goal*."""
        client = self._client_settings()
        self._configure_telemetry()
        oracle = self._oracle or ModelClient(client.to_model_config())
        log = make_log(client.log)
        async with self._fanout(client) as fanout:
            session = await self._bootstrap(fanout, client, log)
            executor = PlannerExecutor.from_session(oracle, session, log=log, summarize=client.summarize)
            return await executor.run(goal)

    async def _bootstrap(
        self,
        fanout: FanoutTransport,
        client: ClientSettings,
        log: DiagnosticLog,
    ) -> ClientSession:
        bootstrapper = SessionBootstrapper(fanout, batch_process=client.batch_process, log=log)
        return await bootstrapper.bootstrap(client.endpoints, functions=self.functions, items=self.items)

    @asynccontextmanager
    async def _fanout(self, client: ClientSettings) -> AsyncIterator[FanoutTransport]:
        if self._transport is not None:
            yield self._transport
            return
        async with HttpxFanout(timeout=client.http_timeout, headers=client.headers) as fanout:
            yield fanout

    def _client_settings(self) -> ClientSettings:
        if self.spec.client is None:
            raise ConfigurationError("Gateway spec has no 'client' section")
        return self.spec.client

    def _configure_telemetry(self) -> None:
        telemetry = self.spec.telemetry
        if self._telemetry_ready or telemetry is None or not telemetry.enabled:
            return
        configure_telemetry(otlp_endpoint=telemetry.otlp_endpoint)
        self._telemetry_ready = True
