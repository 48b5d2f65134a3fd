"""Tests for SessionBootstrapper with a scripted fan-out transport."""

from __future__ import annotations

import logging
from typing import Any

import pytest

from mcpgate.protocols.client.functions import CHECK_PROCESS, WITHOUT_FUNCTION, FunctionCatalog, local_function
from mcpgate.protocols.client.session import CANCEL_REASON, SessionBootstrapper
from mcpgate.protocols.client.transport import HttpReply
from mcpgate.protocols.errors import ToolExecutionError
from mcpgate.protocols.server.items import ToolItem
from mcpgate.protocols.server.router import RequestRouter
from mcpgate.utils.diagnostics import DiagnosticLog, InMemoryLogSink
from tests.conftest import FakeFanout, initialize_value

E1 = "https://e1.example/mcp?accessKey=sample"
E2 = "https://e2.example/mcp"


def _static_endpoint(tools: list[dict[str, Any]], name: str = "server") -> Any:
    """Handler answering initialize and tools/list from fixed data."""

    def handle(payload: Any) -> Any:
        if isinstance(payload, list):
            return [r for r in (handle(p) for p in payload) if r is not None]
        method = payload["method"]
        if method == "initialize":
            return {"jsonrpc": "2.0", "id": payload["id"], "result": initialize_value(name)}
        if method == "tools/list":
            return {"jsonrpc": "2.0", "id": payload["id"], "result": {"tools": tools}}
        if method == "tools/call":
            return {
                "jsonrpc": "2.0",
                "id": payload["id"],
                "result": {"content": [{"type": "text", "text": f"called {payload['params']['name']}"}]},
            }
        return None

    return handle


class TestHandshake:
    async def test_e1_up_e2_down(self, sample_items: list[Any]) -> None:
        router = RequestRouter(sample_items)
        fanout = FakeFanout({E1: router.handle, E2: lambda payload: HttpReply(E2, 500, "boom")})

        session = await SessionBootstrapper(fanout).bootstrap([E1, E2])

        assert fanout.methods(E1) == [
            "initialize",
            "notifications/initialized",
            "resources/list",
            "prompts/list",
            "tools/list",
        ]
        assert fanout.methods(E2) == ["initialize", "notifications/cancelled"]
        assert "get_msgs" in session.functions
        assert WITHOUT_FUNCTION in session.functions
        assert CHECK_PROCESS in session.functions
        assert session.failure is None
        assert [e.url for e in session.ready_endpoints] == [E1]

    async def test_initialize_is_one_parallel_batch(self, sample_items: list[Any]) -> None:
        router = RequestRouter(sample_items)
        fanout = FakeFanout({E1: router.handle})

        await SessionBootstrapper(fanout).bootstrap([E1, E2])

        first = fanout.batches[0]
        assert [r.url for r in first] == [E1, E2]
        assert all(r.payload["method"] == "initialize" for r in first)
        assert first[0].payload["params"]["protocolVersion"] == "2024-11-05"
        assert first[0].payload["params"]["clientInfo"]["name"] == "mcpgate"

    async def test_cancelled_carries_reason(self) -> None:
        fanout = FakeFanout({E1: _static_endpoint([])})

        await SessionBootstrapper(fanout).bootstrap([E1, E2])

        [cancel] = [r for r in fanout.requests if r.payload.get("method") == "notifications/cancelled"]
        assert cancel.url == E2
        assert cancel.payload["params"]["reason"] == CANCEL_REASON
        assert cancel.payload["params"]["reason"] == "Error: MCP error. InternalError: -32603"

    async def test_200_without_result_is_not_ready(self) -> None:
        fanout = FakeFanout({E1: lambda payload: {"jsonrpc": "2.0", "id": 1, "error": {"code": -1, "message": "x"}}})

        session = await SessionBootstrapper(fanout).bootstrap([E1])

        assert session.ready_endpoints == []

    async def test_no_endpoint_ready_records_failure(self) -> None:
        fanout = FakeFanout({})

        session = await SessionBootstrapper(fanout).bootstrap([E1, E2])

        assert session.failure == "Couldn't initialize MCPs."
        assert set(session.functions.names()) == {WITHOUT_FUNCTION, CHECK_PROCESS}
        assert all(m in ("initialize", "notifications/cancelled") for m in fanout.methods(E1))

    async def test_no_urls(self) -> None:
        fanout = FakeFanout({})
        user = FunctionCatalog([local_function(lambda a: "x", name="mine")])

        session = await SessionBootstrapper(fanout).bootstrap(["  ", ""], functions=user)

        assert fanout.batches == []
        assert session.endpoints == []
        assert "mine" in session.functions

    async def test_urls_trimmed_and_deduplicated(self) -> None:
        fanout = FakeFanout({E1: _static_endpoint([])})

        session = await SessionBootstrapper(fanout).bootstrap([E1, f"  {E1} "])

        assert [e.url for e in session.endpoints] == [E1]

    async def test_server_info_exposed(self) -> None:
        fanout = FakeFanout({E1: _static_endpoint([], name="mail-server")})

        session = await SessionBootstrapper(fanout).bootstrap([E1, E2])

        assert session.server_info() == [{"name": "mail-server", "version": "1.0.0"}]


class TestDiscoveryModes:
    async def test_per_call_one_fanout_per_method(self) -> None:
        e3 = "https://e3.example/"
        fanout = FakeFanout({E1: _static_endpoint([{"name": "a"}]), e3: _static_endpoint([{"name": "b"}])})

        session = await SessionBootstrapper(fanout).bootstrap([E1, e3])

        discovery = fanout.batches[2:]
        assert [[r.payload["method"] for r in batch] for batch in discovery] == [
            ["resources/list", "resources/list"],
            ["prompts/list", "prompts/list"],
            ["tools/list", "tools/list"],
        ]
        assert {"a", "b"} <= set(session.functions.names())

    async def test_batched_one_array_per_endpoint(self) -> None:
        e3 = "https://e3.example/"
        fanout = FakeFanout({E1: _static_endpoint([{"name": "a"}]), e3: _static_endpoint([{"name": "b"}])})

        session = await SessionBootstrapper(fanout, batch_process=True).bootstrap([E1, e3])

        [discovery] = fanout.batches[2:]
        assert [r.url for r in discovery] == [E1, e3]
        assert all(isinstance(r.payload, list) and len(r.payload) == 3 for r in discovery)
        assert {"a", "b"} <= set(session.functions.names())

    async def test_batched_matches_by_id_not_position(self) -> None:
        def reversed_endpoint(payload: Any) -> Any:
            if isinstance(payload, list):
                replies = [
                    {"jsonrpc": "2.0", "id": p["id"], "result": {"tools": [{"name": "t"}]}}
                    if p["method"] == "tools/list"
                    else {"jsonrpc": "2.0", "id": p["id"], "result": {p["method"].split("/")[0]: []}}
                    for p in payload
                ]
                return list(reversed(replies))
            if payload["method"] == "initialize":
                return {"jsonrpc": "2.0", "id": payload["id"], "result": initialize_value()}
            return None

        fanout = FakeFanout({E1: reversed_endpoint})

        session = await SessionBootstrapper(fanout, batch_process=True).bootstrap([E1])

        endpoint = session.endpoints[0]
        assert endpoint.listing("tools/list") == [{"name": "t"}]
        assert endpoint.listing("resources/list") == []
        assert "t" in session.functions

    async def test_batched_against_real_router(self, sample_items: list[Any]) -> None:
        router = RequestRouter(sample_items)
        fanout = FakeFanout({E1: router.handle})

        session = await SessionBootstrapper(fanout, batch_process=True).bootstrap([E1])

        assert {"get_msgs", "greet", "today_memo"} <= set(session.functions.names())


class TestFunctionTable:
    async def test_remote_tool_issues_tools_call(self) -> None:
        fanout = FakeFanout({E1: _static_endpoint([{"name": "get msgs", "inputSchema": {"type": "object"}}])})
        session = await SessionBootstrapper(fanout).bootstrap([E1])

        spec = session.functions.get("get_msgs")
        result = await spec.invoke({"sender": "a"})  # type: ignore[union-attr]

        last = fanout.requests[-1].payload
        assert last["method"] == "tools/call"
        assert last["params"] == {"name": "get msgs", "arguments": {"sender": "a"}}
        assert result["result"]["content"][0]["text"] == "called get msgs"

    async def test_remote_resource_and_prompt(self, sample_items: list[Any]) -> None:
        router = RequestRouter(sample_items)
        fanout = FakeFanout({E1: router.handle})
        session = await SessionBootstrapper(fanout).bootstrap([E1])

        memo = await session.functions.get("today_memo").invoke({})  # type: ignore[union-attr]
        prompt = await session.functions.get("greet").invoke({"who": "Ann"})  # type: ignore[union-attr]

        assert memo["result"]["contents"][0]["text"] == "Buy milk."
        assert prompt["result"]["messages"][0]["content"]["text"] == "Say hello to Ann."
        assert session.functions.get("greet").parameters["required"] == ["who"]  # type: ignore[union-attr]

    async def test_remote_call_failure_raises(self) -> None:
        calls = {"n": 0}
        handle = _static_endpoint([{"name": "t"}])

        def flaky(payload: Any) -> Any:
            if isinstance(payload, dict) and payload["method"] == "tools/call":
                calls["n"] += 1
                return HttpReply(E1, 502, "bad gateway")
            return handle(payload)

        session = await SessionBootstrapper(FakeFanout({E1: flaky})).bootstrap([E1])

        with pytest.raises(ToolExecutionError):
            await session.functions.get("t").invoke({})  # type: ignore[union-attr]
        assert calls["n"] == 1

    async def test_later_endpoint_shadows_earlier(self, caplog: pytest.LogCaptureFixture) -> None:
        e3 = "https://e3.example/"
        fanout = FakeFanout(
            {
                E1: _static_endpoint([{"name": "t", "description": "from e1"}]),
                e3: _static_endpoint([{"name": "t", "description": "from e3"}]),
            }
        )

        with caplog.at_level(logging.DEBUG, logger="mcpgate.protocols.client.session"):
            session = await SessionBootstrapper(fanout).bootstrap([E1, e3])

        assert session.functions.get("t").description == "from e3"  # type: ignore[union-attr]
        assert not [r for r in caplog.records if r.levelno >= logging.WARNING and "replaces" in r.getMessage()]

    async def test_local_functions_win(self) -> None:
        fanout = FakeFanout({E1: _static_endpoint([{"name": "get_msgs", "description": "remote"}])})
        item = ToolItem(value={"name": "get_msgs", "description": "static"}, function=lambda a: "static")
        user = FunctionCatalog([local_function(lambda a: "user", name="check_process", description="custom")])

        session = await SessionBootstrapper(fanout).bootstrap([E1], items=[item], functions=user)

        assert session.functions.get("get_msgs").description == "static"  # type: ignore[union-attr]
        assert session.functions.get("check_process").description == "custom"  # type: ignore[union-attr]

    async def test_rows_flushed_to_log(self) -> None:
        sink = InMemoryLogSink()
        fanout = FakeFanout({})

        await SessionBootstrapper(fanout, log=DiagnosticLog(sink)).bootstrap([E1])

        assert [row.payload for row in sink.rows] == ["Couldn't initialize MCPs."]
