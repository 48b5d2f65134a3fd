"""Shared fakes: a scripted fan-out transport, a scripted oracle, sample items."""

from __future__ import annotations

import inspect
import json
from collections.abc import Callable, Sequence
from typing import Any
from unittest.mock import MagicMock

import pytest

from mcpgate.core.interface.models import CanonicalMessage, ConversationHistory, ToolCall
from mcpgate.protocols.client.transport import HttpReply, HttpRequest
from mcpgate.protocols.server.items import ToolItem

Handler = Callable[[Any], Any]


class FakeFanout:
    """FanoutTransport answering from per-URL handlers.

    A handler receives the request payload and returns an :class:`HttpReply`,
    ``None`` (HTTP 204), or any JSON value (HTTP 200).  It may be async, so a
    real ``RequestRouter.handle`` can serve as an endpoint.  URLs without a
    handler behave like unreachable hosts.
    """

    def __init__(self, handlers: dict[str, Handler] | None = None) -> None:
        self.handlers = dict(handlers or {})
        self.batches: list[list[HttpRequest]] = []

    @property
    def requests(self) -> list[HttpRequest]:
        return [r for batch in self.batches for r in batch]

    def methods(self, url: str) -> list[str]:
        """Every JSON-RPC method sent to *url*, in order."""
        sent: list[str] = []
        for request in self.requests:
            if request.url != url:
                continue
            payloads = request.payload if isinstance(request.payload, list) else [request.payload]
            sent.extend(p["method"] for p in payloads)
        return sent

    async def fetch_all(self, requests: Sequence[HttpRequest]) -> list[HttpReply]:
        self.batches.append(list(requests))
        replies: list[HttpReply] = []
        for request in requests:
            handler = self.handlers.get(request.url)
            if handler is None:
                replies.append(HttpReply(url=request.url, status_code=0, error="unreachable"))
                continue
            out = handler(request.payload)
            if inspect.isawaitable(out):
                out = await out
            if isinstance(out, HttpReply):
                replies.append(out)
            elif out is None:
                replies.append(HttpReply(url=request.url, status_code=204))
            else:
                replies.append(HttpReply(url=request.url, status_code=200, text=json.dumps(out)))
        return replies


class ScriptedOracle:
    """ReasoningOracle returning pre-scripted replies in order.

    An ``Exception`` in the script is raised instead of returned.
    """

    def __init__(self, replies: Sequence[CanonicalMessage | Exception]) -> None:
        self.replies = list(replies)
        self.calls: list[dict[str, Any]] = []

    async def generate(
        self,
        messages: ConversationHistory,
        tools: list[dict[str, Any]] | None = None,
        **kwargs: Any,
    ) -> CanonicalMessage:
        self.calls.append({"messages": messages.copy(), "tools": tools, **kwargs})
        reply = self.replies.pop(0)
        if isinstance(reply, Exception):
            raise reply
        return reply


def plan_reply(*steps: tuple[str, str]) -> CanonicalMessage:
    return CanonicalMessage.assistant(json.dumps({"steps": [{"name": n, "task": t} for n, t in steps]}))


def call_reply(name: str, **arguments: Any) -> CanonicalMessage:
    return CanonicalMessage.assistant(tool_calls=[ToolCall(name=name, arguments=arguments)])


def make_mock_litellm_response(
    content: str = "",
    tool_calls: list[Any] | None = None,
    finish_reason: str = "stop",
    model: str = "openai/gpt-4o",
) -> MagicMock:
    """Create a ``MagicMock`` shaped like a LiteLLM completion response."""
    message = MagicMock()
    message.content = content or None
    message.tool_calls = tool_calls

    choice = MagicMock()
    choice.message = message
    choice.finish_reason = finish_reason

    usage = MagicMock()
    usage.prompt_tokens = 10
    usage.completion_tokens = 20
    usage.total_tokens = 30

    response = MagicMock()
    response.choices = [choice]
    response.usage = usage
    response.model = model
    return response


def initialize_value(name: str = "sample-server", version: str = "1.0.0") -> dict[str, Any]:
    return {
        "protocolVersion": "2024-11-05",
        "capabilities": {"tools": {"listChanged": False}},
        "serverInfo": {"name": name, "version": version},
    }


def get_msgs(arguments: dict[str, Any]) -> str:
    return f"3 messages from {arguments.get('sender', 'anyone')}"


GET_MSGS_TOOL: dict[str, Any] = {
    "name": "get_msgs",
    "description": "Fetch mail messages.",
    "inputSchema": {
        "type": "object",
        "properties": {"sender": {"type": "string"}},
        "required": [],
    },
}


@pytest.fixture
def sample_items() -> list[Any]:
    return [
        {"type": "initialize", "value": initialize_value()},
        ToolItem(value=GET_MSGS_TOOL, function=get_msgs),
        {
            "type": "prompts/list",
            "value": {
                "prompts": [
                    {
                        "name": "greet",
                        "description": "Greeting prompt.",
                        "arguments": [{"name": "who", "description": "Person", "required": True}],
                    }
                ]
            },
        },
        {
            "type": "prompts/get",
            "value": {
                "description": "Greeting prompt.",
                "messages": [{"role": "user", "content": {"type": "text", "text": "Say hello to {{who}}."}}],
            },
        },
        {
            "type": "resources/list",
            "value": {
                "resources": [
                    {"uri": "memo://today", "name": "today memo", "mimeType": "text/plain"},
                ]
            },
            "readers": {
                "memo://today": lambda: {
                    "contents": [{"uri": "memo://today", "mimeType": "text/plain", "text": "Buy milk."}]
                }
            },
        },
    ]
