"""ModelClient — the reasoning oracle, backed by LiteLLM.

The planner depends only on the :class:`ReasoningOracle` protocol, so tests
can substitute a scripted fake.  :class:`ModelClient` is the production
implementation: it converts a :class:`ConversationHistory` to LiteLLM's
OpenAI-style messages and the reply back to a :class:`CanonicalMessage`.
"""

from __future__ import annotations

import json
from typing import Any, Protocol, runtime_checkable

import litellm

from mcpgate.core.interface.config import ModelConfig
from mcpgate.core.interface.models import (
    CanonicalMessage,
    ConversationHistory,
    TextContent,
    ToolCall,
)
from mcpgate.utils.telemetry import (
    ATTR_FINISH_REASON,
    ATTR_MODEL,
    ATTR_PROVIDER,
    ATTR_TOKENS_COMPLETION,
    ATTR_TOKENS_PROMPT,
    ATTR_TOKENS_TOTAL,
    get_tracer,
)

_tracer = get_tracer(__name__)


@runtime_checkable
class ReasoningOracle(Protocol):
    """Anything that can answer a conversation, optionally with a tool call.

    Keyword arguments are passed through to the model provider
    (``tool_choice``, ``response_format``, ...).
    """

    async def generate(
        self,
        messages: ConversationHistory,
        tools: list[dict[str, Any]] | None = None,
        **kwargs: Any,
    ) -> CanonicalMessage: ...


def forced_tool_choice(name: str) -> dict[str, Any]:
    """``tool_choice`` value that only allows the function *name*."""
    return {"type": "function", "function": {"name": name}}


class ModelClient:
    """Async client for the configured model.

    Usage::

        client = ModelClient(ModelConfig(model="openai/gpt-4o"))
        reply = await client.generate(history, tools=[schema], tool_choice=forced_tool_choice("x"))
    """

    def __init__(self, config: ModelConfig) -> None:
        self.config = config

    async def generate(
        self,
        messages: ConversationHistory,
        tools: list[dict[str, Any]] | None = None,
        **kwargs: Any,
    ) -> CanonicalMessage:
        with _tracer.start_as_current_span("model.generate") as span:
            span.set_attribute(ATTR_MODEL, self.config.model)
            span.set_attribute(ATTR_PROVIDER, self.config.provider)

            call_kwargs: dict[str, Any] = {
                **self.config.extra,
                "model": self.config.model,
                "messages": to_openai_messages(messages),
                **kwargs,
            }
            if self.config.api_key:
                call_kwargs["api_key"] = self.config.api_key
            if self.config.api_base:
                call_kwargs["api_base"] = self.config.api_base
            if self.config.temperature is not None:
                call_kwargs.setdefault("temperature", self.config.temperature)
            if tools:
                call_kwargs["tools"] = tools

            response = await litellm.acompletion(**call_kwargs)  # pyright: ignore[reportUnknownMemberType]
            result = _parse_response(response)

            usage: dict[str, Any] | None = result.metadata.get("usage")
            if isinstance(usage, dict):
                span.set_attribute(ATTR_TOKENS_PROMPT, int(usage.get("prompt_tokens", 0)))
                span.set_attribute(ATTR_TOKENS_COMPLETION, int(usage.get("completion_tokens", 0)))
                span.set_attribute(ATTR_TOKENS_TOTAL, int(usage.get("total_tokens", 0)))
            finish_reason = result.metadata.get("finish_reason")
            if finish_reason is not None:
                span.set_attribute(ATTR_FINISH_REASON, str(finish_reason))
            return result


def to_openai_messages(history: ConversationHistory) -> list[dict[str, Any]]:
    """Convert *history* to the chat-completion message list LiteLLM expects."""
    messages: list[dict[str, Any]] = []
    for msg in history:
        entry: dict[str, Any] = {"role": msg.role, "content": msg.text or None}
        if msg.role == "tool":
            entry["tool_call_id"] = msg.tool_call_id
            entry["content"] = msg.text
        if msg.tool_calls:
            entry["tool_calls"] = [
                {
                    "id": tc.id,
                    "type": "function",
                    "function": {"name": tc.name, "arguments": json.dumps(tc.arguments)},
                }
                for tc in msg.tool_calls
            ]
        messages.append(entry)
    return messages


def _parse_response(response: Any) -> CanonicalMessage:
    choice = response.choices[0]
    message = choice.message

    content = [TextContent(text=message.content)] if message.content else []

    tool_calls: list[ToolCall] | None = None
    if message.tool_calls:
        tool_calls = [
            ToolCall(
                id=tc.id,
                name=tc.function.name,
                arguments=_parse_arguments(tc.function.arguments),
            )
            for tc in message.tool_calls
        ]

    metadata: dict[str, Any] = {"finish_reason": choice.finish_reason}
    if getattr(response, "usage", None):
        metadata["usage"] = {
            "prompt_tokens": response.usage.prompt_tokens,
            "completion_tokens": response.usage.completion_tokens,
            "total_tokens": response.usage.total_tokens,
        }
    if getattr(response, "model", None):
        metadata["model"] = response.model

    return CanonicalMessage(role="assistant", content=content, tool_calls=tool_calls, metadata=metadata)


def _parse_arguments(raw: Any) -> dict[str, Any]:
    if isinstance(raw, dict):
        return raw
    try:
        result = json.loads(raw)
    except (json.JSONDecodeError, TypeError):
        return {"raw": raw}
    return result if isinstance(result, dict) else {"raw": raw}
