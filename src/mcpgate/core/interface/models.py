"""Conversation messages exchanged with the reasoning model.

The planner only ever touches these types; :mod:`mcpgate.core.interface.client`
converts them to and from LiteLLM's OpenAI-style payloads.
"""

from __future__ import annotations

from collections.abc import Iterator
from typing import Any, Literal
from uuid import uuid4

from pydantic import BaseModel, Field


class TextContent(BaseModel):
    """Plain text content part."""

    type: Literal["text"] = "text"
    text: str


class ToolCall(BaseModel):
    """A function invocation chosen by the model."""

    id: str = Field(default_factory=lambda: uuid4().hex[:12])
    name: str
    arguments: dict[str, Any] = {}


class ToolResult(BaseModel):
    tool_call_id: str
    content: list[TextContent] = []

    @classmethod
    def from_text(cls, tool_call_id: str, text: str) -> ToolResult:
        return cls(tool_call_id=tool_call_id, content=[TextContent(text=text)])


class CanonicalMessage(BaseModel):
    """One turn of a conversation.

    ``assistant`` turns may carry ``tool_calls``; ``tool`` turns answer one of
    them through ``tool_call_id``.
    """

    role: Literal["system", "user", "assistant", "tool"]
    content: list[TextContent] = []
    tool_calls: list[ToolCall] | None = None
    tool_call_id: str | None = None
    metadata: dict[str, Any] = {}

    @property
    def text(self) -> str:
        return "".join(part.text for part in self.content)

    @classmethod
    def system(cls, text: str, **metadata: Any) -> CanonicalMessage:
        return cls(role="system", content=[TextContent(text=text)], metadata=metadata)

    @classmethod
    def user(cls, text: str, **metadata: Any) -> CanonicalMessage:
        return cls(role="user", content=[TextContent(text=text)], metadata=metadata)

    @classmethod
    def assistant(
        cls,
        text: str = "",
        tool_calls: list[ToolCall] | None = None,
        **metadata: Any,
    ) -> CanonicalMessage:
        content = [TextContent(text=text)] if text else []
        return cls(role="assistant", content=content, tool_calls=tool_calls, metadata=metadata)

    @classmethod
    def tool(cls, result: ToolResult, **metadata: Any) -> CanonicalMessage:
        return cls(
            role="tool",
            content=list(result.content),
            tool_call_id=result.tool_call_id,
            metadata=metadata,
        )


class ConversationHistory(BaseModel):
    """Ordered turns of one conversation.

    A planner run owns its history; pass :meth:`copy` to anything that might
    append to it.
    """

    messages: list[CanonicalMessage] = []

    def append(self, message: CanonicalMessage) -> None:
        self.messages.append(message)

    def extend(self, messages: list[CanonicalMessage]) -> None:
        self.messages.extend(messages)

    def copy(self) -> ConversationHistory:  # type: ignore[override]
        return self.model_copy(deep=True)

    def __len__(self) -> int:
        return len(self.messages)

    def __iter__(self) -> Iterator[CanonicalMessage]:  # type: ignore[override]
        return iter(self.messages)
