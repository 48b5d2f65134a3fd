"""Reasoning-model interface."""

from mcpgate.core.interface.client import ModelClient, ReasoningOracle, forced_tool_choice
from mcpgate.core.interface.config import ModelConfig
from mcpgate.core.interface.models import (
    CanonicalMessage,
    ConversationHistory,
    TextContent,
    ToolCall,
    ToolResult,
)

__all__ = [
    "CanonicalMessage",
    "ConversationHistory",
    "ModelClient",
    "ModelConfig",
    "ReasoningOracle",
    "TextContent",
    "ToolCall",
    "ToolResult",
    "forced_tool_choice",
]
