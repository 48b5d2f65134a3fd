"""Server side — capability aggregation and JSON-RPC request routing."""

from mcpgate.protocols.server.aggregator import (
    AggregateTables,
    ItemAggregator,
    NamedTemplateSet,
    StaticTemplate,
    prefer_longer_serialization,
)
from mcpgate.protocols.server.items import (
    CapabilityItem,
    InitializeItem,
    PromptsGetItem,
    PromptsListItem,
    ResourcesListItem,
    ToolItem,
    parse_items,
)
from mcpgate.protocols.server.router import LOCKED_METHODS, RequestRouter

__all__ = [
    "LOCKED_METHODS",
    "AggregateTables",
    "CapabilityItem",
    "InitializeItem",
    "ItemAggregator",
    "NamedTemplateSet",
    "PromptsGetItem",
    "PromptsListItem",
    "RequestRouter",
    "ResourcesListItem",
    "StaticTemplate",
    "ToolItem",
    "parse_items",
    "prefer_longer_serialization",
]
