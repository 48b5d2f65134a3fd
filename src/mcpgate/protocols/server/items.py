"""Capability items — the declarations a server is assembled from.

Each item is one variant of the closed :data:`CapabilityItem` union,
discriminated by ``type``.  Items may be built directly or parsed from
plain dicts (``{"type": "tools/list", "value": {...}, "function": fn}``)::

    items = parse_items([
        {"type": "initialize", "value": {"protocolVersion": "2024-11-05", ...}},
        ToolItem(value={"name": "get_msgs", "inputSchema": {...}}, function=get_msgs),
    ])
"""

from __future__ import annotations

import logging
from collections.abc import Callable, Iterable
from typing import Annotated, Any, Literal

from pydantic import BaseModel, Field, TypeAdapter, ValidationError

logger = logging.getLogger(__name__)


class InitializeItem(BaseModel):
    """``initialize`` result: protocol version, capabilities, server info."""

    type: Literal["initialize"] = "initialize"
    value: dict[str, Any]


class ToolItem(BaseModel):
    """One tool descriptor, optionally bound to the function that runs it.

    The function receives the ``arguments`` dict of the ``tools/call``
    request and may be sync or async.
    """

    type: Literal["tools/list"] = "tools/list"
    value: dict[str, Any]
    function: Callable[..., Any] | None = None

    @property
    def name(self) -> str | None:
        name = self.value.get("name")
        return str(name) if name is not None else None


class ResourcesListItem(BaseModel):
    """A complete ``resources/list`` result plus per-URI readers.

    Readers take no arguments and are served through ``resources/read``.
    """

    type: Literal["resources/list"] = "resources/list"
    value: dict[str, Any]
    readers: dict[str, Callable[..., Any]] = {}


class PromptsListItem(BaseModel):
    """A ``prompts/list`` result (``{"prompts": [...]}``)."""

    type: Literal["prompts/list"] = "prompts/list"
    value: dict[str, Any]


class PromptsGetItem(BaseModel):
    """``prompts/get`` templates.

    ``value`` is either one prompt result (it has ``messages``) or a mapping
    of prompt name to prompt result.  Message text may contain ``{{arg}}``
    placeholders.
    """

    type: Literal["prompts/get"] = "prompts/get"
    value: dict[str, Any]

    @property
    def is_single(self) -> bool:
        return "messages" in self.value


CapabilityItem = Annotated[
    InitializeItem | ToolItem | ResourcesListItem | PromptsListItem | PromptsGetItem,
    Field(discriminator="type"),
]

_ITEM_ADAPTER: TypeAdapter[CapabilityItem] = TypeAdapter(CapabilityItem)

# Method a bound function is served under, per item type.
CALL_METHODS: dict[str, str] = {
    "tools/list": "tools/call",
    "resources/list": "resources/read",
}


def dedup_key(item: CapabilityItem) -> str | None:
    """Return the name that must be unique within the item's type, if any."""
    if isinstance(item, ToolItem):
        return item.name
    return None


def parse_items(raw: Iterable[Any]) -> list[CapabilityItem]:
    """Validate *raw* into capability items, skipping malformed entries."""
    items: list[CapabilityItem] = []
    for index, entry in enumerate(raw):
        try:
            items.append(_ITEM_ADAPTER.validate_python(entry))
        except ValidationError as exc:
            logger.warning("Skipping malformed capability item #%d: %s", index, exc)
    return items
