"""ItemAggregator — merges capability items into dispatch tables.

Output is an :class:`AggregateTables` pair:

* ``responses`` — lowercase method name to either a :class:`StaticTemplate`
  (one canned response) or a :class:`NamedTemplateSet` (responses indexed
  by prompt/tool/resource name).
* ``functions`` — call method (``tools/call``, ``resources/read``) to a
  name-keyed mapping of invocables.

Aggregation never raises.  Malformed items are skipped and duplicate tool
names are dropped (first one wins) with a warning.
"""

from __future__ import annotations

import copy
import json
import logging
from collections.abc import Callable, Iterable
from dataclasses import dataclass, field
from typing import Any

from mcpgate.protocols.jsonrpc import JSONRPC_VERSION
from mcpgate.protocols.server.items import (
    CALL_METHODS,
    CapabilityItem,
    InitializeItem,
    PromptsGetItem,
    PromptsListItem,
    ResourcesListItem,
    ToolItem,
    dedup_key,
    parse_items,
)

logger = logging.getLogger(__name__)

TieBreak = Callable[[dict[str, Any], dict[str, Any]], dict[str, Any]]


def prefer_longer_serialization(current: dict[str, Any], candidate: dict[str, Any]) -> dict[str, Any]:
    """Keep whichever result serialises to the longer JSON text."""
    if len(json.dumps(current, default=str)) < len(json.dumps(candidate, default=str)):
        return candidate
    return current


@dataclass
class StaticTemplate:
    """A single response template (``{"jsonrpc", "result"}``, no id)."""

    response: dict[str, Any]


@dataclass
class NamedTemplateSet:
    """Response templates keyed by the ``params.name`` they answer."""

    templates: dict[str, dict[str, Any]] = field(default_factory=dict)


ResponseEntry = StaticTemplate | NamedTemplateSet


@dataclass
class AggregateTables:
    responses: dict[str, ResponseEntry] = field(default_factory=dict)
    functions: dict[str, dict[str, Callable[..., Any]]] = field(default_factory=dict)


def _wrap(result: dict[str, Any]) -> dict[str, Any]:
    return {"jsonrpc": JSONRPC_VERSION, "result": copy.deepcopy(result)}


class ItemAggregator:
    """Builds dispatch tables from an ordered sequence of capability items.

    Usage::

        tables = ItemAggregator().aggregate(items)
        tables.responses["tools/list"]      # StaticTemplate
        tables.functions["tools/call"]      # {"get_msgs": get_msgs}

    *tie_break* decides between two ``initialize`` (or ``resources/list``,
    or single ``prompts/get``) declarations; it receives the current and the
    candidate result and returns the one to keep.
    """

    def __init__(self, *, tie_break: TieBreak = prefer_longer_serialization) -> None:
        self._tie_break = tie_break

    def aggregate(self, items: Iterable[Any]) -> AggregateTables:
        tables = AggregateTables()
        for item in self._deduplicate(parse_items(items)):
            self._merge(item, tables)
            self._bind(item, tables)
        return tables

    def _deduplicate(self, items: list[CapabilityItem]) -> list[CapabilityItem]:
        seen: set[tuple[str, str]] = set()
        kept: list[CapabilityItem] = []
        for item in items:
            if isinstance(item, ToolItem) and not item.name:
                logger.warning("Skipping %s item without a name", item.type)
                continue
            key = dedup_key(item)
            if key is not None:
                if (item.type, key) in seen:
                    logger.warning('"%s" is duplicated. So, this is removed.', key)
                    continue
                seen.add((item.type, key))
            kept.append(item)
        return kept

    def _merge(self, item: CapabilityItem, tables: AggregateTables) -> None:
        if isinstance(item, InitializeItem | ResourcesListItem):
            self._merge_richer(item.type, item.value, tables)
        elif isinstance(item, PromptsListItem):
            self._merge_prompt_list(item, tables)
        elif isinstance(item, PromptsGetItem):
            self._merge_prompt_templates(item, tables)
        elif isinstance(item, ToolItem):
            self._merge_listing(item, tables)

    def _merge_richer(self, method: str, value: dict[str, Any], tables: AggregateTables) -> None:
        existing = tables.responses.get(method)
        if isinstance(existing, StaticTemplate):
            value = self._tie_break(existing.response["result"], value)
        tables.responses[method] = StaticTemplate(_wrap(value))

    def _merge_prompt_list(self, item: PromptsListItem, tables: AggregateTables) -> None:
        prompts = item.value.get("prompts")
        if not isinstance(prompts, list):
            logger.warning("Skipping prompts/list item without a 'prompts' array")
            return
        entries = [p for p in prompts if isinstance(p, dict)]
        if len(entries) < len(prompts):
            logger.warning("Skipping %d prompts/list entries that are not objects", len(prompts) - len(entries))
        existing = tables.responses.get(item.type)
        if isinstance(existing, StaticTemplate):
            merged: list[dict[str, Any]] = existing.response["result"]["prompts"]
            merged.extend(copy.deepcopy(entries))
        else:
            existing = StaticTemplate(_wrap({**item.value, "prompts": entries}))
            merged = existing.response["result"]["prompts"]
        merged.sort(key=lambda p: str(p.get("name", "")))
        tables.responses[item.type] = existing

    def _merge_prompt_templates(self, item: PromptsGetItem, tables: AggregateTables) -> None:
        existing = tables.responses.get(item.type)
        if existing is None:
            if item.is_single:
                tables.responses[item.type] = StaticTemplate(_wrap(item.value))
            else:
                tables.responses[item.type] = NamedTemplateSet(
                    {name: _wrap(result) for name, result in item.value.items()}
                )
        elif isinstance(existing, StaticTemplate):
            if not item.is_single:
                logger.warning("Ignoring named prompts/get templates after a single template")
                return
            self._merge_richer(item.type, item.value, tables)
        else:
            if item.is_single:
                logger.warning("Ignoring a single prompts/get template after named templates")
                return
            for name, result in item.value.items():
                existing.templates[name] = _wrap(result)

    def _merge_listing(self, item: ToolItem, tables: AggregateTables) -> None:
        plural = item.type.split("/", 1)[0]
        existing = tables.responses.get(item.type)
        if isinstance(existing, StaticTemplate):
            existing.response["result"][plural].append(copy.deepcopy(item.value))
        else:
            tables.responses[item.type] = StaticTemplate(_wrap({plural: [item.value]}))

    def _bind(self, item: CapabilityItem, tables: AggregateTables) -> None:
        call_method = CALL_METHODS.get(item.type)
        if call_method is None:
            return
        handlers: dict[str, Callable[..., Any]] = {}
        if isinstance(item, ToolItem) and item.function is not None and item.name:
            handlers[item.name] = item.function
        elif isinstance(item, ResourcesListItem):
            handlers.update(item.readers)
        if handlers:
            tables.functions.setdefault(call_method, {}).update(handlers)
