"""Callable functions offered to the planner.

A :class:`FunctionCatalog` is the client-side function table: a name to
:class:`CallableFunctionSpec` map built from remote endpoints, in-process
capability items and user callables.  Every catalog created by
:func:`builtin_functions` starts with two local callables:

* ``without_function`` — answer from general knowledge when nothing fits.
* ``check_process`` — decide whether the remaining plan should run; its
  handler returns a :class:`ProcessDecision`.
"""

from __future__ import annotations

import inspect
import logging
from collections.abc import Callable, Iterable, Iterator
from dataclasses import dataclass
from typing import Any

from pydantic import BaseModel

from mcpgate.protocols.server.items import ToolItem, parse_items

logger = logging.getLogger(__name__)

WITHOUT_FUNCTION = "without_function"
CHECK_PROCESS = "check_process"

Handler = Callable[[dict[str, Any]], Any]

_EMPTY_PARAMETERS: dict[str, Any] = {"type": "object", "properties": {}}


@dataclass
class CallableFunctionSpec:
    """A function the reasoning model may call.

    *handler* receives the arguments object chosen by the model and may be
    sync or async.
    """

    name: str
    handler: Handler
    description: str = ""
    parameters: dict[str, Any] | None = None
    title: str | None = None

    async def invoke(self, arguments: dict[str, Any] | None = None) -> Any:
        result = self.handler(dict(arguments or {}))
        if inspect.isawaitable(result):
            result = await result
        return result

    def to_tool_schema(self) -> dict[str, Any]:
        """OpenAI-compatible function schema for tool calling."""
        return {
            "type": "function",
            "function": {
                "name": self.name,
                "description": self.description,
                "parameters": self.parameters or dict(_EMPTY_PARAMETERS),
            },
        }

    def details(self) -> dict[str, Any]:
        """Description used in the planning catalog."""
        details: dict[str, Any] = {"description": self.description}
        if self.title:
            details["title"] = self.title
        if self.parameters:
            details["parameters"] = self.parameters
        return details


class FunctionCatalog:
    """Ordered, name-unique collection of :class:`CallableFunctionSpec`.

    Adding a spec whose name is already present replaces the old one.
    """

    def __init__(self, specs: Iterable[CallableFunctionSpec] = ()) -> None:
        self._specs: dict[str, CallableFunctionSpec] = {}
        for spec in specs:
            self.add(spec)

    def add(self, spec: CallableFunctionSpec) -> CallableFunctionSpec | None:
        """Insert *spec*; return the spec it replaced, if any."""
        previous = self._specs.get(spec.name)
        self._specs[spec.name] = spec
        return previous

    def merge(self, other: FunctionCatalog) -> None:
        """Add every spec of *other*; *other* wins on name collisions."""
        for spec in other:
            self.add(spec)

    def get(self, name: str) -> CallableFunctionSpec | None:
        return self._specs.get(name)

    def names(self) -> list[str]:
        return list(self._specs)

    def schemas(self) -> list[dict[str, Any]]:
        return [spec.to_tool_schema() for spec in self]

    def __contains__(self, name: object) -> bool:
        return name in self._specs

    def __len__(self) -> int:
        return len(self._specs)

    def __iter__(self) -> Iterator[CallableFunctionSpec]:
        return iter(list(self._specs.values()))


# ---------------------------------------------------------------------------
# Built-in control callables
# ---------------------------------------------------------------------------


class ProcessDecision(BaseModel):
    """Result of ``check_process``: whether the plan must halt."""

    stop_process: bool
    task: str = ""
    reason: str = ""


def _as_bool(value: Any) -> bool:
    if isinstance(value, str):
        return value.strip().lower() == "true"
    return bool(value)


def _without_function(arguments: dict[str, Any]) -> dict[str, Any]:
    logger.info("without_function: %s", arguments.get("task", ""))
    return {"task": arguments.get("task", ""), "result": arguments.get("response", "")}


def _check_process(arguments: dict[str, Any]) -> ProcessDecision:
    decision = ProcessDecision(
        stop_process=_as_bool(arguments.get("stopProcess")),
        task=str(arguments.get("task", "")),
        reason=str(arguments.get("reason", "")),
    )
    logger.info("check_process: stop=%s reason=%s", decision.stop_process, decision.reason)
    return decision


def builtin_functions() -> FunctionCatalog:
    """Return a catalog holding only the two local control callables."""
    without_function = CallableFunctionSpec(
        name=WITHOUT_FUNCTION,
        handler=_without_function,
        description=(
            f'Use this if all other functions except for "{WITHOUT_FUNCTION}" can not resolve '
            "the tasks. At that time, think of a solution to the task using the knowledge you have."
        ),
        parameters={
            "type": "object",
            "properties": {
                "task": {"type": "string", "description": "Details of task."},
                "response": {"type": "string", "description": "Response to the task."},
            },
            "required": ["task", "response"],
        },
    )
    check_process = CallableFunctionSpec(
        name=CHECK_PROCESS,
        handler=_check_process,
        description=(
            "Check carefully the previous history and decide whether the process is required "
            "to be stopped or continued."
        ),
        parameters={
            "type": "object",
            "properties": {
                "stopProcess": {
                    "type": "boolean",
                    "description": (
                        "Set this to true when the process must be stopped, "
                        "false when it can continue."
                    ),
                },
                "task": {"type": "string", "description": "Details of task."},
                "reason": {"type": "string", "description": "Reason for stopping the process."},
            },
            "required": ["stopProcess", "task", "reason"],
        },
    )
    return FunctionCatalog([without_function, check_process])


# ---------------------------------------------------------------------------
# Local callables
# ---------------------------------------------------------------------------


def local_function(
    handler: Handler,
    *,
    name: str | None = None,
    description: str | None = None,
    parameters: dict[str, Any] | None = None,
) -> CallableFunctionSpec:
    """Wrap a user callable; name and description default to the function's."""
    return CallableFunctionSpec(
        name=name or handler.__name__,
        handler=handler,
        description=description if description is not None else inspect.getdoc(handler) or "",
        parameters=parameters,
    )


def functions_from_items(items: Iterable[Any]) -> FunctionCatalog:
    """Turn in-process ``tools/list`` items with a bound function into callables."""
    catalog = FunctionCatalog()
    for item in parse_items(items):
        if not isinstance(item, ToolItem) or item.function is None or not item.name:
            continue
        catalog.add(
            CallableFunctionSpec(
                name=item.name,
                handler=item.function,
                description=str(item.value.get("description", "")),
                parameters=item.value.get("inputSchema"),
            )
        )
    return catalog
