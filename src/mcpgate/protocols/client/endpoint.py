"""RemoteEndpoint — what one server told us during a client session."""

from __future__ import annotations

from typing import Any, Literal

from pydantic import BaseModel

ListMethod = Literal["resources/list", "prompts/list", "tools/list"]

LIST_METHODS: tuple[ListMethod, ...] = ("resources/list", "prompts/list", "tools/list")


class RemoteEndpoint(BaseModel):
    """Responses harvested from one endpoint URL.

    Each field holds the full JSON-RPC response (``{"jsonrpc", "id",
    "result"}``) or ``None`` when the call failed or was never made.
    """

    url: str
    initialize: dict[str, Any] | None = None
    resources_list: dict[str, Any] | None = None
    prompts_list: dict[str, Any] | None = None
    tools_list: dict[str, Any] | None = None

    @property
    def ready(self) -> bool:
        """``True`` once the initialize handshake succeeded."""
        return self.initialize is not None

    @property
    def server_info(self) -> dict[str, Any] | None:
        if self.initialize is None:
            return None
        result = self.initialize.get("result") or {}
        info = result.get("serverInfo")
        return info if isinstance(info, dict) else None

    def store(self, method: ListMethod, response: dict[str, Any]) -> None:
        setattr(self, method.replace("/", "_"), response)

    def listing(self, method: ListMethod) -> list[dict[str, Any]]:
        """Return the descriptor array of a discovered list, or ``[]``."""
        response: dict[str, Any] | None = getattr(self, method.replace("/", "_"))
        if not response:
            return []
        result = response.get("result") or {}
        items = result.get(method.split("/", 1)[0])
        return [i for i in items if isinstance(i, dict)] if isinstance(items, list) else []
