"""mcpgate — JSON-RPC tool gateway with multi-server planning."""

from __future__ import annotations

from typing import TYPE_CHECKING

__version__ = "0.1.0"

if TYPE_CHECKING:
    from mcpgate.core.planning.executor import PlannerExecutor as PlannerExecutor
    from mcpgate.protocols.client.session import SessionBootstrapper as SessionBootstrapper
    from mcpgate.protocols.server.router import RequestRouter as RequestRouter

_LAZY_EXPORTS = {
    "PlannerExecutor": "mcpgate.core.planning.executor",
    "RequestRouter": "mcpgate.protocols.server.router",
    "SessionBootstrapper": "mcpgate.protocols.client.session",
}


def __getattr__(name: str) -> object:
    module_path = _LAZY_EXPORTS.get(name)
    if module_path is not None:
        import importlib

        mod = importlib.import_module(module_path)
        return getattr(mod, name)
    raise AttributeError(f"module 'mcpgate' has no attribute {name!r}")
