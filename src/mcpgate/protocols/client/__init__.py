"""Client side — endpoint discovery and the planner's function table."""

from mcpgate.protocols.client.endpoint import LIST_METHODS, RemoteEndpoint
from mcpgate.protocols.client.functions import (
    CHECK_PROCESS,
    WITHOUT_FUNCTION,
    CallableFunctionSpec,
    FunctionCatalog,
    ProcessDecision,
    builtin_functions,
    functions_from_items,
    local_function,
)
from mcpgate.protocols.client.session import ClientSession, SessionBootstrapper
from mcpgate.protocols.client.transport import (
    FanoutTransport,
    HttpReply,
    HttpRequest,
    HttpxFanout,
)

__all__ = [
    "CHECK_PROCESS",
    "LIST_METHODS",
    "WITHOUT_FUNCTION",
    "CallableFunctionSpec",
    "ClientSession",
    "FanoutTransport",
    "FunctionCatalog",
    "HttpReply",
    "HttpRequest",
    "HttpxFanout",
    "ProcessDecision",
    "RemoteEndpoint",
    "SessionBootstrapper",
    "builtin_functions",
    "functions_from_items",
    "local_function",
]
