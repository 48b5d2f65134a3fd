"""Data types of one planner run."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any

from pydantic import BaseModel, Field

from mcpgate.core.interface.models import ConversationHistory
from mcpgate.protocols.jsonrpc import JsonRpcError

# A step outcome fragment: plain text, or a content block such as
# ``{"type": "image", "data": "<base64>", "mimeType": "image/png"}``.
Fragment = str | dict[str, Any]


class ExecutionStep(BaseModel):
    """One entry of the plan: which callable, and what to do with it."""

    name: str = Field(description="Function name.")
    task: str = Field(
        description=(
            "For actionable tasks that the functions can do, select a suitable one of the given "
            "functions to accurately resolve requests of the user's prompt in the suitable order."
        )
    )


class Plan(BaseModel):
    """Ordered steps returned by the planning call."""

    steps: list[ExecutionStep] = []


@dataclass(frozen=True)
class Continue:
    """The step finished; its fragments join the result and the loop goes on."""

    fragments: list[Fragment] = field(default_factory=list)


@dataclass(frozen=True)
class Stop:
    """The step asked the loop to halt; *message* is the final fragment."""

    message: str


StepOutcome = Continue | Stop


class BinaryPayload(BaseModel):
    """Decoded binary content returned by a callable."""

    mime_type: str
    data: bytes
    name: str = "sampleName"


class RunResult(BaseModel):
    """What :meth:`PlannerExecutor.run` returns.

    ``result`` holds the summary (or the raw text fragments) followed by any
    binary payloads.  ``error`` is set instead when planning failed.
    """

    result: list[str | BinaryPayload] = []
    history: ConversationHistory = Field(default_factory=ConversationHistory)
    plan: list[ExecutionStep] = []
    stopped: bool = False
    error: JsonRpcError | None = None

    @property
    def texts(self) -> list[str]:
        return [r for r in self.result if isinstance(r, str)]

    @property
    def payloads(self) -> list[BinaryPayload]:
        return [r for r in self.result if isinstance(r, BinaryPayload)]
