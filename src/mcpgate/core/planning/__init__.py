"""Planning and execution of user goals over a function catalog."""

from mcpgate.core.planning.executor import PlannerExecutor, flatten_fragments, interpret_outcome, parse_plan
from mcpgate.core.planning.models import (
    BinaryPayload,
    Continue,
    ExecutionStep,
    Plan,
    RunResult,
    StepOutcome,
    Stop,
)

__all__ = [
    "BinaryPayload",
    "Continue",
    "ExecutionStep",
    "Plan",
    "PlannerExecutor",
    "RunResult",
    "StepOutcome",
    "Stop",
    "flatten_fragments",
    "interpret_outcome",
    "parse_plan",
]
