"""PlannerExecutor — plan with the reasoning model, then run the plan.

A run moves through three states:

* **plan** — the model sees the whole function catalog and the goal and
  returns an ordered list of ``{name, task}`` steps.
* **execute** — each step gets its own model call whose ``tool_choice``
  allows only that step's function.  The function is invoked and its
  outcome is turned into a :class:`Continue` or :class:`Stop`.  A
  :class:`Stop` ends the loop before the remaining steps run.
* **finalize** — fragments are flattened into text and binary entries; the
  text entries are summarised against the goal in one more model call.

The run owns a private copy of the history and threads it from step to
step; the caller's history object is never mutated.
"""

from __future__ import annotations

import base64
import binascii
import json
import logging
from collections.abc import Callable, Iterable
from datetime import datetime
from typing import Any

from pydantic import ValidationError

from mcpgate.core.interface.client import ReasoningOracle, forced_tool_choice
from mcpgate.core.interface.models import CanonicalMessage, ConversationHistory, ToolResult
from mcpgate.core.planning.models import (
    BinaryPayload,
    Continue,
    ExecutionStep,
    Fragment,
    Plan,
    RunResult,
    Stop,
    StepOutcome,
)
from mcpgate.core.planning.prompts import (
    PLAN_SCHEMA,
    plan_instruction,
    plan_query,
    step_instruction,
    step_query,
    summary_query,
)
from mcpgate.protocols.client.functions import FunctionCatalog, ProcessDecision
from mcpgate.protocols.client.session import ClientSession
from mcpgate.protocols.errors import ConfigurationError, PlanningError
from mcpgate.protocols.jsonrpc import ErrorCode, JsonRpcError
from mcpgate.utils.diagnostics import DiagnosticLog
from mcpgate.utils.telemetry import (
    ATTR_FUNCTION_NAME,
    ATTR_PLAN_LENGTH,
    ATTR_STEP_INDEX,
    ATTR_STOPPED,
    get_tracer,
)

logger = logging.getLogger(__name__)
_tracer = get_tracer(__name__)

PLAN_FAILED = "Internal server error. Try again."
NO_RESPONSE = "No response was returned."
NO_FILE_CONTENT = "The type of file was returned. But, the file content was not included in the response."


def _local_now() -> datetime:
    return datetime.now().astimezone()


class PlannerExecutor:
    """Satisfies a user goal with the functions of a :class:`FunctionCatalog`.

    Usage::

        executor = PlannerExecutor(ModelClient(config), session.functions,
                                   server_info=session.server_info())
        outcome = await executor.run("Tell me today's schedule.")
    """

    def __init__(
        self,
        oracle: ReasoningOracle,
        functions: FunctionCatalog,
        *,
        server_info: Iterable[dict[str, Any]] = (),
        log: DiagnosticLog | None = None,
        summarize: bool = True,
        clock: Callable[[], datetime] = _local_now,
    ) -> None:
        self.oracle = oracle
        self.functions = functions
        self.server_info = list(server_info)
        self.log = log or DiagnosticLog(enabled=False)
        self.summarize = summarize
        self._clock = clock

    @classmethod
    def from_session(cls, oracle: ReasoningOracle, session: ClientSession, **kwargs: Any) -> PlannerExecutor:
        return cls(oracle, session.functions, server_info=session.server_info(), **kwargs)

    async def run(self, goal: str, history: ConversationHistory | None = None) -> RunResult:
        """Plan, execute and finalize one goal.

        Raises:
            ConfigurationError: If *goal* is empty.
        """
        if not goal or not goal.strip():
            raise ConfigurationError("Please set your prompt.")

        owned = history.copy() if history is not None else ConversationHistory()
        now = self._clock()
        try:
            try:
                plan = await self.plan(goal, now)
            except PlanningError as exc:
                logger.error("Planning failed: %s", exc)
                error = JsonRpcError(code=ErrorCode.INTERNAL_ERROR, message=PLAN_FAILED)
                self.log.record("Client side", {"jsonrpc": "2.0", "error": error.model_dump(exclude_none=True)})
                return RunResult(history=owned, error=error)

            fragments, stopped = await self.execute(plan, owned, now)
            result = await self.finalize(goal, fragments, owned)
            self.log.record(
                "Client side",
                [r if isinstance(r, str) else {"mimeType": r.mime_type, "size": len(r.data)} for r in result],
            )
            return RunResult(result=result, history=owned, plan=plan, stopped=stopped)
        finally:
            self.log.flush()

    # -- plan --------------------------------------------------------------

    async def plan(self, goal: str, now: datetime | None = None) -> list[ExecutionStep]:
        """Ask the model for the ordered steps.

        Raises:
            PlanningError: If the call fails or the plan is empty or malformed.
        """
        now = now or self._clock()
        with _tracer.start_as_current_span("planner.plan") as span:
            messages = ConversationHistory(
                messages=[
                    CanonicalMessage.system(plan_instruction(self.functions, now)),
                    CanonicalMessage.user(plan_query(goal)),
                ]
            )
            try:
                reply = await self.oracle.generate(
                    messages,
                    response_format={
                        "type": "json_schema",
                        "json_schema": {"name": "plan", "schema": PLAN_SCHEMA},
                    },
                )
            except Exception as exc:
                raise PlanningError(f"{type(exc).__name__}: {exc}") from exc

            steps = parse_plan(reply.text)
            span.set_attribute(ATTR_PLAN_LENGTH, len(steps))

        order = "\n".join(f"{i}: {step.name}" for i, step in enumerate(steps, start=1))
        logger.info("Task will be processed in the following order.\n%s", order)
        self.log.record("Client side", [step.model_dump() for step in steps])
        return steps

    # -- execute -----------------------------------------------------------

    async def execute(
        self,
        plan: list[ExecutionStep],
        history: ConversationHistory,
        now: datetime | None = None,
    ) -> tuple[list[Fragment], bool]:
        """Run *plan* in order, appending to *history*.

        Returns the accumulated fragments and whether a stop signal ended
        the loop early.
        """
        instruction = step_instruction(self.server_info, now or self._clock())
        fragments: list[Fragment] = []
        for index, step in enumerate(plan):
            with _tracer.start_as_current_span("planner.step") as span:
                span.set_attribute(ATTR_STEP_INDEX, index)
                span.set_attribute(ATTR_FUNCTION_NAME, step.name)
                logger.info('Running the function "%s" by task "%s".', step.name, step.task)
                outcome = await self.execute_step(step, history, instruction)
                span.set_attribute(ATTR_STOPPED, isinstance(outcome, Stop))

            if isinstance(outcome, Stop):
                fragments.append(outcome.message)
                logger.info("Process stopped at step %d: %s", index + 1, outcome.message)
                return fragments, True
            fragments.extend(outcome.fragments)
        return fragments, False

    async def execute_step(
        self,
        step: ExecutionStep,
        history: ConversationHistory,
        instruction: str,
    ) -> StepOutcome:
        """Run one step with a forced function choice; append its turns to *history*."""
        query = CanonicalMessage.user(step_query(step.task))
        spec = self.functions.get(step.name)
        if spec is None:
            message = f'Task: {step.task}, Result: Function "{step.name}" is not available.'
            logger.warning("Plan names unknown function %s", step.name)
            history.extend([query, CanonicalMessage.assistant(message)])
            return Continue([message])

        messages = ConversationHistory(
            messages=[CanonicalMessage.system(instruction), *history.messages, query]
        )
        try:
            reply = await self.oracle.generate(
                messages,
                tools=[spec.to_tool_schema()],
                tool_choice=forced_tool_choice(spec.name),
            )
        except Exception as exc:
            logger.exception("Model call failed for step %s", step.name)
            message = f"Task: {step.task}, Result: {type(exc).__name__}: {exc}"
            history.extend([query, CanonicalMessage.assistant(message)])
            return Continue([message])

        calls = [c for c in reply.tool_calls or [] if c.name == spec.name]
        if not calls:
            message = reply.text or NO_RESPONSE
            history.extend([query, CanonicalMessage.assistant(message)])
            return Continue([message])

        call = calls[0]
        try:
            raw = await spec.invoke(call.arguments)
        except Exception as exc:
            logger.exception("Function %s failed", spec.name)
            history_text = f"Task: {step.task}, Result: {type(exc).__name__}: {exc}"
            outcome: StepOutcome = Continue([history_text])
        else:
            outcome, history_text = interpret_outcome(step, raw)

        history.extend(
            [
                query,
                CanonicalMessage.assistant(tool_calls=[call]),
                CanonicalMessage.tool(ToolResult.from_text(call.id, history_text)),
            ]
        )
        return outcome

    # -- finalize ----------------------------------------------------------

    async def finalize(
        self,
        goal: str,
        fragments: list[Fragment],
        history: ConversationHistory,
    ) -> list[str | BinaryPayload]:
        """Flatten *fragments*; summarise the text entries when there are any."""
        entries = flatten_fragments(fragments)
        texts = [e for e in entries if isinstance(e, str)]
        if not texts or not self.summarize:
            return entries

        with _tracer.start_as_current_span("planner.summarize"):
            query = CanonicalMessage.user(summary_query(goal, texts))
            messages = ConversationHistory(messages=[*history.messages, query])
            try:
                reply = await self.oracle.generate(messages)
            except Exception:
                logger.exception("Summary call failed; returning unsummarised results")
                return entries
            history.extend([query, reply])
        return [reply.text, *[e for e in entries if isinstance(e, BinaryPayload)]]


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def parse_plan(text: str) -> list[ExecutionStep]:
    """Decode the planning reply: a JSON array or ``{"steps": [...]}``.

    Raises:
        PlanningError: If the reply is not a non-empty list of steps.
    """
    body = text.strip()
    if body.startswith("```"):
        body = body.strip("`").removeprefix("json").strip()
    try:
        decoded = json.loads(body)
    except ValueError as exc:
        raise PlanningError(f"Plan is not JSON: {exc}") from exc
    steps = decoded.get("steps") if isinstance(decoded, dict) else decoded
    if not isinstance(steps, list) or not steps:
        raise PlanningError("Plan is empty.")
    try:
        return Plan.model_validate({"steps": steps}).steps
    except ValidationError as exc:
        raise PlanningError(f"Plan is malformed: {exc}") from exc


def interpret_outcome(step: ExecutionStep, raw: Any) -> tuple[StepOutcome, str]:
    """Turn a function's return value into an outcome plus its history text.

    Values of an unexpected shape are logged and carried through unchanged.
    """
    try:
        return _interpret(step, raw)
    except (AttributeError, KeyError, TypeError, ValueError):
        logger.warning("Could not interpret the result of %s", step.name, exc_info=True)
        carried = raw if isinstance(raw, (str, dict)) else str(raw)
        return Continue([carried]), carried if isinstance(carried, str) else json.dumps(carried, default=str)


def _interpret(step: ExecutionStep, raw: Any) -> tuple[StepOutcome, str]:
    if isinstance(raw, ProcessDecision):
        task = raw.task or step.task
        if raw.stop_process:
            message = f"Task: {task}. The process was stopped. The reason for this is as follows. {raw.reason}"
            return Stop(message), message
        message = f"Task: {task}. Continue the process without errors."
        return Continue([message]), message

    if isinstance(raw, str):
        try:
            decoded = json.loads(raw)
        except ValueError:
            decoded = None
        if not isinstance(decoded, dict):
            message = f"Task: {step.task}, Result: {raw}"
            return Continue([message]), message
        raw = decoded

    if not isinstance(raw, dict):
        message = NO_RESPONSE if raw is None else f"Task: {step.task}, Result: {raw}"
        return Continue([message]), message

    result = raw.get("result")
    if isinstance(result, dict):
        blocks = _content_blocks(result)
        if blocks is not None:
            text = "\n".join(b["text"] for b in blocks if b.get("type") == "text")
            return Continue(list(blocks)), text

    error = raw.get("error")
    if isinstance(error, dict):
        message = f"Task: {step.task}, Result: Error {error.get('code')}: {error.get('message')}"
        return Continue([message]), message

    if result not in (None, ""):
        value = result if isinstance(result, str) else json.dumps(result, ensure_ascii=False)
        message = f"Task: {raw.get('task') or step.task}, Result: {value}"
        return Continue([message]), message
    return Continue([NO_RESPONSE]), NO_RESPONSE


def _content_blocks(result: dict[str, Any]) -> list[dict[str, Any]] | None:
    """Content blocks of a ``tools/call``, ``resources/read`` or ``prompts/get`` result."""
    if isinstance(result.get("content"), list):
        return [b for b in result["content"] if isinstance(b, dict)]
    if isinstance(result.get("contents"), list):
        blocks: list[dict[str, Any]] = []
        for item in result["contents"]:
            if not isinstance(item, dict):
                continue
            if "text" in item:
                blocks.append({"type": "text", "text": str(item["text"])})
            else:
                blocks.append({"type": "resource", "data": item.get("blob"), "mimeType": item.get("mimeType")})
        return blocks
    if isinstance(result.get("messages"), list):
        return [
            {"type": "text", "text": str(m["content"].get("text", ""))}
            for m in result["messages"]
            if isinstance(m, dict) and isinstance(m.get("content"), dict)
        ]
    return None


def flatten_fragments(fragments: list[Fragment]) -> list[str | BinaryPayload]:
    """Split fragments into text entries and decoded binary payloads."""
    entries: list[str | BinaryPayload] = []
    for fragment in fragments:
        if isinstance(fragment, str):
            entries.append(fragment)
        elif fragment.get("type") == "text":
            entries.append(str(fragment.get("text", "")))
        elif fragment.get("data"):
            mime_type = str(fragment.get("mimeType") or "application/octet-stream")
            data = str(fragment["data"])
            if data.startswith("data:") and "," in data:
                data = data.split(",", 1)[1]
            try:
                payload = BinaryPayload(mime_type=mime_type, data=base64.b64decode(data, validate=True))
            except (binascii.Error, ValueError):
                logger.warning("Invalid base64 payload of mimeType %s", mime_type)
                entries.append(NO_FILE_CONTENT)
                continue
            entries.extend([payload, f'The data of mimeType "{mime_type}" could be downloaded.'])
        else:
            entries.append(NO_FILE_CONTENT)
    return entries
