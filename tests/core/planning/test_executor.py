"""Tests for PlannerExecutor with a scripted oracle."""

from __future__ import annotations

import base64
import json
from datetime import UTC, datetime
from typing import Any
from unittest.mock import MagicMock

import pytest

from mcpgate.core.interface.models import CanonicalMessage, ConversationHistory
from mcpgate.core.planning.executor import (
    NO_FILE_CONTENT,
    NO_RESPONSE,
    PlannerExecutor,
    flatten_fragments,
    interpret_outcome,
    parse_plan,
)
from mcpgate.core.planning.models import BinaryPayload, Continue, ExecutionStep, Stop
from mcpgate.protocols.client.functions import (
    CHECK_PROCESS,
    ProcessDecision,
    builtin_functions,
    local_function,
)
from mcpgate.protocols.errors import ConfigurationError, PlanningError
from mcpgate.utils.diagnostics import DiagnosticLog, InMemoryLogSink
from tests.conftest import ScriptedOracle, call_reply, plan_reply

_NOW = datetime(2025, 1, 2, 3, 4, 5, tzinfo=UTC)


def _catalog(**handlers: Any) -> Any:
    catalog = builtin_functions()
    for name, handler in handlers.items():
        catalog.add(local_function(handler, name=name, description=f"{name} tool"))
    return catalog


def _executor(oracle: ScriptedOracle, catalog: Any, **kwargs: Any) -> PlannerExecutor:
    return PlannerExecutor(oracle, catalog, clock=lambda: _NOW, **kwargs)


class TestPlan:
    async def test_stop_signal_halts_loop(self) -> None:
        get_msgs = MagicMock(return_value="mail")
        oracle = ScriptedOracle(
            [
                plan_reply((CHECK_PROCESS, "confirm continuation"), ("get_msgs", "fetch mail")),
                call_reply(CHECK_PROCESS, stopProcess=True, task="confirm continuation", reason="No IDs."),
            ]
        )

        outcome = await _executor(oracle, _catalog(get_msgs=get_msgs), summarize=False).run("Read my mail")

        get_msgs.assert_not_called()
        assert outcome.stopped is True
        assert outcome.result == [
            "Task: confirm continuation. The process was stopped. The reason for this is as follows. No IDs."
        ]
        assert len(oracle.calls) == 2

    async def test_stop_with_summary_still_single_text(self) -> None:
        oracle = ScriptedOracle(
            [
                plan_reply((CHECK_PROCESS, "confirm"), ("get_msgs", "fetch mail")),
                call_reply(CHECK_PROCESS, stopProcess=True, task="confirm", reason="r"),
                CanonicalMessage.assistant("Stopped because r."),
            ]
        )

        outcome = await _executor(oracle, _catalog(get_msgs=lambda a: "mail")).run("goal")

        assert outcome.result == ["Stopped because r."]
        assert "The process was stopped" in oracle.calls[-1]["messages"].messages[-1].text

    async def test_empty_plan_is_internal_error(self) -> None:
        oracle = ScriptedOracle([CanonicalMessage.assistant("[]")])
        sink = InMemoryLogSink()

        outcome = await _executor(oracle, _catalog(), log=DiagnosticLog(sink)).run("goal")

        assert outcome.error is not None
        assert outcome.error.code == -32603
        assert outcome.error.message == "Internal server error. Try again."
        assert outcome.result == []
        assert sink.rows[-1].direction == "Client side"

    async def test_oracle_failure_during_plan(self) -> None:
        oracle = ScriptedOracle([RuntimeError("quota")])

        outcome = await _executor(oracle, _catalog()).run("goal")

        assert outcome.error is not None

    async def test_plan_request_uses_response_schema(self) -> None:
        oracle = ScriptedOracle([CanonicalMessage.assistant("not json")])

        await _executor(oracle, _catalog(get_msgs=lambda a: "")).run("goal")

        call = oracle.calls[0]
        assert call["response_format"]["type"] == "json_schema"
        system = call["messages"].messages[0].text
        assert '- Name: "get_msgs"' in system
        assert "2025-01-02 03:04:05" in system
        assert "<UserPrompt>goal</UserPrompt>" in call["messages"].messages[1].text

    async def test_empty_goal_rejected(self) -> None:
        with pytest.raises(ConfigurationError):
            await _executor(ScriptedOracle([]), _catalog()).run("   ")


class TestExecute:
    async def test_each_step_forces_its_function(self) -> None:
        oracle = ScriptedOracle(
            [
                plan_reply(("get_msgs", "fetch mail"), ("without_function", "answer")),
                call_reply("get_msgs", sender="bob"),
                call_reply("without_function", task="answer", response="42"),
                CanonicalMessage.assistant("summary"),
            ]
        )

        outcome = await _executor(oracle, _catalog(get_msgs=lambda a: f"mail from {a['sender']}")).run("goal")

        step_calls = oracle.calls[1:3]
        assert [c["tool_choice"]["function"]["name"] for c in step_calls] == ["get_msgs", "without_function"]
        assert [[t["function"]["name"] for t in c["tools"]] for c in step_calls] == [
            ["get_msgs"],
            ["without_function"],
        ]
        assert outcome.result == ["summary"]
        assert outcome.stopped is False

    async def test_history_threaded_and_owned(self) -> None:
        prior = ConversationHistory(messages=[CanonicalMessage.user("earlier")])
        oracle = ScriptedOracle(
            [
                plan_reply(("get_msgs", "fetch mail"), ("get_msgs", "again")),
                call_reply("get_msgs"),
                call_reply("get_msgs"),
            ]
        )

        outcome = await _executor(oracle, _catalog(get_msgs=lambda a: "mail"), summarize=False).run(
            "goal", history=prior
        )

        assert len(prior) == 1
        roles = [m.role for m in outcome.history]
        assert roles == ["user", "user", "assistant", "tool", "user", "assistant", "tool"]
        second_step_messages = oracle.calls[2]["messages"].messages
        assert second_step_messages[0].role == "system"
        assert any(m.role == "tool" and m.text == "Task: fetch mail, Result: mail" for m in second_step_messages)

    async def test_step_instruction_lists_servers(self) -> None:
        oracle = ScriptedOracle([plan_reply(("get_msgs", "t")), call_reply("get_msgs")])

        await _executor(
            oracle,
            _catalog(get_msgs=lambda a: "x"),
            server_info=[{"name": "mail-server", "version": "2.1"}],
            summarize=False,
        ).run("goal")

        system = oracle.calls[1]["messages"].messages[0].text
        assert "Name: mail-server, Version: 2.1" in system

    async def test_function_error_recorded_and_loop_continues(self) -> None:
        def broken(arguments: dict[str, Any]) -> str:
            raise RuntimeError("down")

        oracle = ScriptedOracle(
            [
                plan_reply(("broken", "first"), ("get_msgs", "second")),
                call_reply("broken"),
                call_reply("get_msgs"),
            ]
        )

        outcome = await _executor(oracle, _catalog(broken=broken, get_msgs=lambda a: "mail"), summarize=False).run(
            "goal"
        )

        assert outcome.result == ["Task: first, Result: RuntimeError: down", "Task: second, Result: mail"]

    async def test_oracle_failure_during_step_continues(self) -> None:
        oracle = ScriptedOracle(
            [plan_reply(("get_msgs", "a"), ("get_msgs", "b")), RuntimeError("rate limit"), call_reply("get_msgs")]
        )

        outcome = await _executor(oracle, _catalog(get_msgs=lambda a: "mail"), summarize=False).run("goal")

        assert outcome.result == ["Task: a, Result: RuntimeError: rate limit", "Task: b, Result: mail"]

    async def test_unknown_function_in_plan(self) -> None:
        oracle = ScriptedOracle([plan_reply(("nope", "x"))])

        outcome = await _executor(oracle, _catalog(), summarize=False).run("goal")

        assert outcome.result == ['Task: x, Result: Function "nope" is not available.']
        assert len(oracle.calls) == 1

    async def test_text_reply_without_tool_call(self) -> None:
        oracle = ScriptedOracle([plan_reply(("get_msgs", "x")), CanonicalMessage.assistant("I cannot.")])

        outcome = await _executor(oracle, _catalog(get_msgs=lambda a: "mail"), summarize=False).run("goal")

        assert outcome.result == ["I cannot."]

    async def test_binary_content_is_decoded_and_not_summarized(self) -> None:
        png = base64.b64encode(b"\x89PNG").decode()

        def fetch_image(arguments: dict[str, Any]) -> dict[str, Any]:
            return {
                "jsonrpc": "2.0",
                "id": 1,
                "result": {"content": [{"type": "image", "data": png, "mimeType": "image/png"}]},
            }

        oracle = ScriptedOracle(
            [plan_reply(("fetch_image", "get it")), call_reply("fetch_image"), CanonicalMessage.assistant("Here it is.")]
        )

        outcome = await _executor(oracle, _catalog(fetch_image=fetch_image)).run("goal")

        assert outcome.result[0] == "Here it is."
        assert outcome.payloads == [BinaryPayload(mime_type="image/png", data=b"\x89PNG")]
        summary_prompt = oracle.calls[-1]["messages"].messages[-1].text
        assert 'The data of mimeType "image/png" could be downloaded.' in summary_prompt
        assert "<Question>goal</Question>" in summary_prompt


class TestParsePlan:
    def test_object_with_steps(self) -> None:
        steps = parse_plan('{"steps": [{"name": "a", "task": "t"}]}')
        assert steps == [ExecutionStep(name="a", task="t")]

    def test_bare_array(self) -> None:
        assert parse_plan('[{"name": "a", "task": "t"}]')[0].name == "a"

    def test_fenced_json(self) -> None:
        assert parse_plan('```json\n[{"name": "a", "task": "t"}]\n```')[0].task == "t"

    @pytest.mark.parametrize("text", ["", "{}", '{"steps": []}', '"a"', '[{"name": 1}]'])
    def test_invalid(self, text: str) -> None:
        with pytest.raises(PlanningError):
            parse_plan(text)


class TestInterpretOutcome:
    _step = ExecutionStep(name="f", task="do it")

    def test_continue_decision(self) -> None:
        outcome, text = interpret_outcome(self._step, ProcessDecision(stop_process=False, task="t"))
        assert outcome == Continue(["Task: t. Continue the process without errors."])
        assert text == "Task: t. Continue the process without errors."

    def test_stop_decision(self) -> None:
        outcome, _ = interpret_outcome(self._step, ProcessDecision(stop_process=True, task="t", reason="r"))
        assert isinstance(outcome, Stop)

    def test_task_result_dict(self) -> None:
        outcome, text = interpret_outcome(self._step, {"task": "t", "result": "r"})
        assert text == "Task: t, Result: r"

    def test_result_without_task_uses_step_task(self) -> None:
        _, text = interpret_outcome(self._step, {"result": "r"})
        assert text == "Task: do it, Result: r"

    def test_json_string_envelope(self) -> None:
        raw = json.dumps({"jsonrpc": "2.0", "result": {"content": [{"type": "text", "text": "hello"}]}})
        outcome, text = interpret_outcome(self._step, raw)
        assert outcome == Continue([{"type": "text", "text": "hello"}])
        assert text == "hello"

    def test_error_envelope(self) -> None:
        _, text = interpret_outcome(self._step, {"error": {"code": -32603, "message": "bad"}})
        assert text == "Task: do it, Result: Error -32603: bad"

    def test_none_is_no_response(self) -> None:
        assert interpret_outcome(self._step, None)[1] == NO_RESPONSE

    def test_resource_contents(self) -> None:
        raw = {"result": {"contents": [{"uri": "u", "text": "memo"}]}}
        assert interpret_outcome(self._step, raw)[1] == "memo"

    def test_malformed_blocks_carried_through(self) -> None:
        raw = {"result": {"content": [{"type": "text"}]}}
        outcome, _ = interpret_outcome(self._step, raw)
        assert outcome == Continue([raw])


class TestFlattenFragments:
    def test_data_url_prefix_stripped(self) -> None:
        data = "data:text/plain;base64," + base64.b64encode(b"hi").decode()
        entries = flatten_fragments([{"type": "resource", "data": data, "mimeType": "text/plain"}])
        assert entries[0] == BinaryPayload(mime_type="text/plain", data=b"hi")

    def test_block_without_data(self) -> None:
        assert flatten_fragments([{"type": "image"}]) == [NO_FILE_CONTENT]
