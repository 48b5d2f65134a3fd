"""Instruction texts sent to the reasoning model."""

from __future__ import annotations

import json
from collections.abc import Iterable
from datetime import datetime
from typing import Any

from mcpgate.protocols.client.functions import CHECK_PROCESS, WITHOUT_FUNCTION, FunctionCatalog

PLAN_SCHEMA: dict[str, Any] = {
    "title": "Order of functions and functions for resolving the user's prompt.",
    "description": "Suggest the suitable order of the functions and the functions to resolve the user's prompt.",
    "type": "object",
    "properties": {
        "steps": {
            "type": "array",
            "items": {
                "type": "object",
                "properties": {
                    "name": {"type": "string", "description": "Function name."},
                    "task": {"type": "string", "description": "What the function must do."},
                },
                "required": ["name", "task"],
            },
        }
    },
    "required": ["steps"],
}


def _now_line(now: datetime) -> str:
    zone = now.tzname() or "UTC"
    return (
        f'- If you are required to know the current date time, it\'s "{now:%Y-%m-%d %H:%M:%S}". '
        f"And, timezone is {zone}."
    )


def catalog_lines(catalog: FunctionCatalog) -> list[str]:
    lines = [f'- Name: "{spec.name}", Details: {json.dumps(spec.details())}' for spec in catalog]
    return lines or ["No functions."]


def server_lines(server_info: Iterable[dict[str, Any]]) -> list[str]:
    return ["The name and version of the available MCP server are as follows."] + [
        f"Name: {info.get('name')}, Version: {info.get('version')}" for info in server_info
    ]


def plan_instruction(catalog: FunctionCatalog, now: datetime) -> str:
    return "\n".join(
        [
            "You are an expert delegator capable of assigning user requests to appropriate "
            "Model Context Protocol (MCP) servers. You create the suitable order for processing functions.",
            "<Functions>",
            "The following functions are the available functions list. The JSON schema of the value of "
            "'Details' is the same as the schema for the function calling. From 'Details', understand the functions.",
            *catalog_lines(catalog),
            "</Functions>",
            "<Mission>",
            "- Understand the functions and the tasks that the functions can do.",
            "- Understand requests of the user's prompt.",
            "- For actionable tasks that the functions can do, select a suitable one of the given functions "
            "for accurately resolving requests of the user's prompt in the suitable order.",
            "If multiple processes can be run with a single function, create a suitable prompt including those processes in it.",
            f'- Use "{WITHOUT_FUNCTION}", if all other functions except for "{WITHOUT_FUNCTION}" can not resolve the tasks.',
            "- In the case that you are required to confirm whether the process is required to be stopped or "
            f'continued between each process, use the function "{CHECK_PROCESS}" just after each process.',
            "</Mission>",
            "<Important>",
            "- Do not fabricate responses.",
            "- Suggest the suitable order of the functions to resolve the user's prompt.",
            "- When the requests include both the function that can be resolved and the function that cannot "
            "be resolved, suggest the order by including the functions.",
            _now_line(now),
            "</Important>",
        ]
    )


def plan_query(goal: str) -> str:
    return f"User's prompt is as follows.\n<UserPrompt>{goal}</UserPrompt>"


def step_instruction(server_info: Iterable[dict[str, Any]], now: datetime) -> str:
    return "\n".join(
        [
            "You are an expert delegator capable of assigning user requests to appropriate functions with function calling.",
            "<Mission>",
            "- Understand the functions and the tasks that the functions can do.",
            "- Understand requests of the user's prompt.",
            "- If the function is required to provide the arguments, create the suitable arguments using "
            "the prompt and the history, and provide them to the function.",
            f'- Use "{WITHOUT_FUNCTION}", if all other functions except for "{WITHOUT_FUNCTION}" can not resolve the tasks.',
            f'- When you use the function "{CHECK_PROCESS}", check carefully the previous history and decide '
            "whether the process is required to be stopped or continued.",
            "</Mission>",
            "<Important>",
            "- Do not fabricate responses.",
            _now_line(now),
            "- Available MCP servers are as follows. If the information of the MCP servers is required, use this.",
            "<MCPServers>",
            *server_lines(server_info),
            "</MCPServers>",
            "</Important>",
        ]
    )


def step_query(task: str) -> str:
    return f"Your task is as follows.\n<Task>{task}</Task>"


def summary_query(goal: str, answers: list[str]) -> str:
    return "\n".join(
        [
            "Summarize answers by considering the question.",
            f"<Question>{goal}</Question>",
            f"<Answers>{chr(10).join(answers)}</Answers>",
        ]
    )
