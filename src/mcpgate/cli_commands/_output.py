"""Shared CLI output formatters."""

from __future__ import annotations

import json
import logging
from typing import Any

from rich.console import Console
from rich.table import Table

from mcpgate.core.planning.models import RunResult  # noqa: TC001
from mcpgate.protocols.client.functions import FunctionCatalog  # noqa: TC001
from mcpgate.protocols.client.session import ClientSession  # noqa: TC001

console = Console()


def enable_logging(verbose: bool) -> None:
    """Send library log records to stderr; DEBUG when *verbose*."""
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )


def print_functions_table(functions: FunctionCatalog) -> None:
    """Pretty-print a function catalog as a table."""
    table = Table(title="Available Functions")
    table.add_column("Name", style="cyan")
    table.add_column("Parameters")
    table.add_column("Description")

    for spec in functions:
        properties = (spec.parameters or {}).get("properties") or {}
        table.add_row(spec.name, ", ".join(properties) or "-", _truncate(spec.description))

    console.print(table)


def print_endpoints_table(session: ClientSession) -> None:
    table = Table(title="Endpoints")
    table.add_column("URL", style="cyan")
    table.add_column("Status")
    table.add_column("Server")

    for endpoint in session.endpoints:
        info = endpoint.server_info or {}
        server = f"{info.get('name', '?')} {info.get('version', '')}".strip() if info else "-"
        status = "[green]ready[/green]" if endpoint.ready else "[red]failed[/red]"
        table.add_row(_truncate(endpoint.url), status, server)

    console.print(table)
    if session.failure:
        console.print(f"[yellow]{session.failure}[/yellow]")


def print_run_result(outcome: RunResult, *, as_json: bool = False) -> None:
    """Pretty-print the result of a planner run."""
    if as_json:
        data: dict[str, Any] = {
            "result": [r if isinstance(r, str) else {"mimeType": r.mime_type, "size": len(r.data)} for r in outcome.result],
            "plan": [s.model_dump() for s in outcome.plan],
            "stopped": outcome.stopped,
            "error": outcome.error.model_dump(exclude_none=True) if outcome.error else None,
        }
        console.print_json(json.dumps(data, default=str))
        return

    if outcome.error is not None:
        console.print(f"[red]Error {outcome.error.code}:[/red] {outcome.error.message}")
        return

    if outcome.plan:
        console.print("\n[bold]Plan[/bold]")
        for i, step in enumerate(outcome.plan, start=1):
            console.print(f"  {i}: {step.name}: {_truncate(step.task)}")
    if outcome.stopped:
        console.print("[yellow]The process was stopped before the plan finished.[/yellow]")

    console.print("\n[bold]Result[/bold]")
    for entry in outcome.result:
        if isinstance(entry, str):
            console.print(entry)
        else:
            console.print(f"  <{entry.mime_type}, {len(entry.data)} bytes>")


def _truncate(text: str, max_len: int = 80) -> str:
    if len(text) <= max_len:
        return text
    return text[: max_len - 3] + "..."
