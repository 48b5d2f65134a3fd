"""``mcpgate run`` — bootstrap the configured endpoints and satisfy a goal."""

from __future__ import annotations

import asyncio
import sys

import click

from mcpgate.cli_commands._output import console, enable_logging, print_run_result


@click.command()
@click.argument("config", type=click.Path(exists=True))
@click.option("--goal", "-g", required=True, help="What the planner should accomplish.")
@click.option("--verbose", "-v", is_flag=True, help="Enable verbose output.")
@click.option("--telemetry", is_flag=True, help="Enable telemetry.")
@click.option("--dry-run", is_flag=True, help="Validate the configuration only, do not execute.")
@click.option("--json", "as_json", is_flag=True, help="Print the result as JSON.")
def run(
    config: str,
    goal: str,
    verbose: bool,
    telemetry: bool,
    dry_run: bool,
    as_json: bool,
) -> None:
    """Plan and execute GOAL against the endpoints in CONFIG yaml file."""
    from mcpgate.sdk.config import GatewayLoader
    from mcpgate.sdk.runner import GatewayRunner

    enable_logging(verbose)

    try:
        spec = GatewayLoader(config).load()
    except Exception as exc:
        console.print(f"[red]Validation error:[/red] {exc}")
        sys.exit(1)

    if spec.client is None:
        console.print("[red]Validation error:[/red] the configuration has no 'client' section")
        sys.exit(1)

    if telemetry:
        from mcpgate.sdk.models import TelemetrySettings

        if spec.telemetry is None:
            spec.telemetry = TelemetrySettings(enabled=True)
        else:
            spec.telemetry.enabled = True

    if dry_run:
        console.print("[green]Configuration validated successfully.[/green]")
        console.print(f"  Name: {spec.name}")
        console.print(f"  Model: {spec.client.model.get('model')}")
        console.print(f"  Endpoints: {', '.join(spec.client.endpoints) or '-'}")
        return

    if verbose:
        console.print(f"Running: {spec.name}")
        console.print(f"Goal: {goal}")

    try:
        outcome = asyncio.run(GatewayRunner(spec).run(goal))
    except Exception as exc:
        console.print(f"[red]Execution error:[/red] {exc}")
        sys.exit(1)

    print_run_result(outcome, as_json=as_json)
    if outcome.error is not None:
        sys.exit(1)
