"""``mcpgate tools`` — discover functions offered by remote endpoints."""

from __future__ import annotations

import asyncio

import click

from mcpgate.cli_commands._output import (
    console,
    enable_logging,
    print_endpoints_table,
    print_functions_table,
)


@click.group()
def tools() -> None:
    """Discover and inspect functions."""


@tools.command("discover")
@click.argument("urls", nargs=-1, required=True)
@click.option("--batch", is_flag=True, help="Coalesce discovery calls into one JSON-RPC batch per endpoint.")
@click.option("--timeout", default=60.0, show_default=True, type=float, help="HTTP timeout in seconds.")
@click.option("--verbose", "-v", is_flag=True, help="Enable verbose output.")
def discover(urls: tuple[str, ...], batch: bool, timeout: float, verbose: bool) -> None:
    """Bootstrap a session against URLS and list the resulting functions.

    Each URL should include its ``accessKey`` query parameter when the
    endpoint requires one.
    """
    from mcpgate.protocols.client.session import ClientSession, SessionBootstrapper
    from mcpgate.protocols.client.transport import HttpxFanout

    enable_logging(verbose)

    async def _discover() -> ClientSession:
        async with HttpxFanout(timeout=timeout) as fanout:
            return await SessionBootstrapper(fanout, batch_process=batch).bootstrap(urls)

    try:
        session = asyncio.run(_discover())
    except Exception as exc:
        console.print(f"[red]Discovery error:[/red] {exc}")
        return

    print_endpoints_table(session)
    print_functions_table(session.functions)
