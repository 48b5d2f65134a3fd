"""``mcpgate serve`` — expose capability items over HTTP."""

from __future__ import annotations

import importlib
import sys
from typing import Any

import click

from mcpgate.cli_commands._output import console, enable_logging


def load_items(target: str) -> list[Any]:
    """Import ``module:attr`` and return its capability items.

    *attr* may be a sequence of items or a zero-argument callable returning one.
    """
    module_name, _, attr = target.partition(":")
    if not module_name or not attr:
        raise click.BadParameter(f"expected 'module:attr', got {target!r}", param_hint="--items")
    try:
        module = importlib.import_module(module_name)
        value = getattr(module, attr)
    except (ImportError, AttributeError) as exc:
        raise click.BadParameter(f"cannot load {target!r}: {exc}", param_hint="--items") from exc
    if callable(value):
        value = value()
    return list(value)


@click.command()
@click.argument("config", type=click.Path(exists=True))
@click.option("--items", "items_target", required=True, help="Capability items as 'module:attr'.")
@click.option("--host", default="127.0.0.1", show_default=True, help="Bind address.")
@click.option("--port", default=8000, show_default=True, type=int, help="Bind port.")
@click.option("--verbose", "-v", is_flag=True, help="Enable verbose output.")
def serve(config: str, items_target: str, host: str, port: int, verbose: bool) -> None:
    """Serve the capability items of --items with the server settings in CONFIG."""
    import uvicorn

    from mcpgate.protocols.server.app import create_app
    from mcpgate.sdk.runner import GatewayRunner

    enable_logging(verbose)
    items = load_items(items_target)

    try:
        runner = GatewayRunner.from_yaml(config)
        router = runner.build_router(items)
    except Exception as exc:
        console.print(f"[red]Configuration error:[/red] {exc}")
        sys.exit(1)

    app = create_app(router, title=runner.spec.name or "mcpgate")
    console.print(f"Serving {len(items)} capability item(s) on http://{host}:{port}/")
    uvicorn.run(app, host=host, port=port, log_level="debug" if verbose else "info")
