"""mcpgate CLI entrypoint."""

from __future__ import annotations

import click

from mcpgate import __version__


@click.group()
@click.version_option(version=__version__, prog_name="mcpgate")
def main() -> None:
    """mcpgate — JSON-RPC capability gateway and multi-endpoint planner."""


# Register subcommands
from mcpgate.cli_commands import register_commands  # noqa: E402

register_commands(main)

if __name__ == "__main__":
    main()
