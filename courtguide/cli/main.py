"""Main CLI entry point for courtguide."""

import logging

import typer
from rich.console import Console

from courtguide.cli.commands.cache import app as cache_app
from courtguide.cli.commands.detect import detect as detect_command
from courtguide.cli.commands.device import device as device_command
from courtguide.cli.commands.profile import profile as profile_command
from courtguide.cli.commands.selftest import selftest as selftest_command
from courtguide.cli.commands.validate import validate as validate_command

app = typer.Typer(
    name="courtguide",
    help="Padel court line detection - camera placement guidance from a single frame",
    no_args_is_help=True,
)

console = Console()

# Register commands
app.command(name="detect")(detect_command)
app.command(name="validate")(validate_command)
app.command(name="profile")(profile_command)
app.command(name="device")(device_command)
app.command(name="selftest")(selftest_command)
app.add_typer(cache_app, name="cache")


@app.callback()
def main(
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Enable verbose output"),
):
    """courtguide - padel court line detection CLI."""
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(levelname)s: %(name)s: %(message)s",
    )
    if verbose:
        console.print("[dim]Verbose mode enabled[/dim]")


if __name__ == "__main__":
    app()
