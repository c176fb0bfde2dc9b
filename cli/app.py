"""
radioconv - storage and conversion of RC transmitter settings.

A thin command-line shell over the radioconv library.
"""

import typer
from rich.console import Console

from cli.commands.convert import convert
from cli.commands.info import info
from cli.commands.validate import validate
from cli.context import setup_logging
from radioconv import __version__

console = Console()

# Main app
app = typer.Typer(
    name="radioconv",
    help="Read, validate and convert RC transmitter settings images.",
    add_completion=False,
    rich_markup_mode="rich",
)

app.command(name="info")(info)
app.command(name="convert")(convert)
app.command(name="validate")(validate)


@app.command()
def version() -> None:
    """Show version information."""
    console.print(f"[bold]radioconv[/bold] version {__version__}")
    console.print("[dim]Storage and cross-version conversion of radio settings[/dim]")


@app.callback(invoke_without_command=True)
def main(
    ctx: typer.Context,
    version_flag: bool = typer.Option(False, "--version", "-V", help="Show version"),
    verbose: bool = typer.Option(False, "--verbose", help="Show debug logging"),
) -> None:
    """
    radioconv - read, validate and convert radio settings images.

    Supported containers:

    - [cyan]raw[/cyan] EEPROM dumps (.bin)
    - [cyan]hex[/cyan] text images (.hex, .eepe)
    - [cyan]legacy[/cyan] compressed images (.eepz)
    - [cyan]archive[/cyan] files (.otx, .zip)
    - [cyan]document[/cyan] YAML files (.yml, .yaml)
    - settings [cyan]directories[/cyan]

    [bold]Quick Start:[/bold]

        radioconv info backup.bin              # Image summary
        radioconv validate backup.otx          # Check structure and ranges
        radioconv convert old.eepz -o new.otx  # Migrate to the newest schema

    Use --help with any command for more details.
    """
    setup_logging(verbose)

    if version_flag:
        version()
        raise typer.Exit()

    if ctx.invoked_subcommand is None:
        console.print(ctx.get_help())


def run() -> None:
    """Entry point for the CLI."""
    app()


if __name__ == "__main__":
    run()
