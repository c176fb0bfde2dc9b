"""
Convert command - migrate an image to another schema version, board or
container.
"""

from pathlib import Path
from typing import List, Optional

import typer
from rich.console import Console
from rich.progress import BarColumn, Progress, SpinnerColumn, TextColumn

from cli.context import fail, load_cli_options, load_table
from cli.display.tables import display_ledger, display_ledger_summary
from radioconv.containers import read_image, write_image
from radioconv.converters import ConversionEngine
from radioconv.errors import ConversionRejectedError, RadioDataError
from radioconv.models.image import ContainerKind

console = Console()
app = typer.Typer()


@app.command()
def convert(
    source: Path = typer.Argument(..., help="Source image file or settings directory"),
    output: Path = typer.Option(..., "--output", "-o", help="Output path; the extension picks the container"),
    board: Optional[str] = typer.Option(None, "--board", "-b", help="Target board"),
    target_version: Optional[int] = typer.Option(
        None, "--version", "-t", help="Target schema version (default: newest)"
    ),
    kind: Optional[ContainerKind] = typer.Option(None, "--kind", "-k", help="Output container kind"),
    board_policy: Optional[str] = typer.Option(
        None, "--board-policy", help="strict, convert or declared"
    ),
    fallback_board: Optional[str] = typer.Option(
        None, "--fallback-board", help="Board to assume for unknown board ids"
    ),
    config: Optional[Path] = typer.Option(None, "--config", "-c", help="Options YAML file"),
    schema: Optional[List[Path]] = typer.Option(
        None, "--schema", help="Extra schema definition files or directories"
    ),
    show_all: bool = typer.Option(False, "--all", "-a", help="List unchanged fields too"),
) -> None:
    """
    Convert a radio image to another schema version, board or container.

    Examples:

        radioconv convert old.eepz -o new.bin

        radioconv convert backup.bin -o backup.otx --version 219

        radioconv convert x9d.bin -o x7.yml --board x7
    """
    if not source.exists():
        fail(f"Source not found: {source}")

    table = load_table(schema)
    options = load_cli_options(
        config, board_policy=board_policy, fallback_board=fallback_board
    )
    engine = ConversionEngine(table, options=options)

    try:
        image = read_image(source, table, None, options)
    except RadioDataError as e:
        fail(str(e))

    with Progress(
        SpinnerColumn(),
        TextColumn("[progress.description]{task.description}"),
        BarColumn(),
        TextColumn("{task.completed}/{task.total}"),
        console=console,
        transient=True,
    ) as progress:
        task = progress.add_task("Migrating fields...", total=None)

        def on_field(current: int, total: int) -> None:
            progress.update(task, completed=current, total=total)

        try:
            result = engine.convert(image, board, target_version, progress=on_field)
        except ConversionRejectedError as e:
            state = e.state.value if e.state is not None else "start"
            fail(f"Conversion rejected ({state}): {e}")

        progress.update(task, description="Writing...", completed=0, total=None)

        def on_entry(done: int, total: int) -> None:
            progress.update(task, completed=done, total=total)

        try:
            written = write_image(result.image, output, table, kind, options, on_entry)
        except RadioDataError as e:
            fail(str(e))

    settings = result.settings
    console.print(
        f"[green]Converted:[/green] {source} -> {output} "
        f"[dim]({written.value}, {settings.board} v{settings.version})[/dim]"
    )
    display_ledger_summary(result.ledger)
    display_ledger(result.ledger, show_unchanged=show_all)


if __name__ == "__main__":
    app()
