"""
Info command - display what a radio image contains.
"""

from pathlib import Path
from typing import List, Optional

import typer
from rich.console import Console

from cli.context import fail, load_cli_options, load_table
from cli.display.tables import display_image_info, display_ledger, display_settings_tree
from radioconv.containers import read_image
from radioconv.converters import ConversionEngine
from radioconv.errors import RadioDataError
from radioconv.models.image import ContainerKind

console = Console()
app = typer.Typer()


@app.command()
def info(
    source: Path = typer.Argument(..., help="Image file or settings directory"),
    kind: Optional[ContainerKind] = typer.Option(
        None, "--kind", "-k", help="Container kind (detected when omitted)"
    ),
    radio: bool = typer.Option(False, "--radio", "-r", help="Show all radio settings"),
    model: Optional[int] = typer.Option(None, "--model", "-m", help="Show one model slot"),
    fallback_board: Optional[str] = typer.Option(
        None, "--fallback-board", help="Board to assume for unknown board ids"
    ),
    config: Optional[Path] = typer.Option(None, "--config", "-c", help="Options YAML file"),
    schema: Optional[List[Path]] = typer.Option(
        None, "--schema", help="Extra schema definition files or directories"
    ),
) -> None:
    """
    Display information about a radio image.

    Examples:

        radioconv info backup.bin

        radioconv info backup.otx --radio

        radioconv info models/ --model 2
    """
    if not source.exists():
        fail(f"Source not found: {source}")

    table = load_table(schema)
    options = load_cli_options(config, fallback_board=fallback_board)
    engine = ConversionEngine(table, options=options)
    try:
        image = read_image(source, table, kind, options)
        decoded = engine.decode(image)
        resolved = table.resolve(image.board, image.version)
    except RadioDataError as e:
        fail(str(e))

    display_image_info(image, resolved, decoded.settings)
    if len(decoded.ledger):
        console.print()
        display_ledger(decoded.ledger)
    if radio:
        console.print()
        display_settings_tree(decoded.settings)
    if model is not None:
        if not 0 <= model < decoded.settings.model_count:
            fail(f"No model in slot {model} ({decoded.settings.model_count} used)")
        console.print()
        display_settings_tree(decoded.settings, model)


if __name__ == "__main__":
    app()
