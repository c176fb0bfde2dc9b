"""
Rich displays for images, settings trees and conversion ledgers.
"""

from typing import Any, Optional

from rich import box
from rich.console import Console
from rich.panel import Panel
from rich.table import Table
from rich.tree import Tree

from cli.display.formatters import outcome_label, usage_bar, value_text
from radioconv.converters.ledger import ConversionLedger, Outcome
from radioconv.models.image import RawImage
from radioconv.models.settings import CanonicalSettings
from radioconv.schema.layout import SchemaVersion

console = Console()


def display_image_info(image: RawImage, schema: SchemaVersion, settings: CanonicalSettings) -> None:
    """Display the container header panel and model slot table."""
    checksum = "[green]OK[/green]" if image.verify_checksum() else "[red]Mismatch[/red]"
    info = f"""[bold]Source:[/bold] {image.source or "-"}
[bold]Container:[/bold] {image.kind.value}
[bold]Board:[/bold] {schema.board} ({schema.family})
[bold]Schema Version:[/bold] {schema.version}
[bold]Image Size:[/bold] {image.size} bytes
[bold]CRC-32:[/bold] 0x{image.checksum:08X} {checksum}
[bold]Models:[/bold] {usage_bar(settings.model_count, schema.model_capacity)}"""

    if "declared_variant" in image.metadata:
        info += f"\n[yellow]Declared variant:[/yellow] 0x{image.metadata['declared_variant']:04X}"

    console.print(
        Panel(info, title="[bold blue]Radio Image[/bold blue]", border_style="blue", expand=False)
    )

    if not settings.models:
        console.print("[dim]No models[/dim]")
        return

    labels = image.metadata.get("labels") or []
    table = Table(title="Models", box=box.ROUNDED, show_header=True, header_style="bold magenta")
    table.add_column("#", style="dim", width=3)
    table.add_column("Name", style="cyan", width=12)
    table.add_column("ID", width=4)
    table.add_column("Mixes", width=6)
    table.add_column("Label", width=16)

    for index, model in enumerate(settings.models):
        table.add_row(
            str(index),
            model.get("name") or "[dim]-[/dim]",
            str(model.get("model_id", "")),
            str(len(model.get("mixes", []))),
            labels[index] if index < len(labels) else "",
        )
    console.print(table)


def display_settings_tree(settings: CanonicalSettings, model: Optional[int] = None) -> None:
    """Display the radio settings (or one model) as a tree."""
    if model is None:
        tree = Tree(f"[bold]radio[/bold] [dim]({settings.board} v{settings.version})[/dim]")
        _add_branch(tree, settings.radio)
    else:
        tree = Tree(f"[bold]models[{model}][/bold]")
        _add_branch(tree, settings.model(model))
    console.print(tree)


def _add_branch(tree: Tree, value: Any) -> None:
    if isinstance(value, dict):
        for key, child in value.items():
            if isinstance(child, (dict, list)) and child and not _is_flag_list(child):
                _add_branch(tree.add(f"[cyan]{key}[/cyan]"), child)
            else:
                tree.add(f"[cyan]{key}[/cyan]: {value_text(child)}")
    elif isinstance(value, list):
        for index, child in enumerate(value):
            if isinstance(child, (dict, list)):
                _add_branch(tree.add(f"[dim][{index}][/dim]"), child)
            else:
                tree.add(f"[dim][{index}][/dim] {value_text(child)}")


def _is_flag_list(value: Any) -> bool:
    return isinstance(value, list) and all(isinstance(item, str) for item in value)


def display_ledger_summary(ledger: ConversionLedger) -> None:
    """Display outcome counts."""
    table = Table(box=box.SIMPLE, show_header=False)
    table.add_column("Outcome", width=22)
    table.add_column("Count", justify="right", width=6)
    for outcome, count in ledger.summaries().items():
        table.add_row(outcome_label(outcome), str(count))
    console.print(table)


def display_ledger(ledger: ConversionLedger, show_unchanged: bool = False) -> None:
    """Display ledger events, by default only the ones that changed something."""
    events = list(ledger) if show_unchanged else ledger.changes()
    if not events:
        console.print("[green]No field changes[/green]")
        return

    table = Table(
        title="Conversion Ledger", box=box.ROUNDED, show_header=True, header_style="bold magenta"
    )
    table.add_column("#", style="dim", width=5)
    table.add_column("Field", style="cyan", width=32)
    table.add_column("Outcome", width=20)
    table.add_column("Old", width=14)
    table.add_column("New", width=14)
    table.add_column("Note", style="dim")

    for event in events:
        table.add_row(
            str(event.sequence),
            event.path,
            outcome_label(event.outcome),
            event.old or "[dim]-[/dim]",
            event.new or "[dim]-[/dim]",
            event.note,
        )
    console.print(table)

    review = ledger.summaries()
    if review[Outcome.INVALIDATED] or review[Outcome.VERIFY_REQUIRED]:
        console.print(
            f"[yellow]{review[Outcome.INVALIDATED]} invalidated, "
            f"{review[Outcome.VERIFY_REQUIRED]} to verify[/yellow]"
        )
