"""
Validate command - check a radio image against its schema.
"""

from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, List, Optional

import typer
from rich import box
from rich.console import Console
from rich.panel import Panel
from rich.table import Table

from cli.context import load_cli_options, load_table
from radioconv.codec.fields import Unknown
from radioconv.containers import read_image
from radioconv.converters import ConversionEngine
from radioconv.errors import RadioDataError
from radioconv.models.image import ContainerKind

console = Console()
app = typer.Typer()


@dataclass
class ValidationIssue:
    """A single validation issue."""

    severity: str  # "error", "warning", "info"
    area: str
    message: str


@dataclass
class ValidationResult:
    """Result of validating an image."""

    filepath: str
    issues: List[ValidationIssue] = field(default_factory=list)

    @property
    def errors(self) -> List[ValidationIssue]:
        return [i for i in self.issues if i.severity == "error"]

    @property
    def warnings(self) -> List[ValidationIssue]:
        return [i for i in self.issues if i.severity == "warning"]

    @property
    def valid(self) -> bool:
        return not self.errors


def find_unknown_values(value: Any, path: str = "") -> List[str]:
    """Paths of every undeclared enum value in a settings tree."""
    if isinstance(value, Unknown):
        return [path]
    found = []
    if isinstance(value, dict):
        for key, child in value.items():
            found += find_unknown_values(child, f"{path}.{key}" if path else key)
    elif isinstance(value, list):
        for index, child in enumerate(value):
            found += find_unknown_values(child, f"{path}[{index}]")
    return found


def validate_image(engine: ConversionEngine, source: Path, kind=None) -> ValidationResult:
    """Read and decode an image, collecting problems instead of stopping at the first."""
    result = ValidationResult(str(source))
    try:
        image = read_image(source, engine.table, kind, engine.options)
    except RadioDataError as e:
        result.issues.append(ValidationIssue("error", "Container", str(e)))
        return result
    result.issues.append(
        ValidationIssue("info", "Container", f"{image.kind.value}, {image.size} bytes")
    )

    if not image.verify_checksum():
        result.issues.append(ValidationIssue("error", "Checksum", "payload CRC-32 mismatch"))

    try:
        decoded = engine.decode(image)
    except RadioDataError as e:
        result.issues.append(ValidationIssue("error", "Decode", str(e)))
        return result

    settings = decoded.settings
    result.issues.append(
        ValidationIssue("info", "Schema", f"{settings.board} v{settings.version}")
    )
    if image.version != settings.version:
        result.issues.append(
            ValidationIssue(
                "warning",
                "Schema",
                f"no schema for v{image.version}, decoded with v{settings.version}",
            )
        )
    for event in decoded.ledger:
        result.issues.append(ValidationIssue("warning", event.path, event.note))
    for path in find_unknown_values({"radio": settings.radio, "models": settings.models}):
        result.issues.append(ValidationIssue("warning", path, "undeclared enum value"))
    return result


@app.command()
def validate(
    source: Path = typer.Argument(..., help="Image file or settings directory"),
    kind: Optional[ContainerKind] = typer.Option(None, "--kind", "-k", help="Container kind"),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Show info messages too"),
    fallback_board: Optional[str] = typer.Option(
        None, "--fallback-board", help="Board to assume for unknown board ids"
    ),
    config: Optional[Path] = typer.Option(None, "--config", "-c", help="Options YAML file"),
    schema: Optional[List[Path]] = typer.Option(
        None, "--schema", help="Extra schema definition files or directories"
    ),
) -> None:
    """
    Validate a radio image: container structure, checksum and field ranges.

    Exits with status 1 when errors are found.
    """
    table = load_table(schema)
    options = load_cli_options(config, fallback_board=fallback_board)
    result = validate_image(ConversionEngine(table, options=options), source, kind)

    status = "[green]Valid[/green]" if result.valid else "[red]Invalid[/red]"
    console.print(
        Panel(
            f"[bold]File:[/bold] {result.filepath}\n[bold]Status:[/bold] {status}\n"
            f"[bold]Errors:[/bold] {len(result.errors)}  [bold]Warnings:[/bold] {len(result.warnings)}",
            title="[bold blue]Validation[/bold blue]",
            border_style="blue",
            expand=False,
        )
    )

    shown = [i for i in result.issues if verbose or i.severity != "info"]
    if shown:
        issues = Table(box=box.ROUNDED, show_header=True, header_style="bold magenta")
        issues.add_column("Severity", width=9)
        issues.add_column("Area", style="cyan", width=28)
        issues.add_column("Message")
        colors = {"error": "red", "warning": "yellow", "info": "dim"}
        for issue in shown:
            color = colors[issue.severity]
            issues.add_row(f"[{color}]{issue.severity}[/{color}]", issue.area, issue.message)
        console.print(issues)

    if not result.valid:
        raise typer.Exit(1)


if __name__ == "__main__":
    app()
