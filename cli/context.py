"""
Shared setup for CLI commands: schema table, options and error reporting.
"""

import logging
from pathlib import Path
from typing import List, Optional

import typer
from rich.console import Console
from rich.logging import RichHandler

from radioconv.config import DEFAULT_OPTIONS, ConversionOptions, load_options
from radioconv.errors import RadioDataError
from radioconv.schema.loader import DEFINITIONS_DIR, default_table, load_schema_table
from radioconv.schema.table import SchemaTable

console = Console(stderr=True)


def setup_logging(verbose: bool = False) -> None:
    """Route library logging through rich."""
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(message)s",
        datefmt="[%X]",
        handlers=[RichHandler(console=console, rich_tracebacks=True, show_path=verbose)],
        force=True,
    )


def load_table(schema_paths: Optional[List[Path]] = None) -> SchemaTable:
    """Bundled schema table, plus extra definition files when given."""
    try:
        if schema_paths:
            return load_schema_table([DEFINITIONS_DIR, *schema_paths])
        return default_table()
    except RadioDataError as e:
        fail(str(e))


def load_cli_options(config: Optional[Path] = None, **overrides) -> ConversionOptions:
    """Options from a YAML file (or defaults) with command-line overrides."""
    try:
        options = load_options(config) if config else DEFAULT_OPTIONS
        return options.with_changes(**overrides)
    except (OSError, ValueError) as e:
        fail(f"Invalid options: {e}")


def fail(message: str, code: int = 1) -> None:
    console.print(f"[red]Error: {message}[/red]")
    raise typer.Exit(code)
