"""
Display formatting utilities for CLI output.

Provides usage bars, outcome styles and value rendering helpers.
"""

from typing import Any

from radioconv.codec.fields import Unknown
from radioconv.converters.ledger import Outcome

OUTCOME_STYLES = {
    Outcome.UNCHANGED: ("dim", "="),
    Outcome.CONVERTED: ("cyan", "~"),
    Outcome.INVALIDATED: ("red", "x"),
    Outcome.VERIFY_REQUIRED: ("yellow", "!"),
}


def usage_bar(
    used: int,
    capacity: int,
    width: int = 10,
    filled_char: str = "█",
    empty_char: str = "░",
) -> str:
    """
    Create a text-based bar showing how many slots are used.

    Args:
        used: Used slots
        capacity: Total slots
        width: Bar width in characters

    Returns:
        Formatted string like "3/8 [███░░░░░░░]"
    """
    if capacity <= 0:
        capacity = 1

    clamped = max(0, min(used, capacity))
    fill_count = int((clamped / capacity) * width)
    bar = filled_char * fill_count + empty_char * (width - fill_count)
    return f"{used}/{capacity} [{bar}]"


def outcome_label(outcome: Outcome) -> str:
    """Rich markup for an outcome, e.g. "[yellow]! verify_required[/yellow]"."""
    style, icon = OUTCOME_STYLES[outcome]
    return f"[{style}]{icon} {outcome.value}[/{style}]"


def value_text(value: Any) -> str:
    """Short display form of a settings value."""
    if isinstance(value, Unknown):
        return f"[red]{value}[/red]"
    if isinstance(value, bool):
        return "[green]yes[/green]" if value else "[dim]no[/dim]"
    if isinstance(value, list):
        return ", ".join(str(v) for v in value) if value else "[dim]-[/dim]"
    if isinstance(value, str):
        return repr(value) if value else "[dim]''[/dim]"
    return str(value)
