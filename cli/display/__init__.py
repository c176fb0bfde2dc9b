"""
CLI display modules.
"""

from cli.display.tables import (
    display_image_info,
    display_ledger,
    display_ledger_summary,
    display_settings_tree,
)

__all__ = [
    "display_image_info",
    "display_ledger",
    "display_ledger_summary",
    "display_settings_tree",
]
