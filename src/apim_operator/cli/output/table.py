"""Table output for CLI commands.

Wraps Rich's Table so every command renders columns the same way.
"""

from __future__ import annotations

from typing import Any

from rich.table import Table as RichTable


class Table(RichTable):
    """Rich Table whose columns wrap long values instead of truncating them.

    Usage:
        from apim_operator.cli.output import Table

        table = Table(title="Revisions")
        table.add_column("Revision", no_wrap=True)
        table.add_column("Current")
        table.add_row("2", "yes")
    """

    def __init__(self, *args: Any, **kwargs: Any) -> None:
        kwargs.setdefault("show_header", True)
        kwargs.setdefault("header_style", "bold")
        super().__init__(*args, **kwargs)

    def add_column(self, *args: Any, **kwargs: Any) -> None:
        """Add a column with ``overflow="fold"`` unless told otherwise."""
        kwargs.setdefault("overflow", "fold")
        super().add_column(*args, **kwargs)
