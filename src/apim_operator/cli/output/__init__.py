"""CLI output utilities.

Usage:
    from apim_operator.cli.output import Table

    table = Table(title="Results")
    table.add_column("Name", style="cyan")
    table.add_row("orders-api")
    console.print(table)
"""

from apim_operator.cli.output.table import Table

__all__ = ["Table"]
