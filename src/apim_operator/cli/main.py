"""Main CLI entry point using Typer."""

from __future__ import annotations

import typer
from rich.console import Console

from apim_operator import __version__
from apim_operator.cli.commands import dispatch, revisions, run
from apim_operator.logging.config import VALID_LEVELS, configure_logging

app = typer.Typer(
    name="apim-operator",
    help="Synchronize ready applications with Azure API Management.",
    add_completion=False,
    no_args_is_help=True,
)

console = Console()


def version_callback(value: bool) -> None:
    """Print version and exit."""
    if value:
        console.print(f"apim-operator version {__version__}")
        raise typer.Exit()


@app.callback()
def main(
    version: bool | None = typer.Option(
        None,
        "--version",
        "-V",
        callback=version_callback,
        is_eager=True,
        help="Show version and exit.",
    ),
    log_level: str = typer.Option(
        "INFO",
        "--log-level",
        "-l",
        envvar="APIM_LOG_LEVEL",
        help=f"Log level ({', '.join(VALID_LEVELS)}).",
    ),
    json_logs: bool = typer.Option(
        True,
        "--json-logs/--console-logs",
        envvar="APIM_LOG_JSON",
        help="Emit JSON log lines (default) or human-readable console logs.",
    ),
) -> None:
    """apim-operator - register ready applications in Azure API Management."""
    try:
        configure_logging(level=log_level, json_output=json_logs)
    except ValueError as e:
        raise typer.BadParameter(str(e), param_hint="--log-level") from e


app.command()(run.run)
app.command()(dispatch.dispatch)
app.command()(revisions.revisions)


if __name__ == "__main__":
    app()
