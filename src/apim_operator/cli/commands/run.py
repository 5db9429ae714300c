"""Run command: start every controller until interrupted."""

from __future__ import annotations

import signal
import threading
from types import FrameType

import structlog
import typer

from apim_operator.cli.commands.common import (
    build_credential,
    build_kubernetes_client,
    console,
    load_config,
)
from apim_operator.integrations.apim import ApimConnectionConfig
from apim_operator.runtime.manager import OperatorManager

logger = structlog.get_logger()


def run(
    workers: int | None = typer.Option(
        None,
        "--workers",
        "-w",
        help="Worker threads per controller (default: APIM_WORKERS or 2).",
    ),
    watch_namespace: str | None = typer.Option(
        None,
        "--watch-namespace",
        "-n",
        help="Only watch this namespace (default: all namespaces).",
    ),
) -> None:
    """Run the operator until SIGINT or SIGTERM."""
    config = load_config(workers=workers, watch_namespace=watch_namespace)
    client = build_kubernetes_client(config)
    manager = OperatorManager(
        config,
        client,
        build_credential(),
        ApimConnectionConfig.from_env(),
    )

    stop_event = threading.Event()

    def _handle_signal(signum: int, frame: FrameType | None) -> None:
        logger.info("shutdown_requested", signal=signal.Signals(signum).name)
        stop_event.set()

    signal.signal(signal.SIGINT, _handle_signal)
    signal.signal(signal.SIGTERM, _handle_signal)

    console.print(
        f"[green]apim-operator running[/green] "
        f"(context: {client.get_current_context()}, "
        f"operator namespace: {config.operator_namespace})"
    )
    try:
        manager.run(stop_event)
    finally:
        client.close()
