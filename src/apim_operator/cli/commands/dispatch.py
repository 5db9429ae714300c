"""Dispatch command: create a work order for one APIMAPI on demand."""

from __future__ import annotations

import typer

from apim_operator.cli.commands.common import build_kubernetes_client, console, load_config
from apim_operator.integrations.kubernetes import KubernetesError, KubernetesNotFoundError
from apim_operator.services.apim.dispatcher import WorkOrderDispatcher
from apim_operator.services.apim.exceptions import DispatchError
from apim_operator.services.kubernetes.resource_manager import ApimResourceManager


def dispatch(
    namespace: str = typer.Argument(..., help="Namespace of the APIMAPI."),
    name: str = typer.Argument(..., help="Name of the APIMAPI (application name)."),
) -> None:
    """Replace the work order of an APIMAPI, as a readiness signal would."""
    config = load_config()
    client = build_kubernetes_client(config)
    resources = ApimResourceManager(client)
    dispatcher = WorkOrderDispatcher(resources, config.timing)

    try:
        api = resources.get_apim_api(name, namespace)
        service = resources.get_apim_service(api.spec.apim_service)
        work_order = dispatcher.dispatch(api, service)
    except KubernetesNotFoundError as e:
        console.print(f"[yellow]Not found:[/yellow] {e}")
        raise typer.Exit(1) from None
    except (KubernetesError, DispatchError) as e:
        console.print(f"[red]Error:[/red] {e}")
        raise typer.Exit(1) from None
    finally:
        client.close()

    if work_order is None:
        console.print(
            f"[red]APIMAPI {namespace}/{name} is invalid.[/red] See its events for details."
        )
        raise typer.Exit(1)

    console.print(f"[green]Dispatched work order[/green] {namespace}/{work_order.name}")
