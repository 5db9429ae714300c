"""Revisions command: list the APIM revisions of an application's API."""

from __future__ import annotations

import typer

from apim_operator.cli.commands.common import (
    build_credential,
    build_kubernetes_client,
    console,
    load_config,
)
from apim_operator.cli.output import Table
from apim_operator.integrations.apim import (
    ApimAPIError,
    ApimConnectionConfig,
    ApimManagementClient,
    ServiceCoordinates,
)
from apim_operator.integrations.identity import IdentityError
from apim_operator.integrations.kubernetes import KubernetesError
from apim_operator.services.kubernetes.resource_manager import ApimResourceManager


def revisions(
    namespace: str = typer.Argument(..., help="Namespace of the APIMAPI."),
    name: str = typer.Argument(..., help="Name of the APIMAPI."),
) -> None:
    """Show the revisions of the API declared by an APIMAPI."""
    config = load_config()
    client = build_kubernetes_client(config)
    resources = ApimResourceManager(client)
    apim_config = ApimConnectionConfig.from_env()

    try:
        api = resources.get_apim_api(name, namespace)
        service = resources.get_apim_service(api.spec.apim_service)
    except KubernetesError as e:
        console.print(f"[red]Error:[/red] {e}")
        raise typer.Exit(1) from None
    finally:
        client.close()

    coords = ServiceCoordinates(
        subscription_id=service.spec.subscription,
        resource_group=service.spec.resource_group,
        service_name=service.spec.name,
    )
    try:
        with build_credential() as credential:
            token = credential.get_token(apim_config.token_scope)
        with ApimManagementClient(apim_config, token.token) as apim:
            items = apim.read_revisions(coords, api.spec.api_id)
    except (IdentityError, ApimAPIError) as e:
        console.print(f"[red]Error:[/red] {e}")
        raise typer.Exit(1) from None

    if not items:
        console.print(f"[yellow]No revisions found for API {api.spec.api_id}[/yellow]")
        return

    table = Table(title=f"Revisions of {api.spec.api_id} ({service.spec.name})")
    table.add_column("Revision", style="cyan", no_wrap=True)
    table.add_column("Current")
    for item in items:
        table.add_row(item.api_revision, "[green]yes[/green]" if item.is_current else "")
    console.print(table)
