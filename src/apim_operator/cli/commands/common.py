"""Construction of the clients shared by CLI commands."""

from __future__ import annotations

import typer
from rich.console import Console

from apim_operator.core.config import OperatorConfig
from apim_operator.integrations.identity import IdentityConfig, WorkloadIdentityCredential
from apim_operator.integrations.kubernetes import (
    KubernetesClient,
    KubernetesConnectionConfig,
    KubernetesError,
)

console = Console()


def load_config(**overrides: object) -> OperatorConfig:
    """Operator configuration from the environment; CLI options take precedence."""
    values = OperatorConfig.from_env().model_dump()
    values.update({k: v for k, v in overrides.items() if v is not None})
    return OperatorConfig.model_validate(values)


def build_kubernetes_client(config: OperatorConfig) -> KubernetesClient:
    """Kubernetes client defaulting to the operator namespace.

    Exits with status 1 if no cluster configuration can be loaded.
    """
    try:
        return KubernetesClient(
            KubernetesConnectionConfig.from_env({"namespace": config.operator_namespace})
        )
    except KubernetesError as e:
        console.print(f"[red]Error:[/red] {e}")
        raise typer.Exit(1) from None


def build_credential() -> WorkloadIdentityCredential:
    """Workload identity credential from the pod environment."""
    return WorkloadIdentityCredential(IdentityConfig.from_env())
