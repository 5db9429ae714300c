"""Kubernetes integration - API client and configuration."""

from apim_operator.integrations.kubernetes.client import KubernetesClient
from apim_operator.integrations.kubernetes.config import KubernetesConnectionConfig
from apim_operator.integrations.kubernetes.exceptions import (
    KubernetesAuthError,
    KubernetesConflictError,
    KubernetesConnectionError,
    KubernetesError,
    KubernetesNotFoundError,
    KubernetesValidationError,
)

__all__ = [
    "KubernetesAuthError",
    "KubernetesClient",
    "KubernetesConflictError",
    "KubernetesConnectionConfig",
    "KubernetesConnectionError",
    "KubernetesError",
    "KubernetesNotFoundError",
    "KubernetesValidationError",
]
