"""Kubernetes connection configuration."""

from __future__ import annotations

import os
from pathlib import Path
from typing import Any

from pydantic import BaseModel, ConfigDict, field_validator


class KubernetesConnectionConfig(BaseModel):
    """How the operator reaches the API server.

    Inside a pod the in-cluster service account is used. Outside a
    cluster the kubeconfig (optionally a specific context) is loaded.
    """

    model_config = ConfigDict(extra="forbid")

    kubeconfig: str | None = None
    context: str | None = None
    namespace: str = "default"
    in_cluster: bool | None = None
    request_timeout: int = 30

    @field_validator("kubeconfig")
    @classmethod
    def validate_kubeconfig(cls, v: str | None) -> str | None:
        """Expand ~ in kubeconfig path."""
        if not v:
            return None
        return str(Path(v).expanduser())

    @field_validator("request_timeout")
    @classmethod
    def validate_timeout(cls, v: int) -> int:
        """Validate timeout is positive."""
        if v <= 0:
            raise ValueError("request_timeout must be positive")
        return v

    @classmethod
    def from_env(cls, base_config: dict[str, Any] | None = None) -> KubernetesConnectionConfig:
        """Create configuration with environment variable overrides.

        Supported environment variables:
            KUBECONFIG: Path to a kubeconfig file
            APIM_K8S_CONTEXT: kubeconfig context to use
            APIM_K8S_TIMEOUT: Per-request timeout in seconds
            KUBERNETES_SERVICE_HOST: Presence selects in-cluster config
        """
        config_dict = base_config.copy() if base_config else {}

        if kubeconfig := os.environ.get("KUBECONFIG"):
            # KUBECONFIG may be a path list; the first entry wins
            config_dict["kubeconfig"] = kubeconfig.split(os.pathsep)[0]
        if context := os.environ.get("APIM_K8S_CONTEXT"):
            config_dict["context"] = context
        if timeout := os.environ.get("APIM_K8S_TIMEOUT"):
            config_dict["request_timeout"] = int(timeout)
        if "in_cluster" not in config_dict and os.environ.get("KUBERNETES_SERVICE_HOST"):
            config_dict["in_cluster"] = True

        return cls.model_validate(config_dict)
