"""Workload identity configuration."""

from __future__ import annotations

import os

from pydantic import BaseModel, ConfigDict, field_validator

DEFAULT_AUTHORITY_HOST = "https://login.microsoftonline.com"
DEFAULT_FEDERATED_TOKEN_FILE = "/var/run/secrets/azure/tokens/azure-identity-token"


class IdentityConfig(BaseModel):
    """Settings for exchanging a projected service account token for an access token.

    The defaults match what the workload identity webhook injects into pods.
    """

    model_config = ConfigDict(extra="forbid")

    client_id: str = ""
    tenant_id: str = ""
    federated_token_file: str = DEFAULT_FEDERATED_TOKEN_FILE
    authority_host: str = DEFAULT_AUTHORITY_HOST
    timeout: float = 30.0
    refresh_margin: float = 300.0

    @field_validator("authority_host")
    @classmethod
    def validate_authority_host(cls, v: str) -> str:
        """Validate authority host format."""
        if not v.startswith(("http://", "https://")):
            raise ValueError("authority_host must start with http:// or https://")
        return v.rstrip("/")

    @property
    def token_endpoint(self) -> str:
        """OAuth2 v2 token endpoint of the tenant."""
        return f"{self.authority_host}/{self.tenant_id}/oauth2/v2.0/token"

    @classmethod
    def from_env(cls) -> IdentityConfig:
        """Create configuration from the workload identity environment.

        Supported environment variables:
            AZURE_CLIENT_ID: Application (client) ID of the managed identity
            AZURE_TENANT_ID: Directory (tenant) ID
            AZURE_FEDERATED_TOKEN_FILE: Path of the projected token
            AZURE_AUTHORITY_HOST: Authority host
        """
        values: dict[str, object] = {
            "client_id": os.environ.get("AZURE_CLIENT_ID", ""),
            "tenant_id": os.environ.get("AZURE_TENANT_ID", ""),
        }
        if token_file := os.environ.get("AZURE_FEDERATED_TOKEN_FILE"):
            values["federated_token_file"] = token_file
        if authority := os.environ.get("AZURE_AUTHORITY_HOST"):
            values["authority_host"] = authority
        return cls.model_validate(values)
