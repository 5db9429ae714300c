"""Azure API Management connection configuration."""

from __future__ import annotations

import os

from pydantic import BaseModel, ConfigDict, field_validator

DEFAULT_MANAGEMENT_URL = "https://management.azure.com"
DEFAULT_API_VERSION = "2021-08-01"


class ApimConnectionConfig(BaseModel):
    """Azure Resource Manager endpoint settings for API Management."""

    model_config = ConfigDict(extra="forbid")

    management_url: str = DEFAULT_MANAGEMENT_URL
    api_version: str = DEFAULT_API_VERSION
    timeout: float = 60.0
    verify_ssl: bool = True

    @field_validator("management_url")
    @classmethod
    def validate_management_url(cls, v: str) -> str:
        """Validate management URL format."""
        if not v.startswith(("http://", "https://")):
            raise ValueError("management_url must start with http:// or https://")
        return v.rstrip("/")

    @field_validator("timeout")
    @classmethod
    def validate_timeout(cls, v: float) -> float:
        """Validate timeout is positive."""
        if v <= 0:
            raise ValueError("timeout must be positive")
        return v

    @property
    def token_scope(self) -> str:
        """OAuth scope for tokens accepted by the management endpoint."""
        return f"{self.management_url}/.default"

    @classmethod
    def from_env(cls) -> ApimConnectionConfig:
        """Create configuration from environment variables.

        Supported environment variables:
            APIM_MANAGEMENT_URL: Resource Manager endpoint
            APIM_API_VERSION: Management API version
            APIM_TIMEOUT: Request timeout in seconds
        """
        values: dict[str, object] = {}
        if url := os.environ.get("APIM_MANAGEMENT_URL"):
            values["management_url"] = url
        if api_version := os.environ.get("APIM_API_VERSION"):
            values["api_version"] = api_version
        if timeout := os.environ.get("APIM_TIMEOUT"):
            values["timeout"] = float(timeout)
        return cls.model_validate(values)
