"""API Management value models."""

from __future__ import annotations

from pydantic import BaseModel, ConfigDict


class ServiceCoordinates(BaseModel):
    """Addresses one API Management instance."""

    model_config = ConfigDict(frozen=True)

    subscription_id: str
    resource_group: str
    service_name: str

    @property
    def resource_path(self) -> str:
        """Resource Manager path of the service."""
        return (
            f"/subscriptions/{self.subscription_id}"
            f"/resourceGroups/{self.resource_group}"
            f"/providers/Microsoft.ApiManagement/service/{self.service_name}"
        )


class ServiceHosts(BaseModel):
    """Public hosts of an API Management instance."""

    model_config = ConfigDict(frozen=True)

    gateway_host: str | None = None
    portal_host: str | None = None


class ApiRevision(BaseModel):
    """One revision of an imported API."""

    model_config = ConfigDict(frozen=True)

    api_revision: str
    is_current: bool = False
