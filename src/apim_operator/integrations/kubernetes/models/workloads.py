"""Workload models used for readiness detection."""

from __future__ import annotations

from typing import Any, ClassVar

from pydantic import Field

from apim_operator.integrations.kubernetes.models.base import (
    K8sEntityBase,
    _get_annotations,
    _get_labels,
    _get_timestamp,
    _safe_get,
)

APP_NAME_LABEL = "app.kubernetes.io/name"


class ReplicaSetSummary(K8sEntityBase):
    """ReplicaSet replica counts and application identity."""

    _entity_name: ClassVar[str] = "replicaset"

    replicas: int = Field(default=0, description="Desired replicas")
    ready_replicas: int = Field(default=0, description="Ready replicas")

    @property
    def app_name(self) -> str | None:
        """Application identity from the ``app.kubernetes.io/name`` label."""
        return self.get_label(APP_NAME_LABEL) or None

    @property
    def is_decommissioned(self) -> bool:
        """A ReplicaSet scaled to zero is an old revision of a Deployment."""
        return self.replicas == 0

    @classmethod
    def from_k8s_object(cls, obj: Any) -> ReplicaSetSummary:
        """Create from a kubernetes V1ReplicaSet object."""
        return cls(
            name=_safe_get(obj, "metadata", "name", default=""),
            namespace=_safe_get(obj, "metadata", "namespace"),
            uid=_safe_get(obj, "metadata", "uid"),
            creation_timestamp=_get_timestamp(_safe_get(obj, "metadata", "creation_timestamp")),
            deletion_timestamp=_get_timestamp(_safe_get(obj, "metadata", "deletion_timestamp")),
            generation=_safe_get(obj, "metadata", "generation"),
            resource_version=_safe_get(obj, "metadata", "resource_version"),
            labels=_get_labels(obj),
            annotations=_get_annotations(obj),
            replicas=_safe_get(obj, "spec", "replicas", default=0) or 0,
            ready_replicas=_safe_get(obj, "status", "ready_replicas", default=0) or 0,
        )
