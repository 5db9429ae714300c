"""Base models shared by every Kubernetes resource the operator reads."""

from __future__ import annotations

from datetime import datetime
from typing import Any, ClassVar

from pydantic import BaseModel, ConfigDict, Field


class K8sEntityBase(BaseModel):
    """Common object metadata for typed and custom resources."""

    model_config = ConfigDict(
        extra="ignore",
        populate_by_name=True,
        str_strip_whitespace=True,
    )

    name: str = Field(description="Resource name")
    namespace: str | None = Field(default=None, description="Resource namespace")
    uid: str | None = Field(default=None, description="Kubernetes UID")
    creation_timestamp: str | None = Field(default=None, description="Creation time")
    deletion_timestamp: str | None = Field(default=None, description="Deletion time, if deleting")
    generation: int | None = Field(default=None, description="Spec generation")
    resource_version: str | None = Field(default=None, description="Resource version")
    labels: dict[str, str] | None = Field(default=None, description="Resource labels")
    annotations: dict[str, str] | None = Field(default=None, description="Resource annotations")

    _entity_name: ClassVar[str] = "entity"

    @property
    def key(self) -> str:
        """Work queue key, ``namespace/name``."""
        return f"{self.namespace or ''}/{self.name}"

    @property
    def is_deleting(self) -> bool:
        """Whether the resource has been marked for deletion."""
        return self.deletion_timestamp is not None

    def get_annotation(self, key: str) -> str | None:
        """Return one annotation value, or None."""
        return (self.annotations or {}).get(key)

    def get_label(self, key: str) -> str | None:
        """Return one label value, or None."""
        return (self.labels or {}).get(key)


def _safe_get(obj: Any, *attrs: str, default: Any = None) -> Any:
    """Safely traverse nested attributes on kubernetes SDK objects."""
    current = obj
    for attr in attrs:
        if current is None:
            return default
        current = getattr(current, attr, None)
    return current if current is not None else default


def _get_timestamp(obj: Any) -> str | None:
    """Extract ISO timestamp string from a datetime or string."""
    if obj is None:
        return None
    if isinstance(obj, str):
        return obj
    if isinstance(obj, datetime):
        return obj.isoformat()
    return str(obj)


def _get_labels(obj: Any) -> dict[str, str] | None:
    """Extract labels dict, returning None if empty."""
    labels = _safe_get(obj, "metadata", "labels")
    return dict(labels) if labels else None


def _get_annotations(obj: Any) -> dict[str, str] | None:
    """Extract annotations dict, returning None if empty."""
    annotations = _safe_get(obj, "metadata", "annotations")
    return dict(annotations) if annotations else None


def _metadata_from_dict(obj: dict[str, Any]) -> dict[str, Any]:
    """Extract base fields from a custom object's ``metadata`` dict.

    ``CustomObjectsApi`` returns plain dicts with camelCase keys, unlike the
    typed SDK classes handled by the ``_safe_get`` helpers above.
    """
    metadata: dict[str, Any] = obj.get("metadata") or {}
    return {
        "name": metadata.get("name", ""),
        "namespace": metadata.get("namespace"),
        "uid": metadata.get("uid"),
        "creation_timestamp": _get_timestamp(metadata.get("creationTimestamp")),
        "deletion_timestamp": _get_timestamp(metadata.get("deletionTimestamp")),
        "generation": metadata.get("generation"),
        "resource_version": metadata.get("resourceVersion"),
        "labels": dict(metadata["labels"]) if metadata.get("labels") else None,
        "annotations": dict(metadata["annotations"]) if metadata.get("annotations") else None,
    }
