"""Kubernetes resource models."""

from apim_operator.integrations.kubernetes.models.apim import (
    API_GROUP,
    API_VERSION,
    EXTERNAL_LINK_ANNOTATION,
    ApimApi,
    ApimApiSpec,
    ApimApiStatus,
    ApimInboundPolicy,
    ApimProduct,
    ApimService,
    ApimServiceSpec,
    ApimTag,
    CatalogStatus,
    WorkOrder,
    WorkOrderPhase,
    WorkOrderSpec,
    WorkOrderStatus,
)
from apim_operator.integrations.kubernetes.models.base import K8sEntityBase
from apim_operator.integrations.kubernetes.models.workloads import (
    APP_NAME_LABEL,
    ReplicaSetSummary,
)

__all__ = [
    "API_GROUP",
    "API_VERSION",
    "APP_NAME_LABEL",
    "EXTERNAL_LINK_ANNOTATION",
    "ApimApi",
    "ApimApiSpec",
    "ApimApiStatus",
    "ApimInboundPolicy",
    "ApimProduct",
    "ApimService",
    "ApimServiceSpec",
    "ApimTag",
    "CatalogStatus",
    "K8sEntityBase",
    "ReplicaSetSummary",
    "WorkOrder",
    "WorkOrderPhase",
    "WorkOrderSpec",
    "WorkOrderStatus",
]
