"""APIM sync pipeline services."""

from apim_operator.services.apim.catalog import (
    CatalogReconciler,
    InboundPolicyReconciler,
    ProductReconciler,
    TagReconciler,
)
from apim_operator.services.apim.dispatcher import WorkOrderDispatcher
from apim_operator.services.apim.exceptions import DispatchError, OpenAPIFetchError
from apim_operator.services.apim.executor import SyncExecutor
from apim_operator.services.apim.openapi import OpenAPIFetcher
from apim_operator.services.apim.projector import StatusProjector
from apim_operator.services.apim.readiness import (
    ReadinessDetector,
    ReadinessSignal,
    ReadinessState,
)

__all__ = [
    "CatalogReconciler",
    "DispatchError",
    "InboundPolicyReconciler",
    "OpenAPIFetchError",
    "OpenAPIFetcher",
    "ProductReconciler",
    "ReadinessDetector",
    "ReadinessSignal",
    "ReadinessState",
    "StatusProjector",
    "SyncExecutor",
    "TagReconciler",
    "WorkOrderDispatcher",
]
