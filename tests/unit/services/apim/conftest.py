"""Fixtures for the sync pipeline service tests."""

from __future__ import annotations

from collections.abc import Callable
from typing import Any
from unittest.mock import MagicMock

import pytest

from apim_operator.integrations.apim.config import ApimConnectionConfig
from apim_operator.integrations.apim.models import ServiceHosts
from apim_operator.integrations.identity.credential import AccessToken
from apim_operator.integrations.kubernetes.exceptions import (
    KubernetesConflictError,
    KubernetesNotFoundError,
)
from apim_operator.integrations.kubernetes.models.apim import (
    APIMAPI_PLURAL,
    APIMSERVICE_PLURAL,
    WORK_ORDER_KIND,
    WORK_ORDER_PLURAL,
    ApimApi,
    ApimService,
    WorkOrder,
    WorkOrderSpec,
)
from apim_operator.integrations.kubernetes.models.base import K8sEntityBase
from apim_operator.integrations.kubernetes.models.workloads import ReplicaSetSummary

FIXED_NOW = "2026-10-17T12:00:00Z"


class FakeResources:
    """In-memory stand-in for ApimResourceManager.

    Objects are stored as CRD dicts keyed by ``(plural, namespace, name)``.
    Writes are recorded so tests can assert on them.
    """

    operator_namespace = "apim-system"

    def __init__(self) -> None:
        self.objects: dict[tuple[str, str, str], dict[str, Any]] = {}
        self.replica_sets: dict[tuple[str, str], ReplicaSetSummary] = {}
        self.status_patches: list[tuple[str, str, str, dict[str, Any]]] = []
        self.annotation_patches: list[tuple[str, str, dict[str, str | None]]] = []
        self.events: list[tuple[str, str, str, str]] = []
        self.created: list[tuple[str, str, WorkOrderSpec]] = []
        self.deleted: list[tuple[str, str]] = []
        # Number of reads a deleted work order stays visible; None keeps it forever.
        self.delete_lag: int | None = 0
        self._lingering: dict[tuple[str, str], int | None] = {}

    # -- seeding ------------------------------------------------------------

    def add(self, plural: str, obj: dict[str, Any]) -> None:
        metadata = obj["metadata"]
        self.objects[(plural, metadata.get("namespace", ""), metadata["name"])] = obj

    def add_replica_set(
        self,
        name: str,
        namespace: str = "shop",
        *,
        app: str | None = "orders-api",
        replicas: int = 3,
        ready: int = 0,
    ) -> None:
        self.replica_sets[(namespace, name)] = ReplicaSetSummary(
            name=name,
            namespace=namespace,
            labels={"app.kubernetes.io/name": app} if app else None,
            replicas=replicas,
            ready_replicas=ready,
        )

    def add_work_order(
        self, name: str, namespace: str, spec: dict[str, Any], **metadata: Any
    ) -> None:
        self.add(
            WORK_ORDER_PLURAL,
            {
                "kind": WORK_ORDER_KIND,
                "metadata": {"name": name, "namespace": namespace, **metadata},
                "spec": spec,
            },
        )

    def _find(self, plural: str, name: str, namespace: str) -> dict[str, Any]:
        try:
            return self.objects[(plural, namespace, name)]
        except KeyError:
            raise KubernetesNotFoundError(resource_name=name, namespace=namespace) from None

    # -- reads --------------------------------------------------------------

    def get_replica_set(self, name: str, namespace: str) -> ReplicaSetSummary:
        try:
            return self.replica_sets[(namespace, name)]
        except KeyError:
            raise KubernetesNotFoundError(resource_name=name, namespace=namespace) from None

    def list_replica_sets(
        self, namespace: str, label_selector: str | None = None
    ) -> list[ReplicaSetSummary]:
        label, _, value = (label_selector or "").partition("=")
        return [
            rs
            for (ns, _), rs in self.replica_sets.items()
            if ns == namespace and (not label or rs.get_label(label) == value)
        ]

    def get_custom(
        self, plural: str, kind: str, model: Any, name: str, namespace: str | None = None
    ) -> Any:
        return model.from_k8s_object(
            self._find(plural, name, namespace or self.operator_namespace)
        )

    def get_apim_api(self, name: str, namespace: str) -> ApimApi:
        return ApimApi.from_k8s_object(self._find(APIMAPI_PLURAL, name, namespace))

    def get_apim_service(self, name: str, namespace: str | None = None) -> ApimService:
        return ApimService.from_k8s_object(
            self._find(APIMSERVICE_PLURAL, name, namespace or self.operator_namespace)
        )

    def get_work_order(self, name: str, namespace: str) -> WorkOrder:
        key = (namespace, name)
        if key in self._lingering:
            remaining = self._lingering[key]
            if remaining is None or remaining > 0:
                if remaining is not None:
                    self._lingering[key] = remaining - 1
                return WorkOrder(name=name, namespace=namespace)
            del self._lingering[key]
        return WorkOrder.from_k8s_object(self._find(WORK_ORDER_PLURAL, name, namespace))

    # -- writes -------------------------------------------------------------

    def create_work_order(
        self,
        name: str,
        namespace: str,
        spec: WorkOrderSpec,
        owner: ApimApi | None = None,
    ) -> WorkOrder:
        if (WORK_ORDER_PLURAL, namespace, name) in self.objects or (
            namespace,
            name,
        ) in self._lingering:
            raise KubernetesConflictError(resource_name=name, namespace=namespace)
        obj = {
            "kind": WORK_ORDER_KIND,
            "metadata": {"name": name, "namespace": namespace},
            "spec": spec.to_k8s_spec(),
        }
        self.add(WORK_ORDER_PLURAL, obj)
        self.created.append((name, namespace, spec))
        return WorkOrder.from_k8s_object(obj)

    def delete_work_order(self, name: str, namespace: str) -> None:
        self._find(WORK_ORDER_PLURAL, name, namespace)
        del self.objects[(WORK_ORDER_PLURAL, namespace, name)]
        self.deleted.append((name, namespace))
        if self.delete_lag != 0:
            self._lingering[(namespace, name)] = self.delete_lag

    def patch_status(
        self, plural: str, kind: str, name: str, namespace: str, status: dict[str, Any]
    ) -> None:
        obj = self._find(plural, name, namespace)
        obj.setdefault("status", {}).update(status)
        self.status_patches.append((plural, name, namespace, status))

    def patch_apim_api_status(self, name: str, namespace: str, status: dict[str, Any]) -> None:
        self.patch_status(APIMAPI_PLURAL, "APIMAPI", name, namespace, status)

    def patch_work_order_status(self, name: str, namespace: str, status: dict[str, Any]) -> None:
        self.patch_status(WORK_ORDER_PLURAL, WORK_ORDER_KIND, name, namespace, status)

    def patch_apim_api_annotations(
        self, name: str, namespace: str, annotations: dict[str, str | None]
    ) -> None:
        obj = self._find(APIMAPI_PLURAL, name, namespace)
        obj["metadata"].setdefault("annotations", {}).update(annotations)
        self.annotation_patches.append((name, namespace, annotations))

    def create_event(
        self,
        involved: K8sEntityBase,
        kind: str,
        reason: str,
        message: str,
        event_type: str = "Warning",
    ) -> None:
        self.events.append((involved.name, kind, reason, message))

    # -- assertions ---------------------------------------------------------

    def statuses_for(self, plural: str, name: str) -> list[dict[str, Any]]:
        return [status for p, n, _, status in self.status_patches if p == plural and n == name]


@pytest.fixture
def fake_resources(
    apimapi_dict: dict[str, Any], apimservice_dict: dict[str, Any]
) -> FakeResources:
    """In-memory resources seeded with orders-api and its APIMService."""
    resources = FakeResources()
    resources.add(APIMAPI_PLURAL, apimapi_dict)
    resources.add(APIMSERVICE_PLURAL, apimservice_dict)
    return resources


@pytest.fixture
def work_order_spec_dict() -> dict[str, Any]:
    """Work order spec snapshotted from the default APIMAPI and APIMService."""
    return {
        "apiID": "orders-api",
        "serviceUrl": "https://orders.internal",
        "routePrefix": "/orders",
        "openAPIDefinitionURL": "https://orders.internal/openapi.json",
        "productIds": ["public"],
        "tagIds": [],
        "subscriptionRequired": True,
        "apimService": "contoso-apim",
        "subscription": "sub-123",
        "resourceGroup": "rg-apis",
    }


@pytest.fixture
def apim_config() -> ApimConnectionConfig:
    """Default management connection."""
    return ApimConnectionConfig()


@pytest.fixture
def mock_credential() -> MagicMock:
    """Credential that always returns a token."""
    credential = MagicMock()
    credential.get_token.return_value = AccessToken("at-1", 9_999_999_999.0)
    return credential


@pytest.fixture
def mock_apim_client() -> MagicMock:
    """Management client usable as a context manager."""
    client = MagicMock()
    client.__enter__.return_value = client
    client.import_definition.side_effect = lambda coords, api_id, prefix, doc, revision=None: (
        f"{api_id};rev={revision}" if revision else api_id
    )
    client.read_service_hosts.return_value = ServiceHosts(
        gateway_host="gw.example", portal_host="portal.example"
    )
    return client


@pytest.fixture
def client_factory(mock_apim_client: MagicMock) -> MagicMock:
    """Factory returning the mock management client."""
    return MagicMock(return_value=mock_apim_client)


@pytest.fixture
def fixed_clock() -> Callable[[], str]:
    """Clock returning a constant RFC 3339 timestamp."""
    return lambda: FIXED_NOW
