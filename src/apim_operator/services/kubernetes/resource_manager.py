"""APIM custom resource manager.

Reads and writes the ``apim.operator.io`` resources through
``CustomObjectsApi``, reads ReplicaSets, and records Events.
"""

from __future__ import annotations

from collections.abc import Callable
from datetime import UTC, datetime
from typing import Any, TypeVar

from apim_operator.integrations.kubernetes.models.apim import (
    API_GROUP,
    API_VERSION,
    APIMAPI_KIND,
    APIMAPI_PLURAL,
    APIMSERVICE_KIND,
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
from apim_operator.services.kubernetes.base import K8sBaseManager

EVENT_SOURCE_COMPONENT = "apim-operator"

ListCall = tuple[Callable[..., Any], dict[str, Any]]

_M = TypeVar("_M", bound=K8sEntityBase)


class ApimResourceManager(K8sBaseManager):
    """Manager for APIM custom resources and the workloads they describe.

    Cluster-scoped defaults resolve to the operator namespace, which holds
    the APIMService resources.
    """

    _entity_name = "apim"

    @property
    def operator_namespace(self) -> str:
        """Namespace the operator runs in."""
        return self._client.default_namespace

    # =========================================================================
    # Generic custom object access
    # =========================================================================

    def get_custom(
        self, plural: str, kind: str, model: type[_M], name: str, namespace: str | None = None
    ) -> _M:
        """Get one custom resource and convert it with ``model.from_k8s_object``."""
        ns = self._resolve_namespace(namespace)
        self._log.debug("getting_custom_object", kind=kind, name=name, namespace=ns)
        try:
            result = self._client.custom_objects.get_namespaced_custom_object(
                API_GROUP, API_VERSION, ns, plural, name
            )
            return model.from_k8s_object(result)  # type: ignore[attr-defined,no-any-return]
        except Exception as e:
            self._handle_api_error(e, kind, name, ns)

    def list_custom(
        self, plural: str, kind: str, model: type[_M], namespace: str | None = None
    ) -> list[_M]:
        """List custom resources of one kind in a namespace, or everywhere if None."""
        self._log.debug("listing_custom_objects", kind=kind, namespace=namespace)
        try:
            if namespace:
                result = self._client.custom_objects.list_namespaced_custom_object(
                    API_GROUP, API_VERSION, namespace, plural
                )
            else:
                result = self._client.custom_objects.list_cluster_custom_object(
                    API_GROUP, API_VERSION, plural
                )
            items: list[dict[str, Any]] = result.get("items", [])
            return [model.from_k8s_object(item) for item in items]  # type: ignore[attr-defined]
        except Exception as e:
            self._handle_api_error(e, kind, None, namespace)

    def patch_status(
        self,
        plural: str,
        kind: str,
        name: str,
        namespace: str,
        status: dict[str, Any],
    ) -> None:
        """Merge-patch the status subresource of a custom resource."""
        self._log.debug("patching_status", kind=kind, name=name, namespace=namespace)
        try:
            self._client.custom_objects.patch_namespaced_custom_object_status(
                API_GROUP, API_VERSION, namespace, plural, name, {"status": status}
            )
        except Exception as e:
            self._handle_api_error(e, kind, name, namespace)

    # =========================================================================
    # ReplicaSets
    # =========================================================================

    def get_replica_set(self, name: str, namespace: str | None = None) -> ReplicaSetSummary:
        """Get a ReplicaSet by name."""
        ns = self._resolve_namespace(namespace)
        self._log.debug("getting_replica_set", name=name, namespace=ns)
        try:
            result = self._client.apps_v1.read_namespaced_replica_set(name=name, namespace=ns)
            return ReplicaSetSummary.from_k8s_object(result)
        except Exception as e:
            self._handle_api_error(e, "ReplicaSet", name, ns)

    def list_replica_sets(
        self, namespace: str | None = None, label_selector: str | None = None
    ) -> list[ReplicaSetSummary]:
        """List ReplicaSets in a namespace, optionally filtered by labels."""
        ns = self._resolve_namespace(namespace)
        self._log.debug("listing_replica_sets", namespace=ns, label_selector=label_selector)
        try:
            kwargs: dict[str, Any] = {"namespace": ns}
            if label_selector:
                kwargs["label_selector"] = label_selector
            result = self._client.apps_v1.list_namespaced_replica_set(**kwargs)
            return [ReplicaSetSummary.from_k8s_object(item) for item in result.items]
        except Exception as e:
            self._handle_api_error(e, "ReplicaSet", None, ns)

    def replica_set_list_call(self, namespace: str | None = None) -> ListCall:
        """List function and arguments for watching ReplicaSets."""
        if namespace:
            return self._client.apps_v1.list_namespaced_replica_set, {"namespace": namespace}
        return self._client.apps_v1.list_replica_set_for_all_namespaces, {}

    def custom_list_call(self, plural: str, namespace: str | None = None) -> ListCall:
        """List function and arguments for watching one custom resource kind."""
        if namespace:
            return self._client.custom_objects.list_namespaced_custom_object, {
                "group": API_GROUP,
                "version": API_VERSION,
                "namespace": namespace,
                "plural": plural,
            }
        return self._client.custom_objects.list_cluster_custom_object, {
            "group": API_GROUP,
            "version": API_VERSION,
            "plural": plural,
        }

    # =========================================================================
    # APIMAPI and APIMService
    # =========================================================================

    def get_apim_api(self, name: str, namespace: str | None = None) -> ApimApi:
        """Get an APIMAPI by name."""
        return self.get_custom(APIMAPI_PLURAL, APIMAPI_KIND, ApimApi, name, namespace)

    def get_apim_service(self, name: str, namespace: str | None = None) -> ApimService:
        """Get an APIMService; defaults to the operator namespace."""
        return self.get_custom(
            APIMSERVICE_PLURAL,
            APIMSERVICE_KIND,
            ApimService,
            name,
            namespace or self.operator_namespace,
        )

    def patch_apim_api_status(self, name: str, namespace: str, status: dict[str, Any]) -> None:
        """Merge-patch the status of an APIMAPI."""
        self.patch_status(APIMAPI_PLURAL, APIMAPI_KIND, name, namespace, status)

    def patch_apim_api_annotations(
        self, name: str, namespace: str, annotations: dict[str, str | None]
    ) -> None:
        """Merge-patch annotations of an APIMAPI. A None value removes the key."""
        self._log.debug("patching_annotations", name=name, namespace=namespace)
        try:
            self._client.custom_objects.patch_namespaced_custom_object(
                API_GROUP,
                API_VERSION,
                namespace,
                APIMAPI_PLURAL,
                name,
                {"metadata": {"annotations": annotations}},
            )
        except Exception as e:
            self._handle_api_error(e, APIMAPI_KIND, name, namespace)

    # =========================================================================
    # Work orders (APIMAPIDeployment)
    # =========================================================================

    def get_work_order(self, name: str, namespace: str | None = None) -> WorkOrder:
        """Get a work order by name."""
        return self.get_custom(WORK_ORDER_PLURAL, WORK_ORDER_KIND, WorkOrder, name, namespace)

    def create_work_order(
        self,
        name: str,
        namespace: str,
        spec: WorkOrderSpec,
        owner: ApimApi | None = None,
    ) -> WorkOrder:
        """Create a work order, owned by its APIMAPI when one is given.

        Raises:
            KubernetesConflictError: If a work order with this name exists.
        """
        metadata: dict[str, Any] = {"name": name, "namespace": namespace}
        if owner is not None and owner.uid:
            metadata["ownerReferences"] = [
                {
                    "apiVersion": f"{API_GROUP}/{API_VERSION}",
                    "kind": APIMAPI_KIND,
                    "name": owner.name,
                    "uid": owner.uid,
                    "controller": True,
                    "blockOwnerDeletion": True,
                }
            ]
        body = {
            "apiVersion": f"{API_GROUP}/{API_VERSION}",
            "kind": WORK_ORDER_KIND,
            "metadata": metadata,
            "spec": spec.to_k8s_spec(),
        }
        self._log.info("creating_work_order", name=name, namespace=namespace)
        try:
            result = self._client.custom_objects.create_namespaced_custom_object(
                API_GROUP, API_VERSION, namespace, WORK_ORDER_PLURAL, body
            )
            return WorkOrder.from_k8s_object(result)
        except Exception as e:
            self._handle_api_error(e, WORK_ORDER_KIND, name, namespace)

    def delete_work_order(self, name: str, namespace: str) -> None:
        """Delete a work order.

        Raises:
            KubernetesNotFoundError: If it does not exist.
        """
        self._log.info("deleting_work_order", name=name, namespace=namespace)
        try:
            self._client.custom_objects.delete_namespaced_custom_object(
                API_GROUP, API_VERSION, namespace, WORK_ORDER_PLURAL, name
            )
        except Exception as e:
            self._handle_api_error(e, WORK_ORDER_KIND, name, namespace)

    def patch_work_order_status(self, name: str, namespace: str, status: dict[str, Any]) -> None:
        """Merge-patch the status of a work order."""
        self.patch_status(WORK_ORDER_PLURAL, WORK_ORDER_KIND, name, namespace, status)

    # =========================================================================
    # Events
    # =========================================================================

    def create_event(
        self,
        involved: K8sEntityBase,
        kind: str,
        reason: str,
        message: str,
        event_type: str = "Warning",
    ) -> None:
        """Record an Event against a resource."""
        from kubernetes.client import (
            CoreV1Event,
            V1EventSource,
            V1ObjectMeta,
            V1ObjectReference,
        )

        ns = self._resolve_namespace(involved.namespace)
        now = datetime.now(UTC)
        event = CoreV1Event(
            metadata=V1ObjectMeta(generate_name=f"{involved.name}.", namespace=ns),
            involved_object=V1ObjectReference(
                api_version=f"{API_GROUP}/{API_VERSION}",
                kind=kind,
                name=involved.name,
                namespace=ns,
                uid=involved.uid,
            ),
            reason=reason,
            message=message,
            type=event_type,
            count=1,
            first_timestamp=now,
            last_timestamp=now,
            source=V1EventSource(component=EVENT_SOURCE_COMPONENT),
        )
        self._log.debug("creating_event", kind=kind, name=involved.name, reason=reason)
        try:
            self._client.core_v1.create_namespaced_event(namespace=ns, body=event)
        except Exception as e:
            self._handle_api_error(e, "Event", involved.name, ns)
