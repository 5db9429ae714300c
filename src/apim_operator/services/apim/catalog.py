"""Reconcilers for the APIM catalog resources.

APIMProduct, APIMTag and APIMInboundPolicy each map to one idempotent
control-plane upsert. A resource is applied once per spec generation;
``status.observedGeneration`` records the generation that was applied.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import TYPE_CHECKING, Any, ClassVar, Generic, TypeVar

import structlog

from apim_operator.integrations.apim.client import ApimManagementClient
from apim_operator.integrations.apim.exceptions import ApimAPIError
from apim_operator.integrations.apim.models import ServiceCoordinates
from apim_operator.integrations.identity.exceptions import IdentityError
from apim_operator.integrations.kubernetes.exceptions import KubernetesNotFoundError
from apim_operator.integrations.kubernetes.models.apim import (
    APIMINBOUNDPOLICY_KIND,
    APIMINBOUNDPOLICY_PLURAL,
    APIMPRODUCT_KIND,
    APIMPRODUCT_PLURAL,
    APIMTAG_KIND,
    APIMTAG_PLURAL,
    PHASE_CREATED,
    PHASE_ERROR,
    ApimInboundPolicy,
    ApimProduct,
    ApimTag,
    CatalogResource,
)
from apim_operator.runtime.results import ReconcileResult

if TYPE_CHECKING:
    from apim_operator.core.config import SyncTimingConfig
    from apim_operator.integrations.apim.config import ApimConnectionConfig
    from apim_operator.integrations.identity.credential import WorkloadIdentityCredential
    from apim_operator.services.apim.executor import ClientFactory
    from apim_operator.services.kubernetes.resource_manager import ApimResourceManager

logger = structlog.get_logger()

_R = TypeVar("_R", bound=CatalogResource)


class CatalogReconciler(ABC, Generic[_R]):
    """Shared flow: resolve service, get token, upsert, record status."""

    kind: ClassVar[str]
    plural: ClassVar[str]
    model: ClassVar[type[Any]]

    def __init__(
        self,
        resources: ApimResourceManager,
        credential: WorkloadIdentityCredential,
        timing: SyncTimingConfig,
        apim_config: ApimConnectionConfig,
        *,
        client_factory: ClientFactory = ApimManagementClient,
    ) -> None:
        self._resources = resources
        self._credential = credential
        self._timing = timing
        self._apim_config = apim_config
        self._client_factory = client_factory
        self._log = logger.bind(component="catalog", kind=self.kind)

    def service_name(self, resource: _R) -> str:
        """Name of the APIMService the resource targets."""
        return str(resource.spec.apim_service)  # type: ignore[attr-defined]

    @abstractmethod
    def apply(
        self, client: ApimManagementClient, coords: ServiceCoordinates, resource: _R
    ) -> None:
        """Perform the control-plane upsert for one resource."""

    def reconcile(self, key: str) -> ReconcileResult | None:
        """Apply the resource behind ``key`` if its generation is new."""
        namespace, _, name = key.partition("/")
        try:
            resource: _R = self._resources.get_custom(
                self.plural, self.kind, self.model, name, namespace
            )
        except KubernetesNotFoundError:
            return None

        if not resource.needs_reconcile:
            return None

        log = self._log.bind(name=name, namespace=namespace)
        try:
            service = self._resources.get_apim_service(self.service_name(resource))
        except KubernetesNotFoundError:
            message = f"APIMService '{self.service_name(resource)}' not found"
            return self._record_error(resource, message, self._timing.apim_requeue_delay)

        try:
            token = self._credential.get_token(self._apim_config.token_scope)
        except IdentityError as e:
            log.error("token_unavailable", error=str(e))
            return self._record_error(
                resource, "Failed to get Azure token", self._timing.credential_requeue_delay
            )

        coords = ServiceCoordinates(
            subscription_id=service.spec.subscription,
            resource_group=service.spec.resource_group,
            service_name=service.spec.name,
        )
        try:
            with self._client_factory(self._apim_config, token.token) as client:
                self.apply(client, coords, resource)
        except ApimAPIError as e:
            return self._record_error(resource, str(e), self._timing.apim_requeue_delay)

        self._patch_status(
            resource,
            {
                "phase": PHASE_CREATED,
                "message": f"{self.kind} applied",
                "observedGeneration": resource.generation,
            },
        )
        log.info("catalog_resource_applied", generation=resource.generation)
        return None

    def _record_error(self, resource: _R, message: str, requeue_after: float) -> ReconcileResult:
        self._log.error(
            "catalog_resource_failed",
            name=resource.name,
            namespace=resource.namespace,
            error=message,
        )
        self._patch_status(resource, {"phase": PHASE_ERROR, "message": message})
        return ReconcileResult.requeue(requeue_after)

    def _patch_status(self, resource: _R, status: dict[str, Any]) -> None:
        self._resources.patch_status(
            self.plural,
            self.kind,
            resource.name,
            resource.namespace or self._resources.operator_namespace,
            status,
        )


class ProductReconciler(CatalogReconciler[ApimProduct]):
    """Upserts APIM products."""

    kind = APIMPRODUCT_KIND
    plural = APIMPRODUCT_PLURAL
    model = ApimProduct

    def apply(
        self, client: ApimManagementClient, coords: ServiceCoordinates, resource: ApimProduct
    ) -> None:
        spec = resource.spec
        client.upsert_group(
            coords,
            spec.product_id,
            spec.display_name or spec.product_id,
            spec.description,
            spec.published,
        )


class TagReconciler(CatalogReconciler[ApimTag]):
    """Upserts APIM tags."""

    kind = APIMTAG_KIND
    plural = APIMTAG_PLURAL
    model = ApimTag

    def apply(
        self, client: ApimManagementClient, coords: ServiceCoordinates, resource: ApimTag
    ) -> None:
        client.upsert_category(
            coords, resource.spec.tag_id, resource.spec.display_name or resource.spec.tag_id
        )


class InboundPolicyReconciler(CatalogReconciler[ApimInboundPolicy]):
    """Upserts API or operation scoped policies."""

    kind = APIMINBOUNDPOLICY_KIND
    plural = APIMINBOUNDPOLICY_PLURAL
    model = ApimInboundPolicy

    def apply(
        self,
        client: ApimManagementClient,
        coords: ServiceCoordinates,
        resource: ApimInboundPolicy,
    ) -> None:
        spec = resource.spec
        client.upsert_inbound_policy(
            coords, spec.api_id, spec.policy_content, operation_id=spec.operation_id or None
        )
