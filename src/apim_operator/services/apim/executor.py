"""Sync executor.

Runs the synchronization sequence for one APIMAPIDeployment work order:

1. fetch the OpenAPI document (bounded retry)
2. obtain a management token
3. import the definition
4. set the backend URL and subscription requirement
5. assign products and tags
6. read the service hosts and record the observed state on the APIMAPI
7. delete the work order

A failure requeues the work order and the next run starts again at step 1.
Every control-plane call is an idempotent upsert, so repeating the whole
sequence converges to the same remote state.
"""

from __future__ import annotations

from collections.abc import Callable
from datetime import UTC, datetime
from typing import TYPE_CHECKING, Any

import structlog
from pydantic import ValidationError

from apim_operator.integrations.apim.client import ApimManagementClient
from apim_operator.integrations.apim.exceptions import ApimAPIError
from apim_operator.integrations.apim.models import ServiceCoordinates, ServiceHosts
from apim_operator.integrations.identity.exceptions import IdentityError
from apim_operator.integrations.kubernetes.exceptions import KubernetesNotFoundError
from apim_operator.integrations.kubernetes.models.apim import (
    STATUS_ERROR,
    STATUS_OK,
    WorkOrder,
    WorkOrderPhase,
    WorkOrderSpec,
)
from apim_operator.runtime.results import ReconcileResult
from apim_operator.services.apim.dispatcher import format_validation_error
from apim_operator.services.apim.exceptions import OpenAPIFetchError

if TYPE_CHECKING:
    from apim_operator.core.config import SyncTimingConfig
    from apim_operator.integrations.apim.config import ApimConnectionConfig
    from apim_operator.integrations.identity.credential import WorkloadIdentityCredential
    from apim_operator.services.apim.openapi import OpenAPIFetcher
    from apim_operator.services.kubernetes.resource_manager import ApimResourceManager

logger = structlog.get_logger()

ClientFactory = Callable[["ApimConnectionConfig", str], ApimManagementClient]


def rfc3339_now() -> str:
    """Current UTC time in RFC 3339 form with second precision."""
    return datetime.now(UTC).strftime("%Y-%m-%dT%H:%M:%SZ")


def coordinates_for(spec: WorkOrderSpec) -> ServiceCoordinates:
    """Service coordinates recorded in a work order."""
    return ServiceCoordinates(
        subscription_id=spec.subscription,
        resource_group=spec.resource_group,
        service_name=spec.apim_service,
    )


def observed_hosts(hosts: ServiceHosts, route_prefix: str) -> dict[str, str]:
    """Public and portal URLs derived from the service hosts."""
    result: dict[str, str] = {}
    if hosts.gateway_host:
        result["apiHost"] = f"https://{hosts.gateway_host}{route_prefix}"
    if hosts.portal_host:
        result["developerPortalHost"] = f"https://{hosts.portal_host}"
    return result


class _StepFailed(Exception):
    def __init__(self, phase: WorkOrderPhase, message: str, requeue_after: float) -> None:
        super().__init__(message)
        self.phase = phase
        self.message = message
        self.requeue_after = requeue_after


class SyncExecutor:
    """Consumes work orders and drives the control plane to match them."""

    def __init__(
        self,
        resources: ApimResourceManager,
        credential: WorkloadIdentityCredential,
        fetcher: OpenAPIFetcher,
        timing: SyncTimingConfig,
        apim_config: ApimConnectionConfig,
        *,
        client_factory: ClientFactory = ApimManagementClient,
        clock: Callable[[], str] = rfc3339_now,
    ) -> None:
        self._resources = resources
        self._credential = credential
        self._fetcher = fetcher
        self._timing = timing
        self._apim_config = apim_config
        self._client_factory = client_factory
        self._clock = clock
        self._log = logger.bind(component="executor")

    def reconcile(self, key: str) -> ReconcileResult | None:
        """Load a work order by key and execute it."""
        namespace, _, name = key.partition("/")
        try:
            work_order = self._resources.get_work_order(name, namespace)
        except KubernetesNotFoundError:
            return None
        return self.execute(work_order)

    def execute(self, work_order: WorkOrder) -> ReconcileResult | None:
        """Run the synchronization sequence once.

        Returns:
            A requeue request after a failed step, otherwise None.
        """
        namespace = work_order.namespace or self._resources.operator_namespace
        log = self._log.bind(work_order=work_order.name, namespace=namespace)

        if work_order.is_deleting:
            log.debug("skipping_deleting_work_order")
            return None

        try:
            self._resources.get_apim_api(work_order.name, namespace)
        except KubernetesNotFoundError:
            log.info("work_order_dropped", reason="APIMAPI no longer exists")
            return None

        try:
            spec = work_order.validated_spec()
        except ValidationError as e:
            return self._fail(
                work_order,
                namespace,
                _StepFailed(
                    WorkOrderPhase.FETCHING,
                    f"Invalid work order: {format_validation_error(e)}",
                    self._timing.apim_requeue_delay,
                ),
            )

        log = log.bind(api_id=spec.api_id, apim_service=spec.apim_service)
        log.info("sync_started")
        try:
            hosts = self._run(spec, log)
        except _StepFailed as failure:
            return self._fail(work_order, namespace, failure)

        self._resources.patch_apim_api_status(
            work_order.name,
            namespace,
            self._success_status(spec, hosts),
        )
        self._delete_work_order(work_order.name, namespace)
        log.info("sync_completed", gateway_host=hosts.gateway_host)
        return None

    def _run(self, spec: WorkOrderSpec, log: Any) -> ServiceHosts:
        phase = WorkOrderPhase.FETCHING
        try:
            document = self._fetcher.fetch(spec.openapi_definition_url)
        except OpenAPIFetchError as e:
            raise _StepFailed(phase, str(e), self._timing.fetch_requeue_delay) from e

        phase = WorkOrderPhase.AUTHENTICATING
        try:
            token = self._credential.get_token(self._apim_config.token_scope)
        except IdentityError as e:
            raise _StepFailed(
                phase, f"Failed to get Azure token: {e}", self._timing.credential_requeue_delay
            ) from e

        coords = coordinates_for(spec)
        with self._client_factory(self._apim_config, token.token) as client:
            try:
                phase = WorkOrderPhase.IMPORTING
                api_id = client.import_definition(
                    coords, spec.api_id, spec.route_prefix, document, revision=spec.revision
                )

                phase = WorkOrderPhase.PATCHING
                client.set_backend_url(coords, api_id, spec.service_url)
                client.set_subscription_required(coords, api_id, spec.subscription_required)

                phase = WorkOrderPhase.ASSIGNING
                if spec.product_ids:
                    client.assign_to_groups(coords, spec.api_id, spec.product_ids)
                if spec.tag_ids:
                    client.assign_categories(coords, spec.api_id, spec.tag_ids)

                phase = WorkOrderPhase.FINALIZING
                hosts = client.read_service_hosts(coords)
            except ApimAPIError as e:
                raise _StepFailed(phase, str(e), self._timing.apim_requeue_delay) from e

        log.debug("control_plane_synchronized", effective_api_id=api_id)
        return hosts

    def _success_status(self, spec: WorkOrderSpec, hosts: ServiceHosts) -> dict[str, Any]:
        now = self._clock()
        status: dict[str, Any] = {
            "importedAt": now,
            "lastAttemptAt": now,
            "status": STATUS_OK,
            "message": f"API {spec.api_id} synchronized",
        }
        status.update(observed_hosts(hosts, spec.route_prefix))
        return status

    def _fail(
        self, work_order: WorkOrder, namespace: str, failure: _StepFailed
    ) -> ReconcileResult:
        now = self._clock()
        self._log.error(
            "sync_failed",
            work_order=work_order.name,
            namespace=namespace,
            phase=failure.phase.value,
            error=failure.message,
            requeue_after=failure.requeue_after,
        )
        try:
            self._resources.patch_work_order_status(
                work_order.name,
                namespace,
                {
                    "phase": failure.phase.value,
                    "status": STATUS_ERROR,
                    "message": failure.message,
                    "updatedAt": now,
                },
            )
        except KubernetesNotFoundError:
            self._log.debug("work_order_gone", work_order=work_order.name)
        self._resources.patch_apim_api_status(
            work_order.name,
            namespace,
            {"status": STATUS_ERROR, "message": failure.message, "lastAttemptAt": now},
        )
        return ReconcileResult.requeue(failure.requeue_after)

    def _delete_work_order(self, name: str, namespace: str) -> None:
        try:
            self._resources.delete_work_order(name, namespace)
        except KubernetesNotFoundError:
            self._log.debug("work_order_already_deleted", work_order=name)
