"""Operator assembly: wires services to controllers and runs them."""

from __future__ import annotations

import threading
from typing import TYPE_CHECKING

import structlog

from apim_operator.integrations.kubernetes.models.apim import (
    APIMAPI_PLURAL,
    WORK_ORDER_PLURAL,
)
from apim_operator.runtime.controller import (
    Controller,
    EventFilter,
    GenerationChanged,
    Reconciler,
    accept_all,
    added_only,
)
from apim_operator.services.apim.catalog import (
    CatalogReconciler,
    InboundPolicyReconciler,
    ProductReconciler,
    TagReconciler,
)
from apim_operator.services.apim.dispatcher import WorkOrderDispatcher
from apim_operator.services.apim.executor import SyncExecutor
from apim_operator.services.apim.openapi import OpenAPIFetcher
from apim_operator.services.apim.projector import StatusProjector
from apim_operator.services.apim.readiness import ReadinessDetector
from apim_operator.services.kubernetes.resource_manager import ApimResourceManager

if TYPE_CHECKING:
    from apim_operator.core.config import OperatorConfig
    from apim_operator.integrations.apim.config import ApimConnectionConfig
    from apim_operator.integrations.identity.credential import WorkloadIdentityCredential
    from apim_operator.integrations.kubernetes.client import KubernetesClient
    from apim_operator.services.kubernetes.resource_manager import ListCall

logger = structlog.get_logger()

DECLARATIONS_CONTROLLER = f"{APIMAPI_PLURAL}-declarations"


class OperatorManager:
    """Owns every controller of the operator.

    Controllers:
        replicasets: readiness detection and dispatch
        apimapideployments: sync executor (creations only)
        apimapis: status projection
        apimapi-declarations: dispatch on APIMAPI creation or spec change
        apimproducts, apimtags, apiminboundpolicies: catalog upserts
    """

    def __init__(
        self,
        config: OperatorConfig,
        client: KubernetesClient,
        credential: WorkloadIdentityCredential,
        apim_config: ApimConnectionConfig,
    ) -> None:
        self.config = config
        self._credential = credential
        timing = config.timing
        watch_ns = config.watch_namespace

        self.resources = ApimResourceManager(client)
        self.fetcher = OpenAPIFetcher(timing)
        self.dispatcher = WorkOrderDispatcher(self.resources, timing)
        self.detector = ReadinessDetector(self.resources, self.dispatcher)
        self.executor = SyncExecutor(
            self.resources, credential, self.fetcher, timing, apim_config
        )
        self.projector = StatusProjector(self.resources)
        catalog: list[CatalogReconciler] = [  # type: ignore[type-arg]
            ProductReconciler(self.resources, credential, timing, apim_config),
            TagReconciler(self.resources, credential, timing, apim_config),
            InboundPolicyReconciler(self.resources, credential, timing, apim_config),
        ]

        self._client = client
        self.controllers: list[Controller] = [
            self._controller(
                "replicasets",
                self.resources.replica_set_list_call(watch_ns),
                self.detector.reconcile,
            ),
            self._controller(
                WORK_ORDER_PLURAL,
                self.resources.custom_list_call(WORK_ORDER_PLURAL, watch_ns),
                self.executor.reconcile,
                added_only,
            ),
            self._controller(
                APIMAPI_PLURAL,
                self.resources.custom_list_call(APIMAPI_PLURAL, watch_ns),
                self.projector.reconcile,
            ),
            self._controller(
                DECLARATIONS_CONTROLLER,
                self.resources.custom_list_call(APIMAPI_PLURAL, watch_ns),
                self.detector.reconcile_declaration,
                GenerationChanged(),
            ),
        ]
        for reconciler in catalog:
            self.controllers.append(
                self._controller(
                    reconciler.plural,
                    self.resources.custom_list_call(reconciler.plural, watch_ns),
                    reconciler.reconcile,
                    GenerationChanged(),
                )
            )

    def _controller(
        self,
        name: str,
        list_call: ListCall,
        reconcile: Reconciler,
        event_filter: EventFilter = accept_all,
    ) -> Controller:
        return Controller(
            name,
            self._client,
            list_call,
            reconcile,
            workers=self.config.workers,
            watch_timeout=self.config.watch_timeout,
            event_filter=event_filter,
        )

    def start(self) -> None:
        """Start every controller."""
        logger.info(
            "operator_starting",
            operator_namespace=self.config.operator_namespace,
            watch_namespace=self.config.watch_namespace or "<all>",
            controllers=[c.name for c in self.controllers],
        )
        for controller in self.controllers:
            controller.start()

    def stop(self) -> None:
        """Stop every controller and release HTTP clients."""
        for controller in self.controllers:
            controller.stop()
        self.fetcher.close()
        self._credential.close()
        logger.info("operator_stopped")

    def run(self, stop_event: threading.Event) -> None:
        """Run until ``stop_event`` is set."""
        self.start()
        try:
            stop_event.wait()
        finally:
            self.stop()
