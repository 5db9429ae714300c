"""Readiness detection for application ReplicaSets.

A readiness signal fires when a ReplicaSet's ready replica count crosses
from zero to positive. Repeated notifications for an already ready
ReplicaSet and ReplicaSets scaled to zero never fire.

Creating or editing an APIMAPI also raises a signal when its application
already has ready replicas, so a declaration added after a rollout is
published without waiting for the next one.
"""

from __future__ import annotations

import threading
from dataclasses import dataclass
from enum import Enum
from typing import TYPE_CHECKING

import structlog

from apim_operator.integrations.kubernetes.exceptions import KubernetesNotFoundError
from apim_operator.integrations.kubernetes.models.workloads import APP_NAME_LABEL

if TYPE_CHECKING:
    from apim_operator.integrations.kubernetes.models.workloads import ReplicaSetSummary
    from apim_operator.runtime.results import ReconcileResult
    from apim_operator.services.apim.dispatcher import WorkOrderDispatcher
    from apim_operator.services.kubernetes.resource_manager import ApimResourceManager

logger = structlog.get_logger()


class ReadinessState(str, Enum):
    """Last observed readiness of one ReplicaSet."""

    UNKNOWN = "Unknown"
    NOT_READY = "NotReady"
    READY = "Ready"


@dataclass(frozen=True)
class ReadinessSignal:
    """An application's replicas just became ready."""

    namespace: str
    app_name: str
    replica_set: str


class ReadinessDetector:
    """Edge-triggered readiness state machine keyed by ``namespace/name``."""

    def __init__(
        self,
        resources: ApimResourceManager,
        dispatcher: WorkOrderDispatcher,
    ) -> None:
        self._resources = resources
        self._dispatcher = dispatcher
        self._states: dict[str, ReadinessState] = {}
        # APIMAPI generation last handed to the dispatcher, per application
        self._dispatched: dict[str, int | None] = {}
        self._lock = threading.Lock()
        self._log = logger.bind(component="readiness")

    def state_of(self, key: str) -> ReadinessState:
        """Current state of a ReplicaSet."""
        with self._lock:
            return self._states.get(key, ReadinessState.UNKNOWN)

    def forget(self, key: str) -> None:
        """Drop the state of a deleted ReplicaSet."""
        with self._lock:
            self._states.pop(key, None)

    def observe(self, rs: ReplicaSetSummary) -> bool:
        """Record a notification and report whether it is a ready transition."""
        if rs.is_decommissioned:
            return False

        new_state = ReadinessState.READY if rs.ready_replicas > 0 else ReadinessState.NOT_READY
        with self._lock:
            previous = self._states.get(rs.key, ReadinessState.UNKNOWN)
            self._states[rs.key] = new_state
        return new_state is ReadinessState.READY and previous is not ReadinessState.READY

    def reconcile(self, key: str) -> ReconcileResult | None:
        """Handle one ReplicaSet notification.

        If handing the signal off fails, the previous state is restored so
        that the retried notification fires again.
        """
        namespace, _, name = key.partition("/")
        try:
            rs = self._resources.get_replica_set(name, namespace)
        except KubernetesNotFoundError:
            self.forget(key)
            return None

        app_name = rs.app_name
        if not app_name:
            return None

        previous = self.state_of(key)
        if not self.observe(rs):
            return None

        signal = ReadinessSignal(namespace=namespace, app_name=app_name, replica_set=name)
        self._log.info(
            "readiness_signal",
            app=app_name,
            namespace=namespace,
            replica_set=name,
            ready_replicas=rs.ready_replicas,
        )
        try:
            self.handle_signal(signal)
        except Exception:
            with self._lock:
                self._states[key] = previous
            raise
        return None

    def handle_signal(self, signal: ReadinessSignal) -> None:
        """Resolve the application's declarations and dispatch a work order.

        A missing APIMAPI or APIMService drops the signal.
        """
        log = self._log.bind(app=signal.app_name, namespace=signal.namespace)
        try:
            api = self._resources.get_apim_api(signal.app_name, signal.namespace)
        except KubernetesNotFoundError:
            log.info("signal_dropped", reason="no APIMAPI for application")
            return

        if not api.spec.apim_service:
            log.warning("signal_dropped", reason="APIMAPI does not reference an APIMService")
            return

        try:
            service = self._resources.get_apim_service(api.spec.apim_service)
        except KubernetesNotFoundError:
            log.warning(
                "signal_dropped",
                reason="APIMService not found",
                apim_service=api.spec.apim_service,
            )
            return

        work_order = self._dispatcher.dispatch(api, service)
        if work_order is not None:
            with self._lock:
                self._dispatched[f"{signal.namespace}/{signal.app_name}"] = api.generation

    def reconcile_declaration(self, key: str) -> ReconcileResult | None:
        """Handle a created or edited APIMAPI.

        The application is synchronized if one of its ReplicaSets is ready
        and not scaled to zero. A generation that was already dispatched is
        not dispatched again.
        """
        namespace, _, name = key.partition("/")
        try:
            api = self._resources.get_apim_api(name, namespace)
        except KubernetesNotFoundError:
            with self._lock:
                self._dispatched.pop(key, None)
            return None
        if api.is_deleting:
            return None

        with self._lock:
            if key in self._dispatched and self._dispatched[key] == api.generation:
                return None

        log = self._log.bind(app=name, namespace=namespace, generation=api.generation)
        ready = [
            rs
            for rs in self._resources.list_replica_sets(namespace, f"{APP_NAME_LABEL}={name}")
            if not rs.is_decommissioned and rs.ready_replicas > 0
        ]
        if not ready:
            log.debug("declaration_waiting_for_readiness")
            return None

        log.info("declaration_signal", replica_set=ready[0].name)
        self.handle_signal(
            ReadinessSignal(namespace=namespace, app_name=name, replica_set=ready[0].name)
        )
        return None
