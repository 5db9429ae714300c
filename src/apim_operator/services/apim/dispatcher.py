"""Work-order dispatch.

Keeps at most one live APIMAPIDeployment per application: an existing work
order is deleted, and its disappearance observed, before the replacement is
created. Dispatches for the same application are also serialized in-process.
"""

from __future__ import annotations

import threading
import time
from contextlib import contextmanager
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any

import structlog
from pydantic import ValidationError
from tenacity import (
    RetryCallState,
    retry,
    retry_if_result,
    stop_after_attempt,
    stop_after_delay,
    wait_fixed,
)

from apim_operator.integrations.kubernetes.exceptions import (
    KubernetesConflictError,
    KubernetesError,
    KubernetesNotFoundError,
)
from apim_operator.integrations.kubernetes.models.apim import (
    APIMAPI_KIND,
    ApimApi,
    ApimService,
    WorkOrder,
    WorkOrderSpec,
)
from apim_operator.services.apim.exceptions import DispatchError

if TYPE_CHECKING:
    from collections.abc import Callable, Iterator

    from apim_operator.core.config import SyncTimingConfig
    from apim_operator.services.kubernetes.resource_manager import ApimResourceManager

logger = structlog.get_logger()

INVALID_API_REASON = "InvalidAPIMAPI"
DELETE_POLL_INTERVAL = 0.5


@dataclass
class _AppLock:
    lock: threading.Lock = field(default_factory=threading.Lock)
    users: int = 0


def format_validation_error(error: ValidationError) -> str:
    """Render a pydantic error as one line, using the CRD field names."""
    parts = []
    for item in error.errors():
        location = ".".join(str(loc) for loc in item["loc"]) or "spec"
        parts.append(f"{location}: {item['msg']}")
    return "; ".join(parts)


class WorkOrderDispatcher:
    """Creates work orders from the current APIMAPI and APIMService."""

    def __init__(
        self,
        resources: ApimResourceManager,
        timing: SyncTimingConfig,
        *,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        self._resources = resources
        self._delete_timeout = timing.dispatch_delete_timeout
        self._sleep = sleep
        self._locks: dict[str, _AppLock] = {}
        self._locks_guard = threading.Lock()
        self._log = logger.bind(component="dispatcher")

    @contextmanager
    def _app_lock(self, key: str) -> Iterator[None]:
        """Serialize dispatches for one application; the entry goes when unused."""
        with self._locks_guard:
            entry = self._locks.setdefault(key, _AppLock())
            entry.users += 1
        try:
            with entry.lock:
                yield
        finally:
            with self._locks_guard:
                entry.users -= 1
                if entry.users == 0:
                    del self._locks[key]

    def dispatch(self, api: ApimApi, service: ApimService) -> WorkOrder | None:
        """Replace the application's work order with a fresh snapshot.

        Returns:
            The created work order, or None if the declarations are invalid.

        Raises:
            DispatchError: If the old work order does not go away in time or
                the new one conflicts with another.
            KubernetesError: For other substrate failures.
        """
        namespace = api.namespace or self._resources.operator_namespace
        log = self._log.bind(app=api.name, namespace=namespace)

        try:
            spec = WorkOrderSpec.from_desired(api, service)
        except ValidationError as e:
            message = f"Invalid APIMAPI configuration: {format_validation_error(e)}"
            log.error("invalid_apimapi", error=message)
            self._record_invalid(api, message)
            return None

        with self._app_lock(f"{namespace}/{api.name}"):
            self._remove_existing(api.name, namespace)
            try:
                work_order = self._resources.create_work_order(
                    api.name, namespace, spec, owner=api
                )
            except KubernetesConflictError as e:
                raise DispatchError(
                    "A work order for this application appeared concurrently",
                    namespace,
                    api.name,
                ) from e

        log.info("dispatched_work_order", api_id=spec.api_id, apim_service=spec.apim_service)
        return work_order

    def _record_invalid(self, api: ApimApi, message: str) -> None:
        try:
            self._resources.create_event(api, APIMAPI_KIND, INVALID_API_REASON, message)
        except KubernetesError as e:
            self._log.warning("event_not_recorded", app=api.name, error=str(e))

    def _remove_existing(self, name: str, namespace: str) -> None:
        try:
            self._resources.delete_work_order(name, namespace)
        except KubernetesNotFoundError:
            return
        self._log.info("deleted_stale_work_order", app=name, namespace=namespace)
        self._wait_until_gone(name, namespace)

    def _is_gone(self, name: str, namespace: str) -> bool:
        try:
            self._resources.get_work_order(name, namespace)
        except KubernetesNotFoundError:
            return True
        return False

    def _wait_until_gone(self, name: str, namespace: str) -> None:
        def give_up(retry_state: RetryCallState) -> Any:
            raise DispatchError(
                f"Work order still present {self._delete_timeout}s after deletion",
                namespace,
                name,
            )

        max_polls = max(1, int(self._delete_timeout / DELETE_POLL_INTERVAL))
        wait_for_deletion = retry(
            retry=retry_if_result(lambda gone: not gone),
            stop=stop_after_attempt(max_polls) | stop_after_delay(self._delete_timeout),
            wait=wait_fixed(DELETE_POLL_INTERVAL),
            sleep=self._sleep,
            retry_error_callback=give_up,
        )(self._is_gone)
        wait_for_deletion(name, namespace)
