"""Kubernetes API client wrapper.

Wraps the official kubernetes Python client with in-cluster/kubeconfig
loading, lazily created API groups, and translation of ``ApiException``
into the operator's own exceptions.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any

import structlog

from apim_operator.integrations.kubernetes.exceptions import (
    KubernetesAuthError,
    KubernetesConflictError,
    KubernetesConnectionError,
    KubernetesError,
    KubernetesNotFoundError,
    KubernetesValidationError,
)

if TYPE_CHECKING:
    from kubernetes.client import AppsV1Api, CoreV1Api, CustomObjectsApi
    from kubernetes.watch import Watch

    from apim_operator.integrations.kubernetes.config import KubernetesConnectionConfig

logger = structlog.get_logger()


class KubernetesClient:
    """Kubernetes API client used by every operator component.

    Example:
        ```python
        from apim_operator.integrations.kubernetes import (
            KubernetesClient,
            KubernetesConnectionConfig,
        )

        with KubernetesClient(KubernetesConnectionConfig.from_env()) as client:
            rs = client.apps_v1.read_namespaced_replica_set("orders-7d9", "shop")
        ```
    """

    def __init__(self, connection_config: KubernetesConnectionConfig) -> None:
        """Initialize the client and load cluster credentials.

        Args:
            connection_config: Connection settings.

        Raises:
            KubernetesConnectionError: If no usable configuration is found.
        """
        self._config = connection_config
        self._current_context: str | None = None

        self._core_v1: CoreV1Api | None = None
        self._apps_v1: AppsV1Api | None = None
        self._custom_objects: CustomObjectsApi | None = None

        self._load_config()

        logger.info(
            "Kubernetes client initialized",
            context=self._current_context,
            request_timeout=connection_config.request_timeout,
        )

    def _load_config(self) -> None:
        """Load in-cluster config or kubeconfig, falling back to the other."""
        from kubernetes import config
        from kubernetes.config import ConfigException

        loaders = [self._load_incluster, self._load_kubeconfig]
        if not self._config.in_cluster:
            loaders.reverse()

        last_error: Exception | None = None
        for loader in loaders:
            try:
                loader(config)
                break
            except ConfigException as e:
                last_error = e
        else:
            raise KubernetesConnectionError(
                message="Cannot load Kubernetes configuration. "
                "Ensure kubeconfig exists or running inside a cluster.",
                original_error=last_error,
            )

        self._invalidate_api_cache()

    def _load_incluster(self, config: Any) -> None:
        config.load_incluster_config()
        self._current_context = "in-cluster"
        logger.debug("loaded_incluster_config")

    def _load_kubeconfig(self, config: Any) -> None:
        config.load_kube_config(
            config_file=self._config.kubeconfig,
            context=self._config.context,
        )
        self._current_context = self._config.context or "current-context"
        logger.debug(
            "loaded_kubeconfig",
            context=self._config.context,
            kubeconfig=self._config.kubeconfig,
        )

    def _invalidate_api_cache(self) -> None:
        """Clear cached API group instances."""
        self._core_v1 = None
        self._apps_v1 = None
        self._custom_objects = None

    # =========================================================================
    # Lazy API Group Accessors
    # =========================================================================

    @property
    def core_v1(self) -> CoreV1Api:
        """Get CoreV1Api instance (events)."""
        if self._core_v1 is None:
            from kubernetes.client import CoreV1Api

            self._core_v1 = CoreV1Api()
        return self._core_v1

    @property
    def apps_v1(self) -> AppsV1Api:
        """Get AppsV1Api instance (replicasets)."""
        if self._apps_v1 is None:
            from kubernetes.client import AppsV1Api

            self._apps_v1 = AppsV1Api()
        return self._apps_v1

    @property
    def custom_objects(self) -> CustomObjectsApi:
        """Get CustomObjectsApi instance (apim.operator.io resources)."""
        if self._custom_objects is None:
            from kubernetes.client import CustomObjectsApi

            self._custom_objects = CustomObjectsApi()
        return self._custom_objects

    def new_watch(self) -> Watch:
        """Create a fresh watch helper for streaming list endpoints."""
        from kubernetes.watch import Watch

        return Watch()

    # =========================================================================
    # Error Translation
    # =========================================================================

    @staticmethod
    def translate_api_exception(
        e: Exception,
        resource_type: str | None = None,
        resource_name: str | None = None,
        namespace: str | None = None,
    ) -> KubernetesError:
        """Translate a kubernetes ApiException to an operator exception.

        Args:
            e: The original exception.
            resource_type: Type of resource being operated on.
            resource_name: Name of the resource.
            namespace: Namespace of the resource.

        Returns:
            An appropriate KubernetesError subclass.
        """
        from kubernetes.client import ApiException
        from urllib3.exceptions import HTTPError

        if isinstance(e, KubernetesError):
            return e

        if isinstance(e, HTTPError):
            return KubernetesConnectionError(
                message=f"Kubernetes API unreachable: {e}",
                original_error=e,
            )

        if not isinstance(e, ApiException):
            return KubernetesError(
                message=str(e),
                resource_type=resource_type,
                resource_name=resource_name,
                namespace=namespace,
            )

        status = e.status

        if status in (401, 403):
            return KubernetesAuthError(
                message=e.reason or "Authentication/authorization failed",
                status_code=status,
                reason=e.reason,
            )

        if status == 404:
            return KubernetesNotFoundError(
                resource_type=resource_type,
                resource_name=resource_name,
                namespace=namespace,
            )

        if status == 409:
            return KubernetesConflictError(
                resource_type=resource_type,
                resource_name=resource_name,
                namespace=namespace,
            )

        if status in (400, 422):
            return KubernetesValidationError(
                message=e.reason or "Validation failed",
                status_code=status,
            )

        return KubernetesError(
            message=e.reason or f"Kubernetes API error: {status}",
            status_code=status,
            resource_type=resource_type,
            resource_name=resource_name,
            namespace=namespace,
        )

    # =========================================================================
    # Properties
    # =========================================================================

    @property
    def request_timeout(self) -> int:
        """Per-request timeout passed as ``_request_timeout``."""
        return self._config.request_timeout

    @property
    def default_namespace(self) -> str:
        """Namespace used when a call does not name one."""
        return self._config.namespace

    def get_current_context(self) -> str:
        """Get the current context name, or 'in-cluster' inside a pod."""
        return self._current_context or "unknown"

    # =========================================================================
    # Lifecycle
    # =========================================================================

    def close(self) -> None:
        """Close the client and release resources."""
        self._invalidate_api_cache()
        logger.debug("Kubernetes client closed")

    def __enter__(self) -> KubernetesClient:
        """Context manager entry."""
        return self

    def __exit__(self, *args: Any) -> None:
        """Context manager exit."""
        self.close()
