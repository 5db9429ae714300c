"""Mirror the observed public host onto the downstream link annotation."""

from __future__ import annotations

from typing import TYPE_CHECKING

import structlog

from apim_operator.integrations.kubernetes.exceptions import KubernetesNotFoundError
from apim_operator.integrations.kubernetes.models.apim import EXTERNAL_LINK_ANNOTATION

if TYPE_CHECKING:
    from apim_operator.integrations.kubernetes.models.apim import ApimApi
    from apim_operator.runtime.results import ReconcileResult
    from apim_operator.services.kubernetes.resource_manager import ApimResourceManager

logger = structlog.get_logger()


class StatusProjector:
    """Sole writer of the ``link.argocd.argoproj.io/external-link`` annotation."""

    def __init__(self, resources: ApimResourceManager) -> None:
        self._resources = resources

    def reconcile(self, key: str) -> ReconcileResult | None:
        """Project the status of the APIMAPI behind ``key``."""
        namespace, _, name = key.partition("/")
        try:
            api = self._resources.get_apim_api(name, namespace)
        except KubernetesNotFoundError:
            return None
        self.project(api)
        return None

    def project(self, api: ApimApi) -> bool:
        """Write the annotation if the observed host differs from it.

        Returns:
            True if the annotation was written.
        """
        host = api.status.api_host
        if not host or api.external_link == host:
            return False
        self._resources.patch_apim_api_annotations(
            api.name,
            api.namespace or self._resources.operator_namespace,
            {EXTERNAL_LINK_ANNOTATION: host},
        )
        logger.info("projected_external_link", app=api.name, namespace=api.namespace, host=host)
        return True
