"""Kubernetes resource managers."""

from apim_operator.services.kubernetes.base import K8sBaseManager
from apim_operator.services.kubernetes.resource_manager import ApimResourceManager

__all__ = ["ApimResourceManager", "K8sBaseManager"]
