"""Kubernetes substrate exceptions."""

from __future__ import annotations


class KubernetesError(Exception):
    """Base exception for Kubernetes API operations.

    Attributes:
        message: Human-readable error message.
        status_code: HTTP status code from the API server (if any).
        resource_type: Kind of resource involved (e.g., "APIMAPI").
        resource_name: Name of the resource involved.
        namespace: Namespace of the resource.
    """

    def __init__(
        self,
        message: str,
        status_code: int | None = None,
        resource_type: str | None = None,
        resource_name: str | None = None,
        namespace: str | None = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.status_code = status_code
        self.resource_type = resource_type
        self.resource_name = resource_name
        self.namespace = namespace

    def __str__(self) -> str:
        """Return string representation of the error."""
        parts = [self.message]
        if self.status_code:
            parts.append(f"(status: {self.status_code})")
        if self.resource_type and self.resource_name:
            loc = f"[{self.resource_type}/{self.resource_name}"
            if self.namespace:
                loc += f" in {self.namespace}"
            loc += "]"
            parts.append(loc)
        return " ".join(parts)


class KubernetesConnectionError(KubernetesError):
    """Raised when the API server cannot be reached or configuration cannot be loaded."""

    def __init__(
        self,
        message: str = "Failed to connect to Kubernetes cluster",
        original_error: Exception | None = None,
    ) -> None:
        super().__init__(message=message)
        self.original_error = original_error


class KubernetesAuthError(KubernetesError):
    """Raised on 401/403, typically missing RBAC for the operator's service account."""

    def __init__(
        self,
        message: str = "Kubernetes authentication/authorization failed",
        status_code: int | None = 401,
        reason: str | None = None,
    ) -> None:
        super().__init__(message=message, status_code=status_code)
        self.reason = reason


class KubernetesNotFoundError(KubernetesError):
    """Raised when a resource does not exist (404)."""

    def __init__(
        self,
        message: str = "Kubernetes resource not found",
        resource_type: str | None = None,
        resource_name: str | None = None,
        namespace: str | None = None,
    ) -> None:
        if resource_type and resource_name:
            message = f"{resource_type} '{resource_name}' not found"
            if namespace:
                message += f" in namespace '{namespace}'"
        super().__init__(
            message=message,
            status_code=404,
            resource_type=resource_type,
            resource_name=resource_name,
            namespace=namespace,
        )


class KubernetesValidationError(KubernetesError):
    """Raised when the API server rejects a request body (400/422)."""

    def __init__(
        self,
        message: str = "Invalid resource specification",
        status_code: int | None = 422,
    ) -> None:
        super().__init__(message=message, status_code=status_code)


class KubernetesConflictError(KubernetesError):
    """Raised on 409, e.g. a work order with the same name still exists."""

    def __init__(
        self,
        message: str = "Resource conflict",
        resource_type: str | None = None,
        resource_name: str | None = None,
        namespace: str | None = None,
    ) -> None:
        if resource_type and resource_name:
            message = f"{resource_type} '{resource_name}' already exists"
            if namespace:
                message += f" in namespace '{namespace}'"
        super().__init__(
            message=message,
            status_code=409,
            resource_type=resource_type,
            resource_name=resource_name,
            namespace=namespace,
        )
