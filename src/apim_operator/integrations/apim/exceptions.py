"""Azure API Management custom exceptions."""

from __future__ import annotations

from typing import Any


class ApimAPIError(Exception):
    """Base exception for API Management control-plane errors.

    Attributes:
        message: Human-readable error message.
        status_code: HTTP status code from the management API (if applicable).
        response_body: Raw response body (if available).
        endpoint: The management endpoint that was called.
    """

    def __init__(
        self,
        message: str,
        status_code: int | None = None,
        response_body: dict[str, Any] | None = None,
        endpoint: str | None = None,
    ) -> None:
        """Initialize ApimAPIError.

        Args:
            message: Human-readable error message.
            status_code: HTTP status code from the management API.
            response_body: Raw response body.
            endpoint: The management endpoint that was called.
        """
        super().__init__(message)
        self.message = message
        self.status_code = status_code
        self.response_body = response_body
        self.endpoint = endpoint

    def __str__(self) -> str:
        """Return string representation of the error."""
        parts = [self.message]
        if self.status_code:
            parts.append(f"(status: {self.status_code})")
        if self.endpoint:
            parts.append(f"[endpoint: {self.endpoint}]")
        return " ".join(parts)


class ApimConnectionError(ApimAPIError):
    """Raised when the management endpoint cannot be reached or times out."""

    def __init__(
        self,
        message: str = "Failed to connect to Azure API Management",
        endpoint: str | None = None,
        original_error: Exception | None = None,
    ) -> None:
        super().__init__(message=message, endpoint=endpoint)
        self.original_error = original_error


class ApimAuthError(ApimAPIError):
    """Raised on 401/403, e.g. an expired token or a missing role assignment."""

    def __init__(
        self,
        message: str = "Authentication to Azure API Management failed",
        status_code: int | None = 401,
        response_body: dict[str, Any] | None = None,
        endpoint: str | None = None,
    ) -> None:
        super().__init__(
            message=message,
            status_code=status_code,
            response_body=response_body,
            endpoint=endpoint,
        )


class ApimNotFoundError(ApimAPIError):
    """Raised when a management resource does not exist (404)."""

    def __init__(
        self,
        message: str = "API Management resource not found",
        response_body: dict[str, Any] | None = None,
        endpoint: str | None = None,
    ) -> None:
        super().__init__(
            message=message,
            status_code=404,
            response_body=response_body,
            endpoint=endpoint,
        )


class ApimPreconditionFailedError(ApimAPIError):
    """Raised on 412 when the ``If-Match`` entity tag is stale."""

    def __init__(
        self,
        message: str = "Entity tag does not match the current API state",
        response_body: dict[str, Any] | None = None,
        endpoint: str | None = None,
    ) -> None:
        super().__init__(
            message=message,
            status_code=412,
            response_body=response_body,
            endpoint=endpoint,
        )


class ApimValidationError(ApimAPIError):
    """Raised when the management API rejects a request body (400).

    A malformed OpenAPI document ends up here.
    """

    def __init__(
        self,
        message: str = "Invalid request",
        response_body: dict[str, Any] | None = None,
        endpoint: str | None = None,
    ) -> None:
        super().__init__(
            message=message,
            status_code=400,
            response_body=response_body,
            endpoint=endpoint,
        )


class ApimAssignmentError(ApimAPIError):
    """Raised when one or more group/category assignments failed.

    Every requested assignment is attempted before this is raised.

    Attributes:
        kind: "product" or "tag".
        failed_ids: Identifiers whose assignment failed.
        errors: The underlying error per failed identifier.
    """

    def __init__(
        self,
        kind: str,
        api_id: str,
        errors: dict[str, ApimAPIError],
    ) -> None:
        failed = ", ".join(errors)
        first = next(iter(errors.values()))
        super().__init__(
            message=f"Failed to assign API '{api_id}' to {kind}(s): {failed}",
            status_code=first.status_code,
            response_body=first.response_body,
            endpoint=first.endpoint,
        )
        self.kind = kind
        self.api_id = api_id
        self.errors = errors

    @property
    def failed_ids(self) -> list[str]:
        """Identifiers whose assignment failed."""
        return list(self.errors)
