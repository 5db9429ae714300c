"""Sync pipeline exceptions."""

from __future__ import annotations


class OpenAPIFetchError(Exception):
    """Raised when the OpenAPI document could not be fetched within the attempt limit.

    Attributes:
        url: Document URL.
        attempts: Number of attempts made.
        last_error: The error of the final attempt.
    """

    def __init__(self, url: str, attempts: int, last_error: BaseException | None = None) -> None:
        message = f"Failed to fetch OpenAPI document from {url} after {attempts} attempts"
        if last_error is not None:
            message += f": {last_error}"
        super().__init__(message)
        self.message = message
        self.url = url
        self.attempts = attempts
        self.last_error = last_error


class DispatchError(Exception):
    """Raised when a work order could not be (re)created for an application.

    Attributes:
        namespace: Namespace of the application.
        name: Application identity.
    """

    def __init__(self, message: str, namespace: str, name: str) -> None:
        super().__init__(message)
        self.message = message
        self.namespace = namespace
        self.name = name

    def __str__(self) -> str:
        """Return string representation of the error."""
        return f"{self.message} [{self.namespace}/{self.name}]"
