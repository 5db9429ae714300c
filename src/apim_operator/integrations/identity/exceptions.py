"""Workload identity exceptions."""

from __future__ import annotations


class IdentityError(Exception):
    """Base exception for credential acquisition.

    Attributes:
        message: Human-readable error message.
        status_code: HTTP status of the token endpoint (if it answered).
        original_error: The underlying exception (if any).
    """

    def __init__(
        self,
        message: str,
        status_code: int | None = None,
        original_error: Exception | None = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.status_code = status_code
        self.original_error = original_error

    def __str__(self) -> str:
        """Return string representation of the error."""
        if self.status_code:
            return f"{self.message} (status: {self.status_code})"
        return self.message


class CredentialUnavailableError(IdentityError):
    """Raised when no access token can be obtained (expired or unobtainable)."""

    def __init__(
        self,
        message: str = "Failed to get Azure token",
        status_code: int | None = None,
        original_error: Exception | None = None,
    ) -> None:
        super().__init__(message, status_code=status_code, original_error=original_error)
