"""Workload identity federation credential.

Exchanges the service account token projected into the pod for an Azure AD
access token using the OAuth2 client-credentials grant with a JWT client
assertion. Tokens are cached per scope until shortly before they expire.
"""

from __future__ import annotations

import threading
import time
from pathlib import Path
from typing import TYPE_CHECKING, Any, NamedTuple

import httpx
import structlog

from apim_operator.integrations.identity.exceptions import CredentialUnavailableError

if TYPE_CHECKING:
    from collections.abc import Callable

    from apim_operator.integrations.identity.config import IdentityConfig

logger = structlog.get_logger()

CLIENT_ASSERTION_TYPE = "urn:ietf:params:oauth:client-assertion-type:jwt-bearer"


class AccessToken(NamedTuple):
    """Bearer token and its absolute expiry (epoch seconds)."""

    token: str
    expires_on: float


class WorkloadIdentityCredential:
    """Token provider backed by Azure workload identity federation."""

    def __init__(
        self,
        config: IdentityConfig,
        *,
        transport: httpx.BaseTransport | None = None,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self._config = config
        self._clock = clock
        self._cache: dict[str, AccessToken] = {}
        self._lock = threading.Lock()
        self._client = httpx.Client(timeout=httpx.Timeout(config.timeout), transport=transport)

    def _read_assertion(self) -> str:
        try:
            assertion = Path(self._config.federated_token_file).read_text().strip()
        except OSError as e:
            raise CredentialUnavailableError(
                message=f"Cannot read federated token file {self._config.federated_token_file}",
                original_error=e,
            ) from e
        if not assertion:
            raise CredentialUnavailableError(message="Federated token file is empty")
        return assertion

    def _request_token(self, scope: str) -> AccessToken:
        if not self._config.client_id or not self._config.tenant_id:
            raise CredentialUnavailableError(
                message="AZURE_CLIENT_ID and AZURE_TENANT_ID must be set"
            )

        data = {
            "grant_type": "client_credentials",
            "client_id": self._config.client_id,
            "scope": scope,
            "client_assertion_type": CLIENT_ASSERTION_TYPE,
            "client_assertion": self._read_assertion(),
        }
        try:
            response = self._client.post(self._config.token_endpoint, data=data)
        except httpx.HTTPError as e:
            logger.error("token_request_failed", error=str(e))
            raise CredentialUnavailableError(
                message=f"Token endpoint unreachable: {e}", original_error=e
            ) from e

        try:
            body: dict[str, Any] = response.json()
        except ValueError:
            body = {}

        if not response.is_success or "access_token" not in body:
            description = body.get("error_description") or body.get("error") or response.text
            raise CredentialUnavailableError(
                message=f"Token request rejected: {description}",
                status_code=response.status_code,
            )

        expires_in = float(body.get("expires_in", 3600))
        return AccessToken(token=body["access_token"], expires_on=self._clock() + expires_in)

    def get_token(self, *scopes: str) -> AccessToken:
        """Return a valid access token for ``scopes``.

        Raises:
            CredentialUnavailableError: If the token cannot be obtained.
        """
        if not scopes:
            raise ValueError("at least one scope is required")
        scope = " ".join(scopes)
        with self._lock:
            cached = self._cache.get(scope)
        if cached and cached.expires_on - self._config.refresh_margin > self._clock():
            return cached

        # Requested without the lock; concurrent misses may each fetch a token
        token = self._request_token(scope)
        with self._lock:
            self._cache[scope] = token
        logger.debug("acquired_access_token", scope=scope, expires_on=token.expires_on)
        return token

    def close(self) -> None:
        """Close the HTTP client."""
        self._client.close()

    def __enter__(self) -> WorkloadIdentityCredential:
        """Context manager entry."""
        return self

    def __exit__(self, *args: Any) -> None:
        """Context manager exit."""
        self.close()
