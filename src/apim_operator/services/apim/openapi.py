"""OpenAPI document fetch with bounded retry."""

from __future__ import annotations

import time
from typing import TYPE_CHECKING, Any

import httpx
import structlog
from tenacity import (
    RetryCallState,
    retry,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
)

from apim_operator.services.apim.exceptions import OpenAPIFetchError

if TYPE_CHECKING:
    from collections.abc import Callable

    from apim_operator.core.config import SyncTimingConfig

logger = structlog.get_logger()


class OpenAPIFetcher:
    """Downloads OpenAPI documents from application endpoints.

    Each attempt carries its own timeout. After every failed attempt,
    including the last, the fetcher sleeps ``base_delay * 2**(n-1)``
    seconds, so the defaults give 5 attempts with delays 2, 4, 8, 16, 32.
    """

    def __init__(
        self,
        timing: SyncTimingConfig,
        *,
        transport: httpx.BaseTransport | None = None,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        self._attempts = timing.fetch_attempts
        self._base_delay = timing.fetch_base_delay
        self._sleep = sleep
        self._client = httpx.Client(
            timeout=httpx.Timeout(timing.fetch_timeout),
            follow_redirects=True,
            transport=transport,
        )
        self._wait = wait_exponential(multiplier=self._base_delay)

    def _get(self, url: str) -> bytes:
        response = self._client.get(url, headers={"Accept": "application/json"})
        response.raise_for_status()
        return response.content

    def _log_retry(self, retry_state: RetryCallState) -> None:
        outcome = retry_state.outcome
        logger.warning(
            "openapi_fetch_failed",
            url=retry_state.args[0] if retry_state.args else None,
            attempt=retry_state.attempt_number,
            max_attempts=self._attempts,
            delay=retry_state.next_action.sleep if retry_state.next_action else None,
            error=str(outcome.exception()) if outcome else None,
        )

    def _give_up(self, retry_state: RetryCallState) -> Any:
        url = retry_state.args[0] if retry_state.args else ""
        outcome = retry_state.outcome
        last_error = outcome.exception() if outcome else None
        delay = self._wait(retry_state)
        logger.error(
            "openapi_fetch_exhausted",
            url=url,
            attempts=retry_state.attempt_number,
            delay=delay,
            error=str(last_error),
        )
        self._sleep(delay)
        raise OpenAPIFetchError(url, retry_state.attempt_number, last_error)

    def fetch(self, url: str) -> bytes:
        """Fetch a document, retrying transport errors and non-2xx answers.

        Raises:
            OpenAPIFetchError: If every attempt failed.
        """
        fetch_with_retry = retry(
            retry=retry_if_exception_type(httpx.HTTPError),
            stop=stop_after_attempt(self._attempts),
            wait=self._wait,
            sleep=self._sleep,
            before_sleep=self._log_retry,
            retry_error_callback=self._give_up,
        )(self._get)
        document: bytes = fetch_with_retry(url)
        logger.debug("fetched_openapi_document", url=url, size=len(document))
        return document

    def close(self) -> None:
        """Close the HTTP client."""
        self._client.close()

    def __enter__(self) -> OpenAPIFetcher:
        """Context manager entry."""
        return self

    def __exit__(self, *args: Any) -> None:
        """Context manager exit."""
        self.close()
