"""Azure API Management control-plane HTTP client."""

from __future__ import annotations

from typing import TYPE_CHECKING, Any

import httpx
import structlog

from apim_operator.integrations.apim.exceptions import (
    ApimAPIError,
    ApimAssignmentError,
    ApimAuthError,
    ApimConnectionError,
    ApimNotFoundError,
    ApimPreconditionFailedError,
    ApimValidationError,
)
from apim_operator.integrations.apim.models import (
    ApiRevision,
    ServiceCoordinates,
    ServiceHosts,
)

if TYPE_CHECKING:
    from apim_operator.integrations.apim.config import ApimConnectionConfig

logger = structlog.get_logger()

OPENAPI_JSON_CONTENT_TYPE = "application/vnd.oai.openapi+json"
MATCH_ANY = "*"

PRODUCT_SUBSCRIPTIONS_LIMIT = 1000

PROXY_HOSTNAME_TYPE = "Proxy"
PORTAL_HOSTNAME_TYPE = "DeveloperPortal"


def normalize_etag(raw: str | None) -> str | None:
    """Return the entity tag in the quoted form ``If-Match`` expects.

    The management API may answer with weak (``W/"..."``) or unquoted tags.
    """
    if raw is None:
        return None
    value = raw.strip()
    if value.startswith("W/"):
        value = value[2:]
    value = value.strip().strip('"').strip()
    if not value:
        return None
    return f'"{value}"'


def revision_api_id(api_id: str, revision: str | None) -> str:
    """Identifier addressing one revision of an API."""
    return f"{api_id};rev={revision}" if revision else api_id


class ApimManagementClient:
    """HTTP client for the API Management control plane.

    A client is bound to one bearer token. Callers acquire a fresh token per
    sync run and open a new client with it. Requests are not retried; the
    caller decides when to try again.

    Example:
        ```python
        from apim_operator.integrations.apim import (
            ApimConnectionConfig,
            ApimManagementClient,
            ServiceCoordinates,
        )

        coords = ServiceCoordinates(
            subscription_id="sub-1", resource_group="rg-1", service_name="apim-prod"
        )
        with ApimManagementClient(ApimConnectionConfig(), token) as client:
            hosts = client.read_service_hosts(coords)
        ```
    """

    def __init__(self, connection_config: ApimConnectionConfig, access_token: str) -> None:
        """Initialize the management client.

        Args:
            connection_config: Endpoint, API version and timeout.
            access_token: Bearer token for the management endpoint.
        """
        self.connection_config = connection_config
        self._api_version = connection_config.api_version
        self._client = httpx.Client(
            base_url=connection_config.management_url,
            timeout=httpx.Timeout(connection_config.timeout),
            verify=connection_config.verify_ssl,
            headers={"Authorization": f"Bearer {access_token}"},
        )
        logger.debug(
            "APIM management client initialized",
            management_url=connection_config.management_url,
            api_version=connection_config.api_version,
        )

    # =========================================================================
    # Transport
    # =========================================================================

    def _handle_response(self, response: httpx.Response, endpoint: str) -> httpx.Response:
        """Raise the matching exception for an unsuccessful response.

        Args:
            response: The HTTP response.
            endpoint: The endpoint that was called.

        Returns:
            The response, when successful.

        Raises:
            ApimAuthError: If authentication failed (401/403).
            ApimNotFoundError: If the resource does not exist (404).
            ApimPreconditionFailedError: If the entity tag is stale (412).
            ApimValidationError: If the request was rejected (400).
            ApimAPIError: For other API errors.
        """
        if response.is_success:
            return response

        try:
            body = response.json() if response.content else {}
        except ValueError:
            body = {"raw": response.text}
        if not isinstance(body, dict):
            body = {"raw": body}

        error = body.get("error") if isinstance(body.get("error"), dict) else {}
        status = response.status_code
        message = error.get("message") or body.get("message")

        if status in (401, 403):
            raise ApimAuthError(
                message=message or "Authentication failed",
                status_code=status,
                response_body=body,
                endpoint=endpoint,
            )
        if status == 404:
            raise ApimNotFoundError(
                message=message or "Resource not found",
                response_body=body,
                endpoint=endpoint,
            )
        if status == 412:
            raise ApimPreconditionFailedError(response_body=body, endpoint=endpoint)
        if status == 400:
            raise ApimValidationError(
                message=message or "Validation failed",
                response_body=body,
                endpoint=endpoint,
            )
        raise ApimAPIError(
            message=message or f"API Management error: {status}",
            status_code=status,
            response_body=body,
            endpoint=endpoint,
        )

    def _request(
        self,
        method: str,
        coords: ServiceCoordinates,
        path: str = "",
        *,
        params: dict[str, str] | None = None,
        **kwargs: Any,
    ) -> httpx.Response:
        """Make a request below the service's resource path.

        Args:
            method: HTTP method.
            coords: Target service.
            path: Path below the service resource (e.g. ``apis/orders``).
            params: Extra query parameters. ``api-version`` is always added.
            **kwargs: Additional arguments passed to httpx.

        Raises:
            ApimConnectionError: If the endpoint cannot be reached.
            ApimAPIError: If the management API returns an error.
        """
        url = coords.resource_path
        if path:
            url = f"{url}/{path.lstrip('/')}"
        query = {"api-version": self._api_version, **(params or {})}
        log = logger.bind(method=method, endpoint=url)

        try:
            log.debug("APIM API request")
            response = self._client.request(method, url, params=query, **kwargs)
            log.debug("APIM API response", status=response.status_code)
            return self._handle_response(response, url)
        except httpx.ConnectError as e:
            log.error("APIM connection error", error=str(e))
            raise ApimConnectionError(
                message=f"Failed to connect to API Management: {e}",
                endpoint=url,
                original_error=e,
            ) from e
        except httpx.TimeoutException as e:
            log.error("APIM request timeout", error=str(e))
            raise ApimConnectionError(
                message=f"API Management request timed out: {e}",
                endpoint=url,
                original_error=e,
            ) from e
        except httpx.TransportError as e:
            log.error("APIM transport error", error=str(e))
            raise ApimConnectionError(
                message=f"API Management request failed: {e}",
                endpoint=url,
                original_error=e,
            ) from e

    @staticmethod
    def _json(response: httpx.Response) -> dict[str, Any]:
        try:
            body = response.json() if response.content else {}
        except ValueError:
            return {}
        return body if isinstance(body, dict) else {}

    # =========================================================================
    # API Definition
    # =========================================================================

    def get_api_etag(self, coords: ServiceCoordinates, api_id: str) -> str | None:
        """Return the normalized entity tag of an API, or None if it does not exist.

        Raises:
            ApimAPIError: If the lookup fails for a reason other than 404.
        """
        try:
            response = self._request("GET", coords, f"apis/{api_id}")
        except ApimNotFoundError:
            return None
        return normalize_etag(response.headers.get("ETag"))

    def _import_if_match(self, coords: ServiceCoordinates, api_id: str) -> str:
        try:
            etag = self.get_api_etag(coords, api_id)
        except ApimAPIError as e:
            # Proceeding unconditionally can overwrite a concurrent change.
            logger.warning("api_etag_lookup_failed", api_id=api_id, error=str(e))
            return MATCH_ANY
        return etag or MATCH_ANY

    def import_definition(
        self,
        coords: ServiceCoordinates,
        api_id: str,
        route_prefix: str,
        document: bytes,
        revision: str | None = None,
    ) -> str:
        """Create or replace an API from an OpenAPI JSON document.

        Without a revision the current entity tag guards the write. With a
        revision a new revision is created unconditionally.

        Args:
            coords: Target service.
            api_id: API identifier.
            route_prefix: Public path of the API on the gateway.
            document: Raw OpenAPI JSON document.
            revision: Optional revision to create.

        Returns:
            The identifier subsequent calls must use for this API
            (``api_id;rev=N`` when a revision was created).

        Raises:
            ApimPreconditionFailedError: If the API changed since its tag was read.
            ApimValidationError: If the document is rejected.
            ApimAPIError: For other failures.
        """
        effective_id = revision_api_id(api_id, revision)
        params = {"import": "true", "path": route_prefix.strip("/")}
        if revision:
            params["createRevision"] = "true"
            if_match = MATCH_ANY
        else:
            if_match = self._import_if_match(coords, api_id)

        self._request(
            "PUT",
            coords,
            f"apis/{effective_id}",
            params=params,
            content=document,
            headers={"Content-Type": OPENAPI_JSON_CONTENT_TYPE, "If-Match": if_match},
        )
        logger.info(
            "imported_api_definition",
            api_id=effective_id,
            service=coords.service_name,
            conditional=if_match != MATCH_ANY,
        )
        return effective_id

    def _patch_api(
        self, coords: ServiceCoordinates, api_id: str, properties: dict[str, Any]
    ) -> None:
        self._request(
            "PATCH",
            coords,
            f"apis/{api_id}",
            json={"properties": properties},
            headers={"If-Match": MATCH_ANY},
        )

    def set_backend_url(self, coords: ServiceCoordinates, api_id: str, service_url: str) -> None:
        """Point the API at its backend service URL."""
        self._patch_api(coords, api_id, {"serviceUrl": service_url})
        logger.info("set_backend_url", api_id=api_id, service_url=service_url)

    def set_subscription_required(
        self, coords: ServiceCoordinates, api_id: str, required: bool
    ) -> None:
        """Set whether callers need a subscription key."""
        self._patch_api(coords, api_id, {"subscriptionRequired": required})
        logger.info("set_subscription_required", api_id=api_id, required=required)

    # =========================================================================
    # Products and Tags
    # =========================================================================

    def upsert_group(
        self,
        coords: ServiceCoordinates,
        group_id: str,
        display_name: str,
        description: str,
        published: bool,
    ) -> None:
        """Create or replace a product. Does nothing for an empty id."""
        if not group_id:
            return
        body = {
            "properties": {
                "displayName": display_name,
                "description": description,
                "subscriptionRequired": True,
                "approvalRequired": False,
                "subscriptionsLimit": PRODUCT_SUBSCRIPTIONS_LIMIT,
                "state": "published" if published else "notPublished",
            }
        }
        self._request(
            "PUT", coords, f"products/{group_id}", json=body, headers={"If-Match": MATCH_ANY}
        )
        logger.info("upserted_product", product_id=group_id, published=published)

    def upsert_category(
        self, coords: ServiceCoordinates, category_id: str, display_name: str
    ) -> None:
        """Create or replace a tag. Does nothing for an empty id."""
        if not category_id:
            return
        self._request(
            "PUT",
            coords,
            f"tags/{category_id}",
            json={"properties": {"displayName": display_name}},
            headers={"If-Match": MATCH_ANY},
        )
        logger.info("upserted_tag", tag_id=category_id)

    def _assign_each(
        self, coords: ServiceCoordinates, kind: str, api_id: str, paths: dict[str, str]
    ) -> None:
        errors: dict[str, ApimAPIError] = {}
        for item_id, path in paths.items():
            try:
                self._request("PUT", coords, path)
            except ApimAPIError as e:
                logger.warning(
                    f"{kind}_assignment_failed", api_id=api_id, id=item_id, error=str(e)
                )
                errors[item_id] = e
        if errors:
            raise ApimAssignmentError(kind, api_id, errors)

    def assign_to_groups(
        self, coords: ServiceCoordinates, api_id: str, product_ids: list[str]
    ) -> None:
        """Add the API to every listed product.

        All assignments are attempted; failures are reported together.

        Raises:
            ApimAssignmentError: If any assignment failed.
        """
        paths = {pid: f"products/{pid}/apis/{api_id}" for pid in product_ids}
        self._assign_each(coords, "product", api_id, paths)
        if product_ids:
            logger.info("assigned_products", api_id=api_id, product_ids=product_ids)

    def assign_categories(
        self, coords: ServiceCoordinates, api_id: str, tag_ids: list[str]
    ) -> None:
        """Attach every listed tag to the API.

        All assignments are attempted; failures are reported together.

        Raises:
            ApimAssignmentError: If any assignment failed.
        """
        paths = {tid: f"apis/{api_id}/tags/{tid}" for tid in tag_ids}
        self._assign_each(coords, "tag", api_id, paths)
        if tag_ids:
            logger.info("assigned_tags", api_id=api_id, tag_ids=tag_ids)

    # =========================================================================
    # Service and Revisions
    # =========================================================================

    def read_service_hosts(self, coords: ServiceCoordinates) -> ServiceHosts:
        """Read the gateway and developer portal hosts of the service."""
        properties = self._json(self._request("GET", coords)).get("properties") or {}

        gateway_host: str | None = None
        portal_host: str | None = None
        for hostname in properties.get("hostnameConfigurations") or []:
            kind = hostname.get("type")
            if kind == PROXY_HOSTNAME_TYPE and gateway_host is None:
                gateway_host = hostname.get("hostName")
            elif kind == PORTAL_HOSTNAME_TYPE and portal_host is None:
                portal_host = hostname.get("hostName")

        if gateway_host is None and properties.get("gatewayUrl"):
            gateway_host = httpx.URL(properties["gatewayUrl"]).host or None
        if portal_host is None and properties.get("developerPortalUrl"):
            portal_host = httpx.URL(properties["developerPortalUrl"]).host or None

        return ServiceHosts(gateway_host=gateway_host, portal_host=portal_host)

    def read_revisions(self, coords: ServiceCoordinates, api_id: str) -> list[ApiRevision]:
        """List the revisions of an API."""
        body = self._json(self._request("GET", coords, f"apis/{api_id}/revisions"))
        revisions: list[ApiRevision] = []
        for item in body.get("value") or []:
            properties = item.get("properties") or item
            rev = properties.get("apiRevision")
            if rev is None:
                continue
            revisions.append(
                ApiRevision(api_revision=str(rev), is_current=bool(properties.get("isCurrent")))
            )
        return revisions

    # =========================================================================
    # Policies
    # =========================================================================

    def upsert_inbound_policy(
        self,
        coords: ServiceCoordinates,
        api_id: str,
        content: str,
        operation_id: str | None = None,
    ) -> bool:
        """Create or replace the XML policy of an API or one of its operations.

        Returns:
            False when nothing was sent because the API id or content is empty.
        """
        if not api_id or not content:
            logger.debug("skipping_empty_policy", api_id=api_id, operation_id=operation_id)
            return False
        path = f"apis/{api_id}"
        if operation_id:
            path = f"{path}/operations/{operation_id}"
        self._request(
            "PUT",
            coords,
            f"{path}/policies/policy",
            json={"properties": {"format": "xml", "value": content}},
            headers={"If-Match": MATCH_ANY},
        )
        logger.info("upserted_policy", api_id=api_id, operation_id=operation_id)
        return True

    # =========================================================================
    # Lifecycle
    # =========================================================================

    def close(self) -> None:
        """Close the HTTP client and release resources."""
        self._client.close()
        logger.debug("APIM client closed")

    def __enter__(self) -> ApimManagementClient:
        """Context manager entry."""
        return self

    def __exit__(self, *args: Any) -> None:
        """Context manager exit."""
        self.close()
