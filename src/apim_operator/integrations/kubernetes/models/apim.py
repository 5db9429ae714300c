"""Custom resource models for the ``apim.operator.io`` API group.

Custom resources are read through ``CustomObjectsApi`` which returns raw
``dict`` objects, so the ``from_k8s_object`` classmethods use ``dict.get()``
and pydantic aliases mirror the camelCase keys of the CRD schemas.
"""

from __future__ import annotations

from enum import Enum
from typing import Annotated, Any, ClassVar
from urllib.parse import urlparse

from pydantic import AfterValidator, BaseModel, ConfigDict, Field, field_validator

from apim_operator.integrations.kubernetes.models.base import (
    K8sEntityBase,
    _metadata_from_dict,
)

API_GROUP = "apim.operator.io"
API_VERSION = "v1"

APIMAPI_KIND = "APIMAPI"
APIMAPI_PLURAL = "apimapis"
APIMSERVICE_KIND = "APIMService"
APIMSERVICE_PLURAL = "apimservices"
WORK_ORDER_KIND = "APIMAPIDeployment"
WORK_ORDER_PLURAL = "apimapideployments"
APIMPRODUCT_KIND = "APIMProduct"
APIMPRODUCT_PLURAL = "apimproducts"
APIMTAG_KIND = "APIMTag"
APIMTAG_PLURAL = "apimtags"
APIMINBOUNDPOLICY_KIND = "APIMInboundPolicy"
APIMINBOUNDPOLICY_PLURAL = "apiminboundpolicies"

EXTERNAL_LINK_ANNOTATION = "link.argocd.argoproj.io/external-link"

STATUS_OK = "OK"
STATUS_ERROR = "Error"
PHASE_CREATED = "Created"
PHASE_ERROR = "Error"

_FORBIDDEN_ID_CHARS = set("/?#;% \t\r\n")


def _validate_identifier(value: str) -> str:
    """Reject identifiers that would break a management API path."""
    value = value.strip()
    if not value:
        raise ValueError("identifier must not be empty")
    bad = sorted(_FORBIDDEN_ID_CHARS.intersection(value))
    if bad:
        raise ValueError(f"identifier {value!r} contains forbidden characters {bad!r}")
    return value


def _validate_http_url(value: str) -> str:
    """Require an absolute http(s) URL with a host."""
    value = value.strip()
    parsed = urlparse(value)
    if parsed.scheme not in ("http", "https") or not parsed.netloc:
        raise ValueError(f"{value!r} is not an absolute http(s) URL")
    return value


Identifier = Annotated[str, AfterValidator(_validate_identifier)]
HttpUrl = Annotated[str, AfterValidator(_validate_http_url)]


class _CamelModel(BaseModel):
    model_config = ConfigDict(extra="ignore", populate_by_name=True)


# =============================================================================
# APIMService (ServiceInstance)
# =============================================================================


class ApimServiceSpec(_CamelModel):
    """Coordinates of one API Management instance."""

    name: str = Field(default="", description="APIM instance name")
    resource_group: str = Field(default="", alias="resourceGroup")
    subscription: str = Field(default="", description="Azure subscription ID")


class ApimService(K8sEntityBase):
    """APIMService custom resource."""

    _entity_name: ClassVar[str] = "apimservice"

    spec: ApimServiceSpec = Field(default_factory=ApimServiceSpec)
    host: str | None = Field(default=None, description="Observed gateway host")

    @classmethod
    def from_k8s_object(cls, obj: dict[str, Any]) -> ApimService:
        """Create from an APIMService CRD dict."""
        status: dict[str, Any] = obj.get("status") or {}
        return cls(
            **_metadata_from_dict(obj),
            spec=ApimServiceSpec.model_validate(obj.get("spec") or {}),
            host=status.get("host"),
        )


# =============================================================================
# APIMAPI (DesiredAPI)
# =============================================================================


class ApimApiSpec(_CamelModel):
    """Owner-declared API configuration."""

    api_id: str = Field(default="", alias="apiID")
    service_url: str = Field(default="", alias="serviceUrl")
    route_prefix: str = Field(default="", alias="routePrefix")
    openapi_definition_url: str = Field(default="", alias="openAPIDefinitionURL")
    revision: str | None = None
    product_ids: list[str] = Field(default_factory=list, alias="productIds")
    tag_ids: list[str] = Field(default_factory=list, alias="tagIds")
    subscription_required: bool = Field(default=True, alias="subscriptionRequired")
    apim_service: str = Field(default="", alias="apimService")


class ApimApiStatus(_CamelModel):
    """Observed state written by the sync executor."""

    imported_at: str | None = Field(default=None, alias="importedAt")
    status: str | None = None
    message: str | None = None
    last_attempt_at: str | None = Field(default=None, alias="lastAttemptAt")
    api_host: str | None = Field(default=None, alias="apiHost")
    developer_portal_host: str | None = Field(default=None, alias="developerPortalHost")


class ApimApi(K8sEntityBase):
    """APIMAPI custom resource."""

    _entity_name: ClassVar[str] = "apimapi"

    spec: ApimApiSpec = Field(default_factory=ApimApiSpec)
    status: ApimApiStatus = Field(default_factory=ApimApiStatus)

    @property
    def external_link(self) -> str | None:
        """Current value of the downstream link annotation."""
        return self.get_annotation(EXTERNAL_LINK_ANNOTATION)

    @classmethod
    def from_k8s_object(cls, obj: dict[str, Any]) -> ApimApi:
        """Create from an APIMAPI CRD dict."""
        return cls(
            **_metadata_from_dict(obj),
            spec=ApimApiSpec.model_validate(obj.get("spec") or {}),
            status=ApimApiStatus.model_validate(obj.get("status") or {}),
        )


# =============================================================================
# APIMAPIDeployment (WorkOrder)
# =============================================================================


class WorkOrderPhase(str, Enum):
    """Step of the synchronization sequence a work order last reached."""

    FETCHING = "Fetching"
    AUTHENTICATING = "Authenticating"
    IMPORTING = "Importing"
    PATCHING = "Patching"
    ASSIGNING = "Assigning"
    FINALIZING = "Finalizing"
    DONE = "Done"


class WorkOrderSpec(_CamelModel):
    """Validated point-in-time snapshot of everything one sync run needs."""

    model_config = ConfigDict(extra="forbid", populate_by_name=True, frozen=True)

    api_id: Identifier = Field(alias="apiID")
    service_url: HttpUrl = Field(alias="serviceUrl")
    route_prefix: str = Field(default="", alias="routePrefix")
    openapi_definition_url: HttpUrl = Field(alias="openAPIDefinitionURL")
    revision: Identifier | None = None
    product_ids: list[Identifier] = Field(default_factory=list, alias="productIds")
    tag_ids: list[Identifier] = Field(default_factory=list, alias="tagIds")
    subscription_required: bool = Field(default=True, alias="subscriptionRequired")
    apim_service: Identifier = Field(alias="apimService")
    subscription: Identifier
    resource_group: Identifier = Field(alias="resourceGroup")

    @field_validator("route_prefix")
    @classmethod
    def normalize_route_prefix(cls, v: str) -> str:
        """Ensure a non-empty route prefix starts with exactly one slash."""
        v = v.strip()
        if not v:
            return ""
        return "/" + v.lstrip("/")

    @field_validator("revision", mode="before")
    @classmethod
    def blank_revision_is_none(cls, v: Any) -> Any:
        """Treat an empty revision as 'no revision'."""
        if isinstance(v, str) and not v.strip():
            return None
        return v

    @classmethod
    def from_desired(cls, api: ApimApi, service: ApimService) -> WorkOrderSpec:
        """Snapshot an APIMAPI and its APIMService into a work order spec.

        Raises:
            pydantic.ValidationError: If identifiers or URLs are malformed.
        """
        return cls(
            api_id=api.spec.api_id,
            service_url=api.spec.service_url,
            route_prefix=api.spec.route_prefix,
            openapi_definition_url=api.spec.openapi_definition_url,
            revision=api.spec.revision,
            product_ids=list(api.spec.product_ids),
            tag_ids=list(api.spec.tag_ids),
            subscription_required=api.spec.subscription_required,
            apim_service=service.spec.name,
            subscription=service.spec.subscription,
            resource_group=service.spec.resource_group,
        )

    def to_k8s_spec(self) -> dict[str, Any]:
        """Render as the CRD ``spec`` dict."""
        return self.model_dump(by_alias=True, exclude_none=True)


class WorkOrderStatus(_CamelModel):
    """Diagnostic status of an in-flight work order."""

    phase: WorkOrderPhase | None = None
    status: str | None = None
    message: str | None = None
    updated_at: str | None = Field(default=None, alias="updatedAt")


class WorkOrder(K8sEntityBase):
    """APIMAPIDeployment custom resource.

    The spec is kept raw and validated on demand so that a hand-edited,
    malformed work order can still be loaded and reported on.
    """

    _entity_name: ClassVar[str] = "work_order"

    raw_spec: dict[str, Any] = Field(default_factory=dict)
    status: WorkOrderStatus = Field(default_factory=WorkOrderStatus)

    def validated_spec(self) -> WorkOrderSpec:
        """Validate and return the spec.

        Raises:
            pydantic.ValidationError: If the stored spec is malformed.
        """
        return WorkOrderSpec.model_validate(self.raw_spec)

    @classmethod
    def from_k8s_object(cls, obj: dict[str, Any]) -> WorkOrder:
        """Create from an APIMAPIDeployment CRD dict."""
        return cls(
            **_metadata_from_dict(obj),
            raw_spec=dict(obj.get("spec") or {}),
            status=WorkOrderStatus.model_validate(obj.get("status") or {}),
        )


# =============================================================================
# Catalog resources: APIMProduct, APIMTag, APIMInboundPolicy
# =============================================================================


class CatalogStatus(_CamelModel):
    """Status shared by the catalog resources."""

    phase: str | None = None
    message: str | None = None
    observed_generation: int | None = Field(default=None, alias="observedGeneration")


class CatalogResource(K8sEntityBase):
    """Common shape of APIMProduct, APIMTag and APIMInboundPolicy."""

    status: CatalogStatus = Field(default_factory=CatalogStatus)

    @property
    def needs_reconcile(self) -> bool:
        """True until the current spec generation has been applied."""
        if self.is_deleting:
            return False
        return self.generation is None or self.status.observed_generation != self.generation


class ApimProductSpec(_CamelModel):
    """Desired APIM product (grouping)."""

    product_id: str = Field(default="", alias="productId")
    display_name: str = Field(default="", alias="displayName")
    description: str = ""
    published: bool = False
    apim_service: str = Field(default="", alias="apimService")


class ApimProduct(CatalogResource):
    """APIMProduct custom resource."""

    _entity_name: ClassVar[str] = "apimproduct"

    spec: ApimProductSpec = Field(default_factory=ApimProductSpec)

    @classmethod
    def from_k8s_object(cls, obj: dict[str, Any]) -> ApimProduct:
        """Create from an APIMProduct CRD dict."""
        return cls(
            **_metadata_from_dict(obj),
            spec=ApimProductSpec.model_validate(obj.get("spec") or {}),
            status=CatalogStatus.model_validate(obj.get("status") or {}),
        )


class ApimTagSpec(_CamelModel):
    """Desired APIM tag (categorization)."""

    tag_id: str = Field(default="", alias="tagId")
    display_name: str = Field(default="", alias="displayName")
    apim_service: str = Field(default="", alias="apimService")


class ApimTag(CatalogResource):
    """APIMTag custom resource."""

    _entity_name: ClassVar[str] = "apimtag"

    spec: ApimTagSpec = Field(default_factory=ApimTagSpec)

    @classmethod
    def from_k8s_object(cls, obj: dict[str, Any]) -> ApimTag:
        """Create from an APIMTag CRD dict."""
        return cls(
            **_metadata_from_dict(obj),
            spec=ApimTagSpec.model_validate(obj.get("spec") or {}),
            status=CatalogStatus.model_validate(obj.get("status") or {}),
        )


class ApimInboundPolicySpec(_CamelModel):
    """Desired processing policy for an API or one of its operations."""

    api_id: str = Field(default="", alias="apiId")
    operation_id: str | None = Field(default=None, alias="operationId")
    policy_content: str = Field(default="", alias="policyContent")
    apim_service: str = Field(default="", alias="apimService")


class ApimInboundPolicy(CatalogResource):
    """APIMInboundPolicy custom resource."""

    _entity_name: ClassVar[str] = "apiminboundpolicy"

    spec: ApimInboundPolicySpec = Field(default_factory=ApimInboundPolicySpec)

    @classmethod
    def from_k8s_object(cls, obj: dict[str, Any]) -> ApimInboundPolicy:
        """Create from an APIMInboundPolicy CRD dict."""
        return cls(
            **_metadata_from_dict(obj),
            spec=ApimInboundPolicySpec.model_validate(obj.get("spec") or {}),
            status=CatalogStatus.model_validate(obj.get("status") or {}),
        )
