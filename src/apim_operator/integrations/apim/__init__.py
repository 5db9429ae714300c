"""Azure API Management integration - control-plane client and configuration."""

from apim_operator.integrations.apim.client import (
    ApimManagementClient,
    normalize_etag,
    revision_api_id,
)
from apim_operator.integrations.apim.config import ApimConnectionConfig
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

__all__ = [
    "ApiRevision",
    "ApimAPIError",
    "ApimAssignmentError",
    "ApimAuthError",
    "ApimConnectionConfig",
    "ApimConnectionError",
    "ApimManagementClient",
    "ApimNotFoundError",
    "ApimPreconditionFailedError",
    "ApimValidationError",
    "ServiceCoordinates",
    "ServiceHosts",
    "normalize_etag",
    "revision_api_id",
]
