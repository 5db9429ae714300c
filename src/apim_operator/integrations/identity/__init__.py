"""Azure workload identity integration."""

from apim_operator.integrations.identity.config import IdentityConfig
from apim_operator.integrations.identity.credential import (
    AccessToken,
    WorkloadIdentityCredential,
)
from apim_operator.integrations.identity.exceptions import (
    CredentialUnavailableError,
    IdentityError,
)

__all__ = [
    "AccessToken",
    "CredentialUnavailableError",
    "IdentityConfig",
    "IdentityError",
    "WorkloadIdentityCredential",
]
