"""Operator configuration with Pydantic validation."""

from apim_operator.core.config.models import (
    OperatorConfig,
    SyncTimingConfig,
    detect_operator_namespace,
)

__all__ = [
    "OperatorConfig",
    "SyncTimingConfig",
    "detect_operator_namespace",
]
