"""Operator runtime configuration models."""

from __future__ import annotations

import os
from pathlib import Path
from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, field_validator

SERVICE_ACCOUNT_NAMESPACE_FILE = Path("/var/run/secrets/kubernetes.io/serviceaccount/namespace")


def detect_operator_namespace() -> str:
    """Return the namespace the operator runs in.

    Reads the mounted service account namespace file first, then the
    ``OPERATOR_NAMESPACE`` environment variable, then falls back to
    ``default`` so that local runs and tests work without a mounted token.
    """
    try:
        namespace = SERVICE_ACCOUNT_NAMESPACE_FILE.read_text().strip()
        if namespace:
            return namespace
    except OSError:
        pass
    return os.environ.get("OPERATOR_NAMESPACE") or "default"


class SyncTimingConfig(BaseModel):
    """Requeue delays and OpenAPI fetch limits for the sync pipeline."""

    model_config = ConfigDict(extra="forbid")

    fetch_attempts: int = 5
    fetch_base_delay: float = 2.0
    fetch_timeout: float = 30.0
    fetch_requeue_delay: float = 60.0
    credential_requeue_delay: float = 30.0
    apim_requeue_delay: float = 60.0
    dispatch_delete_timeout: float = 30.0

    @field_validator("fetch_attempts")
    @classmethod
    def validate_fetch_attempts(cls, v: int) -> int:
        """Validate fetch_attempts is at least one."""
        if v < 1:
            raise ValueError("fetch_attempts must be at least 1")
        return v

    @field_validator(
        "fetch_base_delay",
        "fetch_timeout",
        "fetch_requeue_delay",
        "credential_requeue_delay",
        "apim_requeue_delay",
        "dispatch_delete_timeout",
    )
    @classmethod
    def validate_positive(cls, v: float) -> float:
        """Validate delays and timeouts are positive."""
        if v <= 0:
            raise ValueError("delays and timeouts must be positive")
        return v


class OperatorConfig(BaseModel):
    """Complete operator configuration."""

    model_config = ConfigDict(extra="forbid")

    operator_namespace: str = "default"
    watch_namespace: str | None = None
    workers: int = 2
    watch_timeout: int = 300
    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR"] = "INFO"
    log_json: bool = True
    timing: SyncTimingConfig = SyncTimingConfig()

    @field_validator("workers", "watch_timeout")
    @classmethod
    def validate_positive_int(cls, v: int) -> int:
        """Validate worker count and watch timeout are positive."""
        if v <= 0:
            raise ValueError("value must be positive")
        return v

    @field_validator("watch_namespace")
    @classmethod
    def validate_watch_namespace(cls, v: str | None) -> str | None:
        """Treat an empty watch namespace as 'all namespaces'."""
        return v or None

    @classmethod
    def from_env(cls, base_config: dict[str, Any] | None = None) -> OperatorConfig:
        """Create configuration with environment variable overrides.

        Environment variables take precedence over base_config values.

        Supported environment variables:
            APIM_WATCH_NAMESPACE: Namespace to watch (empty for all)
            APIM_WORKERS: Worker threads per controller
            APIM_WATCH_TIMEOUT: Server-side watch timeout in seconds
            APIM_LOG_LEVEL: Log level (DEBUG, INFO, WARNING, ERROR)
            APIM_LOG_JSON: Emit JSON logs ("true"/"false")
            APIM_FETCH_ATTEMPTS: OpenAPI fetch attempts per run
            APIM_FETCH_TIMEOUT: Per-attempt OpenAPI fetch timeout in seconds
            APIM_REQUEUE_DELAY: Requeue delay after control-plane failures
        """
        config_dict = base_config.copy() if base_config else {}
        timing: dict[str, Any] = dict(config_dict.get("timing", {}))

        config_dict.setdefault("operator_namespace", detect_operator_namespace())

        if (watch_namespace := os.environ.get("APIM_WATCH_NAMESPACE")) is not None:
            config_dict["watch_namespace"] = watch_namespace
        if workers := os.environ.get("APIM_WORKERS"):
            config_dict["workers"] = int(workers)
        if watch_timeout := os.environ.get("APIM_WATCH_TIMEOUT"):
            config_dict["watch_timeout"] = int(watch_timeout)
        if log_level := os.environ.get("APIM_LOG_LEVEL"):
            config_dict["log_level"] = log_level.upper()
        if log_json := os.environ.get("APIM_LOG_JSON"):
            config_dict["log_json"] = log_json.lower() in ("1", "true", "yes")

        if attempts := os.environ.get("APIM_FETCH_ATTEMPTS"):
            timing["fetch_attempts"] = int(attempts)
        if fetch_timeout := os.environ.get("APIM_FETCH_TIMEOUT"):
            timing["fetch_timeout"] = float(fetch_timeout)
        if requeue := os.environ.get("APIM_REQUEUE_DELAY"):
            timing["apim_requeue_delay"] = float(requeue)

        config_dict["timing"] = timing
        return cls.model_validate(config_dict)
