"""Shared pytest fixtures for apim_operator tests."""

from __future__ import annotations

import os
from collections.abc import Callable
from typing import Any
from unittest.mock import MagicMock

import pytest
import typer
from typer.testing import CliRunner

from apim_operator.cli.main import app
from apim_operator.core.config import SyncTimingConfig


@pytest.fixture
def cli_runner() -> CliRunner:
    """Create a Typer CLI test runner."""
    return CliRunner()


@pytest.fixture
def cli_app() -> typer.Typer:
    """Return the CLI app for testing."""
    return app


@pytest.fixture(autouse=True)
def reset_environment(monkeypatch: pytest.MonkeyPatch) -> None:
    """Clear operator and Azure environment variables for each test."""
    for key in list(os.environ.keys()):
        if key.startswith(("APIM_", "AZURE_")) or key == "OPERATOR_NAMESPACE":
            monkeypatch.delenv(key, raising=False)


@pytest.fixture
def timing() -> SyncTimingConfig:
    """Default sync timing."""
    return SyncTimingConfig()


@pytest.fixture
def mock_k8s_client() -> MagicMock:
    """Create a mock Kubernetes client.

    ``translate_api_exception`` passes operator exceptions through so that
    fakes can raise ``KubernetesNotFoundError`` directly.
    """
    mock_client = MagicMock()
    mock_client.default_namespace = "apim-system"
    mock_client.translate_api_exception.side_effect = lambda e, **kwargs: e
    return mock_client


def _apimapi(
    name: str = "orders-api",
    namespace: str = "shop",
    *,
    spec: dict[str, Any] | None = None,
    status: dict[str, Any] | None = None,
    annotations: dict[str, str] | None = None,
    uid: str = "uid-orders",
) -> dict[str, Any]:
    metadata: dict[str, Any] = {"name": name, "namespace": namespace, "uid": uid}
    if annotations:
        metadata["annotations"] = annotations
    return {
        "apiVersion": "apim.operator.io/v1",
        "kind": "APIMAPI",
        "metadata": metadata,
        "spec": spec
        if spec is not None
        else {
            "apiID": "orders-api",
            "serviceUrl": "https://orders.internal",
            "routePrefix": "/orders",
            "openAPIDefinitionURL": "https://orders.internal/openapi.json",
            "productIds": ["public"],
            "apimService": "apim-prod",
        },
        "status": status or {},
    }


def _apimservice(name: str = "apim-prod", namespace: str = "apim-system") -> dict[str, Any]:
    return {
        "apiVersion": "apim.operator.io/v1",
        "kind": "APIMService",
        "metadata": {"name": name, "namespace": namespace},
        "spec": {"name": "contoso-apim", "resourceGroup": "rg-apis", "subscription": "sub-123"},
    }


@pytest.fixture
def apimapi_factory() -> Callable[..., dict[str, Any]]:
    """Factory for APIMAPI custom object dicts."""
    return _apimapi


@pytest.fixture
def apimapi_dict() -> dict[str, Any]:
    """APIMAPI for the orders-api application."""
    return _apimapi()


@pytest.fixture
def apimservice_dict() -> dict[str, Any]:
    """APIMService the orders-api application points to."""
    return _apimservice()
