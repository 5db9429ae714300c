"""Tests for the CLI commands."""

from __future__ import annotations

from collections.abc import Iterator
from typing import Any
from unittest.mock import MagicMock, patch

import pytest
import typer
from pytest_mock import MockerFixture
from typer.testing import CliRunner

from apim_operator.cli.commands.common import load_config
from apim_operator.integrations.apim import ApimAPIError, ApiRevision
from apim_operator.integrations.identity import AccessToken
from apim_operator.integrations.kubernetes import KubernetesError, KubernetesNotFoundError
from apim_operator.integrations.kubernetes.models.apim import ApimApi, ApimService, WorkOrder
from apim_operator.services.apim.exceptions import DispatchError

DISPATCH = "apim_operator.cli.commands.dispatch"
REVISIONS = "apim_operator.cli.commands.revisions"
RUN = "apim_operator.cli.commands.run"


@pytest.fixture(autouse=True)
def _no_logging_setup() -> Iterator[None]:
    """Keep the root logger untouched by the CLI callback."""
    with patch("apim_operator.cli.main.configure_logging"):
        yield


@pytest.fixture
def k8s_client() -> MagicMock:
    """Kubernetes client returned by build_kubernetes_client."""
    client = MagicMock()
    client.get_current_context.return_value = "aks-prod"
    return client


@pytest.fixture
def resources(apimapi_dict: dict[str, Any], apimservice_dict: dict[str, Any]) -> MagicMock:
    """Resource manager returning orders-api and its APIMService."""
    resources = MagicMock()
    resources.get_apim_api.return_value = ApimApi.from_k8s_object(apimapi_dict)
    resources.get_apim_service.return_value = ApimService.from_k8s_object(apimservice_dict)
    return resources


@pytest.mark.unit
class TestLoadConfig:
    """Tests for load_config."""

    def test_options_override_environment(self, monkeypatch: pytest.MonkeyPatch) -> None:
        """CLI options take precedence over environment variables."""
        monkeypatch.setenv("APIM_WORKERS", "4")
        monkeypatch.setenv("APIM_WATCH_NAMESPACE", "shop")

        config = load_config(workers=8, watch_namespace=None)

        assert config.workers == 8
        assert config.watch_namespace == "shop"

    def test_environment_used_without_options(self, monkeypatch: pytest.MonkeyPatch) -> None:
        """Environment values apply when no option is given."""
        monkeypatch.setenv("APIM_FETCH_ATTEMPTS", "3")

        assert load_config().timing.fetch_attempts == 3


@pytest.mark.unit
class TestDispatchCommand:
    """Tests for the dispatch command."""

    @pytest.fixture
    def patched(
        self, mocker: MockerFixture, k8s_client: MagicMock, resources: MagicMock
    ) -> MagicMock:
        """Patch client construction; returns the dispatcher mock."""
        mocker.patch(f"{DISPATCH}.build_kubernetes_client", return_value=k8s_client)
        mocker.patch(f"{DISPATCH}.ApimResourceManager", return_value=resources)
        dispatcher = MagicMock()
        mocker.patch(f"{DISPATCH}.WorkOrderDispatcher", return_value=dispatcher)
        return dispatcher

    def test_dispatch(
        self,
        cli_runner: CliRunner,
        cli_app: typer.Typer,
        patched: MagicMock,
        resources: MagicMock,
        k8s_client: MagicMock,
    ) -> None:
        """A work order is dispatched for the named APIMAPI."""
        patched.dispatch.return_value = WorkOrder(name="orders-api", namespace="shop")

        result = cli_runner.invoke(cli_app, ["dispatch", "shop", "orders-api"])

        assert result.exit_code == 0
        assert "Dispatched work order" in result.stdout
        resources.get_apim_api.assert_called_once_with("orders-api", "shop")
        resources.get_apim_service.assert_called_once_with("apim-prod")
        k8s_client.close.assert_called_once()

    def test_not_found(
        self,
        cli_runner: CliRunner,
        cli_app: typer.Typer,
        patched: MagicMock,
        resources: MagicMock,
        k8s_client: MagicMock,
    ) -> None:
        """A missing APIMAPI exits with status 1."""
        resources.get_apim_api.side_effect = KubernetesNotFoundError(
            resource_type="APIMAPI", resource_name="orders-api"
        )

        result = cli_runner.invoke(cli_app, ["dispatch", "shop", "orders-api"])

        assert result.exit_code == 1
        assert "Not found" in result.stdout
        patched.dispatch.assert_not_called()
        k8s_client.close.assert_called_once()

    def test_dispatch_error(
        self, cli_runner: CliRunner, cli_app: typer.Typer, patched: MagicMock
    ) -> None:
        """A dispatch failure exits with status 1."""
        patched.dispatch.side_effect = DispatchError("still present", "shop", "orders-api")

        result = cli_runner.invoke(cli_app, ["dispatch", "shop", "orders-api"])

        assert result.exit_code == 1
        assert "Error" in result.stdout

    def test_invalid(self, cli_runner: CliRunner, cli_app: typer.Typer, patched: MagicMock) -> None:
        """An invalid APIMAPI exits with status 1."""
        patched.dispatch.return_value = None

        result = cli_runner.invoke(cli_app, ["dispatch", "shop", "orders-api"])

        assert result.exit_code == 1
        assert "is invalid" in result.stdout


@pytest.mark.unit
class TestRevisionsCommand:
    """Tests for the revisions command."""

    @pytest.fixture
    def apim(
        self, mocker: MockerFixture, k8s_client: MagicMock, resources: MagicMock
    ) -> MagicMock:
        """Patch clients; returns the management client mock."""
        mocker.patch(f"{REVISIONS}.build_kubernetes_client", return_value=k8s_client)
        mocker.patch(f"{REVISIONS}.ApimResourceManager", return_value=resources)
        credential = MagicMock()
        credential.__enter__.return_value = credential
        credential.get_token.return_value = AccessToken("at-1", 0.0)
        mocker.patch(f"{REVISIONS}.build_credential", return_value=credential)
        client = MagicMock()
        client.__enter__.return_value = client
        mocker.patch(f"{REVISIONS}.ApimManagementClient", return_value=client)
        return client

    def test_lists_revisions(
        self, cli_runner: CliRunner, cli_app: typer.Typer, apim: MagicMock
    ) -> None:
        """Revisions are shown in a table."""
        apim.read_revisions.return_value = [
            ApiRevision(api_revision="1"),
            ApiRevision(api_revision="2", is_current=True),
        ]

        result = cli_runner.invoke(cli_app, ["revisions", "shop", "orders-api"])

        assert result.exit_code == 0
        assert "Revisions of" in result.stdout
        assert "orders-api" in result.stdout
        assert "yes" in result.stdout
        coords = apim.read_revisions.call_args.args[0]
        assert coords.service_name == "contoso-apim"
        assert apim.read_revisions.call_args.args[1] == "orders-api"

    def test_no_revisions(
        self, cli_runner: CliRunner, cli_app: typer.Typer, apim: MagicMock
    ) -> None:
        """An API without revisions prints a notice."""
        apim.read_revisions.return_value = []

        result = cli_runner.invoke(cli_app, ["revisions", "shop", "orders-api"])

        assert result.exit_code == 0
        assert "No revisions found" in result.stdout

    def test_management_error(
        self, cli_runner: CliRunner, cli_app: typer.Typer, apim: MagicMock
    ) -> None:
        """A management API failure exits with status 1."""
        apim.read_revisions.side_effect = ApimAPIError("boom", status_code=500)

        result = cli_runner.invoke(cli_app, ["revisions", "shop", "orders-api"])

        assert result.exit_code == 1
        assert "boom" in result.stdout

    def test_kubernetes_error(
        self,
        cli_runner: CliRunner,
        cli_app: typer.Typer,
        apim: MagicMock,
        resources: MagicMock,
    ) -> None:
        """A substrate failure exits before contacting the management API."""
        resources.get_apim_service.side_effect = KubernetesError("forbidden", status_code=403)

        result = cli_runner.invoke(cli_app, ["revisions", "shop", "orders-api"])

        assert result.exit_code == 1
        apim.read_revisions.assert_not_called()


@pytest.mark.unit
class TestRunCommand:
    """Tests for the run command."""

    def test_run(
        self,
        cli_runner: CliRunner,
        cli_app: typer.Typer,
        mocker: MockerFixture,
        k8s_client: MagicMock,
    ) -> None:
        """The manager runs with CLI overrides and the client is closed."""
        mocker.patch(f"{RUN}.build_kubernetes_client", return_value=k8s_client)
        mocker.patch(f"{RUN}.build_credential")
        mocker.patch(f"{RUN}.signal.signal")
        manager_cls = mocker.patch(f"{RUN}.OperatorManager")

        result = cli_runner.invoke(cli_app, ["run", "--workers", "4", "-n", "shop"])

        assert result.exit_code == 0
        assert "apim-operator running" in result.stdout
        config = manager_cls.call_args.args[0]
        assert config.workers == 4
        assert config.watch_namespace == "shop"
        manager_cls.return_value.run.assert_called_once()
        k8s_client.close.assert_called_once()
