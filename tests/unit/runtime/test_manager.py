"""Unit tests for the operator manager."""

from __future__ import annotations

import threading
from unittest.mock import MagicMock

import pytest
from pytest_mock import MockerFixture

from apim_operator.core.config import OperatorConfig
from apim_operator.integrations.apim.config import ApimConnectionConfig
from apim_operator.runtime.controller import GenerationChanged, accept_all, added_only
from apim_operator.runtime.manager import OperatorManager


@pytest.fixture
def manager(mock_k8s_client: MagicMock) -> OperatorManager:
    """Manager watching the shop namespace."""
    config = OperatorConfig(
        operator_namespace="apim-system", watch_namespace="shop", workers=3, watch_timeout=120
    )
    return OperatorManager(config, mock_k8s_client, MagicMock(), ApimConnectionConfig())


@pytest.mark.unit
@pytest.mark.kubernetes
class TestOperatorManager:
    """Tests for OperatorManager."""

    def test_controllers(self, manager: OperatorManager) -> None:
        """One controller runs per watched kind, two for APIMAPIs."""
        assert [c.name for c in manager.controllers] == [
            "replicasets",
            "apimapideployments",
            "apimapis",
            "apimapis-declarations",
            "apimproducts",
            "apimtags",
            "apiminboundpolicies",
        ]

    def test_event_filters(self, manager: OperatorManager) -> None:
        """Work orders react to creations; catalog kinds to spec changes."""
        filters = {c.name: c._event_filter for c in manager.controllers}

        assert filters["replicasets"] is accept_all
        assert filters["apimapideployments"] is added_only
        assert filters["apimapis"] is accept_all
        assert isinstance(filters["apimapis-declarations"], GenerationChanged)
        assert isinstance(filters["apimproducts"], GenerationChanged)
        assert filters["apimproducts"] is not filters["apimtags"]

    def test_watch_namespace_and_settings(
        self, manager: OperatorManager, mock_k8s_client: MagicMock
    ) -> None:
        """Watches are limited to the configured namespace."""
        replica_sets = manager.controllers[0]
        work_orders = manager.controllers[1]

        assert replica_sets._list_func is mock_k8s_client.apps_v1.list_namespaced_replica_set
        assert replica_sets._list_kwargs == {"namespace": "shop"}
        assert work_orders._list_kwargs["plural"] == "apimapideployments"
        assert work_orders._list_kwargs["namespace"] == "shop"
        assert all(c._workers == 3 for c in manager.controllers)
        assert all(c._watch_timeout == 120 for c in manager.controllers)

    def test_run_starts_and_stops(self, manager: OperatorManager, mocker: MockerFixture) -> None:
        """run starts every controller and stops them when signalled."""
        starts = [mocker.patch.object(c, "start") for c in manager.controllers]
        stops = [mocker.patch.object(c, "stop") for c in manager.controllers]
        close_fetcher = mocker.patch.object(manager.fetcher, "close")
        stop_event = threading.Event()
        stop_event.set()

        manager.run(stop_event)

        for mock in starts + stops:
            mock.assert_called_once()
        close_fetcher.assert_called_once()

    def test_declarations_reach_the_detector(
        self, manager: OperatorManager, mock_k8s_client: MagicMock
    ) -> None:
        """APIMAPI spec changes are routed to the readiness detector."""
        declarations = manager.controllers[3]

        assert declarations._reconcile == manager.detector.reconcile_declaration
        assert declarations._list_kwargs["plural"] == "apimapis"
