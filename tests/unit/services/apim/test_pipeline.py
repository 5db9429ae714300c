"""Readiness through sync against an HTTP-mocked control plane."""

from __future__ import annotations

from collections.abc import Callable, Iterator
from typing import Any
from unittest.mock import MagicMock

import httpx
import pytest
import respx
from httpx import Response

from apim_operator.core.config import SyncTimingConfig
from apim_operator.integrations.apim.config import ApimConnectionConfig
from apim_operator.integrations.kubernetes.models.apim import (
    APIMAPI_PLURAL,
    WORK_ORDER_PLURAL,
    ApimApi,
    ApimService,
)
from apim_operator.services.apim.dispatcher import WorkOrderDispatcher
from apim_operator.services.apim.executor import SyncExecutor
from apim_operator.services.apim.openapi import OpenAPIFetcher
from apim_operator.services.apim.readiness import ReadinessDetector

SERVICE_URL = (
    "https://management.azure.com/subscriptions/sub-123/resourceGroups/rg-apis"
    "/providers/Microsoft.ApiManagement/service/contoso-apim"
)
API_URL = f"{SERVICE_URL}/apis/orders-api"
DOC_URL = "https://orders.internal/openapi.json"
DOCUMENT = b'{"openapi": "3.0.1", "info": {"title": "Orders", "version": "1"}, "paths": {}}'
RS_KEY = "shop/orders-api-7d9f"
KEY = "shop/orders-api"


@pytest.fixture
def control_plane() -> Iterator[respx.MockRouter]:
    """Management API and OpenAPI document endpoints."""
    with respx.mock(assert_all_called=False) as router:
        router.get(DOC_URL, name="document").mock(
            return_value=Response(200, content=DOCUMENT)
        )
        router.get(API_URL, name="etag").mock(
            return_value=Response(200, json={}, headers={"ETag": '"t1"'})
        )
        router.put(API_URL, name="import").mock(return_value=Response(200, json={}))
        router.patch(API_URL, name="patch").mock(return_value=Response(200, json={}))
        router.put(f"{SERVICE_URL}/products/public/apis/orders-api", name="product").mock(
            return_value=Response(201)
        )
        router.get(SERVICE_URL, name="service").mock(
            return_value=Response(
                200,
                json={
                    "properties": {
                        "hostnameConfigurations": [
                            {"type": "Proxy", "hostName": "gw.example"},
                            {"type": "DeveloperPortal", "hostName": "portal.example"},
                        ]
                    }
                },
            )
        )
        yield router


@pytest.fixture
def fetcher(timing: SyncTimingConfig) -> Iterator[OpenAPIFetcher]:
    """Document fetcher that never sleeps."""
    fetcher = OpenAPIFetcher(timing, sleep=lambda _: None)
    yield fetcher
    fetcher.close()


@pytest.fixture
def dispatcher(fake_resources: Any, timing: SyncTimingConfig) -> WorkOrderDispatcher:
    """Dispatcher writing to the in-memory resources."""
    return WorkOrderDispatcher(fake_resources, timing, sleep=lambda _: None)


@pytest.fixture
def executor(
    fake_resources: Any,
    mock_credential: MagicMock,
    fetcher: OpenAPIFetcher,
    timing: SyncTimingConfig,
    apim_config: ApimConnectionConfig,
    fixed_clock: Callable[[], str],
) -> SyncExecutor:
    """Executor using the real management client."""
    return SyncExecutor(
        fake_resources, mock_credential, fetcher, timing, apim_config, clock=fixed_clock
    )


def _requests(router: respx.MockRouter, start: int = 0) -> list[tuple[str, str, bytes]]:
    return [
        (call.request.method, str(call.request.url), call.request.content)
        for call in router.calls[start:]
    ]


@pytest.mark.unit
class TestPipeline:
    """Tests chaining detector, dispatcher and executor."""

    def test_rollout_publishes_api(
        self,
        fake_resources: Any,
        dispatcher: WorkOrderDispatcher,
        executor: SyncExecutor,
        control_plane: respx.MockRouter,
    ) -> None:
        """A ready rollout ends with the API published and the work order gone."""
        detector = ReadinessDetector(fake_resources, dispatcher)
        fake_resources.add_replica_set("orders-api-7d9f", ready=0)
        detector.reconcile(RS_KEY)
        assert fake_resources.created == []

        fake_resources.add_replica_set("orders-api-7d9f", ready=3)
        detector.reconcile(RS_KEY)
        detector.reconcile(RS_KEY)

        assert [(name, ns) for name, ns, _ in fake_resources.created] == [("orders-api", "shop")]
        assert (WORK_ORDER_PLURAL, "shop", "orders-api") in fake_resources.objects

        assert executor.reconcile(KEY) is None

        assert fake_resources.deleted == [("orders-api", "shop")]
        assert (WORK_ORDER_PLURAL, "shop", "orders-api") not in fake_resources.objects
        status = fake_resources.objects[(APIMAPI_PLURAL, "shop", "orders-api")]["status"]
        assert status["status"] == "OK"
        assert status["apiHost"] == "https://gw.example/orders"
        assert status["developerPortalHost"] == "https://portal.example"
        imported = control_plane["import"].calls.last.request
        assert imported.headers["If-Match"] == '"t1"'
        assert imported.content == DOCUMENT
        assert control_plane["product"].called

    def test_repeated_sync_converges(
        self,
        fake_resources: Any,
        dispatcher: WorkOrderDispatcher,
        executor: SyncExecutor,
        control_plane: respx.MockRouter,
        apimapi_dict: dict[str, Any],
        apimservice_dict: dict[str, Any],
    ) -> None:
        """Running the same work order twice sends the same calls and records the same state."""
        api = ApimApi.from_k8s_object(apimapi_dict)
        service = ApimService.from_k8s_object(apimservice_dict)

        dispatcher.dispatch(api, service)
        executor.reconcile(KEY)
        first_calls = _requests(control_plane)
        first_status = fake_resources.statuses_for(APIMAPI_PLURAL, "orders-api")

        dispatcher.dispatch(api, service)
        executor.reconcile(KEY)
        second_calls = _requests(control_plane, len(first_calls))
        second_status = fake_resources.statuses_for(APIMAPI_PLURAL, "orders-api")[1:]

        assert second_calls == first_calls
        assert second_status == first_status
        assert fake_resources.created[0][2] == fake_resources.created[1][2]
        assert (WORK_ORDER_PLURAL, "shop", "orders-api") not in fake_resources.objects

    @pytest.mark.parametrize(
        "error",
        [httpx.ReadError("connection reset"), httpx.RemoteProtocolError("peer closed")],
    )
    def test_transport_failure_recorded(
        self,
        fake_resources: Any,
        dispatcher: WorkOrderDispatcher,
        executor: SyncExecutor,
        control_plane: respx.MockRouter,
        apimapi_dict: dict[str, Any],
        apimservice_dict: dict[str, Any],
        error: Exception,
    ) -> None:
        """A dropped connection during import is reported and requeued."""
        control_plane["import"].mock(side_effect=error)
        dispatcher.dispatch(
            ApimApi.from_k8s_object(apimapi_dict), ApimService.from_k8s_object(apimservice_dict)
        )

        result = executor.reconcile(KEY)

        assert result is not None
        assert result.requeue_after == 60
        status = fake_resources.objects[(APIMAPI_PLURAL, "shop", "orders-api")]["status"]
        assert status["status"] == "Error"
        assert status["message"].startswith("API Management request failed")
        phases = fake_resources.statuses_for(WORK_ORDER_PLURAL, "orders-api")
        assert phases[-1]["phase"] == "Importing"
        assert (WORK_ORDER_PLURAL, "shop", "orders-api") in fake_resources.objects
