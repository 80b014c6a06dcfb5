"""Tests for the httpx-backed probe using a mock transport."""

import json

import httpx
import pytest

from carrierlab.adapters.probes.http import CARRIER_TEST_SUITES, HttpSampleSource
from carrierlab.core.models import TestConfig, TestKind


def config(kind: TestKind, **params) -> TestConfig:
    return TestConfig(test_id="t-1", kind=kind, params=params)


def make_source(handler) -> HttpSampleSource:
    client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
    return HttpSampleSource(timeout=1.0, client=client)


class TestApiRequest:
    @pytest.mark.asyncio
    async def test_successful_request_is_measured(self) -> None:
        async with make_source(lambda request: httpx.Response(200, text="ok")) as source:
            data = await source.sample(
                config(TestKind.API_TEST, endpoint="https://api.example/v1"), 0
            )

        assert data["status_code"] == 200
        assert data["success"] is True
        assert data["method"] == "GET"
        assert data["endpoint"] == "https://api.example/v1"
        assert data["response_size"] == 2
        assert data["response_time"] >= 0

    @pytest.mark.asyncio
    async def test_server_error_is_unsuccessful_not_raised(self) -> None:
        async with make_source(lambda request: httpx.Response(503)) as source:
            data = await source.sample(config(TestKind.API_TEST, endpoint="https://x"), 0)

        assert data["status_code"] == 503
        assert data["success"] is False

    @pytest.mark.asyncio
    async def test_post_sends_json_payload_and_headers(self) -> None:
        seen: list[httpx.Request] = []

        def handler(request: httpx.Request) -> httpx.Response:
            seen.append(request)
            return httpx.Response(201)

        async with make_source(handler) as source:
            await source.sample(
                config(
                    TestKind.API_TEST,
                    endpoint="https://x/items",
                    method="post",
                    headers={"X-Trace": "abc"},
                    payload={"name": "probe"},
                ),
                0,
            )

        (request,) = seen
        assert request.method == "POST"
        assert request.headers["X-Trace"] == "abc"
        assert json.loads(request.content) == {"name": "probe"}

    @pytest.mark.asyncio
    async def test_transport_failure_propagates(self) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ConnectError("connection refused")

        async with make_source(handler) as source:
            with pytest.raises(httpx.ConnectError):
                await source.sample(config(TestKind.API_TEST, endpoint="https://x"), 0)


class TestHealthAndLoad:
    @pytest.mark.asyncio
    async def test_health_check_counts_healthy_endpoints(self) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            if request.url.host == "down.example":
                raise httpx.ConnectTimeout("timed out")
            return httpx.Response(200)

        async with make_source(handler) as source:
            data = await source.sample(
                config(
                    TestKind.API_HEALTH,
                    endpoints=["https://up.example/health", "https://down.example/health"],
                ),
                0,
            )

        assert data["healthy_endpoints"] == 1
        assert data["total_endpoints"] == 2
        assert data["success"] is False
        assert data["checks"][1]["status_code"] == 0
        assert "error" in data["checks"][1]

    @pytest.mark.asyncio
    async def test_load_burst_sends_concurrency_requests(self) -> None:
        calls = []

        def handler(request: httpx.Request) -> httpx.Response:
            calls.append(request)
            return httpx.Response(200 if len(calls) % 2 else 500)

        async with make_source(handler) as source:
            data = await source.sample(
                config(TestKind.LOAD_TEST, endpoint="https://x", concurrency=4), 0
            )

        assert len(calls) == 4
        assert data["total_requests"] == 4
        assert data["successful_requests"] == 2
        assert data["failed_requests"] == 2
        assert data["status_codes"] == {"200": 2, "500": 2}
        assert data["min_response_time"] <= data["average_response_time"] <= data["max_response_time"]


class TestCarrierApi:
    @pytest.mark.asyncio
    async def test_basic_suite_with_bearer_token(self) -> None:
        seen: list[httpx.Request] = []

        def handler(request: httpx.Request) -> httpx.Response:
            seen.append(request)
            return httpx.Response(200 if request.url.path == "/status" else 404)

        async with make_source(handler) as source:
            data = await source.sample(
                config(
                    TestKind.CARRIER_API,
                    carrier="verizon",
                    base_url="https://carrier.example/",
                    api_key="secret",
                ),
                0,
            )

        assert [r.url.path for r in seen] == ["/status", "/health"]
        assert all(r.headers["Authorization"] == "Bearer secret" for r in seen)
        assert data["carrier"] == "verizon"
        assert data["test_suite"] == "basic"
        assert data["passed"] == 1
        assert data["failed"] == 1
        assert data["success"] is False
        assert data["checks"][0]["description"] == "Service status check"

    @pytest.mark.asyncio
    async def test_comprehensive_suite_runs_every_check(self) -> None:
        async with make_source(lambda request: httpx.Response(200)) as source:
            data = await source.sample(
                config(
                    TestKind.CARRIER_API,
                    base_url="https://carrier.example",
                    test_suite="comprehensive",
                ),
                0,
            )

        assert data["passed"] == len(CARRIER_TEST_SUITES["comprehensive"])
        assert data["success"] is True

    @pytest.mark.asyncio
    async def test_prepare_requires_base_url(self) -> None:
        async with make_source(lambda request: httpx.Response(200)) as source:
            with pytest.raises(ValueError, match="Carrier API endpoint not configured"):
                await source.prepare(config(TestKind.CARRIER_API, carrier="att"))

    @pytest.mark.asyncio
    async def test_prepare_rejects_unknown_suite(self) -> None:
        async with make_source(lambda request: httpx.Response(200)) as source:
            with pytest.raises(ValueError, match="Unknown carrier test suite"):
                await source.prepare(
                    config(TestKind.CARRIER_API, base_url="https://x", test_suite="fuzz")
                )


@pytest.mark.asyncio
async def test_prepare_rejects_radio_kinds() -> None:
    async with make_source(lambda request: httpx.Response(200)) as source:
        with pytest.raises(ValueError, match="cannot run speed tests"):
            await source.prepare(config(TestKind.SPEED))
