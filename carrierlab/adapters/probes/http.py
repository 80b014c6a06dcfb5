"""HTTP probe adapter.

Implements SampleSourcePort for the API-facing kinds (api_test,
load_test, api_health, carrier_api) with a shared httpx.AsyncClient.
Non-2xx/3xx responses are recorded as unsuccessful measurements rather
than raised; transport failures of a single-request probe propagate so
the engine records an error sample.
"""

import asyncio
import logging
import time
from collections import Counter
from collections.abc import Mapping, Sequence
from typing import Any

import httpx

from carrierlab.core.models import Sample, TestConfig, TestKind
from carrierlab.core.ports import SampleSourcePort
from carrierlab.core.sampling import plan_for

from .summaries import summarize_api_requests, summarize_load_test

logger = logging.getLogger(__name__)

CARRIER_TEST_SUITES: dict[str, list[tuple[str, str, str]]] = {
    "basic": [
        ("/status", "GET", "Service status check"),
        ("/health", "GET", "Health check"),
    ],
    "comprehensive": [
        ("/status", "GET", "Service status check"),
        ("/health", "GET", "Health check"),
        ("/coverage", "GET", "Coverage areas"),
        ("/plans", "GET", "Available plans"),
        ("/usage", "GET", "Usage statistics"),
    ],
    "authentication": [
        ("/auth/token", "POST", "Token authentication"),
        ("/auth/validate", "GET", "Token validation"),
        ("/auth/refresh", "POST", "Token refresh"),
    ],
}

HTTP_KINDS = frozenset(
    {TestKind.API_TEST, TestKind.LOAD_TEST, TestKind.API_HEALTH, TestKind.CARRIER_API}
)


def _is_success(status_code: int) -> bool:
    return 200 <= status_code < 400


class HttpSampleSource(SampleSourcePort):
    """httpx-backed probes for HTTP API tests."""

    def __init__(self, timeout: float = 10.0, client: httpx.AsyncClient | None = None):
        """Initialize the HTTP probe.

        Args:
            timeout: Per-request timeout in seconds.
            client: Optional pre-built client (tests inject a MockTransport).
        """
        self.timeout = timeout
        self.client = client or httpx.AsyncClient(timeout=timeout)

    async def __aenter__(self):
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        await self.close()

    async def close(self) -> None:
        await self.client.aclose()

    async def prepare(self, config: TestConfig) -> None:
        if config.kind not in HTTP_KINDS:
            raise ValueError(f"HTTP probe cannot run {config.kind.value} tests")
        if config.kind is TestKind.CARRIER_API:
            if not config.params.get("base_url"):
                raise ValueError("Carrier API endpoint not configured")
            suite = config.params.get("test_suite", "basic")
            if suite not in CARRIER_TEST_SUITES:
                raise ValueError(f"Unknown carrier test suite: {suite}")

    async def sample(self, config: TestConfig, sequence: int) -> Mapping[str, Any]:
        params = config.params
        if config.kind is TestKind.API_TEST:
            return await self._request(
                params.get("method", "GET"),
                params["endpoint"],
                headers=params.get("headers"),
                payload=params.get("payload"),
            )
        if config.kind is TestKind.API_HEALTH:
            return await self._health_check(params["endpoints"])
        if config.kind is TestKind.LOAD_TEST:
            return await self._load_burst(params)
        if config.kind is TestKind.CARRIER_API:
            return await self._carrier_suite(params)
        raise ValueError(f"HTTP probe cannot run {config.kind.value} tests")

    async def summarize(
        self, config: TestConfig, samples: Sequence[Sample]
    ) -> Mapping[str, Any] | None:
        if config.kind is TestKind.API_TEST:
            return summarize_api_requests(samples) or None
        if config.kind is TestKind.LOAD_TEST:
            duration = plan_for(config).duration_seconds or 0.0
            return summarize_load_test(samples, duration)
        return None

    async def _request(
        self,
        method: str,
        url: str,
        headers: Mapping[str, str] | None = None,
        payload: Any = None,
    ) -> dict[str, Any]:
        """Send one request and measure it. Raises httpx.HTTPError on transport failure."""
        method = method.upper()
        kwargs: dict[str, Any] = {"headers": dict(headers or {})}
        if payload is not None and method in ("POST", "PUT", "PATCH"):
            kwargs["json"] = payload

        started = time.perf_counter()
        response = await self.client.request(method, url, timeout=self.timeout, **kwargs)
        response_time = (time.perf_counter() - started) * 1000

        return {
            "endpoint": url,
            "method": method,
            "status_code": response.status_code,
            "response_time": round(response_time, 3),
            "success": _is_success(response.status_code),
            "response_size": len(response.content),
        }

    async def _safe_request(
        self,
        method: str,
        url: str,
        headers: Mapping[str, str] | None = None,
        payload: Any = None,
    ) -> dict[str, Any]:
        """Like _request, but a transport failure becomes an unsuccessful result."""
        try:
            return await self._request(method, url, headers=headers, payload=payload)
        except httpx.HTTPError as e:
            logger.debug(f"{method} {url} failed: {e}")
            return {
                "endpoint": url,
                "method": method.upper(),
                "status_code": 0,
                "response_time": self.timeout * 1000,
                "success": False,
                "error": str(e) or type(e).__name__,
            }

    async def _health_check(self, endpoints: Sequence[str] | str) -> dict[str, Any]:
        if isinstance(endpoints, str):
            endpoints = [endpoints]
        checks = [await self._safe_request("GET", url) for url in endpoints]
        healthy = sum(1 for c in checks if c["success"])
        return {
            "healthy_endpoints": healthy,
            "total_endpoints": len(checks),
            "success": healthy == len(checks),
            "checks": checks,
        }

    async def _load_burst(self, params: Mapping[str, Any]) -> dict[str, Any]:
        """Fire ``concurrency`` requests at once and report the burst."""
        concurrency = max(1, int(params.get("concurrency", 10)))
        method = params.get("method", "GET")
        started = time.perf_counter()
        results = await asyncio.gather(
            *(
                self._safe_request(
                    method,
                    params["endpoint"],
                    headers=params.get("headers"),
                    payload=params.get("payload"),
                )
                for _ in range(concurrency)
            )
        )
        elapsed = time.perf_counter() - started

        successful = sum(1 for r in results if r["success"])
        response_times = [r["response_time"] for r in results]
        return {
            "total_requests": len(results),
            "successful_requests": successful,
            "failed_requests": len(results) - successful,
            "current_rps": round(len(results) / elapsed, 3) if elapsed > 0 else 0.0,
            "average_response_time": sum(response_times) / len(response_times),
            "min_response_time": min(response_times),
            "max_response_time": max(response_times),
            "status_codes": dict(Counter(str(r["status_code"]) for r in results)),
        }

    async def _carrier_suite(self, params: Mapping[str, Any]) -> dict[str, Any]:
        base_url = str(params["base_url"]).rstrip("/")
        suite = params.get("test_suite", "basic")
        headers = {"Content-Type": "application/json"}
        if params.get("api_key"):
            headers["Authorization"] = f"Bearer {params['api_key']}"

        checks = []
        for path, method, description in CARRIER_TEST_SUITES[suite]:
            result = await self._safe_request(method, f"{base_url}{path}", headers=headers)
            result["description"] = description
            logger.info(
                f"Carrier API test: {description} - {'PASSED' if result['success'] else 'FAILED'}"
            )
            checks.append(result)

        passed = sum(1 for c in checks if c["success"])
        return {
            "carrier": params.get("carrier", "unknown"),
            "test_suite": suite,
            "passed": passed,
            "failed": len(checks) - passed,
            "success": passed == len(checks),
            "checks": checks,
        }
