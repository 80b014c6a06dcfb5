"""Request receiver for the HTTP API.

Translates JSON request payloads into TestManagementPort calls and
serializes the results. Transport concerns (auth, status codes) live in
http_server.py.
"""

import logging
from collections.abc import Mapping
from typing import Any

from carrierlab.core.errors import InvalidTestConfigError
from carrierlab.core.ports import TestManagementPort

logger = logging.getLogger(__name__)


class TestNotFoundError(LookupError):
    """The requested test or schedule does not exist."""

    __test__ = False


class ApiReceiver:
    """Forwards API requests to the TestManagementPort."""

    def __init__(self, management_port: TestManagementPort):
        self.management_port = management_port

    async def handle_start_request(
        self, kind: str | None, params: Mapping[str, Any] | None
    ) -> dict[str, Any]:
        """Submit a new test.

        Raises:
            InvalidTestConfigError: If kind or params are invalid.
            AdmissionError: If the engine rejected the test.
        """
        if not kind:
            raise InvalidTestConfigError("Missing kind")
        config = await self.management_port.submit_test(kind, params or {})
        logger.info(
            "Test started via API",
            extra={"test_id": config.test_id, "kind": config.kind.value},
        )
        return {
            "status": "success",
            "operation": "start",
            "test_id": config.test_id,
            "test": config.to_dict(),
        }

    async def handle_stop_request(self, test_id: str) -> dict[str, Any]:
        """Stop a running or queued test.

        Raises:
            TestNotFoundError: If the test is neither running nor queued.
        """
        if not await self.management_port.stop_test(test_id):
            raise TestNotFoundError(f"Test {test_id} not found in active tests")
        logger.info("Test stopped via API", extra={"test_id": test_id})
        return {"status": "success", "operation": "stop", "test_id": test_id}

    async def handle_status_request(self, test_id: str, recent: int = 10) -> dict[str, Any]:
        report = await self.management_port.get_test_report(test_id, recent=recent)
        if report is None:
            raise TestNotFoundError(f"Test {test_id} not found")
        return {"status": "success", "operation": "status", "data": report.to_dict()}

    async def handle_list_request(
        self, status: str | None = None, limit: int = 100
    ) -> dict[str, Any]:
        """List stored tests, newest first.

        Raises:
            InvalidTestConfigError: If the status filter is invalid.
        """
        if status is not None and not isinstance(status, str):
            raise InvalidTestConfigError("status must be a string")
        configs = await self.management_port.list_tests(
            status.lower() if status else None, limit
        )
        logger.debug(
            "Tests listed via API",
            extra={"count": len(configs), "status_filter": status},
        )
        return {
            "status": "success",
            "operation": "list",
            "tests": [c.to_dict() for c in configs],
        }

    async def handle_active_request(self) -> dict[str, Any]:
        active = await self.management_port.list_active_tests()
        return {
            "status": "success",
            "operation": "active",
            "tests": [t.to_dict() for t in active],
        }

    async def handle_delete_request(self, test_id: str) -> dict[str, Any]:
        """Delete a finished test and its results.

        Raises:
            TestNotFoundError: If no such test is stored.
            TestActiveError: If the test is still running or queued.
        """
        if not await self.management_port.delete_test(test_id):
            raise TestNotFoundError(f"Test {test_id} not found")
        logger.info("Test deleted via API", extra={"test_id": test_id})
        return {"status": "success", "operation": "delete", "test_id": test_id}

    async def handle_summary_request(self) -> dict[str, Any]:
        summary = await self.management_port.get_results_summary()
        return {"status": "success", "operation": "summary", "data": summary.to_dict()}

    async def handle_stats_request(self) -> dict[str, Any]:
        stats = await self.management_port.get_stats()
        return {"status": "success", "operation": "stats", "data": stats.to_dict()}

    async def handle_schedule_create_request(
        self,
        kind: str | None,
        params: Mapping[str, Any] | None,
        interval_seconds: float | None,
    ) -> dict[str, Any]:
        """Register a recurring test.

        Raises:
            InvalidTestConfigError: If kind, params or interval are invalid.
        """
        if not kind:
            raise InvalidTestConfigError("Missing kind")
        try:
            interval = float(interval_seconds) if interval_seconds is not None else 0.0
        except (TypeError, ValueError) as e:
            raise InvalidTestConfigError("interval_seconds must be a number") from e
        if interval <= 0:
            raise InvalidTestConfigError("interval_seconds must be positive")

        info = await self.management_port.schedule_recurring_test(kind, params or {}, interval)
        logger.info(
            "Recurring test scheduled via API",
            extra={"schedule_id": info.schedule_id, "interval_seconds": interval},
        )
        return {"status": "success", "operation": "schedule", "schedule": info.to_dict()}

    async def handle_schedule_cancel_request(self, schedule_id: str) -> dict[str, Any]:
        if not await self.management_port.cancel_recurring_test(schedule_id):
            raise TestNotFoundError(f"Scheduled test {schedule_id} not found")
        return {"status": "success", "operation": "unschedule", "schedule_id": schedule_id}

    async def handle_schedule_list_request(self) -> dict[str, Any]:
        schedules = await self.management_port.list_recurring_tests()
        return {
            "status": "success",
            "operation": "schedules",
            "schedules": [s.to_dict() for s in schedules],
        }
