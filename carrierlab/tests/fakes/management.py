"""Fake TestManagementPort implementation for testing."""

import uuid
from collections import Counter
from collections.abc import Mapping
from datetime import UTC, datetime
from typing import Any

from carrierlab.core.errors import InvalidTestConfigError, QueueFullError, TestActiveError
from carrierlab.core.models import (
    EngineStats,
    ResultsSummary,
    RunningTest,
    ScheduledTestInfo,
    TestConfig,
    TestKind,
    TestReport,
    TestStatus,
)
from carrierlab.core.ports import TestManagementPort


class FakeTestManagementPort(TestManagementPort):
    """In-memory management port for transport tests.

    Tracks all operations. ``reject_with_queue_full`` makes submissions
    fail admission; unknown kinds raise InvalidTestConfigError.
    """

    __test__ = False

    def __init__(self) -> None:
        self.configs: dict[str, TestConfig] = {}
        self.submitted: list[tuple[str, dict[str, Any]]] = []
        self.stopped: list[str] = []
        self.deleted: list[str] = []
        self.schedules: dict[str, ScheduledTestInfo] = {}
        self.reject_with_queue_full: bool = False
        self.should_fail: bool = False
        self.fail_message: str = "Management operation failed"

    async def submit_test(self, kind: str, params: Mapping[str, Any]) -> TestConfig:
        if self.should_fail:
            raise RuntimeError(self.fail_message)
        try:
            test_kind = TestKind(kind)
        except ValueError as e:
            raise InvalidTestConfigError(f"Unknown test kind {kind!r}") from e

        test_id = str(uuid.uuid4())
        if self.reject_with_queue_full:
            raise QueueFullError(test_id, 0)

        config = TestConfig(
            test_id=test_id,
            kind=test_kind,
            params=dict(params),
            status=TestStatus.RUNNING,
        )
        self.configs[test_id] = config
        self.submitted.append((kind, dict(params)))
        return config

    async def stop_test(self, test_id: str) -> bool:
        config = self.configs.get(test_id)
        if config is None or config.status.is_terminal:
            return False
        config.status = TestStatus.STOPPED
        self.stopped.append(test_id)
        return True

    async def get_test_report(self, test_id: str, recent: int = 10) -> TestReport | None:
        config = self.configs.get(test_id)
        if config is None:
            return None
        return TestReport(config=config, recent_samples=())

    async def list_active_tests(self) -> list[RunningTest]:
        return []

    async def list_tests(
        self, status: str | None = None, limit: int = 100
    ) -> list[TestConfig]:
        configs = list(self.configs.values())
        if status is not None:
            try:
                wanted = TestStatus(status)
            except ValueError as e:
                raise InvalidTestConfigError(f"Unknown status {status!r}") from e
            configs = [c for c in configs if c.status == wanted]
        return configs[:limit]

    async def delete_test(self, test_id: str) -> bool:
        config = self.configs.get(test_id)
        if config is None:
            return False
        if not config.status.is_terminal:
            raise TestActiveError(test_id)
        del self.configs[test_id]
        self.deleted.append(test_id)
        return True

    async def get_results_summary(self) -> ResultsSummary:
        configs = list(self.configs.values())
        return ResultsSummary(
            total_tests=len(configs),
            total_samples=0,
            by_kind=dict(Counter(c.kind.value for c in configs)),
            by_status=dict(Counter(c.status.value for c in configs)),
        )

    async def get_stats(self) -> EngineStats:
        running = sum(1 for c in self.configs.values() if c.status == TestStatus.RUNNING)
        return EngineStats(
            tests_started=len(self.configs),
            tests_succeeded=0,
            tests_failed=0,
            total_runtime_seconds=0.0,
            running_count=running,
            queue_depth=0,
            scheduled_count=len(self.schedules),
            max_concurrent_tests=10,
        )

    async def schedule_recurring_test(
        self, kind: str, params: Mapping[str, Any], interval_seconds: float
    ) -> ScheduledTestInfo:
        info = ScheduledTestInfo(
            schedule_id=str(uuid.uuid4()),
            kind=TestKind(kind),
            params=dict(params),
            interval_seconds=interval_seconds,
        )
        self.schedules[info.schedule_id] = info
        return info

    async def cancel_recurring_test(self, schedule_id: str) -> bool:
        return self.schedules.pop(schedule_id, None) is not None

    async def list_recurring_tests(self) -> list[ScheduledTestInfo]:
        return list(self.schedules.values())

    def add_config(self, kind: TestKind, status: TestStatus) -> TestConfig:
        """Seed a stored test directly."""
        config = TestConfig(
            test_id=str(uuid.uuid4()),
            kind=kind,
            params={},
            created_at=datetime.now(UTC),
            status=status,
        )
        self.configs[config.test_id] = config
        return config
