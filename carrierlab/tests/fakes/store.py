"""Fake ResultStorePort implementation for testing."""

from collections import Counter
from datetime import UTC, datetime, timedelta

from carrierlab.core.models import ResultsSummary, Sample, TestConfig, TestStatus
from carrierlab.core.ports import ResultStorePort


class FakeResultStore(ResultStorePort):
    """In-memory result store for testing.

    Tracks every status transition and write so tests can assert on
    ordering. ``should_fail_results`` / ``should_fail_status`` make the
    corresponding writes raise.
    """

    def __init__(self):
        self.configs: dict[str, TestConfig] = {}
        self.results: dict[str, list[Sample]] = {}
        self.status_history: list[tuple[str, TestStatus]] = []
        self.save_result_call_count = 0
        self.cleanup_calls: list[int] = []
        self.closed = False

        self.should_fail_results: bool = False
        self.should_fail_status: bool = False
        self.should_fail_cleanup: bool = False
        self.fail_message: str = "Store unavailable"

    async def save_config(self, config: TestConfig) -> None:
        if config.test_id in self.configs:
            raise ValueError(f"Config {config.test_id} already exists")
        self.configs[config.test_id] = config

    async def get_config(self, test_id: str) -> TestConfig | None:
        return self.configs.get(test_id)

    async def update_status(self, test_id: str, status: TestStatus) -> None:
        if self.should_fail_status:
            raise RuntimeError(self.fail_message)
        self.status_history.append((test_id, status))
        config = self.configs.get(test_id)
        if config is not None:
            config.status = status
            config.updated_at = datetime.now(UTC)

    async def save_result(self, test_id: str, sample: Sample) -> None:
        self.save_result_call_count += 1
        if self.should_fail_results:
            raise RuntimeError(self.fail_message)
        self.results.setdefault(test_id, []).append(sample)

    async def get_results(self, test_id: str, limit: int | None = None) -> list[Sample]:
        samples = list(self.results.get(test_id, []))
        if limit is not None:
            samples = samples[-limit:] if limit > 0 else []
        return samples

    async def list_configs(
        self, status: TestStatus | None = None, limit: int = 100
    ) -> list[TestConfig]:
        configs = sorted(self.configs.values(), key=lambda c: c.created_at, reverse=True)
        if status is not None:
            configs = [c for c in configs if c.status == status]
        return configs[:limit]

    async def delete_test(self, test_id: str) -> bool:
        self.results.pop(test_id, None)
        return self.configs.pop(test_id, None) is not None

    async def summarize(self) -> ResultsSummary:
        by_kind = Counter(c.kind.value for c in self.configs.values())
        by_status = Counter(c.status.value for c in self.configs.values())
        return ResultsSummary(
            total_tests=len(self.configs),
            total_samples=sum(len(s) for s in self.results.values()),
            by_kind=dict(by_kind),
            by_status=dict(by_status),
        )

    async def cleanup_old_data(self, days_to_keep: int = 30) -> int:
        self.cleanup_calls.append(days_to_keep)
        if self.should_fail_cleanup:
            raise RuntimeError(self.fail_message)
        cutoff = datetime.now(UTC) - timedelta(days=days_to_keep)
        stale = [
            test_id
            for test_id, c in self.configs.items()
            if c.status.is_terminal and (c.updated_at or c.created_at) < cutoff
        ]
        for test_id in stale:
            await self.delete_test(test_id)
        return len(stale)

    async def close(self) -> None:
        self.closed = True

    def statuses_for(self, test_id: str) -> list[TestStatus]:
        """Status transitions recorded for one test, in order."""
        return [status for tid, status in self.status_history if tid == test_id]

    def samples_for(self, test_id: str) -> list[Sample]:
        return list(self.results.get(test_id, []))
