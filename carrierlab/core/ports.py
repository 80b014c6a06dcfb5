"""Port interfaces for the carrierlab testing engine.

These abstract base classes define the boundaries between core
domain logic and external adapters. Implementations live in the
adapters/ package.

Port Interface Categories:

1. **Driven Ports** (core calls out to adapters)
   - SampleSourcePort: Produce one measurement per tick
   - ResultStorePort: Persist test configs, statuses and samples
   - BroadcasterPort: Fan events out to live subscribers

2. **Driving Ports** (adapters/external systems call into core)
   - TestManagementPort: Submit, stop, inspect and schedule tests
"""

from abc import ABC, abstractmethod
from collections.abc import Mapping, Sequence
from typing import Any

from .models import (
    EngineStats,
    ResultsSummary,
    RunningTest,
    Sample,
    ScheduledTestInfo,
    TestConfig,
    TestEvent,
    TestReport,
    TestStatus,
)


# ============================================================================
# DRIVEN PORTS (Core calls out to adapters)
# ============================================================================


class SampleSourcePort(ABC):
    """Port for obtaining measurements from a probe.

    The engine treats probes opaquely: it hands over the test's config and
    a sequence number and gets back a kind-specific payload or an exception.

    Implementations must handle:
    - Their own timeouts (a call may otherwise block one test's loop)
    - Kind-specific parameter interpretation
    """

    async def prepare(self, config: TestConfig) -> None:
        """Acquire anything the probe needs before the first tick.

        Raising here is a setup failure: the test is marked failed.
        Default implementation does nothing.
        """

    @abstractmethod
    async def sample(self, config: TestConfig, sequence: int) -> Mapping[str, Any]:
        """Take one measurement.

        Args:
            config: The test's configuration.
            sequence: Zero-based tick number within this test.

        Returns:
            Kind-specific measurement payload.

        Raises:
            Exception: On any probe failure. The engine records an
                error-shaped sample and keeps the loop running.
        """

    async def summarize(
        self, config: TestConfig, samples: Sequence[Sample]
    ) -> Mapping[str, Any] | None:
        """Compute a terminal summary after the loop completes.

        Args:
            config: The test's configuration.
            samples: Every sample recorded for the test, in order.

        Returns:
            Summary payload saved as the final sample, or None to skip.
        """
        return None

    async def close(self) -> None:
        """Release probe resources (HTTP clients, etc.)."""


class ResultStorePort(ABC):
    """Port for durable storage of test configs and their samples.

    Samples form an append-only sequence per test; reads return them
    in the order they were produced.

    Implementations must handle:
    - Concurrent writes from many tests
    - Unknown test IDs on status updates (no-op)
    """

    @abstractmethod
    async def save_config(self, config: TestConfig) -> None:
        """Persist a new test configuration.

        Raises:
            Exception: If a config with the same ID exists or storage is unavailable.
        """

    @abstractmethod
    async def get_config(self, test_id: str) -> TestConfig | None:
        """Look up a test configuration and its current status.

        Returns:
            TestConfig if found, None otherwise.
        """

    @abstractmethod
    async def update_status(self, test_id: str, status: TestStatus) -> None:
        """Set the persisted status of a test.

        Unknown test IDs are ignored.
        """

    @abstractmethod
    async def save_result(self, test_id: str, sample: Sample) -> None:
        """Append a sample to the test's result sequence."""

    @abstractmethod
    async def get_results(self, test_id: str, limit: int | None = None) -> list[Sample]:
        """Read samples back in production order.

        Args:
            test_id: Test to read.
            limit: When set, only the most recent ``limit`` samples
                (still in production order).
        """

    @abstractmethod
    async def list_configs(
        self, status: TestStatus | None = None, limit: int = 100
    ) -> list[TestConfig]:
        """List stored tests, newest first, optionally filtered by status."""

    @abstractmethod
    async def delete_test(self, test_id: str) -> bool:
        """Delete a test and its samples. Returns False if unknown."""

    @abstractmethod
    async def summarize(self) -> ResultsSummary:
        """Count stored tests by kind and by status, plus total samples."""

    @abstractmethod
    async def cleanup_old_data(self, days_to_keep: int = 30) -> int:
        """Delete samples and finished tests older than the retention window.

        Returns:
            Number of test configs removed.
        """

    async def close(self) -> None:
        """Release storage resources."""


class BroadcasterPort(ABC):
    """Port for delivering events to live subscribers.

    No delivery guarantee and no backpressure: a slow or absent
    subscriber must never block the publisher.
    """

    @abstractmethod
    async def publish(self, event: TestEvent) -> None:
        """Deliver an event to all current subscribers, best effort."""


# ============================================================================
# DRIVING PORTS (Adapters/external systems call into core)
# ============================================================================


class TestManagementPort(ABC):
    """Port for requesting and inspecting tests.

    Driving port: the HTTP receiver and the CLI call these methods.
    Implementations live in the core (test_service.py).
    """

    __test__ = False

    @abstractmethod
    async def submit_test(self, kind: str, params: Mapping[str, Any]) -> TestConfig:
        """Validate, persist and admit a new test.

        Returns:
            The stored TestConfig (status PENDING or RUNNING).

        Raises:
            InvalidTestConfigError: If kind or parameters are invalid.
            AdmissionError: If the engine rejected the test.
        """

    @abstractmethod
    async def stop_test(self, test_id: str) -> bool:
        """Stop a running or queued test. Returns False if unknown."""

    @abstractmethod
    async def get_test_report(self, test_id: str, recent: int = 10) -> TestReport | None:
        """Stored config plus recent samples, or None if unknown."""

    @abstractmethod
    async def list_active_tests(self) -> list[RunningTest]:
        """Tests currently resident in the running table."""

    @abstractmethod
    async def list_tests(
        self, status: str | None = None, limit: int = 100
    ) -> list[TestConfig]:
        """Stored tests, newest first."""

    @abstractmethod
    async def delete_test(self, test_id: str) -> bool:
        """Delete a finished test and its samples. Returns False if unknown.

        Raises:
            TestActiveError: If the test is running or queued.
        """

    @abstractmethod
    async def get_results_summary(self) -> ResultsSummary:
        """Counts over the stored tests."""

    @abstractmethod
    async def get_stats(self) -> EngineStats:
        """Engine statistics snapshot."""

    @abstractmethod
    async def schedule_recurring_test(
        self, kind: str, params: Mapping[str, Any], interval_seconds: float
    ) -> ScheduledTestInfo:
        """Register a test to be submitted every ``interval_seconds``."""

    @abstractmethod
    async def cancel_recurring_test(self, schedule_id: str) -> bool:
        """Remove a recurring registration. Returns False if unknown."""

    @abstractmethod
    async def list_recurring_tests(self) -> list[ScheduledTestInfo]:
        """Current recurring registrations."""
