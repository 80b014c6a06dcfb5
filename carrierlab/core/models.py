"""Domain models for the carrierlab testing engine.

All models in this module use only Python standard library types,
ensuring zero external dependencies in the core domain.
"""

from collections.abc import Mapping
from dataclasses import dataclass, field
from datetime import UTC, datetime
from enum import Enum
from types import MappingProxyType
from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from .tasks import CancellableTask


class TestKind(Enum):
    """Diagnostic probe families the engine knows how to schedule.

    The value doubles as the prefix of the live event types
    (e.g. ``speed_update``, ``load_test_complete``).
    """

    __test__ = False  # not a pytest collection target

    SPEED = "speed"
    SIGNAL = "signal"
    COVERAGE = "coverage"
    QUALITY = "quality"
    ROAMING = "roaming"
    API_TEST = "api_test"
    LOAD_TEST = "load_test"
    API_HEALTH = "api_health"
    CARRIER_API = "carrier_api"

    def event_type(self, suffix: str) -> str:
        """Build the event type for this kind, e.g. ``speed_update``."""
        return f"{self.value}_{suffix}"


class TestStatus(Enum):
    """Lifecycle states for a test.

    State transitions:
    - PENDING: config saved, waiting for admission or queued
    - RUNNING: resident in the engine's running table
    - COMPLETED: sampling loop reached its duration or iteration count
    - FAILED: setup failed before the first tick
    - STOPPED: explicitly stopped, or cancelled by shutdown
    """

    __test__ = False

    PENDING = "pending"
    RUNNING = "running"
    COMPLETED = "completed"
    FAILED = "failed"
    STOPPED = "stopped"

    @property
    def is_terminal(self) -> bool:
        return self in {TestStatus.COMPLETED, TestStatus.FAILED, TestStatus.STOPPED}


def _utcnow() -> datetime:
    return datetime.now(UTC)


@dataclass
class TestConfig:
    """A persisted test request.

    Created by the front-end before admission. The engine never mutates it
    directly; status transitions are mirrored through the result store.
    """

    __test__ = False

    test_id: str
    kind: TestKind
    params: dict[str, Any] | MappingProxyType[str, Any]  # converted to proxy in __post_init__
    created_at: datetime = field(default_factory=_utcnow)
    status: TestStatus = TestStatus.PENDING
    updated_at: datetime | None = None

    def __post_init__(self) -> None:
        """Validate identity and freeze the kind-specific payload."""
        if not self.test_id or not self.test_id.strip():
            raise ValueError("test_id must be a non-empty string")
        if isinstance(self.params, dict):
            self.params = MappingProxyType(dict(self.params))

    def to_dict(self) -> dict[str, Any]:
        return {
            "test_id": self.test_id,
            "kind": self.kind.value,
            "params": dict(self.params),
            "status": self.status.value,
            "created_at": self.created_at.isoformat(),
            "updated_at": self.updated_at.isoformat() if self.updated_at else None,
        }


@dataclass
class RunningTest:
    """An entry in the engine's running table.

    In-memory only. Presence in the table means the sampling loop is
    active and the test counts against the concurrency cap.
    """

    test_id: str
    kind: TestKind
    config: TestConfig
    task: "CancellableTask"
    started_at: datetime
    started_monotonic: float
    last_update: datetime
    samples_recorded: int = 0
    status: TestStatus = TestStatus.RUNNING

    def runtime_seconds(self, now_monotonic: float) -> float:
        """Elapsed runtime given the current monotonic clock reading."""
        return max(0.0, now_monotonic - self.started_monotonic)

    def to_dict(self) -> dict[str, Any]:
        return {
            "test_id": self.test_id,
            "kind": self.kind.value,
            "status": self.status.value,
            "started_at": self.started_at.isoformat(),
            "last_update": self.last_update.isoformat(),
            "samples_recorded": self.samples_recorded,
        }


@dataclass(frozen=True)
class Sample:
    """One measurement (or error record) produced by a tick.

    Append-only: identity is (test_id, sequence).
    """

    test_id: str
    sequence: int
    timestamp: datetime
    data: dict[str, Any] | MappingProxyType[str, Any]  # converted to proxy in __post_init__
    error: str | None = None
    final: bool = False  # terminal summary rather than a tick

    def __post_init__(self) -> None:
        """Validate ordering key and convert data to a read-only proxy."""
        if self.sequence < 0:
            raise ValueError(f"sequence must be non-negative, got {self.sequence}")
        if isinstance(self.data, dict):
            object.__setattr__(self, "data", MappingProxyType(dict(self.data)))

    @property
    def is_error(self) -> bool:
        return self.error is not None

    def to_dict(self) -> dict[str, Any]:
        result: dict[str, Any] = {
            "test_id": self.test_id,
            "sequence": self.sequence,
            "timestamp": self.timestamp.isoformat(),
            "data": dict(self.data),
            "final": self.final,
        }
        if self.error is not None:
            result["error"] = self.error
        return result


@dataclass(frozen=True)
class TestEvent:
    """An event delivered to live subscribers through the broadcaster."""

    __test__ = False

    type: str
    test_id: str | None
    data: Mapping[str, Any] = field(default_factory=dict)
    timestamp: datetime = field(default_factory=_utcnow)

    def to_dict(self) -> dict[str, Any]:
        return {
            "type": self.type,
            "testId": self.test_id,
            "data": dict(self.data),
            "timestamp": self.timestamp.isoformat(),
        }


@dataclass(frozen=True)
class EngineStats:
    """Point-in-time snapshot of engine counters."""

    tests_started: int
    tests_succeeded: int
    tests_failed: int
    total_runtime_seconds: float
    running_count: int
    queue_depth: int
    scheduled_count: int
    max_concurrent_tests: int

    @property
    def average_runtime_seconds(self) -> float:
        if self.tests_started == 0:
            return 0.0
        return self.total_runtime_seconds / self.tests_started

    @property
    def success_rate(self) -> float:
        """Succeeded / started, as a fraction in [0, 1]."""
        if self.tests_started == 0:
            return 0.0
        return self.tests_succeeded / self.tests_started

    def to_dict(self) -> dict[str, Any]:
        return {
            "tests_started": self.tests_started,
            "tests_succeeded": self.tests_succeeded,
            "tests_failed": self.tests_failed,
            "total_runtime_seconds": round(self.total_runtime_seconds, 3),
            "average_runtime_seconds": round(self.average_runtime_seconds, 3),
            "success_rate": self.success_rate,
            "running_count": self.running_count,
            "queue_depth": self.queue_depth,
            "scheduled_count": self.scheduled_count,
            "max_concurrent_tests": self.max_concurrent_tests,
        }


@dataclass(frozen=True)
class ResultsSummary:
    """Counts over everything in the result store."""

    total_tests: int
    total_samples: int
    by_kind: Mapping[str, int] = field(default_factory=dict)
    by_status: Mapping[str, int] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        return {
            "total_tests": self.total_tests,
            "total_samples": self.total_samples,
            "by_kind": dict(self.by_kind),
            "by_status": dict(self.by_status),
        }


@dataclass(frozen=True)
class TestReport:
    """A stored test together with its latest samples.

    ``running`` is set only while the test is resident in the engine.
    """

    __test__ = False

    config: TestConfig
    recent_samples: tuple[Sample, ...]
    running: RunningTest | None = None

    def to_dict(self) -> dict[str, Any]:
        result = self.config.to_dict()
        result["recent_results"] = [s.to_dict() for s in self.recent_samples]
        result["live"] = self.running.to_dict() if self.running else None
        return result


@dataclass(frozen=True)
class ScheduledTestInfo:
    """A recurring test registration."""

    schedule_id: str
    kind: TestKind
    params: Mapping[str, Any]
    interval_seconds: float
    runs_submitted: int = 0

    def to_dict(self) -> dict[str, Any]:
        return {
            "schedule_id": self.schedule_id,
            "kind": self.kind.value,
            "params": dict(self.params),
            "interval_seconds": self.interval_seconds,
            "runs_submitted": self.runs_submitted,
        }


@dataclass(frozen=True)
class MonitorWarning:
    """An advisory threshold breach found by the performance monitor."""

    code: str  # "high_load", "large_queue", "high_memory"
    message: str
    value: float
    threshold: float

    def to_dict(self) -> dict[str, Any]:
        return {
            "code": self.code,
            "message": self.message,
            "value": self.value,
            "threshold": self.threshold,
        }
