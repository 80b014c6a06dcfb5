"""Core domain logic for the carrierlab testing engine.

This package contains zero external dependencies and represents
the pure business logic of the application. All adapters and
external integrations are handled by the adapters package.
"""

from .errors import (
    AdmissionError,
    DuplicateTestError,
    InvalidTestConfigError,
    LifecycleError,
    QueueFullError,
    TestActiveError,
)
from .models import (
    EngineStats,
    MonitorWarning,
    ResultsSummary,
    RunningTest,
    Sample,
    ScheduledTestInfo,
    TestConfig,
    TestEvent,
    TestKind,
    TestReport,
    TestStatus,
)

__all__ = [
    "AdmissionError",
    "DuplicateTestError",
    "EngineStats",
    "InvalidTestConfigError",
    "LifecycleError",
    "MonitorWarning",
    "QueueFullError",
    "ResultsSummary",
    "RunningTest",
    "Sample",
    "ScheduledTestInfo",
    "TestActiveError",
    "TestConfig",
    "TestEvent",
    "TestKind",
    "TestReport",
    "TestStatus",
]
